"""Database layer for WasteTrack."""
