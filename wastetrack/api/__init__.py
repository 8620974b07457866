"""HTTP API for WasteTrack."""
