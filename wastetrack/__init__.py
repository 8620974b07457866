"""WasteTrack: custody-chain tracking for waste shipments."""

__version__ = "0.3.0"
