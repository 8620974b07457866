"""WasteTrack core: configuration, security and the shipment lifecycle."""
