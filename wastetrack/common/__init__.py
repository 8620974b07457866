"""Shared helpers for WasteTrack."""

from .logger import configure_logging, setup_logger

__all__ = ["configure_logging", "setup_logger"]
