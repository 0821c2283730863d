"""
Provider capability interfaces implemented by external media clients.
"""

from mediasync.providers.base import MediaProvider, SeriesProvider, MediaClient

__all__ = ["MediaProvider", "SeriesProvider", "MediaClient"]
