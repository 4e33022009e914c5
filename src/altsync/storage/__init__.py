"""Storage helpers for Altsync."""

from .db import (
    Database,
    ImageRecord,
    LibraryStats,
    StoreUnavailable,
    SweepRecord,
    is_image_mime,
)

__all__ = [
    "Database",
    "ImageRecord",
    "LibraryStats",
    "StoreUnavailable",
    "SweepRecord",
    "is_image_mime",
]
