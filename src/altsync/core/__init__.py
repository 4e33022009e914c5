"""Core alt text components for Altsync."""

from .backfill import BackfillSweeper, SweepProgress
from .hooks import AltTextHandlers, build_handlers
from .normalizer import alt_text_for_filename, derive_alt_text, strip_extension
from .service import (
    AltTextSyncService,
    BackfillBatch,
    Forbidden,
    NotAnImage,
    RecordNotFound,
    SkipReason,
    SyncError,
    SyncOutcome,
)

__all__ = [
    "AltTextHandlers",
    "AltTextSyncService",
    "BackfillBatch",
    "BackfillSweeper",
    "Forbidden",
    "NotAnImage",
    "RecordNotFound",
    "SkipReason",
    "SweepProgress",
    "SyncError",
    "SyncOutcome",
    "alt_text_for_filename",
    "build_handlers",
    "derive_alt_text",
    "strip_extension",
]
