"""Alt text sync service: applies the filename rule to media records."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Optional, Protocol

from altsync.access import AccessPolicy
from altsync.core.normalizer import alt_text_for_filename
from altsync.storage import ImageRecord


class SkipReason(StrEnum):
    """Why a record was left untouched."""

    ALREADY_HAS_ALT = "already-has-alt"
    UNRESOLVABLE_FILENAME = "unresolvable-filename"
    NOT_AN_IMAGE = "not-an-image"
    FORBIDDEN = "forbidden"
    NOT_FOUND = "not-found"


class SyncError(Exception):
    """Raised when a single-record action is rejected."""

    reason: SkipReason

    def __init__(self, record_id: int | None, message: str) -> None:
        super().__init__(message)
        self.record_id = record_id


class RecordNotFound(SyncError):
    reason = SkipReason.NOT_FOUND


class NotAnImage(SyncError):
    reason = SkipReason.NOT_AN_IMAGE


class Forbidden(SyncError):
    reason = SkipReason.FORBIDDEN


class RecordStore(Protocol):
    """Record store operations the service consumes."""

    def get_image(self, record_id: int) -> Optional[ImageRecord]: ...

    def write_alt_text(self, record_id: int, text: str) -> None: ...

    def find_missing_alt_text(
        self, limit: int, after_id: Optional[int] = None
    ) -> list[ImageRecord]: ...


@dataclass(slots=True)
class SyncOutcome:
    """Counts produced by one sync invocation."""

    attempted: int = 0
    updated: int = 0
    skipped: dict[SkipReason, int] = field(default_factory=dict)

    @property
    def skipped_total(self) -> int:
        return sum(self.skipped.values())

    def skipped_for(self, reason: SkipReason) -> int:
        return self.skipped.get(reason, 0)

    def record_update(self) -> None:
        self.attempted += 1
        self.updated += 1

    def record_skip(self, reason: SkipReason) -> None:
        self.attempted += 1
        self.skipped[reason] = self.skipped.get(reason, 0) + 1

    def merge(self, other: SyncOutcome) -> SyncOutcome:
        """Return a new outcome with the counts of both."""

        skipped = dict(self.skipped)
        for reason, count in other.skipped.items():
            skipped[reason] = skipped.get(reason, 0) + count
        return SyncOutcome(
            attempted=self.attempted + other.attempted,
            updated=self.updated + other.updated,
            skipped=skipped,
        )

    def as_dict(self) -> dict[str, object]:
        return {
            "attempted": self.attempted,
            "updated": self.updated,
            "skipped": {str(reason): count for reason, count in sorted(self.skipped.items())},
        }

    @classmethod
    def from_counts(
        cls, *, attempted: int, updated: int, skipped: Mapping[str, int]
    ) -> SyncOutcome:
        return cls(
            attempted=attempted,
            updated=updated,
            skipped={SkipReason(reason): count for reason, count in skipped.items() if count},
        )


@dataclass(slots=True)
class BackfillBatch:
    """Result of one bounded backfill batch."""

    outcome: SyncOutcome
    next_cursor: Optional[int]
    exhausted: bool


@dataclass(slots=True)
class AltTextSyncService:
    """Derive and store alt text for media records."""

    store: RecordStore
    access: AccessPolicy
    logger: logging.Logger = field(default_factory=lambda: logging.getLogger(__name__))

    def sync_on_create(self, record: ImageRecord) -> SyncOutcome:
        """Fill in alt text for a newly uploaded record, never overwriting existing text."""

        outcome = SyncOutcome()
        self._apply_if_missing(record, outcome)
        return outcome

    def sync_one(self, record_id: int, actor: Optional[str]) -> SyncOutcome:
        """Set alt text from the filename on explicit request, replacing any existing text.

        Raises `RecordNotFound`, `NotAnImage` or `Forbidden` when the request is rejected.
        """

        record = self.store.get_image(record_id)
        if record is None:
            raise RecordNotFound(record_id, f"Image {record_id} does not exist.")
        if not record.is_image:
            raise NotAnImage(record_id, f"Record {record_id} is not an image ({record.mime_type}).")
        if not self.access.can_edit(actor, record_id):
            raise Forbidden(record_id, f"{actor or 'anonymous'} may not edit image {record_id}.")

        outcome = SyncOutcome()
        alt = alt_text_for_filename(record.filename)
        if not alt:
            self.logger.debug("No alt text derivable from %r (id=%s).", record.filename, record.id)
            outcome.record_skip(SkipReason.UNRESOLVABLE_FILENAME)
            return outcome

        self.store.write_alt_text(record.id, alt)
        self.logger.info("Set alt text for image %s to %r (actor=%s).", record.id, alt, actor)
        outcome.record_update()
        return outcome

    def sync_bulk(self, record_ids: Iterable[int], actor: Optional[str]) -> SyncOutcome:
        """Apply `sync_one` to every id, counting rejections instead of stopping."""

        outcome = SyncOutcome()
        for record_id in record_ids:
            try:
                item = self.sync_one(record_id, actor)
            except SyncError as exc:
                self.logger.debug("Bulk action skipped image %s: %s", record_id, exc)
                outcome.record_skip(exc.reason)
                continue
            outcome = outcome.merge(item)
        self.logger.info(
            "Bulk action by %s: attempted=%s updated=%s skipped=%s",
            actor,
            outcome.attempted,
            outcome.updated,
            outcome.skipped_total,
        )
        return outcome

    def backfill_missing(
        self,
        actor: Optional[str],
        batch_limit: int,
        cursor: Optional[int] = None,
    ) -> BackfillBatch:
        """Fill in alt text for up to `batch_limit` images that have none.

        Records are taken in id order after `cursor`; pass the returned `next_cursor`
        back in to continue the sweep.
        """

        if batch_limit < 1:
            raise ValueError("batch_limit must be at least 1.")
        if not self.access.is_admin(actor):
            raise Forbidden(None, f"{actor or 'anonymous'} may not run a library backfill.")

        candidates = self.store.find_missing_alt_text(batch_limit, after_id=cursor)
        outcome = SyncOutcome()
        next_cursor = cursor
        for candidate in candidates:
            next_cursor = candidate.id
            # The query result may be stale; decide on the current record.
            record = self.store.get_image(candidate.id)
            if record is None:
                outcome.record_skip(SkipReason.NOT_FOUND)
                continue
            if not self.access.can_edit(actor, record.id):
                outcome.record_skip(SkipReason.FORBIDDEN)
                continue
            self._apply_if_missing(record, outcome)

        exhausted = len(candidates) < batch_limit
        self.logger.info(
            "Backfill batch after cursor %s: attempted=%s updated=%s skipped=%s exhausted=%s",
            cursor,
            outcome.attempted,
            outcome.updated,
            outcome.skipped_total,
            exhausted,
        )
        return BackfillBatch(outcome=outcome, next_cursor=next_cursor, exhausted=exhausted)

    def _apply_if_missing(self, record: ImageRecord, outcome: SyncOutcome) -> None:
        if not record.is_image:
            outcome.record_skip(SkipReason.NOT_AN_IMAGE)
            return
        if record.has_alt_text:
            outcome.record_skip(SkipReason.ALREADY_HAS_ALT)
            return
        alt = alt_text_for_filename(record.filename)
        if not alt:
            self.logger.debug("No alt text derivable from %r (id=%s).", record.filename, record.id)
            outcome.record_skip(SkipReason.UNRESOLVABLE_FILENAME)
            return
        self.store.write_alt_text(record.id, alt)
        self.logger.info("Set alt text for image %s to %r.", record.id, alt)
        outcome.record_update()


__all__ = [
    "AltTextSyncService",
    "BackfillBatch",
    "Forbidden",
    "NotAnImage",
    "RecordNotFound",
    "RecordStore",
    "SkipReason",
    "SyncError",
    "SyncOutcome",
]
