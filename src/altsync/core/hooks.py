"""Entry points that transports (the CLI, a scheduler) call into."""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Optional

from altsync.core.service import AltTextSyncService, BackfillBatch, RecordNotFound, SyncOutcome


@dataclass(frozen=True, slots=True)
class AltTextHandlers:
    """Dispatch table built once per process and handed to the transport layer."""

    on_upload: Callable[[int], SyncOutcome]
    on_single_action: Callable[[int, Optional[str]], SyncOutcome]
    on_bulk_action: Callable[[Iterable[int], Optional[str]], SyncOutcome]
    on_backfill: Callable[[Optional[str], int, Optional[int]], BackfillBatch]


def build_handlers(service: AltTextSyncService) -> AltTextHandlers:
    """Bind the sync service to the handler table."""

    def on_upload(record_id: int) -> SyncOutcome:
        record = service.store.get_image(record_id)
        if record is None:
            raise RecordNotFound(record_id, f"Uploaded image {record_id} does not exist.")
        return service.sync_on_create(record)

    def on_backfill(
        actor: Optional[str], batch_limit: int, cursor: Optional[int] = None
    ) -> BackfillBatch:
        return service.backfill_missing(actor, batch_limit, cursor)

    return AltTextHandlers(
        on_upload=on_upload,
        on_single_action=service.sync_one,
        on_bulk_action=service.sync_bulk,
        on_backfill=on_backfill,
    )


__all__ = ["AltTextHandlers", "build_handlers"]
