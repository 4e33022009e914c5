"""Resumable backfill sweeps over images that have no alt text."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from altsync.core.hooks import AltTextHandlers
from altsync.core.service import SyncOutcome
from altsync.storage import Database, SweepRecord


@dataclass(slots=True)
class SweepProgress:
    """State of a sweep after one batch."""

    sweep_id: int
    batch: SyncOutcome
    total: SyncOutcome
    cursor: Optional[int]
    completed: bool
    resumed: bool


@dataclass(slots=True)
class BackfillSweeper:
    """Run backfill batches and checkpoint their cursor in the record store.

    Each `step` continues the most recent unfinished sweep, so repeated invocations
    (by hand or from a scheduler) eventually cover the whole library.
    """

    handlers: AltTextHandlers
    database: Database
    logger: logging.Logger

    def step(
        self, actor: Optional[str], batch_limit: int, *, restart: bool = False
    ) -> SweepProgress:
        """Process one batch of the current sweep."""

        sweep = None if restart else self._resume()
        cursor = sweep.cursor if sweep else None

        # Authorization is checked here, before any sweep row is touched.
        batch = self.handlers.on_backfill(actor, batch_limit, cursor)
        if restart:
            abandoned = self.database.abandon_open_sweeps()
            if abandoned:
                self.logger.info("Abandoned %s unfinished backfill sweep(s).", abandoned)

        resumed = sweep is not None
        if sweep is None:
            sweep = self.database.start_sweep()
            self.logger.info("Started backfill sweep %s.", sweep.id)

        previous = SyncOutcome.from_counts(
            attempted=sweep.attempted, updated=sweep.updated, skipped=sweep.skipped
        )
        total = previous.merge(batch.outcome)
        self.database.save_sweep(
            sweep.id,
            cursor=batch.next_cursor,
            attempted=total.attempted,
            updated=total.updated,
            skipped={str(reason): count for reason, count in total.skipped.items()},
            completed=batch.exhausted,
        )
        if batch.exhausted:
            self.logger.info(
                "Backfill sweep %s completed: attempted=%s updated=%s.",
                sweep.id,
                total.attempted,
                total.updated,
            )
        else:
            self.logger.info(
                "Backfill sweep %s paused at image %s: attempted=%s updated=%s.",
                sweep.id,
                batch.next_cursor,
                total.attempted,
                total.updated,
            )

        return SweepProgress(
            sweep_id=sweep.id,
            batch=batch.outcome,
            total=total,
            cursor=batch.next_cursor,
            completed=batch.exhausted,
            resumed=resumed,
        )

    def run(
        self,
        actor: Optional[str],
        batch_limit: int,
        *,
        restart: bool = False,
        max_batches: Optional[int] = None,
    ) -> SweepProgress:
        """Step until the sweep completes or `max_batches` batches have run."""

        progress = self.step(actor, batch_limit, restart=restart)
        batches = 1
        while not progress.completed and (max_batches is None or batches < max_batches):
            progress = self.step(actor, batch_limit)
            batches += 1
        return progress

    def _resume(self) -> Optional[SweepRecord]:
        sweep = self.database.get_open_sweep()
        if sweep is not None:
            self.logger.info("Resuming backfill sweep %s after image %s.", sweep.id, sweep.cursor)
        return sweep


__all__ = ["BackfillSweeper", "SweepProgress"]
