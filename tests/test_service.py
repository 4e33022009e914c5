"""Tests for the alt text sync service."""

from __future__ import annotations

import logging
from dataclasses import replace

import pytest

from altsync.core import (
    AltTextSyncService,
    Forbidden,
    NotAnImage,
    RecordNotFound,
    SkipReason,
    SyncOutcome,
)
from altsync.storage import ImageRecord, StoreUnavailable


class FakeStore:
    """In-memory record store that counts writes."""

    def __init__(self, *records: ImageRecord) -> None:
        self.records = {record.id: record for record in records}
        self.writes: list[tuple[int, str]] = []

    def get_image(self, record_id):
        return self.records.get(record_id)

    def write_alt_text(self, record_id, text):
        self.writes.append((record_id, text))
        self.records[record_id] = replace(self.records[record_id], alt_text=text)

    def find_missing_alt_text(self, limit, after_id=None):
        matches = [
            record
            for record_id, record in sorted(self.records.items())
            if record.is_image
            and not record.has_alt_text
            and (after_id is None or record_id > after_id)
        ]
        return matches[:limit]


class FakeAccess:
    def __init__(self, *, admins=("admin",), denied=()) -> None:
        self.admins = set(admins)
        self.denied = set(denied)

    def can_edit(self, actor, record_id):
        return bool(actor) and record_id not in self.denied

    def is_admin(self, actor):
        return actor in self.admins


def _image(record_id: int, filename: str, alt: str | None = None, mime: str = "image/jpeg"):
    return ImageRecord(id=record_id, filename=filename, mime_type=mime, alt_text=alt)


def _service(store, access=None) -> AltTextSyncService:
    logger = logging.getLogger("altsync-test")
    logger.addHandler(logging.NullHandler())
    return AltTextSyncService(store=store, access=access or FakeAccess(), logger=logger)


class TestSyncOnCreate:
    def test_existing_alt_is_never_overwritten(self):
        store = FakeStore(_image(1, "beach_day.jpg", alt="Family at the beach"))
        outcome = _service(store).sync_on_create(store.get_image(1))

        assert store.writes == []
        assert outcome.skipped_for(SkipReason.ALREADY_HAS_ALT) == 1
        assert outcome.updated == 0

    def test_writes_once_then_is_idempotent(self):
        store = FakeStore(_image(1, "beach_day-2024.jpg"))
        service = _service(store)

        first = service.sync_on_create(store.get_image(1))
        second = service.sync_on_create(store.get_image(1))

        assert store.writes == [(1, "beach day 2024")]
        assert first.updated == 1
        assert second.updated == 0
        assert second.skipped_for(SkipReason.ALREADY_HAS_ALT) == 1

    def test_whitespace_alt_counts_as_missing(self):
        store = FakeStore(_image(1, "harbour.png", alt="   "))
        outcome = _service(store).sync_on_create(store.get_image(1))

        assert store.writes == [(1, "harbour")]
        assert outcome.updated == 1

    def test_unresolvable_filename_leaves_record_untouched(self):
        store = FakeStore(_image(1, "____.jpg"))
        outcome = _service(store).sync_on_create(store.get_image(1))

        assert store.writes == []
        assert outcome.skipped_for(SkipReason.UNRESOLVABLE_FILENAME) == 1

    def test_non_images_are_ignored(self):
        store = FakeStore(_image(1, "annual-report.pdf", mime="application/pdf"))
        outcome = _service(store).sync_on_create(store.get_image(1))

        assert store.writes == []
        assert outcome.skipped_for(SkipReason.NOT_AN_IMAGE) == 1


class TestSyncOne:
    def test_overwrites_existing_alt(self):
        store = FakeStore(_image(7, "red-kite_in-flight.webp", alt="bird"))
        outcome = _service(store).sync_one(7, "editor")

        assert store.writes == [(7, "red kite in flight")]
        assert outcome.attempted == 1
        assert outcome.updated == 1

    def test_unresolvable_reports_without_writing(self):
        store = FakeStore(_image(7, "!!!.gif", alt="old"))
        outcome = _service(store).sync_one(7, "editor")

        assert store.writes == []
        assert outcome.skipped_for(SkipReason.UNRESOLVABLE_FILENAME) == 1
        assert store.get_image(7).alt_text == "old"

    def test_rejections_raise(self):
        store = FakeStore(
            _image(1, "a.jpg"),
            _image(2, "notes.txt", mime="text/plain"),
        )
        service = _service(store, FakeAccess(denied={1}))

        with pytest.raises(Forbidden):
            service.sync_one(1, "author")
        with pytest.raises(NotAnImage):
            service.sync_one(2, "author")
        with pytest.raises(RecordNotFound) as excinfo:
            service.sync_one(99, "author")
        assert excinfo.value.record_id == 99
        assert store.writes == []

    def test_store_failures_propagate(self):
        class BrokenStore(FakeStore):
            def write_alt_text(self, record_id, text):
                raise StoreUnavailable("disk full")

        store = BrokenStore(_image(1, "pier.jpg"))
        with pytest.raises(StoreUnavailable):
            _service(store).sync_one(1, "editor")


class TestSyncBulk:
    def test_forbidden_item_is_skipped_not_fatal(self):
        store = FakeStore(_image(1, "one.jpg"), _image(2, "two.jpg"), _image(3, "three.jpg"))
        outcome = _service(store, FakeAccess(denied={2})).sync_bulk([1, 2, 3], "editor")

        assert outcome.attempted == 3
        assert outcome.updated == 2
        assert outcome.skipped_total == 1
        assert outcome.skipped_for(SkipReason.FORBIDDEN) == 1
        assert [record_id for record_id, _ in store.writes] == [1, 3]

    def test_mixed_failures_are_counted_by_reason(self):
        store = FakeStore(
            _image(1, "dunes.jpg", alt="existing"),
            _image(2, "clip.mp4", mime="video/mp4"),
            _image(3, "----.png"),
        )
        outcome = _service(store).sync_bulk([1, 2, 3, 4], "editor")

        assert outcome.as_dict() == {
            "attempted": 4,
            "updated": 1,
            "skipped": {
                "not-an-image": 1,
                "not-found": 1,
                "unresolvable-filename": 1,
            },
        }
        assert store.get_image(1).alt_text == "dunes"

    def test_empty_list(self):
        outcome = _service(FakeStore()).sync_bulk([], "editor")
        assert outcome == SyncOutcome()


class TestBackfillMissing:
    def test_requires_admin(self):
        store = FakeStore(_image(1, "a.jpg"))
        with pytest.raises(Forbidden):
            _service(store).backfill_missing("editor", 10)
        assert store.writes == []

    def test_rejects_invalid_batch_limit(self):
        with pytest.raises(ValueError):
            _service(FakeStore()).backfill_missing("admin", 0)

    def test_fills_only_missing_alt(self):
        store = FakeStore(
            _image(1, "kept.jpg", alt="Keep me"),
            _image(2, "new_one.jpg"),
            _image(3, "blank.jpg", alt=" "),
        )
        batch = _service(store).backfill_missing("admin", 10)

        assert store.writes == [(2, "new one"), (3, "blank")]
        assert batch.outcome.updated == 2
        assert batch.exhausted is True
        assert batch.next_cursor == 3

    def test_stale_query_results_are_rechecked(self):
        store = FakeStore(_image(1, "river.jpg"), _image(2, "lake.jpg"))
        original_find = store.find_missing_alt_text

        def stale_find(limit, after_id=None):
            rows = original_find(limit, after_id)
            # Another writer sets alt text after the query ran.
            store.records[2] = replace(store.records[2], alt_text="Lake at dawn")
            return rows

        store.find_missing_alt_text = stale_find
        batch = _service(store).backfill_missing("admin", 10)

        assert store.writes == [(1, "river")]
        assert store.get_image(2).alt_text == "Lake at dawn"
        assert batch.outcome.skipped_for(SkipReason.ALREADY_HAS_ALT) == 1

    def test_cursor_pages_through_records(self):
        store = FakeStore(*[_image(i, f"pier-{i}.jpg") for i in range(1, 6)])
        service = _service(store)

        first = service.backfill_missing("admin", 2)
        second = service.backfill_missing("admin", 2, first.next_cursor)
        third = service.backfill_missing("admin", 2, second.next_cursor)

        assert (first.next_cursor, first.exhausted) == (2, False)
        assert (second.next_cursor, second.exhausted) == (4, False)
        assert (third.next_cursor, third.exhausted) == (5, True)
        total = first.outcome.merge(second.outcome).merge(third.outcome)
        assert total.attempted == 5
        assert total.updated == 5

    def test_per_item_edit_rights_are_checked(self):
        store = FakeStore(_image(1, "a_b.jpg"), _image(2, "c_d.jpg"))
        batch = _service(store, FakeAccess(denied={1})).backfill_missing("admin", 10)

        assert store.writes == [(2, "c d")]
        assert batch.outcome.skipped_for(SkipReason.FORBIDDEN) == 1
