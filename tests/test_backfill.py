"""Tests for resumable backfill sweeps and the handler table."""

from __future__ import annotations

import logging

import pytest

from altsync.access import RoleAccessPolicy
from altsync.config import AccessSettings
from altsync.core import (
    AltTextSyncService,
    BackfillSweeper,
    Forbidden,
    RecordNotFound,
    SkipReason,
    build_handlers,
)
from altsync.storage import Database


@pytest.fixture
def library(tmp_path):
    database = Database(tmp_path / "altsync.sqlite")
    database.initialize()
    logger = logging.getLogger("altsync-test")
    logger.addHandler(logging.NullHandler())
    access = RoleAccessPolicy(
        settings=AccessSettings(admins=["root"], editors=["erin"]), records=database
    )
    service = AltTextSyncService(store=database, access=access, logger=logger)
    handlers = build_handlers(service)
    sweeper = BackfillSweeper(handlers=handlers, database=database, logger=logger)
    return database, handlers, sweeper


def _seed(database: Database, count: int) -> list[int]:
    return [database.add_image(f"photo_{i:02d}.jpg", "image/jpeg").id for i in range(count)]


def test_upload_handler_sets_alt_once(library):
    database, handlers, _ = library
    record = database.add_image("Golden-Gate_Bridge.jpg", "image/jpeg")

    first = handlers.on_upload(record.id)
    second = handlers.on_upload(record.id)

    assert database.get_image(record.id).alt_text == "Golden Gate Bridge"
    assert first.updated == 1
    assert second.skipped_for(SkipReason.ALREADY_HAS_ALT) == 1


def test_upload_handler_rejects_unknown_ids(library):
    _, handlers, _ = library
    with pytest.raises(RecordNotFound):
        handlers.on_upload(404)


def test_sweep_resumes_across_steps(library):
    database, _, sweeper = library
    _seed(database, 5)

    first = sweeper.step("root", 2)
    assert first.completed is False
    assert first.resumed is False
    assert first.batch.updated == 2

    second = sweeper.step("root", 2)
    assert second.sweep_id == first.sweep_id
    assert second.resumed is True
    assert second.total.updated == 4

    third = sweeper.step("root", 2)
    assert third.completed is True
    assert third.total.attempted == 5
    assert third.total.updated == 5
    assert database.count_images_with_alt() == 5
    assert database.get_open_sweep() is None


def test_unresolvable_records_do_not_stall_the_sweep(library):
    database, _, sweeper = library
    database.add_image("####.jpg", "image/jpeg")
    database.add_image("$$$$.png", "image/png")
    database.add_image("good_name.png", "image/png")

    progress = sweeper.run("root", 1)

    assert progress.completed is True
    assert progress.total.updated == 1
    assert progress.total.skipped_for(SkipReason.UNRESOLVABLE_FILENAME) == 2


def test_run_honours_max_batches(library):
    database, _, sweeper = library
    _seed(database, 6)

    progress = sweeper.run("root", 2, max_batches=2)

    assert progress.completed is False
    assert progress.total.updated == 4


def test_restart_abandons_open_sweep(library):
    database, _, sweeper = library
    _seed(database, 3)

    first = sweeper.step("root", 1)
    restarted = sweeper.step("root", 1, restart=True)

    assert restarted.sweep_id != first.sweep_id
    assert restarted.resumed is False
    assert database.get_sweep(first.sweep_id).status == "abandoned"


def test_new_sweep_after_completion(library):
    database, _, sweeper = library
    _seed(database, 2)

    done = sweeper.run("root", 10)
    database.add_image("late_arrival.jpg", "image/jpeg")
    again = sweeper.step("root", 10)

    assert done.completed is True
    assert again.sweep_id != done.sweep_id
    assert again.total.updated == 1


def test_non_admin_sweep_is_rejected_without_side_effects(library):
    database, _, sweeper = library
    _seed(database, 2)

    with pytest.raises(Forbidden):
        sweeper.step("erin", 10)

    assert database.get_open_sweep() is None
    assert database.count_images_with_alt() == 0


def test_non_admin_restart_keeps_open_sweep(library):
    database, _, sweeper = library
    _seed(database, 3)
    first = sweeper.step("root", 1)

    with pytest.raises(Forbidden):
        sweeper.step("erin", 1, restart=True)

    assert database.get_open_sweep().id == first.sweep_id


def test_sweep_fills_whitespace_only_alt(library):
    database, _, sweeper = library
    record = database.add_image("tabbed_photo.jpg", "image/jpeg", alt_text="\t\n")

    progress = sweeper.step("root", 10)

    assert progress.total.updated == 1
    assert database.get_image(record.id).alt_text == "tabbed photo"
    assert database.count_images_with_alt() == 1
