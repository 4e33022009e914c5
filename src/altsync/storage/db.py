"""SQLite persistence layer for Altsync."""

from __future__ import annotations

import json
import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Iterator, Mapping, Optional

ISO_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"

# SQL side of `alt_text_present` and `is_image_mime`, registered on every connection.
_HAS_ALT = "alt_text_present(alt_text)"
_MISSING_ALT = "NOT alt_text_present(alt_text)"
_IS_IMAGE = "is_image_mime(mime_type)"


def alt_text_present(alt_text: Optional[str]) -> bool:
    """Return True when `alt_text` holds something other than whitespace."""

    return bool((alt_text or "").strip())


def _utcnow() -> str:
    """Return the current UTC timestamp in ISO format."""

    return datetime.now(timezone.utc).strftime(ISO_FORMAT)


class StoreUnavailable(RuntimeError):
    """Raised when the record store cannot be read or written."""


@dataclass(slots=True)
class ImageRecord:
    """Snapshot of a media library record."""

    id: int
    filename: str
    mime_type: str
    alt_text: Optional[str] = None
    title: str = ""
    caption: str = ""
    description: str = ""
    owner: Optional[str] = None
    created_at: str = ""
    updated_at: str = ""

    @property
    def is_image(self) -> bool:
        return is_image_mime(self.mime_type)

    @property
    def has_alt_text(self) -> bool:
        return alt_text_present(self.alt_text)


@dataclass(slots=True)
class LibraryStats:
    """Counts shown on the statistics page."""

    total_images: int
    with_alt: int
    mime_counts: Dict[str, int]

    @property
    def without_alt(self) -> int:
        return max(0, self.total_images - self.with_alt)


@dataclass(slots=True)
class SweepRecord:
    """Checkpoint of a resumable backfill sweep."""

    id: int
    status: str
    cursor: Optional[int]
    attempted: int
    updated: int
    skipped: Dict[str, int]
    started_at: str
    updated_at: str
    completed_at: Optional[str] = None


def is_image_mime(mime_type: Optional[str]) -> bool:
    """Return True for `image/*` MIME types (parameters and case ignored)."""

    if not mime_type:
        return False
    return mime_type.split(";")[0].strip().lower().startswith("image/")


class Database:
    """SQLite-backed media library used as the Altsync record store."""

    def __init__(self, path: Optional[Path] = None) -> None:
        self.path = (path or Path.cwd() / "altsync.sqlite").resolve()

    @contextmanager
    def connect(self) -> Iterator[sqlite3.Connection]:
        """Provide a SQLite connection; driver errors surface as `StoreUnavailable`."""

        try:
            connection = sqlite3.connect(self.path)
        except sqlite3.Error as exc:
            raise StoreUnavailable(f"Unable to open record store {self.path}: {exc}") from exc
        connection.row_factory = sqlite3.Row
        try:
            connection.create_function(
                "alt_text_present", 1, alt_text_present, deterministic=True
            )
            connection.create_function("is_image_mime", 1, is_image_mime, deterministic=True)
            yield connection
        except sqlite3.Error as exc:
            raise StoreUnavailable(f"Record store operation failed: {exc}") from exc
        finally:
            connection.close()

    def initialize(self) -> None:
        """Create tables if they do not exist."""

        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.connect() as connection:
            connection.executescript(
                """
                CREATE TABLE IF NOT EXISTS images (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    filename TEXT NOT NULL,
                    mime_type TEXT NOT NULL,
                    alt_text TEXT,
                    title TEXT NOT NULL DEFAULT '',
                    caption TEXT NOT NULL DEFAULT '',
                    description TEXT NOT NULL DEFAULT '',
                    owner TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS backfill_sweeps (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    status TEXT NOT NULL DEFAULT 'running',
                    cursor INTEGER,
                    attempted INTEGER NOT NULL DEFAULT 0,
                    updated INTEGER NOT NULL DEFAULT 0,
                    skipped_json TEXT NOT NULL DEFAULT '{}',
                    started_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    completed_at TEXT
                );

                CREATE INDEX IF NOT EXISTS idx_images_mime_type ON images(mime_type);
                CREATE INDEX IF NOT EXISTS idx_backfill_sweeps_status ON backfill_sweeps(status);
                """
            )
            connection.commit()

    # --- Media records ---

    def add_image(
        self,
        filename: str,
        mime_type: str,
        *,
        alt_text: Optional[str] = None,
        title: str = "",
        caption: str = "",
        description: str = "",
        owner: Optional[str] = None,
    ) -> ImageRecord:
        """Insert a media record and return it."""

        now = _utcnow()
        with self.connect() as connection:
            cursor = connection.execute(
                """
                INSERT INTO images (
                    filename, mime_type, alt_text, title, caption, description, owner,
                    created_at, updated_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (filename, mime_type, alt_text, title, caption, description, owner, now, now),
            )
            record_id = cursor.lastrowid
            connection.commit()
        return ImageRecord(
            id=record_id,
            filename=filename,
            mime_type=mime_type,
            alt_text=alt_text,
            title=title,
            caption=caption,
            description=description,
            owner=owner,
            created_at=now,
            updated_at=now,
        )

    def get_image(self, record_id: int) -> Optional[ImageRecord]:
        """Return a single record by id."""

        with self.connect() as connection:
            row = connection.execute(
                "SELECT * FROM images WHERE id = ?", (record_id,)
            ).fetchone()
        return _row_to_image(row) if row is not None else None

    def write_alt_text(self, record_id: int, text: str) -> None:
        """Store `text` as the alt text of a record."""

        with self.connect() as connection:
            connection.execute(
                "UPDATE images SET alt_text = ?, updated_at = ? WHERE id = ?",
                (text, _utcnow(), record_id),
            )
            connection.commit()

    def find_missing_alt_text(
        self, limit: int, after_id: Optional[int] = None
    ) -> list[ImageRecord]:
        """Return images without alt text, ordered by id, strictly after `after_id`."""

        with self.connect() as connection:
            rows = connection.execute(
                f"""
                SELECT * FROM images
                WHERE {_IS_IMAGE}
                    AND {_MISSING_ALT}
                    AND (? IS NULL OR id > ?)
                ORDER BY id ASC
                LIMIT ?
                """,
                (after_id, after_id, limit),
            ).fetchall()
        return [_row_to_image(row) for row in rows]

    def list_images(self, limit: int = 50, offset: int = 0) -> list[ImageRecord]:
        """List images newest first for the paginated listing."""

        with self.connect() as connection:
            rows = connection.execute(
                f"""
                SELECT * FROM images
                WHERE {_IS_IMAGE}
                ORDER BY id DESC
                LIMIT ? OFFSET ?
                """,
                (limit, offset),
            ).fetchall()
        return [_row_to_image(row) for row in rows]

    def count_images(self) -> int:
        with self.connect() as connection:
            row = connection.execute(f"SELECT COUNT(*) FROM images WHERE {_IS_IMAGE}").fetchone()
        return int(row[0])

    def count_images_with_alt(self) -> int:
        with self.connect() as connection:
            row = connection.execute(
                f"SELECT COUNT(*) FROM images WHERE {_IS_IMAGE} AND {_HAS_ALT}"
            ).fetchone()
        return int(row[0])

    def count_by_mime_type(self) -> Dict[str, int]:
        """Return image counts keyed by MIME type, largest first."""

        with self.connect() as connection:
            rows = connection.execute(
                f"""
                SELECT mime_type, COUNT(*) AS count
                FROM images
                WHERE {_IS_IMAGE}
                GROUP BY mime_type
                ORDER BY count DESC, mime_type ASC
                """
            ).fetchall()
        return {row["mime_type"]: row["count"] for row in rows}

    def get_library_stats(self) -> LibraryStats:
        return LibraryStats(
            total_images=self.count_images(),
            with_alt=self.count_images_with_alt(),
            mime_counts=self.count_by_mime_type(),
        )

    # --- Backfill sweep checkpoints ---

    def start_sweep(self) -> SweepRecord:
        """Create a new running sweep starting before the first record."""

        now = _utcnow()
        with self.connect() as connection:
            cursor = connection.execute(
                "INSERT INTO backfill_sweeps (status, started_at, updated_at) VALUES (?, ?, ?)",
                ("running", now, now),
            )
            sweep_id = cursor.lastrowid
            connection.commit()
        return SweepRecord(
            id=sweep_id,
            status="running",
            cursor=None,
            attempted=0,
            updated=0,
            skipped={},
            started_at=now,
            updated_at=now,
        )

    def get_open_sweep(self) -> Optional[SweepRecord]:
        """Return the most recent sweep that has not completed, if any."""

        with self.connect() as connection:
            row = connection.execute(
                """
                SELECT * FROM backfill_sweeps
                WHERE status = 'running'
                ORDER BY id DESC
                LIMIT 1
                """
            ).fetchone()
        return _row_to_sweep(row) if row is not None else None

    def get_sweep(self, sweep_id: int) -> Optional[SweepRecord]:
        with self.connect() as connection:
            row = connection.execute(
                "SELECT * FROM backfill_sweeps WHERE id = ?", (sweep_id,)
            ).fetchone()
        return _row_to_sweep(row) if row is not None else None

    def save_sweep(
        self,
        sweep_id: int,
        *,
        cursor: Optional[int],
        attempted: int,
        updated: int,
        skipped: Mapping[str, int],
        completed: bool = False,
    ) -> None:
        """Persist sweep progress; `completed` closes the sweep."""

        now = _utcnow()
        values: list[object] = [cursor, attempted, updated, json.dumps(dict(skipped)), now]
        sql = (
            "UPDATE backfill_sweeps SET cursor = ?, attempted = ?, updated = ?, "
            "skipped_json = ?, updated_at = ?"
        )
        if completed:
            sql += ", status = 'completed', completed_at = ?"
            values.append(now)
        sql += " WHERE id = ?"
        values.append(sweep_id)
        with self.connect() as connection:
            connection.execute(sql, values)
            connection.commit()

    def abandon_open_sweeps(self) -> int:
        """Mark running sweeps as abandoned so a fresh sweep can start."""

        with self.connect() as connection:
            cursor = connection.execute(
                "UPDATE backfill_sweeps SET status = 'abandoned', updated_at = ? "
                "WHERE status = 'running'",
                (_utcnow(),),
            )
            connection.commit()
            return cursor.rowcount


def _row_to_image(row: sqlite3.Row) -> ImageRecord:
    return ImageRecord(
        id=row["id"],
        filename=row["filename"],
        mime_type=row["mime_type"],
        alt_text=row["alt_text"],
        title=row["title"],
        caption=row["caption"],
        description=row["description"],
        owner=row["owner"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _row_to_sweep(row: sqlite3.Row) -> SweepRecord:
    try:
        skipped = json.loads(row["skipped_json"] or "{}")
    except json.JSONDecodeError:
        skipped = {}
    return SweepRecord(
        id=row["id"],
        status=row["status"],
        cursor=row["cursor"],
        attempted=row["attempted"],
        updated=row["updated"],
        skipped={str(key): int(value) for key, value in skipped.items()},
        started_at=row["started_at"],
        updated_at=row["updated_at"],
        completed_at=row["completed_at"],
    )
