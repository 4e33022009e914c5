"""Role-based authorization for media actions."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Protocol

from altsync.config import AccessSettings
from altsync.storage import ImageRecord


class AccessPolicy(Protocol):
    """Authorization questions the sync service asks."""

    def can_edit(self, actor: Optional[str], record_id: int) -> bool:
        """Return True if `actor` may change the record's alt text."""

    def is_admin(self, actor: Optional[str]) -> bool:
        """Return True if `actor` may run library-wide operations."""


class RecordLookup(Protocol):
    def get_image(self, record_id: int) -> Optional[ImageRecord]: ...


@dataclass(slots=True)
class RoleAccessPolicy:
    """Access policy driven by the `access` configuration section.

    Admins and editors may edit any record, authors only the records they own.
    Only admins may run library-wide operations.
    """

    settings: AccessSettings
    records: RecordLookup

    def role_of(self, actor: Optional[str]) -> Optional[str]:
        name = (actor or "").strip()
        if not name:
            return None
        if name in self.settings.admins:
            return "admin"
        if name in self.settings.editors:
            return "editor"
        if name in self.settings.authors:
            return "author"
        return None

    def is_admin(self, actor: Optional[str]) -> bool:
        return self.role_of(actor) == "admin"

    def can_edit(self, actor: Optional[str], record_id: int) -> bool:
        role = self.role_of(actor)
        if role is None:
            return False
        record = self.records.get_image(record_id)
        if record is None:
            return False
        if role in {"admin", "editor"}:
            return True
        return record.owner is not None and record.owner == (actor or "").strip()


__all__ = ["AccessPolicy", "RecordLookup", "RoleAccessPolicy"]
