"""Altsync: derive image alt text from uploaded filenames."""

from __future__ import annotations

import tomllib
from functools import lru_cache
from importlib import metadata
from pathlib import Path

PACKAGE_NAME = "altsync"


def _source_checkout_version(start: Path) -> str | None:
    """Read `[project].version` from the nearest altsync pyproject.toml, if any."""

    for candidate in (start, *start.parents):
        pyproject = candidate / "pyproject.toml"
        if not pyproject.is_file():
            continue
        try:
            with pyproject.open("rb") as handle:
                project = tomllib.load(handle).get("project") or {}
        except (OSError, tomllib.TOMLDecodeError):  # pragma: no cover - unreadable file
            return None
        if project.get("name") != PACKAGE_NAME:
            return None
        version = project.get("version")
        if isinstance(version, str) and version.strip():
            return version.strip()
        return None
    return None


@lru_cache(maxsize=1)
def get_version() -> str:
    """Return the Altsync version.

    A source checkout wins over installed metadata so editable installs report the
    version currently in `pyproject.toml`.
    """

    version = _source_checkout_version(Path(__file__).resolve().parent)
    if version is not None:
        return version

    try:
        return metadata.version(PACKAGE_NAME)
    except metadata.PackageNotFoundError as exc:  # pragma: no cover - occurs in dev
        raise RuntimeError("Unable to determine Altsync version.") from exc


__all__ = ["PACKAGE_NAME", "get_version"]
