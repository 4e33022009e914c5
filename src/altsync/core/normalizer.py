"""Filename to alt text normalization.

This module is the only implementation of the transform. The upload hook, the
single and bulk actions, the backfill sweep and the `preview` command all call
into it, so the preview always matches what would be saved.
"""

from __future__ import annotations

import re
import unicodedata

_SEPARATORS = re.compile(r"[_\-.]+")
_DISALLOWED = re.compile(r"[^A-Za-z0-9 ]+")
_WHITESPACE = re.compile(r"\s+")


def fold_accents(text: str) -> str:
    """Decompose `text` and drop combining marks, keeping the base letters.

    ``"café"`` becomes ``"cafe"`` and ``"ñ"`` becomes ``"n"``. Characters without a
    decomposition (``"ß"``, ``"Æ"``, ``"ø"``) pass through and are later removed by the
    ASCII filter, so ``"Straße"`` yields ``"Strae"``. WordPress's `remove_accents`
    transliterates them instead (``"ss"``, ``"AE"``, ``"o"``).
    """

    decomposed = unicodedata.normalize("NFD", text)
    return "".join(char for char in decomposed if not unicodedata.combining(char))


def derive_alt_text(base: str) -> str:
    """Return alt text derived from an extension-less filename.

    An empty result means no usable text could be derived.
    """

    text = fold_accents(base)
    text = _SEPARATORS.sub(" ", text)
    text = _DISALLOWED.sub("", text)
    text = _WHITESPACE.sub(" ", text)
    return text.strip()


def strip_extension(filename: str) -> str:
    """Return the base name of `filename` without directory, query string or extension."""

    name = filename.split("?", 1)[0]
    name = re.split(r"[/\\]", name)[-1]
    stem, dot, _ = name.rpartition(".")
    return stem if dot else name


def alt_text_for_filename(filename: str) -> str:
    """Derive alt text from a full filename such as ``"my_photo-01.jpg"``."""

    return derive_alt_text(strip_extension(filename))


__all__ = ["alt_text_for_filename", "derive_alt_text", "fold_accents", "strip_extension"]
