"""Helpers for object names in the media bucket."""

from __future__ import annotations

import re
import secrets
import time
from typing import Optional
from uuid import UUID

__all__ = [
    "safe_filename",
    "build_base_name",
    "build_object_path",
    "part_name",
    "split_part_name",
]

_PART_RE = re.compile(r"^(?P<base>.+)\.part(?P<index>\d+)$")


def safe_filename(value: str) -> str:
    """Return *value* without path separators and control characters."""

    name = value.replace("\\", "/").rsplit("/", 1)[-1].strip()
    name = re.sub(r"[\x00-\x1f]+", "", name)
    name = re.sub(r"\s+", "_", name)
    return name or "file"


def build_base_name(
    filename: str,
    *,
    timestamp_ms: Optional[int] = None,
    suffix: Optional[str] = None,
) -> str:
    """Return ``<epoch ms>_<random>_<filename>``.

    The millisecond timestamp alone collides when the same file name is
    uploaded twice within one millisecond, so a random hex suffix is added.
    """

    stamp = timestamp_ms if timestamp_ms is not None else time.time_ns() // 1_000_000
    rand = suffix if suffix is not None else secrets.token_hex(4)
    return f"{stamp}_{rand}_{safe_filename(filename)}"


def build_object_path(owner_id: UUID, project_id: UUID, base_name: str) -> str:
    return f"{owner_id}/{project_id}/{base_name}"


def part_name(base: str, index: int) -> str:
    if index < 0:
        raise ValueError("part index must be non-negative")
    return f"{base}.part{index}"


def split_part_name(object_name: str) -> Optional[tuple[str, int]]:
    """Inverse of :func:`part_name`; ``None`` for names that are not parts."""

    m = _PART_RE.match(object_name)
    if not m:
        return None
    return m.group("base"), int(m.group("index"))
