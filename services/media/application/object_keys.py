from __future__ import annotations

import re
import secrets
import time
from pathlib import Path

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9]")
_SAFE_EXTENSION = re.compile(r"^\.[a-z0-9]{1,10}$")


def _sanitize_filename(filename: str, timestamp_ms: int, suffix: str) -> str:
    safe_name = Path(filename or "").name
    extension = Path(safe_name).suffix.lower()
    if not _SAFE_EXTENSION.match(extension):
        extension = ""
    stem = safe_name[: len(safe_name) - len(extension)] if extension else safe_name
    normalized = _UNSAFE_CHARS.sub("_", stem) or "video"
    return f"{normalized}_{timestamp_ms}_{suffix}{extension}"


def _sanitize_folder(folder: str | None) -> str:
    segments = [
        _UNSAFE_CHARS.sub("_", segment)
        for segment in (folder or "").split("/")
        if segment and segment not in {".", ".."}
    ]
    return "/".join(segments)


def build_object_key(
    filename: str,
    folder: str | None = None,
    *,
    timestamp_ms: int | None = None,
    random_suffix: str | None = None,
) -> str:
    """Collision-resistant key: ``folder/name_<millis>_<hex><.ext>``.

    ``<millis>`` is wall-clock epoch milliseconds, not a monotonic reading. It
    may repeat or step backwards; uniqueness rests on the 64-bit random suffix.
    """
    unique_name = _sanitize_filename(
        filename,
        timestamp_ms if timestamp_ms is not None else time.time_ns() // 1_000_000,
        random_suffix or secrets.token_hex(8),
    )
    segments = [_sanitize_folder(folder), unique_name]
    return "/".join(segment for segment in segments if segment)
