from __future__ import annotations

from services.media.application.interfaces import ObjectStore


def probe_window(data: bytes, limit: int) -> bytes:
    """Head of ``data`` plus its tail when the file is larger than two windows.

    MP4 writers that do not fast-start put the ``moov`` box at the end.
    """
    if limit <= 0 or len(data) <= 2 * limit:
        return data
    view = memoryview(data)
    return bytes(view[:limit]) + bytes(view[-limit:])


def fetch_probe_window(
    store: ObjectStore, object_key: str, total_size: int, limit: int
) -> bytes:
    if limit <= 0 or total_size <= 2 * limit:
        return store.get_object(object_key)
    head = store.get_object(object_key, f"bytes=0-{limit - 1}")
    tail = store.get_object(object_key, f"bytes=-{limit}")
    return head + tail
