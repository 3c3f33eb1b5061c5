from __future__ import annotations

import re
from dataclasses import dataclass
from typing import List, Sequence

from services.media.domain.errors import InvalidRange

_RANGE_PATTERN = re.compile(r"^\s*bytes\s*=\s*(\d*)\s*-\s*(\d*)\s*$", re.IGNORECASE)


@dataclass(frozen=True)
class RangeRequest:
    start: int
    end: int
    total_size: int

    @property
    def content_length(self) -> int:
        return self.end - self.start + 1

    @property
    def content_range(self) -> str:
        return f"bytes {self.start}-{self.end}/{self.total_size}"

    @property
    def http_range(self) -> str:
        return f"bytes={self.start}-{self.end}"


@dataclass(frozen=True)
class ChunkRead:
    """Span of one stored chunk object needed to serve a range."""

    index: int
    object_key: str
    local_start: int
    local_end: int

    @property
    def length(self) -> int:
        return self.local_end - self.local_start + 1


def parse_range_header(header: str, total_size: int, max_span: int) -> RangeRequest:
    """Parse a single ``bytes=`` range and clamp it to ``max_span`` bytes.

    Supports ``start-end``, open-ended ``start-`` and suffix ``-length``
    forms. Multiple ranges are rejected.
    """
    if total_size <= 0:
        raise InvalidRange("Resource is empty; no byte range can be satisfied")
    match = _RANGE_PATTERN.match(header or "")
    if match is None:
        raise InvalidRange(f"Malformed Range header: {header!r}")

    start_raw, end_raw = match.groups()
    if not start_raw and not end_raw:
        raise InvalidRange(f"Malformed Range header: {header!r}")

    if not start_raw:
        suffix = int(end_raw)
        if suffix <= 0:
            raise InvalidRange("Suffix range length must be positive")
        start = max(total_size - suffix, 0)
        end = total_size - 1
    else:
        start = int(start_raw)
        end = int(end_raw) if end_raw else total_size - 1

    if start >= total_size:
        raise InvalidRange(
            f"Range start {start} is beyond the resource size {total_size}"
        )
    if end < start:
        raise InvalidRange(f"Range end {end} precedes start {start}")

    end = min(end, start + max_span - 1, total_size - 1)
    return RangeRequest(start=start, end=end, total_size=total_size)


def local_slice(
    request: RangeRequest, chunk_start: int, chunk_length: int
) -> tuple[int, int]:
    """Half-open slice of a chunk that falls inside ``request``."""
    return (
        max(0, request.start - chunk_start),
        min(chunk_length, request.end - chunk_start + 1),
    )


def plan_chunk_reads(
    request: RangeRequest, chunk_size: int, chunk_keys: Sequence[str]
) -> List[ChunkRead]:
    first = request.start // chunk_size
    last = request.end // chunk_size
    reads: List[ChunkRead] = []
    for index in range(first, min(last, len(chunk_keys) - 1) + 1):
        chunk_start = index * chunk_size
        chunk_length = min(chunk_size, request.total_size - chunk_start)
        slice_start, slice_stop = local_slice(request, chunk_start, chunk_length)
        if slice_start >= slice_stop:
            continue
        reads.append(
            ChunkRead(
                index=index,
                object_key=chunk_keys[index],
                local_start=slice_start,
                local_end=slice_stop - 1,
            )
        )
    return reads
