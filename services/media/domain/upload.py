from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Sequence


@dataclass(frozen=True)
class UploadSession:
    video_id: str
    object_key: str
    upload_id: str
    original_filename: str
    total_size: int
    mime_type: str
    destination_folder: str
    created_at: datetime
    is_complete: bool = False
    final_object_url: Optional[str] = None
    completed_at: Optional[datetime] = None
    duration: int = 0
    chunk_size: Optional[int] = None
    chunk_keys: Sequence[str] = field(default_factory=tuple)

    @property
    def is_chunked(self) -> bool:
        return bool(self.chunk_keys) and bool(self.chunk_size)


@dataclass(frozen=True)
class PartSlice:
    """Read-only window into the buffer being uploaded."""

    part_number: int
    offset: int
    length: int
    source: bytes = field(repr=False, compare=False)

    def read(self) -> bytes:
        return bytes(memoryview(self.source)[self.offset : self.offset + self.length])


@dataclass(frozen=True)
class PartResult:
    part_number: int
    etag: str


@dataclass(frozen=True)
class UploadResult:
    public_url: str
    object_key: str
    duration: int
    video_id: Optional[str] = None


@dataclass(frozen=True)
class PresignedPart:
    part_number: int
    url: str


@dataclass(frozen=True)
class DirectUpload:
    video_id: str
    upload_id: str
    object_key: str
    parts: List[PresignedPart]
    expires_at: datetime


def plan_parts(buffer: bytes, chunk_size: int) -> List[PartSlice]:
    if chunk_size <= 0:
        raise ValueError("chunk_size must be positive")
    source = bytes(buffer)
    total = len(source)
    count = -(-total // chunk_size)
    return [
        PartSlice(
            part_number=index + 1,
            offset=index * chunk_size,
            length=min(chunk_size, total - index * chunk_size),
            source=source,
        )
        for index in range(count)
    ]


def part_count(total_size: int, chunk_size: int) -> int:
    return -(-total_size // chunk_size)


def ordered_manifest(parts: Sequence[PartResult]) -> List[PartResult]:
    """Sort parts by number and require a gap-free 1..N sequence."""
    ordered = sorted(parts, key=lambda part: part.part_number)
    expected = list(range(1, len(ordered) + 1))
    if [part.part_number for part in ordered] != expected:
        raise ValueError("Parts must form a contiguous sequence starting at 1")
    return ordered


@dataclass(frozen=True)
class ObjectInfo:
    size: int
    content_type: str
