from dataclasses import dataclass
from typing import List, Optional


@dataclass(frozen=True)
class UploadVideoCommand:
    filename: str
    content_type: str
    data: bytes
    folder: Optional[str] = None

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass(frozen=True)
class CreateDirectUploadCommand:
    filename: str
    content_type: str
    total_size: int
    folder: Optional[str] = None
    part_size_bytes: Optional[int] = None


@dataclass(frozen=True)
class CompletionPart:
    part_number: int
    etag: str


@dataclass(frozen=True)
class CompleteDirectUploadCommand:
    video_id: str
    parts: List[CompletionPart]
