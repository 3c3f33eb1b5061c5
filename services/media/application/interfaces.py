from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Iterator, Protocol, Sequence

if TYPE_CHECKING:
    from services.media.domain.duration import DurationResult
    from services.media.domain.upload import ObjectInfo, PartResult, UploadSession


class IdProvider(Protocol):
    def generate(self) -> str: ...


class ObjectStore(Protocol):
    def create_multipart_upload(self, object_key: str, content_type: str) -> str: ...

    def upload_part(
        self, *, object_key: str, upload_id: str, part_number: int, body: bytes
    ) -> str: ...

    def complete_multipart_upload(
        self, *, object_key: str, upload_id: str, parts: Sequence["PartResult"]
    ) -> str | None: ...

    def abort_multipart_upload(self, *, object_key: str, upload_id: str) -> None: ...

    def generate_part_url(
        self,
        *,
        object_key: str,
        upload_id: str,
        part_number: int,
        expires_in_seconds: int,
    ) -> str: ...

    def put_object(self, object_key: str, body: bytes, content_type: str) -> None: ...

    def get_object(self, object_key: str, byte_range: str | None = None) -> bytes: ...

    def iter_object(self, object_key: str, chunk_size: int) -> Iterator[bytes]: ...

    def head_object(self, object_key: str) -> "ObjectInfo": ...


class UploadSessionRepository(Protocol):
    def create(self, session: "UploadSession") -> "UploadSession": ...

    def get(self, video_id: str) -> "UploadSession" | None: ...

    def mark_complete(
        self, video_id: str, *, final_object_url: str, completed_at: datetime
    ) -> "UploadSession": ...

    def set_duration(self, video_id: str, duration: int) -> "UploadSession": ...

    def record_chunks(
        self, video_id: str, *, chunk_size: int, chunk_keys: Sequence[str]
    ) -> "UploadSession": ...

    def delete(self, video_id: str) -> bool: ...

    def list_stale(self, older_than: datetime) -> list["UploadSession"]: ...

    def list(
        self, *, is_complete: bool | None = None, limit: int = 10, offset: int = 0
    ) -> tuple[list["UploadSession"], int]: ...


class DurationExtractor(Protocol):
    def extract(
        self, buffer: bytes, *, mime_type: str, filename: str, total_size: int
    ) -> "DurationResult": ...
