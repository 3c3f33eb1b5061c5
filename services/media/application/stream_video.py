from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, Iterator, Optional

from services.media.application.interfaces import ObjectStore, UploadSessionRepository
from services.media.domain.errors import InvalidState, MediaError, NotFound
from services.media.domain.range import (
    RangeRequest,
    parse_range_header,
    plan_chunk_reads,
)
from services.media.domain.upload import UploadSession

LOGGER = logging.getLogger(__name__)

CACHE_CONTROL = "public, max-age=3600"


@dataclass(frozen=True)
class VideoStream:
    status_code: int
    headers: Dict[str, str]
    media_type: str
    body: Iterator[bytes]


def _capped(chunks: Iterable[bytes], limit: int) -> Iterator[bytes]:
    """Never yield more than ``limit`` bytes in total."""
    remaining = limit
    for chunk in chunks:
        if remaining <= 0:
            break
        if len(chunk) > remaining:
            chunk = chunk[:remaining]
        remaining -= len(chunk)
        yield chunk


class StreamVideoUseCase:
    """Resolves headers up front and returns a lazy body.

    Once headers are out a failing read cannot change the status line, so
    read errors inside the body are logged and that segment is skipped.
    """

    def __init__(
        self,
        *,
        object_store: ObjectStore,
        repository: UploadSessionRepository,
        max_range_span: int = 2 * 1024 * 1024,
        read_chunk_size: int = 64 * 1024,
    ) -> None:
        self._store = object_store
        self._repository = repository
        self._max_range_span = max_range_span
        self._read_chunk_size = read_chunk_size

    async def execute(self, video_id: str, range_header: Optional[str]) -> VideoStream:
        session = await asyncio.to_thread(self._repository.get, video_id)
        if session is None:
            raise NotFound(f"Video {video_id} not found")
        if not session.is_complete:
            raise InvalidState(f"Video {video_id} has not finished uploading")

        if session.is_chunked:
            return self._respond(
                total_size=session.total_size,
                media_type=session.mime_type,
                range_header=range_header,
                full_body=lambda: self._chunked_full(session),
                range_body=lambda request: self._chunked_range(session, request),
            )
        return self._respond(
            total_size=session.total_size,
            media_type=session.mime_type,
            range_header=range_header,
            full_body=lambda: self._object_full(session.object_key),
            range_body=lambda request: self._object_range(session.object_key, request),
        )

    async def execute_direct(
        self, object_key: str, range_header: Optional[str]
    ) -> VideoStream:
        info = await asyncio.to_thread(self._store.head_object, object_key)
        return self._respond(
            total_size=info.size,
            media_type=info.content_type,
            range_header=range_header,
            full_body=lambda: self._object_full(object_key),
            range_body=lambda request: self._object_range(object_key, request),
        )

    def _respond(
        self,
        *,
        total_size: int,
        media_type: str,
        range_header: Optional[str],
        full_body: Callable[[], Iterator[bytes]],
        range_body: Callable[[RangeRequest], Iterator[bytes]],
    ) -> VideoStream:
        media_type = media_type or "application/octet-stream"
        if not range_header:
            LOGGER.debug("Serving full object (%s bytes)", total_size)
            return VideoStream(
                status_code=200,
                headers={
                    "Content-Length": str(total_size),
                    "Accept-Ranges": "bytes",
                    "Cache-Control": CACHE_CONTROL,
                },
                media_type=media_type,
                body=_capped(full_body(), total_size),
            )

        request = parse_range_header(range_header, total_size, self._max_range_span)
        LOGGER.debug("Serving range %s", request.content_range)
        return VideoStream(
            status_code=206,
            headers={
                "Content-Range": request.content_range,
                "Accept-Ranges": "bytes",
                "Content-Length": str(request.content_length),
                "Cache-Control": CACHE_CONTROL,
            },
            media_type=media_type,
            body=_capped(range_body(request), request.content_length),
        )

    def _object_full(self, object_key: str) -> Iterator[bytes]:
        try:
            yield from self._store.iter_object(object_key, self._read_chunk_size)
        except MediaError as exc:
            LOGGER.error("Read of %s failed mid-stream: %s", object_key, exc)

    def _object_range(self, object_key: str, request: RangeRequest) -> Iterator[bytes]:
        try:
            yield self._store.get_object(object_key, request.http_range)
        except MediaError as exc:
            LOGGER.error(
                "Ranged read %s of %s failed: %s", request.http_range, object_key, exc
            )

    def _chunked_full(self, session: UploadSession) -> Iterator[bytes]:
        for index, chunk_key in enumerate(session.chunk_keys):
            try:
                yield from self._store.iter_object(chunk_key, self._read_chunk_size)
            except MediaError as exc:
                LOGGER.error(
                    "Chunk %s (%s) of %s failed: %s",
                    index,
                    chunk_key,
                    session.video_id,
                    exc,
                )

    def _chunked_range(
        self, session: UploadSession, request: RangeRequest
    ) -> Iterator[bytes]:
        reads = plan_chunk_reads(request, session.chunk_size, session.chunk_keys)
        for read in reads:
            try:
                yield self._store.get_object(
                    read.object_key, f"bytes={read.local_start}-{read.local_end}"
                )
            except MediaError as exc:
                LOGGER.error(
                    "Chunk %s (%s) of %s failed: %s",
                    read.index,
                    read.object_key,
                    session.video_id,
                    exc,
                )
