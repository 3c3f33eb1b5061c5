from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Awaitable, Callable, List

from services.media.application.dto import UploadVideoCommand
from services.media.application.duration_probe import probe_window
from services.media.application.interfaces import (
    DurationExtractor,
    IdProvider,
    ObjectStore,
    UploadSessionRepository,
)
from services.media.application.object_keys import build_object_key
from services.media.domain.errors import (
    MediaError,
    NotFound,
    TransientStoreError,
    UploadFailed,
)
from services.media.domain.upload import (
    PartResult,
    PartSlice,
    UploadResult,
    UploadSession,
    ordered_manifest,
    plan_parts,
)

LOGGER = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MultipartUploadCoordinator:
    """Drives create -> upload parts -> complete, aborting on failure.

    The session row is written right after the store hands out an upload id
    so the janitor can always find and abort an orphaned transaction. Parts
    go out in batches of ``concurrency_limit``; a batch finishes before the
    next one starts.
    """

    def __init__(
        self,
        *,
        object_store: ObjectStore,
        repository: UploadSessionRepository,
        duration_extractor: DurationExtractor,
        id_provider: IdProvider,
        public_url: Callable[[str], str],
        chunk_size: int,
        concurrency_limit: int = 3,
        max_retries: int = 3,
        retry_base_delay_ms: int = 1000,
        duration_probe_bytes: int = 32 * 1024 * 1024,
        default_folder: str = "videos",
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        self._store = object_store
        self._repository = repository
        self._extractor = duration_extractor
        self._id_provider = id_provider
        self._public_url = public_url
        self._chunk_size = chunk_size
        self._concurrency_limit = max(concurrency_limit, 1)
        self._max_attempts = max(max_retries, 1)
        self._retry_base_delay_ms = retry_base_delay_ms
        self._probe_bytes = duration_probe_bytes
        self._default_folder = default_folder
        self._sleep = sleep
        self._clock = clock

    async def upload(self, command: UploadVideoCommand) -> UploadResult:
        folder = command.folder or self._default_folder
        object_key = build_object_key(command.filename, folder)
        try:
            upload_id = await asyncio.to_thread(
                self._store.create_multipart_upload, object_key, command.content_type
            )
        except MediaError as exc:
            raise UploadFailed(
                f"Could not start multipart upload for {command.filename}: {exc}"
            ) from exc
        LOGGER.info("Created multipart upload %s for %s", upload_id, object_key)

        session = UploadSession(
            video_id=self._id_provider.generate(),
            object_key=object_key,
            upload_id=upload_id,
            original_filename=command.filename,
            total_size=command.size,
            mime_type=command.content_type,
            destination_folder=folder,
            created_at=self._clock(),
        )

        try:
            await asyncio.to_thread(self._repository.create, session)
            parts = await self._upload_parts(session, command.data)
            await asyncio.to_thread(
                self._store.complete_multipart_upload,
                object_key=object_key,
                upload_id=upload_id,
                parts=ordered_manifest(parts),
            )
        except Exception as exc:
            await self._abort(session)
            if isinstance(exc, UploadFailed):
                raise
            raise UploadFailed(
                f"Multipart upload of {command.filename} failed: {exc}"
            ) from exc

        public_url = self._public_url(object_key)
        try:
            await asyncio.to_thread(
                self._repository.mark_complete,
                session.video_id,
                final_object_url=public_url,
                completed_at=self._clock(),
            )
        except Exception as exc:
            raise UploadFailed(
                f"Upload of {object_key} completed but could not be recorded: {exc}"
            ) from exc
        LOGGER.info(
            "Multipart upload %s completed with %s parts",
            session.video_id,
            len(parts),
        )

        duration = await self._record_duration(session, command)
        return UploadResult(
            public_url=public_url,
            object_key=object_key,
            duration=duration,
            video_id=session.video_id,
        )

    async def _upload_parts(
        self, session: UploadSession, data: bytes
    ) -> List[PartResult]:
        slices = plan_parts(data, self._chunk_size)
        batch_count = -(-len(slices) // self._concurrency_limit)
        LOGGER.info(
            "Uploading %s parts for %s in %s batches",
            len(slices),
            session.object_key,
            batch_count,
        )

        results: List[PartResult] = []
        for batch_index, start in enumerate(
            range(0, len(slices), self._concurrency_limit), start=1
        ):
            batch = slices[start : start + self._concurrency_limit]
            outcomes = await asyncio.gather(
                *(self._upload_part(session, part) for part in batch),
                return_exceptions=True,
            )
            for outcome in outcomes:
                if isinstance(outcome, BaseException):
                    raise outcome
            results.extend(outcomes)
            LOGGER.info("Uploaded batch %s/%s", batch_index, batch_count)
        return results

    async def _upload_part(self, session: UploadSession, part: PartSlice) -> PartResult:
        for attempt in range(1, self._max_attempts + 1):
            try:
                etag = await asyncio.to_thread(
                    self._store.upload_part,
                    object_key=session.object_key,
                    upload_id=session.upload_id,
                    part_number=part.part_number,
                    body=part.read(),
                )
                return PartResult(part_number=part.part_number, etag=etag)
            except TransientStoreError as exc:
                LOGGER.warning(
                    "Part %s upload failed (attempt %s/%s): %s",
                    part.part_number,
                    attempt,
                    self._max_attempts,
                    exc,
                )
                if attempt >= self._max_attempts:
                    raise UploadFailed(
                        f"Part {part.part_number} failed after "
                        f"{self._max_attempts} attempts"
                    ) from exc
                delay_ms = self._retry_base_delay_ms * 2 ** (attempt - 1)
                await self._sleep(delay_ms / 1000)
        raise UploadFailed(f"Part {part.part_number} was never attempted")

    async def _abort(self, session: UploadSession) -> None:
        try:
            await asyncio.to_thread(
                self._store.abort_multipart_upload,
                object_key=session.object_key,
                upload_id=session.upload_id,
            )
            LOGGER.info("Aborted multipart upload %s", session.upload_id)
        except NotFound:
            LOGGER.info("Multipart upload %s was already gone", session.upload_id)
        except MediaError as exc:
            LOGGER.error(
                "Failed to abort multipart upload %s for %s: %s",
                session.upload_id,
                session.object_key,
                exc,
            )

    async def _record_duration(
        self, session: UploadSession, command: UploadVideoCommand
    ) -> int:
        try:
            result = self._extractor.extract(
                probe_window(command.data, self._probe_bytes),
                mime_type=command.content_type,
                filename=command.filename,
                total_size=command.size,
            )
            await asyncio.to_thread(
                self._repository.set_duration, session.video_id, result.seconds
            )
        except Exception:
            LOGGER.warning(
                "Duration extraction failed for %s", session.video_id, exc_info=True
            )
            return 0
        return result.seconds
