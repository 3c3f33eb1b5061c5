from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Iterable, List

from services.media.application.dto import (
    CompleteDirectUploadCommand,
    CreateDirectUploadCommand,
)
from services.media.application.duration_probe import fetch_probe_window
from services.media.application.interfaces import (
    DurationExtractor,
    IdProvider,
    ObjectStore,
    UploadSessionRepository,
)
from services.media.application.object_keys import build_object_key
from services.media.application.upload_video import validate_video
from services.media.domain.errors import (
    InvalidState,
    MediaError,
    NotFound,
    UploadFailed,
    ValidationError,
)
from services.media.domain.upload import (
    DirectUpload,
    PartResult,
    PresignedPart,
    UploadResult,
    UploadSession,
    ordered_manifest,
    part_count,
)

LOGGER = logging.getLogger(__name__)

MIN_PART_SIZE = 5 * 1024 * 1024
MAX_PARTS = 10_000


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CreateDirectUploadUseCase:
    """Opens a multipart upload the client fills through presigned part URLs."""

    def __init__(
        self,
        *,
        object_store: ObjectStore,
        repository: UploadSessionRepository,
        id_provider: IdProvider,
        default_part_size: int,
        url_ttl: timedelta,
        max_size: int,
        allowed_mime_types: Iterable[str],
        default_folder: str = "videos",
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._store = object_store
        self._repository = repository
        self._id_provider = id_provider
        self._default_part_size = default_part_size
        self._url_ttl = url_ttl
        self._max_size = max_size
        self._allowed_mime_types = tuple(allowed_mime_types)
        self._default_folder = default_folder
        self._clock = clock

    async def execute(self, command: CreateDirectUploadCommand) -> DirectUpload:
        validate_video(
            filename=command.filename,
            content_type=command.content_type,
            size=command.total_size,
            max_size=self._max_size,
            allowed_mime_types=self._allowed_mime_types,
        )
        part_size = command.part_size_bytes or self._default_part_size
        if part_size < MIN_PART_SIZE:
            raise ValidationError(f"Part size must be at least {MIN_PART_SIZE} bytes")
        parts_needed = part_count(command.total_size, part_size)
        if parts_needed > MAX_PARTS:
            raise ValidationError(
                f"{parts_needed} parts exceed the limit of {MAX_PARTS}; "
                "use a larger part size"
            )

        folder = command.folder or self._default_folder
        object_key = build_object_key(command.filename, folder)
        try:
            upload_id = await asyncio.to_thread(
                self._store.create_multipart_upload, object_key, command.content_type
            )
        except MediaError as exc:
            raise UploadFailed(f"Could not start upload for {command.filename}") from exc

        now = self._clock()
        session = UploadSession(
            video_id=self._id_provider.generate(),
            object_key=object_key,
            upload_id=upload_id,
            original_filename=command.filename,
            total_size=command.total_size,
            mime_type=command.content_type,
            destination_folder=folder,
            created_at=now,
        )
        try:
            await asyncio.to_thread(self._repository.create, session)
            parts = await asyncio.to_thread(self._presign_parts, session, parts_needed)
        except Exception as exc:
            await _abort_quietly(self._store, session)
            raise UploadFailed(
                f"Could not prepare direct upload for {command.filename}: {exc}"
            ) from exc

        LOGGER.info(
            "Issued %s presigned parts for %s (%s)",
            len(parts),
            session.video_id,
            object_key,
        )
        return DirectUpload(
            video_id=session.video_id,
            upload_id=upload_id,
            object_key=object_key,
            parts=parts,
            expires_at=now + self._url_ttl,
        )

    def _presign_parts(
        self, session: UploadSession, parts_needed: int
    ) -> List[PresignedPart]:
        expires_in_seconds = max(int(self._url_ttl.total_seconds()), 60)
        return [
            PresignedPart(
                part_number=part_number,
                url=self._store.generate_part_url(
                    object_key=session.object_key,
                    upload_id=session.upload_id,
                    part_number=part_number,
                    expires_in_seconds=expires_in_seconds,
                ),
            )
            for part_number in range(1, parts_needed + 1)
        ]


class CompleteDirectUploadUseCase:
    def __init__(
        self,
        *,
        object_store: ObjectStore,
        repository: UploadSessionRepository,
        duration_extractor: DurationExtractor,
        public_url: Callable[[str], str],
        duration_probe_bytes: int = 32 * 1024 * 1024,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._store = object_store
        self._repository = repository
        self._extractor = duration_extractor
        self._public_url = public_url
        self._probe_bytes = duration_probe_bytes
        self._clock = clock

    async def execute(self, command: CompleteDirectUploadCommand) -> UploadResult:
        if not command.parts:
            raise ValidationError("At least one part is required to complete an upload")
        session = await asyncio.to_thread(self._repository.get, command.video_id)
        if session is None:
            raise NotFound(f"Upload {command.video_id} not found")
        if session.is_complete:
            raise InvalidState(f"Upload {command.video_id} is already complete")

        try:
            manifest = ordered_manifest(
                [
                    PartResult(part_number=part.part_number, etag=part.etag)
                    for part in command.parts
                ]
            )
        except ValueError as exc:
            raise ValidationError(str(exc)) from exc

        try:
            await asyncio.to_thread(
                self._store.complete_multipart_upload,
                object_key=session.object_key,
                upload_id=session.upload_id,
                parts=manifest,
            )
        except MediaError as exc:
            raise UploadFailed(
                f"Could not complete upload {session.video_id}: {exc}"
            ) from exc

        public_url = self._public_url(session.object_key)
        await asyncio.to_thread(
            self._repository.mark_complete,
            session.video_id,
            final_object_url=public_url,
            completed_at=self._clock(),
        )
        LOGGER.info("Direct upload %s completed (%s parts)", session.video_id, len(manifest))

        duration = await self._record_duration(session)
        return UploadResult(
            public_url=public_url,
            object_key=session.object_key,
            duration=duration,
            video_id=session.video_id,
        )

    async def _record_duration(self, session: UploadSession) -> int:
        try:
            info = await asyncio.to_thread(self._store.head_object, session.object_key)
            probe = await asyncio.to_thread(
                fetch_probe_window,
                self._store,
                session.object_key,
                info.size,
                self._probe_bytes,
            )
            result = self._extractor.extract(
                probe,
                mime_type=session.mime_type,
                filename=session.original_filename,
                total_size=info.size,
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


async def _abort_quietly(store: ObjectStore, session: UploadSession) -> None:
    try:
        await asyncio.to_thread(
            store.abort_multipart_upload,
            object_key=session.object_key,
            upload_id=session.upload_id,
        )
    except MediaError as exc:
        LOGGER.error("Failed to abort multipart upload %s: %s", session.upload_id, exc)
