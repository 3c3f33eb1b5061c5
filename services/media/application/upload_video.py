from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Callable, Iterable

from services.media.application.dto import UploadVideoCommand
from services.media.application.duration_probe import probe_window
from services.media.application.interfaces import DurationExtractor, ObjectStore
from services.media.application.multipart_upload import MultipartUploadCoordinator
from services.media.application.object_keys import build_object_key
from services.media.domain.errors import MediaError, UploadFailed, ValidationError
from services.media.domain.upload import UploadResult

LOGGER = logging.getLogger(__name__)

VIDEO_EXTENSIONS = {
    ".mp4",
    ".avi",
    ".mov",
    ".wmv",
    ".flv",
    ".webm",
    ".mkv",
    ".m4v",
    ".3gp",
}


def is_video_file(
    content_type: str, filename: str, allowed_mime_types: Iterable[str]
) -> bool:
    base_type = (content_type or "").split(";", 1)[0].strip().lower()
    if base_type in {mime.lower() for mime in allowed_mime_types}:
        return True
    return Path(filename or "").suffix.lower() in VIDEO_EXTENSIONS


def validate_video(
    *,
    filename: str,
    content_type: str,
    size: int,
    max_size: int,
    allowed_mime_types: Iterable[str],
) -> None:
    if not filename or size <= 0:
        raise ValidationError("No video file provided")
    if not is_video_file(content_type, filename, allowed_mime_types):
        raise ValidationError(f"File type {content_type} is not allowed")
    if size > max_size:
        raise ValidationError(
            f"File size exceeds limit of {max_size // (1024 * 1024)}MB"
        )


class UploadVideoUseCase:
    """Routes a validated upload to a single put or the multipart coordinator."""

    def __init__(
        self,
        *,
        coordinator: MultipartUploadCoordinator,
        object_store: ObjectStore,
        duration_extractor: DurationExtractor,
        public_url: Callable[[str], str],
        chunk_threshold: int,
        max_size: int,
        allowed_mime_types: Iterable[str],
        default_folder: str = "videos",
        duration_probe_bytes: int = 32 * 1024 * 1024,
    ) -> None:
        self._coordinator = coordinator
        self._store = object_store
        self._extractor = duration_extractor
        self._public_url = public_url
        self._chunk_threshold = chunk_threshold
        self._max_size = max_size
        self._allowed_mime_types = tuple(allowed_mime_types)
        self._default_folder = default_folder
        self._probe_bytes = duration_probe_bytes

    async def execute(self, command: UploadVideoCommand) -> UploadResult:
        validate_video(
            filename=command.filename,
            content_type=command.content_type,
            size=command.size,
            max_size=self._max_size,
            allowed_mime_types=self._allowed_mime_types,
        )
        if command.size > self._chunk_threshold:
            return await self._coordinator.upload(command)
        return await self._put_single(command)

    async def _put_single(self, command: UploadVideoCommand) -> UploadResult:
        object_key = build_object_key(
            command.filename, command.folder or self._default_folder
        )
        try:
            await asyncio.to_thread(
                self._store.put_object, object_key, command.data, command.content_type
            )
        except MediaError as exc:
            raise UploadFailed(f"Upload of {command.filename} failed: {exc}") from exc
        LOGGER.info("Stored %s with a single put (%s bytes)", object_key, command.size)

        try:
            duration = self._extractor.extract(
                probe_window(command.data, self._probe_bytes),
                mime_type=command.content_type,
                filename=command.filename,
                total_size=command.size,
            ).seconds
        except Exception:
            LOGGER.warning("Duration extraction failed for %s", object_key, exc_info=True)
            duration = 0

        return UploadResult(
            public_url=self._public_url(object_key),
            object_key=object_key,
            duration=duration,
        )
