from __future__ import annotations

import asyncio
import logging

from services.media.application.interfaces import ObjectStore, UploadSessionRepository
from services.media.domain.errors import InvalidState, NotFound

LOGGER = logging.getLogger(__name__)


class CancelUploadUseCase:
    def __init__(
        self, *, object_store: ObjectStore, repository: UploadSessionRepository
    ) -> None:
        self._store = object_store
        self._repository = repository

    async def execute(self, video_id: str) -> bool:
        """Abort the remote upload and drop the session.

        Returns ``False`` when no session exists, so repeated cancels are
        harmless. A failed abort propagates and the record is kept.
        """
        session = await asyncio.to_thread(self._repository.get, video_id)
        if session is None:
            LOGGER.info("Cancel for unknown upload %s ignored", video_id)
            return False
        if session.is_complete:
            raise InvalidState(f"Upload {video_id} is already complete")

        try:
            await asyncio.to_thread(
                self._store.abort_multipart_upload,
                object_key=session.object_key,
                upload_id=session.upload_id,
            )
        except NotFound:
            LOGGER.info("Multipart upload %s was already gone", session.upload_id)

        await asyncio.to_thread(self._repository.delete, video_id)
        LOGGER.info("Cancelled upload %s (%s)", video_id, session.object_key)
        return True
