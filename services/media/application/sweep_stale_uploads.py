from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Callable

from services.media.application.interfaces import ObjectStore, UploadSessionRepository
from services.media.domain.errors import MediaError, NotFound
from services.media.domain.upload import UploadSession

LOGGER = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SweepStaleUploadsUseCase:
    """Aborts and forgets incomplete sessions older than ``max_age``.

    A session whose abort fails keeps its record so the next sweep can try
    again; it is the only place the orphaned upload id is remembered.
    """

    def __init__(
        self,
        *,
        object_store: ObjectStore,
        repository: UploadSessionRepository,
        max_age: timedelta = timedelta(hours=24),
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._store = object_store
        self._repository = repository
        self._max_age = max_age
        self._clock = clock

    async def execute(self) -> int:
        cutoff = self._clock() - self._max_age
        stale = await asyncio.to_thread(self._repository.list_stale, cutoff)
        if not stale:
            LOGGER.info("No stale uploads older than %s", cutoff.isoformat())
            return 0

        reclaimed = 0
        for session in stale:
            if await self._reclaim(session):
                reclaimed += 1
        LOGGER.info("Reclaimed %s of %s stale uploads", reclaimed, len(stale))
        return reclaimed

    async def _reclaim(self, session: UploadSession) -> bool:
        try:
            await asyncio.to_thread(
                self._store.abort_multipart_upload,
                object_key=session.object_key,
                upload_id=session.upload_id,
            )
        except NotFound:
            LOGGER.info("Multipart upload %s was already gone", session.upload_id)
        except MediaError as exc:
            LOGGER.warning(
                "Abort failed for stale upload %s, keeping record: %s",
                session.video_id,
                exc,
            )
            return False

        try:
            await asyncio.to_thread(self._repository.delete, session.video_id)
        except Exception:
            LOGGER.exception("Could not delete session record %s", session.video_id)
            return False
        LOGGER.info("Reclaimed stale upload %s (%s)", session.video_id, session.object_key)
        return True
