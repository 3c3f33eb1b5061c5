from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import List, Optional

from services.media.application.interfaces import UploadSessionRepository
from services.media.domain.errors import NotFound, ValidationError
from services.media.domain.upload import UploadSession

_STATUS_FILTERS = {"complete": True, "incomplete": False}


@dataclass(frozen=True)
class UploadPage:
    items: List[UploadSession]
    total: int
    page: int
    limit: int

    @property
    def pages(self) -> int:
        return -(-self.total // self.limit) if self.limit else 0


class GetUploadUseCase:
    def __init__(self, *, repository: UploadSessionRepository) -> None:
        self._repository = repository

    async def execute(self, video_id: str) -> UploadSession:
        session = await asyncio.to_thread(self._repository.get, video_id)
        if session is None:
            raise NotFound(f"Video {video_id} not found")
        return session


class ListUploadsUseCase:
    def __init__(
        self, *, repository: UploadSessionRepository, max_limit: int = 100
    ) -> None:
        self._repository = repository
        self._max_limit = max_limit

    async def execute(
        self, *, status: Optional[str] = None, page: int = 1, limit: int = 10
    ) -> UploadPage:
        if status and status not in _STATUS_FILTERS:
            raise ValidationError(
                f"Unknown status {status!r}; expected complete or incomplete"
            )
        if page < 1 or limit < 1:
            raise ValidationError("page and limit must be positive")
        limit = min(limit, self._max_limit)
        items, total = await asyncio.to_thread(
            self._repository.list,
            is_complete=_STATUS_FILTERS.get(status) if status else None,
            limit=limit,
            offset=(page - 1) * limit,
        )
        return UploadPage(items=items, total=total, page=page, limit=limit)
