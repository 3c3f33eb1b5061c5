from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Header
from fastapi.responses import StreamingResponse
from pydantic import BaseModel

from services.media.api.routes import SessionData
from services.media.application.stream_video import StreamVideoUseCase, VideoStream
from services.media.application.upload_queries import GetUploadUseCase


class VideoInfoResponse(BaseModel):
    success: bool = True
    data: SessionData


def _to_response(stream: VideoStream) -> StreamingResponse:
    return StreamingResponse(
        stream.body,
        status_code=stream.status_code,
        headers=stream.headers,
        media_type=stream.media_type,
    )


def create_video_router(
    stream_use_case: StreamVideoUseCase,
    get_upload_use_case: GetUploadUseCase,
) -> APIRouter:
    router = APIRouter(prefix="/video", tags=["video"])

    # Declared first so /video/direct/... never resolves as a video id.
    @router.get("/direct/{object_key:path}")
    async def stream_object_endpoint(
        object_key: str, range_header: Optional[str] = Header(None, alias="Range")
    ):
        stream = await stream_use_case.execute_direct(object_key, range_header)
        return _to_response(stream)

    @router.get("/{video_id}/info", response_model=VideoInfoResponse)
    async def video_info_endpoint(video_id: str):
        session = await get_upload_use_case.execute(video_id)
        return VideoInfoResponse(data=SessionData.from_domain(session))

    @router.get("/{video_id}")
    async def stream_video_endpoint(
        video_id: str, range_header: Optional[str] = Header(None, alias="Range")
    ):
        stream = await stream_use_case.execute(video_id, range_header)
        return _to_response(stream)

    return router
