from __future__ import annotations

from typing import List, Literal, Optional

from fastapi import APIRouter, File, Form, Query, UploadFile
from pydantic import BaseModel, Field

from services.media.application.cancel_upload import CancelUploadUseCase
from services.media.application.direct_upload import (
    CompleteDirectUploadUseCase,
    CreateDirectUploadUseCase,
)
from services.media.application.dto import (
    CompleteDirectUploadCommand,
    CompletionPart,
    CreateDirectUploadCommand,
    UploadVideoCommand,
)
from services.media.application.sweep_stale_uploads import SweepStaleUploadsUseCase
from services.media.application.upload_queries import ListUploadsUseCase
from services.media.application.upload_video import UploadVideoUseCase
from services.media.domain.upload import DirectUpload, UploadResult, UploadSession


def _isoformat(value) -> str | None:
    if value is None:
        return None
    return value.isoformat().replace("+00:00", "Z")


class UploadResultData(BaseModel):
    publicUrl: str
    objectKey: str
    duration: int
    videoId: str | None = None

    @classmethod
    def from_domain(cls, result: UploadResult) -> "UploadResultData":
        return cls(
            publicUrl=result.public_url,
            objectKey=result.object_key,
            duration=result.duration,
            videoId=result.video_id,
        )


class UploadResponse(BaseModel):
    success: bool = True
    data: UploadResultData
    message: str


class SessionData(BaseModel):
    videoId: str
    objectKey: str
    originalFilename: str
    totalSize: int
    mimeType: str
    folder: str
    duration: int
    isComplete: bool
    publicUrl: str | None = None
    createdAt: str
    completedAt: str | None = None

    @classmethod
    def from_domain(cls, session: UploadSession) -> "SessionData":
        return cls(
            videoId=session.video_id,
            objectKey=session.object_key,
            originalFilename=session.original_filename,
            totalSize=session.total_size,
            mimeType=session.mime_type,
            folder=session.destination_folder,
            duration=session.duration,
            isComplete=session.is_complete,
            publicUrl=session.final_object_url,
            createdAt=_isoformat(session.created_at),
            completedAt=_isoformat(session.completed_at),
        )


class UploadListData(BaseModel):
    items: List[SessionData]
    total: int
    page: int
    limit: int
    pages: int


class UploadListResponse(BaseModel):
    success: bool = True
    data: UploadListData


class CancelData(BaseModel):
    videoId: str
    cancelled: bool


class CancelResponse(BaseModel):
    success: bool = True
    data: CancelData
    message: str


class CleanupData(BaseModel):
    reclaimed: int


class CleanupResponse(BaseModel):
    success: bool = True
    data: CleanupData
    message: str


class DirectUploadRequest(BaseModel):
    filename: str
    contentType: str
    totalSize: int = Field(gt=0)
    folder: Optional[str] = None
    partSizeBytes: Optional[int] = None


class PresignedPartData(BaseModel):
    partNumber: int
    url: str


class DirectUploadData(BaseModel):
    videoId: str
    uploadId: str
    objectKey: str
    parts: List[PresignedPartData]
    expiresAt: str

    @classmethod
    def from_domain(cls, upload: DirectUpload) -> "DirectUploadData":
        return cls(
            videoId=upload.video_id,
            uploadId=upload.upload_id,
            objectKey=upload.object_key,
            parts=[
                PresignedPartData(partNumber=part.part_number, url=part.url)
                for part in upload.parts
            ],
            expiresAt=_isoformat(upload.expires_at),
        )


class DirectUploadResponse(BaseModel):
    success: bool = True
    data: DirectUploadData
    message: str


class CompletedPartRequest(BaseModel):
    partNumber: int
    etag: str


class CompleteDirectUploadRequest(BaseModel):
    parts: List[CompletedPartRequest]


def create_upload_router(
    upload_use_case: UploadVideoUseCase,
    cancel_use_case: CancelUploadUseCase,
    sweep_use_case: SweepStaleUploadsUseCase,
    list_use_case: ListUploadsUseCase,
    create_direct_use_case: CreateDirectUploadUseCase,
    complete_direct_use_case: CompleteDirectUploadUseCase,
) -> APIRouter:
    router = APIRouter(prefix="/upload", tags=["upload"])

    @router.post("", response_model=UploadResponse)
    async def upload_video_endpoint(
        file: Optional[UploadFile] = File(None),
        folder: Optional[str] = Form(None),
    ):
        if file is None:
            data, filename, content_type = b"", "", ""
        else:
            data = await file.read()
            filename = file.filename or ""
            content_type = file.content_type or ""
        command = UploadVideoCommand(
            filename=filename, content_type=content_type, data=data, folder=folder
        )
        result = await upload_use_case.execute(command)
        return UploadResponse(
            data=UploadResultData.from_domain(result),
            message="Video uploaded successfully",
        )

    @router.get("", response_model=UploadListResponse)
    async def list_uploads_endpoint(
        status: Optional[Literal["complete", "incomplete"]] = Query(None),
        page: int = Query(1, ge=1),
        limit: int = Query(10, ge=1, le=100),
    ):
        result = await list_use_case.execute(status=status, page=page, limit=limit)
        return UploadListResponse(
            data=UploadListData(
                items=[SessionData.from_domain(item) for item in result.items],
                total=result.total,
                page=result.page,
                limit=result.limit,
                pages=result.pages,
            )
        )

    @router.post("/cleanup", response_model=CleanupResponse)
    async def cleanup_endpoint():
        reclaimed = await sweep_use_case.execute()
        return CleanupResponse(
            data=CleanupData(reclaimed=reclaimed),
            message=f"Reclaimed {reclaimed} stale uploads",
        )

    @router.post("/direct", response_model=DirectUploadResponse, status_code=201)
    async def create_direct_upload_endpoint(payload: DirectUploadRequest):
        command = CreateDirectUploadCommand(
            filename=payload.filename,
            content_type=payload.contentType,
            total_size=payload.totalSize,
            folder=payload.folder,
            part_size_bytes=payload.partSizeBytes,
        )
        upload = await create_direct_use_case.execute(command)
        return DirectUploadResponse(
            data=DirectUploadData.from_domain(upload),
            message="Direct upload created",
        )

    @router.post("/direct/{video_id}/complete", response_model=UploadResponse)
    async def complete_direct_upload_endpoint(
        video_id: str, payload: CompleteDirectUploadRequest
    ):
        command = CompleteDirectUploadCommand(
            video_id=video_id,
            parts=[
                CompletionPart(part_number=part.partNumber, etag=part.etag)
                for part in payload.parts
            ],
        )
        result = await complete_direct_use_case.execute(command)
        return UploadResponse(
            data=UploadResultData.from_domain(result),
            message="Video uploaded successfully",
        )

    @router.delete("/{video_id}", response_model=CancelResponse)
    async def cancel_upload_endpoint(video_id: str):
        cancelled = await cancel_use_case.execute(video_id)
        return CancelResponse(
            data=CancelData(videoId=video_id, cancelled=cancelled),
            message="Upload cancelled" if cancelled else "Upload already cancelled",
        )

    return router
