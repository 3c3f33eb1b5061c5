from __future__ import annotations

from datetime import timedelta

from fastapi import FastAPI

from services.media.api.errors import register_exception_handlers
from services.media.api.routes import create_upload_router
from services.media.api.video_routes import create_video_router
from services.media.application.cancel_upload import CancelUploadUseCase
from services.media.application.direct_upload import (
    CompleteDirectUploadUseCase,
    CreateDirectUploadUseCase,
)
from services.media.application.multipart_upload import MultipartUploadCoordinator
from services.media.application.stream_video import StreamVideoUseCase
from services.media.application.sweep_stale_uploads import SweepStaleUploadsUseCase
from services.media.application.upload_queries import (
    GetUploadUseCase,
    ListUploadsUseCase,
)
from services.media.application.upload_video import UploadVideoUseCase
from services.media.config import MediaConfig, load_config
from services.media.infrastructure.db import create_session_factory
from services.media.infrastructure.ids import TokenIdProvider
from services.media.infrastructure.metadata import create_duration_extractor
from services.media.infrastructure.s3_storage import create_object_store
from services.media.infrastructure.sessions import SqlAlchemyUploadSessionRepository


def build_app(config: MediaConfig | None = None) -> FastAPI:
    """Wire the media service; serve with ``uvicorn --factory services.media.main:build_app``."""
    cfg = config or load_config()
    app = FastAPI(title="media")
    register_exception_handlers(app)

    @app.get("/ping")
    async def ping():
        return {"message": "pong"}

    object_store = create_object_store(cfg)
    repository = SqlAlchemyUploadSessionRepository(
        session_factory=create_session_factory(cfg.sqlalchemy_url)
    )
    duration_extractor = create_duration_extractor(cfg)
    video_id_provider = TokenIdProvider(length=32)

    coordinator = MultipartUploadCoordinator(
        object_store=object_store,
        repository=repository,
        duration_extractor=duration_extractor,
        id_provider=video_id_provider,
        public_url=cfg.public_url,
        chunk_size=cfg.chunk_size_bytes,
        concurrency_limit=cfg.concurrency_limit,
        max_retries=cfg.max_retries,
        retry_base_delay_ms=cfg.retry_base_delay_ms,
        duration_probe_bytes=cfg.duration_probe_bytes,
        default_folder=cfg.default_folder,
    )
    upload_use_case = UploadVideoUseCase(
        coordinator=coordinator,
        object_store=object_store,
        duration_extractor=duration_extractor,
        public_url=cfg.public_url,
        chunk_threshold=cfg.chunk_threshold_bytes,
        max_size=cfg.max_video_size_bytes,
        allowed_mime_types=cfg.allowed_mime_types,
        default_folder=cfg.default_folder,
        duration_probe_bytes=cfg.duration_probe_bytes,
    )
    cancel_use_case = CancelUploadUseCase(
        object_store=object_store, repository=repository
    )
    sweep_use_case = SweepStaleUploadsUseCase(
        object_store=object_store,
        repository=repository,
        max_age=timedelta(hours=cfg.stale_session_age_hours),
    )
    list_use_case = ListUploadsUseCase(repository=repository)
    create_direct_use_case = CreateDirectUploadUseCase(
        object_store=object_store,
        repository=repository,
        id_provider=video_id_provider,
        default_part_size=cfg.chunk_size_bytes,
        url_ttl=timedelta(hours=cfg.presigned_url_ttl_hours),
        max_size=cfg.max_video_size_bytes,
        allowed_mime_types=cfg.allowed_mime_types,
        default_folder=cfg.default_folder,
    )
    complete_direct_use_case = CompleteDirectUploadUseCase(
        object_store=object_store,
        repository=repository,
        duration_extractor=duration_extractor,
        public_url=cfg.public_url,
        duration_probe_bytes=cfg.duration_probe_bytes,
    )
    stream_use_case = StreamVideoUseCase(
        object_store=object_store,
        repository=repository,
        max_range_span=cfg.max_range_span_bytes,
    )
    get_upload_use_case = GetUploadUseCase(repository=repository)

    app.include_router(
        create_upload_router(
            upload_use_case,
            cancel_use_case,
            sweep_use_case,
            list_use_case,
            create_direct_use_case,
            complete_direct_use_case,
        )
    )
    app.include_router(create_video_router(stream_use_case, get_upload_use_case))

    return app
