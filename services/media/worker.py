"""Background janitor: rq jobs that reclaim abandoned multipart uploads."""

from __future__ import annotations

import asyncio
import logging
import threading
from datetime import timedelta
from typing import Optional

from services.media.application.sweep_stale_uploads import SweepStaleUploadsUseCase
from services.media.config import MediaConfig, load_config
from services.media.infrastructure.db import create_session_factory
from services.media.infrastructure.queue import (
    create_queue as build_queue,
    create_worker as build_worker,
)
from services.media.infrastructure.s3_storage import create_object_store
from services.media.infrastructure.sessions import SqlAlchemyUploadSessionRepository

LOGGER = logging.getLogger(__name__)

_CONFIG: MediaConfig | None = None
_JANITOR: SweepStaleUploadsUseCase | None = None


def get_config() -> MediaConfig:
    global _CONFIG
    if _CONFIG is None:
        _CONFIG = load_config()
    return _CONFIG


def get_janitor() -> SweepStaleUploadsUseCase:
    global _JANITOR
    if _JANITOR is None:
        cfg = get_config()
        _JANITOR = SweepStaleUploadsUseCase(
            object_store=create_object_store(cfg),
            repository=SqlAlchemyUploadSessionRepository(
                session_factory=create_session_factory(cfg.sqlalchemy_url)
            ),
            max_age=timedelta(hours=cfg.stale_session_age_hours),
        )
    return _JANITOR


def sweep_stale_uploads() -> int:
    reclaimed = asyncio.run(get_janitor().execute())
    LOGGER.info("Janitor sweep finished: %s reclaimed", reclaimed)
    return reclaimed


def enqueue_sweep():
    queue = build_queue(get_config())
    job = queue.enqueue(sweep_stale_uploads)
    LOGGER.info("Enqueued sweep job id=%s", getattr(job, "id", "unknown"))
    return job


def schedule_sweeps(interval_seconds: float, stop_event: threading.Event) -> None:
    """Enqueue one sweep immediately, then one per interval until stopped."""
    while not stop_event.is_set():
        try:
            enqueue_sweep()
        except Exception:
            LOGGER.exception("Failed to enqueue janitor sweep")
        stop_event.wait(interval_seconds)


def run_worker(queue_name: Optional[str] = None) -> None:
    cfg = get_config()
    worker = build_worker(cfg, queue_name=queue_name)
    LOGGER.info("Starting worker for queue: %s", queue_name or cfg.janitor_queue_name)
    worker.work()


def run_worker_service(
    queue_name: Optional[str] = None,
    enable_scheduler: bool = True,
) -> None:
    stop_event = threading.Event()
    cfg = get_config()

    scheduler_thread = None
    if enable_scheduler:
        scheduler_thread = threading.Thread(
            target=schedule_sweeps,
            args=(cfg.janitor_interval_seconds, stop_event),
            daemon=True,
        )
        scheduler_thread.start()
        LOGGER.info(
            "Started sweep scheduler (every %ss)", cfg.janitor_interval_seconds
        )

    try:
        run_worker(queue_name=queue_name)
    except KeyboardInterrupt:
        LOGGER.info("Shutting down worker...")
    finally:
        stop_event.set()
        if scheduler_thread and scheduler_thread.is_alive():
            scheduler_thread.join(timeout=2)
