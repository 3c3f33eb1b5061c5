from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Tuple

from dotenv import load_dotenv

MIB = 1024 * 1024

DEFAULT_ALLOWED_MIME_TYPES = (
    "video/mp4",
    "video/mpeg",
    "video/quicktime",
    "video/x-msvideo",
    "video/webm",
    "video/x-matroska",
    "video/x-flv",
    "video/x-ms-wmv",
    "application/octet-stream",
)

DEFAULT_BITRATES = {
    "video/mp4": 3_000_000,
    "video/quicktime": 3_000_000,
    "video/mov": 3_000_000,
    "video/webm": 2_000_000,
    "video/avi": 4_000_000,
    "video/x-msvideo": 4_000_000,
}


def _load_repo_env() -> None:
    """Load the nearest .env starting from this file upward."""
    current = Path(__file__).resolve()
    for candidate in [current.parent, *current.parents]:
        env_file = candidate / ".env"
        if env_file.exists():
            load_dotenv(env_file)
            return


_load_repo_env()


def _require_env(name: str) -> str:
    value = os.getenv(name)
    if value is None or value == "":
        raise ValueError(f"Environment variable {name} is required")
    return value


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"Environment variable {name} must be an integer") from exc


def _env_list(name: str, default: Tuple[str, ...]) -> Tuple[str, ...]:
    raw = os.getenv(name)
    if not raw:
        return default
    return tuple(item.strip() for item in raw.split(",") if item.strip())


def _env_bitrates(name: str) -> dict[str, int]:
    bitrates = dict(DEFAULT_BITRATES)
    raw = os.getenv(name)
    if not raw:
        return bitrates
    for item in raw.split(","):
        mime, _, value = item.partition("=")
        if not mime.strip() or not value.strip():
            raise ValueError(f"Environment variable {name} expects mime=bps pairs")
        try:
            bitrates[mime.strip().lower()] = int(value)
        except ValueError as exc:
            raise ValueError(
                f"Environment variable {name} has a non-integer bitrate for {mime}"
            ) from exc
    return bitrates


@dataclass(frozen=True)
class MediaConfig:
    storage_bucket: str
    storage_access_key: str | None = None
    storage_secret_key: str | None = None
    storage_endpoint_url: str | None = None
    storage_region: str = "us-east-1"
    public_base_url: str | None = None
    database_url: str = "sqlite:///media.db"
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_db: int = 0
    janitor_queue_name: str = "janitor"
    chunk_size_bytes: int = 50 * MIB
    concurrency_limit: int = 3
    max_retries: int = 3
    retry_base_delay_ms: int = 1000
    chunk_threshold_bytes: int = 100 * MIB
    max_range_span_bytes: int = 2 * MIB
    stale_session_age_hours: int = 24
    janitor_interval_seconds: int = 3600
    max_video_size_bytes: int = 2 * 1024 * MIB
    duration_probe_bytes: int = 32 * MIB
    presigned_url_ttl_hours: int = 24
    default_folder: str = "videos"
    allowed_mime_types: Tuple[str, ...] = DEFAULT_ALLOWED_MIME_TYPES
    bitrates: Mapping[str, int] = field(default_factory=lambda: dict(DEFAULT_BITRATES))

    @property
    def sqlalchemy_url(self) -> str:
        url = self.database_url
        if url.startswith("postgresql://"):
            return url.replace("postgresql://", "postgresql+psycopg://", 1)
        return url

    def public_url(self, object_key: str) -> str:
        if self.public_base_url:
            base = self.public_base_url.rstrip("/")
            if "://" not in base:
                base = f"https://{base}"
            return f"{base}/{object_key}"
        return (
            f"https://{self.storage_bucket}.s3.{self.storage_region}"
            f".amazonaws.com/{object_key}"
        )


def load_config() -> MediaConfig:
    return MediaConfig(
        storage_bucket=_require_env("MEDIA_STORAGE_BUCKET"),
        storage_access_key=os.getenv("MEDIA_STORAGE_ACCESS_KEY") or None,
        storage_secret_key=os.getenv("MEDIA_STORAGE_SECRET_KEY") or None,
        storage_endpoint_url=os.getenv("MEDIA_STORAGE_ENDPOINT_URL") or None,
        storage_region=os.getenv("MEDIA_STORAGE_REGION", "us-east-1"),
        public_base_url=os.getenv("MEDIA_PUBLIC_BASE_URL") or None,
        database_url=os.getenv("MEDIA_DATABASE_URL", "sqlite:///media.db"),
        redis_host=os.getenv("MEDIA_REDIS_HOST", "localhost"),
        redis_port=_env_int("MEDIA_REDIS_PORT", 6379),
        redis_db=_env_int("MEDIA_REDIS_DB", 0),
        janitor_queue_name=os.getenv("MEDIA_JANITOR_QUEUE", "janitor"),
        chunk_size_bytes=_env_int("MEDIA_CHUNK_SIZE_BYTES", 50 * MIB),
        concurrency_limit=_env_int("MEDIA_CONCURRENCY_LIMIT", 3),
        max_retries=_env_int("MEDIA_MAX_RETRIES", 3),
        retry_base_delay_ms=_env_int("MEDIA_RETRY_BASE_DELAY_MS", 1000),
        chunk_threshold_bytes=_env_int("MEDIA_CHUNK_THRESHOLD_BYTES", 100 * MIB),
        max_range_span_bytes=_env_int("MEDIA_MAX_RANGE_SPAN_BYTES", 2 * MIB),
        stale_session_age_hours=_env_int("MEDIA_STALE_SESSION_AGE_HOURS", 24),
        janitor_interval_seconds=_env_int("MEDIA_JANITOR_INTERVAL_SECONDS", 3600),
        max_video_size_bytes=_env_int("MEDIA_MAX_VIDEO_SIZE_BYTES", 2 * 1024 * MIB),
        duration_probe_bytes=_env_int("MEDIA_DURATION_PROBE_BYTES", 32 * MIB),
        presigned_url_ttl_hours=_env_int("MEDIA_PRESIGNED_URL_TTL_HOURS", 24),
        default_folder=os.getenv("MEDIA_DEFAULT_FOLDER", "videos"),
        allowed_mime_types=_env_list(
            "MEDIA_ALLOWED_MIME_TYPES", DEFAULT_ALLOWED_MIME_TYPES
        ),
        bitrates=_env_bitrates("MEDIA_ESTIMATED_BITRATES"),
    )
