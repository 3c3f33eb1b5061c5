import pytest

from services.media import config as media_config
from services.media.config import MIB, MediaConfig, load_config

_MEDIA_VARS = [
    "MEDIA_STORAGE_BUCKET",
    "MEDIA_STORAGE_REGION",
    "MEDIA_STORAGE_ENDPOINT_URL",
    "MEDIA_PUBLIC_BASE_URL",
    "MEDIA_DATABASE_URL",
    "MEDIA_CHUNK_SIZE_BYTES",
    "MEDIA_MAX_RANGE_SPAN_BYTES",
    "MEDIA_ALLOWED_MIME_TYPES",
    "MEDIA_ESTIMATED_BITRATES",
    "MEDIA_REDIS_PORT",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in _MEDIA_VARS:
        # Registers the variable so teardown also undoes .env loads.
        monkeypatch.setenv(name, "")
        monkeypatch.delenv(name)


def test_defaults(monkeypatch):
    monkeypatch.setenv("MEDIA_STORAGE_BUCKET", "media")

    cfg = load_config()

    assert cfg.storage_bucket == "media"
    assert cfg.chunk_size_bytes == 50 * MIB
    assert cfg.concurrency_limit == 3
    assert cfg.max_retries == 3
    assert cfg.retry_base_delay_ms == 1000
    assert cfg.chunk_threshold_bytes == 100 * MIB
    assert cfg.max_range_span_bytes == 2 * MIB
    assert cfg.stale_session_age_hours == 24
    assert cfg.bitrates["video/webm"] == 2_000_000


def test_bucket_is_required():
    with pytest.raises(ValueError, match="MEDIA_STORAGE_BUCKET"):
        load_config()


def test_integer_overrides(monkeypatch):
    monkeypatch.setenv("MEDIA_STORAGE_BUCKET", "media")
    monkeypatch.setenv("MEDIA_CHUNK_SIZE_BYTES", str(8 * MIB))
    monkeypatch.setenv("MEDIA_MAX_RANGE_SPAN_BYTES", "65536")

    cfg = load_config()

    assert cfg.chunk_size_bytes == 8 * MIB
    assert cfg.max_range_span_bytes == 65536


def test_non_integer_value_fails_fast(monkeypatch):
    monkeypatch.setenv("MEDIA_STORAGE_BUCKET", "media")
    monkeypatch.setenv("MEDIA_REDIS_PORT", "six")

    with pytest.raises(ValueError, match="MEDIA_REDIS_PORT"):
        load_config()


def test_lists_and_bitrates(monkeypatch):
    monkeypatch.setenv("MEDIA_STORAGE_BUCKET", "media")
    monkeypatch.setenv("MEDIA_ALLOWED_MIME_TYPES", "video/mp4, video/webm")
    monkeypatch.setenv("MEDIA_ESTIMATED_BITRATES", "video/mp4=5000000,Video/OGG=1000000")

    cfg = load_config()

    assert cfg.allowed_mime_types == ("video/mp4", "video/webm")
    assert cfg.bitrates["video/mp4"] == 5_000_000
    assert cfg.bitrates["video/ogg"] == 1_000_000
    assert cfg.bitrates["video/webm"] == 2_000_000


def test_malformed_bitrates(monkeypatch):
    monkeypatch.setenv("MEDIA_STORAGE_BUCKET", "media")
    monkeypatch.setenv("MEDIA_ESTIMATED_BITRATES", "video/mp4")

    with pytest.raises(ValueError):
        load_config()


def test_public_url_prefers_cdn():
    assert (
        MediaConfig(storage_bucket="media", public_base_url="cdn.example.com/").public_url(
            "videos/a.mp4"
        )
        == "https://cdn.example.com/videos/a.mp4"
    )
    assert (
        MediaConfig(storage_bucket="media", storage_region="eu-west-1").public_url(
            "videos/a.mp4"
        )
        == "https://media.s3.eu-west-1.amazonaws.com/videos/a.mp4"
    )


def test_postgres_url_uses_psycopg_driver():
    cfg = MediaConfig(
        storage_bucket="media", database_url="postgresql://u:p@db:5432/media"
    )
    assert cfg.sqlalchemy_url == "postgresql+psycopg://u:p@db:5432/media"
    assert MediaConfig(storage_bucket="media").sqlalchemy_url == "sqlite:///media.db"


def test_repo_env_file_is_loaded(monkeypatch, tmp_path):
    (tmp_path / ".env").write_text("MEDIA_STORAGE_BUCKET=from-dotenv\n")
    fake_module = tmp_path / "pkg" / "config.py"
    fake_module.parent.mkdir()
    monkeypatch.setattr(media_config, "__file__", str(fake_module))

    media_config._load_repo_env()

    assert load_config().storage_bucket == "from-dotenv"
