from datetime import datetime, timedelta, timezone

import pytest

from services.media.domain.errors import NotFound
from services.media.domain.upload import UploadSession
from services.media.infrastructure.db import create_session_factory
from services.media.infrastructure.sessions import SqlAlchemyUploadSessionRepository

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def sql_repository(tmp_path):
    factory = create_session_factory(f"sqlite:///{tmp_path / 'media.db'}")
    return SqlAlchemyUploadSessionRepository(session_factory=factory)


def _session(video_id, age=timedelta(0), **overrides):
    options = dict(
        video_id=video_id,
        object_key=f"videos/{video_id}.mp4",
        upload_id=f"upload-{video_id}",
        original_filename=f"{video_id}.mp4",
        total_size=5 * 1024 * 1024 * 1024,
        mime_type="video/mp4",
        destination_folder="videos",
        created_at=NOW - age,
    )
    options.update(overrides)
    return UploadSession(**options)


def test_create_and_get_round_trip(sql_repository):
    sql_repository.create(
        _session("a", chunk_size=10, chunk_keys=("chunks/a/0", "chunks/a/1"))
    )

    stored = sql_repository.get("a")

    assert stored.object_key == "videos/a.mp4"
    assert stored.total_size == 5 * 1024 * 1024 * 1024
    assert stored.created_at == NOW
    assert stored.created_at.tzinfo is not None
    assert stored.is_complete is False
    assert stored.chunk_keys == ("chunks/a/0", "chunks/a/1")
    assert stored.is_chunked


def test_get_missing_returns_none(sql_repository):
    assert sql_repository.get("missing") is None


def test_create_requires_upload_id(sql_repository):
    with pytest.raises(ValueError):
        sql_repository.create(_session("a", upload_id=""))


def test_mark_complete_and_set_duration(sql_repository):
    sql_repository.create(_session("a"))
    completed_at = NOW + timedelta(minutes=3)

    sql_repository.mark_complete(
        "a", final_object_url="https://cdn.example/videos/a.mp4", completed_at=completed_at
    )
    updated = sql_repository.set_duration("a", 95)

    assert updated.is_complete
    assert updated.duration == 95
    assert sql_repository.get("a").completed_at == completed_at
    assert sql_repository.get("a").final_object_url == "https://cdn.example/videos/a.mp4"


def test_updates_on_missing_session_raise(sql_repository):
    with pytest.raises(NotFound):
        sql_repository.set_duration("missing", 10)
    with pytest.raises(NotFound):
        sql_repository.mark_complete(
            "missing", final_object_url="x", completed_at=NOW
        )


def test_delete_reports_whether_a_row_was_removed(sql_repository):
    sql_repository.create(_session("a"))

    assert sql_repository.delete("a") is True
    assert sql_repository.delete("a") is False
    assert sql_repository.get("a") is None


def test_list_stale_selects_old_incomplete_sessions(sql_repository):
    sql_repository.create(_session("old", age=timedelta(hours=25)))
    sql_repository.create(_session("fresh", age=timedelta(hours=1)))
    sql_repository.create(_session("done", age=timedelta(hours=50), is_complete=True))

    stale = sql_repository.list_stale(NOW - timedelta(hours=24))

    assert [session.video_id for session in stale] == ["old"]


def test_list_filters_and_paginates(sql_repository):
    for index in range(5):
        sql_repository.create(
            _session(f"v{index}", age=timedelta(minutes=index), is_complete=index % 2 == 0)
        )

    page, total = sql_repository.list(limit=2, offset=0)
    assert total == 5
    assert [session.video_id for session in page] == ["v0", "v1"]

    complete, complete_total = sql_repository.list(is_complete=True, limit=10)
    assert complete_total == 3
    assert {session.video_id for session in complete} == {"v0", "v2", "v4"}

    incomplete, incomplete_total = sql_repository.list(
        is_complete=False, limit=1, offset=1
    )
    assert incomplete_total == 2
    assert [session.video_id for session in incomplete] == ["v3"]


def test_record_chunks_switches_session_to_chunked(sql_repository):
    sql_repository.create(_session("a"))
    assert not sql_repository.get("a").is_chunked

    updated = sql_repository.record_chunks(
        "a", chunk_size=10, chunk_keys=["chunks/a/0", "chunks/a/1"]
    )

    assert updated.is_chunked
    stored = sql_repository.get("a")
    assert stored.chunk_size == 10
    assert stored.chunk_keys == ("chunks/a/0", "chunks/a/1")


def test_record_chunks_rejects_empty_manifest(sql_repository):
    sql_repository.create(_session("a"))

    with pytest.raises(ValueError):
        sql_repository.record_chunks("a", chunk_size=10, chunk_keys=[])
    with pytest.raises(NotFound):
        sql_repository.record_chunks("missing", chunk_size=10, chunk_keys=["k"])
