import asyncio
from datetime import datetime, timezone

import pytest

from services.media.application.stream_video import StreamVideoUseCase
from services.media.domain.errors import InvalidRange, InvalidState, NotFound
from services.media.domain.upload import UploadSession

DATA = bytes(range(256)) * 40  # 10240 bytes
SPAN = 1024


def _session(video_id="vid", object_key="videos/vid.mp4", **overrides):
    options = dict(
        video_id=video_id,
        object_key=object_key,
        upload_id="upload-x",
        original_filename="vid.mp4",
        total_size=len(DATA),
        mime_type="video/mp4",
        destination_folder="videos",
        created_at=datetime(2024, 5, 1, tzinfo=timezone.utc),
        is_complete=True,
    )
    options.update(overrides)
    return UploadSession(**options)


@pytest.fixture
def use_case(store, repository):
    store.objects["videos/vid.mp4"] = DATA
    store.content_types["videos/vid.mp4"] = "video/mp4"
    repository.create(_session())
    return StreamVideoUseCase(
        object_store=store,
        repository=repository,
        max_range_span=SPAN,
        read_chunk_size=4096,
    )


def _read(stream):
    return b"".join(stream.body)


def test_full_stream_without_range(use_case):
    stream = asyncio.run(use_case.execute("vid", None))

    assert stream.status_code == 200
    assert stream.headers["Content-Length"] == str(len(DATA))
    assert stream.headers["Accept-Ranges"] == "bytes"
    assert stream.media_type == "video/mp4"
    assert _read(stream) == DATA


def test_partial_stream_headers_and_body(use_case):
    stream = asyncio.run(use_case.execute("vid", "bytes=100-199"))

    assert stream.status_code == 206
    assert stream.headers["Content-Range"] == f"bytes 100-199/{len(DATA)}"
    assert stream.headers["Content-Length"] == "100"
    assert _read(stream) == DATA[100:200]


def test_open_range_is_clamped_to_span(use_case):
    stream = asyncio.run(use_case.execute("vid", "bytes=2000-"))

    assert stream.headers["Content-Range"] == f"bytes 2000-{2000 + SPAN - 1}/{len(DATA)}"
    assert _read(stream) == DATA[2000 : 2000 + SPAN]


def test_concurrent_disjoint_ranges_are_independent(use_case):
    async def fetch_both():
        return await asyncio.gather(
            use_case.execute("vid", "bytes=0-511"),
            use_case.execute("vid", "bytes=512-1023"),
        )

    first, second = asyncio.run(fetch_both())
    first_body, second_body = _read(first), _read(second)

    assert first_body == DATA[0:512]
    assert second_body == DATA[512:1024]
    assert first.headers["Content-Range"] != second.headers["Content-Range"]


def test_unknown_video_is_not_found(use_case):
    with pytest.raises(NotFound):
        asyncio.run(use_case.execute("nope", None))


def test_incomplete_video_cannot_be_streamed(use_case, repository):
    repository.create(_session(video_id="pending", is_complete=False))
    with pytest.raises(InvalidState):
        asyncio.run(use_case.execute("pending", None))


def test_unsatisfiable_range_is_rejected(use_case):
    with pytest.raises(InvalidRange):
        asyncio.run(use_case.execute("vid", f"bytes={len(DATA)}-"))


def test_read_error_is_skipped_after_headers(use_case, store):
    store.get_errors["videos/vid.mp4"] = NotFound("gone")

    stream = asyncio.run(use_case.execute("vid", "bytes=0-9"))

    assert stream.status_code == 206
    assert _read(stream) == b""


def test_direct_stream_sizes_object_with_head(use_case, store):
    store.objects["raw/any.webm"] = b"0123456789"
    store.content_types["raw/any.webm"] = "video/webm"

    stream = asyncio.run(use_case.execute_direct("raw/any.webm", "bytes=-4"))

    assert stream.status_code == 206
    assert stream.headers["Content-Range"] == "bytes 6-9/10"
    assert stream.media_type == "video/webm"
    assert _read(stream) == b"6789"


def test_direct_stream_missing_object(use_case):
    with pytest.raises(NotFound):
        asyncio.run(use_case.execute_direct("raw/missing.mp4", None))


CHUNKED = b"".join(bytes([65 + index]) * 10 for index in range(3)) + b"DDDDD"


@pytest.fixture
def chunked(store, repository):
    keys = ["chunks/vid/0", "chunks/vid/1", "chunks/vid/2", "chunks/vid/3"]
    for index, key in enumerate(keys):
        store.objects[key] = CHUNKED[index * 10 : index * 10 + 10]
    repository.create(
        _session(video_id="chunked", object_key="chunks/vid", total_size=len(CHUNKED))
    )
    repository.record_chunks("chunked", chunk_size=10, chunk_keys=keys)
    return StreamVideoUseCase(
        object_store=store, repository=repository, max_range_span=SPAN
    )


def test_chunked_range_fetches_only_overlapping_chunks(chunked, store):
    stream = asyncio.run(chunked.execute("chunked", "bytes=5-14"))

    assert _read(stream) == CHUNKED[5:15]
    assert store.range_requests == [
        ("chunks/vid/0", "bytes=5-9"),
        ("chunks/vid/1", "bytes=0-4"),
    ]


def test_chunked_full_stream_concatenates_chunks(chunked):
    stream = asyncio.run(chunked.execute("chunked", None))

    assert stream.headers["Content-Length"] == str(len(CHUNKED))
    assert _read(stream) == CHUNKED


def test_chunked_stream_skips_failed_chunk(chunked, store):
    store.get_errors["chunks/vid/1"] = NotFound("lost")

    stream = asyncio.run(chunked.execute("chunked", "bytes=5-24"))

    body = _read(stream)
    assert body == CHUNKED[5:10] + CHUNKED[20:25]
    assert len(body) <= int(stream.headers["Content-Length"])
