import time

import pytest

from services.media.application.object_keys import build_object_key
from services.media.domain.upload import (
    PartResult,
    ordered_manifest,
    part_count,
    plan_parts,
)


@pytest.mark.parametrize(
    "size, chunk_size",
    [(0, 4), (1, 4), (4, 4), (10, 4), (1000, 7), (4096, 1024), (4097, 1024)],
)
def test_split_then_reassemble_reproduces_buffer(size, chunk_size):
    data = bytes((index * 31) % 256 for index in range(size))

    parts = plan_parts(data, chunk_size)

    assert [part.part_number for part in parts] == list(range(1, len(parts) + 1))
    assert len(parts) == part_count(size, chunk_size)
    assert all(0 < part.length <= chunk_size for part in parts)
    assert b"".join(part.read() for part in parts) == data


def test_part_slices_are_independent_of_caller_buffer():
    data = bytearray(b"abcdefgh")
    parts = plan_parts(data, 3)

    data[0:3] = b"XYZ"

    assert parts[0].read() == b"abc"
    assert parts[0].read() == parts[0].read()


def test_plan_parts_rejects_non_positive_chunk_size():
    with pytest.raises(ValueError):
        plan_parts(b"abc", 0)


def test_ordered_manifest_sorts_by_part_number():
    parts = [PartResult(3, "c"), PartResult(1, "a"), PartResult(2, "b")]

    manifest = ordered_manifest(parts)

    assert [part.etag for part in manifest] == ["a", "b", "c"]


@pytest.mark.parametrize(
    "numbers",
    [[1, 1, 2], [2, 3], [1, 3], [0, 1]],
)
def test_ordered_manifest_rejects_gaps_and_duplicates(numbers):
    with pytest.raises(ValueError):
        ordered_manifest([PartResult(number, "etag") for number in numbers])


def test_build_object_key_layout():
    key = build_object_key(
        "My Holiday (1).MP4", "videos", timestamp_ms=1700000000000, random_suffix="ab12"
    )
    assert key == "videos/My_Holiday__1__1700000000000_ab12.mp4"


def test_build_object_key_strips_traversal_and_odd_extensions():
    key = build_object_key(
        "../../etc/passwd.sh;rm",
        "../uploads/./2024",
        timestamp_ms=1,
        random_suffix="ff",
    )
    assert key.startswith("uploads/2024/")
    assert ".." not in key
    assert key.endswith("_1_ff")


def test_build_object_key_without_folder_or_name():
    key = build_object_key("", None, timestamp_ms=5, random_suffix="00")
    assert key == "video_5_00"


def test_build_object_key_is_unique_per_call():
    first = build_object_key("clip.mp4", "videos")
    second = build_object_key("clip.mp4", "videos")
    assert first != second


def test_build_object_key_stamps_wall_clock_millis():
    before = time.time_ns() // 1_000_000
    key = build_object_key("clip.mp4", "videos", random_suffix="ab")
    after = time.time_ns() // 1_000_000

    stamp = int(key.rsplit("_", 2)[1])
    assert before <= stamp <= after


def test_build_object_key_with_same_timestamp_stays_unique():
    keys = {build_object_key("clip.mp4", "videos", timestamp_ms=7) for _ in range(50)}
    assert len(keys) == 50
