"""Duration probing for uploaded videos.

Parsers scan the raw container bytes for the one structure that carries the
overall duration instead of demuxing the file. They run in order and the
first positive result wins; the size estimate and the fixed default close the
chain so extraction always yields a value.
"""

from __future__ import annotations

import logging
import math
import struct
from pathlib import Path
from typing import Mapping, Protocol, Sequence

from services.media.application.interfaces import DurationExtractor
from services.media.config import DEFAULT_BITRATES, MediaConfig
from services.media.domain.duration import (
    DEFAULT_DURATION_SECONDS,
    DurationHints,
    DurationResult,
    ExtractionMethod,
)
from services.media.domain.errors import ParseFailure

LOGGER = logging.getLogger(__name__)

_MVHD_TAG = b"mvhd"
_MVHD_MIN_BOX_SIZE = 108
_EBML_DURATION_ID = b"\x44\x89"
_MAX_PLAUSIBLE_SECONDS = 86_400
_MAX_WEBM_DURATION_MS = 86_400_000.0
_WEBM_MIME_MARKERS = ("webm", "matroska")
_WEBM_EXTENSIONS = {".webm", ".mkv"}
_FALLBACK_BITRATE = 3_000_000
_MIN_ESTIMATE_SECONDS = 1
_MAX_ESTIMATE_SECONDS = 7200


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


class DurationParser(Protocol):
    name: str

    def try_extract(
        self, buffer: bytes, hints: DurationHints
    ) -> DurationResult | None: ...


class Mp4MovieHeaderParser:
    """Reads duration and time scale from the first plausible ``mvhd`` box."""

    name = "mp4_mvhd"

    def try_extract(self, buffer: bytes, hints: DurationHints) -> DurationResult | None:
        tag_index = self._find_movie_header(buffer)
        if tag_index is None:
            raise ParseFailure("mvhd box not found")
        timescale, duration = self._read_timing(buffer, tag_index + len(_MVHD_TAG))
        if timescale == 0:
            raise ParseFailure("mvhd time scale is zero")
        if duration == 0:
            raise ParseFailure("mvhd duration is zero")

        seconds = _round_half_up(duration / timescale)
        method = ExtractionMethod.FORMAT_PARSED
        if seconds < 1 or seconds > _MAX_PLAUSIBLE_SECONDS:
            LOGGER.warning(
                "mvhd duration looks implausible: %ss (duration=%s, timescale=%s)",
                seconds,
                duration,
                timescale,
            )
            method = ExtractionMethod.FORMAT_PARSED_SUSPICIOUS
        return DurationResult(seconds=seconds, method=method, parser=self.name)

    @staticmethod
    def _find_movie_header(buffer: bytes) -> int | None:
        search_from = 0
        while True:
            index = buffer.find(_MVHD_TAG, search_from)
            if index == -1:
                return None
            if index >= 4:
                box_start = index - 4
                (box_size,) = struct.unpack_from(">I", buffer, box_start)
                if _MVHD_MIN_BOX_SIZE <= box_size <= len(buffer) - box_start:
                    return index
            search_from = index + len(_MVHD_TAG)

    @staticmethod
    def _read_timing(buffer: bytes, body: int) -> tuple[int, int]:
        version = buffer[body]
        if version == 0:
            if body + 20 > len(buffer):
                raise ParseFailure("buffer too small for a version 0 mvhd box")
            return struct.unpack_from(">II", buffer, body + 12)
        if version == 1:
            if body + 32 > len(buffer):
                raise ParseFailure("buffer too small for a version 1 mvhd box")
            timescale, high, low = struct.unpack_from(">III", buffer, body + 20)
            if high:
                LOGGER.warning(
                    "mvhd duration high word is non-zero (%s); using the low word",
                    high,
                )
            return timescale, low
        raise ParseFailure(f"unsupported mvhd version {version}")


class WebmDurationParser:
    """Finds the EBML Duration element (0x4489) of a WebM segment."""

    name = "webm_ebml"

    def applies_to(self, hints: DurationHints) -> bool:
        mime = hints.mime_type.lower()
        if any(marker in mime for marker in _WEBM_MIME_MARKERS):
            return True
        return Path(hints.filename or "").suffix.lower() in _WEBM_EXTENSIONS

    def try_extract(self, buffer: bytes, hints: DurationHints) -> DurationResult | None:
        if not self.applies_to(hints):
            return None
        search_from = 0
        while True:
            index = buffer.find(_EBML_DURATION_ID, search_from)
            if index == -1:
                raise ParseFailure("EBML duration element not found")
            milliseconds = self._read_candidate(buffer, index + len(_EBML_DURATION_ID))
            if milliseconds is not None:
                return DurationResult(
                    seconds=_round_half_up(milliseconds / 1000),
                    method=ExtractionMethod.FORMAT_PARSED,
                    parser=self.name,
                )
            search_from = index + len(_EBML_DURATION_ID)

    @staticmethod
    def _read_candidate(buffer: bytes, data_start: int) -> float | None:
        candidates = []
        if data_start + 8 <= len(buffer):
            candidates.append(struct.unpack_from(">d", buffer, data_start)[0])
        # Element data normally follows a one-byte size marker.
        if data_start < len(buffer):
            marker = buffer[data_start]
            if marker == 0x88 and data_start + 9 <= len(buffer):
                candidates.append(struct.unpack_from(">d", buffer, data_start + 1)[0])
            elif marker == 0x84 and data_start + 5 <= len(buffer):
                candidates.append(struct.unpack_from(">f", buffer, data_start + 1)[0])
        for value in candidates:
            if 0 < value < _MAX_WEBM_DURATION_MS:
                return value
        return None


class SizeEstimateParser:
    """Last-resort estimate from file size and an assumed bitrate."""

    name = "size_estimate"

    def __init__(self, bitrates: Mapping[str, int] | None = None) -> None:
        self._bitrates = {
            mime.lower(): rate for mime, rate in (bitrates or DEFAULT_BITRATES).items()
        }

    def bitrate_for(self, mime_type: str) -> int:
        base_type = mime_type.split(";", 1)[0].strip().lower()
        return self._bitrates.get(base_type, _FALLBACK_BITRATE)

    def try_extract(self, buffer: bytes, hints: DurationHints) -> DurationResult | None:
        size = hints.total_size or len(buffer)
        if size <= 0:
            return None
        bitrate = self.bitrate_for(hints.mime_type)
        estimate = _round_half_up(size * 8 / bitrate)
        bounded = max(_MIN_ESTIMATE_SECONDS, min(_MAX_ESTIMATE_SECONDS, estimate))
        if bounded != estimate:
            LOGGER.info("Size-based duration clamped from %ss to %ss", estimate, bounded)
        return DurationResult(
            seconds=bounded, method=ExtractionMethod.SIZE_ESTIMATED, parser=self.name
        )


class ChainedDurationExtractor(DurationExtractor):
    def __init__(
        self,
        parsers: Sequence[DurationParser],
        *,
        default_seconds: int = DEFAULT_DURATION_SECONDS,
    ) -> None:
        self._parsers = list(parsers)
        self._default_seconds = default_seconds

    def extract(
        self, buffer: bytes, *, mime_type: str, filename: str, total_size: int
    ) -> DurationResult:
        hints = DurationHints(
            mime_type=mime_type or "", filename=filename or "", total_size=total_size
        )
        for parser in self._parsers:
            try:
                result = parser.try_extract(buffer, hints)
            except ParseFailure as exc:
                LOGGER.debug("%s could not read a duration: %s", parser.name, exc)
                continue
            if result is not None and result.seconds > 0:
                LOGGER.info(
                    "Duration for %s: %ss via %s (%s)",
                    filename or "<unnamed>",
                    result.seconds,
                    parser.name,
                    result.method.value,
                )
                return result

        LOGGER.warning(
            "No duration could be derived for %s; using %ss",
            filename or "<unnamed>",
            self._default_seconds,
        )
        return DurationResult(
            seconds=self._default_seconds, method=ExtractionMethod.DEFAULT
        )


def create_duration_extractor(config: MediaConfig | None = None) -> DurationExtractor:
    bitrates = config.bitrates if config is not None else DEFAULT_BITRATES
    return ChainedDurationExtractor(
        [
            Mp4MovieHeaderParser(),
            WebmDurationParser(),
            SizeEstimateParser(bitrates),
        ]
    )
