from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

DEFAULT_DURATION_SECONDS = 180


class ExtractionMethod(str, Enum):
    FORMAT_PARSED = "format_parsed"
    FORMAT_PARSED_SUSPICIOUS = "format_parsed_suspicious"
    SIZE_ESTIMATED = "size_estimated"
    DEFAULT = "default"


@dataclass(frozen=True)
class DurationHints:
    mime_type: str = ""
    filename: str = ""
    total_size: int = 0


@dataclass(frozen=True)
class DurationResult:
    seconds: int
    method: ExtractionMethod
    parser: str | None = None
