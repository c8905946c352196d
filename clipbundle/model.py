from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Union

from .labels import ChangeLabel


@dataclass(frozen=True)
class PlainPath:
    """A file or directory picked directly by the user."""

    path: Path


@dataclass(frozen=True)
class ChangeRecord:
    """A version-control change; ``path`` may no longer exist when DELETED."""

    path: Path
    label: ChangeLabel


@dataclass(frozen=True)
class UntrackedFile:
    path: Path


SelectionItem = Union[PlainPath, ChangeRecord, UntrackedFile]


@dataclass(frozen=True)
class FileRecord:
    logical_path: str  # project-relative, slash-separated
    absolute_key: str  # dedupe only; never emitted
    label: ChangeLabel | None
    size_bytes: int
    source: Path | None  # None when content is unavailable (deleted upstream)


@dataclass(frozen=True)
class Limits:
    max_file_count: int | None = None
    max_file_size_bytes: int | None = None


@dataclass(frozen=True)
class SkippedFile:
    path: str
    reason: str  # "binary" | "unreadable: ..." | "decode: ..."


@dataclass(frozen=True)
class BundleStats:
    file_count: int = 0
    skipped_by_size_count: int = 0
    deleted_count: int = 0
    total_chars: int = 0
    total_lines: int = 0
    total_words: int = 0
    estimated_tokens: int = 0
    limit_reached: bool = False


@dataclass(frozen=True)
class EncodeResult:
    text: str
    stats: BundleStats
    included: list[str]
    skipped: list[SkippedFile]
    file_tokens: dict[str, int]


@dataclass(frozen=True)
class ParsedFileEntry:
    raw_path: str
    path: str  # normalized; may be empty when nothing usable was left
    labels: tuple[ChangeLabel, ...]
    is_deleted: bool
    content: str

    @property
    def label(self) -> ChangeLabel | None:
        return self.labels[0] if self.labels else None
