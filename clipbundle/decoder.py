from __future__ import annotations

import re
from dataclasses import dataclass, field
from functools import lru_cache

from .formats import DEFAULT_HEADER_FORMAT, PATH_PLACEHOLDER
from .labels import is_deleted, parse_leading_labels, strip_leading_labels
from .model import ParsedFileEntry
from .paths import normalize_newlines, normalize_path

# Matches "// file: x", "# file: x", "/* file: x */" and bare "file: x".
GENERIC_FILE_HEADER = re.compile(
    r"^\s*(?://|#|/\*)?\s*file:\s*(?P<path>.+?)\s*(?:\*/)?\s*$",
    re.IGNORECASE,
)


@lru_cache(maxsize=32)
def compile_header_pattern(template: str) -> re.Pattern[str] | None:
    """Turn a header template into a whole-line regex capturing the path.

    Returns ``None`` when the template has no path placeholder; callers then rely
    on ``GENERIC_FILE_HEADER`` alone.
    """
    if not template or PATH_PLACEHOLDER not in template.strip():
        return None
    head, _, tail = template.strip().partition(PATH_PLACEHOLDER)
    regex = rf"^\s*{re.escape(head)}(?P<path>.+?){re.escape(tail)}\s*$"
    return re.compile(regex)


def match_header(line: str, pattern: re.Pattern[str] | None) -> str | None:
    if pattern is not None:
        m = pattern.match(line)
        if m is not None and m.group("path").strip():
            return m.group("path")
    m = GENERIC_FILE_HEADER.match(line)
    if m is not None:
        return m.group("path")
    return None


def _trim_blank_edges(lines: list[str]) -> list[str]:
    start = 0
    end = len(lines)
    while start < end and not lines[start].strip():
        start += 1
    while end > start and not lines[end - 1].strip():
        end -= 1
    return lines[start:end]


@dataclass
class _OpenEntry:
    raw_path: str
    lines: list[str] = field(default_factory=list)

    def close(self) -> ParsedFileEntry:
        labels, rest = parse_leading_labels(self.raw_path)
        if not rest.strip():
            labels = ()
        stripped = strip_leading_labels(self.raw_path)
        return ParsedFileEntry(
            raw_path=self.raw_path,
            path=normalize_path(stripped),
            labels=labels,
            is_deleted=is_deleted(self.raw_path),
            content="\n".join(_trim_blank_edges(self.lines)),
        )


def decode(
    text: str, header_template: str = DEFAULT_HEADER_FORMAT
) -> list[ParsedFileEntry]:
    """Recover file entries from a pasted bundle.

    Each recognized header line closes the previous entry, including entries
    with no content, so zero-byte files survive. Text before the first header is
    ignored. Never raises on malformed input; an empty list means nothing was
    recognized.
    """
    pattern = compile_header_pattern(header_template)
    entries: list[ParsedFileEntry] = []
    current: _OpenEntry | None = None

    for line in normalize_newlines(text).split("\n"):
        raw_path = match_header(line, pattern)
        if raw_path is not None:
            if current is not None:
                entries.append(current.close())
            current = _OpenEntry(raw_path=raw_path.strip())
        elif current is not None:
            current.lines.append(line)

    if current is not None:
        entries.append(current.close())
    return entries
