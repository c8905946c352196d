from __future__ import annotations

import warnings
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path

import pathspec

from .binary import has_binary_extension, is_likely_binary
from .discover import iter_file_records
from .filters import FilterConfig
from .formats import (
    DEFAULT_HEADER_FORMAT,
    DELETED_MARKER,
    PATH_PLACEHOLDER,
    SIZE_SKIP_MARKER,
)
from .labels import ChangeLabel
from .model import (
    BundleStats,
    EncodeResult,
    FileRecord,
    Limits,
    SelectionItem,
    SkippedFile,
)
from .paths import normalize_newlines
from .tokens import measure_text


def resolve_header_template(template: str | None) -> str:
    if template is None or not template.strip():
        warnings.warn(
            f"Empty header template; using {DEFAULT_HEADER_FORMAT!r}",
            RuntimeWarning,
            stacklevel=2,
        )
        return DEFAULT_HEADER_FORMAT
    if PATH_PLACEHOLDER not in template:
        warnings.warn(
            f"Header template {template!r} has no {PATH_PLACEHOLDER} placeholder; "
            f"using {DEFAULT_HEADER_FORMAT!r}",
            RuntimeWarning,
            stacklevel=2,
        )
        return DEFAULT_HEADER_FORMAT
    return template


def render_header(
    template: str, logical_path: str, label: ChangeLabel | None = None
) -> str:
    shown = f"{label.tag} {logical_path}" if label is not None else logical_path
    return template.replace(PATH_PLACEHOLDER, shown, 1)


def _content_lines(text: str) -> list[str]:
    if text.endswith("\n"):
        text = text[:-1]
    return text.split("\n") if text else []


@dataclass
class _EncodeState:
    """Running totals threaded through one ``encode`` call."""

    lines: list[str] = field(default_factory=list)
    seen: set[str] = field(default_factory=set)
    included: list[str] = field(default_factory=list)
    skipped: list[SkippedFile] = field(default_factory=list)
    file_tokens: dict[str, int] = field(default_factory=dict)
    file_count: int = 0
    skipped_by_size_count: int = 0
    deleted_count: int = 0
    total_chars: int = 0
    total_lines: int = 0
    total_words: int = 0
    estimated_tokens: int = 0
    limit_reached: bool = False

    def emit(self, header: str, body: list[str], *, extra_line: bool) -> None:
        self.lines.append(header)
        self.lines.extend(body)
        if extra_line:
            self.lines.append("")

    def count_content(self, logical_path: str, content: str) -> None:
        m = measure_text(content)
        self.file_count += 1
        self.total_chars += m.chars
        self.total_lines += m.lines
        self.total_words += m.words
        self.estimated_tokens += m.tokens
        self.included.append(logical_path)
        self.file_tokens[logical_path] = m.tokens

    def stats(self) -> BundleStats:
        return BundleStats(
            file_count=self.file_count,
            skipped_by_size_count=self.skipped_by_size_count,
            deleted_count=self.deleted_count,
            total_chars=self.total_chars,
            total_lines=self.total_lines,
            total_words=self.total_words,
            estimated_tokens=self.estimated_tokens,
            limit_reached=self.limit_reached,
        )


def _read_text(
    source: Path, record: FileRecord, state: _EncodeState, encoding_errors: str
) -> str | None:
    try:
        data = source.read_bytes()
    except OSError as e:
        state.skipped.append(
            SkippedFile(record.logical_path, f"unreadable: {e.strerror or e}")
        )
        return None
    if is_likely_binary(data):
        state.skipped.append(SkippedFile(record.logical_path, "binary"))
        return None
    try:
        text = data.decode("utf-8", errors=encoding_errors)
    except UnicodeDecodeError:
        state.skipped.append(SkippedFile(record.logical_path, "decode: invalid UTF-8"))
        return None
    return normalize_newlines(text)


def encode_records(
    records: Iterable[FileRecord],
    *,
    header_template: str = DEFAULT_HEADER_FORMAT,
    pre_text: str = "",
    post_text: str = "",
    limits: Limits = Limits(),
    extra_line_between_files: bool = True,
    encoding_errors: str = "replace",
) -> EncodeResult:
    template = resolve_header_template(header_template)
    state = _EncodeState()
    max_count = limits.max_file_count
    max_size = limits.max_file_size_bytes
    if max_size is not None and max_size <= 0:
        max_size = None

    for record in records:
        if record.absolute_key in state.seen:
            continue
        state.seen.add(record.absolute_key)
        header = render_header(template, record.logical_path, record.label)

        if record.label == ChangeLabel.DELETED or record.source is None:
            state.emit(header, [DELETED_MARKER], extra_line=extra_line_between_files)
            state.deleted_count += 1
            continue

        if max_count is not None and state.file_count >= max_count:
            state.limit_reached = True
            break

        if has_binary_extension(record.source):
            state.skipped.append(SkippedFile(record.logical_path, "binary"))
            continue

        if max_size is not None and record.size_bytes > max_size:
            marker = SIZE_SKIP_MARKER.format(size=record.size_bytes)
            state.emit(header, [marker], extra_line=extra_line_between_files)
            state.skipped_by_size_count += 1
            continue

        text = _read_text(record.source, record, state, encoding_errors)
        if text is None:
            continue

        body = _content_lines(text)
        state.emit(header, body, extra_line=extra_line_between_files)
        state.count_content(record.logical_path, "\n".join(body))

    parts: list[str] = []
    if pre_text:
        parts.append(pre_text)
    parts.extend(state.lines)
    if post_text:
        parts.append(post_text)

    return EncodeResult(
        text="\n".join(parts),
        stats=state.stats(),
        included=state.included,
        skipped=state.skipped,
        file_tokens=state.file_tokens,
    )


def encode(
    selection: Iterable[SelectionItem],
    *,
    root: Path,
    filter_config: FilterConfig = FilterConfig(),
    header_template: str = DEFAULT_HEADER_FORMAT,
    pre_text: str = "",
    post_text: str = "",
    limits: Limits = Limits(),
    extra_line_between_files: bool = True,
    encoding_errors: str = "replace",
    ignore: pathspec.PathSpec | None = None,
) -> EncodeResult:
    """Serialize the eligible files of ``selection`` into one text bundle.

    Directories are walked depth-first with filtered subtrees pruned. Oversized
    files keep their header plus a skip marker; binary and unreadable files are
    left out and listed in ``EncodeResult.skipped``. Reaching
    ``limits.max_file_count`` stops the traversal.
    """
    records = iter_file_records(
        selection,
        root=root,
        filter_config=filter_config,
        ignore=ignore,
    )
    return encode_records(
        records,
        header_template=header_template,
        pre_text=pre_text,
        post_text=post_text,
        limits=limits,
        extra_line_between_files=extra_line_between_files,
        encoding_errors=encoding_errors,
    )
