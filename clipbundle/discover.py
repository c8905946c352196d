from __future__ import annotations

from collections.abc import Iterable, Iterator
from pathlib import Path

import pathspec

from .filters import FilterConfig, is_eligible
from .labels import ChangeLabel
from .model import ChangeRecord, FileRecord, PlainPath, SelectionItem, UntrackedFile
from .paths import logical_path_for

IGNORE_FILENAME = ".clipbundleignore"


def _load_ignore_lines(root: Path, filename: str) -> list[str]:
    p = root / filename
    if not p.is_file():
        return []
    return p.read_text(encoding="utf-8", errors="replace").splitlines()


def load_ignore_spec(root: Path, *, respect_gitignore: bool) -> pathspec.PathSpec:
    # Order matters: patterns later in the list take precedence (e.g. negations).
    lines: list[str] = []
    if respect_gitignore:
        lines.extend(_load_ignore_lines(root, ".gitignore"))
    # Tool-specific ignore is always respected and has higher priority.
    lines.extend(_load_ignore_lines(root, IGNORE_FILENAME))
    return pathspec.PathSpec.from_lines("gitwildmatch", lines)


def _absolute(path: Path, root: Path) -> Path:
    p = Path(path)
    if not p.is_absolute():
        p = root / p
    return p


def _record_for(path: Path, root: Path, label: ChangeLabel | None) -> FileRecord:
    resolved = path.resolve()
    if label == ChangeLabel.DELETED:
        return FileRecord(
            logical_path=logical_path_for(resolved, root),
            absolute_key=resolved.as_posix(),
            label=label,
            size_bytes=0,
            source=None,
        )
    try:
        size = resolved.stat().st_size
    except OSError:
        size = 0
    return FileRecord(
        logical_path=logical_path_for(resolved, root),
        absolute_key=resolved.as_posix(),
        label=label,
        size_bytes=size,
        source=resolved,
    )


class Walker:
    """Depth-first traversal of a selection that prunes filtered subtrees.

    Yields one ``FileRecord`` per eligible file, in selection order and, inside
    directories, sorted by name. Ignore files only prune walked children, never
    explicitly selected paths.
    """

    def __init__(
        self,
        root: Path,
        filter_config: FilterConfig,
        ignore: pathspec.PathSpec | None = None,
    ) -> None:
        self.root = root.resolve()
        self.filter_config = filter_config
        self.ignore = ignore

    def _eligible(self, path: Path, *, is_directory: bool) -> bool:
        resolved = path.resolve()
        rel = logical_path_for(resolved, self.root)
        if rel == ".":
            rel = ""
        return is_eligible(
            rel,
            is_directory,
            self.filter_config,
            abs_path=resolved.as_posix(),
        )

    def _ignored(self, path: Path, *, is_directory: bool) -> bool:
        if self.ignore is None:
            return False
        try:
            rel = path.relative_to(self.root).as_posix()
        except ValueError:
            return False
        return self.ignore.match_file(rel + "/" if is_directory else rel)

    def walk_directory(
        self, directory: Path, label: ChangeLabel | None = None
    ) -> Iterator[FileRecord]:
        if not self._eligible(directory, is_directory=True):
            return
        try:
            children = sorted(directory.iterdir(), key=lambda p: p.name)
        except OSError:
            return
        for child in children:
            if child.is_dir():
                if child.is_symlink() or self._ignored(child, is_directory=True):
                    continue
                yield from self.walk_directory(child, label)
            elif child.is_file():
                if self._ignored(child, is_directory=False):
                    continue
                if self._eligible(child, is_directory=False):
                    yield _record_for(child, self.root, label)

    def _walk_item(self, path: Path, label: ChangeLabel | None) -> Iterator[FileRecord]:
        if label != ChangeLabel.DELETED and path.is_dir():
            yield from self.walk_directory(path.resolve(), label)
            return
        if self._eligible(path, is_directory=False):
            yield _record_for(path, self.root, label)

    def records(self, selection: Iterable[SelectionItem]) -> Iterator[FileRecord]:
        for item in selection:
            path = _absolute(item.path, self.root)
            if isinstance(item, ChangeRecord):
                yield from self._walk_item(path, item.label)
            elif isinstance(item, UntrackedFile):
                yield from self._walk_item(path, ChangeLabel.NEW)
            elif isinstance(item, PlainPath):
                yield from self._walk_item(path, None)
            else:
                raise TypeError(f"Unsupported selection item: {item!r}")


def iter_file_records(
    selection: Iterable[SelectionItem],
    *,
    root: Path,
    filter_config: FilterConfig,
    ignore: pathspec.PathSpec | None = None,
) -> Iterator[FileRecord]:
    return Walker(root, filter_config, ignore).records(selection)
