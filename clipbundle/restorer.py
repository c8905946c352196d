from __future__ import annotations

import os
import re
import warnings
from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from .formats import SIZE_SKIP_MARKER
from .model import ParsedFileEntry
from .paths import confined_join, ensure_parent_dir, validate_filename

_SIZE_SKIP_RE = re.compile(
    "^" + re.escape(SIZE_SKIP_MARKER).replace(re.escape("{size}"), r"\d+") + "$"
)


class ConflictPolicy(str, Enum):
    OVERWRITE = "overwrite"
    SKIP = "skip"
    ABORT = "abort"
    ASK = "ask"  # per-file, via a decide callback


@dataclass(frozen=True)
class WriteOp:
    path: str  # normalized; empty when the header held nothing usable
    raw_path: str
    content: str
    exists: bool


@dataclass(frozen=True)
class DeleteOp:
    path: str
    raw_path: str
    exists: bool  # an existing, non-directory target


@dataclass(frozen=True)
class RestorePlan:
    writes: tuple[WriteOp, ...]
    deletes: tuple[DeleteOp, ...]
    placeholders: tuple[str, ...] = ()

    @property
    def conflicts(self) -> list[str]:
        return [op.path for op in self.writes if op.exists]

    @property
    def existing_deletions(self) -> list[str]:
        return [op.path for op in self.deletes if op.exists]

    @property
    def missing_deletions(self) -> list[str]:
        return [op.path or op.raw_path for op in self.deletes if not op.exists]

    @property
    def is_empty(self) -> bool:
        return not self.writes and not self.existing_deletions


@dataclass(frozen=True)
class RestoreResult:
    created_count: int = 0
    skipped_count: int = 0
    deleted_count: int = 0
    failures: tuple[tuple[str, str], ...] = ()
    aborted: bool = False


def _probe(root: Path, rel: str) -> Path | None:
    if not rel:
        return None
    try:
        return confined_join(root, rel)
    except ValueError:
        return None


def _entry_path(root: Path, rel: str) -> Path:
    """Confine the parent of ``rel`` but keep its last segment unresolved.

    A symlink named by a deletion is removed itself, never its target.
    """
    parent, _, name = rel.rpartition("/")
    base = confined_join(root, parent) if parent else root.resolve()
    if not name:
        raise ValueError(f"Refusing path outside root: {rel}")
    return base / name


def _is_deletable(path: Path) -> bool:
    return path.is_symlink() or (path.exists() and not path.is_dir())


def is_size_placeholder(content: str) -> bool:
    return _SIZE_SKIP_RE.match(content.strip()) is not None


def plan_restore(entries: Sequence[ParsedFileEntry], root: Path) -> RestorePlan:
    """Split decoded entries into writes and deletions and probe the disk.

    Entries that only carry a size-skip marker become placeholders and are
    never written. The returned plan exposes every pre-existing target via
    ``conflicts`` before anything is touched.
    """
    root = root.resolve()
    writes: list[WriteOp] = []
    deletes: list[DeleteOp] = []
    placeholders: list[str] = []
    write_index: dict[str, int] = {}

    for entry in entries:
        if entry.is_deleted:
            try:
                exists = bool(entry.path) and _is_deletable(
                    _entry_path(root, entry.path)
                )
            except ValueError:
                exists = False
            deletes.append(DeleteOp(entry.path, entry.raw_path, exists))
            continue
        if is_size_placeholder(entry.content):
            placeholders.append(entry.path or entry.raw_path)
            continue
        target = _probe(root, entry.path)
        exists = target is not None and target.exists()
        op = WriteOp(entry.path, entry.raw_path, entry.content, exists)
        if entry.path and entry.path in write_index:
            warnings.warn(
                f"Duplicate entry for {entry.path}; the last one wins",
                RuntimeWarning,
                stacklevel=2,
            )
            # Keep the first position so each path is written exactly once.
            writes[write_index[entry.path]] = op
            continue
        if entry.path:
            write_index[entry.path] = len(writes)
        writes.append(op)

    return RestorePlan(
        writes=tuple(writes),
        deletes=tuple(deletes),
        placeholders=tuple(placeholders),
    )


def _resolve_worker_count(max_workers: int, item_count: int) -> int:
    if item_count <= 1:
        return 1
    if max_workers > 0:
        return max_workers
    cpu = os.cpu_count() or 1
    return max(2, min(32, cpu * 4, item_count))


def _os_reason(e: OSError) -> str:
    return f"{type(e).__name__}: {e.strerror or e}"


def _write_one(root: Path, op: WriteOp, *, dry_run: bool) -> str | None:
    """Write a single entry; returns a failure reason instead of raising."""
    error = validate_filename(op.path)
    if error is not None:
        return error
    try:
        target = confined_join(root, op.path)
    except ValueError as e:
        return str(e)
    if target.is_dir():
        return f"target is a directory: {op.path}"
    if dry_run:
        return None
    try:
        ensure_parent_dir(target)
        data = op.content + "\n" if op.content else ""
        target.write_text(data, encoding="utf-8", newline="\n")
    except OSError as e:
        return _os_reason(e)
    return None


def _delete_one(root: Path, op: DeleteOp, *, dry_run: bool) -> str | None:
    try:
        target = _entry_path(root, op.path)
    except ValueError as e:
        return str(e)
    if dry_run:
        return None
    try:
        target.unlink()
    except OSError as e:
        return _os_reason(e)
    return None


def execute_restore(
    plan: RestorePlan,
    root: Path,
    policy: ConflictPolicy,
    *,
    decide: Callable[[str], bool] | None = None,
    dry_run: bool = False,
    max_workers: int = 0,
) -> RestoreResult:
    """Apply ``plan`` under ``root`` according to ``policy``.

    ``ABORT`` with any conflict writes nothing. ``ASK`` consults ``decide`` once
    per conflicting path (a missing callback skips). Failures are collected per
    entry and never stop the run.
    """
    root = root.resolve()
    policy = ConflictPolicy(policy)
    if policy == ConflictPolicy.ABORT and plan.conflicts:
        return RestoreResult(aborted=True)

    # Every overwrite decision is taken before the first write.
    to_write: list[WriteOp] = []
    skipped = 0
    for op in plan.writes:
        if not op.exists or policy == ConflictPolicy.OVERWRITE:
            to_write.append(op)
        elif policy == ConflictPolicy.ASK and decide is not None and decide(op.path):
            to_write.append(op)
        else:
            skipped += 1

    worker_count = _resolve_worker_count(max_workers, len(to_write))
    if worker_count == 1:
        outcomes = [_write_one(root, op, dry_run=dry_run) for op in to_write]
    else:
        with ThreadPoolExecutor(max_workers=worker_count) as pool:
            outcomes = list(
                pool.map(lambda op: _write_one(root, op, dry_run=dry_run), to_write)
            )

    failures: list[tuple[str, str]] = []
    created = 0
    for op, reason in zip(to_write, outcomes):
        if reason is None:
            created += 1
        else:
            failures.append((op.path or op.raw_path, reason))

    deleted = 0
    for dop in plan.deletes:
        if not dop.exists:
            continue
        reason = _delete_one(root, dop, dry_run=dry_run)
        if reason is None:
            deleted += 1
        else:
            failures.append((dop.path, reason))

    return RestoreResult(
        created_count=created,
        skipped_count=skipped,
        deleted_count=deleted,
        failures=tuple(failures),
    )
