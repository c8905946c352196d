from __future__ import annotations

import re
from pathlib import Path

from .formats import RESERVED_FILENAME_CHARS

_DRIVE_PREFIX_RE = re.compile(r"^[A-Za-z]:(?=[/\\])")
_SLASH_RUN_RE = re.compile(r"/+")
_RESERVED_RE = re.compile("[" + re.escape(RESERVED_FILENAME_CHARS) + "]")


def normalize_newlines(s: str) -> str:
    return s.replace("\r\n", "\n").replace("\r", "\n")


def _is_safe_segment(segment: str) -> bool:
    # Padded dot segments are still traversal on platforms that trim names.
    if segment.strip() in {"", ".", ".."}:
        return False
    # Square brackets stay legal: route-style names such as `[id].tsx`.
    return _RESERVED_RE.search(segment) is None


def normalize_path(raw: str) -> str:
    """Canonicalize ``raw`` into a relative, slash-separated path.

    Drive prefixes and leading slashes are removed, backslashes become slashes,
    and empty, ``.``, ``..`` or reserved-character segments are dropped rather
    than rejected. An empty result means nothing usable was left.
    """
    path = raw.strip()
    path = _DRIVE_PREFIX_RE.sub("", path, count=1)
    path = path.replace("\\", "/")
    if path.startswith("/"):
        path = path[1:]
    path = _SLASH_RUN_RE.sub("/", path)
    joined = "/".join(seg for seg in path.split("/") if _is_safe_segment(seg))
    return joined.strip()


def validate_filename(path: str) -> str | None:
    """Return an error message if ``path`` cannot be written as a file."""
    if not path:
        return "empty file path after normalization"
    name = path.rsplit("/", 1)[-1]
    if not name:
        return f"empty file name in path: {path!r}"
    if _RESERVED_RE.search(name):
        return f"invalid file name {name!r} in path: {path!r}"
    return None


def is_absolute_like(value: str) -> bool:
    return value.startswith(("/", "\\")) or bool(_DRIVE_PREFIX_RE.match(value))


def confined_join(root: Path, relpath: str) -> Path:
    root_resolved = root.resolve()
    target = (root_resolved / relpath).resolve()
    try:
        target.relative_to(root_resolved)
    except ValueError as e:
        raise ValueError(f"Refusing path outside root: {relpath}") from e
    return target


def ensure_parent_dir(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


def logical_path_for(path: Path, root: Path) -> str:
    """Project-relative path for display; absolute posix path outside ``root``."""
    try:
        return path.relative_to(root).as_posix()
    except ValueError:
        return path.as_posix()
