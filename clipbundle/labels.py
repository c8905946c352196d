from __future__ import annotations

import re
import warnings
from enum import Enum


class ChangeLabel(str, Enum):
    NEW = "NEW"
    MODIFIED = "MODIFIED"
    DELETED = "DELETED"
    MOVED = "MOVED"

    @property
    def tag(self) -> str:
        return f"[{self.value}]"

    @classmethod
    def from_tag(cls, tag: str) -> ChangeLabel | None:
        text = tag.strip()
        if text.startswith("[") and text.endswith("]"):
            text = text[1:-1]
        try:
            return cls(text.strip().upper())
        except ValueError:
            return None


_LABEL_NAMES = "|".join(label.value for label in ChangeLabel)
_LEADING_LABEL_RE = re.compile(rf"^\s*\[({_LABEL_NAMES})\]\s*", re.IGNORECASE)

_GIT_STATUS_LABELS: dict[str, ChangeLabel] = {
    "A": ChangeLabel.NEW,
    "?": ChangeLabel.NEW,
    "M": ChangeLabel.MODIFIED,
    "T": ChangeLabel.MODIFIED,
    "D": ChangeLabel.DELETED,
    "R": ChangeLabel.MOVED,
    "C": ChangeLabel.MOVED,
}


def parse_leading_labels(path: str) -> tuple[tuple[ChangeLabel, ...], str]:
    """Split a header path into its leading ``[LABEL]`` run and the remainder.

    Labels must be consecutive at the start; a bracketed segment further into
    the path (``src/[DELETED]/x``) is part of the path, not a label.
    """
    labels: list[ChangeLabel] = []
    rest = path
    while True:
        m = _LEADING_LABEL_RE.match(rest)
        if m is None:
            break
        labels.append(ChangeLabel(m.group(1).upper()))
        rest = rest[m.end() :]
    return tuple(labels), rest


def strip_leading_labels(path: str) -> str:
    labels, rest = parse_leading_labels(path)
    if not labels:
        return path
    if not rest.strip():
        warnings.warn(
            f"Header path contains only change label(s): {path!r}",
            RuntimeWarning,
            stacklevel=2,
        )
        return path
    return rest.strip()


def is_deleted(path: str) -> bool:
    labels, rest = parse_leading_labels(path)
    # A path made only of labels is not treated as labelled at all.
    return bool(rest.strip()) and ChangeLabel.DELETED in labels


def label_for_git_status(code: str) -> ChangeLabel | None:
    """Map a two-letter porcelain status (``XY``) to a change label.

    A ``D`` in either column wins since the file is gone from the worktree;
    otherwise the index column wins. ``??`` is untracked.
    """
    code = code.strip()
    if code.startswith("??"):
        return ChangeLabel.NEW
    if "D" in code:
        return ChangeLabel.DELETED
    for ch in code:
        label = _GIT_STATUS_LABELS.get(ch)
        if label is not None:
            return label
    return None
