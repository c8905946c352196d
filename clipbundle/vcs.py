from __future__ import annotations

import subprocess
from pathlib import Path

from .labels import label_for_git_status
from .model import ChangeRecord, SelectionItem, UntrackedFile

_STATUS_ARGS = ["status", "--porcelain=v1", "-z", "--untracked-files=all"]


def parse_porcelain_z(output: str, top: Path | None = None) -> list[SelectionItem]:
    """Turn ``git status --porcelain=v1 -z`` output into selection items.

    Renames and copies carry their source path in the following NUL-separated
    field; only the destination is kept. Ignored (``!!``) entries are dropped.
    Paths are joined onto ``top`` when given.
    """
    fields = output.split("\0")
    items: list[SelectionItem] = []
    i = 0
    while i < len(fields):
        entry = fields[i]
        i += 1
        if len(entry) < 4:
            continue
        code, rel = entry[:2], entry[3:]
        if code[0] in "RC":
            i += 1  # skip the original path
        if code == "!!":
            continue
        path = top / rel if top is not None else Path(rel)
        if code == "??":
            items.append(UntrackedFile(path))
            continue
        label = label_for_git_status(code)
        if label is None:
            continue
        items.append(ChangeRecord(path, label))
    return items


def _git(root: Path, *args: str) -> str:
    out = subprocess.run(
        ["git", *args],  # noqa: S607
        cwd=str(root),
        text=True,
        capture_output=True,
        check=True,
    )
    return out.stdout


def git_change_records(root: Path) -> list[SelectionItem]:
    """Collect the working-tree changes of the repository containing ``root``.

    Raises:
        RuntimeError: if git is missing or ``root`` is not inside a repository.

    """
    try:
        top = Path(_git(root, "rev-parse", "--show-toplevel").strip())
        output = _git(root, *_STATUS_ARGS)
    except FileNotFoundError as e:
        raise RuntimeError("git executable not found") from e
    except subprocess.CalledProcessError as e:
        detail = (e.stderr or "").strip() or f"exit status {e.returncode}"
        raise RuntimeError(f"Not a git repository: {root} ({detail})") from e
    return parse_porcelain_z(output, top)

