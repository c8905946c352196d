from __future__ import annotations

import shutil
import subprocess
from pathlib import Path

import pytest

from clipbundle.labels import ChangeLabel
from clipbundle.model import ChangeRecord, UntrackedFile
from clipbundle.vcs import git_change_records, parse_porcelain_z


def test_parse_porcelain_z() -> None:
    output = (
        " M src/a.py\0"
        "?? new file.txt\0"
        "R  new_name.py\0old_name.py\0"
        " D gone.txt\0"
        "!! ignored.log\0"
    )
    assert parse_porcelain_z(output) == [
        ChangeRecord(Path("src/a.py"), ChangeLabel.MODIFIED),
        UntrackedFile(Path("new file.txt")),
        ChangeRecord(Path("new_name.py"), ChangeLabel.MOVED),
        ChangeRecord(Path("gone.txt"), ChangeLabel.DELETED),
    ]


def test_parse_porcelain_z_joins_top(tmp_path: Path) -> None:
    items = parse_porcelain_z("A  x.txt\0", tmp_path)
    assert items == [ChangeRecord(tmp_path / "x.txt", ChangeLabel.NEW)]


def test_parse_porcelain_z_empty() -> None:
    assert parse_porcelain_z("") == []


def test_not_a_repository_raises(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setenv("GIT_CEILING_DIRECTORIES", str(tmp_path.parent))
    with pytest.raises(RuntimeError):
        git_change_records(tmp_path)


@pytest.mark.skipif(shutil.which("git") is None, reason="git not installed")
def test_git_change_records_in_real_repo(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setenv("GIT_CEILING_DIRECTORIES", str(tmp_path.parent))

    def git(*args: str) -> None:
        subprocess.run(
            ["git", "-c", "user.name=t", "-c", "user.email=t@example.com", *args],
            cwd=tmp_path,
            check=True,
            capture_output=True,
        )

    git("init", "-q")
    (tmp_path / "tracked.txt").write_text("v1\n", encoding="utf-8")
    (tmp_path / "doomed.txt").write_text("bye\n", encoding="utf-8")
    git("add", ".")
    git("commit", "-q", "-m", "init")

    (tmp_path / "tracked.txt").write_text("v2\n", encoding="utf-8")
    (tmp_path / "doomed.txt").unlink()
    (tmp_path / "fresh.txt").write_text("new\n", encoding="utf-8")

    items = git_change_records(tmp_path)
    summary = {
        (type(item).__name__, item.path.name, getattr(item, "label", None))
        for item in items
    }
    assert summary == {
        ("ChangeRecord", "tracked.txt", ChangeLabel.MODIFIED),
        ("ChangeRecord", "doomed.txt", ChangeLabel.DELETED),
        ("UntrackedFile", "fresh.txt", None),
    }
