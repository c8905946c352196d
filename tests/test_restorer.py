from __future__ import annotations

from pathlib import Path

import pytest

from clipbundle.decoder import decode
from clipbundle.model import ParsedFileEntry
from clipbundle.restorer import (
    ConflictPolicy,
    execute_restore,
    is_size_placeholder,
    plan_restore,
)


def _restore(text: str, root: Path, policy=ConflictPolicy.OVERWRITE, **kwargs):
    plan = plan_restore(decode(text), root)
    return plan, execute_restore(plan, root, policy, **kwargs)


def test_writes_new_files_with_parent_dirs(tmp_path: Path) -> None:
    plan, result = _restore("// file: a/b/c.txt\nhello\n// file: top.txt\n", tmp_path)
    assert plan.conflicts == []
    assert result.created_count == 2
    assert (tmp_path / "a" / "b" / "c.txt").read_text(encoding="utf-8") == "hello\n"
    assert (tmp_path / "top.txt").read_text(encoding="utf-8") == ""


def test_skip_existing_leaves_files_untouched(tmp_path: Path) -> None:
    (tmp_path / "a.txt").write_text("old a\n", encoding="utf-8")
    (tmp_path / "b.txt").write_text("old b\n", encoding="utf-8")
    plan, result = _restore(
        "// file: a.txt\nnew a\n// file: b.txt\nnew b\n",
        tmp_path,
        ConflictPolicy.SKIP,
    )
    assert plan.conflicts == ["a.txt", "b.txt"]
    assert result.skipped_count == 2
    assert result.created_count == 0
    assert (tmp_path / "a.txt").read_text(encoding="utf-8") == "old a\n"
    assert (tmp_path / "b.txt").read_text(encoding="utf-8") == "old b\n"


def test_overwrite_replaces_existing(tmp_path: Path) -> None:
    (tmp_path / "a.txt").write_text("old\n", encoding="utf-8")
    _, result = _restore("// file: a.txt\nnew\n", tmp_path, ConflictPolicy.OVERWRITE)
    assert result.created_count == 1
    assert (tmp_path / "a.txt").read_text(encoding="utf-8") == "new\n"


def test_abort_writes_nothing(tmp_path: Path) -> None:
    (tmp_path / "a.txt").write_text("old\n", encoding="utf-8")
    _, result = _restore(
        "// file: a.txt\nnew\n// file: fresh.txt\nF\n", tmp_path, ConflictPolicy.ABORT
    )
    assert result.aborted is True
    assert result.created_count == 0
    assert not (tmp_path / "fresh.txt").exists()
    assert (tmp_path / "a.txt").read_text(encoding="utf-8") == "old\n"


def test_abort_without_conflicts_proceeds(tmp_path: Path) -> None:
    _, result = _restore("// file: fresh.txt\nF\n", tmp_path, ConflictPolicy.ABORT)
    assert result.aborted is False
    assert result.created_count == 1


def test_ask_consults_callback_per_conflict(tmp_path: Path) -> None:
    (tmp_path / "a.txt").write_text("old a\n", encoding="utf-8")
    (tmp_path / "b.txt").write_text("old b\n", encoding="utf-8")
    asked: list[str] = []

    def decide(path: str) -> bool:
        asked.append(path)
        return path == "a.txt"

    _, result = _restore(
        "// file: a.txt\nnew a\n// file: b.txt\nnew b\n// file: c.txt\nC\n",
        tmp_path,
        ConflictPolicy.ASK,
        decide=decide,
    )
    assert asked == ["a.txt", "b.txt"]
    assert result.created_count == 2
    assert result.skipped_count == 1
    assert (tmp_path / "a.txt").read_text(encoding="utf-8") == "new a\n"
    assert (tmp_path / "b.txt").read_text(encoding="utf-8") == "old b\n"


def test_deletions_and_missing_targets(tmp_path: Path) -> None:
    (tmp_path / "old.txt").write_text("bye\n", encoding="utf-8")
    plan, result = _restore(
        "// file: [DELETED] old.txt\n// This file has been deleted in this change\n"
        "// file: [DELETED] never.txt\n",
        tmp_path,
    )
    assert plan.existing_deletions == ["old.txt"]
    assert plan.missing_deletions == ["never.txt"]
    assert result.deleted_count == 1
    assert not (tmp_path / "old.txt").exists()


def test_only_missing_deletions_is_an_empty_plan(tmp_path: Path) -> None:
    plan = plan_restore(decode("// file: [DELETED] ghost.txt\n"), tmp_path)
    assert plan.is_empty is True
    assert plan.missing_deletions == ["ghost.txt"]


def test_deleting_a_directory_is_never_planned(tmp_path: Path) -> None:
    (tmp_path / "dir").mkdir()
    plan = plan_restore(decode("// file: [DELETED] dir\n"), tmp_path)
    assert plan.existing_deletions == []


def test_empty_path_is_a_per_entry_failure(tmp_path: Path) -> None:
    entries = [
        ParsedFileEntry("../..", "", (), False, "x"),
        ParsedFileEntry("ok.txt", "ok.txt", (), False, "ok"),
    ]
    plan = plan_restore(entries, tmp_path)
    result = execute_restore(plan, tmp_path, ConflictPolicy.OVERWRITE)
    assert result.created_count == 1
    assert result.failures == (("../..", "empty file path after normalization"),)
    assert (tmp_path / "ok.txt").exists()


def test_file_in_the_way_of_a_directory_fails_that_entry_only(tmp_path: Path) -> None:
    (tmp_path / "a").write_text("i am a file\n", encoding="utf-8")
    _, result = _restore("// file: a/b.txt\nB\n// file: c.txt\nC\n", tmp_path)
    assert result.created_count == 1
    assert [path for path, _ in result.failures] == ["a/b.txt"]
    assert (tmp_path / "c.txt").read_text(encoding="utf-8") == "C\n"


def test_directory_in_the_way_of_a_file_fails(tmp_path: Path) -> None:
    (tmp_path / "d").mkdir()
    plan, result = _restore("// file: d\ncontent\n", tmp_path)
    assert plan.conflicts == ["d"]
    assert result.created_count == 0
    assert result.failures[0][1].startswith("target is a directory")


def test_size_skip_placeholder_is_not_written(tmp_path: Path) -> None:
    (tmp_path / "big.bin.txt").write_text("real content\n", encoding="utf-8")
    plan, result = _restore(
        "// file: big.bin.txt\n// File skipped: size exceeds limit (600000 bytes)\n",
        tmp_path,
    )
    assert plan.placeholders == ("big.bin.txt",)
    assert plan.writes == ()
    assert result.created_count == 0
    assert (tmp_path / "big.bin.txt").read_text(encoding="utf-8") == "real content\n"


def test_is_size_placeholder() -> None:
    assert is_size_placeholder("// File skipped: size exceeds limit (12 bytes)")
    assert not is_size_placeholder("// File skipped: size exceeds limit (12 bytes)\nx")


def test_dry_run_touches_nothing(tmp_path: Path) -> None:
    (tmp_path / "old.txt").write_text("bye\n", encoding="utf-8")
    _, result = _restore(
        "// file: new.txt\nN\n// file: [DELETED] old.txt\n", tmp_path, dry_run=True
    )
    assert result.created_count == 1
    assert result.deleted_count == 1
    assert not (tmp_path / "new.txt").exists()
    assert (tmp_path / "old.txt").exists()


def test_thread_pool_writes_every_entry(tmp_path: Path) -> None:
    text = "".join(f"// file: pkg/m{i}.py\nVALUE = {i}\n" for i in range(20))
    _, result = _restore(text, tmp_path, max_workers=4)
    assert result.created_count == 20
    assert result.failures == ()
    assert (tmp_path / "pkg" / "m7.py").read_text(encoding="utf-8") == "VALUE = 7\n"


def test_traversal_headers_stay_inside_root(tmp_path: Path) -> None:
    root = tmp_path / "root"
    root.mkdir()
    _, result = _restore("// file: ../../escape.txt\nX\n", root)
    assert result.created_count == 1
    assert (root / "escape.txt").exists()
    assert not (tmp_path / "escape.txt").exists()


def test_deleting_a_symlink_removes_the_link_not_its_target(tmp_path: Path) -> None:
    real = tmp_path / "real.txt"
    real.write_text("keep me\n", encoding="utf-8")
    link = tmp_path / "link.txt"
    try:
        link.symlink_to(real)
    except (OSError, NotImplementedError):
        pytest.skip("symlinks not supported")
    plan, result = _restore("// file: [DELETED] link.txt\n", tmp_path)
    assert plan.existing_deletions == ["link.txt"]
    assert result.deleted_count == 1
    assert not link.is_symlink()
    assert real.read_text(encoding="utf-8") == "keep me\n"


def test_dangling_symlink_can_be_deleted(tmp_path: Path) -> None:
    link = tmp_path / "gone.txt"
    try:
        link.symlink_to(tmp_path / "missing.txt")
    except (OSError, NotImplementedError):
        pytest.skip("symlinks not supported")
    plan, result = _restore("// file: [DELETED] gone.txt\n", tmp_path)
    assert plan.existing_deletions == ["gone.txt"]
    assert result.deleted_count == 1
    assert not link.is_symlink()


def test_duplicate_entries_collapse_to_the_last_one(tmp_path: Path) -> None:
    filler = "\n".join(f"line {i}" for i in range(20000))
    text = (
        f"// file: a.txt\nFIRST\n{filler}\n"
        "// file: b.txt\nB\n"
        "// file: a.txt\nLAST\n"
    )
    with pytest.warns(RuntimeWarning, match="last one wins"):
        plan = plan_restore(decode(text), tmp_path)
    assert [op.path for op in plan.writes] == ["a.txt", "b.txt"]
    assert plan.writes[0].content == "LAST"

    for _ in range(20):
        result = execute_restore(
            plan, tmp_path, ConflictPolicy.OVERWRITE, max_workers=4
        )
        assert result.created_count == 2
        assert result.failures == ()
        assert (tmp_path / "a.txt").read_text(encoding="utf-8") == "LAST\n"
