from __future__ import annotations

from pathlib import Path

from clipbundle.discover import IGNORE_FILENAME, iter_file_records, load_ignore_spec
from clipbundle.filters import FilterAction, FilterConfig, FilterKind, FilterRule
from clipbundle.labels import ChangeLabel
from clipbundle.model import ChangeRecord, PlainPath, UntrackedFile


def _tree(root: Path) -> None:
    (root / "src" / "pkg").mkdir(parents=True)
    (root / "build").mkdir()
    (root / "src" / "b.py").write_text("b\n", encoding="utf-8")
    (root / "src" / "a.py").write_text("a\n", encoding="utf-8")
    (root / "src" / "pkg" / "c.py").write_text("c\n", encoding="utf-8")
    (root / "build" / "out.txt").write_text("out\n", encoding="utf-8")
    (root / "notes.log").write_text("log\n", encoding="utf-8")


def _paths(records) -> list[str]:
    return [r.logical_path for r in records]


def test_directory_walk_is_depth_first_and_sorted(tmp_path: Path) -> None:
    _tree(tmp_path)
    records = iter_file_records(
        [PlainPath(tmp_path / "src")], root=tmp_path, filter_config=FilterConfig()
    )
    assert _paths(records) == ["src/a.py", "src/b.py", "src/pkg/c.py"]


def test_relative_selection_is_resolved_against_root(tmp_path: Path) -> None:
    _tree(tmp_path)
    records = list(
        iter_file_records(
            [PlainPath(Path("src/a.py"))], root=tmp_path, filter_config=FilterConfig()
        )
    )
    assert _paths(records) == ["src/a.py"]
    assert records[0].size_bytes == 2
    assert records[0].source == (tmp_path / "src" / "a.py").resolve()


def test_excluded_directory_subtree_is_pruned(tmp_path: Path) -> None:
    _tree(tmp_path)
    cfg = FilterConfig(
        use_filters=True,
        rules=(FilterRule(FilterKind.PATH, FilterAction.EXCLUDE, "build"),),
    )
    records = iter_file_records([PlainPath(tmp_path)], root=tmp_path, filter_config=cfg)
    assert "build/out.txt" not in _paths(records)


def test_ignore_file_prunes_walked_children_only(tmp_path: Path) -> None:
    _tree(tmp_path)
    (tmp_path / IGNORE_FILENAME).write_text("*.log\nbuild/\n", encoding="utf-8")
    ignore = load_ignore_spec(tmp_path, respect_gitignore=False)

    walked = _paths(
        iter_file_records(
            [PlainPath(tmp_path)],
            root=tmp_path,
            filter_config=FilterConfig(),
            ignore=ignore,
        )
    )
    assert "notes.log" not in walked
    assert "build/out.txt" not in walked
    assert "src/a.py" in walked

    explicit = _paths(
        iter_file_records(
            [PlainPath(tmp_path / "notes.log")],
            root=tmp_path,
            filter_config=FilterConfig(),
            ignore=ignore,
        )
    )
    assert explicit == ["notes.log"]


def test_gitignore_only_when_requested(tmp_path: Path) -> None:
    (tmp_path / ".gitignore").write_text("secret.txt\n", encoding="utf-8")
    assert load_ignore_spec(tmp_path, respect_gitignore=True).match_file("secret.txt")
    assert not load_ignore_spec(tmp_path, respect_gitignore=False).match_file(
        "secret.txt"
    )


def test_change_records_carry_labels(tmp_path: Path) -> None:
    _tree(tmp_path)
    selection = [
        ChangeRecord(tmp_path / "src" / "a.py", ChangeLabel.MODIFIED),
        UntrackedFile(tmp_path / "notes.log"),
        ChangeRecord(tmp_path / "gone.py", ChangeLabel.DELETED),
    ]
    records = list(
        iter_file_records(selection, root=tmp_path, filter_config=FilterConfig())
    )
    assert [(r.logical_path, r.label) for r in records] == [
        ("src/a.py", ChangeLabel.MODIFIED),
        ("notes.log", ChangeLabel.NEW),
        ("gone.py", ChangeLabel.DELETED),
    ]
    assert records[2].source is None
