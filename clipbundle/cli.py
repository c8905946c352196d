from __future__ import annotations

import argparse
import importlib.metadata as importlib_metadata
import sys
from dataclasses import dataclass, replace
from pathlib import Path

from .config import (
    ON_CONFLICT_CHOICES,
    Config,
    filter_config_from,
    limits_from,
    load_config,
)
from .decoder import decode
from .discover import load_ignore_spec
from .encoder import encode
from .filters import FilterAction, FilterConfig, FilterKind, FilterRule
from .formats import NOTHING_DECODED_MESSAGE
from .model import BundleStats, Limits, ParsedFileEntry, PlainPath, SelectionItem
from .restorer import (
    ConflictPolicy,
    RestorePlan,
    RestoreResult,
    execute_restore,
    plan_restore,
)
from .tokens import format_top_files
from .vcs import git_change_records

_PLAN_PREVIEW_LEN = 15
_CONFLICT_PREVIEW_LEN = 10
_FAILURE_PREVIEW_LEN = 5


def _clipbundle_version() -> str:
    try:
        return importlib_metadata.version("clipbundle")
    except importlib_metadata.PackageNotFoundError:
        return "0+unknown"


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="clipbundle",
        description="Pack files into one pasteable text bundle and restore them.",
    )
    p.add_argument(
        "--version",
        action="version",
        version=f"clipbundle {_clipbundle_version()}",
    )
    sub = p.add_subparsers(dest="cmd", required=True)

    # pack
    pack = sub.add_parser("pack", help="Pack files/directories into a text bundle.")
    pack.add_argument(
        "paths",
        type=Path,
        nargs="*",
        help="Files or directories to pack (default: ROOT, unless --git-changes)",
    )
    pack.add_argument(
        "--root",
        type=Path,
        default=None,
        help="Project root that header paths are relative to (default: cwd)",
    )
    pack.add_argument(
        "-o",
        "--output",
        type=Path,
        default=None,
        help="Write the bundle to this file instead of stdout",
    )
    pack.add_argument(
        "--git-changes",
        action="store_true",
        help="Pack the working-tree changes of the git repository, with labels",
    )
    pack.add_argument(
        "--header-format",
        default=None,
        help="Header template containing $FILE_PATH (default: '// file: $FILE_PATH')",
    )
    pack.add_argument("--pre-text", default=None, help="Text placed before the bundle")
    pack.add_argument("--post-text", default=None, help="Text placed after the bundle")
    count_group = pack.add_mutually_exclusive_group()
    count_group.add_argument(
        "--max-files",
        type=int,
        default=None,
        help="Stop after this many files with content (default: 30 via config)",
    )
    count_group.add_argument(
        "--no-max-files",
        action="store_true",
        help="Disable the file count limit",
    )
    pack.add_argument(
        "--max-file-kb",
        type=int,
        default=None,
        help="Replace larger files by a skip marker (<=0 disables; default: 500)",
    )
    pack.add_argument(
        "--extra-line",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Blank line after each file block (default: on via config)",
    )
    pack.add_argument(
        "--filters",
        action=argparse.BooleanOptionalAction,
        default=None,
        help=(
            "Apply include/exclude filter rules (default: off via config; "
            "on when any --include-*/--exclude-* option is given)"
        ),
    )
    pack.add_argument(
        "--include-path",
        action="append",
        default=None,
        help="Include path prefix (repeatable)",
    )
    pack.add_argument(
        "--exclude-path",
        action="append",
        default=None,
        help="Exclude path prefix (repeatable)",
    )
    pack.add_argument(
        "--include-pattern",
        action="append",
        default=None,
        help="Include filename wildcard, e.g. '*.py' (repeatable)",
    )
    pack.add_argument(
        "--exclude-pattern",
        action="append",
        default=None,
        help="Exclude filename wildcard (repeatable)",
    )
    pack.add_argument(
        "--respect-gitignore",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Respect .gitignore while walking directories (default: off via config)",
    )
    pack.add_argument(
        "--encoding-errors",
        choices=["replace", "strict"],
        default=None,
        help="UTF-8 decode policy for input files (default: replace via config)",
    )
    pack.add_argument(
        "--summary",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Print the copy summary and statistics (default: on via config)",
    )
    pack.add_argument(
        "--top-files-len",
        type=int,
        default=0,
        help="Also print this many largest files by estimated tokens",
    )
    pack.add_argument(
        "--print-files",
        action="store_true",
        help="Debug: print packed files",
    )
    pack.add_argument(
        "--print-skipped",
        action="store_true",
        help="Debug: print skipped files with reasons",
    )

    # unpack
    unpack = sub.add_parser("unpack", help="Restore files from a text bundle.")
    unpack.add_argument(
        "bundle",
        nargs="?",
        default="-",
        help="Bundle file to read ('-' or omitted: stdin)",
    )
    unpack.add_argument(
        "--root",
        type=Path,
        default=None,
        help="Directory to restore into (default: cwd)",
    )
    unpack.add_argument(
        "--on-conflict",
        choices=list(ON_CONFLICT_CHOICES),
        default=None,
        help="What to do with files that already exist (default: abort via config)",
    )
    unpack.add_argument(
        "--dry-run",
        action="store_true",
        help="Show what would be written and deleted without touching disk",
    )
    unpack.add_argument(
        "--header-format",
        default=None,
        help="Header template the bundle was written with",
    )
    unpack.add_argument(
        "--max-workers",
        type=int,
        default=None,
        help="Thread pool size for writes (<=0: auto)",
    )

    # list
    lst = sub.add_parser("list", help="List the entries of a bundle without writing.")
    lst.add_argument(
        "bundle",
        nargs="?",
        default="-",
        help="Bundle file to read ('-' or omitted: stdin)",
    )
    lst.add_argument(
        "--header-format",
        default=None,
        help="Header template the bundle was written with",
    )
    lst.add_argument(
        "--root",
        type=Path,
        default=None,
        help="Directory whose config is used (default: cwd)",
    )
    return p


@dataclass(frozen=True)
class PackOptions:
    header_format: str
    pre_text: str
    post_text: str
    limits: Limits
    extra_line: bool
    filter_config: FilterConfig
    respect_gitignore: bool
    encoding_errors: str
    show_summary: bool


def _cli_rules(args: argparse.Namespace) -> list[FilterRule]:
    rules: list[FilterRule] = []
    for values, kind, action in (
        (args.include_path, FilterKind.PATH, FilterAction.INCLUDE),
        (args.exclude_path, FilterKind.PATH, FilterAction.EXCLUDE),
        (args.include_pattern, FilterKind.PATTERN, FilterAction.INCLUDE),
        (args.exclude_pattern, FilterKind.PATTERN, FilterAction.EXCLUDE),
    ):
        for value in values or ():
            rules.append(FilterRule(kind=kind, action=action, value=value))
    return rules


def _resolve_pack_options(cfg: Config, args: argparse.Namespace) -> PackOptions:
    if args.no_max_files:
        cfg = replace(cfg, set_max_file_count=False)
    elif args.max_files is not None:
        cfg = replace(cfg, set_max_file_count=True, file_count_limit=args.max_files)
    if args.max_file_kb is not None:
        cfg = replace(cfg, max_file_size_kb=args.max_file_kb)

    filter_config = filter_config_from(cfg)
    extra_rules = _cli_rules(args)
    if extra_rules:
        filter_config = replace(
            filter_config,
            use_filters=True,
            rules=filter_config.rules + tuple(extra_rules),
        )
    if args.filters is not None:
        filter_config = replace(filter_config, use_filters=bool(args.filters))

    return PackOptions(
        header_format=(
            cfg.header_format if args.header_format is None else args.header_format
        ),
        pre_text=cfg.pre_text if args.pre_text is None else args.pre_text,
        post_text=cfg.post_text if args.post_text is None else args.post_text,
        limits=limits_from(cfg),
        extra_line=(
            cfg.add_extra_line_between_files
            if args.extra_line is None
            else bool(args.extra_line)
        ),
        filter_config=filter_config,
        respect_gitignore=(
            cfg.respect_gitignore
            if args.respect_gitignore is None
            else bool(args.respect_gitignore)
        ),
        encoding_errors=args.encoding_errors or cfg.encoding_errors,
        show_summary=(
            cfg.show_copy_notification if args.summary is None else bool(args.summary)
        ),
    )


def _resolve_root(parser: argparse.ArgumentParser, cmd: str, root: Path | None) -> Path:
    resolved = (root if root is not None else Path.cwd()).resolve()
    if not resolved.is_dir():
        parser.error(f"{cmd}: root is not a directory: {root}")
    return resolved


def _read_bundle(parser: argparse.ArgumentParser, cmd: str, source: str) -> str:
    if source == "-":
        return sys.stdin.read()
    try:
        return Path(source).read_text(encoding="utf-8", errors="replace")
    except OSError as e:
        parser.error(f"{cmd}: cannot read {source}: {e.strerror or e}")


def format_copy_message(stats: BundleStats) -> str:
    files = stats.file_count
    deleted = stats.deleted_count
    skipped = stats.skipped_by_size_count
    if deleted:
        if not files:
            return (
                "1 deleted file marker copied."
                if deleted == 1
                else f"{deleted} deleted file markers copied."
            )
        return (
            f"{files + deleted} files copied "
            f"({files} with content, {deleted} deleted)."
        )
    if skipped:
        noun = "1 file" if files == 1 else f"{files} files"
        return f"{noun} copied ({skipped} skipped: size exceeded)."
    return "1 file copied." if files == 1 else f"{files} files copied."


def _print_copy_summary(stats: BundleStats) -> None:
    print("", file=sys.stderr)
    print(f"Total characters: {stats.total_chars}", file=sys.stderr)
    print(f"Total lines: {stats.total_lines}", file=sys.stderr)
    print(f"Total words: {stats.total_words}", file=sys.stderr)
    print(f"Estimated tokens: {stats.estimated_tokens}", file=sys.stderr)
    print(format_copy_message(stats), file=sys.stderr)


def _emit_skip_warning(skipped: list[tuple[str, str]]) -> None:
    if not skipped:
        return
    preview = ", ".join(f"{rel} ({reason})" for rel, reason in skipped[:5])
    suffix = "" if len(skipped) <= 5 else ", ..."
    print(
        f"Warning: skipped {len(skipped)} file(s): {preview}{suffix}",
        file=sys.stderr,
    )


def _print_file_list(*, title: str, items: list[str]) -> None:
    print(f"Debug: {title} ({len(items)}):", file=sys.stderr)
    for item in items:
        print(f"  - {item}", file=sys.stderr)


def _preview(
    items: list[str], *, limit: int, prefix: str, more_indent: str
) -> list[str]:
    lines = [f"{prefix}{item}" for item in items[:limit]]
    if len(items) > limit:
        lines.append(f"{more_indent}... and {len(items) - limit} more")
    return lines


def format_restore_plan(plan: RestorePlan) -> str:
    sections: list[str] = []
    creates = [op.path or op.raw_path for op in plan.writes]
    if creates:
        lines = [f"Files to CREATE ({len(creates)}):"]
        lines += _preview(
            creates, limit=_PLAN_PREVIEW_LEN, prefix="  + ", more_indent="  "
        )
        sections.append("\n".join(lines))
    deletes = plan.existing_deletions
    if deletes:
        lines = [f"Files to DELETE ({len(deletes)}):"]
        lines += _preview(
            deletes, limit=_PLAN_PREVIEW_LEN, prefix="  - ", more_indent="  "
        )
        sections.append("\n".join(lines))
    missing = plan.missing_deletions
    if missing:
        sections.append(
            f"({len(missing)} deleted file(s) not found in project - skipped)"
        )
    if plan.placeholders:
        sections.append(
            f"({len(plan.placeholders)} size-skipped placeholder(s) not restored: "
            + ", ".join(plan.placeholders[:5])
            + (", ..." if len(plan.placeholders) > 5 else "")
            + ")"
        )
    return "\n\n".join(sections)


def format_conflicts(conflicts: list[str]) -> str:
    lines = [f"The following {len(conflicts)} file(s) already exist:", ""]
    lines += _preview(
        conflicts, limit=_CONFLICT_PREVIEW_LEN, prefix="• ", more_indent=""
    )
    return "\n".join(lines)


def _nothing_to_do_message(entries: list[ParsedFileEntry], plan: RestorePlan) -> str:
    if not plan.deletes:
        return (
            NOTHING_DECODED_MESSAGE if not entries else "No actionable files in bundle."
        )
    missing = plan.missing_deletions
    return (
        f"All {len(missing)} file(s) marked as [DELETED] were not found in the "
        "project.\nNothing to do."
    )


def format_restore_result(result: RestoreResult) -> list[str]:
    lines: list[str] = []
    parts: list[str] = []
    if result.created_count:
        skip_note = f" ({result.skipped_count} skipped)" if result.skipped_count else ""
        parts.append(f"Created {result.created_count} file(s){skip_note}")
    elif result.skipped_count:
        parts.append(f"Skipped {result.skipped_count} existing file(s)")
    if result.deleted_count:
        parts.append(f"Deleted {result.deleted_count} file(s)")
    if parts:
        lines.append(", ".join(parts))
    if result.failures:
        lines.append(f"Failed: {len(result.failures)} operation(s):")
        for path, reason in result.failures[:_FAILURE_PREVIEW_LEN]:
            lines.append(f"  {path}: {reason}")
    return lines


def _ask_overwrite(path: str) -> bool:
    try:
        answer = input(f"Overwrite {path}? [y/N] ")
    except EOFError:
        return False
    return answer.strip().lower() in {"y", "yes"}


def _print_top_level_help(parser: argparse.ArgumentParser) -> None:
    parser.print_help()
    print()
    print("Quick start examples:")
    print("  clipbundle pack src/ README.md -o bundle.txt")
    print("  clipbundle pack --git-changes | pbcopy")
    print("  clipbundle list bundle.txt")
    print("  clipbundle unpack bundle.txt --root out/ --on-conflict skip")
    print("  pbpaste | clipbundle unpack - --dry-run")
    print()
    print("Header notes:")
    print("  Every file starts with a header line such as '// file: src/app.py'.")
    print("  Change labels ([NEW] [MODIFIED] [DELETED] [MOVED]) may prefix the path;")
    print("  unpack deletes files whose header carries [DELETED].")


def _run_pack(parser: argparse.ArgumentParser, args: argparse.Namespace) -> None:
    root = _resolve_root(parser, "pack", args.root)
    cfg = load_config(root)
    options = _resolve_pack_options(cfg, args)

    selection: list[SelectionItem] = []
    if args.git_changes:
        try:
            selection.extend(git_change_records(root))
        except RuntimeError as e:
            parser.error(f"pack: {e}")
    selection.extend(PlainPath(p) for p in args.paths)
    if not args.paths and not args.git_changes:
        selection.append(PlainPath(root))

    ignore = load_ignore_spec(root, respect_gitignore=options.respect_gitignore)
    result = encode(
        selection,
        root=root,
        filter_config=options.filter_config,
        header_template=options.header_format,
        pre_text=options.pre_text,
        post_text=options.post_text,
        limits=options.limits,
        extra_line_between_files=options.extra_line,
        encoding_errors=options.encoding_errors,
        ignore=ignore,
    )

    if args.output is not None:
        args.output.parent.mkdir(parents=True, exist_ok=True)
        args.output.write_text(result.text, encoding="utf-8")
        print(f"Wrote {args.output}.", file=sys.stderr)
    else:
        sys.stdout.write(result.text)
        if not result.text.endswith("\n"):
            sys.stdout.write("\n")

    if args.print_files:
        _print_file_list(title="packed files", items=result.included)
    skipped = [(s.path, s.reason) for s in result.skipped]
    if args.print_skipped:
        _print_file_list(
            title="skipped files",
            items=[f"{rel} ({reason})" for rel, reason in skipped],
        )
    else:
        _emit_skip_warning(skipped)

    stats = result.stats
    if stats.limit_reached and options.limits.max_file_count is not None:
        print(
            "File Limit Reached: The file limit of "
            f"{options.limits.max_file_count} files was reached.",
            file=sys.stderr,
        )
    if options.show_summary:
        _print_copy_summary(stats)
    if args.top_files_len and result.file_tokens:
        print(format_top_files(result.file_tokens, args.top_files_len), file=sys.stderr)


def _run_unpack(parser: argparse.ArgumentParser, args: argparse.Namespace) -> None:
    root = _resolve_root(parser, "unpack", args.root)
    cfg = load_config(root)
    policy = ConflictPolicy(args.on_conflict or cfg.on_conflict)
    if policy == ConflictPolicy.ASK and args.bundle == "-" and not args.dry_run:
        parser.error("unpack: --on-conflict ask needs the bundle in a file, not stdin")

    text = _read_bundle(parser, "unpack", args.bundle)
    entries = decode(text, args.header_format or cfg.header_format)
    plan = plan_restore(entries, root)
    if plan.is_empty:
        print(_nothing_to_do_message(entries, plan), file=sys.stderr)
        return

    print(format_restore_plan(plan), file=sys.stderr)
    if plan.conflicts:
        print("", file=sys.stderr)
        print(format_conflicts(plan.conflicts), file=sys.stderr)

    max_workers = cfg.max_workers if args.max_workers is None else args.max_workers
    result = execute_restore(
        plan,
        root,
        policy,
        decide=_ask_overwrite if policy == ConflictPolicy.ASK else None,
        dry_run=bool(args.dry_run),
        max_workers=max_workers,
    )
    print("", file=sys.stderr)
    if result.aborted:
        print(
            f"Aborted: {len(plan.conflicts)} existing file(s) would be overwritten; "
            "re-run with --on-conflict overwrite|skip|ask.",
            file=sys.stderr,
        )
        raise SystemExit(1)
    for line in format_restore_result(result):
        print(line, file=sys.stderr)
    if args.dry_run:
        print("Dry run: nothing was written.", file=sys.stderr)
    if result.failures:
        raise SystemExit(1)


def _run_list(parser: argparse.ArgumentParser, args: argparse.Namespace) -> None:
    root = _resolve_root(parser, "list", args.root)
    cfg = load_config(root)
    text = _read_bundle(parser, "list", args.bundle)
    entries = decode(text, args.header_format or cfg.header_format)
    if not entries:
        print(NOTHING_DECODED_MESSAGE, file=sys.stderr)
        return
    for entry in entries:
        tags = " ".join(label.tag for label in entry.labels)
        line_count = len(entry.content.split("\n")) if entry.content else 0
        shown = entry.path or f"<invalid: {entry.raw_path!r}>"
        prefix = f"{tags} " if tags else ""
        print(f"{prefix}{shown} ({line_count} lines)")
    print(f"{len(entries)} entr{'y' if len(entries) == 1 else 'ies'}.", file=sys.stderr)


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    raw_argv = list(sys.argv[1:] if argv is None else argv)
    if not raw_argv:
        _print_top_level_help(parser)
        return

    args = parser.parse_args(raw_argv)

    if args.cmd == "pack":
        _run_pack(parser, args)
    elif args.cmd == "unpack":
        _run_unpack(parser, args)
    elif args.cmd == "list":
        _run_list(parser, args)


if __name__ == "__main__":  # pragma: no cover
    main()
