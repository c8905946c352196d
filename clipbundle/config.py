from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Literal

from .filters import FilterConfig, FilterRule, rule_from_mapping
from .formats import DEFAULT_HEADER_FORMAT
from .model import Limits

try:
    import tomllib  # py311+
except ModuleNotFoundError:  # pragma: no cover
    import tomli as tomllib  # pyright: ignore[reportMissingImports]

CONFIG_FILENAMES: tuple[str, ...] = (".clipbundle.toml", "clipbundle.toml")
PYPROJECT_FILENAME = "pyproject.toml"

ON_CONFLICT_CHOICES: tuple[str, ...] = ("overwrite", "skip", "abort", "ask")


@dataclass
class Config:
    header_format: str = DEFAULT_HEADER_FORMAT
    pre_text: str = ""
    post_text: str = ""
    # Stop collecting once file_count_limit files have been emitted.
    set_max_file_count: bool = True
    file_count_limit: int = 30
    # <=0 disables the per-file size limit.
    max_file_size_kb: int = 500
    add_extra_line_between_files: bool = True
    show_copy_notification: bool = True
    use_filters: bool = False
    use_include_filters: bool = True
    use_exclude_filters: bool = True
    filter_rules: list[FilterRule] = field(default_factory=list)
    respect_gitignore: bool = False
    on_conflict: Literal["overwrite", "skip", "abort", "ask"] = "abort"
    # - "replace": keep going with U+FFFD for invalid bytes (default)
    # - "strict": skip files that are not valid UTF-8
    encoding_errors: Literal["replace", "strict"] = "replace"
    # Worker pool size for restore writes. <=0 means auto.
    max_workers: int = 0


def _find_config_path(root: Path) -> Path | None:
    root = root.resolve()
    for name in CONFIG_FILENAMES:
        p = root / name
        if p.exists():
            return p
    pyproject = root / PYPROJECT_FILENAME
    if pyproject.exists():
        return pyproject
    return None


def _extract_section(data: Any, *, from_pyproject: bool) -> dict[str, Any]:
    section: dict[str, Any] = {}
    if not isinstance(data, dict):
        return section

    if not from_pyproject:
        # Preferred for dedicated config files: [clipbundle]
        cb = data.get("clipbundle")
        if isinstance(cb, dict):
            return cb

    tool = data.get("tool")
    if isinstance(tool, dict):
        cb2 = tool.get("clipbundle")
        if isinstance(cb2, dict):
            return cb2

    return section


def _int_or(value: Any, default: int) -> int:
    if isinstance(value, bool):
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _rules_from(raw: Any) -> list[FilterRule]:
    if not isinstance(raw, list):
        return []
    rules: list[FilterRule] = []
    for item in raw:
        if isinstance(item, dict):
            rule = rule_from_mapping(item)
            if rule is not None:
                rules.append(rule)
    return rules


def load_config(root: Path) -> Config:
    cfg_path = _find_config_path(root)
    if cfg_path is None:
        return Config()

    data = tomllib.loads(cfg_path.read_text(encoding="utf-8"))
    section = _extract_section(data, from_pyproject=cfg_path.name == PYPROJECT_FILENAME)
    cfg = Config()

    header = section.get("header_format", cfg.header_format)
    if isinstance(header, str) and header.strip():
        cfg.header_format = header
    for key in ("pre_text", "post_text"):
        text = section.get(key)
        if isinstance(text, str):
            setattr(cfg, key, text)

    for key in (
        "set_max_file_count",
        "add_extra_line_between_files",
        "show_copy_notification",
        "use_filters",
        "use_include_filters",
        "use_exclude_filters",
        "respect_gitignore",
    ):
        setattr(cfg, key, bool(section.get(key, getattr(cfg, key))))

    cfg.file_count_limit = _int_or(
        section.get("file_count_limit", cfg.file_count_limit), cfg.file_count_limit
    )
    cfg.max_file_size_kb = _int_or(
        section.get("max_file_size_kb", cfg.max_file_size_kb), cfg.max_file_size_kb
    )
    cfg.max_workers = _int_or(
        section.get("max_workers", cfg.max_workers), cfg.max_workers
    )

    if "filter_rules" in section:
        cfg.filter_rules = _rules_from(section.get("filter_rules"))

    on_conflict = section.get("on_conflict", cfg.on_conflict)
    if isinstance(on_conflict, str):
        on_conflict = on_conflict.strip().lower()
        if on_conflict in ON_CONFLICT_CHOICES:
            cfg.on_conflict = on_conflict  # type: ignore[assignment]

    encoding_errors = section.get("encoding_errors", cfg.encoding_errors)
    if isinstance(encoding_errors, str):
        encoding_errors = encoding_errors.strip().lower()
        if encoding_errors in {"replace", "strict"}:
            cfg.encoding_errors = encoding_errors  # type: ignore[assignment]

    return cfg


def filter_config_from(cfg: Config) -> FilterConfig:
    return FilterConfig(
        use_filters=cfg.use_filters,
        use_include_filters=cfg.use_include_filters,
        use_exclude_filters=cfg.use_exclude_filters,
        rules=tuple(cfg.filter_rules),
    )


def limits_from(cfg: Config) -> Limits:
    max_count = cfg.file_count_limit if cfg.set_max_file_count else None
    if max_count is not None and max_count <= 0:
        max_count = None
    max_size = cfg.max_file_size_kb * 1024 if cfg.max_file_size_kb > 0 else None
    return Limits(max_file_count=max_count, max_file_size_bytes=max_size)
