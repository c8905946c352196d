from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from functools import lru_cache

from .paths import is_absolute_like


class FilterKind(str, Enum):
    PATH = "path"
    PATTERN = "pattern"  # file name wildcard or regex


class FilterAction(str, Enum):
    INCLUDE = "include"
    EXCLUDE = "exclude"


@dataclass(frozen=True)
class FilterRule:
    kind: FilterKind = FilterKind.PATH
    action: FilterAction = FilterAction.INCLUDE
    value: str = ""
    enabled: bool = True


@dataclass(frozen=True)
class FilterConfig:
    use_filters: bool = False
    use_include_filters: bool = True
    use_exclude_filters: bool = True
    rules: tuple[FilterRule, ...] = field(default_factory=tuple)


@lru_cache(maxsize=256)
def _compile_name_pattern(pattern: str) -> re.Pattern[str] | None:
    if "*" in pattern or "?" in pattern:
        regex = pattern.replace(".", r"\.").replace("*", ".*").replace("?", ".")
    else:
        regex = pattern
    try:
        return re.compile(regex)
    except re.error:
        return None


def matches_pattern(name: str, pattern: str) -> bool:
    """Match a file name against a wildcard (``*.py``) or a full-match regex.

    A pattern that is not a valid regex falls back to a substring test.
    """
    compiled = _compile_name_pattern(pattern)
    if compiled is None:
        return pattern in name
    return compiled.fullmatch(name) is not None


def _normalize_rule_path(value: str) -> str:
    v = value.strip().replace("\\", "/")
    while v.startswith("./"):
        v = v[2:]
    return v


def _path_rule_matches(
    rule_value: str,
    rel_path: str,
    abs_path: str | None,
    *,
    ancestor_ok: bool = False,
) -> bool:
    value = _normalize_rule_path(rule_value)
    if is_absolute_like(value):
        if abs_path is None:
            return False
        candidate = abs_path
    else:
        candidate = rel_path
    if candidate == value or candidate.startswith(value):
        return True
    # A directory above an include target must stay walkable.
    return ancestor_ok and value.startswith(candidate)


def _rule_matches(
    rule: FilterRule,
    rel_path: str,
    is_directory: bool,
    abs_path: str | None,
) -> bool:
    if rule.kind == FilterKind.PATTERN:
        name = rel_path.rsplit("/", 1)[-1]
        return matches_pattern(name, rule.value.strip())
    ancestor_ok = is_directory and rule.action == FilterAction.INCLUDE
    return _path_rule_matches(rule.value, rel_path, abs_path, ancestor_ok=ancestor_ok)


def _applicable(rules: list[FilterRule], is_directory: bool) -> list[FilterRule]:
    if is_directory:
        return [r for r in rules if r.kind == FilterKind.PATH]
    return rules


def is_eligible(
    rel_path: str,
    is_directory: bool,
    config: FilterConfig,
    *,
    abs_path: str | None = None,
) -> bool:
    """Decide whether a file (or directory subtree) may enter a bundle.

    Excludes are evaluated before includes; includes only restrict when at
    least one enabled include rule applies to this kind of item. Directories
    are judged by PATH rules alone.
    """
    if not config.use_filters:
        return True

    enabled = [r for r in config.rules if r.enabled and r.value.strip()]
    includes = _applicable(
        [r for r in enabled if r.action == FilterAction.INCLUDE], is_directory
    )
    excludes = _applicable(
        [r for r in enabled if r.action == FilterAction.EXCLUDE], is_directory
    )

    if config.use_exclude_filters and any(
        _rule_matches(r, rel_path, is_directory, abs_path) for r in excludes
    ):
        return False

    if config.use_include_filters and includes:
        return any(_rule_matches(r, rel_path, is_directory, abs_path) for r in includes)

    return True


def rule_from_mapping(raw: dict) -> FilterRule | None:
    """Build a rule from a config table; unknown kinds/actions yield ``None``."""
    try:
        kind = FilterKind(str(raw.get("type", raw.get("kind", "path"))).lower())
        action = FilterAction(str(raw.get("action", "include")).lower())
    except ValueError:
        return None
    value = raw.get("value", "")
    if not isinstance(value, str):
        return None
    return FilterRule(
        kind=kind,
        action=action,
        value=value,
        enabled=bool(raw.get("enabled", True)),
    )
