from __future__ import annotations

import re
from dataclasses import dataclass

# Structural punctuation counted on top of words; a cheap proxy for a tokenizer.
_PUNCTUATION_RE = re.compile(r"[;{}()\[\],]")


def count_words(text: str) -> int:
    return len(text.split())


def count_lines(text: str) -> int:
    return text.count("\n") + 1 if text else 0


def estimate_tokens(text: str) -> int:
    return count_words(text) + len(_PUNCTUATION_RE.findall(text))


@dataclass(frozen=True)
class TextMeasure:
    chars: int
    lines: int
    words: int
    tokens: int


def measure_text(text: str) -> TextMeasure:
    return TextMeasure(
        chars=len(text),
        lines=count_lines(text),
        words=count_words(text),
        tokens=estimate_tokens(text),
    )


def format_top_files(file_tokens: dict[str, int], top_n: int) -> str:
    if top_n <= 0:
        return ""
    items = sorted(file_tokens.items(), key=lambda kv: kv[1], reverse=True)[:top_n]
    lines = ["Top files by estimated tokens:"]
    for i, (path, n) in enumerate(items, 1):
        lines.append(f"{i:>2}. {path} ({n} tokens)")
    return "\n".join(lines)
