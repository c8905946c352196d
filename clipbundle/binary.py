from __future__ import annotations

from pathlib import Path

BINARY_EXTENSIONS: frozenset[str] = frozenset(
    {
        # native code / archives
        "so", "dll", "dylib", "exe", "bin", "o", "a", "lib", "class", "jar",
        "war", "pyc", "pyo", "whl", "zip", "gz", "tgz", "bz2", "xz", "7z",
        "rar", "tar",
        # data stores
        "dat", "db", "sqlite", "sqlite3",
        # media
        "png", "jpg", "jpeg", "gif", "bmp", "ico", "webp", "tiff", "psd",
        "mp3", "wav", "ogg", "flac", "mp4", "mov", "avi", "mkv", "webm",
        # documents / fonts
        "pdf", "doc", "docx", "xls", "xlsx", "ppt", "pptx", "ttf", "otf",
        "woff", "woff2", "eot",
    }
)  # fmt: skip


def has_binary_extension(path: Path) -> bool:
    return path.suffix.lower().lstrip(".") in BINARY_EXTENSIONS


def is_likely_binary(data: bytes) -> bool:
    if not data:
        return False
    if b"\x00" in data:
        return True

    sample = data[:4096]
    text_whitespace = {9, 10, 12, 13}
    suspicious = 0
    for b in sample:
        if b in text_whitespace:
            continue
        if 32 <= b <= 126:
            continue
        if 128 <= b <= 255:
            # UTF-8 / extended bytes are allowed.
            continue
        suspicious += 1
    return suspicious / len(sample) > 0.30
