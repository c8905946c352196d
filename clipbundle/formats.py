from __future__ import annotations

PATH_PLACEHOLDER = "$FILE_PATH"
DEFAULT_HEADER_FORMAT = f"// file: {PATH_PLACEHOLDER}"

SIZE_SKIP_MARKER = "// File skipped: size exceeds limit ({size} bytes)"
DELETED_MARKER = "// This file has been deleted in this change"

RESERVED_FILENAME_CHARS = '<>:"|?*'

NOTHING_DECODED_MESSAGE = (
    "No files found in clipboard content. Make sure the content was copied "
    "using clipbundle (or uses `// file: <path>` headers)."
)
