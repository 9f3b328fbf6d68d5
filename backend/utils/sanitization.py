"""Input sanitization utilities."""

import re

_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f-\x9f]")
_WHITESPACE = re.compile(r"\s+")


def sanitize_filename(filename: str | None, max_length: int = 255) -> str:
    """Sanitize an uploaded statement filename for safe logging and audit.

    Prevents:
    - Path traversal (../, etc.)
    - Log injection (newlines, control characters)
    - Excessively long filenames

    Args:
        filename: The raw filename from the multipart upload
        max_length: Maximum allowed filename length

    Returns:
        A safe filename string
    """
    if not filename:
        return "unknown"

    safe_name = filename.replace("\\", "/").split("/")[-1]
    safe_name = safe_name.replace("..", "")
    safe_name = _CONTROL_CHARS.sub("", safe_name)

    if len(safe_name) > max_length:
        # Preserve extension if present
        if "." in safe_name:
            name, ext = safe_name.rsplit(".", 1)
            ext = ext[:10]
            safe_name = name[: max_length - len(ext) - 1] + "." + ext
        else:
            safe_name = safe_name[:max_length]

    return safe_name or "unknown"


def sanitize_label(value: str | None, max_length: int = 128) -> str:
    """Clean a free-text label such as a provider name.

    Control characters are dropped, runs of whitespace collapse to a
    single space and the result is trimmed to ``max_length``.
    """
    if not value:
        return ""

    cleaned = _CONTROL_CHARS.sub(" ", value)
    cleaned = _WHITESPACE.sub(" ", cleaned).strip()
    return cleaned[:max_length]
