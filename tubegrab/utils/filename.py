import re

UNSAFE_CHARS_RE = re.compile(r"[^\w\s-]", re.ASCII)
WHITESPACE_RE = re.compile(r"\s+")

FALLBACK_STEM = "video"


def sanitize_title(title: str, max_length: int = 100) -> str:
    """Turn a video title into a header-safe file stem.

    Anything outside word characters, whitespace and hyphens is dropped,
    whitespace runs become single underscores and the result is capped.
    """
    name = UNSAFE_CHARS_RE.sub("", title or "").strip()
    name = WHITESPACE_RE.sub("_", name)
    return name[:max_length] or FALLBACK_STEM


def attachment_filename(title: str, ext: str) -> str:
    return f"{sanitize_title(title)}.{ext}"
