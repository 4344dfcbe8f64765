from .filename import attachment_filename, sanitize_title
from .formatting import format_count, format_duration, format_megabytes

__all__ = [
    "attachment_filename",
    "format_count",
    "format_duration",
    "format_megabytes",
    "sanitize_title",
]
