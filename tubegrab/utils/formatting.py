from typing import Optional


def format_duration(seconds: Optional[int]) -> str:
    """45 -> "0:45", 125 -> "2:05", 3661 -> "1:01:01"."""
    seconds = int(seconds or 0)
    hours, rest = divmod(seconds, 3600)
    minutes, secs = divmod(rest, 60)

    if hours > 0:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"


def format_count(num: int) -> str:
    """950 -> "950", 1500 -> "1.5K", 2_300_000 -> "2.3M"."""
    if num >= 1_000_000:
        return f"{num / 1_000_000:.1f}M"
    if num >= 1_000:
        return f"{num / 1_000:.1f}K"
    return str(num)


def format_megabytes(size_mb: int) -> str:
    return f"~{size_mb} MB"
