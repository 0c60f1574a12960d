"""
Helper Utilities Module.

This module provides common utility functions used throughout the
AP Assist pipeline. Functions here should be generic and reusable
across different modules.

Functions:
    - ensure_directory: Create directory if it doesn't exist
    - generate_timestamp: Generate formatted timestamps
    - iso_timestamp: ISO-8601 UTC timestamp with millisecond precision
    - filename_timestamp: ISO-8601 timestamp safe for file names
    - safe_filename: Sanitize filenames for the document store
    - store_filename: Timestamp-prefixed, sanitized store filename
    - truncate: Bound the length of diagnostic text
    - slugify: Lowercase underscore identifier from a display name
"""

import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Union


def ensure_directory(path: Union[str, Path]) -> Path:
    """
    Ensure a directory exists, creating it if necessary.

    Args:
        path: Directory path to ensure exists.

    Returns:
        Path object pointing to the directory.

    Raises:
        PermissionError: If directory cannot be created due to permissions.
    """
    dir_path = Path(path)
    dir_path.mkdir(parents=True, exist_ok=True)
    return dir_path


def generate_timestamp(format_str: str = "%Y%m%d_%H%M%S") -> str:
    """
    Generate a formatted local timestamp string.

    Example:
        >>> generate_timestamp()
        "20260121_143022"
    """
    return datetime.now().strftime(format_str)


def iso_timestamp(now: Optional[datetime] = None) -> str:
    """
    Format a UTC timestamp as ISO-8601 with milliseconds and a Z suffix.

    Args:
        now: Moment to format. Defaults to the current UTC time.

    Returns:
        Timestamp such as "2026-01-21T14:30:22.123Z".
    """
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is not None:
        now = now.astimezone(timezone.utc)
    return now.strftime("%Y-%m-%dT%H:%M:%S.") + f"{now.microsecond // 1000:03d}Z"


def filename_timestamp(now: Optional[datetime] = None) -> str:
    """
    ISO-8601 timestamp with colons and periods replaced by hyphens.

    Example:
        >>> filename_timestamp(datetime(2026, 1, 21, 14, 30, 22, 123000))
        "2026-01-21T14-30-22-123Z"
    """
    return re.sub(r"[:.]", "-", iso_timestamp(now))


def safe_filename(filename: str, replacement: str = "_") -> str:
    """
    Sanitize a filename, keeping only letters, digits, dots and hyphens.

    Args:
        filename: Original filename.
        replacement: Character to replace invalid characters with.

    Returns:
        Sanitized filename.

    Example:
        >>> safe_filename("credit memo #12.pdf")
        "credit_memo__12.pdf"
    """
    sanitized = re.sub(r"[^A-Za-z0-9.\-]", replacement, filename or "")
    return sanitized or "unnamed"


def store_filename(
    original: str,
    extension: str = "",
    now: Optional[datetime] = None
) -> str:
    """
    Build a unique, chronologically sortable name for the document store.

    The name is the filename timestamp, an underscore, and the sanitized
    base name of the original file. When ``extension`` is given it replaces
    the original extension.

    Args:
        original: Original filename (e.g. the email attachment name).
        extension: Replacement extension including the dot, e.g. ".json".
        now: Moment used for the timestamp prefix.

    Returns:
        Store filename.

    Example:
        >>> store_filename("memo 1.pdf", ".json", datetime(2026, 1, 1))
        "2026-01-01T00-00-00-000Z_memo_1.json"
    """
    path = Path(original or "unnamed")
    if extension:
        name = f"{path.stem}{extension}"
    else:
        name = path.name
    return f"{filename_timestamp(now)}_{safe_filename(name)}"


def truncate(text: Optional[str], limit: int, suffix: str = "") -> str:
    """
    Cut ``text`` to at most ``limit`` characters, appending ``suffix`` if cut.
    """
    if not text:
        return ""
    if len(text) <= limit:
        return text
    return text[:limit] + suffix


def slugify(value: str) -> str:
    """
    Lowercase identifier with runs of other characters collapsed to "_".

    Example:
        >>> slugify("Example Parts - Vendor Credit")
        "example_parts_vendor_credit"
    """
    return re.sub(r"[^a-z0-9]+", "_", (value or "").lower()).strip("_")


def format_file_size(size_bytes: int) -> str:
    """
    Format file size in human-readable format.

    Example:
        >>> format_file_size(1536)
        "1.5 KB"
    """
    size = float(size_bytes)
    for unit in ['B', 'KB', 'MB', 'GB']:
        if size < 1024.0:
            return f"{size:.1f} {unit}"
        size /= 1024.0
    return f"{size:.1f} TB"
