"""
This module contains helper functions for formatting values and file names.
They are used in log messages (durations, sizes) and when naming output files.
"""

import os
import re
from datetime import timedelta
from pathlib import Path
from typing import Optional

from loguru import logger

from ..config.common import INVALID_FILENAME_CHARACTERS_REGEX, URL_REGEX

_INVALID_FILENAME_CHARS = re.compile(INVALID_FILENAME_CHARACTERS_REGEX)
_URL_PATTERN = re.compile(URL_REGEX)


def format_timedelta(td_object: Optional[timedelta]) -> str:
    """
    Formats a timedelta object into a "HH:MM:SS" string.

    Returns "--:--:--" if the input is not a timedelta, which is how an unknown
    remaining time is displayed.
    """
    if not isinstance(td_object, timedelta):
        return "--:--:--"

    total_seconds = max(0, int(td_object.total_seconds()))
    hours, remainder = divmod(total_seconds, 3600)
    minutes, seconds = divmod(remainder, 60)
    return f"{hours:02}:{minutes:02}:{seconds:02}"


def formatted_size(size_bytes: int) -> str:
    """
    Converts a size in bytes to a human-readable string (e.g. "1.50 KB").

    Whole numbers drop their ".00" ("2 MB").
    """
    if size_bytes <= 0:
        return "0 B"

    units = ["B", "KB", "MB", "GB", "TB", "PB"]
    size = float(size_bytes)
    for unit in units:
        if size < 1024.0:
            if unit == "B":
                return f"{int(size)} {unit}"
            return f"{size:.2f} {unit}".replace(".00", "")
        size /= 1024.0
    return f"{size:.2f} {units[-1]}".replace(".00", "")


def formatted_bitrate(bits_per_second: float) -> str:
    """Formats a bitrate as kbps, e.g. 2_500_000 -> "2500 kbps"."""
    return f"{int(bits_per_second // 1000)} kbps"


def sanitize_filename(name: str, replacement: str = "_") -> str:
    """Replaces characters that are invalid in file names on common filesystems."""
    cleaned = _INVALID_FILENAME_CHARS.sub(replacement, name).strip().rstrip(".")
    return cleaned or "output"


def render_output_name(template: str, stem: str, ext: str, job_id: str) -> str:
    """
    Builds an output file name from a preset's name template.

    Supported placeholders are {stem}, {ext} (with leading dot) and {job_id}.
    If the template has no {ext}, the extension is appended.
    """
    try:
        name = template.format(stem=stem, ext=ext, job_id=job_id)
    except (KeyError, IndexError, ValueError) as e:
        logger.warning(f"Invalid name template {template!r} ({e}). Using the source name.")
        name = f"{stem}{ext}"
    if "{ext}" not in template and not name.lower().endswith(ext.lower()):
        name += ext
    return sanitize_filename(name)


def reserve_unique_path(target_path: Path) -> Path:
    """
    Claims `target_path`, or a sibling with a numeric suffix (`_1`, `_2`, ...)
    if that name is taken, by creating an empty file there.

    The file is created with `O_CREAT | O_EXCL`, so two workers publishing
    outputs with the same name never receive the same path. The caller
    replaces the placeholder with the real file, or removes it on failure.

    Raises:
        OSError: If the directory cannot be written.
        RuntimeError: If no free name is found after many attempts.
    """
    base, ext = target_path.stem, target_path.suffix
    for i in range(0, 10_001):
        candidate = target_path if i == 0 else target_path.with_name(f"{base}_{i}{ext}")
        try:
            fd = os.open(str(candidate), os.O_CREAT | os.O_EXCL | os.O_WRONLY)
        except FileExistsError:
            continue
        os.close(fd)
        return candidate
    raise RuntimeError(f"Cannot generate a unique file name in {target_path.parent} for {target_path.name}")


def is_url(text: str) -> bool:
    """True when the text looks like a web address (scheme optional)."""
    return bool(_URL_PATTERN.match(text.strip()))
