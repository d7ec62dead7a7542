"""
Derives the target video bitrate for "match source" conversions.

The idea is simple: whatever part of the source file is not audio is video, so
spreading that many bits over the duration gives a bitrate close to the
source's own, and re-encoding at it keeps roughly the original quality.
"""
from pathlib import Path
from typing import Callable, Dict, Optional

import ffmpeg
from loguru import logger

from ..domain.exceptions import InvalidInputError
from ..domain.media import MediaFile
from ..utils.format_utils import formatted_bitrate, formatted_size


def compute_video_bitrate(file_size_bytes: int, duration_seconds: float, audio_bitrate_bps: Optional[int]) -> float:
    """
    Computes the video bitrate in bits per second.

    audio_bytes = audio_bitrate * duration / 8 (0 without audio),
    result = (file_size - audio_bytes) * 8 / duration.

    Raises:
        InvalidInputError: If the duration is not positive, or the size or
                           audio bitrate is negative.
    """
    if duration_seconds is None or duration_seconds <= 0:
        raise InvalidInputError(f"Duration must be positive to compute a bitrate, got {duration_seconds}.")
    if file_size_bytes is None or file_size_bytes < 0:
        raise InvalidInputError(f"File size must not be negative, got {file_size_bytes}.")
    if audio_bitrate_bps and audio_bitrate_bps < 0:
        raise InvalidInputError(f"Audio bitrate must not be negative, got {audio_bitrate_bps}.")

    audio_bytes = audio_bitrate_bps * duration_seconds / 8 if audio_bitrate_bps else 0
    video_bytes = file_size_bytes - audio_bytes
    return video_bytes * 8 / duration_seconds


def calculate_video_bitrate(
    path: Path,
    media_file: Optional[MediaFile] = None,
    probe_func: Callable[[str], Dict] = ffmpeg.probe,
) -> float:
    """
    Computes the "match source" video bitrate of a file on disk.

    Args:
        path: The source file.
        media_file: An already probed `MediaFile` for `path`, to avoid probing twice.
        probe_func: Probe used when `media_file` is not given.

    Raises:
        InvalidInputError: If the file is missing or unreadable, or has no
                           measurable duration.
    """
    if path is None or not Path(path).is_file():
        raise InvalidInputError(f"Source file not found: {path}")
    if media_file is None:
        media_file = MediaFile(Path(path), probe_func=probe_func)

    bitrate = compute_video_bitrate(media_file.size, media_file.duration, media_file.audio_bitrate)
    logger.debug(
        f"Bitrate for {media_file.filename}: size {formatted_size(media_file.size)}, "
        f"duration {media_file.duration:.2f}s, audio {formatted_bitrate(media_file.audio_bitrate)} "
        f"-> video {formatted_bitrate(bitrate)}"
    )
    return bitrate
