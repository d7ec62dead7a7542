"""
Parsers turning the textual output of external tools into progress updates.

Neither FFmpeg nor yt-dlp guarantees a stable output format, so parsing is
deliberately forgiving: a line that does not match the known pattern yields
`None` and never raises.
"""

import re
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from ..config.common import (
    FFMPEG_SPEED_FROM_OUTPUT_REGEX,
    FFMPEG_TIME_FROM_OUTPUT_REGEX,
    YTDLP_ETA_REGEX,
    YTDLP_PROGRESS_REGEX,
)

_TIME_RE = re.compile(FFMPEG_TIME_FROM_OUTPUT_REGEX)
_SPEED_RE = re.compile(FFMPEG_SPEED_FROM_OUTPUT_REGEX)
_DOWNLOAD_RE = re.compile(YTDLP_PROGRESS_REGEX)
_ETA_RE = re.compile(YTDLP_ETA_REGEX)


@dataclass(frozen=True)
class ProgressUpdate:
    """
    Structured progress extracted from one output line.

    Attributes:
        fraction: Completed share in [0, 1], or None if it cannot be derived.
        elapsed: Media time processed so far (FFmpeg only).
        remaining: Estimated time left, if derivable.
        speed: Processing speed as a multiple of real time (FFmpeg only).
    """

    fraction: Optional[float]
    elapsed: Optional[timedelta] = None
    remaining: Optional[timedelta] = None
    speed: Optional[float] = None


class ProgressParser:
    """
    Reads FFmpeg's `time=HH:MM:SS.ff` progress marker.

    The fraction is the elapsed media time divided by the source's total
    duration, which the parser is constructed with. Each call is independent
    of the previous ones.
    """

    def __init__(self, total_duration_seconds: float):
        self.total_duration_seconds = total_duration_seconds or 0.0

    def parse(self, line: str) -> Optional[ProgressUpdate]:
        if not line:
            return None
        match = _TIME_RE.search(line)
        if not match:
            return None
        hours, minutes, seconds, hundredths = (int(g) for g in match.groups())
        elapsed_seconds = hours * 3600 + minutes * 60 + seconds + hundredths / 100

        speed = None
        speed_match = _SPEED_RE.search(line)
        if speed_match:
            speed = float(speed_match.group(1))

        if self.total_duration_seconds <= 0:
            return ProgressUpdate(fraction=None, elapsed=timedelta(seconds=elapsed_seconds), speed=speed)

        fraction = min(1.0, elapsed_seconds / self.total_duration_seconds)
        remaining = None
        if speed:
            left = max(0.0, self.total_duration_seconds - elapsed_seconds)
            remaining = timedelta(seconds=left / speed)
        return ProgressUpdate(
            fraction=fraction,
            elapsed=timedelta(seconds=elapsed_seconds),
            remaining=remaining,
            speed=speed,
        )


class DownloadProgressParser:
    """Reads yt-dlp's `[download]  42.0% of ... ETA 00:08` lines (requires --newline)."""

    def parse(self, line: str) -> Optional[ProgressUpdate]:
        if not line:
            return None
        match = _DOWNLOAD_RE.search(line.strip())
        if not match:
            return None
        fraction = min(1.0, float(match.group(1)) / 100)

        remaining = None
        eta_match = _ETA_RE.search(line)
        if eta_match:
            hours = int(eta_match.group(1) or 0)
            remaining = timedelta(
                hours=hours, minutes=int(eta_match.group(2)), seconds=int(eta_match.group(3))
            )
        return ProgressUpdate(fraction=fraction, remaining=remaining)
