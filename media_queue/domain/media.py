import re
from pathlib import Path
from pprint import pformat
from typing import Callable, Dict, List, Optional

import ffmpeg
from loguru import logger

from .exceptions import InvalidInputError


def parse_duration(duration_str: str) -> float:
    """
    Parses a duration string into total seconds.

    Handles the two formats ffprobe reports:
    1. A plain floating-point number of seconds (e.g., "3600.5").
    2. A timecode 'HH:MM:SS.sss' (e.g., "01:00:00.500"). Hours are optional.

    Args:
        duration_str: The string containing the duration to parse.

    Returns:
        The total duration in seconds, or 0.0 if parsing fails.
    """
    try:
        return float(duration_str)
    except (TypeError, ValueError):
        pattern = r"(?:(\d{1,2}):)?(\d{1,2}):(\d{1,2}(?:\.\d+)?)"
        match = re.fullmatch(pattern, str(duration_str).strip())
        if match:
            hours_str, minutes_str, seconds_str = match.groups()
            hours = int(hours_str) if hours_str else 0
            return float(hours * 3600 + int(minutes_str) * 60 + float(seconds_str))
        logger.warning(f"Could not parse duration string: {duration_str}")
    return 0.0


def _to_int(value) -> int:
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return 0


class MediaFile:
    """
    Represents a single local media file and the properties measured by ffprobe.

    Instantiating the class probes the file (via the ffmpeg-python library by
    default) and exposes the values the pipeline needs: size, duration, the
    streams, and the bitrate of the primary audio stream. The bitrate
    calculator uses these values to target "match source" quality, and the
    executor uses the duration to turn FFmpeg's `time=` output into a fraction.

    Unlike a probe failure, a missing duration does not raise here. The
    duration is left at 0.0 and the operations that need it reject the file.

    Attributes:
        path (Path): Absolute path to the media file.
        filename (str): Name of the file including its extension.
        stem (str): File name without extension.
        size (int): Size in bytes.
        probe (dict): Raw ffprobe output.
        duration (float): Duration in seconds, 0.0 when unknown.
        video_streams (list): Video stream dictionaries.
        audio_streams (list): Audio stream dictionaries.
    """

    def __init__(self, path: Path, probe_func: Callable[[str], Dict] = ffmpeg.probe):
        """
        Probes the file at `path`.

        Args:
            path: The media file.
            probe_func: Callable returning ffprobe's JSON output as a dict.
                        Defaults to `ffmpeg.probe`.

        Raises:
            InvalidInputError: If the file does not exist, cannot be read, or
                               ffprobe cannot analyze it.
        """
        if not path.is_file():
            raise InvalidInputError(f"Media file not found: {path}")

        self.path: Path = path.resolve()
        self.filename: str = self.path.name
        self.stem: str = self.path.stem
        try:
            self.size: int = self.path.stat().st_size
        except OSError as e:
            raise InvalidInputError(f"Cannot read media file {self.path}: {e}") from e

        self.probe: Dict = {}
        self.duration: float = 0.0
        self.video_streams: List[Dict] = []
        self.audio_streams: List[Dict] = []

        self.set_probe(probe_func)
        self.set_streams()
        self.set_duration()

    def set_probe(self, probe_func: Callable[[str], Dict]):
        try:
            self.probe = probe_func(str(self.path)) or {}
        except ffmpeg.Error as e:
            stderr = e.stderr.decode("utf-8", "replace") if isinstance(e.stderr, bytes) else e.stderr
            logger.error(f"ffmpeg.probe failed for {self.path}: {stderr}")
            raise InvalidInputError(f"Failed to probe media file {self.path}") from e
        except OSError as e:
            # ffprobe itself missing or not executable.
            raise InvalidInputError(f"Failed to probe media file {self.path}: {e}") from e
        logger.trace(f"Probe data for {self.filename}:\n{pformat(self.probe)}")

    def set_streams(self):
        streams = self.probe.get("streams") or []
        self.video_streams = [
            s for s in streams
            if s.get("codec_type") == "video" and not s.get("disposition", {}).get("attached_pic")
        ]
        self.audio_streams = [s for s in streams if s.get("codec_type") == "audio"]

    def set_duration(self):
        """
        Sets the duration from the probe data.

        The 'format' section is the most reliable source. If it has no
        duration, the first stream that reports one is used.
        """
        duration_val = (self.probe.get("format") or {}).get("duration")
        if not duration_val:
            for stream in self.probe.get("streams") or []:
                if stream.get("duration"):
                    duration_val = stream["duration"]
                    break

        self.duration = parse_duration(str(duration_val)) if duration_val is not None else 0.0
        if self.duration <= 0:
            logger.warning(f"No valid duration found for {self.filename}.")
        else:
            logger.debug(f"Duration for {self.filename}: {self.duration}s")

    @property
    def primary_audio_stream(self) -> Optional[Dict]:
        """The default-disposition audio stream, or the first one if none is flagged."""
        if not self.audio_streams:
            return None
        for stream in self.audio_streams:
            if stream.get("disposition", {}).get("default"):
                return stream
        return self.audio_streams[0]

    @property
    def audio_bitrate(self) -> int:
        """Bitrate of the primary audio stream in bits per second, 0 if there is none."""
        stream = self.primary_audio_stream
        if stream is None:
            return 0
        bitrate = _to_int(stream.get("bit_rate"))
        if not bitrate:
            # Matroska stores per-stream bitrates in tags only.
            tags = stream.get("tags") or {}
            bitrate = _to_int(tags.get("BPS") or tags.get("BPS-eng"))
        return bitrate

    @property
    def has_video(self) -> bool:
        return bool(self.video_streams)

    def __repr__(self) -> str:
        return f"MediaFile({self.path!s}, size={self.size}, duration={self.duration})"
