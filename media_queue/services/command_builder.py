"""
Builds the argument lists for the external tools.

The builders only assemble arguments. They never launch anything, so they
can be inspected and tested without FFmpeg or yt-dlp installed. The
executable itself is prepended by `ProcessRunner.launch()`.
"""
from pathlib import Path
from typing import List, Optional

from loguru import logger

from ..config.audio import AUDIO_CONVERSION_FORMATS, DEFAULT_AUDIO_BITRATE, YTDLP_AUDIO_FORMATS
from ..config.video import (
    CONTAINER_AUDIO_ENCODERS,
    FIXED_QUALITY_FLAGS,
    SOFTWARE_QUALITY_FLAG,
    VIDEO_AUDIO_BITRATE,
    VIDEO_AUDIO_ENCODER,
    VIDEO_BITRATE_LOW_THRESHOLD,
)
from ..domain.preset import Preset, QualityMode

# yt-dlp output template. `%(title)s` keeps the media's own name as the stem.
YTDLP_OUTPUT_TEMPLATE = "%(title)s.%(ext)s"


def quality_flag_for(codec_name: str) -> str:
    """Returns the constant-quality flag understood by `codec_name`."""
    for suffix, flag in FIXED_QUALITY_FLAGS.items():
        if codec_name.endswith(suffix):
            return flag
    return SOFTWARE_QUALITY_FLAG


def build_download_args(url: str, job_temp_dir: Path, preset: Preset) -> List[str]:
    """
    Arguments for yt-dlp downloading `url` into `job_temp_dir`.

    `--newline` makes yt-dlp print each progress update on its own line and
    `--no-part` keeps the directory free of partial files, so the finished
    download is the only file left in it.

    If the job will not be converted afterwards and the preset asks for audio,
    yt-dlp extracts the audio itself.
    """
    args = [
        "--newline",
        "--no-playlist",
        "--no-part",
        "-o",
        str(job_temp_dir / YTDLP_OUTPUT_TEMPLATE),
    ]
    args.extend(preset.extra_download_args)
    if not preset.transcode and preset.is_audio_only:
        if preset.audio_format in YTDLP_AUDIO_FORMATS:
            args.extend(["-x", "--audio-format", preset.audio_format])
        else:
            logger.warning(f"yt-dlp cannot extract '{preset.audio_format}' audio. Downloading the original stream.")
    args.append(url)
    return args


def build_convert_args(
    source: Path,
    destination: Path,
    preset: Preset,
    video_encoder: Optional[str] = None,
    video_bitrate: Optional[float] = None,
) -> List[str]:
    """
    Arguments for FFmpeg converting `source` to `destination`.

    Args:
        source: Input media file.
        destination: Output file. Its extension decides the container.
        preset: The output description.
        video_encoder: Resolved FFmpeg video encoder. Required unless the
                       preset is audio-only.
        video_bitrate: Target video bitrate in bps. Used in MATCH_SOURCE mode
                       and in FIXED mode with an explicit bitrate.

    Raises:
        ValueError: If a video conversion is requested without an encoder.
    """
    args = ["-hide_banner", "-nostdin", "-y", "-i", str(source)]

    if preset.is_audio_only:
        codec, _ext, lossless = AUDIO_CONVERSION_FORMATS[preset.audio_format]
        args.extend(["-vn", "-c:a", codec])
        if not lossless:
            args.extend(["-b:a", str(preset.audio_bitrate or DEFAULT_AUDIO_BITRATE)])
        args.append(str(destination))
        return args

    if not video_encoder:
        raise ValueError("A video encoder is required for video conversions.")

    args.extend(["-c:v", video_encoder])
    args.extend(_video_quality_args(preset, video_encoder, video_bitrate))

    audio_encoder = CONTAINER_AUDIO_ENCODERS.get(preset.container.lower().lstrip("."), VIDEO_AUDIO_ENCODER)
    args.extend(["-c:a", audio_encoder, "-b:a", str(preset.audio_bitrate or VIDEO_AUDIO_BITRATE)])
    args.append(str(destination))
    return args


def _video_quality_args(preset: Preset, video_encoder: str, video_bitrate: Optional[float]) -> List[str]:
    if preset.quality_mode is QualityMode.FIXED and video_bitrate is None and preset.video_bitrate is None:
        return [quality_flag_for(video_encoder), str(preset.crf)]

    bitrate = video_bitrate if video_bitrate is not None else preset.video_bitrate
    if bitrate < VIDEO_BITRATE_LOW_THRESHOLD:
        logger.warning(
            f"Video bitrate {int(bitrate)} bps is below {VIDEO_BITRATE_LOW_THRESHOLD} bps. "
            f"Using {VIDEO_BITRATE_LOW_THRESHOLD} bps instead."
        )
        bitrate = VIDEO_BITRATE_LOW_THRESHOLD
    return ["-b:v", str(int(bitrate))]
