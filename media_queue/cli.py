"""
Command-Line Interface (CLI) setup for the media queue.

This module uses Python's `argparse` to define and parse the command-line
arguments, and turns them into the `Preset` shared by every job of the run.
"""
import argparse
from pathlib import Path
from typing import List, Optional

from .config.audio import AUDIO_CONVERSION_FORMATS
from .config.video import DEFAULT_CONTAINER, DEFAULT_CRF, DEFAULT_VIDEO_CODEC, SOFTWARE_ENCODERS
from .domain.preset import HardwareEncoder, Preset, QualityMode


def _parse_bitrate(value: str) -> int:
    """Accepts plain bps or a k/M suffix: "2500000", "2500k", "2.5M"."""
    text = value.strip().lower()
    multiplier = 1
    if text.endswith("k"):
        multiplier, text = 1_000, text[:-1]
    elif text.endswith("m"):
        multiplier, text = 1_000_000, text[:-1]
    try:
        bitrate = int(float(text) * multiplier)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid bitrate: {value!r}")
    if bitrate <= 0:
        raise argparse.ArgumentTypeError(f"bitrate must be positive: {value!r}")
    return bitrate


def _positive_int(value: str) -> int:
    number = int(value)
    if number < 1:
        raise argparse.ArgumentTypeError(f"must be at least 1: {value!r}")
    return number


def get_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """
    Parses command-line arguments for the media queue.

    Args:
        argv: Arguments to parse. Defaults to `sys.argv[1:]`.

    Returns:
        argparse.Namespace: An object containing the parsed command-line
                            arguments as attributes.
    """
    parser = argparse.ArgumentParser(
        description="Download and/or convert media files in a bounded-concurrency queue."
    )
    parser.add_argument("sources", nargs="+", help="URLs to download or local media files to convert.")
    parser.add_argument(
        "--format", dest="container", default=DEFAULT_CONTAINER,
        help=f"Output container for video conversions (default: {DEFAULT_CONTAINER})."
    )
    parser.add_argument(
        "--video-codec", default=DEFAULT_VIDEO_CODEC, choices=sorted(SOFTWARE_ENCODERS),
        help=f"Video codec family (default: {DEFAULT_VIDEO_CODEC})."
    )
    parser.add_argument(
        "--hw-encoder", default=HardwareEncoder.NONE.value, choices=[e.value for e in HardwareEncoder],
        help="Hardware encoder to use. Falls back to the software encoder if FFmpeg does not offer it."
    )
    parser.add_argument(
        "--quality", default=QualityMode.MATCH_SOURCE.value, choices=[m.value for m in QualityMode],
        help="'match' keeps roughly the source bitrate, 'fixed' uses --video-bitrate or --crf."
    )
    parser.add_argument("--video-bitrate", type=_parse_bitrate, default=None, help="Video bitrate for --quality fixed.")
    parser.add_argument("--crf", type=int, default=DEFAULT_CRF, help=f"Constant quality value (default: {DEFAULT_CRF}).")
    parser.add_argument(
        "--audio-format", default=None, choices=sorted(AUDIO_CONVERSION_FORMATS),
        help="Convert to audio only, in this format."
    )
    parser.add_argument("--audio-bitrate", type=_parse_bitrate, default=None, help="Audio bitrate, e.g. 192k.")
    parser.add_argument(
        "--no-convert", action="store_true", help="Only download remote sources, do not convert anything."
    )
    parser.add_argument("--output-dir", type=str, default=None, help="Destination directory (default: current directory).")
    parser.add_argument(
        "--name-template", default="{stem}{ext}",
        help="Output file name. Placeholders: {stem}, {ext}, {job_id}."
    )
    parser.add_argument(
        "--processes", type=_positive_int, default=None,
        help="Number of jobs to run at once (default: number of logical processors)."
    )
    parser.add_argument(
        "--temp-work-dir", type=str, default=None,
        help="Specify a directory for temporary files. Useful for pointing to a RAM disk to reduce HDD/SSD writes."
    )
    parser.add_argument(
        "--log-level", type=str, default="INFO", choices=["TRACE", "DEBUG", "INFO", "WARNING", "ERROR"],
        help="Set the logging level."
    )
    parser.add_argument("--config", type=str, default=None, help="Path to a config.user.yaml file.")

    args = parser.parse_args(argv)

    # Validate temp_work_dir if provided. If it doesn't exist, try to create it.
    if args.temp_work_dir:
        temp_dir_path = Path(args.temp_work_dir)
        if not temp_dir_path.is_dir():
            try:
                temp_dir_path.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                parser.error(
                    f"The specified temporary working directory '{args.temp_work_dir}' "
                    f"is not a valid directory and could not be created: {e}"
                )
        args.temp_work_dir = temp_dir_path.resolve()

    if args.output_dir:
        args.output_dir = Path(args.output_dir).expanduser().resolve()
    if args.config:
        args.config = Path(args.config).expanduser()

    return args


def build_preset(args: argparse.Namespace) -> Preset:
    """Builds the batch preset from parsed arguments."""
    return Preset(
        container=args.container,
        video_codec=args.video_codec,
        quality_mode=QualityMode(args.quality),
        video_bitrate=args.video_bitrate,
        crf=args.crf,
        hardware_encoder=HardwareEncoder(args.hw_encoder),
        audio_format=args.audio_format,
        audio_bitrate=args.audio_bitrate,
        transcode=not args.no_convert,
        name_template=args.name_template,
    )
