"""
Common configuration settings used throughout the application.

This module contains the constants shared across the whole media queue: the
logging format, the regular expressions used to recognise sources and progress
output, the temporary directory layout and the messages presented for a
finished batch. It also provides `load_user_config()`, which reads the optional
`config.user.yaml` file at the project root so users can point the
application at their own FFmpeg / yt-dlp installation without touching code.

Nothing in here is mutated at runtime. The values read from the user config
are handed to `PipelineContext` at startup instead of being stored as module
globals.
"""
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from loguru import logger

# --- User-Defined Configuration ---

PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
USER_CONFIG_PATH = PROJECT_ROOT / "config.user.yaml"


# --- Logging Configuration ---

# The format string for the Loguru logger. The thread name is included because
# several jobs log concurrently from worker threads.
LOGGER_FORMAT = (
    "<green>{time:MM-DD HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
    "{thread.name} - <level>{message}</level>"
)


# --- Directory and File Management ---

# Name of the process-wide temporary working directory, created below the
# system temp directory unless overridden.
TEMP_DIR_NAME = "media_queue"

# Distinct subdirectories per operation kind.
CONVERTER_TEMP_SUBDIR = "converter"
DOWNLOADER_TEMP_SUBDIR = "downloader"

# Filename for the YAML file that accumulates finished batch reports.
BATCH_LOG_FILE_NAME = "batch_log.yaml"

# Filename for the plain-text failure log.
ERROR_LOG_FILE_NAME = "error.txt"

# Text file receiving every external command line that was launched.
COMMAND_TEXT = "cmd.txt"


# --- Processing Rules ---

# Default number of jobs allowed in the acquiring/converting phases at once.
DEFAULT_MAX_CONCURRENCY = os.cpu_count() or 1

# Seconds `ProcessRunner.kill()` waits after terminate() before escalating.
PROCESS_KILL_GRACE_SECONDS = 5.0

# Number of trailing output lines kept from a subprocess for error reporting.
SUBPROCESS_OUTPUT_TAIL_LINES = 20

# Share of the overall progress bar given to acquisition when a job also converts.
ACQUISITION_PROGRESS_SHARE = 0.5


# --- Regular Expressions ---

# Characters that may not appear in a file name on common filesystems.
INVALID_FILENAME_CHARACTERS_REGEX = r'[<|>:"/\\?*]'

# FFmpeg's elapsed time marker in its progress/status lines.
FFMPEG_TIME_FROM_OUTPUT_REGEX = r"time=(\d{2}):(\d{2}):(\d{2})\.(\d{2})"

# FFmpeg's speed marker, e.g. "speed=1.52x".
FFMPEG_SPEED_FROM_OUTPUT_REGEX = r"speed=\s*(\d+(?:\.\d+)?)x"

# yt-dlp progress line when run with --newline.
YTDLP_PROGRESS_REGEX = r"^\[download\]\s+(\d+(?:\.\d+)?)%"
YTDLP_ETA_REGEX = r"ETA\s+(?:(\d+):)?(\d{1,2}):(\d{2})"

URL_REGEX = r"^(?:https?:\/\/)?(?:www[.])?\S+[.]\S+(?:[\/]+\S*)*$"

# Marker FFmpeg prints when the destination filesystem runs full.
NO_SPACE_LEFT_MARKER = "No space left on device"


# --- Batch Report Messages ---
# Keyed by message id. "{0}" is replaced by the relevant failure count.
REPORT_MESSAGES: Dict[str, Dict[str, str]] = {
    "conversionFilesCantBeSaved": {
        "title": "Files could not be saved",
        "text": "{0} file(s) could not be saved.",
    },
    "conversionFilesNoWriteAccess": {
        "title": "No write access",
        "text": "{0} file(s) could not be saved because write access to the destination was denied.",
    },
    "conversionFilesPathNotFound": {
        "title": "Path not found",
        "text": "{0} file(s) could not be saved because the destination path was not found.",
    },
    "notEnoughSpace": {
        "title": "Not enough space",
        "text": "{0} file(s) could not be saved because there is not enough free space.",
    },
    "conversionFilesFailed": {
        "title": "Processing failed",
        "text": "{0} file(s) could not be processed.",
    },
}


@dataclass(frozen=True)
class UserConfig:
    """Values read from `config.user.yaml`. Every field is optional."""

    ffmpeg_dir: Optional[Path] = None
    yt_dlp_path: Optional[Path] = None
    temp_dir: Optional[Path] = None
    output_dir: Optional[Path] = None
    log_dir: Optional[Path] = None
    max_concurrency: Optional[int] = None


def _optional_path(value: Any) -> Optional[Path]:
    return Path(value).expanduser() if value else None


def load_user_config(config_path: Path = USER_CONFIG_PATH) -> UserConfig:
    """
    Loads user-specific settings from a YAML file.

    The file is optional. If it does not exist, or cannot be parsed, the
    defaults are used and the application relies on executables found in the
    system PATH.

    Example `config.user.yaml`::

        paths:
          ffmpeg_dir: C:/tools/ffmpeg/bin
          yt_dlp_path: C:/tools/yt-dlp.exe
          temp_dir: R:/ramdisk
          output_dir: D:/Videos/converted
          log_dir: D:/Videos/logs
        processing:
          max_concurrency: 4

    Args:
        config_path: Location of the YAML file.

    Returns:
        A `UserConfig` instance.
    """
    if not config_path.is_file():
        logger.debug(f"User config '{config_path}' not found. Relying on defaults and system PATH.")
        return UserConfig()

    try:
        with config_path.open("r", encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        logger.warning(f"Could not load or parse '{config_path}': {e}")
        return UserConfig()

    if not isinstance(raw, dict):
        logger.warning(f"'{config_path}' does not contain a mapping. Ignoring it.")
        return UserConfig()

    paths_config = raw.get("paths") or {}
    processing_config = raw.get("processing") or {}

    max_concurrency = processing_config.get("max_concurrency")
    if max_concurrency is not None:
        try:
            max_concurrency = int(max_concurrency)
        except (TypeError, ValueError):
            logger.warning(f"Ignoring invalid processing.max_concurrency value: {max_concurrency!r}")
            max_concurrency = None
        else:
            if max_concurrency < 1:
                logger.warning(f"processing.max_concurrency must be >= 1, got {max_concurrency}. Ignoring it.")
                max_concurrency = None

    return UserConfig(
        ffmpeg_dir=_optional_path(paths_config.get("ffmpeg_dir")),
        yt_dlp_path=_optional_path(paths_config.get("yt_dlp_path")),
        temp_dir=_optional_path(paths_config.get("temp_dir")),
        output_dir=_optional_path(paths_config.get("output_dir")),
        log_dir=_optional_path(paths_config.get("log_dir")),
        max_concurrency=max_concurrency,
    )
