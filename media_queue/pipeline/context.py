"""
The explicit runtime context shared by the queue and its workers.

Everything a job needs from its surroundings (tool locations, temporary
directories, the encoder capabilities of the installed FFmpeg, the default
concurrency) is collected here once at startup and handed down, instead of
living in mutable module globals.
"""
import tempfile
import threading
from pathlib import Path
from typing import Callable, Dict, Optional

from loguru import logger

from ..config.common import (
    COMMAND_TEXT,
    CONVERTER_TEMP_SUBDIR,
    DEFAULT_MAX_CONCURRENCY,
    DOWNLOADER_TEMP_SUBDIR,
    TEMP_DIR_NAME,
    UserConfig,
)
from ..services.encoder_capability import EncoderCapabilityResolver
from ..utils.external_tools import ExternalTools
from ..utils.process_runner import ProcessRunner


class PipelineContext:
    """
    Read-only (after startup) settings and services for a `JobQueue`.

    Attributes:
        temp_dir (Path): Root working directory for intermediate files.
        converter_temp_dir (Path): Per-job FFmpeg outputs before they are moved.
        downloader_temp_dir (Path): Per-job yt-dlp downloads.
        output_dir (Path): Default destination when a preset names none.
        tools (ExternalTools): Resolved executable locations.
        max_concurrency (int): Default bound on jobs in the processing phases.
        probe_func: Callable returning ffprobe data for a path.
        runner_factory: Callable starting a subprocess, `ProcessRunner.launch` by default.
        log_dir (Optional[Path]): Where the batch log and command log go, if set.
        error_log_dir (Optional[Path]): Where the error log goes, if set.
    """

    def __init__(
        self,
        temp_dir: Path,
        output_dir: Path,
        tools: Optional[ExternalTools] = None,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
        probe_func: Optional[Callable[[str], Dict]] = None,
        runner_factory: Optional[Callable[..., ProcessRunner]] = None,
        encoder_resolver: Optional[EncoderCapabilityResolver] = None,
        log_dir: Optional[Path] = None,
        error_log_dir: Optional[Path] = None,
    ):
        if max_concurrency < 1:
            raise ValueError(f"max_concurrency must be >= 1, got {max_concurrency}")
        self.temp_dir = Path(temp_dir)
        self.converter_temp_dir = self.temp_dir / CONVERTER_TEMP_SUBDIR
        self.downloader_temp_dir = self.temp_dir / DOWNLOADER_TEMP_SUBDIR
        self.output_dir = Path(output_dir)
        self.tools = tools or ExternalTools()
        self.max_concurrency = max_concurrency
        self.probe_func = probe_func or self.tools.probe
        self.runner_factory = runner_factory or ProcessRunner.launch
        self.log_dir = log_dir
        self.error_log_dir = error_log_dir
        self.cmd_log_file_path = log_dir / COMMAND_TEXT if log_dir else None

        self._encoder_resolver = encoder_resolver
        self._resolver_lock = threading.Lock()

        for directory in (self.converter_temp_dir, self.downloader_temp_dir, self.output_dir):
            directory.mkdir(parents=True, exist_ok=True)

    @classmethod
    def create(cls, user_config: Optional[UserConfig] = None, **overrides) -> "PipelineContext":
        """
        Builds a context from the user config, with keyword overrides on top.

        Overrides use the constructor's parameter names. A value of None means
        "not overridden".
        """
        user_config = user_config or UserConfig()
        overrides = {key: value for key, value in overrides.items() if value is not None}

        if "tools" not in overrides:
            overrides["tools"] = ExternalTools(user_config.ffmpeg_dir, user_config.yt_dlp_path)
        temp_dir = overrides.pop("temp_dir", None) or user_config.temp_dir
        temp_dir = Path(temp_dir) / TEMP_DIR_NAME if temp_dir else Path(tempfile.gettempdir()) / TEMP_DIR_NAME
        output_dir = overrides.pop("output_dir", None) or user_config.output_dir or Path.cwd()
        overrides.setdefault("max_concurrency", user_config.max_concurrency or DEFAULT_MAX_CONCURRENCY)
        overrides.setdefault("log_dir", user_config.log_dir)
        overrides.setdefault("error_log_dir", overrides.get("log_dir"))

        context = cls(temp_dir=temp_dir, output_dir=Path(output_dir), **overrides)
        logger.debug(
            f"Pipeline context: temp_dir={context.temp_dir}, output_dir={context.output_dir}, "
            f"max_concurrency={context.max_concurrency}"
        )
        return context

    @property
    def encoder_resolver(self) -> EncoderCapabilityResolver:
        """Queries FFmpeg's encoder list on first use and caches the result."""
        with self._resolver_lock:
            if self._encoder_resolver is None:
                self._encoder_resolver = EncoderCapabilityResolver.from_tools(self.tools)
            return self._encoder_resolver
