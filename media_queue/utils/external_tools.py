"""
This module provides the ExternalTools class, which locates and checks the
external executables the pipeline drives: FFmpeg/ffprobe (transcoding engine)
and yt-dlp (acquisition tool).
"""
import re
import shutil
import sys
from pathlib import Path
from typing import Dict, FrozenSet, Optional

import ffmpeg
from loguru import logger

from ..domain.exceptions import SpawnError
from .process_runner import run_cmd

# An encoder row of `ffmpeg -encoders`: " V....D libx264   libx264 H.264 / AVC ..."
_ENCODER_LINE_RE = re.compile(r"^\s*[VAS][A-Z.]{5}\s+(\S+)\s")


def _exe_name(name: str) -> str:
    return f"{name}.exe" if sys.platform == "win32" else name


class ExternalTools:
    """
    Resolves the paths of the external executables.

    Configured locations (from `config.user.yaml`) take priority. If they are
    not set or do not contain the executable, the bare command name is used
    and the system PATH decides.
    """

    def __init__(self, ffmpeg_dir: Optional[Path] = None, yt_dlp_path: Optional[Path] = None):
        self.ffmpeg_path = self._resolve_in_dir(ffmpeg_dir, "ffmpeg")
        self.ffprobe_path = self._resolve_in_dir(ffmpeg_dir, "ffprobe")
        self.yt_dlp_path = self._resolve_yt_dlp(yt_dlp_path)

    @staticmethod
    def _resolve_in_dir(directory: Optional[Path], name: str) -> str:
        exe_name = _exe_name(name)
        if directory and directory.is_dir():
            configured = directory / exe_name
            if configured.is_file():
                logger.debug(f"Using {name} from configured path: '{configured}'")
                return str(configured)
            logger.warning(f"`ffmpeg_dir` is configured, but '{exe_name}' was not found there. Falling back to system PATH.")
        return name

    @staticmethod
    def _resolve_yt_dlp(configured: Optional[Path]) -> str:
        if configured:
            if configured.is_file():
                return str(configured)
            logger.warning(f"Configured yt-dlp path '{configured}' does not exist. Falling back to system PATH.")
        return "yt-dlp"

    def probe(self, path: str) -> Dict:
        """Runs ffprobe through ffmpeg-python using the resolved ffprobe binary."""
        return ffmpeg.probe(path, cmd=self.ffprobe_path)

    def verify(self) -> Dict[str, bool]:
        """
        Checks that each tool can be executed and logs its version line.

        Missing tools are reported but do not stop startup: a job that needs a
        missing tool fails on its own with a `SpawnError`.

        Returns:
            Tool name -> whether it responded.
        """
        checks = {
            "ffmpeg": [self.ffmpeg_path, "-version"],
            "ffprobe": [self.ffprobe_path, "-version"],
            "yt-dlp": [self.yt_dlp_path, "--version"],
        }
        status = {}
        for tool_name, cmd in checks.items():
            if shutil.which(cmd[0]) is None and not Path(cmd[0]).is_file():
                logger.error(
                    f"{tool_name} not found. Install it, add it to your PATH, or set its location in 'config.user.yaml'."
                )
                status[tool_name] = False
                continue
            try:
                result = run_cmd(cmd, timeout=30)
            except SpawnError as e:
                logger.error(f"{tool_name} could not be executed: {e}")
                status[tool_name] = False
                continue
            if result.returncode != 0:
                logger.error(f"{tool_name} version check failed (return code {result.returncode}):\n{result.stderr}")
                status[tool_name] = False
                continue
            first_line = (result.stdout or "").splitlines()[0] if result.stdout else ""
            logger.info(f"{tool_name} version check successful: {first_line}")
            status[tool_name] = True
        return status

    def list_encoders(self) -> FrozenSet[str]:
        """
        Returns the encoder names the installed FFmpeg build reports.

        An FFmpeg that cannot be queried yields an empty set, which makes every
        hardware encoder request fall back to software.
        """
        try:
            result = run_cmd([self.ffmpeg_path, "-hide_banner", "-encoders"], timeout=30)
        except SpawnError as e:
            logger.error(f"Could not query FFmpeg encoders: {e}")
            return frozenset()
        if result.returncode != 0:
            logger.error(f"`ffmpeg -encoders` failed (return code {result.returncode}).")
            return frozenset()
        return parse_encoder_list(result.stdout)


def parse_encoder_list(output: str) -> FrozenSet[str]:
    """Extracts encoder names from the output of `ffmpeg -encoders`."""
    names = set()
    in_table = False
    for line in (output or "").splitlines():
        if line.strip().startswith("------"):
            in_table = True
            continue
        if not in_table:
            continue
        match = _ENCODER_LINE_RE.match(line)
        if match:
            names.add(match.group(1))
    return frozenset(names)
