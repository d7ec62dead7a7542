"""
This module provides the wrappers used to run external tools.

`ProcessRunner` owns one long-running subprocess (FFmpeg, yt-dlp) whose combined
stdout/stderr is streamed line by line to a progress parser. `run_cmd` runs a
short command to completion and captures its output, e.g. `ffmpeg -encoders`.

Neither wrapper treats a non-zero exit code as an exception: subprocess-reported
errors travel through the exit code and the output text, and the job executor
decides what they mean. Only the failure to start a process raises `SpawnError`.
"""

import collections
import os
import shlex
import signal
import subprocess
import threading
from pathlib import Path
from typing import Deque, Iterator, List, Optional, Sequence, Union

from loguru import logger

from ..config.common import PROCESS_KILL_GRACE_SECONDS, SUBPROCESS_OUTPUT_TAIL_LINES
from ..domain.exceptions import SpawnError


def format_command(cmd_list: Sequence[str]) -> str:
    """Returns a display-friendly, correctly quoted command line."""
    cmd_list = [str(part) for part in cmd_list]
    if os.name == "nt":
        return subprocess.list2cmdline(cmd_list)
    return shlex.join(cmd_list)


def _append_command_log(cmd_log_file_path: Optional[Path], display_cmd_str: str):
    if not cmd_log_file_path:
        return
    try:
        cmd_log_file_path.parent.mkdir(parents=True, exist_ok=True)
        with cmd_log_file_path.open("a", encoding="utf-8") as cmd_f:
            cmd_f.write(display_cmd_str + "\n")
    except OSError as e:
        logger.error(f"Failed to write command to log file {cmd_log_file_path}: {e}")


def run_cmd(
    cmd_parts: Union[str, List[str]],
    show_cmd: bool = False,
    cmd_log_file_path: Optional[Path] = None,
    timeout: Optional[float] = None,
) -> subprocess.CompletedProcess:
    """
    Executes a short external command and captures its output.

    Args:
        cmd_parts: The command as a list of arguments (preferred) or a single
                   string, which is split with shlex.
        show_cmd: If True, the command is logged at DEBUG level before execution.
        cmd_log_file_path: If provided, the command line is appended to this file.
        timeout: Optional timeout in seconds.

    Returns:
        The `subprocess.CompletedProcess`, whatever its return code.

    Raises:
        SpawnError: If the executable is missing, not executable, or the
                    command times out.
        ValueError: If the command is empty or cannot be split.
    """
    if isinstance(cmd_parts, str):
        cmd_list = shlex.split(cmd_parts)
    else:
        cmd_list = [str(part) for part in cmd_parts]
    if not cmd_list:
        raise ValueError("run_cmd received an empty command.")

    display_cmd_str = format_command(cmd_list)
    if show_cmd:
        logger.debug(f"Executing command: {display_cmd_str}")
    _append_command_log(cmd_log_file_path, display_cmd_str)

    try:
        result = subprocess.run(
            cmd_list,
            capture_output=True,
            text=True,
            encoding="utf-8",
            errors="replace",
            shell=False,
            timeout=timeout,
        )
    except FileNotFoundError as e:
        raise SpawnError(f"Command not found: '{cmd_list[0]}'") from e
    except PermissionError as e:
        raise SpawnError(f"Not allowed to execute '{cmd_list[0]}'") from e
    except subprocess.TimeoutExpired as e:
        raise SpawnError(f"Command timed out after {timeout}s: {display_cmd_str}") from e

    if result.stdout and len(result.stdout) > 500:
        logger.trace(f"Command stdout (truncated): {result.stdout[:500]}...")
    elif result.stdout:
        logger.trace(f"Command stdout: {result.stdout}")
    if result.stderr and result.returncode != 0:
        logger.debug(f"Command stderr (error, rc={result.returncode}): {result.stderr}")
    return result


class ProcessRunner:
    """
    Owns one external process and streams its output.

    Use `ProcessRunner.launch()` to start it, iterate `read_lines()` once to
    consume its combined stdout/stderr, then call `wait()` for the exit code.
    `kill()` may be called at any time from any thread. It is idempotent and
    also safe after the process exited on its own.

    On POSIX the process gets its own session so `kill()` also reaches helper
    processes it spawned (yt-dlp runs FFmpeg for merging, for example).
    """

    def __init__(self, process: subprocess.Popen, command: Sequence[str]):
        self._process = process
        self.command: List[str] = [str(part) for part in command]
        self.command_line = format_command(self.command)
        self.output_tail: Deque[str] = collections.deque(maxlen=SUBPROCESS_OUTPUT_TAIL_LINES)
        self._lines_taken = False
        self._reading = False
        self._killed = False
        self._kill_lock = threading.Lock()

    @classmethod
    def launch(
        cls,
        executable: Union[str, Path],
        args: Sequence[str] = (),
        working_dir: Optional[Path] = None,
        cmd_log_file_path: Optional[Path] = None,
    ) -> "ProcessRunner":
        """
        Starts `executable` with `args`.

        Raises:
            SpawnError: If the executable is missing or not authorized to run.
        """
        command = [str(executable), *[str(a) for a in args]]
        display_cmd_str = format_command(command)
        logger.debug(f"Launching: {display_cmd_str}")
        _append_command_log(cmd_log_file_path, display_cmd_str)

        popen_kwargs = {}
        if os.name == "nt":
            popen_kwargs["creationflags"] = subprocess.CREATE_NEW_PROCESS_GROUP
        else:
            popen_kwargs["start_new_session"] = True

        try:
            process = subprocess.Popen(
                command,
                cwd=str(working_dir) if working_dir else None,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                encoding="utf-8",
                errors="replace",
                bufsize=1,
                **popen_kwargs,
            )
        except FileNotFoundError as e:
            raise SpawnError(f"Executable not found: '{executable}'") from e
        except PermissionError as e:
            raise SpawnError(f"Not allowed to execute '{executable}'") from e
        except OSError as e:
            raise SpawnError(f"Could not start '{executable}': {e}") from e
        return cls(process, command)

    @property
    def pid(self) -> int:
        return self._process.pid

    @property
    def returncode(self) -> Optional[int]:
        return self._process.poll()

    @property
    def is_running(self) -> bool:
        return self._process.poll() is None

    @property
    def was_killed(self) -> bool:
        return self._killed

    def read_lines(self) -> Iterator[str]:
        """
        Yields the process output line by line until the stream is exhausted.

        Carriage returns count as line breaks, so FFmpeg's in-place status
        line arrives as a sequence of lines. The sequence can only be consumed
        once.

        Raises:
            RuntimeError: If called a second time.
        """
        if self._lines_taken:
            raise RuntimeError("read_lines() can only be consumed once per process.")
        self._lines_taken = True
        return self._iter_lines()

    def _iter_lines(self) -> Iterator[str]:
        stream = self._process.stdout
        if stream is None:
            return
        self._reading = True
        try:
            for raw_line in stream:
                line = raw_line.rstrip("\r\n")
                if not line:
                    continue
                self.output_tail.append(line)
                yield line
        except (OSError, ValueError):
            # The pipe was torn down by kill(); the stream is over either way.
            if not self._killed:
                raise
        finally:
            self._reading = False

    def wait(self) -> int:
        """
        Waits for the process to exit and returns its exit code.

        Output that nobody read is drained first, so a full pipe cannot block
        the child.
        """
        if not self._lines_taken:
            for _ in self.read_lines():
                pass
        returncode = self._process.wait()
        self._close_stream()
        return returncode

    def kill(self):
        """
        Terminates the process and reaps it.

        Sends a terminate signal first and escalates to a hard kill after a
        grace period. Safe to call repeatedly, concurrently, and after the
        process already exited.
        """
        with self._kill_lock:
            self._killed = True
            if self._process.poll() is None:
                self._signal(terminate=True)
                try:
                    self._process.wait(timeout=PROCESS_KILL_GRACE_SECONDS)
                except subprocess.TimeoutExpired:
                    logger.warning(f"Process {self.pid} ignored terminate; killing it.")
                    self._signal(terminate=False)
                    self._process.wait()
            if not self._reading:
                self._close_stream()

    def _signal(self, terminate: bool):
        try:
            if os.name != "nt":
                os.killpg(self._process.pid, signal.SIGTERM if terminate else signal.SIGKILL)
            elif terminate:
                self._process.terminate()
            else:
                self._process.kill()
        except ProcessLookupError:
            pass
        except PermissionError as e:
            logger.warning(f"Could not signal process group {self.pid}: {e}. Signalling the process only.")
            if terminate:
                self._process.terminate()
            else:
                self._process.kill()

    def _close_stream(self):
        stream = self._process.stdout
        if stream is not None and not stream.closed:
            try:
                stream.close()
            except OSError:
                pass

    def __enter__(self) -> "ProcessRunner":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.kill()

    def __repr__(self) -> str:
        return f"ProcessRunner(pid={self.pid}, cmd={self.command_line!r})"
