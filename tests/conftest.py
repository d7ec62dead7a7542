"""Shared fixtures: a scripted stand-in for external processes and a context on tmp_path."""

import collections
import threading
import time
from pathlib import Path

import pytest

from media_queue.domain.exceptions import SpawnError
from media_queue.pipeline.context import PipelineContext
from media_queue.services.encoder_capability import EncoderCapabilityResolver
from media_queue.utils.external_tools import ExternalTools

FFMPEG_LINES = [
    "Input #0, mov,mp4,m4a,3gp,3g2,mj2, from 'clip.mp4':",
    "frame=  120 fps= 60 q=28.0 size=     256kB time=00:00:05.00 bitrate= 419.4kbits/s speed=2.00x",
    "frame=  240 fps= 60 q=28.0 size=     512kB time=00:00:10.00 bitrate= 419.4kbits/s speed=2.00x",
]
YTDLP_LINES = [
    "[youtube] abc: Downloading webpage",
    "[download]  50.0% of 10.00MiB at  1.00MiB/s ETA 00:05",
    "[download] 100% of 10.00MiB in 00:10",
]
SOURCE_SIZE = 1_000_000
DOWNLOADED_NAME = "Clip.webm"


def wait_until(predicate, timeout=5.0, interval=0.01):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


class FakeRunner:
    """
    Behaves like a `ProcessRunner` without starting anything.

    Output lines are yielded at once. If a gate is given, the "process" then
    blocks until the gate is set or it is killed. On a normal exit the output
    file the real tool would create is written.
    """

    def __init__(self, command, lines, returncode=0, gate=None):
        self.command = command
        self.command_line = " ".join(command)
        self.pid = 4242
        self.output_tail = collections.deque(maxlen=20)
        self._lines = list(lines)
        self._returncode = returncode
        self._gate = gate
        self._killed = threading.Event()
        self._exited = False

    @property
    def is_running(self):
        return not self._exited

    @property
    def was_killed(self):
        return self._killed.is_set()

    @property
    def returncode(self):
        return self._returncode if self._exited else None

    def read_lines(self):
        for line in self._lines:
            if self._killed.is_set():
                return
            self.output_tail.append(line)
            yield line
        if self._gate is not None:
            while not self._gate.wait(0.01):
                if self._killed.is_set():
                    return

    def wait(self):
        if not self._exited and not self.was_killed and self._returncode == 0:
            self._write_output()
        self._exited = True
        return -15 if self.was_killed else self._returncode

    def kill(self):
        self._killed.set()
        self._exited = True

    def _write_output(self):
        executable = Path(self.command[0]).name
        if executable == "yt-dlp":
            template = Path(self.command[self.command.index("-o") + 1])
            template.parent.mkdir(parents=True, exist_ok=True)
            (template.parent / DOWNLOADED_NAME).write_bytes(b"\0" * SOURCE_SIZE)
        elif executable == "ffmpeg":
            Path(self.command[-1]).write_bytes(b"converted")


class FakeRunnerFactory:
    """
    Replacement for `ProcessRunner.launch`.

    `script(marker, lines, returncode)` changes the behaviour of every
    process whose command line contains `marker`.
    """

    def __init__(self):
        self.commands = []
        self.runners = []
        self.gate = None
        self.spawn_error = False
        self._rules = []
        self._lock = threading.Lock()

    def script(self, marker, lines=(), returncode=1):
        self._rules.append((marker, list(lines), returncode))

    def __call__(self, executable, args=(), working_dir=None, cmd_log_file_path=None):
        command = [str(executable), *[str(a) for a in args]]
        if self.spawn_error:
            raise SpawnError(f"Executable not found: '{executable}'")
        lines = YTDLP_LINES if Path(command[0]).name == "yt-dlp" else FFMPEG_LINES
        returncode = 0
        for marker, rule_lines, rule_returncode in self._rules:
            if any(marker in part for part in command):
                lines, returncode = rule_lines, rule_returncode
                break
        runner = FakeRunner(command, lines, returncode, gate=self.gate)
        with self._lock:
            self.commands.append(command)
            self.runners.append(runner)
        return runner


def fake_probe_data(duration="10.0", audio_bitrate="128000"):
    return {
        "format": {"duration": duration, "size": str(SOURCE_SIZE)},
        "streams": [
            {"index": 0, "codec_type": "video", "codec_name": "h264", "disposition": {"default": 1}},
            {
                "index": 1,
                "codec_type": "audio",
                "codec_name": "aac",
                "bit_rate": audio_bitrate,
                "disposition": {"default": 1},
            },
        ],
    }


@pytest.fixture
def fake_probe():
    def probe(path):
        return fake_probe_data()

    return probe


@pytest.fixture
def runner_factory():
    return FakeRunnerFactory()


@pytest.fixture
def make_source(tmp_path):
    source_dir = tmp_path / "sources"
    source_dir.mkdir()

    def make(name="clip.mp4", size=SOURCE_SIZE):
        path = source_dir / name
        path.write_bytes(b"\0" * size)
        return path

    return make


@pytest.fixture
def context(tmp_path, runner_factory, fake_probe):
    return PipelineContext(
        temp_dir=tmp_path / "work",
        output_dir=tmp_path / "out",
        tools=ExternalTools(),
        max_concurrency=2,
        probe_func=fake_probe,
        runner_factory=runner_factory,
        encoder_resolver=EncoderCapabilityResolver({"libx264", "libx265", "libsvtav1", "h264_nvenc", "aac"}),
    )
