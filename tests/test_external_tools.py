"""Tests for tool resolution, encoder listing and the file logs."""

import subprocess
import sys

import yaml

from media_queue.domain.report import BatchReport, ClassifiedFailure, FailureCategory
from media_queue.services.logging_service import BatchLog, ErrorLog
from media_queue.utils import external_tools
from media_queue.utils.external_tools import ExternalTools, parse_encoder_list

ENCODERS_OUTPUT = """Encoders:
 V..... = Video
 A..... = Audio
 S..... = Subtitle
 .F.... = Frame-level multithreading
 ------
 V....D libx264              libx264 H.264 / AVC / MPEG-4 AVC / MPEG-4 part 10 (codec h264)
 V....D h264_nvenc           NVIDIA NVENC H.264 encoder (codec h264)
 VF.... hevc_qsv             HEVC (Intel Quick Sync Video acceleration) (codec hevc)
 A....D aac                  AAC (Advanced Audio Coding)
 S..... srt                  SubRip subtitle
"""


def test_parse_encoder_list():
    assert parse_encoder_list(ENCODERS_OUTPUT) == {"libx264", "h264_nvenc", "hevc_qsv", "aac", "srt"}


def test_parse_encoder_list_ignores_legend_and_empty_output():
    assert "=" not in parse_encoder_list(ENCODERS_OUTPUT)
    assert parse_encoder_list("") == frozenset()


def test_bare_names_without_configuration():
    tools = ExternalTools()
    assert tools.ffmpeg_path == "ffmpeg"
    assert tools.ffprobe_path == "ffprobe"
    assert tools.yt_dlp_path == "yt-dlp"


def test_configured_locations(tmp_path):
    exe = ".exe" if sys.platform == "win32" else ""
    (tmp_path / f"ffmpeg{exe}").write_bytes(b"")
    yt_dlp = tmp_path / f"yt-dlp{exe}"
    yt_dlp.write_bytes(b"")
    tools = ExternalTools(ffmpeg_dir=tmp_path, yt_dlp_path=yt_dlp)
    assert tools.ffmpeg_path == str(tmp_path / f"ffmpeg{exe}")
    # ffprobe is missing from the directory, so PATH decides.
    assert tools.ffprobe_path == "ffprobe"
    assert tools.yt_dlp_path == str(yt_dlp)


def test_list_encoders_uses_ffmpeg_output(monkeypatch):
    def fake_run_cmd(cmd_parts, **kwargs):
        assert cmd_parts[1:] == ["-hide_banner", "-encoders"]
        return subprocess.CompletedProcess(cmd_parts, 0, ENCODERS_OUTPUT, "")

    monkeypatch.setattr(external_tools, "run_cmd", fake_run_cmd)
    assert "h264_nvenc" in ExternalTools().list_encoders()


def test_list_encoders_failure_is_empty(monkeypatch):
    monkeypatch.setattr(
        external_tools, "run_cmd", lambda cmd_parts, **kwargs: subprocess.CompletedProcess(cmd_parts, 1, "", "err")
    )
    assert ExternalTools().list_encoders() == frozenset()


def test_error_log_appends_blocks(tmp_path):
    log = ErrorLog(tmp_path / "logs")
    log.write("Job: 1", "Error: boom")
    log.write("Job: 2")
    text = log.log_file_path.read_text(encoding="utf-8")
    assert text.count(ErrorLog.linesep_marker) == 2
    assert "Error: boom" in text


def test_batch_log_appends_indexed_entries(tmp_path):
    log = BatchLog(tmp_path)
    report = BatchReport("b1", failures={FailureCategory.OTHER: 1})
    report.failed_jobs["j1"] = ClassifiedFailure(FailureCategory.OTHER, "SpawnError", "missing")
    log.write(report)
    log.write(BatchReport("b2"))

    entries = yaml.safe_load(log.log_file_path.read_text(encoding="utf-8"))
    assert [entry["index"] for entry in entries] == [1, 2]
    assert entries[0]["batch_id"] == "b1"
    assert entries[0]["failures"] == {"other": 1}
    assert entries[0]["summary"] == "1 file(s) could not be processed."
    assert entries[1]["summary"] is None
