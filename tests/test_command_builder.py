"""Tests for the yt-dlp and FFmpeg argument lists."""

from pathlib import Path

import pytest

from media_queue.domain.preset import Preset, QualityMode
from media_queue.services.command_builder import build_convert_args, build_download_args, quality_flag_for

SRC = Path("/in/clip.mov")
DST = Path("/tmp/job/clip.mp4")


def test_video_match_source():
    args = build_convert_args(SRC, DST, Preset(), "libx264", 672_000.4)
    assert args == [
        "-hide_banner", "-nostdin", "-y", "-i", str(SRC),
        "-c:v", "libx264", "-b:v", "672000",
        "-c:a", "aac", "-b:a", "192000",
        str(DST),
    ]


def test_low_bitrate_is_raised_to_threshold():
    args = build_convert_args(SRC, DST, Preset(), "libx264", -5000.0)
    assert args[args.index("-b:v") + 1] == "100000"


def test_fixed_quality_uses_encoder_specific_flag():
    preset = Preset(quality_mode=QualityMode.FIXED, crf=28)
    assert build_convert_args(SRC, DST, preset, "libx265")[7:9] == ["-crf", "28"]
    assert build_convert_args(SRC, DST, preset, "hevc_nvenc")[7:9] == ["-cq", "28"]
    assert build_convert_args(SRC, DST, preset, "h264_qsv")[7:9] == ["-global_quality", "28"]


def test_fixed_bitrate():
    preset = Preset(quality_mode=QualityMode.FIXED, video_bitrate=2_500_000, audio_bitrate=128_000)
    args = build_convert_args(SRC, DST, preset, "libx264")
    assert args[7:9] == ["-b:v", "2500000"]
    assert args[-3:-1] == ["-b:a", "128000"]


def test_webm_uses_opus_audio():
    args = build_convert_args(SRC, Path("/tmp/job/clip.webm"), Preset(container="webm"), "libsvtav1", 1_000_000)
    assert args[args.index("-c:a") + 1] == "libopus"


def test_audio_only():
    args = build_convert_args(SRC, Path("/tmp/job/clip.mp3"), Preset(audio_format="mp3"))
    assert args == [
        "-hide_banner", "-nostdin", "-y", "-i", str(SRC),
        "-vn", "-c:a", "libmp3lame", "-b:a", "192000",
        str(Path("/tmp/job/clip.mp3")),
    ]


def test_lossless_audio_has_no_bitrate():
    args = build_convert_args(SRC, Path("/tmp/job/clip.flac"), Preset(audio_format="flac", audio_bitrate=320_000))
    assert "-b:a" not in args
    assert args[args.index("-c:a") + 1] == "flac"


def test_video_without_encoder_is_rejected():
    with pytest.raises(ValueError):
        build_convert_args(SRC, DST, Preset())


@pytest.mark.parametrize(
    "codec, flag",
    [("libx264", "-crf"), ("h264_amf", "-qp_i"), ("hevc_vaapi", "-qp"), ("h264_videotoolbox", "-q:v")],
)
def test_quality_flags(codec, flag):
    assert quality_flag_for(codec) == flag


def test_download_args():
    preset = Preset(extra_download_args=("-f", "best"))
    args = build_download_args("https://example.com/v", Path("/tmp/dl/job1"), preset)
    assert args == [
        "--newline", "--no-playlist", "--no-part",
        "-o", str(Path("/tmp/dl/job1") / "%(title)s.%(ext)s"),
        "-f", "best",
        "https://example.com/v",
    ]


def test_download_only_audio_is_extracted_by_yt_dlp():
    args = build_download_args("https://example.com/v", Path("/tmp/dl"), Preset(audio_format="opus", transcode=False))
    assert args[-4:] == ["-x", "--audio-format", "opus", "https://example.com/v"]


def test_download_before_conversion_keeps_original_stream():
    args = build_download_args("https://example.com/v", Path("/tmp/dl"), Preset(audio_format="opus"))
    assert "-x" not in args
