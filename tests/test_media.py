"""Tests for MediaFile and duration parsing."""

import ffmpeg
import pytest

from conftest import fake_probe_data
from media_queue.domain.exceptions import InvalidInputError
from media_queue.domain.media import MediaFile, parse_duration
from media_queue.domain.preset import MediaSource


@pytest.mark.parametrize(
    "text, seconds",
    [("3600.5", 3600.5), ("01:00:00.500", 3600.5), ("02:03.5", 123.5), ("garbage", 0.0), ("", 0.0)],
)
def test_parse_duration(text, seconds):
    assert parse_duration(text) == pytest.approx(seconds)


def test_media_file_properties(make_source, fake_probe):
    path = make_source("clip.mp4", size=2048)
    media_file = MediaFile(path, probe_func=fake_probe)
    assert media_file.filename == "clip.mp4"
    assert media_file.stem == "clip"
    assert media_file.size == 2048
    assert media_file.duration == pytest.approx(10.0)
    assert media_file.has_video
    assert media_file.audio_bitrate == 128_000


def test_duration_falls_back_to_stream(make_source):
    data = fake_probe_data()
    data["format"] = {}
    data["streams"][0]["duration"] = "42.0"
    media_file = MediaFile(make_source(), probe_func=lambda p: data)
    assert media_file.duration == pytest.approx(42.0)


def test_missing_duration_is_zero(make_source):
    media_file = MediaFile(make_source(), probe_func=lambda p: {"streams": []})
    assert media_file.duration == 0.0
    assert media_file.audio_bitrate == 0
    assert not media_file.has_video


def test_audio_bitrate_from_matroska_tags(make_source):
    data = fake_probe_data()
    audio = data["streams"][1]
    del audio["bit_rate"]
    audio["tags"] = {"BPS": "96000"}
    assert MediaFile(make_source("clip.mkv"), probe_func=lambda p: data).audio_bitrate == 96_000


def test_default_audio_stream_is_preferred(make_source):
    data = fake_probe_data()
    data["streams"][1]["disposition"] = {"default": 0}
    data["streams"].append(
        {"codec_type": "audio", "bit_rate": "320000", "disposition": {"default": 1}}
    )
    assert MediaFile(make_source(), probe_func=lambda p: data).audio_bitrate == 320_000


def test_cover_art_is_not_a_video_stream(make_source):
    data = fake_probe_data()
    data["streams"][0]["disposition"] = {"attached_pic": 1}
    assert not MediaFile(make_source("song.mp3"), probe_func=lambda p: data).has_video


def test_missing_file(tmp_path, fake_probe):
    with pytest.raises(InvalidInputError):
        MediaFile(tmp_path / "missing.mp4", probe_func=fake_probe)


def test_probe_error_becomes_invalid_input(make_source):
    def failing_probe(path):
        raise ffmpeg.Error("ffprobe", b"", b"Invalid data found when processing input")

    with pytest.raises(InvalidInputError):
        MediaFile(make_source(), probe_func=failing_probe)


def test_probe_tool_missing_becomes_invalid_input(make_source):
    def failing_probe(path):
        raise FileNotFoundError("ffprobe")

    with pytest.raises(InvalidInputError):
        MediaFile(make_source(), probe_func=failing_probe)


@pytest.mark.parametrize(
    "locator, remote",
    [
        ("https://www.youtube.com/watch?v=abc", True),
        ("www.example.com/video", True),
        ("/home/user/clip.mp4", False),
        ("no-dot-here", False),
        ("missing_clip.mp4", False),
        ("videos/clip.mp4", False),
    ],
)
def test_media_source_is_remote(locator, remote):
    assert MediaSource(locator).is_remote is remote


def test_existing_relative_file_is_local(make_source, monkeypatch):
    path = make_source("clip.mp4")
    monkeypatch.chdir(path.parent)
    source = MediaSource("clip.mp4")
    assert not source.is_remote
    assert source.local_path.name == "clip.mp4"
