"""Tests for the "match source" bitrate calculation."""

import pytest

from conftest import fake_probe_data
from media_queue.domain.exceptions import InvalidInputError
from media_queue.domain.media import MediaFile
from media_queue.services.bitrate import calculate_video_bitrate, compute_video_bitrate


def test_formula():
    # 10 MB over 100 s with 128 kbps audio: (10_000_000 - 1_600_000) * 8 / 100
    assert compute_video_bitrate(10_000_000, 100, 128_000) == pytest.approx(672_000.0)


def test_without_audio():
    assert compute_video_bitrate(1_000_000, 10, 0) == pytest.approx(800_000.0)
    assert compute_video_bitrate(1_000_000, 10, None) == pytest.approx(800_000.0)


def test_result_is_float_and_uses_fractional_duration():
    result = compute_video_bitrate(1_000_000, 2.5, 0)
    assert isinstance(result, float)
    assert result == pytest.approx(3_200_000.0)


def test_audio_larger_than_file_gives_negative_bitrate():
    assert compute_video_bitrate(1000, 10, 128_000) == pytest.approx(-127_200.0)


@pytest.mark.parametrize("duration", [0, -1.0, None])
def test_non_positive_duration_is_rejected(duration):
    with pytest.raises(InvalidInputError):
        compute_video_bitrate(1_000_000, duration, 128_000)


def test_negative_inputs_are_rejected():
    with pytest.raises(InvalidInputError):
        compute_video_bitrate(-1, 10, 0)
    with pytest.raises(InvalidInputError):
        compute_video_bitrate(1000, 10, -5)


def test_calculate_from_file(make_source, fake_probe):
    path = make_source(size=1_000_000)
    # 10 s, 128 kbps audio
    assert calculate_video_bitrate(path, probe_func=fake_probe) == pytest.approx(672_000.0)


def test_calculate_reuses_media_file(make_source):
    path = make_source(size=1_000_000)
    media_file = MediaFile(path, probe_func=lambda p: fake_probe_data(duration="20.0", audio_bitrate="0"))

    def probe_must_not_run(p):
        raise AssertionError("probe called twice")

    assert calculate_video_bitrate(path, media_file=media_file, probe_func=probe_must_not_run) == pytest.approx(
        400_000.0
    )


def test_calculate_missing_file(tmp_path):
    with pytest.raises(InvalidInputError):
        calculate_video_bitrate(tmp_path / "missing.mp4")


def test_calculate_without_duration(make_source):
    path = make_source()
    with pytest.raises(InvalidInputError):
        calculate_video_bitrate(path, probe_func=lambda p: {"format": {}, "streams": []})
