"""Tests for failure classification and batch reports."""

import errno
from pathlib import Path

import pytest

from media_queue.domain.exceptions import (
    AccessDeniedError,
    BatchNotFinishedError,
    InsufficientSpaceError,
    InvalidInputError,
    PathNotFoundError,
    SpawnError,
    SubprocessFailure,
    UnknownJobError,
)
from media_queue.domain.report import BatchReport, ClassifiedFailure, FailureCategory
from media_queue.services.error_aggregator import ErrorAggregator, classify_failure, destination_error


@pytest.mark.parametrize(
    "exc, category",
    [
        (AccessDeniedError("denied"), FailureCategory.ACCESS_DENIED),
        (PermissionError(errno.EACCES, "Permission denied"), FailureCategory.ACCESS_DENIED),
        (OSError(errno.EROFS, "Read-only file system"), FailureCategory.ACCESS_DENIED),
        (PathNotFoundError("gone"), FailureCategory.PATH_NOT_FOUND),
        (FileNotFoundError(errno.ENOENT, "No such file or directory"), FailureCategory.PATH_NOT_FOUND),
        (OSError(errno.ENOTDIR, "Not a directory"), FailureCategory.PATH_NOT_FOUND),
        (InsufficientSpaceError("full"), FailureCategory.INSUFFICIENT_SPACE),
        (OSError(errno.ENOSPC, "No space left on device"), FailureCategory.INSUFFICIENT_SPACE),
        (
            SubprocessFailure("ffmpeg", 1, ["av_interleaved_write_frame(): No space left on device"]),
            FailureCategory.INSUFFICIENT_SPACE,
        ),
        (SubprocessFailure("ffmpeg", 1, ["Conversion failed!"]), FailureCategory.OTHER),
        (SpawnError("missing"), FailureCategory.OTHER),
        (InvalidInputError("no duration"), FailureCategory.OTHER),
        (RuntimeError("boom"), FailureCategory.OTHER),
        (OSError(errno.EIO, "I/O error"), FailureCategory.OTHER),
    ],
)
def test_classify_failure(exc, category):
    failure = classify_failure(exc)
    assert failure.category is category
    assert failure.error_type == type(exc).__name__


def test_destination_error_wraps_by_errno():
    target = Path("/out/a.mp4")
    assert isinstance(destination_error(PermissionError(errno.EACCES, "x"), target), AccessDeniedError)
    assert isinstance(destination_error(FileNotFoundError(errno.ENOENT, "x"), target), PathNotFoundError)
    error = destination_error(OSError(errno.ENOSPC, "x"), target)
    assert isinstance(error, InsufficientSpaceError)
    assert error.path == target


def failure(category):
    return ClassifiedFailure(category, "Error", "message")


def test_summary_combines_multiple_categories():
    report = BatchReport("b", failures={FailureCategory.ACCESS_DENIED: 2, FailureCategory.INSUFFICIENT_SPACE: 1})
    summary = report.summary()
    assert summary.key == "conversionFilesCantBeSaved"
    assert summary.count == 3
    assert "3" in summary.text


@pytest.mark.parametrize(
    "category, key",
    [
        (FailureCategory.ACCESS_DENIED, "conversionFilesNoWriteAccess"),
        (FailureCategory.PATH_NOT_FOUND, "conversionFilesPathNotFound"),
        (FailureCategory.INSUFFICIENT_SPACE, "notEnoughSpace"),
        (FailureCategory.OTHER, "conversionFilesFailed"),
    ],
)
def test_summary_single_category(category, key):
    summary = BatchReport("b", failures={category: 3}).summary()
    assert summary.key == key
    assert summary.count == 3
    assert "{0}" not in summary.text


def test_summary_without_failures():
    assert BatchReport("b").summary() is None


def test_aggregator_builds_report():
    aggregator = ErrorAggregator()
    aggregator.open_batch("b", ["j1", "j2", "j3", "j4"])
    aggregator.record("j1", failure(FailureCategory.ACCESS_DENIED))
    aggregator.record("j2", failure(FailureCategory.ACCESS_DENIED))
    aggregator.record_success("j3", [Path("/out/a.mp4")])
    assert not aggregator.is_complete("b")
    aggregator.record_canceled("j4")
    assert aggregator.is_complete("b")

    report = aggregator.finalize("b")
    assert report.failures == {FailureCategory.ACCESS_DENIED: 2}
    assert report.succeeded_paths == [Path("/out/a.mp4")]
    assert report.canceled_count == 1
    assert set(report.failed_jobs) == {"j1", "j2"}
    assert report.summary().key == "conversionFilesNoWriteAccess"


def test_duplicate_record_is_ignored():
    aggregator = ErrorAggregator()
    aggregator.open_batch("b", ["j1"])
    aggregator.record("j1", failure(FailureCategory.OTHER))
    aggregator.record("j1", failure(FailureCategory.OTHER))
    aggregator.record_success("j1", [Path("x")])
    report = aggregator.finalize("b")
    assert report.failures == {FailureCategory.OTHER: 1}
    assert report.succeeded_paths == []


def test_finalize_with_outstanding_jobs():
    aggregator = ErrorAggregator()
    aggregator.open_batch("b", ["j1", "j2"])
    aggregator.record_success("j1")
    with pytest.raises(BatchNotFinishedError):
        aggregator.finalize("b")


def test_finalized_batch_is_dropped():
    aggregator = ErrorAggregator()
    aggregator.open_batch("b", ["j1"])
    aggregator.record_success("j1")
    aggregator.finalize("b")
    with pytest.raises(UnknownJobError):
        aggregator.finalize("b")
    with pytest.raises(UnknownJobError):
        aggregator.record("j1", failure(FailureCategory.OTHER))


def test_advisories_are_deduplicated():
    aggregator = ErrorAggregator()
    aggregator.open_batch("b", ["j1", "j2"])
    aggregator.add_advisory("j1", "fallback")
    aggregator.add_advisory("j2", "fallback")
    aggregator.record_success("j1")
    aggregator.record_success("j2")
    assert aggregator.finalize("b").advisories == ["fallback"]


def test_empty_batch_is_complete():
    aggregator = ErrorAggregator()
    aggregator.open_batch("b", [])
    assert aggregator.is_complete("b")
    assert aggregator.finalize("b").summary() is None
