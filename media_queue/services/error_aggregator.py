"""
Collects job outcomes per batch and turns them into a `BatchReport`.

Failures are classified by cause, not by message text. Destination write
problems are recognised by exception type or OS error number, and the only
text ever inspected is FFmpeg's well-known "No space left on device" line in
a failed process's output.
"""
import errno
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Set

from loguru import logger

from ..config.common import NO_SPACE_LEFT_MARKER
from ..domain.exceptions import (
    AccessDeniedError,
    BatchNotFinishedError,
    DestinationWriteError,
    InsufficientSpaceError,
    MediaQueueException,
    PathNotFoundError,
    SubprocessFailure,
    UnknownJobError,
)
from ..domain.report import BatchReport, ClassifiedFailure, FailureCategory

_ACCESS_DENIED_ERRNOS = {errno.EACCES, errno.EPERM, errno.EROFS}
_PATH_NOT_FOUND_ERRNOS = {errno.ENOENT, errno.ENOTDIR}
_NO_SPACE_ERRNOS = {errno.ENOSPC, getattr(errno, "EDQUOT", errno.ENOSPC)}


def _category_for(exc: BaseException) -> FailureCategory:
    if isinstance(exc, AccessDeniedError):
        return FailureCategory.ACCESS_DENIED
    if isinstance(exc, PathNotFoundError):
        return FailureCategory.PATH_NOT_FOUND
    if isinstance(exc, InsufficientSpaceError):
        return FailureCategory.INSUFFICIENT_SPACE

    if isinstance(exc, OSError):
        if isinstance(exc, PermissionError) or exc.errno in _ACCESS_DENIED_ERRNOS:
            return FailureCategory.ACCESS_DENIED
        if isinstance(exc, (FileNotFoundError, NotADirectoryError)) or exc.errno in _PATH_NOT_FOUND_ERRNOS:
            return FailureCategory.PATH_NOT_FOUND
        if exc.errno in _NO_SPACE_ERRNOS:
            return FailureCategory.INSUFFICIENT_SPACE

    if isinstance(exc, SubprocessFailure):
        if any(NO_SPACE_LEFT_MARKER in line for line in exc.output_tail):
            return FailureCategory.INSUFFICIENT_SPACE

    return FailureCategory.OTHER


def destination_error(exc: OSError, path: Path) -> MediaQueueException:
    """
    Wraps an OSError raised while writing to `path` in the matching
    `DestinationWriteError` subclass. Unrecognised errors are wrapped in the
    base class and end up in the OTHER category.
    """
    category = _category_for(exc)
    error_class = {
        FailureCategory.ACCESS_DENIED: AccessDeniedError,
        FailureCategory.PATH_NOT_FOUND: PathNotFoundError,
        FailureCategory.INSUFFICIENT_SPACE: InsufficientSpaceError,
    }.get(category, DestinationWriteError)
    return error_class(f"Cannot write {path}: {exc.strerror or exc}", path=path)


def classify_failure(exc: BaseException) -> ClassifiedFailure:
    """Reduces an exception raised inside a job to a report category."""
    return ClassifiedFailure(
        category=_category_for(exc),
        error_type=type(exc).__name__,
        message=str(exc) or type(exc).__name__,
    )


@dataclass
class _BatchState:
    outstanding: Set[str]
    report: BatchReport
    recorded: Set[str] = field(default_factory=set)


class ErrorAggregator:
    """
    Thread-safe accumulator of terminal job outcomes, grouped by batch.

    Each job's terminal state is recorded exactly once. Once every job of a
    batch is recorded, `finalize()` hands out the report and forgets the batch.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._batches: Dict[str, _BatchState] = {}
        self._job_batches: Dict[str, str] = {}

    def open_batch(self, batch_id: str, job_ids: Iterable[str]):
        job_ids = list(job_ids)
        with self._lock:
            if batch_id in self._batches:
                raise ValueError(f"Batch {batch_id} is already open.")
            self._batches[batch_id] = _BatchState(outstanding=set(job_ids), report=BatchReport(batch_id))
            for job_id in job_ids:
                self._job_batches[job_id] = batch_id
        logger.debug(f"Batch {batch_id} opened with {len(job_ids)} job(s).")

    def _take(self, job_id: str):
        """Marks `job_id` recorded. Returns its batch state, or None for a duplicate. Caller holds the lock."""
        batch_id = self._job_batches.get(job_id)
        if batch_id is None:
            raise UnknownJobError(f"Job {job_id} does not belong to an open batch.")
        state = self._batches[batch_id]
        if job_id in state.recorded:
            logger.warning(f"Outcome of job {job_id} was already recorded. Ignoring the duplicate.")
            return None
        state.recorded.add(job_id)
        state.outstanding.discard(job_id)
        return state

    def record(self, job_id: str, failure: ClassifiedFailure):
        with self._lock:
            state = self._take(job_id)
            if state is None:
                return
            report = state.report
            report.failures[failure.category] = report.failures.get(failure.category, 0) + 1
            report.failed_jobs[job_id] = failure

    def record_success(self, job_id: str, paths: Iterable[Path] = ()):
        with self._lock:
            state = self._take(job_id)
            if state is None:
                return
            state.report.succeeded_paths.extend(paths)

    def record_canceled(self, job_id: str):
        with self._lock:
            state = self._take(job_id)
            if state is None:
                return
            state.report.canceled_count += 1

    def add_advisory(self, job_id: str, text: str):
        """Attaches a non-fatal notice. Identical notices are reported once per batch."""
        with self._lock:
            batch_id = self._job_batches.get(job_id)
            if batch_id is None:
                raise UnknownJobError(f"Job {job_id} does not belong to an open batch.")
            advisories: List[str] = self._batches[batch_id].report.advisories
            if text not in advisories:
                advisories.append(text)

    def batch_of(self, job_id: str):
        with self._lock:
            return self._job_batches.get(job_id)

    def is_complete(self, batch_id: str) -> bool:
        with self._lock:
            state = self._batches.get(batch_id)
            if state is None:
                raise UnknownJobError(f"Unknown batch {batch_id}.")
            return not state.outstanding

    def finalize(self, batch_id: str) -> BatchReport:
        """
        Returns the report of a fully recorded batch and drops the batch.

        Raises:
            UnknownJobError: If the batch is unknown or already finalized.
            BatchNotFinishedError: If some jobs have not been recorded yet.
        """
        with self._lock:
            state = self._batches.get(batch_id)
            if state is None:
                raise UnknownJobError(f"Unknown batch {batch_id}.")
            if state.outstanding:
                raise BatchNotFinishedError(
                    f"Batch {batch_id} still has {len(state.outstanding)} outstanding job(s)."
                )
            del self._batches[batch_id]
            for job_id in state.recorded:
                self._job_batches.pop(job_id, None)
        return state.report
