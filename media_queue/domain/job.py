"""
The Job state machine.

A `Job` is one queued unit of work: acquire and/or convert one media item. It
owns its lifecycle, its progress snapshot and its terminal result. The
scheduler and the job's executor drive its transitions; every other party only
observes them.

State graph::

    QUEUED -> ACQUIRING -> CONVERTING -> COMPLETED
       |          |            |
       |          +-> FAILED <-+
       +---------------------------> CANCELED (from any non-terminal state)

ACQUIRING is skipped for local sources and CONVERTING is skipped for
acquisition-only presets.
"""
import threading
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, List, Optional, Tuple

from loguru import logger

from .exceptions import InvalidTransitionError
from .preset import MediaSource, Preset
from .report import ClassifiedFailure

if TYPE_CHECKING:
    from ..utils.process_runner import ProcessRunner
    from ..utils.progress_parser import ProgressUpdate


class JobState(Enum):
    QUEUED = "queued"
    ACQUIRING = "acquiring"
    CONVERTING = "converting"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELED = "canceled"

    @property
    def is_terminal(self) -> bool:
        return self in (JobState.COMPLETED, JobState.FAILED, JobState.CANCELED)

    @property
    def is_active(self) -> bool:
        return self in (JobState.ACQUIRING, JobState.CONVERTING)


_ALLOWED_TRANSITIONS = {
    JobState.QUEUED: {
        JobState.ACQUIRING,
        JobState.CONVERTING,
        JobState.COMPLETED,
        JobState.FAILED,
        JobState.CANCELED,
    },
    JobState.ACQUIRING: {
        JobState.CONVERTING,
        JobState.COMPLETED,
        JobState.FAILED,
        JobState.CANCELED,
    },
    JobState.CONVERTING: {JobState.COMPLETED, JobState.FAILED, JobState.CANCELED},
    JobState.COMPLETED: set(),
    JobState.FAILED: set(),
    JobState.CANCELED: set(),
}


@dataclass(frozen=True)
class ProgressSnapshot:
    """Last known progress of a job. `fraction` is in [0, 1]."""

    fraction: float = 0.0
    remaining: Optional[timedelta] = None
    speed: Optional[float] = None

    @property
    def percent(self) -> int:
        return int(self.fraction * 100)


@dataclass(frozen=True)
class JobResult:
    """Terminal result: output paths on COMPLETED, a classified failure on FAILED."""

    output_paths: Tuple[Path, ...] = ()
    failure: Optional[ClassifiedFailure] = None

    @property
    def succeeded(self) -> bool:
        return self.failure is None


class Job:
    """
    One acquisition and/or conversion job.

    All state lives behind a per-job lock. Listeners are notified after the
    lock is released, in the order the changes happened on the worker thread.

    Attributes:
        id (str): Unique id assigned at creation.
        source (MediaSource): What to process.
        preset (Preset): Shared, immutable output description.
        batch_id (Optional[str]): The batch this job was submitted with.
        advisories (List[str]): Non-fatal notices raised while running.
    """

    def __init__(
        self,
        source: MediaSource,
        preset: Preset,
        batch_id: Optional[str] = None,
        job_id: Optional[str] = None,
    ):
        self.id: str = job_id or uuid.uuid4().hex
        self.source = source if isinstance(source, MediaSource) else MediaSource(str(source))
        self.preset = preset
        self.batch_id = batch_id
        self.created_at = datetime.now()
        self.advisories: List[str] = []

        self._lock = threading.RLock()
        self._state = JobState.QUEUED
        self._progress = ProgressSnapshot()
        self._result: Optional[JobResult] = None
        self._runner: Optional["ProcessRunner"] = None
        self._cancel_requested = False
        self._publishing = False
        self._phase_span: Tuple[float, float] = (0.0, 1.0)
        self._phase_started: Optional[float] = None
        self._listeners: list = []

    # --- Read-only views ---

    @property
    def state(self) -> JobState:
        with self._lock:
            return self._state

    @property
    def progress(self) -> ProgressSnapshot:
        with self._lock:
            return self._progress

    @property
    def result(self) -> Optional[JobResult]:
        with self._lock:
            return self._result

    @property
    def is_terminal(self) -> bool:
        return self.state.is_terminal

    @property
    def is_active(self) -> bool:
        return self.state.is_active

    @property
    def cancel_requested(self) -> bool:
        with self._lock:
            return self._cancel_requested

    @property
    def needs_acquisition(self) -> bool:
        return self.source.is_remote

    @property
    def needs_conversion(self) -> bool:
        return self.preset.transcode

    def add_listener(self, listener):
        """
        Registers an observer with `on_job_state_changed(job, old, new)` and
        `on_job_progress(job, snapshot)` methods.
        """
        self._listeners.append(listener)

    # --- Transitions ---

    def transition_to(self, new_state: JobState, result: Optional[JobResult] = None):
        """
        Moves the job to `new_state`.

        Terminal states store `result`. A job can only become CANCELED once the
        subprocess it owned has exited.

        Raises:
            InvalidTransitionError: If the current state does not allow `new_state`,
                                    or a canceled job still owns a running process.
        """
        with self._lock:
            old_state = self._state
            if new_state not in _ALLOWED_TRANSITIONS[old_state]:
                raise InvalidTransitionError(
                    f"Job {self.id}: cannot move from {old_state.value} to {new_state.value}"
                )
            if new_state is JobState.CANCELED and self._runner is not None and self._runner.is_running:
                raise InvalidTransitionError(
                    f"Job {self.id}: cannot cancel while process {self._runner.pid} is still running"
                )
            self._state = new_state
            if new_state.is_terminal:
                self._runner = None
                self._result = result if result is not None else JobResult()
                if new_state is JobState.COMPLETED:
                    self._progress = ProgressSnapshot(fraction=1.0, remaining=timedelta(0))
        logger.debug(f"Job {self.id}: {old_state.value} -> {new_state.value}")
        for listener in list(self._listeners):
            listener.on_job_state_changed(self, old_state, new_state)

    def begin_phase(self, phase: JobState, span: Tuple[float, float] = (0.0, 1.0)):
        """
        Enters ACQUIRING or CONVERTING. Progress reported during the phase is
        mapped into `span` of the overall fraction.
        """
        if not phase.is_active:
            raise InvalidTransitionError(f"{phase.value} is not a processing phase")
        with self._lock:
            self._phase_span = span
            self._phase_started = time.monotonic()
        self.transition_to(phase)

    # --- Progress ---

    def update_progress(self, update: "ProgressUpdate") -> bool:
        """
        Applies a parsed progress update.

        Updates are accepted only while the job is ACQUIRING or CONVERTING. The
        exposed fraction never decreases. An update that would lower it is
        ignored, as are updates without a fraction.

        Returns:
            True if the snapshot changed.
        """
        with self._lock:
            if not self._state.is_active or update.fraction is None:
                return False
            low, high = self._phase_span
            phase_fraction = min(max(update.fraction, 0.0), 1.0)
            overall = low + phase_fraction * (high - low)
            if overall < self._progress.fraction:
                return False

            remaining = update.remaining
            if remaining is None and phase_fraction > 0 and self._phase_started is not None:
                spent = time.monotonic() - self._phase_started
                remaining = timedelta(seconds=spent * (1 - phase_fraction) / phase_fraction)

            snapshot = ProgressSnapshot(fraction=overall, remaining=remaining, speed=update.speed)
            self._progress = snapshot
        for listener in list(self._listeners):
            listener.on_job_progress(self, snapshot)
        return True

    # --- Subprocess ownership and cancellation ---

    def attach_process(self, runner: "ProcessRunner"):
        """
        Records the subprocess this job currently owns.

        If a cancel was requested before the process existed, the process is
        killed right away so the worker unwinds as soon as it reads its output.
        """
        with self._lock:
            self._runner = runner
            kill_now = self._cancel_requested
        if kill_now:
            runner.kill()

    def detach_process(self):
        with self._lock:
            self._runner = None

    def begin_publishing(self) -> bool:
        """
        Marks the start of moving the output into place. From here on the job
        can no longer be canceled.

        Returns:
            False if a cancel was requested first.
        """
        with self._lock:
            if self._cancel_requested:
                return False
            self._publishing = True
            return True

    def request_cancel(self) -> bool:
        """
        Flags the job as canceled and kills its subprocess, if any.

        The CANCELED transition itself is performed by the worker once the
        process has exited.

        Returns:
            False if the job is already terminal or is publishing its output.
        """
        with self._lock:
            if self._state.is_terminal or self._publishing:
                return False
            self._cancel_requested = True
            runner = self._runner
        if runner is not None:
            logger.info(f"Job {self.id}: killing process {runner.pid} on cancel request.")
            runner.kill()
        return True

    def __repr__(self) -> str:
        return f"Job(id={self.id}, source={self.source}, state={self.state.value})"
