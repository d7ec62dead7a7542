"""
The job queue: admission, concurrency bound, cancellation and batches.

Jobs are admitted strictly in submission order. At most `max_concurrency`
jobs run at once, each on its own worker thread of a ThreadPoolExecutor. When
a job ends, the queue frees its slot, admits the next job and, if it was the
last outstanding job of its batch, finalizes the batch report. All of that
happens in one critical section.
"""
import collections
import threading
import uuid
from concurrent.futures import ThreadPoolExecutor
from typing import Deque, Dict, Iterable, List, Optional, Set

from loguru import logger

from ..domain.exceptions import UnknownJobError
from ..domain.job import Job, JobResult, JobState, ProgressSnapshot
from ..domain.preset import MediaSource, Preset
from ..domain.report import BatchReport
from ..services.error_aggregator import ErrorAggregator
from ..services.job_executor import JobExecutor
from ..services.logging_service import BatchLog


class PipelineObserver:
    """
    Receives job and batch notifications. Override the hooks you need.

    Job hooks are called on the job's worker thread, in the order the changes
    happened. They must not block for long.
    """

    def on_job_state_changed(self, job: Job, old_state: JobState, new_state: JobState):
        pass

    def on_job_progress(self, job: Job, snapshot: ProgressSnapshot):
        pass

    def on_batch_finished(self, report: BatchReport):
        pass


class JobQueue:
    """
    FIFO queue running jobs with bounded concurrency.

    Usage::

        queue = JobQueue(context)
        batch_id = queue.submit_batch(["https://...", "clip.mov"], Preset())
        report = queue.wait_batch(batch_id)
        queue.shutdown()
    """

    def __init__(self, context, max_concurrency: Optional[int] = None):
        self.context = context
        self.max_concurrency = max_concurrency or context.max_concurrency
        if self.max_concurrency < 1:
            raise ValueError(f"max_concurrency must be >= 1, got {self.max_concurrency}")

        self.aggregator = ErrorAggregator()
        self.executor = JobExecutor(context, self.aggregator)
        self.batch_log = BatchLog(context.log_dir) if context.log_dir else None

        self._pool = ThreadPoolExecutor(max_workers=self.max_concurrency, thread_name_prefix="job")
        self._lock = threading.Lock()
        self._idle = threading.Condition(self._lock)
        self._pending: Deque[Job] = collections.deque()
        self._active: Set[str] = set()
        self._jobs: Dict[str, Job] = {}
        self._batch_events: Dict[str, threading.Event] = {}
        self._batch_reports: Dict[str, BatchReport] = {}
        self._observers: List[PipelineObserver] = []
        self._closed = False

        logger.info(f"Job queue ready. Running up to {self.max_concurrency} job(s) at once.")

    # --- Submission ---

    def submit(self, job: Job) -> str:
        """
        Enqueues a single job. A job without a batch gets a batch of its own,
        so `wait_batch(job.batch_id)` works for it too.

        Returns:
            The job id.
        """
        if job.batch_id is None:
            job.batch_id = uuid.uuid4().hex
        self._enqueue(job.batch_id, [job])
        return job.id

    def submit_batch(self, sources: Iterable, preset: Preset) -> str:
        """
        Enqueues one job per source, all sharing `preset`.

        Returns:
            The batch id.
        """
        batch_id = uuid.uuid4().hex
        jobs = [
            Job(source if isinstance(source, MediaSource) else MediaSource(str(source)), preset, batch_id=batch_id)
            for source in sources
        ]
        self._enqueue(batch_id, jobs)
        logger.info(f"Batch {batch_id}: {len(jobs)} job(s) submitted.")
        return batch_id

    def _enqueue(self, batch_id: str, jobs: List[Job]):
        report = None
        with self._lock:
            if self._closed:
                raise RuntimeError("The job queue has been shut down.")
            for job in jobs:
                if job.id in self._jobs:
                    raise ValueError(f"Job {job.id} was already submitted.")
            self.aggregator.open_batch(batch_id, [job.id for job in jobs])
            self._batch_events[batch_id] = threading.Event()
            for job in jobs:
                job.add_listener(self)
                self._jobs[job.id] = job
                self._pending.append(job)
            if not jobs:
                report = self._finalize_if_complete(batch_id)
            self._admit()
        if report is not None:
            self._publish_batch(report)

    # --- Admission ---

    def _admit(self):
        """Starts queued jobs while slots are free. Caller holds the lock."""
        while self._pending and len(self._active) < self.max_concurrency:
            job = self._pending.popleft()
            self._active.add(job.id)
            logger.debug(f"Job {job.id}: admitted ({len(self._active)}/{self.max_concurrency} active).")
            self._pool.submit(self._run_job, job)

    def _run_job(self, job: Job):
        try:
            self.executor.run(job)
        except Exception:
            logger.exception(f"Job {job.id}: worker crashed.")
        finally:
            self._on_job_finished(job)

    def _on_job_finished(self, job: Job):
        with self._lock:
            self._active.discard(job.id)
            if job.state is JobState.CANCELED:
                self._jobs.pop(job.id, None)
            report = self._finalize_if_complete(job.batch_id)
            self._admit()
            self._idle.notify_all()
        if report is not None:
            self._publish_batch(report)

    def _finalize_if_complete(self, batch_id: str) -> Optional[BatchReport]:
        """Finalizes `batch_id` once all its jobs are recorded. Caller holds the lock."""
        if batch_id not in self._batch_events or batch_id in self._batch_reports:
            return None
        if not self.aggregator.is_complete(batch_id):
            return None
        report = self.aggregator.finalize(batch_id)
        self._batch_reports[batch_id] = report
        return report

    def _publish_batch(self, report: BatchReport):
        if report.has_failures:
            logger.warning(
                f"Batch {report.batch_id} finished: {len(report.succeeded_paths)} succeeded, "
                f"{report.failure_count} failed, {report.canceled_count} canceled."
            )
        else:
            logger.success(
                f"Batch {report.batch_id} finished: {len(report.succeeded_paths)} succeeded, "
                f"{report.canceled_count} canceled."
            )
        if self.batch_log:
            self.batch_log.write(report)
        for observer in self._observers_snapshot():
            try:
                observer.on_batch_finished(report)
            except Exception:
                logger.exception(f"Observer {observer!r} failed in on_batch_finished.")
        self._batch_events[report.batch_id].set()

    # --- Cancellation ---

    def cancel(self, job_id: str) -> bool:
        """
        Cancels a job.

        A queued job is removed from the queue, becomes CANCELED at once and is
        evicted. An active job has its subprocess killed. Its worker performs
        the CANCELED transition after the process has exited, and the job is
        evicted when the worker finishes.

        Returns:
            False if the job had already finished.

        Raises:
            UnknownJobError: If the job is not known to the queue.
        """
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                raise UnknownJobError(f"Unknown job {job_id}.")
            if job.is_terminal:
                return False
            queued = job in self._pending
            if queued:
                self._pending.remove(job)

        if not queued:
            logger.info(f"Job {job_id}: cancel requested while {job.state.value}.")
            return job.request_cancel()

        job.request_cancel()
        job.transition_to(JobState.CANCELED)
        self.aggregator.record_canceled(job.id)
        logger.info(f"Job {job_id}: canceled before it started.")
        with self._lock:
            self._jobs.pop(job_id, None)
            report = self._finalize_if_complete(job.batch_id)
            self._idle.notify_all()
        if report is not None:
            self._publish_batch(report)
        return True

    def cancel_batch(self, batch_id: str) -> int:
        """
        Cancels every unfinished job of a batch. Queued jobs go first so none
        of them is admitted in the slot a canceled active job frees.

        Returns:
            The number of jobs a cancel was issued to.
        """
        with self._lock:
            if batch_id not in self._batch_events:
                raise UnknownJobError(f"Unknown batch {batch_id}.")
            queued = [job for job in self._pending if job.batch_id == batch_id]
            others = [
                job for job in self._jobs.values()
                if job.batch_id == batch_id and job not in queued and not job.is_terminal
            ]
        canceled = 0
        for job in queued + others:
            try:
                if self.cancel(job.id):
                    canceled += 1
            except UnknownJobError:
                # Evicted by a concurrent cancel.
                continue
        return canceled

    # --- Queries ---

    def active_count(self) -> int:
        with self._lock:
            return len(self._active)

    def pending_count(self) -> int:
        with self._lock:
            return len(self._pending)

    def get_job(self, job_id: str) -> Optional[Job]:
        with self._lock:
            return self._jobs.get(job_id)

    def take_result(self, job_id: str) -> Optional[JobResult]:
        """
        Returns the result of a finished job and evicts it from the queue.

        Returns None, without evicting, while the job is still running.
        """
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                raise UnknownJobError(f"Unknown job {job_id}.")
            if not job.is_terminal:
                return None
            del self._jobs[job_id]
        return job.result

    def wait_batch(self, batch_id: str, timeout: Optional[float] = None) -> BatchReport:
        """
        Blocks until every job of the batch has finished.

        Raises:
            UnknownJobError: If the batch is unknown.
            TimeoutError: If `timeout` elapses first.
        """
        with self._lock:
            event = self._batch_events.get(batch_id)
        if event is None:
            raise UnknownJobError(f"Unknown batch {batch_id}.")
        if not event.wait(timeout):
            raise TimeoutError(f"Batch {batch_id} did not finish within {timeout}s.")
        with self._lock:
            return self._batch_reports[batch_id]

    # --- Observers ---

    def subscribe(self, observer: PipelineObserver):
        with self._lock:
            self._observers.append(observer)

    def _observers_snapshot(self) -> List[PipelineObserver]:
        with self._lock:
            return list(self._observers)

    def on_job_state_changed(self, job: Job, old_state: JobState, new_state: JobState):
        for observer in self._observers_snapshot():
            try:
                observer.on_job_state_changed(job, old_state, new_state)
            except Exception:
                logger.exception(f"Observer {observer!r} failed in on_job_state_changed.")

    def on_job_progress(self, job: Job, snapshot: ProgressSnapshot):
        for observer in self._observers_snapshot():
            try:
                observer.on_job_progress(job, snapshot)
            except Exception:
                logger.exception(f"Observer {observer!r} failed in on_job_progress.")

    # --- Shutdown ---

    def shutdown(self, cancel_pending: bool = False):
        """
        Stops accepting jobs and waits for the queue to drain.

        Args:
            cancel_pending: Cancel queued and running jobs instead of letting
                            them finish.
        """
        with self._lock:
            self._closed = True
            jobs = list(self._pending) + [self._jobs[job_id] for job_id in self._active if job_id in self._jobs]
        if cancel_pending:
            for job in jobs:
                try:
                    self.cancel(job.id)
                except UnknownJobError:
                    continue
        with self._idle:
            self._idle.wait_for(lambda: not self._pending and not self._active)
        self._pool.shutdown(wait=True)
        logger.debug("Job queue shut down.")

    def __enter__(self) -> "JobQueue":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.shutdown(cancel_pending=exc_type is not None)
