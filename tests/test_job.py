"""Tests for the Job state machine, progress and cancellation."""

import pytest

from media_queue.domain.exceptions import InvalidTransitionError
from media_queue.domain.job import Job, JobResult, JobState
from media_queue.domain.preset import MediaSource, Preset
from media_queue.utils.progress_parser import ProgressParser, ProgressUpdate


class StubRunner:
    def __init__(self, dies_on_kill=True):
        self.pid = 1
        self.running = True
        self.kills = 0
        self.dies_on_kill = dies_on_kill

    @property
    def is_running(self):
        return self.running

    def kill(self):
        self.kills += 1
        if self.dies_on_kill:
            self.running = False


class Recorder:
    def __init__(self):
        self.states = []
        self.fractions = []

    def on_job_state_changed(self, job, old_state, new_state):
        self.states.append((old_state, new_state))

    def on_job_progress(self, job, snapshot):
        self.fractions.append(snapshot.fraction)


@pytest.fixture
def job():
    return Job(MediaSource("/media/clip.mp4"), Preset())


def test_new_job_is_queued(job):
    assert job.state is JobState.QUEUED
    assert job.progress.fraction == 0.0
    assert job.result is None
    assert not job.is_terminal
    assert not job.needs_acquisition
    assert job.needs_conversion
    assert len(job.id) == 32


def test_remote_source_needs_acquisition():
    assert Job(MediaSource("https://example.com/watch?v=abc"), Preset()).needs_acquisition


def test_full_lifecycle_notifies_listeners(job):
    recorder = Recorder()
    job.add_listener(recorder)
    job.begin_phase(JobState.ACQUIRING)
    job.begin_phase(JobState.CONVERTING)
    job.transition_to(JobState.COMPLETED, JobResult(output_paths=()))
    assert recorder.states == [
        (JobState.QUEUED, JobState.ACQUIRING),
        (JobState.ACQUIRING, JobState.CONVERTING),
        (JobState.CONVERTING, JobState.COMPLETED),
    ]
    assert job.progress.fraction == 1.0
    assert job.is_terminal


@pytest.mark.parametrize("terminal", [JobState.COMPLETED, JobState.FAILED, JobState.CANCELED])
def test_terminal_states_are_final(job, terminal):
    job.transition_to(terminal)
    for target in JobState:
        with pytest.raises(InvalidTransitionError):
            job.transition_to(target)


def test_converting_cannot_go_back_to_acquiring(job):
    job.begin_phase(JobState.CONVERTING)
    with pytest.raises(InvalidTransitionError):
        job.transition_to(JobState.ACQUIRING)


def test_begin_phase_rejects_non_processing_state(job):
    with pytest.raises(InvalidTransitionError):
        job.begin_phase(JobState.COMPLETED)


def test_progress_ignored_while_queued(job):
    assert not job.update_progress(ProgressUpdate(fraction=0.5))
    assert job.progress.fraction == 0.0


def test_progress_never_decreases(job):
    recorder = Recorder()
    job.add_listener(recorder)
    job.begin_phase(JobState.CONVERTING)
    assert job.update_progress(ProgressUpdate(fraction=0.5))
    assert not job.update_progress(ProgressUpdate(fraction=0.3))
    assert not job.update_progress(ProgressUpdate(fraction=None))
    assert job.update_progress(ProgressUpdate(fraction=0.7))
    assert job.progress.fraction == pytest.approx(0.7)
    assert recorder.fractions == [pytest.approx(0.5), pytest.approx(0.7)]


def test_ffmpeg_time_going_backwards_keeps_progress(job):
    parser = ProgressParser(20.0)
    job.begin_phase(JobState.CONVERTING)
    assert job.update_progress(parser.parse("frame=240 size=512kB time=00:00:10.00 bitrate=419.4kbits/s speed=2.00x"))
    assert not job.update_progress(parser.parse("frame=120 size=256kB time=00:00:05.00 bitrate=419.4kbits/s speed=2.00x"))
    assert job.progress.fraction == pytest.approx(0.5)


def test_phase_spans_map_into_overall_fraction(job):
    job.begin_phase(JobState.ACQUIRING, (0.0, 0.5))
    job.update_progress(ProgressUpdate(fraction=1.0))
    assert job.progress.fraction == pytest.approx(0.5)
    job.begin_phase(JobState.CONVERTING, (0.5, 1.0))
    job.update_progress(ProgressUpdate(fraction=0.2))
    assert job.progress.fraction == pytest.approx(0.6)


def test_remaining_time_is_estimated_when_missing(job):
    job.begin_phase(JobState.CONVERTING)
    job.update_progress(ProgressUpdate(fraction=0.5))
    assert job.progress.remaining is not None


def test_progress_ignored_after_terminal(job):
    job.begin_phase(JobState.CONVERTING)
    job.transition_to(JobState.FAILED)
    assert not job.update_progress(ProgressUpdate(fraction=0.9))


def test_request_cancel_kills_attached_runner(job):
    runner = StubRunner()
    job.begin_phase(JobState.CONVERTING)
    job.attach_process(runner)
    assert job.request_cancel()
    assert job.cancel_requested
    assert runner.kills == 1
    job.detach_process()
    job.transition_to(JobState.CANCELED)
    assert job.state is JobState.CANCELED


def test_attach_after_cancel_kills_immediately(job):
    assert job.request_cancel()
    runner = StubRunner()
    job.attach_process(runner)
    assert runner.kills == 1


def test_cannot_become_canceled_while_process_runs(job):
    runner = StubRunner(dies_on_kill=False)
    job.begin_phase(JobState.CONVERTING)
    job.attach_process(runner)
    job.request_cancel()
    with pytest.raises(InvalidTransitionError):
        job.transition_to(JobState.CANCELED)
    runner.running = False
    job.transition_to(JobState.CANCELED)


def test_cancel_terminal_job_is_refused(job):
    job.transition_to(JobState.COMPLETED)
    assert not job.request_cancel()
    assert not job.cancel_requested


def test_cancel_is_refused_once_publishing(job):
    job.begin_phase(JobState.CONVERTING)
    assert job.begin_publishing()
    assert not job.request_cancel()
    assert not job.cancel_requested


def test_publishing_is_refused_after_cancel(job):
    job.begin_phase(JobState.CONVERTING)
    assert job.request_cancel()
    assert not job.begin_publishing()
