"""
Runs a single job from QUEUED to a terminal state.

The executor is called on a worker thread and owns the job for its whole
life. It runs acquisition (yt-dlp) and conversion (FFmpeg) one after the
other, feeds their output to the progress parsers, and publishes the result
into the destination directory. Whatever goes wrong stays inside `run()`: the
failure is classified, stored on the job and recorded for the batch report.
"""
import shutil
from pathlib import Path
from typing import Optional, Sequence, Tuple

from loguru import logger

from ..config.common import ACQUISITION_PROGRESS_SHARE
from ..domain.exceptions import (
    InvalidInputError,
    JobCanceledException,
    MediaQueueException,
    SubprocessFailure,
)
from ..domain.job import Job, JobResult, JobState
from ..domain.media import MediaFile
from ..domain.preset import QualityMode
from ..utils.format_utils import format_timedelta, formatted_size, render_output_name, reserve_unique_path
from ..utils.progress_parser import DownloadProgressParser, ProgressParser
from .bitrate import calculate_video_bitrate
from .command_builder import build_convert_args, build_download_args
from .error_aggregator import ErrorAggregator, classify_failure, destination_error
from .logging_service import ErrorLog


class JobExecutor:
    """
    Drives jobs through their phases using the services of a `PipelineContext`.

    One executor is shared by all workers of a queue. It keeps no per-job
    state, so concurrent `run()` calls do not interfere.
    """

    def __init__(self, context, aggregator: Optional[ErrorAggregator] = None):
        self.context = context
        self.aggregator = aggregator
        self.error_log = ErrorLog(context.error_log_dir) if context.error_log_dir else None

    def run(self, job: Job) -> JobResult:
        """
        Processes `job` and leaves it in COMPLETED, FAILED or CANCELED.

        Never raises for failures of the job itself.
        """
        logger.info(f"Job {job.id}: starting {job.source}")
        try:
            self._check_canceled(job)
            output_paths = self._perform(job)
        except JobCanceledException:
            self._finish_canceled(job)
        except (MediaQueueException, OSError) as e:
            if job.cancel_requested:
                self._finish_canceled(job)
            else:
                logger.error(f"Job {job.id}: {type(e).__name__}: {e}")
                self._finish_failed(job, e)
        except Exception as e:
            if job.cancel_requested:
                self._finish_canceled(job)
            else:
                logger.exception(f"Job {job.id}: unexpected error while processing {job.source}")
                self._finish_failed(job, e)
        else:
            job.transition_to(JobState.COMPLETED, JobResult(output_paths=output_paths))
            logger.info(f"Job {job.id}: completed -> {', '.join(str(p) for p in output_paths)}")
            if self.aggregator and job.batch_id:
                self.aggregator.record_success(job.id, output_paths)
        finally:
            self._cleanup(job)
        return job.result

    # --- Phases ---

    def _perform(self, job: Job) -> Tuple[Path, ...]:
        preset = job.preset
        if job.needs_acquisition:
            span = (0.0, ACQUISITION_PROGRESS_SHARE) if job.needs_conversion else (0.0, 1.0)
            job.begin_phase(JobState.ACQUIRING, span)
            source_path = self._acquire(job)
            self._check_canceled(job)
            if not job.needs_conversion:
                name = render_output_name(preset.name_template, source_path.stem, source_path.suffix, job.id)
                return (self._publish(job, source_path, name, move=True),)
        else:
            source_path = job.source.local_path
            if source_path is None or not source_path.is_file():
                raise InvalidInputError(f"Source file not found: {job.source}")
            if not job.needs_conversion:
                # Nothing to do but hand the file over. The user's original stays in place.
                name = render_output_name(preset.name_template, source_path.stem, source_path.suffix, job.id)
                return (self._publish(job, source_path, name, move=False),)

        span = (ACQUISITION_PROGRESS_SHARE, 1.0) if job.needs_acquisition else (0.0, 1.0)
        job.begin_phase(JobState.CONVERTING, span)
        converted_path, name = self._convert(job, source_path)
        self._check_canceled(job)
        return (self._publish(job, converted_path, name, move=True),)

    def _acquire(self, job: Job) -> Path:
        """Downloads the remote source into the job's downloader directory."""
        job_dir = self.context.downloader_temp_dir / job.id
        job_dir.mkdir(parents=True, exist_ok=True)

        args = build_download_args(job.source.locator, job_dir, job.preset)
        self._run_process(job, self.context.tools.yt_dlp_path, args, DownloadProgressParser())

        files = [p for p in job_dir.iterdir() if p.is_file()]
        if not files:
            raise InvalidInputError(f"yt-dlp finished without producing a file for {job.source}")
        if len(files) > 1:
            files.sort(key=lambda p: p.stat().st_size, reverse=True)
            logger.warning(f"Job {job.id}: yt-dlp left {len(files)} files. Using the largest, {files[0].name}.")
        logger.info(f"Job {job.id}: acquired {files[0].name} ({formatted_size(files[0].stat().st_size)})")
        return files[0]

    def _convert(self, job: Job, source_path: Path) -> Tuple[Path, str]:
        """Converts `source_path` into the job's converter directory. Returns the file and its final name."""
        preset = job.preset
        media_file = MediaFile(source_path, probe_func=self.context.probe_func)

        video_encoder = None
        video_bitrate = None
        if not preset.is_audio_only:
            resolution = self.context.encoder_resolver.resolve(preset.hardware_encoder, preset.video_codec)
            video_encoder = resolution.codec_name
            if resolution.advisory:
                self._add_advisory(job, resolution.advisory)
            if preset.quality_mode is QualityMode.MATCH_SOURCE:
                video_bitrate = calculate_video_bitrate(media_file.path, media_file=media_file)

        name = render_output_name(preset.name_template, media_file.stem, preset.output_extension, job.id)
        job_dir = self.context.converter_temp_dir / job.id
        job_dir.mkdir(parents=True, exist_ok=True)
        temp_output = job_dir / name

        args = build_convert_args(media_file.path, temp_output, preset, video_encoder, video_bitrate)
        self._run_process(job, self.context.tools.ffmpeg_path, args, ProgressParser(media_file.duration))

        if not temp_output.is_file():
            raise SubprocessFailure("ffmpeg", 0, [f"Expected output {temp_output} was not created."])
        return temp_output, name

    def _run_process(self, job: Job, executable: str, args: Sequence[str], parser):
        """
        Launches one external process for `job` and follows it to its exit.

        Raises:
            JobCanceledException: If the job was canceled while the process ran.
            SubprocessFailure: If the process exited with a non-zero code.
        """
        runner = self.context.runner_factory(executable, args, cmd_log_file_path=self.context.cmd_log_file_path)
        job.attach_process(runner)
        try:
            for line in runner.read_lines():
                update = parser.parse(line)
                if update is not None and job.update_progress(update):
                    snapshot = job.progress
                    logger.trace(
                        f"Job {job.id}: {snapshot.percent}% (remaining {format_timedelta(snapshot.remaining)})"
                    )
            returncode = runner.wait()
        finally:
            if runner.is_running:
                runner.kill()
            job.detach_process()

        if job.cancel_requested or runner.was_killed:
            raise JobCanceledException(f"Job {job.id} was canceled")
        if returncode != 0:
            tail = list(runner.output_tail)
            logger.debug(f"Job {job.id}: last output of {Path(executable).name}:\n" + "\n".join(tail))
            raise SubprocessFailure(Path(executable).name, returncode, tail)

    def _publish(self, job: Job, produced: Path, name: str, move: bool) -> Path:
        """
        Places a finished file in the destination directory.

        Raises:
            JobCanceledException: If a cancel arrived before publishing began.
            DestinationWriteError: A subclass matching the OS error, if the
                                   file cannot be written there.
        """
        if not job.begin_publishing():
            raise JobCanceledException(f"Job {job.id} was canceled")
        output_dir = Path(job.preset.output_dir or self.context.output_dir)
        try:
            target = reserve_unique_path(output_dir / name)
        except OSError as e:
            raise destination_error(e, output_dir / name) from e
        try:
            if move:
                shutil.move(str(produced), str(target))
            else:
                shutil.copy2(str(produced), str(target))
        except OSError as e:
            if produced.exists():
                self._remove_partial(target)
            raise destination_error(e, target) from e
        return target

    # --- Terminal transitions ---

    def _finish_canceled(self, job: Job):
        job.transition_to(JobState.CANCELED)
        logger.info(f"Job {job.id}: canceled.")
        if self.aggregator and job.batch_id:
            self.aggregator.record_canceled(job.id)

    def _finish_failed(self, job: Job, exc: BaseException):
        failure = classify_failure(exc)
        job.transition_to(JobState.FAILED, JobResult(failure=failure))
        if self.aggregator and job.batch_id:
            self.aggregator.record(job.id, failure)
        if self.error_log:
            messages = [f"Job: {job.id}", f"Source: {job.source}", f"Error: {failure}"]
            if isinstance(exc, SubprocessFailure) and exc.output_tail:
                messages.append("Output:")
                messages.extend(exc.output_tail)
            self.error_log.write(*messages)

    # --- Helpers ---

    @staticmethod
    def _check_canceled(job: Job):
        if job.cancel_requested:
            raise JobCanceledException(f"Job {job.id} was canceled")

    def _add_advisory(self, job: Job, text: str):
        job.advisories.append(text)
        if self.aggregator and job.batch_id:
            self.aggregator.add_advisory(job.id, text)

    @staticmethod
    def _remove_partial(path: Path):
        try:
            path.unlink()
        except OSError as e:
            logger.warning(f"Could not remove partial output {path}: {e}")

    def _cleanup(self, job: Job):
        for job_dir in (self.context.converter_temp_dir / job.id, self.context.downloader_temp_dir / job.id):
            if not job_dir.exists():
                continue
            try:
                shutil.rmtree(job_dir)
            except OSError as e:
                logger.warning(f"Job {job.id}: could not remove temporary directory {job_dir}: {e}")
