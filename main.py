"""
Main entry point for the media queue application.

This script parses the command line, builds the pipeline context, runs every
source through the job queue as one batch and prints the batch summary. The
exit code is 0 if no job failed and 1 otherwise.
"""

import sys

from loguru import logger

from media_queue.cli import build_preset, get_args
from media_queue.config.common import LOGGER_FORMAT, USER_CONFIG_PATH, load_user_config
from media_queue.domain.job import Job, JobState, ProgressSnapshot
from media_queue.pipeline.context import PipelineContext
from media_queue.pipeline.scheduler import JobQueue, PipelineObserver
from media_queue.utils.format_utils import format_timedelta

# Configure the logger for initial setup.
# The level is overridden once the command-line arguments are known.
logger.remove()
logger.add(sys.stderr, level="INFO", format=LOGGER_FORMAT)


class ConsoleObserver(PipelineObserver):
    """Logs job transitions and progress in whole-percent steps."""

    def __init__(self):
        self._last_percent = {}

    def on_job_state_changed(self, job: Job, old_state: JobState, new_state: JobState):
        logger.info(f"[{job.source}] {old_state.value} -> {new_state.value}")
        if new_state is JobState.FAILED and job.result and job.result.failure:
            logger.error(f"[{job.source}] {job.result.failure}")

    def on_job_progress(self, job: Job, snapshot: ProgressSnapshot):
        if snapshot.percent == self._last_percent.get(job.id):
            return
        self._last_percent[job.id] = snapshot.percent
        logger.info(f"[{job.source}] {snapshot.percent:3d}% (remaining {format_timedelta(snapshot.remaining)})")


def main() -> int:
    """
    Runs one batch and returns the process exit code.

    1. Parses command-line arguments and reconfigures the logger.
    2. Loads `config.user.yaml` and builds the pipeline context.
    3. Verifies the external tools.
    4. Submits all sources as one batch and waits for it.
    5. Logs the summary message.
    """
    args = get_args()

    logger.remove()
    logger.add(sys.stderr, level=args.log_level, format=LOGGER_FORMAT)
    logger.debug(f"Parsed arguments: {args}")

    user_config = load_user_config(args.config or USER_CONFIG_PATH)
    context = PipelineContext.create(
        user_config,
        temp_dir=args.temp_work_dir,
        output_dir=args.output_dir,
        max_concurrency=args.processes,
    )
    context.tools.verify()

    preset = build_preset(args)
    with JobQueue(context) as queue:
        queue.subscribe(ConsoleObserver())
        batch_id = queue.submit_batch(args.sources, preset)
        try:
            report = queue.wait_batch(batch_id)
        except KeyboardInterrupt:
            logger.warning("Interrupted. Canceling the remaining jobs.")
            queue.cancel_batch(batch_id)
            report = queue.wait_batch(batch_id)

    for advisory in report.advisories:
        logger.warning(advisory)
    summary = report.summary()
    if summary:
        logger.error(f"{summary.title}: {summary.text}")
        return 1

    logger.success("Media queue finished.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
