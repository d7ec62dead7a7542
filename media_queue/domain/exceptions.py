"""
Defines custom exception types for the media queue.

These exceptions let the job executor react to specific failure causes and let
the error aggregator sort terminal failures into report categories without
inspecting message strings. A failure is always local to one job: none of
these exceptions ever escapes a worker into the scheduler.

All custom exceptions inherit from the base `MediaQueueException`.
"""
from typing import Sequence


class MediaQueueException(Exception):
    """Base class for all custom exceptions in the media queue."""

    pass


# --- Job Failure Exceptions ---
class SpawnError(MediaQueueException):
    """
    Raised when an external executable cannot be started.

    The executable is missing, not executable, or the OS refused to create the
    process. Fatal to the job that tried to launch it, never to the batch.
    """

    pass


class InvalidInputError(MediaQueueException):
    """
    Raised when a precondition on the job's input is violated.

    Examples are a source file that does not exist or cannot be read, or a
    media file without a measurable (positive) duration.
    """

    pass


class DestinationWriteError(MediaQueueException):
    """Base class for failures while writing a finished file to its destination."""

    def __init__(self, message: str, path=None):
        super().__init__(message)
        self.path = path


class AccessDeniedError(DestinationWriteError):
    """Raised when the destination cannot be written due to missing permissions."""

    pass


class PathNotFoundError(DestinationWriteError):
    """Raised when the destination directory does not exist."""

    pass


class InsufficientSpaceError(DestinationWriteError):
    """Raised when the destination filesystem has no space left for the output."""

    pass


class SubprocessFailure(MediaQueueException):
    """
    Raised when an external process exits with a non-zero code.

    The last lines of its combined output are kept so the failure can be
    logged and, where possible, classified more precisely.
    """

    def __init__(self, executable: str, returncode: int, output_tail: Sequence[str] = ()):
        self.executable = executable
        self.returncode = returncode
        self.output_tail = tuple(output_tail)
        super().__init__(f"{executable} exited with code {returncode}")


# --- Control Flow and Contract Exceptions ---
class JobCanceledException(MediaQueueException):
    """
    Raised inside a worker when the job it runs has been canceled.

    This is not an error. It unwinds the job's phases so the executor can
    perform the CANCELED transition once the owned subprocess has exited.
    """

    pass


class InvalidTransitionError(MediaQueueException):
    """Raised when a job is asked to move to a state its current state does not allow."""

    pass


class BatchNotFinishedError(MediaQueueException):
    """Raised when a batch report is requested while jobs of the batch are still outstanding."""

    pass


class UnknownJobError(MediaQueueException):
    """Raised when a job or batch id is not known to the queue or aggregator."""

    pass
