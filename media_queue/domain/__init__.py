"""
This package contains the core domain models of the media queue.

The domain layer describes jobs, presets and batch reports independently of
the external tools and of the threads that run them.

Modules:
    exceptions.py: The error taxonomy used to classify job failures.
    media.py: `MediaFile`, a local file and its ffprobe measurements.
    preset.py: `MediaSource`, `Preset` and the encoder/quality enums.
    job.py: The `Job` state machine and its progress snapshot.
    report.py: Failure categories and the `BatchReport`.
"""
