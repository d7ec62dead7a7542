"""
The media queue package.

Downloads (yt-dlp) and converts (FFmpeg) batches of media in a FIFO queue with
a bound on how many jobs run at once, and summarizes each batch's failures by
cause.

Typical use::

    from media_queue.pipeline.context import PipelineContext
    from media_queue.pipeline.scheduler import JobQueue
    from media_queue.domain.preset import Preset

    with JobQueue(PipelineContext.create()) as queue:
        batch_id = queue.submit_batch(["https://example.com/clip"], Preset())
        report = queue.wait_batch(batch_id)
"""
