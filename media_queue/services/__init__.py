"""
Services Package for the media queue.

A service performs one well-defined task for a job and is shared by all
workers:

- **Job Executor (`JobExecutor`):** drives one job through acquisition and
  conversion, publishes the output and records the outcome.
- **Command Builder:** assembles the yt-dlp and FFmpeg argument lists.
- **Encoder Capability (`EncoderCapabilityResolver`):** picks a usable video
  encoder, falling back to software when hardware is unavailable.
- **Bitrate:** computes the "match source" video bitrate.
- **Error Aggregator (`ErrorAggregator`):** classifies failures and builds the
  per-batch report.
- **Logging Service (`ErrorLog`, `BatchLog`):** optional text and YAML log files.
"""
