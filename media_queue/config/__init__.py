"""
Configuration Package for the media queue.

This package centralizes the static configuration of the application:

- `common.py`: logging format, temp directory layout, regexes used to read
  subprocess output, batch report messages and the `config.user.yaml` loader.
- `video.py`: encoder tables (software fallbacks, hardware encoder codec names,
  quality flags) and video conversion defaults.
- `audio.py`: formats available for audio-only conversions.
"""
