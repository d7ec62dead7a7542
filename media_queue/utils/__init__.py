"""
Utilities Package for the media queue.

Modules:
    - process_runner.py: Runs external tools and streams their output.
    - progress_parser.py: Turns FFmpeg and yt-dlp output lines into progress.
    - format_utils.py: Formatting of durations and sizes, output file naming.
    - external_tools.py: Locates and checks FFmpeg, ffprobe and yt-dlp.
"""
