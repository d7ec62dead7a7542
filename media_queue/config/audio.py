"""
Configuration settings related to audio-only conversions.

A preset with an `audio_format` drops the video stream and converts the audio
track to one of the formats listed here.
"""

# ======================================================================================
# Audio Conversion Formats
# ======================================================================================

# Format name -> (FFmpeg encoder, output file extension, lossless).
AUDIO_CONVERSION_FORMATS = {
    "mp3": ("libmp3lame", ".mp3", False),
    "aac": ("aac", ".m4a", False),
    "m4a": ("aac", ".m4a", False),
    "opus": ("libopus", ".opus", False),
    "vorbis": ("libvorbis", ".ogg", False),
    "flac": ("flac", ".flac", True),
    "wav": ("pcm_s16le", ".wav", True),
}

# Bitrate (bps) used for lossy formats when the preset does not name one.
DEFAULT_AUDIO_BITRATE = 192_000

# yt-dlp's --audio-format accepts these names directly.
YTDLP_AUDIO_FORMATS = ("mp3", "aac", "m4a", "opus", "vorbis", "flac", "wav")
