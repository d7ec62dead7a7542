"""
Configuration settings related to video conversion.

This module defines the encoder tables used to build FFmpeg commands: which
software encoder serves each codec family, which FFmpeg codec name backs each
hardware encoder, and which quality flag each encoder kind understands.
"""

# --- General Video Settings ---
DEFAULT_CONTAINER = "mp4"
DEFAULT_VIDEO_CODEC = "h264"
DEFAULT_CRF = 23

# Re-encoding below this bitrate (bps) produces unwatchable output, so a
# computed "match source" bitrate is never allowed to drop under it.
VIDEO_BITRATE_LOW_THRESHOLD = 100_000

# Audio settings applied to the audio track of video conversions.
VIDEO_AUDIO_ENCODER = "aac"
VIDEO_AUDIO_BITRATE = 192_000

# --- Encoder Settings ---

# Software encoder used for each codec family. These are the fallbacks when a
# requested hardware encoder is not available in the installed FFmpeg.
SOFTWARE_ENCODERS = {
    "h264": "libx264",
    "hevc": "libx265",
    "av1": "libsvtav1",
}

# Hardware encoder id -> (FFmpeg codec name, codec family).
HARDWARE_ENCODER_CODECS = {
    "nvenc_h264": ("h264_nvenc", "h264"),
    "nvenc_hevc": ("hevc_nvenc", "hevc"),
    "nvenc_av1": ("av1_nvenc", "av1"),
    "qsv_h264": ("h264_qsv", "h264"),
    "qsv_hevc": ("hevc_qsv", "hevc"),
    "qsv_av1": ("av1_qsv", "av1"),
    "amf_h264": ("h264_amf", "h264"),
    "amf_hevc": ("hevc_amf", "hevc"),
    "amf_av1": ("av1_amf", "av1"),
    "vaapi_h264": ("h264_vaapi", "h264"),
    "vaapi_hevc": ("hevc_vaapi", "hevc"),
    "videotoolbox_h264": ("h264_videotoolbox", "h264"),
    "videotoolbox_hevc": ("hevc_videotoolbox", "hevc"),
}

# Constant-quality flag per encoder kind, matched by codec name suffix.
# Software encoders (no suffix match) use "-crf".
FIXED_QUALITY_FLAGS = {
    "_nvenc": "-cq",
    "_qsv": "-global_quality",
    "_amf": "-qp_i",
    "_vaapi": "-qp",
    "_videotoolbox": "-q:v",
}
SOFTWARE_QUALITY_FLAG = "-crf"

# Containers that cannot carry the default AAC audio track are mapped to an
# audio codec they accept.
CONTAINER_AUDIO_ENCODERS = {
    "webm": "libopus",
    "ogg": "libopus",
}
