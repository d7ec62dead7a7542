"""
Value objects describing what a job works on and what it should produce.

`MediaSource` is where the media comes from (a URL to acquire or a local
file). `Preset` is the immutable description of the desired output, shared by
every job of a batch.
"""
import dataclasses
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional, Tuple

from ..config.audio import AUDIO_CONVERSION_FORMATS
from ..config.video import (
    DEFAULT_CONTAINER,
    DEFAULT_CRF,
    DEFAULT_VIDEO_CODEC,
    HARDWARE_ENCODER_CODECS,
    SOFTWARE_ENCODERS,
)
from ..utils.format_utils import is_url


class HardwareEncoder(Enum):
    """
    Encoders a preset may request. `NONE` requests the software encoder.

    Every other member is backed by an FFmpeg codec name, which is only usable
    if the installed FFmpeg build reports it.
    """

    NONE = "none"
    NVENC_H264 = "nvenc_h264"
    NVENC_HEVC = "nvenc_hevc"
    NVENC_AV1 = "nvenc_av1"
    QSV_H264 = "qsv_h264"
    QSV_HEVC = "qsv_hevc"
    QSV_AV1 = "qsv_av1"
    AMF_H264 = "amf_h264"
    AMF_HEVC = "amf_hevc"
    AMF_AV1 = "amf_av1"
    VAAPI_H264 = "vaapi_h264"
    VAAPI_HEVC = "vaapi_hevc"
    VIDEOTOOLBOX_H264 = "videotoolbox_h264"
    VIDEOTOOLBOX_HEVC = "videotoolbox_hevc"

    @property
    def codec_name(self) -> Optional[str]:
        entry = HARDWARE_ENCODER_CODECS.get(self.value)
        return entry[0] if entry else None

    @property
    def family(self) -> Optional[str]:
        entry = HARDWARE_ENCODER_CODECS.get(self.value)
        return entry[1] if entry else None


class QualityMode(Enum):
    MATCH_SOURCE = "match"
    FIXED = "fixed"


@dataclass(frozen=True)
class MediaSource:
    """A remote locator (URL) or a local file path."""

    locator: str

    @property
    def is_remote(self) -> bool:
        """
        True for locators with a scheme (`https://...`) or a `www.` host.

        Anything else, including a missing `clip.mp4`, is a local path.
        """
        locator = self.locator.strip()
        path = Path(locator).expanduser()
        if path.is_absolute() or path.exists():
            return False
        if "://" not in locator and not locator.lower().startswith("www."):
            return False
        return is_url(locator)

    @property
    def local_path(self) -> Optional[Path]:
        return None if self.is_remote else Path(self.locator).expanduser()

    def __str__(self) -> str:
        return self.locator


@dataclass(frozen=True)
class Preset:
    """
    Immutable description of a conversion outcome.

    Attributes:
        container: Output container / extension for video conversions (e.g. "mp4").
        video_codec: Codec family for video conversions ("h264", "hevc", "av1").
        quality_mode: MATCH_SOURCE derives the bitrate from the source file,
                      FIXED uses `video_bitrate` or, if that is unset, `crf`.
        video_bitrate: Target video bitrate in bps for FIXED mode.
        crf: Constant quality value for FIXED mode without a bitrate.
        hardware_encoder: Requested encoder. Falls back to software if unavailable.
        audio_format: If set, the conversion is audio-only in this format.
        audio_bitrate: Audio bitrate in bps. Defaults per format when None.
        transcode: False makes the job acquisition-only.
        output_dir: Destination directory. Defaults to the context's output dir.
        name_template: Output file name. Supports {stem}, {job_id} and {ext}.
        extra_download_args: Extra arguments passed verbatim to the acquisition tool.
    """

    container: str = DEFAULT_CONTAINER
    video_codec: str = DEFAULT_VIDEO_CODEC
    quality_mode: QualityMode = QualityMode.MATCH_SOURCE
    video_bitrate: Optional[int] = None
    crf: int = DEFAULT_CRF
    hardware_encoder: HardwareEncoder = HardwareEncoder.NONE
    audio_format: Optional[str] = None
    audio_bitrate: Optional[int] = None
    transcode: bool = True
    output_dir: Optional[Path] = None
    name_template: str = "{stem}{ext}"
    extra_download_args: Tuple[str, ...] = field(default_factory=tuple)

    def __post_init__(self):
        if self.video_codec not in SOFTWARE_ENCODERS:
            raise ValueError(
                f"Unknown video codec family '{self.video_codec}'. Expected one of {sorted(SOFTWARE_ENCODERS)}."
            )
        if self.audio_format is not None and self.audio_format not in AUDIO_CONVERSION_FORMATS:
            raise ValueError(
                f"Unknown audio format '{self.audio_format}'. Expected one of {sorted(AUDIO_CONVERSION_FORMATS)}."
            )
        if self.video_bitrate is not None and self.video_bitrate <= 0:
            raise ValueError("video_bitrate must be positive.")
        if self.audio_bitrate is not None and self.audio_bitrate <= 0:
            raise ValueError("audio_bitrate must be positive.")
        # Normalize to a tuple so the preset stays hashable and immutable.
        object.__setattr__(self, "extra_download_args", tuple(self.extra_download_args))

    @property
    def is_audio_only(self) -> bool:
        return self.audio_format is not None

    @property
    def output_extension(self) -> str:
        if self.is_audio_only:
            return AUDIO_CONVERSION_FORMATS[self.audio_format][1]
        return f".{self.container.lstrip('.')}"

    def replace(self, **changes) -> "Preset":
        """Returns a new preset with `changes` applied."""
        return dataclasses.replace(self, **changes)
