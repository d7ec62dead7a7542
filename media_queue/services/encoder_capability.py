"""
Selects a usable video encoder for a preset.

A preset may request a hardware encoder (NVENC, QSV, AMF, ...) that the
installed FFmpeg build or the machine does not provide. Instead of failing the
job, the resolver falls back to the software encoder of the same codec family
and attaches an advisory that ends up in the batch report.
"""
from dataclasses import dataclass
from typing import FrozenSet, Iterable, Optional, Set

from loguru import logger

from ..config.video import SOFTWARE_ENCODERS
from ..domain.preset import HardwareEncoder


@dataclass(frozen=True)
class EncoderResolution:
    """
    Attributes:
        codec_name: FFmpeg encoder to pass to `-c:v`.
        requested: The encoder the preset asked for.
        fell_back: True if the requested hardware encoder was unavailable.
        advisory: Human-readable notice when `fell_back` is True.
    """

    codec_name: str
    requested: HardwareEncoder
    fell_back: bool = False
    advisory: Optional[str] = None

    @property
    def is_hardware(self) -> bool:
        return not self.codec_name.startswith("lib")


class EncoderCapabilityResolver:
    """
    Maps a requested encoder onto the set of encoders FFmpeg reports.

    The available set is captured once, at startup, and is read-only
    afterwards, so one resolver is shared by all workers without locking. The
    only mutable part is the set of fallbacks already warned about, which
    exists purely to keep the log quiet.
    """

    def __init__(self, available: Iterable[str]):
        self.available: FrozenSet[str] = frozenset(available)
        self._warned: Set[HardwareEncoder] = set()

    @classmethod
    def from_tools(cls, tools) -> "EncoderCapabilityResolver":
        """Queries `ffmpeg -encoders` through `ExternalTools` once."""
        available = tools.list_encoders()
        logger.info(f"FFmpeg reports {len(available)} encoders.")
        hardware = sorted(
            e.codec_name for e in HardwareEncoder if e.codec_name and e.codec_name in available
        )
        logger.debug(f"Hardware encoders compiled into FFmpeg: {hardware or 'none'}")
        return cls(available)

    @staticmethod
    def software_encoder(family: str) -> str:
        try:
            return SOFTWARE_ENCODERS[family]
        except KeyError:
            logger.warning(f"Unknown codec family '{family}'. Using {SOFTWARE_ENCODERS['h264']}.")
            return SOFTWARE_ENCODERS["h264"]

    def resolve(self, requested: HardwareEncoder, family: Optional[str] = None) -> EncoderResolution:
        """
        Picks the encoder for `requested`.

        Args:
            requested: The encoder named by the preset.
            family: Codec family to use when `requested` is `HardwareEncoder.NONE`.
                    Ignored for hardware encoders, which carry their own family.

        Returns:
            The requested hardware encoder if FFmpeg offers it, else the
            software encoder of its family with `fell_back=True`. Never raises.
        """
        if requested is HardwareEncoder.NONE or requested.codec_name is None:
            return EncoderResolution(self.software_encoder(family or "h264"), requested)

        if requested.codec_name in self.available:
            return EncoderResolution(requested.codec_name, requested)

        software = self.software_encoder(requested.family)
        advisory = (
            f"Hardware encoder '{requested.codec_name}' is not available; "
            f"using software encoder '{software}' instead."
        )
        if requested not in self._warned:
            self._warned.add(requested)
            logger.warning(advisory)
        return EncoderResolution(software, requested, fell_back=True, advisory=advisory)
