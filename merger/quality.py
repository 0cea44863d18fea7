"""
Maps a user quality selection to the concrete parameters every transcode
in a merge job uses.

A selection is either a preset name ("720p") or a mapping with any of
preset / resolution / bitrate / framerate / compression_tier / format.
Explicit fields override the preset. Resolution, bitrate and framerate
outside their bounds are rejected; an unknown compression tier or format
falls back to the default instead of failing the job.
"""
import logging
import re
from dataclasses import dataclass
from typing import Mapping

from .errors import ValidationError

logger = logging.getLogger(__name__)

MIN_FRAMERATE, MAX_FRAMERATE = 1, 60
MIN_WIDTH, MAX_WIDTH = 16, 7680
MIN_HEIGHT, MAX_HEIGHT = 16, 4320
MIN_BITRATE_KBPS, MAX_BITRATE_KBPS = 100, 100_000

AUDIO_BITRATE = "192k"
AUDIO_SAMPLE_RATE = 48000

_RESOLUTION_RE = re.compile(r"^\s*(\d+)\s*[xX:]\s*(\d+)\s*$")
_BITRATE_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*([kKmM]?)\s*$")
# ffmpeg reads a lower-case "m" as milli, so values are normalized to kbit/s
_BITRATE_SCALE = {"": 0.001, "k": 1, "m": 1000}


@dataclass(frozen=True)
class CompressionTier:
    level: int
    x264_preset: str
    x264_crf: int
    vp9_cpu_used: int
    vp9_crf: int


@dataclass(frozen=True)
class OutputFormat:
    name: str
    extension: str
    video_codec: str
    audio_codec: str
    content_type: str
    audio_bitrate: str | None = None


# 0 is the fastest; higher tiers trade encode time for quality
COMPRESSION_TIERS = {
    0: CompressionTier(0, "ultrafast", 23, 8, 36),
    1: CompressionTier(1, "veryfast", 21, 5, 33),
    2: CompressionTier(2, "medium", 20, 2, 31),
    3: CompressionTier(3, "slow", 18, 1, 28),
}
DEFAULT_TIER = 0

OUTPUT_FORMATS = {
    "mp4": OutputFormat("mp4", ".mp4", "libx264", "aac", "video/mp4", AUDIO_BITRATE),
    "webm": OutputFormat("webm", ".webm", "libvpx-vp9", "libopus", "video/webm", "128k"),
    "mov": OutputFormat("mov", ".mov", "prores_ks", "pcm_s16le", "video/quicktime"),
}
DEFAULT_FORMAT = "mp4"

# Normalized intermediates always use this family; concat can splice them as-is.
INTERMEDIATE_FORMAT = OUTPUT_FORMATS["mp4"]

PRESETS = {
    "360p": {"resolution": "640x360", "bitrate": "800k"},
    "480p": {"resolution": "854x480", "bitrate": "1200k"},
    "720p": {"resolution": "1280x720", "bitrate": "2500k"},
    "1080p": {"resolution": "1920x1080", "bitrate": "5000k"},
}
PRESET_DEFAULTS = {"framerate": 30, "compression_tier": DEFAULT_TIER, "format": DEFAULT_FORMAT}
DEFAULT_PRESET = "720p"

SELECTION_FIELDS = ("preset", "resolution", "bitrate", "framerate", "compression_tier", "format")


@dataclass(frozen=True)
class QualityParameters:
    width: int
    height: int
    bitrate: str
    framerate: int
    tier: CompressionTier
    output: OutputFormat
    audio_bitrate: str = AUDIO_BITRATE
    audio_sample_rate: int = AUDIO_SAMPLE_RATE

    @property
    def resolution(self) -> str:
        return f"{self.width}x{self.height}"

    @property
    def needs_reencode(self) -> bool:
        return self.output.name != INTERMEDIATE_FORMAT.name


def parse_resolution(value) -> tuple[int, int]:
    m = _RESOLUTION_RE.match(str(value))
    if not m:
        raise ValidationError(f"Invalid resolution {value!r}; expected WIDTHxHEIGHT.")
    width, height = int(m.group(1)), int(m.group(2))
    if not (MIN_WIDTH <= width <= MAX_WIDTH and MIN_HEIGHT <= height <= MAX_HEIGHT):
        raise ValidationError(
            f"Resolution {width}x{height} is outside "
            f"{MIN_WIDTH}x{MIN_HEIGHT}..{MAX_WIDTH}x{MAX_HEIGHT}."
        )
    # yuv420p needs even dimensions
    if width % 2 or height % 2:
        raise ValidationError(f"Resolution {width}x{height} must use even dimensions.")
    return width, height


def parse_bitrate(value) -> str:
    """Returns the bitrate in ffmpeg's kbit/s form, e.g. '5M' -> '5000k'."""
    m = _BITRATE_RE.match(str(value))
    if not m:
        raise ValidationError(f"Invalid bitrate {value!r}; expected e.g. '2500k' or '5M'.")
    kbps = float(m.group(1)) * _BITRATE_SCALE[m.group(2).lower()]
    if not MIN_BITRATE_KBPS <= kbps <= MAX_BITRATE_KBPS:
        raise ValidationError(
            f"Bitrate {value!r} is outside {MIN_BITRATE_KBPS}k..{MAX_BITRATE_KBPS // 1000}M."
        )
    return f"{round(kbps)}k"


def parse_framerate(value) -> int:
    if isinstance(value, bool) or (isinstance(value, float) and not value.is_integer()):
        raise ValidationError(f"Invalid framerate {value!r}.")
    try:
        fps = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid framerate {value!r}.") from None
    if not MIN_FRAMERATE <= fps <= MAX_FRAMERATE:
        raise ValidationError(f"Framerate {fps} is outside {MIN_FRAMERATE}..{MAX_FRAMERATE}.")
    return fps


def compression_tier(value) -> CompressionTier:
    """Unknown tiers resolve to the default tier."""
    level = None
    if not isinstance(value, bool) and not (isinstance(value, float) and not value.is_integer()):
        try:
            level = int(value)
        except (TypeError, ValueError):
            pass
    if level not in COMPRESSION_TIERS:
        logger.warning("Unknown compression tier %r, using %d", value, DEFAULT_TIER)
        level = DEFAULT_TIER
    return COMPRESSION_TIERS[level]


def output_format(value) -> OutputFormat:
    """Unknown formats resolve to mp4."""
    name = str(value or "").strip().lower().lstrip(".")
    fmt = OUTPUT_FORMATS.get(name)
    if fmt is None:
        logger.warning("Unknown output format %r, using %s", value, DEFAULT_FORMAT)
        fmt = OUTPUT_FORMATS[DEFAULT_FORMAT]
    return fmt


def _selection_fields(selection) -> dict:
    if selection is None:
        return {}
    if isinstance(selection, str):
        return {"preset": selection}
    if not isinstance(selection, Mapping):
        raise ValidationError("Quality selection must be a preset name or a settings object.")
    # blank form fields mean "not chosen"
    return {k: v for k, v in selection.items() if k in SELECTION_FIELDS and v not in (None, "")}


def resolve(selection=None) -> QualityParameters:
    fields = _selection_fields(selection)

    preset_name = str(fields.get("preset") or DEFAULT_PRESET).strip().lower()
    if preset_name not in PRESETS:
        raise ValidationError(
            f"Unknown preset {preset_name!r}. Allowed: {sorted(PRESETS)}"
        )
    merged = {**PRESET_DEFAULTS, **PRESETS[preset_name], **fields}

    width, height = parse_resolution(merged["resolution"])
    return QualityParameters(
        width=width,
        height=height,
        bitrate=parse_bitrate(merged["bitrate"]),
        framerate=parse_framerate(merged["framerate"]),
        tier=compression_tier(merged["compression_tier"]),
        output=output_format(merged["format"]),
    )
