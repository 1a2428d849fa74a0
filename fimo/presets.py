"""
Filter preset catalog for FIMO

Each preset bundles the tone adjustments, film effects, frame and date
stamp styling of one vintage camera look. The catalog is built once at
import time and never modified afterwards.
"""

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional, Tuple

from .errors import UnknownPresetError


class FrameType(Enum):
    """Canvas framing around the graded image"""
    NONE = "none"
    BORDERED = "bordered"


class StampPosition(Enum):
    """Where the date stamp is anchored"""
    CORNER = "bottom-left"
    TOP_CENTER = "top-center"


@dataclass(frozen=True)
class FontSpec:
    """Font request: families are tried in order, then Pillow's default."""
    families: Tuple[str, ...]
    size: int


@dataclass(frozen=True)
class DateStampSpec:
    """Date stamp styling"""
    enabled: bool = False
    position: StampPosition = StampPosition.CORNER
    color: str = "#FF9B1A"
    font: FontSpec = FontSpec(families=("DejaVuSansMono-Bold.ttf",), size=12)
    letter_spacing: float = 0.0
    prefix: str = ""  # prepended to the caller's timestamp


@dataclass(frozen=True)
class BorderSpec:
    """Instant-film style border geometry and paper"""
    padding_top: int
    padding_sides: int
    padding_bottom: int
    paper_top: str = "#fbfbfb"
    paper_bottom: str = "#f1f1f1"
    caption_font: FontSpec = FontSpec(families=("DejaVuSans.ttf",), size=26)
    caption_color: str = "#2a2a2a"


# Allowed parameter ranges, inclusive
_RANGES = {
    'exposure': (-1.0, 1.0),
    'contrast': (0.5, 1.5),
    'saturation': (0.0, 2.0),
    'warmth': (-1.0, 1.0),
    'tint': (-1.0, 1.0),
    'fade': (0.0, 1.0),
    'halation': (0.0, 1.0),
    'grain': (0.0, 1.0),
    'dust': (0.0, 1.0),
    'vignette': (0.0, 1.0),
    'light_leak': (0.0, 1.0),
}


@dataclass(frozen=True)
class FilterPreset:
    """One vintage look: tone, effects, frame and stamp"""
    id: str
    name: str
    lut: Optional[str] = None  # LUT reference, None means identity mapping

    # Tone
    exposure: float = 0.0    # -1 to +1, gain
    contrast: float = 1.0    # 0.5 to 1.5, around mid grey
    saturation: float = 1.0  # 0 to 2
    warmth: float = 0.0      # -1 to +1, red up / blue down
    tint: float = 0.0        # -1 to +1, green push
    fade: float = 0.0        # 0 to 1, lifted blacks

    # Film effects, all 0 to 1
    halation: float = 0.0
    grain: float = 0.0
    dust: float = 0.0
    vignette: float = 0.0
    light_leak: float = 0.0

    frame_type: FrameType = FrameType.NONE
    border: Optional[BorderSpec] = None
    date_stamp: DateStampSpec = field(default_factory=DateStampSpec)

    def __post_init__(self):
        for name, (low, high) in _RANGES.items():
            value = getattr(self, name)
            if not low <= value <= high:
                raise ValueError(f"{self.id}: {name}={value} outside [{low}, {high}]")
        if self.frame_type is FrameType.BORDERED and self.border is None:
            raise ValueError(f"{self.id}: bordered preset needs a border spec")

    @property
    def is_bordered(self) -> bool:
        return self.frame_type is FrameType.BORDERED

    @property
    def padding(self) -> Tuple[int, int, int]:
        """(top, sides, bottom) padding in output pixels"""
        if not self.is_bordered:
            return (0, 0, 0)
        return (self.border.padding_top, self.border.padding_sides, self.border.padding_bottom)


_MONO = ("DejaVuSansMono-Bold.ttf", "Courier New Bold.ttf", "courbd.ttf", "LiberationMono-Bold.ttf")
_HANDWRITING = ("Caveat-Regular.ttf", "PatrickHand-Regular.ttf", "comic.ttf", "DejaVuSans.ttf")


def _init_presets() -> Dict[str, FilterPreset]:
    """Build the built-in presets"""
    presets = [
        # Point-and-shoot colour negative, orange corner date
        FilterPreset(
            id="ek80",
            name="EK 80",
            lut="fimo-ek80.png",
            exposure=0.06,
            contrast=1.12,
            saturation=1.10,
            warmth=0.12,
            tint=-0.04,
            fade=0.10,
            halation=0.22,
            grain=0.35,
            dust=0.20,
            vignette=0.55,
            light_leak=0.0,
            date_stamp=DateStampSpec(
                enabled=True,
                position=StampPosition.CORNER,
                color="#FF9B1A",
                font=FontSpec(families=_MONO, size=12),
                letter_spacing=1.2,
                prefix="' ",
            ),
        ),
        # Faded instant film with paper border and handwritten caption
        FilterPreset(
            id="aesthetic400",
            name="Aesthetic 400",
            lut="fimo-a400.png",
            exposure=0.10,
            contrast=0.92,
            saturation=0.78,
            warmth=0.08,
            tint=0.02,
            fade=0.22,
            halation=0.12,
            grain=0.26,
            dust=0.28,
            vignette=0.30,
            light_leak=0.35,
            frame_type=FrameType.BORDERED,
            border=BorderSpec(
                padding_top=34,
                padding_sides=26,
                padding_bottom=72,
                paper_top="#fbfbfb",
                paper_bottom="#f1f1f1",
                caption_font=FontSpec(families=_HANDWRITING, size=26),
                caption_color="#2a2a2a",
            ),
            date_stamp=DateStampSpec(
                enabled=True,
                position=StampPosition.TOP_CENTER,
                color="#1B1B1B",
                font=FontSpec(families=_MONO, size=14),
                letter_spacing=6,
            ),
        ),
        # No filter
        FilterPreset(id="neutral", name="Neutral"),
    ]
    return {preset.id: preset for preset in presets}


PRESETS: Mapping[str, FilterPreset] = MappingProxyType(_init_presets())


def preset_for(preset_id: str, catalog: Optional[Mapping[str, FilterPreset]] = None) -> FilterPreset:
    """
    Look up a preset by id

    Args:
        preset_id: Preset identifier, e.g. "ek80"
        catalog: Catalog to search, defaults to the built-in presets

    Returns:
        The registered preset

    Raises:
        UnknownPresetError: if the id is not registered
    """
    catalog = PRESETS if catalog is None else catalog
    try:
        return catalog[preset_id]
    except KeyError:
        raise UnknownPresetError(preset_id) from None


def list_presets() -> List[FilterPreset]:
    """All built-in presets in catalog order"""
    return list(PRESETS.values())
