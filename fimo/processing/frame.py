"""
Canvas framing, date stamps and captions

Sizes the output canvas, paints the paper or black background and draws
text overlays on the finished image.
"""

import logging
import math
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import List, Sequence, Tuple

import numpy as np
from PIL import Image, ImageColor, ImageDraw, ImageFilter, ImageFont

from ..errors import ContextUnavailableError
from ..presets import FilterPreset, FontSpec, StampPosition

logger = logging.getLogger(__name__)

STAMP_MARGIN = 10         # corner stamp inset from the image edges
TOP_STAMP_BASELINE = 18   # centred stamp baseline from the canvas top
CAPTION_BASELINE = 18     # caption baseline from the canvas bottom
CAPTION_OPACITY = 0.78
INSET_SHADOW_OPACITY = 0.10
SHADOW_OPACITY = 0.65
SHADOW_BLUR = 6
SHADOW_OFFSET = (1, 1)


@dataclass(frozen=True)
class CanvasGeometry:
    """Output canvas size and where the graded image sits in it"""
    width: int
    height: int
    image_x: int
    image_y: int
    image_width: int
    image_height: int


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def canvas_geometry(preset: FilterPreset, source_width: int, source_height: int,
                    scale: float = 1.0) -> CanvasGeometry:
    """
    Compute the output canvas for a source image

    Raises:
        ContextUnavailableError: if the scale or resulting size is unusable
    """
    if not math.isfinite(scale) or scale <= 0:
        raise ContextUnavailableError(f"Invalid output scale {scale}")
    image_width = _round_half_up(source_width * scale)
    image_height = _round_half_up(source_height * scale)
    if image_width <= 0 or image_height <= 0:
        raise ContextUnavailableError(
            f"Scaled image {source_width}x{source_height} @ {scale} has no pixels")

    top, sides, bottom = preset.padding
    return CanvasGeometry(
        width=image_width + 2 * sides,
        height=image_height + top + bottom,
        image_x=sides,
        image_y=top,
        image_width=image_width,
        image_height=image_height,
    )


def _rgb(color: str) -> Tuple[int, int, int]:
    return ImageColor.getrgb(color)[:3]


def draw_background(canvas: np.ndarray, geometry: CanvasGeometry, preset: FilterPreset):
    """
    Paint the canvas background in place

    Bordered presets get a vertical paper gradient and a faint shadow just
    around the image slot; everything else is solid black.
    """
    canvas[:, :, 3] = 255
    if not preset.is_bordered:
        canvas[:, :, :3] = 0
        return

    top = np.array(_rgb(preset.border.paper_top), dtype=np.float64)
    bottom = np.array(_rgb(preset.border.paper_bottom), dtype=np.float64)
    t = ((np.arange(geometry.height) + 0.5) / geometry.height)[:, np.newaxis]
    rows = np.rint(top + (bottom - top) * t).astype(np.uint8)
    canvas[:, :, :3] = rows[:, np.newaxis, :]

    x0 = max(0, geometry.image_x - 2)
    y0 = max(0, geometry.image_y - 2)
    x1 = min(geometry.width, geometry.image_x + geometry.image_width + 2)
    y1 = min(geometry.height, geometry.image_y + geometry.image_height + 2)
    shaded = canvas[y0:y1, x0:x1, :3].astype(np.float64) * (1.0 - INSET_SHADOW_OPACITY)
    canvas[y0:y1, x0:x1, :3] = np.rint(shaded).astype(np.uint8)


@lru_cache(maxsize=32)
def _load_font_cached(spec: FontSpec, search_paths: Tuple[str, ...]) -> ImageFont.ImageFont:
    for family in spec.families:
        candidates = [str(Path(directory) / family) for directory in search_paths]
        candidates.append(family)
        for candidate in candidates:
            try:
                return ImageFont.truetype(candidate, spec.size)
            except OSError:
                continue
    logger.debug(f"No font from {spec.families} found, using Pillow default")
    return ImageFont.load_default(size=spec.size)


def load_font(spec: FontSpec, search_paths: Sequence[str] = ()) -> ImageFont.ImageFont:
    """Resolve a font spec, trying each family in the search paths then system-wide"""
    return _load_font_cached(spec, tuple(str(p) for p in search_paths))


def _ascent(font) -> float:
    if hasattr(font, "getmetrics"):
        return font.getmetrics()[0]
    return font.getbbox("Ag")[3]


def _char_advances(font, text: str, spacing: float) -> List[float]:
    """Left x offset of each character with manual letter spacing"""
    offsets = []
    x = 0.0
    for ch in text:
        offsets.append(x)
        x += font.getlength(ch) + spacing
    return offsets


def spaced_text_width(font, text: str, spacing: float) -> float:
    """Width of text drawn character by character with letter spacing"""
    if not text:
        return 0.0
    return sum(font.getlength(ch) for ch in text) + spacing * (len(text) - 1)


def _draw_spaced(draw: ImageDraw.ImageDraw, x: float, baseline: float, text: str,
                 font, fill, spacing: float):
    top = baseline - _ascent(font)
    for ch, offset in zip(text, _char_advances(font, text, spacing)):
        draw.text((x + offset, top), ch, font=font, fill=fill)


def draw_date_stamp(image: Image.Image, geometry: CanvasGeometry, preset: FilterPreset,
                    timestamp: str, search_paths: Sequence[str] = ()) -> Image.Image:
    """
    Draw the preset's date stamp onto an RGBA image in place

    Corner stamps sit at the bottom left of the image area with a soft
    drop shadow; top-centre stamps are centred above it.
    """
    stamp = preset.date_stamp
    if not stamp.enabled or not timestamp:
        return image

    text = f"{stamp.prefix}{timestamp}"
    font = load_font(stamp.font, search_paths)
    color = _rgb(stamp.color)

    if stamp.position is StampPosition.CORNER:
        x = geometry.image_x + STAMP_MARGIN
        baseline = geometry.image_y + geometry.image_height - STAMP_MARGIN

        shadow = Image.new("RGBA", image.size, (0, 0, 0, 0))
        _draw_spaced(ImageDraw.Draw(shadow), x + SHADOW_OFFSET[0], baseline + SHADOW_OFFSET[1],
                     text, font, (0, 0, 0, round(255 * SHADOW_OPACITY)), stamp.letter_spacing)
        image.alpha_composite(shadow.filter(ImageFilter.GaussianBlur(SHADOW_BLUR / 2)))
    else:
        x = geometry.width / 2 - spaced_text_width(font, text, stamp.letter_spacing) / 2
        baseline = TOP_STAMP_BASELINE

    layer = Image.new("RGBA", image.size, (0, 0, 0, 0))
    _draw_spaced(ImageDraw.Draw(layer), x, baseline, text, font, color + (255,), stamp.letter_spacing)
    image.alpha_composite(layer)
    return image


def draw_caption(image: Image.Image, geometry: CanvasGeometry, preset: FilterPreset,
                 caption: str, search_paths: Sequence[str] = ()) -> Image.Image:
    """Draw a centred caption on the bottom border, in place"""
    if not preset.is_bordered or not caption:
        return image

    font = load_font(preset.border.caption_font, search_paths)
    color = _rgb(preset.border.caption_color)
    x = geometry.width / 2 - font.getlength(caption) / 2
    baseline = geometry.height - CAPTION_BASELINE

    layer = Image.new("RGBA", image.size, (0, 0, 0, 0))
    ImageDraw.Draw(layer).text((x, baseline - _ascent(font)), caption, font=font,
                               fill=color + (round(255 * CAPTION_OPACITY),))
    image.alpha_composite(layer)
    return image
