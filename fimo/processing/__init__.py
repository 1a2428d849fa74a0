"""
Pixel processing stages for FIMO

Tone adjustment, LUT sampling, film effects, framing and the
deterministic noise that drives grain and dust.
"""

from .noise import NoiseGenerator, NoiseField
from .tone import adjust, luma
from .lut import LUTImage, LUTStore, FileLUTLoader, sample_lut, build_identity_lut, shared_lut_store
from .effects import (
    vignette_factor, light_leak, apply_grain, dust_specks, composite_pixels, apply_halation,
)
from .frame import CanvasGeometry, canvas_geometry, draw_background, draw_date_stamp, draw_caption

__all__ = [
    "NoiseGenerator",
    "NoiseField",
    "adjust",
    "luma",
    "LUTImage",
    "LUTStore",
    "FileLUTLoader",
    "sample_lut",
    "build_identity_lut",
    "shared_lut_store",
    "vignette_factor",
    "light_leak",
    "apply_grain",
    "dust_specks",
    "composite_pixels",
    "apply_halation",
    "CanvasGeometry",
    "canvas_geometry",
    "draw_background",
    "draw_date_stamp",
    "draw_caption",
]
