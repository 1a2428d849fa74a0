"""
Tone adjustments: exposure, contrast, fade, saturation, warmth and tint

Operates on unclamped float channels in the 0-255 scale. Inputs may be
scalars or numpy arrays of matching shape.
"""

from typing import Tuple

from ..presets import FilterPreset


def luma(r, g, b):
    """Rec. 709 luma"""
    return 0.2126 * r + 0.7152 * g + 0.0722 * b


def adjust(r, g, b, preset: FilterPreset) -> Tuple:
    """
    Apply the preset's tone parameters

    The order is fixed; each step feeds the next. Nothing is clamped
    here, that happens when the pixel is written.

    Args:
        r, g, b: Channel values (0-255 scale, float or float arrays)
        preset: Filter preset supplying the parameters

    Returns:
        Adjusted (r, g, b)
    """
    # Exposure
    gain = 1.0 + preset.exposure
    r = r * gain
    g = g * gain
    b = b * gain

    # Contrast around mid grey
    c = preset.contrast
    r = (r - 128.0) * c + 128.0
    g = (g - 128.0) * c + 128.0
    b = (b - 128.0) * c + 128.0

    # Fade: lift blacks, blue slightly more for a warm-neutral floor
    if preset.fade > 0:
        f = preset.fade
        r = r * (1.0 - f) + 255.0 * (f * 0.08)
        g = g * (1.0 - f) + 255.0 * (f * 0.08)
        b = b * (1.0 - f) + 255.0 * (f * 0.09)

    # Saturation
    lum = luma(r, g, b)
    s = preset.saturation
    r = lum + (r - lum) * s
    g = lum + (g - lum) * s
    b = lum + (b - lum) * s

    # Warmth and tint
    w = preset.warmth * 18.0
    r = r + w
    b = b - w * 0.9
    g = g + preset.tint * 14.0

    return r, g, b
