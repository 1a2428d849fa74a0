"""
Film effects compositor for FIMO

Per-pixel effects (vignette, light leak, grain, dust) run after the tone
and LUT stages; halation runs afterwards over the whole processed region
because it needs neighbouring pixels.
"""

import logging
from typing import Optional, Tuple

import cv2
import numpy as np

from ..presets import FilterPreset
from .lut import LUTImage, sample_lut
from .noise import NoiseField, NoiseGenerator
from .tone import adjust, luma

logger = logging.getLogger(__name__)

# Rows processed per block; bounds the size of the float temporaries
CHUNK_ROWS = 256
# Generator draws read per block while placing dust
DUST_BLOCK = 1 << 20


def vignette_factor(xs, ys, width: int, height: int, strength: float) -> np.ndarray:
    """
    Brightness multiplier falling off with distance from the centre

    Distance is Euclidean in [-1, 1] normalized coordinates; the first 0.2
    is left untouched.
    """
    xs = np.asarray(xs, dtype=np.float64)
    ys = np.asarray(ys, dtype=np.float64)
    if strength <= 0:
        return np.ones(np.broadcast(xs, ys).shape)
    nx = (xs / width) * 2.0 - 1.0
    ny = (ys / height) * 2.0 - 1.0
    distance = np.sqrt(nx * nx + ny * ny)
    return np.clip(1.0 - strength * np.maximum(0.0, distance - 0.2), 0.0, 1.0)


def light_leak(xs, ys, width: int, height: int, amount: float) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Amber diagonal band, strongest towards the top right"""
    xs = np.asarray(xs, dtype=np.float64)
    ys = np.asarray(ys, dtype=np.float64)
    if amount <= 0:
        zero = np.zeros(np.broadcast(xs, ys).shape)
        return zero, zero, zero
    nx = xs / width
    ny = ys / height
    band = np.maximum(0.0, (nx * 0.85 + (1.0 - ny) * 0.55) - 0.75)
    a = band * amount
    return 255.0 * a, 120.0 * a, 40.0 * a


def apply_grain(r, g, b, noise: np.ndarray, amount: float):
    """
    Luma-weighted grain from noise bytes

    Args:
        r, g, b: Channel values
        noise: Noise bytes (0-255) for the same pixels
        amount: Grain strength, 0-1

    Returns:
        (r, g, b) with grain added, faintly chromatic
    """
    if amount <= 0:
        return r, g, b
    n = np.asarray(noise, dtype=np.float64) / 255.0 * 2.0 - 1.0
    grain = (luma(r, g, b) / 255.0) * n * (amount * 18.0)
    return r + grain, g + grain * 0.95, b + grain * 1.05


def dust_threshold(amount: float) -> float:
    return 0.9992 - amount * 0.0009


def dust_specks(generator: NoiseGenerator, pixel_count: int, amount: float) -> np.ndarray:
    """
    Per-pixel luminance offsets for dust specks

    Every pixel, in row-major order, draws one value; when it exceeds the
    threshold two more draws give the sign and strength. The stream is
    read from the generator DUST_BLOCK draws at a time and only candidate
    draws are walked in Python. Exactly the draws a pixel-by-pixel loop
    would make are consumed.

    Returns:
        Float offsets, one per pixel (zero where there is no speck)
    """
    offsets = np.zeros(pixel_count, dtype=np.float64)
    if amount <= 0 or pixel_count == 0:
        return offsets

    threshold = dust_threshold(amount)
    pixel = 0    # next pixel to place
    drawn = 0    # draws consumed so far
    specks = 0
    while pixel < pixel_count:
        length = min(DUST_BLOCK, pixel_count - pixel)
        # two extra draws cover a speck on the block's last per-pixel draw
        block = generator.peek_floats(length + 2, offset=drawn)
        cursor = 0        # block index of the next per-pixel draw
        block_specks = 0
        for index in np.flatnonzero(block[:length] > threshold):
            if index < cursor:
                continue  # consumed as sign or strength
            sign = 1.0 if block[index + 1] > 0.55 else -1.0
            strength = (0.25 + block[index + 2] * 0.75) * 90.0 * amount
            offsets[pixel + index - 2 * block_specks] = sign * strength
            block_specks += 1
            cursor = index + 3
        consumed = max(length, cursor)
        drawn += consumed
        pixel += consumed - 2 * block_specks
        specks += block_specks

    generator.advance(drawn)
    logger.debug(f"Placed {specks} dust specks over {pixel_count} pixels")
    return offsets


def composite_pixels(rgb: np.ndarray, preset: FilterPreset, lut: Optional[LUTImage],
                     noise: Optional[NoiseField], dust: Optional[np.ndarray]) -> np.ndarray:
    """
    Run tone, LUT and per-pixel effects over an image region

    Args:
        rgb: H x W x 3 uint8 region
        preset: Filter preset
        lut: Decoded LUT, or None for identity mapping
        noise: Grain noise tile, or None for no grain
        dust: H x W dust offsets, or None for no dust

    Returns:
        H x W x 3 uint8 region, each channel clamped to [0, 255]
    """
    height, width = rgb.shape[:2]
    out = np.empty((height, width, 3), dtype=np.uint8)
    xs = np.arange(width, dtype=np.float64)[np.newaxis, :]
    xi = np.arange(width)[np.newaxis, :]

    for y0 in range(0, height, CHUNK_ROWS):
        y1 = min(height, y0 + CHUNK_ROWS)
        block = rgb[y0:y1].astype(np.float64)
        ys = np.arange(y0, y1, dtype=np.float64)[:, np.newaxis]

        r, g, b = adjust(block[:, :, 0], block[:, :, 1], block[:, :, 2], preset)

        if lut is not None:
            r, g, b = sample_lut(lut, r, g, b)

        v = vignette_factor(xs, ys, width, height, preset.vignette)
        r, g, b = r * v, g * v, b * v

        lr, lg, lb = light_leak(xs, ys, width, height, preset.light_leak)
        r, g, b = r + lr, g + lg, b + lb

        if noise is not None:
            yi = np.arange(y0, y1)[:, np.newaxis]
            r, g, b = apply_grain(r, g, b, noise.sample(xi, yi), preset.grain)

        if dust is not None:
            speck = dust[y0:y1]
            r, g, b = r + speck, g + speck, b + speck

        for channel, values in enumerate((r, g, b)):
            out[y0:y1, :, channel] = np.rint(np.clip(values, 0.0, 255.0))

    return out


def halation_sigma(halation: float) -> float:
    return max(0.8, 2.2 * halation)


def apply_halation(rgb: np.ndarray, halation: float) -> np.ndarray:
    """
    Glow around bright areas: Gaussian blur screened back at low opacity

    Args:
        rgb: H x W x 3 uint8 processed region
        halation: Strength 0-1; opacity is 0.18 * halation

    Returns:
        H x W x 3 uint8 region
    """
    if halation <= 0:
        return rgb
    sigma = halation_sigma(halation)
    base = rgb.astype(np.float32)
    blurred = cv2.GaussianBlur(base, (0, 0), sigmaX=sigma, sigmaY=sigma,
                               borderType=cv2.BORDER_REPLICATE)
    screen = 255.0 - (255.0 - base) * (255.0 - blurred) / 255.0
    alpha = 0.18 * halation
    result = base + (screen - base) * alpha
    return np.rint(np.clip(result, 0, 255)).astype(np.uint8)
