"""
Image decoding and encoding around the render engine
Turns files, bytes and arrays into RGBA rasters and writes results out
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Union
import logging

import cv2
import numpy as np
import rawpy
from PIL import Image

from ..errors import SourceDecodeError

logger = logging.getLogger(__name__)

RAW_EXTENSIONS = {'.arw', '.cr2', '.cr3', '.nef', '.dng', '.raf', '.orf', '.rw2'}


@dataclass
class RasterImage:
    """Decoded RGBA raster, H x W x 4 uint8"""
    pixels: np.ndarray

    @property
    def width(self) -> int:
        return self.pixels.shape[1]

    @property
    def height(self) -> int:
        return self.pixels.shape[0]


def to_rgba(image: np.ndarray, bgr: bool = False) -> np.ndarray:
    """
    Normalize an image array to H x W x 4 uint8 RGBA

    Args:
        image: Grey, RGB or RGBA array (uint8, uint16 or float in 0-1)
        bgr: Channels are in OpenCV's BGR(A) order

    Returns:
        RGBA uint8 array
    """
    image = np.asarray(image)
    if image.ndim == 3 and image.shape[2] == 1:
        image = image[:, :, 0]
    if image.ndim not in (2, 3) or (image.ndim == 3 and image.shape[2] not in (3, 4)):
        raise ValueError(f"Unsupported image shape {image.shape}")

    if image.dtype == np.uint8:
        data = image
    elif image.dtype == np.uint16:
        data = np.rint(image.astype(np.float32) / 257.0).astype(np.uint8)
    elif np.issubdtype(image.dtype, np.floating):
        data = np.rint(np.clip(image, 0, 1) * 255.0).astype(np.uint8)
    else:
        raise ValueError(f"Unsupported image dtype {image.dtype}")

    if data.ndim == 2:
        return cv2.cvtColor(data, cv2.COLOR_GRAY2RGBA)
    if data.shape[2] == 3:
        return cv2.cvtColor(data, cv2.COLOR_BGR2RGBA if bgr else cv2.COLOR_RGB2RGBA)
    if bgr:
        return cv2.cvtColor(data, cv2.COLOR_BGRA2RGBA)
    return np.ascontiguousarray(data)


def decode_image(data: bytes) -> RasterImage:
    """
    Decode an encoded image (JPEG, PNG, WebP, TIFF...)

    Raises:
        SourceDecodeError: if the bytes are not a readable image
    """
    buffer = np.frombuffer(data, dtype=np.uint8)
    decoded = cv2.imdecode(buffer, cv2.IMREAD_UNCHANGED) if buffer.size else None
    if decoded is None:
        raise SourceDecodeError(f"Could not decode image ({len(data)} bytes)")
    return RasterImage(to_rgba(decoded, bgr=True))


def load_image(path: Union[str, Path]) -> RasterImage:
    """
    Load an image file, developing RAW files with rawpy

    Raises:
        SourceDecodeError: if the file is missing or unreadable
    """
    path = Path(path)
    if path.suffix.lower() in RAW_EXTENSIONS:
        try:
            with rawpy.imread(str(path)) as raw:
                rgb = raw.postprocess(use_camera_wb=True, output_bps=8)
        except (rawpy.LibRawError, OSError) as e:
            raise SourceDecodeError(f"Failed to develop RAW file {path}: {e}") from e
        logger.debug(f"Developed RAW file {path}: {rgb.shape[1]}x{rgb.shape[0]}")
        return RasterImage(to_rgba(rgb))

    try:
        data = path.read_bytes()
    except OSError as e:
        raise SourceDecodeError(f"Could not read {path}: {e}") from e
    try:
        return decode_image(data)
    except SourceDecodeError as e:
        raise SourceDecodeError(f"Could not decode {path}") from e


def as_raster(source: Union[RasterImage, np.ndarray, bytes, str, Path]) -> RasterImage:
    """
    Turn any supported source into a RasterImage

    Arrays are taken as RGB(A) order.

    Raises:
        SourceDecodeError: if the source cannot be decoded
    """
    if isinstance(source, RasterImage):
        return source
    if isinstance(source, np.ndarray):
        if source.size == 0:
            raise SourceDecodeError(f"Empty source image {source.shape}")
        try:
            return RasterImage(to_rgba(source))
        except ValueError as e:
            raise SourceDecodeError(str(e)) from e
    if isinstance(source, (bytes, bytearray, memoryview)):
        return decode_image(bytes(source))
    if isinstance(source, (str, Path)):
        return load_image(source)
    raise SourceDecodeError(f"Unsupported source type {type(source).__name__}")


def encode_image(pixels: np.ndarray, path: Union[str, Path], quality: int = 92) -> Path:
    """
    Write an RGBA buffer to disk, format chosen by extension

    JPEG output drops the alpha channel.
    """
    path = Path(path)
    image = Image.fromarray(np.ascontiguousarray(pixels, dtype=np.uint8))
    if path.suffix.lower() in ('.jpg', '.jpeg'):
        image.convert("RGB").save(path, quality=quality)
    else:
        image.save(path)
    logger.debug(f"Wrote {image.width}x{image.height} image to {path}")
    return path
