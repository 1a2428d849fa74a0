"""
3D colour lookup tables packed into 2D images

A LUT is a 16x16x16 cube stored in a 512x512 image: blue selects a
32x32 tile, red and green select a 2x2 cell inside it. Decoded LUTs are
cached per reference for the life of the process and shared read-only
between renders.
"""

import asyncio
import inspect
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Awaitable, Callable, Dict, Optional, Tuple, Union

import cv2
import numpy as np

from ..errors import LUTLoadError
from ..io.images import to_rgba

logger = logging.getLogger(__name__)

CUBE_SIZE = 16
CANONICAL_SIZE = 512

LUTLoader = Callable[[str], Union[bytes, Awaitable[bytes]]]


@dataclass(frozen=True)
class LUTImage:
    """Decoded LUT pixels (H x W x 4 RGBA, read-only)"""
    width: int
    height: int
    data: np.ndarray

    @classmethod
    def from_array(cls, rgba: np.ndarray) -> 'LUTImage':
        data = np.ascontiguousarray(rgba, dtype=np.uint8)
        data.setflags(write=False)
        return cls(width=data.shape[1], height=data.shape[0], data=data)


def decode_lut(reference: str, payload: bytes) -> LUTImage:
    """
    Decode an encoded LUT image

    Raises:
        LUTLoadError: if the bytes are not an image or too small to hold a cube
    """
    buffer = np.frombuffer(payload, dtype=np.uint8)
    decoded = cv2.imdecode(buffer, cv2.IMREAD_UNCHANGED) if buffer.size else None
    if decoded is None:
        raise LUTLoadError(reference, "not a decodable image")

    try:
        rgba = to_rgba(decoded, bgr=True)
    except ValueError as e:
        raise LUTLoadError(reference, str(e)) from e

    lut = LUTImage.from_array(rgba)
    if lut.width < CUBE_SIZE or lut.height < CUBE_SIZE:
        raise LUTLoadError(reference, f"{lut.width}x{lut.height} is too small for a {CUBE_SIZE}^3 cube")
    if (lut.width, lut.height) != (CANONICAL_SIZE, CANONICAL_SIZE):
        logger.warning(f"LUT {reference} is {lut.width}x{lut.height}, expected "
                       f"{CANONICAL_SIZE}x{CANONICAL_SIZE}")
    return lut


def encode_lut_png(lut: LUTImage) -> bytes:
    """Encode a LUT as PNG bytes"""
    bgra = cv2.cvtColor(np.asarray(lut.data), cv2.COLOR_RGBA2BGRA)
    ok, encoded = cv2.imencode('.png', bgra)
    if not ok:
        raise ValueError("PNG encoding failed")
    return encoded.tobytes()


def build_identity_lut(size: int = CANONICAL_SIZE) -> LUTImage:
    """
    Build a LUT that maps every colour to itself

    Cells hold ``index * 17`` so that interpolation between cube corners
    reproduces the input value exactly.
    """
    if size % (CUBE_SIZE * CUBE_SIZE) != 0:
        raise ValueError(f"LUT size must be a multiple of {CUBE_SIZE * CUBE_SIZE}, got {size}")
    tile = size // CUBE_SIZE
    cell = tile // CUBE_SIZE
    step = 255 // (CUBE_SIZE - 1)

    xs = np.arange(size)
    ys = np.arange(size)
    red = ((xs % tile) // cell) * step
    blue = (xs // tile) * step
    green = ((ys % tile) // cell) * step

    rgba = np.empty((size, size, 4), dtype=np.uint8)
    rgba[:, :, 0] = red[np.newaxis, :]
    rgba[:, :, 1] = green[:, np.newaxis]
    rgba[:, :, 2] = blue[np.newaxis, :]
    rgba[:, :, 3] = 255
    return LUTImage.from_array(rgba)


def _corner(lut: LUTImage, ri: np.ndarray, gi: np.ndarray, bi: np.ndarray) -> np.ndarray:
    """RGB of one cube corner, located in its blue tile"""
    tile = lut.width / CUBE_SIZE
    tile_x = bi % CUBE_SIZE
    tile_y = bi // CUBE_SIZE

    x = tile_x * tile + ri * (tile / CUBE_SIZE) + tile / 32
    y = tile_y * tile + gi * (tile / CUBE_SIZE) + tile / 32

    ix = np.clip(np.floor(x).astype(np.intp), 0, lut.width - 1)
    iy = np.clip(np.floor(y).astype(np.intp), 0, lut.height - 1)
    return lut.data[iy, ix, :3].astype(np.float64)


def _lerp(a: np.ndarray, c: np.ndarray, t: np.ndarray) -> np.ndarray:
    return a + (c - a) * t


def sample_lut(lut: LUTImage, r, g, b) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Trilinear lookup of (r, g, b) in the LUT cube

    Inputs are clamped to [0, 255]; scalars or arrays are accepted.
    Interpolation runs along red, then green, then blue.
    """
    max_index = CUBE_SIZE - 1
    r_pos = np.clip(np.asarray(r, dtype=np.float64), 0, 255) / 255.0 * max_index
    g_pos = np.clip(np.asarray(g, dtype=np.float64), 0, 255) / 255.0 * max_index
    b_pos = np.clip(np.asarray(b, dtype=np.float64), 0, 255) / 255.0 * max_index

    r0 = np.floor(r_pos).astype(np.intp)
    g0 = np.floor(g_pos).astype(np.intp)
    b0 = np.floor(b_pos).astype(np.intp)
    r1 = np.minimum(max_index, r0 + 1)
    g1 = np.minimum(max_index, g0 + 1)
    b1 = np.minimum(max_index, b0 + 1)

    fr = np.asarray(r_pos - r0)[..., np.newaxis]
    fg = np.asarray(g_pos - g0)[..., np.newaxis]
    fb = np.asarray(b_pos - b0)[..., np.newaxis]

    c00 = _lerp(_corner(lut, r0, g0, b0), _corner(lut, r1, g0, b0), fr)
    c10 = _lerp(_corner(lut, r0, g1, b0), _corner(lut, r1, g1, b0), fr)
    c01 = _lerp(_corner(lut, r0, g0, b1), _corner(lut, r1, g0, b1), fr)
    c11 = _lerp(_corner(lut, r0, g1, b1), _corner(lut, r1, g1, b1), fr)

    c0 = _lerp(c00, c10, fg)
    c1 = _lerp(c01, c11, fg)
    out = _lerp(c0, c1, fb)
    return out[..., 0], out[..., 1], out[..., 2]


class FileLUTLoader:
    """Reads LUT references from a directory on disk"""

    def __init__(self, directory: Union[str, Path] = "luts"):
        self.directory = Path(directory)

    def resolve(self, reference: str) -> Path:
        path = Path(reference)
        candidates = [path] if path.is_absolute() else []
        candidates.append(self.directory / reference.lstrip("/"))
        candidates.append(self.directory / path.name)
        for candidate in candidates:
            if candidate.is_file():
                return candidate
        raise FileNotFoundError(f"No LUT file for {reference!r} under {self.directory}")

    def __call__(self, reference: str) -> bytes:
        return self.resolve(reference).read_bytes()


class LUTStore:
    """
    Caching LUT loader

    The first successful load of a reference is decoded and cached; later
    loads return the cached ``LUTImage`` without touching the loader.
    Concurrent first loads may both decode, the last one inserted wins.
    """

    def __init__(self, loader: Optional[LUTLoader] = None):
        self._loader = loader or FileLUTLoader()
        self._cache: Dict[str, LUTImage] = {}

    def cached(self, reference: str) -> Optional[LUTImage]:
        return self._cache.get(reference)

    def clear(self):
        self._cache.clear()

    async def load(self, reference: str) -> LUTImage:
        """
        Resolve a reference to a decoded LUT

        Raises:
            LUTLoadError: if the loader fails or the bytes do not decode
        """
        lut = self._cache.get(reference)
        if lut is not None:
            return lut

        loop = asyncio.get_running_loop()
        try:
            if inspect.iscoroutinefunction(self._loader):
                payload = self._loader(reference)
            else:
                payload = await loop.run_in_executor(None, self._loader, reference)
            # Plain callables may hand back a coroutine or future
            if inspect.isawaitable(payload):
                payload = await payload
            lut = await loop.run_in_executor(None, decode_lut, reference, payload)
        except LUTLoadError:
            raise
        except Exception as e:
            raise LUTLoadError(reference, str(e)) from e

        self._cache[reference] = lut
        logger.info(f"Cached LUT {reference} ({lut.width}x{lut.height})")
        return lut


_shared_stores: Dict[str, LUTStore] = {}


def shared_lut_store(directory: Union[str, Path] = "luts") -> LUTStore:
    """Process-wide store for LUT files under ``directory``"""
    key = str(Path(directory))
    store = _shared_stores.get(key)
    if store is None:
        store = _shared_stores.setdefault(key, LUTStore(FileLUTLoader(directory)))
    return store
