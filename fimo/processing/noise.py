"""
Deterministic noise for grain and dust

The generator is counter based (mulberry32): the k-th draw is a pure
function of ``seed + (k + 1) * 0x6D2B79F5``, so blocks of draws can be
produced with numpy while matching a one-at-a-time loop exactly.
"""

import logging
from dataclasses import dataclass

import numpy as np

logger = logging.getLogger(__name__)

_INCREMENT = 0x6D2B79F5
_MASK32 = 0xFFFFFFFF
_TWO_POW_32 = 4294967296.0

DEFAULT_TILE_SIZE = 256


def _mix(counters: np.ndarray) -> np.ndarray:
    """mulberry32 output function over an array of uint32 counters"""
    t = counters.astype(np.uint32)
    t = (t ^ (t >> 15)) * (t | 1)
    t ^= t + (t ^ (t >> 7)) * (t | 61)
    return t ^ (t >> 14)


class NoiseGenerator:
    """
    Seeded, reproducible uint32 source

    Same seed and same call sequence always give the same values,
    whether drawn one by one or in blocks.
    """

    def __init__(self, seed: int):
        self.seed = int(seed) & _MASK32
        self._position = 0

    @property
    def position(self) -> int:
        """Number of values drawn so far"""
        return self._position

    def peek(self, count: int, offset: int = 0) -> np.ndarray:
        """The ``count`` values starting ``offset`` draws ahead, without consuming them"""
        if count < 0 or offset < 0:
            raise ValueError(f"count and offset must be non-negative, got {count}, {offset}")
        first = self._position + offset + 1
        steps = np.arange(first, first + count, dtype=np.uint64)
        counters = (np.uint64(self.seed) + steps * np.uint64(_INCREMENT)) & np.uint64(_MASK32)
        return _mix(counters)

    def advance(self, count: int):
        """Consume ``count`` draws"""
        if count < 0:
            raise ValueError(f"count must be non-negative, got {count}")
        self._position += count

    def take(self, count: int) -> np.ndarray:
        """Draw ``count`` uint32 values as an array"""
        values = self.peek(count)
        self._position += count
        return values

    def peek_floats(self, count: int, offset: int = 0) -> np.ndarray:
        return self.peek(count, offset).astype(np.float64) / _TWO_POW_32

    def take_floats(self, count: int) -> np.ndarray:
        """Draw ``count`` floats in [0, 1)"""
        return self.take(count).astype(np.float64) / _TWO_POW_32

    def next_uint32(self) -> int:
        return int(self.take(1)[0])

    def next_float(self) -> float:
        return self.next_uint32() / _TWO_POW_32


@dataclass
class NoiseField:
    """Square tile of noise bytes, wrapped across the image"""
    tile: np.ndarray

    @classmethod
    def generate(cls, generator: NoiseGenerator, size: int = DEFAULT_TILE_SIZE) -> 'NoiseField':
        """Fill a size x size tile, row-major, from the generator's next draws"""
        if size <= 0:
            raise ValueError(f"Noise tile size must be positive, got {size}")
        values = generator.take(size * size) >> 24
        tile = values.astype(np.uint8).reshape(size, size)
        logger.debug(f"Generated {size}x{size} noise tile at seed {generator.seed}")
        return cls(tile=tile)

    @property
    def size(self) -> int:
        return self.tile.shape[0]

    def sample(self, xs: np.ndarray, ys: np.ndarray) -> np.ndarray:
        """Noise bytes at pixel coordinates, wrapped at the tile size"""
        return self.tile[np.asarray(ys) % self.size, np.asarray(xs) % self.size]
