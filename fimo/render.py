"""
Render orchestration for FIMO

Sequences one render: resolve the preset, decode the source, load the
LUT, run the per-pixel pass, then halation, framing and text. Only source
and LUT decoding suspend; the pixel work is synchronous.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple, Union

import cv2
import numpy as np
from PIL import Image

from .config import get_config_value, get_default_config
from .errors import ContextUnavailableError, LUTLoadError
from .io.images import RasterImage, as_raster
from .presets import FilterPreset, preset_for
from .processing.effects import apply_halation, composite_pixels, dust_specks
from .processing.frame import (
    CanvasGeometry, canvas_geometry, draw_background, draw_caption, draw_date_stamp,
)
from .processing.lut import LUTImage, LUTStore, shared_lut_store
from .processing.noise import NoiseField, NoiseGenerator
from .utils.logging import StructuredLogger

logger = logging.getLogger(__name__)

SourceLike = Union[RasterImage, np.ndarray, bytes, str, Path]


class RenderState(Enum):
    """Lifecycle of one render"""
    IDLE = "idle"
    LOADING_SOURCE = "loading_source"
    LOADING_LUT = "loading_lut"
    PROCESSING = "processing"
    COMPOSITING = "compositing"
    DONE = "done"
    FAILED = "failed"


@dataclass
class RenderRequest:
    """Input to one render"""
    preset_id: str
    source: SourceLike
    timestamp: Optional[str] = None  # drawn literally, e.g. "26 01 03"
    caption: Optional[str] = None
    seed: Optional[int] = None       # None uses render.default_seed
    scale: float = 1.0


@dataclass
class RenderResult:
    """Rendered RGBA buffer and how it was produced"""
    pixels: np.ndarray
    preset_id: str
    seed: int
    lut_degraded: bool = False
    lut_error: Optional[str] = None

    @property
    def width(self) -> int:
        return self.pixels.shape[1]

    @property
    def height(self) -> int:
        return self.pixels.shape[0]

    def to_image(self) -> Image.Image:
        return Image.fromarray(self.pixels)


class RenderJob:
    """
    A single render run with its state history

    States move IDLE -> LOADING_SOURCE -> LOADING_LUT (only for LUT
    presets) -> PROCESSING -> COMPOSITING -> DONE, or to FAILED from any
    of them. A failed LUT load does not fail the job.
    """

    def __init__(self, renderer: 'Renderer', request: RenderRequest):
        self.renderer = renderer
        self.request = request
        self.state = RenderState.IDLE
        self.history: List[RenderState] = [RenderState.IDLE]
        self.error: Optional[BaseException] = None

    def _transition(self, state: RenderState):
        logger.debug(f"Render {self.request.preset_id}: {self.state.value} -> {state.value}")
        self.state = state
        self.history.append(state)

    async def run(self) -> RenderResult:
        """
        Execute the render

        Raises:
            UnknownPresetError: preset id not in the catalog
            SourceDecodeError: source image unreadable
            ContextUnavailableError: output canvas cannot be created
        """
        if self.state is not RenderState.IDLE:
            raise RuntimeError(f"Render job already ran (state {self.state.value})")
        started = time.perf_counter()
        try:
            result = await self._run()
        except Exception as e:
            self.error = e
            self._transition(RenderState.FAILED)
            logger.error(f"Render {self.request.preset_id} failed: {e}")
            raise

        self.renderer.log.info(
            "Render complete",
            preset=result.preset_id,
            size=f"{result.width}x{result.height}",
            seed=result.seed,
            lut_degraded=result.lut_degraded,
            elapsed_ms=round((time.perf_counter() - started) * 1000, 1),
        )
        return result

    async def _run(self) -> RenderResult:
        request = self.request
        renderer = self.renderer
        preset = preset_for(request.preset_id, renderer.presets)
        seed = renderer.default_seed if request.seed is None else request.seed

        self._transition(RenderState.LOADING_SOURCE)
        source = await renderer.decode_source(request.source)
        geometry = canvas_geometry(preset, source.width, source.height, request.scale)
        renderer.check_canvas(geometry)

        lut, lut_error = None, None
        if preset.lut:
            self._transition(RenderState.LOADING_LUT)
            lut, lut_error = await renderer.load_lut(preset.lut)

        self._transition(RenderState.PROCESSING)
        canvas = renderer.allocate_canvas(geometry)
        draw_background(canvas, geometry, preset)
        region = place_source(canvas, geometry, source)

        generator = NoiseGenerator(seed)
        noise = NoiseField.generate(generator, renderer.noise_tile_size) if preset.grain > 0 else None
        dust = None
        if preset.dust > 0:
            count = geometry.image_width * geometry.image_height
            dust = dust_specks(generator, count, preset.dust).reshape(
                geometry.image_height, geometry.image_width)
        graded = composite_pixels(region, preset, lut, noise, dust)

        self._transition(RenderState.COMPOSITING)
        graded = apply_halation(graded, preset.halation)
        _slot(canvas, geometry)[:, :, :3] = graded

        image = Image.fromarray(canvas)
        if request.timestamp:
            draw_date_stamp(image, geometry, preset, request.timestamp, renderer.font_paths)
        if request.caption:
            draw_caption(image, geometry, preset, request.caption, renderer.font_paths)

        result = RenderResult(
            pixels=np.asarray(image, dtype=np.uint8).copy(),
            preset_id=preset.id,
            seed=seed,
            lut_degraded=lut_error is not None,
            lut_error=lut_error,
        )
        self._transition(RenderState.DONE)
        return result


def _slot(canvas: np.ndarray, geometry: CanvasGeometry) -> np.ndarray:
    """View of the canvas area holding the image"""
    return canvas[geometry.image_y:geometry.image_y + geometry.image_height,
                  geometry.image_x:geometry.image_x + geometry.image_width]


def place_source(canvas: np.ndarray, geometry: CanvasGeometry, source: RasterImage) -> np.ndarray:
    """
    Scale the source into its slot over the background

    Translucent source pixels are blended over what is already there.

    Returns:
        The slot's RGB pixels after placement (a copy)
    """
    pixels = source.pixels
    size = (geometry.image_width, geometry.image_height)
    if (source.width, source.height) != size:
        shrinking = geometry.image_width < source.width
        pixels = cv2.resize(pixels, size,
                            interpolation=cv2.INTER_AREA if shrinking else cv2.INTER_LINEAR)

    slot = _slot(canvas, geometry)
    alpha = pixels[:, :, 3:4]
    if np.all(alpha == 255):
        slot[:, :, :3] = pixels[:, :, :3]
    else:
        a = alpha.astype(np.float64) / 255.0
        blended = pixels[:, :, :3] * a + slot[:, :, :3] * (1.0 - a)
        slot[:, :, :3] = np.rint(blended).astype(np.uint8)
    return slot[:, :, :3].copy()


class Renderer:
    """
    Vintage render engine entry point

    Holds the configuration, preset catalog, LUT store and source decoder
    shared by the renders it runs. Each ``render`` call owns its own
    canvas, generator and noise tile.
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None,
                 lut_store: Optional[LUTStore] = None,
                 presets: Optional[Mapping[str, FilterPreset]] = None,
                 source_decoder: Optional[Callable[[SourceLike], RasterImage]] = None):
        """
        Args:
            config: Configuration dictionary, defaults to built-in defaults
            lut_store: LUT cache, defaults to the process-wide store for luts.directory
            presets: Preset catalog, defaults to the built-in catalog
            source_decoder: Turns request sources into RasterImages
        """
        self.config = config or get_default_config()
        self.presets = presets
        self.lut_store = lut_store or shared_lut_store(
            get_config_value(self.config, 'luts.directory', 'luts'))
        self.source_decoder = source_decoder or as_raster
        self.default_seed = int(get_config_value(self.config, 'render.default_seed', 1337))
        self.noise_tile_size = int(get_config_value(self.config, 'render.noise_tile_size', 256))
        self.max_output_pixels = int(get_config_value(self.config, 'render.max_output_pixels', 64_000_000))
        self.font_paths: Tuple[str, ...] = tuple(get_config_value(self.config, 'fonts.search_paths', []) or ())
        self.log = StructuredLogger(__name__)

    def create_job(self, request: RenderRequest) -> RenderJob:
        return RenderJob(self, request)

    async def render(self, request: RenderRequest) -> RenderResult:
        """Run one render to completion"""
        return await self.create_job(request).run()

    def render_sync(self, request: RenderRequest) -> RenderResult:
        """Blocking wrapper around ``render`` for callers without an event loop"""
        return asyncio.run(self.render(request))

    async def decode_source(self, source: SourceLike) -> RasterImage:
        """Decode the request source, off the event loop when it needs decoding"""
        if isinstance(source, (RasterImage, np.ndarray)):
            return self.source_decoder(source)
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self.source_decoder, source)

    async def load_lut(self, reference: str) -> Tuple[Optional[LUTImage], Optional[str]]:
        """
        Load a LUT, degrading to identity mapping on failure

        Returns:
            (lut, None) on success, (None, reason) when the LUT is unavailable
        """
        try:
            return await self.lut_store.load(reference), None
        except LUTLoadError as e:
            logger.warning(f"{e}; rendering with identity colour mapping")
            return None, str(e)

    def check_canvas(self, geometry: CanvasGeometry):
        pixels = geometry.width * geometry.height
        if pixels > self.max_output_pixels:
            raise ContextUnavailableError(
                f"Canvas {geometry.width}x{geometry.height} exceeds "
                f"{self.max_output_pixels} pixel limit")

    def allocate_canvas(self, geometry: CanvasGeometry) -> np.ndarray:
        try:
            return np.zeros((geometry.height, geometry.width, 4), dtype=np.uint8)
        except (MemoryError, ValueError) as e:
            raise ContextUnavailableError(
                f"Cannot allocate {geometry.width}x{geometry.height} canvas: {e}") from e
