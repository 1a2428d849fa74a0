"""
Tests for render orchestration
"""

import asyncio

import cv2
import numpy as np
import pytest

from fimo.config import get_default_config
from fimo.errors import ContextUnavailableError, SourceDecodeError, UnknownPresetError
from fimo.io.images import RasterImage
from fimo.presets import PRESETS, FilterPreset
from fimo.processing.lut import LUTStore, build_identity_lut, encode_lut_png
from fimo.render import Renderer, RenderRequest, RenderState


def failing_loader(reference):
    raise FileNotFoundError(f"no LUT {reference}")


@pytest.fixture
def renderer():
    """Renderer whose LUTs are all unavailable"""
    return Renderer(lut_store=LUTStore(failing_loader))


@pytest.fixture
def identity_renderer():
    """Renderer that serves the identity LUT for every reference"""
    payload = encode_lut_png(build_identity_lut())
    return Renderer(lut_store=LUTStore(lambda reference: payload))


@pytest.fixture
def grey_source():
    return np.full((100, 100, 3), 128, dtype=np.uint8)


@pytest.fixture
def photo():
    rng = np.random.default_rng(1)
    return rng.integers(0, 256, size=(64, 96, 3), dtype=np.uint8)


def patch_mean(pixels, y, x, size=5):
    return pixels[y:y + size, x:x + size, :3].astype(float).mean()


class TestRender:
    """Renderer.render end to end"""

    @pytest.mark.asyncio
    async def test_ek80_grey_without_lut(self, renderer, grey_source):
        result = await renderer.render(RenderRequest("ek80", grey_source, seed=42))
        assert result.pixels.shape == (100, 100, 4)
        assert result.pixels.dtype == np.uint8
        assert result.lut_degraded
        assert "fimo-ek80.png" in result.lut_error
        assert (result.pixels[:, :, 3] == 255).all()
        centre = patch_mean(result.pixels, 48, 48)
        for y, x in [(0, 0), (0, 95), (95, 0), (95, 95)]:
            assert patch_mean(result.pixels, y, x) < centre

    @pytest.mark.asyncio
    async def test_deterministic(self, renderer, photo):
        request = RenderRequest("ek80", photo, timestamp="26 01 03", seed=7)
        first = await renderer.render(request)
        second = await renderer.render(request)
        np.testing.assert_array_equal(first.pixels, second.pixels)

    @pytest.mark.asyncio
    async def test_seed_changes_grain(self, renderer, photo):
        a = await renderer.render(RenderRequest("ek80", photo, seed=1))
        b = await renderer.render(RenderRequest("ek80", photo, seed=2))
        assert not np.array_equal(a.pixels, b.pixels)

    @pytest.mark.asyncio
    async def test_default_seed(self, renderer, photo):
        implicit = await renderer.render(RenderRequest("ek80", photo))
        explicit = await renderer.render(RenderRequest("ek80", photo, seed=1337))
        assert implicit.seed == 1337
        np.testing.assert_array_equal(implicit.pixels, explicit.pixels)

    @pytest.mark.asyncio
    async def test_neutral_is_identity(self, renderer, photo):
        result = await renderer.render(RenderRequest("neutral", photo))
        np.testing.assert_array_equal(result.pixels[:, :, :3], photo)
        assert not result.lut_degraded

    @pytest.mark.asyncio
    async def test_identity_lut_preset(self, identity_renderer, photo):
        presets = {"graded": FilterPreset(id="graded", name="Graded", lut="identity.png")}
        renderer = Renderer(lut_store=identity_renderer.lut_store, presets=presets)
        result = await renderer.render(RenderRequest("graded", photo))
        assert not result.lut_degraded
        np.testing.assert_array_equal(result.pixels[:, :, :3], photo)

    @pytest.mark.asyncio
    async def test_lut_fallback_keeps_dimensions(self, renderer, identity_renderer, photo):
        degraded = await renderer.render(RenderRequest("aesthetic400", photo, seed=3))
        graded = await identity_renderer.render(RenderRequest("aesthetic400", photo, seed=3))
        assert degraded.lut_degraded and not graded.lut_degraded
        assert degraded.pixels.shape == graded.pixels.shape == (64 + 34 + 72, 96 + 52, 4)

    @pytest.mark.asyncio
    async def test_bordered_canvas(self, renderer):
        source = np.full((50, 50, 3), 90, dtype=np.uint8)
        result = await renderer.render(
            RenderRequest("aesthetic400", source, timestamp="26 01 03", caption="hello"))
        assert (result.width, result.height) == (102, 156)
        # paper stays light away from the slot and text
        assert result.pixels[100, 2, 0] > 200

    @pytest.mark.asyncio
    async def test_scale(self, renderer, grey_source):
        result = await renderer.render(RenderRequest("ek80", grey_source, scale=2.0))
        assert (result.width, result.height) == (200, 200)

    @pytest.mark.asyncio
    async def test_timestamp_drawn(self, renderer, photo):
        plain = await renderer.render(RenderRequest("ek80", photo, seed=5))
        stamped = await renderer.render(RenderRequest("ek80", photo, seed=5, timestamp="26 01 03"))
        assert not np.array_equal(plain.pixels, stamped.pixels)

    @pytest.mark.asyncio
    async def test_transparent_source_over_black(self, renderer):
        source = np.zeros((10, 10, 4), dtype=np.uint8)
        source[:, :, :3] = 200
        result = await renderer.render(RenderRequest("neutral", source))
        assert not result.pixels[:, :, :3].any()
        assert (result.pixels[:, :, 3] == 255).all()

    @pytest.mark.asyncio
    async def test_encoded_bytes_source(self, renderer, photo):
        ok, encoded = cv2.imencode(".png", cv2.cvtColor(photo, cv2.COLOR_RGB2BGR))
        assert ok
        result = await renderer.render(RenderRequest("neutral", encoded.tobytes()))
        np.testing.assert_array_equal(result.pixels[:, :, :3], photo)

    @pytest.mark.asyncio
    async def test_raster_source(self, renderer, photo):
        raster = RasterImage(cv2.cvtColor(photo, cv2.COLOR_RGB2RGBA))
        result = await renderer.render(RenderRequest("neutral", raster))
        np.testing.assert_array_equal(result.pixels[:, :, :3], photo)

    @pytest.mark.asyncio
    async def test_concurrent_renders(self, identity_renderer, photo):
        requests = [RenderRequest(preset_id, photo, seed=11) for preset_id in ("ek80", "aesthetic400", "ek80")]
        results = await asyncio.gather(*(identity_renderer.render(r) for r in requests))
        np.testing.assert_array_equal(results[0].pixels, results[2].pixels)
        assert identity_renderer.lut_store.cached("fimo-ek80.png") is not None

    @pytest.mark.asyncio
    async def test_unusable_lut_degrades(self, grey_source):
        ok, encoded = cv2.imencode(".tiff", np.zeros((512, 512, 3), dtype=np.int16))
        assert ok
        payload = encoded.tobytes()
        renderer = Renderer(lut_store=LUTStore(lambda reference: payload))
        job = renderer.create_job(RenderRequest("ek80", grey_source, seed=42))
        result = await job.run()
        assert result.lut_degraded
        assert result.pixels.shape == (100, 100, 4)
        assert job.state is RenderState.DONE

    @pytest.mark.asyncio
    async def test_loader_returning_coroutine(self, photo):
        payload = encode_lut_png(build_identity_lut())

        async def fetch(reference):
            await asyncio.sleep(0)
            return payload

        presets = {"graded": FilterPreset(id="graded", name="Graded", lut="identity.png")}
        renderer = Renderer(lut_store=LUTStore(lambda reference: fetch(reference)), presets=presets)
        result = await renderer.render(RenderRequest("graded", photo))
        assert not result.lut_degraded
        np.testing.assert_array_equal(result.pixels[:, :, :3], photo)

    def test_render_sync(self, renderer, photo):
        result = renderer.render_sync(RenderRequest("neutral", photo))
        assert result.to_image().size == (96, 64)


class TestRenderErrors:
    """Failures and the job state machine"""

    @pytest.mark.asyncio
    async def test_unknown_preset(self, renderer, photo):
        job = renderer.create_job(RenderRequest("velvia", photo))
        with pytest.raises(UnknownPresetError):
            await job.run()
        assert job.state is RenderState.FAILED
        assert job.history == [RenderState.IDLE, RenderState.FAILED]
        assert isinstance(job.error, UnknownPresetError)

    @pytest.mark.asyncio
    async def test_undecodable_source(self, renderer):
        job = renderer.create_job(RenderRequest("ek80", b"not an image"))
        with pytest.raises(SourceDecodeError):
            await job.run()
        assert job.history == [RenderState.IDLE, RenderState.LOADING_SOURCE, RenderState.FAILED]

    @pytest.mark.asyncio
    async def test_empty_source(self, renderer):
        with pytest.raises(SourceDecodeError):
            await renderer.render(RenderRequest("ek80", np.zeros((0, 0, 3), dtype=np.uint8)))

    @pytest.mark.asyncio
    async def test_missing_file(self, renderer, tmp_path):
        with pytest.raises(SourceDecodeError):
            await renderer.render(RenderRequest("ek80", tmp_path / "missing.jpg"))

    @pytest.mark.asyncio
    async def test_canvas_too_large(self, photo):
        config = get_default_config()
        config['render']['max_output_pixels'] = 1000
        renderer = Renderer(config, lut_store=LUTStore(failing_loader))
        job = renderer.create_job(RenderRequest("ek80", photo))
        with pytest.raises(ContextUnavailableError):
            await job.run()
        assert job.state is RenderState.FAILED

    @pytest.mark.asyncio
    async def test_invalid_scale(self, renderer, photo):
        with pytest.raises(ContextUnavailableError):
            await renderer.render(RenderRequest("ek80", photo, scale=0))

    @pytest.mark.asyncio
    async def test_job_runs_once(self, renderer, photo):
        job = renderer.create_job(RenderRequest("neutral", photo))
        await job.run()
        with pytest.raises(RuntimeError):
            await job.run()


class TestRenderStates:
    """State history of successful renders"""

    @pytest.mark.asyncio
    async def test_lut_preset_history(self, renderer, photo):
        job = renderer.create_job(RenderRequest("ek80", photo))
        await job.run()
        assert job.history == [
            RenderState.IDLE,
            RenderState.LOADING_SOURCE,
            RenderState.LOADING_LUT,
            RenderState.PROCESSING,
            RenderState.COMPOSITING,
            RenderState.DONE,
        ]
        assert job.error is None

    @pytest.mark.asyncio
    async def test_no_lut_skips_loading(self, renderer, photo):
        job = renderer.create_job(RenderRequest("neutral", photo))
        await job.run()
        assert RenderState.LOADING_LUT not in job.history
        assert job.state is RenderState.DONE

    def test_catalog_presets_render(self, renderer, photo):
        for preset_id in PRESETS:
            result = renderer.render_sync(RenderRequest(preset_id, photo, timestamp="26 01 03"))
            assert result.preset_id == preset_id
