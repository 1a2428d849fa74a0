"""
Tests for the film effects compositor
"""

import numpy as np
import pytest

from fimo.presets import FilterPreset, preset_for
from fimo.processing.effects import (
    apply_grain, apply_halation, composite_pixels, dust_specks, dust_threshold,
    halation_sigma, light_leak, vignette_factor,
)
from fimo.processing.lut import build_identity_lut
from fimo.processing.noise import NoiseField, NoiseGenerator


def reference_dust(seed, pixel_count, amount):
    """Dust placement drawn one pixel at a time"""
    generator = NoiseGenerator(seed)
    threshold = 0.9992 - amount * 0.0009
    offsets = np.zeros(pixel_count)
    for i in range(pixel_count):
        if generator.next_float() > threshold:
            sign = 1.0 if generator.next_float() > 0.55 else -1.0
            offsets[i] = sign * (0.25 + generator.next_float() * 0.75) * 90.0 * amount
    return offsets, generator.position


@pytest.fixture
def sample_image():
    rng = np.random.default_rng(0)
    return rng.integers(0, 256, size=(40, 60, 3), dtype=np.uint8)


class TestVignette:
    """vignette_factor"""

    def test_centre_untouched(self):
        assert float(vignette_factor(50, 50, 100, 100, 1.0)) == pytest.approx(1.0)

    def test_darker_towards_corners(self):
        centre = vignette_factor(50, 50, 100, 100, 0.55)
        edge = vignette_factor(0, 50, 100, 100, 0.55)
        corner = vignette_factor(0, 0, 100, 100, 0.55)
        assert centre > edge > corner
        assert float(corner) == pytest.approx(1.0 - 0.55 * (np.sqrt(2.0) - 0.2))

    def test_zero_strength(self):
        xs = np.arange(10.0)[np.newaxis, :]
        ys = np.arange(5.0)[:, np.newaxis]
        factor = vignette_factor(xs, ys, 10, 5, 0.0)
        assert factor.shape == (5, 10)
        assert (factor == 1.0).all()

    def test_clamped(self):
        assert float(vignette_factor(0, 0, 100, 100, 1.0)) >= 0.0


class TestLightLeak:
    """light_leak"""

    def test_zero_amount(self):
        r, g, b = light_leak(np.arange(4.0), np.arange(4.0), 4, 4, 0.0)
        assert not r.any() and not g.any() and not b.any()

    def test_top_right_glows(self):
        r, g, b = light_leak(99, 0, 100, 100, 1.0)
        band = 0.99 * 0.85 + 0.55 - 0.75
        assert float(r) == pytest.approx(255.0 * band)
        assert float(g) == pytest.approx(120.0 * band)
        assert float(b) == pytest.approx(40.0 * band)

    def test_bottom_left_dark(self):
        r, _, _ = light_leak(0, 99, 100, 100, 1.0)
        assert float(r) == 0.0


class TestGrain:
    """apply_grain"""

    def test_zero_amount(self):
        assert apply_grain(10.0, 20.0, 30.0, 255, 0.0) == (10.0, 20.0, 30.0)

    def test_weights(self):
        r, g, b = apply_grain(128.0, 128.0, 128.0, 255, 1.0)
        grain = 128.0 / 255.0 * 18.0
        assert (r, g, b) == pytest.approx((128 + grain, 128 + grain * 0.95, 128 + grain * 1.05))

    def test_black_gets_no_grain(self):
        assert apply_grain(0.0, 0.0, 0.0, 0, 1.0) == pytest.approx((0.0, 0.0, 0.0))


class TestDust:
    """dust_specks"""

    @pytest.mark.parametrize("seed,amount", [(1337, 1.0), (42, 0.2), (7, 0.5)])
    def test_matches_pixel_loop(self, seed, amount):
        count = 20000
        generator = NoiseGenerator(seed)
        offsets = dust_specks(generator, count, amount)
        expected, position = reference_dust(seed, count, amount)
        np.testing.assert_array_equal(offsets, expected)
        assert generator.position == position

    def test_specks_present_at_full_amount(self):
        offsets = dust_specks(NoiseGenerator(1337), 20000, 1.0)
        assert np.count_nonzero(offsets) > 0
        assert np.abs(offsets).max() <= 90.0

    def test_zero_amount_draws_nothing(self):
        generator = NoiseGenerator(1)
        offsets = dust_specks(generator, 500, 0.0)
        assert not offsets.any()
        assert generator.position == 0

    def test_threshold(self):
        assert dust_threshold(0.0) == pytest.approx(0.9992)
        assert dust_threshold(1.0) == pytest.approx(0.9983)


class TestComposite:
    """composite_pixels"""

    def test_neutral_is_identity(self, sample_image):
        out = composite_pixels(sample_image, preset_for("neutral"), None, None, None)
        np.testing.assert_array_equal(out, sample_image)

    def test_identity_lut_is_identity(self, sample_image):
        out = composite_pixels(sample_image, preset_for("neutral"), build_identity_lut(), None, None)
        np.testing.assert_array_equal(out, sample_image)

    def test_clamped(self):
        white = np.full((8, 8, 3), 255, dtype=np.uint8)
        preset = FilterPreset(id="hot", name="Hot", exposure=1.0, contrast=1.5, warmth=1.0)
        out = composite_pixels(white, preset, None, None, None)
        assert out.dtype == np.uint8
        assert (out[:, :, 0] == 255).all()

    def test_chunked_matches_single_pass(self, sample_image, monkeypatch):
        preset = preset_for("ek80")
        noise = NoiseField.generate(NoiseGenerator(3), 16)
        dust = dust_specks(NoiseGenerator(9), 40 * 60, 1.0).reshape(40, 60)
        whole = composite_pixels(sample_image, preset, None, noise, dust)
        monkeypatch.setattr("fimo.processing.effects.CHUNK_ROWS", 7)
        chunked = composite_pixels(sample_image, preset, None, noise, dust)
        np.testing.assert_array_equal(whole, chunked)

    def test_dust_offsets_all_channels(self):
        grey = np.full((2, 2, 3), 100, dtype=np.uint8)
        dust = np.array([[30.0, 0.0], [0.0, -30.0]])
        out = composite_pixels(grey, preset_for("neutral"), None, None, dust)
        assert out[0, 0].tolist() == [130, 130, 130]
        assert out[1, 1].tolist() == [70, 70, 70]
        assert out[0, 1].tolist() == [100, 100, 100]


class TestHalation:
    """apply_halation"""

    def test_zero_is_noop(self, sample_image):
        assert apply_halation(sample_image, 0.0) is sample_image

    def test_sigma_floor(self):
        assert halation_sigma(0.1) == pytest.approx(0.8)
        assert halation_sigma(1.0) == pytest.approx(2.2)

    def test_glow_spreads_and_never_darkens(self):
        image = np.zeros((21, 21, 3), dtype=np.uint8)
        image[10, 10] = 255
        out = apply_halation(image, 1.0)
        assert out.dtype == np.uint8
        assert (out >= image).all()
        assert out[10, 11, 0] > 0

    def test_flat_image_unchanged_in_black(self):
        black = np.zeros((10, 10, 3), dtype=np.uint8)
        np.testing.assert_array_equal(apply_halation(black, 0.5), black)


class TestDustBlocks:
    """dust_specks reading the stream in small blocks"""

    @pytest.mark.parametrize("block", [1, 2, 5, 64])
    def test_block_size_does_not_change_placement(self, block, monkeypatch):
        monkeypatch.setattr("fimo.processing.effects.DUST_BLOCK", block)
        count = 5000
        generator = NoiseGenerator(1337)
        offsets = dust_specks(generator, count, 1.0)
        expected, position = reference_dust(1337, count, 1.0)
        np.testing.assert_array_equal(offsets, expected)
        assert generator.position == position

    def test_block_peeks_are_bounded(self, monkeypatch):
        monkeypatch.setattr("fimo.processing.effects.DUST_BLOCK", 100)
        generator = NoiseGenerator(3)
        sizes = []
        original = generator.peek

        def recording_peek(count, offset=0):
            sizes.append(count)
            return original(count, offset)

        monkeypatch.setattr(generator, "peek", recording_peek)
        dust_specks(generator, 10000, 1.0)
        assert max(sizes) <= 102
