"""Tests for image preprocessing."""

from __future__ import annotations

import numpy as np
import pytest
from PIL import Image

from packages.inference.image import (
    augment,
    gaussian_blur,
    normalize_image,
    to_input_tensor,
    to_rgb_image,
)


class TestNormalizeImage:
    def test_length_and_range(self, sample_image: Image.Image):
        buf = normalize_image(sample_image)
        assert buf.dtype == np.float32
        assert buf.shape == (224 * 224 * 3,)
        assert buf.min() >= 0.0
        assert buf.max() <= 1.0

    def test_channel_interleaving(self):
        img = Image.new("RGB", (2, 1))
        img.putpixel((0, 0), (255, 0, 51))
        img.putpixel((1, 0), (0, 255, 102))
        buf = normalize_image(img, size=(2, 1))
        np.testing.assert_allclose(buf, [1.0, 0.0, 0.2, 0.0, 1.0, 0.4], atol=1e-6)

    def test_grayscale_array(self):
        arr = np.full((10, 10), 255, dtype=np.uint8)
        buf = normalize_image(arr, size=(4, 4))
        np.testing.assert_allclose(buf, 1.0)

    def test_rgba_array(self):
        arr = np.zeros((8, 8, 4), dtype=np.uint8)
        assert to_rgb_image(arr).mode == "RGB"

    def test_bad_shape(self):
        with pytest.raises(ValueError):
            to_rgb_image(np.zeros((4, 4, 2), dtype=np.uint8))

    def test_input_tensor_shape(self, sample_image: Image.Image):
        tensor = to_input_tensor(sample_image, size=(32, 16))
        assert tensor.shape == (1, 16, 32, 3)


class TestAugment:
    def test_flip(self):
        img = Image.new("RGB", (2, 1))
        img.putpixel((0, 0), (255, 0, 0))
        flipped = augment(img, flip_horizontal=True)
        assert flipped.getpixel((1, 0)) == (255, 0, 0)

    def test_rotation_expands(self, sample_image: Image.Image):
        rotated = augment(sample_image, rotation=90)
        assert rotated.size == (48, 64)

    def test_noop(self, sample_image: Image.Image):
        assert augment(sample_image) is sample_image


class TestGaussianBlur:
    def test_smooths_edges(self):
        img = Image.new("RGB", (20, 20), (0, 0, 0))
        img.putpixel((10, 10), (255, 255, 255))
        blurred = gaussian_blur(img, radius=2)
        assert blurred.getpixel((10, 10))[0] < 255
        assert blurred.getpixel((11, 10))[0] > 0

    def test_zero_radius(self, sample_image: Image.Image):
        assert gaussian_blur(sample_image, radius=0) is sample_image
