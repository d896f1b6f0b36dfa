"""Image preprocessing for the classification models.

Models take a 224 × 224 RGB image as a flat float buffer: pixels in
row-major order, each pixel contributing its R, G and B values divided
by 255.
"""

from __future__ import annotations

import numpy as np
from PIL import Image, ImageFilter

DEFAULT_SIZE = (224, 224)


def to_rgb_image(image: Image.Image | np.ndarray) -> Image.Image:
    """Convert a Pillow image or a uint8 ``(H, W[, C])`` array to RGB."""
    if isinstance(image, Image.Image):
        return image if image.mode == "RGB" else image.convert("RGB")
    arr = np.asarray(image)
    if arr.ndim == 2 or (arr.ndim == 3 and arr.shape[2] in (3, 4)):
        return Image.fromarray(arr.astype(np.uint8)).convert("RGB")
    raise ValueError(f"Cannot interpret array of shape {arr.shape} as an image")


def normalize_image(
    image: Image.Image | np.ndarray,
    size: tuple[int, int] = DEFAULT_SIZE,
) -> np.ndarray:
    """Resize to *size* ``(width, height)`` and return a flat float32 RGB buffer in ``[0, 1]``."""
    rgb = to_rgb_image(image)
    if rgb.size != size:
        rgb = rgb.resize(size, Image.Resampling.BILINEAR)
    pixels = np.asarray(rgb, dtype=np.float32)  # (H, W, 3)
    return (pixels / 255.0).reshape(-1)


def to_input_tensor(
    image: Image.Image | np.ndarray,
    size: tuple[int, int] = DEFAULT_SIZE,
) -> np.ndarray:
    """Return a ``(1, height, width, 3)`` batch of one, ready for the model."""
    width, height = size
    return normalize_image(image, size).reshape(1, height, width, 3)


def augment(
    image: Image.Image,
    rotation: float = 0.0,
    flip_horizontal: bool = False,
) -> Image.Image:
    """Mirror and/or rotate (degrees, counter-clockwise) an image for training data."""
    augmented = image
    if flip_horizontal:
        augmented = augmented.transpose(Image.Transpose.FLIP_LEFT_RIGHT)
    if rotation:
        augmented = augmented.rotate(rotation, expand=True)
    return augmented


def gaussian_blur(image: Image.Image, radius: float = 5.0) -> Image.Image:
    """Noise reduction before classification."""
    if radius <= 0:
        return image
    return image.filter(ImageFilter.GaussianBlur(radius))
