"""Image-capture interface and a directory-backed implementation."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Protocol

from PIL import Image

logger = logging.getLogger(__name__)

IMAGE_SUFFIXES = (".png", ".jpg", ".jpeg", ".bmp")


class ImageCapture(Protocol):
    def capture(self) -> Image.Image: ...


class DirectoryImageCapture:
    """Serve the images of a directory in name order, wrapping around."""

    def __init__(self, path: str | Path) -> None:
        self.root = Path(path)
        self._paths = sorted(p for p in self.root.iterdir() if p.suffix.lower() in IMAGE_SUFFIXES)
        if not self._paths:
            raise ValueError(f"No images found in {self.root}")
        self._cursor = 0
        logger.info("Image capture: %d image(s) from %s", len(self._paths), self.root)

    def capture(self) -> Image.Image:
        path = self._paths[self._cursor % len(self._paths)]
        self._cursor += 1
        with Image.open(path) as img:
            return img.convert("RGB")
