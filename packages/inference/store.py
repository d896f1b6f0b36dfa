"""Locate and load model artefacts.

Each detector ships a primary and an optional fallback artefact laid out
as ``<root>/<detector>[_fallback].<ext>``.  The artefact itself is opaque;
a :class:`ModelLoader` turns it into something with a ``run`` method that
maps an input batch to a fixed-length float vector.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Protocol

import numpy as np

from packages.core.errors import ModelLoadError

logger = logging.getLogger(__name__)


class Model(Protocol):
    def run(self, inputs: np.ndarray) -> np.ndarray: ...

    def close(self) -> None: ...


class ModelLoader(Protocol):
    extension: str

    def load(self, path: Path) -> Model: ...


class TorchScriptModel:
    """A TorchScript module evaluated on CPU."""

    def __init__(self, module) -> None:
        self._module = module

    def run(self, inputs: np.ndarray) -> np.ndarray:
        import torch  # lazy import

        if self._module is None:
            raise RuntimeError("model is closed")
        with torch.no_grad():
            output = self._module(torch.from_numpy(np.ascontiguousarray(inputs)))
        return output.detach().cpu().numpy().reshape(-1)

    def close(self) -> None:
        self._module = None


class TorchScriptLoader:
    """Load ``.pt`` TorchScript artefacts with ``torch.jit.load``."""

    extension = "pt"

    def load(self, path: Path) -> TorchScriptModel:
        import torch  # lazy import – only needed when real artefacts exist

        module = torch.jit.load(str(path), map_location="cpu")
        module.eval()
        return TorchScriptModel(module)


class ModelStore:
    """Resolve detector names to artefact paths and load them."""

    def __init__(self, root: str | Path = "models", loader: ModelLoader | None = None) -> None:
        self.root = Path(root)
        self.loader = loader or TorchScriptLoader()

    def path_for(self, name: str, fallback: bool = False) -> Path:
        stem = f"{name}_fallback" if fallback else name
        return self.root / f"{stem}.{self.loader.extension}"

    def load(self, name: str, fallback: bool = False) -> Model:
        """Load the primary (or fallback) artefact for *name*.

        Raises :class:`ModelLoadError` when the file is missing or the
        loader rejects it.
        """
        path = self.path_for(name, fallback)
        if not path.is_file():
            raise ModelLoadError(f"model artefact not found: {path}")
        try:
            model = self.loader.load(path)
        except Exception as exc:
            raise ModelLoadError(f"failed to load {path}: {exc}") from exc
        logger.info("Loaded model %s", path)
        return model
