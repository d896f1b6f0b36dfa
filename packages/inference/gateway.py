"""Primary/fallback model pair behind a single ``infer`` call.

Each gateway walks a small, forward-only state machine::

    UNLOADED ──load──▶ USING_PRIMARY ──runtime error──▶ USING_FALLBACK
        │                                                   ▲
        ├──primary missing, fallback ok─────────────────────┘
        └──both missing──▶ FAILED

A runtime error on the primary model switches to the fallback (if one
was loaded) and retries the same request once.  The fallback is never
abandoned for the primary again, and a FAILED gateway answers every
request with the sentinel result without touching a model.  Only
:meth:`InferenceGateway.close` / :meth:`InferenceGateway.reset` return
the gateway to UNLOADED.

No error ever leaves :meth:`InferenceGateway.infer`.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from functools import partial
from typing import Callable, Generic, Optional, TypeVar

import numpy as np

from packages.core.config import ScanConfig
from packages.core.errors import InferenceRuntimeError
from packages.core.types import DamageResult, MaterialResult, ModelState
from packages.inference.decode import decode_damage, decode_material
from packages.inference.image import to_input_tensor
from packages.inference.store import Model, ModelStore

logger = logging.getLogger(__name__)

R = TypeVar("R")


@dataclass(frozen=True)
class Detector(Generic[R]):
    """What distinguishes one detection task from another."""

    name: str
    decode: Callable[[np.ndarray], R]
    sentinel: Callable[[], R]


class InferenceGateway(Generic[R]):
    """Run one detector's primary/fallback models and decode the result."""

    def __init__(
        self,
        detector: Detector[R],
        store: ModelStore,
        input_size: int = 224,
    ) -> None:
        self.detector = detector
        self.store = store
        self.input_size = (input_size, input_size)
        self._lock = threading.Lock()
        self._state = ModelState.UNLOADED
        self._primary: Optional[Model] = None
        self._fallback: Optional[Model] = None

    @property
    def name(self) -> str:
        return self.detector.name

    @property
    def state(self) -> ModelState:
        return self._state

    @property
    def is_using_fallback(self) -> bool:
        return self._state is ModelState.USING_FALLBACK

    # ── lifecycle ───────────────────────────────────────────────────
    def load(self) -> ModelState:
        """Load the model pair if not loaded yet; return the resulting state."""
        with self._lock:
            return self._load()

    def _load(self) -> ModelState:
        if self._state is not ModelState.UNLOADED:
            return self._state

        self._primary = self._try_load(fallback=False)
        self._fallback = self._try_load(fallback=True)

        if self._primary is not None:
            self._state = ModelState.USING_PRIMARY
        elif self._fallback is not None:
            self._state = ModelState.USING_FALLBACK
            logger.warning("%s: primary model unavailable, using fallback", self.name)
        else:
            self._state = ModelState.FAILED
            logger.error("%s: no model could be loaded; returning sentinel results", self.name)
        return self._state

    def _try_load(self, fallback: bool) -> Optional[Model]:
        try:
            return self.store.load(self.name, fallback=fallback)
        except Exception as exc:
            kind = "fallback" if fallback else "primary"
            logger.warning("%s: %s model not loaded: %s", self.name, kind, exc)
            return None

    def close(self) -> None:
        """Release both model handles and return to UNLOADED."""
        with self._lock:
            for handle in (self._primary, self._fallback):
                if handle is None:
                    continue
                try:
                    handle.close()
                except Exception:
                    logger.exception("%s: error while closing model", self.name)
            self._primary = None
            self._fallback = None
            self._state = ModelState.UNLOADED

    def reset(self) -> ModelState:
        """Close everything and try the primary model again."""
        self.close()
        return self.load()

    def __enter__(self) -> "InferenceGateway[R]":
        self.load()
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # ── inference ───────────────────────────────────────────────────
    def infer(self, image) -> R:
        """Classify *image*; the sentinel result stands in for any failure."""
        with self._lock:
            if self._state is ModelState.UNLOADED:
                self._load()
            if self._state is ModelState.FAILED:
                return self.detector.sentinel()

            active = self._fallback if self.is_using_fallback else self._primary
            try:
                return self._run(active, image)
            except Exception as exc:
                if self._state is ModelState.USING_PRIMARY and self._fallback is not None:
                    logger.warning(
                        "%s: primary model failed (%s); switching to fallback", self.name, exc
                    )
                    self._state = ModelState.USING_FALLBACK
                    try:
                        return self._run(self._fallback, image)
                    except Exception as retry_exc:
                        logger.warning("%s: fallback model failed: %s", self.name, retry_exc)
                        return self.detector.sentinel()
                logger.warning("%s: inference failed: %s", self.name, exc)
                return self.detector.sentinel()

    def _run(self, model: Model, image) -> R:
        inputs = to_input_tensor(image, self.input_size)
        try:
            output = model.run(inputs)
        except Exception as exc:
            raise InferenceRuntimeError(str(exc)) from exc
        return self.detector.decode(output)


# ── the two detectors ────────────────────────────────────────────────
MATERIAL_DETECTOR: Detector[MaterialResult] = Detector(
    name="material_detector",
    decode=decode_material,
    sentinel=MaterialResult.unknown,
)


def material_gateway(
    store: ModelStore,
    config: ScanConfig | None = None,
) -> InferenceGateway[MaterialResult]:
    config = config or ScanConfig()
    return InferenceGateway(MATERIAL_DETECTOR, store, input_size=config.input_size)


def damage_gateway(
    store: ModelStore,
    config: ScanConfig | None = None,
) -> InferenceGateway[DamageResult]:
    config = config or ScanConfig()
    detector = Detector(
        name="damage_evaluator",
        decode=partial(decode_damage, confidence_floor=config.damage_confidence_floor),
        sentinel=DamageResult.unknown,
    )
    return InferenceGateway(detector, store, input_size=config.input_size)
