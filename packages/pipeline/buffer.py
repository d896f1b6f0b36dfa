"""Rolling point buffer and latest-wins plane store.

Both are owned by the scan loop and only mutated from the tick path, so
neither takes a lock.
"""

from __future__ import annotations

import logging
from typing import Iterable, Sequence

import numpy as np

from packages.core.types import PlaneObservation

logger = logging.getLogger(__name__)

DEFAULT_CAPACITY = 10_000
DEFAULT_MIN_CONFIDENCE = 0.5


class PointBuffer:
    """Bounded FIFO of confident 3D points.

    ``ingest`` takes raw ``(x, y, z, confidence)`` quads, keeps those with
    confidence strictly above *min_confidence* and appends them in arrival
    order.  Once the buffer holds more than *capacity* points the oldest
    surplus is evicted.
    """

    def __init__(
        self,
        capacity: int = DEFAULT_CAPACITY,
        min_confidence: float = DEFAULT_MIN_CONFIDENCE,
    ) -> None:
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self._capacity = capacity
        self._min_confidence = min_confidence
        self._points = np.empty((0, 3), dtype=np.float32)

    @property
    def capacity(self) -> int:
        return self._capacity

    def __len__(self) -> int:
        return len(self._points)

    def ingest(self, raw_points: np.ndarray | Sequence[Sequence[float]]) -> int:
        """Admit confident points from *raw_points*; return how many were admitted."""
        quads = np.asarray(raw_points, dtype=np.float32).reshape(-1, 4)
        admitted = quads[quads[:, 3] > self._min_confidence, :3]
        if len(admitted) == 0:
            return 0

        # Concatenate into a fresh array so earlier snapshots stay valid.
        points = np.concatenate((self._points, admitted))
        overflow = len(points) - self._capacity
        if overflow > 0:
            points = points[overflow:]
            logger.debug("Evicted %d oldest points", overflow)
        self._points = points
        return len(admitted)

    def snapshot(self) -> np.ndarray:
        """Return a read-only ``(N, 3)`` view of the buffered points, oldest first."""
        view = self._points.view()
        view.flags.writeable = False
        return view

    def clear(self) -> None:
        self._points = np.empty((0, 3), dtype=np.float32)


class PlaneTracker:
    """Holds exactly the planes reported on the most recent tick."""

    def __init__(self) -> None:
        self._planes: tuple[PlaneObservation, ...] = ()

    def __len__(self) -> int:
        return len(self._planes)

    def update(self, planes: Iterable[PlaneObservation]) -> None:
        self._planes = tuple(planes)

    def snapshot(self) -> tuple[PlaneObservation, ...]:
        return self._planes

    def clear(self) -> None:
        self._planes = ()
