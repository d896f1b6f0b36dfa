"""Preprocessing helpers: outlier rejection, stride down-sampling, centroid, bounds.

The functions accept either an ``(N, 3)`` NumPy array or a plain sequence
of points (``Point3D`` instances or ``(x, y, z)`` tuples).  Array input
gives array output; sequence input gives a list of the original elements,
so the result is always a subsequence of what was passed in.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence, TypeVar, Union

import numpy as np

from packages.core.types import BBox, Point3D, SpatialFrame

P = TypeVar("P")
Points = Union[np.ndarray, Sequence]


def as_array(points: Points) -> np.ndarray:
    """Return *points* as an ``(N, 3)`` float64 array."""
    if isinstance(points, np.ndarray):
        return np.asarray(points, dtype=np.float64).reshape(-1, 3)
    rows = [p.as_tuple() if isinstance(p, Point3D) else tuple(p) for p in points]
    return np.asarray(rows, dtype=np.float64).reshape(-1, 3)


def _select(points: Points, mask: np.ndarray) -> Points:
    if isinstance(points, np.ndarray):
        return points[mask]
    return [p for p, keep in zip(points, mask) if keep]


def compute_bounds(points: Points) -> BBox:
    """Return the axis-aligned bounding box of a non-empty point set."""
    arr = as_array(points)
    if len(arr) == 0:
        raise ValueError("cannot compute bounds of an empty point set")
    mins = arr.min(axis=0)
    maxs = arr.max(axis=0)
    return BBox(
        min=Point3D(x=float(mins[0]), y=float(mins[1]), z=float(mins[2])),
        max=Point3D(x=float(maxs[0]), y=float(maxs[1]), z=float(maxs[2])),
    )


def centroid(points: Points) -> Point3D:
    """Componentwise mean of *points*; the origin for an empty set."""
    arr = as_array(points)
    if len(arr) == 0:
        return Point3D(x=0.0, y=0.0, z=0.0)
    mean = arr.mean(axis=0)
    return Point3D(x=float(mean[0]), y=float(mean[1]), z=float(mean[2]))


def filter_outliers(points: Points, sigma: float = 2.0) -> Points:
    """Drop points unusually far from the centroid.

    A single global pass: each point's Euclidean distance to the mean
    position is compared against ``mean_distance + sigma * std_distance``
    (population standard deviation).  Points at or below the threshold are
    kept in their original order.

    With few points the statistic saturates: a lone outlier among *n*
    points can never sit more than ``sqrt(n - 1)`` standard deviations
    from the mean distance, so small sets need a smaller *sigma*.
    """
    arr = as_array(points)
    if len(arr) == 0:
        return points[:0] if isinstance(points, np.ndarray) else []

    distances = np.linalg.norm(arr - arr.mean(axis=0), axis=1)
    threshold = distances.mean() + sigma * distances.std()
    return _select(points, distances <= threshold)


def downsample(points: Sequence[P], target: int) -> Sequence[P]:
    """Deterministic stride down-sampling to at most *target* points.

    Keeps every ``len(points) // target``-th element starting at index 0
    and truncates to *target*.  Inputs no longer than *target* are returned
    unchanged.
    """
    if target < 0:
        raise ValueError("target must be non-negative")
    if len(points) <= target:
        return points
    if target == 0:
        return points[:0]
    stride = len(points) // target
    return points[::stride][:target]


def normalize_points(points: Points) -> np.ndarray:
    """Scale points into the unit cube using the largest bounding-box range.

    Aspect ratio is preserved.  A degenerate set (every point identical)
    maps to all zeros.
    """
    arr = as_array(points)
    if len(arr) == 0:
        return np.empty((0, 3), dtype=np.float32)
    mins = arr.min(axis=0)
    max_range = float((arr.max(axis=0) - mins).max())
    if max_range <= 0:
        return np.zeros_like(arr, dtype=np.float32)
    return np.clip((arr - mins) / max_range, 0.0, 1.0).astype(np.float32)


def normalize_frame(frame: SpatialFrame) -> SpatialFrame:
    """Return a copy of *frame* with its points normalised to ``[0, 1]``."""
    if frame.point_count == 0:
        return frame
    return frame.model_copy(update={"points": normalize_points(frame.points)})


@dataclass(frozen=True)
class OutlierFilter:
    """Configured :func:`filter_outliers`."""

    sigma: float = 2.0

    def __call__(self, points: Points) -> Points:
        return filter_outliers(points, sigma=self.sigma)


@dataclass(frozen=True)
class Downsampler:
    """Configured :func:`downsample`."""

    target: int = 1_000

    def __call__(self, points: Sequence[P]) -> Sequence[P]:
        return downsample(points, self.target)
