"""Shared test fixtures – synthetic point clouds, fake models and collaborators."""

from __future__ import annotations

from pathlib import Path

import numpy as np
import pytest
from PIL import Image

from packages.core.types import PlaneObservation, PlaneType, Point3D
from packages.scan.tracking import TrackingFrame


def _make_plane_points(
    normal: np.ndarray,
    offset: float,
    u_axis: np.ndarray,
    v_axis: np.ndarray,
    extent: float = 5.0,
    n: int = 500,
    noise: float = 0.005,
    rng: np.random.Generator | None = None,
) -> np.ndarray:
    """Generate *n* points on a plane with a bit of Gaussian noise."""
    rng = rng or np.random.default_rng(0)
    centre = normal * offset
    u = rng.uniform(-extent / 2, extent / 2, size=(n, 1))
    v = rng.uniform(-extent / 2, extent / 2, size=(n, 1))
    pts = centre + u * u_axis + v * v_axis
    pts += rng.normal(scale=noise, size=pts.shape)
    return pts


@pytest.fixture()
def room_quads() -> np.ndarray:
    """A synthetic 5 m room (floor + two walls) as ``(x, y, z, confidence)`` quads.

    Roughly a quarter of the points have confidence ≤ 0.5.
    """
    rng = np.random.default_rng(42)
    pts = np.vstack(
        [
            _make_plane_points(
                np.array([0, 0, 1.0]), 0.0,
                np.array([1, 0, 0.0]), np.array([0, 1, 0.0]),
                n=600, rng=rng,
            ),
            _make_plane_points(
                np.array([1, 0, 0.0]), 2.5,
                np.array([0, 1, 0.0]), np.array([0, 0, 1.0]),
                n=400, rng=rng,
            ),
            _make_plane_points(
                np.array([0, 1, 0.0]), 2.5,
                np.array([1, 0, 0.0]), np.array([0, 0, 1.0]),
                n=400, rng=rng,
            ),
        ]
    )
    conf = rng.uniform(0.0, 1.0, size=(len(pts), 1))
    conf[rng.random(len(pts)) < 0.75] = 0.9
    return np.hstack([pts, conf]).astype(np.float32)


@pytest.fixture()
def floor_plane() -> PlaneObservation:
    return PlaneObservation(
        center=Point3D(x=0.0, y=0.0, z=0.0),
        normal=Point3D(x=0.0, y=1.0, z=0.0),
        extent_x=4.0,
        extent_z=3.0,
        type=PlaneType.HORIZONTAL_UPWARD_FACING,
    )


@pytest.fixture()
def sample_image() -> Image.Image:
    """A 64 × 48 gradient image."""
    x = np.linspace(0, 255, 64, dtype=np.uint8)
    arr = np.zeros((48, 64, 3), dtype=np.uint8)
    arr[..., 0] = x
    arr[..., 1] = 128
    arr[..., 2] = 255 - x
    return Image.fromarray(arr)


# ── fake models ──────────────────────────────────────────────────────
class FakeModel:
    """Returns a fixed output vector; optionally raises instead."""

    def __init__(self, output, fail: bool = False) -> None:
        self.output = np.asarray(output, dtype=np.float32)
        self.fail = fail
        self.calls = 0
        self.closed = False
        self.last_inputs: np.ndarray | None = None

    def run(self, inputs: np.ndarray) -> np.ndarray:
        self.calls += 1
        self.last_inputs = inputs
        if self.fail:
            raise RuntimeError("delegate crashed")
        return self.output

    def close(self) -> None:
        self.closed = True


class FakeStore:
    """In-memory model store keyed by ``(name, fallback)``.

    Missing keys behave like missing artefacts.
    """

    def __init__(self, models: dict | None = None) -> None:
        self.models = dict(models or {})
        self.loads: list[tuple[str, bool]] = []

    def load(self, name: str, fallback: bool = False):
        from packages.core.errors import ModelLoadError

        self.loads.append((name, fallback))
        try:
            return self.models[(name, fallback)]
        except KeyError:
            raise ModelLoadError(f"no artefact for {name} (fallback={fallback})") from None


MATERIAL_OUT = [0.05, 0.8, 0.05, 0.02, 0.02, 0.02, 0.02, 0.02]  # concrete
DAMAGE_OUT = [0.1, 0.05, 0.05, 0.1, 0.7, 0.25]  # surface wear, severity 0.25


@pytest.fixture()
def full_store() -> FakeStore:
    """Primary and fallback models for both detectors."""
    return FakeStore(
        {
            ("material_detector", False): FakeModel(MATERIAL_OUT),
            ("material_detector", True): FakeModel(MATERIAL_OUT),
            ("damage_evaluator", False): FakeModel(DAMAGE_OUT),
            ("damage_evaluator", True): FakeModel(DAMAGE_OUT),
        }
    )


# ── fake collaborators ───────────────────────────────────────────────
class ScriptedTracking:
    """Tracking source that replays a list of frames or exceptions."""

    def __init__(self, script: list) -> None:
        self.script = list(script)
        self.calls = 0
        self.events: list[str] = []

    def resume(self) -> None:
        self.events.append("resume")

    def pause(self) -> None:
        self.events.append("pause")

    def release(self) -> None:
        self.events.append("release")

    def current_frame(self) -> TrackingFrame:
        item = self.script[min(self.calls, len(self.script) - 1)]
        self.calls += 1
        if isinstance(item, Exception):
            raise item
        return item


class StaticCapture:
    def __init__(self, image: Image.Image) -> None:
        self.image = image
        self.calls = 0

    def capture(self) -> Image.Image:
        self.calls += 1
        return self.image


class RecordingObserver:
    def __init__(self) -> None:
        self.statuses: list[str] = []
        self.frames: list = []
        self.materials: list = []
        self.damages: list = []

    def publish_status(self, status: str) -> None:
        self.statuses.append(status)

    def publish_frame(self, frame) -> None:
        self.frames.append(frame)

    def publish_material(self, result) -> None:
        self.materials.append(result)

    def publish_damage(self, result) -> None:
        self.damages.append(result)


def tracking_frame(quads, planes=()) -> TrackingFrame:
    return TrackingFrame(tracking=True, points=np.asarray(quads, dtype=np.float32), planes=tuple(planes))


def write_ply(path: Path, quads: np.ndarray) -> None:
    """Helper: write ``(N, 4)`` quads as a binary PLY with a confidence property."""
    from plyfile import PlyData, PlyElement

    dtype = [("x", "f4"), ("y", "f4"), ("z", "f4"), ("confidence", "f4")]
    structured = np.empty(len(quads), dtype=dtype)
    for i, name in enumerate(("x", "y", "z", "confidence")):
        structured[name] = quads[:, i]
    el = PlyElement.describe(structured, "vertex")
    PlyData([el], text=False).write(str(path))
