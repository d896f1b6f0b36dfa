"""Tracking-source interface and a replay source for recorded sessions."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol, Sequence

import numpy as np
from pydantic import TypeAdapter

from packages.core.types import PlaneObservation
from packages.pipeline.loader import SUPPORTED_SUFFIXES, load_point_cloud

logger = logging.getLogger(__name__)

_PLANES = TypeAdapter(list[PlaneObservation])


@dataclass(frozen=True)
class TrackingFrame:
    """What the tracking source reports on one tick.

    ``points`` holds raw ``(x, y, z, confidence)`` quads.
    """

    tracking: bool
    points: np.ndarray = field(default_factory=lambda: np.empty((0, 4), dtype=np.float32))
    planes: Sequence[PlaneObservation] = ()

    @classmethod
    def not_tracking(cls) -> "TrackingFrame":
        return cls(tracking=False)


class TrackingSource(Protocol):
    def resume(self) -> None: ...

    def pause(self) -> None: ...

    def release(self) -> None: ...

    def current_frame(self) -> TrackingFrame: ...


class ReplayTrackingSource:
    """Replay pre-recorded frames, one per ``current_frame`` call.

    Frames are only served while the source is resumed; a paused,
    released or exhausted source reports ``tracking=False``.
    """

    def __init__(self, frames: Sequence[TrackingFrame], loop: bool = False) -> None:
        self._frames = list(frames)
        self._loop = loop
        self._cursor = 0
        self._active = False
        self._released = False

    @classmethod
    def from_directory(cls, path: str | Path, loop: bool = False) -> "ReplayTrackingSource":
        """Build a source from every point-cloud file in *path*, sorted by name.

        A ``<stem>.planes.json`` file next to a cloud supplies that frame's
        plane observations.
        """
        root = Path(path)
        clouds = sorted(p for p in root.iterdir() if p.suffix.lower() in SUPPORTED_SUFFIXES)
        frames = []
        for cloud in clouds:
            sidecar = cloud.with_name(f"{cloud.stem}.planes.json")
            planes = _PLANES.validate_json(sidecar.read_text()) if sidecar.exists() else []
            frames.append(TrackingFrame(tracking=True, points=load_point_cloud(cloud), planes=planes))
        logger.info("Replay source: %d frame(s) from %s", len(frames), root)
        return cls(frames, loop=loop)

    def __len__(self) -> int:
        return len(self._frames)

    def resume(self) -> None:
        if self._released:
            raise RuntimeError("tracking source has been released")
        self._active = True

    def pause(self) -> None:
        self._active = False

    def release(self) -> None:
        self._active = False
        self._released = True

    @property
    def exhausted(self) -> bool:
        return not self._loop and self._cursor >= len(self._frames)

    def current_frame(self) -> TrackingFrame:
        if not self._active or not self._frames or self.exhausted:
            return TrackingFrame.not_tracking()
        frame = self._frames[self._cursor % len(self._frames)]
        self._cursor += 1
        return frame
