"""Where the scan loop sends its results.

Observers are write-only from the loop's point of view: a failing
observer is logged and otherwise ignored.
"""

from __future__ import annotations

import logging
from typing import Protocol

from packages.core.types import DamageResult, MaterialResult, SpatialFrame

logger = logging.getLogger(__name__)


class ScanObserver(Protocol):
    def publish_status(self, status: str) -> None: ...

    def publish_frame(self, frame: SpatialFrame) -> None: ...

    def publish_material(self, result: MaterialResult) -> None: ...

    def publish_damage(self, result: DamageResult) -> None: ...


def frame_status(frame: SpatialFrame) -> str:
    return f"Points: {frame.point_count}, Planes: {frame.plane_count}"


def describe_material(result: MaterialResult) -> str:
    return f"Material: {result.material_type.value} (confidence {result.confidence:.1%})"


def describe_damage(result: DamageResult) -> str:
    return (
        f"Damage: {result.damage_type.value} "
        f"(severity {result.severity:.1%}, confidence {result.confidence:.1%})"
    )


class LoggingObserver:
    """Write every notification to the log."""

    def __init__(self, name: str = "scan") -> None:
        self._log = logging.getLogger(f"{__name__}.{name}")

    def publish_status(self, status: str) -> None:
        self._log.info(status)

    def publish_frame(self, frame: SpatialFrame) -> None:
        self._log.debug("Frame at %s: %d points", frame.timestamp.isoformat(), frame.point_count)

    def publish_material(self, result: MaterialResult) -> None:
        self._log.info(describe_material(result))

    def publish_damage(self, result: DamageResult) -> None:
        self._log.info(describe_damage(result))
