"""Pydantic models for spatial frames, plane observations and detection results.

Every tick of the scan loop produces a :class:`SpatialFrame`.  Inference
ticks additionally produce a :class:`MaterialResult` and a
:class:`DamageResult`.  Scores are always clamped into ``[0, 1]``.
"""

from __future__ import annotations

import math
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

import numpy as np
from pydantic import BaseModel, ConfigDict, Field, field_validator


def _now() -> datetime:
    return datetime.now(timezone.utc)


def clamp_unit(value: float) -> float:
    """Clamp *value* into ``[0, 1]``; NaN becomes 0."""
    value = float(value)
    if math.isnan(value):
        return 0.0
    return min(1.0, max(0.0, value))


# ── tiny helpers ──────────────────────────────────────────────────────
class Point3D(BaseModel):
    """A 3-component position (x, y, z) in metres."""

    model_config = ConfigDict(frozen=True)

    x: float
    y: float
    z: float

    def as_tuple(self) -> tuple[float, float, float]:
        return (self.x, self.y, self.z)


class BBox(BaseModel):
    """Axis-aligned bounding box."""

    min: Point3D
    max: Point3D


# ── plane / surface types ────────────────────────────────────────────
class PlaneType(str, Enum):
    HORIZONTAL_UPWARD_FACING = "horizontal_upward_facing"
    HORIZONTAL_DOWNWARD_FACING = "horizontal_downward_facing"
    VERTICAL = "vertical"
    UNKNOWN = "unknown"

    @classmethod
    def from_label(cls, label: str) -> "PlaneType":
        """Map a tracking-source plane label onto a :class:`PlaneType`.

        Labels are matched case-insensitively against the enum names and
        values; anything else is ``UNKNOWN``.
        """
        key = str(label).strip().lower()
        for member in cls:
            if key in (member.value, member.name.lower()):
                return member
        return cls.UNKNOWN


class PlaneObservation(BaseModel):
    """A planar surface reported by the tracking source on one tick."""

    model_config = ConfigDict(frozen=True)

    center: Point3D
    normal: Point3D
    extent_x: float = Field(ge=0.0)
    extent_z: float = Field(ge=0.0)
    type: PlaneType = PlaneType.UNKNOWN


# ── spatial frame ────────────────────────────────────────────────────
class SpatialFrame(BaseModel):
    """Filtered, downsampled geometry published once per tick."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    points: np.ndarray = Field(default_factory=lambda: np.empty((0, 3), dtype=np.float32))
    planes: list[PlaneObservation] = Field(default_factory=list)
    timestamp: datetime = Field(default_factory=_now)

    @field_validator("points", mode="before")
    @classmethod
    def _as_point_array(cls, value: object) -> np.ndarray:
        return np.asarray(value, dtype=np.float32).reshape(-1, 3)

    @property
    def point_count(self) -> int:
        return int(len(self.points))

    @property
    def plane_count(self) -> int:
        return len(self.planes)


# ── detection results ────────────────────────────────────────────────
class MaterialType(str, Enum):
    WOOD = "wood"
    CONCRETE = "concrete"
    DRYWALL = "drywall"
    BRICK = "brick"
    TILE = "tile"
    GLASS = "glass"
    METAL = "metal"
    PLASTIC = "plastic"
    UNKNOWN = "unknown"


class DamageType(str, Enum):
    CRACK = "crack"
    WATER_DAMAGE = "water_damage"
    MOLD = "mold"
    STRUCTURAL = "structural"
    SURFACE_WEAR = "surface_wear"
    NONE = "none"
    UNKNOWN = "unknown"


class MaterialResult(BaseModel):
    """Material classification of one captured image."""

    material_type: MaterialType
    confidence: float = 0.0
    timestamp: datetime = Field(default_factory=_now)

    @field_validator("confidence", mode="before")
    @classmethod
    def _clamp_scores(cls, value: float) -> float:
        return clamp_unit(value)

    @classmethod
    def unknown(cls) -> "MaterialResult":
        """Sentinel returned when no usable model is available."""
        return cls(material_type=MaterialType.UNKNOWN, confidence=0.0)


class DamageResult(BaseModel):
    """Damage evaluation of one captured image."""

    damage_type: DamageType
    severity: float = 0.0
    confidence: float = 0.0
    timestamp: datetime = Field(default_factory=_now)

    @field_validator("severity", "confidence", mode="before")
    @classmethod
    def _clamp_scores(cls, value: float) -> float:
        return clamp_unit(value)

    @classmethod
    def unknown(cls) -> "DamageResult":
        """Sentinel returned when no usable model is available."""
        return cls(damage_type=DamageType.UNKNOWN, severity=0.0, confidence=0.0)


# ── inference / scan-loop state ──────────────────────────────────────
class ModelState(str, Enum):
    UNLOADED = "UNLOADED"
    USING_PRIMARY = "USING_PRIMARY"
    USING_FALLBACK = "USING_FALLBACK"
    FAILED = "FAILED"


class TickStatus(str, Enum):
    PUBLISHED = "PUBLISHED"
    SKIPPED = "SKIPPED"
    FAILED = "FAILED"


class TickOutcome(BaseModel):
    """What happened on a single scan-loop tick."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    index: int
    status: TickStatus
    frame: Optional[SpatialFrame] = None
    material: Optional[MaterialResult] = None
    damage: Optional[DamageResult] = None
    error: Optional[str] = None
    started_at: datetime = Field(default_factory=_now)
    duration: float = 0.0
