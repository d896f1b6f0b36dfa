"""Decode model output vectors into detection results."""

from __future__ import annotations

import numpy as np

from packages.core.errors import DecodeError
from packages.core.types import DamageResult, DamageType, MaterialResult, MaterialType

# Output index → category.  Order matches the training label order.
MATERIAL_LABELS: tuple[MaterialType, ...] = (
    MaterialType.WOOD,
    MaterialType.CONCRETE,
    MaterialType.DRYWALL,
    MaterialType.BRICK,
    MaterialType.TILE,
    MaterialType.GLASS,
    MaterialType.METAL,
    MaterialType.PLASTIC,
)

DAMAGE_LABELS: tuple[DamageType, ...] = (
    DamageType.CRACK,
    DamageType.WATER_DAMAGE,
    DamageType.MOLD,
    DamageType.STRUCTURAL,
    DamageType.SURFACE_WEAR,
)

MATERIAL_OUTPUT_SIZE = len(MATERIAL_LABELS)
# Damage probabilities followed by one severity scalar.
DAMAGE_OUTPUT_SIZE = len(DAMAGE_LABELS) + 1

DAMAGE_CONFIDENCE_FLOOR = 0.3


def _as_vector(output: np.ndarray, expected: int) -> np.ndarray:
    vector = np.asarray(output, dtype=np.float32).reshape(-1)
    if len(vector) != expected:
        raise DecodeError(f"expected {expected} outputs, got {len(vector)}")
    return vector


def _label(labels: tuple, index: int):
    if not 0 <= index < len(labels):
        raise DecodeError(f"output index {index} has no category")
    return labels[index]


def decode_material(output: np.ndarray) -> MaterialResult:
    """Pick the most probable material."""
    probs = _as_vector(output, MATERIAL_OUTPUT_SIZE)
    index = int(np.argmax(probs))
    return MaterialResult(
        material_type=_label(MATERIAL_LABELS, index),
        confidence=float(probs[index]),
    )


def decode_damage(
    output: np.ndarray,
    confidence_floor: float = DAMAGE_CONFIDENCE_FLOOR,
) -> DamageResult:
    """Pick the most probable damage type and read the severity scalar.

    Below *confidence_floor* the damage type is reported as ``NONE``;
    severity and confidence are still reported as computed.
    """
    vector = _as_vector(output, DAMAGE_OUTPUT_SIZE)
    probs, severity = vector[:-1], float(vector[-1])
    index = int(np.argmax(probs))
    confidence = float(probs[index])
    damage_type = _label(DAMAGE_LABELS, index)
    if confidence < confidence_floor:
        damage_type = DamageType.NONE
    return DamageResult(damage_type=damage_type, severity=severity, confidence=confidence)
