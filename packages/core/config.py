"""Scanner configuration."""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, Field, model_validator


class ScanConfig(BaseModel):
    """Tunables for buffering, filtering, inference and loop cadence.

    Defaults reproduce the behaviour of the handheld scanner: a ~10 Hz
    geometry loop, inference about once per second, a 10 000 point
    rolling buffer and 1 000 published points per frame.
    """

    tick_period: float = Field(0.1, gt=0.0, description="Seconds between ticks")
    inference_interval: float = Field(
        1.0, gt=0.0, description="Approximate seconds between inference ticks"
    )
    buffer_capacity: int = Field(10_000, gt=0)
    min_confidence: float = Field(0.5, ge=0.0, le=1.0)
    outlier_sigma: float = Field(2.0, ge=0.0)
    downsample_target: int = Field(1_000, gt=0)
    input_size: int = Field(224, gt=0, description="Square model input resolution")
    damage_confidence_floor: float = Field(0.3, ge=0.0, le=1.0)
    model_dir: Path = Path("models")

    @model_validator(mode="after")
    def _check_cadence(self) -> "ScanConfig":
        if self.inference_interval < self.tick_period:
            raise ValueError("inference_interval must not be shorter than tick_period")
        return self

    @classmethod
    def from_file(cls, path: str | Path) -> "ScanConfig":
        """Read a JSON config file; missing keys keep their defaults."""
        return cls.model_validate_json(Path(path).read_text())
