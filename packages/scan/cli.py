"""CLI entry-point for the room scanner."""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Optional

import click
from PIL import Image

from packages.core.config import ScanConfig
from packages.core.types import DamageResult, MaterialResult, SpatialFrame
from packages.inference.gateway import damage_gateway, material_gateway
from packages.inference.store import ModelStore
from packages.pipeline.buffer import PointBuffer
from packages.pipeline.loader import load_point_cloud
from packages.pipeline.preprocess import centroid, compute_bounds, downsample, filter_outliers
from packages.scan.capture import DirectoryImageCapture
from packages.scan.observer import LoggingObserver
from packages.scan.orchestrator import ScanLoopOrchestrator
from packages.scan.tracking import ReplayTrackingSource

logger = logging.getLogger(__name__)


class SummaryObserver(LoggingObserver):
    """Log everything and remember the latest of each notification."""

    def __init__(self) -> None:
        super().__init__("replay")
        self.frames = 0
        self.last_frame: Optional[SpatialFrame] = None
        self.last_material: Optional[MaterialResult] = None
        self.last_damage: Optional[DamageResult] = None

    def publish_frame(self, frame: SpatialFrame) -> None:
        super().publish_frame(frame)
        self.frames += 1
        self.last_frame = frame

    def publish_material(self, result: MaterialResult) -> None:
        super().publish_material(result)
        self.last_material = result

    def publish_damage(self, result: DamageResult) -> None:
        super().publish_damage(result)
        self.last_damage = result


def _load_config(config_file: str | None, **overrides) -> ScanConfig:
    config = ScanConfig.from_file(config_file) if config_file else ScanConfig()
    updates = {k: v for k, v in overrides.items() if v is not None}
    if updates:
        config = ScanConfig.model_validate({**config.model_dump(), **updates})
    return config


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Log at DEBUG level.")
def main(verbose: bool):
    """Room scanner: spatial ingestion and material / damage classification."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(levelname)s | %(name)s | %(message)s",
    )


@main.command()
@click.argument("frames_dir", type=click.Path(exists=True, file_okay=False))
@click.option("--images", "images_dir", type=click.Path(exists=True, file_okay=False), default=None,
              help="Directory of camera images used on inference ticks.")
@click.option("--models", "models_dir", default=None, help="Directory holding model artefacts.")
@click.option("--ticks", "max_ticks", type=int, default=None,
              help="Stop after this many ticks (default: when the frames run out).")
@click.option("--period", "tick_period", type=float, default=None, help="Tick period (seconds).")
@click.option("--config", "config_file", type=click.Path(exists=True, dir_okay=False), default=None,
              help="JSON config file.")
def replay(
    frames_dir: str,
    images_dir: str | None,
    models_dir: str | None,
    max_ticks: int | None,
    tick_period: float | None,
    config_file: str | None,
):
    """Run the scan loop over a directory of recorded point-cloud frames."""
    config = _load_config(config_file, tick_period=tick_period, model_dir=models_dir)
    store = ModelStore(config.model_dir)
    tracking = ReplayTrackingSource.from_directory(frames_dir)
    capture = DirectoryImageCapture(images_dir) if images_dir else None
    observer = SummaryObserver()
    orchestrator = ScanLoopOrchestrator(
        tracking,
        capture,
        observer,
        material_gateway(store, config),
        damage_gateway(store, config),
        config=config,
    )

    async def _run() -> None:
        async with orchestrator:
            while not tracking.exhausted:
                if max_ticks is not None and orchestrator.ticks_run >= max_ticks:
                    break
                await asyncio.sleep(config.tick_period / 2)

    asyncio.run(_run())

    summary = {
        "ticks": orchestrator.ticks_run,
        "failed_ticks": orchestrator.ticks_failed,
        "frames_published": observer.frames,
        "points": observer.last_frame.point_count if observer.last_frame else 0,
        "planes": observer.last_frame.plane_count if observer.last_frame else 0,
        "material": observer.last_material.model_dump(mode="json") if observer.last_material else None,
        "damage": observer.last_damage.model_dump(mode="json") if observer.last_damage else None,
    }
    click.echo(json.dumps(summary, indent=2))


@main.command()
@click.argument("image_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--models", "models_dir", default="models", show_default=True,
              help="Directory holding model artefacts.")
def classify(image_file: str, models_dir: str):
    """Classify one image with the material and damage models."""
    config = ScanConfig(model_dir=Path(models_dir))
    store = ModelStore(config.model_dir)
    with Image.open(image_file) as img:
        image = img.convert("RGB")
    with material_gateway(store, config) as material, damage_gateway(store, config) as damage:
        result = {
            "material": material.infer(image).model_dump(mode="json"),
            "material_model": material.state.value,
            "damage": damage.infer(image).model_dump(mode="json"),
            "damage_model": damage.state.value,
        }
    click.echo(json.dumps(result, indent=2))


@main.command()
@click.argument("cloud_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--sigma", default=2.0, show_default=True, help="Outlier threshold in std devs.")
@click.option("--target", default=1000, show_default=True, help="Down-sample target.")
def inspect(cloud_file: str, sigma: float, target: int):
    """Buffer, filter and down-sample one point cloud and print its statistics."""
    buffer = PointBuffer()
    admitted = buffer.ingest(load_point_cloud(cloud_file))
    points = downsample(filter_outliers(buffer.snapshot(), sigma=sigma), target)
    summary = {
        "admitted": admitted,
        "buffered": len(buffer),
        "published": int(len(points)),
        "centroid": centroid(points).model_dump(),
        "bounds": compute_bounds(points).model_dump() if len(points) else None,
    }
    click.echo(json.dumps(summary, indent=2))


if __name__ == "__main__":
    main()
