"""Load recorded point-cloud files as raw ``(x, y, z, confidence)`` quads.

Recorded tracking sessions store one point cloud per tick.

Supported formats
-----------------
* **PLY** – via the ``plyfile`` library.  A ``confidence`` vertex property
  is used when present.
* **E57** – via the ``pye57`` library.  E57 carries no per-point
  confidence; ``intensity`` is used when present, otherwise every point
  is treated as fully confident.
"""

from __future__ import annotations

import logging
from pathlib import Path

import numpy as np
import pye57
from plyfile import PlyData

logger = logging.getLogger(__name__)

SUPPORTED_SUFFIXES = (".ply", ".e57")

_CONFIDENCE_CANDIDATES = ("confidence", "conf", "quality")


def _quads(xs: np.ndarray, ys: np.ndarray, zs: np.ndarray, conf: np.ndarray | None) -> np.ndarray:
    if conf is None:
        conf = np.ones_like(xs)
    return np.column_stack((xs, ys, zs, conf)).astype(np.float32)


def load_ply(path: str | Path) -> np.ndarray:
    """Read a binary or ASCII PLY file into an ``(N, 4)`` float32 array."""
    ply = PlyData.read(str(path))
    vertex = ply["vertex"]
    xs = np.asarray(vertex["x"], dtype=np.float32)
    ys = np.asarray(vertex["y"], dtype=np.float32)
    zs = np.asarray(vertex["z"], dtype=np.float32)

    prop_names = [p.name for p in vertex.properties]
    conf_name = next((n for n in _CONFIDENCE_CANDIDATES if n in prop_names), None)
    conf = None
    if conf_name:
        conf = np.asarray(vertex[conf_name], dtype=np.float32)
        # Some exporters store confidence as 0-255
        if len(conf) and conf.max() > 1.0:
            conf = conf / 255.0
    else:
        logger.debug("No confidence property in %s; assuming 1.0", Path(path).name)

    quads = _quads(xs, ys, zs, conf)
    logger.info(f"📄 PLY loaded: {len(quads):,} points from {Path(path).name}")
    return quads


def load_e57(path: str | Path, scan_index: int = 0) -> np.ndarray:
    """Read one scan of an E57 file into an ``(N, 4)`` float32 array.

    Parameters
    ----------
    path : str | Path
        Path to the ``.e57`` file.
    scan_index : int, optional
        Which scan (``Data3D`` entry) to read.  Defaults to the first.
    """
    e57 = pye57.E57(str(path))
    try:
        raw = e57.read_scan_raw(scan_index)
        xs = np.asarray(raw["cartesianX"], dtype=np.float32)
        ys = np.asarray(raw["cartesianY"], dtype=np.float32)
        zs = np.asarray(raw["cartesianZ"], dtype=np.float32)
        conf = None
        if "intensity" in raw:
            conf = np.asarray(raw["intensity"], dtype=np.float32)
            peak = conf.max() if len(conf) else 0.0
            if peak > 1.0:
                conf = conf / peak
        quads = _quads(xs, ys, zs, conf)
        logger.info(f"📄 E57 loaded: {len(quads):,} points from {Path(path).name}")
        return quads
    finally:
        e57.close()


def load_point_cloud(path: str | Path) -> np.ndarray:
    """Auto-detect the format and return ``(N, 4)`` quads.

    Raises ``ValueError`` for unsupported extensions.
    """
    p = Path(path)
    ext = p.suffix.lower()
    if ext == ".ply":
        return load_ply(p)
    if ext == ".e57":
        return load_e57(p)
    raise ValueError(
        f"Unsupported point-cloud format '{ext}'. Supported: .ply, .e57"
    )
