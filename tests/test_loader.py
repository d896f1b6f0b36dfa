"""Tests for point-cloud loading."""

from __future__ import annotations

from pathlib import Path

import numpy as np
import pye57
import pytest
from conftest import write_ply
from plyfile import PlyData, PlyElement

from packages.pipeline.loader import load_e57, load_ply, load_point_cloud


def _write_xyz_ply(path: Path, points: np.ndarray, extra: dict | None = None) -> None:
    """Helper: write an (N, 3) array as a binary PLY file, plus optional extra properties."""
    extra = extra or {}
    dtype = [("x", "f4"), ("y", "f4"), ("z", "f4")] + [(name, "f4") for name in extra]
    structured = np.empty(len(points), dtype=dtype)
    structured["x"] = points[:, 0]
    structured["y"] = points[:, 1]
    structured["z"] = points[:, 2]
    for name, values in extra.items():
        structured[name] = values
    el = PlyElement.describe(structured, "vertex")
    PlyData([el], text=False).write(str(path))


def _write_e57(path: Path, points: np.ndarray, intensity: np.ndarray | None = None) -> None:
    """Helper: write an (N, 3) array as an E57 file."""
    e57 = pye57.E57(str(path), mode="w")
    data = {
        "cartesianX": points[:, 0].astype(np.float64),
        "cartesianY": points[:, 1].astype(np.float64),
        "cartesianZ": points[:, 2].astype(np.float64),
    }
    if intensity is not None:
        data["intensity"] = intensity.astype(np.float32)
    e57.write_scan_raw(data)
    e57.close()


class TestLoadPly:
    def test_confidence_property(self, tmp_path: Path):
        quads = np.array([[1.0, 2.0, 3.0, 0.9], [4.0, 5.0, 6.0, 0.2]], dtype=np.float32)
        ply_file = tmp_path / "frame.ply"
        write_ply(ply_file, quads)

        result = load_ply(ply_file)
        assert result.shape == (2, 4)
        assert result.dtype == np.float32
        np.testing.assert_allclose(result, quads, atol=1e-6)

    def test_missing_confidence_defaults_to_one(self, tmp_path: Path):
        pts = np.array([[1.0, 2.0, 3.0], [4.0, 5.0, 6.0]], dtype=np.float32)
        ply_file = tmp_path / "plain.ply"
        _write_xyz_ply(ply_file, pts)

        result = load_ply(ply_file)
        np.testing.assert_allclose(result[:, :3], pts, atol=1e-6)
        np.testing.assert_allclose(result[:, 3], 1.0)

    def test_byte_scaled_confidence(self, tmp_path: Path):
        pts = np.zeros((2, 3), dtype=np.float32)
        ply_file = tmp_path / "scaled.ply"
        _write_xyz_ply(ply_file, pts, {"quality": np.array([255.0, 51.0])})

        result = load_ply(ply_file)
        np.testing.assert_allclose(result[:, 3], [1.0, 0.2], atol=1e-6)

    def test_load_point_cloud_dispatch(self, room_quads: np.ndarray, tmp_path: Path):
        ply_file = tmp_path / "cloud.PLY"
        write_ply(ply_file, room_quads)

        result = load_point_cloud(ply_file)
        assert result.shape == room_quads.shape


class TestLoadE57:
    def test_round_trip_without_intensity(self, tmp_path: Path):
        pts = np.array([[1.0, 2.0, 3.0], [4.0, 5.0, 6.0]], dtype=np.float64)
        e57_file = tmp_path / "test.e57"
        _write_e57(e57_file, pts)

        result = load_e57(e57_file)
        assert result.shape == (2, 4)
        np.testing.assert_allclose(result[:, :3], pts, atol=1e-5)
        np.testing.assert_allclose(result[:, 3], 1.0)

    def test_intensity_scaled_by_peak(self, tmp_path: Path):
        pts = np.zeros((3, 3))
        e57_file = tmp_path / "intensity.e57"
        _write_e57(e57_file, pts, intensity=np.array([10.0, 40.0, 20.0]))

        result = load_e57(e57_file)
        np.testing.assert_allclose(result[:, 3], [0.25, 1.0, 0.5], atol=1e-6)

    def test_load_point_cloud_dispatch(self, tmp_path: Path):
        pts = np.random.default_rng(0).random((10, 3))
        e57_file = tmp_path / "cloud.e57"
        _write_e57(e57_file, pts)

        result = load_point_cloud(e57_file)
        assert result.shape == (10, 4)
        np.testing.assert_allclose(result[:, :3], pts, atol=1e-5)


class TestUnsupportedFormat:
    def test_unsupported_extension(self, tmp_path: Path):
        fake = tmp_path / "file.xyz"
        fake.write_text("dummy")
        with pytest.raises(ValueError, match="Unsupported"):
            load_point_cloud(fake)
