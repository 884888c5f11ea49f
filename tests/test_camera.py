"""Tests for CameraParams."""

from pathlib import Path

import numpy as np
import pytest

from vio_frontend.frontend.camera import CameraIntrinsics, CameraParams, DistortionCoeffs

EUROC_CAM0_YAML = """\
sensor_type: camera
comment: VI-Sensor cam0 (MT9M034)
T_BS:
  cols: 4
  rows: 4
  data: [0.0148655429818, -0.999880929698, 0.00414029679422, -0.0216401454975,
         0.999557249008, 0.0149672133247, 0.025715529948, -0.064676986768,
        -0.0257744366974, 0.00375618835797, 0.999660727178, 0.00981073058949,
         0.0, 0.0, 0.0, 1.0]
rate_hz: 20
resolution: [752, 480]
camera_model: pinhole
intrinsics: [458.654, 457.296, 367.215, 248.375]
distortion_model: radial-tangential
distortion_coefficients: [-0.28340811, 0.07395907, 0.00019359, 1.76187114e-05]
"""


class TestCameraParams:
    """Test suite for CameraParams."""

    def test_from_euroc_yaml(self, tmp_path: Path):
        """Test parsing a EuRoC cam0/sensor.yaml."""
        path = tmp_path / "sensor.yaml"
        path.write_text(EUROC_CAM0_YAML)

        camera = CameraParams.from_euroc_yaml(path)

        assert camera.intrinsics.fx == pytest.approx(458.654)
        assert camera.intrinsics.cy == pytest.approx(248.375)
        assert camera.distortion.k1 == pytest.approx(-0.28340811)
        assert camera.image_size == (752, 480)
        assert camera.rate_hz == 20.0
        assert camera.body_T_cam.translation[0] == pytest.approx(-0.0216401454975)

    def test_missing_file(self, tmp_path: Path):
        """Test that a missing file raises FileNotFoundError."""
        with pytest.raises(FileNotFoundError, match="Calibration file not found"):
            CameraParams.from_euroc_yaml(tmp_path / "missing.yaml")

    def test_invalid_intrinsics(self, tmp_path: Path):
        """Test that malformed intrinsics are rejected."""
        path = tmp_path / "sensor.yaml"
        path.write_text(EUROC_CAM0_YAML.replace("[458.654, 457.296, 367.215, 248.375]", "[1.0]"))

        with pytest.raises(ValueError, match="Invalid intrinsics"):
            CameraParams.from_euroc_yaml(path)

    def test_principal_point_is_optical_axis(self, camera_params):
        """Test that the principal point maps to the +Z bearing."""
        versors = camera_params.undistort_to_versors(np.array([[160.0, 120.0]]))

        np.testing.assert_allclose(versors, [[0.0, 0.0, 1.0]], atol=1e-12)

    def test_versors_are_unit(self, camera_params):
        """Test that bearing vectors have unit norm and point forward."""
        points = np.array([[0.0, 0.0], [319.0, 239.0], [10.0, 200.0]])

        versors = camera_params.undistort_to_versors(points)

        np.testing.assert_allclose(np.linalg.norm(versors, axis=1), 1.0)
        assert np.all(versors[:, 2] > 0)

    def test_normalized_coordinates(self, camera_params):
        """Test undistortion without distortion is (u - c) / f."""
        normalized = camera_params.undistort_to_normalized(np.array([[360.0, 20.0]]))

        np.testing.assert_allclose(normalized, [[1.0, -0.5]], atol=1e-9)

    def test_empty_points(self, camera_params):
        """Test that no points give an empty result."""
        assert camera_params.undistort_to_versors(np.empty((0, 2))).shape == (0, 3)

    def test_distortion_is_removed(self):
        """Test that undistortion inverts the radial-tangential model."""
        camera = CameraParams(
            intrinsics=CameraIntrinsics(fx=400.0, fy=400.0, cx=320.0, cy=240.0),
            distortion=DistortionCoeffs(k1=-0.2, k2=0.05),
        )
        x, y = 0.3, -0.2
        r2 = x * x + y * y
        radial = 1 - 0.2 * r2 + 0.05 * r2 * r2
        pixel = np.array([[400.0 * x * radial + 320.0, 400.0 * y * radial + 240.0]])

        normalized = camera.undistort_to_normalized(pixel)

        np.testing.assert_allclose(normalized, [[x, y]], atol=1e-4)
