"""Monocular camera calibration and bearing-vector computation."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

import cv2
import numpy as np
import yaml

from .pose import SE3


@dataclass
class CameraIntrinsics:
    """Camera intrinsic parameters (pinhole model)."""

    fx: float  # Focal length x (pixels)
    fy: float  # Focal length y (pixels)
    cx: float  # Principal point x (pixels)
    cy: float  # Principal point y (pixels)

    def to_matrix(self) -> np.ndarray:
        """Return 3x3 camera intrinsic matrix K."""
        return np.array(
            [[self.fx, 0.0, self.cx], [0.0, self.fy, self.cy], [0.0, 0.0, 1.0]],
            dtype=np.float64,
        )


@dataclass
class DistortionCoeffs:
    """Radial-tangential distortion coefficients."""

    k1: float = 0.0
    k2: float = 0.0
    p1: float = 0.0
    p2: float = 0.0

    def to_array(self) -> np.ndarray:
        """Return distortion coefficients as (4,) array for OpenCV."""
        return np.array([self.k1, self.k2, self.p1, self.p2], dtype=np.float64)


@dataclass
class CameraParams:
    """Calibration of a single camera rigidly attached to the IMU body.

    Attributes:
        intrinsics: Pinhole intrinsics
        distortion: Radial-tangential distortion
        body_T_cam: Camera pose in the body (IMU) frame
        image_size: (width, height) in pixels
        rate_hz: Nominal frame rate
    """

    intrinsics: CameraIntrinsics
    distortion: DistortionCoeffs = field(default_factory=DistortionCoeffs)
    body_T_cam: SE3 = field(default_factory=SE3.identity)
    image_size: tuple[int, int] = (752, 480)
    rate_hz: float = 20.0

    @classmethod
    def from_euroc_yaml(cls, yaml_path: str | Path) -> CameraParams:
        """Parse a EuRoC cam sensor.yaml calibration file.

        Raises:
            FileNotFoundError: If file doesn't exist
            ValueError: If file format is invalid
        """
        path = Path(yaml_path)
        if not path.exists():
            raise FileNotFoundError(f"Calibration file not found: {yaml_path}")

        with open(path, "r") as f:
            data = yaml.safe_load(f)

        # Intrinsics [fu, fv, cu, cv]
        intrinsics_list = data.get("intrinsics")
        if intrinsics_list is None or len(intrinsics_list) != 4:
            raise ValueError(f"Invalid intrinsics in {yaml_path}")

        # Distortion [k1, k2, p1, p2]
        distortion_list = data.get("distortion_coefficients")
        if distortion_list is None or len(distortion_list) != 4:
            raise ValueError(f"Invalid distortion coefficients in {yaml_path}")

        # T_BS: camera-to-body transform
        T_BS_data = data.get("T_BS", {}).get("data")
        if T_BS_data is None or len(T_BS_data) != 16:
            raise ValueError(f"Invalid T_BS transform in {yaml_path}")

        return cls(
            intrinsics=CameraIntrinsics(*[float(v) for v in intrinsics_list]),
            distortion=DistortionCoeffs(*[float(v) for v in distortion_list]),
            body_T_cam=SE3.from_matrix(
                np.array(T_BS_data, dtype=np.float64).reshape(4, 4)
            ),
            image_size=tuple(data.get("resolution", (752, 480))),
            rate_hz=float(data.get("rate_hz", 20.0)),
        )

    @property
    def camera_matrix(self) -> np.ndarray:
        """Return 3x3 intrinsic matrix K."""
        return self.intrinsics.to_matrix()

    def undistort_to_normalized(self, points: np.ndarray) -> np.ndarray:
        """Undistort pixel coordinates onto the normalized image plane (z = 1).

        Args:
            points: Nx2 pixel coordinates

        Returns:
            Nx2 normalized coordinates
        """
        points = np.asarray(points, dtype=np.float64).reshape(-1, 2)
        if len(points) == 0:
            return np.empty((0, 2), dtype=np.float64)
        undistorted = cv2.undistortPoints(
            points.reshape(-1, 1, 2),
            self.camera_matrix,
            self.distortion.to_array(),
        )
        return undistorted.reshape(-1, 2)

    def undistort_to_versors(self, points: np.ndarray) -> np.ndarray:
        """Convert pixel coordinates to unit bearing vectors in the camera frame.

        Args:
            points: Nx2 pixel coordinates

        Returns:
            Nx3 unit-norm bearing vectors
        """
        normalized = self.undistort_to_normalized(points)
        versors = np.hstack([normalized, np.ones((len(normalized), 1))])
        return versors / np.linalg.norm(versors, axis=1, keepdims=True)
