"""SE(3) poses and SO(3) helpers shared by the tracker and IMU frontend."""

from __future__ import annotations

from dataclasses import dataclass

import cv2
import numpy as np


def skew(v: np.ndarray) -> np.ndarray:
    """Create skew-symmetric matrix from vector.

    Args:
        v: 3D vector

    Returns:
        3x3 skew-symmetric matrix [v]x such that [v]x @ w == cross(v, w)
    """
    return np.array([
        [0.0, -v[2], v[1]],
        [v[2], 0.0, -v[0]],
        [-v[1], v[0], 0.0],
    ])


def exp_so3(omega: np.ndarray) -> np.ndarray:
    """Exponential map from so(3) to SO(3) (Rodrigues formula).

    Args:
        omega: Axis-angle vector (3,), angle in radians

    Returns:
        3x3 rotation matrix
    """
    omega = np.asarray(omega, dtype=np.float64).flatten()
    theta = np.linalg.norm(omega)
    if theta < 1e-10:
        # First-order approximation: R ~ I + [omega]x
        return np.eye(3) + skew(omega)

    K = skew(omega / theta)
    return np.eye(3) + np.sin(theta) * K + (1 - np.cos(theta)) * (K @ K)


def right_jacobian_so3(omega: np.ndarray) -> np.ndarray:
    """Right Jacobian of SO(3): exp(omega + d) ~ exp(omega) exp(Jr(omega) d)."""
    omega = np.asarray(omega, dtype=np.float64).flatten()
    theta = np.linalg.norm(omega)
    W = skew(omega)
    if theta < 1e-5:
        return np.eye(3) - 0.5 * W
    return (
        np.eye(3)
        - (1 - np.cos(theta)) / theta**2 * W
        + (theta - np.sin(theta)) / theta**3 * (W @ W)
    )


def rotation_angle(R: np.ndarray) -> float:
    """Return the rotation angle of a 3x3 rotation matrix in radians [0, pi].

    Uses the trace formula: trace(R) = 1 + 2*cos(theta)
    """
    cos_theta = np.clip((np.trace(R) - 1.0) / 2.0, -1.0, 1.0)
    return float(np.arccos(cos_theta))


def rotation_about_axis(axis: np.ndarray, angle_rad: float) -> np.ndarray:
    """Rotation matrix for a rotation of `angle_rad` around `axis`."""
    axis = np.asarray(axis, dtype=np.float64).flatten()
    return exp_so3(axis / np.linalg.norm(axis) * angle_rad)


def rotation_between(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    """Smallest rotation R such that R @ a is parallel to b.

    Args:
        a: Source direction (3,), any norm
        b: Target direction (3,), any norm

    Returns:
        3x3 rotation matrix
    """
    a = np.asarray(a, dtype=np.float64).flatten()
    b = np.asarray(b, dtype=np.float64).flatten()
    a = a / np.linalg.norm(a)
    b = b / np.linalg.norm(b)

    axis = np.cross(a, b)
    sin_theta = np.linalg.norm(axis)
    cos_theta = float(np.dot(a, b))
    if sin_theta < 1e-12:
        if cos_theta > 0:
            return np.eye(3)
        # Antiparallel: rotate pi around any axis orthogonal to a
        ortho = np.cross(a, [1.0, 0.0, 0.0])
        if np.linalg.norm(ortho) < 1e-6:
            ortho = np.cross(a, [0.0, 1.0, 0.0])
        return rotation_about_axis(ortho, np.pi)

    return exp_so3(axis / sin_theta * np.arctan2(sin_theta, cos_theta))


def is_identity_rotation(R: np.ndarray, tol: float = 1e-9) -> bool:
    """Return True if R equals the identity rotation within `tol` (element-wise)."""
    return bool(np.allclose(np.asarray(R, dtype=np.float64), np.eye(3), rtol=0.0, atol=tol))


@dataclass
class SE3:
    """Rigid body transformation (rotation + translation) in SE(3).

    Naming follows `a_T_b`: the transform that maps points expressed in
    frame b into frame a:

        p_a = R @ p_b + t

    Attributes:
        rotation: 3x3 orthonormal rotation matrix (det = +1)
        translation: 3D translation vector
    """

    rotation: np.ndarray  # 3x3 rotation matrix
    translation: np.ndarray  # (3,) translation vector

    def __post_init__(self) -> None:
        """Validate and normalize inputs."""
        self.rotation = np.asarray(self.rotation, dtype=np.float64)
        self.translation = np.asarray(self.translation, dtype=np.float64).flatten()

        if self.rotation.shape != (3, 3):
            raise ValueError(f"Rotation must be 3x3, got {self.rotation.shape}")
        if self.translation.shape != (3,):
            raise ValueError(
                f"Translation must be (3,), got {self.translation.shape}"
            )

    @classmethod
    def identity(cls) -> SE3:
        """Create identity transformation."""
        return cls(rotation=np.eye(3), translation=np.zeros(3))

    @classmethod
    def from_matrix(cls, T: np.ndarray) -> SE3:
        """Create SE3 from a 4x4 homogeneous transformation matrix."""
        T = np.asarray(T)
        if T.shape != (4, 4):
            raise ValueError(f"Transform must be 4x4, got {T.shape}")
        return cls(rotation=T[:3, :3], translation=T[:3, 3])

    @classmethod
    def from_rvec_tvec(cls, rvec: np.ndarray, tvec: np.ndarray) -> SE3:
        """Create SE3 from an OpenCV Rodrigues vector and translation."""
        R, _ = cv2.Rodrigues(np.asarray(rvec, dtype=np.float64).flatten())
        return cls(rotation=R, translation=np.asarray(tvec).flatten())

    def to_matrix(self) -> np.ndarray:
        """Convert to 4x4 homogeneous transformation matrix."""
        T = np.eye(4, dtype=np.float64)
        T[:3, :3] = self.rotation
        T[:3, 3] = self.translation
        return T

    def inverse(self) -> SE3:
        """Compute the inverse transformation [R^T, -R^T @ t]."""
        R_inv = self.rotation.T
        return SE3(rotation=R_inv, translation=-R_inv @ self.translation)

    def compose(self, other: SE3) -> SE3:
        """Compose with another transformation: self @ other.

        Example:
            lkf_T_k = lkf_T_prev.compose(prev_T_k)
        """
        R = self.rotation @ other.rotation
        t = self.rotation @ other.translation + self.translation
        return SE3(rotation=R, translation=t)

    def transform_points(self, points: np.ndarray) -> np.ndarray:
        """Apply the transform to an Nx3 array of points."""
        points = np.asarray(points, dtype=np.float64)
        if points.ndim == 1:
            points = points.reshape(1, 3)
        if points.shape[1] != 3:
            raise ValueError(f"Points must be Nx3, got {points.shape}")
        return (self.rotation @ points.T).T + self.translation

    def equals(self, other: SE3, tol: float = 1e-9) -> bool:
        """Return True if both rotation and translation agree within `tol`."""
        return bool(
            np.allclose(self.rotation, other.rotation, rtol=0.0, atol=tol)
            and np.allclose(self.translation, other.translation, rtol=0.0, atol=tol)
        )

    @property
    def angle(self) -> float:
        """Return rotation angle in radians."""
        return rotation_angle(self.rotation)

    def __repr__(self) -> str:
        """Return string representation."""
        t = self.translation
        return (
            f"SE3(angle={np.rad2deg(self.angle):.2f}deg, "
            f"t=[{t[0]:.3f}, {t[1]:.3f}, {t[2]:.3f}])"
        )

    def __matmul__(self, other: SE3) -> SE3:
        """Allows: T_result = T1 @ T2."""
        return self.compose(other)
