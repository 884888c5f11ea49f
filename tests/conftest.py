"""Shared fixtures for frontend tests."""

import cv2
import numpy as np
import pytest

from vio_frontend.frontend.camera import CameraIntrinsics, CameraParams

IMAGE_WIDTH = 320
IMAGE_HEIGHT = 240


@pytest.fixture
def camera_params() -> CameraParams:
    """Undistorted pinhole camera aligned with the body frame."""
    return CameraParams(
        intrinsics=CameraIntrinsics(fx=200.0, fy=200.0, cx=160.0, cy=120.0),
        image_size=(IMAGE_WIDTH, IMAGE_HEIGHT),
    )


@pytest.fixture
def textured_image() -> np.ndarray:
    """Blurred random texture with plenty of trackable corners."""
    rng = np.random.default_rng(42)
    noise = (rng.random((IMAGE_HEIGHT, IMAGE_WIDTH)) * 255).astype(np.uint8)
    blurred = cv2.GaussianBlur(noise, (0, 0), 2.0)
    return cv2.normalize(blurred, None, 0, 255, cv2.NORM_MINMAX).astype(np.uint8)


def shift_image(image: np.ndarray, dx: float, dy: float) -> np.ndarray:
    """Translate an image by (dx, dy) pixels, replicating the border."""
    M = np.array([[1.0, 0.0, dx], [0.0, 1.0, dy]], dtype=np.float64)
    return cv2.warpAffine(
        image,
        M,
        (image.shape[1], image.shape[0]),
        flags=cv2.INTER_LINEAR,
        borderMode=cv2.BORDER_REPLICATE,
    )


@pytest.fixture
def shifted():
    """Return the image-translation helper."""
    return shift_image
