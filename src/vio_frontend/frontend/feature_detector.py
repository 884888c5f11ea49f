"""Shi-Tomasi (GFTT) corner detection for KLT tracking."""

from __future__ import annotations

import cv2
import numpy as np

from ..config import TrackerParams


class FeatureDetector:
    """Good-features-to-track corner detector.

    Corners are well suited to pyramidal KLT tracking. New corners are only
    searched away from features that are already tracked, so the image stays
    evenly covered.
    """

    def __init__(self, params: TrackerParams | None = None) -> None:
        """Initialize detector.

        Args:
            params: Tracker parameters. Uses defaults if None.
        """
        self._params = params or TrackerParams()

    def detect(
        self,
        image: np.ndarray,
        existing_keypoints: np.ndarray | None = None,
        max_new: int | None = None,
    ) -> np.ndarray:
        """Detect corners in an image.

        Args:
            image: Grayscale image (uint8)
            existing_keypoints: Nx2 keypoints already tracked; no new corner is
                placed within `min_distance` of them
            max_new: Maximum number of corners to return. Defaults to
                `max_features_per_frame`.

        Returns:
            Mx2 float32 array of corner pixel coordinates
        """
        p = self._params
        if max_new is None:
            max_new = p.max_features_per_frame
        if max_new <= 0:
            return np.empty((0, 2), dtype=np.float32)

        mask = np.full(image.shape[:2], 255, dtype=np.uint8)
        if existing_keypoints is not None:
            radius = max(int(round(p.min_distance)), 1)
            for x, y in np.asarray(existing_keypoints).reshape(-1, 2):
                cv2.circle(mask, (int(round(x)), int(round(y))), radius, 0, -1)

        corners = cv2.goodFeaturesToTrack(
            image,
            maxCorners=max_new,
            qualityLevel=p.quality_level,
            minDistance=p.min_distance,
            mask=mask,
            blockSize=p.block_size,
            useHarrisDetector=p.use_harris_detector,
            k=p.k,
        )

        # goodFeaturesToTrack returns None when nothing is found
        if corners is None:
            return np.empty((0, 2), dtype=np.float32)
        return corners.reshape(-1, 2).astype(np.float32)
