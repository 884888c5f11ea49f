"""Per-image container of tracked features."""

from __future__ import annotations

from dataclasses import dataclass, field

import numpy as np


@dataclass
class Frame:
    """A camera image and the features tracked in it.

    Feature arrays are parallel: entry i of `keypoints`, `landmarks`,
    `landmark_ages` and `versors` all describe the same feature.

    Attributes:
        id: Sequential frame identifier
        timestamp_ns: Image timestamp in nanoseconds
        image: Grayscale image (uint8)
        keypoints: Nx2 pixel coordinates (float32)
        landmarks: N landmark ids, shared by all observations of a track
        landmark_ages: N number of frames each track has survived
        versors: Nx3 unit bearing vectors in the camera frame
        is_keyframe: True once the frontend promoted this frame
    """

    id: int
    timestamp_ns: int
    image: np.ndarray
    keypoints: np.ndarray = field(
        default_factory=lambda: np.empty((0, 2), dtype=np.float32)
    )
    landmarks: np.ndarray = field(
        default_factory=lambda: np.empty(0, dtype=np.int64)
    )
    landmark_ages: np.ndarray = field(
        default_factory=lambda: np.empty(0, dtype=np.int64)
    )
    versors: np.ndarray = field(
        default_factory=lambda: np.empty((0, 3), dtype=np.float64)
    )
    is_keyframe: bool = False

    def __len__(self) -> int:
        """Return number of features."""
        return len(self.landmarks)

    def set_features(
        self,
        keypoints: np.ndarray,
        landmarks: np.ndarray,
        ages: np.ndarray,
        versors: np.ndarray,
    ) -> None:
        """Replace all feature arrays at once."""
        self.keypoints = np.asarray(keypoints, dtype=np.float32).reshape(-1, 2)
        self.landmarks = np.asarray(landmarks, dtype=np.int64).flatten()
        self.landmark_ages = np.asarray(ages, dtype=np.int64).flatten()
        self.versors = np.asarray(versors, dtype=np.float64).reshape(-1, 3)

    def keep_features(self, mask: np.ndarray) -> None:
        """Keep only features where `mask` is True."""
        mask = np.asarray(mask, dtype=bool)
        self.set_features(
            self.keypoints[mask],
            self.landmarks[mask],
            self.landmark_ages[mask],
            self.versors[mask],
        )


def find_matching_keypoints(
    ref_frame: Frame, cur_frame: Frame
) -> tuple[np.ndarray, np.ndarray]:
    """Find features observed in both frames by landmark id.

    Returns:
        Tuple of (ref_indices, cur_indices) into the frames' feature arrays
    """
    _, ref_idx, cur_idx = np.intersect1d(
        ref_frame.landmarks, cur_frame.landmarks, assume_unique=True, return_indices=True
    )
    return ref_idx.astype(np.int64), cur_idx.astype(np.int64)
