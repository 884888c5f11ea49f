"""Input and output packets of the vision frontend.

These dataclasses define the in-process call interface between the pipeline
harness and the frontend, and the payloads pushed to the display queue.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import numpy as np

from .tracker_status import TrackingStatus

if TYPE_CHECKING:
    from .frame import Frame
    from .imu_frontend import PreintegratedImuMeasurements
    from .pose import SE3
    from .tracker import DebugTrackerInfo


@dataclass
class FrontendInput:
    """One camera frame and the IMU samples since the previous frame.

    The IMU window should start at the previous frame timestamp and end at
    this frame timestamp, with samples interpolated at both borders when the
    clocks are not aligned. Only the intervals between consecutive samples
    are integrated, so a window that stops short of a frame loses time.

    Attributes:
        frame: Camera frame (features are filled in by the frontend)
        imu_stamps: (N,) IMU timestamps in nanoseconds
        imu_accgyr: (6, N) IMU samples, rows 0-2 accelerometer, rows 3-5 gyroscope
    """

    frame: Frame
    imu_stamps: np.ndarray
    imu_accgyr: np.ndarray

    def __post_init__(self) -> None:
        """Ensure arrays have correct shape and type."""
        self.imu_stamps = np.asarray(self.imu_stamps, dtype=np.int64).flatten()
        self.imu_accgyr = np.asarray(self.imu_accgyr, dtype=np.float64)
        if self.imu_accgyr.size == 0:
            self.imu_accgyr = self.imu_accgyr.reshape(6, 0)
        if self.imu_accgyr.ndim != 2 or self.imu_accgyr.shape[0] != 6:
            raise ValueError(f"IMU samples must be 6xN, got {self.imu_accgyr.shape}")
        if self.imu_accgyr.shape[1] != len(self.imu_stamps):
            raise ValueError(
                f"Got {len(self.imu_stamps)} IMU stamps for "
                f"{self.imu_accgyr.shape[1]} samples"
            )

    @property
    def timestamp_ns(self) -> int:
        """Return the frame timestamp."""
        return self.frame.timestamp_ns

    @property
    def num_imu_measurements(self) -> int:
        """Return number of IMU samples in the window."""
        return len(self.imu_stamps)


@dataclass
class FrontendTiming:
    """Timing breakdown for a single input."""

    tracking_ms: float = 0.0
    imu_ms: float = 0.0
    ransac_ms: float = 0.0
    detection_ms: float = 0.0
    total_ms: float = 0.0


@dataclass
class FrontendOutput:
    """Result of processing one input.

    Attributes:
        frame_id: Frame counter value of this input (1-based)
        keyframe_id: Keyframe counter value if this frame became a keyframe
        timestamp_ns: Frame timestamp in nanoseconds
        is_keyframe: True if the frame was promoted to keyframe
        status_mono: Mono verification status of the last keyframe
        relative_pose: lkf_T_k from the verification pass; set only when
            `status_mono` is VALID
        frame: Processed frame with its tracked features
        pim: Preintegrated IMU measurement between the previous and this
            keyframe; only set on keyframes
        imu_accgyr: Raw IMU samples of this input
        debug_tracker_info: Tracker diagnostics snapshot
        timing: Processing time breakdown
    """

    frame_id: int
    keyframe_id: int | None
    timestamp_ns: int
    is_keyframe: bool
    status_mono: TrackingStatus
    relative_pose: SE3 | None
    frame: Frame
    pim: PreintegratedImuMeasurements | None = None
    imu_accgyr: np.ndarray = field(default_factory=lambda: np.empty((6, 0)))
    debug_tracker_info: DebugTrackerInfo | None = None
    timing: FrontendTiming = field(default_factory=FrontendTiming)

    @property
    def is_tracking_ok(self) -> bool:
        """Return True if the mono verification succeeded."""
        return self.status_mono is TrackingStatus.VALID


@dataclass
class VisualizerPayload:
    """Feature tracks of one frame for the display queue.

    Attributes:
        timestamp_ns: Frame timestamp in nanoseconds
        image: Grayscale image
        keypoints: Nx2 feature pixel coordinates
        landmark_ages: N track ages, used for coloring
        is_keyframe: True if the frame is a keyframe
        tracks: Mx2x2 segments (keyframe pixel, current pixel) for tracks
            shared with the last keyframe
    """

    timestamp_ns: int
    image: np.ndarray
    keypoints: np.ndarray
    landmark_ages: np.ndarray
    is_keyframe: bool
    tracks: np.ndarray = field(default_factory=lambda: np.empty((0, 2, 2)))
