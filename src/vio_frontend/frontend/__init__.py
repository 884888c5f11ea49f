"""Vision frontend components.

- VisionFrontend: lifecycle state machine and mono outlier-rejection dispatch
- MonoVisionFrontend: monocular-inertial frontend built on it
- Tracker: KLT tracking and mono RANSAC kernels
- ImuFrontend: IMU preintegration between keyframes
"""

from .camera import CameraIntrinsics, CameraParams, DistortionCoeffs
from .feature_detector import FeatureDetector
from .frame import Frame, find_matching_keypoints
from .frontend_logger import FrontendLogger
from .imu_frontend import ImuBias, ImuFrontend, ImuParams, PreintegratedImuMeasurements
from .messages import FrontendInput, FrontendOutput, FrontendTiming, VisualizerPayload
from .mono_frontend import MonoVisionFrontend
from .pose import SE3
from .tracker import DebugTrackerInfo, Tracker
from .tracker_status import (
    TrackerStatusSummary,
    TrackingStatus,
    TrackingStatusPose,
    tracking_status_to_string,
)
from .vision_frontend import (
    AtomicFrontendState,
    FrontendInvariantError,
    FrontendState,
    VisionFrontend,
)

__all__ = [
    # Lifecycle
    "VisionFrontend",
    "MonoVisionFrontend",
    "FrontendState",
    "AtomicFrontendState",
    "FrontendInvariantError",
    # Messages
    "FrontendInput",
    "FrontendOutput",
    "FrontendTiming",
    "VisualizerPayload",
    "FrontendLogger",
    # Tracking
    "Frame",
    "find_matching_keypoints",
    "FeatureDetector",
    "Tracker",
    "DebugTrackerInfo",
    "TrackingStatus",
    "TrackingStatusPose",
    "TrackerStatusSummary",
    "tracking_status_to_string",
    # IMU
    "ImuFrontend",
    "ImuParams",
    "ImuBias",
    "PreintegratedImuMeasurements",
    # Geometry
    "SE3",
    "CameraParams",
    "CameraIntrinsics",
    "DistortionCoeffs",
]
