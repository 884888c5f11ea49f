"""VIO frontend - monocular-inertial vision frontend in Python."""

__version__ = "0.1.0"

# Re-export main classes for convenient imports
from .config import FrontendParams, TrackerParams, load_frontend_params
from .io import EurocMonoImuReader
from .frontend import (
    SE3,
    CameraParams,
    FrontendInput,
    FrontendInvariantError,
    FrontendOutput,
    FrontendState,
    ImuBias,
    ImuParams,
    MonoVisionFrontend,
    TrackingStatus,
    VisionFrontend,
)

__all__ = [
    "__version__",
    # Configuration
    "FrontendParams",
    "TrackerParams",
    "load_frontend_params",
    # Dataset / I/O
    "EurocMonoImuReader",
    # Frontend
    "VisionFrontend",
    "MonoVisionFrontend",
    "FrontendState",
    "FrontendInvariantError",
    "FrontendInput",
    "FrontendOutput",
    "TrackingStatus",
    # IMU
    "ImuParams",
    "ImuBias",
    # Geometry
    "SE3",
    "CameraParams",
]
