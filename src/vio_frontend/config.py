"""Frontend and tracker parameters with YAML loading.

Keys in the YAML file map one-to-one onto dataclass fields. The nested
`tracker:` mapping configures `TrackerParams`:

    intra_keyframe_time_s: 0.2
    min_number_features: 30
    tracker:
      ransac_use_2point_mono: true
      max_features_per_frame: 200
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

import yaml


@dataclass
class TrackerParams:
    """Feature detection, KLT tracking, and mono RANSAC parameters."""

    # KLT
    klt_win_size: int = 24  # Search window side (pixels)
    klt_max_iter: int = 30
    klt_max_level: int = 4  # Pyramid levels above the base image
    klt_eps: float = 0.1

    # Track aging
    max_feature_age: int = 25  # Tracks older than this are dropped

    # GFTT detection
    max_features_per_frame: int = 400
    quality_level: float = 0.001
    min_distance: float = 10.0  # Minimum pixel distance between features
    block_size: int = 3
    use_harris_detector: bool = False
    k: float = 0.04  # Harris free parameter
    equalize_image: bool = False

    # Mono geometric verification
    ransac_use_2point_mono: bool = True
    ransac_threshold_mono: float = 1e-3  # Normalized image-plane units
    ransac_max_iterations: int = 100
    ransac_probability: float = 0.995
    ransac_randomize: bool = True
    min_nr_mono_inliers: int = 10

    # Median keypoint displacement (pixels) below which motion is degenerate
    disparity_threshold: float = 0.5


@dataclass
class FrontendParams:
    """Parameters consumed by the vision frontend lifecycle controller."""

    tracker: TrackerParams = field(default_factory=TrackerParams)
    intra_keyframe_time_s: float = 0.2
    min_number_features: int = 30
    bootstrap_min_features: int = 10
    use_imu_rotation_prior: bool = True
    visualize_feature_tracks: bool = False
    log_output: bool = False
    output_dir: str = "output_logs"

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> FrontendParams:
        """Build parameters from a plain mapping.

        Raises:
            ValueError: If the mapping contains unknown keys
        """
        data = dict(data)
        tracker_data = data.pop("tracker", None) or {}
        tracker = TrackerParams(**_checked_kwargs(TrackerParams, tracker_data))
        return cls(tracker=tracker, **_checked_kwargs(cls, data))

    def equals(self, other: FrontendParams, tol: float = 1e-9) -> bool:
        """Compare field by field, floats within `tol`."""
        return _fields_equal(self.tracker, other.tracker, tol) and _fields_equal(
            self, other, tol, skip=("tracker",)
        )


def load_frontend_params(path: str | Path) -> FrontendParams:
    """Load `FrontendParams` from a YAML file.

    Raises:
        FileNotFoundError: If the file doesn't exist
        ValueError: If the file is not a mapping or has unknown keys
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Frontend parameter file not found: {path}")

    with open(path, "r") as f:
        data = yaml.safe_load(f)

    if data is None:
        return FrontendParams()
    if not isinstance(data, dict):
        raise ValueError(f"Expected a mapping at the top of {path}")
    return FrontendParams.from_dict(data)


def _checked_kwargs(cls: type, data: dict[str, Any]) -> dict[str, Any]:
    """Reject keys that are not fields of `cls`."""
    names = {f.name for f in fields(cls)}
    unknown = sorted(set(data) - names)
    if unknown:
        raise ValueError(f"Unknown {cls.__name__} keys: {', '.join(unknown)}")
    return data


def _fields_equal(a: Any, b: Any, tol: float, skip: tuple[str, ...] = ()) -> bool:
    for f in fields(a):
        if f.name in skip:
            continue
        va, vb = getattr(a, f.name), getattr(b, f.name)
        if isinstance(va, float) or isinstance(vb, float):
            if not math.isclose(va, vb, rel_tol=0.0, abs_tol=tol):
                return False
        elif va != vb:
            return False
    return True
