"""Tracking status codes and the per-frame status summary."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .pose import SE3


class TrackingStatus(Enum):
    """Outcome of a geometric outlier-rejection pass."""

    VALID = "VALID"
    LOW_DISPARITY = "LOW_DISPARITY"  # Not enough parallax between the frames
    FEW_MATCHES = "FEW_MATCHES"  # Too few putatives or inliers
    INVALID = "INVALID"  # Estimation failed


def tracking_status_to_string(status: TrackingStatus) -> str:
    """Return the upper-case name of a tracking status."""
    return status.value


@dataclass
class TrackingStatusPose:
    """Mutable holder for the (status, pose) pair returned by a kernel."""

    status: TrackingStatus = TrackingStatus.INVALID
    pose: SE3 | None = None

    def as_tuple(self) -> tuple[TrackingStatus, SE3 | None]:
        """Return (status, pose)."""
        return self.status, self.pose


@dataclass
class TrackerStatusSummary:
    """Result of the most recent outlier-rejection pass.

    The status is overwritten on every keyframe. The pose is only
    overwritten by a VALID result; after a failure it still holds the
    last VALID pose.

    Attributes:
        kf_tracking_status_mono: Status of the monocular kernel
        lkf_T_k_mono: Last keyframe to current frame pose (unit translation)
    """

    kf_tracking_status_mono: TrackingStatus = TrackingStatus.INVALID
    lkf_T_k_mono: SE3 | None = None
