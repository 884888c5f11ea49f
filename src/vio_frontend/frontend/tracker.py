"""KLT feature tracking and monocular geometric outlier rejection.

The tracker owns the feature life cycle (detection, tracking, aging) and
two RANSAC kernels that verify correspondences between the last keyframe
and the current frame:

- Five-point essential matrix RANSAC: solves the full relative pose.
- Two-point RANSAC given a rotation prior: solves only the translation
  direction, using the constraint t . ((R f_k) x f_lkf) = 0.

Both kernels return a (TrackingStatus, pose) pair. The pose is
`lkf_T_k` (maps points from the current camera frame to the last keyframe
camera frame) with unit-norm translation, and is None unless the status is
VALID.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass

import cv2
import numpy as np

from ..config import TrackerParams
from .camera import CameraParams
from .feature_detector import FeatureDetector
from .frame import Frame, find_matching_keypoints
from .pose import SE3
from .tracker_status import TrackingStatus

logger = logging.getLogger(__name__)

FIVE_POINT_KERNEL = "5pt"
TWO_POINT_KERNEL = "2pt"


@dataclass
class DebugTrackerInfo:
    """Diagnostics of the most recent tracking and verification steps."""

    nr_keypoints: int = 0
    nr_tracked: int = 0
    nr_new_features: int = 0
    feature_detection_time_ms: float = 0.0
    feature_tracking_time_ms: float = 0.0
    mono_ransac_time_ms: float = 0.0
    mono_ransac_iters: int = 0
    nr_mono_putatives: int = 0
    nr_mono_inliers: int = 0
    mono_kernel: str = ""

    def reset_frame_stats(self) -> None:
        """Clear per-frame tracking counters."""
        self.nr_tracked = 0
        self.nr_new_features = 0
        self.feature_detection_time_ms = 0.0
        self.feature_tracking_time_ms = 0.0

    def reset_ransac_stats(self) -> None:
        """Clear counters of the last verification pass."""
        self.mono_ransac_time_ms = 0.0
        self.mono_ransac_iters = 0
        self.nr_mono_putatives = 0
        self.nr_mono_inliers = 0
        self.mono_kernel = ""

    def log(self) -> None:
        """Write all fields to the module logger at INFO level."""
        logger.info(
            "Tracker info: keypoints=%d tracked=%d new=%d detect=%.2fms "
            "track=%.2fms ransac[%s]=%.2fms iters=%d putatives=%d inliers=%d",
            self.nr_keypoints,
            self.nr_tracked,
            self.nr_new_features,
            self.feature_detection_time_ms,
            self.feature_tracking_time_ms,
            self.mono_kernel or "-",
            self.mono_ransac_time_ms,
            self.mono_ransac_iters,
            self.nr_mono_putatives,
            self.nr_mono_inliers,
        )


class Tracker:
    """Tracks features across frames and verifies them geometrically.

    Not thread-safe: all methods run on the estimation thread.
    """

    def __init__(
        self,
        params: TrackerParams,
        camera_params: CameraParams,
        feature_detector: FeatureDetector | None = None,
    ) -> None:
        """Initialize tracker.

        Args:
            params: Detection, KLT, and RANSAC parameters
            camera_params: Calibration used to compute bearing vectors
            feature_detector: Corner detector. Uses defaults from `params` if None.
        """
        self.params = params
        self.camera_params = camera_params
        self.debug_info = DebugTrackerInfo()

        self._detector = feature_detector or FeatureDetector(params)
        self._landmark_count = 0
        self._rng = np.random.default_rng(None if params.ransac_randomize else 0)

    # ------------------------------------------------------------------
    # Feature life cycle
    # ------------------------------------------------------------------

    def feature_detection(self, frame: Frame) -> int:
        """Top up the frame's features to `max_features_per_frame`.

        New features get fresh landmark ids and age 0.

        Args:
            frame: Frame to add features to (modified in place)

        Returns:
            Number of new features
        """
        t0 = time.perf_counter()
        max_new = self.params.max_features_per_frame - len(frame)
        corners = self._detector.detect(
            self._prepare_image(frame.image),
            existing_keypoints=frame.keypoints,
            max_new=max_new,
        )

        num_new = len(corners)
        if num_new > 0:
            new_ids = np.arange(
                self._landmark_count, self._landmark_count + num_new, dtype=np.int64
            )
            self._landmark_count += num_new
            frame.set_features(
                np.vstack([frame.keypoints, corners]),
                np.concatenate([frame.landmarks, new_ids]),
                np.concatenate([frame.landmark_ages, np.zeros(num_new, dtype=np.int64)]),
                np.vstack([frame.versors, self.camera_params.undistort_to_versors(corners)]),
            )

        self.debug_info.nr_new_features = num_new
        self.debug_info.nr_keypoints = len(frame)
        self.debug_info.feature_detection_time_ms = (time.perf_counter() - t0) * 1000
        return num_new

    def feature_tracking(self, ref_frame: Frame, cur_frame: Frame) -> int:
        """Track features of `ref_frame` into `cur_frame` with pyramidal KLT.

        Surviving tracks keep their landmark id and age by one. Tracks lost by
        KLT, leaving the image, or older than `max_feature_age` are dropped.

        Returns:
            Number of tracked features
        """
        t0 = time.perf_counter()
        self.debug_info.reset_frame_stats()

        if len(ref_frame) == 0:
            cur_frame.set_features(
                np.empty((0, 2)), np.empty(0), np.empty(0), np.empty((0, 3))
            )
            self.debug_info.nr_keypoints = 0
            return 0

        p = self.params
        prev_pts = ref_frame.keypoints.reshape(-1, 1, 2).astype(np.float32)
        next_pts, status, _err = cv2.calcOpticalFlowPyrLK(
            self._prepare_image(ref_frame.image),
            self._prepare_image(cur_frame.image),
            prev_pts,
            None,
            winSize=(p.klt_win_size, p.klt_win_size),
            maxLevel=p.klt_max_level,
            criteria=(
                cv2.TERM_CRITERIA_COUNT | cv2.TERM_CRITERIA_EPS,
                p.klt_max_iter,
                p.klt_eps,
            ),
        )

        next_pts = next_pts.reshape(-1, 2)
        height, width = cur_frame.image.shape[:2]
        ages = ref_frame.landmark_ages + 1
        keep = (
            (status.reshape(-1) == 1)
            & (next_pts[:, 0] >= 0)
            & (next_pts[:, 0] < width)
            & (next_pts[:, 1] >= 0)
            & (next_pts[:, 1] < height)
            & (ages <= p.max_feature_age)
        )

        kept_pts = next_pts[keep]
        cur_frame.set_features(
            kept_pts,
            ref_frame.landmarks[keep],
            ages[keep],
            self.camera_params.undistort_to_versors(kept_pts),
        )

        self.debug_info.nr_tracked = len(cur_frame)
        self.debug_info.nr_keypoints = len(cur_frame)
        self.debug_info.feature_tracking_time_ms = (time.perf_counter() - t0) * 1000
        return len(cur_frame)

    def _prepare_image(self, image: np.ndarray) -> np.ndarray:
        if self.params.equalize_image:
            return cv2.equalizeHist(image)
        return image

    # ------------------------------------------------------------------
    # Geometric verification
    # ------------------------------------------------------------------

    def geometric_outlier_rejection_mono(
        self, ref_frame: Frame, cur_frame: Frame
    ) -> tuple[TrackingStatus, SE3 | None]:
        """Five-point RANSAC on the essential matrix.

        Args:
            ref_frame: Last keyframe
            cur_frame: Current frame (outliers removed in place)

        Returns:
            Tuple of (status, lkf_T_k or None)
        """
        t0 = time.perf_counter()
        self.debug_info.reset_ransac_stats()
        self.debug_info.mono_kernel = FIVE_POINT_KERNEL

        ref_idx, cur_idx = find_matching_keypoints(ref_frame, cur_frame)
        self.debug_info.nr_mono_putatives = len(ref_idx)
        if len(ref_idx) < 5:
            return self._finish(t0, TrackingStatus.FEW_MATCHES)

        pts_ref = _normalized(ref_frame.versors[ref_idx])
        pts_cur = _normalized(cur_frame.versors[cur_idx])

        try:
            E, mask = cv2.findEssentialMat(
                pts_ref,
                pts_cur,
                cameraMatrix=np.eye(3),
                method=cv2.RANSAC,
                prob=self.params.ransac_probability,
                threshold=self.params.ransac_threshold_mono,
                maxIters=self.params.ransac_max_iterations,
            )
        except cv2.error:
            return self._finish(t0, TrackingStatus.INVALID)

        if E is None or mask is None or E.shape[0] < 3:
            return self._finish(t0, TrackingStatus.INVALID)

        # Degenerate configurations may return several stacked solutions
        E = E[:3, :]
        inliers = mask.reshape(-1).astype(bool)

        try:
            _, R, t, _ = cv2.recoverPose(
                E, pts_ref, pts_cur, cameraMatrix=np.eye(3), mask=mask.copy()
            )
        except cv2.error:
            return self._finish(t0, TrackingStatus.INVALID)

        if not (np.isfinite(R).all() and np.isfinite(t).all()):
            return self._finish(t0, TrackingStatus.INVALID)

        # recoverPose gives k_T_lkf (x_cur = R x_ref + t)
        lkf_T_k = SE3(rotation=R, translation=t).inverse()
        return self._finish_verification(
            t0, ref_frame, cur_frame, ref_idx, cur_idx, inliers, lkf_T_k
        )

    def geometric_outlier_rejection_mono_given_rotation(
        self,
        ref_frame: Frame,
        cur_frame: Frame,
        lkf_R_k: np.ndarray,
    ) -> tuple[TrackingStatus, SE3 | None]:
        """Two-point RANSAC for the translation direction under a known rotation.

        Args:
            ref_frame: Last keyframe
            cur_frame: Current frame (outliers removed in place)
            lkf_R_k: Rotation from current camera frame to keyframe camera frame

        Returns:
            Tuple of (status, lkf_T_k or None)
        """
        t0 = time.perf_counter()
        self.debug_info.reset_ransac_stats()
        self.debug_info.mono_kernel = TWO_POINT_KERNEL

        ref_idx, cur_idx = find_matching_keypoints(ref_frame, cur_frame)
        self.debug_info.nr_mono_putatives = len(ref_idx)
        if len(ref_idx) < 2:
            return self._finish(t0, TrackingStatus.FEW_MATCHES)

        R = np.asarray(lkf_R_k, dtype=np.float64)
        f_ref = ref_frame.versors[ref_idx]
        f_cur_rotated = cur_frame.versors[cur_idx] @ R.T
        # Each correspondence constrains t to be orthogonal to n_i
        normals = np.cross(f_cur_rotated, f_ref)

        t, inliers, iterations = self._two_point_ransac(normals)
        self.debug_info.mono_ransac_iters = iterations
        if t is None:
            return self._finish(t0, TrackingStatus.INVALID)

        t = _refine_translation(normals[inliers], t)
        t = _fix_translation_sign(t, f_ref[inliers], f_cur_rotated[inliers])
        lkf_T_k = SE3(rotation=R, translation=t)
        return self._finish_verification(
            t0, ref_frame, cur_frame, ref_idx, cur_idx, inliers, lkf_T_k
        )

    def _two_point_ransac(
        self, normals: np.ndarray
    ) -> tuple[np.ndarray | None, np.ndarray, int]:
        """Return (translation, inlier mask, iterations)."""
        n = len(normals)
        threshold = self.params.ransac_threshold_mono
        max_iterations = self.params.ransac_max_iterations
        required = max_iterations

        best_t = None
        best_inliers = np.zeros(n, dtype=bool)
        iterations = 0
        while iterations < min(required, max_iterations):
            iterations += 1
            i, j = self._rng.choice(n, size=2, replace=False)
            t = np.cross(normals[i], normals[j])
            norm = np.linalg.norm(t)
            if norm < 1e-12:
                continue
            t /= norm

            inliers = np.abs(normals @ t) < threshold
            if inliers.sum() > best_inliers.sum():
                best_t, best_inliers = t, inliers
                required = _ransac_iterations(
                    inliers.sum() / n, 2, self.params.ransac_probability
                )

        return best_t, best_inliers, iterations

    def _finish_verification(
        self,
        t0: float,
        ref_frame: Frame,
        cur_frame: Frame,
        ref_idx: np.ndarray,
        cur_idx: np.ndarray,
        inliers: np.ndarray,
        lkf_T_k: SE3,
    ) -> tuple[TrackingStatus, SE3 | None]:
        num_inliers = int(inliers.sum())
        self.debug_info.nr_mono_inliers = num_inliers

        disparity = 0.0
        if num_inliers > 0:
            disparity = float(np.median(np.linalg.norm(
                ref_frame.keypoints[ref_idx[inliers]]
                - cur_frame.keypoints[cur_idx[inliers]],
                axis=1,
            )))

        # Drop outlier tracks from the current frame
        keep = np.ones(len(cur_frame), dtype=bool)
        keep[cur_idx[~inliers]] = False
        cur_frame.keep_features(keep)
        self.debug_info.nr_keypoints = len(cur_frame)

        if num_inliers < self.params.min_nr_mono_inliers:
            return self._finish(t0, TrackingStatus.FEW_MATCHES)
        if disparity < self.params.disparity_threshold:
            return self._finish(t0, TrackingStatus.LOW_DISPARITY)
        return self._finish(t0, TrackingStatus.VALID, lkf_T_k)

    def _finish(
        self, t0: float, status: TrackingStatus, pose: SE3 | None = None
    ) -> tuple[TrackingStatus, SE3 | None]:
        self.debug_info.mono_ransac_time_ms = (time.perf_counter() - t0) * 1000
        logger.debug(
            "Mono %s RANSAC: %s (%d/%d inliers)",
            self.debug_info.mono_kernel,
            status.value,
            self.debug_info.nr_mono_inliers,
            self.debug_info.nr_mono_putatives,
        )
        return status, pose if status is TrackingStatus.VALID else None


def _normalized(versors: np.ndarray) -> np.ndarray:
    """Project bearing vectors onto the z = 1 image plane (Nx2)."""
    return (versors[:, :2] / versors[:, 2:3]).astype(np.float64)


def _ransac_iterations(inlier_ratio: float, sample_size: int, probability: float) -> int:
    """Number of iterations needed to draw one all-inlier sample."""
    p_good = inlier_ratio**sample_size
    if p_good >= 1.0:
        return 1
    if p_good <= 0.0:
        return np.iinfo(np.int32).max
    return int(np.ceil(np.log(1.0 - probability) / np.log(1.0 - p_good)))


def _refine_translation(normals: np.ndarray, t_init: np.ndarray) -> np.ndarray:
    """Least-squares translation direction orthogonal to all inlier normals."""
    if len(normals) < 2:
        return t_init
    _, _, vt = np.linalg.svd(normals)
    t = vt[-1]
    # Keep the sign of the RANSAC hypothesis
    return t if np.dot(t, t_init) >= 0 else -t


def _fix_translation_sign(
    t: np.ndarray, f_ref: np.ndarray, f_cur_rotated: np.ndarray
) -> np.ndarray:
    """Choose the sign of t that puts most triangulated points in front of the camera.

    With f_ref * d_ref = d_cur * (R f_cur) + t, the depth along the current ray
    is d_cur = -((f_ref x t) . (f_ref x R f_cur)) / |f_ref x R f_cur|^2.
    """
    a = np.cross(f_ref, t)
    b = np.cross(f_ref, f_cur_rotated)
    denom = np.einsum("ij,ij->i", b, b)
    valid = denom > 1e-12
    if not valid.any():
        return t
    depths = -np.einsum("ij,ij->i", a[valid], b[valid]) / denom[valid]
    return t if np.count_nonzero(depths > 0) >= np.count_nonzero(depths < 0) else -t
