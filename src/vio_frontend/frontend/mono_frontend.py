"""Monocular-inertial vision frontend.

Per frame:
1. Preintegrate the IMU samples since the previous frame
2. Track features from the previous frame with KLT
3. Decide whether the frame becomes a keyframe
4. On keyframes: verify tracks against the last keyframe with mono RANSAC,
   detect new features, and hand out the preintegrated IMU measurement
"""

from __future__ import annotations

import copy
import logging
import queue
import time

import numpy as np

from ..config import FrontendParams
from .camera import CameraParams
from .frame import Frame
from .imu_frontend import ImuBias, ImuParams
from .messages import FrontendInput, FrontendOutput, FrontendTiming
from .pose import rotation_between
from .tracker import Tracker
from .tracker_status import TrackingStatus, TrackingStatusPose
from .vision_frontend import VisionFrontend

logger = logging.getLogger(__name__)


class MonoVisionFrontend(VisionFrontend):
    """Vision frontend for a single camera and an IMU.

    Usage:
        frontend = MonoVisionFrontend(params, imu_params, camera_params)
        for frontend_input in reader:
            output = frontend.spin_once(frontend_input)
    """

    def __init__(
        self,
        frontend_params: FrontendParams,
        imu_params: ImuParams,
        camera_params: CameraParams,
        imu_initial_bias: ImuBias | None = None,
        display_queue: queue.Queue | None = None,
    ) -> None:
        """Initialize the mono frontend.

        Args:
            frontend_params: Frontend and tracker parameters
            imu_params: IMU noise model and integration settings
            camera_params: Camera calibration, including body_T_cam
            imu_initial_bias: Initial IMU bias estimate (default: zeros)
            display_queue: Borrowed queue for feature-track payloads. Only used
                when `frontend_params.visualize_feature_tracks` is set.
        """
        super().__init__(
            imu_params,
            imu_initial_bias,
            display_queue=display_queue if frontend_params.visualize_feature_tracks else None,
            log_output=frontend_params.log_output,
            output_dir=frontend_params.output_dir,
        )
        self._params = frontend_params
        self._camera = camera_params
        self._tracker = Tracker(frontend_params.tracker, camera_params)

        self._frame_lkf: Frame | None = None
        self._frame_km1: Frame | None = None

        # Body orientation in a gravity-aligned world frame, set at bootstrap
        self._world_R_body_init: np.ndarray | None = None

    def _bootstrap_spin(self, frontend_input: FrontendInput) -> FrontendOutput | None:
        """Initialize from the first frame with IMU data and enough features."""
        t_start = time.perf_counter()
        frame = frontend_input.frame

        self._tracker.debug_info.reset_frame_stats()
        self._tracker.feature_detection(frame)

        if frontend_input.num_imu_measurements == 0:
            logger.debug("Bootstrap: frame %d has no IMU data, waiting", frame.id)
            return None
        if len(frame) < self._params.bootstrap_min_features:
            logger.debug(
                "Bootstrap: frame %d has %d features (need %d), waiting",
                frame.id,
                len(frame),
                self._params.bootstrap_min_features,
            )
            return None

        # Align the body with gravity: at rest the accelerometer reads -g
        bias = self.get_current_imu_bias()
        mean_accel = frontend_input.imu_accgyr[:3].mean(axis=1) - bias.accel
        self._world_R_body_init = rotation_between(mean_accel, -self.get_gravity())
        self.update_and_reset_imu_bias(bias)

        frame.is_keyframe = True
        keyframe_id = self._register_keyframe(frame.timestamp_ns)
        self._frame_lkf = frame
        self._frame_km1 = frame

        self._finish_bootstrap()

        timing = FrontendTiming(
            detection_ms=self._tracker.debug_info.feature_detection_time_ms,
            total_ms=(time.perf_counter() - t_start) * 1000,
        )
        self._publish_display(frame, None)
        return FrontendOutput(
            frame_id=self.frame_count,
            keyframe_id=keyframe_id,
            timestamp_ns=frame.timestamp_ns,
            is_keyframe=True,
            status_mono=self.tracker_status_summary.kf_tracking_status_mono,
            relative_pose=None,
            frame=frame,
            imu_accgyr=frontend_input.imu_accgyr,
            debug_tracker_info=copy.copy(self.get_tracker_info()),
            timing=timing,
        )

    def _nominal_spin(self, frontend_input: FrontendInput) -> FrontendOutput:
        """Track, and on keyframes verify and replenish features."""
        t_start = time.perf_counter()
        frame = frontend_input.frame
        timing = FrontendTiming()

        t0 = time.perf_counter()
        pim = self._imu_frontend.preintegrate(
            frontend_input.imu_stamps, frontend_input.imu_accgyr
        )
        timing.imu_ms = (time.perf_counter() - t0) * 1000

        self._tracker.feature_tracking(self._frame_km1, frame)
        timing.tracking_ms = self._tracker.debug_info.feature_tracking_time_ms

        frame_lkf = self._frame_lkf
        keyframe_id = None
        status_mono = self.tracker_status_summary.kf_tracking_status_mono
        relative_pose = None
        keyframe_pim = None

        is_keyframe = self._is_keyframe(frame)
        if is_keyframe:
            if self._params.use_imu_rotation_prior:
                keyframe_R_cur_frame = self._camera_rotation_prior(pim.delta_R)
            else:
                keyframe_R_cur_frame = np.eye(3)

            status_pose_mono = TrackingStatusPose()
            status_mono, relative_pose = self._outlier_rejection_mono(
                keyframe_R_cur_frame, frame_lkf, frame, status_pose_mono
            )
            timing.ransac_ms = self._tracker.debug_info.mono_ransac_time_ms
            if status_mono is not TrackingStatus.VALID:
                logger.debug(
                    "Keyframe at t=%d without valid mono pose: %s",
                    frame.timestamp_ns,
                    status_mono.value,
                )

            self._tracker.feature_detection(frame)
            timing.detection_ms = self._tracker.debug_info.feature_detection_time_ms

            frame.is_keyframe = True
            keyframe_id = self._register_keyframe(frame.timestamp_ns)
            self._frame_lkf = frame

            keyframe_pim = pim
            self._imu_frontend.reset_integration_with_cached_bias()

        self._frame_km1 = frame
        timing.total_ms = (time.perf_counter() - t_start) * 1000

        if logger.isEnabledFor(logging.DEBUG):
            self._tracker.debug_info.log()
        self._publish_display(frame, frame_lkf)

        return FrontendOutput(
            frame_id=self.frame_count,
            keyframe_id=keyframe_id,
            timestamp_ns=frame.timestamp_ns,
            is_keyframe=is_keyframe,
            status_mono=status_mono,
            relative_pose=relative_pose,
            frame=frame,
            pim=keyframe_pim,
            imu_accgyr=frontend_input.imu_accgyr,
            debug_tracker_info=copy.copy(self.get_tracker_info()),
            timing=timing,
        )

    def _is_keyframe(self, frame: Frame) -> bool:
        """Keyframe after `intra_keyframe_time_s` or when too few features survive."""
        dt_s = (frame.timestamp_ns - self.last_keyframe_timestamp) / 1e9
        if dt_s >= self._params.intra_keyframe_time_s:
            return True
        if len(frame) < self._params.min_number_features:
            logger.debug(
                "Keyframe forced at t=%d: %d features left",
                frame.timestamp_ns,
                len(frame),
            )
            return True
        return False

    def _camera_rotation_prior(self, body_lkf_R_body_k: np.ndarray) -> np.ndarray:
        """Express a body-frame rotation between keyframes in the camera frame."""
        body_R_cam = self._camera.body_T_cam.rotation
        return body_R_cam.T @ body_lkf_R_body_k @ body_R_cam

    @property
    def world_R_body_init(self) -> np.ndarray | None:
        """Return the gravity-aligned body orientation found at bootstrap."""
        return None if self._world_R_body_init is None else self._world_R_body_init.copy()

    @property
    def last_keyframe(self) -> Frame | None:
        """Return the last keyframe."""
        return self._frame_lkf
