"""Lifecycle controller shared by all vision frontends.

The frontend runs as a two-state machine:

    BOOTSTRAP --(bootstrap handler succeeds)--> NOMINAL

`spin_once` is called sequentially by a single estimation thread. A small
set of accessors may be called from other threads at any time:

    Method                      Caller                  Safety
    update_imu_bias             any thread              ImuFrontend lock
    get_current_imu_bias        any thread              ImuFrontend lock
    is_initialized              any thread              atomic state load
    reset_gravity, get_gravity  any thread              ImuFrontend lock
    get_imu_frontend_params     any thread              immutable params
    update_and_reset_imu_bias   estimation thread,      none
                                bootstrap only
    get_tracker_info            estimation thread       none

The controller holds no other shared state: bias and gravity live in the
IMU frontend and are never cached here.
"""

from __future__ import annotations

import abc
import logging
import queue
import threading
from enum import IntEnum
from typing import TYPE_CHECKING, Any

import numpy as np

from .frame import Frame, find_matching_keypoints
from .frontend_logger import FrontendLogger
from .imu_frontend import ImuBias, ImuFrontend, ImuParams
from .messages import FrontendInput, FrontendOutput, VisualizerPayload
from .pose import is_identity_rotation
from .tracker_status import (
    TrackerStatusSummary,
    TrackingStatus,
    TrackingStatusPose,
    tracking_status_to_string,
)

if TYPE_CHECKING:
    from .pose import SE3
    from .tracker import DebugTrackerInfo, Tracker

logger = logging.getLogger(__name__)


class FrontendInvariantError(RuntimeError):
    """A programming invariant of the frontend was violated.

    Not recoverable: raised only for caller or implementation bugs, never
    for sensor or data conditions.
    """


class FrontendState(IntEnum):
    """Lifecycle state of a vision frontend."""

    BOOTSTRAP = 0  # Initialize frontend
    NOMINAL = 1  # Run frontend


class AtomicFrontendState:
    """Frontend state cell readable from any thread.

    Every load and store goes through a lock, so a thread that loads
    NOMINAL also sees every write the estimation thread made before
    storing it.
    """

    def __init__(self, value: int = FrontendState.BOOTSTRAP) -> None:
        self._lock = threading.Lock()
        self._value = value

    def load(self) -> int:
        with self._lock:
            return self._value

    def store(self, value: int) -> None:
        with self._lock:
            self._value = value

    def compare_and_set(self, expected: int, value: int) -> bool:
        """Store `value` only if the current value equals `expected`."""
        with self._lock:
            if self._value != expected:
                return False
            self._value = value
            return True


class VisionFrontend(abc.ABC):
    """Abstract vision frontend: state machine, counters, and outlier rejection.

    Subclasses implement `_bootstrap_spin` and `_nominal_spin` and assign
    `self._tracker` in their constructor.
    """

    def __init__(
        self,
        imu_params: ImuParams,
        imu_initial_bias: ImuBias | None = None,
        display_queue: queue.Queue | None = None,
        log_output: bool = False,
        output_dir: str = "output_logs",
    ) -> None:
        """Initialize frontend state.

        Args:
            imu_params: IMU noise model and integration settings
            imu_initial_bias: Initial IMU bias estimate (default: zeros)
            display_queue: Borrowed queue receiving VisualizerPayload items.
                Never closed or drained by the frontend.
            log_output: If True, write a CSV row per output
            output_dir: Directory for the CSV log
        """
        self._state = AtomicFrontendState(FrontendState.BOOTSTRAP)

        # Counters
        self._frame_count = 0
        self._keyframe_count = 0

        # Timestamp of last keyframe
        self._last_keyframe_timestamp = 0

        self._imu_frontend = ImuFrontend(imu_params, imu_initial_bias)
        self._tracker: Tracker | None = None
        self._tracker_status_summary = TrackerStatusSummary()

        self._display_queue = display_queue
        self._logger = FrontendLogger(output_dir) if log_output else None

    def spin_once(self, frontend_input: FrontendInput) -> FrontendOutput | None:
        """Process one input.

        Returns:
            FrontendOutput, or None while the frontend is still bootstrapping

        Raises:
            FrontendInvariantError: If the state holds an unrecognized value
        """
        self._frame_count += 1

        state = self._state.load()
        if state == FrontendState.BOOTSTRAP:
            output = self._bootstrap_spin(frontend_input)
        elif state == FrontendState.NOMINAL:
            output = self._nominal_spin(frontend_input)
        else:
            logger.critical("Unrecognized frontend state.")
            raise FrontendInvariantError(f"Unrecognized frontend state: {state!r}")

        if output is not None and self._logger is not None:
            self._logger.log_frontend_output(output)
        return output

    @abc.abstractmethod
    def _bootstrap_spin(self, frontend_input: FrontendInput) -> FrontendOutput | None:
        """Try to initialize. Returns None until initialization succeeds."""

    @abc.abstractmethod
    def _nominal_spin(self, frontend_input: FrontendInput) -> FrontendOutput:
        """Steady-state per-frame processing."""

    # ------------------------------------------------------------------
    # Thread-safe accessors
    # ------------------------------------------------------------------

    def update_imu_bias(self, imu_bias: ImuBias) -> None:
        """Update the IMU bias. Thread-safe."""
        self._imu_frontend.update_bias(imu_bias)

    def get_current_imu_bias(self) -> ImuBias:
        """Return the IMU bias. Thread-safe."""
        return self._imu_frontend.get_current_imu_bias()

    def is_initialized(self) -> bool:
        """Return True once bootstrap has finished. Thread-safe."""
        return self._state.load() != FrontendState.BOOTSTRAP

    def reset_gravity(self, reset_value: np.ndarray) -> None:
        """Replace the preintegration gravity vector. Thread-safe."""
        self._imu_frontend.reset_preintegration_gravity(reset_value)

    def get_gravity(self) -> np.ndarray:
        """Return the preintegration gravity vector. Thread-safe."""
        return self._imu_frontend.get_preintegration_gravity()

    def get_imu_frontend_params(self) -> ImuParams:
        """Return the IMU parameters. Thread-safe (immutable)."""
        return self._imu_frontend.get_imu_params()

    # ------------------------------------------------------------------
    # Estimation-thread-only accessors
    # ------------------------------------------------------------------

    def update_and_reset_imu_bias(self, imu_bias: ImuBias) -> None:
        """Update the IMU bias and restart preintegration with it.

        Not thread-safe: only call from the estimation thread during bootstrap.
        """
        self._imu_frontend.update_bias(imu_bias)
        self._imu_frontend.reset_integration_with_cached_bias()

    def get_tracker_info(self) -> DebugTrackerInfo:
        """Return the tracker's diagnostics object. Not thread-safe."""
        return self._require_tracker().debug_info

    @staticmethod
    def print_tracking_status(status: TrackingStatus, label: str = "mono") -> str:
        """Log a tracking status and return the logged line."""
        line = f"Status {label}: {tracking_status_to_string(status)}"
        logger.info(line)
        return line

    # ------------------------------------------------------------------
    # Helpers for subclasses
    # ------------------------------------------------------------------

    def _outlier_rejection_mono(
        self,
        keyframe_R_cur_frame: np.ndarray,
        frame_lkf: Frame,
        frame_k: Frame,
        status_pose_mono: TrackingStatusPose | None,
    ) -> tuple[TrackingStatus, SE3 | None]:
        """Run one mono verification kernel and record its result.

        The two-point kernel runs when it is enabled and a non-identity
        rotation prior is available; otherwise the five-point kernel runs.

        Args:
            keyframe_R_cur_frame: Rotation prior from current camera frame to
                last keyframe camera frame. Identity means "no prior".
            frame_lkf: Last keyframe
            frame_k: Current frame
            status_pose_mono: Holder receiving the (status, pose) result

        Returns:
            Tuple of (status, lkf_T_k or None)

        Raises:
            FrontendInvariantError: If `status_pose_mono` is None
        """
        if status_pose_mono is None:
            logger.critical("Outlier rejection called without a result holder.")
            raise FrontendInvariantError("status_pose_mono must not be None")
        tracker = self._require_tracker()

        if tracker.params.ransac_use_2point_mono and not is_identity_rotation(
            keyframe_R_cur_frame
        ):
            status, pose = tracker.geometric_outlier_rejection_mono_given_rotation(
                frame_lkf, frame_k, keyframe_R_cur_frame
            )
        else:
            status, pose = tracker.geometric_outlier_rejection_mono(frame_lkf, frame_k)

        status_pose_mono.status = status
        status_pose_mono.pose = pose

        self._tracker_status_summary.kf_tracking_status_mono = status
        if logger.isEnabledFor(logging.DEBUG):
            self.print_tracking_status(status, "mono")

        if status is TrackingStatus.VALID:
            self._tracker_status_summary.lkf_T_k_mono = pose

        return status_pose_mono.as_tuple()

    def _finish_bootstrap(self) -> None:
        """Publish the BOOTSTRAP -> NOMINAL transition.

        Raises:
            FrontendInvariantError: If the frontend is not bootstrapping
        """
        if not self._state.compare_and_set(FrontendState.BOOTSTRAP, FrontendState.NOMINAL):
            logger.critical("Bootstrap finished twice.")
            raise FrontendInvariantError("Frontend left BOOTSTRAP more than once")
        logger.info(
            "Frontend initialized after %d frame(s), %d keyframe(s).",
            self._frame_count,
            self._keyframe_count,
        )

    def _register_keyframe(self, timestamp_ns: int) -> int:
        """Count a new keyframe and return its id."""
        self._keyframe_count += 1
        self._last_keyframe_timestamp = timestamp_ns
        return self._keyframe_count

    def _publish_display(self, frame: Frame, frame_lkf: Frame | None) -> None:
        """Push feature tracks to the display queue without blocking."""
        if self._display_queue is None:
            return

        tracks = np.empty((0, 2, 2), dtype=np.float32)
        if frame_lkf is not None and frame_lkf is not frame:
            ref_idx, cur_idx = find_matching_keypoints(frame_lkf, frame)
            tracks = np.stack(
                [frame_lkf.keypoints[ref_idx], frame.keypoints[cur_idx]], axis=1
            )

        payload = VisualizerPayload(
            timestamp_ns=frame.timestamp_ns,
            image=frame.image,
            keypoints=frame.keypoints.copy(),
            landmark_ages=frame.landmark_ages.copy(),
            is_keyframe=frame.is_keyframe,
            tracks=tracks,
        )
        try:
            self._display_queue.put_nowait(payload)
        except queue.Full:
            logger.warning("Display queue full, dropping frame %d", frame.id)

    def _require_tracker(self) -> Tracker:
        if self._tracker is None:
            logger.critical("Frontend has no tracker.")
            raise FrontendInvariantError("Frontend subclass did not set a tracker")
        return self._tracker

    def _force_state_for_testing(self, value: Any) -> None:
        """Store an arbitrary state value. Test-only."""
        self._state.store(value)

    def close(self) -> None:
        """Release the CSV logger. The display queue is borrowed and left alone."""
        if self._logger is not None:
            self._logger.close()

    @property
    def frame_count(self) -> int:
        """Return number of processed inputs."""
        return self._frame_count

    @property
    def keyframe_count(self) -> int:
        """Return number of keyframes."""
        return self._keyframe_count

    @property
    def last_keyframe_timestamp(self) -> int:
        """Return timestamp of the last keyframe in nanoseconds (0 if none)."""
        return self._last_keyframe_timestamp

    @property
    def tracker_status_summary(self) -> TrackerStatusSummary:
        """Return the status summary of the last verification pass."""
        return self._tracker_status_summary

    @property
    def state(self) -> int:
        """Return the current lifecycle state."""
        return self._state.load()

    def __enter__(self) -> VisionFrontend:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
