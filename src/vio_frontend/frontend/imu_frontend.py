"""IMU preintegration between keyframes.

Integrates gyroscope and accelerometer samples into a single relative-motion
measurement (delta rotation, velocity, position) expressed in the body frame
of the first sample, following the on-manifold preintegration scheme. The
noise densities of ImuParams are propagated into a 9x9 covariance of the
[rotation, velocity, position] errors, and the bias random walks into a
6x6 covariance of the bias drift over the integrated span.

The cached bias and gravity are shared with other threads and guarded by a
lock; the running preintegration is owned by the estimation thread.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path

import numpy as np
import yaml

from .pose import exp_so3, right_jacobian_so3, skew

logger = logging.getLogger(__name__)


@dataclass(frozen=True, eq=False)
class ImuBias:
    """Accelerometer and gyroscope bias estimate.

    Frozen: an update replaces the whole object, so a reader always sees a
    consistent pair.

    Attributes:
        accel: Accelerometer bias (3,) in m/s^2
        gyro: Gyroscope bias (3,) in rad/s
    """

    accel: np.ndarray = field(default_factory=lambda: np.zeros(3))
    gyro: np.ndarray = field(default_factory=lambda: np.zeros(3))

    def __post_init__(self) -> None:
        """Store read-only float64 copies."""
        for name in ("accel", "gyro"):
            value = np.array(getattr(self, name), dtype=np.float64).flatten()
            if value.shape != (3,):
                raise ValueError(f"Bias {name} must be (3,), got {value.shape}")
            value.setflags(write=False)
            object.__setattr__(self, name, value)

    def equals(self, other: ImuBias, tol: float = 1e-9) -> bool:
        """Return True if both biases agree within `tol`."""
        return bool(
            np.allclose(self.accel, other.accel, rtol=0.0, atol=tol)
            and np.allclose(self.gyro, other.gyro, rtol=0.0, atol=tol)
        )


@dataclass(frozen=True)
class ImuParams:
    """IMU noise model and integration settings.

    Attributes:
        gyro_noise_density: Gyroscope white noise (rad/s/sqrt(Hz))
        gyro_random_walk: Gyroscope bias random walk (rad/s^2/sqrt(Hz))
        accel_noise_density: Accelerometer white noise (m/s^2/sqrt(Hz))
        accel_random_walk: Accelerometer bias random walk (m/s^3/sqrt(Hz))
        imu_integration_sigma: Position integration uncertainty (m/sqrt(s))
        n_gravity: Gravity in the navigation frame (3,)
        nominal_rate_hz: IMU sampling rate
        max_dt_s: Intervals longer than this are treated as data gaps
    """

    gyro_noise_density: float = 1.6968e-04
    gyro_random_walk: float = 1.9393e-05
    accel_noise_density: float = 2.0000e-3
    accel_random_walk: float = 3.0000e-3
    imu_integration_sigma: float = 1.0e-8
    n_gravity: tuple[float, float, float] = (0.0, 0.0, -9.81)
    nominal_rate_hz: float = 200.0
    max_dt_s: float = 0.1

    @classmethod
    def from_euroc_yaml(cls, yaml_path: str | Path) -> ImuParams:
        """Load noise parameters from a EuRoC imu0/sensor.yaml.

        Missing keys fall back to the EuRoC defaults.
        """
        path = Path(yaml_path)
        if not path.exists():
            raise FileNotFoundError(f"IMU calibration file not found: {yaml_path}")

        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}

        defaults = cls()
        return cls(
            gyro_noise_density=float(
                data.get("gyroscope_noise_density", defaults.gyro_noise_density)
            ),
            gyro_random_walk=float(
                data.get("gyroscope_random_walk", defaults.gyro_random_walk)
            ),
            accel_noise_density=float(
                data.get("accelerometer_noise_density", defaults.accel_noise_density)
            ),
            accel_random_walk=float(
                data.get("accelerometer_random_walk", defaults.accel_random_walk)
            ),
            imu_integration_sigma=float(
                data.get("imu_integration_sigma", defaults.imu_integration_sigma)
            ),
            nominal_rate_hz=float(data.get("rate_hz", defaults.nominal_rate_hz)),
        )


@dataclass
class PreintegratedImuMeasurements:
    """Relative motion accumulated between two timestamps.

    Attributes:
        delta_t_s: Integrated time span in seconds
        delta_R: Rotation from body at end to body at start (3x3)
        delta_v: Velocity change in the start body frame, gravity excluded
        delta_p: Position change in the start body frame, gravity excluded
        bias: Bias that was subtracted during integration
        covariance: 9x9 covariance of the [delta_R, delta_v, delta_p] errors
        bias_covariance: 6x6 covariance of the [accel, gyro] bias drift
        num_measurements: Number of integrated intervals
        start_ns: Timestamp of the first integrated sample
        end_ns: Timestamp of the last integrated sample
    """

    delta_t_s: float = 0.0
    delta_R: np.ndarray = field(default_factory=lambda: np.eye(3))
    delta_v: np.ndarray = field(default_factory=lambda: np.zeros(3))
    delta_p: np.ndarray = field(default_factory=lambda: np.zeros(3))
    bias: ImuBias = field(default_factory=ImuBias)
    covariance: np.ndarray = field(default_factory=lambda: np.zeros((9, 9)))
    bias_covariance: np.ndarray = field(default_factory=lambda: np.zeros((6, 6)))
    num_measurements: int = 0
    start_ns: int | None = None
    end_ns: int | None = None

    def copy(self) -> PreintegratedImuMeasurements:
        """Return a deep copy."""
        return PreintegratedImuMeasurements(
            delta_t_s=self.delta_t_s,
            delta_R=self.delta_R.copy(),
            delta_v=self.delta_v.copy(),
            delta_p=self.delta_p.copy(),
            bias=self.bias,
            covariance=self.covariance.copy(),
            bias_covariance=self.bias_covariance.copy(),
            num_measurements=self.num_measurements,
            start_ns=self.start_ns,
            end_ns=self.end_ns,
        )


class ImuFrontend:
    """Preintegrates IMU samples between keyframes.

    Thread-safety:
        - `update_bias`, `get_current_imu_bias`, `reset_preintegration_gravity`,
          `get_preintegration_gravity` may be called from any thread.
        - `preintegrate` and `reset_integration_with_cached_bias` must only be
          called from the estimation thread.
    """

    def __init__(self, imu_params: ImuParams, imu_bias: ImuBias | None = None) -> None:
        """Initialize IMU frontend.

        Args:
            imu_params: Noise model and integration settings
            imu_bias: Initial bias estimate (default: zeros)
        """
        self._params = imu_params
        self._lock = threading.Lock()
        self._bias = imu_bias if imu_bias is not None else ImuBias()
        self._gravity = np.asarray(imu_params.n_gravity, dtype=np.float64).copy()
        self._pim = PreintegratedImuMeasurements(bias=self._bias)

    def preintegrate(
        self, imu_stamps: np.ndarray, imu_accgyr: np.ndarray
    ) -> PreintegratedImuMeasurements:
        """Add a window of IMU samples to the running preintegration.

        Sample i is held constant over [stamps[i], stamps[i+1]], so N samples
        contribute N-1 intervals. Intervals with dt <= 0 or dt > max_dt_s are
        skipped.

        Args:
            imu_stamps: (N,) timestamps in nanoseconds
            imu_accgyr: (6, N) samples, rows 0-2 accelerometer, rows 3-5 gyroscope

        Returns:
            Copy of the preintegration accumulated since the last reset

        Raises:
            ValueError: If the array shapes don't match
        """
        imu_stamps = np.asarray(imu_stamps, dtype=np.int64).flatten()
        imu_accgyr = np.asarray(imu_accgyr, dtype=np.float64)
        if imu_accgyr.ndim != 2 or imu_accgyr.shape[0] != 6:
            raise ValueError(f"IMU samples must be 6xN, got {imu_accgyr.shape}")
        if imu_accgyr.shape[1] != len(imu_stamps):
            raise ValueError(
                f"Got {len(imu_stamps)} IMU stamps for {imu_accgyr.shape[1]} samples"
            )

        # Snapshot the shared bias once so an integration interval never sees
        # two different values.
        with self._lock:
            bias = self._bias

        pim = self._pim
        if pim.num_measurements == 0:
            pim.bias = bias

        for i in range(len(imu_stamps) - 1):
            dt = (imu_stamps[i + 1] - imu_stamps[i]) * 1e-9
            if dt <= 0:
                continue
            if dt > self._params.max_dt_s:
                logger.warning(
                    "Skipping IMU interval of %.3fs at t=%d (gap)", dt, imu_stamps[i]
                )
                continue

            accel = imu_accgyr[:3, i] - pim.bias.accel
            omega = imu_accgyr[3:, i] - pim.bias.gyro

            self._propagate_covariance(pim, accel, omega, dt)

            # Position and velocity use the rotation at the start of the interval
            accel_start = pim.delta_R @ accel
            pim.delta_p = pim.delta_p + pim.delta_v * dt + 0.5 * accel_start * dt**2
            pim.delta_v = pim.delta_v + accel_start * dt
            pim.delta_R = pim.delta_R @ exp_so3(omega * dt)
            pim.delta_t_s += dt

            if pim.start_ns is None:
                pim.start_ns = int(imu_stamps[i])
            pim.end_ns = int(imu_stamps[i + 1])
            pim.num_measurements += 1

        return pim.copy()

    def _propagate_covariance(
        self,
        pim: PreintegratedImuMeasurements,
        accel: np.ndarray,
        omega: np.ndarray,
        dt: float,
    ) -> None:
        """Propagate the preintegration covariances over one interval.

        Must run before the deltas are updated: the Jacobians use the
        rotation at the start of the interval.
        """
        params = self._params
        delta_R = pim.delta_R

        # Error state [dtheta, dv, dp]
        A = np.eye(9)
        A[0:3, 0:3] = exp_so3(omega * dt).T
        A[3:6, 0:3] = -delta_R @ skew(accel) * dt
        A[6:9, 0:3] = -0.5 * delta_R @ skew(accel) * dt**2
        A[6:9, 3:6] = np.eye(3) * dt

        B = np.zeros((9, 3))
        B[0:3] = right_jacobian_so3(omega * dt) * dt

        C = np.zeros((9, 3))
        C[3:6] = delta_R * dt
        C[6:9] = 0.5 * delta_R * dt**2

        # Continuous-time densities to discrete-time variances
        gyro_var = params.gyro_noise_density**2 / dt
        accel_var = params.accel_noise_density**2 / dt

        cov = A @ pim.covariance @ A.T + gyro_var * (B @ B.T) + accel_var * (C @ C.T)
        cov[6:9, 6:9] += np.eye(3) * params.imu_integration_sigma**2 * dt
        pim.covariance = 0.5 * (cov + cov.T)

        pim.bias_covariance = pim.bias_covariance + np.diag(
            [params.accel_random_walk**2 * dt] * 3 + [params.gyro_random_walk**2 * dt] * 3
        )

    def reset_integration_with_cached_bias(self) -> None:
        """Restart preintegration using the currently cached bias."""
        with self._lock:
            bias = self._bias
        self._pim = PreintegratedImuMeasurements(bias=bias)

    def update_bias(self, imu_bias: ImuBias) -> None:
        """Replace the cached bias. Thread-safe.

        Takes effect at the next `preintegrate` call on an empty
        preintegration, or after `reset_integration_with_cached_bias`.
        """
        with self._lock:
            self._bias = imu_bias

    def get_current_imu_bias(self) -> ImuBias:
        """Return the cached bias. Thread-safe."""
        with self._lock:
            return self._bias

    def reset_preintegration_gravity(self, reset_value: np.ndarray) -> None:
        """Replace the gravity vector. Thread-safe."""
        value = np.asarray(reset_value, dtype=np.float64).flatten()
        if value.shape != (3,):
            raise ValueError(f"Gravity must be (3,), got {value.shape}")
        with self._lock:
            self._gravity = value.copy()

    def get_preintegration_gravity(self) -> np.ndarray:
        """Return a copy of the gravity vector. Thread-safe."""
        with self._lock:
            return self._gravity.copy()

    def get_imu_params(self) -> ImuParams:
        """Return the (immutable) IMU parameters."""
        return self._params

    @property
    def current_preintegration(self) -> PreintegratedImuMeasurements:
        """Return a copy of the running preintegration."""
        return self._pim.copy()
