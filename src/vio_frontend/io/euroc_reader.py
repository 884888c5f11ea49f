"""EuRoC MAV dataset reader for monocular-inertial input."""

from __future__ import annotations

from pathlib import Path
from typing import Iterator

import cv2
import numpy as np

from ..frontend.frame import Frame
from ..frontend.messages import FrontendInput


class EurocMonoImuReader:
    """Reader for EuRoC MAV left camera images and IMU samples.

    Each packet holds one cam0 image and the IMU samples covering
    [previous frame timestamp, frame timestamp]. Both borders carry a sample
    interpolated at the frame timestamp, so consecutive windows share their
    boundary sample and no interval is lost when camera and IMU clocks are
    not aligned. The first packet holds every IMU sample up to its frame
    timestamp.

    Example usage:
        reader = EurocMonoImuReader("data/euroc/MH_01_easy/mav0")
        for frontend_input in reader:
            output = frontend.spin_once(frontend_input)
    """

    def __init__(self, dataset_path: str | Path = "data/euroc/MH_01_easy/mav0") -> None:
        """Initialize reader with path to dataset.

        Args:
            dataset_path: Path to mav0 directory

        Raises:
            FileNotFoundError: If dataset path or required files don't exist
            ValueError: If a CSV file is empty or invalid
        """
        self.dataset_path = Path(dataset_path)

        self.cam0_path = self.dataset_path / "cam0"
        self.cam0_data_path = self.cam0_path / "data"
        self.imu_data_path = self.dataset_path / "imu0" / "data.csv"

        self._validate_paths()

        self._image_list = self._load_image_list()
        if not self._image_list:
            raise ValueError(f"No images found in {self.cam0_path / 'data.csv'}")

        # Rows 0-2 accelerometer, rows 3-5 gyroscope
        self._imu_stamps, self._imu_accgyr = self._load_imu()

        self._current_idx = 0

    def _validate_paths(self) -> None:
        """Validate that all required paths exist."""
        if not self.dataset_path.exists():
            raise FileNotFoundError(f"Dataset path does not exist: {self.dataset_path}")

        if not self.cam0_path.exists():
            raise FileNotFoundError(
                f"cam0 directory not found: {self.cam0_path}\n"
                f"Expected structure: {self.dataset_path}/cam0/"
            )

        if not self.cam0_data_path.exists():
            raise FileNotFoundError(f"cam0/data directory not found: {self.cam0_data_path}")

        csv_path = self.cam0_path / "data.csv"
        if not csv_path.exists():
            raise FileNotFoundError(
                f"cam0/data.csv not found: {csv_path}\n"
                f"This file is required to list image timestamps and filenames."
            )

        if not self.imu_data_path.exists():
            raise FileNotFoundError(
                f"IMU data not found: {self.imu_data_path}\n"
                f"Expected EuRoC format with imu0/data.csv"
            )

    def _load_image_list(self) -> list[tuple[int, str]]:
        """Parse cam0/data.csv.

        CSV format:
            #timestamp [ns],filename
            1403636579763555584,1403636579763555584.png

        Returns:
            List of (timestamp_ns, filename) tuples in chronological order
        """
        csv_path = self.cam0_path / "data.csv"
        image_list = []

        with open(csv_path, "r") as f:
            for line in f:
                line = line.strip()
                if not line or line.startswith("#"):
                    continue

                try:
                    timestamp_str, filename = line.split(",")
                    image_list.append((int(timestamp_str.strip()), filename.strip()))
                except ValueError as e:
                    raise ValueError(
                        f"Invalid line in {csv_path}: '{line}'\n"
                        f"Expected format: timestamp,filename"
                    ) from e

        image_list.sort()
        return image_list

    def _load_imu(self) -> tuple[np.ndarray, np.ndarray]:
        """Parse imu0/data.csv.

        CSV format:
            #timestamp [ns],w_x,w_y,w_z,a_x,a_y,a_z

        Returns:
            Tuple of (stamps (N,), accgyr (6, N))
        """
        stamps = []
        samples = []

        with open(self.imu_data_path, "r") as f:
            for line in f:
                line = line.strip()
                if not line or line.startswith("#"):
                    continue

                parts = line.split(",")
                if len(parts) < 7:
                    raise ValueError(
                        f"Invalid line in {self.imu_data_path}: '{line}'\n"
                        f"Expected format: timestamp,w_x,w_y,w_z,a_x,a_y,a_z"
                    )
                try:
                    timestamp_ns = int(parts[0])
                    gyro = [float(v) for v in parts[1:4]]
                    accel = [float(v) for v in parts[4:7]]
                except ValueError as e:
                    raise ValueError(
                        f"Invalid line in {self.imu_data_path}: '{line}'"
                    ) from e

                stamps.append(timestamp_ns)
                samples.append(accel + gyro)

        if not stamps:
            raise ValueError(f"No IMU samples found in {self.imu_data_path}")

        order = np.argsort(stamps, kind="stable")
        imu_stamps = np.asarray(stamps, dtype=np.int64)[order]
        imu_accgyr = np.asarray(samples, dtype=np.float64)[order].T
        return imu_stamps, imu_accgyr

    def _load_image(self, filename: str) -> np.ndarray:
        """Load a cam0 image as grayscale.

        Raises:
            FileNotFoundError: If the image file doesn't exist
            ValueError: If image loading fails
        """
        path = self.cam0_data_path / filename
        if not path.exists():
            raise FileNotFoundError(f"Camera image not found: {path}")

        image = cv2.imread(str(path), cv2.IMREAD_GRAYSCALE)
        if image is None:
            raise ValueError(f"Failed to load image: {path}")
        return image

    def imu_window(self, start_ns: int | None, end_ns: int) -> tuple[np.ndarray, np.ndarray]:
        """Return IMU samples covering [start_ns, end_ns] with interpolated borders.

        The window holds the samples strictly inside the interval plus one
        sample at each border, linearly interpolated between the two
        neighboring measurements (or the measurement itself when a stamp
        coincides). A border outside the recorded IMU range gets no sample.

        Args:
            start_ns: Window start; None means from the first sample
            end_ns: Window end

        Returns:
            Tuple of (stamps (N,), accgyr (6, N))
        """
        stamps = self._imu_stamps
        lo = 0
        if start_ns is not None:
            lo = int(np.searchsorted(stamps, start_ns, side="right"))
        hi = int(np.searchsorted(stamps, end_ns, side="left"))
        hi = max(hi, lo)

        window_stamps = [stamps[lo:hi]]
        window_accgyr = [self._imu_accgyr[:, lo:hi]]

        if start_ns is not None and stamps[0] <= start_ns <= stamps[-1]:
            window_stamps.insert(0, np.array([start_ns], dtype=np.int64))
            window_accgyr.insert(0, self._interpolate_imu(start_ns))
        if stamps[0] <= end_ns <= stamps[-1] and (start_ns is None or end_ns > start_ns):
            window_stamps.append(np.array([end_ns], dtype=np.int64))
            window_accgyr.append(self._interpolate_imu(end_ns))

        return np.concatenate(window_stamps), np.concatenate(window_accgyr, axis=1)

    def _interpolate_imu(self, timestamp_ns: int) -> np.ndarray:
        """Linearly interpolate a (6, 1) IMU sample inside the recorded range."""
        stamps = self._imu_stamps
        i = int(np.searchsorted(stamps, timestamp_ns, side="right")) - 1
        if stamps[i] == timestamp_ns or i == len(stamps) - 1:
            return self._imu_accgyr[:, i : i + 1].copy()

        # Integer differences keep nanosecond precision on epoch stamps
        alpha = (timestamp_ns - stamps[i]) / (stamps[i + 1] - stamps[i])
        sample = (1.0 - alpha) * self._imu_accgyr[:, i] + alpha * self._imu_accgyr[:, i + 1]
        return sample.reshape(6, 1)

    def get_next_input(self) -> FrontendInput | None:
        """Get the next frontend input packet.

        Returns:
            FrontendInput, or None if no more images are available
        """
        if self._current_idx >= len(self._image_list):
            return None

        timestamp_ns, filename = self._image_list[self._current_idx]
        prev_ns = (
            self._image_list[self._current_idx - 1][0] if self._current_idx > 0 else None
        )
        image = self._load_image(filename)
        stamps, accgyr = self.imu_window(prev_ns, timestamp_ns)

        frame = Frame(id=self._current_idx, timestamp_ns=timestamp_ns, image=image)
        self._current_idx += 1
        return FrontendInput(frame=frame, imu_stamps=stamps, imu_accgyr=accgyr)

    def reset(self) -> None:
        """Reset iterator to beginning of dataset."""
        self._current_idx = 0

    @property
    def imu_stamps(self) -> np.ndarray:
        """Return all IMU timestamps."""
        return self._imu_stamps

    def __len__(self) -> int:
        """Return total number of images in dataset."""
        return len(self._image_list)

    def __iter__(self) -> Iterator[FrontendInput]:
        self.reset()
        return self

    def __next__(self) -> FrontendInput:
        frontend_input = self.get_next_input()
        if frontend_input is None:
            raise StopIteration
        return frontend_input
