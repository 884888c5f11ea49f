"""Tests for EurocMonoImuReader class."""

from pathlib import Path

import cv2
import numpy as np
import pytest

from vio_frontend.frontend.imu_frontend import ImuFrontend, ImuParams
from vio_frontend.frontend.messages import FrontendInput
from vio_frontend.frontend.pose import rotation_angle
from vio_frontend.io.euroc_reader import EurocMonoImuReader

T0 = 1403636579763555584
FRAME_NS = 50_000_000
IMU_NS = 5_000_000
TIMESTAMPS = [T0, T0 + FRAME_NS, T0 + 2 * FRAME_NS]
IMU_START = T0 - 4 * IMU_NS
IMU_COUNT = 25  # IMU_START .. T0 + 100 ms


def write_imu_csv(path: Path) -> None:
    """IMU file where gyro x holds the sample index and accel z is 100 + index."""
    lines = ["#timestamp [ns],w_x [rad s^-1],w_y [rad s^-1],w_z [rad s^-1],"
             "a_x [m s^-2],a_y [m s^-2],a_z [m s^-2]"]
    for i in range(IMU_COUNT):
        lines.append(f"{IMU_START + i * IMU_NS},{i},0,0,0,0,{100 + i}")
    path.write_text("\n".join(lines) + "\n")


@pytest.fixture
def mock_dataset(tmp_path: Path) -> Path:
    """Create a mock EuRoC dataset with cam0 and imu0.

    Args:
        tmp_path: Pytest temporary directory fixture

    Returns:
        Path to mock mav0 directory
    """
    mav0 = tmp_path / "mav0"
    cam0_data = mav0 / "cam0" / "data"
    imu0 = mav0 / "imu0"
    cam0_data.mkdir(parents=True)
    imu0.mkdir(parents=True)

    for i, timestamp in enumerate(TIMESTAMPS):
        image = np.full((100, 100), i * 50, dtype=np.uint8)
        cv2.imwrite(str(cam0_data / f"{timestamp}.png"), image)

    csv_content = "#timestamp [ns],filename\n"
    for timestamp in TIMESTAMPS:
        csv_content += f"{timestamp},{timestamp}.png\n"
    (mav0 / "cam0" / "data.csv").write_text(csv_content)

    write_imu_csv(imu0 / "data.csv")
    return mav0


class TestEurocMonoImuReader:
    """Test suite for EurocMonoImuReader class."""

    def test_initialization(self, mock_dataset: Path):
        """Test that the reader initializes correctly."""
        reader = EurocMonoImuReader(str(mock_dataset))

        assert reader.dataset_path == mock_dataset
        assert len(reader) == 3
        assert len(reader.imu_stamps) == IMU_COUNT

    def test_missing_dataset_path(self, tmp_path: Path):
        """Test that initialization fails with missing dataset path."""
        with pytest.raises(FileNotFoundError, match="Dataset path does not exist"):
            EurocMonoImuReader(tmp_path / "nonexistent")

    def test_missing_cam0(self, tmp_path: Path):
        """Test that initialization fails when cam0 directory is missing."""
        mav0 = tmp_path / "mav0"
        mav0.mkdir()

        with pytest.raises(FileNotFoundError, match="cam0 directory not found"):
            EurocMonoImuReader(mav0)

    def test_missing_data_csv(self, tmp_path: Path):
        """Test that initialization fails when cam0/data.csv is missing."""
        mav0 = tmp_path / "mav0"
        (mav0 / "cam0" / "data").mkdir(parents=True)

        with pytest.raises(FileNotFoundError, match="cam0/data.csv not found"):
            EurocMonoImuReader(mav0)

    def test_missing_imu(self, mock_dataset: Path):
        """Test that initialization fails when imu0/data.csv is missing."""
        (mock_dataset / "imu0" / "data.csv").unlink()

        with pytest.raises(FileNotFoundError, match="IMU data not found"):
            EurocMonoImuReader(mock_dataset)

    def test_empty_image_csv(self, mock_dataset: Path):
        """Test that initialization fails with an empty cam0/data.csv."""
        (mock_dataset / "cam0" / "data.csv").write_text("#timestamp [ns],filename\n")

        with pytest.raises(ValueError, match="No images found"):
            EurocMonoImuReader(mock_dataset)

    def test_empty_imu_csv(self, mock_dataset: Path):
        """Test that initialization fails without IMU samples."""
        (mock_dataset / "imu0" / "data.csv").write_text("#timestamp [ns],w_x\n")

        with pytest.raises(ValueError, match="No IMU samples found"):
            EurocMonoImuReader(mock_dataset)

    def test_invalid_imu_line(self, mock_dataset: Path):
        """Test that malformed IMU rows are reported."""
        (mock_dataset / "imu0" / "data.csv").write_text("123,0,0\n")

        with pytest.raises(ValueError, match="Invalid line"):
            EurocMonoImuReader(mock_dataset)

    def test_invalid_image_line(self, mock_dataset: Path):
        """Test that malformed image rows are reported."""
        (mock_dataset / "cam0" / "data.csv").write_text("not-a-timestamp,x.png\n")

        with pytest.raises(ValueError, match="Invalid line"):
            EurocMonoImuReader(mock_dataset)

    def test_first_input(self, mock_dataset: Path):
        """Test the first packet: image, frame and IMU up to the frame."""
        reader = EurocMonoImuReader(mock_dataset)

        frontend_input = reader.get_next_input()

        assert isinstance(frontend_input, FrontendInput)
        assert frontend_input.timestamp_ns == T0
        assert frontend_input.frame.id == 0
        assert frontend_input.frame.image.shape == (100, 100)
        assert frontend_input.frame.image.dtype == np.uint8
        assert len(frontend_input.frame) == 0
        np.testing.assert_array_equal(
            frontend_input.imu_stamps, IMU_START + np.arange(5) * IMU_NS
        )

    def test_imu_windows_share_boundary(self, mock_dataset: Path):
        """Test that consecutive windows are inclusive on both ends."""
        reader = EurocMonoImuReader(mock_dataset)
        inputs = list(reader)

        for prev, cur in zip(inputs, inputs[1:]):
            assert cur.imu_stamps[0] == prev.timestamp_ns
            assert cur.imu_stamps[-1] == cur.timestamp_ns
            assert cur.imu_stamps[0] == prev.imu_stamps[-1]
        assert inputs[1].num_imu_measurements == 11
        assert inputs[2].num_imu_measurements == 11

    def test_accgyr_row_order(self, mock_dataset: Path):
        """Test that rows 0-2 are accelerometer and rows 3-5 gyroscope."""
        reader = EurocMonoImuReader(mock_dataset)

        frontend_input = reader.get_next_input()

        index = np.arange(5)
        np.testing.assert_array_equal(frontend_input.imu_accgyr[2], 100 + index)
        np.testing.assert_array_equal(frontend_input.imu_accgyr[3], index)
        assert frontend_input.imu_accgyr.shape == (6, 5)

    def test_imu_window_query(self, mock_dataset: Path):
        """Test direct window queries."""
        reader = EurocMonoImuReader(mock_dataset)

        stamps, accgyr = reader.imu_window(T0 + 1, T0 + IMU_NS)
        assert list(stamps) == [T0 + 1, T0 + IMU_NS]
        assert accgyr.shape == (6, 2)

        stamps, _ = reader.imu_window(T0 + 1_000_000_000, T0 + 2_000_000_000)
        assert len(stamps) == 0

    def test_exhausted(self, mock_dataset: Path):
        """Test that get_next_input returns None when exhausted."""
        reader = EurocMonoImuReader(mock_dataset)
        for _ in range(3):
            assert reader.get_next_input() is not None

        assert reader.get_next_input() is None

    def test_reset(self, mock_dataset: Path):
        """Test that reset returns the reader to the beginning."""
        reader = EurocMonoImuReader(mock_dataset)
        reader.get_next_input()
        reader.get_next_input()

        reader.reset()

        assert reader.get_next_input().timestamp_ns == T0

    def test_iterator_protocol(self, mock_dataset: Path):
        """Test iteration and repeated iteration."""
        reader = EurocMonoImuReader(mock_dataset)

        timestamps = [frontend_input.timestamp_ns for frontend_input in reader]
        assert timestamps == TIMESTAMPS

        assert sum(1 for _ in reader) == 3

    def test_image_content(self, mock_dataset: Path):
        """Test that images are loaded in chronological order."""
        reader = EurocMonoImuReader(mock_dataset)

        for i, frontend_input in enumerate(reader):
            assert np.all(frontend_input.frame.image == i * 50)

    def test_missing_image(self, mock_dataset: Path):
        """Test error when a camera image is missing."""
        (mock_dataset / "cam0" / "data" / f"{T0}.png").unlink()
        reader = EurocMonoImuReader(mock_dataset)

        with pytest.raises(FileNotFoundError, match="Camera image not found"):
            reader.get_next_input()

    def test_csv_parsing_with_whitespace(self, mock_dataset: Path):
        """Test CSV parsing handles whitespace correctly."""
        (mock_dataset / "cam0" / "data.csv").write_text(
            f"#timestamp [ns],filename\n  {T0}  ,  {T0}.png  \n"
        )

        reader = EurocMonoImuReader(mock_dataset)

        assert len(reader) == 1
        assert reader.get_next_input().timestamp_ns == T0


@pytest.fixture
def unaligned_dataset(tmp_path: Path) -> Path:
    """EuRoC tree whose frames fall halfway between IMU samples.

    The IMU reads a constant 1 rad/s yaw rate every 5 ms; five frames are
    offset by 2.5 ms from the IMU clock and span 0.2 s.
    """
    mav0 = tmp_path / "mav0"
    cam0_data = mav0 / "cam0" / "data"
    imu0 = mav0 / "imu0"
    cam0_data.mkdir(parents=True)
    imu0.mkdir(parents=True)

    frame_stamps = [T0 + IMU_NS // 2 + i * FRAME_NS for i in range(5)]
    csv_content = "#timestamp [ns],filename\n"
    for timestamp in frame_stamps:
        cv2.imwrite(str(cam0_data / f"{timestamp}.png"), np.zeros((16, 16), dtype=np.uint8))
        csv_content += f"{timestamp},{timestamp}.png\n"
    (mav0 / "cam0" / "data.csv").write_text(csv_content)

    lines = ["#timestamp [ns],w_x,w_y,w_z,a_x,a_y,a_z"]
    for i in range(50):
        lines.append(f"{IMU_START + i * IMU_NS},0,0,1.0,0,0,9.81")
    (imu0 / "data.csv").write_text("\n".join(lines) + "\n")
    return mav0


class TestUnalignedClocks:
    """Test suite for IMU windows when frames fall between IMU samples."""

    def test_borders_are_interpolated(self, mock_dataset: Path):
        """Test that border samples are interpolated at the window stamps."""
        reader = EurocMonoImuReader(mock_dataset)
        half = IMU_NS // 2

        stamps, accgyr = reader.imu_window(T0 + half, T0 + IMU_NS + half)

        assert list(stamps) == [T0 + half, T0 + IMU_NS, T0 + IMU_NS + half]
        # Sample index 4 sits at T0
        np.testing.assert_allclose(accgyr[3], [4.5, 5.0, 5.5])
        np.testing.assert_allclose(accgyr[2], [104.5, 105.0, 105.5])

    def test_windows_start_and_end_at_frames(self, unaligned_dataset: Path):
        """Test that every window is bounded by its frame timestamps."""
        inputs = list(EurocMonoImuReader(unaligned_dataset))

        assert inputs[0].imu_stamps[-1] == inputs[0].timestamp_ns
        for prev, cur in zip(inputs, inputs[1:]):
            assert cur.imu_stamps[0] == prev.timestamp_ns
            assert cur.imu_stamps[-1] == cur.timestamp_ns
            assert cur.num_imu_measurements == 12

    def test_preintegration_covers_frame_span(self, unaligned_dataset: Path):
        """Test that chained windows integrate the full time between frames."""
        inputs = list(EurocMonoImuReader(unaligned_dataset))
        imu = ImuFrontend(ImuParams())

        for frontend_input in inputs[1:]:
            pim = imu.preintegrate(frontend_input.imu_stamps, frontend_input.imu_accgyr)

        span_s = (inputs[-1].timestamp_ns - inputs[0].timestamp_ns) / 1e9
        assert span_s == pytest.approx(0.2)
        assert pim.delta_t_s == pytest.approx(span_s, abs=1e-9)
        assert rotation_angle(pim.delta_R) == pytest.approx(span_s, abs=1e-9)
        assert pim.start_ns == inputs[0].timestamp_ns
        assert pim.end_ns == inputs[-1].timestamp_ns

    def test_end_beyond_imu_range(self, unaligned_dataset: Path):
        """Test that no sample is extrapolated past the last IMU measurement."""
        reader = EurocMonoImuReader(unaligned_dataset)
        last_imu = reader.imu_stamps[-1]

        stamps, accgyr = reader.imu_window(last_imu - IMU_NS // 2, last_imu + IMU_NS)

        assert list(stamps) == [last_imu - IMU_NS // 2, last_imu]
        assert accgyr.shape == (6, 2)
