"""CSV log of per-frame frontend results."""

from __future__ import annotations

import csv
from pathlib import Path

from .messages import FrontendOutput

COLUMNS = [
    "frame_id",
    "keyframe_id",
    "timestamp_ns",
    "is_keyframe",
    "status_mono",
    "nr_keypoints",
    "nr_mono_inliers",
    "total_ms",
]


class FrontendLogger:
    """Writes one CSV row per processed frontend input.

    Output file: `<output_dir>/frontend_status.csv`
    """

    def __init__(self, output_dir: str | Path) -> None:
        """Create the output directory and write the CSV header.

        Args:
            output_dir: Directory for log files (created if missing)
        """
        self._output_dir = Path(output_dir)
        self._output_dir.mkdir(parents=True, exist_ok=True)
        self._path = self._output_dir / "frontend_status.csv"

        self._file = open(self._path, "w", newline="")
        self._writer = csv.writer(self._file)
        self._writer.writerow(COLUMNS)

    def log_frontend_output(self, output: FrontendOutput) -> None:
        """Append a row for one output."""
        info = output.debug_tracker_info
        self._writer.writerow(
            [
                output.frame_id,
                "" if output.keyframe_id is None else output.keyframe_id,
                output.timestamp_ns,
                int(output.is_keyframe),
                output.status_mono.value,
                len(output.frame),
                info.nr_mono_inliers if info is not None else 0,
                f"{output.timing.total_ms:.3f}",
            ]
        )
        self._file.flush()

    def close(self) -> None:
        """Close the CSV file."""
        if not self._file.closed:
            self._file.close()

    @property
    def path(self) -> Path:
        """Return path of the CSV file."""
        return self._path

    def __enter__(self) -> FrontendLogger:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
