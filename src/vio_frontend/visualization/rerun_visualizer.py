"""Rerun-based visualization of frontend feature tracks."""

from __future__ import annotations

import numpy as np
import rerun as rr
import rerun.blueprint as rrb

from ..frontend.messages import FrontendOutput, VisualizerPayload


class RerunVisualizer:
    """Rerun viewer for the mono frontend.

    Entity hierarchy:
        camera/
            image       - Grayscale input image
            features    - Tracked features (colored by track age)
            tracks      - Segments from last keyframe to current position
        status/
            keyframes   - Keyframe markers over time
            inliers     - Mono RANSAC inliers on keyframes
            features    - Number of tracked features
    """

    def __init__(
        self, app_name: str = "vio-frontend", spawn: bool = True, max_age: int = 25
    ) -> None:
        """Initialize Rerun visualization.

        Args:
            app_name: Name for the Rerun application window
            spawn: If True, automatically spawn the Rerun viewer
            max_age: Track age mapped to the end of the color ramp
        """
        rr.init(app_name, spawn=spawn)
        self._max_age = max(max_age, 1)
        self._setup_layout()

    def _setup_layout(self) -> None:
        """Configure the viewer layout"""
        blueprint = rrb.Blueprint(
            rrb.Horizontal(
                contents=[
                    rrb.Spatial2DView(name="Camera", origin="camera"),
                    rrb.TimeSeriesView(name="Frontend status", origin="status"),
                ],
                column_shares=[3, 2],
            )
        )
        rr.send_blueprint(blueprint)

    def log_payload(self, payload: VisualizerPayload) -> None:
        """Log a display-queue payload.

        Args:
            payload: Feature tracks pushed by the frontend
        """
        rr.set_time("timestamp", duration=payload.timestamp_ns / 1e9)
        rr.log("camera/image", rr.Image(payload.image))

        if len(payload.keypoints) > 0:
            rr.log(
                "camera/features",
                rr.Points2D(
                    payload.keypoints,
                    colors=self._age_colors(payload.landmark_ages),
                    radii=3.0,
                ),
            )

        if len(payload.tracks) > 0:
            rr.log(
                "camera/tracks",
                rr.LineStrips2D(
                    payload.tracks,
                    colors=[[0, 255, 255]],  # Cyan
                    radii=1.0,
                ),
            )

    def log_frontend_output(self, output: FrontendOutput) -> None:
        """Log keyframe and tracking-quality scalars of one output."""
        rr.set_time("timestamp", duration=output.timestamp_ns / 1e9)
        rr.log("status/features", rr.Scalars(len(output.frame)))

        if not output.is_keyframe:
            return
        rr.log("status/keyframes", rr.Scalars(1.0))
        if output.debug_tracker_info is not None:
            rr.log(
                "status/inliers",
                rr.Scalars(output.debug_tracker_info.nr_mono_inliers),
            )

    def _age_colors(self, ages: np.ndarray) -> np.ndarray:
        """Green for new tracks fading to red for old ones."""
        t = np.clip(np.asarray(ages, dtype=np.float64) / self._max_age, 0.0, 1.0)
        colors = np.zeros((len(t), 3), dtype=np.uint8)
        colors[:, 0] = (t * 255).astype(np.uint8)
        colors[:, 1] = ((1 - t) * 255).astype(np.uint8)
        return colors
