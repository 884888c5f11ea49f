#!/usr/bin/env python3
"""Demo script for the monocular-inertial vision frontend.

Feature tracks are pushed to a display queue and drawn by a separate
visualizer thread.

Usage:
    python examples/mono_frontend_demo.py
"""

import logging
import queue
import threading

from vio_frontend import (
    CameraParams,
    EurocMonoImuReader,
    ImuParams,
    MonoVisionFrontend,
    TrackingStatus,
    load_frontend_params,
)
from vio_frontend.visualization import RerunVisualizer

logger = logging.getLogger("mono_frontend_demo")


def display_loop(display_queue: queue.Queue, visualizer: RerunVisualizer) -> None:
    """Draw payloads until a None sentinel arrives."""
    while True:
        payload = display_queue.get()
        if payload is None:
            break
        visualizer.log_payload(payload)


def main() -> None:
    """Run the mono frontend demo."""
    # Configuration
    dataset_path = "data/euroc/MH_01_easy/mav0"
    params_path = "config/frontend_params.yaml"
    max_frames = None  # Set to int to limit frames

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    logger.info("Initializing mono frontend...")
    params = load_frontend_params(params_path)
    reader = EurocMonoImuReader(dataset_path)
    camera_params = CameraParams.from_euroc_yaml(f"{dataset_path}/cam0/sensor.yaml")
    imu_params = ImuParams.from_euroc_yaml(f"{dataset_path}/imu0/sensor.yaml")

    visualizer = RerunVisualizer("vio-frontend", max_age=params.tracker.max_feature_age)
    display_queue: queue.Queue = queue.Queue(maxsize=10)
    display_thread = threading.Thread(
        target=display_loop, args=(display_queue, visualizer), daemon=True
    )
    display_thread.start()

    status_counts = {status: 0 for status in TrackingStatus}
    total_ms = 0.0

    with MonoVisionFrontend(
        params, imu_params, camera_params, display_queue=display_queue
    ) as frontend:
        logger.info("Processing %d frames...", len(reader))

        for i, frontend_input in enumerate(reader):
            if max_frames is not None and i >= max_frames:
                break

            output = frontend.spin_once(frontend_input)
            if output is None:
                continue

            total_ms += output.timing.total_ms
            if output.is_keyframe:
                status_counts[output.status_mono] += 1
                visualizer.log_frontend_output(output)

            if output.is_keyframe and output.keyframe_id % 10 == 0:
                info = output.debug_tracker_info
                logger.info(
                    "KF %4d  frame %5d  %-13s  features %3d  inliers %3d  %5.1fms",
                    output.keyframe_id,
                    output.frame_id,
                    output.status_mono.value,
                    len(output.frame),
                    info.nr_mono_inliers if info is not None else 0,
                    output.timing.total_ms,
                )

        n_frames = frontend.frame_count
        n_keyframes = frontend.keyframe_count

    display_queue.put(None)
    display_thread.join(timeout=5.0)

    logger.info("Frames processed: %d", n_frames)
    logger.info("Keyframes:        %d", n_keyframes)
    for status, count in status_counts.items():
        logger.info("  %-13s %d", status.value, count)
    if n_frames > 0:
        logger.info("Average time per frame: %.1f ms", total_ms / n_frames)


if __name__ == "__main__":
    main()
