"""Visualization for the vision frontend."""

from .rerun_visualizer import RerunVisualizer

__all__ = [
    "RerunVisualizer",
]
