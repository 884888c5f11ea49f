"""I/O utilities for VIO datasets."""

from .euroc_reader import EurocMonoImuReader

__all__ = [
    "EurocMonoImuReader",
]
