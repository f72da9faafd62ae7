"""Utility modules for loading tracked trajectories."""

from .trajectory import TrajectoryParseError, load_trajectory

__all__ = [
    "load_trajectory",
    "TrajectoryParseError",
]
