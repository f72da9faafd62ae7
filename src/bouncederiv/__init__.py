"""Bounce-aware velocity and acceleration estimates for tracked trajectories."""

from .core import BounceTrace, estimate_derivatives, evaluate
from .types import BounceParams, DerivativeResult, Trajectory

__all__ = [
    "BounceParams",
    "BounceTrace",
    "DerivativeResult",
    "Trajectory",
    "estimate_derivatives",
    "evaluate",
]

__version__ = "0.1.0"
