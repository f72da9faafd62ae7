"""Core algorithms and data structures for bouncederiv."""

from .bounce import AcceptedStep, BounceTrace, evaluate
from .derivative import estimate_derivatives, first_difference, second_difference
from .model import FitResult, KnownStep, LocalModel, ModelCache, ModelError, Plain, UnknownStep

__all__ = [
    "AcceptedStep",
    "BounceTrace",
    "evaluate",
    "estimate_derivatives",
    "first_difference",
    "second_difference",
    "FitResult",
    "KnownStep",
    "LocalModel",
    "ModelCache",
    "ModelError",
    "Plain",
    "UnknownStep",
]
