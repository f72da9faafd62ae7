"""Common type helpers for bouncederiv.

This module defines the lightweight containers exchanged between the
ingest, estimation and export layers.  The structures are intentionally
minimal but add clarity around frequently exchanged data.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Sequence

import numpy as np


@dataclass(frozen=True)
class BounceParams:
    """Integer parameters of one derivative evaluation.

    ``spill`` is the half-width of the fitting window (window length
    ``2*spill + 1``).  Derivatives are requested at the ``count`` indices
    ``start, start + stride, ...``.
    """

    spill: int
    start: int = 0
    stride: int = 1
    count: int = 0

    def __post_init__(self) -> None:
        if self.spill < 0:
            raise ValueError("spill must be non-negative")
        if self.start < 0:
            raise ValueError("start must be non-negative")
        if self.stride < 1:
            raise ValueError("stride must be at least 1")
        if self.count < 0:
            raise ValueError("count must be non-negative")

    @property
    def window_length(self) -> int:
        """Return the number of samples in every fitting window."""

        return 2 * self.spill + 1

    @classmethod
    def coerce(cls, params: "BounceParams | Mapping[str, int] | Sequence[int]") -> "BounceParams":
        """Build parameters from a dataclass, mapping or ``(spill, start, stride, count)``."""

        if isinstance(params, cls):
            return params
        if isinstance(params, Mapping):
            return cls(**{k: int(v) for k, v in params.items()})
        values = [int(v) for v in params]
        if len(values) != 4:
            raise ValueError("params must be (spill, start, stride, count)")
        return cls(*values)


@dataclass
class Trajectory:
    """Uniformly sampled 2-D positions with a validity mask.

    Sample ``i`` was taken at ``t0 + i*dt``.
    """

    x: np.ndarray
    y: np.ndarray
    valid: np.ndarray
    dt: float = 1.0
    meta: Dict[str, Any] = field(default_factory=dict)
    t0: float = 0.0

    def __post_init__(self) -> None:
        self.x = np.asarray(self.x, dtype=float)
        self.y = np.asarray(self.y, dtype=float)
        self.valid = np.asarray(self.valid, dtype=bool)
        if not (self.x.shape == self.y.shape == self.valid.shape) or self.x.ndim != 1:
            raise ValueError("x, y and valid must be 1-D arrays of the same length")

    def __len__(self) -> int:
        return int(self.x.size)

    def time_at(self, index):
        """Return the time of sample ``index`` (scalar or array, may be fractional)."""

        return self.t0 + np.asarray(index, dtype=float) * self.dt

    def times(self) -> np.ndarray:
        return self.time_at(np.arange(len(self)))

    @classmethod
    def from_positions(cls, x: Sequence[float], y: Sequence[float], dt: float = 1.0) -> "Trajectory":
        """Build a trajectory treating NaN positions as missing samples."""

        xa = np.asarray(x, dtype=float)
        ya = np.asarray(y, dtype=float)
        return cls(xa, ya, ~(np.isnan(xa) | np.isnan(ya)), dt=dt)


@dataclass
class DerivativeResult:
    """Velocity and acceleration estimates aligned with a trajectory."""

    vx: np.ndarray
    vy: np.ndarray
    ax: np.ndarray
    ay: np.ndarray
    algorithm: str
    diagnostics: Dict[str, Any] = field(default_factory=dict)

    @property
    def speed(self) -> np.ndarray:
        """Return the velocity magnitude at every sample."""

        return np.hypot(self.vx, self.vy)

    @property
    def acceleration(self) -> np.ndarray:
        """Return the acceleration magnitude at every sample."""

        return np.hypot(self.ax, self.ay)
