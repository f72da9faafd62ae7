"""Derivative estimation entry points.

Two algorithms are available for uniformly sampled 2-D trajectories:

``finite_difference``
    symmetric differences over ``±spill`` samples, computed separately for
    velocity and acceleration (see :func:`first_difference` and
    :func:`second_difference`);
``bounce``
    the window-fitting estimator of :mod:`bouncederiv.core.bounce`, which
    keeps velocity steps sharp instead of smearing them over the window.

Both work in units of samples.  :func:`estimate_derivatives` converts the
result to physical units using the sampling period.
"""

from __future__ import annotations

from typing import Mapping, Optional, Sequence, Tuple

import numpy as np

from ..config import ALGORITHMS, Settings
from ..types import BounceParams, DerivativeResult, Trajectory
from .bounce import BounceTrace, evaluate


def _prepare(
    params: BounceParams | Mapping[str, int] | Sequence[int],
    x: Sequence[float],
    y: Sequence[float],
    valid: Sequence[bool],
) -> Tuple[BounceParams, np.ndarray, np.ndarray, int]:
    p = BounceParams.coerce(params)
    xa = np.array(x, dtype=float)
    ya = np.array(y, dtype=float)
    ok = np.asarray(valid, dtype=bool)
    if xa.shape != ya.shape or xa.shape != ok.shape or xa.ndim != 1:
        raise ValueError("x, y and valid must be 1-D arrays of the same length")
    if p.spill < 1:
        raise ValueError("spill must be at least 1 for finite differences")
    xa[~ok] = np.nan
    ya[~ok] = np.nan
    count = 0
    if p.start < xa.size:
        count = min(p.count, (xa.size - p.start) // p.stride)
    return p, xa, ya, count


def _shifted(values: np.ndarray, index: np.ndarray, offset: int) -> np.ndarray:
    target = index + offset
    out = np.full(index.shape, np.nan)
    inside = (target >= 0) & (target < values.size)
    out[inside] = values[target[inside]]
    return out


def first_difference(
    params: BounceParams | Mapping[str, int] | Sequence[int],
    x: Sequence[float],
    y: Sequence[float],
    valid: Sequence[bool],
) -> Tuple[np.ndarray, np.ndarray]:
    """Estimate velocity with a central difference over ``±spill`` samples.

    ``v[i] = (p[i + spill*stride] - p[i - spill*stride]) / (2*spill)``.  Points
    whose neighbours are missing or outside the array are NaN.
    """

    p, xa, ya, count = _prepare(params, x, y, valid)
    vx = np.full(xa.size, np.nan)
    vy = np.full(xa.size, np.nan)
    if count <= 0:
        return vx, vy
    index = p.start + p.stride * np.arange(count)
    reach = p.spill * p.stride
    vx[index] = (_shifted(xa, index, reach) - _shifted(xa, index, -reach)) / (2 * p.spill)
    vy[index] = (_shifted(ya, index, reach) - _shifted(ya, index, -reach)) / (2 * p.spill)
    missing = index[np.isnan(xa[index]) | np.isnan(ya[index])]
    vx[missing] = np.nan
    vy[missing] = np.nan
    return vx, vy


def second_difference(
    params: BounceParams | Mapping[str, int] | Sequence[int],
    x: Sequence[float],
    y: Sequence[float],
    valid: Sequence[bool],
) -> Tuple[np.ndarray, np.ndarray]:
    """Estimate acceleration with a central second difference over ``±spill``.

    ``a[i] = (p[i + s] - 2*p[i] + p[i - s]) / spill**2`` with ``s =
    spill*stride``.  A missing centre sample also yields NaN.
    """

    p, xa, ya, count = _prepare(params, x, y, valid)
    ax = np.full(xa.size, np.nan)
    ay = np.full(xa.size, np.nan)
    if count <= 0:
        return ax, ay
    index = p.start + p.stride * np.arange(count)
    reach = p.spill * p.stride
    scale = float(p.spill * p.spill)
    ax[index] = (_shifted(xa, index, reach) - 2 * xa[index] + _shifted(xa, index, -reach)) / scale
    ay[index] = (_shifted(ya, index, reach) - 2 * ya[index] + _shifted(ya, index, -reach)) / scale
    return ax, ay


def estimate_derivatives(
    trajectory: Trajectory,
    *,
    settings: Settings | None = None,
    algorithm: str | None = None,
    spill: int | None = None,
    start: int | None = None,
    stride: int | None = None,
    count: int | None = None,
    dt: float | None = None,
    trace: Optional[BounceTrace] = None,
) -> DerivativeResult:
    """Estimate velocity and acceleration of ``trajectory`` in physical units.

    Parameters
    ----------
    trajectory:
        Positions and validity mask.
    settings:
        Optional :class:`~bouncederiv.config.Settings` instance providing
        defaults for the remaining parameters.
    algorithm:
        ``"bounce"`` or ``"finite_difference"``.
    spill:
        Window half-width.  For ``finite_difference`` it replaces both the
        velocity and the acceleration spill.
    start, stride, count:
        Evaluation points ``start + stride*c`` for ``c < count``; ``count``
        defaults to every point up to the end of the trajectory.
    dt:
        Sampling period.  Defaults to ``trajectory.dt`` unless the settings
        override it.
    trace:
        Optional :class:`~bouncederiv.core.bounce.BounceTrace` filled by the
        ``bounce`` algorithm.

    Returns
    -------
    DerivativeResult
        Velocity and acceleration arrays aligned with the trajectory.
    """

    if settings is None:
        settings = Settings()
    cfg = settings.derivative

    algorithm = algorithm or cfg.algorithm
    if algorithm not in ALGORITHMS:
        raise ValueError(f"unknown derivative algorithm: {algorithm}")
    start = cfg.start if start is None else start
    stride = cfg.stride if stride is None else stride
    if count is None:
        count = len(trajectory) if cfg.count is None else cfg.count
    if dt is None:
        dt = trajectory.dt if cfg.dt is None else cfg.dt
    if dt <= 0:
        raise ValueError("dt must be positive")

    x, y, valid = trajectory.x, trajectory.y, trajectory.valid
    if algorithm == "bounce":
        bounce_spill = cfg.bounce_spill if spill is None else spill
        params = BounceParams(bounce_spill, start, stride, count)
        vx, vy, ax, ay = evaluate(params, x, y, valid, trace=trace)
        spills = {"spill": bounce_spill}
    else:
        v_spill = cfg.v_spill if spill is None else spill
        a_spill = cfg.a_spill if spill is None else spill
        vx, vy = first_difference(BounceParams(v_spill, start, stride, count), x, y, valid)
        ax, ay = second_difference(BounceParams(a_spill, start, stride, count), x, y, valid)
        spills = {"v_spill": v_spill, "a_spill": a_spill}

    step_time = dt * stride
    diagnostics = {
        "algorithm": algorithm,
        "start": start,
        "stride": stride,
        "count": count,
        "dt": dt,
        **spills,
    }
    if trace is not None:
        diagnostics["steps"] = [step.time for step in trace.accepted]
    return DerivativeResult(
        vx=vx / step_time,
        vy=vy / step_time,
        ax=ax / step_time**2,
        ay=ay / step_time**2,
        algorithm=algorithm,
        diagnostics=diagnostics,
    )


__all__ = ["first_difference", "second_difference", "estimate_derivatives"]
