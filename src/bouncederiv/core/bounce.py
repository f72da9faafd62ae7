"""Bounce-aware velocity and acceleration estimates for 2-D trajectories.

The estimator assumes the motion is locally a constant-acceleration
polynomial except at a few "bounces", where the acceleration is an impulse
and the velocity jumps.  It runs in phases over the ``count`` evaluation
points ``start, start+stride, ...``:

1. place a window of ``2*spill+1`` valid samples around each point and fit a
   polynomial model and a model searching for a velocity step;
2. score each step candidate by how much it would reduce the residual error
   of every window it falls into;
3. accept candidates greedily by descending score, each one claiming the
   windows whose interior contains it, so no window gets two steps;
4. read the derivatives of every window's assigned model at the evaluation
   point.

Missing samples and windows that cannot be placed only show up as NaN in the
outputs.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

import numpy as np

from ..types import BounceParams
from ..utils.windows import window_indices
from .model import FitResult, LocalModel, ModelCache, Plain, UnknownStep

logger = logging.getLogger(__name__)

# constant-acceleration local model
DEGREE = 2

# a step is kept only if its score is at least this many window lengths
# times the polynomial error of its own window
REJECT_FACTOR = 0.6


@dataclass(frozen=True)
class AcceptedStep:
    """A velocity step chosen by the greedy assignment."""

    c: int
    time: float
    size: Tuple[float, float]
    value: float
    windows: Tuple[int, ...]


@dataclass
class BounceTrace:
    """Optional record of the decisions taken by :func:`evaluate`.

    Attributes
    ----------
    c_at:
        Position of each evaluation point inside its window, ``None`` when no
        window could be placed.
    step_times:
        Absolute (trajectory index) time of each step candidate keyed by ``c``.
    values:
        Score of each candidate.
    accepted:
        Steps in the order they were accepted.
    rejected:
        Evaluation points whose candidate scored below the threshold.
    """

    c_at: List[Optional[int]] = field(default_factory=list)
    step_times: Dict[int, float] = field(default_factory=dict)
    values: np.ndarray = field(default_factory=lambda: np.zeros(0))
    accepted: List[AcceptedStep] = field(default_factory=list)
    rejected: List[int] = field(default_factory=list)


@dataclass
class WindowFits:
    """Per evaluation point windows and fits shared between the phases."""

    start: int
    stride: int
    count: int
    window_length: int
    poly_model: LocalModel
    c_at: List[Optional[int]]
    poly_fit: List[Optional[FitResult]]
    step_fit: List[Optional[FitResult]]

    def index(self, c: int) -> int:
        """Trajectory index of evaluation point ``c``."""

        return self.start + self.stride * c

    def window_start(self, c: int) -> int:
        """Trajectory index of the first sample of the window for ``c``."""

        return self.index(c) - self.c_at[c] * self.stride

    def step_time(self, c: int) -> Optional[float]:
        """Absolute time of the step found near ``c`` or ``None``."""

        fit = self.step_fit[c]
        if fit is None:
            return None
        at = fit.step_at()
        if at == 0.0:
            return None
        return self.index(c) + self.stride * (at - self.c_at[c])


def _is_missing(x: np.ndarray, y: np.ndarray, index: int) -> bool:
    return index < 0 or index >= x.size or np.isnan(x[index]) or np.isnan(y[index])


def place_window(x: np.ndarray, y: np.ndarray, i: int, stride: int, window_length: int) -> Optional[int]:
    """Return the position of index ``i`` inside a fully valid window.

    The window is centred on ``i`` when possible.  Otherwise it is shifted up
    past the highest missing sample or down before the lowest one, whichever
    is the smaller move (ties move up).  ``None`` means no window was found,
    which is also the case when sample ``i`` itself is missing.
    """

    if _is_missing(x, y, i):
        return None
    c_at = window_length // 2
    offsets = range(window_length)
    indices = window_indices(i, c_at, window_length, stride)

    highest = next((k for k in reversed(offsets) if _is_missing(x, y, indices[k])), -1)
    if highest < 0:
        return c_at
    lowest = next(k for k in offsets if _is_missing(x, y, indices[k]))

    move_up = highest + 1
    move_down = window_length - lowest
    c_at -= move_up if move_up <= move_down else -move_down

    indices = window_indices(i, c_at, window_length, stride)
    if any(_is_missing(x, y, index) for index in indices):
        return None
    return c_at


def fit_windows(x: np.ndarray, y: np.ndarray, params: BounceParams, cache: ModelCache) -> WindowFits:
    """Place a window for every evaluation point and fit both base models."""

    window_length = params.window_length
    poly_model = cache.get(window_length, DEGREE, Plain())
    step_model = cache.get(window_length, DEGREE, UnknownStep())

    count = params.count
    fits = WindowFits(
        start=params.start,
        stride=params.stride,
        count=count,
        window_length=window_length,
        poly_model=poly_model,
        c_at=[None] * count,
        poly_fit=[None] * count,
        step_fit=[None] * count,
    )
    for c in range(count):
        i = fits.index(c)
        c_at = place_window(x, y, i, params.stride, window_length)
        if c_at is None:
            logger.debug("no valid window for index %d", i)
            continue
        fits.c_at[c] = c_at
        first = fits.window_start(c)
        fits.poly_fit[c] = poly_model.fit(x, y, first, params.stride)
        fits.step_fit[c] = step_model.fit(x, y, first, params.stride)
    return fits


def score_steps(x: np.ndarray, y: np.ndarray, fits: WindowFits) -> np.ndarray:
    """Return the error reduction each step candidate brings to nearby windows.

    Every window centred within half a window of the candidate is refitted
    with the candidate's step removed from its data; the candidate collects
    the drop in residual error of each of those windows.
    """

    values = np.zeros(fits.count)
    half = 0.5 * fits.stride * (fits.window_length - 1)
    last = x.size - 1
    for c in range(fits.count):
        at = fits.step_time(c)
        if at is None:
            continue
        size = fits.step_fit[c].step_size()
        lo = max(fits.start, int(at - half + 0.999))
        hi = min(last, int(at + half + 0.001))
        first_c = -(-(lo - fits.start) // fits.stride)
        for other in range(first_c, fits.count):
            i_other = fits.index(other)
            if i_other > hi:
                break
            poly = fits.poly_fit[other]
            if poly is None:
                continue
            refit = fits.poly_model.fit_presubtracted(
                x,
                y,
                fits.window_start(other),
                fits.stride,
                (at - i_other) / fits.stride + fits.c_at[other],
                size,
            )
            values[c] += poly.error - refit.error
        logger.debug("step candidate at %.3f scores %.4g", at, values[c])
    return values


def assign_steps(
    x: np.ndarray,
    y: np.ndarray,
    fits: WindowFits,
    values: Sequence[float],
    trace: Optional[BounceTrace] = None,
) -> List[Optional[FitResult]]:
    """Greedily give the best scoring steps to the windows that contain them.

    Returns, per evaluation point, the known-step refit to use or ``None`` to
    keep the polynomial fit.
    """

    wl = fits.window_length
    use_model: List[Optional[FitResult]] = [None] * fits.count
    order = sorted(range(fits.count), key=lambda c: -values[c])
    for c in order:
        if use_model[c] is not None:
            continue
        step = fits.step_fit[c]
        if step is None:
            continue
        if values[c] < REJECT_FACTOR * wl * fits.poly_fit[c].error:
            logger.debug("step near index %d rejected, score %.4g", fits.index(c), values[c])
            if trace is not None:
                trace.rejected.append(c)
            continue
        at = step.step_at()
        if at == 0.0:
            continue

        c_step = c + at - fits.c_at[c]
        size = step.step_size()
        c_below = int(c_step)
        claimed = []
        # window offsets stay within (-wl, 2*wl)
        for other in range(max(0, c_below - 2 * wl), min(fits.count, c_below + 2 * wl)):
            if use_model[other] is not None or fits.poly_fit[other] is None:
                continue
            first = other - fits.c_at[other]
            if not first < c_step < first + wl - 1:
                continue
            use_model[other] = fits.poly_model.fit_presubtracted(
                x, y, fits.window_start(other), fits.stride, c_step - first, size
            )
            claimed.append(other)

        time = fits.start + fits.stride * c_step
        logger.debug("step at %.3f accepted for %d windows", time, len(claimed))
        if trace is not None:
            trace.accepted.append(
                AcceptedStep(
                    c=c,
                    time=time,
                    size=(float(size[0]), float(size[1])),
                    value=float(values[c]),
                    windows=tuple(claimed),
                )
            )
    return use_model


def evaluate(
    params: BounceParams | Mapping[str, int] | Sequence[int],
    x: Sequence[float],
    y: Sequence[float],
    valid: Sequence[bool],
    *,
    trace: Optional[BounceTrace] = None,
) -> Tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray]:
    """Estimate velocity and acceleration along a 2-D trajectory.

    Parameters
    ----------
    params:
        :class:`~bouncederiv.types.BounceParams` or ``(spill, start, stride,
        count)``.  Derivatives are computed at ``start + stride*c`` for
        ``c < count``, in units of samples.
    x, y:
        Positions, one per sample.
    valid:
        Validity flag per sample; invalid samples are treated as missing.
    trace:
        Optional :class:`BounceTrace` filled with the intermediate decisions.

    Returns
    -------
    tuple of numpy.ndarray
        ``(x_vel, y_vel, x_acc, y_acc)``, each as long as ``x``.  Samples
        that were not requested or had no usable window are NaN.
    """

    p = BounceParams.coerce(params)
    xa = np.array(x, dtype=float)
    ya = np.array(y, dtype=float)
    ok = np.asarray(valid, dtype=bool)
    if xa.shape != ya.shape or xa.shape != ok.shape or xa.ndim != 1:
        raise ValueError("x, y and valid must be 1-D arrays of the same length")

    length = xa.size
    xa[~ok] = np.nan
    ya[~ok] = np.nan
    x_vel = np.full(length, np.nan)
    y_vel = np.full(length, np.nan)
    x_acc = np.full(length, np.nan)
    y_acc = np.full(length, np.nan)

    if p.start >= length:
        return x_vel, y_vel, x_acc, y_acc
    count = min(p.count, (length - p.start) // p.stride)
    if count <= 0:
        return x_vel, y_vel, x_acc, y_acc
    p = BounceParams(p.spill, p.start, p.stride, count)

    cache = ModelCache()
    fits = fit_windows(xa, ya, p, cache)
    values = score_steps(xa, ya, fits)
    use_model = assign_steps(xa, ya, fits, values, trace)

    for c in range(count):
        model = use_model[c]
        if model is None:
            model = fits.poly_fit[c]
        if model is None:
            continue
        i = fits.index(c)
        x_vel[i], y_vel[i] = model.first_derivative(fits.c_at[c])
        x_acc[i], y_acc[i] = model.second_derivative(fits.c_at[c])

    if trace is not None:
        trace.c_at = list(fits.c_at)
        trace.step_times = {}
        for c in range(count):
            at = fits.step_time(c)
            if at is not None:
                trace.step_times[c] = at
        trace.values = values
    logger.debug("evaluated %d points with %d cached models", count, len(cache))
    return x_vel, y_vel, x_acc, y_acc


__all__ = [
    "DEGREE",
    "REJECT_FACTOR",
    "AcceptedStep",
    "BounceTrace",
    "WindowFits",
    "place_window",
    "fit_windows",
    "score_steps",
    "assign_steps",
    "evaluate",
]
