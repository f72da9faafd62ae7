"""Local least-squares models for one sliding window of a 2-D trajectory.

A :class:`LocalModel` maps a parameter matrix to ``window_length`` equally
spaced samples.  The basis is a polynomial of degree ``degree`` in the
window-relative time ``t = 0 .. window_length-1``, optionally augmented with
a step in velocity:

``Plain()``
    ``sum_d p[d] * t**d``
``KnownStep(at)``
    the polynomial plus ``p[degree+1] * max(0, t - at)``
``UnknownStep()``
    the polynomial plus ``p[degree+1] * max(0, t - s)`` and
    ``p[degree+2] * (t >= s)`` with ``s = (window_length + 1) // 2``.  The two
    step coefficients give an estimate of where in ``(s-1, s]`` the step
    happened; :meth:`LocalModel.fit` refits at that estimate with a known
    step.

The design matrix and its pseudo-inverse are computed once per model, so a
model is shared by every window of the same shape (see :class:`ModelCache`).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterator, Optional, Sequence, Tuple, Union

import numpy as np
from scipy.linalg import pinv

# distance kept between a refitted step time and the window edges
STEP_MARGIN = 0.001


class ModelError(ValueError):
    """Raised when a model is requested or used in a way that cannot work."""


@dataclass(frozen=True)
class Plain:
    """Pure polynomial basis."""


@dataclass(frozen=True)
class KnownStep:
    """Polynomial plus a velocity step at a fixed window-relative time."""

    at: float


@dataclass(frozen=True)
class UnknownStep:
    """Polynomial plus a velocity step whose time is estimated from the data."""


Variant = Union[Plain, KnownStep, UnknownStep]


def normalize_variant(window_length: int, variant: Variant) -> Variant:
    """Return ``variant`` or ``Plain()`` when a known step cannot be fitted.

    A step needs at least one sample on each side, so a step at or outside
    the window boundary is not representable and degrades to a polynomial.
    """

    if isinstance(variant, KnownStep) and not (0 < variant.at < window_length - 1):
        return Plain()
    return variant


class LocalModel:
    """Design matrix and pseudo-inverse for one window shape."""

    def __init__(
        self,
        window_length: int,
        degree: int,
        variant: Variant,
        *,
        cache: "ModelCache | None" = None,
    ) -> None:
        if window_length < 1:
            raise ModelError("window_length must be positive")
        if degree < 0:
            raise ModelError("degree must be non-negative")

        self.window_length = int(window_length)
        self.degree = int(degree)
        self.variant = normalize_variant(self.window_length, variant)
        self._cache = cache

        if isinstance(self.variant, UnknownStep):
            self.step_at = float((self.window_length + 1) // 2)
        elif isinstance(self.variant, KnownStep):
            self.step_at = float(self.variant.at)
        else:
            self.step_at = 0.0

        t = np.arange(self.window_length, dtype=float)
        columns = [t**d for d in range(self.degree + 1)]
        if self.uses_step:
            columns.append(np.where(t >= self.step_at, t - self.step_at, 0.0))
        if isinstance(self.variant, UnknownStep):
            columns.append(np.where(t >= self.step_at, 1.0, 0.0))
        self.design = np.column_stack(columns)

        if np.linalg.matrix_rank(self.design) < self.num_params:
            raise ModelError(
                f"{type(self.variant).__name__} model of degree {self.degree} "
                f"is rank deficient for a window of {self.window_length} samples"
            )
        self.inverse = pinv(self.design)

    def __repr__(self) -> str:
        return (
            f"LocalModel(window_length={self.window_length}, degree={self.degree}, "
            f"variant={self.variant!r})"
        )

    @property
    def num_params(self) -> int:
        extra = {Plain: 0, KnownStep: 1, UnknownStep: 2}[type(self.variant)]
        return self.degree + 1 + extra

    @property
    def uses_step(self) -> bool:
        """True if the basis has a velocity-step column."""

        return not isinstance(self.variant, Plain)

    # ------------------------------------------------------------------
    # Fitting
    # ------------------------------------------------------------------

    def _window(
        self, x: Sequence[float], y: Sequence[float], start: int, stride: int
    ) -> Optional[np.ndarray]:
        last = start + (self.window_length - 1) * stride
        if start < 0 or last >= len(x) or last >= len(y):
            return None
        idx = start + stride * np.arange(self.window_length)
        data = np.column_stack((np.asarray(x, dtype=float)[idx], np.asarray(y, dtype=float)[idx]))
        if np.isnan(data).any():
            return None
        return data

    def _solve(self, data: np.ndarray) -> Tuple[np.ndarray, float]:
        params = self.inverse @ data
        residual = self.design @ params - data
        return params, float(np.sum(residual * residual))

    def _known_step(self, at: float) -> "LocalModel":
        variant = KnownStep(at)
        if self._cache is not None:
            return self._cache.get(self.window_length, self.degree, variant)
        return LocalModel(self.window_length, self.degree, variant)

    def fit(self, x: Sequence[float], y: Sequence[float], start: int, stride: int) -> Optional["FitResult"]:
        """Fit the window ``start, start+stride, ...`` of ``(x, y)``.

        Returns ``None`` when the window runs outside the arrays or touches a
        NaN sample.  For :class:`UnknownStep` models the returned result is the
        best of the known-step refits at the estimated step times (one per
        dimension plus their ``dv**2`` weighted combination).
        """

        data = self._window(x, y, start, stride)
        if data is None:
            return None
        params, error = self._solve(data)
        if not isinstance(self.variant, UnknownStep):
            return FitResult(self, params, error)

        best: Optional[FitResult] = None
        combined = 0.0
        weight = 0.0
        for dv, guess in _step_estimates(params, self.degree, self.step_at):
            if guess <= 0:
                guess = STEP_MARGIN
            elif guess >= self.window_length - 1:
                guess = self.window_length - 1 - STEP_MARGIN
            refit = self._known_step(guess).fit(x, y, start, stride)
            if best is None or refit.error < best.error:
                best = refit
            combined += dv * dv * guess
            weight += dv * dv
        if weight > 0:
            combined /= weight

        refit = self._known_step(combined).fit(x, y, start, stride)
        if best is None or refit.error < best.error:
            best = refit
        return best

    def fit_presubtracted(
        self,
        x: Sequence[float],
        y: Sequence[float],
        start: int,
        stride: int,
        step_at: float,
        step_size: Sequence[float],
    ) -> Optional["FitResult"]:
        """Fit after removing a known velocity step from the data.

        ``step_size * max(0, t - step_at)`` is subtracted from every sample of
        the window before solving.  The returned result remembers the step so
        derivatives include it.
        """

        if self.uses_step:
            raise ModelError("cannot remove a known step before fitting a model that fits its own step")

        data = self._window(x, y, start, stride)
        if data is None:
            return None
        size = np.asarray(step_size, dtype=float).reshape(2)
        t = np.arange(self.window_length, dtype=float)
        ramp = np.where(t > step_at, t - step_at, 0.0)
        params, error = self._solve(data - np.outer(ramp, size))
        return FitResult(self, params, error, override_at=float(step_at), override_size=size)


def _step_estimates(params: np.ndarray, degree: int, step_at: float) -> Iterator[Tuple[float, float]]:
    """Yield ``(dv, step_time)`` per dimension from unknown-step coefficients.

    ``dv`` is the velocity step and ``extra`` the displacement beyond what a
    step at ``step_at`` would produce, so the step happened ``extra / dv``
    before ``step_at``.  Dimensions without a step are skipped.
    """

    for dim in range(params.shape[1]):
        dv = float(params[degree + 1, dim])
        extra = float(params[degree + 2, dim])
        if dv == 0:
            continue
        yield dv, step_at - extra / dv


@dataclass(frozen=True, eq=False)
class FitResult:
    """Coefficients and residual error of one window fit."""

    model: LocalModel
    params: np.ndarray
    error: float
    override_at: Optional[float] = None
    override_size: Optional[np.ndarray] = None

    @property
    def uses_step(self) -> bool:
        return self.model.uses_step or self.override_at is not None

    def step_at(self) -> float:
        """Return the window-relative time of the velocity step.

        ``0.0`` means the fit has no step.
        """

        if self.override_at is not None:
            return self.override_at
        if isinstance(self.model.variant, UnknownStep):
            shift = 0.0
            weight = 0.0
            for dv, guess in _step_estimates(self.params, self.model.degree, self.model.step_at):
                shift += dv * dv * (self.model.step_at - guess)
                weight += dv * dv
            if weight > 0:
                shift /= weight
            return self.model.step_at - shift
        return self.model.step_at

    def step_size(self) -> np.ndarray:
        """Return the per-dimension velocity step (zeros when there is none)."""

        if self.model.uses_step:
            return np.array(self.params[self.model.degree + 1], dtype=float)
        if self.override_size is not None:
            return np.array(self.override_size, dtype=float)
        return np.zeros(self.params.shape[1])

    def first_derivative(self, t: float) -> np.ndarray:
        """Velocity at window-relative time ``t``.

        The step enters as a true Heaviside jump at :meth:`step_at`.
        """

        result = np.zeros(self.params.shape[1])
        power = 1.0
        for d in range(1, self.model.degree + 1):
            result += d * power * self.params[d]
            power *= t
        if self.uses_step and t >= self.step_at():
            result += self.step_size()
        return result

    def second_derivative(self, t: float) -> np.ndarray:
        """Acceleration at window-relative time ``t``.

        The impulse at a velocity step is drawn as a unit-width pulse on
        ``(step_at - 0.5, step_at + 0.5]``; the velocity uses a sharp step.
        """

        result = np.zeros(self.params.shape[1])
        power = 1.0
        for d in range(2, self.model.degree + 1):
            result += d * (d - 1) * power * self.params[d]
            power *= t
        if self.uses_step:
            at = self.step_at()
            if at - 0.5 < t <= at + 0.5:
                result += self.step_size()
        return result


class ModelCache:
    """Share :class:`LocalModel` instances between windows of one shape."""

    def __init__(self) -> None:
        self._models: Dict[Tuple[int, int, Variant], LocalModel] = {}

    def __len__(self) -> int:
        return len(self._models)

    def get(self, window_length: int, degree: int, variant: Variant) -> LocalModel:
        variant = normalize_variant(window_length, variant)
        key = (window_length, degree, variant)
        model = self._models.get(key)
        if model is None:
            model = LocalModel(window_length, degree, variant, cache=self)
            self._models[key] = model
        return model


__all__ = [
    "STEP_MARGIN",
    "ModelError",
    "Plain",
    "KnownStep",
    "UnknownStep",
    "Variant",
    "normalize_variant",
    "LocalModel",
    "FitResult",
    "ModelCache",
]
