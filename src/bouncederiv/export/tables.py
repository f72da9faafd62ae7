from __future__ import annotations

"""Write derivative estimates next to the positions they were computed from."""

from pathlib import Path
from typing import Tuple

import numpy as np

from ..types import DerivativeResult, Trajectory

COLUMNS = ("t", "x", "y", "vx", "vy", "ax", "ay")


def derivative_table(trajectory: Trajectory, result: DerivativeResult) -> np.ndarray:
    """Return an ``(n_samples, 7)`` array with columns :data:`COLUMNS`.

    Times start at ``trajectory.t0``.  Missing positions are NaN, as are
    points that were not evaluated.
    """

    n = len(trajectory)
    if result.vx.shape[0] != n:
        raise ValueError("Trajectory and result must contain the same number of samples")
    x = np.where(trajectory.valid, trajectory.x, np.nan)
    y = np.where(trajectory.valid, trajectory.y, np.nan)
    t = trajectory.times()
    return np.column_stack([t, x, y, result.vx, result.vy, result.ax, result.ay])


def write_derivatives(
    trajectory: Trajectory,
    result: DerivativeResult,
    path: str | Path,
    *,
    float_format: str = "%.10g",
) -> Tuple[Path, np.ndarray]:
    """Persist ``result`` to ``path`` as CSV or ``.npz``.

    The CSV variant carries a ``t,x,y,vx,vy,ax,ay`` header; the archive stores
    each column under its own key plus ``dt`` and ``algorithm``.
    """

    table = derivative_table(trajectory, result)
    path = Path(path)
    if path.suffix == ".npz":
        np.savez(
            path,
            dt=trajectory.dt,
            algorithm=result.algorithm,
            **{name: table[:, i] for i, name in enumerate(COLUMNS)},
        )
    elif path.suffix in {".csv", ".txt"}:
        np.savetxt(
            path,
            table,
            delimiter=",",
            header=",".join(COLUMNS),
            comments="",
            fmt=float_format,
        )
    else:
        raise ValueError(f"Unsupported output format: {path.suffix}")
    return path, table
