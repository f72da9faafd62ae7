"""Plot velocity and acceleration estimates against sample time."""

from __future__ import annotations

from pathlib import Path
from typing import Iterable, Optional

import matplotlib.pyplot as plt
import numpy as np

from ..types import DerivativeResult, Trajectory
from .styles import apply_style


def plot_derivatives(
    trajectory: Trajectory,
    result: DerivativeResult,
    *,
    title: str = "Derivatives",
    save: str | Path | None = None,
    steps: Optional[Iterable[float]] = None,
):
    """Draw positions, velocity and acceleration on three stacked axes.

    ``steps`` are fractional sample indices of detected velocity steps; each
    one is marked with a vertical line.  When ``save`` is given the figure is
    written there and closed, otherwise it is returned for the caller to show.
    """

    apply_style()
    t = trajectory.times()
    x = np.where(trajectory.valid, trajectory.x, np.nan)
    y = np.where(trajectory.valid, trajectory.y, np.nan)

    fig, axes = plt.subplots(3, 1, sharex=True)
    series = (
        ("position", x, y),
        ("velocity", result.vx, result.vy),
        ("acceleration", result.ax, result.ay),
    )
    for ax, (label, sx, sy) in zip(axes, series):
        ax.plot(t, sx, marker=".", label="x")
        ax.plot(t, sy, marker=".", label="y")
        ax.set_ylabel(label)
        for step in steps or ():
            ax.axvline(trajectory.time_at(step), color="grey", linestyle="--", linewidth=0.8)
    axes[0].legend(loc="best")
    axes[0].set_title(f"{title} ({result.algorithm})")
    axes[-1].set_xlabel("time")
    fig.tight_layout()

    if save is not None:
        fig.savefig(save)
        plt.close(fig)
    return fig
