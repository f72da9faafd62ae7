"""Matplotlib styles for bouncederiv figures."""

from __future__ import annotations

import matplotlib.pyplot as plt

BASE_STYLE = {
    "figure.figsize": (10, 6),
    "axes.grid": True,
    "grid.linestyle": ":",
    "grid.alpha": 0.4,
    "axes.titlesize": "medium",
    "lines.linewidth": 1.2,
    "lines.markersize": 3,
}


def apply_style(extra: dict | None = None) -> None:
    """Update ``plt.rcParams`` with :data:`BASE_STYLE` and ``extra`` on top."""
    style = BASE_STYLE.copy()
    if extra:
        style.update(extra)
    plt.rcParams.update(style)
