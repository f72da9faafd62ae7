"""Plotting helpers built on matplotlib."""

from .plot import plot_derivatives
from .styles import apply_style

__all__ = ["plot_derivatives", "apply_style"]
