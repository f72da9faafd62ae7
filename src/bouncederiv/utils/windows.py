"""Helpers for working with sliding windows over sequences."""

from __future__ import annotations

from typing import List


def window_indices(index: int, position: int, size: int, stride: int = 1) -> List[int]:
    """Return the sample indices of a strided window.

    The window has ``size`` samples spaced ``stride`` apart and sample
    ``index`` sits at ``position`` within it.  ``position`` may fall outside
    ``[0, size)`` when the window has been shifted away from ``index``.
    ``ValueError`` is raised if the arguments are not sensible.
    """

    if size <= 0 or stride <= 0:
        raise ValueError("size and stride must be positive")
    return [index + stride * (k - position) for k in range(size)]
