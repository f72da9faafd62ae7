# src/bouncederiv/ingest/trajectory.py
"""Loader for tracked 2-D trajectories.

Supports:
A) CSV with header, e.g. ``t,x,y``.  Column names come from
   :class:`~bouncederiv.config.IngestSettings`; the time column is optional.
B) Headerless CSV with two (``x,y``) or three (``t,x,y``) numeric columns.
C) JSON object with ``x``, ``y`` and optional ``valid``, ``t`` and ``dt``.
D) NPZ archive with the same keys as the JSON layout.

Empty cells, ``nan`` and JSON ``null`` mark missing samples.  When a time
column is present the sampling period is its median spacing and the
trajectory keeps the time of its first sample as ``t0``.
"""

from __future__ import annotations

import csv
import json
import logging
import math
from pathlib import Path
from typing import Any, List, Optional, Sequence, Tuple, Union

import numpy as np

from ..config import IngestSettings, Settings
from ..types import Trajectory

logger = logging.getLogger(__name__)

_MISSING = {"", "nan", "NaN", "NAN", "null", "None", "-"}


class TrajectoryParseError(ValueError):
    """Raised when a trajectory file cannot be parsed."""

    def __init__(self, message: str, *, path: Union[str, Path], line: int):
        self.path = str(path)
        self.line = line
        super().__init__(f"{self.path}:{self.line}: {message}")


def _clean_fieldnames(fieldnames: List[str]) -> List[str]:
    return [fn.strip().lstrip("﻿") for fn in fieldnames]


def _cell(value: Optional[str], *, path: Path, line: int) -> float:
    text = (value or "").strip()
    if text in _MISSING:
        return math.nan
    try:
        return float(text)
    except ValueError:
        raise TrajectoryParseError(f"Invalid number {text!r}", path=path, line=line) from None


def _values(seq: Optional[Sequence[Any]]) -> np.ndarray:
    if seq is None:
        return np.zeros(0)
    return np.asarray([math.nan if v is None else float(v) for v in seq], dtype=float)


def _timing(times: np.ndarray, default: float) -> Tuple[float, float]:
    """Return ``(dt, t0)`` so that sample ``i`` sits at ``t0 + i*dt``."""

    known = np.flatnonzero(~np.isnan(times))
    if known.size == 0:
        return default, 0.0
    dt = default
    if known.size > 1:
        dt = float(np.median(np.diff(times[known]) / np.diff(known)))
        if dt <= 0:
            raise ValueError("trajectory times must increase")
    return dt, float(times[known[0]] - known[0] * dt)


def _build(
    x: np.ndarray,
    y: np.ndarray,
    valid: Optional[np.ndarray],
    dt: float,
    meta: dict,
    t0: float = 0.0,
) -> Trajectory:
    if x.shape != y.shape:
        raise ValueError("x and y must contain the same number of samples")
    mask = ~(np.isnan(x) | np.isnan(y))
    if valid is not None:
        mask &= np.asarray(valid, dtype=bool)
    return Trajectory(x, y, mask, dt=dt, meta=meta, t0=t0)


def _read_csv(path: Path, columns: IngestSettings, dt: float) -> Trajectory:
    with open(path, "r", encoding="utf8", newline="") as fh:
        sample = fh.readline()
        fh.seek(0)
        first = [cell.strip() for cell in sample.split(",")]
        headerless = all(cell in _MISSING or _is_number(cell) for cell in first)

        if headerless:
            reader = csv.reader(fh)
            rows = [(reader.line_num, r) for r in reader if any(c.strip() for c in r)]
            if not rows:
                raise TrajectoryParseError("Empty trajectory file", path=path, line=1)
            width = len(rows[0][1])
            if width not in (2, 3):
                raise TrajectoryParseError("Expected 2 (x,y) or 3 (t,x,y) columns", path=path, line=rows[0][0])
            data = np.asarray(
                [[_cell(c, path=path, line=n) for c in r[:width]] for n, r in rows], dtype=float
            )
            t0 = 0.0
            if width == 3:
                dt, t0 = _timing(data[:, 0], dt)
                data = data[:, 1:]
            meta = {"source": str(path), "mode": "csv_headerless"}
            return _build(data[:, 0], data[:, 1], None, dt, meta, t0)

        reader = csv.DictReader(fh)
        fns = _clean_fieldnames(reader.fieldnames or [])
        reader.fieldnames = fns
        for name in (columns.x_column, columns.y_column):
            if name not in fns:
                raise TrajectoryParseError(f"Missing column {name!r}", path=path, line=1)

        xs: List[float] = []
        ys: List[float] = []
        ts: List[float] = []
        for row in reader:
            n = reader.line_num
            if not any((v or "").strip() for v in row.values() if isinstance(v, str)):
                continue
            xs.append(_cell(row.get(columns.x_column), path=path, line=n))
            ys.append(_cell(row.get(columns.y_column), path=path, line=n))
            if columns.time_column in fns:
                ts.append(_cell(row.get(columns.time_column), path=path, line=n))

    t0 = 0.0
    if ts:
        dt, t0 = _timing(np.asarray(ts, dtype=float), dt)
    meta = {"source": str(path), "mode": "csv_headered"}
    return _build(np.asarray(xs), np.asarray(ys), None, dt, meta, t0)


def _is_number(text: str) -> bool:
    try:
        float(text)
    except ValueError:
        return False
    return True


def load_trajectory(
    path: str | Path,
    *,
    settings: Settings | None = None,
    dt: float | None = None,
) -> Trajectory:
    """Load a trajectory file into a :class:`~bouncederiv.types.Trajectory`.

    ``dt`` is the sampling period used when the file carries no times; it
    defaults to the configured ``derivative.dt`` or ``1.0``.
    """

    if settings is None:
        settings = Settings()
    if dt is None:
        dt = settings.derivative.dt or 1.0
    path = Path(path)
    t0 = 0.0

    if path.suffix == ".npz":
        data = np.load(path, allow_pickle=False)
        x = np.asarray(data["x"], dtype=float)
        y = np.asarray(data["y"], dtype=float)
        valid = np.asarray(data["valid"], dtype=bool) if "valid" in data.files else None
        if "t" in data.files:
            dt, t0 = _timing(np.asarray(data["t"], dtype=float), dt)
        elif "dt" in data.files:
            dt = float(data["dt"])
        trajectory = _build(x, y, valid, dt, {"source": str(path), "mode": "npz"}, t0)

    elif path.suffix == ".json":
        with open(path, "r", encoding="utf8") as fh:
            obj = json.load(fh)
        if not isinstance(obj, dict) or "x" not in obj or "y" not in obj:
            raise TrajectoryParseError("JSON trajectory must define 'x' and 'y'", path=path, line=1)
        valid = obj.get("valid")
        if "t" in obj:
            dt, t0 = _timing(_values(obj["t"]), dt)
        elif "dt" in obj:
            dt = float(obj["dt"])
        meta = {k: v for k, v in obj.items() if k not in {"x", "y", "valid", "t", "dt"}}
        meta.update(source=str(path), mode="json")
        trajectory = _build(_values(obj["x"]), _values(obj["y"]), valid, dt, meta, t0)

    elif path.suffix in {".csv", ".txt"}:
        trajectory = _read_csv(path, settings.ingest, dt)

    else:
        raise ValueError(f"Unsupported trajectory file format: {path.suffix}")

    logger.debug(
        "loaded %d samples (%d valid) from %s", len(trajectory), int(trajectory.valid.sum()), path
    )
    return trajectory
