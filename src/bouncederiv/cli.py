from __future__ import annotations

"""Command line interface for bouncederiv using Typer."""

from pathlib import Path
from typing import Dict, List, Optional

import json
import logging

import numpy as np
import typer
from pydantic import ValidationError

from ._typer import bad_parameter
from .config import ALGORITHMS, Settings, load_settings
from .core import BounceTrace, ModelError, estimate_derivatives
from .export import write_derivatives
from .ingest import TrajectoryParseError, load_trajectory
from .utils.logging import get_logger

app = typer.Typer(help="Velocity and acceleration estimates for tracked trajectories")
logger = logging.getLogger(__name__)


def _parse_override_value(raw: str) -> object:
    lower = raw.lower()
    if lower in {"true", "false"}:
        return lower == "true"
    if lower in {"null", "none"}:
        return None
    try:
        return int(raw)
    except ValueError:
        pass
    try:
        return float(raw)
    except ValueError:
        pass
    if raw.startswith("[") or raw.startswith("{"):
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            bad_parameter(f"invalid JSON override value: {raw}", param_hint="--set")
    return raw


def _ensure_path(settings: Settings, keys: List[str]) -> None:
    current: object = settings
    for key in keys[:-1]:
        if not hasattr(current, key):
            bad_parameter(f"unknown configuration key: {'.'.join(keys)}", param_hint="--set")
        current = getattr(current, key)
    if not hasattr(current, keys[-1]):
        bad_parameter(f"unknown configuration key: {'.'.join(keys)}", param_hint="--set")


def _apply_override(data: Dict[str, object], keys: List[str], value: object) -> None:
    target = data
    for key in keys[:-1]:
        existing = target.get(key)
        if not isinstance(existing, dict):
            existing = {}
            target[key] = existing
        target = existing
    target[keys[-1]] = value


def _load(path: Path, settings: Settings):
    try:
        return load_trajectory(path, settings=settings)
    except TrajectoryParseError as exc:
        bad_parameter(str(exc), param_hint="INPUT")
    except ValueError as exc:
        bad_parameter(f"cannot read trajectory: {exc}", param_hint="INPUT")


def _algorithm(name: Optional[str]) -> Optional[str]:
    if name is None:
        return None
    name = name.strip().lower().replace("-", "_")
    if name not in ALGORITHMS:
        bad_parameter(f"unknown algorithm {name!r}", param_hint="--algorithm")
    return name


@app.callback()
def init(
    ctx: typer.Context,
    config: Optional[Path] = typer.Option(
        None,
        "--config",
        dir_okay=False,
        file_okay=True,
        exists=False,
        help="Path to a YAML or JSON configuration file.",
    ),
    set_overrides: List[str] = typer.Option(
        [],
        "--set",
        help="Override configuration values using dotted paths, e.g. derivative.stride=2",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log debug messages"),
) -> None:
    """Initialise the Typer context with validated settings."""

    get_logger(level=logging.DEBUG if verbose else logging.WARNING)

    if config is not None and not config.exists():
        bad_parameter(f"configuration file not found: {config}", param_hint="--config")

    try:
        settings = load_settings(config) if config else Settings()
    except (FileNotFoundError, RuntimeError, TypeError, json.JSONDecodeError, ValidationError) as exc:
        bad_parameter(f"failed to load configuration: {exc}", param_hint="--config")

    if set_overrides:
        data = settings.model_dump()
        for override in set_overrides:
            if "=" not in override:
                bad_parameter("overrides must be of the form --set section.key=value", param_hint="--set")
            key, raw_value = override.split("=", 1)
            if not key:
                bad_parameter("override key cannot be empty", param_hint="--set")
            keys = key.split(".")
            _ensure_path(settings, keys)
            _apply_override(data, keys, _parse_override_value(raw_value))
        try:
            settings = Settings.model_validate(data)
        except ValidationError as exc:
            bad_parameter(f"invalid configuration override: {exc}", param_hint="--set")

    ctx.obj = settings


@app.command()
def derive(
    ctx: typer.Context,
    input: Path = typer.Argument(..., exists=True, dir_okay=False, help="Trajectory file (.csv, .json, .npz)"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write a .csv or .npz table"),
    algorithm: Optional[str] = typer.Option(None, "--algorithm", "-a", help="bounce or finite_difference"),
    spill: Optional[int] = typer.Option(None, "--spill", min=1),
    stride: Optional[int] = typer.Option(None, "--stride", min=1),
    dt: Optional[float] = typer.Option(None, "--dt", help="Sampling period override"),
) -> None:
    """Estimate velocity and acceleration for every sample of ``input``.

    Without ``--output`` a one-line summary is printed together with the
    times of the velocity steps the bounce algorithm accepted.
    """

    cfg: Settings = ctx.obj
    algorithm = _algorithm(algorithm)
    if dt is not None and dt <= 0:
        bad_parameter("dt must be positive", param_hint="--dt")

    trajectory = _load(input, cfg)
    if dt is not None:
        trajectory.dt = dt
    trace = BounceTrace()
    try:
        result = estimate_derivatives(
            trajectory,
            settings=cfg,
            algorithm=algorithm,
            spill=spill,
            stride=stride,
            dt=dt,
            trace=trace,
        )
    except ModelError as exc:
        bad_parameter(f"cannot fit windows: {exc}", param_hint="--spill")
    logger.info("estimated %s derivatives for %s", result.algorithm, input)

    evaluated = int(np.count_nonzero(~np.isnan(result.vx)))
    steps = result.diagnostics.get("steps", [])
    if output is not None:
        try:
            path, _ = write_derivatives(trajectory, result, output, float_format=cfg.export.float_format)
        except ValueError as exc:
            bad_parameter(str(exc), param_hint="--output")
        typer.echo(f"Wrote {evaluated} of {len(trajectory)} samples to {path}")
    else:
        typer.echo(
            f"algorithm={result.algorithm} samples={len(trajectory)} evaluated={evaluated} steps={len(steps)}"
        )
        for time in steps:
            typer.echo(f"step at t={trajectory.t0 + time * result.diagnostics['dt']:.6g}")


@app.command()
def plot(
    ctx: typer.Context,
    input: Path = typer.Argument(..., exists=True, dir_okay=False),
    save: Optional[Path] = typer.Option(None, "--save", help="Write the figure instead of showing it"),
    algorithm: Optional[str] = typer.Option(None, "--algorithm", "-a"),
) -> None:
    """Plot positions and derivative estimates of ``input``."""

    from .viz import plot_derivatives

    cfg: Settings = ctx.obj
    algorithm = _algorithm(algorithm)
    trajectory = _load(input, cfg)
    trace = BounceTrace()
    result = estimate_derivatives(trajectory, settings=cfg, algorithm=algorithm, trace=trace)
    target = save if save is not None else cfg.viz.save
    plot_derivatives(
        trajectory,
        result,
        title=cfg.viz.title,
        save=target,
        steps=result.diagnostics.get("steps"),
    )
    if target is None:
        import matplotlib.pyplot as plt

        plt.show()
    else:
        typer.echo(f"Saved figure to {target}")


def main() -> None:
    """Execute the Typer application."""

    app()


if __name__ == "__main__":
    main()
