import json

import numpy as np
import pytest
from typer.testing import CliRunner

from bouncederiv.cli import app


def write_track(tmp_path, name="track.csv"):
    t = np.arange(41, dtype=float)
    y = 2.0 * np.maximum(0.0, t - 20)
    path = tmp_path / name
    rows = ["t,x,y"] + [f"{0.1 * i:.1f},{0.5 * i},{yi}" for i, yi in enumerate(y)]
    path.write_text("\n".join(rows) + "\n")
    return path


def test_derive_summary(tmp_path):
    track = write_track(tmp_path)
    result = CliRunner().invoke(app, ["derive", str(track)])
    assert result.exit_code == 0, result.output
    assert "algorithm=bounce samples=41 evaluated=41" in result.output
    assert "step at t=2" in result.output


def test_derive_writes_output(tmp_path):
    track = write_track(tmp_path)
    out = tmp_path / "derivs.csv"
    result = CliRunner().invoke(app, ["derive", str(track), "-o", str(out), "--algorithm", "finite-difference"])
    assert result.exit_code == 0, result.output
    table = np.loadtxt(out, delimiter=",", skiprows=1)
    assert table.shape == (41, 7)
    # dt comes from the time column
    np.testing.assert_allclose(table[1:-1, 3], 5.0)


def test_set_and_config(tmp_path):
    track = write_track(tmp_path)
    cfg = tmp_path / "cfg.json"
    cfg.write_text(json.dumps({"derivative": {"algorithm": "finite_difference"}}))
    runner = CliRunner()
    result = runner.invoke(app, ["--config", str(cfg), "derive", str(track)])
    assert result.exit_code == 0, result.output
    assert "algorithm=finite_difference" in result.output

    result = runner.invoke(
        app, ["--config", str(cfg), "--set", "derivative.algorithm=bounce", "--set", "derivative.stride=2", "derive", str(track)]
    )
    assert result.exit_code == 0, result.output
    assert "algorithm=bounce" in result.output
    assert "evaluated=20" in result.output


def test_bounce_spill_too_small(tmp_path):
    track = write_track(tmp_path)
    result = CliRunner().invoke(app, ["derive", str(track), "--spill", "1"])
    assert result.exit_code == 2
    assert not isinstance(result.exception, ValueError)

    result = CliRunner().invoke(app, ["derive", str(track), "--spill", "1", "--algorithm", "finite_difference"])
    assert result.exit_code == 0, result.output


def test_step_times_keep_time_offset(tmp_path):
    t = np.arange(41, dtype=float)
    y = 2.0 * np.maximum(0.0, t - 20)
    track = tmp_path / "late.csv"
    rows = ["t,x,y"] + [f"{10 + 0.5 * i},{0.5 * i},{yi}" for i, yi in enumerate(y)]
    track.write_text("\n".join(rows) + "\n")
    runner = CliRunner()
    result = runner.invoke(app, ["derive", str(track)])
    assert result.exit_code == 0, result.output
    assert "step at t=20\n" in result.output

    out = tmp_path / "late_derivs.csv"
    result = runner.invoke(app, ["derive", str(track), "-o", str(out)])
    assert result.exit_code == 0, result.output
    table = np.loadtxt(out, delimiter=",", skiprows=1)
    np.testing.assert_allclose(table[:, 0], 10 + 0.5 * t)


def test_bad_options(tmp_path):
    track = write_track(tmp_path)
    runner = CliRunner()
    assert runner.invoke(app, ["--set", "derivative.nope=1", "derive", str(track)]).exit_code != 0
    assert runner.invoke(app, ["--set", "derivative.stride", "derive", str(track)]).exit_code != 0
    assert runner.invoke(app, ["--set", "derivative.stride=0", "derive", str(track)]).exit_code != 0
    assert runner.invoke(app, ["--config", str(tmp_path / "missing.yaml"), "derive", str(track)]).exit_code != 0
    assert runner.invoke(app, ["derive", str(track), "--algorithm", "spline"]).exit_code != 0
    assert runner.invoke(app, ["derive", str(track), "--dt=-1"]).exit_code != 0

    bad = tmp_path / "bad.csv"
    bad.write_text("t,x,y\n0,1,oops\n")
    result = runner.invoke(app, ["derive", str(bad)])
    assert result.exit_code != 0
    assert result.exit_code == 2


def test_plot_saves_figure(tmp_path):
    matplotlib = pytest.importorskip("matplotlib")
    matplotlib.use("Agg")
    track = write_track(tmp_path)
    fig = tmp_path / "fig.png"
    result = CliRunner().invoke(app, ["plot", str(track), "--save", str(fig)])
    assert result.exit_code == 0, result.output
    assert fig.exists()
