import json

import numpy as np
import pytest

from bouncederiv.config import Settings
from bouncederiv.ingest import TrajectoryParseError, load_trajectory


def test_csv_with_header(tmp_path):
    p = tmp_path / "track.csv"
    p.write_text("t,x,y\n0.0,1,2\n0.1,2,\n0.2,3,4\n\n0.3,nan,5\n")
    traj = load_trajectory(p)
    assert len(traj) == 4
    assert traj.dt == pytest.approx(0.1)
    np.testing.assert_array_equal(traj.valid, [True, False, True, False])
    assert traj.x[2] == 3.0
    assert traj.meta["mode"] == "csv_headered"


def test_csv_custom_columns(tmp_path):
    p = tmp_path / "track.csv"
    p.write_text("frame,px,py\n0,1,1\n1,2,4\n")
    settings = Settings.model_validate({"ingest": {"x_column": "px", "y_column": "py"}})
    traj = load_trajectory(p, settings=settings, dt=0.04)
    assert traj.dt == 0.04
    np.testing.assert_array_equal(traj.y, [1.0, 4.0])


def test_headerless_csv(tmp_path):
    p = tmp_path / "track.csv"
    p.write_text("1,2\n3,4\n5,6\n")
    traj = load_trajectory(p)
    assert traj.dt == 1.0
    np.testing.assert_array_equal(traj.x, [1.0, 3.0, 5.0])

    p.write_text("0,1,2\n0.5,3,4\n1.0,5,6\n")
    traj = load_trajectory(p)
    assert traj.dt == pytest.approx(0.5)
    np.testing.assert_array_equal(traj.y, [2.0, 4.0, 6.0])


def test_json(tmp_path):
    p = tmp_path / "track.json"
    p.write_text(json.dumps({"x": [0, 1, None, 3], "y": [0, 1, 2, 3], "dt": 0.25, "name": "ball"}))
    traj = load_trajectory(p)
    assert traj.dt == 0.25
    np.testing.assert_array_equal(traj.valid, [True, True, False, True])
    assert traj.meta["name"] == "ball"


def test_npz(tmp_path):
    p = tmp_path / "track.npz"
    np.savez(p, x=np.arange(4.0), y=np.ones(4), valid=np.array([1, 1, 0, 1], dtype=bool), t=np.arange(4) * 0.2)
    traj = load_trajectory(p)
    assert traj.dt == pytest.approx(0.2)
    np.testing.assert_array_equal(traj.valid, [True, True, False, True])


def test_config_dt_used_without_times(tmp_path):
    p = tmp_path / "track.csv"
    p.write_text("x,y\n1,2\n3,4\n")
    settings = Settings.model_validate({"derivative": {"dt": 0.01}})
    assert load_trajectory(p, settings=settings).dt == 0.01


def test_parse_errors(tmp_path):
    p = tmp_path / "bad.csv"
    p.write_text("t,x,y\n0,1,2\n1,abc,3\n")
    with pytest.raises(TrajectoryParseError) as info:
        load_trajectory(p)
    assert info.value.line == 3
    assert str(info.value).startswith(f"{p}:3:")

    p.write_text("t,x\n0,1\n")
    with pytest.raises(TrajectoryParseError) as info:
        load_trajectory(p)
    assert info.value.line == 1

    p.write_text("1,2,3,4\n")
    with pytest.raises(TrajectoryParseError):
        load_trajectory(p)

    j = tmp_path / "bad.json"
    j.write_text(json.dumps({"x": [1, 2]}))
    with pytest.raises(TrajectoryParseError):
        load_trajectory(j)


def test_unsupported_suffix(tmp_path):
    p = tmp_path / "track.xlsx"
    p.write_text("")
    with pytest.raises(ValueError):
        load_trajectory(p)


def test_time_offset_is_kept(tmp_path):
    p = tmp_path / "track.csv"
    p.write_text("t,x,y\n,0,0\n5.25,1,1\n5.5,2,2\n5.75,3,3\n")
    traj = load_trajectory(p)
    assert traj.dt == pytest.approx(0.25)
    assert traj.t0 == pytest.approx(5.0)
    np.testing.assert_allclose(traj.times(), [5.0, 5.25, 5.5, 5.75])
    assert traj.time_at(1.5) == pytest.approx(5.375)

    j = tmp_path / "track.json"
    j.write_text(json.dumps({"x": [0, 1, 2], "y": [0, 1, 2], "t": [100, 102, 104]}))
    traj = load_trajectory(j)
    assert (traj.t0, traj.dt) == (100.0, 2.0)
