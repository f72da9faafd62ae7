import json

import pytest
from pydantic import ValidationError

from bouncederiv.config import Settings, load_settings


def test_defaults():
    s = Settings()
    assert s.derivative.algorithm == "bounce"
    assert s.derivative.bounce_spill == 3
    assert s.derivative.v_spill == 1
    assert s.derivative.a_spill == 2
    assert s.derivative.dt is None
    assert s.ingest.x_column == "x"


def test_from_env(monkeypatch):
    monkeypatch.setenv("BOUNCEDERIV_DERIVATIVE__STRIDE", "3")
    monkeypatch.setenv("BOUNCEDERIV_DERIVATIVE__ALGORITHM", "finite-difference")
    s = Settings.from_env()
    assert s.derivative.stride == 3
    assert s.derivative.algorithm == "finite_difference"


def test_from_env_plain_string(monkeypatch):
    monkeypatch.setenv("BOUNCEDERIV_VIZ__TITLE", "Ball drop")
    s = Settings.from_env()
    assert s.viz.title == "Ball drop"


def test_load_settings_json(tmp_path):
    p = tmp_path / "cfg.json"
    p.write_text(json.dumps({"derivative": {"bounce_spill": 5, "dt": 0.02}, "unknown": 1}))
    s = load_settings(p)
    assert s.derivative.bounce_spill == 5
    assert s.derivative.dt == 0.02


def test_load_settings_yaml(tmp_path):
    p = tmp_path / "cfg.yaml"
    p.write_text("derivative:\n  algorithm: finite_difference\ningest:\n  x_column: px\n")
    s = load_settings(p)
    assert s.derivative.algorithm == "finite_difference"
    assert s.ingest.x_column == "px"


def test_invalid_values(tmp_path):
    with pytest.raises(ValidationError):
        Settings.model_validate({"derivative": {"bounce_spill": 1}})
    with pytest.raises(ValidationError):
        Settings.model_validate({"derivative": {"algorithm": "spline"}})
    with pytest.raises(ValidationError):
        Settings.model_validate({"derivative": {"dt": 0}})
    p = tmp_path / "cfg.json"
    p.write_text("[1, 2]")
    with pytest.raises(TypeError):
        load_settings(p)


def test_from_env_section_values(monkeypatch):
    monkeypatch.setenv("BOUNCEDERIV_DERIVATIVE", '{"stride": 4, "algorithm": "finite_difference"}')
    s = Settings.from_env()
    assert s.derivative.stride == 4
    assert s.derivative.algorithm == "finite_difference"


def test_from_env_section_not_json(monkeypatch):
    # handed to validation as a plain string instead of failing to decode
    monkeypatch.setenv("BOUNCEDERIV_DERIVATIVE", "stride=4")
    with pytest.raises(ValidationError):
        Settings.from_env()
