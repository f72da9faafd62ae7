from __future__ import annotations

"""Configuration utilities for bouncederiv.

This module defines a hierarchical configuration schema using Pydantic models.
The :class:`Settings` container groups the derivative estimation parameters
together with ingest, export and visualisation options.  Instances can be
populated from environment variables or from YAML/JSON files with matching
nested keys.
"""

import json
from pathlib import Path
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic_settings.sources import EnvSettingsSource
import yaml


ALGORITHMS = ("bounce", "finite_difference")


class SectionModel(BaseModel):
    """Base model for configuration subsections that ignores unknown fields."""

    model_config = ConfigDict(extra="ignore", validate_assignment=True)


# ---------------------------------------------------------------------------
# Settings schema
# ---------------------------------------------------------------------------


class DerivativeSettings(SectionModel):
    """Parameters controlling velocity and acceleration estimates."""

    algorithm: Literal["bounce", "finite_difference"] = "bounce"
    bounce_spill: int = Field(3, ge=2)
    v_spill: int = Field(1, ge=1)
    a_spill: int = Field(2, ge=1)
    start: int = Field(0, ge=0)
    stride: int = Field(1, ge=1)
    count: Optional[int] = Field(None, ge=0)
    dt: Optional[float] = Field(None, gt=0)

    @field_validator("algorithm", mode="before")
    @classmethod
    def _normalise_algorithm(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().lower().replace("-", "_")
        return value


class IngestSettings(SectionModel):
    """Column names used when reading trajectory tables."""

    time_column: str = "t"
    x_column: str = "x"
    y_column: str = "y"


class ExportSettings(SectionModel):
    """Options for writing derivative tables."""

    float_format: str = "%.10g"


class VizSettings(SectionModel):
    """Configuration for simple visualisation helpers."""

    title: str = "Derivatives"
    save: str | None = None


class Settings(BaseSettings):
    """Container for all runtime configuration sections."""

    derivative: DerivativeSettings = Field(default_factory=DerivativeSettings)
    ingest: IngestSettings = Field(default_factory=IngestSettings)
    export: ExportSettings = Field(default_factory=ExportSettings)
    viz: VizSettings = Field(default_factory=VizSettings)

    model_config = SettingsConfigDict(
        env_prefix="BOUNCEDERIV_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        class PlainStringEnvSettingsSource(EnvSettingsSource):
            """Keep values that are not valid JSON as plain strings."""

            def decode_complex_value(self, field_name, target_field, value):  # type: ignore[override]
                try:
                    return super().decode_complex_value(field_name, target_field, value)
                except json.JSONDecodeError:
                    return value

        env_settings.__class__ = PlainStringEnvSettingsSource
        return init_settings, env_settings, dotenv_settings, file_secret_settings

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from ``BOUNCEDERIV_*`` environment variables."""

        return cls()


# ---------------------------------------------------------------------------
# Loading utilities
# ---------------------------------------------------------------------------


def load_settings(path: str | Path) -> Settings:
    """Load settings from a JSON or YAML file."""

    p = Path(path)
    text = p.read_text()
    if p.suffix.lower() in {".yaml", ".yml"}:
        data = yaml.safe_load(text) or {}
    else:
        data = json.loads(text)
    if not isinstance(data, dict):
        raise TypeError("Configuration file must define a mapping")
    return Settings.model_validate(data)
