"""Profiler settings with environment-variable overrides."""

import os
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator

from .format import PRESETS
from .profiler_logging import get_logger

logger = get_logger()

ENV_DISABLED = "SCOPE_PROFILER_DISABLED"
ENV_FORMAT = "SCOPE_PROFILER_FORMAT"
ENV_PRECISION = "SCOPE_PROFILER_PRECISION"
ENV_LOG_FORMAT = "SCOPE_PROFILER_LOG_FORMAT"


class ProfilerSettings(BaseModel):
    """Settings for measurement and report rendering."""

    enabled: bool = Field(default=True, description="Record samples at all")
    format: str = Field(default="streamlined", description="Glyph preset name")
    precision: int = Field(default=2, ge=0, le=9, description="Decimals of ms/loop")
    log_format: Literal["text", "json"] = Field(default="text")

    @field_validator("format")
    @classmethod
    def validate_format(cls, v: str) -> str:
        name = v.lower()
        if name not in PRESETS:
            raise ValueError(
                f"Unknown format preset '{v}', expected one of {sorted(PRESETS)}"
            )
        return name


def load_settings(**overrides: Any) -> ProfilerSettings:
    """Load profiler settings.

    Precedence (highest to lowest):
    1. Explicit overrides
    2. Environment variables
    3. Defaults
    """
    config_dict: dict[str, Any] = {}

    env_vars = {
        "format": os.environ.get(ENV_FORMAT),
        "precision": os.environ.get(ENV_PRECISION),
        "log_format": os.environ.get(ENV_LOG_FORMAT),
    }
    disabled = os.environ.get(ENV_DISABLED)
    if disabled is not None:
        env_vars["enabled"] = disabled != "1"

    for key, value in env_vars.items():
        if value is not None:
            config_dict[key] = value
            logger.debug(f"Setting {key} taken from environment")

    config_dict.update({k: v for k, v in overrides.items() if v is not None})
    return ProfilerSettings(**config_dict)


_active_settings: ProfilerSettings | None = None


def get_settings() -> ProfilerSettings:
    """Return the settings in effect, loading them on first use."""
    global _active_settings
    if _active_settings is None:
        _active_settings = load_settings()
    return _active_settings


def configure(settings: ProfilerSettings | None = None, **overrides: Any) -> ProfilerSettings:
    """Replace the settings used by the module-level API.

    Args:
        settings: Complete settings to apply. If None, settings are
            loaded from the environment with `overrides` on top.
        **overrides: Individual setting values.

    Returns:
        The settings now in effect.
    """
    global _active_settings
    if settings is None:
        settings = load_settings(**overrides)
    elif overrides:
        settings = ProfilerSettings(**{**settings.model_dump(), **overrides})
    _active_settings = settings
    logger.debug(
        f"Profiler configured: enabled={settings.enabled}, "
        f"format={settings.format}, precision={settings.precision}"
    )
    return settings
