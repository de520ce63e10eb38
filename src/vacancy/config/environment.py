"""
Environment Configuration Management Module

Centralizes configuration for the market through the Environment class.
Values are resolved from, in order of precedence:

- Environment variables
- The YAML settings file named by ``VACANCY_SETTINGS_FILE``
- Default values

There is no ambient market configuration: callers turn the resolved values
into a ``MarketSettings`` bundle and hand it to the ``Market`` they construct.
"""

import os
from typing import Any, Dict, Optional, cast

from pydantic import BaseModel, Field

from vacancy.config.settings import get_settings_registry, get_value, load_settings

DEFAULT_ENV: Dict[str, Any] = {
    "LOG_LEVEL": None,
    "DEBUG": None,
    "VACANCY_LOG_LEVEL": "INFO",
    **{s.env_var: s.default for s in get_settings_registry()},
}

_FALSE_VALUES = ("0", "false", "no", "off", "")


class MarketSettings(BaseModel):
    """Validated defaults applied by a ``Market`` to the actors it creates."""

    default_interval: float = Field(default=1.0, gt=0)
    default_exit_probability: float = Field(default=0.01, ge=0.0, le=1.0)
    status_timeout: Optional[float] = Field(default=None, gt=0)
    metrics_enabled: bool = True


class Environment(object):
    """
    Class-level accessors for configuration values with type conversion.

    The settings file is read lazily on first access and cached; call
    ``reset()`` to force a reload (tests do this after changing
    ``VACANCY_SETTINGS_FILE``).
    """

    settings: Optional[Dict[str, Any]] = None

    @classmethod
    def load_settings(cls) -> Dict[str, Any]:
        cls.settings = load_settings()
        return cls.settings

    @classmethod
    def reset(cls) -> None:
        cls.settings = None

    @classmethod
    def get(cls, key: str, default: Any = None) -> Any:
        settings = cls.settings if cls.settings is not None else cls.load_settings()
        return get_value(key, settings, DEFAULT_ENV, default)

    @classmethod
    def _get_float(cls, key: str, default: Optional[float]) -> Optional[float]:
        raw = cls.get(key)
        if raw is None or str(raw) == "":
            return default
        try:
            return float(raw)
        except (TypeError, ValueError):
            raise ValueError(f"Setting {key} must be a number, got {raw!r}") from None

    @classmethod
    def get_log_level(cls) -> str:
        """Return desired log level string.

        Priority:
        1) LOG_LEVEL
        2) If DEBUG is truthy, return "DEBUG"
        3) VACANCY_LOG_LEVEL (default "INFO")
        """
        level = os.getenv("LOG_LEVEL")
        if level:
            return str(level).upper()
        debug_env = os.getenv("DEBUG")
        if debug_env and debug_env.lower() not in _FALSE_VALUES:
            return "DEBUG"
        return str(os.getenv("VACANCY_LOG_LEVEL", "INFO")).upper()

    @classmethod
    def get_default_interval(cls) -> float:
        return cast(float, cls._get_float("VACANCY_DEFAULT_INTERVAL", 1.0))

    @classmethod
    def get_default_exit_probability(cls) -> float:
        return cast(float, cls._get_float("VACANCY_DEFAULT_EXIT_PROBABILITY", 0.01))

    @classmethod
    def get_status_timeout(cls) -> Optional[float]:
        return cls._get_float("VACANCY_STATUS_TIMEOUT", None)

    @classmethod
    def is_metrics_enabled(cls) -> bool:
        value = cls.get("VACANCY_METRICS_ENABLED", "1")
        return str(value).lower() not in _FALSE_VALUES

    @classmethod
    def market_settings(cls) -> MarketSettings:
        """Build a validated ``MarketSettings`` from the current configuration."""
        return MarketSettings(
            default_interval=cls.get_default_interval(),
            default_exit_probability=cls.get_default_exit_probability(),
            status_timeout=cls.get_status_timeout(),
            metrics_enabled=cls.is_metrics_enabled(),
        )
