"""Settings registry and YAML settings file helpers."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List

import yaml

SETTINGS_FILE_ENV = "VACANCY_SETTINGS_FILE"
MISSING_MESSAGE = "Missing required setting: {}"
NOT_GIVEN = object()


@dataclass
class Setting:
    package_name: str
    env_var: str
    group: str
    description: str
    default: Any = None


_registry: List[Setting] = []


def register_setting(
    package_name: str,
    env_var: str,
    group: str,
    description: str,
    default: Any = None,
) -> List[Setting]:
    """Register a documented setting.

    Parameters
    ----------
    package_name: str
        Name of the package registering the setting.
    env_var: str
        The environment variable name.
    group: str
        Group the setting belongs to.
    description: str
        Human readable description of the setting.
    default: Any
        Value used when neither the environment nor the settings file sets it.

    Returns
    -------
    List[Setting]
        A copy of all registered settings.
    """
    _registry[:] = [s for s in _registry if s.env_var != env_var]
    _registry.append(
        Setting(
            package_name=package_name,
            env_var=env_var,
            group=group,
            description=description,
            default=default,
        )
    )
    return list(_registry)


def get_settings_registry() -> List[Setting]:
    """Return a copy of the registered settings."""
    return list(_registry)


register_setting(
    package_name="vacancy",
    env_var="VACANCY_DEFAULT_INTERVAL",
    group="Market",
    description="Default tick interval in seconds for actors created without an explicit interval",
    default=1.0,
)
register_setting(
    package_name="vacancy",
    env_var="VACANCY_DEFAULT_EXIT_PROBABILITY",
    group="Market",
    description="Default per-tick probability that an actor releases its resource and leaves the market",
    default=0.01,
)
register_setting(
    package_name="vacancy",
    env_var="VACANCY_STATUS_TIMEOUT",
    group="Market",
    description=(
        "Seconds an actor waits for a resource status reply after a claim. "
        "Unset means the actor's own tick interval."
    ),
    default=None,
)
register_setting(
    package_name="vacancy",
    env_var="VACANCY_METRICS_ENABLED",
    group="Observability",
    description="Set to 0 to disable in-process market metrics",
    default="1",
)


def get_settings_path() -> Path | None:
    """Return the settings file named by ``VACANCY_SETTINGS_FILE``, if any."""
    path = os.environ.get(SETTINGS_FILE_ENV)
    return Path(path) if path else None


def load_settings(path: Path | str | None = None) -> Dict[str, Any]:
    """Load settings from a YAML file.

    A missing file yields an empty mapping.

    Raises:
        ValueError: If the file does not contain a mapping.
    """
    if path is None:
        path = get_settings_path()
    if path is None:
        return {}
    settings_file = Path(path)
    if not settings_file.exists():
        return {}
    with open(settings_file, "r") as f:
        settings = yaml.safe_load(f) or {}
    if not isinstance(settings, dict):
        raise ValueError(f"Settings file {settings_file} must contain a mapping")
    return settings


def get_value(
    key: str,
    settings: Dict[str, Any],
    default_env: Dict[str, Any],
    default: Any = NOT_GIVEN,
) -> Any:
    """Retrieve a value from the environment, the settings file, or the defaults."""
    value: Any = os.environ.get(key)
    if value is None or str(value) == "":
        value = settings.get(key)

    if value is None:
        value = default_env.get(key, default)

    if value is not NOT_GIVEN:
        return value
    raise KeyError(MISSING_MESSAGE.format(key))
