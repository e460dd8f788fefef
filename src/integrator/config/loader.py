"""
Configuration file loading.

Reads ``config.yaml`` (and ``config.<env>.yaml`` on top of it) from the
project directory. The file is optional: every setting can also come from
flags or environment variables.
"""

from pathlib import Path
from typing import Any

import yaml

from integrator.config.resolver import resolve_config
from integrator.exceptions import ConfigurationError

CONFIG_FILE_NAME = "config.yaml"


class Config:
    """Integrator configuration container with dict-like access."""

    def __init__(self, data: dict[str, Any]):
        self.data = data

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value using dot notation."""
        value: Any = self.data
        for k in key.split("."):
            if not isinstance(value, dict):
                return default
            value = value.get(k)
            if value is None:
                return default
        return value

    def __getitem__(self, key: str) -> Any:
        if "." in key:
            return self.get(key)
        if key in self.data:
            value = self.data[key]
            if isinstance(value, dict):
                return Config(value)
            return value
        raise KeyError(f"Config key '{key}' not found")

    def __contains__(self, key: str) -> bool:
        value: Any = self.data
        for k in key.split("."):
            if not isinstance(value, dict) or k not in value:
                return False
            value = value[k]
        return True

    def validate(self) -> None:
        """Validate configuration structure."""
        errors = []
        for section in ("hie", "ingest", "sync", "schedule", "logging"):
            value = self.data.get(section)
            if value is not None and not isinstance(value, dict):
                errors.append(f"Configuration '{section}' must be a mapping, got {type(value).__name__}")
        if errors:
            raise ConfigurationError("\n".join(errors))


def load_config(
    project_path: Path | None = None,
    env: str | None = None,
    config_file: Path | None = None,
) -> Config:
    """
    Load integrator configuration.

    Args:
        project_path: Directory holding ``config.yaml`` (default: cwd)
        env: Environment name; ``config.<env>.yaml`` overrides the base file
        config_file: Explicit config file; unlike the default file it must exist

    Returns:
        Config instance, empty when no file is present
    """
    if project_path is None:
        project_path = Path.cwd()

    if config_file is not None:
        if not config_file.is_file():
            raise ConfigurationError(f"Configuration file not found: {config_file}")
        base_config_path = config_file
    else:
        base_config_path = project_path / CONFIG_FILE_NAME

    config_data: dict[str, Any] = {}
    if base_config_path.is_file():
        config_data = _read_yaml(base_config_path)

    if env:
        env_config_path = base_config_path.with_name(f"config.{env}.yaml")
        if env_config_path.is_file():
            _merge_dict(config_data, _read_yaml(env_config_path))

    config = Config(resolve_config(config_data, env or "dev"))
    config.validate()
    return config


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        with open(path) as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        mark = getattr(e, "problem_mark", None)
        where = f" at line {mark.line + 1}, column {mark.column + 1}" if mark is not None else ""
        raise ConfigurationError(
            f"Error parsing {path.name}{where}:\n  {e}\n  File: {path}",
            details={"path": str(path)},
        ) from e
    except OSError as e:
        raise ConfigurationError(f"Cannot read {path}: {e}", details={"path": str(path)}) from e

    if not isinstance(data, dict):
        raise ConfigurationError(f"Configuration must be a mapping, got {type(data).__name__} in {path}")
    return data


def _merge_dict(base: dict, override: dict) -> None:
    """Recursively merge override into base."""
    for key, value in override.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _merge_dict(base[key], value)
        else:
            base[key] = value
