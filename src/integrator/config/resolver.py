"""
Configuration resolution and environment variable substitution.
"""

import os
import re
from typing import Any

_ENV_VAR = re.compile(r"\${([^}]+)}")


def resolve_config(config_data: dict[str, Any], env: str = "dev") -> dict[str, Any]:
    """
    Resolve ``${VAR_NAME}`` and ``{env}`` placeholders throughout *config_data*.

    Unknown variables are left as written so missing secrets stay visible.
    """
    return _resolve_value(config_data, env)


def _resolve_value(value: Any, env: str) -> Any:
    """Recursively resolve values in configuration."""
    if isinstance(value, dict):
        return {k: _resolve_value(v, env) for k, v in value.items()}
    elif isinstance(value, list):
        return [_resolve_value(item, env) for item in value]
    elif isinstance(value, str):
        result = _ENV_VAR.sub(lambda m: os.getenv(m.group(1), m.group(0)), value)
        return result.replace("{env}", env)
    else:
        return value
