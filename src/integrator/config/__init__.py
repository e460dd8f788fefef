"""
Configuration management: config.yaml loading, placeholder resolution and
runtime settings.
"""

from integrator.config.loader import Config, load_config
from integrator.config.resolver import resolve_config
from integrator.config.settings import Settings, parse_formats, parse_subject_file

__all__ = [
    "load_config",
    "Config",
    "resolve_config",
    "Settings",
    "parse_formats",
    "parse_subject_file",
]
