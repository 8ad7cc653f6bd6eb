"""YAML settings loader."""
from pathlib import Path

import yaml

from .schemas import GeneratorSettings


def load_settings(settings_path: str | Path) -> GeneratorSettings:
    """
    Load and validate generator settings from a YAML file.

    Args:
        settings_path: Path to YAML settings file

    Returns:
        Validated GeneratorSettings instance

    Raises:
        FileNotFoundError: If settings file doesn't exist
        ValueError: If settings are invalid
        yaml.YAMLError: If YAML parsing fails
    """
    settings_path = Path(settings_path)

    if not settings_path.exists():
        raise FileNotFoundError(f"Settings file not found: {settings_path}")

    with open(settings_path) as f:
        settings_dict = yaml.safe_load(f)

    # An empty file means "all defaults"
    if settings_dict is None:
        settings_dict = {}

    if not isinstance(settings_dict, dict):
        raise ValueError(f"Settings file must contain a mapping: {settings_path}")

    try:
        settings = GeneratorSettings.from_dict(settings_dict)
    except Exception as e:
        raise ValueError(f"Invalid settings: {e}") from e

    return settings
