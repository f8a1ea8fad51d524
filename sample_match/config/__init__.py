from __future__ import annotations

import os
import re
from pathlib import Path

import yaml
from beartype import beartype
from yaml import MappingNode, ScalarNode
from yaml.loader import SafeLoader

# ${NAME} or ${NAME:-fallback}
_ENV_PATTERN = re.compile(r"\$\{([^}:{]+)(?::-([^}]*))?\}")


class ConfigError(Exception):
    """Raised when configuration loading or validation fails."""

    pass


class EnvVarLoader(SafeLoader):
    """YAML loader that expands ``${NAME}`` and ``${NAME:-fallback}`` in scalars."""

    def construct_scalar(self, node: ScalarNode | MappingNode) -> str:
        value: str = super().construct_scalar(node)
        if isinstance(value, str):
            value = _ENV_PATTERN.sub(lambda m: os.environ.get(m.group(1), m.group(2) or ""), value)
        return value


@beartype
def load_from_yaml(path: str | Path, section: str | None = None) -> dict[str, object]:
    """
    Load a YAML config file with environment variable interpolation.

    Args:
        path: Path to the YAML config file.
        section: Top-level key whose mapping is returned instead of the whole
            document, for settings embedded in a larger harness file.

    Raises:
        ConfigError: If the file does not exist, the YAML is invalid, or the
            root (or section) is not a mapping.
    """
    config_path: Path = Path(path)
    if not config_path.is_file():
        raise ConfigError(f"Config file not found: {config_path}")
    try:
        with config_path.open("r", encoding="utf-8") as f:
            data = yaml.load(f, Loader=EnvVarLoader)
    except yaml.YAMLError as err:
        raise ConfigError(f"YAML parsing error: {err}") from err

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError("Config root must be a mapping (dict).")
    if section is None:
        return data

    if section not in data:
        raise ConfigError(f"Config section not found: {section}")
    selected = data[section]
    if selected is None:
        return {}
    if not isinstance(selected, dict):
        raise ConfigError(f"Config section {section} must be a mapping (dict).")
    return selected
