"""Executor configuration files.

An executor can be configured from a YAML file holding the serializable
ExecutorConfig fields::

    prefix_suffix: " | "
    interactive: silent
    throw_on_non_zero: false
    colors: false
    env:
      CI: "1"
    command_wrapper: docker exec app sh -c "{{commandEscaped}}"
"""

import logging
from pathlib import Path
from typing import Any

import yaml

from multiexec.exceptions import ConfigError
from multiexec.types import SERIALIZABLE_CONFIG_FIELDS, InteractiveMode

logger = logging.getLogger(__name__)

# Expected value types per key; None is accepted for every key.
_FIELD_TYPES: dict[str, tuple[type, ...]] = {
    "cwd": (str,),
    "prefix_suffix": (str,),
    "fix_prefixes_length": (bool,),
    "prefer_local": (bool,),
    "throw_on_non_zero": (bool,),
    "interactive": (str, bool),
    "quiet": (bool,),
    "colors": (bool,),
    "env": (dict,),
    "command_prefix": (str, list),
    "command_wrapper": (str,),
    "concurrent_runner": (list,),
}


def validate_executor_config(data: Any, source: str = "<config>") -> dict[str, Any]:
    """Check a parsed configuration mapping.

    Args:
        data: Parsed YAML document (None is treated as empty)
        source: Name used in error messages

    Returns:
        The mapping with None values dropped

    Raises:
        ConfigError: If the document is not a mapping, has unknown keys or
            values of the wrong type
    """
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"{source}: expected a mapping, got {type(data).__name__}", source=source)

    unknown = sorted(set(data) - set(SERIALIZABLE_CONFIG_FIELDS))
    if unknown:
        raise ConfigError(f"{source}: unknown key(s): {', '.join(unknown)}", source=source, unknown=unknown)

    result: dict[str, Any] = {}
    for key, value in data.items():
        if value is None:
            continue
        if not isinstance(value, _FIELD_TYPES[key]):
            raise ConfigError(
                f"{source}: '{key}' has invalid type {type(value).__name__}",
                source=source,
                key=key,
            )
        if key == "interactive":
            try:
                value = InteractiveMode.coerce(value)
            except ValueError as e:
                raise ConfigError(f"{source}: {e}", source=source, key=key) from e
        if key in ("env", "command_prefix", "concurrent_runner") and not _all_strings(value):
            raise ConfigError(f"{source}: '{key}' must contain strings only", source=source, key=key)
        result[key] = value
    return result


def _all_strings(value: Any) -> bool:
    if isinstance(value, str):
        return True
    if isinstance(value, dict):
        return all(isinstance(k, str) and (v is None or isinstance(v, str)) for k, v in value.items())
    return all(isinstance(item, str) for item in value)


def load_executor_config(path: str | Path) -> dict[str, Any]:
    """Load executor defaults from a YAML file.

    Args:
        path: Configuration file

    Returns:
        Keyword arguments for ExecutorConfig

    Raises:
        ConfigError: If the file cannot be read or parsed, or is invalid
    """
    config_path = Path(path) if isinstance(path, str) else path
    try:
        content = config_path.read_text()
    except OSError as e:
        raise ConfigError(f"Cannot read config file {config_path}: {e}", source=str(config_path)) from e

    try:
        data = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {config_path}: {e}", source=str(config_path)) from e

    config = validate_executor_config(data, source=str(config_path))
    logger.debug(f"Loaded executor config from {config_path}: {sorted(config)}")
    return config
