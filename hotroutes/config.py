import logging
import os
import re
from collections.abc import Mapping
from pathlib import Path
from typing import Any, TypedDict

import yaml

logger = logging.getLogger(__name__)

# Default config file name
DEFAULT_CONFIG_FILE = "hotroutes.yaml"

# camelCase spellings accepted for compatibility with existing configs
OPTION_ALIASES = {
    "webRoot": "web_root",
    "webSocketRoot": "web_socket_root",
}

_TRUE_STRINGS = {"1", "true", "yes", "on"}
_FALSE_STRINGS = {"0", "false", "no", "off", ""}


class RouterOptions(TypedDict, total=False):
    hot: bool
    web_root: str
    web_socket_root: str


DEFAULT_OPTIONS: RouterOptions = {
    "hot": False,
    "web_root": "/",
    "web_socket_root": "/",
}


class RoutesConfigError(Exception):
    """Custom exception for configuration errors."""

    pass


def resolve_options(options: Mapping[str, Any] | None = None) -> RouterOptions:
    """Merge router options over the defaults and validate them.

    Args:
        options: Partial options. ``webRoot`` and ``webSocketRoot`` are accepted
            as aliases of ``web_root`` and ``web_socket_root``.

    Returns:
        A complete ``RouterOptions`` mapping.

    Raises:
        RoutesConfigError: On unknown keys, a non-bool ``hot``, or a root that
            does not start with ``/``.

    Examples:
        ```python
        resolve_options({"hot": True, "webRoot": "/app"})
        # {"hot": True, "web_root": "/app", "web_socket_root": "/"}
        ```
    """
    resolved: dict[str, Any] = dict(DEFAULT_OPTIONS)
    for key, value in (options or {}).items():
        name = OPTION_ALIASES.get(key, key)
        if name not in DEFAULT_OPTIONS:
            raise RoutesConfigError(f"Unknown router option '{key}'")
        resolved[name] = value

    if not isinstance(resolved["hot"], bool):
        raise RoutesConfigError(f"Router option 'hot' must be a boolean, got {resolved['hot']!r}")

    for name in ("web_root", "web_socket_root"):
        root = resolved[name]
        if not isinstance(root, str) or not root.startswith("/"):
            raise RoutesConfigError(f"Router option '{name}' must be a path starting with '/', got {root!r}")

    return RouterOptions(**resolved)


def load_raw_config(config_path: str | Path) -> dict[str, Any]:
    """
    Load a configuration file.

    Args:
        config_path: Path to the configuration file.

    Returns:
        Dictionary containing the configuration, empty if the file does not exist.

    Raises:
        RoutesConfigError: If the configuration file could not be loaded.
    """
    try:
        config_path_obj = Path(config_path)
        if not config_path_obj.exists():
            return {}

        with open(config_path_obj) as f:
            config = yaml.safe_load(f)

        if config is None:  # Empty file
            config = {}

        if not isinstance(config, dict):
            raise RoutesConfigError(
                f"Invalid configuration format in {config_path}. Expected a dictionary."
            )

        return config
    except Exception as e:
        if isinstance(e, RoutesConfigError):
            raise
        raise RoutesConfigError(
            f"Error loading configuration from {config_path}: {str(e)}"
        ) from e


def _substitute_env_vars(config: dict[str, Any]) -> dict[str, Any]:
    """Replace ``${VAR_NAME}`` references with environment values.

    Raises:
        RoutesConfigError: If a referenced variable is not set.
    """
    env_pattern = re.compile(r"\$\{([^}]+)\}")

    def replace_env_var(match):
        env_var = match.group(1)
        env_value = os.getenv(env_var)
        if env_value is None:
            raise RoutesConfigError(f"Required environment variable '{env_var}' is not set")
        return env_value

    def substitute_value(value: Any) -> Any:
        if isinstance(value, str):
            return env_pattern.sub(replace_env_var, value)
        elif isinstance(value, dict):
            return {k: substitute_value(v) for k, v in value.items()}
        elif isinstance(value, list):
            return [substitute_value(item) for item in value]
        return value

    return substitute_value(config)


def _coerce_bool(name: str, value: Any) -> Any:
    if not isinstance(value, str):
        return value

    lowered = value.strip().lower()
    if lowered in _TRUE_STRINGS:
        return True
    if lowered in _FALSE_STRINGS:
        return False
    raise RoutesConfigError(f"Router option '{name}' must be a boolean, got {value!r}")


def load_options(config_path: str | Path = DEFAULT_CONFIG_FILE, **overrides: Any) -> RouterOptions:
    """Load router options from a YAML file.

    Options are read from a ``router:`` section when present, otherwise from
    the top level of the file. Keyword overrides that are not None win over
    the file.

    ```yaml
    router:
      hot: ${HOTROUTES_HOT}
      web_root: /app
    ```
    """
    config = _substitute_env_vars(load_raw_config(config_path))
    section = config.get("router", config)
    if not isinstance(section, dict):
        raise RoutesConfigError(f"The 'router' section of {config_path} must be a mapping")

    options = dict(section)
    if "hot" in options:
        options["hot"] = _coerce_bool("hot", options["hot"])

    options.update({k: v for k, v in overrides.items() if v is not None})
    logger.debug(f"Loaded router options from {config_path}: {options}")
    return resolve_options(options)
