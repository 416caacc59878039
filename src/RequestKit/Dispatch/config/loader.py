"""
Layered configuration loading for RequestKit.

Sources are applied in order, later ones winning:

1. a YAML or JSON file
2. ``REQUESTKIT_<SECTION>__<KEY>`` environment variables
3. programmatic overrides (the CLI passes its flags here)

Example::

    REQUESTKIT_MULTIPART__MEMORY_THRESHOLD_BYTES=1048576
    REQUESTKIT_HTTP__USER_AGENT="Reports/2.0"

Environment values are parsed as JSON when they parse, so ``7`` becomes an
int and ``false`` a bool; anything else is kept as text.
"""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Union

import yaml
from pydantic import ValidationError

from ..errors import ConfigurationError
from .models import RequestKitConfig

_LOGGER = logging.getLogger(__name__)

ENV_PREFIX = "REQUESTKIT_"

_PARSERS: Dict[str, Callable[[str], Any]] = {
    ".yaml": lambda text: yaml.safe_load(text) or {},
    ".yml": lambda text: yaml.safe_load(text) or {},
    ".json": json.loads,
}


def _read_file(path: Union[str, Path]) -> dict[str, Any]:
    """Parse a YAML/JSON config file into a mapping.

    Raises:
        ConfigurationError: missing, unreadable, malformed or non-mapping file.
    """
    source = Path(path)
    parser = _PARSERS.get(source.suffix.lower())
    if not source.is_file():
        raise ConfigurationError(f"Config file not found: {source}")
    if parser is None:
        raise ConfigurationError(
            f"Unsupported file format: {source.suffix or '<none>'}. Use .yaml or .json"
        )

    try:
        text = source.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigurationError(f"Cannot read config file {source}: {exc}") from exc

    try:
        data = parser(text)
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Invalid YAML in {source}: {exc}") from exc
    except json.JSONDecodeError as exc:
        raise ConfigurationError(f"Invalid JSON in {source}: {exc}") from exc

    if not isinstance(data, dict):
        raise ConfigurationError(f"Config file {source} must contain a mapping")
    return data


def _parse_env_value(raw: str) -> Any:
    try:
        return json.loads(raw)
    except ValueError:
        return raw


def _merge_env_overrides(data: dict[str, Any], env_prefix: str = ENV_PREFIX) -> dict[str, Any]:
    """Overlay ``<prefix>SECTION__KEY`` environment variables onto ``data``.

    Prefixed variables without a ``__`` separator (such as ``REQUESTKIT_CONFIG``,
    the CLI's config path) are not settings and are skipped.
    """
    for name in sorted(os.environ):
        if not name.startswith(env_prefix) or "__" not in name:
            continue
        *parents, leaf = name[len(env_prefix) :].lower().split("__")
        target = data
        for part in parents:
            child = target.get(part)
            if not isinstance(child, dict):
                child = target[part] = {}
            target = child
        target[leaf] = _parse_env_value(os.environ[name])
        _LOGGER.debug("Environment override %s applied", name)
    return data


def _merge_overrides(data: dict[str, Any], overrides: Optional[Mapping[str, Any]]) -> dict[str, Any]:
    """Recursively merge overrides into ``data``; later values win."""
    for key, value in (overrides or {}).items():
        current = data.get(key)
        if isinstance(value, Mapping) and isinstance(current, dict):
            data[key] = _merge_overrides(current, value)
        elif isinstance(value, Mapping):
            data[key] = dict(value)
        else:
            data[key] = value
    return data


def load_config(
    path: Union[str, Path, None] = None,
    env_prefix: str = ENV_PREFIX,
    overrides: Optional[Mapping[str, Any]] = None,
) -> RequestKitConfig:
    """Build a validated :class:`RequestKitConfig` from every configured source.

    Args:
        path: Optional YAML/JSON file providing the base settings.
        env_prefix: Prefix of environment variables to consider.
        overrides: Nested mapping applied last.

    Raises:
        ConfigurationError: If a source cannot be read or the result is invalid.
    """
    data: dict[str, Any] = _read_file(path) if path else {}
    if path:
        _LOGGER.info("Loaded config from %s", path)

    _merge_overrides(_merge_env_overrides(data, env_prefix), overrides)

    try:
        config = RequestKitConfig.model_validate(data)
    except ValidationError as exc:
        raise ConfigurationError(f"Configuration validation failed: {exc}") from exc
    _LOGGER.debug("Configuration validated (hash %s)", config.config_hash()[:8])
    return config


def export_config_schema() -> dict[str, Any]:
    """Return the JSON Schema of :class:`RequestKitConfig`."""
    return RequestKitConfig.model_json_schema()
