"""Configuration loading for Seedlink Relay.

The relay reads one YAML file, optionally merged with an override file,
expands ${VAR} references, applies the SERVICE_HOST / SERVICE_PORT
deployment overrides and validates the result against RelayConfig.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any, cast

if TYPE_CHECKING:
    from pathlib import Path

import structlog
import yaml
from pydantic import ValidationError

from seedlink_relay.config.schema import RelayConfig

logger = structlog.get_logger(__name__)

# Deployment overrides for the listen address (container environments)
ENV_HOST = "SERVICE_HOST"
ENV_PORT = "SERVICE_PORT"


class ConfigurationError(Exception):
    """Raised when the relay cannot be configured.

    Attributes:
        errors: Structured pydantic errors, when validation failed
    """

    def __init__(self, message: str, errors: list[dict[str, Any]] | None = None) -> None:
        super().__init__(message)
        self.errors = errors or []


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Read a YAML mapping from disk; an empty file yields an empty dict.

    Raises:
        ConfigurationError: If the file is missing, unreadable, not YAML or not a mapping
    """
    if not path.exists():
        raise ConfigurationError(f"Configuration file not found: {path}")
    if not path.is_file():
        raise ConfigurationError(f"Configuration path is not a file: {path}")

    try:
        content = yaml.safe_load(path.read_text(encoding="utf-8"))
    except OSError as e:
        raise ConfigurationError(f"Cannot read configuration file {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {path}: {e}") from e

    match content:
        case None:
            return {}
        case dict():
            return content
        case _:
            raise ConfigurationError(
                f"Configuration must be a YAML mapping, got {type(content).__name__}"
            )


def expand_env_vars(config: dict[str, Any]) -> dict[str, Any]:
    """Expand ${VAR} references in every string of a configuration tree."""
    return cast("dict[str, Any]", _expand(config))


def _expand(value: Any) -> Any:
    match value:
        case str():
            return os.path.expandvars(value)
        case dict():
            return {key: _expand(item) for key, item in value.items()}
        case list():
            return [_expand(item) for item in value]
        case _:
            return value


def merge_configs(base: dict[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    """Return base with override applied on top.

    Nested mappings merge key by key; any other value, lists included,
    replaces the base value.
    """
    merged = dict(base)
    for key, value in override.items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, Mapping):
            merged[key] = merge_configs(current, value)
        else:
            merged[key] = value
    return merged


def apply_env_overrides(
    config: dict[str, Any],
    environ: dict[str, str] | None = None,
) -> dict[str, Any]:
    """Apply SERVICE_HOST / SERVICE_PORT on top of the server section.

    Args:
        config: Configuration dictionary
        environ: Environment mapping (defaults to os.environ)

    Returns:
        Configuration with the listen address overridden where set
    """
    environ = dict(os.environ) if environ is None else environ

    overrides: dict[str, Any] = {}
    if environ.get(ENV_HOST):
        overrides["host"] = environ[ENV_HOST]
    if environ.get(ENV_PORT):
        overrides["port"] = environ[ENV_PORT]

    if not overrides:
        return config

    logger.info("Applying environment overrides", **overrides)
    return merge_configs(config, {"server": overrides})


def load_config(
    config_path: Path,
    *,
    override_path: Path | None = None,
    expand_env: bool = True,
    environ: dict[str, str] | None = None,
) -> RelayConfig:
    """Build the relay configuration.

    Args:
        config_path: Main YAML file
        override_path: Optional YAML file merged on top of the main one
        expand_env: Expand ${VAR} references before validation
        environ: Environment for SERVICE_HOST / SERVICE_PORT (defaults to os.environ)

    Raises:
        ConfigurationError: If a file cannot be loaded or the result is invalid
    """
    logger.info("Loading configuration", path=str(config_path))
    raw = load_yaml_file(config_path)

    if override_path:
        logger.info("Loading configuration override", path=str(override_path))
        raw = merge_configs(raw, load_yaml_file(override_path))

    if expand_env:
        raw = expand_env_vars(raw)
    raw = apply_env_overrides(raw, environ)

    try:
        config = RelayConfig.model_validate(raw)
    except ValidationError as e:
        errors = cast("list[dict[str, Any]]", e.errors())
        raise ConfigurationError(_describe_errors(errors), errors=errors) from e

    logger.info(
        "Configuration loaded",
        name=config.server.name,
        channels=[channel.name for channel in config.channels],
    )
    return config


def _describe_errors(errors: list[dict[str, Any]]) -> str:
    lines = ["Configuration validation failed:"]
    for error in errors:
        location = ".".join(str(part) for part in error["loc"]) or "<root>"
        lines.append(f"  - {location}: {error['msg']}")
    return "\n".join(lines)


def validate_config_file(config_path: Path) -> list[str]:
    """Validate a configuration file, returning error messages (empty if valid)."""
    errors: list[str] = []

    try:
        load_config(config_path)
    except ConfigurationError as e:
        errors.append(str(e))

    return errors


def generate_example_config() -> str:
    """Generate an example configuration YAML string."""
    example = {
        "server": {
            "name": "Seedlink Proxy",
            "host": "0.0.0.0",
            "port": 8087,
            "heartbeat_interval_ms": 60000,
            "debug": False,
        },
        "channels": [
            {
                "name": "NL.HGN",
                "selectors": [
                    {"network": "NL", "station": "HGN", "location": "02", "channel": "BHZ"},
                    {"network": "NL", "station": "HGN", "location": "02", "channel": "BHN"},
                    {"network": "NL", "station": "HGN", "location": "02", "channel": "BHE"},
                ],
                "source": {
                    "type": "simulated",
                    "host": "rtserve.iris.washington.edu",
                    "port": 18000,
                    "options": {"sample_rate": 40.0, "record_samples": 200},
                },
            },
            {
                "name": "NL.OPLO",
                "selectors": [
                    {"network": "NL", "station": "OPLO", "location": "01", "channel": "HGZ"},
                ],
                "source": {"type": "simulated"},
            },
        ],
    }

    return yaml.dump(example, default_flow_style=False, sort_keys=False, allow_unicode=True)
