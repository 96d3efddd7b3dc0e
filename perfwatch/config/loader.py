"""
Configuration Loader for perfwatch

Implements precedence: explicit overrides > Environment variables > Config file > Defaults

Supports:
- YAML and JSON configuration files
- Environment variable mapping (PERFWATCH_<SECTION>__<FIELD>)
- Schema validation via Pydantic, surfaced as ConfigurationError
- Config merging with deep dictionary updates
"""

import json
import logging
import os
from copy import deepcopy
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml
from pydantic import ValidationError

from perfwatch.config.schema import EngineConfig
from perfwatch.exceptions import ConfigurationError

logger = logging.getLogger(__name__)


class ConfigLoader:
    """
    Engine configuration loader with multi-source precedence.

    Precedence order (highest to lowest):
    1. Overrides passed by the caller
    2. Environment variables (PERFWATCH_*)
    3. Config file (YAML/JSON)
    4. Schema defaults

    A ``metrics`` table in the config file replaces the default metric table
    wholesale; environment variables and overrides merge into whichever table
    results.
    """

    ENV_PREFIX = "PERFWATCH_"
    ENV_NESTING = "__"

    def __init__(
        self,
        config_file: Optional[Path] = None,
        overrides: Optional[Dict[str, Any]] = None,
        environ: Optional[Mapping[str, str]] = None,
    ):
        """
        Initialize configuration loader.

        Args:
            config_file: Path to YAML/JSON config file
            overrides: Caller overrides (highest precedence)
            environ: Environment mapping (defaults to os.environ)
        """
        self.config_file = Path(config_file) if config_file else None
        self.overrides = overrides or {}
        self.environ = os.environ if environ is None else environ

    def load(self) -> EngineConfig:
        """
        Load configuration with full precedence chain.

        Returns:
            Validated EngineConfig instance

        Raises:
            ConfigurationError: file unreadable or any validation rule violated
        """
        config_dict = EngineConfig().model_dump(mode="json")

        if self.config_file:
            file_config = self._load_config_file(self.config_file)
            if "metrics" in file_config:
                config_dict["metrics"] = {}
            config_dict = self._deep_merge(config_dict, file_config)

        env_config = self._load_from_environment()
        config_dict = self._deep_merge(config_dict, env_config)

        config_dict = self._deep_merge(config_dict, self.overrides)

        return parse_config(config_dict)

    def _load_config_file(self, config_file: Path) -> Dict[str, Any]:
        """
        Load configuration from YAML or JSON file.

        Args:
            config_file: Path to config file

        Returns:
            Configuration dictionary
        """
        if not config_file.exists():
            raise ConfigurationError(f"Config file not found: {config_file}")

        suffix = config_file.suffix.lower()

        try:
            if suffix in [".yaml", ".yml"]:
                with open(config_file, "r") as f:
                    data = yaml.safe_load(f) or {}
            elif suffix == ".json":
                with open(config_file, "r") as f:
                    data = json.load(f)
            else:
                raise ConfigurationError(
                    f"Unsupported config file format: {suffix}. "
                    "Use .yaml, .yml, or .json"
                )
        except (yaml.YAMLError, json.JSONDecodeError, OSError) as e:
            raise ConfigurationError(f"Failed to read config file {config_file}: {e}") from e

        if not isinstance(data, dict):
            raise ConfigurationError(f"Config file {config_file} must contain a mapping")
        return data

    def _load_from_environment(self) -> Dict[str, Any]:
        """
        Load configuration from environment variables.

        Environment variable mapping:
        - PERFWATCH_ALERTING__COOLDOWN_SECONDS -> alerting.cooldown_seconds
        - PERFWATCH_INTERVALS__COLLECTION_SECONDS -> intervals.collection_seconds
        - PERFWATCH_METRICS__FRAME_RATE__WEIGHT -> metrics.frame_rate.weight

        Returns:
            Configuration dictionary from environment variables
        """
        config_dict: Dict[str, Any] = {}

        for key, value in self.environ.items():
            if not key.startswith(self.ENV_PREFIX):
                continue

            key_parts = key[len(self.ENV_PREFIX):].lower().split(self.ENV_NESTING)
            if len(key_parts) < 2:
                logger.debug(f"Ignoring non-nested environment variable {key}")
                continue

            current = config_dict
            for part in key_parts[:-1]:
                current = current.setdefault(part, {})

            current[key_parts[-1]] = self._convert_env_value(value)

        return config_dict

    def _convert_env_value(self, value: str) -> Any:
        """
        Convert environment variable string to appropriate type.

        Args:
            value: Environment variable string value

        Returns:
            Converted value (bool, int, float, list, dict, or str)
        """
        if value.lower() in ["true", "false"]:
            return value.lower() == "true"

        try:
            return int(value)
        except ValueError:
            pass

        try:
            return float(value)
        except ValueError:
            pass

        if value.startswith("[") or value.startswith("{"):
            try:
                return json.loads(value)
            except json.JSONDecodeError:
                pass

        return value

    def _deep_merge(
        self,
        base: Dict[str, Any],
        override: Dict[str, Any]
    ) -> Dict[str, Any]:
        """
        Deep merge two dictionaries.

        Args:
            base: Base dictionary
            override: Override dictionary (takes precedence)

        Returns:
            Merged dictionary
        """
        result = deepcopy(base)

        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._deep_merge(result[key], value)
            else:
                result[key] = deepcopy(value)

        return result


def parse_config(data: Optional[Dict[str, Any]] = None) -> EngineConfig:
    """
    Validate a configuration mapping.

    Raises:
        ConfigurationError: wrapping the pydantic validation failure
    """
    try:
        return EngineConfig(**(data or {}))
    except ValidationError as e:
        logger.error(f"Invalid perfwatch configuration: {e}")
        raise ConfigurationError(f"Invalid configuration: {e}") from e


def load_config(
    config_file: Optional[Path] = None,
    overrides: Optional[Dict[str, Any]] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> EngineConfig:
    """
    Convenience function to load engine configuration.

    Args:
        config_file: Path to YAML/JSON config file
        overrides: Caller overrides
        environ: Environment mapping (defaults to os.environ)

    Returns:
        Validated EngineConfig instance

    Example:
        >>> config = load_config(
        ...     config_file=Path("perfwatch.yaml"),
        ...     overrides={"alerting": {"cooldown_seconds": 30}}
        ... )
    """
    loader = ConfigLoader(config_file=config_file, overrides=overrides, environ=environ)
    return loader.load()
