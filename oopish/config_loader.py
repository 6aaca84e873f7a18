"""Bundled configuration with an optional override file."""

import os
import logging
import urllib.parse
from typing import Dict, Any, Optional

import yaml
from jsonschema import Draft7Validator
from jsonschema.exceptions import best_match
from importlib.resources import files

from .errors import ConfigurationError

logger = logging.getLogger(__name__)


CONFIG_SCHEMA = {
    "type": "object",
    "properties": {
        "injection_prefix": {"type": "string", "pattern": "^[A-Za-z_][A-Za-z0-9_]*$"},
        "declarations": {
            "type": "object",
            "properties": {"allow_redeclare": {"type": "boolean"}},
        },
        "inheritance": {
            "type": "object",
            "properties": {"warn_on_unreachable_rules": {"type": "boolean"}},
        },
        "class_lookup": {
            "type": "object",
            "properties": {
                "search_modules": {"type": "array", "items": {"type": "string"}},
            },
        },
        "messages": {
            "type": "object",
            "additionalProperties": {"type": "string"},
        },
    },
    "required": ["injection_prefix", "messages"],
}


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


class ConfigLoader:
    """Handles two-layer configuration: bundled defaults + optional override."""

    ENV_VAR = "OOPISH_CONFIG"

    def __init__(self, config_uri: Optional[str] = None):
        """
        Load bundled local-config.yaml and merge the override on top.

        Args:
            config_uri: Override file (plain path or file:// URI). Falls back
                to the OOPISH_CONFIG environment variable when omitted.

        Raises:
            ConfigurationError: If the override cannot be read or the merged
                config does not match CONFIG_SCHEMA
        """
        config_file = files('oopish').joinpath('local-config.yaml')
        self.local_config_path = str(config_file)

        with config_file.open('r') as f:
            self.local_config = yaml.safe_load(f) or {}

        self.override_uri = config_uri or os.environ.get(self.ENV_VAR)
        if self.override_uri:
            self.override_config = self._load_config_from_uri(self.override_uri)
            logger.debug(f"Loaded config override from {self.override_uri}")
        else:
            self.override_config = {}

        self.config = _deep_merge(self.local_config, self.override_config)
        self._validate(self.config)

    def _validate(self, config: Dict[str, Any]) -> None:
        first = best_match(Draft7Validator(CONFIG_SCHEMA).iter_errors(config))
        if first is not None:
            error_path = " -> ".join(str(p) for p in first.path) if first.path else "root"
            raise ConfigurationError(f"Invalid configuration at {error_path}: {first.message}")

    def _load_yaml(self, path: str) -> Dict[str, Any]:
        """Load YAML file from disk."""
        try:
            with open(path) as f:
                content = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            raise ConfigurationError(f"Failed to load config from {path}: {e}")
        if content is None:
            return {}
        if not isinstance(content, dict):
            raise ConfigurationError(f"Config file {path} must contain a mapping")
        return content

    def _load_config_from_uri(self, uri: str) -> Dict[str, Any]:
        """
        Load config from URI.

        Supports:
        - Plain paths, relative to the working directory
        - file:// - Local filesystem (absolute paths)
        """
        parsed = urllib.parse.urlparse(uri)

        if not parsed.scheme:
            return self._load_yaml(os.path.abspath(uri))

        if parsed.scheme == 'file':
            path = urllib.parse.unquote(parsed.path)
            return self._load_yaml(path)

        raise ConfigurationError(f"Unsupported URI scheme: {parsed.scheme} in {uri}")

    def get_config(self) -> Dict[str, Any]:
        """Get the merged configuration."""
        return self.config

    def get_injection_prefix(self) -> str:
        return self.config["injection_prefix"]

    def get_allow_redeclare(self) -> bool:
        return self.config.get("declarations", {}).get("allow_redeclare", False)

    def get_warn_on_unreachable_rules(self) -> bool:
        return self.config.get("inheritance", {}).get("warn_on_unreachable_rules", True)

    def get_search_modules(self) -> list:
        return list(self.config.get("class_lookup", {}).get("search_modules", []))

    def get_message(self, key: str) -> Optional[str]:
        """Return the message template registered under key, if any."""
        return self.config["messages"].get(key)


_config: Optional[ConfigLoader] = None


def get_config() -> ConfigLoader:
    """Get or initialize the process-wide ConfigLoader."""
    global _config
    if _config is None:
        _config = ConfigLoader()
    return _config


def reset_config():
    """Drop the process-wide ConfigLoader (for testing)."""
    global _config
    _config = None
