#!/usr/bin/env python3
"""
Configuration Management Module for Mintpad CLI

Handles hierarchical configuration loading (defaults, profile, file,
environment) and builds the factory and collection settings models from it.
"""

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml
from pydantic import ValidationError as PydanticValidationError

from collection.exceptions import ValidationError
from collection.schema import CollectionSettings
from factory.manager import FactorySettings, FeePolicy

# Configuration file locations in order of precedence (highest to lowest)
CONFIG_SEARCH_PATHS = [
    Path.cwd() / '.mintpad.yml',
    Path.cwd() / '.mintpad.json',
    Path.home() / '.mintpad' / 'config.yml',
    Path.home() / '.mintpad' / 'config.json',
]

# Environment variable prefix; '__' separates nesting levels
ENV_PREFIX = 'MINTPAD_'
ENV_NESTING = '__'

OUTPUT_FORMATS = ['table', 'json', 'yaml']

DEFAULT_CONFIG = {
    'factory': {
        'platform_fee': 0,
        'fee_policy': FeePolicy.FORWARD.value,
    },
    'collection': {
        'reject_overlapping_phases': False,
    },
    'storage': {
        'data_dir': '~/.mintpad/data',
        'backup_count': 5,
    },
    'cli': {
        'output_format': 'table',
    },
}

PROFILES = {
    'production': {
        'collection': {'reject_overlapping_phases': True},
        'storage': {'backup_count': 10},
    },
    'development': {
        'factory': {'platform_fee': 0},
        'storage': {'data_dir': './.mintpad-dev', 'backup_count': 1},
        'cli': {'output_format': 'json'},
    },
}


class ConfigurationManager:
    """Manages hierarchical configuration with environment variable support."""

    def __init__(self, config_file: Optional[str] = None, profile: Optional[str] = None,
                 environ: Optional[Dict[str, str]] = None):
        """
        Initialize configuration manager.

        Args:
            config_file: Explicit configuration file path
            profile: Configuration profile to apply (production, development)
            environ: Environment mapping; defaults to ``os.environ``
        """
        self.logger = logging.getLogger('mintpad-cli.config')
        self.config_file = config_file
        self.profile = profile
        self.environ = os.environ if environ is None else environ
        self._config_cache = None
        self._config_sources = []

    def load(self) -> Dict[str, Any]:
        """
        Load configuration from all sources in hierarchical order.

        Returns:
            Merged configuration dictionary
        """
        if self._config_cache is not None:
            return self._config_cache

        configs = [DEFAULT_CONFIG]
        self._config_sources = ["defaults"]

        if self.profile:
            if self.profile not in PROFILES:
                raise ValidationError(f"Unknown configuration profile: {self.profile}")
            configs.append(PROFILES[self.profile])
            self._config_sources.append(f"profile:{self.profile}")

        if self.config_file:
            path = Path(self.config_file)
            if not path.exists():
                raise ValidationError(f"Config file not found: {path}")
            configs.append(self._load_config_file(path))
            self._config_sources.append(f"file:{path}")
        else:
            for path in CONFIG_SEARCH_PATHS:
                if path.exists():
                    configs.append(self._load_config_file(path))
                    self._config_sources.append(f"file:{path}")
                    self.logger.debug(f"Loaded config from {path}")
                    break

        env_config = self._load_environment_variables()
        if env_config:
            configs.append(env_config)
            self._config_sources.append("environment")

        self._config_cache = self._deep_merge(*configs)
        self._expand_paths(self._config_cache)
        return self._config_cache

    def _load_config_file(self, path: Path) -> Dict[str, Any]:
        """Load configuration from a YAML or JSON file."""
        try:
            with open(path, 'r') as f:
                if path.suffix in ['.yml', '.yaml']:
                    data = yaml.safe_load(f)
                elif path.suffix == '.json':
                    data = json.load(f)
                else:
                    raise ValidationError(f"Unknown config file format: {path}")
        except (yaml.YAMLError, json.JSONDecodeError) as e:
            raise ValidationError(f"Failed to parse config file {path}: {e}") from e

        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ValidationError(f"Config file {path} must contain a mapping")
        return data

    def _load_environment_variables(self) -> Dict[str, Any]:
        """
        Load configuration from environment variables.

        e.g. MINTPAD_FACTORY__PLATFORM_FEE=5 -> {'factory': {'platform_fee': 5}}
        """
        env_config = {}

        for key, value in self.environ.items():
            if not key.startswith(ENV_PREFIX):
                continue

            parts = key[len(ENV_PREFIX):].lower().split(ENV_NESTING)
            current = env_config
            for part in parts[:-1]:
                current = current.setdefault(part, {})
            current[parts[-1]] = self._parse_env_value(value)

        return env_config

    def _parse_env_value(self, value: str) -> Union[str, int, float, bool]:
        """Parse environment variable value to appropriate type."""
        try:
            return json.loads(value)
        except ValueError:
            pass

        if value.lower() in ['true', 'yes']:
            return True
        if value.lower() in ['false', 'no']:
            return False
        return value

    def _deep_merge(self, *dicts: Dict[str, Any]) -> Dict[str, Any]:
        """Deep merge multiple dictionaries."""
        result = {}

        for dictionary in dicts:
            for key, value in dictionary.items():
                if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                    result[key] = self._deep_merge(result[key], value)
                elif isinstance(value, dict):
                    result[key] = self._deep_merge(value)
                else:
                    result[key] = value

        return result

    def _expand_paths(self, config: Dict[str, Any]):
        """Expand ~ and environment variables in path values."""
        for key, value in config.items():
            if isinstance(value, dict):
                self._expand_paths(value)
            elif isinstance(value, str) and ('~' in value or '$' in value):
                config[key] = os.path.expanduser(os.path.expandvars(value))

    def get(self, key_path: str, default: Any = None) -> Any:
        """
        Get configuration value by dot-notation path.

        Args:
            key_path: Dot-separated path (e.g., 'factory.platform_fee')
            default: Default value if key not found
        """
        current = self.load()
        for key in key_path.split('.'):
            if isinstance(current, dict) and key in current:
                current = current[key]
            else:
                return default
        return current

    def set(self, key_path: str, value: Any):
        """Set configuration value by dot-notation path."""
        config = self.load()

        keys = key_path.split('.')
        current = config
        for key in keys[:-1]:
            current = current.setdefault(key, {})
        current[keys[-1]] = value

    def save(self, path: Optional[str] = None, format: str = 'yaml') -> Path:
        """Save current configuration to file."""
        config = self.load()

        if not path:
            path = Path.cwd() / ('.mintpad.yml' if format == 'yaml' else '.mintpad.json')
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)

        with open(path, 'w') as f:
            if format == 'yaml':
                yaml.safe_dump(config, f, default_flow_style=False, sort_keys=False)
            else:
                json.dump(config, f, indent=2)

        self.logger.info(f"Configuration saved to {path}")
        return path

    def validate(self) -> List[str]:
        """
        Validate current configuration.

        Returns:
            List of validation errors (empty if valid)
        """
        config = self.load()
        errors = []

        fee = config.get('factory', {}).get('platform_fee')
        if not isinstance(fee, int) or isinstance(fee, bool) or fee < 0:
            errors.append(f"factory.platform_fee must be a non-negative integer, got {fee!r}")

        policy = config.get('factory', {}).get('fee_policy')
        if policy not in [p.value for p in FeePolicy]:
            errors.append(f"Invalid factory.fee_policy: {policy}")

        backups = config.get('storage', {}).get('backup_count')
        if not isinstance(backups, int) or backups < 0:
            errors.append(f"storage.backup_count must be a non-negative integer, got {backups!r}")

        if not config.get('storage', {}).get('data_dir'):
            errors.append("storage.data_dir is required")

        output_format = config.get('cli', {}).get('output_format')
        if output_format not in OUTPUT_FORMATS:
            errors.append(f"Invalid output format: {output_format}")

        return errors

    def factory_settings(self) -> FactorySettings:
        """Build the factory settings model from the loaded configuration."""
        try:
            return FactorySettings(
                platform_fee=self.get('factory.platform_fee', 0),
                fee_policy=self.get('factory.fee_policy', FeePolicy.FORWARD.value),
                collection=self.collection_settings(),
            )
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid factory configuration: {e}") from e

    def collection_settings(self) -> CollectionSettings:
        try:
            return CollectionSettings(**self.get('collection', {}))
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid collection configuration: {e}") from e

    def get_sources(self) -> List[str]:
        """Get list of configuration sources that were loaded."""
        self.load()
        return self._config_sources

    def reset(self):
        """Reset configuration cache."""
        self._config_cache = None
        self._config_sources = []
