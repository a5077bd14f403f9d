"""
Configuration Management Module

Handles configuration loading, saving, and management using TOML, YAML and
JSON files layered over defaults and environment variables.
"""

import os
import json
from typing import Any, Dict, Optional, Union

import toml
import yaml

from .key_derivation import MAX_BLOCKS
from .pbes2 import PBES2Config


class ConfigError(Exception):
    """Raised when configuration operations fail."""
    pass


class Config:
    """
    Configuration manager for pkcs5-tools.

    Supports loading from TOML/YAML/JSON files and environment variables,
    and provides the PBES2 defaults.
    """

    DEFAULT_CONFIG = {
        'pbes2': {
            'iterations': 1000,
            'length': 32,
            'algorithm': 'sha256',
            'cipher': 'aes256',
            'mode': 'CBC',
            'pad': 'rfc1423',
            'iv': '',
            'encoding': 'hex'
        },
        'kdf': {
            'salt_length': 32,
            'max_blocks': MAX_BLOCKS
        },
        'output': {
            'verbose': False,
            'color_output': True,
            'log_level': 'WARNING'
        }
    }

    ENV_MAPPINGS = {
        'PKCS5_TOOLS_ITERATIONS': ('pbes2', 'iterations', int),
        'PKCS5_TOOLS_LENGTH': ('pbes2', 'length', int),
        'PKCS5_TOOLS_ALGORITHM': ('pbes2', 'algorithm', str),
        'PKCS5_TOOLS_CIPHER': ('pbes2', 'cipher', str),
        'PKCS5_TOOLS_MODE': ('pbes2', 'mode', str),
        'PKCS5_TOOLS_PAD': ('pbes2', 'pad', str),
        'PKCS5_TOOLS_ENCODING': ('pbes2', 'encoding', str),
        'PKCS5_TOOLS_SALT_LENGTH': ('kdf', 'salt_length', int),
        'PKCS5_TOOLS_VERBOSE': ('output', 'verbose', bool),
        'PKCS5_TOOLS_LOG_LEVEL': ('output', 'log_level', str),
    }

    def __init__(self, config_file: Optional[str] = None, use_environment: bool = True):
        """
        Initialize configuration.

        Args:
            config_file: Path to configuration file
            use_environment: Apply PKCS5_TOOLS_* environment variables
        """
        self.config_file = config_file
        self.use_environment = use_environment
        self._config = self._deep_copy_dict(self.DEFAULT_CONFIG)
        self._load_config()

    def _deep_copy_dict(self, d: Dict[str, Any]) -> Dict[str, Any]:
        """Create a deep copy of a dictionary."""
        result = {}
        for key, value in d.items():
            if isinstance(value, dict):
                result[key] = self._deep_copy_dict(value)
            else:
                result[key] = value
        return result

    def _expand_path(self, path: str) -> str:
        """Expand user home directory and environment variables."""
        expanded = os.path.expanduser(path)
        expanded = os.path.expandvars(expanded)
        return os.path.abspath(expanded)

    def _get_default_config_paths(self) -> list:
        """Get list of default configuration file paths."""
        config_dir = self._expand_path('~/.pkcs5-tools')

        return [
            os.path.join(config_dir, 'config.toml'),
            os.path.join(config_dir, 'config.yaml'),
            os.path.join(config_dir, 'config.yml'),
            os.path.join(config_dir, 'config.json'),
            './pkcs5-tools.toml',
            './pkcs5-tools.yaml',
            './pkcs5-tools.yml',
            './pkcs5-tools.json'
        ]

    def _load_config(self) -> None:
        """Load configuration from file and environment variables."""
        if self.config_file:
            self._load_from_file(self.config_file)
        else:
            for path in self._get_default_config_paths():
                if os.path.exists(path):
                    self._load_from_file(path)
                    self.config_file = path
                    break

        if self.use_environment:
            self._load_from_environment()

    def _load_from_file(self, file_path: str) -> None:
        """Load configuration from a file."""
        file_path = self._expand_path(file_path)

        try:
            with open(file_path, 'r') as f:
                if file_path.endswith('.toml'):
                    file_config = toml.load(f)
                elif file_path.endswith(('.yaml', '.yml')):
                    file_config = yaml.safe_load(f) or {}
                elif file_path.endswith('.json'):
                    file_config = json.load(f)
                else:
                    raise ConfigError(f"Unsupported config file format: {file_path}")
        except ConfigError:
            raise
        except (OSError, ValueError, toml.TomlDecodeError, yaml.YAMLError) as e:
            raise ConfigError(f"Failed to load config from {file_path}: {e}")

        if not isinstance(file_config, dict):
            raise ConfigError(f"Config file {file_path} does not contain a mapping")

        self._merge_config(file_config)

    def _load_from_environment(self) -> None:
        """Load configuration from environment variables."""
        for env_var, config_path in self.ENV_MAPPINGS.items():
            value = os.environ.get(env_var)
            if value is None:
                continue

            type_func = config_path[-1]
            config_path = config_path[:-1]

            try:
                if type_func == bool:
                    value = value.lower() in ('true', '1', 'yes', 'on')
                elif type_func == int:
                    value = int(value)

                self._set_nested_value(config_path, value)
            except (ValueError, TypeError):
                pass  # Skip invalid environment variable values

    def _merge_config(self, new_config: Dict[str, Any]) -> None:
        """Merge new configuration with existing configuration."""
        self._deep_merge(self._config, new_config)

    def _deep_merge(self, target: Dict[str, Any], source: Dict[str, Any]) -> None:
        """Deep merge source dictionary into target dictionary."""
        for key, value in source.items():
            if key in target and isinstance(target[key], dict) and isinstance(value, dict):
                self._deep_merge(target[key], value)
            else:
                target[key] = value

    def _set_nested_value(self, path: tuple, value: Any) -> None:
        """Set a nested configuration value."""
        current = self._config
        for key in path[:-1]:
            if key not in current:
                current[key] = {}
            current = current[key]
        current[path[-1]] = value

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get a configuration value.

        Args:
            key: Configuration key (supports dot notation)
            default: Default value if key not found

        Returns:
            Configuration value
        """
        keys = key.split('.')
        current = self._config

        try:
            for k in keys:
                current = current[k]
            return current
        except (KeyError, TypeError):
            return default

    def set(self, key: str, value: Any) -> None:
        """
        Set a configuration value.

        Args:
            key: Configuration key (supports dot notation)
            value: Value to set
        """
        self._set_nested_value(tuple(key.split('.')), value)

    def save(self, file_path: Optional[str] = None) -> None:
        """
        Save configuration to file.

        Args:
            file_path: Path to save configuration (uses current file if None)
        """
        save_path = file_path or self.config_file

        if not save_path:
            raise ConfigError("No configuration file specified")

        save_path = self._expand_path(save_path)
        os.makedirs(os.path.dirname(save_path), exist_ok=True)

        try:
            with open(save_path, 'w') as f:
                if save_path.endswith('.toml'):
                    toml.dump(self._config, f)
                elif save_path.endswith(('.yaml', '.yml')):
                    yaml.safe_dump(self._config, f, default_flow_style=False)
                elif save_path.endswith('.json'):
                    json.dump(self._config, f, indent=2)
                else:
                    raise ConfigError(f"Unsupported config file format: {save_path}")
        except OSError as e:
            raise ConfigError(f"Failed to save config to {save_path}: {e}")

        self.config_file = save_path

    def reset_to_defaults(self) -> None:
        """Reset configuration to default values."""
        self._config = self._deep_copy_dict(self.DEFAULT_CONFIG)

    def validate(self) -> bool:
        """
        Validate configuration values.

        Returns:
            True if configuration is valid
        """
        iterations = self.get('pbes2.iterations')
        if not isinstance(iterations, int) or iterations < 1:
            return False

        length = self.get('pbes2.length')
        if not isinstance(length, int) or length < 1:
            return False

        if self.get('pbes2.encoding') not in ('raw', 'hex', 'base64'):
            return False

        iv = self.get('pbes2.iv') or ''
        try:
            bytes.fromhex(iv)
        except (TypeError, ValueError):
            return False

        return True

    def to_pbes2_config(
        self,
        password: Union[str, bytes],
        salt: Union[str, bytes],
        **overrides: Any
    ) -> PBES2Config:
        """
        Build a PBES2Config from the pbes2 section.

        Args:
            password: Password for key derivation
            salt: Salt for key derivation
            **overrides: Field values that take precedence over the file;
                None values are ignored

        Returns:
            PBES2Config

        Raises:
            ConfigError: If the configured IV is not a valid hex string
        """
        section = self.get('pbes2', {})
        values = {
            'iterations': int(section.get('iterations', 1000)),
            'length': int(section.get('length', 32)),
            'algorithm': section.get('algorithm', 'sha256'),
            'cipher': section.get('cipher', 'aes256'),
            'mode': section.get('mode', 'CBC'),
            'pad': section.get('pad', 'rfc1423'),
            'max_blocks': int(self.get('kdf.max_blocks', MAX_BLOCKS)),
        }

        iv_hex = section.get('iv') or ''
        try:
            values['iv'] = bytes.fromhex(iv_hex) if iv_hex else None
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Configured IV is not valid hex: {e}")

        values.update({k: v for k, v in overrides.items() if v is not None})
        return PBES2Config(password=password, salt=salt, **values)

    def to_dict(self) -> Dict[str, Any]:
        """Return configuration as dictionary."""
        return self._deep_copy_dict(self._config)

    def __getitem__(self, key: str) -> Any:
        """Allow dictionary-style access."""
        return self.get(key)

    def __setitem__(self, key: str, value: Any) -> None:
        """Allow dictionary-style assignment."""
        self.set(key, value)

    def __contains__(self, key: str) -> bool:
        """Check if configuration contains key."""
        return self.get(key) is not None


def load_config(config_file: Optional[str] = None) -> Config:
    """
    Load configuration from file or defaults.

    Args:
        config_file: Path to configuration file

    Returns:
        Config object
    """
    return Config(config_file)


def create_default_config(config_file: str) -> None:
    """
    Create a default configuration file.

    Args:
        config_file: Path where to create the config file
    """
    config = Config(use_environment=False)
    config.reset_to_defaults()
    config.save(config_file)
