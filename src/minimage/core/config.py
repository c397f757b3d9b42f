"""Configuration resolver with 4-level priority.

Priority (highest to lowest):
1. CLI arguments
2. Environment variables (MINIMAGE_*)
3. Config files (user > system)
4. Defaults
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from minimage.core.errors import ConfigError

ALLOWED_LOGGING_LEVELS = frozenset({"quiet", "normal", "verbose", "debug"})
DEFAULT_LOGGING_LEVEL = "normal"
ALLOWED_BACKENDS = frozenset({"reference", "native"})


@dataclass
class ConfigSource:
    """Represents where a config value came from."""

    value: Any
    source: str  # 'cli' | 'env' | 'user_config' | 'system_config' | 'default'


def _flatten_items(data: dict[str, Any], prefix: str = "") -> list[tuple[str, Any]]:
    """Flatten nested dicts to dot-notation key paths."""
    items: list[tuple[str, Any]] = []

    for key, value in data.items():
        key_path = f"{prefix}.{key}" if prefix else str(key)

        if isinstance(value, dict):
            items.extend(_flatten_items(value, key_path))
        else:
            items.append((key_path, value))

    return items


class ConfigResolver:
    """Resolve configuration with strict 4-level priority.

    Example:
        resolver = ConfigResolver(
            cli_args={'progress': {'bar_size': 80}},
            user_config_path=Path('~/.config/minimage/config.yaml')
        )

        bar_size, source = resolver.resolve('progress.bar_size')
        # bar_size = 80, source = 'cli'
    """

    def __init__(
        self,
        cli_args: dict[str, Any] | None = None,
        user_config_path: Path | None = None,
        system_config_path: Path | None = None,
        defaults: dict[str, Any] | None = None,
    ) -> None:
        """Initialize config resolver.

        Args:
            cli_args: Arguments from CLI (highest priority)
            user_config_path: Path to user config file
            system_config_path: Path to system config file
            defaults: Default values (lowest priority)
        """
        self.cli_args = cli_args or {}
        self.user_config_path = user_config_path or Path.home() / ".config/minimage/config.yaml"
        self.system_config_path = system_config_path or Path("/etc/minimage/config.yaml")
        self.defaults = defaults if defaults is not None else self._default_config()

        # Cache loaded configs
        self._user_config: dict[str, Any] | None = None
        self._system_config: dict[str, Any] | None = None

    def resolve(self, key: str) -> tuple[Any, str]:
        """Resolve config value with priority.

        Args:
            key: Config key (supports dot notation: 'logging.level')

        Returns:
            (value, source) tuple

        Raises:
            ConfigError: If key not found in any source
        """
        # 1. CLI (highest priority)
        value = self._from_cli(key)
        if value is not None:
            return value, "cli"

        # 2. Environment
        value = self._from_env(key)
        if value is not None:
            return value, "env"

        # 3. User config
        value = self._from_user_config(key)
        if value is not None:
            return value, "user_config"

        # 4. System config
        value = self._from_system_config(key)
        if value is not None:
            return value, "system_config"

        # 5. Default
        value = self._from_defaults(key)
        if value is not None:
            return value, "default"

        raise ConfigError(f"Config key '{key}' not found in any source")

    def resolve_optional(self, key: str) -> Any | None:
        """Resolve a key, returning None when no source provides it."""
        try:
            value, _source = self.resolve(key)
        except ConfigError as e:
            if "not found in any source" in str(e):
                return None
            raise
        return value

    def resolve_int(self, key: str, minimum: int | None = None) -> int:
        """Resolve an integer key.

        Environment variables always arrive as strings, so decimal strings
        are accepted.

        Raises:
            ConfigError: If the value is not an int or is below minimum.
        """
        value, _src = self.resolve(key)
        if isinstance(value, bool):
            raise ConfigError(f"Config key '{key}' must be an int")
        if isinstance(value, str) and value.strip().lstrip("-").isdigit():
            value = int(value.strip())
        if not isinstance(value, int):
            raise ConfigError(f"Config key '{key}' must be an int, got {type(value).__name__}")
        if minimum is not None and value < minimum:
            raise ConfigError(f"Config key '{key}' must be >= {minimum}, got {value}")
        return value

    def resolve_bool(self, key: str) -> bool:
        """Resolve a boolean key ('true'/'false' strings accepted)."""
        value, _src = self.resolve(key)
        if isinstance(value, bool):
            return value
        if isinstance(value, str) and value.strip().lower() in {"true", "false", "1", "0"}:
            return value.strip().lower() in {"true", "1"}
        raise ConfigError(f"Config key '{key}' must be a bool")

    def resolve_str(self, key: str) -> str:
        """Resolve a non-empty string key."""
        value, _src = self.resolve(key)
        if not isinstance(value, str):
            raise ConfigError(f"Config key '{key}' must be a string, got {type(value).__name__}")
        if value.strip() == "":
            raise ConfigError(f"Config key '{key}' must not be empty")
        return value

    def resolve_output_dir(self) -> Path:
        """Resolve the directory images are saved into."""
        return Path(self.resolve_str("output_dir")).expanduser()

    def resolve_backend(self) -> str:
        """Resolve and validate gateway.backend."""
        key = "gateway.backend"
        norm = self.resolve_str(key).strip().lower()
        if norm not in ALLOWED_BACKENDS:
            allowed = ", ".join(sorted(ALLOWED_BACKENDS))
            raise ConfigError(f"Invalid '{key}': {norm!r}. Allowed values: {allowed}")
        return norm

    def resolve_library_path(self) -> Path | None:
        """Resolve gateway.library_path (None when unset)."""
        value = self.resolve_optional("gateway.library_path")
        if value is None or (isinstance(value, str) and value.strip() == ""):
            return None
        if not isinstance(value, str):
            raise ConfigError("Config key 'gateway.library_path' must be a path string")
        return Path(value).expanduser()

    def resolve_logging_level(self) -> str:
        """Resolve and validate logging.level.

        Allowed values (after normalization):
            quiet | normal | verbose | debug

        If the key is not provided by any source, returns DEFAULT_LOGGING_LEVEL.

        Raises:
            ConfigError: If the resolved value is invalid.
        """
        key = "logging.level"
        value = self.resolve_optional(key)
        if value is None:
            return DEFAULT_LOGGING_LEVEL

        if not isinstance(value, str):
            raise ConfigError(f"Config key '{key}' must be a string, got {type(value).__name__}")

        norm = value.strip().lower()
        if norm not in ALLOWED_LOGGING_LEVELS:
            allowed = ", ".join(sorted(ALLOWED_LOGGING_LEVELS))
            raise ConfigError(f"Invalid '{key}': {value!r}. Allowed values: {allowed}")

        return norm

    def resolve_all(self) -> dict[str, ConfigSource]:
        """Resolve every key known to defaults, CLI or config files.

        Returns:
            Dict of key -> ConfigSource
        """
        result: dict[str, ConfigSource] = {}

        all_keys: set[str] = set()
        for source in (self.defaults, self.cli_args, self._get_user_config(), self._get_system_config()):
            all_keys.update(k for k, _v in _flatten_items(source))

        for key in sorted(all_keys):
            try:
                value, source = self.resolve(key)
                result[key] = ConfigSource(value=value, source=source)
            except ConfigError:
                continue

        return result

    def _from_cli(self, key: str) -> Any | None:
        return self._get_nested(self.cli_args, key)

    def _from_env(self, key: str) -> Any | None:
        """Get value from environment variables.

        Environment variable format: MINIMAGE_KEY_NAME
        Example: MINIMAGE_OUTPUT_DIR, MINIMAGE_PROGRESS_BAR_SIZE
        """
        env_key = f"MINIMAGE_{key.upper().replace('.', '_')}"
        return os.environ.get(env_key)

    def _from_user_config(self, key: str) -> Any | None:
        return self._get_nested(self._get_user_config(), key)

    def _from_system_config(self, key: str) -> Any | None:
        return self._get_nested(self._get_system_config(), key)

    def _from_defaults(self, key: str) -> Any | None:
        return self._get_nested(self.defaults, key)

    def _get_user_config(self) -> dict[str, Any]:
        """Load user config file (cached)."""
        if self._user_config is None:
            self._user_config = self._load_yaml(self.user_config_path)
        return self._user_config

    def _get_system_config(self) -> dict[str, Any]:
        """Load system config file (cached)."""
        if self._system_config is None:
            self._system_config = self._load_yaml(self.system_config_path)
        return self._system_config

    def _load_yaml(self, path: Path) -> dict[str, Any]:
        if not path.exists():
            return {}

        try:
            with open(path) as f:
                data = yaml.safe_load(f)
                return data if isinstance(data, dict) else {}
        except Exception as e:
            raise ConfigError(f"Failed to load config from {path}: {e}") from e

    def _get_nested(self, data: dict[str, Any], key: str) -> Any | None:
        """Get nested value using dot notation.

        Example:
            data = {'logging': {'level': 'debug'}}
            _get_nested(data, 'logging.level') -> 'debug'
        """
        parts = key.split(".")
        current: Any = data

        for part in parts:
            if not isinstance(current, dict):
                return None
            current = current.get(part)
            if current is None:
                return None

        return current

    @staticmethod
    def _default_config() -> dict[str, Any]:
        """Default configuration."""
        return {
            # Paths
            "output_dir": ".",
            # Saving
            "default_prefix": "default",
            "jpeg": {
                "quality": 90,
            },
            # Interaction
            "cancel_key": "x",
            "progress": {
                "bar_size": 50,
            },
            # Compute
            "gateway": {
                "backend": "reference",
                "library_path": None,
            },
            # Logging
            "logging": {
                "level": "normal",
                "color": True,
            },
        }
