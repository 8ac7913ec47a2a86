"""Configuration management for zenodo-cli.

Settings live in a YAML file under the user's config directory and are
organised in profiles (``production``, ``sandbox``, or any user-defined
name), each with its own base URL and optional token.  Values resolve in
this order:

- Command-line flags
- Environment variables (``ZENODO_TOKEN``, ``ZENODO_PROFILE``), including a
  local ``.env`` file
- The OS keyring (tokens only, via ``keyring``)
- The config file
- Built-in defaults
"""

from __future__ import annotations

import copy
import logging
import os
import stat
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import keyring
import yaml
from dotenv import load_dotenv
from keyring.errors import KeyringError, PasswordDeleteError

APP_NAME = "zenodo-cli"
CONFIG_FILE_NAME = "config.yaml"

DEFAULT_BASE_URL = "https://zenodo.org/api"
SANDBOX_BASE_URL = "https://sandbox.zenodo.org/api"
DEFAULT_PROFILE = "production"

TOKEN_ENV = "ZENODO_TOKEN"
PROFILE_ENV = "ZENODO_PROFILE"

KEYRING_SERVICE = "zenodo-cli"

CONFIG_FILE_MODE = 0o600
CONFIG_DIR_MODE = 0o700

DEFAULTS: Dict[str, Any] = {
    "default_profile": DEFAULT_PROFILE,
    "profiles": {
        "production": {"base_url": DEFAULT_BASE_URL},
        "sandbox": {"base_url": SANDBOX_BASE_URL},
    },
}


def get_config_dir() -> Path:
    """Return the configuration directory.

    ``$XDG_CONFIG_HOME/zenodo-cli`` when set, ``%APPDATA%/zenodo-cli`` on
    Windows, otherwise ``~/.config/zenodo-cli``.
    """
    xdg = os.getenv("XDG_CONFIG_HOME")
    if xdg:
        return Path(xdg) / APP_NAME
    if sys.platform == "win32":
        app_data = os.getenv("APPDATA")
        if app_data:
            return Path(app_data) / APP_NAME
    try:
        return Path.home() / ".config" / APP_NAME
    except RuntimeError:
        return Path(".") / APP_NAME


def get_config_path() -> Path:
    """Return the full path of the config file."""
    return get_config_dir() / CONFIG_FILE_NAME


def mask_token(token: str) -> str:
    """Mask a token for display, keeping only its last four characters."""
    if len(token) <= 4:
        return "****"
    return "****" + token[-4:]


class TokenKeyring:
    """Per-profile token storage in the OS keyring.

    Tokens are stored under the service ``zenodo-cli`` with the profile name
    as the user.  Availability is checked once on construction with a
    set/delete cycle; when that fails every lookup returns an empty
    string and the config file is used instead.
    """

    CHECK_USER = "__zenodo_cli_check__"

    def __init__(self, backend: Any = None):
        """
        Initialize the keyring.

        Args:
            backend: Object with ``get_password``/``set_password``/
                ``delete_password`` (defaults to the ``keyring`` module)
        """
        self.logger = logging.getLogger(self.__class__.__name__)
        self.backend = backend if backend is not None else keyring
        self.available = self._check_available()

    def _check_available(self) -> bool:
        try:
            self.backend.set_password(KEYRING_SERVICE, self.CHECK_USER, "check")
        except KeyringError as e:
            self.logger.debug("OS keyring not available: %s", e)
            return False
        try:
            self.backend.delete_password(KEYRING_SERVICE, self.CHECK_USER)
        except KeyringError as e:
            self.logger.debug("Could not remove keyring check entry: %s", e)
        return True

    def get_token(self, profile: str) -> str:
        if not self.available:
            return ""
        try:
            return self.backend.get_password(KEYRING_SERVICE, profile) or ""
        except KeyringError as e:
            self.logger.debug("Keyring lookup for %s failed: %s", profile, e)
            return ""

    def set_token(self, profile: str, token: str) -> None:
        """Store a token; raises KeyringError when the keyring is unavailable."""
        if not self.available:
            raise KeyringError("keyring not available; token will be stored in config file instead")
        self.backend.set_password(KEYRING_SERVICE, profile, token)

    def delete_token(self, profile: str) -> bool:
        """Remove a token; returns False if there was nothing to remove."""
        if not self.available:
            return False
        try:
            self.backend.delete_password(KEYRING_SERVICE, profile)
        except PasswordDeleteError:
            return False
        return True


@dataclass
class ValidationResult:
    """Result of configuration validation."""

    is_valid: bool
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def add_error(self, message: str) -> None:
        """Add an error message."""
        self.errors.append(message)
        self.is_valid = False

    def add_warning(self, message: str) -> None:
        """Add a warning message."""
        self.warnings.append(message)

    def __str__(self) -> str:
        """Format validation result as string."""
        lines = []
        if self.errors:
            lines.append("Errors:")
            lines.extend(f"  - {e}" for e in self.errors)
        if self.warnings:
            lines.append("Warnings:")
            lines.extend(f"  - {w}" for w in self.warnings)
        if not lines:
            return "Configuration is valid."
        return "\n".join(lines)


def _merge_defaults(loaded: Dict[str, Any]) -> Dict[str, Any]:
    merged = copy.deepcopy(DEFAULTS)
    for key, value in loaded.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            for sub_key, sub_value in value.items():
                if isinstance(sub_value, dict) and isinstance(merged[key].get(sub_key), dict):
                    merged[key][sub_key] = {**merged[key][sub_key], **sub_value}
                else:
                    merged[key][sub_key] = sub_value
        else:
            merged[key] = value
    return merged


class Config:
    """Configuration manager backed by a YAML file."""

    def __init__(
        self,
        path: Optional[Path] = None,
        load_env: bool = True,
        token_store: Optional[TokenKeyring] = None,
    ):
        """
        Initialize configuration.

        Args:
            path: Config file path (defaults to :func:`get_config_path`)
            load_env: Load a ``.env`` file from the working directory
            token_store: Keyring consulted for tokens before the config file
        """
        self.logger = logging.getLogger(self.__class__.__name__)
        self.path = Path(path) if path is not None else get_config_path()
        self.token_store = token_store

        if load_env:
            env_path = Path(".env")
            if env_path.exists():
                load_dotenv(env_path)
                self.logger.debug("Loaded environment variables from .env")

        self._config: Dict[str, Any] = _merge_defaults(self._load_file())

    def _load_file(self) -> Dict[str, Any]:
        """Load the YAML file; a missing file yields an empty mapping."""
        if not self.path.exists():
            self.logger.debug("No config file at %s, using defaults", self.path)
            return {}

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ValueError(f"Failed to parse config file {self.path}: {e}") from e

        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ValueError(f"Config file {self.path} must contain a mapping")
        self.logger.debug("Loaded config from %s", self.path)
        return data

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get configuration value.

        Supports dot notation for nested keys: "profiles.sandbox.base_url"

        Args:
            key: Configuration key
            default: Default value if key not found

        Returns:
            Configuration value or default
        """
        value: Any = self._config
        for k in key.split("."):
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default
        return value

    def set(self, key: str, value: Any) -> None:
        """
        Set configuration value.

        Supports dot notation for nested keys: "profiles.sandbox.token"

        Args:
            key: Configuration key
            value: Value to set
        """
        keys = key.split(".")
        config = self._config

        for k in keys[:-1]:
            if not isinstance(config.get(k), dict):
                config[k] = {}
            config = config[k]

        config[keys[-1]] = value
        self.logger.debug("Set config %s", key)

    def delete(self, key: str) -> bool:
        """
        Remove a key.

        Returns:
            True if the key existed
        """
        keys = key.split(".")
        config: Any = self._config
        for k in keys[:-1]:
            if not isinstance(config, dict) or k not in config:
                return False
            config = config[k]
        if isinstance(config, dict) and keys[-1] in config:
            del config[keys[-1]]
            return True
        return False

    def save(self) -> None:
        """Write the configuration to disk with owner-only permissions."""
        self.path.parent.mkdir(parents=True, exist_ok=True, mode=CONFIG_DIR_MODE)
        # Create owner-only so a token is never readable by others
        fd = os.open(self.path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, CONFIG_FILE_MODE)
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            yaml.safe_dump(self._config, f, default_flow_style=False, sort_keys=True)

        # O_CREAT leaves the mode of an existing file untouched
        if sys.platform != "win32":
            os.chmod(self.path, CONFIG_FILE_MODE)
        self.logger.info("Saved config to %s", self.path)

    def to_dict(self) -> Dict[str, Any]:
        """Get a copy of all configuration."""
        return copy.deepcopy(self._config)

    @property
    def default_profile(self) -> str:
        return str(self.get("default_profile") or DEFAULT_PROFILE)

    def profile_names(self) -> List[str]:
        """Return all configured profile names."""
        return sorted((self.get("profiles") or {}).keys())

    def get_profile_value(self, profile: str, key: str) -> str:
        value = self.get(f"profiles.{profile}.{key}")
        return "" if value is None else str(value)

    def set_profile_value(self, profile: str, key: str, value: str) -> None:
        self.set(f"profiles.{profile}.{key}", value)

    def profile_base_url(self, profile: str) -> str:
        return self.get_profile_value(profile, "base_url") or DEFAULT_BASE_URL

    def resolve_profile(self, explicit: str = "") -> str:
        """Effective profile: flag, then ``ZENODO_PROFILE``, then the default profile."""
        if explicit:
            return explicit
        env = os.getenv(PROFILE_ENV)
        if env:
            return env
        return self.default_profile

    def resolve_base_url(self, profile: str = "", sandbox: bool = False) -> str:
        """Base URL: ``--sandbox``, then the profile's base_url, then production."""
        if sandbox:
            return SANDBOX_BASE_URL
        return self.profile_base_url(profile or self.default_profile)

    @property
    def keyring_available(self) -> bool:
        return self.token_store is not None and self.token_store.available

    def stored_token(self, profile: str) -> str:
        """Token saved for a profile: the keyring entry, then the config file."""
        if self.keyring_available:
            token = self.token_store.get_token(profile)
            if token:
                return token
        return self.get_profile_value(profile, "token")

    def resolve_token(self, explicit: str = "", profile: str = "") -> str:
        """Token: flag, then ``ZENODO_TOKEN``, then the keyring, then the config file."""
        if explicit:
            return explicit
        env = os.getenv(TOKEN_ENV)
        if env:
            return env
        return self.stored_token(profile or self.default_profile)

    def store_token(self, profile: str, token: str) -> bool:
        """
        Save a profile's token, preferring the keyring.

        A plain-text copy in the config file is removed once the keyring
        holds the token.  The config file is not written; call :meth:`save`.

        Returns:
            True if the token went to the keyring
        """
        if self.keyring_available:
            try:
                self.token_store.set_token(profile, token)
            except KeyringError as e:
                self.logger.warning("Failed to store token in keyring, using config file: %s", e)
            else:
                self.delete(f"profiles.{profile}.token")
                return True
        self.set_profile_value(profile, "token", token)
        return False

    def migrate_token(self, profile: str) -> bool:
        """
        Move a plain-text token from the config file into the keyring.

        Returns:
            True if a token was migrated and the file rewritten
        """
        token = self.get_profile_value(profile, "token")
        if not token or not self.keyring_available:
            return False
        if not self.store_token(profile, token):
            return False
        self.save()
        self.logger.info("Migrated token for profile %s from config file to keyring", profile)
        return True

    def check_permissions(self) -> Optional[str]:
        """Return a warning if the config file is readable by group or others."""
        if sys.platform == "win32" or not self.path.exists():
            return None
        mode = stat.S_IMODE(self.path.stat().st_mode)
        if mode & 0o077:
            return (
                f"config file {self.path.name} has permissions {mode:o} (expected 600); "
                f"run: chmod 600 {self.path}"
            )
        return None

    def validate(self) -> ValidationResult:
        """
        Validate the configuration.

        Checks:
        - The default profile exists
        - Every profile has an http(s) base_url
        - File permissions are owner-only

        Returns:
            ValidationResult with errors and warnings
        """
        result = ValidationResult(is_valid=True)

        profiles = self.get("profiles") or {}
        if not isinstance(profiles, dict):
            result.add_error("profiles must be a mapping")
            return result

        if self.default_profile not in profiles:
            result.add_error(f"default_profile '{self.default_profile}' is not defined")

        for name, settings in profiles.items():
            if not isinstance(settings, dict):
                result.add_error(f"profiles.{name} must be a mapping")
                continue
            base_url = str(settings.get("base_url") or "")
            if not base_url:
                result.add_warning(f"profiles.{name}.base_url is not set, using {DEFAULT_BASE_URL}")
            elif not base_url.startswith(("https://", "http://")):
                result.add_error(f"profiles.{name}.base_url must be an http(s) URL")
            elif base_url.startswith("http://"):
                result.add_warning(f"profiles.{name}.base_url does not use https")
            if settings.get("token"):
                result.add_warning(f"profiles.{name}.token is stored in plain text")

        permission_warning = self.check_permissions()
        if permission_warning:
            result.add_warning(permission_warning)

        for error in result.errors:
            self.logger.error("Config validation error: %s", error)
        for warning in result.warnings:
            self.logger.warning("Config validation warning: %s", warning)

        return result
