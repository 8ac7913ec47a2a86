"""Tests for the configuration system."""

from __future__ import annotations

import os
import stat
import sys
from pathlib import Path

import pytest
import yaml
from keyring.errors import KeyringError

from zenodo_cli.core import config as config_module
from zenodo_cli.core.config import (
    DEFAULT_BASE_URL,
    KEYRING_SERVICE,
    SANDBOX_BASE_URL,
    Config,
    TokenKeyring,
    ValidationResult,
    get_config_dir,
    get_config_path,
    mask_token,
)

posix_only = pytest.mark.skipif(sys.platform == "win32", reason="POSIX file modes")


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Isolate tests from the caller's Zenodo environment."""
    monkeypatch.delenv("ZENODO_TOKEN", raising=False)
    monkeypatch.delenv("ZENODO_PROFILE", raising=False)


@pytest.fixture
def config_path(tmp_path: Path) -> Path:
    return tmp_path / "zenodo-cli" / "config.yaml"


def write_yaml(path: Path, data) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(yaml.safe_dump(data), encoding="utf-8")


class TestConfigPaths:
    """Tests for config file location."""

    def test_xdg_config_home(self, monkeypatch, tmp_path):
        """Test that XDG_CONFIG_HOME is honoured."""
        monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path))
        assert get_config_dir() == tmp_path / "zenodo-cli"
        assert get_config_path() == tmp_path / "zenodo-cli" / "config.yaml"

    @pytest.mark.skipif(sys.platform == "win32", reason="home directory layout")
    def test_default_location(self, monkeypatch, tmp_path):
        """Test the fallback under the home directory."""
        monkeypatch.delenv("XDG_CONFIG_HOME", raising=False)
        monkeypatch.setenv("HOME", str(tmp_path))
        assert get_config_dir() == tmp_path / ".config" / "zenodo-cli"


class TestConfig:
    """Test the Config class."""

    def test_defaults_without_file(self, config_path):
        """Test that config initializes with defaults."""
        config = Config(config_path, load_env=False)

        assert config.default_profile == "production"
        assert config.get("profiles.production.base_url") == DEFAULT_BASE_URL
        assert config.get("profiles.sandbox.base_url") == SANDBOX_BASE_URL
        assert config.profile_names() == ["production", "sandbox"]

    def test_load_yaml_merges_defaults(self, config_path):
        """Test loading configuration from a YAML file."""
        write_yaml(
            config_path,
            {
                "default_profile": "sandbox",
                "orcid": "0000-0002-1825-0097",
                "profiles": {"sandbox": {"token": "sb-token"}},
            },
        )
        config = Config(config_path, load_env=False)

        assert config.default_profile == "sandbox"
        assert config.get("orcid") == "0000-0002-1825-0097"
        assert config.get("profiles.sandbox.token") == "sb-token"
        assert config.get("profiles.sandbox.base_url") == SANDBOX_BASE_URL
        assert config.get("profiles.production.base_url") == DEFAULT_BASE_URL

    def test_invalid_yaml(self, config_path):
        """Test a file that does not parse."""
        config_path.parent.mkdir(parents=True)
        config_path.write_text("profiles: [unclosed", encoding="utf-8")
        with pytest.raises(ValueError, match="Failed to parse"):
            Config(config_path, load_env=False)

    def test_non_mapping(self, config_path):
        """Test a file whose top level is not a mapping."""
        write_yaml(config_path, ["a", "b"])
        with pytest.raises(ValueError, match="mapping"):
            Config(config_path, load_env=False)

    def test_empty_file(self, config_path):
        """Test an empty file."""
        config_path.parent.mkdir(parents=True)
        config_path.write_text("", encoding="utf-8")
        assert Config(config_path, load_env=False).default_profile == "production"

    def test_get_set_delete(self, config_path):
        """Test dotted key access."""
        config = Config(config_path, load_env=False)

        assert config.get("nonexistent.key", "DEFAULT") == "DEFAULT"
        config.set("profiles.work.base_url", "https://zenodo.example.org/api")
        assert config.get("profiles.work.base_url") == "https://zenodo.example.org/api"
        assert "work" in config.profile_names()

        assert config.delete("profiles.work.base_url") is True
        assert config.delete("profiles.work.base_url") is False
        assert config.delete("missing.key") is False

    def test_to_dict_is_copy(self, config_path):
        """Test that to_dict does not expose internal state."""
        config = Config(config_path, load_env=False)
        data = config.to_dict()
        data["profiles"]["production"]["base_url"] = "changed"
        assert config.get("profiles.production.base_url") == DEFAULT_BASE_URL

    @posix_only
    def test_save_round_trip_with_owner_only_mode(self, config_path):
        """Test saving writes YAML with 0600 permissions."""
        config = Config(config_path, load_env=False)
        config.set("profiles.production.token", "abc123")
        config.save()

        assert stat.S_IMODE(config_path.stat().st_mode) == 0o600
        reloaded = Config(config_path, load_env=False)
        assert reloaded.get("profiles.production.token") == "abc123"
        assert reloaded.check_permissions() is None

    @posix_only
    def test_save_creates_file_owner_only(self, config_path, monkeypatch):
        """Test that the file is never created with umask permissions."""
        chmod_calls = []
        monkeypatch.setattr(config_module.os, "chmod", lambda *args: chmod_calls.append(args))
        old_umask = os.umask(0)
        try:
            config = Config(config_path, load_env=False)
            config.set("profiles.production.token", "abc123")
            config.save()
        finally:
            os.umask(old_umask)

        assert stat.S_IMODE(config_path.stat().st_mode) == 0o600
        assert chmod_calls == [(config_path, 0o600)]

    @posix_only
    def test_save_tightens_existing_file(self, config_path):
        """Test that an existing group-readable file is restricted on save."""
        write_yaml(config_path, {"default_profile": "production"})
        os.chmod(config_path, 0o644)

        Config(config_path, load_env=False).save()

        assert stat.S_IMODE(config_path.stat().st_mode) == 0o600

    @posix_only
    def test_check_permissions_warns(self, config_path):
        """Test the group/other readable warning."""
        write_yaml(config_path, {"default_profile": "production"})
        os.chmod(config_path, 0o644)
        warning = Config(config_path, load_env=False).check_permissions()
        assert warning is not None
        assert "chmod 600" in warning

    def test_check_permissions_missing_file(self, config_path):
        """Test that a missing file has nothing to warn about."""
        assert Config(config_path, load_env=False).check_permissions() is None

    def test_load_dotenv(self, config_path, tmp_path, monkeypatch):
        """Test that a local .env file populates the environment."""
        monkeypatch.chdir(tmp_path)
        (tmp_path / ".env").write_text("ZENODO_TOKEN=from-dotenv\n", encoding="utf-8")

        config = Config(config_path)

        assert config.resolve_token() == "from-dotenv"
        os.environ.pop("ZENODO_TOKEN", None)


class TestResolution:
    """Tests for profile, base URL and token resolution."""

    @pytest.fixture
    def config(self, config_path):
        write_yaml(
            config_path,
            {
                "profiles": {
                    "production": {"token": "prod-token"},
                    "sandbox": {"token": "sandbox-token"},
                    "local": {"base_url": "http://localhost:5000/api"},
                }
            },
        )
        return Config(config_path, load_env=False)

    def test_profile_precedence(self, config, monkeypatch):
        """Test flag over environment over default."""
        assert config.resolve_profile() == "production"
        monkeypatch.setenv("ZENODO_PROFILE", "sandbox")
        assert config.resolve_profile() == "sandbox"
        assert config.resolve_profile("local") == "local"

    def test_token_precedence(self, config, monkeypatch):
        """Test flag over environment over config file."""
        assert config.resolve_token(profile="sandbox") == "sandbox-token"
        assert config.resolve_token() == "prod-token"
        monkeypatch.setenv("ZENODO_TOKEN", "env-token")
        assert config.resolve_token(profile="sandbox") == "env-token"
        assert config.resolve_token("flag-token", "sandbox") == "flag-token"

    def test_token_missing(self, config):
        """Test a profile without a token."""
        assert config.resolve_token(profile="local") == ""

    def test_base_url(self, config):
        """Test sandbox flag over profile URL over default."""
        assert config.resolve_base_url("production") == DEFAULT_BASE_URL
        assert config.resolve_base_url("local") == "http://localhost:5000/api"
        assert config.resolve_base_url("local", sandbox=True) == SANDBOX_BASE_URL
        assert config.resolve_base_url("unknown") == DEFAULT_BASE_URL


class TestTokenKeyring:
    """Tests for OS keyring token storage."""

    def test_set_get_delete(self, memory_keyring):
        """Test a working keyring."""
        store = TokenKeyring(memory_keyring)
        assert store.available is True
        assert memory_keyring.passwords == {}

        store.set_token("production", "secret")
        assert store.get_token("production") == "secret"
        assert memory_keyring.passwords == {(KEYRING_SERVICE, "production"): "secret"}

        assert store.delete_token("production") is True
        assert store.get_token("production") == ""
        assert store.delete_token("production") is False

    def test_unavailable(self, memory_keyring):
        """Test that a failing availability check disables the keyring."""
        memory_keyring.available = False
        store = TokenKeyring(memory_keyring)

        assert store.available is False
        assert store.get_token("production") == ""
        assert store.delete_token("production") is False
        with pytest.raises(KeyringError):
            store.set_token("production", "secret")

    def test_profiles_are_separate(self, memory_keyring):
        """Test one entry per profile."""
        store = TokenKeyring(memory_keyring)
        store.set_token("production", "prod")
        store.set_token("sandbox", "sand")
        assert store.get_token("production") == "prod"
        assert store.get_token("sandbox") == "sand"


class TestKeyringTokens:
    """Tests for token resolution and storage with a keyring."""

    @pytest.fixture
    def store(self, memory_keyring):
        return TokenKeyring(memory_keyring)

    def test_resolution_order(self, config_path, store, monkeypatch):
        """Test flag over environment over keyring over config file."""
        write_yaml(config_path, {"profiles": {"production": {"token": "file-token"}}})
        config = Config(config_path, load_env=False, token_store=store)

        assert config.resolve_token() == "file-token"
        store.set_token("production", "keyring-token")
        assert config.resolve_token() == "keyring-token"
        monkeypatch.setenv("ZENODO_TOKEN", "env-token")
        assert config.resolve_token() == "env-token"
        assert config.resolve_token("flag-token") == "flag-token"

    def test_store_token_in_keyring(self, config_path, store):
        """Test that storing removes the plain-text copy."""
        config = Config(config_path, load_env=False, token_store=store)
        config.set("profiles.production.token", "old")

        assert config.store_token("production", "new") is True
        assert store.get_token("production") == "new"
        assert config.get("profiles.production.token") is None

    def test_store_token_fallback(self, config_path, memory_keyring):
        """Test the config file fallback without a keyring."""
        memory_keyring.available = False
        config = Config(config_path, load_env=False, token_store=TokenKeyring(memory_keyring))

        assert config.keyring_available is False
        assert config.store_token("production", "new") is False
        assert config.get("profiles.production.token") == "new"

    def test_migrate_token(self, config_path, store):
        """Test moving a plain-text token into the keyring."""
        write_yaml(config_path, {"profiles": {"sandbox": {"token": "plain"}}})
        config = Config(config_path, load_env=False, token_store=store)

        assert config.migrate_token("sandbox") is True
        assert store.get_token("sandbox") == "plain"
        assert Config(config_path, load_env=False).get("profiles.sandbox.token") is None
        assert config.migrate_token("sandbox") is False

    def test_migrate_without_keyring(self, config_path):
        """Test that nothing moves without a keyring."""
        write_yaml(config_path, {"profiles": {"sandbox": {"token": "plain"}}})
        config = Config(config_path, load_env=False)

        assert config.migrate_token("sandbox") is False
        assert config.get("profiles.sandbox.token") == "plain"


class TestValidation:
    """Tests for configuration validation."""

    def test_defaults_are_valid(self, config_path):
        """Test that the built-in defaults validate."""
        result = Config(config_path, load_env=False).validate()
        assert result.is_valid
        assert str(result) == "Configuration is valid."

    def test_bad_base_url(self, config_path):
        """Test a non-HTTP base URL."""
        write_yaml(config_path, {"profiles": {"broken": {"base_url": "ftp://example.org"}}})
        result = Config(config_path, load_env=False).validate()
        assert not result.is_valid
        assert any("profiles.broken.base_url" in e for e in result.errors)

    def test_unknown_default_profile(self, config_path):
        """Test a default profile that is not defined."""
        write_yaml(config_path, {"default_profile": "staging"})
        result = Config(config_path, load_env=False).validate()
        assert not result.is_valid
        assert "default_profile 'staging' is not defined" in result.errors

    def test_plain_text_token_warning(self, config_path):
        """Test the stored token warning."""
        write_yaml(config_path, {"profiles": {"production": {"token": "abc"}}})
        os.chmod(config_path, 0o600)
        result = Config(config_path, load_env=False).validate()
        assert result.is_valid
        assert any("plain text" in w for w in result.warnings)

    def test_validation_result_str(self):
        """Test formatting of errors and warnings."""
        result = ValidationResult(is_valid=True)
        result.add_error("bad")
        result.add_warning("meh")
        assert result.is_valid is False
        assert str(result) == "Errors:\n  - bad\nWarnings:\n  - meh"


class TestMaskToken:
    """Tests for token masking."""

    def test_long_token(self):
        assert mask_token("abcdefgh1234") == "****1234"

    def test_short_token(self):
        assert mask_token("abc") == "****"
