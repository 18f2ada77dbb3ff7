"""Unit tests for docspace.engine.config — docspace.yaml loading & validation."""

import pytest

import docspace.engine.config as cfg_mod
from docspace.engine.config import (
    DocSpaceConfig,
    get_config,
    load_config,
    parse_config,
)
from docspace.engine.errors import ConfigError


class TestDefaults:
    def test_defaults(self):
        config = DocSpaceConfig()
        assert config.platform.environment == "dev"
        assert config.storage.backend == "filesystem"
        assert config.storage.user_prefix == "users/"
        assert config.onlyoffice.verify_callback_token is False
        assert config.uploads.max_upload_size_mb == 50
        assert config.logging.format == "json"

    def test_max_upload_bytes(self):
        config = parse_config({"uploads": {"max_upload_size_mb": 2}})
        assert config.max_upload_bytes == 2 * 1024 * 1024


class TestValidation:
    def test_bad_environment(self):
        with pytest.raises(ConfigError):
            parse_config({"platform": {"environment": "qa"}})

    def test_bad_backend(self):
        with pytest.raises(ConfigError):
            parse_config({"storage": {"backend": "ftp"}})

    def test_bad_log_format(self):
        with pytest.raises(ConfigError):
            parse_config({"logging": {"format": "xml"}})

    def test_empty_mapping(self):
        assert parse_config({}).platform.name == "DocSpace"


class TestLoadConfig:
    def test_load_from_path(self, tmp_path):
        path = tmp_path / "docspace.yaml"
        path.write_text(
            "platform:\n  name: Team Files\n"
            "storage:\n  backend: s3\n  bucket: team\n"
            "onlyoffice:\n  verify_callback_token: true\n"
        )
        config = load_config(str(path))
        assert config.platform.name == "Team Files"
        assert config.storage.backend == "s3"
        assert config.storage.bucket == "team"
        assert config.onlyoffice.verify_callback_token is True

    def test_env_var(self, tmp_path, monkeypatch):
        path = tmp_path / "custom.yaml"
        path.write_text("auth:\n  token_ttl_seconds: 60\n")
        monkeypatch.setenv("DOCSPACE_CONFIG", str(path))
        assert load_config().auth.token_ttl_seconds == 60

    def test_missing_explicit_path(self, tmp_path):
        with pytest.raises(ConfigError):
            load_config(str(tmp_path / "nope.yaml"))

    def test_discovery_falls_back_to_defaults(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        assert load_config().platform.name == "DocSpace"

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "docspace.yaml"
        path.write_text("platform: [unclosed\n")
        with pytest.raises(ConfigError):
            load_config(str(path))


class TestGetConfig:
    def test_caches(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        first = get_config()
        assert get_config() is first
        assert cfg_mod._config is first
