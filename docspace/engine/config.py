"""
DocSpace Configuration — Load and validate docspace.yaml at startup.

Usage:
    from docspace.engine.config import load_config, get_config

Resolution of the config file:
    1. Explicit path passed to load_config()
    2. DOCSPACE_CONFIG environment variable
    3. docspace.yaml found by walking up from the CWD
    4. Built-in defaults when no file exists
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError as PydanticValidationError, field_validator

from docspace.engine.errors import ConfigError

CONFIG_FILENAME = "docspace.yaml"
CONFIG_ENV_VAR = "DOCSPACE_CONFIG"


# ---------------------------------------------------------------------------
# Pydantic models for docspace.yaml
# ---------------------------------------------------------------------------

class PlatformSection(BaseModel):
    name: str = "DocSpace"
    environment: str = "dev"

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        if v not in ("dev", "staging", "prod"):
            raise ValueError(f"environment must be dev/staging/prod, got '{v}'")
        return v


class DatabaseConfig(BaseModel):
    url: str = "sqlite+aiosqlite:///./docspace.db"
    echo: bool = False
    pool_size: int = 10
    max_overflow: int = 20
    pool_recycle: int = 1800
    pool_pre_ping: bool = True


class StorageConfig(BaseModel):
    backend: str = "filesystem"
    root: str = ".docspace/blobs"
    bucket: str = "projectmanagement"
    endpoint_url: Optional[str] = None
    region: str = "us-east-1"
    access_key: Optional[str] = None
    secret_key: Optional[str] = None
    user_prefix: str = "users/"
    presign_ttl_seconds: int = 3600

    @field_validator("backend")
    @classmethod
    def validate_backend(cls, v: str) -> str:
        if v not in ("filesystem", "s3"):
            raise ValueError(f"storage.backend must be filesystem/s3, got '{v}'")
        return v


class OnlyOfficeConfig(BaseModel):
    document_server_url: str = "http://localhost:8080"
    backend_url: str = "http://localhost:8000"
    jwt_secret: str = "change-me"
    verify_callback_token: bool = False
    download_token_ttl_seconds: int = 86400
    lang: str = "en"
    request_timeout: float = 60.0


class AuthConfig(BaseModel):
    jwt_secret: str = "change-me"
    algorithm: str = "HS256"
    token_ttl_seconds: int = 86400


class UploadsConfig(BaseModel):
    max_upload_size_mb: int = 50


class LoggingConfig(BaseModel):
    level: str = "INFO"
    format: str = "json"

    @field_validator("format")
    @classmethod
    def validate_format(cls, v: str) -> str:
        if v not in ("json", "text"):
            raise ValueError(f"logging.format must be json/text, got '{v}'")
        return v


class DocSpaceConfig(BaseModel):
    """Root model for docspace.yaml."""
    platform: PlatformSection = PlatformSection()
    database: DatabaseConfig = DatabaseConfig()
    storage: StorageConfig = StorageConfig()
    onlyoffice: OnlyOfficeConfig = OnlyOfficeConfig()
    auth: AuthConfig = AuthConfig()
    uploads: UploadsConfig = UploadsConfig()
    logging: LoggingConfig = LoggingConfig()

    @property
    def max_upload_bytes(self) -> int:
        return self.uploads.max_upload_size_mb * 1024 * 1024


# ---------------------------------------------------------------------------
# Config Loading Functions
# ---------------------------------------------------------------------------

_config: Optional[DocSpaceConfig] = None


def _find_config_file() -> Optional[Path]:
    """Find docspace.yaml by walking up from the CWD."""
    current = Path.cwd()
    for parent in [current, *current.parents]:
        candidate = parent / CONFIG_FILENAME
        if candidate.exists():
            return candidate
    return None


def parse_config(raw: Dict[str, Any]) -> DocSpaceConfig:
    """Validate a raw mapping (as read from YAML) into a DocSpaceConfig."""
    try:
        return DocSpaceConfig(**(raw or {}))
    except PydanticValidationError as e:
        raise ConfigError(f"Invalid {CONFIG_FILENAME}: {e}", validation_errors=e.errors()) from e


def load_config(config_path: Optional[str] = None) -> DocSpaceConfig:
    """
    Load and validate docspace.yaml.

    Args:
        config_path: Explicit path to docspace.yaml. If None, uses
            DOCSPACE_CONFIG or auto-discovers.

    Returns:
        Validated DocSpaceConfig instance.
    """
    global _config

    if config_path is None:
        config_path = os.environ.get(CONFIG_ENV_VAR)

    path: Optional[Path] = Path(config_path) if config_path else _find_config_file()
    if path is None or not path.exists():
        if config_path:
            raise ConfigError(f"Config file not found: {config_path}")
        _config = DocSpaceConfig()
        return _config

    with open(path, "r", encoding="utf-8") as f:
        try:
            raw = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Could not parse {path}: {e}") from e

    _config = parse_config(raw)
    return _config


def get_config() -> DocSpaceConfig:
    """Get the currently loaded config, loading if necessary."""
    global _config
    if _config is None:
        _config = load_config()
    return _config
