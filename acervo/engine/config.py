"""
Acervo Configuration — Load and validate acervo.yaml at startup.

Storage secrets may be supplied through environment variables, which win over
the file:

    B2_ACCOUNT_ID, B2_APPLICATION_KEY, B2_BUCKET_ID, B2_BUCKET_NAME, ACERVO_DB_FILE

Usage:
    from acervo.engine.config import load_config, get_config
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Dict, Optional

import yaml
from pydantic import BaseModel, field_validator

ENV_OVERRIDES: Dict[str, tuple] = {
    "B2_ACCOUNT_ID": ("storage", "account_id"),
    "B2_APPLICATION_KEY": ("storage", "application_key"),
    "B2_BUCKET_ID": ("storage", "bucket_id"),
    "B2_BUCKET_NAME": ("storage", "bucket_name"),
    "ACERVO_DB_FILE": ("database", "path"),
}

DEFAULT_DB_FILE = "data/media-metadata.json"
PROD_DB_FILE = "/tmp/acervo-data/media-metadata.json"


# ---------------------------------------------------------------------------
# Pydantic models for acervo.yaml
# ---------------------------------------------------------------------------

class StorageConfig(BaseModel):
    account_id: str = ""
    application_key: str = ""
    bucket_id: str = ""
    bucket_name: str = ""
    api_url: str = "https://api005.backblazeb2.com"
    download_url: str = "https://f005.backblazeb2.com"
    timeout: float = 30.0
    auth_ttl_hours: float = 23.0

    @property
    def is_complete(self) -> bool:
        return bool(self.account_id and self.application_key and self.bucket_id)

    def missing_fields(self) -> list:
        return [
            name for name in ("account_id", "application_key", "bucket_id")
            if not getattr(self, name)
        ]


class DatabaseConfig(BaseModel):
    path: Optional[str] = None


class UploadConfig(BaseModel):
    max_upload_size_mb: int = 500
    default_content_type: str = "application/octet-stream"


class LogAsyncQueueConfig(BaseModel):
    flush_interval_ms: int = 100
    flush_batch_size: int = 50
    max_queue_size: int = 10000


class LoggingConfig(BaseModel):
    level: str = "INFO"
    directory: str = ".acervo/logs"
    async_queue: LogAsyncQueueConfig = LogAsyncQueueConfig()


class AcervoConfig(BaseModel):
    """Root model for acervo.yaml."""
    name: str = "RC Acervo"
    version: str = "2.0.0"
    environment: str = "dev"

    storage: StorageConfig = StorageConfig()
    database: DatabaseConfig = DatabaseConfig()
    uploads: UploadConfig = UploadConfig()
    logging: LoggingConfig = LoggingConfig()

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        if v not in ("dev", "staging", "prod"):
            raise ValueError(f"environment must be dev/staging/prod, got '{v}'")
        return v

    @property
    def db_file(self) -> Path:
        """Metadata document location. prod keeps it under /tmp (writable on PaaS hosts)."""
        if self.database.path:
            return Path(self.database.path)
        if self.environment == "prod":
            return Path(PROD_DB_FILE)
        return Path(DEFAULT_DB_FILE)


# ---------------------------------------------------------------------------
# Config Loading Functions
# ---------------------------------------------------------------------------

_config: Optional[AcervoConfig] = None


def _find_project_root() -> Path:
    """Find the project root by looking for acervo.yaml."""
    current = Path.cwd()
    for parent in [current, *current.parents]:
        if (parent / "acervo.yaml").exists():
            return parent
    return current


def _apply_env_overrides(data: dict) -> dict:
    for env_name, (section, key) in ENV_OVERRIDES.items():
        value = os.environ.get(env_name)
        if value:
            data.setdefault(section, {})[key] = value
    return data


def load_config(config_path: Optional[str] = None) -> AcervoConfig:
    """
    Load and validate acervo.yaml.

    Args:
        config_path: Explicit path to acervo.yaml. If None, auto-discovers.

    Returns:
        Validated AcervoConfig instance (defaults + env overrides when no file).
    """
    global _config

    if config_path is None:
        config_path = str(_find_project_root() / "acervo.yaml")

    path = Path(config_path)
    raw: dict = {}
    if path.exists():
        with open(path, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}

    # "app:" wraps name/version/environment, the rest are top-level sections
    app_data = raw.get("app", {})
    config_data = {
        "name": app_data.get("name", raw.get("name", "RC Acervo")),
        "version": str(app_data.get("version", raw.get("version", "2.0.0"))),
        "environment": app_data.get("environment", raw.get("environment", "dev")),
        "storage": dict(raw.get("storage") or {}),
        "database": dict(raw.get("database") or {}),
        "uploads": dict(raw.get("uploads") or {}),
        "logging": dict(raw.get("logging") or {}),
    }

    _config = AcervoConfig(**_apply_env_overrides(config_data))
    return _config


def get_config() -> AcervoConfig:
    """Get the currently loaded config, loading if necessary."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def get_environment() -> str:
    return get_config().environment
