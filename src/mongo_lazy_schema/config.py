from __future__ import annotations

from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from mongo_lazy_schema.exceptions import ConfigurationError


class EnvConfig(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="MLSCHEMA_", case_sensitive=False)

    mongodb_uri: Optional[str] = None
    default_db: Optional[str] = None
    batch_size: Optional[int] = None
    rate_limit_ms: Optional[int] = None
    ordered_writes: Optional[bool] = None
    log_level: Optional[str] = None


class FileConfig(BaseModel):
    mongodb_uri: Optional[str] = None
    default_db: Optional[str] = None
    batch_size: Optional[int] = None
    rate_limit_ms: Optional[int] = None
    ordered_writes: Optional[bool] = None
    log_level: Optional[str] = None


class RuntimeConfig(BaseModel):
    mongodb_uri: str = Field(..., description="MongoDB connection string")
    default_db: str = Field(..., description="Default database")
    batch_size: int = Field(500, gt=0, description="Documents migrated per bulk write when sweeping")
    rate_limit_ms: int = Field(0, ge=0, description="Pause between sweep batches")
    ordered_writes: bool = Field(True, description="Send bulk writes as ordered")
    log_level: str = Field("WARNING", description="Logging level for the CLI")


DEFAULT_CONFIG_PATH = Path.cwd() / ".mlschema.yml"
LOCAL_CONFIG_PATH = Path.cwd() / ".mlschema.local.yml"

_OPTIONAL_FIELDS = ("batch_size", "rate_limit_ms", "ordered_writes", "log_level")


def load_file_config(path: Path = DEFAULT_CONFIG_PATH) -> FileConfig:
    if not path.exists():
        return FileConfig()

    data = yaml.safe_load(path.read_text()) or {}
    return FileConfig(**data)


def _first_set(*values):
    for value in values:
        if value is not None:
            return value
    return None


def load_runtime_config(
    path: Path = DEFAULT_CONFIG_PATH,
    mongodb_uri: Optional[str] = None,
    default_db: Optional[str] = None,
) -> RuntimeConfig:
    """Load configuration with priority: arguments > env vars > local file > main file."""
    file_config = load_file_config(path)

    # Local override file sits next to the main one and is gitignored
    local_path = path.parent / ".mlschema.local.yml" if path != DEFAULT_CONFIG_PATH else LOCAL_CONFIG_PATH
    local_config = load_file_config(local_path)

    env_config = EnvConfig()

    mongodb_uri = mongodb_uri or env_config.mongodb_uri or local_config.mongodb_uri or file_config.mongodb_uri
    default_db = default_db or env_config.default_db or local_config.default_db or file_config.default_db

    if not mongodb_uri:
        raise ConfigurationError("Missing MongoDB URI. Set in .mlschema.yml, .mlschema.local.yml, or MLSCHEMA_MONGODB_URI.")
    if not default_db:
        raise ConfigurationError("Missing default DB. Set in .mlschema.yml, .mlschema.local.yml, or MLSCHEMA_DEFAULT_DB.")

    overrides = {}
    for name in _OPTIONAL_FIELDS:
        value = _first_set(getattr(env_config, name), getattr(local_config, name), getattr(file_config, name))
        if value is not None:
            overrides[name] = value

    try:
        return RuntimeConfig(mongodb_uri=mongodb_uri, default_db=default_db, **overrides)
    except ValueError as exc:
        raise ConfigurationError(f"Invalid configuration: {exc}") from exc


def write_default_config(path: Path = DEFAULT_CONFIG_PATH) -> Path:
    if path.exists():
        return path

    content = {
        "mongodb_uri": "mongodb://localhost:27017",
        "default_db": "myapp",
        "batch_size": 500,
        "rate_limit_ms": 0,
        "ordered_writes": True,
        "log_level": "WARNING",
    }
    path.write_text(yaml.safe_dump(content, sort_keys=False))
    return path
