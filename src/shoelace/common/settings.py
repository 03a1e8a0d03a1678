"""Application configuration for the Shoelace front-end."""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Optional

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def env_field(default, env_name: str):
    return Field(default, validation_alias=env_name)


class Backend(str, Enum):
    """Keystore backends selectable at startup."""

    NONE = "none"
    INTERNAL = "internal"
    REDIS = "redis"
    PERSISTENT = "persistent"


BACKEND_ALIASES = {
    "disabled": Backend.NONE,
    "in-memory": Backend.INTERNAL,
    "memory": Backend.INTERNAL,
    "external-kv": Backend.REDIS,
    "rocksdb": Backend.PERSISTENT,
    "sqlite": Backend.PERSISTENT,
}


def normalize_database_url(value):
    if value is None:
        return value
    if isinstance(value, Path):
        value = str(value)
    if isinstance(value, str) and "://" not in value:
        path = Path(value).expanduser().resolve()
        return f"sqlite+pysqlite:///{path.as_posix()}"
    return value


class ShoelaceSettings(BaseSettings):
    """Runtime settings for the proxy and API service."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", populate_by_name=True)

    listen: str = env_field("0.0.0.0", "SHOELACE_LISTEN")
    port: int = env_field(8080, "SHOELACE_PORT")
    base_url: str = env_field("http://localhost:8080", "SHOELACE_BASE_URL")
    proxy_backend: Backend = env_field(Backend.INTERNAL, "SHOELACE_PROXY_BACKEND")
    redis_uri: Optional[str] = env_field(None, "SHOELACE_REDIS_URI")
    keystore_database_url: Optional[str] = env_field(None, "SHOELACE_KEYSTORE_DB")
    endpoint_api: bool = env_field(True, "SHOELACE_ENDPOINT_API")
    provider: Optional[str] = env_field(None, "SHOELACE_PROVIDER")
    origin_timeout_seconds: float = env_field(20.0, "SHOELACE_ORIGIN_TIMEOUT")
    metrics_token: Optional[SecretStr] = env_field(None, "SHOELACE_METRICS_TOKEN")
    log_level: str = env_field("INFO", "SHOELACE_LOG_LEVEL")
    log_cdn: bool = env_field(False, "SHOELACE_LOG_CDN")
    otel_exporter_endpoint: Optional[str] = env_field(None, "SHOELACE_OTEL_EXPORTER_ENDPOINT")
    otel_exporter_headers: Optional[str] = env_field(None, "SHOELACE_OTEL_EXPORTER_HEADERS")
    otel_sampler_ratio: float = env_field(0.1, "SHOELACE_OTEL_SAMPLER_RATIO")

    @field_validator("base_url", mode="before")
    @classmethod
    def _strip_base_url(cls, value):
        if isinstance(value, str):
            return value.strip().rstrip("/")
        return value

    @field_validator("proxy_backend", mode="before")
    @classmethod
    def _parse_backend(cls, value):
        if isinstance(value, str):
            normalized = value.strip().lower()
            return BACKEND_ALIASES.get(normalized, normalized)
        return value

    @field_validator("keystore_database_url", mode="before")
    @classmethod
    def _normalize_keystore_url(cls, value):
        return normalize_database_url(value)
