"""Configuration management for the model routing gateway."""

from __future__ import annotations

import logging
import os
from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError, field_validator

from model_gateway.utils.http import normalize_base_url

_config_logger = logging.getLogger(__name__)


class LoggingSettings(BaseModel):
    level: str = Field(default="INFO", description="Python logging level name")
    file: str | None = Field(default=None, description="Optional log file path")


class MetadataSettings(BaseModel):
    catalog_path: str = Field(default="./catalog.yaml")


class BackendSettings(BaseModel):
    """Outbound calls to the backend execution service and resource manager."""

    connect_timeout_seconds: float = Field(default=5.0, ge=0.1, le=60)
    timeout_seconds: float = Field(default=30.0, ge=0.1, le=600)
    max_connections: int = Field(default=100, ge=1, le=1000)
    max_keepalive_connections: int = Field(default=20, ge=0, le=1000)
    resource_manager_url: str = Field(default="https://management.azure.com")
    resource_api_version: str = Field(default="2019-05-01")
    regional_host_template: str = Field(default="https://{region}.api.azureml.ms")
    run_type: str = Field(default="azureml.PipelineRun")

    @field_validator("resource_manager_url")
    @classmethod
    def _validate_resource_manager_url(cls, value: str) -> str:
        return normalize_base_url(value)

    @field_validator("regional_host_template")
    @classmethod
    def _validate_regional_host_template(cls, value: str) -> str:
        if "{region}" not in value:
            raise ValueError("regional_host_template must contain '{region}'")
        return value.rstrip("/")


class AuthSettings(BaseModel):
    authority_host: str = Field(default="https://login.microsoftonline.com")
    token_scope: str = Field(default="https://management.azure.com/.default")

    # Token caching
    credential_refresh_buffer_seconds: int = Field(default=300, ge=0, le=3600)
    credential_cache_max_entries: int = Field(default=1000, ge=1, le=10000)
    audit_enabled: bool = Field(default=True)

    @field_validator("authority_host")
    @classmethod
    def _validate_authority_host(cls, value: str) -> str:
        return normalize_base_url(value)


class ServerSettings(BaseModel):
    host: str = Field(default="127.0.0.1")
    port: int = Field(default=8000, ge=1024, le=65535)
    route_prefix: str = Field(default="/api")
    http_allowed_origins: tuple[str, ...] = Field(default=())
    http_enable_cors: bool = Field(default=False)
    http_trust_forwarded_headers: bool = Field(default=False)

    @field_validator("route_prefix")
    @classmethod
    def _validate_route_prefix(cls, value: str) -> str:
        stripped = value.strip().rstrip("/")
        if stripped and not stripped.startswith("/"):
            stripped = "/" + stripped
        return stripped


class Settings(BaseModel):
    server: ServerSettings = Field(default_factory=ServerSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    metadata: MetadataSettings = Field(default_factory=MetadataSettings)
    backend: BackendSettings = Field(default_factory=BackendSettings)
    auth: AuthSettings = Field(default_factory=AuthSettings)


ENV_KEYS = {
    "host": "GATEWAY_HOST",
    "port": "GATEWAY_PORT",
    "route_prefix": "GATEWAY_ROUTE_PREFIX",
    "log_level": "LOG_LEVEL",
    "log_file": "LOG_FILE",
    "catalog_path": "METADATA_CATALOG_PATH",
    "backend_timeout": "BACKEND_TIMEOUT_SECONDS",
    "backend_connect_timeout": "BACKEND_CONNECT_TIMEOUT_SECONDS",
    "resource_manager_url": "BACKEND_RESOURCE_MANAGER_URL",
    "regional_host_template": "BACKEND_REGIONAL_HOST_TEMPLATE",
}

_TRUE_VALUES = frozenset({"1", "true", "yes"})


def _split_csv_preserve_case(value: str | None) -> list[str]:
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


def _project_root() -> Path:
    return Path(__file__).resolve().parents[2]


def _resolve_path(path: str) -> str:
    candidate = Path(path)
    root = _project_root().resolve()
    if candidate.is_absolute():
        resolved = candidate.resolve()
    else:
        resolved = (root / candidate).resolve()
    if not resolved.is_relative_to(root):
        raise ValueError(f"Path traversal detected: '{path}' resolves outside project root")
    return str(resolved)


def _env_bool(key: str, default: bool) -> bool:
    value = os.getenv(key)
    if value is None:
        return default
    return value.strip().lower() in _TRUE_VALUES


def _env_int(key: str, default: int) -> int:
    value = os.getenv(key)
    if value is None or value.strip() == "":
        return default
    try:
        return int(value)
    except ValueError:
        _config_logger.warning(
            "Invalid integer value for %s: %r, using default %d", key, value, default
        )
        return default


def _env_float(key: str, default: float) -> float:
    value = os.getenv(key)
    if value is None or value.strip() == "":
        return default
    try:
        return float(value)
    except ValueError:
        _config_logger.warning(
            "Invalid float value for %s: %r, using default %s", key, value, default
        )
        return default


def load_settings() -> Settings:
    """Load configuration and cache the result."""

    return _load_settings_cached()


@lru_cache(maxsize=1)
def _load_settings_cached() -> Settings:
    load_dotenv(dotenv_path=_project_root() / ".env")
    log_file_env = os.getenv(ENV_KEYS["log_file"])

    settings_data: dict[str, object] = {
        "server": {
            "host": os.getenv(ENV_KEYS["host"], ServerSettings().host),
            "port": _env_int(ENV_KEYS["port"], ServerSettings().port),
            "route_prefix": os.getenv(ENV_KEYS["route_prefix"], ServerSettings().route_prefix),
            "http_allowed_origins": tuple(
                _split_csv_preserve_case(os.getenv("HTTP_ALLOWED_ORIGINS"))
            ),
            "http_enable_cors": _env_bool(
                "HTTP_ENABLE_CORS",
                ServerSettings().http_enable_cors,
            ),
            "http_trust_forwarded_headers": _env_bool(
                "HTTP_TRUST_FORWARDED_HEADERS",
                ServerSettings().http_trust_forwarded_headers,
            ),
        },
        "logging": {
            "level": os.getenv(ENV_KEYS["log_level"], LoggingSettings().level),
            "file": _resolve_path(log_file_env) if log_file_env else None,
        },
        "metadata": {
            "catalog_path": _resolve_path(
                os.getenv(ENV_KEYS["catalog_path"], MetadataSettings().catalog_path)
            ),
        },
        "backend": {
            "connect_timeout_seconds": _env_float(
                ENV_KEYS["backend_connect_timeout"],
                BackendSettings().connect_timeout_seconds,
            ),
            "timeout_seconds": _env_float(
                ENV_KEYS["backend_timeout"],
                BackendSettings().timeout_seconds,
            ),
            "max_connections": _env_int(
                "BACKEND_MAX_CONNECTIONS",
                BackendSettings().max_connections,
            ),
            "max_keepalive_connections": _env_int(
                "BACKEND_MAX_KEEPALIVE_CONNECTIONS",
                BackendSettings().max_keepalive_connections,
            ),
            "resource_manager_url": os.getenv(
                ENV_KEYS["resource_manager_url"], BackendSettings().resource_manager_url
            ),
            "resource_api_version": os.getenv(
                "BACKEND_RESOURCE_API_VERSION", BackendSettings().resource_api_version
            ),
            "regional_host_template": os.getenv(
                ENV_KEYS["regional_host_template"], BackendSettings().regional_host_template
            ),
            "run_type": os.getenv("BACKEND_RUN_TYPE", BackendSettings().run_type),
        },
        "auth": {
            "authority_host": os.getenv("AUTH_AUTHORITY_HOST", AuthSettings().authority_host),
            "token_scope": os.getenv("AUTH_TOKEN_SCOPE", AuthSettings().token_scope),
            "credential_refresh_buffer_seconds": _env_int(
                "AUTH_CREDENTIAL_REFRESH_BUFFER_SECONDS",
                AuthSettings().credential_refresh_buffer_seconds,
            ),
            "credential_cache_max_entries": _env_int(
                "AUTH_CREDENTIAL_CACHE_MAX_ENTRIES",
                AuthSettings().credential_cache_max_entries,
            ),
            "audit_enabled": _env_bool(
                "AUTH_AUDIT_ENABLED",
                AuthSettings().audit_enabled,
            ),
        },
    }

    try:
        settings = Settings.model_validate(settings_data)
    except ValidationError as exc:
        raise RuntimeError(f"Invalid configuration: {exc}") from exc

    return settings
