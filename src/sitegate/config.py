"""
Configuration management with reload capability.

Uses Pydantic Settings for environment variable handling and validation.
A config.yaml file supplies defaults, environment variables override it.
"""

import json
import os
import yaml
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings


def load_config_file(config_path: Optional[str] = None) -> Dict[str, Any]:
    """Load configuration from YAML file."""
    if config_path is None:
        # Look for config.yaml in common locations
        possible_paths = [
            "config.yaml",  # Current directory
            "../../config.yaml",  # Project root from src/sitegate
        ]

        for path in possible_paths:
            if os.path.exists(path):
                config_path = path
                break
        else:
            return {}

    if os.path.exists(config_path):
        with open(config_path, 'r') as f:
            config_data = yaml.safe_load(f) or {}
            return config_data
    return {}


def _parse_json_mapping(v: Any) -> Dict[str, Any]:
    """Accept a mapping or a JSON object string, anything else becomes empty."""
    if isinstance(v, str):
        try:
            parsed = json.loads(v)
        except json.JSONDecodeError:
            return {}
        return parsed if isinstance(parsed, dict) else {}
    if isinstance(v, dict):
        return v
    return {}


class SecuritySettings(BaseSettings):
    """Inbound API authentication."""

    admin_token: str = Field(default="", description="Token accepted on admin endpoints")
    api_keys: Dict[str, Dict[str, Any]] = Field(
        default_factory=dict,
        description="Valid API keys mapped to {name, subject, role, active}"
    )

    @field_validator("api_keys", mode="before")
    def parse_api_keys(cls, v: Any) -> Dict[str, Dict[str, Any]]:
        """Parse API keys from JSON string if needed."""
        return _parse_json_mapping(v)

    class Config:
        env_prefix = "SITEGATE_SECURITY_"


class RateLimitSettings(BaseSettings):
    """Fixed-window quota configuration."""

    # Inbound quota per authenticated caller
    api_limit: int = Field(default=100, ge=0, description="Requests per window per caller")
    api_window_minutes: float = Field(default=60, gt=0, description="Inbound window length")

    # Outbound quota for backend queries and secure fetches
    query_limit: int = Field(default=100, ge=0, description="Backend operations per window per key")
    query_window_minutes: float = Field(default=10, gt=0, description="Outbound window length")

    store_backend: str = Field(default="memory", description="Counter store: memory or file")
    store_path: Path = Field(default=Path("./rate_limits.json"), description="File store location")
    fail_open: bool = Field(default=True, description="Admit requests when the counter store fails")

    @field_validator("store_backend")
    def validate_store_backend(cls, v: str) -> str:
        """Only the shipped store implementations are accepted."""
        v = v.lower()
        if v not in ("memory", "file"):
            raise ValueError(f"Unknown rate limit store backend: {v}")
        return v

    class Config:
        env_prefix = "SITEGATE_RATE_LIMIT_"


class RetrySettings(BaseSettings):
    """Retry and backoff configuration for backend operations."""

    max_retries: int = Field(default=2, ge=0, description="Retries for read operations")
    write_max_retries: int = Field(default=1, ge=0, description="Retries for create/update operations")
    retry_delay_ms: int = Field(default=1000, ge=0, description="Base backoff delay, doubled per attempt")
    non_retryable_codes: List[str] = Field(
        default=["PGRST116", "PGRST204", "23505", "23503"],
        description="Backend error codes that will not change on retry"
    )

    class Config:
        env_prefix = "SITEGATE_RETRY_"


class DisclosureSettings(BaseSettings):
    """Sensitive field disclosure policy."""

    role_allowlist: Dict[str, List[str]] = Field(
        default={"delivery_provider": ["delivery_request"]},
        description="Record types each non-admin role may reveal without owning the record"
    )
    access_type: str = Field(default="sensitive_view", description="Access type sent to the audit log")

    @field_validator("role_allowlist", mode="before")
    def parse_role_allowlist(cls, v: Any) -> Dict[str, List[str]]:
        """Parse the allowlist from JSON string if needed."""
        return _parse_json_mapping(v)

    class Config:
        env_prefix = "SITEGATE_DISCLOSURE_"


class BackendSettings(BaseSettings):
    """PostgREST backend configuration."""

    base_url: str = Field(default="http://localhost:54321", description="Backend base URL")
    rest_path: str = Field(default="/rest/v1", description="PostgREST path prefix")
    api_key: str = Field(default="", description="Backend anon/service key")
    timeout_seconds: int = Field(default=30, description="Request timeout")
    connectivity_probe_seconds: int = Field(default=30, description="Interval between connectivity probes")

    @property
    def rest_url(self) -> str:
        """Full PostgREST root URL."""
        return f"{self.base_url.rstrip('/')}{self.rest_path}"

    class Config:
        env_prefix = "SITEGATE_BACKEND_"


class Settings(BaseSettings):
    """Main application settings."""

    # Server configuration
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8080, description="Server port")
    debug: bool = Field(default=False, description="Debug mode")
    log_level: str = Field(default="INFO", description="Log level")

    # Component settings
    security: SecuritySettings = Field(default_factory=SecuritySettings)
    rate_limit: RateLimitSettings = Field(default_factory=RateLimitSettings)
    retry: RetrySettings = Field(default_factory=RetrySettings)
    disclosure: DisclosureSettings = Field(default_factory=DisclosureSettings)
    backend: BackendSettings = Field(default_factory=BackendSettings)

    class Config:
        env_prefix = "SITEGATE_"
        case_sensitive = False


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance with config file and env support."""

    # Load config file data
    config_data = load_config_file()

    # Config file provides defaults, env vars override
    if config_data:
        _set_env_from_config(config_data)

    settings = Settings()
    return settings


def _set_env_from_config(config_data: Dict[str, Any]) -> None:
    """Set environment variables from config file if not already set."""
    mappings = {
        ("server", "host"): "SITEGATE_HOST",
        ("server", "port"): "SITEGATE_PORT",
        ("server", "debug"): "SITEGATE_DEBUG",
        ("server", "log_level"): "SITEGATE_LOG_LEVEL",
        ("security", "admin_token"): "SITEGATE_SECURITY_ADMIN_TOKEN",
        ("rate_limit", "api_limit"): "SITEGATE_RATE_LIMIT_API_LIMIT",
        ("rate_limit", "api_window_minutes"): "SITEGATE_RATE_LIMIT_API_WINDOW_MINUTES",
        ("rate_limit", "query_limit"): "SITEGATE_RATE_LIMIT_QUERY_LIMIT",
        ("rate_limit", "query_window_minutes"): "SITEGATE_RATE_LIMIT_QUERY_WINDOW_MINUTES",
        ("rate_limit", "store_backend"): "SITEGATE_RATE_LIMIT_STORE_BACKEND",
        ("rate_limit", "store_path"): "SITEGATE_RATE_LIMIT_STORE_PATH",
        ("rate_limit", "fail_open"): "SITEGATE_RATE_LIMIT_FAIL_OPEN",
        ("retry", "max_retries"): "SITEGATE_RETRY_MAX_RETRIES",
        ("retry", "write_max_retries"): "SITEGATE_RETRY_WRITE_MAX_RETRIES",
        ("retry", "retry_delay_ms"): "SITEGATE_RETRY_RETRY_DELAY_MS",
        ("disclosure", "access_type"): "SITEGATE_DISCLOSURE_ACCESS_TYPE",
        ("backend", "base_url"): "SITEGATE_BACKEND_BASE_URL",
        ("backend", "api_key"): "SITEGATE_BACKEND_API_KEY",
        ("backend", "timeout_seconds"): "SITEGATE_BACKEND_TIMEOUT_SECONDS",
        ("backend", "connectivity_probe_seconds"): "SITEGATE_BACKEND_CONNECTIVITY_PROBE_SECONDS",
    }

    for (section, key), env_var in mappings.items():
        if env_var not in os.environ:
            value = (config_data.get(section) or {}).get(key)
            if value is not None:
                os.environ[env_var] = str(value)

    # Structured values travel as JSON strings
    json_mappings = {
        ("security", "api_keys"): "SITEGATE_SECURITY_API_KEYS",
        ("retry", "non_retryable_codes"): "SITEGATE_RETRY_NON_RETRYABLE_CODES",
        ("disclosure", "role_allowlist"): "SITEGATE_DISCLOSURE_ROLE_ALLOWLIST",
    }

    for (section, key), env_var in json_mappings.items():
        if env_var not in os.environ:
            value = (config_data.get(section) or {}).get(key)
            if value:
                os.environ[env_var] = json.dumps(value)


def reload_settings() -> Settings:
    """Reload settings (clears cache)."""
    get_settings.cache_clear()
    return get_settings()
