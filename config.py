"""
Application configuration loaded from environment variables.

All sensitive values (credentials) come exclusively from .env.
No secrets are hardcoded anywhere in this file.

Environment variables expected (see .env.example):
  SERVICENOW_INSTANCE_URL    — instance base URL, e.g. https://dev12345.service-now.com
  SERVICENOW_USERNAME        — basic-auth user name
  SERVICENOW_PASSWORD        — basic-auth password
  UPDATE_SET_PREFIX          — prefix applied to generated update set names (default: MCP_)
  DEFAULT_APPLICATION_SCOPE  — scope used when a tool does not name one (default: global)
"""
from __future__ import annotations

from functools import lru_cache

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

SERVER_VERSION = "1.0.0"


class Settings(BaseSettings):
    """Application settings. Loaded once at startup; never mutated at runtime."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",  # Silently ignore unrecognised env vars
        case_sensitive=False,
    )

    # -------------------------------------------------------------------------
    # ServiceNow connection (all required — startup fails if missing)
    # -------------------------------------------------------------------------
    servicenow_instance_url: str = Field(..., min_length=1, description="Instance base URL")
    servicenow_username: str = Field(..., min_length=1, description="Basic-auth user name")
    servicenow_password: SecretStr = Field(..., description="Basic-auth password")

    # -------------------------------------------------------------------------
    # Update set / scope defaults
    # -------------------------------------------------------------------------
    update_set_prefix: str = Field(default="MCP_")
    default_application_scope: str = Field(default="global", min_length=1)

    # -------------------------------------------------------------------------
    # HTTP timeout (seconds) — no retries are ever attempted
    # -------------------------------------------------------------------------
    http_timeout: float = Field(default=30.0, ge=1.0, le=120.0)

    # -------------------------------------------------------------------------
    # Logging
    # -------------------------------------------------------------------------
    log_level: str = Field(default="INFO")
    log_file: str = Field(default="logs/mcp_server.log")

    # -------------------------------------------------------------------------
    # MCP server identity
    # -------------------------------------------------------------------------
    mcp_server_name: str = Field(default="servicenow-nlp")

    # -------------------------------------------------------------------------
    # Validators
    # -------------------------------------------------------------------------

    @field_validator("log_level")
    @classmethod
    def _validate_log_level(cls, v: str) -> str:
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        upper = v.upper()
        if upper not in allowed:
            raise ValueError(f"log_level must be one of {allowed}")
        return upper

    @field_validator("servicenow_instance_url")
    @classmethod
    def _require_https(cls, v: str) -> str:
        v = v.strip()
        if not v.startswith("https://"):
            raise ValueError("The ServiceNow instance URL must use HTTPS")
        return v.rstrip("/")

    # -------------------------------------------------------------------------
    # Computed properties (no secrets returned)
    # -------------------------------------------------------------------------

    def table_path(self, table: str, sys_id: str | None = None) -> str:
        """
        Path of a Table API resource, relative to the instance URL.

        Example:
            settings.table_path("incident")            → /api/now/table/incident
            settings.table_path("incident", "abc123")  → /api/now/table/incident/abc123
        """
        path = f"/api/now/table/{table}"
        return f"{path}/{sys_id}" if sys_id else path


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Return the singleton Settings instance.

    Cached after first call. Raises ValidationError if any required env var
    is missing or invalid — fail fast at startup, not mid-request.
    """
    return Settings()
