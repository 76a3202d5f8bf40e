# src/maas_mcp/config/settings.py
# Copyright (c) maas-mcp.
# SPDX-License-Identifier: MIT
"""MAAS MCP Configuration (Pydantic Settings, v2)

Summary:
    Typed, validated configuration for the MAAS MCP bridge. This module
    centralizes environment parsing and validation. Transports, the MAAS client
    and the dispatcher receive `Settings` explicitly; only the entrypoint reads
    the process environment.

Design:
    - Pydantic v2 BaseSettings with `extra='forbid'` to catch unknown env.
    - Explicit field declarations with constrained types and ranges.
    - Environment enumeration for behavior toggles (includes TEST).
    - Singleton accessor `get_settings()` with LRU cache.
    - Safe, structured logging (no secrets).
"""

from __future__ import annotations

import logging
from enum import Enum
from functools import lru_cache

from pydantic import AnyHttpUrl, Field, SecretStr, ValidationError, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class Environment(str, Enum):
    """Logical deployment environment."""

    DEVELOPMENT = "development"
    TEST = "test"
    CI = "ci"
    STAGING = "staging"
    PRODUCTION = "production"


class TransportMode(str, Enum):
    """Which MCP transport the process serves."""

    HTTP = "http"
    STDIO = "stdio"


class HandshakeMode(str, Enum):
    """How many readiness sentinels the stdio transport writes at startup.

    ``full`` writes every legacy format (plain text plus three JSON-RPC shapes),
    ``single`` writes one well-formed notification, ``none`` writes nothing.
    """

    FULL = "full"
    SINGLE = "single"
    NONE = "none"


class Settings(BaseSettings):
    """Typed application configuration for the MAAS MCP bridge."""

    # ---------------------------
    # Core environment & identity
    # ---------------------------
    environment: Environment = Field(
        default=Environment.DEVELOPMENT,
        description="Logical deployment environment.",
        validation_alias="ENVIRONMENT",
    )
    service_name: str = Field(
        default="maas-mcp-server",
        min_length=1,
        description="Server name reported in discovery and readiness notifications.",
        validation_alias="SERVICE_NAME",
    )
    service_version: str = Field(
        default="1.0.0",
        min_length=1,
        description="Server version reported in discovery and readiness notifications.",
        validation_alias="SERVICE_VERSION",
    )
    log_level: str | None = Field(
        default=None,
        description="Override log level (e.g., 'DEBUG', 'INFO'). If not set, INFO is used.",
        validation_alias="LOG_LEVEL",
    )

    # ---------------------------
    # MAAS backend
    # ---------------------------
    maas_api_url: AnyHttpUrl = Field(
        ...,
        description="MAAS API base URL. Example: http://maas.local:5240/MAAS/api/2.0",
        validation_alias="MAAS_API_URL",
    )
    maas_api_key: SecretStr = Field(
        ...,
        description="MAAS API key in the form 'consumer_key:token_key:token_secret'.",
        validation_alias="MAAS_API_KEY",
    )
    maas_timeout_s: float = Field(
        default=30.0,
        ge=0.1,
        le=600.0,
        description="Per-request timeout in seconds for MAAS HTTP calls.",
        validation_alias="MAAS_TIMEOUT_S",
    )
    maas_retry_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Total attempts (first call included) for a failing MAAS call.",
        validation_alias="MAAS_RETRY_ATTEMPTS",
    )
    maas_retry_delay_s: float = Field(
        default=2.0,
        ge=0.0,
        le=60.0,
        description="Fixed delay in seconds between MAAS retry attempts.",
        validation_alias="MAAS_RETRY_DELAY_S",
    )

    # ---------------------------
    # MCP transports
    # ---------------------------
    mcp_transport: TransportMode = Field(
        default=TransportMode.HTTP,
        description="Default transport when the CLI is invoked without a mode.",
        validation_alias="MCP_TRANSPORT",
    )
    mcp_host: str = Field(
        default="0.0.0.0",  # noqa: S104
        description="Bind host for the HTTP transport.",
        validation_alias="MCP_HOST",
    )
    mcp_port: int = Field(
        default=8081,
        ge=1,
        le=65535,
        description="Bind port for the HTTP transport.",
        validation_alias="MCP_PORT",
    )
    mcp_strict_jsonrpc: bool = Field(
        default=False,
        description=(
            "Reject requests whose 'jsonrpc' member is missing or not '2.0'. "
            "When false, such requests are accepted with a warning."
        ),
        validation_alias="MCP_STRICT_JSONRPC",
    )
    mcp_handshake_mode: HandshakeMode = Field(
        default=HandshakeMode.FULL,
        description="Readiness sentinels written by the stdio transport at startup.",
        validation_alias="MCP_HANDSHAKE_MODE",
    )
    mcp_stdio_settle_ms: int = Field(
        default=10,
        ge=0,
        le=1000,
        description="Pause in milliseconds after each stdio write; 0 disables it.",
        validation_alias="MCP_STDIO_SETTLE_MS",
    )
    mcp_stdio_exit_on_eof: bool = Field(
        default=False,
        description="Exit when stdin closes instead of idling until SIGINT/SIGTERM.",
        validation_alias="MCP_STDIO_EXIT_ON_EOF",
    )

    # ---------------------------
    # HTTP surface
    # ---------------------------
    cors_allow_origins_raw: str | None = Field(
        default=None,
        description="Raw env for allowed CORS origins (comma-separated). Defaults to '*'.",
        validation_alias="CORS_ALLOW_ORIGINS",
    )
    cors_allow_origins: list[str] = Field(
        default_factory=list,
        description="Allowed CORS origins. Derived from CORS_ALLOW_ORIGINS.",
    )
    metrics_enabled: bool = Field(
        default=True,
        description="Expose Prometheus metrics on GET /metrics and record HTTP metrics.",
        validation_alias="METRICS_ENABLED",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="forbid",
        case_sensitive=False,
    )

    @model_validator(mode="after")
    def _compute_cors_and_api_key(self) -> Settings:
        """Compute the CORS list and validate the MAAS API key shape.

        Returns:
            Settings: The validated and possibly mutated settings instance.

        Raises:
            ValueError: If the API key does not have three non-empty parts.
        """
        raw = (self.cors_allow_origins_raw or "").strip()
        entries = [e.strip() for e in raw.split(",") if e.strip()]
        self.cors_allow_origins = entries or ["*"]

        parts = self.maas_api_key.get_secret_value().split(":")
        if len(parts) != 3 or not all(parts):
            raise ValueError(
                "MAAS_API_KEY must have the form 'consumer_key:token_key:token_secret'.",
            )
        return self

    def maas_base_url(self) -> str:
        """Return the MAAS API base URL without a trailing slash."""
        return str(self.maas_api_url).rstrip("/")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached singleton `Settings` instance.

    Returns:
        Settings: Validated application settings.

    Raises:
        RuntimeError: If configuration is invalid.
    """
    try:
        settings = Settings()  # type: ignore[call-arg]
    except ValidationError as exc:
        logger.exception("Invalid application configuration")
        raise RuntimeError(f"Invalid configuration: {exc}") from exc

    logger.info(
        "Settings initialized",
        extra={
            "environment": settings.environment.value,
            "maas_base_url": settings.maas_base_url(),
            "maas_timeout_s": settings.maas_timeout_s,
            "retry": {
                "attempts": settings.maas_retry_attempts,
                "delay_s": settings.maas_retry_delay_s,
            },
            "mcp": {
                "transport": settings.mcp_transport.value,
                "strict_jsonrpc": settings.mcp_strict_jsonrpc,
                "handshake_mode": settings.mcp_handshake_mode.value,
                "stdio_settle_ms": settings.mcp_stdio_settle_ms,
            },
            "cors_count": len(settings.cors_allow_origins),
            "metrics_enabled": settings.metrics_enabled,
        },
    )
    return settings
