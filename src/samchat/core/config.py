# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Core configuration - centralized config for the samchat package.

All environment-based configuration should flow through this module.
This provides a single source of truth and consistent defaults.

Usage:
    from samchat.core.config import get_config
    config = get_config()

    api_url = config.api_url
    interval = config.poll_interval_seconds
"""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class SamchatSettings(BaseSettings):
    """Client configuration settings for Samchat.

    Every setting can be provided through a ``SAMCHAT_`` environment
    variable or a ``.env`` file in the working directory.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # ==========================================================================
    # NODE / ENDPOINT SETTINGS
    # ==========================================================================

    node_url: str = Field(
        default="http://localhost:8080",
        description="Origin of the node hosting the samchat process",
        validation_alias="SAMCHAT_NODE_URL",
    )
    base_path: str = Field(
        default="/samchat:samchat:hpn-testing-beta.os",
        description="Fixed base path the process is mounted under",
        validation_alias="SAMCHAT_BASE_PATH",
    )
    api_path: str = Field(
        default="/api",
        description="Request/response endpoint below the base path",
        validation_alias="SAMCHAT_API_PATH",
    )
    ws_path: str = Field(
        default="/ws",
        description="Push channel endpoint below the base path",
        validation_alias="SAMCHAT_WS_PATH",
    )
    node_id: str | None = Field(
        default=None,
        description="Local identity (node address); taken from the push handshake when unset",
        validation_alias="SAMCHAT_NODE_ID",
    )
    process_id: str | None = Field(
        default=None,
        description="Process identifier announced on the push channel (derived from base_path when unset)",
        validation_alias="SAMCHAT_PROCESS_ID",
    )

    # ==========================================================================
    # SYNC SETTINGS
    # ==========================================================================

    poll_interval_seconds: float = Field(
        default=5.0,
        gt=0,
        description="Interval between periodic refreshes",
        validation_alias="SAMCHAT_POLL_INTERVAL",
    )
    request_timeout: float = Field(
        default=30.0,
        gt=0,
        description="Timeout for a single request to the node",
        validation_alias="SAMCHAT_REQUEST_TIMEOUT",
    )
    push_reconnect_delay: float = Field(
        default=1.0,
        gt=0,
        description="Initial delay before reconnecting a dropped push channel",
        validation_alias="SAMCHAT_PUSH_RECONNECT_DELAY",
    )
    push_reconnect_max_delay: float = Field(
        default=30.0,
        gt=0,
        description="Upper bound for the push channel reconnect back-off",
        validation_alias="SAMCHAT_PUSH_RECONNECT_MAX_DELAY",
    )

    # ==========================================================================
    # ATTACHMENT CACHE SETTINGS
    # ==========================================================================

    attachment_cache_max_entries: int = Field(
        default=256,
        ge=1,
        description="Maximum number of loaded attachments kept in memory",
        validation_alias="SAMCHAT_ATTACHMENT_CACHE_MAX_ENTRIES",
    )
    attachment_cache_max_bytes: int = Field(
        default=64 * 1024 * 1024,
        ge=1,
        description="Maximum total size of loaded attachments kept in memory",
        validation_alias="SAMCHAT_ATTACHMENT_CACHE_MAX_BYTES",
    )
    auto_load_own_attachments: bool = Field(
        default=True,
        description="Eagerly load attachments sent by the local identity",
        validation_alias="SAMCHAT_AUTO_LOAD_OWN_ATTACHMENTS",
    )

    # ==========================================================================
    # SESSION PERSISTENCE
    # ==========================================================================

    session_state_file: str | None = Field(
        default=None,
        description="Warm-start snapshot path (unset disables persistence)",
        validation_alias="SAMCHAT_SESSION_STATE_FILE",
    )

    # ==========================================================================
    # LOGGING SETTINGS
    # ==========================================================================

    log_level: str = Field(
        default="INFO",
        description="Log level (DEBUG, INFO, WARNING, ERROR)",
        validation_alias="SAMCHAT_LOG_LEVEL",
    )
    log_format: str = Field(
        default="",
        description="Log format: 'json', 'text', or '' (auto-detect)",
        validation_alias="SAMCHAT_LOG_FORMAT",
    )
    log_file: str | None = Field(
        default=None,
        description="Log file path (optional)",
        validation_alias="SAMCHAT_LOG_FILE",
    )

    # ==========================================================================
    # COMPUTED PROPERTIES
    # ==========================================================================

    @property
    def base_url(self) -> str:
        """Node origin joined with the process base path."""
        return f"{self.node_url.rstrip('/')}/{self.base_path.strip('/')}"

    @property
    def api_url(self) -> str:
        """URL of the request/response endpoint."""
        return f"{self.base_url}/{self.api_path.lstrip('/')}"

    @property
    def ws_url(self) -> str:
        """URL of the push channel (http→ws, https→wss)."""
        url = f"{self.base_url}/{self.ws_path.lstrip('/')}"
        if url.startswith("https://"):
            return "wss://" + url[len("https://"):]
        if url.startswith("http://"):
            return "ws://" + url[len("http://"):]
        return url

    @property
    def effective_process_id(self) -> str:
        """Process identifier, defaulting to the base path without slashes."""
        return self.process_id or self.base_path.strip("/")


# ==========================================================================
# GLOBAL CONFIG INSTANCE (lazy loaded)
# ==========================================================================

_config: SamchatSettings | None = None


def get_config() -> SamchatSettings:
    """Get the global configuration instance.

    Returns:
        The singleton SamchatSettings instance.
    """
    global _config
    if _config is None:
        _config = SamchatSettings()
    return _config


def set_config(config: SamchatSettings) -> None:
    """Replace the global configuration (called by the CLI after parsing flags)."""
    global _config
    _config = config


def clear_config_cache() -> None:
    """Clear the config cache. Useful for testing."""
    global _config
    _config = None
