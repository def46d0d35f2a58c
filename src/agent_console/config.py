"""
agent-console Configuration

This module manages console configuration via environment variables and
the ~/.agent-console/.env file.

Configuration is loaded from:
1. Environment variables (prefixed with AGENT_CONSOLE_)
2. ~/.agent-console/.env file

Key settings:
- AGENT_CONSOLE_GATEWAY_URL: Gateway REST base URL (default: http://127.0.0.1:8741)
- AGENT_CONSOLE_CREDENTIALS_FILE: Where the bearer token is persisted
- AGENT_CONSOLE_REFRESH_DELAY_MS: Coalescing window for push-driven thread refreshes

The bearer token itself is NOT a setting; it lives in the credential store
and is managed with `agent-console token set/clear`.
"""

import logging
from pathlib import Path
from urllib.parse import urlsplit, urlunsplit

from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

CONSOLE_DIR = Path.home() / ".agent-console"
PUSH_PATH = "/ws/events"


class Settings(BaseSettings):
    """agent-console configuration settings."""

    # Gateway
    gateway_url: str = "http://127.0.0.1:8741"
    request_timeout: float = 10.0

    # Credential persistence
    credentials_file: Path = CONSOLE_DIR / "credentials.json"
    token_namespace: str = "agent_console.gateway.token"

    # Synchronization policy
    thread_page_size: int = 40
    thread_sort_key: str = "updated_at"
    refresh_delay_ms: int = 600
    event_log_capacity: int = 300
    access_mode: str = "current"

    log_level: str = "WARNING"

    model_config = SettingsConfigDict(
        env_prefix="AGENT_CONSOLE_",
        env_file=CONSOLE_DIR / ".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    @property
    def base_url(self) -> str:
        """Gateway URL without a trailing slash."""
        return self.gateway_url.rstrip("/")

    @property
    def ws_url(self) -> str:
        """Push endpoint derived from the gateway URL (http -> ws, https -> wss)."""
        parts = urlsplit(self.base_url)
        scheme = "wss" if parts.scheme == "https" else "ws"
        path = parts.path.rstrip("/") + PUSH_PATH
        return urlunsplit((scheme, parts.netloc, path, "", ""))

    @property
    def refresh_delay_seconds(self) -> float:
        return self.refresh_delay_ms / 1000.0


settings = Settings()
