"""Application Configuration - environment-driven settings via pydantic-settings.

Invariants:
    - get_settings() is cached (lru_cache): single instance per process
    - Addresses are stored without trailing slashes

Design Decisions:
    - pydantic-settings over raw os.environ: validation, type coercion, .env file support
    - Defaults work against a local inventory server on its standard port
"""

from functools import lru_cache

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from spoolsync.core.server_address import (
    CONTROLLER_DEFAULT_PORT,
    INVENTORY_DEFAULT_PORT,
    parse_server_address,
)


class Settings(BaseSettings):
    """Application settings from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False)

    # Inventory server
    inventory_enabled: bool = True
    inventory_address: str = "localhost"
    inventory_default_port: int = INVENTORY_DEFAULT_PORT
    request_timeout_seconds: float = 5.0
    request_max_retries: int = 2
    request_retry_base_delay_ms: int = 250
    pull_on_start: bool = True

    # Push channel
    push_enabled: bool = True
    push_reconnect_base_delay_ms: int = 1000
    push_reconnect_max_delay_ms: int = 30_000
    push_reconnect_max_attempts: int = 0

    # Usage writes
    usage_write_workers: int = 4

    # Lane controller; empty means "same host as the inventory server"
    controller_address: str = ""
    controller_default_port: int = CONTROLLER_DEFAULT_PORT

    # API
    cors_origins: list[str] = ["http://localhost:5173"]

    # Observability
    log_level: str = "INFO"
    log_format: str = "json"

    @field_validator("inventory_address", "controller_address", mode="before")
    @classmethod
    def strip_address(cls, v: str) -> str:
        if isinstance(v, str):
            return v.strip().rstrip("/")
        return v

    @property
    def resolved_controller_address(self) -> str:
        if self.controller_address:
            return self.controller_address
        parsed = parse_server_address(self.inventory_address)
        return f"{parsed.scheme}://{parsed.host}" if parsed.host else ""


@lru_cache
def get_settings() -> Settings:
    return Settings()
