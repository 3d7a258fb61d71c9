"""
Configuration loader from environment variables.
Defaults match the public Huobi push feed; every value can be overridden
through the environment, a ``.env`` file or a JSON options file.
"""
import json
from pathlib import Path
from typing import Any, Optional, Union

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Client settings loaded from environment variables.
    All settings have sensible defaults for the public market feed.
    """

    @field_validator("HUOBI_HADAX", "HUOBI_RECONNECT", "HUOBI_VERBOSE", "LOG_JSON", mode="before")
    @classmethod
    def strip_whitespace(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.strip()
        return v

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # ==========================================================================
    # Huobi Endpoint
    # ==========================================================================
    HUOBI_HADAX: bool = False
    HUOBI_HOST: str = "api.huobipro.com"
    HUOBI_HADAX_HOST: str = "api.hadax.com"
    HUOBI_WS_SCHEME: str = "wss://"
    HUOBI_WS_PATH: str = "/ws"

    # ==========================================================================
    # Client Behaviour
    # ==========================================================================
    HUOBI_TIMEOUT: float = 30.0  # Recognized "timeout" option; sockets use HUOBI_OPEN_TIMEOUT
    HUOBI_RECONNECT: bool = True  # Default reconnect policy for new connections
    HUOBI_VERBOSE: bool = False  # Diagnostic lifecycle messages
    HUOBI_OPEN_TIMEOUT: Optional[float] = None  # None: no connect timeout

    # Heartbeat
    HEARTBEAT_INTERVAL: float = 30.0

    # Reconnection settings
    RECONNECT_DELAY_INITIAL: float = 1.0
    RECONNECT_DELAY_MAX: float = 60.0
    RECONNECT_DELAY_MULTIPLIER: float = 2.0
    RECONNECT_MAX_ATTEMPTS: Optional[int] = None  # None: retry forever

    # Transport
    WS_MAX_MESSAGE_SIZE: int = 10 * 1024 * 1024
    WS_CLOSE_TIMEOUT: float = 5.0

    # ==========================================================================
    # Logging
    # ==========================================================================
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
    LOG_JSON: bool = False
    ENVIRONMENT: str = "development"  # "development", "staging", "production"

    @property
    def host(self) -> str:
        return self.HUOBI_HADAX_HOST if self.HUOBI_HADAX else self.HUOBI_HOST

    @property
    def ws_url(self) -> str:
        """Push feed URL for the selected host."""
        return f"{self.HUOBI_WS_SCHEME}{self.host}{self.HUOBI_WS_PATH}"

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"


def load_settings(source: Union[str, Path, dict, None] = None) -> Settings:
    """
    Build settings from a JSON options file or a plain dict.

    Keys are the setting names (``HUOBI_RECONNECT``, ``HEARTBEAT_INTERVAL``...);
    anything not given falls back to the environment and the defaults.
    """
    if source is None:
        return Settings()
    if isinstance(source, dict):
        data = source
    else:
        data = json.loads(Path(source).read_text(encoding="utf-8"))
    return Settings(**{key.upper(): value for key, value in data.items()})


# Global settings instance
settings = Settings()
