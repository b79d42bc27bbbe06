"""
Configuration loader from environment variables.
Every tunable of the feed client has a default that works against the live service.
"""
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import field_validator
from typing import Optional, Any


DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/102.0.0.0 Safari/537.36"
)


class Settings(BaseSettings):
    """
    Client settings loaded from environment variables.
    Values here are defaults; ConnectOptions passed to connect() take precedence.
    """

    @field_validator("LOG_JSON", "DEDUP_ENABLED", mode="before")
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

    ENVIRONMENT: str = "development"  # "development", "production"

    # ==========================================================================
    # Upstream addresses
    # ==========================================================================
    BLAZE_GAMES_URL: str = "wss://api-gaming.blaze.bet.br/replication/?EIO=3&transport=websocket"
    BLAZE_GENERAL_URL: str = "wss://api-v2.blaze.bet.br/replication/?EIO=3&transport=websocket"
    BLAZE_HOST: str = "api-v2.blaze1.space"
    BLAZE_ORIGIN: str = "https://api-gaming.blaze.com"
    BLAZE_USER_AGENT: str = DEFAULT_USER_AGENT
    BLAZE_CONNECT_TIMEOUT: float = 15.0

    # ==========================================================================
    # Keepalive & reconnection
    # ==========================================================================
    BLAZE_PING_INTERVAL: float = 10.0  # Server drops sockets silent for ~25s
    BLAZE_PING_TIMEOUT: float = 5.0
    BLAZE_RECONNECT_DELAY: float = 0.1
    BLAZE_RECONNECT_DELAY_MAX: float = 30.0
    BLAZE_RECONNECT_DELAY_MULTIPLIER: float = 2.0

    # ==========================================================================
    # Dispatch & dedup
    # ==========================================================================
    DISPATCH_WORKERS: int = 8
    DISPATCH_QUEUE_SIZE: int = 10000
    DISPATCH_CALLBACK_TIMEOUT: float = 5.0  # 0 disables
    DEDUP_ENABLED: bool = True
    DEDUP_MAX_ENTRIES: Optional[int] = None  # None keeps every round id

    # ==========================================================================
    # Redis relay (optional)
    # ==========================================================================
    REDIS_URL: str = "redis://localhost:6379"
    REDIS_MAX_CONNECTIONS: int = 10
    REDIS_SOCKET_TIMEOUT: float = 5.0
    REDIS_CHANNEL_PREFIX: str = "blaze:feed:"

    # ==========================================================================
    # Logging
    # ==========================================================================
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
    LOG_JSON: bool = False

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"


# Global settings instance
settings = Settings()
