"""
Chat gateway settings, read from the environment and an optional .env file.
"""

from functools import lru_cache
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Gateway settings. Defaults suit local development."""

    # Server
    chat_gateway_host: str = "0.0.0.0"
    chat_gateway_port: int = 8080

    # Comma-separated list of allowed origins (empty uses default localhost list)
    allowed_origins: str = ""

    # Environment
    environment: str = "development"
    debug: bool = True

    # WebSocket limits
    ws_max_total_connections: int = 1000  # Maximum concurrent chat connections
    ws_max_message_size: int = 16 * 1024  # Larger inbound frames are dropped
    ws_send_timeout: float = 5.0  # Write timeout before a peer is torn down
    ws_accept_timeout: float = 5.0  # Handshake timeout

    # Chat behaviour
    chat_username_prefix: str = "User"  # Generated names: User1, User2, ...
    chat_max_name_length: int = 32
    chat_include_timestamp: bool = False  # Adds epoch millis to relayed chat frames
    chat_shutdown_notice: str = "Server is shutting down"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False

    def validate_production(self) -> list[str]:
        """
        Problems that would make the gateway misbehave, most of them only
        fatal in production. An empty list means the settings are usable.
        """
        errors: list[str] = []

        for field_name in ("ws_send_timeout", "ws_accept_timeout"):
            if getattr(self, field_name) <= 0:
                errors.append(f"{field_name.upper()} must be positive")
        if self.ws_max_total_connections < 1:
            errors.append("WS_MAX_TOTAL_CONNECTIONS must be at least 1")
        if self.ws_max_message_size < 1:
            errors.append("WS_MAX_MESSAGE_SIZE must be at least 1")
        if self.chat_max_name_length < 1:
            errors.append("CHAT_MAX_NAME_LENGTH must be at least 1")
        if not self.chat_username_prefix.strip():
            errors.append("CHAT_USERNAME_PREFIX must not be blank")

        if self.environment == "production":
            if self.debug:
                errors.append("DEBUG must be False in production")

            if not self.allowed_origins:
                errors.append(
                    "ALLOWED_ORIGINS must be set in production (comma-separated list of allowed domains)"
                )

        return errors


@lru_cache
def get_settings() -> Settings:
    """Settings are read once per process."""
    return Settings()


# Convenience exports
settings = get_settings()
