"""Configuration management for the invoice reminder service."""

import base64
import binascii
import os
from dataclasses import dataclass


@dataclass
class Config:
    """Application configuration loaded from environment variables."""

    # Database
    database_url: str

    # Telegram
    telegram_bot_token: str

    # OAuth
    google_oauth2_client_id: str
    google_oauth2_client_secret: str

    # AES-256 key for stored OAuth tokens
    token_encryption_key: bytes

    scheduler_timezone: str = "America/Sao_Paulo"
    pdf_source_encoding: str = "cp1252"
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Config":
        """Load configuration from environment variables.

        Returns:
            Config: Configuration object

        Raises:
            ValueError: If required environment variables are missing or the
                encryption key is not a base64 encoded 32-byte value
        """
        required_vars = [
            "DATABASE_URL",
            "TELEGRAM_BOT_TOKEN",
            "GOOGLE_OAUTH2_CLIENT_ID",
            "GOOGLE_OAUTH2_CLIENT_SECRET",
            "TOKEN_ENCRYPTION_KEY",
        ]

        missing = [var for var in required_vars if not os.getenv(var)]
        if missing:
            raise ValueError(f"Missing required environment variables: {', '.join(missing)}")

        return cls(
            database_url=os.getenv("DATABASE_URL"),
            telegram_bot_token=os.getenv("TELEGRAM_BOT_TOKEN"),
            google_oauth2_client_id=os.getenv("GOOGLE_OAUTH2_CLIENT_ID"),
            google_oauth2_client_secret=os.getenv("GOOGLE_OAUTH2_CLIENT_SECRET"),
            token_encryption_key=cls._decode_key(os.getenv("TOKEN_ENCRYPTION_KEY")),
            scheduler_timezone=os.getenv("SCHEDULER_TIMEZONE", "America/Sao_Paulo"),
            pdf_source_encoding=os.getenv("PDF_SOURCE_ENCODING", "cp1252"),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
        )

    @staticmethod
    def _decode_key(value: str) -> bytes:
        try:
            key = base64.b64decode(value, validate=True)
        except binascii.Error as e:
            raise ValueError("TOKEN_ENCRYPTION_KEY is not valid base64") from e

        if len(key) != 32:
            raise ValueError("TOKEN_ENCRYPTION_KEY must decode to 32 bytes")
        return key
