from functools import lru_cache
from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.
    Follows 12-factor app configuration principles.
    """

    # env_file is only used as fallback, env vars take precedence
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        env_ignore_empty=True,
    )

    # Database Configuration - required from .env
    DATABASE_URL: str

    # Logging Configuration - required from .env
    LOG_LEVEL: str

    # WhatsApp Cloud API
    WHATSAPP_ACCESS_TOKEN: str = ""
    PHONE_NUMBER_ID: str = ""
    WABA_ID: str = ""
    API_VERSION: str = "v20.0"
    GRAPH_API_URL: str = "https://graph.facebook.com"
    WHATSAPP_TIMEOUT_SECONDS: float = 30.0

    # Token echoed back during the webhook subscription handshake
    WHATSAPP_VERIFY_TOKEN: str = ""

    # Frontend origins allowed by CORS
    CORS_ORIGINS: List[str] = ["*"]

    @property
    def graph_base_url(self) -> str:
        return f"{self.GRAPH_API_URL.rstrip('/')}/{self.API_VERSION}"

    @property
    def messages_url(self) -> str:
        return f"{self.graph_base_url}/{self.PHONE_NUMBER_ID}/messages"

    @property
    def templates_url(self) -> str:
        return f"{self.graph_base_url}/{self.WABA_ID}/message_templates"


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.
    Uses lru_cache to avoid reading .env file on every request.
    """
    return Settings()


# Global settings instance
settings = get_settings()
