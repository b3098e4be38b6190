from pydantic_settings import BaseSettings
from typing import List, Optional


class Settings(BaseSettings):
    """Application settings - All values are loaded from .env file automatically"""

    # API Settings
    APP_NAME: str = "MenteClara Backend"
    APP_VERSION: str = "1.0.0"
    API_PREFIX: str = "/api"

    # Database Settings
    DATABASE_URL: str = "sqlite+aiosqlite:///./menteclara.db"

    # Security Settings
    JWT_SECRET: str = "change-me-in-production"
    JWT_ALGORITHM: str = "HS256"
    JWT_EXPIRES_IN: str = "7d"

    # CORS Settings (comma separated)
    CORS_ORIGIN: str = "http://localhost:5173"

    # Environment
    ENVIRONMENT: str = "development"

    # Server Settings (optional)
    HOST: str = "0.0.0.0"
    PORT: int = 4000

    # Cache / monitoring (optional)
    REDIS_URL: Optional[str] = None
    SENTRY_DSN: Optional[str] = None
    SENTRY_ENVIRONMENT: str = "development"

    # Outbound HTTP
    HTTP_TIMEOUT_SECONDS: float = 30.0

    # AI provider settings
    AI_PROVIDER: str = "gemini"
    GEMINI_API_KEY: Optional[str] = None
    GEMINI_MODEL: str = "gemini-2.0-flash"
    GROQ_API_KEY: Optional[str] = None
    GROQ_MODEL: str = "openai/gpt-oss-20b"
    HF_TOKEN: Optional[str] = None
    HF_MODEL: str = "deepseek-ai/DeepSeek-R1:fastest"

    # WhatsApp settings
    WHATSAPP_ENABLED: bool = False
    WHATSAPP_PROVIDER: str = "disabled"  # disabled | meta | link
    WHATSAPP_META_TOKEN: Optional[str] = None
    WHATSAPP_META_PHONE_NUMBER_ID: Optional[str] = None
    WHATSAPP_TEMPLATE_NAME: Optional[str] = None
    WHATSAPP_TEMPLATE_LANGUAGE: str = "pt_BR"
    WHATSAPP_PSYCHOLOGIST_NAME: Optional[str] = None

    # Legacy data ownership backfill
    BACKFILL_OWNER_EMAIL: Optional[str] = None
    BACKFILL_DRY_RUN: bool = False

    model_config = {
        "env_file": ".env",
        "case_sensitive": True,
        "extra": "ignore"  # Ignore extra fields from .env
    }

    @property
    def cors_origins(self) -> List[str]:
        """Allowed origins without trailing slashes"""
        return [
            origin.strip().rstrip("/")
            for origin in self.CORS_ORIGIN.split(",")
            if origin.strip()
        ]

    @property
    def is_development(self) -> bool:
        return self.ENVIRONMENT == "development"


settings = Settings()
