"""
Application settings
"""
from pydantic_settings import BaseSettings
from typing import List


class Settings(BaseSettings):
    # Database
    DATABASE_URL: str = "sqlite:///./data/grocery_receipts.db"

    # Security (bearer tokens issued by the identity provider)
    SECRET_KEY: str = ""
    ALGORITHM: str = "HS256"
    AUTH_AUDIENCE: str = ""
    AUTH_ISSUER: str = ""

    # Environment
    ENVIRONMENT: str = "development"
    DEBUG: bool = False

    # CORS
    CORS_ORIGINS: List[str] = ["http://localhost:3000", "http://localhost:5173"]

    # Blob storage (Google Cloud Storage)
    GCS_BUCKET_NAME: str = ""
    GCS_CREDENTIALS_JSON: str = ""  # service account JSON; empty -> application default credentials
    TEMP_URL_TTL_HOURS: int = 24
    LONG_URL_TTL_DAYS: int = 3650

    # LLM
    LLM_API_KEY: str = ""
    LLM_MODEL: str = "gpt-4o-mini"
    LLM_INSIGHTS_MAX_TOKENS: int = 1000

    # Anonymous sessions
    SESSION_TTL_HOURS: int = 72
    SESSION_PURGE_INTERVAL_MINUTES: int = 60  # 0 disables the background purge

    class Config:
        env_file = ".env"
        case_sensitive = True

    def missing_required(self) -> List[str]:
        """Names of required options that are empty."""
        required = ("SECRET_KEY", "GCS_BUCKET_NAME", "LLM_API_KEY")
        return [name for name in required if not getattr(self, name)]


def get_settings() -> Settings:
    return Settings()
