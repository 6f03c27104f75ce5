from pydantic_settings import BaseSettings
from typing import List, Optional


class Settings(BaseSettings):
    APP_NAME: str = "PharmaDesk Pharmacy Operations"
    VERSION: str = "1.0.0"
    SECRET_KEY: str = "change-me-in-production-use-strong-random-key"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60

    DATABASE_URL: str = "sqlite:///./pharmadesk.db"

    LOG_LEVEL: str = "INFO"
    CORS_ORIGINS: List[str] = ["*"]

    # Times are stored in UTC and rendered in this zone
    DISPLAY_TIMEZONE: str = "UTC"

    # Identity service (email/password sign-in)
    IDENTITY_API_URL: str = "https://identitytoolkit.googleapis.com/v1"
    IDENTITY_API_KEY: Optional[str] = None
    IDENTITY_TIMEOUT: int = 10
    IDENTITY_MOCK_MODE: bool = True  # Verify against local operator records

    class Config:
        env_file = ".env"


settings = Settings()
