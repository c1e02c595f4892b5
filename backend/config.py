# backend/config.py
from pydantic_settings import BaseSettings
from typing import ClassVar, List
from pathlib import Path

# Resolve absolute path to the .env file for reliable loading
env_path = Path(__file__).parent.parent / ".env"

class Settings(BaseSettings):
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"
    API_PREFIX: str = "/api/v1"

    # JWT
    SECRET_KEY: str = "dev-secret-change-me"
    REFRESH_SECRET_KEY: str = "dev-refresh-secret-change-me"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 15
    REFRESH_TOKEN_EXPIRE_DAYS: int = 7
    RESET_TOKEN_EXPIRE_MINUTES: int = 60

    DATABASE_URL: str = "sqlite:///./storefront.db"
    BCRYPT_ROUNDS: int = 12

    # Cart and checkout pricing
    CART_EXPIRY_DAYS: int = 30
    TAX_RATE: float = 0.08
    FREE_SHIPPING_THRESHOLD: float = 100.0
    SHIPPING_FLAT_RATE: float = 9.99

    FRONTEND_URL: str = "http://localhost:5173"
    ALLOWED_ORIGINS: List[str] = ["http://localhost:5173", "http://127.0.0.1:5173"]

    class Config:
        env_file: ClassVar[str] = str(env_path)
        extra: ClassVar[str] = "ignore"

    @property
    def is_development(self) -> bool:
        return self.ENVIRONMENT.lower() == "development"

settings = Settings()
