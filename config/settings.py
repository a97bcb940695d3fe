import os
from pathlib import Path
from typing import List
from pydantic_settings import BaseSettings
from dotenv import load_dotenv

# Load environment variables from the project .env explicitly (works regardless of cwd)
load_dotenv(dotenv_path=Path(__file__).parent.parent / ".env")

class Settings(BaseSettings):
    """Application settings"""

    # Base directory
    BASE_DIR: Path = Path(__file__).parent.parent

    # Database - PostgreSQL in production (fallback to local SQLite if not provided)
    DATABASE_URL: str = os.getenv("DATABASE_URL") or "sqlite:///./marketplace.db"
    DB_POOL_SIZE: int = int(os.getenv("DB_POOL_SIZE", "10"))
    DB_MAX_OVERFLOW: int = int(os.getenv("DB_MAX_OVERFLOW", "20"))
    DB_LOCK_TIMEOUT_MS: int = int(os.getenv("DB_LOCK_TIMEOUT_MS", "5000"))
    SQLITE_BUSY_TIMEOUT_SECONDS: float = float(os.getenv("SQLITE_BUSY_TIMEOUT_SECONDS", "30"))

    @property
    def DATABASE_URL_SYNC(self) -> str:
        """Get sync database URL with psycopg2 driver"""
        if self.DATABASE_URL.startswith("postgresql+asyncpg://"):
            return self.DATABASE_URL.replace("postgresql+asyncpg://", "postgresql://", 1)
        if self.DATABASE_URL.startswith("postgres://"):
            return self.DATABASE_URL.replace("postgres://", "postgresql://", 1)
        return self.DATABASE_URL

    # View deduplication windows
    VIEW_WINDOW_SECONDS: int = int(os.getenv("VIEW_WINDOW_SECONDS", "3600"))  # address / user tiers
    ANONYMOUS_VIEW_WINDOW_SECONDS: int = int(os.getenv("ANONYMOUS_VIEW_WINDOW_SECONDS", "300"))

    # JWT (tokens are issued by the auth service; we only verify them)
    JWT_SECRET: str = os.getenv("JWT_SECRET", "your-secret-key-here")
    JWT_ALGORITHM: str = "HS256"
    JWT_EXPIRATION: int = 7 * 24 * 3600  # 7 days
    AUTH_COOKIE_NAME: str = os.getenv("AUTH_COOKIE_NAME", "token")

    # CORS - Updated for development and production
    CORS_ORIGINS: List[str] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
        "http://localhost:5173",
    ]

    # Logging
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    # Ledger/aggregate drift audit
    VIEW_AUDIT_ENABLED: bool = os.getenv("VIEW_AUDIT_ENABLED", "false").lower() in ("1", "true", "yes", "on")
    VIEW_AUDIT_INTERVAL_SECONDS: int = int(os.getenv("VIEW_AUDIT_INTERVAL_SECONDS", "3600"))

    model_config = {
        "env_file": ".env",
        "extra": "ignore",
        "from_attributes": True,
    }

# Create global settings instance
settings = Settings()
