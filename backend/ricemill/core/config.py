"""Application configuration loaded from environment variables."""
import os
from pathlib import Path
from dotenv import load_dotenv

load_dotenv()

BASE_DIR = Path(__file__).resolve().parent.parent.parent


class Settings:
    # SQLite DB URL (any SQLAlchemy URL works, e.g. postgresql+psycopg://…)
    DATABASE_URL: str = os.getenv(
        "DATABASE_URL", f"sqlite:///{BASE_DIR / 'ricemill.db'}"
    )

    # Seconds a SQLite connection waits on a locked database before failing
    DB_LOCK_TIMEOUT: int = int(os.getenv("DB_LOCK_TIMEOUT", "30"))

    # API server
    API_HOST: str = os.getenv("API_HOST", "0.0.0.0")
    API_PORT: int = int(os.getenv("API_PORT", "5000"))

    # Auth – sessions are issued elsewhere, this API only validates them
    AUTH_ENABLED: bool = os.getenv("AUTH_ENABLED", "true").lower() == "true"
    AUTH_COOKIE_NAME: str = os.getenv("AUTH_COOKIE_NAME", "token")

    # Logging
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
    LOG_FILE: str = os.getenv("LOG_FILE", str(BASE_DIR / "logs" / "app.log"))

    # CORS
    CORS_ORIGINS: list[str] = [
        o.strip()
        for o in os.getenv(
            "CORS_ORIGINS", "http://localhost:3000,http://localhost:5173"
        ).split(",")
    ]

    # Reference numbers: PUR-2025-00001
    REFERENCE_NUMBER_WIDTH: int = int(os.getenv("REFERENCE_NUMBER_WIDTH", "5"))

    # Pagination
    DEFAULT_PAGE_SIZE: int = int(os.getenv("DEFAULT_PAGE_SIZE", "25"))
    MAX_PAGE_SIZE: int = int(os.getenv("MAX_PAGE_SIZE", "500"))


settings = Settings()
