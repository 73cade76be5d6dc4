from pathlib import Path
import os
from pydantic_settings import BaseSettings, SettingsConfigDict

BASE_DIR = Path(__file__).resolve().parents[2]  # repo root

ENV_FILE = os.getenv("ENV_FILE", str(BASE_DIR / ".env"))

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=ENV_FILE, extra="ignore")

    APP_ENV: str = "local"
    DATABASE_URL: str = f"sqlite+pysqlite:///{(BASE_DIR / 'evaluation_cycles.db').as_posix()}"
    CORS_ORIGINS: str = "*"  # Comma-separated list of allowed origins, or "*" for all
    ADMIN_EMAILS: str = ""  # Comma-separated list of principals allowed to manage cycles

    AUTOMATION_ENABLED: bool = True
    AUTOMATION_INTERVAL_SECONDS: int = 60

    END_DATE_GRACE_DAYS: int = 7
    URGENT_THRESHOLD_DAYS: int = 3

    LOG_LEVEL: str = "INFO"
    LOG_PATH: str | None = None

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS_ORIGINS into a list, handling '*' for development"""
        if self.CORS_ORIGINS == "*":
            return ["*"]
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",")]

    @property
    def admin_emails_set(self) -> set[str]:
        return {e.strip().lower() for e in self.ADMIN_EMAILS.split(",") if e.strip()}

settings = Settings()
