import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv()


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "yes")


@dataclass
class Config:
    # Storage
    database_url: str = os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./library.db")

    # Application
    app_name: str = os.getenv("APP_NAME", "Library Manager")
    log_level: str = os.getenv("LOG_LEVEL", "INFO").upper()
    debug: bool = _flag("DEBUG", "False")

    # Overdue sweep period in seconds, 0 turns the background sweep off
    sweep_interval_seconds: float = float(os.getenv("SWEEP_INTERVAL_SECONDS", "60"))

    # Seed values for the settings record on a fresh store
    default_loan_duration: int = int(os.getenv("DEFAULT_LOAN_DURATION", "14"))
    max_books_per_member: int = int(os.getenv("MAX_BOOKS_PER_MEMBER", "3"))
    fine_per_day: float = float(os.getenv("FINE_PER_DAY", "1.0"))

    # ISBN lookup
    enable_lookup: bool = _flag("ENABLE_LOOKUP", "True")
    lookup_timeout: float = float(os.getenv("LOOKUP_TIMEOUT", "10"))


config = Config()
