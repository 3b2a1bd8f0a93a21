"""Application configuration loaded from environment variables."""
import os
from pathlib import Path
from dotenv import load_dotenv

load_dotenv()

BASE_DIR = Path(__file__).resolve().parent.parent.parent


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


class Settings:
    COMPANY_NAME: str = os.getenv("COMPANY_NAME", "Pharma Distribution")

    # "development" exposes error tracebacks in API responses
    ENVIRONMENT: str = os.getenv("ENVIRONMENT", "development")

    # SQLite DB URL
    DATABASE_URL: str = os.getenv(
        "DATABASE_URL", f"sqlite:///{BASE_DIR / 'pharmadist.db'}"
    )

    # API server
    API_HOST: str = os.getenv("API_HOST", "0.0.0.0")
    API_PORT: int = int(os.getenv("API_PORT", "8000"))

    # Auth
    AUTH_ENABLED: bool = _flag("AUTH_ENABLED", "false")
    AUTH_USERNAME: str = os.getenv("AUTH_USERNAME", "admin")
    AUTH_PASSWORD: str = os.getenv("AUTH_PASSWORD", "changeme")
    JWT_SECRET: str = os.getenv("JWT_SECRET", "change-this-secret")
    JWT_ALGORITHM: str = os.getenv("JWT_ALGORITHM", "HS256")
    ACCESS_TOKEN_EXPIRE_MINUTES: int = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "480"))

    # Logging
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
    LOG_FILE: str = os.getenv("LOG_FILE", "logs/app.log")
    AUDIT_LOG_FILE: str = os.getenv("AUDIT_LOG_FILE", "logs/ledger_audit.log")

    # CORS
    CORS_ORIGINS: list[str] = [
        o.strip()
        for o in os.getenv(
            "CORS_ORIGINS", "http://localhost:4200,http://localhost:3000"
        ).split(",")
    ]

    # Inbox folder where bank statement CSV exports are dropped
    STATEMENT_INBOX: str = os.getenv(
        "STATEMENT_INBOX", str(BASE_DIR / "data" / "statement_inbox")
    )
    WATCHER_ENABLED: bool = _flag("WATCHER_ENABLED", "true")
    # Watcher poll interval (seconds) – used on platforms where inotify is unavailable
    WATCHER_POLL_INTERVAL: int = int(os.getenv("WATCHER_POLL_INTERVAL", "5"))

    # Directory for raw statement backups
    RAW_BACKUP_DIR: Path = Path(
        os.getenv("RAW_BACKUP_DIR", str(BASE_DIR / "data" / "raw_backup"))
    )

    # Ledger
    CURRENCY: str = os.getenv("CURRENCY", "PKR")
    CASH_ACCOUNT_CODE: str = os.getenv("CASH_ACCOUNT_CODE", "1000")
    SALES_ACCOUNT_CODE: str = os.getenv("SALES_ACCOUNT_CODE", "4000")
    PURCHASE_ACCOUNT_CODE: str = os.getenv("PURCHASE_ACCOUNT_CODE", "5000")
    ADJUSTMENT_ACCOUNT_CODE: str = os.getenv("ADJUSTMENT_ACCOUNT_CODE", "5100")

    # Bank reconciliation matching window
    MATCH_AMOUNT_TOLERANCE: float = float(os.getenv("MATCH_AMOUNT_TOLERANCE", "0.01"))
    MATCH_DATE_WINDOW_DAYS: int = int(os.getenv("MATCH_DATE_WINDOW_DAYS", "3"))

    def __init__(self):
        # Ensure directories exist
        Path(self.STATEMENT_INBOX).mkdir(parents=True, exist_ok=True)
        self.RAW_BACKUP_DIR.mkdir(parents=True, exist_ok=True)

    @property
    def is_development(self) -> bool:
        return self.ENVIRONMENT.lower() == "development"


settings = Settings()
