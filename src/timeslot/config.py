"""
Timeslot Service Configuration

Configuration class for the recurring time slot series service.
"""
import os
from pathlib import Path
from urllib.parse import quote_plus
from dotenv import load_dotenv

# Load .env file from project root
_env_path = Path(__file__).parent.parent.parent / ".env"
load_dotenv(_env_path)


class Config:
    """Configuration class for the Timeslot service"""

    # Base paths
    BASE_DIR = Path(__file__).parent.parent.parent

    # Database settings
    DB_HOST = os.getenv("DB_HOST", "localhost")
    DB_PORT = os.getenv("DB_PORT", "5432")
    DB_NAME = os.getenv("DB_NAME", "civic_os")
    DB_USER = os.getenv("DB_USER", "postgres")
    DB_PASSWORD = os.getenv("DB_PASSWORD", "")

    # PostgreSQL DSN (use get_postgres_dsn() method for proper password escaping)
    _db_password_escaped = quote_plus(DB_PASSWORD) if DB_PASSWORD else ""
    POSTGRES_DSN = os.getenv(
        "POSTGRES_DSN",
        f"postgresql://{DB_USER}:{_db_password_escaped}@{DB_HOST}:{DB_PORT}/{DB_NAME}"
        if DB_PASSWORD else f"postgresql://{DB_USER}@{DB_HOST}:{DB_PORT}/{DB_NAME}"
    )

    # Schema holding series bookkeeping tables
    SERIES_SCHEMA = os.getenv("SERIES_SCHEMA", "metadata")

    # API settings
    API_HOST = os.getenv("API_HOST", "127.0.0.1")
    API_PORT = int(os.getenv("API_PORT", "8200"))

    # Expansion limits
    PREVIEW_LIMIT = int(os.getenv("PREVIEW_LIMIT", "100"))
    MATERIALIZE_LIMIT = int(os.getenv("MATERIALIZE_LIMIT", "500"))
    EXPAND_HORIZON_DAYS = int(os.getenv("EXPAND_HORIZON_DAYS", "90"))

    # Background expansion
    EXPANSION_ENABLED = os.getenv("EXPANSION_ENABLED", "true").lower() == "true"
    EXPANSION_INTERVAL = int(os.getenv("EXPANSION_INTERVAL", "3600"))

    # Column holding the time range when entity metadata does not name one
    DEFAULT_TIME_SLOT_PROPERTY = os.getenv("DEFAULT_TIME_SLOT_PROPERTY", "time_slot")

    @staticmethod
    def get_postgres_dsn() -> str:
        """Get PostgreSQL DSN with password handling"""
        if os.getenv("POSTGRES_DSN"):
            return os.environ["POSTGRES_DSN"]
        if Config.DB_PASSWORD:
            password = quote_plus(Config.DB_PASSWORD)
            return f"postgresql://{Config.DB_USER}:{password}@{Config.DB_HOST}:{Config.DB_PORT}/{Config.DB_NAME}"
        return f"postgresql://{Config.DB_USER}@{Config.DB_HOST}:{Config.DB_PORT}/{Config.DB_NAME}"
