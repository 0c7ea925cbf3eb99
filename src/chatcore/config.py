"""
Chat Core Configuration

Configuration class for the training chat engine.
"""
import os
from pathlib import Path
from urllib.parse import quote_plus
from dotenv import load_dotenv

# Load .env file from project root
_env_path = Path(__file__).parent.parent.parent / ".env"
load_dotenv(_env_path)


class Config:
    """Configuration class for the chat engine"""

    # Base paths
    BASE_DIR = Path(__file__).parent.parent.parent
    MIGRATIONS_DIR = Path(__file__).parent / "migrations"

    # Database settings
    DB_HOST = os.getenv("DB_HOST", "localhost")
    DB_PORT = os.getenv("DB_PORT", "5432")
    DB_NAME = os.getenv("DB_NAME", "chatcore")
    DB_USER = os.getenv("DB_USER", "postgres")
    DB_PASSWORD = os.getenv("DB_PASSWORD", "")

    # API settings
    API_HOST = os.getenv("API_HOST", "127.0.0.1")
    API_PORT = int(os.getenv("API_PORT", "8200"))

    # JWT issued by the hosted auth backend
    JWT_SECRET = os.getenv("JWT_SECRET", "chatcore-secret-key-change-in-production")
    JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
    JWT_AUDIENCE = os.getenv("JWT_AUDIENCE", "authenticated")

    # Change feed (LISTEN/NOTIFY)
    CHANGE_FEED_CHANNEL = os.getenv("CHANGE_FEED_CHANNEL", "chat_changes")
    CHANGE_FEED_ENABLED = os.getenv("CHANGE_FEED_ENABLED", "true").lower() == "true"

    # Chat rules
    APPROVER_ROLE = os.getenv("APPROVER_ROLE", "PM")
    MESSAGE_PAGE_LIMIT = int(os.getenv("MESSAGE_PAGE_LIMIT", "500"))

    @staticmethod
    def get_postgres_dsn() -> str:
        """Get PostgreSQL DSN with password handling"""
        dsn = os.getenv("POSTGRES_DSN")
        if dsn:
            return dsn
        if Config.DB_PASSWORD:
            password = quote_plus(Config.DB_PASSWORD)
            return f"postgresql://{Config.DB_USER}:{password}@{Config.DB_HOST}:{Config.DB_PORT}/{Config.DB_NAME}"
        return f"postgresql://{Config.DB_USER}@{Config.DB_HOST}:{Config.DB_PORT}/{Config.DB_NAME}"
