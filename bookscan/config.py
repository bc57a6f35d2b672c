"""Configuration management."""
import os
from dotenv import load_dotenv

# Load environment variables
load_dotenv()


class Config:
    """Application configuration."""

    # Open Library
    OPENLIBRARY_HOST = os.getenv("OPENLIBRARY_HOST", "openlibrary.org")
    USER_AGENT = os.getenv("USER_AGENT", "BookScanner/1.0 (Python)")

    # Database
    DB_HOST = os.getenv("DB_HOST", "localhost")
    DB_PORT = os.getenv("DB_PORT", "5432")
    DB_NAME = os.getenv("DB_NAME", "bookshelf")
    DB_USER = os.getenv("DB_USER", "postgres")
    DB_PASSWORD = os.getenv("DB_PASSWORD", "")

    @property
    def DATABASE_URL(self):
        """Build PostgreSQL connection string."""
        return f"postgresql://{self.DB_USER}:{self.DB_PASSWORD}@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"

    # "postgres" or "memory"
    STORE_BACKEND = os.getenv("STORE_BACKEND", "postgres")

    # Scanner
    SCAN_COOLDOWN = float(os.getenv("SCAN_COOLDOWN", "1.0"))
    CAMERA_INDEX = int(os.getenv("CAMERA_INDEX", "0"))

    # Defaults
    DEFAULT_TIMEOUT = int(os.getenv("DEFAULT_TIMEOUT", "10"))
    MAX_CONCURRENT = int(os.getenv("MAX_CONCURRENT", "5"))
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
