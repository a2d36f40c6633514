"""
Environment Configuration Module

Loads environment variables for the QA run engine.
Structured settings can also come from a YAML file (see engine_config).
"""
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

# Load environment variables from .env file if it exists
try:
    env_path = Path(__file__).parent.parent.parent / '.env'
    if env_path.exists():
        load_dotenv(dotenv_path=env_path)
except (PermissionError, OSError) as exc:
    logger.warning("Could not read .env file: %s", exc)


class EnvironmentConfig:
    """Environment configuration loaded from environment variables."""

    # QA API
    QA_API_URL: str = os.getenv("QA_API_URL", "http://localhost:3000/api")
    QA_API_TOKEN: Optional[str] = os.getenv("QA_API_TOKEN")
    QA_API_TIMEOUT: int = int(os.getenv("QA_API_TIMEOUT", "30"))

    # Result buffering
    QA_DEBOUNCE_MS: int = int(os.getenv("QA_DEBOUNCE_MS", "800"))

    # Dashboard
    QA_PAGE_SIZE: int = int(os.getenv("QA_PAGE_SIZE", "10"))

    # Default run_by for new runs
    QA_CURRENT_USER: Optional[str] = os.getenv("QA_CURRENT_USER")

    # Logging
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
    LOG_FORMAT: str = os.getenv("LOG_FORMAT", "readable")

    @classmethod
    def reload(cls) -> None:
        """Re-read every setting from the current environment."""
        cls.QA_API_URL = os.getenv("QA_API_URL", "http://localhost:3000/api")
        cls.QA_API_TOKEN = os.getenv("QA_API_TOKEN")
        cls.QA_API_TIMEOUT = int(os.getenv("QA_API_TIMEOUT", "30"))
        cls.QA_DEBOUNCE_MS = int(os.getenv("QA_DEBOUNCE_MS", "800"))
        cls.QA_PAGE_SIZE = int(os.getenv("QA_PAGE_SIZE", "10"))
        cls.QA_CURRENT_USER = os.getenv("QA_CURRENT_USER")
        cls.LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
        cls.LOG_FORMAT = os.getenv("LOG_FORMAT", "readable")

    @classmethod
    def validate(cls) -> bool:
        """Validate that required environment variables are set."""
        if not cls.QA_API_TOKEN:
            logger.warning("QA_API_TOKEN environment variable not set")
            return False
        return True

    @classmethod
    def get_api_config(cls) -> Dict[str, Any]:
        """Get QA API configuration as a dictionary."""
        return {
            'base_url': cls.QA_API_URL,
            'token': cls.QA_API_TOKEN,
            'timeout': cls.QA_API_TIMEOUT,
        }
