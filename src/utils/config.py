"""Configuration management for the resilient data layer."""

import os
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


class Config:
    """Central configuration, read from the environment."""

    # Project paths
    PROJECT_ROOT = Path(__file__).parent.parent.parent
    DATA_DIR = Path(os.getenv("RESILIENT_DATA_DIR", PROJECT_ROOT / "data"))
    DB_NAME = os.getenv("RESILIENT_DB_NAME", "resilient.db")
    LOG_DIR = Path(os.getenv("RESILIENT_LOG_DIR", PROJECT_ROOT / "logs"))
    LOG_LEVEL = os.getenv("RESILIENT_LOG_LEVEL", "INFO")

    # Remote API
    API_BASE_URL = os.getenv("API_BASE_URL", "https://jsonplaceholder.typicode.com")
    REQUEST_TIMEOUT_SECONDS = float(os.getenv("REQUEST_TIMEOUT_SECONDS", "15"))

    # Connectivity probing
    CONNECTIVITY_PROBE_URL = os.getenv("CONNECTIVITY_PROBE_URL", f"{API_BASE_URL}/posts/1")
    CONNECTIVITY_INTERVAL_SECONDS = float(os.getenv("CONNECTIVITY_INTERVAL_SECONDS", "5"))
    CONNECTIVITY_PROBE_TIMEOUT_SECONDS = float(os.getenv("CONNECTIVITY_PROBE_TIMEOUT_SECONDS", "3"))

    # Memory cache limits
    MEMORY_CACHE_MAX_ENTRIES = int(os.getenv("MEMORY_CACHE_MAX_ENTRIES", "1000"))
    MEMORY_CACHE_MAX_BYTES = int(os.getenv("MEMORY_CACHE_MAX_BYTES", str(50 * 1024 * 1024)))

    # Development settings
    DEBUG = os.getenv("DEBUG", "false").lower() == "true"

    @classmethod
    def db_path(cls) -> Path:
        return cls.DATA_DIR / cls.DB_NAME

    @classmethod
    def ensure_directories(cls) -> None:
        """Ensure all required directories exist."""
        for directory in (cls.DATA_DIR, cls.LOG_DIR):
            directory.mkdir(parents=True, exist_ok=True)

    @classmethod
    def get_summary(cls) -> dict[str, Any]:
        """Get configuration summary for debugging."""
        return {
            "project_root": str(cls.PROJECT_ROOT),
            "data_dir": str(cls.DATA_DIR),
            "db_path": str(cls.db_path()),
            "log_level": cls.LOG_LEVEL,
            "api": {
                "base_url": cls.API_BASE_URL,
                "timeout_seconds": cls.REQUEST_TIMEOUT_SECONDS,
            },
            "connectivity": {
                "probe_url": cls.CONNECTIVITY_PROBE_URL,
                "interval_seconds": cls.CONNECTIVITY_INTERVAL_SECONDS,
                "probe_timeout_seconds": cls.CONNECTIVITY_PROBE_TIMEOUT_SECONDS,
            },
            "memory_cache": {
                "max_entries": cls.MEMORY_CACHE_MAX_ENTRIES,
                "max_bytes": cls.MEMORY_CACHE_MAX_BYTES,
            },
            "debug": cls.DEBUG,
        }
