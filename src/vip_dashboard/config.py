"""Application configuration: loads .env, then overrides from settings.json."""

import json
import os
from pathlib import Path

from dotenv import load_dotenv

# Find the project root (where .env lives)
_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
load_dotenv(_PROJECT_ROOT / ".env")

# Runtime settings file for in-app configuration
_SETTINGS_FILE = _PROJECT_ROOT / "data" / "settings.json"


def _load_settings() -> dict:
    """Load saved runtime settings from JSON file."""
    if _SETTINGS_FILE.exists():
        try:
            return json.loads(_SETTINGS_FILE.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError):
            pass
    return {}


def _save_settings(settings: dict):
    """Persist runtime settings to JSON file."""
    _SETTINGS_FILE.parent.mkdir(parents=True, exist_ok=True)
    _SETTINGS_FILE.write_text(
        json.dumps(settings, indent=2), encoding="utf-8"
    )


# Load saved settings once at import time
_runtime = _load_settings()


class Config:
    """Central configuration: .env defaults, settings.json overrides."""

    # Paths
    PROJECT_ROOT: Path = _PROJECT_ROOT
    DATABASE_PATH: Path = Path(
        os.getenv("DATABASE_PATH",
                  str(_PROJECT_ROOT / "data" / "vip_dashboard.db"))
    )
    CREDENTIALS_PATH: Path = Path(
        os.getenv("CREDENTIALS_PATH",
                  str(_PROJECT_ROOT / "data" / "credentials.json"))
    )

    # Remote API (settings.json overrides .env)
    API_BASE_URL: str = _runtime.get(
        "api_base_url",
        os.getenv("API_BASE_URL", "https://tracker.example.com"),
    )
    API_TIMEOUT: float = float(_runtime.get(
        "api_timeout",
        os.getenv("API_TIMEOUT", "15"),
    ))
    BUILD_CHANNEL: str = os.getenv("APP_BUILD_CHANNEL", "UNKNOWN")

    # Sync engine
    SYNC_PAGE_LIMIT: int = int(os.getenv("SYNC_PAGE_LIMIT", "200"))
    SYNC_BACKOFF_BASE: float = float(os.getenv("SYNC_BACKOFF_BASE", "2"))
    SYNC_BACKOFF_MAX: float = float(os.getenv("SYNC_BACKOFF_MAX", "900"))
    SYNC_INTERVAL_MINUTES: int = int(_runtime.get(
        "sync_interval_minutes",
        os.getenv("SYNC_INTERVAL_MINUTES", "15"),
    ))
    RATE_LIMIT_MIN_DELAY: float = float(
        os.getenv("RATE_LIMIT_MIN_DELAY", "5")
    )

    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    @classmethod
    def update_api_settings(cls, base_url: str, timeout: float):
        """Update the API endpoint at runtime and persist to disk."""
        cls.API_BASE_URL = base_url
        cls.API_TIMEOUT = float(timeout)

        settings = _load_settings()
        settings["api_base_url"] = base_url
        settings["api_timeout"] = float(timeout)
        _save_settings(settings)

    @classmethod
    def update_sync_interval(cls, minutes: int):
        """Update the background sync interval (in minutes) and persist."""
        cls.SYNC_INTERVAL_MINUTES = int(minutes)

        settings = _load_settings()
        settings["sync_interval_minutes"] = int(minutes)
        _save_settings(settings)
