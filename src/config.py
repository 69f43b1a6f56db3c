"""Configuration management for Ascend Tracker."""

import json
import logging
import os
from dataclasses import dataclass, asdict
from pathlib import Path
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from platformdirs import user_config_dir, user_data_dir, user_log_dir

__all__ = [
    "Config",
    "setup_logging",
    "DEFAULT_API_URL",
    "DEFAULT_TIMEZONE",
]

logger = logging.getLogger(__name__)

APP_NAME = "Ascend Tracker"
APP_AUTHOR = "Ascend"

# API endpoints
DEFAULT_API_URL = "https://api.ascend.sh"
API_URL_ENV = "ASCEND_API_URL"

DEFAULT_TIMEZONE = "UTC"

# Upload settings
DEFAULT_UPLOAD_TIMEOUT = 10  # seconds
DEFAULT_RETRY_INTERVAL = 60  # seconds
MIN_RETRY_INTERVAL = 15


@dataclass
class Config:
    """Main configuration object."""

    api_url: str = DEFAULT_API_URL
    timezone: str = DEFAULT_TIMEZONE
    upload_timeout: int = DEFAULT_UPLOAD_TIMEOUT
    retry_interval_seconds: int = DEFAULT_RETRY_INTERVAL
    upload_enabled: bool = True
    status_bar_visible: bool = True
    debug_mode: bool = False

    def __post_init__(self) -> None:
        try:
            ZoneInfo(self.timezone)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"Unknown timezone: {self.timezone!r}") from e
        self.retry_interval_seconds = max(MIN_RETRY_INTERVAL, self.retry_interval_seconds)

    @property
    def effective_api_url(self) -> str:
        """API URL, honouring the environment override."""
        return (os.getenv(API_URL_ENV) or self.api_url).rstrip("/")

    @classmethod
    def get_config_dir(cls) -> Path:
        """Get the configuration directory path."""
        return Path(user_config_dir(APP_NAME, APP_AUTHOR))

    @classmethod
    def get_data_dir(cls) -> Path:
        """Get the data directory path (for the SQLite state store)."""
        return Path(user_data_dir(APP_NAME, APP_AUTHOR))

    @classmethod
    def get_log_dir(cls) -> Path:
        """Get the log directory path."""
        return Path(user_log_dir(APP_NAME, APP_AUTHOR))

    @classmethod
    def get_config_file(cls) -> Path:
        """Get the config file path."""
        return cls.get_config_dir() / "config.json"

    @classmethod
    def load(cls, config_file: Optional[Path] = None) -> "Config":
        """Load config from file, or return defaults."""
        config_file = config_file or cls.get_config_file()
        if config_file.exists():
            try:
                with open(config_file, "r") as f:
                    data = json.load(f)
                return cls._from_dict(data)
            except Exception as e:
                logger.warning(f"Failed to load config: {e}, using defaults")
        return cls()

    @classmethod
    def _from_dict(cls, data: dict) -> "Config":
        """Create Config from dictionary, ignoring unknown keys."""
        return cls(**{k: v for k, v in data.items() if k in cls.__dataclass_fields__})

    def save(self, config_file: Optional[Path] = None) -> None:
        """Save config to file."""
        config_file = config_file or self.get_config_file()
        config_file.parent.mkdir(parents=True, exist_ok=True)

        with open(config_file, "w") as f:
            json.dump(asdict(self), f, indent=2)
        logger.info(f"Config saved to {config_file}")


def setup_logging(debug: bool = False) -> None:
    """Configure logging."""
    log_dir = Config.get_log_dir()
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / "ascend-tracker.log"

    level = logging.DEBUG if debug else logging.INFO
    format_str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    logging.basicConfig(
        level=level,
        format=format_str,
        handlers=[
            logging.FileHandler(log_file),
            logging.StreamHandler(),
        ],
    )

    # Reduce noise from libraries
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("requests").setLevel(logging.WARNING)
    logging.getLogger("apscheduler").setLevel(logging.WARNING)
