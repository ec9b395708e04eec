"""Application configuration settings"""

import os
from typing import List

from dotenv import load_dotenv

load_dotenv()

_TRUTHY = {"1", "true", "yes", "on"}


class Settings:
    """Environment-driven settings, read once per process."""

    def __init__(self) -> None:
        # Data access boundary
        self.data_access_timeout = float(os.getenv("DATA_ACCESS_TIMEOUT", "10"))
        self.data_access_retries = int(os.getenv("DATA_ACCESS_RETRIES", "3"))
        self.data_access_retry_max_wait = float(
            os.getenv("DATA_ACCESS_RETRY_MAX_WAIT", "2")
        )

        # Stats
        self.active_seller_policy = os.getenv("ACTIVE_SELLER_POLICY", "approved")

        # Logging
        self.log_level = os.getenv("LOG_LEVEL", "INFO").upper()
        self.log_json = os.getenv("LOG_JSON", "false").lower() in _TRUTHY

        # HTTP
        self.cors_origins: List[str] = [
            origin.strip()
            for origin in os.getenv("CORS_ORIGINS", "*").split(",")
            if origin.strip()
        ]


_settings = None


def get_settings() -> Settings:
    """Get the process-wide settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
