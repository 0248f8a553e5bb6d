#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Settings - Centralized configuration management
"""

from pathlib import Path
from typing import Optional
from pydantic_settings import BaseSettings

from .constants import (
    WORKER_BASE_URL,
    REQUEST_TIMEOUT_SECONDS,
    POLL_INTERVAL_SECONDS,
    MAX_POLL_SECONDS,
    STATE_PATH,
    LOG_LEVEL,
)


# Base directory
BASE_DIR = Path(__file__).resolve().parent.parent


class Settings(BaseSettings):
    """Application settings"""

    # ========== Worker Service ==========
    worker_base_url: str = WORKER_BASE_URL
    worker_api_token: Optional[str] = None  # forwarded as a bearer header when set
    request_timeout_seconds: float = REQUEST_TIMEOUT_SECONDS

    # ========== Polling ==========
    poll_interval_seconds: float = POLL_INTERVAL_SECONDS
    max_poll_seconds: float = MAX_POLL_SECONDS

    # ========== Persistence ==========
    state_path: Path = BASE_DIR / STATE_PATH
    auto_save: bool = True

    # ========== Presentation ==========
    show_toasts: bool = True

    # ========== Logging ==========
    log_level: str = LOG_LEVEL

    class Config:
        env_prefix = "BATCH_"
        env_file = str(BASE_DIR / ".env")
        env_file_encoding = "utf-8"
        case_sensitive = False
        extra = "ignore"  # Allow extra fields from .env that aren't defined in model

    def print_config(self):
        """Print configuration summary"""
        print("\n" + "=" * 70)
        print("CONFIGURATION")
        print("=" * 70)
        print(f"Worker URL:      {self.worker_base_url}")
        print(f"Poll Interval:   {self.poll_interval_seconds}s")
        print(f"Poll Ceiling:    {self.max_poll_seconds}s")
        print(f"State File:      {self.state_path}")
        print(f"Auto Save:       {self.auto_save}")
        print("=" * 70 + "\n")


def get_settings(**overrides) -> Settings:
    """Build settings, letting callers override individual fields."""
    return Settings(**overrides)
