from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv

ENV_PATH = Path(__file__).resolve().parents[2] / ".env"
load_dotenv(dotenv_path=ENV_PATH)

DEFAULT_HOLD_SWEEP_INTERVAL_SECONDS = 30
VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


def get_database_url() -> str:
    database_url = os.getenv("DATABASE_URL")
    if database_url and database_url.strip():
        return database_url.strip()
    raise RuntimeError("DATABASE_URL is required")


def get_hold_sweep_interval_seconds() -> int:
    raw_interval = os.getenv(
        "HOLD_SWEEP_INTERVAL_SECONDS",
        str(DEFAULT_HOLD_SWEEP_INTERVAL_SECONDS),
    ).strip()
    interval = int(raw_interval)
    if interval < 0:
        raise RuntimeError("HOLD_SWEEP_INTERVAL_SECONDS must be 0 or greater")
    return interval


def get_log_level() -> str:
    level = os.getenv("LOG_LEVEL", "INFO").strip().upper()
    if level not in VALID_LOG_LEVELS:
        raise RuntimeError(
            f"LOG_LEVEL must be one of: {', '.join(sorted(VALID_LOG_LEVELS))}"
        )
    return level
