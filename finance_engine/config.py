"""Configuration management for the finance engine.

This module centralizes all configuration values including paths,
engine defaults, and environment variable overrides.
"""

from __future__ import annotations

import logging
import os
from decimal import Decimal
from pathlib import Path

# Base project root - assumes this file is in finance_engine/
_PROJECT_ROOT = Path(__file__).parent.parent.resolve()

# Data directories
DATA_DIR = Path(os.getenv("FINENGINE_DATA_DIR", _PROJECT_ROOT / "data"))

# Database
DB_PATH = Path(
    os.getenv("FINENGINE_DB_PATH", DATA_DIR / "finance.db")
).resolve()

# Engine defaults
DEFAULT_CURRENCY = os.getenv("FINENGINE_CURRENCY", "EUR")
DEFAULT_ALERT_THRESHOLD = Decimal(os.getenv("FINENGINE_ALERT_THRESHOLD", "80"))
TREND_MONTHS = int(os.getenv("FINENGINE_TREND_MONTHS", "6"))
QUERY_PAGE_SIZE = int(os.getenv("FINENGINE_PAGE_SIZE", "500"))
LOG_LEVEL = os.getenv("FINENGINE_LOG_LEVEL", "WARNING")

# Dashboard composition
TOP_CATEGORY_COUNT = 5
DASHBOARD_GOAL_COUNT = 3
RECENT_TRANSACTION_COUNT = 10
NOTIFICATION_LIMIT = 20

# Display fallbacks
DEFAULT_CATEGORY_COLOR = "#6366f1"
DEFAULT_CATEGORY_ICON = "tag"
DEFAULT_GOAL_ICON = "target"
UNCATEGORIZED_NAME = "Uncategorized"
UNCATEGORIZED_COLOR = "#9ca3af"


def ensure_data_directories() -> None:
    """Create all required data directories if they don't exist."""
    for directory in [DATA_DIR, DB_PATH.parent]:
        directory.mkdir(parents=True, exist_ok=True)


def get_db_path() -> str:
    """Get the database path as a string (for sqlite3.connect)."""
    return str(DB_PATH)


def configure_logging(level: str | None = None) -> None:
    """Apply ``FINENGINE_LOG_LEVEL`` (or ``level``) to the package logger."""
    name = (level or LOG_LEVEL).upper()
    logging.getLogger("finance_engine").setLevel(getattr(logging, name, logging.WARNING))
