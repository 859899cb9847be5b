"""Configuration constants for StarJar."""
from __future__ import annotations

import os

from dotenv import load_dotenv

load_dotenv()


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


SQLITE_FILE_NAME = os.environ.get("STARJAR_SQLITE", "starjar.db")
LOG_FILE = os.environ.get("STARJAR_LOG_FILE") or None
GEMINI_API_KEY = os.environ.get("GEMINI_API_KEY") or os.environ.get("API_KEY") or None
GEMINI_MODEL = os.environ.get("STARJAR_GEMINI_MODEL", "gemini-3-flash-preview")
GEMINI_ENDPOINT = os.environ.get(
    "STARJAR_GEMINI_ENDPOINT",
    "https://generativelanguage.googleapis.com/v1beta/models",
)
GEMINI_TIMEOUT_SECONDS = _env_float("STARJAR_GEMINI_TIMEOUT", 20.0)

KIDS_KEY = "starjar_kids"
LOGS_KEY = "starjar_logs"
INVESTMENTS_KEY = "starjar_investments"
BANK_RATES_KEY = "starjar_bank_rates"
API_KEY_KEY = "starjar_api_key"

DAYS_PER_MONTH = 30
EXPORT_VERSION = 1
DEFAULT_AVATAR_URL = "https://api.dicebear.com/7.x/fun-emoji/svg?seed="

__all__ = [
    "SQLITE_FILE_NAME",
    "LOG_FILE",
    "GEMINI_API_KEY",
    "GEMINI_MODEL",
    "GEMINI_ENDPOINT",
    "GEMINI_TIMEOUT_SECONDS",
    "KIDS_KEY",
    "LOGS_KEY",
    "INVESTMENTS_KEY",
    "BANK_RATES_KEY",
    "API_KEY_KEY",
    "DAYS_PER_MONTH",
    "EXPORT_VERSION",
    "DEFAULT_AVATAR_URL",
]
