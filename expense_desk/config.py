# expense_desk/config.py
"""
Environment-driven settings.

Values come from the process environment, with a `.env` file loaded first
(python-dotenv) so local development only needs a `.env` next to the repo.
Helpers are read at call time, which keeps tests free to monkeypatch
`os.environ` without reloading modules.
"""
from __future__ import annotations

import os
from pathlib import Path
from typing import List, Set

from dotenv import load_dotenv

load_dotenv()

DEFAULT_DATABASE_URL = "sqlite:///./expense_desk.db"
DEFAULT_CORS_ORIGINS = [
    "http://localhost:3000", "http://127.0.0.1:3000",
    "http://localhost:5173", "http://127.0.0.1:5173",
]


# -------------------- helpers ------------------------------------------------

def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return str(raw).strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except (TypeError, ValueError):
        return default


def _env_list(name: str) -> List[str]:
    raw = os.getenv(name) or ""
    return [part.strip() for part in raw.split(",") if part.strip()]


# -------------------- settings -----------------------------------------------

def database_url() -> str:
    return os.getenv("DATABASE_URL") or DEFAULT_DATABASE_URL


def sql_echo() -> bool:
    return _env_bool("SQL_ECHO", False)


def auto_create_tables() -> bool:
    return _env_bool("AUTO_CREATE_TABLES", False)


def api_key_pepper() -> str:
    return os.getenv("API_KEY_PEPPER", "")


def signup_mode() -> str:
    """'open' or 'invite_only' (anything unrecognised means invite_only)."""
    mode = (os.getenv("AUTH_SIGNUP_MODE") or "").strip().lower()
    return "open" if mode == "open" else "invite_only"


def invite_codes() -> Set[str]:
    """Static invite codes; a non-empty set switches invites to fallback mode."""
    return set(_env_list("INVITE_CODES"))


def bootstrap_admin_emails() -> Set[str]:
    # AUTH_ADMIN_EMAILS is accepted as an alias of AUTH_ADMIN_EMAIL
    emails = _env_list("AUTH_ADMIN_EMAIL") + _env_list("AUTH_ADMIN_EMAILS")
    return {e.lower() for e in emails}


def is_bootstrap_admin_email(email: str | None) -> bool:
    normalized = (email or "").strip().lower()
    return bool(normalized) and normalized in bootstrap_admin_emails()


def receipt_storage_dir() -> Path:
    return Path(os.getenv("RECEIPT_STORAGE_DIR") or "./var/receipts").resolve()


def receipt_storage_bucket() -> str:
    return os.getenv("RECEIPT_STORAGE_BUCKET") or "receipts"


def default_currency() -> str:
    return (os.getenv("DEFAULT_CURRENCY") or "EUR").strip().upper()[:3]


def invite_default_expiry_days() -> int:
    return _env_int("INVITE_DEFAULT_EXPIRY_DAYS", 14)


def log_level() -> str:
    return (os.getenv("LOG_LEVEL") or "INFO").upper()


def cors_origins() -> List[str]:
    return _env_list("CORS_ORIGINS") or list(DEFAULT_CORS_ORIGINS)
