"""
Environment variable loading and validation for the Octra backend.

- OCTRA_RPC_URL: Octra RPC node (default: https://octra.network)
- OCTRA_EXPLORER_URL: explorer prefix for transaction links
- DATABASE_URL: SQLAlchemy URL (default: SQLite file in project root)
- TELEGRAM_BOT_TOKEN: bot token used for recipient notifications (optional)
- Loads .env from project root when available.
"""

from __future__ import annotations

import os
from decimal import Decimal, InvalidOperation
from pathlib import Path

# Project root: config is backend_octra/config/, root is 2 levels up
_CONFIG_DIR = Path(__file__).resolve().parent
_BACKEND_DIR = _CONFIG_DIR.parent
_ROOT = _BACKEND_DIR.parent
_ENV_PATH = _ROOT / ".env"

DEFAULT_RPC_URL = "https://octra.network"
DEFAULT_EXPLORER_URL = "https://octrascan.io/tx/"
DEFAULT_SQLITE_PATH = "octra_wallets.db"


def load_octra_env() -> None:
    """Load .env from project root. Safe to call multiple times."""
    from dotenv import load_dotenv

    load_dotenv(_ENV_PATH)


def env_str(name: str, default: str = "") -> str:
    """Return stripped env value, or default when unset or blank."""
    raw = (os.getenv(name) or "").strip()
    return raw or default


def env_float(name: str, default: float) -> float:
    raw = env_str(name)
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def env_int(name: str, default: int) -> int:
    raw = env_str(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def env_decimal(name: str, default: Decimal) -> Decimal:
    raw = env_str(name)
    if not raw:
        return default
    try:
        value = Decimal(raw)
    except InvalidOperation:
        return default
    return value if value.is_finite() else default


def get_rpc_url() -> str:
    """
    Resolve Octra RPC URL from env.
    Order: OCTRA_RPC_URL > RPC_ENDPOINT > public node.
    """
    load_octra_env()
    url = env_str("OCTRA_RPC_URL") or env_str("RPC_ENDPOINT") or DEFAULT_RPC_URL
    return url.rstrip("/")


def get_explorer_url() -> str:
    load_octra_env()
    url = env_str("OCTRA_EXPLORER_URL", DEFAULT_EXPLORER_URL)
    return url if url.endswith("/") else url + "/"


def get_database_url() -> str:
    """Return DATABASE_URL if set; else SQLite from DB_PATH or default file."""
    load_octra_env()
    url = env_str("DATABASE_URL")
    if url:
        return url
    path = env_str("DB_PATH", DEFAULT_SQLITE_PATH)
    return f"sqlite:///{path}"


def mask_url(url: str) -> str:
    """Hide credentials in a URL before printing it."""
    if "@" in url and "://" in url:
        scheme, rest = url.split("://", 1)
        return f"{scheme}://***@{rest.split('@', 1)[1]}"
    return url
