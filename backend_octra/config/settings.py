"""
Application settings and environment configuration.

Responsibilities:
- Load configuration from environment variables and .env files.
- Clamp numeric settings into usable ranges and provide defaults.
- Expose typed settings (RPC URL, DB URL, pacing, auto-cycle timing, etc.)
  for use across dispatcher, auto-cycle worker, and API server.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from backend_octra.config.env import (
    env_decimal,
    env_float,
    env_int,
    env_str,
    get_database_url,
    get_explorer_url,
    get_rpc_url,
    load_octra_env,
)


@dataclass
class Settings:
    """Typed service configuration. Times are seconds unless named otherwise."""

    rpc_url: str
    explorer_url: str
    database_url: str
    rpc_timeout_sec: float = 5.0
    rpc_max_retries: int = 3
    multi_send_interval_sec: float = 0.3

    auto_first_cycle_delay_sec: float = 1.0
    auto_cohort_cap: int = 50
    auto_fee_factor: Decimal = Decimal("0.95")
    auto_return_delay_sec: float = 60.0
    auto_return_interval_sec: float = 2.0
    auto_cooldown_sec: float = 300.0
    auto_retry_cooldown_sec: float = 600.0
    auto_default_duration_min: int = 60
    auto_max_concurrent_cycles: int = 10

    session_ttl_sec: float = 300.0
    telegram_bot_token: str | None = None
    api_host: str = "0.0.0.0"
    api_port: int = 3000

    def __post_init__(self) -> None:
        self.rpc_timeout_sec = max(0.5, float(self.rpc_timeout_sec))
        self.rpc_max_retries = max(1, int(self.rpc_max_retries))
        self.multi_send_interval_sec = max(0.0, float(self.multi_send_interval_sec))
        self.auto_cohort_cap = max(1, int(self.auto_cohort_cap))
        self.auto_fee_factor = Decimal(str(self.auto_fee_factor))
        if not (Decimal(0) < self.auto_fee_factor <= Decimal(1)):
            raise ValueError("auto_fee_factor must be in (0, 1]")
        self.auto_max_concurrent_cycles = max(1, int(self.auto_max_concurrent_cycles))
        self.auto_default_duration_min = max(1, int(self.auto_default_duration_min))
        self.session_ttl_sec = max(1.0, float(self.session_ttl_sec))


_settings: Settings | None = None


def load_settings_from_env() -> Settings:
    """Build Settings from environment with defaults."""
    load_octra_env()
    return Settings(
        rpc_url=get_rpc_url(),
        explorer_url=get_explorer_url(),
        database_url=get_database_url(),
        rpc_timeout_sec=env_float("RPC_TIMEOUT_SEC", 5.0),
        rpc_max_retries=env_int("RPC_MAX_RETRIES", 3),
        multi_send_interval_sec=env_float("MULTI_SEND_INTERVAL_SEC", 0.3),
        auto_first_cycle_delay_sec=env_float("AUTO_FIRST_CYCLE_DELAY_SEC", 1.0),
        auto_cohort_cap=env_int("AUTO_COHORT_CAP", 50),
        auto_fee_factor=env_decimal("AUTO_FEE_FACTOR", Decimal("0.95")),
        auto_return_delay_sec=env_float("AUTO_RETURN_DELAY_SEC", 60.0),
        auto_return_interval_sec=env_float("AUTO_RETURN_INTERVAL_SEC", 2.0),
        auto_cooldown_sec=env_float("AUTO_COOLDOWN_SEC", 300.0),
        auto_retry_cooldown_sec=env_float("AUTO_RETRY_COOLDOWN_SEC", 600.0),
        auto_default_duration_min=env_int("AUTO_DEFAULT_DURATION_MIN", 60),
        auto_max_concurrent_cycles=env_int("AUTO_MAX_CONCURRENT_CYCLES", 10),
        session_ttl_sec=env_float("SESSION_TTL_SEC", 300.0),
        telegram_bot_token=env_str("TELEGRAM_BOT_TOKEN") or None,
        api_host=env_str("API_HOST", "0.0.0.0"),
        api_port=env_int("PORT", env_int("API_PORT", 3000)),
    )


def get_settings() -> Settings:
    """
    Return the current application settings (loaded once per process).

    Returns:
        Settings with rpc_url, explorer_url, database_url, pacing and
        auto-cycle timing, session TTL, bot token, api_host, api_port.
    """
    global _settings
    if _settings is None:
        _settings = load_settings_from_env()
    return _settings


def reset_settings_for_test() -> None:
    """Drop the cached settings so the next get_settings() re-reads env."""
    global _settings
    _settings = None
