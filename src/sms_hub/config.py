# src/sms_hub/config.py

"""Settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object for the whole app, built once by the composition root.
- No secrets required at import time.
- Legacy variable names (API_KEY, NEXT_PUBLIC_SUPABASE_URL, ...) still work.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

ENV_PREFIX = "SMSHUB"

DEFAULT_SMS_API_URL = "https://api.sms-activate.ae/stubs/handler_api.php"
DEFAULT_CURRENCY_API_URL = "https://api.navasan.tech/latest/"


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


def _first_env(*names: str, default: str | None = None) -> str | None:
    for n in names:
        v = os.getenv(n)
        if v is not None and v.strip() != "":
            return v
    return default


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_path(name: str, default: Path) -> Path:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return Path(raw).expanduser()


@dataclass(frozen=True, slots=True)
class Settings:
    # ---- App / logging ----
    app_name: str
    environment: str
    server_port: int
    log_level: str
    log_to_file: bool
    data_dir: Path

    # ---- SMS activation vendor ----
    sms_api_key: str
    sms_api_url: str
    api_cache_enabled: bool
    api_cache_ttl: float
    http_timeout_seconds: float

    # ---- Database (Supabase) ----
    supabase_url: str
    supabase_anon_key: str
    supabase_service_role_key: str

    # ---- Pricing / currency API ----
    currency_api_url: str
    currency_api_token: str
    pricing_source: str
    pricing_manual_rate: float | None
    pricing_profit_margin: float
    pricing_rate_ttl: float

    # ---- Cache / queue tuning ----
    cache_default_ttl: float
    queue_concurrency: int
    queue_max_retries: int
    queue_retry_delay: float

    @property
    def is_production(self) -> bool:
        return self.environment.strip().lower() == "production"

    @staticmethod
    def from_env(*, load_env_file: bool = True) -> "Settings":
        if load_env_file:
            load_dotenv(override=False)

        app_name = _env(_k("APP_NAME"), "sms-hub")
        environment = _first_env(_k("ENV"), "NODE_ENV", default="development") or "development"
        server_port = _env_int(_k("PORT"), _env_int("PORT", 3000))
        log_level = _env(_k("LOG_LEVEL"), "INFO")
        log_to_file = _env_bool(_k("LOG_TO_FILE"), False)
        data_dir = _env_path(_k("DATA_DIR"), Path(".local/sms-hub"))

        sms_api_key = (_first_env(_k("API_KEY"), "API_KEY", default="") or "").strip()
        sms_api_url = (
            _first_env(_k("API_URL"), "api_url", "API_URL", default=DEFAULT_SMS_API_URL)
            or DEFAULT_SMS_API_URL
        ).strip()
        api_cache_enabled = _env_bool(_k("API_CACHE_ENABLED"), True)
        api_cache_ttl = _env_float(_k("API_CACHE_TTL"), 3600.0)
        http_timeout_seconds = _env_float(_k("HTTP_TIMEOUT_SECONDS"), 15.0)

        supabase_url = (
            _first_env(_k("SUPABASE_URL"), "NEXT_PUBLIC_SUPABASE_URL", "SUPABASE_URL", default="") or ""
        ).strip()
        supabase_anon_key = (
            _first_env(
                _k("SUPABASE_ANON_KEY"),
                "NEXT_PUBLIC_SUPABASE_ANON_KEY",
                "SUPABASE_ANON_KEY",
                default="",
            )
            or ""
        ).strip()
        supabase_service_role_key = (
            _first_env(_k("SUPABASE_SERVICE_ROLE_KEY"), "SUPABASE_SERVICE_ROLE_KEY", default="") or ""
        ).strip()

        currency_api_url = _env(_k("CURRENCY_API_URL"), DEFAULT_CURRENCY_API_URL)
        currency_api_token = (
            _first_env(_k("NAVASAN_TOKEN"), "NAVASAN_API_TOKEN", default="") or ""
        ).strip()
        pricing_source = _env(_k("PRICING_SOURCE"), "api").strip().lower()
        manual_raw = _env(_k("PRICING_MANUAL_RATE"), "").strip()
        try:
            pricing_manual_rate = float(manual_raw) if manual_raw else None
        except ValueError:
            pricing_manual_rate = None
        pricing_profit_margin = _env_float(_k("PRICING_PROFIT_MARGIN"), 10.0)
        pricing_rate_ttl = _env_float(_k("PRICING_RATE_TTL"), 3600.0)

        cache_default_ttl = _env_float(_k("CACHE_DEFAULT_TTL"), 3600.0)
        queue_concurrency = max(1, _env_int(_k("QUEUE_CONCURRENCY"), 5))
        queue_max_retries = max(1, _env_int(_k("QUEUE_MAX_RETRIES"), 3))
        queue_retry_delay = max(0.0, _env_float(_k("QUEUE_RETRY_DELAY"), 1.0))

        return Settings(
            app_name=app_name,
            environment=environment,
            server_port=server_port,
            log_level=log_level,
            log_to_file=log_to_file,
            data_dir=data_dir,
            sms_api_key=sms_api_key,
            sms_api_url=sms_api_url,
            api_cache_enabled=api_cache_enabled,
            api_cache_ttl=api_cache_ttl,
            http_timeout_seconds=http_timeout_seconds,
            supabase_url=supabase_url,
            supabase_anon_key=supabase_anon_key,
            supabase_service_role_key=supabase_service_role_key,
            currency_api_url=currency_api_url,
            currency_api_token=currency_api_token,
            pricing_source=pricing_source,
            pricing_manual_rate=pricing_manual_rate,
            pricing_profit_margin=pricing_profit_margin,
            pricing_rate_ttl=pricing_rate_ttl,
            cache_default_ttl=cache_default_ttl,
            queue_concurrency=queue_concurrency,
            queue_max_retries=queue_max_retries,
            queue_retry_delay=queue_retry_delay,
        )
