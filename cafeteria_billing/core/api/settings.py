"""Centralized server settings for the cafeteria billing API.

Reads CAFETERIA_* environment variables with sensible defaults. Never
exposes the dispatch endpoint in repr or serialization.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any, Dict, Optional

from cafeteria_billing.core.billing.periods import DEFAULT_TIMEZONE


def _bool_env(key: str, default: bool) -> bool:
    """Parse a 0/1 env var to bool."""
    val = os.environ.get(key)
    if val is None:
        return default
    return val.strip() in ("1", "true", "yes", "True", "TRUE")


def _int_env(key: str, default: int) -> int:
    """Parse an int env var with fallback."""
    val = os.environ.get(key)
    if val is None:
        return default
    try:
        return int(val)
    except ValueError:
        return default


def _float_env(key: str, default: float) -> float:
    val = os.environ.get(key)
    if val is None:
        return default
    try:
        return float(val)
    except ValueError:
        return default


@dataclass(frozen=True)
class Settings:
    """Immutable server configuration. Safe to log."""

    # ── Core ───────────────────────────────────────────────────────
    env: str = "dev"
    bind: str = "127.0.0.1"
    port: int = 8080
    allow_nonlocal: bool = False
    enable_docs: bool = True

    # ── Persistence ────────────────────────────────────────────────
    data_dir: str = "/data"
    persist: bool = False
    companies_path: str = ""

    # ── Logging ────────────────────────────────────────────────────
    log_format: str = "text"

    # ── Billing ────────────────────────────────────────────────────
    timezone: str = DEFAULT_TIMEZONE
    include_anonymous: bool = False
    cache_size: int = 1024

    # ── Invoice dispatch ───────────────────────────────────────────
    dispatch_url: str = ""
    dispatch_timeout: float = 10.0

    def __repr__(self) -> str:
        return (
            f"Settings(env={self.env!r}, bind={self.bind!r}, port={self.port}, "
            f"allow_nonlocal={self.allow_nonlocal}, enable_docs={self.enable_docs}, "
            f"data_dir={self.data_dir!r}, persist={self.persist}, "
            f"timezone={self.timezone!r}, include_anonymous={self.include_anonymous}, "
            f"dispatch_url={'configured' if self.dispatch_url else 'not set'!r}, "
            f"log_format={self.log_format!r})"
        )

    def to_dict(self) -> Dict[str, Any]:
        """JSON-safe dict with the dispatch endpoint masked."""
        return {
            "env": self.env,
            "bind": self.bind,
            "port": self.port,
            "allow_nonlocal": self.allow_nonlocal,
            "enable_docs": self.enable_docs,
            "data_dir": self.data_dir,
            "persist": self.persist,
            "companies_path": self.companies_path,
            "log_format": self.log_format,
            "timezone": self.timezone,
            "include_anonymous": self.include_anonymous,
            "cache_size": self.cache_size,
            "dispatch_url": "configured" if self.dispatch_url else "not set",
            "dispatch_timeout": self.dispatch_timeout,
        }


def load_settings(**overrides: Any) -> Settings:
    """Load settings from environment with optional field overrides."""
    env = overrides.get("env", os.environ.get("CAFETERIA_ENV", "dev"))
    fields: Dict[str, Any] = dict(
        env=env,
        bind=os.environ.get("CAFETERIA_BIND", "127.0.0.1"),
        port=_int_env("CAFETERIA_PORT", 8080),
        allow_nonlocal=_bool_env("CAFETERIA_ALLOW_NONLOCAL", False),
        enable_docs=_bool_env("CAFETERIA_ENABLE_DOCS", env != "prod"),
        data_dir=os.environ.get("CAFETERIA_DATA_DIR", "/data"),
        persist=_bool_env("CAFETERIA_PERSIST", False),
        companies_path=os.environ.get("CAFETERIA_COMPANIES_PATH", ""),
        log_format=os.environ.get("CAFETERIA_LOG_FORMAT", "text"),
        timezone=os.environ.get("CAFETERIA_TIMEZONE", DEFAULT_TIMEZONE),
        include_anonymous=_bool_env("CAFETERIA_INCLUDE_ANONYMOUS", False),
        cache_size=_int_env("CAFETERIA_CACHE_SIZE", 1024),
        dispatch_url=os.environ.get("CAFETERIA_DISPATCH_URL", ""),
        dispatch_timeout=_float_env("CAFETERIA_DISPATCH_TIMEOUT", 10.0),
    )
    fields.update(overrides)
    return Settings(**fields)


def validate_host(host: str, allow_nonlocal: bool) -> None:
    """Refuse to bind to non-localhost unless explicitly allowed."""
    local_hosts = {"127.0.0.1", "localhost", "::1"}
    if host not in local_hosts and not allow_nonlocal:
        raise ValueError(
            f"Refusing to bind to non-local host '{host}'. "
            f"Pass --allow-nonlocal to override this safety check."
        )


def startup_warnings(settings: Settings) -> list:
    """Human-readable warnings about potentially surprising settings."""
    warnings = []
    if not settings.persist:
        warnings.append("Persistence is off: consumptions live in memory only.")
    if not settings.dispatch_url:
        warnings.append("No CAFETERIA_DISPATCH_URL: invoices cannot be emailed.")
    if settings.allow_nonlocal:
        warnings.append("Non-local binding enabled: ensure you have proper firewall rules.")
    return warnings
