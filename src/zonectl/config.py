"""Environment-driven configuration loader."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv


@dataclass(frozen=True)
class AppConfig:
    """Application-wide configuration values."""

    config_path: Path
    creds_path: Path
    log_level: str
    concurrency: int
    provider_timeout: float
    report_max: int
    socks_proxy: str
    full_report: bool


def _parse_bool(value: str | None, default: bool = False) -> bool:
    """Return a boolean parsed from a string."""
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "y", "on"}


def _parse_positive_int(name: str, default: str) -> int:
    raw = os.getenv(name, default)
    try:
        value = int(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got {raw!r}.") from exc
    if value < 0:
        raise ValueError(f"{name} must not be negative.")
    return value


def install_socks_proxy(url: str) -> None:
    """Route outbound driver traffic through a SOCKS5 proxy."""
    if not url:
        return
    for name in ("ALL_PROXY", "HTTPS_PROXY", "HTTP_PROXY"):
        os.environ[name] = url


def load_config() -> AppConfig:
    """Load configuration values from the environment (and .env)."""
    load_dotenv()
    try:
        provider_timeout = float(os.getenv("ZONECTL_PROVIDER_TIMEOUT", "300"))
    except ValueError as exc:
        raise ValueError("ZONECTL_PROVIDER_TIMEOUT must be a number of seconds.") from exc

    return AppConfig(
        config_path=Path(os.getenv("ZONECTL_CONFIG", "dnsconfig.json")),
        creds_path=Path(os.getenv("ZONECTL_CREDS", "creds.json")),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        concurrency=_parse_positive_int("ZONECTL_CONCURRENCY", "999"),
        provider_timeout=provider_timeout,
        report_max=_parse_positive_int("ZONECTL_REPORT_MAX", "5"),
        socks_proxy=os.getenv("ZONECTL_SOCKS_PROXY", ""),
        full_report=_parse_bool(os.getenv("ZONECTL_FULL")),
    )
