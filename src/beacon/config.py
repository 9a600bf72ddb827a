"""Runtime settings, read from the environment at startup."""

import os
from dataclasses import dataclass
from datetime import timedelta
from typing import Mapping

import pendulum


class ConfigError(ValueError):
    pass


@dataclass(frozen=True)
class Settings:
    supabase_url: str
    content_webhook_url: str
    telegram_webhook_url: str
    host: str = "0.0.0.0"
    port: int = 8080
    job_interval: timedelta = timedelta(hours=1)
    instant_check_interval: timedelta = timedelta(seconds=60)
    telegram_job_interval: timedelta = timedelta(minutes=5)
    job_refresh: timedelta = timedelta(hours=24)
    telegram_send_interval: timedelta = timedelta(hours=6)
    refresh_timezone: str = "Europe/London"
    supabase_key_var: str = "SUPABASE_SERVICE_KEY"
    shutdown_grace_seconds: float = 0.5
    http_timeout_seconds: float = 30.0


def _number(environ: Mapping[str, str], name: str, default: float) -> float:
    raw = environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = float(raw)
    except ValueError as exc:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from exc
    if value < 0:
        raise ConfigError(f"{name} must not be negative, got {raw!r}")
    return value


def _positive(environ: Mapping[str, str], name: str, default: float) -> float:
    value = _number(environ, name, default)
    if value == 0:
        raise ConfigError(f"{name} must be greater than zero")
    return value


def _required(environ: Mapping[str, str], name: str) -> str:
    value = (environ.get(name) or "").strip()
    if not value:
        raise ConfigError(f"{name} is required")
    return value


def load_settings(environ: Mapping[str, str] | None = None) -> Settings:
    environ = os.environ if environ is None else environ

    port = _number(environ, "PORT", 8080.0)
    if not port.is_integer() or not 0 < port < 65536:
        raise ConfigError(f"PORT must be a TCP port, got {environ.get('PORT')!r}")

    tz_name = environ.get("REFRESH_TIMEZONE") or "Europe/London"
    try:
        pendulum.timezone(tz_name)
    except (KeyError, ValueError) as exc:
        raise ConfigError(f"REFRESH_TIMEZONE {tz_name!r} is not a known timezone") from exc

    key_var = environ.get("SUPABASE_KEY_VAR") or "SUPABASE_SERVICE_KEY"
    _required(environ, key_var)

    return Settings(
        supabase_url=_required(environ, "SUPABASE_URL"),
        content_webhook_url=_required(environ, "CONTENT_WEBHOOK_URL"),
        telegram_webhook_url=_required(environ, "TELEGRAM_WEBHOOK_URL"),
        host=environ.get("HOST") or "0.0.0.0",
        port=int(port),
        job_interval=timedelta(seconds=_positive(environ, "JOB_INTERVAL_SECONDS", 3600)),
        instant_check_interval=timedelta(seconds=_positive(environ, "INSTANT_CHECK_INTERVAL_SECONDS", 60)),
        telegram_job_interval=timedelta(seconds=_positive(environ, "TELEGRAM_JOB_INTERVAL_SECONDS", 300)),
        job_refresh=timedelta(hours=_number(environ, "JOB_REFRESH_HOURS", 24)),
        telegram_send_interval=timedelta(hours=_number(environ, "TELEGRAM_SEND_INTERVAL_HOURS", 6)),
        refresh_timezone=tz_name,
        supabase_key_var=key_var,
        shutdown_grace_seconds=_number(environ, "SHUTDOWN_GRACE_SECONDS", 0.5),
        http_timeout_seconds=_positive(environ, "HTTP_TIMEOUT_SECONDS", 30),
    )
