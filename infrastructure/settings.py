"""Centralized application settings.

Runtime configuration is read from the environment once and exposed through
:func:`get_settings`. A ``.env`` file in the working directory is honoured
during development.
"""

from __future__ import annotations
from tracking import t

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Mapping, Optional

from dotenv import load_dotenv

from . import constants as site_constants


def _to_bool(value: Optional[str], default: bool = False) -> bool:
    """Normalize environment strings such as "true"/"1" into booleans."""
    t('infrastructure.settings._to_bool')

    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _to_int(value: Optional[str], default: int) -> int:
    t('infrastructure.settings._to_int')
    if value is None or not value.strip():
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


@dataclass(frozen=True)
class AppSettings:
    """Immutable snapshot of high-level configuration values."""

    production_mode: bool
    base_url: str
    timezone: str
    browser_headless: bool
    max_retries: int
    latency_probe_count: int
    latency_fallback_ms: int
    clock_sync_max_age_seconds: int
    form_ready_timeout_ms: int
    navigation_timeout_ms: int
    challenge_timeout_ms: int
    write_timeout_ms: int
    recaptcha_site_key: str
    close_browser_before_submit: bool
    reservations_file: str
    runner_check_interval: int
    runner_max_retry_count: int
    runner_lead_seconds: int
    guest_name: str
    gametime_username: Optional[str]
    gametime_password: Optional[str]


def load_settings(env: Optional[Mapping[str, str]] = None) -> AppSettings:
    """Load configuration from the environment and fall back to defaults."""
    t('infrastructure.settings.load_settings')

    if env is None:
        load_dotenv(override=False)
        env = os.environ

    timeouts = site_constants.BrowserTimeouts

    return AppSettings(
        production_mode=_to_bool(env.get("PRODUCTION_MODE", "false")),
        base_url=env.get("GAMETIME_BASE_URL", site_constants.GAMETIME_BASE_URL).rstrip("/"),
        timezone=env.get("GAMETIME_TIMEZONE", site_constants.GAMETIME_TIMEZONE),
        browser_headless=_to_bool(env.get("BROWSER_HEADLESS"), default=True),
        max_retries=_to_int(env.get("BOOKING_MAX_RETRIES"), site_constants.DEFAULT_MAX_RETRIES),
        latency_probe_count=_to_int(env.get("LATENCY_PROBE_COUNT"), site_constants.LATENCY_PROBE_COUNT),
        latency_fallback_ms=_to_int(env.get("LATENCY_FALLBACK_MS"), site_constants.LATENCY_FALLBACK_MS),
        clock_sync_max_age_seconds=_to_int(
            env.get("CLOCK_SYNC_MAX_AGE_SECONDS"), site_constants.CLOCK_SYNC_MAX_AGE_SECONDS
        ),
        form_ready_timeout_ms=_to_int(env.get("FORM_READY_TIMEOUT_MS"), timeouts.FORM_READY),
        navigation_timeout_ms=_to_int(env.get("NAVIGATION_TIMEOUT_MS"), timeouts.FORM_NAVIGATION),
        challenge_timeout_ms=_to_int(env.get("CHALLENGE_TIMEOUT_MS"), timeouts.CHALLENGE_READY),
        write_timeout_ms=_to_int(env.get("WRITE_TIMEOUT_MS"), timeouts.HTTP_WRITE),
        recaptcha_site_key=env.get("RECAPTCHA_SITE_KEY", site_constants.RECAPTCHA_SITE_KEY),
        close_browser_before_submit=_to_bool(env.get("CLOSE_BROWSER_BEFORE_SUBMIT"), default=True),
        reservations_file=env.get("RESERVATIONS_FILE", "data/reservations.json"),
        runner_check_interval=_to_int(env.get("RUNNER_CHECK_INTERVAL"), 60),
        runner_max_retry_count=_to_int(env.get("RUNNER_MAX_RETRY_COUNT"), 3),
        runner_lead_seconds=_to_int(env.get("RUNNER_LEAD_SECONDS"), 90),
        guest_name=env.get("GUEST_NAME", site_constants.DEFAULT_GUEST_NAME),
        gametime_username=env.get("GAMETIME_USERNAME") or None,
        gametime_password=env.get("GAMETIME_PASSWORD") or None,
    )


@lru_cache(maxsize=1)
def get_settings() -> AppSettings:
    """Return a cached :class:`AppSettings` instance."""
    t('infrastructure.settings.get_settings')

    return load_settings()
