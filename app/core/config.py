"""Admission policy configuration loaded from the environment."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache


_DEFAULT_RATE_LIMIT_REQUESTS = 5
_DEFAULT_RATE_LIMIT_WINDOW_HOURS = 24
_DEFAULT_MAX_SIGNUPS_PER_IP = 2
_DEFAULT_SIGNUP_WINDOW_HOURS = 24
_DEFAULT_REQUEST_LOG_RETENTION_DAYS = 7
_DEFAULT_LOG_CLEANUP_PROBABILITY = 0.1
_DEFAULT_MAX_UPLOAD_BYTES = 200 * 1024 * 1024
_DEFAULT_TRUSTED_IP_HEADER = "x-nf-client-connection-ip"


@dataclass(frozen=True)
class AdmissionSettings:
    rate_limit_requests: int = _DEFAULT_RATE_LIMIT_REQUESTS
    rate_limit_window_hours: int = _DEFAULT_RATE_LIMIT_WINDOW_HOURS
    max_signups_per_ip: int = _DEFAULT_MAX_SIGNUPS_PER_IP
    signup_window_hours: int = _DEFAULT_SIGNUP_WINDOW_HOURS
    block_temp_email_domains: bool = True
    request_log_retention_days: int = _DEFAULT_REQUEST_LOG_RETENTION_DAYS
    log_cleanup_probability: float = _DEFAULT_LOG_CLEANUP_PROBABILITY
    max_upload_bytes: int = _DEFAULT_MAX_UPLOAD_BYTES
    trusted_ip_header: str | None = _DEFAULT_TRUSTED_IP_HEADER
    # Per-check policy on store errors: True = allow (fail open), False = deny
    rate_limit_fail_open: bool = True
    quota_fail_open: bool = True
    signup_fail_open: bool = True


def _parse_int(value: str | None, default: int) -> int:
    if value is None or not value.strip():
        return default
    return int(value)


def _parse_float(value: str | None, default: float) -> float:
    if value is None or not value.strip():
        return default
    return float(value)


def _parse_bool(value: str | None, default: bool) -> bool:
    if value is None or not value.strip():
        return default
    return value.strip().lower() in ("true", "1", "yes")


def load_admission_settings() -> AdmissionSettings:
    """Load admission configuration from environment variables."""
    trusted_header = os.getenv("TRUSTED_IP_HEADER", _DEFAULT_TRUSTED_IP_HEADER).strip().lower()

    return AdmissionSettings(
        rate_limit_requests=_parse_int(os.getenv("RATE_LIMIT_REQUESTS"), _DEFAULT_RATE_LIMIT_REQUESTS),
        rate_limit_window_hours=_parse_int(
            os.getenv("RATE_LIMIT_WINDOW_HOURS"),
            _DEFAULT_RATE_LIMIT_WINDOW_HOURS,
        ),
        max_signups_per_ip=_parse_int(os.getenv("MAX_SIGNUPS_PER_IP"), _DEFAULT_MAX_SIGNUPS_PER_IP),
        signup_window_hours=_parse_int(os.getenv("SIGNUP_WINDOW_HOURS"), _DEFAULT_SIGNUP_WINDOW_HOURS),
        block_temp_email_domains=_parse_bool(os.getenv("BLOCK_TEMP_EMAIL_DOMAINS"), True),
        request_log_retention_days=_parse_int(
            os.getenv("REQUEST_LOG_RETENTION_DAYS"),
            _DEFAULT_REQUEST_LOG_RETENTION_DAYS,
        ),
        log_cleanup_probability=_parse_float(
            os.getenv("LOG_CLEANUP_PROBABILITY"),
            _DEFAULT_LOG_CLEANUP_PROBABILITY,
        ),
        max_upload_bytes=_parse_int(os.getenv("MAX_UPLOAD_BYTES"), _DEFAULT_MAX_UPLOAD_BYTES),
        trusted_ip_header=trusted_header or None,
        rate_limit_fail_open=_parse_bool(os.getenv("RATE_LIMIT_FAIL_OPEN"), True),
        quota_fail_open=_parse_bool(os.getenv("QUOTA_FAIL_OPEN"), True),
        signup_fail_open=_parse_bool(os.getenv("SIGNUP_FAIL_OPEN"), True),
    )


@lru_cache
def get_settings() -> AdmissionSettings:
    """FastAPI dependency; overridden in tests."""
    return load_admission_settings()
