"""
Canonical client IP for anonymous rate-limit keying.
Proxy-chain aware; never fails. Clients we cannot identify all share the "unknown" key.
"""
from typing import Mapping, Optional

from fastapi import Request

UNKNOWN_IP = "unknown"

# Checked in order after the platform-supplied value
_FALLBACK_HEADERS = (
    "cf-connecting-ip",
    "x-real-ip",
    "x-client-ip",
    "remote-addr",
)


def _first_forwarded(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    return value.split(",")[0].strip() or None


def resolve_client_ip(headers: Mapping[str, str], platform_ip: Optional[str] = None) -> str:
    """
    Resolve the client IP from request metadata. First non-empty wins:
    platform value, first x-forwarded-for hop, cf-connecting-ip, x-real-ip,
    x-client-ip, remote-addr, then "unknown". Always lower-cased.
    """
    lowered = {k.lower(): v for k, v in headers.items()}

    candidates = [
        platform_ip,
        _first_forwarded(lowered.get("x-forwarded-for")),
    ]
    candidates.extend(lowered.get(name) for name in _FALLBACK_HEADERS)

    for candidate in candidates:
        if candidate and candidate.strip():
            return candidate.strip().lower()
    return UNKNOWN_IP


def get_client_ip(request: Request, trusted_header: Optional[str] = None) -> str:
    """Resolve the client IP of a FastAPI request; the socket peer stands in for remote-addr."""
    headers = dict(request.headers)
    if "remote-addr" not in headers and request.client and request.client.host:
        headers["remote-addr"] = request.client.host
    platform_ip = request.headers.get(trusted_header) if trusted_header else None
    return resolve_client_ip(headers, platform_ip=platform_ip)
