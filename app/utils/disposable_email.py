"""
Bundled disposable/temporary email domain list.
Always consulted by the signup guard on top of the curated blocked_email_domains table,
so temp-mail providers stay blocked even when the table is empty or unreachable.
"""
import logging
import os
from typing import Optional

logger = logging.getLogger(__name__)

# Load once, on first use
_BLOCKLIST: set[str] = set()
_BLOCKLIST_PATH = os.getenv(
    "DISPOSABLE_EMAIL_BLOCKLIST_PATH",
    os.path.join(os.path.dirname(__file__), "..", "data", "disposable_email_blocklist.txt"),
)


def _load_blocklist() -> set[str]:
    global _BLOCKLIST
    if _BLOCKLIST:
        return _BLOCKLIST
    domains = set()
    if os.path.isfile(_BLOCKLIST_PATH):
        with open(_BLOCKLIST_PATH, "r", encoding="utf-8") as f:
            for line in f:
                line = line.strip().lower()
                if line and not line.startswith("#"):
                    domains.add(line)
        logger.info(
            "Disposable email blocklist loaded: %s domains from %s",
            len(domains),
            _BLOCKLIST_PATH,
        )
    else:
        logger.warning(
            "Disposable email blocklist file not found at %s; only the blocked_email_domains table applies.",
            _BLOCKLIST_PATH,
        )
    _BLOCKLIST = domains
    return _BLOCKLIST


def ensure_blocklist_loaded() -> int:
    """Load blocklist at startup so a missing file shows up in deploy logs. Returns count."""
    return len(_load_blocklist())


def extract_email_domain(email: Optional[str]) -> Optional[str]:
    """Lower-cased domain after the last "@", or None if the address is malformed."""
    if not email or "@" not in email:
        return None
    local, _, domain = email.strip().lower().rpartition("@")
    if not local or not domain or "." not in domain:
        return None
    return domain


def is_disposable_domain(domain: Optional[str]) -> bool:
    if not domain:
        return False
    return domain.lower() in _load_blocklist()
