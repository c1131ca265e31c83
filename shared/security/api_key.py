"""
Shared secret for service-to-service calls (payment intents and gateway
confirmations are posted by trusted backends, never by browsers).

A missing INTERNAL_API_KEY does not crash startup; it falls back to an
insecure default and warns so misconfiguration is visible.
"""
import os
import secrets
import warnings

INTERNAL_API_KEY: str = os.getenv("INTERNAL_API_KEY", "")

if not INTERNAL_API_KEY:
    warnings.warn(
        "INTERNAL_API_KEY is not set. Using an insecure default. "
        "Set this env var in production!",
        stacklevel=2,
    )
    INTERNAL_API_KEY = "insecure-default-change-me"


def verify_api_key(provided_key: str) -> bool:
    """Constant-time comparison against the configured key."""
    if not provided_key:
        return False
    return secrets.compare_digest(str(provided_key), str(INTERNAL_API_KEY))
