"""
Rate limiting configuration for SessionGate
"""

from fastapi import Request
from slowapi import Limiter
from slowapi.util import get_remote_address


def get_real_ip(request: Request) -> str:
    """
    Get the real IP address, considering proxy headers.
    Important for deployments behind load balancers.
    """
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        # X-Forwarded-For can contain multiple IPs, take the first
        return forwarded_for.split(",")[0].strip()

    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip

    return get_remote_address(request)


# Rate limits per endpoint group
RATE_LIMITS = {
    "auth_login": "20/minute",      # Login redirects
    "auth_callback": "20/minute",   # Identity provider callbacks
    "form_submit": "60/minute",     # Session and CSRF-protected form posts
}

RATE_LIMIT_MESSAGES = {
    "default": "Too many requests. Please wait a moment and try again.",
    "auth_login": "Too many login attempts. Please wait a minute.",
    "form_submit": "Too many submissions. Please slow down.",
}


def get_rate_limit_message(endpoint: str) -> str:
    """Custom error message for a rate limited endpoint"""
    return RATE_LIMIT_MESSAGES.get(endpoint, RATE_LIMIT_MESSAGES["default"])


def create_limiter(enabled: bool = True) -> Limiter:
    """Limiter keyed on the client's real IP"""
    return Limiter(key_func=get_real_ip, enabled=enabled)
