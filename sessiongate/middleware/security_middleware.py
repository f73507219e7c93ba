"""
Security middleware for SessionGate
Adds security headers and flags slow requests
"""

from fastapi import Request, Response
import time
import logging
from typing import Callable, Dict, Optional

logger = logging.getLogger(__name__)

DEFAULT_SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Strict-Transport-Security": "max-age=31536000; includeSubDomains",
    "Permissions-Policy": "geolocation=(), microphone=(), camera=()",
}


class SecurityHeadersMiddleware:
    """Security headers on every response, including guard redirects"""

    def __init__(
        self,
        headers: Optional[Dict[str, str]] = None,
        slow_request_seconds: float = 1.0
    ):
        self.headers = dict(DEFAULT_SECURITY_HEADERS if headers is None else headers)
        self.slow_request_seconds = slow_request_seconds

    async def __call__(self, request: Request, call_next: Callable) -> Response:
        start_time = time.time()
        response = await call_next(request)
        process_time = time.time() - start_time

        for name, value in self.headers.items():
            response.headers[name] = value
        response.headers["X-Process-Time"] = str(process_time)

        # Session responses must never be cached by shared caches
        if "set-cookie" in response.headers:
            response.headers["Cache-Control"] = "no-store"

        if "server" in response.headers:
            del response.headers["server"]

        if process_time > self.slow_request_seconds:
            logger.warning(f"⏱️ Slow request: {request.url.path} took {process_time:.2f}s")

        return response
