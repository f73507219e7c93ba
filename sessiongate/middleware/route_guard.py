"""
Route guard for SessionGate.

Runs ahead of the handlers: requests to protected paths must carry an
authenticated session, otherwise they are redirected to the login entry
point with the original path as the return destination.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Iterable, List, Optional
from urllib.parse import urlencode

from fastapi import Request, Response
from fastapi.responses import RedirectResponse

from sessiongate.core.security.session_accessor import SessionReader

logger = logging.getLogger(__name__)

_WILDCARD_SUFFIXES = ("/:path*", "/*")


@dataclass(frozen=True)
class PathPattern:
    """
    A protected-area pattern.

    "/protected/:path*" and "/protected/*" match "/protected" itself and any
    sub-path below it. Anything else matches one exact path.
    """
    raw: str
    base: str
    wildcard: bool

    @classmethod
    def parse(cls, raw: str) -> "PathPattern":
        for suffix in _WILDCARD_SUFFIXES:
            if raw.endswith(suffix):
                base = raw[:-len(suffix)] or "/"
                return cls(raw=raw, base=base, wildcard=True)
        return cls(raw=raw, base=raw, wildcard=False)

    def matches(self, path: str) -> bool:
        if path == self.base:
            return True
        if not self.wildcard:
            return False
        prefix = self.base if self.base.endswith("/") else self.base + "/"
        return path.startswith(prefix)


def compile_patterns(patterns: Iterable[str]) -> List[PathPattern]:
    return [PathPattern.parse(p) for p in patterns]


class GuardAction(str, Enum):
    CONTINUE = "continue"
    REDIRECT = "redirect"


@dataclass(frozen=True)
class GuardDecision:
    action: GuardAction
    target: Optional[str] = None

    @classmethod
    def proceed(cls) -> "GuardDecision":
        return cls(GuardAction.CONTINUE)

    @classmethod
    def redirect(cls, target: str) -> "GuardDecision":
        return cls(GuardAction.REDIRECT, target)


class RouteGuard:
    """
    Per-request authentication decision.

    Decisions are never cached: the cookie can change between requests.
    Any error while checking the session resolves to the login redirect.
    """

    def __init__(
        self,
        reader: SessionReader,
        patterns: Iterable[str],
        login_path: str = "/api/auth/login",
        return_to_param: str = "returnTo",
    ):
        self.reader = reader
        self.patterns = compile_patterns(patterns)
        self.login_path = login_path
        self.return_to_param = return_to_param

    def is_protected(self, path: str) -> bool:
        return any(pattern.matches(path) for pattern in self.patterns)

    def login_redirect_target(self, path: str) -> str:
        return f"{self.login_path}?{urlencode({self.return_to_param: path})}"

    def guard(self, request: Request) -> GuardDecision:
        path = request.url.path
        if not self.is_protected(path):
            return GuardDecision.proceed()

        try:
            authenticated = self.reader.is_authenticated(request)
        except Exception as e:
            logger.error(f"❌ Session check failed for {path}, requiring login: {type(e).__name__}: {e}")
            authenticated = False

        if authenticated:
            return GuardDecision.proceed()

        logger.info(f"🔒 Unauthenticated request to {path} - redirecting to login")
        return GuardDecision.redirect(self.login_redirect_target(path))


class RouteGuardMiddleware:
    """HTTP middleware applying RouteGuard decisions"""

    def __init__(self, route_guard: RouteGuard):
        self.route_guard = route_guard

    async def __call__(self, request: Request, call_next: Callable) -> Response:
        decision = self.route_guard.guard(request)
        if decision.action is GuardAction.REDIRECT:
            return RedirectResponse(url=decision.target, status_code=307)
        return await call_next(request)
