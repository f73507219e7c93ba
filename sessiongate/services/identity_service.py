# sessiongate/services/identity_service.py
"""
Identity exchange for SessionGate.

The federated login protocol itself lives outside this service. SessionGate
only needs two things from it:

- a URL to send the browser to when a login starts, and
- a verified identity (plus the return destination) when the provider
  calls back.

Whatever goes wrong inside the exchange, the caller treats the user as
unauthenticated.
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional
from urllib.parse import urlencode

from fastapi import Request

from sessiongate.core.exceptions import identity_error
from sessiongate.core.service_base import BaseService, ServiceConfig
from sessiongate.models.session_record import SessionIdentity

logger = logging.getLogger(__name__)


def safe_return_to(value: Optional[str], default: str = "/session") -> str:
    """
    Accept only local absolute paths as post-login destinations.

    "//host/..." and backslash variants are protocol-relative redirects in
    browsers and are rejected like any absolute URL.
    """
    if not value or not isinstance(value, str):
        return default
    if not value.startswith("/") or value.startswith("//") or "\\" in value:
        return default
    if any(ord(ch) < 0x20 for ch in value):
        return default
    return value


@dataclass
class IdentityAssertion:
    """Outcome of a successful identity exchange"""
    identity: SessionIdentity
    return_to: Optional[str] = None


@dataclass
class IdentityExchangeConfig(ServiceConfig):
    """Configuration shared by identity exchanges"""
    provider: str = "unconfigured"
    callback_path: str = "/api/auth/callback"
    return_to_param: str = "returnTo"


class IdentityExchange(BaseService[IdentityExchangeConfig]):
    """Contract the gateway requires of an identity provider integration"""

    def __init__(self, config: Optional[IdentityExchangeConfig] = None):
        super().__init__(config or IdentityExchangeConfig(), logger)

    async def _initialize_client(self) -> Any:
        return None

    async def build_login_url(self, return_to: str, origin: str) -> str:
        """URL that starts the provider's login flow"""
        raise NotImplementedError

    async def authenticate(self, request: Request) -> IdentityAssertion:
        """
        Verify the provider's callback and return the asserted identity.

        Raises:
            UpstreamIdentityError: if the assertion cannot be verified
        """
        raise NotImplementedError

    async def _return_to_from(self, request: Request) -> Optional[str]:
        param = self.config.return_to_param
        value = request.query_params.get(param)
        if value is None and request.method == "POST":
            form = await request.form()
            value = form.get(param)
        return value if isinstance(value, str) else None

    async def health_check(self) -> Dict[str, Any]:
        return {
            "healthy": self.is_initialized,
            "status": "ready" if self.is_initialized else "not_initialized",
            "details": {"provider": self.config.provider},
        }


class UnconfiguredIdentityExchange(IdentityExchange):
    """Default exchange: every login attempt fails until a provider is configured"""

    async def build_login_url(self, return_to: str, origin: str) -> str:
        raise identity_error(
            "No identity provider is configured",
            provider=self.config.provider,
            operation="login",
        )

    async def authenticate(self, request: Request) -> IdentityAssertion:
        raise identity_error(
            "No identity provider is configured",
            provider=self.config.provider,
            operation="authenticate",
        )

    async def health_check(self) -> Dict[str, Any]:
        return {
            "healthy": False,
            "status": "unconfigured",
            "details": {"provider": self.config.provider},
        }


class DevelopmentIdentityExchange(IdentityExchange):
    """
    Local development stand-in for the identity provider.

    Login goes straight to the callback, which asserts a fixed identity.
    Only built when ENV=development and DEV_LOGIN_ENABLED are both set.
    """

    def __init__(self, identity: SessionIdentity, config: Optional[IdentityExchangeConfig] = None):
        super().__init__(config or IdentityExchangeConfig(provider="development"))
        self.identity = identity

    async def build_login_url(self, return_to: str, origin: str) -> str:
        await self.ensure_initialized()
        query = urlencode({self.config.return_to_param: return_to})
        return f"{origin.rstrip('/')}{self.config.callback_path}?{query}"

    async def authenticate(self, request: Request) -> IdentityAssertion:
        await self.ensure_initialized()
        logger.warning(f"⚠️ Development login asserting identity {self.identity.uid}")
        return IdentityAssertion(identity=self.identity, return_to=await self._return_to_from(request))


def build_identity_exchange(app_settings) -> IdentityExchange:
    """Pick the exchange for the configured environment"""
    config = IdentityExchangeConfig(return_to_param=app_settings.RETURN_TO_PARAM)
    if app_settings.DEV_LOGIN_ENABLED and app_settings.is_development:
        config.provider = "development"
        identity = SessionIdentity(
            uid=app_settings.DEV_LOGIN_UID,
            name=app_settings.DEV_LOGIN_NAME,
            email=app_settings.DEV_LOGIN_EMAIL,
            affiliations=list(app_settings.DEV_LOGIN_AFFILIATIONS),
        )
        return DevelopmentIdentityExchange(identity, config)
    return UnconfiguredIdentityExchange(config)
