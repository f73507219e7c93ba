"""
Session access over the sealed session cookie.

Two capability profiles share one codec and one secret provider:

- SessionReader: restricted profile. Opens the carried token to answer
  "is this request authenticated" and to read identity. Used by the route
  guard.
- SessionAccessor: full profile. Adds sealing (create/update) and clearing.
  Used by application handlers and the identity callback.

Open failures of any kind are "no session". A missing secret is a
ConfigurationError and always propagates.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from starlette.requests import Request
from starlette.responses import Response

from sessiongate.core.exceptions import SessionInvalid
from sessiongate.core.security.secret_provider import SessionSecretProvider
from sessiongate.core.security.session_codec import SessionCodec, default_codec
from sessiongate.models.session_record import SessionIdentity, SessionPatch, SessionRecord

logger = logging.getLogger(__name__)

# request.state attribute holding the record written earlier in this request
_STATE_ATTR = "sessiongate_record"
_CLEARED = object()


class SessionReader:
    """Restricted profile: open-only access to the carried session"""

    def __init__(
        self,
        secret_provider: SessionSecretProvider,
        cookie_name: str,
        codec: Optional[SessionCodec] = None,
    ):
        self.secret_provider = secret_provider
        self.cookie_name = cookie_name
        self.codec = codec or default_codec

    def open_token(self, token: Optional[str]) -> Optional[SessionRecord]:
        """Open a raw token; None for anything that does not open cleanly"""
        if not token:
            return None
        secret = self.secret_provider.get_secret()
        try:
            return self.codec.open(token, secret)
        except SessionInvalid as e:
            logger.debug(f"Session cookie rejected: {e.reason}")
            return None

    def read(self, request: Request) -> Optional[SessionRecord]:
        """Return whatever record the request carries, authenticated or not"""
        return self.open_token(request.cookies.get(self.cookie_name))

    def is_authenticated(self, request: Request) -> bool:
        record = self.read(request)
        return record is not None and record.is_authenticated

    def get_user(self, request: Request) -> Optional[SessionIdentity]:
        record = self.read(request)
        return record.identity if record is not None else None

    def get_user_id(self, request: Request) -> Optional[str]:
        user = self.get_user(request)
        return user.uid if user is not None else None


class SessionAccessor(SessionReader):
    """
    Full profile: read, mint, update and clear sessions.

    Writes go to the given response as a freshly sealed cookie and are
    remembered on request.state so later reads in the same request see them.
    """

    def __init__(
        self,
        secret_provider: SessionSecretProvider,
        cookie_name: str,
        codec: Optional[SessionCodec] = None,
        secure: bool = True,
        httponly: bool = True,
        samesite: str = "lax",
        path: str = "/",
        ttl_seconds: int = 0,
    ):
        super().__init__(secret_provider, cookie_name, codec)
        self.secure = secure
        self.httponly = httponly
        self.samesite = samesite
        self.path = path
        self.ttl_seconds = ttl_seconds

    @classmethod
    def from_settings(cls, app_settings, secret_provider: SessionSecretProvider) -> "SessionAccessor":
        return cls(
            secret_provider,
            cookie_name=app_settings.SESSION_COOKIE_NAME,
            secure=app_settings.SESSION_COOKIE_SECURE,
            httponly=app_settings.SESSION_COOKIE_HTTPONLY,
            samesite=app_settings.SESSION_COOKIE_SAMESITE,
            path=app_settings.SESSION_COOKIE_PATH,
            ttl_seconds=app_settings.SESSION_TTL_SECONDS,
        )

    def reader(self) -> SessionReader:
        """The restricted view over the same cookie, codec and secret"""
        return SessionReader(self.secret_provider, self.cookie_name, self.codec)

    def _current(self, request: Request) -> Optional[SessionRecord]:
        cached = getattr(request.state, _STATE_ATTR, None)
        if cached is _CLEARED:
            return None
        if cached is not None:
            return cached
        return self.read(request)

    def get_session(self, request: Request) -> Optional[SessionRecord]:
        """The authenticated session for this request, or None"""
        record = self._current(request)
        if record is None or not record.is_authenticated:
            return None
        return record

    def create_session(
        self,
        request: Request,
        response: Response,
        identity: SessionIdentity,
    ) -> SessionRecord:
        """Mint a session for an identity returned by the identity exchange"""
        expiry = None
        if self.ttl_seconds > 0:
            expiry = datetime.now(timezone.utc) + timedelta(seconds=self.ttl_seconds)
        record = SessionRecord(identity=identity, expiry=expiry)
        self._write(request, response, record)
        logger.info(f"🔐 Session created for {identity.uid}")
        return record

    def update_session(
        self,
        request: Request,
        response: Response,
        patch: SessionPatch,
    ) -> Optional[SessionRecord]:
        """
        Merge patch.metadata into the current session and reseal it.

        Keys not named in the patch are preserved. Without an authenticated
        session this is a no-op returning None.
        """
        current = self.get_session(request)
        if current is None:
            logger.warning("update_session called without an authenticated session - ignored")
            return None
        record = current.merged(patch)
        self._write(request, response, record)
        return record

    def clear_session(self, request: Request, response: Response) -> None:
        """Tell the client to discard the session cookie"""
        response.delete_cookie(
            self.cookie_name,
            path=self.path,
            secure=self.secure,
            httponly=self.httponly,
            samesite=self.samesite,
        )
        setattr(request.state, _STATE_ATTR, _CLEARED)
        logger.info("🗑️ Session cleared")

    def _write(self, request: Request, response: Response, record: SessionRecord) -> None:
        # Seal first: a failure here leaves both the response and the cache untouched
        token = self.codec.seal(record, self.secret_provider.get_secret())
        max_age = None
        if record.expiry is not None:
            max_age = max(int((record.expiry - datetime.now(timezone.utc)).total_seconds()), 0)
        response.set_cookie(
            self.cookie_name,
            token,
            max_age=max_age,
            path=self.path,
            secure=self.secure,
            httponly=self.httponly,
            samesite=self.samesite,
        )
        setattr(request.state, _STATE_ATTR, record)
