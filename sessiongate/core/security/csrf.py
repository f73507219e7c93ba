"""
CSRF token lifecycle bound to the session.

The active token lives in the session metadata under a single key, so a
session has at most one valid token. A successful submission replaces it in
the same session write as the submission's own changes, which makes each
token single-use.

Concurrent submissions with the same token are not serialized: both may
validate and the last sealed cookie to reach the client wins.
"""

import hashlib
import hmac
import logging
import secrets
from typing import Any, Dict, Optional

from starlette.requests import Request
from starlette.responses import Response

from sessiongate.core.exceptions import CsrfRejected, csrf_rejected
from sessiongate.core.security.session_accessor import SessionAccessor
from sessiongate.models.session_record import SessionPatch, SessionRecord

logger = logging.getLogger(__name__)


class CsrfTokenManager:
    """Generate, validate and rotate per-session CSRF tokens"""

    def __init__(
        self,
        accessor: SessionAccessor,
        metadata_key: str = "csrfToken",
        field_name: str = "_csrf",
    ):
        self.accessor = accessor
        self.metadata_key = metadata_key
        self.field_name = field_name

    @staticmethod
    def generate() -> str:
        """A fresh unpredictable token (256 bits from the OS CSPRNG)"""
        return secrets.token_urlsafe(32)

    @staticmethod
    def validate(submitted: Optional[str], expected: Optional[str]) -> bool:
        """
        Constant-time token comparison.

        Both values are hashed to fixed-length digests before compare_digest,
        so neither the position of the first difference nor a length
        mismatch changes the amount of work done. Missing or empty values
        on either side never match.
        """
        if not isinstance(submitted, str) or not isinstance(expected, str):
            return False
        if not submitted or not expected:
            return False
        submitted_digest = hashlib.sha256(submitted.encode("utf-8")).digest()
        expected_digest = hashlib.sha256(expected.encode("utf-8")).digest()
        return hmac.compare_digest(submitted_digest, expected_digest)

    def expected_token(self, record: Optional[SessionRecord]) -> Optional[str]:
        if record is None:
            return None
        token = record.metadata.get(self.metadata_key)
        return token if isinstance(token, str) and token else None

    def ensure_token(self, request: Request, response: Response) -> Optional[str]:
        """
        Make sure an authenticated session holds a token before a form is rendered.

        Idempotent: an existing token is returned unchanged. Returns None when
        the request has no authenticated session.
        """
        session = self.accessor.get_session(request)
        if session is None:
            return None
        existing = self.expected_token(session)
        if existing:
            return existing
        token = self.generate()
        self.accessor.update_session(request, response, SessionPatch(metadata={self.metadata_key: token}))
        logger.info("🛡️ CSRF token initialized for session")
        return token

    def verify_and_rotate(
        self,
        request: Request,
        response: Response,
        submitted: Optional[str],
        changes: Optional[Dict[str, Any]] = None,
    ) -> str:
        """
        Validate a submitted token and rotate it together with the submission's changes.

        Returns:
            The new token now stored in the session.

        Raises:
            CsrfRejected: no session, no submitted token, or a mismatch. The
                session is not modified in any of these cases.
        """
        session = self.accessor.get_session(request)
        if session is None:
            logger.warning("🚫 CSRF check failed: no authenticated session")
            raise csrf_rejected(CsrfRejected.MISSING_SESSION)

        if not submitted:
            logger.warning("🚫 CSRF check failed: no token submitted")
            raise csrf_rejected(CsrfRejected.MISSING_TOKEN)

        if not self.validate(submitted, self.expected_token(session)):
            logger.warning(f"🚫 CSRF token mismatch for {session.identity.uid}")
            raise csrf_rejected(CsrfRejected.MISMATCH)

        new_token = self.generate()
        metadata = dict(changes or {})
        metadata[self.metadata_key] = new_token
        self.accessor.update_session(request, response, SessionPatch(metadata=metadata))
        logger.info("🔄 CSRF token validated and rotated")
        return new_token
