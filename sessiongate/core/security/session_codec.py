"""
Session codec: seals a SessionRecord into an opaque cookie value and opens it again.

Authenticated encryption is Fernet (AES-128-CBC + HMAC-SHA256). The Fernet
key is derived from the shared secret with HKDF-SHA256, so any secret string
works and both profiles derive the same key from the same secret.

Token layout::

    sg1.<fernet token without base64 padding>

Padding is stripped so the value is a legal unquoted cookie value.
"""

import base64
import binascii

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.hkdf import HKDF
from pydantic import ValidationError

from sessiongate.core.exceptions import session_invalid
from sessiongate.models.session_record import SessionRecord

TOKEN_PREFIX = "sg1."
_KDF_INFO = b"sessiongate.session.v1"


def derive_key(secret: str) -> bytes:
    """Derive a urlsafe-base64 Fernet key from an arbitrary secret string"""
    hkdf = HKDF(
        algorithm=hashes.SHA256(),
        length=32,
        salt=None,
        info=_KDF_INFO,
    )
    return base64.urlsafe_b64encode(hkdf.derive(secret.encode("utf-8")))


class SessionCodec:
    """Seal/open sessions. Stateless apart from a small per-secret Fernet cache."""

    def __init__(self):
        self._fernets = {}

    def _fernet(self, secret: str) -> Fernet:
        if not secret:
            raise ValueError("A non-empty secret is required")
        fernet = self._fernets.get(secret)
        if fernet is None:
            fernet = Fernet(derive_key(secret))
            self._fernets = {secret: fernet}  # keep only the active secret
        return fernet

    def seal(self, record: SessionRecord, secret: str) -> str:
        """Encrypt and authenticate a record into an opaque token"""
        payload = record.model_dump_json().encode("utf-8")
        token = self._fernet(secret).encrypt(payload).decode("ascii")
        return TOKEN_PREFIX + token.rstrip("=")

    def open(self, token: str, secret: str) -> SessionRecord:
        """
        Open a sealed token.

        Raises:
            SessionInvalid: empty/foreign token, any altered byte, wrong
                secret, unreadable payload or an expired record.
        """
        if not token:
            raise session_invalid("No session token", "missing")
        if not token.startswith(TOKEN_PREFIX):
            raise session_invalid("Unknown session token format", "format")

        body = token[len(TOKEN_PREFIX):]
        body += "=" * (-len(body) % 4)
        try:
            raw = base64.urlsafe_b64decode(body.encode("ascii"))
        except (binascii.Error, UnicodeEncodeError, ValueError) as e:
            raise session_invalid("Session token is not valid base64", "format") from e
        # The decoder tolerates stray characters and unused trailing bits; only
        # the canonical encoding is accepted so every altered character fails.
        if base64.urlsafe_b64encode(raw).decode("ascii") != body:
            raise session_invalid("Session token is not canonically encoded", "format")

        try:
            payload = self._fernet(secret).decrypt(body.encode("ascii"))
        except InvalidToken as e:
            raise session_invalid("Session token failed to open", "integrity") from e

        try:
            record = SessionRecord.model_validate_json(payload)
        except ValidationError as e:
            raise session_invalid("Session payload is malformed", "payload") from e

        if record.is_expired():
            raise session_invalid("Session has expired", "expired")
        return record


# Shared by the restricted and the full profile
default_codec = SessionCodec()
