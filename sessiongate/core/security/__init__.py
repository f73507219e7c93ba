"""
Security layer for SessionGate.

Centralizes all session-related security functionality:
- Sealing/opening the client-carried session (codec)
- Lazy acquisition of the sealing secret
- Restricted and full session access profiles
- CSRF token lifecycle

Kept as a clean layer under the HTTP handlers, not intertwined with them.
"""

from .session_codec import SessionCodec, default_codec
from .secret_provider import (
    EnvironmentSecretSource,
    RuntimeSecretStore,
    SecretSource,
    SessionSecretProvider,
    build_secret_provider
)
from .session_accessor import SessionAccessor, SessionReader
from .csrf import CsrfTokenManager

__all__ = [
    'SessionCodec',
    'default_codec',
    'SecretSource',
    'RuntimeSecretStore',
    'EnvironmentSecretSource',
    'SessionSecretProvider',
    'build_secret_provider',
    'SessionReader',
    'SessionAccessor',
    'CsrfTokenManager'
]
