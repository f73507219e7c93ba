"""
Lazy, process-wide acquisition of the session sealing secret.

The secret is looked up on first use, not at import or startup, because the
platform may only provide it once the first request runs. Sources are tried
in order: the platform runtime secret store, then the process environment.
There is no default secret.
"""

import logging
import os
import threading
from pathlib import Path
from typing import List, Optional

from sessiongate.core.exceptions import config_error

logger = logging.getLogger(__name__)


class SecretSource:
    """A place a named secret may be found"""

    source_name = "unknown"

    def lookup(self, name: str) -> Optional[str]:
        raise NotImplementedError


class RuntimeSecretStore(SecretSource):
    """
    Platform-provided secrets mounted as files, one file per secret name
    (Docker/Kubernetes style ``/run/secrets/<name>``).
    """

    source_name = "runtime-secret-store"

    def __init__(self, directory: str = "/run/secrets"):
        self.directory = Path(directory)

    def lookup(self, name: str) -> Optional[str]:
        path = self.directory / name
        try:
            value = path.read_text(encoding="utf-8").strip()
        except FileNotFoundError:
            return None
        except OSError as e:
            logger.warning(f"Runtime secret store could not read {name}: {type(e).__name__}")
            return None
        return value or None


class EnvironmentSecretSource(SecretSource):
    """Plain process environment variables"""

    source_name = "environment"

    def lookup(self, name: str) -> Optional[str]:
        return os.environ.get(name) or None


class SessionSecretProvider:
    """
    Resolves the sealing secret once and caches it for the process lifetime.

    The first successful lookup is published under a lock (double-checked),
    so concurrent first requests acquire it only once and later reads take
    no lock. Failures are not cached; each caller that needs the secret gets
    a ConfigurationError until the deployment is fixed.
    """

    def __init__(self, name: str, sources: Optional[List[SecretSource]] = None):
        self.name = name
        self.sources = sources if sources is not None else [
            RuntimeSecretStore(),
            EnvironmentSecretSource(),
        ]
        self._secret: Optional[str] = None
        self._source_name: Optional[str] = None
        self._lock = threading.Lock()

    def _lookup(self):
        for source in self.sources:
            value = source.lookup(self.name)
            if value:
                return value, source.source_name
        return None, None

    def get_secret(self) -> str:
        """
        Return the cached secret, acquiring it on first use.

        Raises:
            ConfigurationError: if no source provides the secret
        """
        secret = self._secret
        if secret is not None:
            return secret

        with self._lock:
            if self._secret is None:
                value, source_name = self._lookup()
                if value is None:
                    logger.error(f"❌ Session secret {self.name} not found in any secret source")
                    raise config_error(
                        f"Session secret {self.name} is not configured",
                        "session_secret",
                        details={"sources": [s.source_name for s in self.sources]},
                    )
                self._secret = value
                self._source_name = source_name
                logger.info(f"🔐 Session secret acquired from {source_name}")
            return self._secret

    def probe(self) -> Optional[str]:
        """Look the secret up without caching it (startup diagnostics only)"""
        if self._secret is not None:
            return self._secret
        value, _ = self._lookup()
        return value

    @property
    def is_resolved(self) -> bool:
        return self._secret is not None

    @property
    def source_name(self) -> Optional[str]:
        return self._source_name

    def reset(self) -> None:
        """Forget the cached secret (used by tests and secret rotation)"""
        with self._lock:
            self._secret = None
            self._source_name = None


def build_secret_provider(app_settings) -> SessionSecretProvider:
    """Create the provider for the configured secret name and runtime store"""
    return SessionSecretProvider(
        app_settings.SESSION_SECRET_NAME,
        sources=[
            RuntimeSecretStore(app_settings.RUNTIME_SECRETS_DIR),
            EnvironmentSecretSource(),
        ],
    )
