# sessiongate/core/service_base.py
"""
Lifecycle base for the gateway's external collaborators.

SessionGate talks to one outside party, the identity provider. Its
integration is built on BaseService so it starts lazily on first use,
reports health to /health and can be shut down with the app.
"""
from abc import ABC, abstractmethod
from typing import Optional, Dict, Any, TypeVar, Generic
import logging
from sessiongate.core.exceptions import ServiceError, ConfigurationError

ConfigType = TypeVar('ConfigType')


class ServiceConfig:
    """Marker base for collaborator configuration dataclasses"""
    pass


class BaseService(ABC, Generic[ConfigType]):
    """
    Lazily started collaborator.

    Subclasses implement _initialize_client and health_check; public
    operations call ensure_initialized before doing any work.
    """

    def __init__(
        self,
        config: Optional[ConfigType] = None,
        logger: Optional[logging.Logger] = None
    ):
        self.config = config
        self.logger = logger or logging.getLogger(self.__class__.__name__)
        self.service_name = self.__class__.__name__
        self._client = None
        self._initialized = False

    @abstractmethod
    async def _initialize_client(self) -> Any:
        """Open whatever the collaborator needs (may return None)"""

    @abstractmethod
    async def health_check(self) -> Dict[str, Any]:
        """Return {"healthy": bool, "status": str, "details": {...}}"""

    def _validate_config(self) -> None:
        """Hook for configuration checks; raise ConfigurationError on problems"""
        if self.config is None:
            raise ConfigurationError(
                f"{self.service_name} has no configuration",
                component=self.service_name,
            )

    async def initialize(self) -> None:
        """
        Start the collaborator once; later calls return immediately.

        Raises:
            ConfigurationError: invalid configuration (passed through)
            ServiceError: anything else that fails during start-up
        """
        if self._initialized:
            return

        self.logger.info(f"🔌 Starting {self.service_name}...")
        self._validate_config()
        try:
            self._client = await self._initialize_client()
        except (ConfigurationError, ServiceError):
            raise
        except Exception as e:
            self.logger.error(f"❌ {self.service_name} failed to start", exc_info=True)
            raise ServiceError(
                f"Failed to initialize {self.service_name}",
                service_name=self.service_name,
                operation="initialize",
                details={'error_type': type(e).__name__}
            ) from e

        self._initialized = True
        self.logger.info(f"✅ {self.service_name} ready")

    async def ensure_initialized(self) -> None:
        if not self._initialized:
            await self.initialize()

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    async def shutdown(self) -> None:
        """Release resources; errors are logged, never raised"""
        if not self._initialized:
            return
        try:
            await self._cleanup()
        except Exception:
            self.logger.error(f"Error while stopping {self.service_name}", exc_info=True)
        finally:
            self._client = None
            self._initialized = False

    async def _cleanup(self) -> None:
        pass

    def get_metrics(self) -> Dict[str, Any]:
        return {
            "service_name": self.service_name,
            "initialized": self._initialized,
        }
