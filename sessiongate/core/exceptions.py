# sessiongate/core/exceptions.py
"""
SessionGate exceptions - standardized error handling for the gateway.

The taxonomy separates fatal deployment problems (ConfigurationError) from
expected, client-driven conditions (SessionInvalid, CsrfRejected) and from
failures of the external identity provider (UpstreamIdentityError).
"""

from typing import Optional, Dict, Any


class GatewayError(Exception):
    """Base exception for all SessionGate errors"""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        """
        Initialize gateway base exception.

        Args:
            message: Human-readable error message
            details: Optional additional error details
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class ConfigurationError(GatewayError):
    """Deployment misconfiguration, e.g. the sealing secret cannot be resolved"""

    def __init__(
        self,
        message: str,
        component: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        """
        Initialize configuration error.

        Args:
            message: Error description
            component: Component with configuration issue
            details: Additional configuration context
        """
        super().__init__(message, details)
        self.component = component

        if component:
            self.details['component'] = component


class SessionInvalid(GatewayError):
    """
    A carried session token is missing, malformed, expired or fails to open.

    Raised by the codec only. Readers convert it to "no session" before it
    can reach a guard or a handler.
    """

    def __init__(
        self,
        message: str,
        reason: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message, details)
        self.reason = reason

        if reason:
            self.details['reason'] = reason


class CsrfRejected(GatewayError):
    """A submitted CSRF token was absent or did not match the session's token"""

    MISSING_SESSION = "missing_session"
    MISSING_TOKEN = "missing_token"
    MISMATCH = "mismatch"

    def __init__(
        self,
        message: str = "CSRF token validation failed! This could be a cross-site request forgery attempt.",
        reason: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        """
        Initialize CSRF rejection.

        Args:
            message: User-visible rejection message
            reason: One of MISSING_SESSION, MISSING_TOKEN, MISMATCH
            details: Additional context (never the token values)
        """
        super().__init__(message, details)
        self.reason = reason

        if reason:
            self.details['reason'] = reason


class ServiceError(GatewayError):
    """Errors in external service interactions"""

    def __init__(
        self,
        message: str,
        service_name: Optional[str] = None,
        operation: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        """
        Initialize service error.

        Args:
            message: Error description
            service_name: Name of the failing service
            operation: Operation that failed
            details: Additional service context
        """
        super().__init__(message, details)
        self.service_name = service_name
        self.operation = operation

        if service_name:
            self.details['service'] = service_name
        if operation:
            self.details['operation'] = operation


class UpstreamIdentityError(ServiceError):
    """Failures reported by the identity provider exchange"""

    def __init__(
        self,
        message: str,
        provider: Optional[str] = None,
        operation: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message, service_name="IdentityProvider", operation=operation, details=details)
        self.provider = provider

        if provider:
            self.details['provider'] = provider


# Convenience functions for creating common errors

def config_error(message: str, component: str, details: Optional[Dict[str, Any]] = None) -> ConfigurationError:
    """Create a configuration error with component context."""
    return ConfigurationError(message, component=component, details=details)


def session_invalid(message: str, reason: str) -> SessionInvalid:
    """Create a session-invalid error with a machine-readable reason."""
    return SessionInvalid(message, reason=reason)


def csrf_rejected(reason: str) -> CsrfRejected:
    """Create a CSRF rejection with the default user-visible message."""
    return CsrfRejected(reason=reason)


def identity_error(message: str, provider: Optional[str] = None, operation: Optional[str] = None) -> UpstreamIdentityError:
    """Create an identity provider error with provider context."""
    return UpstreamIdentityError(message, provider=provider, operation=operation)
