"""SessionGate: session-gated access control and CSRF defense for FastAPI."""

__version__ = "1.0.0"
