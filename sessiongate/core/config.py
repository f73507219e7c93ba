# sessiongate/core/config.py
import logging
from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Basic application settings"""
    APP_NAME: str = "SessionGate"
    DEBUG: bool = False
    ENV: str = "production"

    # Session carrier cookie
    SESSION_COOKIE_NAME: str = "weblogin-auth-session"
    SESSION_COOKIE_SECURE: bool = True
    SESSION_COOKIE_HTTPONLY: bool = True
    SESSION_COOKIE_SAMESITE: str = "lax"
    SESSION_COOKIE_PATH: str = "/"
    SESSION_TTL_SECONDS: int = 0  # 0 = until the browser discards the cookie

    # Sealing secret sources
    SESSION_SECRET_NAME: str = "WEBLOGIN_AUTH_SESSION_SECRET"
    RUNTIME_SECRETS_DIR: str = "/run/secrets"
    SESSION_SECRET_MIN_LENGTH: int = 32

    # Route guard
    PROTECTED_PATHS: List[str] = Field(default_factory=lambda: ["/protected/:path*"])
    LOGIN_PATH: str = "/api/auth/login"
    RETURN_TO_PARAM: str = "returnTo"
    DEFAULT_RETURN_TO: str = "/session"

    # CSRF
    CSRF_FIELD_NAME: str = "_csrf"
    CSRF_METADATA_KEY: str = "csrfToken"

    # Rate limiting
    RATE_LIMIT_ENABLED: bool = True

    # Development identity exchange
    DEV_LOGIN_ENABLED: bool = False
    DEV_LOGIN_UID: str = "devuser"
    DEV_LOGIN_NAME: str = "Development User"
    DEV_LOGIN_EMAIL: Optional[str] = "devuser@example.org"
    DEV_LOGIN_AFFILIATIONS: List[str] = Field(default_factory=lambda: ["member"])

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "extra": "ignore"
    }

    @property
    def is_development(self) -> bool:
        return self.ENV.lower() == "development"


# Settings available as a singleton
settings = Settings()


def validate_required_settings(app_settings: Settings, secret_provider=None) -> bool:
    """
    Check that the sealing secret can be resolved and satisfies the length policy.

    Only warns: the secret source may legitimately appear after startup, and
    every operation that needs it fails loudly on its own.
    """
    logger = logging.getLogger(__name__)
    problems = []

    if secret_provider is not None:
        secret = secret_provider.probe()
        if secret is None:
            problems.append(f"{app_settings.SESSION_SECRET_NAME} is not set in any secret source")
        elif len(secret) < app_settings.SESSION_SECRET_MIN_LENGTH:
            problems.append(
                f"{app_settings.SESSION_SECRET_NAME} is shorter than "
                f"{app_settings.SESSION_SECRET_MIN_LENGTH} characters"
            )

    if app_settings.DEV_LOGIN_ENABLED and not app_settings.is_development:
        problems.append("DEV_LOGIN_ENABLED is set outside of ENV=development and will be ignored")

    if not app_settings.SESSION_COOKIE_SECURE:
        problems.append("SESSION_COOKIE_SECURE is disabled; session cookies may travel over plain HTTP")

    for problem in problems:
        logger.warning(f"⚠️ Configuration: {problem}")
    return not problems
