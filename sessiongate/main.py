# sessiongate/main.py
"""
SessionGate FastAPI application.

Wires the session security layer into HTTP:
- Route guard in front of the protected page area
- Login / callback / logout around the external identity exchange
- Session inspection and metadata updates
- CSRF-protected form submission with token rotation
"""

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional
import logging

from fastapi import FastAPI, Form, HTTPException, Request, Response
from fastapi.responses import JSONResponse, PlainTextResponse, RedirectResponse
from slowapi.errors import RateLimitExceeded

from sessiongate.core.config import Settings, settings, validate_required_settings
from sessiongate.core.exceptions import ConfigurationError, CsrfRejected
from sessiongate.core.logging_config import setup_logging
from sessiongate.core.rate_limit_config import RATE_LIMITS, create_limiter, get_rate_limit_message
from sessiongate.core.security import (
    CsrfTokenManager,
    SessionAccessor,
    SessionSecretProvider,
    build_secret_provider
)
from sessiongate.middleware.route_guard import RouteGuard, RouteGuardMiddleware
from sessiongate.middleware.security_middleware import SecurityHeadersMiddleware
from sessiongate.models.session_record import SessionPatch
from sessiongate.services.identity_service import (
    IdentityExchange,
    build_identity_exchange,
    safe_return_to
)

# Setup logging
logger = setup_logging()


def get_safe_error_message(error: Exception, context: str = "") -> str:
    """Return a safe error message that doesn't expose internal details"""
    # Log the full error internally
    logger.error(f"Error in {context}: {type(error).__name__}: {str(error)}")

    if isinstance(error, HTTPException):
        return error.detail

    error_messages = {
        "ConfigurationError": "The service is not configured correctly. Please try again later.",
        "UpstreamIdentityError": "The identity provider is unavailable. Please try again later.",
        "ConnectionError": "Connection error. Please try again later.",
        "TimeoutError": "The request took too long. Please try again.",
    }

    error_type = type(error).__name__
    return error_messages.get(error_type, "An error occurred. Please try again later.")


def _form_str(value) -> Optional[str]:
    """Form fields may also be uploads; only plain strings count"""
    return value if isinstance(value, str) else None


def create_app(
    app_settings: Optional[Settings] = None,
    identity_exchange: Optional[IdentityExchange] = None,
    secret_provider: Optional[SessionSecretProvider] = None,
) -> FastAPI:
    """Build the application; nothing here touches the sealing secret"""
    app_settings = app_settings or settings
    secret_provider = secret_provider or build_secret_provider(app_settings)
    identity_exchange = identity_exchange or build_identity_exchange(app_settings)

    accessor = SessionAccessor.from_settings(app_settings, secret_provider)
    route_guard = RouteGuard(
        accessor.reader(),
        app_settings.PROTECTED_PATHS,
        login_path=app_settings.LOGIN_PATH,
        return_to_param=app_settings.RETURN_TO_PARAM,
    )
    csrf = CsrfTokenManager(
        accessor,
        metadata_key=app_settings.CSRF_METADATA_KEY,
        field_name=app_settings.CSRF_FIELD_NAME,
    )
    limiter = create_limiter(enabled=app_settings.RATE_LIMIT_ENABLED)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """FastAPI lifespan event handler for startup/shutdown"""
        logger.info("=" * 60)
        logger.info(f"🚀 {app_settings.APP_NAME} starting...")
        logger.info("=" * 60)

        # Warn but don't fail: the secret may only become available later
        if not validate_required_settings(app_settings, secret_provider):
            logger.warning("⚠️ Configuration incomplete - session operations may fail on first use")

        try:
            await identity_exchange.initialize()
        except Exception as e:
            logger.error(f"❌ Identity exchange failed to initialize: {e}")

        logger.info("📋 Configuration:")
        logger.info(f"  - Protected paths: {', '.join(app_settings.PROTECTED_PATHS)}")
        logger.info(f"  - Login entry point: {app_settings.LOGIN_PATH}")
        logger.info(f"  - Identity provider: {identity_exchange.config.provider}")
        logger.info(f"  - Rate limiting: {'enabled' if app_settings.RATE_LIMIT_ENABLED else 'disabled'}")

        yield

        logger.info(f"🛑 {app_settings.APP_NAME} shutting down...")
        await identity_exchange.shutdown()

    app = FastAPI(
        title=app_settings.APP_NAME,
        description="Session-gated access control with CSRF protection",
        version="1.0.0",
        lifespan=lifespan,
        docs_url=None,
        redoc_url=None
    )

    app.state.settings = app_settings
    app.state.secret_provider = secret_provider
    app.state.session_accessor = accessor
    app.state.route_guard = route_guard
    app.state.csrf = csrf
    app.state.identity_exchange = identity_exchange
    # Required by slowapi
    app.state.limiter = limiter

    # =========================================================================
    # ERROR HANDLERS
    # =========================================================================

    def rate_limit_handler(request: Request, exc: RateLimitExceeded):
        """Rate limit response with a helpful message"""
        response = PlainTextResponse(
            content=get_rate_limit_message("default"),
            status_code=429,
        )
        response.headers["Retry-After"] = "60"
        response.headers["X-RateLimit-Limit"] = str(getattr(exc, "detail", "N/A"))
        return response

    app.add_exception_handler(RateLimitExceeded, rate_limit_handler)

    @app.exception_handler(CsrfRejected)
    async def csrf_rejected_handler(request: Request, exc: CsrfRejected):
        # Same body for every reason: missing and mismatched tokens look alike
        return JSONResponse(status_code=403, content={"error": exc.message})

    @app.exception_handler(ConfigurationError)
    async def configuration_error_handler(request: Request, exc: ConfigurationError):
        return JSONResponse(
            status_code=500,
            content={"error": get_safe_error_message(exc, request.url.path)}
        )

    # =========================================================================
    # MIDDLEWARE (last registered runs first)
    # =========================================================================

    app.middleware("http")(RouteGuardMiddleware(route_guard))

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        """Log incoming requests, skipping health probes"""
        path = request.url.path
        if path not in ("/health", "/healthz"):
            logger.info(f"📥 Request: {request.method} {path}")
        return await call_next(request)

    app.middleware("http")(SecurityHeadersMiddleware())

    # =========================================================================
    # HEALTH
    # =========================================================================

    @app.get("/", status_code=200)
    def read_root():
        """Health check endpoint"""
        return {"status": "ok", "service": app_settings.APP_NAME}

    @app.get("/health", status_code=200)
    async def health():
        """Detailed health status"""
        return {
            "status": "healthy",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "session_secret": "resolved" if secret_provider.is_resolved else "pending",
            "identity_provider": await identity_exchange.health_check(),
        }

    @app.get("/healthz", response_class=PlainTextResponse, status_code=200)
    def healthz():
        """Plain text health check"""
        return "OK"

    # =========================================================================
    # AUTHENTICATION
    # =========================================================================

    @app.get(app_settings.LOGIN_PATH)
    @limiter.limit(RATE_LIMITS["auth_login"])
    async def login(request: Request):
        """Start the identity exchange, preserving the intended destination"""
        return_to = safe_return_to(
            request.query_params.get(app_settings.RETURN_TO_PARAM),
            app_settings.DEFAULT_RETURN_TO,
        )
        origin = f"{request.url.scheme}://{request.url.netloc}"
        try:
            login_url = await identity_exchange.build_login_url(return_to, origin)
        except Exception as e:
            return JSONResponse(
                status_code=502,
                content={"error": get_safe_error_message(e, "login")}
            )
        return RedirectResponse(url=login_url, status_code=307)

    @app.api_route("/api/auth/callback", methods=["GET", "POST"])
    @limiter.limit(RATE_LIMITS["auth_callback"])
    async def auth_callback(request: Request):
        """Complete the identity exchange and mint the session"""
        try:
            assertion = await identity_exchange.authenticate(request)
        except Exception as e:
            # Any failure of the exchange means "not authenticated"
            logger.warning(f"🚫 Identity exchange failed: {type(e).__name__}")
            return JSONResponse(status_code=401, content={"error": "Authentication failed"})

        target = safe_return_to(assertion.return_to, app_settings.DEFAULT_RETURN_TO)
        response = RedirectResponse(url=target, status_code=303)
        accessor.create_session(request, response, assertion.identity)
        return response

    @app.get("/api/auth/logout")
    async def logout(request: Request):
        """Local logout: discard the session cookie and go home"""
        response = RedirectResponse(url="/", status_code=307)
        accessor.clear_session(request, response)
        return response

    @app.get("/api/protected")
    async def protected_api(request: Request):
        """Protected API route: JSON 401 instead of a login redirect"""
        session = accessor.get_session(request)
        if session is None:
            return JSONResponse(status_code=401, content={"error": "Unauthorized"})
        return {
            "message": "This is a protected API route",
            "session": session.model_dump(mode="json"),
        }

    # =========================================================================
    # PROTECTED PAGES (behind the route guard)
    # =========================================================================

    @app.get("/protected")
    @app.get("/protected/{sub_path:path}")
    async def protected_page(request: Request, sub_path: str = ""):
        """Protected area; the guard has already required a session"""
        session = accessor.get_session(request)
        if session is None:
            return RedirectResponse(url=route_guard.login_redirect_target(request.url.path), status_code=307)
        return {
            "message": f"Welcome, {session.identity.name or session.identity.uid}!",
            "path": request.url.path,
            "user": session.identity.model_dump(mode="json"),
        }

    # =========================================================================
    # SESSION
    # =========================================================================

    @app.get("/session")
    async def read_session(request: Request):
        """Current session data (null when not authenticated)"""
        session = accessor.get_session(request)
        return {"session": session.model_dump(mode="json") if session else None}

    @app.post("/session")
    @limiter.limit(RATE_LIMITS["form_submit"])
    async def add_to_session(
        request: Request,
        key: Optional[str] = Form(None),
        value: Optional[str] = Form(None),
    ):
        """Merge one key/value pair into the session metadata"""
        if accessor.get_session(request) is None:
            return JSONResponse(status_code=401, content={"error": "Unauthorized"})
        if not key or not value:
            return JSONResponse(status_code=400, content={"error": "Both key and value are required"})
        if key == csrf.metadata_key:
            return JSONResponse(status_code=400, content={"error": f"'{key}' is reserved"})

        response = RedirectResponse(url="/session", status_code=303)
        accessor.update_session(request, response, SessionPatch(metadata={key: value}))
        return response

    # =========================================================================
    # CSRF DEMO
    # =========================================================================

    @app.get("/csrf-demo")
    async def csrf_demo(request: Request, response: Response):
        """Form state; initializes the CSRF token on first visit"""
        if accessor.get_session(request) is None:
            return JSONResponse(
                status_code=401,
                content={"error": "Authentication required", "login": app_settings.LOGIN_PATH}
            )
        token = csrf.ensure_token(request, response)
        session = accessor.get_session(request)
        return {
            "fieldName": csrf.field_name,
            "csrfToken": token,
            "lastMessage": session.metadata.get("lastMessage"),
            "lastSubmission": session.metadata.get("lastSubmission"),
        }

    @app.post("/csrf-demo/secure")
    @limiter.limit(RATE_LIMITS["form_submit"])
    async def submit_secure_form(request: Request, response: Response):
        """CSRF-protected submission: validate, then rotate with the new state"""
        form = await request.form()
        new_token = csrf.verify_and_rotate(
            request,
            response,
            _form_str(form.get(csrf.field_name)),
            changes={
                "lastMessage": _form_str(form.get("message")),
                "lastSubmission": datetime.now(timezone.utc).isoformat(),
            },
        )
        return {
            "success": True,
            "message": "Form submitted successfully! CSRF token validated and rotated.",
            "csrfToken": new_token,
        }

    @app.post("/csrf-demo/unsafe")
    @limiter.limit(RATE_LIMITS["form_submit"])
    async def submit_without_csrf(request: Request, response: Response):
        """Unprotected submission, kept to show what the CSRF check prevents"""
        if accessor.get_session(request) is None:
            return JSONResponse(status_code=401, content={"error": "Unauthorized"})
        form = await request.form()
        accessor.update_session(
            request,
            response,
            SessionPatch(metadata={
                "unsafeMessage": _form_str(form.get("message")),
                "unsafeSubmission": datetime.now(timezone.utc).isoformat(),
            }),
        )
        return {"success": True, "warning": "Accepted without CSRF validation"}

    return app


app = create_app()


if __name__ == "__main__":
    import os
    import uvicorn

    port = int(os.getenv("PORT", "8000"))
    logger.info(f"🚀 Starting {settings.APP_NAME} on port {port}...")
    uvicorn.run(app, host="0.0.0.0", port=port, log_level="info")
