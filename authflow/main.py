"""
authflow - authentication and session lifecycle service

FastAPI application factory with security hardening.
"""

import logging
import secrets
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Callable, Optional

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from starlette.middleware.base import BaseHTTPMiddleware

from authflow import __version__
from authflow.api.v1.api import api_router
from authflow.auth.codes import CodeGenerator
from authflow.auth.jwt import TokenIssuer
from authflow.auth.password import SecretHasher
from authflow.core.clock import Clock, SystemClock
from authflow.core.config import Settings
from authflow.core.database import close_db, create_engine, create_session_maker, init_db
from authflow.core.errors import AuthError, StoreUnavailable
from authflow.core.logger import configure_logging
from authflow.core.ratelimit import RateLimitMiddleware
from authflow.services.auth import AuthService
from authflow.services.mail import EmailSender, build_mailer
from authflow.services.revocation import RevocationStore
from authflow.services.users import UserStore

logger = logging.getLogger(__name__)


def build_auth_service(
    settings: Settings,
    session_factory,
    mailer: EmailSender,
    clock: Clock,
) -> AuthService:
    """Wire the auth service from its collaborators."""
    return AuthService(
        settings=settings,
        store=UserStore(session_factory),
        hasher=SecretHasher.from_settings(settings),
        tokens=TokenIssuer(settings, clock),
        codes=CodeGenerator(settings.code_length, clock),
        mailer=mailer,
        clock=clock,
        revocations=RevocationStore(session_factory, clock),
    )


# =============================================================================
# Security Middleware
# =============================================================================

class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to all responses."""

    def __init__(self, app, enable_hsts: bool = False):
        super().__init__(app)
        self.enable_hsts = enable_hsts

    async def dispatch(self, request: Request, call_next: Callable):
        response = await call_next(request)

        # Prevent clickjacking
        response.headers["X-Frame-Options"] = "DENY"

        # Prevent MIME type sniffing
        response.headers["X-Content-Type-Options"] = "nosniff"

        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"

        # Tokens must never be cached by intermediaries
        response.headers["Cache-Control"] = "no-store"

        if not request.url.path.startswith(("/docs", "/redoc")):
            response.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none'"

        # HSTS (only in production behind HTTPS)
        if self.enable_hsts:
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"

        return response


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Add unique request ID for tracing."""

    async def dispatch(self, request: Request, call_next: Callable):
        request_id = request.headers.get("X-Request-ID") or secrets.token_urlsafe(8)
        request.state.request_id = request_id

        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id

        return response


# =============================================================================
# Application factory
# =============================================================================

def create_app(
    settings: Optional[Settings] = None,
    mailer: Optional[EmailSender] = None,
    clock: Optional[Clock] = None,
) -> FastAPI:
    settings = settings or Settings()
    clock = clock or SystemClock()
    configure_logging(settings.log_level)

    engine = create_engine(settings.database_url, echo=settings.sql_debug)
    session_factory = create_session_maker(engine)
    service = build_auth_service(
        settings, session_factory, mailer or build_mailer(settings), clock
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan manager for startup/shutdown events."""
        logger.info("Starting authflow %s (%s)", __version__, settings.environment.value)
        await init_db(engine)
        logger.info("Database initialized")
        await service.revocations.purge_expired()

        yield

        logger.info("Shutting down authflow")
        await close_db(engine)

    app = FastAPI(
        title="authflow",
        version=__version__,
        description="Registration, verification, login and password reset",
        lifespan=lifespan,
        docs_url=None if settings.is_production() else "/docs",
        redoc_url=None if settings.is_production() else "/redoc",
    )
    app.state.settings = settings
    app.state.engine = engine
    app.state.auth_service = service

    # Order matters - last added runs first
    app.add_middleware(
        RateLimitMiddleware,
        max_requests=settings.rate_limit_max_requests,
        window_seconds=settings.rate_limit_window.total_seconds(),
        trusted_proxies=settings.trusted_proxy_networks,
    )
    app.add_middleware(SecurityHeadersMiddleware, enable_hsts=settings.is_production())
    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.client_url],
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID"],
    )

    @app.exception_handler(AuthError)
    async def auth_error_handler(request: Request, exc: AuthError):
        headers = {}
        if exc.status_code == status.HTTP_401_UNAUTHORIZED:
            headers["WWW-Authenticate"] = "Bearer"
        if isinstance(exc, StoreUnavailable):
            headers["Retry-After"] = "1"
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.message, "code": exc.code},
            headers=headers,
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Global exception handler to prevent information leakage."""
        request_id = getattr(request.state, "request_id", "unknown")
        logger.exception("[%s] Unhandled exception: %s", request_id, exc)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "detail": "An internal error occurred",
                "request_id": request_id,
            },
        )

    @app.get("/health", tags=["health"])
    async def health_check():
        """Health check endpoint for load balancers and monitoring."""
        db_status = "healthy"
        try:
            async with engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
        except SQLAlchemyError as e:
            db_status = f"unhealthy: {e.__class__.__name__}"

        return {
            "status": "healthy" if db_status == "healthy" else "degraded",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "version": __version__,
            "database": db_status,
        }

    app.include_router(api_router, prefix="/v1")

    return app


# =============================================================================
# Development Server
# =============================================================================

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "authflow.main:create_app",
        factory=True,
        host="0.0.0.0",
        port=Settings().port,
        reload=True,
        log_level="info",
    )
