"""
FastAPI Application for the Store-Credit Exchange service.

Exposes the exchange, admin, credit and auth endpoints.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from config import Settings, settings as default_settings

from auth import (
    LoginRequest,
    LoginResponse,
    RegisterRequest,
    verify_password,
    create_session,
    delete_session,
    extract_bearer_token,
)
from core.errors import ExchangeError
from core.middleware import RateLimitMiddleware, RequestTrackingMiddleware
from core.rate_limit import RateLimitRule, build_limiter
from core.domain import utc_now_iso
from use_cases.exchange import ExchangeServices, build_services
from use_cases.exchange.api import admin_router, credit_router, current_user_id, exchange_router, shopify_router

# Configure logging
logging.basicConfig(
    level=getattr(logging, default_settings.log_level.upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

# Reduce Azure SDK logging verbosity
logging.getLogger("azure.cosmos").setLevel(logging.WARNING)
logging.getLogger("azure.core").setLevel(logging.WARNING)
logging.getLogger("azure.identity").setLevel(logging.WARNING)
logging.getLogger("httpx").setLevel(logging.WARNING)


# =============================================================================
# ERROR HANDLERS
# =============================================================================

async def exchange_error_handler(request: Request, exc: ExchangeError) -> JSONResponse:
    """Typed domain errors -> {"error": message} with the matching status."""
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    details = [
        {"field": ".".join(str(loc) for loc in error["loc"] if loc != "body"), "message": error["msg"]}
        for error in exc.errors()
    ]
    logger.warning(f"Validation error on {request.url.path}: {details}")
    return JSONResponse(status_code=400, content={"error": "Invalid request body", "details": details})


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(f"Server error on {request.method} {request.url.path}: {exc}", exc_info=True)
    return JSONResponse(status_code=500, content={"error": "Server error occurred"})


# =============================================================================
# APPLICATION FACTORY
# =============================================================================

def create_app(
    settings: Optional[Settings] = None,
    services: Optional[ExchangeServices] = None,
) -> FastAPI:
    """
    Build the application.

    When services is given (tests, scripts) it is used as-is; otherwise the
    services are wired from settings at startup.
    """
    settings = settings or default_settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan manager - handles startup and shutdown."""
        logger.info("Starting Store-Credit Exchange service...")
        if getattr(app.state, "services", None) is None:
            app.state.services = build_services(settings)
        logger.info(f"Data backend: {settings.data_backend}, rate limit backend: {settings.rate_limit_backend}")

        yield

        logger.info("Shutting down...")
        await app.state.services.close()
        await general_limiter.close()
        await auth_limiter.close()

    app = FastAPI(
        title="Store-Credit Exchange API",
        description="Exchange products for store credit",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.services = services

    general_limiter = build_limiter(
        RateLimitRule(
            points=settings.rate_limit_general_points,
            duration_seconds=settings.rate_limit_general_duration,
            name="general",
        ),
        settings.rate_limit_backend,
        settings.rate_limit_redis_url,
    )
    auth_limiter = build_limiter(
        RateLimitRule(
            points=settings.rate_limit_auth_points,
            duration_seconds=settings.rate_limit_auth_duration,
            block_seconds=settings.rate_limit_auth_block_seconds,
            name="auth",
        ),
        settings.rate_limit_backend,
        settings.rate_limit_redis_url,
    )

    # Middleware added last runs first: tracking wraps rate limiting wraps CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "X-Auth-Token", "X-Request-Id"],
    )
    app.add_middleware(
        RateLimitMiddleware,
        general=general_limiter,
        auth=auth_limiter,
        trust_forwarded=settings.rate_limit_trust_forwarded,
    )
    app.add_middleware(RequestTrackingMiddleware)

    app.add_exception_handler(ExchangeError, exchange_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    app.include_router(exchange_router)
    app.include_router(credit_router)
    app.include_router(admin_router)
    app.include_router(shopify_router)
    register_core_routes(app)
    return app


# =============================================================================
# HEALTH AND AUTHENTICATION ENDPOINTS
# =============================================================================

def register_core_routes(app: FastAPI) -> None:

    @app.get("/api/health")
    async def health_check():
        """Health check endpoint."""
        return {"status": "ok", "timestamp": utc_now_iso()}

    @app.get("/")
    async def root():
        return {"status": "API is running"}

    @app.post("/api/auth/login")
    async def login(body: LoginRequest, request: Request):
        """
        Authenticate user with email and password.
        Returns a session token on success.
        """
        services: ExchangeServices = request.app.state.services
        email = body.email.strip().lower()
        logger.info(f"Login attempt: {email}")

        user = services.repositories.users.get_by_email(email)
        if not user or not verify_password(body.password, user.password_hash):
            logger.warning(f"Login failed: {email}")
            return LoginResponse(success=False, message="Invalid email or password")

        token = create_session(user.id)
        logger.info(f"Login success: {email} ({user.id})")
        return LoginResponse(
            success=True,
            message="Login successful",
            token=token,
            user=user.to_public_dict(),
        )

    @app.post("/api/auth/register", status_code=201)
    async def register(body: RegisterRequest, request: Request):
        """
        Create an account for an existing Shopify customer and log them in.
        The email must not be registered yet.
        """
        services: ExchangeServices = request.app.state.services
        user = await services.accounts.register(body.email, body.password, body.firstName, body.lastName)
        token = create_session(user.id)
        return LoginResponse(
            success=True,
            message="Registration successful",
            token=token,
            user=user.to_public_dict(),
        )

    @app.post("/api/auth/logout")
    async def logout(request: Request):
        """Log out the current user by invalidating their session."""
        token = extract_bearer_token(request)
        if token and delete_session(token):
            return {"success": True, "message": "Logged out successfully"}
        return {"success": True, "message": "No active session"}

    @app.get("/api/auth/profile")
    async def get_profile(request: Request):
        """Get the current logged-in user's profile, read fresh from the store."""
        services: ExchangeServices = request.app.state.services
        profile = services.access.require_user(current_user_id(request))
        return profile.to_public_dict()


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host=default_settings.app_host,
        port=default_settings.app_port,
        reload=False,
        log_level=default_settings.log_level.lower()
    )
