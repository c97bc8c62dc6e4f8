"""Main FastAPI application for Warden"""

import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
import structlog
from warden.config import settings
from warden.database.database import engine, Base
from warden.errors import AuthError
from warden.api.routes import (
    auth,
    social,
    two_factor,
    sessions,
    passkeys,
    organizations,
    invitations,
)
from warden.middleware.rate_limiting import init_redis
from warden.services.oauth import register_default_providers
from warden.services.passkey import PasskeyVerifierFactory, register_default_verifiers


def configure_logging():
    """Key/value console logs in development, JSON lines elsewhere"""
    renderer = (
        structlog.dev.ConsoleRenderer()
        if settings.APP_ENV == "development"
        else structlog.processors.JSONRenderer()
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(settings.LOG_LEVEL.upper())
        ),
        cache_logger_on_first_use=True,
    )


configure_logging()
logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler"""
    # Startup
    logger.info("Warden service starting up")
    # Initialize Redis for rate limiting
    init_redis()
    # Create database tables
    Base.metadata.create_all(bind=engine)
    register_default_providers()
    register_default_verifiers()
    # Fails on a PASSKEY_VERIFIER that is unknown or unavailable in this environment
    PasskeyVerifierFactory.create()
    logger.info("Sign-in providers registered", passkey_verifier=settings.PASSKEY_VERIFIER)

    yield

    # Shutdown
    logger.info("Warden service shutting down")


app = FastAPI(
    title="Warden API",
    description="Authentication, session and organization access service",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(AuthError)
async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    """Render domain errors as {"error": {"code", "message"}}"""
    if exc.status_code >= 500:
        logger.warning("request_failed", path=request.url.path, code=exc.code)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": {"code": f"http_{exc.status_code}", "message": str(exc.detail)}},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """422 with the field errors; submitted values are not echoed back"""
    errors = [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg"), "type": err.get("type")}
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=422,
        content={
            "error": {
                "code": "validation_error",
                "message": "Request validation failed",
                "details": errors,
            }
        },
    )


# Include routers
app.include_router(auth.router, prefix="/api/v1/auth", tags=["auth"])
app.include_router(social.router, prefix="/api/v1/auth/social", tags=["social"])
app.include_router(two_factor.router, prefix="/api/v1/two-factor", tags=["two-factor"])
app.include_router(sessions.router, prefix="/api/v1/sessions", tags=["sessions"])
app.include_router(passkeys.router, prefix="/api/v1/passkeys", tags=["passkeys"])
app.include_router(organizations.router, prefix="/api/v1/organizations", tags=["organizations"])
app.include_router(invitations.router, prefix="/api/v1/invitations", tags=["invitations"])


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {"status": "healthy", "service": "warden"}
