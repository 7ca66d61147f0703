# =============================================================================
# app/main.py - FastAPI Application Entry Point
# =============================================================================
# This is the main entry point for the ViewBait API.
# It configures the FastAPI application with middleware, routers, and handlers.
#
# Usage:
#   uvicorn app.main:app --reload
# =============================================================================

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.config import settings
from app.exceptions import (
    ViewBaitException,
    viewbait_exception_handler,
    validation_exception_handler,
)
from app.routers import (
    account,
    cron,
    experiments,
    generate,
    health,
    notifications,
    subscriptions,
    tasks,
    thumbnails,
    webhooks,
    youtube,
)
from app.auth import routes as auth_routes
from lib.google_api import get_http_client, set_http_client
from lib.supabase_client import SupabaseClientError

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    - Startup: log configuration and missing optional integrations
    - Shutdown: close the shared Google HTTP client
    """
    logger.info(f"Starting ViewBait API in {settings.ENVIRONMENT} mode")
    logger.info(f"CORS origins: {settings.cors_origins_list}")
    if not settings.STRIPE_WEBHOOK_SECRET:
        logger.warning("STRIPE_WEBHOOK_SECRET not set; Stripe webhooks will be rejected")
    if not settings.GOOGLE_CLIENT_ID:
        logger.warning("GOOGLE_CLIENT_ID not set; YouTube connect is unavailable")

    yield

    logger.info("Shutting down ViewBait API")
    get_http_client().close()
    set_http_client(None)


# Create FastAPI application
app = FastAPI(
    title="ViewBait API",
    description="""
## YouTube Thumbnail Studio API

ViewBait generates YouTube thumbnails with AI and helps creators test them.

### How It Works

1. **Generate** - Describe your video; get 1-4 thumbnail variations
2. **Curate** - Like, rename and organize thumbnails in the gallery
3. **Connect YouTube** - Pull in your uploads, channel stats and analytics (Pro)
4. **Experiment** - Generate A/B/C variants for a video and track the winner

### Plans and Credits

Each plan grants monthly credits. A 1K image costs 1 credit, 2K costs 2 and
4K costs 4. Credits are only charged for images that were generated.

### Authentication

Send the Supabase access token as `Authorization: Bearer <token>`.
""",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
    openapi_tags=[
        {"name": "Auth", "description": "Verify Supabase session tokens"},
        {"name": "Generate", "description": "AI thumbnail generation"},
        {"name": "Thumbnails", "description": "Thumbnail gallery"},
        {"name": "Experiments", "description": "A/B/C thumbnail experiments"},
        {"name": "YouTube", "description": "YouTube connection and channel data"},
        {"name": "Billing", "description": "Subscriptions, tiers and Stripe webhooks"},
        {"name": "Notifications", "description": "Server-to-server notification creation"},
        {"name": "Account", "description": "Account overview"},
        {"name": "Cron", "description": "Scheduled maintenance triggers"},
        {"name": "Tasks", "description": "Track background task progress"},
        {"name": "Health", "description": "API health and readiness checks"},
    ],
)


# =============================================================================
# Middleware
# =============================================================================

# CORS middleware - the studio sends cookies, so origins are explicit
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# =============================================================================
# Exception Handlers
# =============================================================================

@app.exception_handler(ViewBaitException)
async def handle_viewbait_exception(request: Request, exc: ViewBaitException):
    """Handle custom ViewBait exceptions."""
    return await viewbait_exception_handler(request, exc)


@app.exception_handler(RequestValidationError)
async def handle_validation_error(request: Request, exc: RequestValidationError):
    """Handle request body/query validation errors."""
    return await validation_exception_handler(request, exc)


@app.exception_handler(SupabaseClientError)
async def handle_supabase_error(request: Request, exc: SupabaseClientError):
    """Database failures that escaped the service layer."""
    logger.error(f"Database error on {request.method} {request.url.path}: {exc}")
    return JSONResponse(
        status_code=500,
        content={
            "detail": "A database error occurred",
            "code": "DATABASE_ERROR",
        }
    )


@app.exception_handler(Exception)
async def handle_general_exception(request: Request, exc: Exception):
    """Handle unexpected exceptions."""
    logger.exception(f"Unexpected error on {request.method} {request.url.path}: {exc}")
    return JSONResponse(
        status_code=500,
        content={
            "detail": "An unexpected error occurred",
            "code": "INTERNAL_ERROR",
        }
    )


# =============================================================================
# Routers
# =============================================================================

# Authentication endpoints
app.include_router(
    auth_routes.router,
    prefix="/api",
    tags=["Auth"]
)

# Health check endpoints
app.include_router(
    health.router,
    prefix="/api",
    tags=["Health"]
)

# Thumbnail generation
app.include_router(
    generate.router,
    prefix="/api/generate",
    tags=["Generate"]
)

# Thumbnail gallery
app.include_router(
    thumbnails.router,
    prefix="/api/thumbnails",
    tags=["Thumbnails"]
)

# Experiments and variants
app.include_router(
    experiments.router,
    prefix="/api/experiments",
    tags=["Experiments"]
)

# YouTube connection and data
app.include_router(
    youtube.router,
    prefix="/api/youtube",
    tags=["YouTube"]
)

# Subscriptions, billing and tiers
app.include_router(
    subscriptions.router,
    prefix="/api",
    tags=["Billing"]
)

# Stripe webhooks
app.include_router(
    webhooks.router,
    prefix="/api/webhooks",
    tags=["Billing"]
)

# Internal notifications
app.include_router(
    notifications.router,
    prefix="/api/notifications",
    tags=["Notifications"]
)

# Account overview
app.include_router(
    account.router,
    prefix="/api/account",
    tags=["Account"]
)

# Scheduled job triggers
app.include_router(
    cron.router,
    prefix="/api/cron",
    tags=["Cron"]
)

# Task status endpoints
app.include_router(
    tasks.router,
    prefix="/api/tasks",
    tags=["Tasks"]
)


# =============================================================================
# Root Endpoint
# =============================================================================

@app.get("/", tags=["Root"])
async def root():
    """
    Root endpoint - returns API info.
    """
    return {
        "name": "ViewBait API",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/api/health",
    }
