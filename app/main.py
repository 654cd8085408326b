"""
FastAPI application entry point.
Configures routes, middleware, and lifecycle events.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.config import settings
from app.database import Database, init_db
from app.logging_config import configure_logging
from app.redis import RedisClient

from app.api.webhooks.payhere import router as payhere_router
from app.api.donations import router as donations_router
from app.api.sessions import router as sessions_router
from app.api.admin.donations import router as admin_donations_router
from app.api.admin.refunds import router as admin_refunds_router


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifecycle manager."""
    # Startup
    configure_logging()
    logging.info("Starting up payments service...")

    Database.init()
    await init_db()

    try:
        RedisClient.get_client()
    except Exception as e:
        logging.warning(f"Failed to initialize Redis: {e}")

    yield

    # Shutdown
    await RedisClient.close()
    await Database.close()
    logging.info("Shutting down...")


app = FastAPI(
    title="SPARKS Payments",
    description="Donations, session payments and PayHere reconciliation",
    version="1.0.0",
    lifespan=lifespan,
    debug=settings.debug,
)


# Global Exception Handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logging.error(f"Global exception on {request.method} {request.url.path}: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"status": "error", "message": "Internal Server Error"},
    )


# CORS middleware
origins = list(settings.cors_origins)
if settings.is_development:
    origins.append("*")

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "app": settings.app_name,
        "env": settings.app_env,
    }


# Register webhook routes
app.include_router(
    payhere_router,
    prefix="/webhooks",
    tags=["webhooks"],
)

# Register public routes
app.include_router(
    donations_router,
    prefix="/donations",
    tags=["donations"],
)
app.include_router(
    sessions_router,
    prefix="/sessions",
    tags=["sessions"],
)

# Register admin routes
app.include_router(
    admin_donations_router,
    prefix="/admin",
    tags=["admin"],
)
app.include_router(
    admin_refunds_router,
    prefix="/admin",
    tags=["admin"],
)
