"""
HalalChat API - FastAPI Backend
Main application entry point: content generation, referrals, credits and files.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from config import settings, validate_security_settings
from database import engine, Base
import models  # noqa: F401
from routers import (
    health,
    auth,
    generation,
    referrals,
    credits,
    files,
)
from services.errors import ServiceError

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s - %(levelname)s - %(name)s - %(message)s",
)
logger = logging.getLogger("halalchat")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown."""
    logger.info("Starting HalalChat API...")
    validate_security_settings()
    if settings.AUTO_CREATE_DB_SCHEMA:
        try:
            async with engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
            logger.info("Database schema verified.")
        except Exception as exc:
            logger.warning("Database bootstrap skipped: %s", exc)
    yield
    await engine.dispose()
    logger.info("Shutting down HalalChat API...")


app = FastAPI(
    title="HalalChat API",
    description="Policy-filtered AI content generation with credits and referrals",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


# Include routers
app.include_router(health.router, tags=["Health"])
app.include_router(auth.router, tags=["Identity"])
app.include_router(generation.router, tags=["Generation"])
app.include_router(referrals.router, tags=["Referrals"])
app.include_router(credits.router, tags=["Credits"])
app.include_router(files.router, tags=["Files"])


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "name": "HalalChat API",
        "version": "0.1.0",
        "status": "running"
    }
