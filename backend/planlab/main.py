"""
PlanLab FastAPI Application Entry Point.

Run with: uvicorn planlab.main:app --reload
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from planlab.config import get_settings
from planlab.api.handlers import register_exception_handlers
from planlab.db.session import engine
from planlab.api.routes import (
    brainstorm,
    chats,
    cohorts,
    hours,
    me,
    onboarding,
    stage_state,
    students,
)

settings = get_settings()

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager for startup/shutdown."""
    # Startup
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logger.info("Starting %s (%s)", settings.app_name, settings.environment)
    yield
    # Shutdown
    await engine.dispose()


app = FastAPI(
    title=settings.app_name,
    description="Guided productivity case exercise API",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Error envelopes
register_exception_handlers(app)

# Include routers
app.include_router(me.router)
app.include_router(onboarding.router)
app.include_router(cohorts.router)
app.include_router(students.router)
app.include_router(chats.router)
app.include_router(stage_state.router)
app.include_router(brainstorm.router)
app.include_router(hours.router)


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint."""
    return {"status": "healthy"}
