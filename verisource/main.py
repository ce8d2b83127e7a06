"""Verisource - FastAPI Application Entry Point."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import __version__
from .api.v1.endpoints.chat import router as chat_router
from .api.v1.endpoints.citations import router as citations_router
from .api.v1.endpoints.sources import router as sources_router
from .core.config import settings
from .core.logging import setup_logging

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    setup_logging(settings.LOG_LEVEL, settings.LOG_FORMAT)
    logger.info(
        "service_starting",
        port=settings.API_PORT,
        search_configured=bool(settings.BRAVE_SEARCH_API_KEY),
        llm_configured=bool(settings.OPENAI_API_KEY),
        answer_model=settings.ANSWER_LLM_MODEL,
        log_level=settings.LOG_LEVEL,
    )

    yield

    logger.info("service_stopping")


app = FastAPI(
    title="Verisource API",
    description="Verified web sources and citation validation for grounded answers",
    version=__version__,
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    openapi_url="/api/openapi.json",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/api/v1/health", tags=["Health"])
async def health_check() -> JSONResponse:
    """Health check endpoint.

    Returns:
        JSONResponse: Service health status and backend configuration
    """
    return JSONResponse(
        content={
            "status": "healthy",
            "service": "verisource",
            "version": __version__,
            "environment": "development" if settings.DEBUG else "production",
            "search_configured": bool(settings.BRAVE_SEARCH_API_KEY),
            "llm_configured": bool(settings.OPENAI_API_KEY),
        }
    )


@app.get("/", tags=["Root"])
async def root() -> JSONResponse:
    """Root endpoint with service information."""
    return JSONResponse(
        content={
            "service": "Verisource API",
            "version": __version__,
            "docs": "/api/docs",
            "health": "/api/v1/health",
            "status": "ready",
        }
    )


app.include_router(sources_router, prefix="/api")
app.include_router(citations_router, prefix="/api")
app.include_router(chat_router, prefix="/api")
