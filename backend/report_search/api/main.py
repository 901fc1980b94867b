"""
FastAPI main application for the research report search service.
"""

import logging
import logging.config
from concurrent.futures import ThreadPoolExecutor
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .routes import router
from ..search.search_engine import ReportSearchEngine
from ..storage.database import SqliteDocumentStore
from ..config.search_config import (
    LOG_CONFIG,
    DATABASE_PATH,
    CONCURRENCY_CONFIG,
    API_CONFIG,
    ENVIRONMENT,
    DEBUG
)
from .. import __version__

# Configure logging
logging.config.dictConfig(LOG_CONFIG)
logger = logging.getLogger('api')


def build_search_engine(db_path: str = DATABASE_PATH) -> ReportSearchEngine:
    """Search engine over the SQLite store at db_path."""
    return ReportSearchEngine(store=SqliteDocumentStore(db_path))


def create_app(search_engine: Optional[ReportSearchEngine] = None) -> FastAPI:
    """
    Build the API application.

    Args:
        search_engine: Engine to serve; built from DATABASE_PATH on startup
            when omitted

    Returns:
        Configured FastAPI application
    """

    # ========================================================================
    # Application Lifespan
    # ========================================================================

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Application lifespan manager.

        Handles startup and shutdown events.
        """
        # Startup
        logger.info("Starting Report Search API...")
        logger.info(f"Environment: {ENVIRONMENT}")
        logger.info(f"Debug mode: {DEBUG}")

        if app.state.search_engine is None:
            app.state.search_engine = build_search_engine()
            logger.info(f"Search engine using database {DATABASE_PATH}")

        # Thread pool for blocking store operations
        app.state.search_executor = ThreadPoolExecutor(
            max_workers=CONCURRENCY_CONFIG['search_thread_pool_size']
        )

        logger.info("API startup complete")

        yield

        # Shutdown
        logger.info("Shutting down Report Search API...")
        app.state.search_engine.close()
        app.state.search_executor.shutdown(wait=True)
        logger.info("Shutdown complete")

    # ========================================================================
    # Application Setup
    # ========================================================================

    app = FastAPI(
        title="Report Search API",
        description="Faceted and full-text search over research reports",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs" if DEBUG else None,
        redoc_url="/redoc" if DEBUG else None
    )
    app.state.search_engine = search_engine

    # ========================================================================
    # CORS Configuration
    # ========================================================================

    # Allow frontend to access API
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[
            "http://localhost:5173",  # Vite dev server
            "http://localhost:3000",  # Alternative dev port
            "http://127.0.0.1:5173",
            "http://127.0.0.1:3000",
        ],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(router)

    # ========================================================================
    # Root Endpoint
    # ========================================================================

    @app.get("/")
    async def root():
        """
        Root endpoint - API information.
        """
        return {
            "name": "Report Search API",
            "version": __version__,
            "description": "Faceted and full-text search over research reports",
            "endpoints": {
                "reports": "/api/reports",
                "filter_options": "/api/filter-options",
                "revalidate": "/api/revalidate",
                "stats": "/api/stats",
                "health": "/api/health"
            },
            "documentation": "/docs" if DEBUG else None
        }

    # ========================================================================
    # Error Handlers
    # ========================================================================

    @app.exception_handler(404)
    async def not_found_handler(request, exc):
        """Handle 404 errors."""
        return JSONResponse(
            status_code=404,
            content={"error": "Resource not found"}
        )

    @app.exception_handler(500)
    async def internal_error_handler(request, exc):
        """Handle 500 errors."""
        logger.error(f"Internal server error: {exc}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={"error": "Internal Server Error"}
        )

    return app


app = create_app()


# ============================================================================
# Development Server
# ============================================================================

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "report_search.api.main:app",
        host=API_CONFIG['host'],
        port=API_CONFIG['port'],
        reload=API_CONFIG['reload'],
        log_level=API_CONFIG['log_level']
    )
