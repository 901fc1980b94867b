"""
FastAPI route handlers for the report search API.
"""

import asyncio
import logging
from typing import Optional
from datetime import datetime
from fastapi import APIRouter, Header, Query, Request, Depends
from fastapi.responses import JSONResponse, Response

from .models import (
    ReportsResponse,
    FilterOptionsResponse,
    RevalidateResponse,
    StatsResponse,
    HealthResponse,
    ErrorResponse
)
from ..cache.result_cache import REPORTS_TOPIC, FILTER_OPTIONS_TOPIC
from ..common.errors import ValidationError
from ..search.filters import FilterRequest
from ..search.search_engine import ReportSearchEngine
from ..config.search_config import CACHE_CONFIG, CONCURRENCY_CONFIG

logger = logging.getLogger('api')

# Track service start time
service_start_time = datetime.now()


# ============================================================================
# Dependency Injection
# ============================================================================

def get_search_engine(request: Request) -> ReportSearchEngine:
    """Get the search engine attached to the running application."""
    return request.app.state.search_engine


async def run_blocking(request: Request, func):
    """
    Run blocking store work on the application's thread pool.

    The wait is bounded by the search timeout; on expiry the caller gets
    asyncio.TimeoutError while the store's own deadline stops the thread.
    """
    loop = asyncio.get_running_loop()
    return await asyncio.wait_for(
        loop.run_in_executor(request.app.state.search_executor, func),
        timeout=CONCURRENCY_CONFIG['search_timeout_seconds']
    )


def cached_json(body: str, topic: str) -> Response:
    """JSON response carrying edge cache headers for the topic's window."""
    window = int(CACHE_CONFIG['topics'][topic])
    return Response(
        content=body,
        media_type="application/json",
        headers={"Cache-Control": f"public, s-maxage={window}, stale-while-revalidate={window}"}
    )


# ============================================================================
# API Router
# ============================================================================

router = APIRouter(prefix="/api", tags=["reports"])


# ============================================================================
# Report Endpoints
# ============================================================================

@router.get(
    "/reports",
    response_model=ReportsResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Invalid search keywords"},
        500: {"model": ErrorResponse, "description": "Store or infrastructure failure"},
    },
)
async def search_reports(
    request: Request,
    page: Optional[str] = Query(None, description="Page number, default 1"),
    page_size: Optional[str] = Query(None, alias="pageSize", description="Results per page, default 20"),
    sort_by: Optional[str] = Query(None, alias="sortBy", description="publishDate, title or orgSName"),
    order: Optional[str] = Query(None, description="asc or desc, default desc"),
    report_type: Optional[str] = Query(None, alias="reportType", description="Comma-separated report types"),
    industry_code: Optional[str] = Query(None, alias="industryCode", description="Comma-separated industry codes"),
    stock_code: Optional[str] = Query(None, alias="stockCode", description="Comma-separated tickers"),
    column_code: Optional[str] = Query(None, alias="columnCode", description="Comma-separated column codes"),
    org_code: Optional[str] = Query(None, alias="orgCode", description="Comma-separated organization codes"),
    author: Optional[str] = Query(None, description="Comma-separated id.name author values"),
    market: Optional[str] = Query(None, description="Comma-separated market codes"),
    content_query: Optional[str] = Query(None, alias="contentQuery", description="Free-text keywords"),
    attach_pages: Optional[str] = Query(None, alias="attachPages", description="Minimum attachment pages"),
    engine: ReportSearchEngine = Depends(get_search_engine)
):
    """
    Search reports with facet filters, keywords and pagination.

    Keywords of 3+ characters use the full-text index, 2-character keywords
    a substring match; a 1-character keyword is rejected with 400.
    """
    filter_request = FilterRequest.from_params({
        "page": page,
        "pageSize": page_size,
        "sortBy": sort_by,
        "order": order,
        "reportType": report_type,
        "industryCode": industry_code,
        "stockCode": stock_code,
        "columnCode": column_code,
        "orgCode": org_code,
        "author": author,
        "market": market,
        "contentQuery": content_query,
        "attachPages": attach_pages,
    })

    try:
        logger.info(
            f"Search request: filters={filter_request.to_dict()}, "
            f"page={filter_request.page}, pageSize={filter_request.page_size}, "
            f"sortBy={filter_request.sort_by}, order={filter_request.order}"
        )

        body = await run_blocking(request, lambda: engine.search_json(filter_request))

        return cached_json(body, REPORTS_TOPIC)

    except ValidationError as e:
        logger.info(f"Rejected search request: {e}")
        return JSONResponse(status_code=400, content={"error": str(e)})

    except asyncio.TimeoutError:
        logger.error("Search timed out")
        return JSONResponse(status_code=500, content={"error": "Internal Server Error"})

    except Exception as e:
        logger.error(f"Failed to fetch reports: {e}", exc_info=True)
        return JSONResponse(status_code=500, content={"error": "Internal Server Error"})


# ============================================================================
# Filter Option Endpoints
# ============================================================================

@router.get(
    "/filter-options",
    response_model=FilterOptionsResponse,
    responses={500: {"model": ErrorResponse, "description": "Store failure"}},
)
async def get_filter_options(
    request: Request,
    engine: ReportSearchEngine = Depends(get_search_engine)
):
    """
    Get selectable tickers and organizations, sorted by label.
    """
    try:
        body = await run_blocking(request, engine.filter_options_json)
        return cached_json(body, FILTER_OPTIONS_TOPIC)

    except Exception as e:
        logger.error(f"Failed to fetch filter options: {e}", exc_info=True)
        return JSONResponse(status_code=500, content={"error": "Failed to fetch filter options"})


# ============================================================================
# Cache Endpoints
# ============================================================================

@router.post(
    "/revalidate",
    response_model=RevalidateResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Unknown topic"},
        401: {"model": ErrorResponse, "description": "Bad secret"},
    },
)
async def revalidate(
    tag: str = Query(..., description="Cache topic: reports or filter-options"),
    x_revalidate_secret: Optional[str] = Header(None),
    engine: ReportSearchEngine = Depends(get_search_engine)
):
    """
    Drop every cached result of a topic.

    Call after the corpus or the filter vocabularies are bulk-updated.
    """
    secret = CACHE_CONFIG['revalidate_secret']
    if secret and x_revalidate_secret != secret:
        logger.warning(f"Rejected revalidation of '{tag}': bad secret")
        return JSONResponse(status_code=401, content={"error": "Invalid revalidation secret"})

    try:
        entries = engine.invalidate(tag)
    except KeyError:
        return JSONResponse(status_code=400, content={"error": f"Unknown cache tag: {tag}"})
    except Exception as e:
        logger.error(f"Failed to invalidate '{tag}': {e}", exc_info=True)
        return JSONResponse(status_code=500, content={"error": "Internal Server Error"})

    logger.info(f"Revalidated '{tag}': {entries} entries dropped")

    return {
        "revalidated": True,
        "tag": tag,
        "entries": entries
    }


# ============================================================================
# Statistics Endpoints
# ============================================================================

@router.get("/stats", response_model=StatsResponse)
async def get_stats(
    request: Request,
    engine: ReportSearchEngine = Depends(get_search_engine)
):
    """
    Get store and cache statistics.
    """
    try:
        logger.info("Fetching statistics")
        return await run_blocking(request, engine.get_stats)

    except Exception as e:
        logger.error(f"Failed to fetch stats: {e}", exc_info=True)
        return JSONResponse(status_code=500, content={"error": "Failed to fetch statistics"})


# ============================================================================
# Health Check Endpoint
# ============================================================================

@router.get("/health", response_model=HealthResponse)
async def health_check(
    request: Request,
    engine: ReportSearchEngine = Depends(get_search_engine)
):
    """
    Health check endpoint.

    Returns service status and basic metrics.
    """
    uptime = (datetime.now() - service_start_time).total_seconds()

    try:
        db_connected = await run_blocking(request, engine.check_store)
    except asyncio.TimeoutError:
        db_connected = False

    return {
        "status": "healthy" if db_connected else "degraded",
        "database_connected": db_connected,
        "uptime_seconds": int(uptime)
    }
