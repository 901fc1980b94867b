"""
Pydantic models for API responses.
"""

from typing import Optional, List
from pydantic import BaseModel, Field


# ============================================================================
# Report Models
# ============================================================================

class Report(BaseModel):
    """A research report."""

    infoCode: Optional[str] = Field(None, description="Report identifier")
    title: Optional[str] = Field(None, description="Report title")
    publishDate: Optional[str] = Field(None, description="Publication date")
    reportType: Optional[str] = Field(None, description="Report category code")
    stockCode: Optional[str] = Field(None, description="Ticker of the covered stock")
    stockName: Optional[str] = Field(None, description="Name of the covered company")
    market: Optional[str] = Field(None, description="Market code")
    orgCode: Optional[str] = Field(None, description="Publishing organization code")
    orgSName: Optional[str] = Field(None, description="Publishing organization short name")
    author: Optional[str] = Field(None, description="Raw author field (id.name, comma separated)")
    authors: List[str] = Field(default_factory=list, description="Individual author tokens")
    authorNames: List[str] = Field(default_factory=list, description="Author display names")
    industryCode: Optional[str] = Field(None, description="General industry code")
    industryName: Optional[str] = Field(None, description="General industry name")
    indvInduCode: Optional[str] = Field(None, description="Individual-stock industry code")
    indvInduName: Optional[str] = Field(None, description="Individual-stock industry name")
    industryLabel: Optional[str] = Field(None, description="Industry name to display")
    column: Optional[str] = Field(None, description="Column code")
    attachPages: Optional[int] = Field(None, description="Attachment page count")
    attachSize: Optional[int] = Field(None, description="Attachment size in bytes")
    pdfLink: Optional[str] = Field(None, description="Link to the report document")
    content: Optional[str] = Field(None, description="Rich-text report content")
    summary: str = Field("", description="Plain-text summary")


class Pagination(BaseModel):
    """Pagination metadata."""

    currentPage: int = Field(..., description="Current page number")
    pageSize: int = Field(..., description="Results per page")
    totalItems: int = Field(..., description="Total matching reports")
    totalPages: int = Field(..., description="Total pages")


class ReportsResponse(BaseModel):
    """Report search response."""

    data: List[Report] = Field(..., description="Reports on this page")
    pagination: Pagination = Field(..., description="Pagination metadata")


# ============================================================================
# Filter Option Models
# ============================================================================

class FilterOption(BaseModel):
    """A selectable filter value."""

    value: str = Field(..., description="Code sent back as filter value")
    label: str = Field(..., description="Display label")


class FilterOptionsResponse(BaseModel):
    """Filter options response."""

    stocks: List[FilterOption] = Field(..., description="Known tickers")
    institutions: List[FilterOption] = Field(..., description="Known organizations")
    industries: List[FilterOption] = Field(default_factory=list, description="Industry vocabulary")
    columns: List[FilterOption] = Field(default_factory=list, description="Column vocabulary")


# ============================================================================
# Cache Models
# ============================================================================

class RevalidateResponse(BaseModel):
    """Cache invalidation response."""

    revalidated: bool = Field(..., description="Whether the topic was invalidated")
    tag: str = Field(..., description="Invalidated topic")
    entries: int = Field(..., description="Cache entries dropped")


# ============================================================================
# Statistics Models
# ============================================================================

class DateRange(BaseModel):
    """Date range information."""

    earliest: Optional[str] = Field(None, description="Earliest report date")
    latest: Optional[str] = Field(None, description="Latest report date")


class CacheStats(BaseModel):
    """Result cache counters."""

    hits: int = Field(..., description="Fresh cache hits")
    misses: int = Field(..., description="Computed results")
    topics: dict = Field(..., description="Freshness window per topic, in seconds")


class StatsResponse(BaseModel):
    """Store statistics response."""

    total_reports: int = Field(..., description="Total reports in the store")
    searchable_reports: int = Field(..., description="Reports with a document link")
    indexed_authors: int = Field(..., description="Distinct authors in the author index")
    date_range: DateRange = Field(..., description="Date range of reports")
    cache: CacheStats = Field(..., description="Result cache statistics")


# ============================================================================
# Health Models
# ============================================================================

class HealthResponse(BaseModel):
    """Health check response."""

    status: str = Field(..., description="Service status")
    database_connected: bool = Field(..., description="Database connection status")
    uptime_seconds: Optional[int] = Field(None, description="Service uptime in seconds")


# ============================================================================
# Error Models
# ============================================================================

class ErrorResponse(BaseModel):
    """Error response."""

    error: str = Field(..., description="Error message")
