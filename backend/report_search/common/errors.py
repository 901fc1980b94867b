"""
Error taxonomy for the report search service.

ValidationError is a client error and is never retried. TransientStoreError
wraps any store-level failure (timeouts, connection problems, SQL errors) and
is safe for the caller to retry. CacheUnavailable never reaches a caller; the
cache layer catches it and computes the result directly.
"""


class ReportSearchError(Exception):
    """Base class for all report search errors."""


class ValidationError(ReportSearchError):
    """Malformed filter input, e.g. a search token shorter than two characters."""


class TransientStoreError(ReportSearchError):
    """The document store failed or timed out."""


class CacheUnavailable(ReportSearchError):
    """The cache backend could not be read or written."""


class RowDecodeError(ReportSearchError):
    """A store row is missing a column the Document shape requires."""

    def __init__(self, column: str):
        super().__init__(f"Store row is missing required column '{column}'")
        self.column = column
