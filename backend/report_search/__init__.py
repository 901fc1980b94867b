"""Research report search service."""

__version__ = "1.0.0"
