"""
Configuration settings for the research report search service.
"""

import os
from pathlib import Path

# Base directories
BASE_DIR = Path(__file__).parent.parent.parent
CONFIG_DIR = Path(__file__).parent

# Data directory - use environment variable in production, local path in development
DATA_DIR = Path(os.getenv("DATA_DIR", str(BASE_DIR / "data")))

# Ensure data directory exists
DATA_DIR.mkdir(parents=True, exist_ok=True)

# Database path - support environment variable override for production
DATABASE_PATH = os.getenv("DATABASE_PATH", str(DATA_DIR / "reports.db"))

# Static facet vocabularies (code -> label lists), optional
INDUSTRY_CODES_PATH = os.getenv("INDUSTRY_CODES_PATH", str(CONFIG_DIR / "industry_codes.json"))
COLUMN_CODES_PATH = os.getenv("COLUMN_CODES_PATH", str(CONFIG_DIR / "column_codes.json"))


# SEARCH CONFIGURATION

SEARCH_CONFIG = {
    "default_page_size": 20,
    "max_page_size": 100,

    # Sort columns accepted from the query string; anything else falls back
    # to the default. Values are the store columns they map to.
    "sort_columns": {
        "publishDate": "publishDate",
        "title": "title",
        "orgSName": "orgSName",
        "orgShortName": "orgSName",
    },
    "default_sort": "publishDate",

    # Keyword routing for free-text queries
    "min_keyword_length": 2,
    "fts_min_keyword_length": 3,

    # Plain-text summary derived from rich content
    "summary_length": 200,
    "summary_ellipsis": "...",
}


# CACHE CONFIGURATION
#
# Freshness windows per topic, in seconds. Reports change throughout the day,
# facet vocabularies rarely.

CACHE_CONFIG = {
    "topics": {
        "reports": int(os.getenv("REPORTS_CACHE_TTL", "600")),
        "filter-options": int(os.getenv("FILTER_OPTIONS_CACHE_TTL", "86400")),
    },
    "max_entries": int(os.getenv("CACHE_MAX_ENTRIES", "5000")),

    # Shared secret for POST /api/revalidate (unset disables the check)
    "revalidate_secret": os.getenv("REVALIDATE_SECRET"),
}


# CONCURRENCY CONFIGURATION

CONCURRENCY_CONFIG = {
    "uvicorn_workers": 3,
    "search_thread_pool_size": 4,
    "search_timeout_seconds": float(os.getenv("SEARCH_TIMEOUT_SECONDS", "5.0")),

    # Per-statement deadline enforced inside the store adapter
    "store_timeout_seconds": float(os.getenv("STORE_TIMEOUT_SECONDS", "4.0")),
}


# LOGGING CONFIGURATION

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_DIR = Path("/var/log/report-search") if os.path.exists("/var/log/report-search") else BASE_DIR / "logs"
LOG_DIR.mkdir(parents=True, exist_ok=True)

LOG_CONFIG = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "json": {
            "class": "pythonjsonlogger.json.JsonFormatter",
            "format": "%(asctime)s %(name)s %(levelname)s %(message)s"
        },
        "standard": {
            "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        }
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "level": LOG_LEVEL,
            "formatter": "standard",
            "stream": "ext://sys.stdout"
        },
        "api": {
            "class": "logging.handlers.RotatingFileHandler",
            "filename": str(LOG_DIR / "api.log"),
            "maxBytes": 10485760,  # 10MB
            "backupCount": 5,
            "formatter": "json",
            "level": LOG_LEVEL
        },
        "search": {
            "class": "logging.handlers.RotatingFileHandler",
            "filename": str(LOG_DIR / "search.log"),
            "maxBytes": 10485760,
            "backupCount": 5,
            "formatter": "json",
            "level": LOG_LEVEL
        },
        "errors": {
            "class": "logging.handlers.RotatingFileHandler",
            "filename": str(LOG_DIR / "errors.log"),
            "maxBytes": 10485760,
            "backupCount": 5,
            "formatter": "json",
            "level": "ERROR"
        }
    },
    "loggers": {
        "api": {
            "handlers": ["console", "api", "errors"],
            "level": LOG_LEVEL,
            "propagate": False
        },
        "search": {
            "handlers": ["console", "search", "errors"],
            "level": LOG_LEVEL,
            "propagate": False
        },
        "": {  # Root logger
            "handlers": ["console", "errors"],
            "level": LOG_LEVEL
        }
    }
}


# API CONFIGURATION

API_CONFIG = {
    "host": os.getenv("API_HOST", "0.0.0.0"),
    "port": int(os.getenv("API_PORT", "8000")),
    "reload": os.getenv("RELOAD", "false").lower() == "true",
    "log_level": LOG_LEVEL.lower(),
    "base_url": os.getenv("API_BASE_URL", "http://localhost:8000"),
}


# ENVIRONMENT

DEBUG = os.getenv("DEBUG", "false").lower() == "true"
ENVIRONMENT = os.getenv("ENVIRONMENT", "development")
