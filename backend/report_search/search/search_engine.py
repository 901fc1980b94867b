"""
Core search engine: predicate execution, projection and caching.
"""

import json
import math
import time
from urllib.parse import urlencode
from typing import Any, Dict, List, Optional, Tuple
from dataclasses import dataclass
import logging

from .filters import FilterRequest, Predicate, PredicateBuilder, SortSpec
from .projection import Document, RowProjector, SELECT_COLUMNS
from .facets import FacetVocabularyProvider
from ..cache.result_cache import ResultCache, REPORTS_TOPIC, FILTER_OPTIONS_TOPIC
from ..common.errors import TransientStoreError
from ..storage.database import DocumentStore

logger = logging.getLogger('search')

REPORTS_CACHE_PREFIX = 'GET /api/reports?'
FILTER_OPTIONS_CACHE_KEY = 'GET /api/filter-options'


@dataclass
class SearchResult:
    """One page of documents plus pagination metadata."""
    documents: List[Document]
    current_page: int
    page_size: int
    total_items: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total_items / self.page_size)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'data': [doc.to_dict() for doc in self.documents],
            'pagination': {
                'currentPage': self.current_page,
                'pageSize': self.page_size,
                'totalItems': self.total_items,
                'totalPages': self.total_pages,
            }
        }


def serialize(payload: Dict[str, Any]) -> str:
    """Stable JSON used for both cache entries and responses."""
    return json.dumps(payload, ensure_ascii=False, separators=(',', ':'))


class SearchExecutor:
    """
    Runs a predicate as a page query followed by a count query.

    Both statements are assembled from the same FROM and WHERE text, so the
    total always describes the same set the page was cut from.
    """

    def __init__(self, store: DocumentStore):
        self.store = store

    def execute(
        self,
        predicate: Predicate,
        sort: SortSpec,
        limit: int,
        offset: int
    ) -> Tuple[List[Dict[str, Any]], int]:
        """
        Fetch one page of rows and the total match count.

        Raises:
            TransientStoreError: If either query fails
        """
        from_sql = predicate.from_sql()
        where_sql = predicate.where_sql()
        params = predicate.params()

        data_query = (
            f"SELECT {SELECT_COLUMNS} {from_sql} {where_sql} "
            f"ORDER BY {sort.order_by()} LIMIT ? OFFSET ?"
        )
        count_query = f"SELECT COUNT(*) AS count {from_sql} {where_sql}"

        try:
            with self.store.session():
                rows = self.store.execute(data_query, params + [limit, offset])
                count_rows = self.store.execute(count_query, params)
        except TransientStoreError as e:
            logger.error(f"Store query failed for {predicate.describe()}: {e}")
            raise

        total = count_rows[0]['count'] if count_rows else 0
        return rows, total


class ReportSearchEngine:
    """
    Report search with a topic-tagged result cache.

    Features:
    - Facet, keyword and page-threshold filtering
    - Hybrid keyword routing (full-text index vs. substring)
    - Stable pagination with identifier tie-breaks
    - Cached results and filter options, invalidated per topic
    """

    def __init__(
        self,
        store: DocumentStore,
        cache: Optional[ResultCache] = None,
        projector: Optional[RowProjector] = None,
        facet_provider: Optional[FacetVocabularyProvider] = None
    ):
        """
        Initialize search engine.

        Args:
            store: Document store the queries run against
            cache: Result cache (a fresh in-memory one when omitted)
            projector: Row to Document decoder
            facet_provider: Source of filter options
        """
        self.store = store
        self.cache = cache or ResultCache()
        self.executor = SearchExecutor(store)
        self.projector = projector or RowProjector()
        self.facet_provider = facet_provider or FacetVocabularyProvider(store)

    def cache_key(self, request: FilterRequest) -> str:
        # Values are percent-encoded so '&', '=' and ',' inside a value
        # cannot collide with another request's parameter layout
        return REPORTS_CACHE_PREFIX + urlencode(request.canonical_params())

    def search_json(self, request: FilterRequest) -> str:
        """
        Serialized SearchResult for a request, served from cache when fresh.

        Raises:
            ValidationError: If the free-text query is invalid (no store access)
            TransientStoreError: If the store fails
        """
        # Validation happens before the cache so bad input never gets a key
        predicate = PredicateBuilder().build_for(request)

        return self.cache.get_or_compute(
            REPORTS_TOPIC,
            self.cache_key(request),
            lambda: serialize(self._run_search(request, predicate).to_dict())
        )

    def search(self, request: FilterRequest) -> Dict[str, Any]:
        return json.loads(self.search_json(request))

    def _run_search(self, request: FilterRequest, predicate: Predicate) -> SearchResult:
        start_time = time.time()

        rows, total = self.executor.execute(
            predicate,
            request.sort_spec(),
            limit=request.page_size,
            offset=request.offset
        )
        documents = self.projector.project_all(rows)

        query_time_ms = int((time.time() - start_time) * 1000)
        logger.info(
            f"Search executed: {total} total, {len(documents)} returned, "
            f"full_text={predicate.use_full_text}, {query_time_ms}ms"
        )

        return SearchResult(
            documents=documents,
            current_page=request.page,
            page_size=request.page_size,
            total_items=total
        )

    def filter_options_json(self) -> str:
        """Serialized filter options, cached under the filter-options topic."""
        return self.cache.get_or_compute(
            FILTER_OPTIONS_TOPIC,
            FILTER_OPTIONS_CACHE_KEY,
            lambda: serialize(self.facet_provider.get_options().to_dict())
        )

    def get_filter_options(self) -> Dict[str, Any]:
        return json.loads(self.filter_options_json())

    def invalidate(self, topic: str) -> int:
        """
        Drop all cached results of a topic.

        Raises:
            KeyError: If the topic is unknown
        """
        return self.cache.invalidate(topic)

    def get_stats(self) -> Dict[str, Any]:
        """
        Get store and cache statistics.

        Returns:
            Dictionary with statistics
        """
        reports = self.store.execute("SELECT COUNT(*) AS count FROM reports")[0]['count']
        linked = self.store.execute(
            "SELECT COUNT(*) AS count FROM reports WHERE pdfLink IS NOT NULL"
        )[0]['count']
        authors = self.store.execute(
            "SELECT COUNT(DISTINCT author_id) AS count FROM report_author_index"
        )[0]['count']
        date_row = self.store.execute(
            "SELECT MIN(publishDate) AS earliest, MAX(publishDate) AS latest FROM reports"
        )[0]

        return {
            'total_reports': reports,
            'searchable_reports': linked,
            'indexed_authors': authors,
            'date_range': {
                'earliest': date_row['earliest'],
                'latest': date_row['latest']
            },
            'cache': self.cache.stats()
        }

    def check_store(self) -> bool:
        """True when the store answers a trivial query."""
        try:
            self.store.execute("SELECT 1")
            return True
        except TransientStoreError as e:
            logger.warning(f"Store health check failed: {e}")
            return False

    def close(self):
        """Close connections and cleanup."""
        self.store.close()
        logger.info("Search engine closed")
