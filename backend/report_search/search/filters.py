"""
Filter requests and the SQL predicate builder for report queries.
"""

from typing import Optional, Dict, Any, List, Tuple, FrozenSet, Mapping
from dataclasses import dataclass, field
import logging

from .query_parser import QueryParser, ParsedQuery
from ..config.search_config import SEARCH_CONFIG

logger = logging.getLogger('search')


# Query-string facet name -> store column for plain IN filters
FACET_COLUMNS = {
    'reportType': 'reports.reportType',
    'stockCode': 'reports.stockCode',
    'columnCode': 'reports."column"',
    'orgCode': 'reports.orgCode',
    'market': 'reports.market',
}

INDUSTRY_FACET = 'industryCode'
AUTHOR_FACET = 'author'

FACET_NAMES = tuple(FACET_COLUMNS) + (INDUSTRY_FACET, AUTHOR_FACET)

BASELINE_CLAUSE = 'reports.pdfLink IS NOT NULL'
LIKE_ESCAPE = '\\'


def _parse_int(value: Any) -> Optional[int]:
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return None


def _split_values(raw: Optional[str]) -> FrozenSet[str]:
    if not raw:
        return frozenset()
    return frozenset(v.strip() for v in raw.split(',') if v.strip())


@dataclass(frozen=True)
class SortSpec:
    """Resolved sort column and direction."""
    column: str
    descending: bool = True

    @property
    def direction(self) -> str:
        return 'DESC' if self.descending else 'ASC'

    def order_by(self) -> str:
        # Ties fall back to the report identifier in the same direction so
        # pages never overlap or skip between identical requests
        return (
            f"reports.{self.column} {self.direction}, "
            f"reports.infoCode {self.direction}"
        )


@dataclass(frozen=True)
class FilterRequest:
    """One report search: pagination, sort, facets and free text."""

    page: int = 1
    page_size: int = SEARCH_CONFIG['default_page_size']
    sort_by: str = SEARCH_CONFIG['default_sort']
    order: str = 'desc'
    facets: Mapping[str, FrozenSet[str]] = field(default_factory=dict)
    content_query: Optional[str] = None
    attach_pages: Optional[int] = None

    def __post_init__(self):
        # Normalize in place so every instance upholds the invariants,
        # whichever way it was constructed
        page = self.page if isinstance(self.page, int) and self.page >= 1 else 1

        page_size = self.page_size
        if not isinstance(page_size, int):
            page_size = SEARCH_CONFIG['default_page_size']
        page_size = min(max(page_size, 1), SEARCH_CONFIG['max_page_size'])

        sort_by = self.sort_by if self.sort_by in SEARCH_CONFIG['sort_columns'] else SEARCH_CONFIG['default_sort']
        order = 'asc' if str(self.order).lower() == 'asc' else 'desc'

        facets = {
            name: frozenset(values)
            for name, values in (self.facets or {}).items()
            if name in FACET_NAMES and values
        }

        content_query = self.content_query.strip() if self.content_query else None

        object.__setattr__(self, 'page', page)
        object.__setattr__(self, 'page_size', page_size)
        object.__setattr__(self, 'sort_by', sort_by)
        object.__setattr__(self, 'order', order)
        object.__setattr__(self, 'facets', facets)
        object.__setattr__(self, 'content_query', content_query or None)

    @classmethod
    def from_params(cls, params: Mapping[str, Optional[str]]) -> 'FilterRequest':
        """
        Build a request from raw query-string values.

        Parsing is permissive: malformed numbers fall back to defaults and
        unknown sort fields to the default sort, so older or newer clients
        never get an error for a parameter they got slightly wrong.
        """
        page = _parse_int(params.get('page'))
        page_size = _parse_int(params.get('pageSize'))

        return cls(
            page=page if page is not None else 1,
            page_size=page_size if page_size is not None else SEARCH_CONFIG['default_page_size'],
            sort_by=params.get('sortBy') or SEARCH_CONFIG['default_sort'],
            order=params.get('order') or 'desc',
            facets={name: _split_values(params.get(name)) for name in FACET_NAMES},
            content_query=params.get('contentQuery'),
            attach_pages=_parse_int(params.get('attachPages')) if params.get('attachPages') else None
        )

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.page_size

    def values(self, facet: str) -> List[str]:
        """Accepted values of a facet, sorted for stable parameter order."""
        return sorted(self.facets.get(facet, ()))

    def sort_spec(self) -> SortSpec:
        return SortSpec(
            column=SEARCH_CONFIG['sort_columns'][self.sort_by],
            descending=self.order == 'desc'
        )

    def canonical_params(self) -> List[Tuple[str, str]]:
        """
        Order-independent parameter list identifying this request.

        Facet values are sorted, so two requests selecting the same values
        in a different order produce the same list.
        """
        items = [
            ('order', self.order),
            ('page', str(self.page)),
            ('pageSize', str(self.page_size)),
            ('sortBy', SEARCH_CONFIG['sort_columns'][self.sort_by]),
        ]
        for name in sorted(self.facets):
            items.append((name, ','.join(self.values(name))))
        if self.content_query:
            items.append(('contentQuery', self.content_query))
        if self.attach_pages is not None:
            items.append(('attachPages', str(self.attach_pages)))
        return sorted(items)

    def to_dict(self) -> Dict[str, Any]:
        """Applied filters, for logging and echoing back to clients."""
        result: Dict[str, Any] = {name: self.values(name) for name in sorted(self.facets)}
        if self.content_query:
            result['contentQuery'] = self.content_query
        if self.attach_pages is not None:
            result['attachPages'] = self.attach_pages
        return result


@dataclass(frozen=True)
class Predicate:
    """
    Ordered WHERE fragments with their bound parameters.

    Fragments only ever contain placeholders; every request value lives in
    the matching parameter tuple.
    """
    clauses: Tuple[Tuple[str, Tuple[Any, ...]], ...]
    use_full_text: bool = False

    def where_sql(self) -> str:
        if not self.clauses:
            return ''
        return 'WHERE ' + ' AND '.join(fragment for fragment, _ in self.clauses)

    def params(self) -> List[Any]:
        return [value for _, values in self.clauses for value in values]

    def from_sql(self) -> str:
        if self.use_full_text:
            return 'FROM reports JOIN reports_fts ON reports.id = reports_fts.rowid'
        return 'FROM reports'

    def describe(self) -> str:
        """Fragments without values, safe to log."""
        return f"{self.from_sql()} {self.where_sql()} ({len(self.params())} params)"


class PredicateBuilder:
    """
    Accumulates (fragment, params) pairs and assembles a Predicate.

    Each add_* method keeps a fragment and its parameters together, so
    conditionally skipped clauses can never shift parameters out of line.
    """

    def __init__(self, query_parser: Optional[QueryParser] = None):
        self.query_parser = query_parser or QueryParser()
        self._clauses: List[Tuple[str, Tuple[Any, ...]]] = []
        self._use_full_text = False

    def add(self, fragment: str, *params: Any) -> 'PredicateBuilder':
        self._clauses.append((fragment, tuple(params)))
        return self

    def add_in(self, column: str, values: List[Any]) -> 'PredicateBuilder':
        """Add ``column IN (...)``; an empty value list adds nothing."""
        if values:
            self.add(f"{column} IN ({self._placeholders(values)})", *values)
        return self

    def add_industry(self, values: List[str]) -> 'PredicateBuilder':
        # General and individual-stock industry codes are alternatives
        if values:
            placeholders = self._placeholders(values)
            self.add(
                f"(reports.industryCode IN ({placeholders}) "
                f"OR reports.indvInduCode IN ({placeholders}))",
                *values, *values
            )
        return self

    def add_authors(self, values: List[str]) -> 'PredicateBuilder':
        """
        Filter by author through the report_author_index table.

        Values look like ``<authorId>.<displayName>``; only the id is used.
        """
        author_ids = sorted({value.split('.', 1)[0].strip() for value in values} - {''})
        if author_ids:
            self.add(
                "reports.id IN (SELECT report_id FROM report_author_index "
                f"WHERE author_id IN ({self._placeholders(author_ids)}))",
                *author_ids
            )
        return self

    def add_keywords(self, parsed: ParsedQuery) -> 'PredicateBuilder':
        if parsed.fts_terms:
            self._use_full_text = True
            self.add('reports_fts.content_text MATCH ?', parsed.get_match_expression())

        if parsed.like_terms:
            like_clauses = ' AND '.join(
                f"reports.content_text LIKE ? ESCAPE '{LIKE_ESCAPE}'" for _ in parsed.like_terms
            )
            self.add(
                f"({like_clauses})",
                *[f"%{self._escape_like(term)}%" for term in parsed.like_terms]
            )
        return self

    def add_min_attach_pages(self, pages: Optional[int]) -> 'PredicateBuilder':
        if pages is not None:
            self.add('reports.attachPages >= ?', pages)
        return self

    def build(self) -> Predicate:
        return Predicate(clauses=tuple(self._clauses), use_full_text=self._use_full_text)

    def build_for(self, request: FilterRequest) -> Predicate:
        """
        Build the complete predicate for a filter request.

        Raises:
            ValidationError: If the free-text query has a too-short keyword
        """
        # Keywords are validated first so a bad query never builds anything
        parsed = self.query_parser.parse(request.content_query)

        self.add(BASELINE_CLAUSE)
        for facet, column in FACET_COLUMNS.items():
            self.add_in(column, request.values(facet))
        self.add_industry(request.values(INDUSTRY_FACET))
        self.add_authors(request.values(AUTHOR_FACET))
        self.add_keywords(parsed)
        self.add_min_attach_pages(request.attach_pages)

        predicate = self.build()
        logger.debug(f"Built predicate: {predicate.describe()}")

        return predicate

    @staticmethod
    def _placeholders(values: List[Any]) -> str:
        return ', '.join('?' for _ in values)

    @staticmethod
    def _escape_like(term: str) -> str:
        return (
            term.replace(LIKE_ESCAPE, LIKE_ESCAPE * 2)
            .replace('%', LIKE_ESCAPE + '%')
            .replace('_', LIKE_ESCAPE + '_')
        )


def build_predicate(request: FilterRequest) -> Predicate:
    """
    Convenience function to build a predicate.

    Args:
        request: Filter request

    Returns:
        Predicate for the request
    """
    return PredicateBuilder().build_for(request)
