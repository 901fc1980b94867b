"""
Keyword parser for free-text report queries.

Splits a query on ASCII and ideographic whitespace and routes each keyword
to a search method by length:
- 3+ characters: full-text index, combined as exact phrases with AND
- exactly 2 characters: substring (LIKE) fallback
- shorter: rejected, the whole request fails

Single characters match almost every report and would overwhelm the index,
so they are refused rather than silently dropped.
"""

import re
from typing import List
from dataclasses import dataclass
import logging

from ..common.errors import ValidationError
from ..config.search_config import SEARCH_CONFIG

logger = logging.getLogger('search')

KEYWORD_TOO_SHORT = '搜索关键词的每个词长度必须大于等于两个字符'


@dataclass(frozen=True)
class ParsedQuery:
    """Keywords of a free-text query, grouped by search method."""
    fts_terms: List[str]   # Matched through the full-text index
    like_terms: List[str]  # Matched by substring

    @property
    def uses_full_text(self) -> bool:
        return bool(self.fts_terms)

    def has_content(self) -> bool:
        """Check if query has any searchable content."""
        return bool(self.fts_terms or self.like_terms)

    def get_match_expression(self) -> str:
        """
        FTS5 expression requiring every full-text keyword as a phrase.

        Double quotes inside a keyword are doubled so they stay part of the
        phrase instead of closing it.
        """
        phrases = ['"{}"'.format(term.replace('"', '""')) for term in self.fts_terms]
        return ' AND '.join(phrases)


class QueryParser:
    """Parse free-text queries into routed keyword lists."""

    SPLIT_PATTERN = re.compile(r'[\s\u3000]+')

    def __init__(
        self,
        min_length: int = SEARCH_CONFIG['min_keyword_length'],
        fts_min_length: int = SEARCH_CONFIG['fts_min_keyword_length']
    ):
        self.min_length = min_length
        self.fts_min_length = fts_min_length

    def parse(self, query: str) -> ParsedQuery:
        """
        Parse query string into routed keywords.

        Raises:
            ValidationError: If any keyword is shorter than the minimum length
        """
        if not query or not isinstance(query, str):
            return ParsedQuery([], [])

        # Null bytes never reach the store
        query = query.replace('\x00', '').strip()
        keywords = [kw for kw in self.SPLIT_PATTERN.split(query) if kw]

        if any(len(kw) < self.min_length for kw in keywords):
            logger.info(f"Rejected query with short keyword: {keywords}")
            raise ValidationError(KEYWORD_TOO_SHORT)

        parsed = ParsedQuery(
            fts_terms=[kw for kw in keywords if len(kw) >= self.fts_min_length],
            like_terms=[kw for kw in keywords if len(kw) < self.fts_min_length]
        )

        logger.debug(
            f"Parsed query - fts: {parsed.fts_terms}, like: {parsed.like_terms}"
        )

        return parsed


def parse_query(query: str) -> ParsedQuery:
    """
    Convenience function to parse query.

    Args:
        query: Raw query string

    Returns:
        ParsedQuery object
    """
    parser = QueryParser()
    return parser.parse(query)
