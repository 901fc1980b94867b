"""
Facet vocabularies: code -> label lists offered as filter options.
"""

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional
import logging

from pypinyin import lazy_pinyin

from ..storage.database import DocumentStore
from ..config.search_config import INDUSTRY_CODES_PATH, COLUMN_CODES_PATH

logger = logging.getLogger('search')

STOCK_TYPE = 'S'
INSTITUTION_TYPE = 'I'


def collation_key(label: str):
    """
    Sort key for labels in the corpus language.

    Chinese labels sort by pinyin rather than code point order; ties fall
    back to the label itself so the order is total.
    """
    return (' '.join(lazy_pinyin(label or '')).lower(), label or '')


@dataclass
class FacetOptions:
    """Filter options grouped by facet."""
    stocks: List[Dict[str, str]] = field(default_factory=list)
    institutions: List[Dict[str, str]] = field(default_factory=list)
    industries: List[Dict[str, str]] = field(default_factory=list)
    columns: List[Dict[str, str]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, List[Dict[str, str]]]:
        return {
            'stocks': self.stocks,
            'institutions': self.institutions,
            'industries': self.industries,
            'columns': self.columns,
        }


def load_static_vocabulary(path: Optional[str]) -> List[Dict[str, str]]:
    """
    Load a ``[{"value": ..., "label": ...}]`` JSON file.

    A missing file yields an empty vocabulary; a malformed one raises.
    """
    if not path or not Path(path).exists():
        return []

    with open(path, 'r', encoding='utf-8') as f:
        entries = json.load(f)

    return [{'value': str(e['value']), 'label': str(e['label'])} for e in entries]


class FacetVocabularyProvider:
    """Reads dynamic vocabularies from the store and static ones from disk."""

    def __init__(
        self,
        store: DocumentStore,
        industry_codes_path: Optional[str] = INDUSTRY_CODES_PATH,
        column_codes_path: Optional[str] = COLUMN_CODES_PATH
    ):
        self.store = store
        self.industries = load_static_vocabulary(industry_codes_path)
        self.columns = load_static_vocabulary(column_codes_path)

    def get_options(self) -> FacetOptions:
        """
        Build all filter options.

        Returns:
            FacetOptions with stocks and institutions sorted by label
        """
        rows = self.store.execute("SELECT id, type, value, label FROM filter_options")
        rows = sorted(rows, key=lambda row: collation_key(row['label']))

        stocks = [
            {'value': row['value'], 'label': f"{row['label']} ({row['value']})"}
            for row in rows if row['type'] == STOCK_TYPE
        ]
        institutions = [
            {'value': row['value'], 'label': row['label']}
            for row in rows if row['type'] == INSTITUTION_TYPE
        ]

        logger.info(f"Loaded filter options: {len(stocks)} stocks, {len(institutions)} institutions")

        return FacetOptions(
            stocks=stocks,
            institutions=institutions,
            industries=list(self.industries),
            columns=list(self.columns)
        )
