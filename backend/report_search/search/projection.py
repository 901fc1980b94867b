"""
Projection of raw store rows into the public Document shape.
"""

from typing import Any, Dict, List, Mapping, Optional
from dataclasses import dataclass, field

from ..common.errors import RowDecodeError
from ..common.text_utils import TextNormalizer


# Store column -> Document attribute. Every column here is required in a row.
COLUMN_MAP = {
    'infoCode': 'info_code',
    'title': 'title',
    'publishDate': 'publish_date',
    'reportType': 'report_type',
    'stockCode': 'stock_code',
    'stockName': 'stock_name',
    'industryCode': 'industry_code',
    'industryName': 'industry_name',
    'indvInduCode': 'indv_indu_code',
    'indvInduName': 'indv_indu_name',
    'orgCode': 'org_code',
    'orgSName': 'org_s_name',
    'author': 'author',
    'column': 'column',
    'market': 'market',
    'attachPages': 'attach_pages',
    'attachSize': 'attach_size',
    'pdfLink': 'pdf_link',
    'content': 'content',
}

SELECT_COLUMNS = ', '.join(
    'reports."column"' if column == 'column' else f"reports.{column}"
    for column in COLUMN_MAP
)


@dataclass(frozen=True)
class Document:
    """A research report as returned to clients."""
    info_code: Optional[str]
    title: Optional[str]
    publish_date: Optional[str]
    report_type: Optional[str]
    stock_code: Optional[str]
    stock_name: Optional[str]
    industry_code: Optional[str]
    industry_name: Optional[str]
    indv_indu_code: Optional[str]
    indv_indu_name: Optional[str]
    org_code: Optional[str]
    org_s_name: Optional[str]
    author: Optional[str]
    column: Optional[str]
    market: Optional[str]
    attach_pages: Optional[int]
    attach_size: Optional[int]
    pdf_link: Optional[str]
    content: Optional[str]
    authors: List[str] = field(default_factory=list)
    author_names: List[str] = field(default_factory=list)
    summary: str = ''

    @property
    def industry_label(self) -> Optional[str]:
        """Display industry: the general classification, else the stock's own."""
        return self.industry_name or self.indv_indu_name

    def to_dict(self) -> Dict[str, Any]:
        data = {column: getattr(self, attr) for column, attr in COLUMN_MAP.items()}
        data.update({
            'authors': list(self.authors),
            'authorNames': list(self.author_names),
            'industryLabel': self.industry_label,
            'summary': self.summary,
        })
        return data


def split_authors(raw: Optional[str]) -> List[str]:
    """Split the raw ``id.name,id.name`` author field into trimmed tokens."""
    if not raw:
        return []
    return [token.strip() for token in raw.split(',') if token.strip()]


def author_display_name(token: str) -> str:
    """Name part of an ``<id>.<name>`` token, or the token itself."""
    _, sep, name = token.partition('.')
    return name if sep else token


class RowProjector:
    """Decodes store rows into Documents, one row at a time."""

    def __init__(self, normalizer: Optional[TextNormalizer] = None):
        self.normalizer = normalizer or TextNormalizer()

    def project(self, row: Mapping[str, Any]) -> Document:
        """
        Decode one row.

        Raises:
            RowDecodeError: If a mapped column is absent from the row
        """
        values = {}
        for column, attr in COLUMN_MAP.items():
            try:
                values[attr] = row[column]
            except (KeyError, IndexError):
                raise RowDecodeError(column) from None

        authors = split_authors(values['author'])

        return Document(
            **values,
            authors=authors,
            author_names=[author_display_name(token) for token in authors],
            summary=self.normalizer.summarize(values['content'])
        )

    def project_all(self, rows) -> List[Document]:
        return [self.project(row) for row in rows]
