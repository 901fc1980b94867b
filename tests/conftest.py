"""Shared fixtures: a seeded SQLite report store and a recording fake store."""

import pytest
from fastapi.testclient import TestClient

from report_search.api.main import create_app
from report_search.cache.result_cache import ResultCache, InMemoryCache
from report_search.common.errors import TransientStoreError
from report_search.search.search_engine import ReportSearchEngine
from report_search.storage.database import (
    DocumentStore,
    ReportLoader,
    SqliteDocumentStore,
    init_database,
)

ORGS = [
    ('80000031', '中信证券'),
    ('80000210', '安信证券'),
    ('80000052', '国泰君安'),
]

REPORT_COUNT = 25

# General industry by i % 4; the i % 4 == 1 reports only carry the
# individual-stock classification
INDUSTRIES = [('477', '酿酒行业'), (None, None), ('1046', '游戏'), ('1046', '游戏')]


def make_report(i):
    """
    Report number i of the sample corpus.

    Consecutive pairs share a publish date so sorting must fall back to
    infoCode. Content mentions 宏观经济 when i % 3 == 0 and AB股 when
    i % 5 == 0.
    """
    org_code, org_name = ORGS[i % 3]
    content = f'<p>第{i}期</p>'
    content += '<p>宏观经济 形势分析</p>' if i % 3 == 0 else '<p>行业跟踪</p>'
    if i % 5 == 0:
        content += '<p>AB股溢价</p>'

    return {
        'infoCode': f'AP{i:04d}',
        'title': f'报告{i:02d}',
        'publishDate': f'2024-01-{i // 2 + 1:02d} 00:00:00',
        'reportType': 'stock' if i % 2 == 0 else 'industry',
        'stockCode': '600519' if i % 5 == 0 else None,
        'stockName': '贵州茅台' if i % 5 == 0 else None,
        'industryCode': INDUSTRIES[i % 4][0],
        'industryName': INDUSTRIES[i % 4][1],
        'indvInduCode': '477' if i % 4 == 1 else None,
        'indvInduName': '酿酒行业' if i % 4 == 1 else None,
        'orgCode': org_code,
        'orgSName': org_name,
        'author': f'{100 + i % 4}.作者{i % 4}',
        'column': '0001',
        'market': 'SHANGHAI' if i % 2 == 0 else 'SHENZHEN',
        'attachPages': i + 1,
        'attachSize': 1000 * (i + 1),
        'pdfLink': f'https://example.com/reports/{i}.pdf',
        'content': content,
    }


def make_reports():
    reports = [make_report(i) for i in range(REPORT_COUNT)]
    # Never searchable: no document link
    reports.append({
        'infoCode': 'NOLINK',
        'title': '无链接报告',
        'publishDate': '2024-02-01 00:00:00',
        'orgCode': '80000031',
        'orgSName': '中信证券',
        'pdfLink': None,
        'content': '<p>宏观经济</p>',
    })
    return reports


@pytest.fixture
def db_path(tmp_path):
    path = str(tmp_path / 'reports.db')
    database = init_database(path)
    try:
        ReportLoader(database.connect()).save_reports_batch(make_reports())
    finally:
        database.close()
    return path


@pytest.fixture
def store(db_path):
    store = SqliteDocumentStore(db_path)
    yield store
    store.close()


@pytest.fixture
def engine(store):
    return ReportSearchEngine(store=store, cache=ResultCache(InMemoryCache()))


@pytest.fixture
def client(engine):
    with TestClient(create_app(engine)) as client:
        yield client


class FakeStore(DocumentStore):
    """Records every query and answers with canned rows."""

    def __init__(self, rows=None, count=0, fail=False):
        self.rows = rows or []
        self.count = count
        self.fail = fail
        self.calls = []

    def execute(self, sql, params=()):
        self.calls.append((sql, list(params)))
        if self.fail:
            raise TransientStoreError("connection refused")
        if 'COUNT(*)' in sql:
            return [{'count': self.count}]
        return [dict(row) for row in self.rows]


@pytest.fixture
def fake_store():
    return FakeStore(rows=[make_row('AP0001')], count=1)


def make_row(info_code, **overrides):
    """A raw store row as the page query returns it."""
    row = {
        'infoCode': info_code,
        'title': '宏观经济周报',
        'publishDate': '2024-01-01 00:00:00',
        'reportType': 'macro',
        'stockCode': None,
        'stockName': None,
        'industryCode': None,
        'industryName': None,
        'indvInduCode': '477',
        'indvInduName': '酿酒行业',
        'orgCode': '80000031',
        'orgSName': '中信证券',
        'author': '123.张三,456.李四',
        'column': '0001',
        'market': None,
        'attachPages': 12,
        'attachSize': 2048,
        'pdfLink': 'https://example.com/a.pdf',
        'content': '<p>宏观经济   展望</p>',
    }
    row.update(overrides)
    return row
