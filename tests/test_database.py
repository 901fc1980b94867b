"""Integration tests against a seeded SQLite store."""

import threading

import pytest

from conftest import REPORT_COUNT
from report_search.common.errors import TransientStoreError
from report_search.search.facets import FacetVocabularyProvider, collation_key
from report_search.search.filters import FilterRequest
from report_search.storage.database import SqliteDocumentStore


def search(engine, **params):
    return engine.search(FilterRequest.from_params(params))


def codes(result):
    return [doc["infoCode"] for doc in result["data"]]


class TestSearch:
    """End-to-end filtering over the sample corpus."""

    def test_reports_without_link_excluded(self, engine):
        result = search(engine, pageSize="100")
        assert result["pagination"]["totalItems"] == REPORT_COUNT
        assert "NOLINK" not in codes(result)

    def test_pagination_metadata(self, engine):
        result = search(engine, pageSize="10", page="3")
        assert result["pagination"] == {
            "currentPage": 3,
            "pageSize": 10,
            "totalItems": REPORT_COUNT,
            "totalPages": 3,
        }
        assert len(result["data"]) == 5

    def test_page_past_end_is_empty(self, engine):
        result = search(engine, pageSize="10", page="9")
        assert result["data"] == []
        assert result["pagination"]["totalItems"] == REPORT_COUNT

    def test_second_page_is_ranks_21_to_40(self, engine):
        everything = codes(search(engine, pageSize="100"))
        page_two = codes(search(engine, page="2", pageSize="20"))
        assert page_two == everything[20:40]

    def test_ties_broken_by_info_code_descending(self, engine):
        # AP0022 and AP0023 share a publish date
        assert codes(search(engine, pageSize="3")) == ["AP0024", "AP0023", "AP0022"]

    def test_ties_broken_by_info_code_ascending(self, engine):
        assert codes(search(engine, pageSize="3", order="asc")) == ["AP0000", "AP0001", "AP0002"]

    def test_unknown_sort_behaves_like_default(self, engine):
        assert codes(search(engine, sortBy="bogus")) == codes(search(engine))

    def test_full_text_keyword(self, engine):
        result = search(engine, contentQuery="宏观经济", pageSize="100")
        assert result["pagination"]["totalItems"] == 9
        assert all(int(code[2:]) % 3 == 0 for code in codes(result))

    def test_substring_keyword(self, engine):
        result = search(engine, contentQuery="AB", pageSize="100")
        assert sorted(codes(result)) == ["AP0000", "AP0005", "AP0010", "AP0015", "AP0020"]

    def test_mixed_keywords(self, engine):
        result = search(engine, contentQuery="宏观经济 AB")
        assert sorted(codes(result)) == ["AP0000", "AP0015"]
        assert result["pagination"]["totalItems"] == 2

    def test_author_filter(self, engine):
        result = search(engine, author="100.作者0", pageSize="100")
        assert result["pagination"]["totalItems"] == 7
        assert all(doc["authorNames"] == ["作者0"] for doc in result["data"])

    def test_several_authors(self, engine):
        result = search(engine, author="100.作者0,101.作者1")
        assert result["pagination"]["totalItems"] == 13

    def test_industry_matches_either_classification(self, engine):
        result = search(engine, industryCode="477", pageSize="100")
        assert result["pagination"]["totalItems"] == 13
        assert {doc["industryLabel"] for doc in result["data"]} == {"酿酒行业"}

    def test_attach_pages_threshold(self, engine):
        result = search(engine, attachPages="20", pageSize="100")
        assert result["pagination"]["totalItems"] == 6
        assert min(doc["attachPages"] for doc in result["data"]) == 20

    def test_facets_combine_with_and(self, engine):
        result = search(engine, stockCode="600519", market="SHANGHAI", pageSize="100")
        assert sorted(codes(result)) == ["AP0000", "AP0010", "AP0020"]

    def test_sort_by_title(self, engine):
        result = search(engine, sortBy="title", order="asc", pageSize="2")
        assert [doc["title"] for doc in result["data"]] == ["报告00", "报告01"]


class TestFacets:
    """Filter options from the store."""

    def test_institutions_sorted_by_pinyin(self, store):
        options = FacetVocabularyProvider(store, None, None).get_options()
        assert [o["label"] for o in options.institutions] == ["安信证券", "国泰君安", "中信证券"]

    def test_stock_labels_include_code(self, store):
        options = FacetVocabularyProvider(store, None, None).get_options()
        assert options.stocks == [{"value": "600519", "label": "贵州茅台 (600519)"}]

    def test_static_vocabularies_loaded(self, store, tmp_path):
        path = tmp_path / "industries.json"
        path.write_text('[{"value": "477", "label": "酿酒行业"}]', encoding="utf-8")
        options = FacetVocabularyProvider(store, str(path), None).get_options()
        assert options.industries == [{"value": "477", "label": "酿酒行业"}]
        assert options.columns == []

    def test_collation_is_not_code_point_order(self):
        labels = ["中信证券", "安信证券", "国泰君安"]
        assert sorted(labels) != sorted(labels, key=collation_key)


class TestSqliteDocumentStore:
    """Store failures surface as transient errors."""

    def test_bad_sql(self, store):
        with pytest.raises(TransientStoreError):
            store.execute("SELECT * FROM no_such_table")

    def test_deadline_aborts_long_query(self, db_path):
        store = SqliteDocumentStore(db_path, timeout_seconds=0.05)
        try:
            with pytest.raises(TransientStoreError):
                store.execute(
                    "WITH RECURSIVE c(x) AS (SELECT 1 UNION ALL SELECT x + 1 FROM c LIMIT 500000000) "
                    "SELECT COUNT(*) FROM c"
                )
            # The connection stays usable afterwards
            assert store.execute("SELECT 1 AS one") == [{"one": 1}]
        finally:
            store.close()

    def test_waiting_for_busy_store_is_bounded(self, db_path):
        store = SqliteDocumentStore(db_path, timeout_seconds=0.05)
        entered = threading.Event()
        release = threading.Event()

        def hold_session():
            with store.session():
                entered.set()
                release.wait(5)

        holder = threading.Thread(target=hold_session)
        holder.start()
        try:
            assert entered.wait(5)
            with pytest.raises(TransientStoreError):
                store.execute("SELECT 1 AS one")
        finally:
            release.set()
            holder.join()

        assert store.execute("SELECT 1 AS one") == [{"one": 1}]
        store.close()
