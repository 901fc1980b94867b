"""Tests for filter requests and predicate assembly."""

import pytest

from report_search.common.errors import ValidationError
from report_search.search.filters import (
    BASELINE_CLAUSE,
    FilterRequest,
    PredicateBuilder,
    build_predicate,
)


def request_for(**params):
    return FilterRequest.from_params(params)


class TestFilterRequestParsing:
    """Query-string parsing never fails and always yields valid values."""

    def test_defaults(self):
        request = request_for()
        assert request.page == 1
        assert request.page_size == 20
        assert request.sort_by == "publishDate"
        assert request.order == "desc"
        assert request.facets == {}
        assert request.content_query is None
        assert request.attach_pages is None

    @pytest.mark.parametrize("page", ["0", "-3", "abc", ""])
    def test_bad_page_falls_back_to_first(self, page):
        assert request_for(page=page).page == 1

    def test_page_size_is_clamped(self):
        assert request_for(pageSize="1000").page_size == 100
        assert request_for(pageSize="0").page_size == 1
        assert request_for(pageSize="x").page_size == 20

    def test_unknown_sort_falls_back_to_publish_date(self):
        request = request_for(sortBy="relevance")
        assert request.sort_by == "publishDate"
        assert request.sort_spec().column == "publishDate"

    def test_org_short_name_alias(self):
        assert request_for(sortBy="orgShortName").sort_spec().column == "orgSName"

    def test_order_is_case_insensitive(self):
        assert request_for(order="ASC").order == "asc"
        assert request_for(order="sideways").order == "desc"

    def test_comma_separated_facets(self):
        request = request_for(stockCode=" 600519, ,000001 ", market="")
        assert request.facets == {"stockCode": frozenset({"600519", "000001"})}

    def test_bad_attach_pages_ignored(self):
        assert request_for(attachPages="many").attach_pages is None
        assert request_for(attachPages="10").attach_pages == 10

    def test_offset(self):
        assert request_for(page="3", pageSize="20").offset == 40

    def test_canonical_params_ignore_value_order(self):
        first = request_for(stockCode="b,a", orgCode="x")
        second = request_for(orgCode="x", stockCode="a,b")
        assert first.canonical_params() == second.canonical_params()

    def test_canonical_params_distinguish_pages(self):
        assert request_for(page="1").canonical_params() != request_for(page="2").canonical_params()


class TestPredicateBuilder:
    """Predicates keep fragments and parameters aligned."""

    def test_baseline_always_present(self):
        predicate = build_predicate(request_for())
        assert predicate.clauses[0] == (BASELINE_CLAUSE, ())
        assert predicate.params() == []
        assert not predicate.use_full_text

    def test_facets_become_in_clauses(self):
        predicate = build_predicate(request_for(reportType="stock,industry", market="SHANGHAI"))
        where = predicate.where_sql()
        assert "reports.reportType IN (?, ?)" in where
        assert "reports.market IN (?)" in where
        assert predicate.params() == ["industry", "stock", "SHANGHAI"]

    def test_column_facet_is_quoted(self):
        predicate = build_predicate(request_for(columnCode="0001"))
        assert 'reports."column" IN (?)' in predicate.where_sql()

    def test_values_never_interpolated(self):
        hostile = "x') OR 1=1 --"
        predicate = build_predicate(request_for(orgCode=hostile))
        assert hostile not in predicate.where_sql()
        assert hostile in predicate.params()

    def test_industry_matches_either_classification(self):
        predicate = build_predicate(request_for(industryCode="477"))
        assert (
            "(reports.industryCode IN (?) OR reports.indvInduCode IN (?))"
            in predicate.where_sql()
        )
        assert predicate.params() == ["477", "477"]

    def test_author_ids_use_inverted_index(self):
        predicate = build_predicate(request_for(author="123.张三,456.李四"))
        fragment, params = predicate.clauses[-1]
        assert "report_author_index" in fragment
        assert "author_id IN (?, ?)" in fragment
        assert list(params) == ["123", "456"]
        assert "LIKE" not in predicate.where_sql()

    def test_author_without_id_adds_nothing(self):
        predicate = build_predicate(request_for(author=".张三"))
        assert "report_author_index" not in predicate.where_sql()

    def test_full_text_keyword(self):
        predicate = build_predicate(request_for(contentQuery="宏观经济"))
        assert predicate.use_full_text
        assert "reports_fts.content_text MATCH ?" in predicate.where_sql()
        assert "LIKE" not in predicate.where_sql()
        assert predicate.params() == ['"宏观经济"']
        assert "JOIN reports_fts" in predicate.from_sql()

    def test_two_character_keyword(self):
        predicate = build_predicate(request_for(contentQuery="AB"))
        assert not predicate.use_full_text
        assert "MATCH" not in predicate.where_sql()
        like_clauses = [f for f, _ in predicate.clauses if "LIKE" in f]
        assert len(like_clauses) == 1
        assert predicate.params() == ["%AB%"]
        assert predicate.from_sql() == "FROM reports"

    def test_like_wildcards_escaped(self):
        predicate = build_predicate(request_for(contentQuery="5%"))
        assert predicate.params() == ["%5\\%%"]

    def test_mixed_keywords(self):
        predicate = build_predicate(request_for(contentQuery="宏观经济 AB 债券"))
        assert predicate.use_full_text
        assert predicate.params() == ['"宏观经济"', "%AB%", "%债券%"]

    def test_short_keyword_rejected_before_building(self):
        builder = PredicateBuilder()
        with pytest.raises(ValidationError):
            builder.build_for(request_for(contentQuery="宏观经济 A", stockCode="600519"))
        assert builder.build().clauses == ()

    def test_attach_pages_threshold(self):
        predicate = build_predicate(request_for(attachPages="15"))
        assert predicate.clauses[-1] == ("reports.attachPages >= ?", (15,))

    def test_placeholder_count_matches_params(self):
        predicate = build_predicate(request_for(
            reportType="a,b", industryCode="1,2,3", author="9.x",
            contentQuery="宏观经济 AB", attachPages="3"
        ))
        assert predicate.where_sql().count("?") == len(predicate.params())


class TestSortSpec:
    """Ties are broken by infoCode in the primary direction."""

    def test_descending(self):
        order_by = request_for().sort_spec().order_by()
        assert order_by == "reports.publishDate DESC, reports.infoCode DESC"

    def test_ascending(self):
        order_by = request_for(sortBy="title", order="asc").sort_spec().order_by()
        assert order_by == "reports.title ASC, reports.infoCode ASC"
