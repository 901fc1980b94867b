"""Tests for row projection and summaries."""

import pytest

from conftest import make_row
from report_search.common.errors import RowDecodeError
from report_search.common.text_utils import TextNormalizer
from report_search.search.projection import (
    RowProjector,
    author_display_name,
    split_authors,
)


class TestSummary:
    """Summaries are markup-free, collapsed and capped."""

    def test_strips_tags_and_collapses_whitespace(self):
        summary = TextNormalizer().summarize("<p>Hello \n\n  <b>world</b></p>")
        assert summary == "Hello world..."

    def test_caps_length(self):
        summary = TextNormalizer().summarize("<div>" + "字" * 500 + "</div>")
        assert summary == "字" * 200 + "..."

    def test_unclosed_trailing_tag_dropped(self):
        assert TextNormalizer().summarize("text <span") == "text..."

    @pytest.mark.parametrize("content", [None, "", 42, b"<p>bytes</p>"])
    def test_non_text_content_gives_empty_summary(self, content):
        assert TextNormalizer().summarize(content) == ""

    def test_plain_text_decodes_entities(self):
        text = TextNormalizer().to_plain_text("<p>A&amp;B</p><script>x()</script><p>C</p>")
        assert text == "A&B C"


class TestAuthors:
    """Author tokens and display names."""

    def test_split_and_trim(self):
        assert split_authors("123.张三, 456.李四 ,") == ["123.张三", "456.李四"]

    def test_empty(self):
        assert split_authors(None) == []
        assert split_authors("") == []

    def test_display_name_after_first_separator(self):
        assert author_display_name("123.张三") == "张三"
        assert author_display_name("7.J. Smith") == "J. Smith"

    def test_display_name_without_separator(self):
        assert author_display_name("张三") == "张三"


class TestRowProjector:
    """Rows decode into Documents or fail loudly."""

    def test_projects_row(self):
        doc = RowProjector().project(make_row("AP0001"))
        assert doc.info_code == "AP0001"
        assert doc.authors == ["123.张三", "456.李四"]
        assert doc.author_names == ["张三", "李四"]
        assert doc.summary == "宏观经济 展望..."

    def test_public_field_names(self):
        data = RowProjector().project(make_row("AP0001")).to_dict()
        assert data["infoCode"] == "AP0001"
        assert data["orgSName"] == "中信证券"
        assert data["authorNames"] == ["张三", "李四"]
        assert data["column"] == "0001"
        assert "info_code" not in data

    def test_industry_label_prefers_general(self):
        doc = RowProjector().project(make_row("A", industryName="银行", indvInduName="酿酒行业"))
        assert doc.industry_label == "银行"

    def test_industry_label_falls_back_to_individual(self):
        doc = RowProjector().project(make_row("A"))
        assert doc.industry_label == "酿酒行业"
        assert doc.indv_indu_code == "477"

    def test_missing_column_raises(self):
        row = make_row("AP0001")
        del row["pdfLink"]
        with pytest.raises(RowDecodeError) as exc_info:
            RowProjector().project(row)
        assert exc_info.value.column == "pdfLink"

    def test_no_content_no_summary(self):
        doc = RowProjector().project(make_row("A", content=None))
        assert doc.summary == ""
