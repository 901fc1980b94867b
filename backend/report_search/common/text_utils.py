"""
Text utilities for report content.
"""

import re
import html

from ..config.search_config import SEARCH_CONFIG


class TextNormalizer:
    """Turns rich report content into plain text and summaries."""

    def __init__(
        self,
        summary_length: int = SEARCH_CONFIG['summary_length'],
        ellipsis: str = SEARCH_CONFIG['summary_ellipsis']
    ):
        self.summary_length = summary_length
        self.ellipsis = ellipsis

        # A trailing '<' without its '>' is dropped as well
        self.tag_pattern = re.compile(r'<[^>]*>?')
        self.script_pattern = re.compile(r'<(script|style)[^>]*>.*?</\1>', re.DOTALL | re.IGNORECASE)
        self.comment_pattern = re.compile(r'<!--.*?-->', re.DOTALL)
        self.multiple_spaces = re.compile(r'\s+')

    def summarize(self, content) -> str:
        """
        Build the plain-text summary shown in result lists.

        Markup is stripped, whitespace collapsed, and the text capped at
        ``summary_length`` characters followed by the ellipsis marker.
        Anything that is not a non-empty string yields an empty summary.
        """
        if not content or not isinstance(content, str):
            return ""

        text = self.tag_pattern.sub('', content)
        text = self.multiple_spaces.sub(' ', text).strip()

        return text[:self.summary_length] + self.ellipsis

    def to_plain_text(self, content: str) -> str:
        """
        Plain text for the full-text index.

        Unlike summaries, entities are decoded and script/style bodies dropped
        so the index only sees readable words.
        """
        if not content:
            return ""

        text = self.script_pattern.sub('', content)
        text = self.comment_pattern.sub('', text)
        text = self.tag_pattern.sub(' ', text)
        text = html.unescape(text)

        return self.multiple_spaces.sub(' ', text).strip()
