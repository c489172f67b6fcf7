"""Unit tests for content classification and extraction."""

import logging

import pytest

from pagestream.parsers import PDF_PLACEHOLDER, ContentKind, ParseResult, parse, parse_from_url, should_extract_links
from pagestream.parsers import html, text
from pagestream.parsers.text import CRAWL_TEXT_OPTIONS, TextParserOptions


class TestContentKind:
    @pytest.mark.parametrize(
        ("url", "kind"),
        [
            ("https://example.com/notes.txt", ContentKind.TEXT),
            ("https://example.com/config.yaml", ContentKind.TEXT),
            ("https://example.com/config.yml", ContentKind.TEXT),
            ("https://example.com/_sources/index.rst.txt", ContentKind.TEXT),
            ("https://example.com/_sources/page", ContentKind.TEXT),
            ("https://example.com/paper.pdf", ContentKind.PDF),
            ("https://example.com/logo.png", ContentKind.OTHER),
            ("https://example.com/site.css", ContentKind.OTHER),
            ("https://example.com/app.js", ContentKind.OTHER),
            ("https://example.com/guide/", ContentKind.HTML),
            ("https://example.com/page.html", ContentKind.HTML),
        ],
    )
    def test_from_url(self, url, kind):
        assert ContentKind.from_url(url) is kind

    def test_classification_is_logged(self, caplog):
        with caplog.at_level(logging.DEBUG, logger="pagestream.parsers"):
            ContentKind.from_url("https://example.com/paper.pdf")

        assert "Classifying as PDF: https://example.com/paper.pdf" in caplog.messages

    def test_only_html_extracts_links(self):
        assert should_extract_links("https://example.com/guide/")
        assert not should_extract_links("https://example.com/notes.txt")
        assert not should_extract_links("https://example.com/paper.pdf")


class TestTextParser:
    def test_empty_and_whitespace_input(self):
        assert text.parse("") == ""
        assert text.parse("   \n\t\n  ") == ""

    def test_paragraphs_preserved_with_single_blank_line(self):
        options = TextParserOptions(preserve_paragraphs=True)

        assert text.parse("Paragraph 1.\n\n\n\nParagraph 2.", options) == "Paragraph 1.\n\nParagraph 2."

    def test_default_options_join_everything(self):
        assert text.parse("Line one\nLine two\n\nNext   paragraph") == "Line one Line two Next paragraph"

    def test_lines_are_trimmed(self):
        assert text.parse("   padded line   \n\tindented") == "padded line indented"

    def test_line_breaks_preserved(self):
        options = TextParserOptions(preserve_line_breaks=True)

        assert text.parse("first\nsecond", options) == "first\nsecond"

    def test_line_breaks_and_paragraphs_preserved(self):
        options = TextParserOptions(preserve_paragraphs=True, preserve_line_breaks=True)

        assert text.parse("a  b\nc\n\n\nd", options) == "a b\nc\n\nd"

    def test_whitespace_kept_when_normalization_disabled(self):
        options = TextParserOptions(normalize_whitespace=False)

        assert text.parse("a    b", options) == "a    b"

    def test_urls_in_text_are_not_links(self):
        result = parse("see https://example.com/page for details", ContentKind.TEXT)

        assert result.links == []
        assert "https://example.com/page" in result.content


class TestHtmlParser:
    DOCUMENT = """
        <html>
          <head><title>  Guide   Home </title><style>body { color: red; }</style></head>
          <body>
            <h1>Welcome</h1>
            <script>var x = 1;</script>
            <p>First   paragraph.</p>
            <a href="/docs/intro">Intro</a>
            <a href="https://other.org/">Other</a>
            <a>No href</a>
          </body>
        </html>
    """

    def test_parse_returns_text_links_and_title(self):
        body, links, title = html.parse(self.DOCUMENT)

        assert body == "Welcome First paragraph. Intro Other No href"
        assert links == ["/docs/intro", "https://other.org/"]
        assert title == "Guide Home"

    def test_link_count_is_logged(self, caplog):
        with caplog.at_level(logging.DEBUG, logger="pagestream.parsers.html"):
            html.parse(self.DOCUMENT)

        assert "HTML parser found 2 links" in caplog.messages
        assert "First few links: ['/docs/intro', 'https://other.org/']" in caplog.messages

    def test_text_and_links_helpers(self):
        assert "var x" not in html.parse_text_only(self.DOCUMENT)
        assert html.parse_links_only(self.DOCUMENT) == ["/docs/intro", "https://other.org/"]

    def test_missing_title(self):
        _, _, title = html.parse("<html><body><p>x</p></body></html>")

        assert title is None

    def test_unwrap_plain_text_from_browser_wrapper(self):
        wrapped = '<html><head></head><body><pre style="word-wrap: break-word">line 1\n\nline 2</pre></body></html>'

        assert html.unwrap_plain_text(wrapped) == "line 1\n\nline 2"
        assert html.unwrap_plain_text("raw text") == "raw text"


class TestParseDispatch:
    def test_html_kind(self):
        result = parse('<html><head><title>T</title></head><body>Hi <a href="/x">x</a></body></html>', ContentKind.HTML)

        assert isinstance(result, ParseResult)
        assert result.content == "Hi x"
        assert result.links == ["/x"]
        assert result.title == "T"

    def test_pdf_kind_returns_placeholder(self):
        result = parse("%PDF-1.7 binary", ContentKind.PDF)

        assert result.content == PDF_PLACEHOLDER
        assert result.links == []

    def test_text_kind_unwraps_and_parses(self):
        source = "<html><body><pre>Paragraph 1.\n\n\n\nParagraph 2.</pre></body></html>"

        result = parse(source, ContentKind.TEXT, CRAWL_TEXT_OPTIONS)

        assert result.content == "Paragraph 1.\n\nParagraph 2."
        assert result.links == []

    def test_parse_from_url_classifies(self):
        result = parse_from_url("plain   words", "https://example.com/readme.txt")

        assert result.content == "plain words"
