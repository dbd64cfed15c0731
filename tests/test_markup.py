"""Tests for HTML composition helpers."""

from datetime import datetime, timezone

from substack_kindle.markup import (
    compose_article_html,
    format_published,
    rewrite_image_sources,
    text_to_paragraphs,
)
from substack_kindle.models import ContentRecord, SourceKind


def _record(**overrides):
    fields = dict(
        title="A <Title>",
        author="Jane & Co",
        body="<p>Body</p>",
        source="https://example.substack.com/p/test",
        kind=SourceKind.ARTICLE,
    )
    fields.update(overrides)
    return ContentRecord(**fields)


def test_format_published():
    assert format_published(datetime(2006, 1, 2, tzinfo=timezone.utc)) == "January 2, 2006"
    assert format_published(None) is None


class TestComposeArticleHtml:
    def test_header_is_escaped_and_includes_source(self):
        page = compose_article_html(_record(), "<p>Body</p>")

        assert "<h1>A &lt;Title&gt;</h1>" in page
        assert "By Jane &amp; Co" in page
        assert 'href="https://example.substack.com/p/test"' in page
        assert "Published:" not in page
        assert page.index("<hr/>") < page.index("<p>Body</p>")

    def test_published_line_when_date_known(self):
        record = _record(published_at=datetime(2024, 3, 5, tzinfo=timezone.utc))

        assert "Published: March 5, 2024" in compose_article_html(record, "")

    def test_inline_css(self):
        page = compose_article_html(_record(), "", inline_css=True)

        assert "<style>" in page
        assert "font-family: serif" in page


class TestRewriteImageSources:
    def test_replaces_resolved_sources_and_drops_the_rest(self):
        body = (
            '<picture><source srcset="a.webp"><img src="/img/a.png" srcset="x 1w"></picture>'
            '<img src="https://cdn.example.com/failed.png">'
        )

        result = rewrite_image_sources(
            body,
            {"https://example.substack.com/img/a.png": "images/a.png"},
            base_url="https://example.substack.com/p/test",
        )

        assert 'src="images/a.png"' in result
        assert "srcset" not in result
        assert "<source" not in result
        assert "failed.png" not in result

    def test_custom_attribute_replaces_src(self):
        result = rewrite_image_sources(
            '<img src="https://cdn.example.com/a.png">',
            {"https://cdn.example.com/a.png": "00001"},
            attribute="recindex",
        )

        assert 'recindex="00001"' in result
        assert "src=" not in result

    def test_empty_body(self):
        assert rewrite_image_sources("", {"a": "b"}) == ""


def test_text_to_paragraphs_splits_on_blank_lines_and_escapes():
    text = "First line\ncontinues here.\n\n\n  \n\nSecond <para> & more."

    assert text_to_paragraphs(text) == [
        "First line continues here.",
        "Second &lt;para&gt; &amp; more.",
    ]
