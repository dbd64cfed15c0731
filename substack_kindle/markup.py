"""HTML composition helpers shared by the EPUB and Mobipocket writers."""

from __future__ import annotations

import html
import re
from datetime import datetime
from typing import List, Mapping, Optional
from urllib.parse import urljoin

from bs4 import BeautifulSoup

from .models import ContentRecord

ARTICLE_CSS = """
body {
    font-family: serif;
    margin: 5%;
    text-align: justify;
}
h1, h2, h3, h4, h5, h6 {
    text-align: left;
    margin-top: 1em;
}
img {
    max-width: 100%;
    height: auto;
}
blockquote {
    margin: 1em 2em;
    font-style: italic;
}
""".strip()

_WHITESPACE = re.compile(r"\s+")
_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")


def format_published(value: Optional[datetime]) -> Optional[str]:
    """Render a publish date as e.g. ``January 2, 2006``."""
    if value is None:
        return None
    return f"{value:%B} {value.day}, {value.year}"


def rewrite_image_sources(
    body: str,
    replacements: Mapping[str, str],
    base_url: str = "",
    attribute: str = "src",
) -> str:
    """Point ``<img>`` elements at local copies.

    Sources are resolved against ``base_url`` before lookup. Images without a
    replacement are removed, as are responsive ``srcset`` candidates, since
    an offline reader cannot fetch them.
    """
    if not body:
        return body
    soup = BeautifulSoup(body, "html.parser")
    for source in soup.find_all("source"):
        source.decompose()
    for img in soup.find_all("img"):
        src = (img.get("src") or "").strip()
        target = replacements.get(urljoin(base_url, src)) if src else None
        if target is None:
            img.decompose()
            continue
        for attr in ("srcset", "sizes", "data-attrs"):
            if attr in img.attrs:
                del img[attr]
        if attribute != "src":
            del img["src"]
        img[attribute] = target
    return soup.decode()


def compose_article_html(
    record: ContentRecord,
    body: str,
    stylesheet_href: Optional[str] = None,
    inline_css: bool = False,
) -> str:
    """Wrap the article body with a title, byline, date and source header."""
    title = html.escape(record.title)
    author = html.escape(record.author)
    source = html.escape(record.source, quote=True)

    head_parts = [f"<title>{title}</title>"]
    if stylesheet_href:
        head_parts.append(
            f'<link rel="stylesheet" type="text/css" href="{html.escape(stylesheet_href)}" />'
        )
    if inline_css:
        head_parts.append(f"<style>\n{ARTICLE_CSS}\n</style>")

    header_parts = [f"<h1>{title}</h1>", f"<p><strong>By {author}</strong></p>"]
    published = format_published(record.published_at)
    if published:
        header_parts.append(f"<p><em>Published: {published}</em></p>")
    header_parts.append(f'<p><em>Source: <a href="{source}">{source}</a></em></p>')
    header_parts.append("<hr/>")

    return (
        "<html>\n<head>\n"
        + "\n".join(head_parts)
        + "\n</head>\n<body>\n"
        + "\n".join(header_parts)
        + "\n"
        + body
        + "\n</body>\n</html>\n"
    )


def clean_text(text: str) -> str:
    """Escape a paragraph for HTML and collapse whitespace."""
    text = html.escape(text)
    text = _WHITESPACE.sub(" ", text)
    return _CONTROL_CHARS.sub("", text).strip()


def text_to_paragraphs(text: str) -> List[str]:
    """Split extracted text on blank lines into escaped paragraphs."""
    paragraphs: List[str] = []
    for block in (text or "").split("\n\n"):
        block = block.strip()
        if not block:
            continue
        cleaned = clean_text(block.replace("\n", " "))
        if cleaned:
            paragraphs.append(cleaned)
    return paragraphs


def compose_document_cover(title: str, author: str) -> str:
    title = html.escape(title)
    author = html.escape(author)
    return (
        f"<html><head><title>{title}</title></head><body>"
        f"<h1>{title}</h1>"
        f"<h2>By {author}</h2>"
        "<p>This is a converted PDF document.</p>"
        "<p>The original PDF may contain formatting and content that could not "
        "be fully preserved in this conversion.</p>"
        "</body></html>"
    )


def compose_document_section(paragraphs: List[str]) -> str:
    body = "".join(f"<p>{paragraph}</p>" for paragraph in paragraphs)
    return f"<html><head><title>PDF Content</title></head><body>{body}</body></html>"


def compose_original_section(filename: str, href: str) -> str:
    return (
        "<html><head><title>Original PDF</title></head><body>"
        "<h1>Original PDF Document</h1>"
        f"<p>The original PDF file \"{html.escape(filename)}\" has been included as an attachment.</p>"
        "<p>Some e-readers may allow you to open this PDF directly.</p>"
        f'<p>If your e-reader supports it, you can <a href="{html.escape(href)}">'
        "click here to open the PDF</a>.</p>"
        "</body></html>"
    )
