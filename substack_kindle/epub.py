"""EPUB construction backed by ebooklib."""

from __future__ import annotations

import logging
import uuid
from pathlib import Path
from typing import Dict, List, Sequence

from ebooklib import epub

from .markup import (
    ARTICLE_CSS,
    compose_article_html,
    compose_document_cover,
    compose_document_section,
    compose_original_section,
    rewrite_image_sources,
    text_to_paragraphs,
)
from .models import ContentRecord, ImageDownload

logger = logging.getLogger("substack_kindle.epub")

BOOK_LANGUAGE = "en"
STYLESHEET_NAME = "style/article.css"
PARAGRAPHS_PER_SECTION = 100


def _new_book(title: str, author: str) -> epub.EpubBook:
    book = epub.EpubBook()
    book.set_identifier(f"urn:uuid:{uuid.uuid4()}")
    book.set_title(title)
    book.set_language(BOOK_LANGUAGE)
    if author:
        book.add_author(author)
    return book


def _finish_book(book: epub.EpubBook, chapters: List[epub.EpubHtml], output_path: Path) -> Path:
    book.toc = tuple(chapters)
    book.spine = ["nav", *chapters]
    book.add_item(epub.EpubNcx())
    book.add_item(epub.EpubNav())
    output_path.parent.mkdir(parents=True, exist_ok=True)
    epub.write_epub(str(output_path), book, {})
    logger.info("Saved EPUB to %s", output_path)
    return output_path


def _add_images(book: epub.EpubBook, downloads: Sequence[ImageDownload]) -> Dict[str, str]:
    """Embed downloaded images and map their source URLs to in-book paths."""
    replacements: Dict[str, str] = {}
    embedded: Dict[str, str] = {}
    for download in downloads:
        asset = download.asset
        if asset is None:
            continue
        internal_path = embedded.get(asset.filename)
        if internal_path is None:
            internal_path = f"images/{asset.filename}"
            book.add_item(
                epub.EpubImage(
                    uid=f"image-{len(embedded) + 1:03d}",
                    file_name=internal_path,
                    media_type=asset.media_type,
                    content=asset.path.read_bytes(),
                )
            )
            embedded[asset.filename] = internal_path
        replacements[download.url] = internal_path
    return replacements


def build_article_epub(
    record: ContentRecord,
    downloads: Sequence[ImageDownload],
    output_path: Path,
) -> Path:
    """Write a single-section EPUB for a scraped article."""
    book = _new_book(record.title, record.author)
    if record.published_at is not None:
        book.add_metadata("DC", "date", record.published_at.isoformat())
    book.add_metadata("DC", "source", record.source)

    style = epub.EpubItem(
        uid="style",
        file_name=STYLESHEET_NAME,
        media_type="text/css",
        content=ARTICLE_CSS,
    )
    book.add_item(style)

    replacements = _add_images(book, downloads)
    body = rewrite_image_sources(record.body, replacements, base_url=record.source)

    chapter = epub.EpubHtml(title=record.title or "Article", file_name="article.xhtml", lang=BOOK_LANGUAGE)
    chapter.content = compose_article_html(record, body)
    chapter.add_item(style)
    book.add_item(chapter)
    return _finish_book(book, [chapter], output_path)


def build_document_epub(
    record: ContentRecord,
    output_path: Path,
    include_original: bool = False,
) -> Path:
    """Write an EPUB from the plain text of a PDF.

    The text is split into sections of at most ``PARAGRAPHS_PER_SECTION``
    paragraphs, preceded by a cover page. With ``include_original`` the PDF
    itself is stored in the book along with a page linking to it.
    """
    book = _new_book(record.title, record.author)

    cover = epub.EpubHtml(title="Cover", file_name="cover.xhtml", lang=BOOK_LANGUAGE)
    cover.content = compose_document_cover(record.title, record.author)
    book.add_item(cover)
    chapters: List[epub.EpubHtml] = [cover]

    paragraphs = text_to_paragraphs(record.body)
    for start in range(0, len(paragraphs), PARAGRAPHS_PER_SECTION):
        part = start // PARAGRAPHS_PER_SECTION + 1
        section = epub.EpubHtml(
            title=f"Content Part {part}",
            file_name=f"part-{part:03d}.xhtml",
            lang=BOOK_LANGUAGE,
        )
        section.content = compose_document_section(
            paragraphs[start : start + PARAGRAPHS_PER_SECTION]
        )
        book.add_item(section)
        chapters.append(section)

    if include_original:
        source = Path(record.source)
        try:
            data = source.read_bytes()
        except OSError as exc:
            logger.warning("Failed to include original PDF %s: %s", source, exc)
        else:
            internal_path = f"original/{source.name}"
            book.add_item(
                epub.EpubItem(
                    uid="original-pdf",
                    file_name=internal_path,
                    media_type="application/pdf",
                    content=data,
                )
            )
            original = epub.EpubHtml(title="Original PDF", file_name="original.xhtml", lang=BOOK_LANGUAGE)
            original.content = compose_original_section(source.name, internal_path)
            book.add_item(original)
            chapters.append(original)

    return _finish_book(book, chapters, output_path)
