"""Local PDF documents as a content source."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Union

try:  # Optional PDF text support
    import pypdfium2 as pdfium
except ImportError:  # pragma: no cover - optional dependency
    pdfium = None  # type: ignore[assignment]

from .content import ContentSource
from .errors import InputError
from .models import BodyStatus, ContentRecord, SourceKind

logger = logging.getLogger("substack_kindle.documents")

SUPPORTED_DOCUMENT_SUFFIXES = {".pdf"}
DEFAULT_DOCUMENT_AUTHOR = "PDF Conversion"
EXTRACTION_FAILED_TEXT = (
    "Failed to extract text from this PDF. "
    "The original PDF file may be included as an attachment."
)


@dataclass
class DocumentOptions:
    """Caller overrides for the metadata of a PDF."""

    title: Optional[str] = None
    author: Optional[str] = None


def validate_document_path(path: Union[str, Path]) -> Path:
    """Return the absolute path of a readable PDF or raise :class:`InputError`."""
    candidate = Path(path).expanduser()
    if not candidate.exists():
        raise InputError(f"File does not exist: {candidate}")
    if candidate.is_dir():
        raise InputError(f"Path is a directory, not a file: {candidate}")
    if not candidate.is_file():
        raise InputError(f"Path is not a regular file: {candidate}")
    if candidate.suffix.lower() not in SUPPORTED_DOCUMENT_SUFFIXES:
        raise InputError(f"File does not have a .pdf extension: {candidate}")
    return candidate.resolve()


def extract_pdf_text(path: Path) -> str:
    """Return the plain text of every page, pages separated by blank lines."""
    if pdfium is None:  # pragma: no cover - optional dependency handling
        raise RuntimeError(
            "PDF support requires the 'pypdfium2' package. Install it with 'pip install pypdfium2'."
        )
    document = pdfium.PdfDocument(str(path))
    pages: List[str] = []
    try:
        for page_index, page in enumerate(document, start=1):
            textpage = page.get_textpage()
            try:
                text = textpage.get_text_range()
            finally:
                textpage.close()
                page.close()
            pages.append(text.replace("\r\n", "\n").strip())
            logger.debug("Extracted %d characters from %s page %d", len(text), path.name, page_index)
    finally:
        document.close()
    return "\n\n".join(page for page in pages if page)


class LocalDocument(ContentSource):
    """A PDF on the local filesystem."""

    def __init__(self, path: Union[str, Path], options: Optional[DocumentOptions] = None) -> None:
        self.options = options or DocumentOptions()
        self.path = validate_document_path(path)

    @property
    def description(self) -> str:
        return str(self.path)

    def read(self) -> ContentRecord:
        logger.info("Processing PDF file %s", self.path)
        try:
            text = extract_pdf_text(self.path)
        except Exception as exc:  # noqa: BLE001 - text is best effort
            logger.warning("Failed to extract text from %s: %s", self.path, exc)
            text = ""

        status = BodyStatus.FOUND if text.strip() else BodyStatus.EMPTY
        return ContentRecord(
            title=self.options.title or self.path.stem,
            author=self.options.author or DEFAULT_DOCUMENT_AUTHOR,
            body=text or EXTRACTION_FAILED_TEXT,
            source=str(self.path),
            kind=SourceKind.DOCUMENT,
            body_status=status,
        )

    def acquire(self) -> ContentRecord:
        return self.read()
