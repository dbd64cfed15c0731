"""Turn a content record into an EPUB, AZW3 or MOBI file."""

from __future__ import annotations

import logging
import shutil
import subprocess
import tempfile
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Union

from .config import ConversionOptions
from .epub import build_article_epub, build_document_epub
from .errors import ConversionError, ConverterToolError
from .images import download_images, prepare_mobi_image
from .markup import compose_article_html, rewrite_image_sources
from .mobi import MobiBook, recindex
from .models import (
    ContentRecord,
    ConversionOutcome,
    ImageDownload,
    OutputFormat,
    SourceKind,
    Strategy,
)
from .utils import build_output_stem, sanitize_filename

logger = logging.getLogger("substack_kindle.converter")


def resolve_strategy(
    fmt: OutputFormat,
    tool_available: bool,
    skip_requested: bool,
    *,
    document: bool = False,
) -> Strategy:
    """Decide once how the requested container will be produced.

    Article EPUBs are always written in-process. PDF to EPUB and every
    AZW3/MOBI request go through the external converter when it is installed
    and not explicitly skipped.
    """
    use_tool = tool_available and not skip_requested
    if fmt is OutputFormat.EPUB and not document:
        return Strategy.DIRECT
    return Strategy.EXTERNAL if use_tool else Strategy.DIRECT


def converter_available(command: str) -> bool:
    return shutil.which(command) is not None


def run_converter(command: str, input_path: Path, output_path: Path) -> Path:
    """Invoke ``<command> <input> <output>`` and return the output path."""
    logger.info("Converting %s to %s using %s", input_path.name, output_path.suffix, command)
    try:
        completed = subprocess.run(
            [command, str(input_path), str(output_path)],
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            check=False,
        )
    except OSError as exc:
        raise ConverterToolError(command, -1, str(exc)) from exc
    if completed.returncode != 0:
        raise ConverterToolError(command, completed.returncode, completed.stdout or "")
    if not output_path.exists():
        raise ConverterToolError(command, 0, f"{output_path} was not created")
    return output_path


def _discard(path: Path) -> None:
    try:
        path.unlink()
    except FileNotFoundError:
        pass
    except OSError as exc:
        logger.warning("Failed to remove intermediate file %s: %s", path, exc)


def _write_article_epub(
    record: ContentRecord,
    downloads: Sequence[ImageDownload],
    output_path: Path,
) -> Path:
    try:
        return build_article_epub(record, downloads, output_path)
    except OSError as exc:
        raise ConversionError(f"Failed to write EPUB {output_path}: {exc}") from exc


def build_mobi_book(
    record: ContentRecord,
    downloads: Sequence[ImageDownload],
    max_image_side: int,
) -> MobiBook:
    """Assemble the Mobipocket book for direct construction."""
    images: List[bytes] = []
    positions: Dict[str, int] = {}
    replacements: Dict[str, str] = {}
    for download in downloads:
        asset = download.asset
        if asset is None:
            continue
        position = positions.get(asset.filename)
        if position is None:
            try:
                data = prepare_mobi_image(asset, max_image_side)
            except (OSError, ValueError) as exc:
                logger.warning("Skipping image %s: %s", asset.url, exc)
                continue
            images.append(data)
            position = len(images)
            positions[asset.filename] = position
        replacements[download.url] = recindex(position)

    body = rewrite_image_sources(
        record.body,
        replacements,
        base_url=record.source,
        attribute="recindex",
    )
    return MobiBook(
        title=record.title,
        authors=[record.author],
        html=compose_article_html(record, body, inline_css=True),
        images=images,
        source=record.source,
        published=record.published_at,
    )


def _write_article_mobi(
    record: ContentRecord,
    downloads: Sequence[ImageDownload],
    output_path: Path,
    options: ConversionOptions,
) -> Path:
    logger.info("Creating %s file directly", output_path.suffix.lstrip(".").upper())
    book = build_mobi_book(record, downloads, options.max_image_side)
    try:
        return book.write(output_path)
    except OSError as exc:
        raise ConversionError(f"Failed to write {output_path}: {exc}") from exc


def convert_article(
    record: ContentRecord,
    fmt: OutputFormat,
    options: ConversionOptions,
    workdir: Path,
) -> ConversionOutcome:
    stem = build_output_stem(record.title, record.author)
    strategy = resolve_strategy(
        fmt,
        converter_available(options.converter_command),
        options.skip_converter,
    )
    downloads = download_images(record.image_urls, workdir, timeout=options.image_timeout)
    epub_path = workdir / f"{stem}.epub"

    if fmt is OutputFormat.EPUB:
        output_path = _write_article_epub(record, downloads, epub_path)
        return ConversionOutcome(output_path, record.title, record.author, fmt, strategy, downloads)

    target_path = workdir / f"{stem}.{fmt.extension}"
    if strategy is Strategy.EXTERNAL:
        _write_article_epub(record, downloads, epub_path)
        try:
            output_path = run_converter(options.converter_command, epub_path, target_path)
        except ConverterToolError as exc:
            logger.warning(
                "Failed to convert to %s using %s: %s. Trying direct conversion...",
                fmt.value.upper(),
                options.converter_command,
                exc,
            )
            strategy = Strategy.DIRECT
        else:
            return ConversionOutcome(output_path, record.title, record.author, fmt, strategy, downloads)
        finally:
            _discard(epub_path)

    output_path = _write_article_mobi(record, downloads, target_path, options)
    return ConversionOutcome(output_path, record.title, record.author, fmt, strategy, downloads)


def convert_document(
    record: ContentRecord,
    fmt: OutputFormat,
    options: ConversionOptions,
    workdir: Path,
) -> ConversionOutcome:
    source = Path(record.source)
    stem = sanitize_filename(source.stem) or "document"
    epub_path = workdir / f"{stem}.epub"
    strategy = resolve_strategy(
        fmt,
        converter_available(options.converter_command),
        options.skip_converter,
        document=True,
    )

    epub_strategy = strategy
    if strategy is Strategy.EXTERNAL:
        try:
            run_converter(options.converter_command, source, epub_path)
        except ConverterToolError as exc:
            logger.warning("Converter failed on %s: %s. Trying text extraction...", source.name, exc)
            epub_strategy = Strategy.DIRECT
    if epub_strategy is Strategy.DIRECT:
        try:
            build_document_epub(record, epub_path, include_original=options.include_original)
        except OSError as exc:
            raise ConversionError(f"Failed to convert PDF to EPUB: {exc}") from exc

    if fmt is OutputFormat.EPUB:
        return ConversionOutcome(epub_path, record.title, record.author, fmt, epub_strategy)

    target_path = workdir / f"{stem}.{fmt.extension}"
    try:
        if strategy is not Strategy.EXTERNAL:
            raise ConversionError(
                f"No direct EPUB to {fmt.value.upper()} conversion is available for PDFs; "
                f"install {options.converter_command} (Calibre) to enable it"
            )
        try:
            run_converter(options.converter_command, epub_path, target_path)
        except ConverterToolError as exc:
            raise ConversionError(
                f"Failed to convert EPUB to {fmt.value.upper()}: {exc}"
            ) from exc
    finally:
        _discard(epub_path)
    return ConversionOutcome(target_path, record.title, record.author, fmt, strategy)


def convert(
    content: ContentRecord,
    fmt: Union[str, OutputFormat],
    options: Optional[ConversionOptions] = None,
    workdir: Optional[Path] = None,
) -> ConversionOutcome:
    """Convert ``content`` to ``fmt`` inside ``workdir``.

    The format is validated before anything touches the filesystem. Without
    ``workdir`` a fresh temporary directory is created and owned by the caller.
    """
    output_format = OutputFormat.parse(fmt)
    options = options or ConversionOptions()
    if workdir is None:
        workdir = Path(tempfile.mkdtemp(prefix="substack-kindle-"))
    workdir.mkdir(parents=True, exist_ok=True)

    logger.info("Converting %s to %s format", content.kind.value, output_format.value.upper())
    if content.kind is SourceKind.DOCUMENT:
        return convert_document(content, output_format, options, workdir)
    return convert_article(content, output_format, options, workdir)
