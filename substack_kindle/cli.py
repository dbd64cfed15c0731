"""Command-line entry point for sending articles and PDFs to a Kindle."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Optional, Sequence

from dotenv import load_dotenv

from .config import DEFAULT_CONVERTER, ConversionOptions, EmailConfig, FetchConfig
from .content import ContentSource, RemoteArticle
from .documents import DocumentOptions, LocalDocument
from .errors import InputError, SubstackKindleError
from .models import OutputFormat
from .pipeline import run_pipeline

logger = logging.getLogger("substack_kindle.cli")


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Convert a Substack article or a local PDF to an e-book and email it to your Kindle.",
    )
    parser.add_argument("article", nargs="?", help="URL of the Substack article to convert")
    parser.add_argument("--url", "-url", dest="url", help="URL of the Substack article to convert")
    parser.add_argument("--pdf", "-pdf", dest="pdf", type=Path, help="Path to a local PDF file to convert")
    parser.add_argument(
        "--format",
        "-format",
        dest="format",
        default=OutputFormat.EPUB.value,
        help="Output format: epub, azw3 or mobi (default: epub)",
    )
    parser.add_argument("--title", help="Title to use for a PDF instead of its file name")
    parser.add_argument("--author", help="Author to use for a PDF")
    parser.add_argument(
        "--skip-converter",
        action="store_true",
        help="Do not use the external converter even if it is installed",
    )
    parser.add_argument(
        "--include-pdf",
        action="store_true",
        help="Embed the original PDF in the generated EPUB",
    )
    parser.add_argument(
        "--converter",
        default=DEFAULT_CONVERTER,
        help="External converter executable (default: %(default)s)",
    )
    parser.add_argument(
        "--require-body",
        action="store_true",
        help="Fail instead of warning when no article body is found",
    )
    parser.add_argument(
        "--allow-any-host",
        action="store_true",
        help="Accept article URLs outside substack.com (custom domains)",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=30.0,
        help="HTTP timeout in seconds for fetching the article",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )
    return parser.parse_args(argv)


def build_source(args: argparse.Namespace) -> ContentSource:
    """Pick the content source from the parsed arguments."""
    url = args.url or args.article
    if args.pdf and url:
        raise InputError("Provide either an article URL or --pdf, not both")
    if args.pdf:
        options = DocumentOptions(title=args.title, author=args.author)
        return LocalDocument(args.pdf, options)
    if not url:
        raise InputError(
            "Please provide either a Substack article URL using --url or a PDF file using --pdf"
        )
    fetch_config = FetchConfig(timeout=args.timeout, allow_any_host=args.allow_any_host)
    return RemoteArticle(url, fetch_config)


def _run(args: argparse.Namespace) -> None:
    output_format = OutputFormat.parse(args.format)
    email_config = EmailConfig.from_env()
    options = ConversionOptions(
        converter_command=args.converter,
        skip_converter=args.skip_converter,
        include_original=args.include_pdf,
        require_body=args.require_body,
    )
    source = build_source(args)

    result = run_pipeline(source, output_format, email_config, options)
    logger.debug(
        "Timing for %s -> total: %.2fs | acquire: %.2fs | convert: %.2fs | deliver: %.2fs",
        source.description,
        result.total_seconds,
        result.acquire_seconds,
        result.convert_seconds,
        result.deliver_seconds,
    )


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        force=True,
    )
    if not load_dotenv():
        logger.debug("No .env file found; using the process environment")

    try:
        _run(args)
    except SubstackKindleError as exc:
        logger.error("%s", exc)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
