"""High-level orchestration: acquire, convert, deliver, clean up."""

from __future__ import annotations

import logging
import shutil
import tempfile
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional, Union

from .config import ConversionOptions, EmailConfig
from .content import ContentSource
from .converter import convert
from .errors import AcquisitionError
from .models import BodyStatus, ContentRecord, ConversionOutcome, OutputFormat
from .sender import send_to_kindle

logger = logging.getLogger("substack_kindle")

Deliver = Callable[[ConversionOutcome, EmailConfig], None]


@dataclass
class PipelineResult:
    """Timing details and artifacts of one run."""

    record: ContentRecord
    outcome: ConversionOutcome
    acquire_seconds: float
    convert_seconds: float
    deliver_seconds: float
    total_seconds: float
    cleaned_up: bool


def check_body(record: ContentRecord, require_body: bool) -> None:
    """Flag records whose body could not be located or is empty."""
    if record.body_status is BodyStatus.FOUND:
        return
    if record.body_status is BodyStatus.NOT_FOUND:
        message = f"No article body found in {record.source}"
    else:
        message = f"Article body of {record.source} is empty"
    if require_body:
        raise AcquisitionError(message)
    logger.warning("%s; the book will only contain the header", message)


def cleanup(outcome: ConversionOutcome, workdir: Optional[Path] = None) -> bool:
    """Remove the converted file and, when given, the run's scratch directory."""
    try:
        outcome.path.unlink()
    except FileNotFoundError:
        pass
    except OSError as exc:
        logger.warning("Failed to remove %s: %s", outcome.path, exc)
        return False
    if workdir is not None:
        shutil.rmtree(workdir, ignore_errors=True)
    logger.info("Temporary files cleaned up")
    return True


def run_pipeline(
    source: ContentSource,
    fmt: Union[str, OutputFormat],
    email_config: EmailConfig,
    options: Optional[ConversionOptions] = None,
    deliver: Optional[Deliver] = None,
    workdir: Optional[Path] = None,
) -> PipelineResult:
    """Run every stage once; an exception from any stage aborts the rest.

    The output format is validated before acquisition so an invalid value
    never triggers a download.
    """
    output_format = OutputFormat.parse(fmt)
    options = options or ConversionOptions()
    deliver = deliver or send_to_kindle
    if output_format is OutputFormat.MOBI:
        logger.warning(
            "MOBI is no longer supported by Amazon's Send to Kindle service. "
            "Consider using EPUB or AZW3 instead."
        )

    overall_start = time.perf_counter()
    record = source.acquire()
    check_body(record, options.require_body)
    acquired = time.perf_counter()

    run_dir = workdir or Path(tempfile.mkdtemp(prefix="substack-kindle-"))
    logger.debug("Using scratch directory %s", run_dir)
    outcome = convert(record, output_format, options, run_dir)
    converted = time.perf_counter()
    logger.info("Conversion successful: %s", outcome.path)

    deliver(outcome, email_config)
    delivered = time.perf_counter()
    logger.info("Successfully sent to Kindle")

    cleaned_up = cleanup(outcome, None if workdir else run_dir)
    return PipelineResult(
        record=record,
        outcome=outcome,
        acquire_seconds=acquired - overall_start,
        convert_seconds=converted - acquired,
        deliver_seconds=delivered - converted,
        total_seconds=time.perf_counter() - overall_start,
        cleaned_up=cleaned_up,
    )
