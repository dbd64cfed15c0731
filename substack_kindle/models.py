"""Data models passed between the pipeline stages."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Union

from .errors import UnsupportedFormatError


class SourceKind(str, enum.Enum):
    ARTICLE = "article"
    DOCUMENT = "document"


class BodyStatus(str, enum.Enum):
    """How the body was found during acquisition."""

    FOUND = "found"
    EMPTY = "empty"
    NOT_FOUND = "not_found"


class OutputFormat(str, enum.Enum):
    EPUB = "epub"
    AZW3 = "azw3"
    MOBI = "mobi"

    @property
    def extension(self) -> str:
        return self.value

    @classmethod
    def parse(cls, value: Union[str, "OutputFormat"]) -> "OutputFormat":
        """Return the format for ``value`` or raise for anything unknown."""
        if isinstance(value, cls):
            return value
        normalized = str(value or "").strip().lower()
        for member in cls:
            if member.value == normalized:
                return member
        raise UnsupportedFormatError(
            f"Format must be one of epub, azw3 or mobi (got {value!r})"
        )


class Strategy(str, enum.Enum):
    """How an output container is produced."""

    DIRECT = "direct"
    EXTERNAL = "external"


@dataclass(frozen=True)
class ContentRecord:
    """Normalized content produced by acquisition and read by conversion."""

    title: str
    author: str
    body: str
    source: str
    kind: SourceKind = SourceKind.ARTICLE
    published_at: Optional[datetime] = None
    image_urls: List[str] = field(default_factory=list)
    body_status: BodyStatus = BodyStatus.FOUND


@dataclass
class ImageAsset:
    """Downloaded and validated image stored in the scratch directory."""

    url: str
    path: Path
    filename: str
    media_type: str


@dataclass
class ImageDownload:
    """Outcome of fetching one image reference."""

    url: str
    asset: Optional[ImageAsset] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.asset is not None


@dataclass
class ConversionOutcome:
    """The converted file plus the metadata needed for delivery."""

    path: Path
    title: str
    author: str
    format: OutputFormat
    strategy: Strategy
    images: List[ImageDownload] = field(default_factory=list)

    @property
    def embedded_images(self) -> int:
        return len({item.asset.filename for item in self.images if item.asset})
