"""Minimal Mobipocket writer used when no external converter is installed.

The output is a PalmDB ``BOOK``/``MOBI`` database with uncompressed text
records, one record per image and an EXTH block carrying the metadata Kindle
readers display. The same container is written for ``.mobi`` and ``.azw3``
files; readers open both.

Record layout::

    0            PalmDOC header + MOBI header + EXTH + full title
    1..T         HTML text, RECORD_SIZE bytes each
    T+1..T+I     images, referenced from HTML as <img recindex="00001">
    then         FLIS, FCIS, end-of-file marker
"""

from __future__ import annotations

import logging
import random
import re
import struct
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

logger = logging.getLogger("substack_kindle.mobi")

RECORD_SIZE = 4096
MOBI_HEADER_LENGTH = 232
PALMDB_HEADER_LENGTH = 78
TEXT_ENCODING_UTF8 = 65001
MOBI_TYPE_BOOK = 2
MOBI_FILE_VERSION = 6
NO_INDEX = 0xFFFFFFFF

LOCALES = {"en": 0x09, "de": 0x07, "fr": 0x0C, "es": 0x0A, "it": 0x10, "nl": 0x13}

EXTH_AUTHOR = 100
EXTH_PUBLISHING_DATE = 106
EXTH_SOURCE = 112
EXTH_CDE_TYPE = 501
EXTH_UPDATED_TITLE = 503
EXTH_LANGUAGE = 524

FLIS_RECORD = (
    b"FLIS\x00\x00\x00\x08\x00\x41\x00\x00\x00\x00\x00\x00\xff\xff\xff\xff"
    b"\x00\x01\x00\x03\x00\x00\x00\x03\x00\x00\x00\x01\xff\xff\xff\xff"
)
EOF_RECORD = b"\xe9\x8e\r\n"

_PALM_NAME_PATTERN = re.compile(r"[^A-Za-z0-9]+")


def recindex(position: int) -> str:
    """Format a 1-based image position as used in ``recindex`` attributes."""
    return f"{position:05d}"


def _fcis_record(text_length: int) -> bytes:
    return (
        b"FCIS\x00\x00\x00\x14\x00\x00\x00\x10\x00\x00\x00\x01\x00\x00\x00\x00"
        + struct.pack(">I", text_length)
        + b"\x00\x00\x00\x00\x00\x00\x00\x20\x00\x00\x00\x08\x00\x01\x00\x01\x00\x00\x00\x00"
    )


def palm_name(title: str) -> bytes:
    """Return the 32-byte, NUL padded database name derived from the title."""
    name = _PALM_NAME_PATTERN.sub("_", title.encode("ascii", "ignore").decode("ascii")).strip("_")
    encoded = (name or "book")[:31].encode("ascii")
    return encoded.ljust(32, b"\x00")


def build_exth(entries: Sequence[Tuple[int, bytes]]) -> bytes:
    payload = b"".join(
        struct.pack(">II", record_type, len(data) + 8) + data for record_type, data in entries
    )
    header_length = 12 + len(payload)
    padding = (4 - header_length % 4) % 4
    return (
        b"EXTH"
        + struct.pack(">II", header_length, len(entries))
        + payload
        + b"\x00" * padding
    )


@dataclass
class MobiBook:
    """An in-memory Mobipocket book ready to be serialised."""

    title: str
    authors: List[str]
    html: str
    images: List[bytes] = field(default_factory=list)
    language: str = "en"
    created: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    unique_id: int = field(default_factory=lambda: random.getrandbits(32))
    source: Optional[str] = None
    published: Optional[datetime] = None

    def _exth_entries(self) -> List[Tuple[int, bytes]]:
        entries: List[Tuple[int, bytes]] = [
            (EXTH_AUTHOR, author.encode("utf-8")) for author in self.authors if author
        ]
        entries.append((EXTH_UPDATED_TITLE, self.title.encode("utf-8")))
        entries.append((EXTH_LANGUAGE, self.language.encode("ascii")))
        published = self.published or self.created
        entries.append((EXTH_PUBLISHING_DATE, published.isoformat().encode("ascii")))
        if self.source:
            entries.append((EXTH_SOURCE, self.source.encode("utf-8")))
        entries.append((EXTH_CDE_TYPE, b"EBOK"))
        return entries

    def _header_record(self, text_length: int, text_records: int) -> bytes:
        image_count = len(self.images)
        first_non_text = text_records + 1
        last_content = text_records + image_count
        flis_index = last_content + 1
        fcis_index = flis_index + 1

        palmdoc = struct.pack(
            ">HHIHHHH",
            1,  # no compression
            0,
            text_length,
            text_records,
            RECORD_SIZE,
            0,  # no encryption
            0,
        )

        exth = build_exth(self._exth_entries())
        full_name = self.title.encode("utf-8")
        full_name_offset = len(palmdoc) + MOBI_HEADER_LENGTH + len(exth)

        header = bytearray(MOBI_HEADER_LENGTH)
        header[0:4] = b"MOBI"
        struct.pack_into(
            ">IIIII",
            header,
            4,
            MOBI_HEADER_LENGTH,
            MOBI_TYPE_BOOK,
            TEXT_ENCODING_UTF8,
            self.unique_id & 0xFFFFFFFF,
            MOBI_FILE_VERSION,
        )
        for offset in range(24, 64, 4):
            struct.pack_into(">I", header, offset, NO_INDEX)
        struct.pack_into(
            ">IIIIIII",
            header,
            64,
            first_non_text,
            full_name_offset,
            len(full_name),
            LOCALES.get(self.language.split("-")[0].lower(), 0),
            0,
            0,
            MOBI_FILE_VERSION,
        )
        struct.pack_into(">I", header, 92, first_non_text if image_count else NO_INDEX)
        struct.pack_into(">I", header, 112, 0x50)  # EXTH present
        struct.pack_into(">IIII", header, 148, NO_INDEX, 0, 0, 0)
        struct.pack_into(">HHI", header, 176, 1, last_content, 1)
        struct.pack_into(">IIII", header, 184, fcis_index, 1, flis_index, 1)
        struct.pack_into(">IIIIII", header, 200, 0, 0, NO_INDEX, 0, NO_INDEX, NO_INDEX)
        # No trailing entries on text records, no INDX.
        struct.pack_into(">II", header, 224, 0, NO_INDEX)

        record = palmdoc + bytes(header) + exth + full_name + b"\x00\x00"
        padding = (4 - len(record) % 4) % 4
        return record + b"\x00" * padding

    def to_bytes(self) -> bytes:
        text = self.html.encode("utf-8")
        text_records = [text[i : i + RECORD_SIZE] for i in range(0, len(text), RECORD_SIZE)]
        if not text_records:
            text_records = [b""]

        records: List[bytes] = [self._header_record(len(text), len(text_records))]
        records.extend(text_records)
        records.extend(self.images)
        records.extend([FLIS_RECORD, _fcis_record(len(text)), EOF_RECORD])

        timestamp = int(self.created.timestamp())
        header = struct.pack(
            ">32sHHIIIIII4s4sIIH",
            palm_name(self.title),
            0,
            0,
            timestamp,
            timestamp,
            0,
            0,
            0,
            0,
            b"BOOK",
            b"MOBI",
            2 * len(records) - 1,
            0,
            len(records),
        )

        offset = PALMDB_HEADER_LENGTH + 8 * len(records) + 2
        record_list = bytearray()
        for index, record in enumerate(records):
            record_list += struct.pack(">II", offset, (2 * index) & 0x00FFFFFF)
            offset += len(record)

        return header + bytes(record_list) + b"\x00\x00" + b"".join(records)

    def write(self, path: Path) -> Path:
        data = self.to_bytes()
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        logger.debug(
            "Wrote %d bytes (%d images) to %s",
            len(data),
            len(self.images),
            path,
        )
        return path
