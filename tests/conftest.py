"""Shared fixtures: fake HTTP sessions, sample pages and image payloads."""

from __future__ import annotations

import io
import struct
from pathlib import Path
from typing import Dict, List, Optional, Union

import pytest
import requests
from PIL import Image

ARTICLE_URL = "https://example.substack.com/p/test"

ARTICLE_HTML = """
<html>
  <head>
    <title>Fallback title | Example</title>
    <meta name="author" content="Meta Author">
  </head>
  <body>
    <div class="post-header">
      <h1 class="post-title">On Testing Things</h1>
      <a class="byline-link" href="/profile">Jane Writer</a>
      <time datetime="2024-03-05T10:30:00Z">Mar 5</time>
    </div>
    <div class="available-content">
      <p>First paragraph.</p>
      <picture>
        <source srcset="https://cdn.example.com/one.webp 424w" type="image/webp">
        <img src="https://cdn.example.com/one.png" srcset="https://cdn.example.com/one.png 424w" alt="One">
      </picture>
      <p>Second paragraph.</p>
      <img alt="missing source">
      <img src="/images/two.png" alt="Two">
    </div>
  </body>
</html>
"""


class FakeResponse:
    def __init__(
        self,
        content: bytes = b"",
        status_code: int = 200,
        headers: Optional[Dict[str, str]] = None,
        url: str = "",
    ) -> None:
        self.content = content
        self.status_code = status_code
        self.headers = headers or {}
        self.url = url

    @property
    def text(self) -> str:
        return self.content.decode("utf-8")

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Error", response=self)


class FakeSession:
    """Serves canned responses; unknown URLs raise a connection error."""

    def __init__(self, routes: Dict[str, Union[FakeResponse, Exception]]) -> None:
        self.routes = routes
        self.calls: List[str] = []

    def get(self, url: str, **kwargs) -> FakeResponse:
        self.calls.append(url)
        response = self.routes.get(url)
        if response is None:
            raise requests.ConnectionError(f"no route to {url}")
        if isinstance(response, Exception):
            raise response
        if not response.url:
            response.url = url
        return response


def make_png(size=(64, 64)) -> bytes:
    image = Image.effect_noise(size, 64).convert("RGB")
    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()


def read_mobi(path: Path) -> dict:
    """Parse the parts of a Mobipocket file the tests assert on."""
    data = path.read_bytes()
    record_count = struct.unpack(">H", data[76:78])[0]
    offsets = [
        struct.unpack(">I", data[78 + 8 * index : 82 + 8 * index])[0]
        for index in range(record_count)
    ]
    offsets.append(len(data))
    records = [data[offsets[i] : offsets[i + 1]] for i in range(record_count)]

    header = records[0]
    text_length, text_records = struct.unpack(">IH", header[4:10])
    mobi = header[16:]
    assert mobi[:4] == b"MOBI"
    mobi_length = struct.unpack(">I", mobi[4:8])[0]
    full_name_offset, full_name_length = struct.unpack(">II", mobi[68:76])
    first_image = struct.unpack(">I", mobi[92:96])[0]
    first_content, last_content = struct.unpack(">HH", mobi[176:180])
    extra_flags = struct.unpack(">H", header[0xF2:0xF4])[0]

    exth = mobi[mobi_length:]
    assert exth[:4] == b"EXTH"
    entry_count = struct.unpack(">I", exth[8:12])[0]
    entries: Dict[int, List[bytes]] = {}
    position = 12
    for _ in range(entry_count):
        entry_type, entry_length = struct.unpack(">II", exth[position : position + 8])
        entries.setdefault(entry_type, []).append(exth[position + 8 : position + entry_length])
        position += entry_length

    text = b"".join(records[1 : 1 + text_records])
    return {
        "db_name": data[:32].rstrip(b"\x00").decode("ascii"),
        "type_creator": data[60:68],
        "records": records,
        "text": text.decode("utf-8"),
        "text_length": text_length,
        "full_name": header[full_name_offset : full_name_offset + full_name_length].decode("utf-8"),
        "first_image": first_image,
        "first_content": first_content,
        "extra_flags": extra_flags,
        "image_count": last_content - text_records,
        "exth": entries,
    }


@pytest.fixture
def png_bytes() -> bytes:
    return make_png()


@pytest.fixture
def image_session(monkeypatch, png_bytes):
    """Route image downloads through a FakeSession the test can populate."""
    session = FakeSession({})
    monkeypatch.setattr("substack_kindle.images.requests.Session", lambda: session)
    return session
