"""Image downloading, validation and normalisation utilities."""

from __future__ import annotations

import io
import logging
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple
from urllib.parse import urlparse

import requests
from filetype import guess
from PIL import Image

from .config import DEFAULT_MAX_IMAGE_SIDE
from .models import ImageAsset, ImageDownload
from .utils import slugify

logger = logging.getLogger("substack_kindle.images")

MAX_IMAGE_BYTES = 10 * 1024 * 1024
MIN_IMAGE_BYTES = 512
ALLOWED_IMAGE_TYPES = {"png", "jpg", "jpeg", "gif", "webp", "bmp", "tiff"}
# Mobipocket readers only decode these.
MOBI_IMAGE_TYPES = {"jpg", "gif", "png"}
MEDIA_TYPES = {
    "png": "image/png",
    "jpg": "image/jpeg",
    "gif": "image/gif",
    "webp": "image/webp",
    "bmp": "image/bmp",
    "tiff": "image/tiff",
}


def detect_image_format(data: bytes) -> Optional[str]:
    """Detect image type using filetype; returns lowercase extension."""
    kind = guess(data)
    if kind and kind.mime.startswith("image/"):
        ext = kind.extension.lower()
        if ext in {"jpeg", "jpe"}:
            return "jpg"
        if ext == "tif":
            return "tiff"
        return ext
    return None


def infer_image_extension(content_type: Optional[str], data: bytes) -> Optional[str]:
    """Guess an image file extension from HTTP metadata or file signature."""
    detected = detect_image_format(data)
    if detected:
        return detected
    if not content_type:
        return None
    parts = content_type.split(";")[0].split("/")
    if len(parts) == 2 and parts[0] == "image":
        ext = parts[1].strip().lower()
        if ext == "jpeg":
            ext = "jpg"
        return ext
    return None


def _image_stem(url: str, index: int) -> str:
    name = Path(urlparse(url).path).stem
    return f"image-{index:02d}-{slugify(name, fallback='image')}"[:80]


def _fetch_image(
    session: requests.Session,
    url: str,
    timeout: float,
) -> Tuple[Optional[bytes], Optional[str], Optional[str]]:
    """Return ``(data, extension, error)`` for one image URL."""
    try:
        resp = session.get(url, timeout=timeout)
        resp.raise_for_status()
    except requests.RequestException as exc:
        return None, None, f"request failed: {exc}"

    content_type = resp.headers.get("Content-Type", "")
    data = resp.content
    if len(data) < MIN_IMAGE_BYTES:
        return None, None, "response too small"
    if len(data) > MAX_IMAGE_BYTES:
        return None, None, f"image larger than {MAX_IMAGE_BYTES} bytes"

    extension = infer_image_extension(content_type, data)
    if not extension or extension not in ALLOWED_IMAGE_TYPES:
        return None, None, f"unsupported image type (Content-Type={content_type})"
    return data, extension, None


def download_images(
    urls: Sequence[str],
    output_dir: Path,
    timeout: float = 15.0,
    session: Optional[requests.Session] = None,
) -> List[ImageDownload]:
    """Download every referenced image, recording one result per reference.

    Failures never raise; they are reported through ``ImageDownload.error``.
    Repeated URLs share the asset of their first successful download.
    """
    if not urls:
        return []
    image_dir = output_dir / "images"
    image_dir.mkdir(parents=True, exist_ok=True)

    http = session or requests.Session()
    downloaded: Dict[str, ImageDownload] = {}
    results: List[ImageDownload] = []

    for index, url in enumerate(urls, start=1):
        if url in downloaded:
            previous = downloaded[url]
            results.append(ImageDownload(url=url, asset=previous.asset, error=previous.error))
            continue

        data, extension, error = _fetch_image(http, url, timeout)
        if data is None or extension is None:
            logger.warning("Skipping image %s: %s", url, error)
            result = ImageDownload(url=url, error=error)
        else:
            filename = f"{_image_stem(url, index)}.{extension}"
            destination = image_dir / filename
            try:
                destination.write_bytes(data)
            except OSError as exc:
                logger.warning("Failed to write image %s: %s", destination, exc)
                result = ImageDownload(url=url, error=f"write failed: {exc}")
            else:
                asset = ImageAsset(
                    url=url,
                    path=destination,
                    filename=filename,
                    media_type=MEDIA_TYPES.get(extension, f"image/{extension}"),
                )
                result = ImageDownload(url=url, asset=asset)

        downloaded[url] = result
        results.append(result)

    succeeded = sum(1 for item in results if item.ok)
    logger.info("Downloaded %d of %d images", succeeded, len(results))
    return results


def prepare_mobi_image(asset: ImageAsset, max_side: int = DEFAULT_MAX_IMAGE_SIDE) -> bytes:
    """Return image bytes a Mobipocket reader can display.

    Images in a supported format and within ``max_side`` are passed through;
    everything else is re-encoded as JPEG.
    """
    data = asset.path.read_bytes()
    extension = detect_image_format(data)
    with Image.open(io.BytesIO(data)) as raw_image:
        width, height = raw_image.size
        longest_edge = max(width, height)
        if extension in MOBI_IMAGE_TYPES and longest_edge <= max_side:
            return data
        image = raw_image.convert("RGB")
    if longest_edge > max_side:
        scale = max_side / float(longest_edge)
        new_size = (
            max(1, int(width * scale)),
            max(1, int(height * scale)),
        )
        image = image.resize(new_size, Image.Resampling.LANCZOS)
    buffer = io.BytesIO()
    image.save(buffer, format="JPEG", quality=85)
    return buffer.getvalue()
