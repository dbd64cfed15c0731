"""Remote article retrieval and Substack metadata parsing."""

from __future__ import annotations

import abc
import logging
from datetime import datetime
from typing import Iterable, List, Optional, Tuple
from urllib.parse import urljoin, urlparse

import requests
from bs4 import BeautifulSoup, Tag

from .config import FetchConfig
from .errors import AcquisitionError, InputError
from .models import BodyStatus, ContentRecord, SourceKind

logger = logging.getLogger("substack_kindle.content")

TITLE_SELECTORS = ("h1.post-title", "h1")
AUTHOR_SELECTORS = (
    ".byline-link",
    ".author-name",
    ".substack-author",
    ".post-header .author",
    "meta[name='author']",
)
BODY_SELECTORS = (
    ".available-content",
    ".subscriber-content",
    ".post-content",
    ".body",
)


class ContentSource(abc.ABC):
    """Something that can produce a :class:`ContentRecord`."""

    @abc.abstractmethod
    def acquire(self) -> ContentRecord:
        raise NotImplementedError

    @property
    @abc.abstractmethod
    def description(self) -> str:
        raise NotImplementedError


def validate_article_url(url: str, allow_any_host: bool = False) -> str:
    """Check that ``url`` points to a Substack page and return it stripped."""
    url = (url or "").strip()
    parsed = urlparse(url)
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        raise InputError(f"Invalid URL: {url!r}")
    host = (parsed.hostname or "").lower()
    if not allow_any_host and not (
        host.endswith("substack.com") or ".substack." in host
    ):
        raise InputError(f"The URL must be from a Substack site: {url}")
    return url


def _first_text(soup: BeautifulSoup, selectors: Iterable[str]) -> str:
    for selector in selectors:
        node = soup.select_one(selector)
        if node is None:
            continue
        if node.name == "meta":
            value = (node.get("content") or "").strip()
        else:
            value = node.get_text(" ", strip=True)
        if value:
            return value
    return ""


def _title_from_url(url: str) -> str:
    segment = urlparse(url).path.rstrip("/").rsplit("/", 1)[-1]
    words = [word for word in segment.replace("_", "-").split("-") if word]
    return " ".join(words).capitalize()


def _author_from_url(url: str) -> str:
    host = urlparse(url).hostname or ""
    return host.split(".", 1)[0]


def extract_title(soup: BeautifulSoup, url: str) -> str:
    title = _first_text(soup, TITLE_SELECTORS)
    if not title:
        title = _first_text(soup, ("meta[property='og:title']",))
    if not title and soup.title and soup.title.string:
        title = soup.title.string.strip()
    return title or _title_from_url(url)


def extract_author(soup: BeautifulSoup, url: str) -> str:
    return _first_text(soup, AUTHOR_SELECTORS) or _author_from_url(url)


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse an RFC 3339 timestamp, returning ``None`` when it does not parse."""
    if not value:
        return None
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        logger.debug("Ignoring unparseable publish date %r", value)
        return None


def extract_published_at(soup: BeautifulSoup) -> Optional[datetime]:
    node = soup.find("time", attrs={"datetime": True})
    if node is None:
        return None
    return parse_timestamp(node.get("datetime"))


def find_body_container(soup: BeautifulSoup) -> Optional[Tag]:
    for selector in BODY_SELECTORS:
        node = soup.select_one(selector)
        if node is not None:
            return node
    return None


def extract_image_urls(container: Tag, base_url: str) -> List[str]:
    """Collect image sources in document order, resolved against the page."""
    urls: List[str] = []
    for img in container.find_all("img"):
        src = (img.get("src") or "").strip()
        if not src:
            continue
        urls.append(urljoin(base_url, src))
    return urls


def _body_status(container: Optional[Tag]) -> BodyStatus:
    if container is None:
        return BodyStatus.NOT_FOUND
    if container.get_text(strip=True) or container.find("img"):
        return BodyStatus.FOUND
    return BodyStatus.EMPTY


def extract_article(html: str, url: str, base_url: Optional[str] = None) -> ContentRecord:
    """Build a content record from a rendered Substack post.

    ``base_url`` is the address the page was finally served from; relative
    image sources are resolved against it.
    """
    soup = BeautifulSoup(html, "html.parser")

    container = find_body_container(soup)
    if container is None:
        logger.debug("No body container matched for %s", url)
        body, image_urls = "", []
    else:
        body = container.decode_contents()
        image_urls = extract_image_urls(container, base_url or url)

    return ContentRecord(
        title=extract_title(soup, url),
        author=extract_author(soup, url),
        body=body,
        source=url,
        kind=SourceKind.ARTICLE,
        published_at=extract_published_at(soup),
        image_urls=image_urls,
        body_status=_body_status(container),
    )


def fetch_html(
    url: str,
    config: FetchConfig,
    session: Optional[requests.Session] = None,
) -> Tuple[str, str]:
    """Issue a single GET and return the HTML and the final URL."""
    http = session or requests.Session()
    try:
        resp = http.get(
            url,
            timeout=config.timeout,
            headers={"User-Agent": config.user_agent},
        )
        resp.raise_for_status()
    except requests.RequestException as exc:
        raise AcquisitionError(f"Failed to fetch {url}: {exc}") from exc
    return resp.text, resp.url or url


class RemoteArticle(ContentSource):
    """A Substack post fetched over HTTP."""

    def __init__(
        self,
        url: str,
        config: Optional[FetchConfig] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.config = config or FetchConfig()
        self.url = validate_article_url(url, self.config.allow_any_host)
        self._session = session

    @property
    def description(self) -> str:
        return self.url

    def fetch(self) -> ContentRecord:
        logger.info("Scraping article from %s", self.url)
        html, final_url = fetch_html(self.url, self.config, self._session)
        try:
            record = extract_article(html, self.url, final_url)
        except Exception as exc:  # pylint: disable=broad-except
            raise AcquisitionError(f"Failed to parse {self.url}: {exc}") from exc
        logger.info("Scraped article: %s by %s", record.title, record.author)
        return record

    def acquire(self) -> ContentRecord:
        return self.fetch()
