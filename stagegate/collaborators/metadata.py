"""Deterministic metadata extraction over HTTP."""

from __future__ import annotations

import logging
from html.parser import HTMLParser
from typing import Dict, List, Optional
from urllib.parse import urlparse

import httpx

from ..utils.retry import schedule_retry
from .base import Metadata

logger = logging.getLogger(__name__)

_HEADING_TAGS = {"h1", "h2", "h3"}


def validate_url(url: str) -> None:
    """Raise ``ValueError`` unless ``url`` is an absolute http(s) URL."""
    if not url or not isinstance(url, str):
        raise ValueError("URL is required and must be a string")
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https"):
        raise ValueError(
            f"Unsupported protocol: {parsed.scheme or '(none)'}. "
            "Only HTTP and HTTPS are allowed"
        )
    if not parsed.hostname:
        raise ValueError("URL must contain a valid hostname")


class _MetadataParser(HTMLParser):
    def __init__(self) -> None:
        super().__init__(convert_charrefs=True)
        self.title = ""
        self.meta: Dict[str, str] = {}
        self.headings: List[tuple[str, str]] = []
        self._capture: Optional[str] = None
        self._buffer: List[str] = []

    def handle_starttag(self, tag, attrs):
        if tag == "meta":
            attributes = {k.lower(): (v or "") for k, v in attrs}
            key = attributes.get("name") or attributes.get("property")
            if key and "content" in attributes:
                self.meta.setdefault(key.lower(), attributes["content"].strip())
        elif tag == "title" or tag in _HEADING_TAGS:
            self._capture = tag
            self._buffer = []

    def handle_endtag(self, tag):
        if tag != self._capture:
            return
        text = " ".join("".join(self._buffer).split())
        if tag == "title":
            self.title = self.title or text
        elif text:
            self.headings.append((tag, text))
        self._capture = None

    def handle_data(self, data):
        if self._capture:
            self._buffer.append(data)


def parse_metadata(html: str, max_headings: int = 20) -> Metadata:
    """Extract title, description and h1-h3 headings from an HTML document."""
    parser = _MetadataParser()
    parser.feed(html)
    parser.close()

    first_h1 = next((text for tag, text in parser.headings if tag == "h1"), "")
    title = (
        parser.title
        or first_h1
        or parser.meta.get("og:title", "")
        or "No title found"
    )
    description = parser.meta.get("description") or parser.meta.get("og:description", "")
    return Metadata(
        title=title,
        meta_description=description,
        headings=[text for _, text in parser.headings][:max_headings],
    )


class HttpMetadataExtractor:
    """Fetch a page and extract its metadata, retrying transient failures."""

    def __init__(
        self,
        timeout: float = 10.0,
        max_attempts: int = 2,
        retry_delay: float = 1.0,
        user_agent: str = "Mozilla/5.0 (compatible; stagegate/0.1)",
        max_headings: int = 20,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.timeout = timeout
        self.max_attempts = max(1, max_attempts)
        self.retry_delay = retry_delay
        self.user_agent = user_agent
        self.max_headings = max_headings
        self._client = client

    async def _fetch(self, client: httpx.AsyncClient, url: str) -> str:
        response = await client.get(
            url,
            headers={"User-Agent": self.user_agent},
            timeout=self.timeout,
            follow_redirects=True,
        )
        response.raise_for_status()
        return response.text

    async def extract(self, url: str) -> Metadata:
        validate_url(url)
        client = self._client or httpx.AsyncClient(max_redirects=5)
        last_error: Optional[Exception] = None
        try:
            for attempt in range(1, self.max_attempts + 1):
                try:
                    html = await self._fetch(client, url)
                except httpx.HTTPError as exc:
                    last_error = exc
                    logger.warning(
                        f"Metadata fetch attempt {attempt}/{self.max_attempts} "
                        f"failed for {url}: {type(exc).__name__}: {exc}"
                    )
                    if attempt < self.max_attempts:
                        await schedule_retry(attempt, initial=self.retry_delay)
                    continue
                if attempt > 1:
                    logger.info(f"Extracted metadata from {url} on attempt {attempt}")
                return parse_metadata(html, self.max_headings)
        finally:
            if self._client is None:
                await client.aclose()

        raise RuntimeError(
            f"Failed to extract metadata from {url} after "
            f"{self.max_attempts} attempts: {last_error}"
        )
