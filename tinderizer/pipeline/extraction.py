from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional
from urllib.parse import urljoin, urlparse

import httpx
from bs4 import BeautifulSoup
from readability import Document as ReadabilityDocument

from .errors import FetchError
from .models import NormalizedDocument

logger = logging.getLogger(__name__)

IMAGE_EXTENSIONS = {
    "image/jpeg": ".jpg",
    "image/jpg": ".jpg",
    "image/png": ".png",
    "image/gif": ".gif",
}


class ArticleExtractor:
    """
    Abstract article extractor. Implementations turn a URL (or HTML the
    client already captured) into a normalized document, writing any
    downloaded assets into `workdir`.
    """

    def extract(self, url: str, workdir: Path) -> NormalizedDocument:
        raise NotImplementedError

    def normalize(self, url: str, html: str, workdir: Path) -> NormalizedDocument:
        raise NotImplementedError


class ReadabilityExtractor(ArticleExtractor):
    """
    Fetches pages with httpx and reduces them to the article body with
    readability-lxml. Images referenced by the article are downloaded next
    to it and their `src` rewritten to the local file, so the e-book
    generator can embed them. An image that cannot be fetched is dropped.
    """

    def __init__(
        self,
        timeout: float = 15.0,
        user_agent: str = "Tinderizer/1.0",
        download_images: bool = True,
        max_images: int = 50,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.timeout = timeout
        self.user_agent = user_agent
        self.download_images = download_images
        self.max_images = max_images
        self.transport = transport

    def _client(self) -> httpx.Client:
        return httpx.Client(
            follow_redirects=True,
            timeout=self.timeout,
            headers={"User-Agent": self.user_agent},
            transport=self.transport,
        )

    def extract(self, url: str, workdir: Path) -> NormalizedDocument:
        try:
            with self._client() as client:
                response = client.get(url)
                response.raise_for_status()
                content_type = response.headers.get("content-type", "")
                if content_type and "html" not in content_type.lower():
                    raise FetchError(f"Unsupported content type {content_type!r} at {url}")
                return self._build_document(str(response.url), response.text, workdir, client)
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            raise FetchError(f"Failed to fetch {url}: {exc}") from exc

    def normalize(self, url: str, html: str, workdir: Path) -> NormalizedDocument:
        try:
            with self._client() as client:
                return self._build_document(url, html, workdir, client)
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            raise FetchError(f"Failed to normalize {url}: {exc}") from exc

    def _build_document(self, url: str, html: str, workdir: Path, client: httpx.Client) -> NormalizedDocument:
        if not html or not html.strip():
            raise FetchError(f"Empty page at {url}")
        try:
            readable = ReadabilityDocument(html, url=url)
            title = (readable.short_title() or "").strip()
            summary_html = readable.summary(html_partial=True)
        except Exception as exc:  # noqa: BLE001 - readability surfaces lxml and its own parse errors
            raise FetchError(f"Failed to parse article at {url}: {exc}") from exc

        page = BeautifulSoup(html, "lxml")
        body = BeautifulSoup(summary_html, "lxml")
        if not body.get_text(strip=True):
            raise FetchError(f"No article text found at {url}")

        if not title and page.title and page.title.string:
            title = page.title.string.strip()

        images: List[str] = []
        if self.download_images:
            images = self._localize_images(url, body, workdir, client)
        else:
            for img in body.find_all("img"):
                img.decompose()

        content = body.body.decode_contents() if body.body else str(body)
        return NormalizedDocument(
            url=url,
            title=title or url,
            html=content,
            domain=urlparse(url).hostname or "",
            author=self._find_author(page),
            images=images,
        )

    def _find_author(self, page: BeautifulSoup) -> Optional[str]:
        for attrs in ({"name": "author"}, {"property": "article:author"}):
            meta = page.find("meta", attrs=attrs)
            if meta and meta.get("content"):
                return meta["content"].strip()
        return None

    def _localize_images(self, url: str, body: BeautifulSoup, workdir: Path, client: httpx.Client) -> List[str]:
        saved: List[str] = []
        for img in body.find_all("img"):
            src = (img.get("src") or "").strip()
            if not src or src.startswith("data:") or len(saved) >= self.max_images:
                img.decompose()
                continue
            source = urljoin(url, src)
            filename = self._download_image(source, len(saved) + 1, workdir, client)
            if filename is None:
                img.decompose()
                continue
            img["src"] = filename
            for attr in ("srcset", "sizes", "loading"):
                if attr in img.attrs:
                    del img[attr]
            saved.append(filename)
        return saved

    def _download_image(self, source: str, number: int, workdir: Path, client: httpx.Client) -> Optional[str]:
        try:
            response = client.get(source)
            response.raise_for_status()
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            logger.info("Dropping image %s: %s", source, exc)
            return None

        content_type = response.headers.get("content-type", "").split(";")[0].strip().lower()
        extension = IMAGE_EXTENSIONS.get(content_type)
        if extension is None:
            suffix = Path(urlparse(source).path).suffix.lower()
            extension = suffix if suffix in IMAGE_EXTENSIONS.values() else None
        if extension is None:
            logger.info("Dropping image %s with unsupported type %r", source, content_type)
            return None

        filename = f"image-{number}{extension}"
        (workdir / filename).write_bytes(response.content)
        return filename
