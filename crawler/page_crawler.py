"""Depth- and scope-bounded crawler for a single site.

A crawl is a tree of coroutines: every visited HTML page spawns one child
coroutine per newly discovered link and returns only after all of them have
finished (``asyncio.gather``). Per page the order is fixed: store the page
row, index it, then recurse into its links.

Cancellation is cooperative: ``is_active()`` is checked before the
politeness delay, before the fetch and before recursing. Once it returns
``False`` a branch unwinds without fetching or spawning anything. A failed
fetch abandons only its own branch.
"""

from __future__ import annotations

import asyncio
import random
import urllib.parse as urlparse
from typing import Callable

import httpx
import structlog
from bs4 import BeautifulSoup

from crawler.filters import (
    UrlFilter,
    clean_url,
    is_document_link,
    is_pseudo_link,
    relative_path,
)
from knowledge.index_writer import IndexWriter
from knowledge.text import content_kind
from models import Page, Site
from mongo import MongoClient
from observability.metrics import fetch_failures, pages_stored
from settings import CrawlSettings

logger = structlog.get_logger(__name__)


def build_http_client(cfg: CrawlSettings, **kwargs) -> httpx.AsyncClient:
    """HTTP client used for crawling: browser-like headers, redirects followed."""

    headers = {"User-Agent": cfg.user_agent, "Referer": cfg.referrer}
    return httpx.AsyncClient(
        headers=headers,
        timeout=cfg.request_timeout,
        follow_redirects=True,
        **kwargs,
    )


class SiteCrawler:
    """Crawl ``site`` starting from a seed URL.

    The visited set is shared by every coroutine of this crawl. Claiming a URL
    is a plain set test-and-add with no ``await`` in between, which makes it
    atomic on the event loop.
    """

    def __init__(
        self,
        site: Site,
        *,
        store: MongoClient,
        writer: IndexWriter,
        client: httpx.AsyncClient,
        url_filter: UrlFilter,
        is_active: Callable[[], bool],
        settings: CrawlSettings,
        max_depth: int | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self.site = site
        self._store = store
        self._writer = writer
        self._client = client
        self._filter = url_filter
        self._is_active = is_active
        self._settings = settings
        self.max_depth = settings.max_depth if max_depth is None else max_depth
        self._rng = rng or random.Random()
        self._visited: set[str] = set()
        self._fetch_slots = asyncio.Semaphore(max(1, settings.concurrency))

    @property
    def visited(self) -> frozenset[str]:
        return frozenset(self._visited)

    def _in_site(self, url: str) -> bool:
        return url == self.site.url or url.startswith(self.site.url + "/")

    def _claim(self, url: str) -> bool:
        key = relative_path(self.site.url, url)
        if key in self._visited:
            return False
        self._visited.add(key)
        return True

    async def run(self, start_url: str | None = None) -> None:
        seed = clean_url(start_url or self.site.url)
        with structlog.contextvars.bound_contextvars(site=self.site.url):
            if self._claim(seed):
                await self.visit(seed, 0)
            logger.info("site_crawl_finished", visited=len(self._visited))

    async def visit(self, url: str, depth: int) -> None:
        if not self._is_active() or depth > self.max_depth:
            return
        if not self._in_site(url) or self._filter.should_skip(url):
            return
        path = relative_path(self.site.url, url)
        if await self._store.page_exists(self.site.id, path):
            return

        await self._politeness_delay()
        if not self._is_active():
            return
        response = await self._fetch(url)
        if response is None:
            return

        page, kind = await self._store_response(url, path, response)
        if page is None or kind != "html":
            return
        await self._writer.index_page(page)

        soup = BeautifulSoup(page.content, "html.parser")
        base_url = str(response.url)
        await self._store_media(soup, base_url)
        if not self._is_active() or depth + 1 > self.max_depth:
            return
        children = await self._discover_links(soup, base_url)
        logger.debug("links_discovered", url=url, depth=depth, children=len(children))
        if children:
            await asyncio.gather(*(self.visit(child, depth + 1) for child in children))

    async def _politeness_delay(self) -> None:
        delay = self._rng.uniform(self._settings.delay_min, self._settings.delay_max)
        if delay > 0:
            await asyncio.sleep(delay)

    async def _fetch(self, url: str) -> httpx.Response | None:
        async with self._fetch_slots:
            if not self._is_active():
                return None
            try:
                response = await self._client.get(url, timeout=self._settings.request_timeout)
            except httpx.HTTPError as exc:
                logger.warning("page_fetch_failed", url=url, error=str(exc) or exc.__class__.__name__)
                fetch_failures.labels(self.site.url).inc()
                return None
        if response.status_code >= 400:
            logger.warning("page_fetch_rejected", url=url, status=response.status_code)
            fetch_failures.labels(self.site.url).inc()
            return None
        return response

    async def _store_response(
        self, url: str, path: str, response: httpx.Response
    ) -> tuple[Page | None, str]:
        content_type = response.headers.get("content-type", "")
        kind = content_kind(content_type)
        if kind == "html":
            content = response.text
        elif kind == "file":
            content = f"FILE: {url}"
        else:
            content = f"Unhandled content type: {content_type or 'unknown'}"
        page = await self._store.add_page(self.site.id, path, response.status_code, content)
        if page is None:
            logger.debug("page_already_stored", url=url)
            return None, kind
        await self._store.touch_site(self.site.id)
        pages_stored.labels(self.site.url, kind).inc()
        logger.info("page_stored", url=url, status=response.status_code, kind=kind)
        return page, kind

    async def _store_media(self, soup: BeautifulSoup, base_url: str) -> None:
        """Record images, attachments and pseudo links as unindexed rows."""

        media: list[tuple[str, str]] = []
        for img in soup.find_all("img", src=True):
            media.append((urlparse.urljoin(base_url, img["src"]), "IMAGE"))
        for anchor in soup.find_all("a", href=True):
            href = anchor["href"]
            if is_pseudo_link(href):
                await self._store_placeholder(href)
                continue
            target = urlparse.urljoin(base_url, href)
            if is_document_link(clean_url(target)):
                media.append((target, "FILE"))
        for raw_url, label in media:
            media_url = clean_url(raw_url)
            if not media_url.lower().startswith(("http://", "https://")):
                continue
            path = relative_path(self.site.url, media_url)
            page = await self._store.add_page(self.site.id, path, 200, f"{label}: {media_url}")
            if page is not None:
                pages_stored.labels(self.site.url, "media").inc()
                logger.debug("media_stored", url=media_url, kind=label.lower())

    async def _store_placeholder(self, href: str) -> None:
        href = href.strip()
        if href.lower().startswith("tel:"):
            path = href[4:].strip()
            content = f"Phone number: {path}"
        else:
            path = href
            content = f"JavaScript link: {href}"
        if not path:
            return
        page = await self._store.add_page(self.site.id, path, 0, content)
        if page is not None:
            pages_stored.labels(self.site.url, "placeholder").inc()

    async def _discover_links(self, soup: BeautifulSoup, base_url: str) -> list[str]:
        children: list[str] = []
        for anchor in soup.find_all("a", href=True):
            target = urlparse.urljoin(base_url, anchor["href"])
            if not target.lower().startswith(("http://", "https://")):
                continue
            if self._filter.should_skip(target):
                continue
            child = clean_url(target)
            if self._in_site(child) and self._claim(child):
                children.append(child)
        return children
