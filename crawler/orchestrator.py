"""Full and single-page indexing runs and the per-site status machine.

Site lifecycle: a run deletes the previous rows for the site URL, creates a
fresh ``INDEXING`` row, crawls, and finishes with ``INDEXED``. A stopped run
or an error escaping the crawl ends in ``FAILED`` with the reason recorded
in ``last_error``.
"""

from __future__ import annotations

import asyncio
import random
import threading
from typing import Callable

import httpx
import structlog

from core.errors import AlreadyRunning, InvalidScope, NotRunning
from crawler.filters import UrlFilter, clean_url
from crawler.page_crawler import SiteCrawler, build_http_client
from knowledge.index_writer import IndexWriter
from models import Site, SiteStatus
from mongo import MongoClient
from settings import Settings, SiteConfig

logger = structlog.get_logger(__name__)

STOPPED_BY_USER = "Indexing stopped by user"


class RunState:
    """Thread-safe run flags plus the set of busy sites.

    A stopped run stays in the stopping phase until its tasks are gone, and
    no new run may start before then.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._running = False
        self._stopping = False
        self._active_sites: set[str] = set()

    @property
    def running(self) -> bool:
        with self._lock:
            return self._running

    def try_start(self) -> bool:
        with self._lock:
            if self._running or self._stopping:
                return False
            self._running = True
            return True

    def stop(self) -> bool:
        with self._lock:
            if not self._running:
                return False
            self._running = False
            self._stopping = True
            return True

    def stopped(self) -> None:
        with self._lock:
            self._stopping = False

    def finish(self) -> None:
        with self._lock:
            self._running = False

    def mark_site(self, url: str, active: bool) -> None:
        with self._lock:
            if active:
                self._active_sites.add(url)
            else:
                self._active_sites.discard(url)

    def is_site_active(self, url: str) -> bool:
        with self._lock:
            return url in self._active_sites


class IndexingOrchestrator:
    """Owns indexing runs: one crawl per configured site, run concurrently."""

    def __init__(
        self,
        settings: Settings,
        store: MongoClient,
        writer: IndexWriter,
        *,
        client_factory: Callable[[], httpx.AsyncClient] | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self._settings = settings
        self._store = store
        self._writer = writer
        self._client_factory = client_factory or (lambda: build_http_client(settings.crawl))
        self._rng = rng
        self._filter = UrlFilter(site.url for site in settings.sites)
        self._state = RunState()
        self._run_task: asyncio.Task | None = None
        self._site_tasks: dict[str, asyncio.Task] = {}

    def is_indexing_in_progress(self) -> bool:
        return self._state.running

    def is_site_indexing(self, url: str) -> bool:
        return self._state.is_site_active(url.rstrip("/"))

    async def start_full_indexing(self) -> None:
        """Launch a background run over every configured site."""

        if not self._state.try_start():
            raise AlreadyRunning()
        logger.info("indexing_started", sites=len(self._settings.sites))
        self._run_task = asyncio.create_task(self._run_all())

    async def stop_indexing(self) -> None:
        """Stop the active run and fail its sites that are still indexing."""

        if not self._state.stop():
            raise NotRunning()
        logger.info("indexing_stop_requested")
        try:
            urls = [url for url, task in self._site_tasks.items() if not task.done()]
            for task in list(self._site_tasks.values()):
                task.cancel()
            if self._run_task is not None:
                await asyncio.gather(self._run_task, return_exceptions=True)
            failed = await self._store.fail_indexing_sites(STOPPED_BY_USER, urls=urls)
        finally:
            self._state.stopped()
        logger.info("indexing_stopped", failed_sites=failed)

    async def wait_until_finished(self) -> None:
        if self._run_task is not None:
            await asyncio.gather(self._run_task, return_exceptions=True)

    async def index_single_page(self, url: str) -> bool:
        """Re-index the site owning ``url`` from that single page.

        Raises :class:`InvalidScope` when ``url`` belongs to no configured
        site and :class:`AlreadyRunning` when that site is being crawled.
        """

        site_cfg = self._settings.find_site(url)
        if site_cfg is None:
            raise InvalidScope()
        if self._state.is_site_active(site_cfg.url):
            raise AlreadyRunning(f"Site {site_cfg.url} is being indexed")
        page_url = clean_url(url)
        self._state.mark_site(site_cfg.url, True)
        site: Site | None = None
        try:
            await self._store.delete_site_data(site_cfg.url)
            site = await self._store.create_site(site_cfg.url, site_cfg.name, SiteStatus.INDEXING)
            async with self._client_factory() as client:
                await self._crawl(site, client, page_url, max_depth=0, is_active=lambda: True)
            await self._store.update_site_status(site.id, SiteStatus.INDEXED)
            logger.info("page_indexing_finished", url=page_url)
            return True
        except Exception as exc:  # noqa: BLE001 - reported as a failed site
            logger.exception("page_indexing_failed", url=page_url, error=str(exc))
            await self._record_failure(site, site_cfg, exc)
            return False
        finally:
            self._state.mark_site(site_cfg.url, False)

    async def _run_all(self) -> None:
        sites = list(self._settings.sites)
        try:
            if not sites:
                logger.warning("indexing_no_sites_configured")
                return
            pool = asyncio.Semaphore(len(sites))
            async with self._client_factory() as client:
                self._site_tasks = {
                    cfg.url: asyncio.create_task(self._index_site(cfg, client, pool))
                    for cfg in sites
                }
                await asyncio.gather(*self._site_tasks.values(), return_exceptions=True)
        finally:
            self._site_tasks = {}
            self._state.finish()
            logger.info("indexing_finished")

    async def _index_site(self, cfg: SiteConfig, client: httpx.AsyncClient, pool: asyncio.Semaphore) -> None:
        async with pool:
            if not self._state.running:
                return
            self._state.mark_site(cfg.url, True)
            site: Site | None = None
            try:
                await self._store.delete_site_data(cfg.url)
                site = await self._store.create_site(cfg.url, cfg.name, SiteStatus.INDEXING)
                logger.info("site_indexing_started", url=cfg.url, name=cfg.name)
                await self._crawl(
                    site,
                    client,
                    cfg.url,
                    max_depth=self._settings.crawl.max_depth,
                    is_active=lambda: self._state.running,
                )
                if self._state.running:
                    await self._store.update_site_status(site.id, SiteStatus.INDEXED)
                    logger.info("site_indexed", url=cfg.url)
                else:
                    await self._store.update_site_status(site.id, SiteStatus.FAILED, STOPPED_BY_USER)
            except Exception as exc:  # noqa: BLE001 - one failing site must not stop the others
                logger.exception("site_indexing_failed", url=cfg.url, error=str(exc))
                await self._record_failure(site, cfg, exc)
            finally:
                self._state.mark_site(cfg.url, False)

    async def _crawl(
        self,
        site: Site,
        client: httpx.AsyncClient,
        start_url: str,
        *,
        max_depth: int,
        is_active: Callable[[], bool],
    ) -> None:
        crawler = SiteCrawler(
            site,
            store=self._store,
            writer=self._writer,
            client=client,
            url_filter=self._filter,
            is_active=is_active,
            settings=self._settings.crawl,
            max_depth=max_depth,
            rng=self._rng,
        )
        await crawler.run(start_url)

    async def _record_failure(self, site: Site | None, cfg: SiteConfig, exc: Exception) -> None:
        message = str(exc) or exc.__class__.__name__
        if site is None:
            site = await self._store.get_site_by_url(cfg.url)
        if site is None:
            return
        await self._store.update_site_status(site.id, SiteStatus.FAILED, message)
