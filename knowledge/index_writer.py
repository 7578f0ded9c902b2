"""Inverted index writer: merges one page's lemma counts into its site index."""

from __future__ import annotations

from collections.abc import Mapping

import structlog
from pymongo.errors import PyMongoError

from models import Page
from mongo import MongoClient
from morphology.lemmatizer import Lemmatizer

logger = structlog.get_logger(__name__)


class IndexWriter:
    """Lemmatize stored pages and record their lemmas.

    Failures are local to the page being indexed: they are logged and the
    page simply contributes no lemmas, so the crawl that called us goes on.
    """

    def __init__(self, store: MongoClient, lemmatizer: Lemmatizer) -> None:
        self._store = store
        self._lemmatizer = lemmatizer

    async def index_page(self, page: Page) -> int:
        """Index the HTML content of ``page``; return the number of new edges."""

        try:
            counts = self._lemmatizer.lemmatize_html(page.content)
        except Exception as exc:  # noqa: BLE001 - analyzer failures stay local to the page
            logger.error("page_lemmatize_failed", path=page.path, site_id=page.site_id, error=str(exc))
            return 0
        return await self.add_lemmas(page, counts)

    async def add_lemmas(self, page: Page, counts: Mapping[str, int]) -> int:
        if not counts:
            logger.debug("page_without_lemmas", path=page.path, site_id=page.site_id)
            return 0
        try:
            created = await self._store.write_page_index(page.site_id, page.id, counts)
        except PyMongoError as exc:
            logger.error("page_index_write_failed", path=page.path, site_id=page.site_id, error=str(exc))
            return 0
        logger.debug("page_indexed", path=page.path, lemmas=len(counts), new_edges=created)
        return created
