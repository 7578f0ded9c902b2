"""TF-IDF search over the lemma index with highlighted snippets."""

from __future__ import annotations

import math
import time
from dataclasses import dataclass, field

import structlog

from core.errors import ControlError, EmptyQuery, NoLemmas
from knowledge.text import extract_title, html_to_text
from models import Page, SearchResponse, SearchResult, Site
from mongo import MongoClient
from morphology.lemmatizer import Lemmatizer
from observability.metrics import search_latency_ms, searches
from retrieval.snippets import build_snippet
from settings import SearchSettings

logger = structlog.get_logger(__name__)


@dataclass
class Candidate:
    """A page matching at least one query lemma, with per-lemma occurrences."""

    page_id: str
    ranks: dict[str, float] = field(default_factory=dict)
    score: float = 0.0


def tf_idf(occurrences: float, content_length: int, total_pages: int, document_frequency: int) -> float:
    """``tf * idf`` with ``tf = occurrences / length`` and ``idf = ln(N / df + 1)``."""

    tf = occurrences / max(content_length, 1)
    idf = math.log(total_pages / max(document_frequency, 1) + 1)
    return tf * idf


class SearchEngine:
    """Answer queries against one configured site or all of them."""

    def __init__(
        self,
        store: MongoClient,
        lemmatizer: Lemmatizer,
        settings: SearchSettings | None = None,
    ) -> None:
        self._store = store
        self._lemmatizer = lemmatizer
        self._settings = settings or SearchSettings()

    async def search(
        self,
        query: str,
        site: str | None = None,
        offset: int = 0,
        limit: int | None = None,
    ) -> SearchResponse:
        """Rank pages for ``query``; ``count`` is the number of all matches.

        Raises :class:`EmptyQuery` for a blank query and :class:`NoLemmas`
        when it holds no searchable words. ``offset`` past the end yields an
        empty page.
        """

        start = time.perf_counter()
        try:
            response = await self._search(query, site, max(offset, 0), limit)
        except ControlError:
            searches.labels("rejected").inc()
            raise
        except Exception:
            searches.labels("error").inc()
            raise
        searches.labels("ok" if response.count else "empty").inc()
        search_latency_ms.observe((time.perf_counter() - start) * 1000)
        return response

    async def _search(self, query: str, site_url: str | None, offset: int, limit: int | None) -> SearchResponse:
        query = (query or "").strip()
        if not query:
            raise EmptyQuery()
        query_lemmas = self._lemmatizer.query_lemmas(query)
        if not query_lemmas:
            raise NoLemmas()
        if limit is None:
            limit = self._settings.default_limit

        scope: Site | None = None
        if site_url:
            scope = await self._store.get_site_by_url(site_url.strip().rstrip("/"))
            if scope is None:
                logger.info("search_unknown_site", site=site_url)
                return SearchResponse(result=True, count=0, data=[])
        scope_id = scope.id if scope else None

        lemma_rows = await self._store.find_lemmas(query_lemmas, scope_id)
        if not lemma_rows:
            logger.info("search_no_matches", query=query, lemmas=query_lemmas)
            return SearchResponse(result=True, count=0, data=[])

        text_by_lemma_id = {row.id: row.lemma for row in lemma_rows}
        document_frequency: dict[str, int] = {}
        for row in lemma_rows:
            document_frequency[row.lemma] = document_frequency.get(row.lemma, 0) + row.frequency

        candidates: dict[str, Candidate] = {}
        for entry in await self._store.find_index_entries(text_by_lemma_id):
            candidate = candidates.setdefault(entry.page_id, Candidate(entry.page_id))
            lemma = text_by_lemma_id[entry.lemma_id]
            candidate.ranks[lemma] = candidate.ranks.get(lemma, 0.0) + entry.rank

        pages = {page.id: page for page in await self._store.get_pages(candidates)}
        total_pages = await self._store.count_pages(scope_id)

        ranked: list[tuple[Candidate, Page]] = []
        for candidate in candidates.values():
            page = pages.get(candidate.page_id)
            if page is None:
                continue
            length = len(page.content)
            candidate.score = sum(
                tf_idf(candidate.ranks.get(lemma, 0.0), length, total_pages, document_frequency.get(lemma) or 1)
                for lemma in query_lemmas
            )
            ranked.append((candidate, page))
        # sorted() is stable: equal scores keep discovery order
        ranked.sort(key=lambda item: item[0].score, reverse=True)

        window = ranked[offset:offset + max(limit, 0)]
        data = [await self._build_result(candidate, page, query_lemmas) for candidate, page in window]
        logger.info("search_finished", query=query, lemmas=query_lemmas, count=len(ranked), returned=len(data))
        return SearchResponse(result=True, count=len(ranked), data=data)

    async def _build_result(self, candidate: Candidate, page: Page, lemmas: list[str]) -> SearchResult:
        site = await self._store.get_site(page.site_id)
        snippet = build_snippet(
            html_to_text(page.content),
            lemmas,
            length=self._settings.snippet_length,
            lead=self._settings.snippet_lead,
            fragments=self._settings.snippet_fragments,
        )
        return SearchResult(
            site=site.url,
            site_name=site.name,
            uri=page.path,
            title=extract_title(page.content),
            snippet=snippet,
            relevance=candidate.score,
        )
