"""Index statistics: totals plus one block per configured site.

Configured sites drive the report. A site without a row is reported as not
indexed yet, and an ``INDEXING`` row whose crawl is not running any more
(left over from a stopped process) is reconciled to ``FAILED`` on read.
"""

from __future__ import annotations

from datetime import datetime, timezone

import structlog

from crawler.orchestrator import IndexingOrchestrator
from models import (
    DetailedStatisticsItem,
    SiteStatus,
    StatisticsData,
    StatisticsResponse,
    TotalStatistics,
)
from mongo import MongoClient
from settings import Settings

logger = structlog.get_logger(__name__)

NOT_INDEXED_YET = "Site has not been indexed yet"
INTERRUPTED = "Indexing was interrupted"


def _epoch_ms(value: datetime | None) -> int:
    if value is None:
        return 0
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return int(value.timestamp() * 1000)


async def get_statistics(
    settings: Settings,
    store: MongoClient,
    orchestrator: IndexingOrchestrator,
) -> StatisticsResponse:
    """Build the statistics report for every configured site."""

    indexing = orchestrator.is_indexing_in_progress()
    detailed: list[DetailedStatisticsItem] = []
    total_pages = 0
    total_lemmas = 0

    for cfg in settings.sites:
        site = await store.get_site_by_url(cfg.url)
        if site is None:
            status = SiteStatus.QUEUED if indexing else SiteStatus.FAILED
            detailed.append(
                DetailedStatisticsItem(
                    name=cfg.name,
                    url=cfg.url,
                    status=status,
                    status_time=_epoch_ms(datetime.now(timezone.utc)),
                    error=None if indexing else NOT_INDEXED_YET,
                )
            )
            continue

        stale = (
            site.status == SiteStatus.INDEXING
            and not indexing
            and not orchestrator.is_site_indexing(cfg.url)
        )
        if stale:
            await store.update_site_status(site.id, SiteStatus.FAILED, INTERRUPTED)
            site = await store.get_site(site.id)
            logger.info("site_status_reconciled", url=cfg.url)

        pages = await store.count_pages(site.id)
        lemmas = await store.count_lemmas(site.id)
        total_pages += pages
        total_lemmas += lemmas
        detailed.append(
            DetailedStatisticsItem(
                name=site.name,
                url=site.url,
                status=site.status,
                status_time=_epoch_ms(site.status_time),
                pages=pages,
                lemmas=lemmas,
                error=site.last_error,
            )
        )

    total = TotalStatistics(
        sites=len(settings.sites),
        pages=total_pages,
        lemmas=total_lemmas,
        indexing=indexing,
    )
    return StatisticsResponse(result=True, statistics=StatisticsData(total=total, detailed=detailed))
