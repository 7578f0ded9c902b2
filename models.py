"""Pydantic models used throughout the application.

Adds a compatibility shim for ``enum.StrEnum`` on Python < 3.11.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
try:  # Python 3.11+
    from enum import StrEnum as _StrEnum
except ImportError:  # Python 3.10 fallback
    class _StrEnum(str, Enum):
        pass
from typing import Any

from pydantic import BaseModel, Field, ConfigDict


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SiteStatus(_StrEnum):
    """Lifecycle of a crawled site."""

    QUEUED = "QUEUED"
    INDEXING = "INDEXING"
    INDEXED = "INDEXED"
    FAILED = "FAILED"


class Site(BaseModel):
    """A configured site that is (or has been) crawled."""

    id: str
    url: str
    name: str
    status: SiteStatus
    status_time: datetime = Field(default_factory=utcnow)
    last_error: str | None = None

    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> "Site":
        return cls(
            id=str(doc["_id"]),
            url=doc["url"],
            name=doc.get("name") or doc["url"],
            status=SiteStatus(doc.get("status", SiteStatus.FAILED)),
            status_time=doc.get("status_time") or utcnow(),
            last_error=doc.get("last_error"),
        )


class Page(BaseModel):
    """A single stored resource of a site.

    ``path`` is relative to the site root for in-site resources. ``content``
    holds the full markup for HTML pages and a short marker for everything else.
    """

    id: str
    site_id: str
    path: str
    code: int
    content: str = ""

    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> "Page":
        return cls(
            id=str(doc["_id"]),
            site_id=str(doc["site_id"]),
            path=doc["path"],
            code=int(doc.get("code") or 0),
            content=doc.get("content") or "",
        )


class Lemma(BaseModel):
    """Base word form with its per-site document frequency."""

    id: str
    site_id: str
    lemma: str
    frequency: int = 0

    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> "Lemma":
        return cls(
            id=str(doc["_id"]),
            site_id=str(doc["site_id"]),
            lemma=doc["lemma"],
            frequency=int(doc.get("frequency") or 0),
        )


class IndexEntry(BaseModel):
    """Inverted index edge between a page and a lemma."""

    id: str
    page_id: str
    lemma_id: str
    rank: float

    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> "IndexEntry":
        return cls(
            id=str(doc["_id"]),
            page_id=str(doc["page_id"]),
            lemma_id=str(doc["lemma_id"]),
            rank=float(doc.get("rank") or 0),
        )


class SearchResult(BaseModel):
    """Single ranked hit returned by the search engine."""

    site: str
    site_name: str = Field(alias="siteName")
    uri: str
    title: str | None = None
    snippet: str
    relevance: float

    model_config = ConfigDict(populate_by_name=True)


class SearchResponse(BaseModel):
    """Paginated search answer. ``count`` is the total number of matches."""

    result: bool = True
    count: int = 0
    data: list[SearchResult] = []
    error: str | None = None

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "result": True,
                "count": 1,
                "data": [
                    {
                        "site": "https://example.com",
                        "siteName": "Example",
                        "uri": "/about",
                        "title": "About us",
                        "snippet": "...we sell <b>cat</b> food...",
                        "relevance": 0.0123,
                    }
                ],
            }
        }
    )


class TotalStatistics(BaseModel):
    sites: int = 0
    pages: int = 0
    lemmas: int = 0
    indexing: bool = False


class DetailedStatisticsItem(BaseModel):
    """Per-site block of the statistics report."""

    name: str
    url: str
    status: SiteStatus
    status_time: int = Field(alias="statusTime")
    pages: int = 0
    lemmas: int = 0
    error: str | None = None

    model_config = ConfigDict(populate_by_name=True)


class StatisticsData(BaseModel):
    total: TotalStatistics
    detailed: list[DetailedStatisticsItem] = []


class StatisticsResponse(BaseModel):
    result: bool = True
    statistics: StatisticsData


class OperationResponse(BaseModel):
    """Outcome of a control operation (start/stop/index page)."""

    result: bool
    error: str | None = None
