"""Application settings models."""

from __future__ import annotations

from functools import lru_cache
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_settings import BaseSettings


class SiteConfig(BaseModel):
    """A single configured site: display name and base URL."""

    name: str
    url: str

    @field_validator("url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        value = value.strip()
        if not value.lower().startswith(("http://", "https://")):
            raise ValueError(f"site url must be absolute http(s): {value!r}")
        return value.rstrip("/")


class MongoSettings(BaseSettings):
    """Settings for MongoDB connection.

    Environment variables follow the ``MONGO_`` prefix. For example,
    ``MONGO_HOST`` and ``MONGO_PORT`` configure the connection host and port.
    ``MONGO_URI`` takes precedence over the individual parameters when set.
    """

    host: str = "localhost"
    port: int = 27017
    username: str | None = None
    password: str | None = None
    database: str = "search_engine"
    auth: str = "admin"
    uri: str | None = None

    sites: str = "sites"
    pages: str = "pages"
    lemmas: str = "lemmas"
    index: str = "search_index"

    model_config = ConfigDict(extra="ignore", env_prefix="MONGO_")


class CrawlSettings(BaseSettings):
    """Crawler limits and politeness parameters (``CRAWL_`` prefix)."""

    max_depth: int = 3
    request_timeout: float = 10.0
    delay_min: float = 0.5
    delay_max: float = 5.0
    concurrency: int = 5
    user_agent: str = (
        "Mozilla/5.0 (compatible; SiteSearchCrawler/1.0; +https://example.com)"
    )
    referrer: str = "http://www.google.com"

    model_config = ConfigDict(extra="ignore", env_prefix="CRAWL_")


class SearchSettings(BaseSettings):
    """Lemmatization and result presentation knobs (``SEARCH_`` prefix)."""

    min_word_length: int = 2
    default_limit: int = 20
    snippet_length: int = 200
    snippet_lead: int = 50
    snippet_fragments: int = 3

    model_config = ConfigDict(extra="ignore", env_prefix="SEARCH_")


class Settings(BaseSettings):
    """Top level application settings loaded from ``.env``.

    Nested models use environment prefixes such as ``MONGO_`` and ``CRAWL_``.
    The configured site list is read from ``INDEXING_SITES`` as a JSON array of
    ``{"name": ..., "url": ...}`` objects.
    """

    debug: bool = False
    sites: list[SiteConfig] = Field(default_factory=list, alias="INDEXING_SITES")
    cors_origins: str = Field(default="*", alias="CORS_ORIGINS")

    mongo: MongoSettings = Field(default_factory=MongoSettings)
    crawl: CrawlSettings = Field(default_factory=CrawlSettings)
    search: SearchSettings = Field(default_factory=SearchSettings)

    model_config = ConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        # Use double underscore to avoid collisions with top-level names
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    def find_site(self, url: str) -> SiteConfig | None:
        """Return the configured site whose base URL prefixes ``url``."""

        candidate = (url or "").strip()
        for site in self.sites:
            if candidate == site.url or candidate.startswith(site.url + "/"):
                return site
        return None

    def is_in_scope(self, url: str) -> bool:
        return self.find_site(url) is not None


@lru_cache(maxsize=1)
def get_settings() -> "Settings":
    """Return cached application settings."""

    return Settings()
