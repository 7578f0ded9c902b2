"""MongoDB storage for sites, pages, lemmas and the inverted index."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from datetime import datetime, timezone
from urllib.parse import quote_plus

import structlog
from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorClient
from pymongo import ReturnDocument
from pymongo.errors import ConfigurationError, DuplicateKeyError

from models import IndexEntry, Lemma, Page, Site, SiteStatus
from settings import MongoSettings

logger = structlog.get_logger(__name__)


class NotFound(Exception):
    """Raised when a query to MongoDB yields no results."""

    pass


def _oid(value):
    if isinstance(value, str) and ObjectId.is_valid(value):
        return ObjectId(value)
    return value


def _now() -> datetime:
    return datetime.now(timezone.utc)


class MongoClient:
    """Wrapper around the asynchronous MongoDB client.

    Parameters
    ----------
    host, port, username, password, database, auth_database:
        Connection parameters used when an explicit ``uri`` is not provided.
    uri:
        Optional full MongoDB URI. When supplied, connection parameters are
        derived from it.
    collections:
        Collection names; defaults to :class:`settings.MongoSettings`.

    Notes
    -----
    Uniqueness of ``(site_id, path)`` pages, ``(site_id, lemma)`` lemmas and
    ``(page_id, lemma_id)`` index edges is enforced with upserts, so callers
    never need a check-then-insert sequence. Database operations log
    exceptions before re-raising so the caller can decide how to degrade.
    """

    def __init__(
        self,
        host: str,
        port: int,
        username: str | None,
        password: str | None,
        database: str,
        auth_database: str,
        *,
        uri: str | None = None,
        collections: MongoSettings | None = None,
    ):
        try:
            if uri:
                self.url = uri
                self.client = AsyncIOMotorClient(uri, tz_aware=True)
                try:
                    db = self.client.get_default_database()
                except ConfigurationError:
                    db = self.client[database]
            else:
                has_user = username is not None and str(username) != ""
                has_pass = password is not None and str(password) != ""
                if has_user and has_pass:
                    auth_part = f"{quote_plus(str(username))}:{quote_plus(str(password))}@"
                    auth_db = f"/{auth_database}"
                else:
                    auth_part = ""
                    auth_db = ""
                self.url = f"mongodb://{auth_part}{host}:{port}{auth_db}"
                self.client = AsyncIOMotorClient(self.url, tz_aware=True)
                db = self.client[database]
        except Exception as exc:
            logger.error("mongo_client_init_failed", uri=uri or getattr(self, "url", uri), error=str(exc))
            raise
        self._bind(db, collections)

    @classmethod
    def from_settings(cls, cfg: MongoSettings) -> "MongoClient":
        return cls(
            cfg.host,
            cfg.port,
            cfg.username,
            cfg.password,
            cfg.database,
            cfg.auth,
            uri=cfg.uri,
            collections=cfg,
        )

    @classmethod
    def from_database(cls, db, collections: MongoSettings | None = None) -> "MongoClient":
        """Build a client around an already opened database handle."""

        instance = cls.__new__(cls)
        instance.client = None
        instance.url = None
        instance._bind(db, collections)
        return instance

    def _bind(self, db, collections: MongoSettings | None) -> None:
        cfg = collections or MongoSettings()
        self.db = db
        self.database_name = getattr(db, "name", None)
        self.sites_collection = cfg.sites
        self.pages_collection = cfg.pages
        self.lemmas_collection = cfg.lemmas
        self.index_collection = cfg.index
        self._indexes_ready = False

    async def close(self) -> None:
        if self.client is not None:
            self.client.close()

    async def ensure_indexes(self) -> None:
        """Create the unique indexes backing the storage invariants."""

        if self._indexes_ready:
            return
        specs = (
            (self.sites_collection, [("url", 1)], "site_url", False),
            (self.pages_collection, [("site_id", 1), ("path", 1)], "page_site_path_unique", True),
            (self.lemmas_collection, [("site_id", 1), ("lemma", 1)], "lemma_site_text_unique", True),
            (self.lemmas_collection, [("lemma", 1)], "lemma_text", False),
            (self.index_collection, [("page_id", 1), ("lemma_id", 1)], "index_page_lemma_unique", True),
            (self.index_collection, [("lemma_id", 1)], "index_lemma", False),
            (self.index_collection, [("site_id", 1)], "index_site", False),
        )
        for collection, keys, name, unique in specs:
            try:
                await self.db[collection].create_index(keys, name=name, unique=unique)
            except Exception as exc:  # noqa: BLE001
                logger.debug("mongo_index_create_failed", collection=collection, index=name, error=str(exc))
        self._indexes_ready = True

    # ------------------------------------------------------------------ sites

    async def get_site_by_url(self, url: str) -> Site | None:
        doc = await self.db[self.sites_collection].find_one({"url": url})
        return Site.from_document(doc) if doc else None

    async def get_site(self, site_id: str) -> Site:
        doc = await self.db[self.sites_collection].find_one({"_id": _oid(site_id)})
        if not doc:
            raise NotFound(site_id)
        return Site.from_document(doc)

    async def list_sites(self) -> list[Site]:
        sites: list[Site] = []
        async for doc in self.db[self.sites_collection].find({}):
            sites.append(Site.from_document(doc))
        return sites

    async def create_site(self, url: str, name: str, status: SiteStatus = SiteStatus.INDEXING) -> Site:
        doc = {
            "url": url,
            "name": name,
            "status": SiteStatus(status).value,
            "status_time": _now(),
            "last_error": None,
        }
        try:
            result = await self.db[self.sites_collection].insert_one(doc)
        except Exception as exc:
            logger.error("mongo_create_site_failed", url=url, error=str(exc))
            raise
        doc["_id"] = result.inserted_id
        return Site.from_document(doc)

    async def update_site_status(
        self,
        site_id: str,
        status: SiteStatus,
        last_error: str | None = None,
    ) -> None:
        await self.db[self.sites_collection].update_one(
            {"_id": _oid(site_id)},
            {"$set": {"status": SiteStatus(status).value, "status_time": _now(), "last_error": last_error}},
        )

    async def touch_site(self, site_id: str) -> None:
        await self.db[self.sites_collection].update_one(
            {"_id": _oid(site_id)}, {"$set": {"status_time": _now()}}
        )

    async def fail_indexing_sites(self, message: str, urls: Iterable[str] | None = None) -> int:
        """Mark ``INDEXING`` sites as ``FAILED`` with ``message``.

        With ``urls`` only those sites are touched.
        """

        query: dict = {"status": SiteStatus.INDEXING.value}
        if urls is not None:
            query["url"] = {"$in": list(urls)}
        result = await self.db[self.sites_collection].update_many(
            query,
            {"$set": {"status": SiteStatus.FAILED.value, "status_time": _now(), "last_error": message}},
        )
        return result.modified_count

    async def delete_site_data(self, url: str) -> bool:
        """Delete every site row for ``url`` together with its pages and index."""

        deleted = False
        async for doc in self.db[self.sites_collection].find({"url": url}):
            site_id = doc["_id"]
            try:
                edges = await self.db[self.index_collection].delete_many({"site_id": site_id})
                lemmas = await self.db[self.lemmas_collection].delete_many({"site_id": site_id})
                pages = await self.db[self.pages_collection].delete_many({"site_id": site_id})
                await self.db[self.sites_collection].delete_one({"_id": site_id})
            except Exception as exc:
                logger.error("mongo_delete_site_failed", url=url, error=str(exc))
                raise
            logger.info(
                "site_data_deleted",
                url=url,
                index=edges.deleted_count,
                lemmas=lemmas.deleted_count,
                pages=pages.deleted_count,
            )
            deleted = True
        return deleted

    # ------------------------------------------------------------------ pages

    async def page_exists(self, site_id: str, path: str) -> bool:
        doc = await self.db[self.pages_collection].find_one({"site_id": _oid(site_id), "path": path})
        return doc is not None

    async def add_page(self, site_id: str, path: str, code: int, content: str) -> Page | None:
        """Insert a page unless ``(site_id, path)`` already exists.

        Returns the stored page, or ``None`` when the path was already taken.
        """

        sid = _oid(site_id)
        try:
            result = await self.db[self.pages_collection].update_one(
                {"site_id": sid, "path": path},
                {"$setOnInsert": {"code": int(code), "content": content}},
                upsert=True,
            )
        except DuplicateKeyError:
            return None
        except Exception as exc:
            logger.error("mongo_add_page_failed", site_id=site_id, path=path, error=str(exc))
            raise
        if result.upserted_id is None:
            return None
        return Page(id=str(result.upserted_id), site_id=str(sid), path=path, code=int(code), content=content)

    async def get_pages(self, page_ids: Iterable[str]) -> list[Page]:
        ids = [_oid(page_id) for page_id in page_ids]
        if not ids:
            return []
        pages: list[Page] = []
        async for doc in self.db[self.pages_collection].find({"_id": {"$in": ids}}):
            pages.append(Page.from_document(doc))
        return pages

    async def count_pages(self, site_id: str | None = None) -> int:
        query = {} if site_id is None else {"site_id": _oid(site_id)}
        return await self.db[self.pages_collection].count_documents(query)

    # ----------------------------------------------------------- lemmas/index

    async def _upsert_lemma(self, site_id, lemma: str) -> dict:
        collection = self.db[self.lemmas_collection]
        try:
            return await collection.find_one_and_update(
                {"site_id": site_id, "lemma": lemma},
                {"$setOnInsert": {"frequency": 0}},
                upsert=True,
                return_document=ReturnDocument.AFTER,
            )
        except DuplicateKeyError:
            # A concurrent upsert created it first.
            return await collection.find_one({"site_id": site_id, "lemma": lemma})

    async def write_page_index(self, site_id: str, page_id: str, counts: Mapping[str, int]) -> int:
        """Merge one page's ``{lemma: occurrences}`` into the site index.

        Each lemma row is created on first sighting. One index edge per
        ``(page, lemma)`` carries the occurrence count as ``rank``. A lemma's
        document frequency grows by exactly one, atomically, and only when its
        edge to this page is new, so re-indexing the same page is a no-op for
        frequencies. Returns the number of new edges.
        """

        sid, pid = _oid(site_id), _oid(page_id)
        new_lemma_ids: list = []
        for lemma, count in counts.items():
            lemma_doc = await self._upsert_lemma(sid, lemma)
            result = await self.db[self.index_collection].update_one(
                {"page_id": pid, "lemma_id": lemma_doc["_id"]},
                {"$set": {"rank": float(count)}, "$setOnInsert": {"site_id": sid}},
                upsert=True,
            )
            if result.upserted_id is not None:
                new_lemma_ids.append(lemma_doc["_id"])
        if new_lemma_ids:
            await self.db[self.lemmas_collection].update_many(
                {"_id": {"$in": new_lemma_ids}}, {"$inc": {"frequency": 1}}
            )
        return len(new_lemma_ids)

    async def find_lemmas(self, lemmas: Iterable[str], site_id: str | None = None) -> list[Lemma]:
        query: dict = {"lemma": {"$in": list(lemmas)}}
        if site_id is not None:
            query["site_id"] = _oid(site_id)
        found: list[Lemma] = []
        async for doc in self.db[self.lemmas_collection].find(query):
            found.append(Lemma.from_document(doc))
        return found

    async def find_index_entries(self, lemma_ids: Iterable[str]) -> list[IndexEntry]:
        ids = [_oid(lemma_id) for lemma_id in lemma_ids]
        if not ids:
            return []
        entries: list[IndexEntry] = []
        async for doc in self.db[self.index_collection].find({"lemma_id": {"$in": ids}}):
            entries.append(IndexEntry.from_document(doc))
        return entries

    async def count_lemmas(self, site_id: str | None = None) -> int:
        query = {} if site_id is None else {"site_id": _oid(site_id)}
        return await self.db[self.lemmas_collection].count_documents(query)
