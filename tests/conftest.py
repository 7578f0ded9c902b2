"""Pytest configuration with basic asyncio support and in-memory fakes."""

import asyncio
import copy
import types

import pytest
from bson import ObjectId

from morphology.lemmatizer import CYRILLIC_WORD_RE, LATIN_WORD_RE, Lemmatizer, ScriptRoute
from mongo import MongoClient
from settings import CrawlSettings, SearchSettings, Settings, SiteConfig


def pytest_configure(config):
    """Register the ``asyncio`` marker for asynchronous tests."""
    config.addinivalue_line(
        "markers", "asyncio: mark async test to run in event loop"
    )


@pytest.hookimpl(tryfirst=True)
def pytest_pyfunc_call(pyfuncitem):
    """Run functions marked with ``asyncio`` in a new event loop."""
    if pyfuncitem.get_closest_marker("asyncio"):
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        try:
            funcargs = {
                name: pyfuncitem.funcargs[name]
                for name in pyfuncitem._fixtureinfo.argnames
            }
            loop.run_until_complete(pyfuncitem.obj(**funcargs))
        finally:
            loop.close()
            asyncio.set_event_loop(None)
        return True


# --------------------------------------------------------------------- mongo


def _matches(doc: dict, query: dict) -> bool:
    for key, expected in query.items():
        value = doc.get(key)
        if isinstance(expected, dict) and "$in" in expected:
            if value not in expected["$in"]:
                return False
        elif value != expected:
            return False
    return True


def _apply_update(doc: dict, update: dict, *, inserted: bool) -> None:
    for key, value in update.get("$set", {}).items():
        doc[key] = value
    if inserted:
        for key, value in update.get("$setOnInsert", {}).items():
            doc[key] = value
    for key, value in update.get("$inc", {}).items():
        doc[key] = doc.get(key, 0) + value


class FakeCursor:
    def __init__(self, docs: list[dict]):
        self._docs = docs

    def __aiter__(self):
        self._iter = iter(self._docs)
        return self

    async def __anext__(self):
        try:
            return next(self._iter)
        except StopIteration:
            raise StopAsyncIteration


class FakeCollection:
    """In-memory subset of the motor collection API used by ``MongoClient``."""

    def __init__(self, name: str):
        self.name = name
        self.docs: list[dict] = []
        self.indexes: list[tuple] = []

    def _find(self, query: dict) -> list[dict]:
        return [doc for doc in self.docs if _matches(doc, query)]

    def _upsert(self, query: dict, update: dict) -> dict:
        doc = {key: value for key, value in query.items() if not isinstance(value, dict)}
        doc["_id"] = ObjectId()
        _apply_update(doc, update, inserted=True)
        self.docs.append(doc)
        return doc

    async def create_index(self, keys, name=None, unique=False):
        self.indexes.append((tuple(keys), name, unique))
        return name

    async def find_one(self, query: dict):
        found = self._find(query)
        return copy.deepcopy(found[0]) if found else None

    def find(self, query: dict | None = None):
        return FakeCursor([copy.deepcopy(doc) for doc in self._find(query or {})])

    async def insert_one(self, doc: dict):
        stored = dict(doc)
        stored.setdefault("_id", ObjectId())
        self.docs.append(stored)
        return types.SimpleNamespace(inserted_id=stored["_id"])

    async def update_one(self, query: dict, update: dict, upsert: bool = False):
        found = self._find(query)
        if found:
            _apply_update(found[0], update, inserted=False)
            return types.SimpleNamespace(matched_count=1, modified_count=1, upserted_id=None)
        if upsert:
            doc = self._upsert(query, update)
            return types.SimpleNamespace(matched_count=0, modified_count=0, upserted_id=doc["_id"])
        return types.SimpleNamespace(matched_count=0, modified_count=0, upserted_id=None)

    async def update_many(self, query: dict, update: dict):
        found = self._find(query)
        for doc in found:
            _apply_update(doc, update, inserted=False)
        return types.SimpleNamespace(matched_count=len(found), modified_count=len(found))

    async def find_one_and_update(self, query: dict, update: dict, upsert: bool = False, return_document=False):
        found = self._find(query)
        if found:
            before = copy.deepcopy(found[0])
            _apply_update(found[0], update, inserted=False)
            return copy.deepcopy(found[0]) if return_document else before
        if not upsert:
            return None
        doc = self._upsert(query, update)
        return copy.deepcopy(doc) if return_document else None

    async def delete_many(self, query: dict):
        keep = [doc for doc in self.docs if not _matches(doc, query)]
        deleted = len(self.docs) - len(keep)
        self.docs = keep
        return types.SimpleNamespace(deleted_count=deleted)

    async def delete_one(self, query: dict):
        for idx, doc in enumerate(self.docs):
            if _matches(doc, query):
                del self.docs[idx]
                return types.SimpleNamespace(deleted_count=1)
        return types.SimpleNamespace(deleted_count=0)

    async def count_documents(self, query: dict):
        return len(self._find(query))


class FakeDatabase:
    name = "test"

    def __init__(self):
        self.collections: dict[str, FakeCollection] = {}

    def __getitem__(self, name: str) -> FakeCollection:
        return self.collections.setdefault(name, FakeCollection(name))


# ---------------------------------------------------------------- morphology


class DictNormalizer:
    """Maps known words to base forms and returns anything else unchanged."""

    def __init__(self, forms: dict[str, list[str]] | None = None, stop_words=()):
        self.forms = forms or {}
        self.stop_words = set(stop_words)

    def normalize(self, word: str) -> list[str]:
        if word in self.stop_words:
            return []
        return list(self.forms.get(word, [word]))


ENGLISH_FORMS = {
    "cats": ["cat"],
    "dogs": ["dog"],
    "running": ["running", "run"],
    "ran": ["run"],
}
RUSSIAN_FORMS = {"коты": ["кот"], "кота": ["кот"], "собаки": ["собака"]}


@pytest.fixture
def lemmatizer() -> Lemmatizer:
    return Lemmatizer(
        [
            ScriptRoute(CYRILLIC_WORD_RE, DictNormalizer(RUSSIAN_FORMS, stop_words={"и", "в", "на"})),
            ScriptRoute(LATIN_WORD_RE, DictNormalizer(ENGLISH_FORMS, stop_words={"the", "and", "of"})),
        ]
    )


# ------------------------------------------------------------------ settings


@pytest.fixture
def settings() -> Settings:
    return Settings(
        sites=[
            SiteConfig(name="Example", url="https://example.com"),
            SiteConfig(name="Other", url="https://other.org/"),
        ],
        crawl=CrawlSettings(delay_min=0, delay_max=0, max_depth=3, request_timeout=1.0),
        search=SearchSettings(),
    )


@pytest.fixture
def database() -> FakeDatabase:
    return FakeDatabase()


@pytest.fixture
def store(database) -> MongoClient:
    return MongoClient.from_database(database)


@pytest.fixture
def dict_normalizer():
    return DictNormalizer
