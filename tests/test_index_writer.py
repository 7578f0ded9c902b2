"""Tests for the inverted index writer."""

import pytest
from pymongo.errors import PyMongoError

from knowledge.index_writer import IndexWriter


async def _page(store, site, path, content):
    return await store.add_page(site.id, path, 200, content)


@pytest.mark.asyncio
async def test_frequency_counts_pages_not_occurrences(store, database, lemmatizer):
    site = await store.create_site("https://example.com", "Example")
    writer = IndexWriter(store, lemmatizer)
    first = await _page(store, site, "/1", "<p>cats cats cats</p>")
    second = await _page(store, site, "/2", "<p>cats dogs</p>")

    assert await writer.index_page(first) == 1
    assert await writer.index_page(second) == 2

    lemmas = {doc["lemma"]: doc for doc in database[store.lemmas_collection].docs}
    assert lemmas["cat"]["frequency"] == 2
    assert lemmas["dog"]["frequency"] == 1
    edges = database[store.index_collection].docs
    ranks = {(str(e["page_id"]), str(e["lemma_id"])): e["rank"] for e in edges}
    assert ranks[(first.id, str(lemmas["cat"]["_id"]))] == 3.0


@pytest.mark.asyncio
async def test_reindexing_same_page_is_idempotent(store, database, lemmatizer):
    site = await store.create_site("https://example.com", "Example")
    writer = IndexWriter(store, lemmatizer)
    page = await _page(store, site, "/1", "<p>cats and dogs</p>")

    await writer.index_page(page)
    assert await writer.index_page(page) == 0

    lemmas = database[store.lemmas_collection].docs
    assert all(doc["frequency"] == 1 for doc in lemmas)
    assert len(database[store.index_collection].docs) == len(lemmas)


@pytest.mark.asyncio
async def test_lemmas_are_per_site(store, database, lemmatizer):
    one = await store.create_site("https://example.com", "Example")
    two = await store.create_site("https://other.org", "Other")
    writer = IndexWriter(store, lemmatizer)
    await writer.index_page(await _page(store, one, "/", "<p>cats</p>"))
    await writer.index_page(await _page(store, two, "/", "<p>cats</p>"))

    cats = [doc for doc in database[store.lemmas_collection].docs if doc["lemma"] == "cat"]
    assert len(cats) == 2
    assert [doc["frequency"] for doc in cats] == [1, 1]


@pytest.mark.asyncio
async def test_lemmatizer_failure_leaves_page_unindexed(store, database):
    class Broken:
        def lemmatize_html(self, html):
            raise RuntimeError("analyzer crashed")

    site = await store.create_site("https://example.com", "Example")
    page = await _page(store, site, "/", "<p>cats</p>")
    assert await IndexWriter(store, Broken()).index_page(page) == 0
    assert database[store.lemmas_collection].docs == []
    assert await store.page_exists(site.id, "/")


@pytest.mark.asyncio
async def test_storage_failure_is_local(store, lemmatizer, monkeypatch):
    async def boom(*args, **kwargs):
        raise PyMongoError("write failed")

    site = await store.create_site("https://example.com", "Example")
    page = await _page(store, site, "/", "<p>cats</p>")
    monkeypatch.setattr(store, "write_page_index", boom)
    assert await IndexWriter(store, lemmatizer).index_page(page) == 0
