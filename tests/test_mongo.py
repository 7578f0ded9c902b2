"""Tests for the MongoDB storage layer against in-memory collections."""

import pytest

from models import SiteStatus
from mongo import MongoClient, NotFound


@pytest.mark.asyncio
async def test_duplicate_page_path_is_a_noop(store, database):
    site = await store.create_site("https://example.com", "Example")
    first = await store.add_page(site.id, "/a", 200, "one")
    second = await store.add_page(site.id, "/a", 200, "two")

    assert first is not None
    assert second is None
    docs = database[store.pages_collection].docs
    assert len(docs) == 1
    assert docs[0]["content"] == "one"
    assert await store.count_pages(site.id) == 1


@pytest.mark.asyncio
async def test_site_lifecycle(store):
    site = await store.create_site("https://example.com", "Example")
    assert site.status == SiteStatus.INDEXING

    await store.update_site_status(site.id, SiteStatus.FAILED, "boom")
    reloaded = await store.get_site(site.id)
    assert reloaded.status == SiteStatus.FAILED
    assert reloaded.last_error == "boom"
    assert [s.url for s in await store.list_sites()] == ["https://example.com"]


@pytest.mark.asyncio
async def test_status_is_stored_as_plain_string(store, database):
    await store.create_site("https://example.com", "Example")
    assert database[store.sites_collection].docs[0]["status"] == "INDEXING"


@pytest.mark.asyncio
async def test_get_site_missing_raises(store):
    with pytest.raises(NotFound):
        await store.get_site("0123456789abcdef01234567")


@pytest.mark.asyncio
async def test_fail_indexing_sites(store):
    busy = await store.create_site("https://example.com", "Example")
    done = await store.create_site("https://other.org", "Other", SiteStatus.INDEXED)

    assert await store.fail_indexing_sites("stopped") == 1
    assert (await store.get_site(busy.id)).status == SiteStatus.FAILED
    assert (await store.get_site(busy.id)).last_error == "stopped"
    assert (await store.get_site(done.id)).status == SiteStatus.INDEXED


@pytest.mark.asyncio
async def test_fail_indexing_sites_limited_to_urls(store):
    crawled = await store.create_site("https://example.com", "Example")
    single = await store.create_site("https://other.org", "Other")

    assert await store.fail_indexing_sites("stopped", urls=["https://example.com"]) == 1
    assert (await store.get_site(crawled.id)).status == SiteStatus.FAILED
    assert (await store.get_site(single.id)).status == SiteStatus.INDEXING


@pytest.mark.asyncio
async def test_delete_site_data_removes_everything(store, database):
    site = await store.create_site("https://example.com", "Example")
    other = await store.create_site("https://other.org", "Other")
    page = await store.add_page(site.id, "/", 200, "x")
    kept = await store.add_page(other.id, "/", 200, "y")
    await store.write_page_index(site.id, page.id, {"cat": 1})
    await store.write_page_index(other.id, kept.id, {"cat": 1})

    assert await store.delete_site_data("https://example.com") is True
    assert await store.get_site_by_url("https://example.com") is None
    assert await store.count_pages() == 1
    assert await store.count_lemmas() == 1
    assert len(database[store.index_collection].docs) == 1
    assert await store.delete_site_data("https://example.com") is False


@pytest.mark.asyncio
async def test_find_lemmas_and_entries(store):
    site = await store.create_site("https://example.com", "Example")
    page = await store.add_page(site.id, "/", 200, "x")
    await store.write_page_index(site.id, page.id, {"cat": 2, "dog": 1})

    lemmas = await store.find_lemmas(["cat", "bird"], site.id)
    assert [lemma.lemma for lemma in lemmas] == ["cat"]
    entries = await store.find_index_entries([lemma.id for lemma in lemmas])
    assert [(entry.page_id, entry.rank) for entry in entries] == [(page.id, 2.0)]
    assert await store.find_index_entries([]) == []


@pytest.mark.asyncio
async def test_ensure_indexes_declares_unique_keys(store, database):
    await store.ensure_indexes()
    unique = {
        (name, keys)
        for collection in database.collections.values()
        for keys, name, is_unique in collection.indexes
        if is_unique
    }
    assert ("page_site_path_unique", (("site_id", 1), ("path", 1))) in unique
    assert ("index_page_lemma_unique", (("page_id", 1), ("lemma_id", 1))) in unique


def test_uri_is_built_from_parameters():
    client = MongoClient("db", 27017, "user", "p@ss", "search", "admin")
    assert client.url == "mongodb://user:p%40ss@db:27017/admin"
    assert client.database_name == "search"
