"""
SiteKit Repository -- Cache and Bundle Tests

CachedRepository memoizes per pass, shares in-flight fetches and turns any
repository error or timeout into DataFetchFailure. MemoryRepository loads
site bundles with separate draft and published copies.
"""

from __future__ import annotations

import asyncio

import pytest

from sitekit.kernel.errors import DataFetchFailure
from sitekit.kernel.repository import CachedRepository, MemoryRepository
from sitekit.kernel.types import ItemFilters


class SlowRepository(MemoryRepository):
    def __init__(self, delay: float) -> None:
        super().__init__()
        self.delay = delay

    async def get_fields_by_collection_id(self, collection_id, published):
        await asyncio.sleep(self.delay)
        return await super().get_fields_by_collection_id(collection_id, published)


class FailingRepository(MemoryRepository):
    async def get_items_with_values(self, collection_id, published, filters=None):
        raise RuntimeError("connection reset")


class TestCachedRepository:
    @pytest.mark.asyncio
    async def test_concurrent_callers_share_one_fetch(self):
        repo = SlowRepository(delay=0.01)
        repo.add_collection("posts", [{"id": "f_title", "type": "text"}])
        cache = CachedRepository(repo, published=True)

        first, second = await asyncio.gather(cache.get_fields("posts"), cache.get_fields("posts"))

        assert first == second == [{"id": "f_title", "type": "text", "collection_id": "posts"}]
        assert repo.calls == [("fields", "posts")]

    @pytest.mark.asyncio
    async def test_items_are_memoized_per_query(self):
        repo = MemoryRepository()
        repo.add_collection("posts", [], [{"id": "p1"}, {"id": "p2"}])
        cache = CachedRepository(repo, published=True)

        await cache.get_items("posts", ItemFilters(limit=1))
        await cache.get_items("posts", ItemFilters(limit=1))
        await cache.get_items("posts", ItemFilters(limit=2))

        assert repo.calls == [("items", ("posts", (1, None, None))), ("items", ("posts", (2, None, None)))]

    @pytest.mark.asyncio
    async def test_assets_are_fetched_once_per_id(self):
        repo = MemoryRepository()
        repo.add_asset({"id": "a", "public_url": "https://x/a.png"})
        cache = CachedRepository(repo, published=True)

        assert set(await cache.get_assets(["a", "b"])) == {"a"}
        assert set(await cache.get_assets(["a", "b"])) == {"a"}
        assert repo.calls == [("assets", ("a", "b"))]

    @pytest.mark.asyncio
    async def test_timeout_becomes_fetch_failure(self):
        repo = SlowRepository(delay=1.0)
        cache = CachedRepository(repo, published=True, timeout=0.01)
        with pytest.raises(DataFetchFailure, match="timed out"):
            await cache.get_fields("posts")

    @pytest.mark.asyncio
    async def test_errors_become_fetch_failure(self):
        cache = CachedRepository(FailingRepository(), published=True)
        with pytest.raises(DataFetchFailure, match="connection reset"):
            await cache.get_items("posts")

    @pytest.mark.asyncio
    async def test_get_item_by_id(self):
        repo = MemoryRepository()
        repo.add_collection("posts", [], [{"id": "p1"}, {"id": "p2"}])
        cache = CachedRepository(repo, published=True)
        assert (await cache.get_item("posts", "p2"))["id"] == "p2"
        assert await cache.get_item("posts", "nope") is None


class TestBundle:
    BUNDLE = {
        "settings": {"timezone": "Europe/Berlin"},
        "published": {
            "pages": [{"id": "home", "slug": "", "is_index": True, "layers": [{"id": "t", "name": "text"}]}],
            "collections": [{"id": "posts", "fields": [{"id": "f_title"}], "items": [{"id": "p1", "values": {"f_title": "A"}}]}],
            "locales": [{"id": "l_de", "code": "de"}],
            "translations": [{"locale_id": "l_de", "source_type": "page", "source_id": "home", "content_key": "layer:t:text"}],
        },
        "draft": {"pages": [{"id": "home", "slug": "draft-home", "layers": []}]},
    }

    @pytest.mark.asyncio
    async def test_states_are_separate(self):
        repo = MemoryRepository.from_bundle(self.BUNDLE)
        assert await repo.get_setting("timezone") == "Europe/Berlin"
        assert await repo.get_page_layers("home", True) == [{"id": "t", "name": "text"}]
        assert await repo.get_page_layers("home", False) == []
        assert (await repo.get_pages(False))[0]["slug"] == "draft-home"
        assert "layers" not in (await repo.get_pages(True))[0]

    @pytest.mark.asyncio
    async def test_translations_are_keyed(self):
        repo = MemoryRepository.from_bundle(self.BUNDLE)
        locale, translations = await repo.load_translations_for_locale("de", True)
        assert locale["id"] == "l_de"
        assert list(translations) == ["page:home:layer:t:text"]
        assert await repo.load_translations_for_locale("fr", True) == (None, {})

    @pytest.mark.asyncio
    async def test_items_keep_stored_order(self):
        repo = MemoryRepository.from_bundle(self.BUNDLE)
        page = await repo.get_items_with_values("posts", True)
        assert page.total == 1
        assert page.items[0]["values"] == {"f_title": "A"}
