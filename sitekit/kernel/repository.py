"""
SiteKit Kernel — Repository Layer

The pipeline only ever reads pages, components, collections, assets and
translations. LayerRepository is that read interface; MemoryRepository
backs tests and JSON site bundles. CachedRepository wraps either for one
resolution pass: it memoizes by id, shares in-flight fetches between
concurrent branches and applies a per-call timeout.

Every entity exists in a draft and a published copy under the same id;
`published` selects which one is read.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable, Iterable
from pathlib import Path
from typing import Any

from sitekit.kernel.errors import DataFetchFailure
from sitekit.kernel.types import ItemFilters, ItemsPage

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Repository protocol
# ---------------------------------------------------------------------------


class LayerRepository:
    """
    Abstract read interface.
    Implement with a database for production, or in-memory for tests.
    """

    async def get_components_by_ids(self, ids: list[str], published: bool) -> list[dict[str, Any]]:
        raise NotImplementedError

    async def get_items_with_values(
        self,
        collection_id: str,
        published: bool,
        filters: ItemFilters | None = None,
    ) -> ItemsPage:
        """Items of a collection in stored order, with the total before limit/offset."""
        raise NotImplementedError

    async def get_fields_by_collection_id(self, collection_id: str, published: bool) -> list[dict[str, Any]]:
        raise NotImplementedError

    async def get_assets_by_ids(self, ids: list[str], published: bool) -> dict[str, dict[str, Any]]:
        raise NotImplementedError

    async def load_translations_for_locale(
        self, locale_code: str, published: bool
    ) -> tuple[dict[str, Any] | None, dict[str, dict[str, Any]]]:
        """Return (locale, translations keyed "source_type:source_id:content_key")."""
        raise NotImplementedError

    async def get_setting(self, key: str) -> Any:
        raise NotImplementedError

    async def get_pages(self, published: bool) -> list[dict[str, Any]]:
        raise NotImplementedError

    async def get_page_folders(self, published: bool) -> list[dict[str, Any]]:
        raise NotImplementedError

    async def get_page_layers(self, page_id: str, published: bool) -> list[dict[str, Any]] | None:
        raise NotImplementedError

    async def get_locales(self, published: bool) -> list[dict[str, Any]]:
        raise NotImplementedError


def translation_key(translation: dict[str, Any]) -> str:
    return f"{translation['source_type']}:{translation['source_id']}:{translation['content_key']}"


class _Store:
    def __init__(self) -> None:
        self.pages: dict[str, dict[str, Any]] = {}
        self.page_layers: dict[str, list[dict[str, Any]]] = {}
        self.folders: dict[str, dict[str, Any]] = {}
        self.components: dict[str, dict[str, Any]] = {}
        self.fields: dict[str, list[dict[str, Any]]] = {}
        self.items: dict[str, list[dict[str, Any]]] = {}
        self.assets: dict[str, dict[str, Any]] = {}
        self.locales: dict[str, dict[str, Any]] = {}
        self.translations: list[dict[str, Any]] = []


class MemoryRepository(LayerRepository):
    """In-memory repository for tests and JSON site bundles."""

    def __init__(self) -> None:
        self._stores = {True: _Store(), False: _Store()}
        self.settings: dict[str, Any] = {}
        self.calls: list[tuple[str, Any]] = []

    # -- writers (test / bundle setup) --

    def add_page(self, page: dict[str, Any], layers: list[dict[str, Any]], *, published: bool = True) -> None:
        store = self._stores[published]
        store.pages[page["id"]] = page
        store.page_layers[page["id"]] = layers

    def add_folder(self, folder: dict[str, Any], *, published: bool = True) -> None:
        self._stores[published].folders[folder["id"]] = folder

    def add_component(self, component: dict[str, Any], *, published: bool = True) -> None:
        self._stores[published].components[component["id"]] = component

    def add_collection(
        self,
        collection_id: str,
        fields: list[dict[str, Any]],
        items: Iterable[dict[str, Any]] = (),
        *,
        published: bool = True,
    ) -> None:
        store = self._stores[published]
        store.fields[collection_id] = [{**f, "collection_id": collection_id} for f in fields]
        store.items[collection_id] = []
        for item in items:
            self.add_item(collection_id, item, published=published)

    def add_item(self, collection_id: str, item: dict[str, Any], *, published: bool = True) -> None:
        items = self._stores[published].items.setdefault(collection_id, [])
        record = {"manual_order": len(items), **item, "collection_id": collection_id}
        record.setdefault("values", {})
        items.append(record)

    def add_asset(self, asset: dict[str, Any], *, published: bool = True) -> None:
        self._stores[published].assets[asset["id"]] = asset

    def add_locale(self, locale: dict[str, Any], *, published: bool = True) -> None:
        self._stores[published].locales[locale["code"]] = locale

    def add_translation(self, translation: dict[str, Any], *, published: bool = True) -> None:
        self._stores[published].translations.append(translation)

    @classmethod
    def from_bundle(cls, bundle: dict[str, Any]) -> MemoryRepository:
        """
        Build a repository from a site bundle:

            {"settings": {...},
             "published": {"pages": [{..., "layers": [...]}], "folders": [...],
                           "components": [...], "collections": [{"id", "fields", "items"}],
                           "assets": [...], "locales": [...], "translations": [...]},
             "draft": {... same shape ...}}
        """
        repo = cls()
        repo.settings = dict(bundle.get("settings") or {})
        for state, published in (("published", True), ("draft", False)):
            data = bundle.get(state) or {}
            for page in data.get("pages") or []:
                page = dict(page)
                repo.add_page(page, page.pop("layers", []), published=published)
            for folder in data.get("folders") or []:
                repo.add_folder(folder, published=published)
            for component in data.get("components") or []:
                repo.add_component(component, published=published)
            for collection in data.get("collections") or []:
                repo.add_collection(
                    collection["id"], collection.get("fields") or [], collection.get("items") or [],
                    published=published,
                )
            for asset in data.get("assets") or []:
                repo.add_asset(asset, published=published)
            for locale in data.get("locales") or []:
                repo.add_locale(locale, published=published)
            for translation in data.get("translations") or []:
                repo.add_translation(translation, published=published)
        return repo

    @classmethod
    def from_file(cls, path: str | Path) -> MemoryRepository:
        with open(path, encoding="utf-8") as fh:
            return cls.from_bundle(json.load(fh))

    # -- reads --

    async def get_components_by_ids(self, ids: list[str], published: bool) -> list[dict[str, Any]]:
        self.calls.append(("components", tuple(ids)))
        components = self._stores[published].components
        return [components[i] for i in ids if i in components]

    async def get_items_with_values(
        self,
        collection_id: str,
        published: bool,
        filters: ItemFilters | None = None,
    ) -> ItemsPage:
        filters = filters or ItemFilters()
        self.calls.append(("items", (collection_id, filters.cache_key())))
        items = sorted(self._stores[published].items.get(collection_id, []), key=lambda i: i["manual_order"])
        if filters.item_ids is not None:
            by_id = {i["id"]: i for i in items}
            items = [by_id[i] for i in filters.item_ids if i in by_id]
        total = len(items)
        start = filters.offset or 0
        end = start + filters.limit if filters.limit else None
        return ItemsPage(items=items[start:end], total=total)

    async def get_fields_by_collection_id(self, collection_id: str, published: bool) -> list[dict[str, Any]]:
        self.calls.append(("fields", collection_id))
        return list(self._stores[published].fields.get(collection_id, []))

    async def get_assets_by_ids(self, ids: list[str], published: bool) -> dict[str, dict[str, Any]]:
        self.calls.append(("assets", tuple(ids)))
        assets = self._stores[published].assets
        return {i: assets[i] for i in ids if i in assets}

    async def load_translations_for_locale(
        self, locale_code: str, published: bool
    ) -> tuple[dict[str, Any] | None, dict[str, dict[str, Any]]]:
        store = self._stores[published]
        locale = store.locales.get(locale_code)
        if locale is None:
            return None, {}
        translations = {
            translation_key(t): t for t in store.translations if t.get("locale_id") == locale["id"]
        }
        return locale, translations

    async def get_setting(self, key: str) -> Any:
        return self.settings.get(key)

    async def get_pages(self, published: bool) -> list[dict[str, Any]]:
        return list(self._stores[published].pages.values())

    async def get_page_folders(self, published: bool) -> list[dict[str, Any]]:
        return list(self._stores[published].folders.values())

    async def get_page_layers(self, page_id: str, published: bool) -> list[dict[str, Any]] | None:
        return self._stores[published].page_layers.get(page_id)

    async def get_locales(self, published: bool) -> list[dict[str, Any]]:
        return list(self._stores[published].locales.values())


# ---------------------------------------------------------------------------
# Per-pass memo
# ---------------------------------------------------------------------------


class CachedRepository:
    """
    Request-scoped memo over a LayerRepository.

    Fields are fetched once per collection id and items once per distinct
    query, however many clones ask. Concurrent callers share the in-flight
    task. Any repository error or timeout surfaces as DataFetchFailure.
    """

    def __init__(self, repo: LayerRepository, *, published: bool, timeout: float | None = None) -> None:
        self.repo = repo
        self.published = published
        self.timeout = timeout
        self._tasks: dict[tuple[Any, ...], asyncio.Future[Any]] = {}
        self._assets: dict[str, dict[str, Any] | None] = {}

    async def _call(self, key: tuple[Any, ...], factory: Callable[[], Awaitable[Any]]) -> Any:
        task = self._tasks.get(key)
        if task is None:
            task = asyncio.ensure_future(self._guarded(key, factory))
            self._tasks[key] = task
        return await asyncio.shield(task)

    async def _guarded(self, key: tuple[Any, ...], factory: Callable[[], Awaitable[Any]]) -> Any:
        try:
            if self.timeout:
                return await asyncio.wait_for(factory(), timeout=self.timeout)
            return await factory()
        except DataFetchFailure:
            raise
        except asyncio.TimeoutError as e:
            raise DataFetchFailure(f"{key[0]} fetch timed out after {self.timeout}s") from e
        except Exception as e:
            raise DataFetchFailure(f"{key[0]} fetch failed: {e}") from e

    async def get_fields(self, collection_id: str) -> list[dict[str, Any]]:
        return await self._call(
            ("fields", collection_id),
            lambda: self.repo.get_fields_by_collection_id(collection_id, self.published),
        )

    async def get_items(self, collection_id: str, filters: ItemFilters | None = None) -> ItemsPage:
        filters = filters or ItemFilters()
        return await self._call(
            ("items", collection_id, filters.cache_key()),
            lambda: self.repo.get_items_with_values(collection_id, self.published, filters),
        )

    async def get_item(self, collection_id: str, item_id: str) -> dict[str, Any] | None:
        page = await self.get_items(collection_id, ItemFilters(item_ids=[item_id]))
        return page.items[0] if page.items else None

    async def get_components(self, ids: list[str]) -> list[dict[str, Any]]:
        key = ("components", tuple(sorted(set(ids))))
        return await self._call(key, lambda: self.repo.get_components_by_ids(list(key[1]), self.published))

    async def get_assets(self, ids: Iterable[str]) -> dict[str, dict[str, Any]]:
        """Fetch assets not seen yet in one call; return every requested one found."""
        wanted = list(dict.fromkeys(i for i in ids if i))
        missing = [i for i in wanted if i not in self._assets]
        if missing:
            found = await self._call(
                ("assets", tuple(missing)),
                lambda: self.repo.get_assets_by_ids(missing, self.published),
            )
            for asset_id in missing:
                self._assets[asset_id] = found.get(asset_id)
        return {i: self._assets[i] for i in wanted if self._assets.get(i) is not None}
