"""
SiteKit Kernel — Resolution Pipeline

Sits between the pure passes and the repository. Coordinates one page
resolution:

    components → collections → pagination controls → translations
    → assets → visibility → render context

This is where IO happens. Every pass it calls is pure over the data it is
handed; fetches go through one request-scoped CachedRepository.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from sitekit.kernel import html_renderer, ids, rules, tree_renderer
from sitekit.kernel.assets import resolve_assets
from sitekit.kernel.collections import CollectionExpander, resolve_collection_layers
from sitekit.kernel.components import expand_components, referenced_component_ids
from sitekit.kernel.errors import PageNotFound
from sitekit.kernel.fields import format_date_fields, inject_field_data, owns_item_context, resolve_reference_fields, stringify
from sitekit.kernel.links import build_anchor_map
from sitekit.kernel.pagination import insert_default_controls
from sitekit.kernel.repository import CachedRepository, LayerRepository
from sitekit.kernel.translations import apply_cms_translations, apply_translations
from sitekit.kernel.types import (
    Diagnostics,
    ItemFilters,
    ItemScope,
    PaginationContext,
    RenderContext,
    RenderOptions,
)
from sitekit.kernel.visibility import filter_by_visibility

logger = logging.getLogger(__name__)

DEFAULT_TIMEZONE = "UTC"


# ---------------------------------------------------------------------------
# Result
# ---------------------------------------------------------------------------


@dataclass
class PageItem:
    """The collection item a dynamic page is rendered for."""

    id: str
    collection_id: str
    values: dict[str, Any] = field(default_factory=dict)
    slug: str | None = None


@dataclass
class ResolvedPage:
    page: dict[str, Any]
    layers: list[dict[str, Any]]
    context: RenderContext
    diagnostics: Diagnostics

    def render_html(self) -> str:
        return html_renderer.render_html(self.layers, self.context)

    def render_tree(self) -> tree_renderer.UITree:
        return tree_renderer.render_tree(self.layers, self.context)

    @property
    def warnings(self) -> list[dict[str, Any]]:
        return [w.to_dict() for w in self.diagnostics.warnings]


def collect_item_slugs(layers: list[dict[str, Any]]) -> dict[str, str]:
    """Item id → slug for every collection clone in the tree."""
    slugs: dict[str, str] = {}
    stack = list(layers)
    while stack:
        layer = stack.pop()
        if layer.get("_collectionItemId") and layer.get("_collectionItemSlug"):
            slugs[layer["_collectionItemId"]] = layer["_collectionItemSlug"]
        stack.extend(layer.get("children") or [])
    return slugs


def linked_item_ids(layers: list[dict[str, Any]]) -> set[str]:
    """Explicit item ids referenced by page links to dynamic pages."""
    found: set[str] = set()
    stack = list(layers)
    while stack:
        layer = stack.pop()
        link = (layer.get("variables") or {}).get("link")
        if isinstance(link, Mapping) and isinstance(link.get("page"), Mapping):
            item_id = link["page"].get("collection_item_id")
            if item_id and item_id not in ("current-page", "current-collection"):
                found.add(item_id)
        stack.extend(layer.get("children") or [])
    return found


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------


class LayerPipeline:
    """
    Resolves pages against a LayerRepository.

    One instance can serve many requests; every resolve call builds its own
    CachedRepository and Diagnostics.
    """

    def __init__(
        self,
        repo: LayerRepository,
        *,
        published: bool = True,
        fetch_timeout: float | None = None,
        options: RenderOptions | None = None,
        default_timezone: str = DEFAULT_TIMEZONE,
    ) -> None:
        self.repo = repo
        self.published = published
        self.fetch_timeout = fetch_timeout
        self.options = options or RenderOptions()
        self.default_timezone = default_timezone

    def _cache(self) -> CachedRepository:
        return CachedRepository(self.repo, published=self.published, timeout=self.fetch_timeout)

    async def _timezone(self) -> str:
        value = await self.repo.get_setting("timezone")
        return value if isinstance(value, str) and value else self.default_timezone

    async def _translations(self, locale_code: str | None) -> tuple[dict[str, Any] | None, dict[str, dict[str, Any]]]:
        if not locale_code:
            return None, {}
        locale, translations = await self.repo.load_translations_for_locale(locale_code, self.published)
        if locale is not None and locale.get("is_default"):
            return locale, {}
        return locale, translations

    # -- components --

    async def fetch_components(
        self,
        layers: list[dict[str, Any]],
        cache: CachedRepository,
        diagnostics: Diagnostics,
    ) -> dict[str, dict[str, Any]]:
        """Fetch every component reachable from `layers`, including nested ones."""
        components: dict[str, dict[str, Any]] = {}
        wanted = referenced_component_ids(layers)
        while wanted:
            try:
                fetched = await cache.get_components(sorted(wanted))
            except Exception as e:
                diagnostics.record(e, component_ids=sorted(wanted))
                break
            missing = set(wanted)
            for component in fetched:
                components[component["id"]] = component
                missing.discard(component["id"])
            # Missing ids are reported by the expander
            wanted = set()
            for component in fetched:
                wanted |= referenced_component_ids(component.get("layers") or [])
            wanted -= set(components) | missing
        return components

    # -- page item --

    async def prepare_page_item(
        self,
        item: PageItem,
        cache: CachedRepository,
        translations: Mapping[str, Mapping[str, Any]],
        timezone: str,
        diagnostics: Diagnostics,
    ) -> dict[str, Any]:
        fields = await cache.get_fields(item.collection_id)
        values = apply_cms_translations(item.id, item.values, fields, translations)
        values = format_date_fields(values, fields, timezone)
        return await resolve_reference_fields(values, fields, cache, diagnostics=diagnostics)

    async def _linked_slugs(
        self,
        layers: list[dict[str, Any]],
        pages: list[dict[str, Any]],
        cache: CachedRepository,
        known: dict[str, str],
    ) -> dict[str, str]:
        wanted = sorted(linked_item_ids(layers) - set(known))
        collections = {p["collection_id"] for p in pages if p.get("is_dynamic") and p.get("collection_id")}
        if not wanted or not collections:
            return {}
        slugs: dict[str, str] = {}
        for collection_id in sorted(collections):
            try:
                page, fields = await asyncio.gather(
                    cache.get_items(collection_id, ItemFilters(item_ids=wanted)),
                    cache.get_fields(collection_id),
                )
            except Exception as e:
                logger.warning("pipeline: slug lookup failed for collection_id=%s: %s", collection_id, e)
                continue
            slug_field = next((f["id"] for f in fields if f.get("key") == "slug"), None)
            if slug_field is None:
                continue
            for item in page.items:
                slug = (item.get("values") or {}).get(slug_field)
                if slug:
                    slugs[item["id"]] = stringify(slug)
        return slugs

    # -- resolution --

    async def resolve_layers(
        self,
        layers: list[dict[str, Any]],
        *,
        page: dict[str, Any],
        locale_code: str | None = None,
        page_item: PageItem | None = None,
        pagination: PaginationContext | None = None,
    ) -> ResolvedPage:
        """Run every pass over an authoring tree and build its render context."""
        cache = self._cache()
        diagnostics = Diagnostics()
        page_id = page.get("id") or ""

        (locale, translations), timezone, pages, folders = await asyncio.gather(
            self._translations(locale_code),
            self._timezone(),
            self.repo.get_pages(self.published),
            self.repo.get_page_folders(self.published),
        )

        components = await self.fetch_components(layers, cache, diagnostics)
        tree = expand_components(layers, components, diagnostics=diagnostics)

        page_values: dict[str, Any] | None = None
        if page_item is not None:
            page_values = await self.prepare_page_item(page_item, cache, translations, timezone, diagnostics)

        tree = await resolve_collection_layers(
            tree,
            cache,
            page_values=page_values,
            page_item_id=page_item.id if page_item else None,
            pagination_context=pagination,
            translations=translations,
            timezone=timezone,
            diagnostics=diagnostics,
        )
        if self.options.default_pagination_controls:
            tree = insert_default_controls(tree)

        root_scope = ItemScope(
            values=page_values or {},
            item_id=page_item.id if page_item else None,
            item_slug=page_item.slug if page_item else None,
        )
        if page_values is not None:
            tree = [layer if owns_item_context(layer) else inject_field_data(layer, root_scope) for layer in tree]

        tree = apply_translations(tree, page_id, translations)
        tree, asset_map = await resolve_assets(tree, cache, scope=root_scope, diagnostics=diagnostics)
        tree = filter_by_visibility(tree, None, page_values)

        item_slugs = collect_item_slugs(tree)
        if page_item is not None and page_item.slug:
            item_slugs[page_item.id] = page_item.slug
        item_slugs.update(await self._linked_slugs(tree, pages, cache, item_slugs))

        context = RenderContext(
            pages=pages,
            folders=folders,
            locale=locale,
            translations=translations,
            collection_item_slugs=item_slugs,
            anchor_map=build_anchor_map(tree),
            asset_map=asset_map,
            page_item_values=page_values,
            page_item_id=page_item.id if page_item else None,
            options=self.options,
        )
        if diagnostics.warnings:
            logger.info("pipeline: page_id=%s resolved with %d warnings", page_id, len(diagnostics))
        return ResolvedPage(page=page, layers=tree, context=context, diagnostics=diagnostics)

    async def resolve_page(
        self,
        page_id: str,
        *,
        locale_code: str | None = None,
        page_item: PageItem | None = None,
        pagination: PaginationContext | None = None,
    ) -> ResolvedPage:
        pages = await self.repo.get_pages(self.published)
        page = next((p for p in pages if p.get("id") == page_id), None)
        layers = await self.repo.get_page_layers(page_id, self.published) if page else None
        if page is None or layers is None:
            raise PageNotFound(page_id)
        return await self.resolve_layers(
            layers, page=page, locale_code=locale_code, page_item=page_item, pagination=pagination
        )

    # -- load more --

    async def render_collection_page(
        self,
        *,
        layer_id: str,
        collection_id: str,
        layer_template: list[dict[str, Any]],
        page: int,
        items_per_page: int,
        item_ids: list[str] | None = None,
        sort_by: str | None = None,
        sort_order: str | None = None,
        filters: Mapping[str, Any] | None = None,
        locale_code: str | None = None,
    ) -> str:
        """
        HTML for one further page of a load-more loop.

        Items are filtered, sorted and sliced exactly as the loop's first
        render was, so consecutive pages never overlap. Each item is rendered
        from the loop's layer template and wrapped in
        <div data-layer-id="{layerId}-item-{itemId}" data-collection-item-id="{itemId}">.
        """
        cache = self._cache()
        diagnostics = Diagnostics()
        (locale, translations), timezone, pages, folders = await asyncio.gather(
            self._translations(locale_code),
            self._timezone(),
            self.repo.get_pages(self.published),
            self.repo.get_page_folders(self.published),
        )

        page = max(page, 1)
        binding = {"id": collection_id, "sort_by": sort_by, "sort_order": sort_order, "filters": filters}
        components = await self.fetch_components(layer_template, cache, diagnostics)
        template = expand_components(layer_template, components, diagnostics=diagnostics)
        shell = {"id": layer_id, "name": "div", "children": template}

        expander = CollectionExpander(cache, translations=translations, timezone=timezone, diagnostics=diagnostics)
        items, _, fields = await expander.load_items(
            shell,
            binding,
            collection_id,
            list(dict.fromkeys(item_ids)) if item_ids is not None else None,
            limit=items_per_page,
            offset=(page - 1) * items_per_page,
        )
        clones = await expander.clone_items(shell, items, fields, ItemScope())
        clones = apply_translations(clones, "", translations)
        clones, asset_map = await resolve_assets(clones, cache, diagnostics=diagnostics)
        clones = filter_by_visibility(clones)

        context = RenderContext(
            pages=pages,
            folders=folders,
            locale=locale,
            translations=translations,
            collection_item_slugs=collect_item_slugs(clones),
            anchor_map=build_anchor_map(clones),
            asset_map=asset_map,
            options=self.options,
        )
        parts = []
        for clone in clones:
            item_id = clone["_collectionItemId"]
            scope = ItemScope().for_layer(clone)
            inner = html_renderer.serialize(
                [node for child in clone.get("children") or [] for node in rules.build_element(child, context, scope)]
            )
            wrapper_id = html_renderer.escape(ids.item_namespace(item_id)(layer_id))
            parts.append(
                f'<div data-layer-id="{wrapper_id}" data-collection-item-id="{html_renderer.escape(item_id)}">{inner}</div>'
            )
        return "".join(parts)
