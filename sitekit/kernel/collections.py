"""
SiteKit Kernel — Collection Expander

Expands collection-bound layers into one clone per item.

For each loop:
  1. choose the item set (multi-asset field, reference, multi-reference,
     or a direct collection query)
  2. filter, sort, paginate
  3. per item: translate values, format dates, follow reference hops,
     resolve the children against the item (recursively, so nested loops
     see their parent item), inject field data, clone the shell and
     namespace its ids with -item-{itemId}
  4. wrap the clones in a transparent fragment carrying pagination meta

Sibling loops and items resolve concurrently. A loop whose data cannot be
fetched keeps its layer, resolves its children against the parent scope and
records a data_fetch_failed warning; other branches are unaffected.
"""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Mapping
from typing import Any

from sitekit.kernel import ids, pagination, variables as v
from sitekit.kernel.errors import MalformedVariable
from sitekit.kernel.fields import (
    format_date_fields,
    inject_field_data,
    owns_item_context,
    parse_datetime,
    parse_id_list,
    resolve_reference_fields,
    stringify,
)
from sitekit.kernel.repository import CachedRepository
from sitekit.kernel.translations import apply_cms_translations
from sitekit.kernel.types import Diagnostics, FRAGMENT_NAME, ItemFilters, ItemScope, PaginationContext
from sitekit.kernel.visibility import evaluate_visibility

logger = logging.getLogger(__name__)

PAGINATION_MODES = ("pages", "load_more")
UNSORTED = (None, "", "none")


def collection_binding(layer: Mapping[str, Any]) -> dict[str, Any] | None:
    binding = v.get_slot(layer, "collection")
    if isinstance(binding, dict) and binding.get("id"):
        return binding
    return None


def virtual_asset_values(asset: Mapping[str, Any]) -> dict[str, Any]:
    """Item values for one asset of a multi-asset loop."""
    return {
        "__asset_id": asset.get("id"),
        "__asset_url": asset.get("public_url") or "",
        "__asset_filename": asset.get("filename") or "",
        "__asset_width": asset.get("width"),
        "__asset_height": asset.get("height"),
        "__asset_mime_type": asset.get("mime_type") or "",
    }


# ---------------------------------------------------------------------------
# Sorting
# ---------------------------------------------------------------------------


def sort_items(
    items: list[dict[str, Any]],
    sort_by: str | None,
    sort_order: str | None,
    fields: list[dict[str, Any]],
    *,
    seed: str = "",
) -> list[dict[str, Any]]:
    """
    Order items by the loop's sort setting.

    random is seeded so the same loop renders the same order every time.
    Field sorts compare by the field's declared type: numbers numerically,
    dates chronologically, everything else as case-folded text. Missing
    values sort first in ascending order.
    """
    if sort_by in UNSORTED:
        return list(items)
    if sort_by == "manual":
        return sorted(items, key=lambda i: i.get("manual_order") or 0)
    if sort_by == "random":
        shuffled = list(items)
        random.Random(seed).shuffle(shuffled)
        return shuffled

    field_type = next((f.get("type") for f in fields if f.get("id") == sort_by), None)
    values = [(item.get("values") or {}).get(sort_by) for item in items]
    keys = _sort_keys(values, field_type)
    order = sorted(range(len(items)), key=lambda i: keys[i], reverse=sort_order == "desc")
    return [items[i] for i in order]


def _sort_keys(values: list[Any], field_type: str | None) -> list[tuple[int, Any]]:
    def missing(value: Any) -> bool:
        return value is None or value == ""

    if field_type == "number":
        numbers = [None if missing(val) else _as_float(val) for val in values]
        if all(n is not None or missing(val) for n, val in zip(numbers, values)):
            return [(0, 0.0) if n is None else (1, n) for n in numbers]
    elif field_type == "date":
        dates = [None if missing(val) else parse_datetime(val) for val in values]
        if all(d is not None or missing(val) for d, val in zip(dates, values)):
            return [(0, 0.0) if d is None else (1, d.timestamp()) for d in dates]
    # Text order, also the single fallback for mixed values
    return [(0, "") if missing(val) else (1, stringify(val).casefold()) for val in values]


def _as_float(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


# ---------------------------------------------------------------------------
# Expander
# ---------------------------------------------------------------------------


class CollectionExpander:
    """
    Resolves collection loops for one resolution pass.

    Holds what every loop needs besides its item scope: the request-scoped
    repository, requested page numbers, locale translations, the site
    timezone, the page item (for page-sourced reference fields) and the
    diagnostics collector.
    """

    def __init__(
        self,
        repo: CachedRepository,
        *,
        pagination_context: PaginationContext | None = None,
        translations: Mapping[str, Mapping[str, Any]] | None = None,
        timezone: str | None = None,
        page_values: Mapping[str, Any] | None = None,
        diagnostics: Diagnostics | None = None,
    ) -> None:
        self.repo = repo
        self.pagination = pagination_context or PaginationContext()
        self.translations = translations or {}
        self.timezone = timezone or "UTC"
        self.page_values = page_values or {}
        self.diagnostics = diagnostics if diagnostics is not None else Diagnostics()

    async def expand_all(self, layers: list[dict[str, Any]], scope: ItemScope) -> list[dict[str, Any]]:
        return list(await asyncio.gather(*(self.expand(layer, scope) for layer in layers)))

    async def expand(self, layer: dict[str, Any], scope: ItemScope) -> dict[str, Any]:
        """Resolve one layer: a loop becomes a fragment, anything else recurses."""
        scope = scope.for_layer(layer)
        binding = collection_binding(layer)
        if binding is None:
            raw = v.get_slot(layer, "collection")
            if raw is not None and not isinstance(raw, Mapping):
                self.diagnostics.record(MalformedVariable("collection binding is not an object"), layer_id=layer.get("id"))
            return await self._with_children(layer, scope)
        try:
            return await self._expand_loop(layer, binding, scope)
        except Exception as e:
            self.diagnostics.record(
                e,
                layer_id=layer.get("id"),
                collection_id=binding.get("id"),
            )
            return await self._with_children(layer, scope)

    async def _with_children(self, layer: dict[str, Any], scope: ItemScope) -> dict[str, Any]:
        children = layer.get("children")
        if not children:
            return layer
        return {**layer, "children": await self.expand_all(children, scope)}

    # -- loops --

    async def _expand_loop(self, layer: dict[str, Any], binding: dict[str, Any], scope: ItemScope) -> dict[str, Any]:
        source_field = binding.get("source_field_id")
        source_type = binding.get("source_field_type")
        parent_values = self.page_values if binding.get("source_field_source") == "page" else scope.values

        if source_field and source_type == "multi_asset":
            asset_ids = parse_id_list(parent_values.get(source_field))
            assets = await self.repo.get_assets(asset_ids) if asset_ids else {}
            items = [
                {"id": asset_id, "values": virtual_asset_values(assets[asset_id]), "_virtual": True}
                for asset_id in asset_ids
                if asset_id in assets
            ]
            clones = await self.clone_items(layer, items, [], scope)
            return self._fragment(layer, clones, None)

        allowed: list[str] | None = None
        if source_field:
            ids_value = parse_id_list(parent_values.get(source_field))
            allowed = ids_value[:1] if source_type == "reference" else ids_value

        collection_id = binding["id"]
        config = binding.get("pagination") or {}
        paginated = bool(config.get("enabled")) and config.get("mode") in PAGINATION_MODES
        if paginated:
            per_page = config.get("items_per_page") or pagination.DEFAULT_ITEMS_PER_PAGE
            current = self.pagination.page_for(layer["id"])
            limit, offset = per_page, (current - 1) * per_page
        else:
            per_page, current = 0, 1
            limit, offset = binding.get("limit") or None, binding.get("offset") or None

        if allowed == []:
            items, total = [], 0
            fields = await self.repo.get_fields(collection_id)
        else:
            items, total, fields = await self.load_items(
                layer, binding, collection_id, allowed, limit=limit, offset=offset
            )

        logger.debug("collections: layer_id=%s items=%d total=%d", layer.get("id"), len(items), total)
        clones = await self.clone_items(layer, items, fields, scope)
        meta = None
        if paginated:
            meta = pagination.build_meta(
                layer_id=layer["id"],
                collection_id=collection_id,
                mode=config["mode"],
                current_page=current,
                items_per_page=per_page,
                total_items=total,
                item_ids=allowed,
                layer_template=layer.get("children") or [],
                sort_by=binding.get("sort_by"),
                sort_order=binding.get("sort_order"),
                filters=binding.get("filters"),
            )
        return self._fragment(layer, clones, meta)

    async def load_items(
        self,
        layer: dict[str, Any],
        binding: dict[str, Any],
        collection_id: str,
        allowed: list[str] | None,
        *,
        limit: int | None,
        offset: int | None,
    ) -> tuple[list[dict[str, Any]], int, list[dict[str, Any]]]:
        """Filter, sort and slice the loop's items; returns (items, total, fields)."""
        rules = binding.get("filters")
        has_filters = isinstance(rules, Mapping) and any(
            g.get("conditions") for g in rules.get("groups") or [] if isinstance(g, Mapping)
        )
        sort_by = binding.get("sort_by")
        # Without filters or a reordering sort the repository can slice
        pushdown = not has_filters and (sort_by in UNSORTED or (sort_by == "manual" and allowed is None))

        query = ItemFilters(limit=limit, offset=offset, item_ids=allowed) if pushdown else ItemFilters(item_ids=allowed)
        page, fields = await asyncio.gather(
            self.repo.get_items(collection_id, query),
            self.repo.get_fields(collection_id),
        )
        if pushdown:
            return list(page.items), page.total, fields

        items = list(page.items)
        if has_filters:
            items = [i for i in items if evaluate_visibility(rules, i.get("values") or {}, None, {})]
        items = sort_items(items, sort_by, binding.get("sort_order"), fields, seed=ids.source_id(layer))
        total = len(items)
        start = offset or 0
        end = start + limit if limit else None
        return items[start:end], total, fields

    async def clone_items(
        self,
        layer: dict[str, Any],
        items: list[dict[str, Any]],
        fields: list[dict[str, Any]],
        scope: ItemScope,
    ) -> list[dict[str, Any]]:
        slug_field = next((f["id"] for f in fields if f.get("key") == "slug"), None)
        return list(await asyncio.gather(*(self._clone_item(layer, item, fields, slug_field, scope) for item in items)))

    async def _clone_item(
        self,
        layer: dict[str, Any],
        item: dict[str, Any],
        fields: list[dict[str, Any]],
        slug_field: str | None,
        scope: ItemScope,
    ) -> dict[str, Any]:
        item_id = str(item["id"])
        values = dict(item.get("values") or {})
        if not item.get("_virtual"):
            values = apply_cms_translations(item_id, values, fields, self.translations)
            values = format_date_fields(values, fields, self.timezone)
            values = await resolve_reference_fields(values, fields, self.repo, diagnostics=self.diagnostics)
        slug = stringify(values.get(slug_field)) if slug_field and values.get(slug_field) else None

        item_scope = scope.enter(ids.source_id(layer), values, item_id=item_id, item_slug=slug)
        children = await self.expand_all(layer.get("children") or [], item_scope)
        children = [c if owns_item_context(c) else inject_field_data(c, item_scope) for c in children]

        shell = {
            **v.with_variables(layer, collection=None),
            "attributes": {**(layer.get("attributes") or {}), "data-collection-item-id": item_id},
            "children": children,
            "_collectionItemValues": values,
            "_collectionItemId": item_id,
            "_layerDataMap": dict(item_scope.layer_data),
        }
        if slug:
            shell["_collectionItemSlug"] = slug
        return ids.remap_subtree(shell, ids.item_namespace(item_id))

    def _fragment(
        self,
        layer: dict[str, Any],
        clones: list[dict[str, Any]],
        meta: dict[str, Any] | None,
    ) -> dict[str, Any]:
        fragment = {
            **v.with_variables(layer, collection=None),
            "id": f"{layer['id']}-fragment",
            "name": FRAGMENT_NAME,
            "classes": [],
            "attributes": {},
            "children": clones,
            "_sourceLayerId": ids.source_id(layer),
            "_loopLayerId": layer["id"],
        }
        fragment.pop("design", None)
        if meta is not None:
            fragment["_paginationMeta"] = meta
        return fragment


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


async def resolve_collection_layers(
    layers: list[dict[str, Any]],
    repo: CachedRepository,
    *,
    page_values: Mapping[str, Any] | None = None,
    page_item_id: str | None = None,
    pagination_context: PaginationContext | None = None,
    translations: Mapping[str, Mapping[str, Any]] | None = None,
    timezone: str | None = None,
    diagnostics: Diagnostics | None = None,
) -> list[dict[str, Any]]:
    """
    Expand every loop in `layers` and refresh linked pagination controls.

    `page_values` is the dynamic page's item (already prepared); it is the
    scope at the top of the tree.
    """
    expander = CollectionExpander(
        repo,
        pagination_context=pagination_context,
        translations=translations,
        timezone=timezone,
        page_values=page_values,
        diagnostics=diagnostics,
    )
    scope = ItemScope(values=page_values or {}, item_id=page_item_id)
    expanded = ids.retarget_loop_references(await expander.expand_all(layers, scope))
    return pagination.update_pagination_layers(expanded, pagination.collect_pagination_meta(expanded))
