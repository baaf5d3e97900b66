"""
SiteKit Kernel — Pagination Controls

Pagination controls are ordinary layers placed next to a paginated loop and
linked to it by `attributes["data-pagination-for"] = <loop layer id>`. After
collection expansion their labels and button states are filled in from the
loop's pagination meta.

Control roles are recognized by id suffix:

    *-pagination-info      "Page X of Y"
    *-pagination-count     "Showing N of M"
    *-pagination-prev      disabled on the first page
    *-pagination-next      disabled on the last page
    *-pagination-loadmore  hidden once every item is shown

Loops in "pages" mode with no linked controls can be given the default
control tree from generate_pagination_wrapper (see insert_default_controls).
"""

from __future__ import annotations

import math
from collections.abc import Mapping
from typing import Any

import chevron

from sitekit.kernel import ids, variables as v

PAGE_INFO_TEMPLATE = "Page {{current}} of {{total}}"
ITEM_COUNT_TEMPLATE = "Showing {{shown}} of {{total}}"
PREV_LABEL = "Previous"
NEXT_LABEL = "Next"

DISABLED_CLASSES = ("opacity-50", "cursor-not-allowed")
DEFAULT_ITEMS_PER_PAGE = 10


def build_meta(
    *,
    layer_id: str,
    collection_id: str,
    mode: str,
    current_page: int,
    items_per_page: int,
    total_items: int,
    item_ids: list[str] | None = None,
    layer_template: list[dict[str, Any]] | None = None,
    sort_by: str | None = None,
    sort_order: str | None = None,
    filters: Mapping[str, Any] | None = None,
) -> dict[str, Any]:
    """
    Pagination meta as carried on a fragment's `_paginationMeta`.

    Load-more meta also carries the layer template and the loop's sort and
    filter settings, so a later page is cut from the same ordered sequence.
    """
    meta: dict[str, Any] = {
        "currentPage": current_page,
        "totalPages": math.ceil(total_items / items_per_page) if items_per_page else 0,
        "totalItems": total_items,
        "itemsPerPage": items_per_page,
        "mode": mode,
        "layerId": layer_id,
        "collectionId": collection_id,
    }
    if item_ids is not None:
        meta["itemIds"] = list(item_ids)
    if mode == "load_more":
        if layer_template is not None:
            meta["layerTemplate"] = layer_template
        if sort_by:
            meta["sortBy"] = sort_by
            meta["sortOrder"] = sort_order or "asc"
        if filters:
            meta["filters"] = dict(filters)
    return meta


def shown_items(meta: Mapping[str, Any]) -> int:
    """Items visible so far; load-more pages accumulate."""
    per_page = meta.get("itemsPerPage") or 0
    total = meta.get("totalItems") or 0
    if meta.get("mode") == "load_more":
        return min(per_page * max(meta.get("currentPage") or 1, 1), total)
    return min(per_page, total)


def page_info_label(meta: Mapping[str, Any]) -> str:
    return chevron.render(PAGE_INFO_TEMPLATE, {"current": meta["currentPage"], "total": meta["totalPages"]})


def item_count_label(meta: Mapping[str, Any]) -> str:
    return chevron.render(ITEM_COUNT_TEMPLATE, {"shown": shown_items(meta), "total": meta["totalItems"]})


# ---------------------------------------------------------------------------
# Meta collection and control updates
# ---------------------------------------------------------------------------


def collect_pagination_meta(layers: list[dict[str, Any]]) -> dict[str, dict[str, Any]]:
    """Pagination meta of every paginated loop in the tree, by loop layer id."""
    found: dict[str, dict[str, Any]] = {}
    stack = list(layers)
    while stack:
        layer = stack.pop()
        meta = layer.get("_paginationMeta")
        if isinstance(meta, Mapping) and meta.get("layerId"):
            found[meta["layerId"]] = dict(meta)
        stack.extend(layer.get("children") or [])
    return found


def update_pagination_layers(
    layers: list[dict[str, Any]],
    meta_by_layer: Mapping[str, Mapping[str, Any]],
) -> list[dict[str, Any]]:
    """Refresh every control linked to a loop in `meta_by_layer`."""
    if not meta_by_layer:
        return layers
    result = []
    for layer in layers:
        target = (layer.get("attributes") or {}).get("data-pagination-for")
        if target and target in meta_by_layer:
            result.append(update_pagination_layer(layer, meta_by_layer[target]))
        elif layer.get("children"):
            result.append({**layer, "children": update_pagination_layers(layer["children"], meta_by_layer)})
        else:
            result.append(layer)
    return result


def update_pagination_layer(layer: dict[str, Any], meta: Mapping[str, Any]) -> dict[str, Any]:
    """Return a copy of a control subtree with labels and states filled in."""
    role = ids.source_id(layer)
    current = meta.get("currentPage") or 1
    total_pages = meta.get("totalPages") or 0
    result = dict(layer)

    if role.endswith("-pagination-info"):
        result = v.with_variables(result, text=v.make_dynamic_text(page_info_label(meta)))
    elif role.endswith("-pagination-count"):
        result = v.with_variables(result, text=v.make_dynamic_text(item_count_label(meta)))
    elif role.endswith("-pagination-prev"):
        result = _button_state(result, current, disabled=current <= 1)
    elif role.endswith("-pagination-next"):
        result = _button_state(result, current, disabled=current >= total_pages)
    elif role.endswith("-pagination-loadmore"):
        if shown_items(meta) >= (meta.get("totalItems") or 0):
            result["classes"] = add_classes(result.get("classes"), ("hidden",))

    if layer.get("children"):
        result["children"] = [update_pagination_layer(c, meta) for c in layer["children"]]
    return result


def _button_state(layer: dict[str, Any], current: int, *, disabled: bool) -> dict[str, Any]:
    attributes = {**(layer.get("attributes") or {}), "data-current-page": str(current)}
    updated = {**layer, "attributes": attributes}
    if disabled:
        attributes["disabled"] = True
        updated["classes"] = add_classes(layer.get("classes"), DISABLED_CLASSES)
    return updated


def add_classes(classes: Any, extra: tuple[str, ...]) -> list[str] | str:
    """Append classes, keeping the list or string form of the input."""
    if isinstance(classes, list):
        return [*classes, *(c for c in extra if c not in classes)]
    current = (classes or "").split()
    return " ".join([*current, *(c for c in extra if c not in current)])


# ---------------------------------------------------------------------------
# Default control tree
# ---------------------------------------------------------------------------


def generate_pagination_wrapper(layer_id: str, meta: Mapping[str, Any]) -> dict[str, Any]:
    """
    A default Previous / "Page X of Y" / Next control for a paginated loop.

    Placed as a sibling after the loop's fragment.
    """
    current = meta.get("currentPage") or 1
    total_pages = meta.get("totalPages") or 0
    return {
        "id": f"{layer_id}-pagination",
        "name": "div",
        "classes": "flex items-center justify-center gap-4 mt-4",
        "attributes": {
            "data-pagination-wrapper": "true",
            "data-pagination-for": layer_id,
            "data-collection-layer-id": layer_id,
        },
        "children": [
            _nav_button(layer_id, "prev", PREV_LABEL, current, disabled=current <= 1),
            {
                "id": f"{layer_id}-pagination-info",
                "name": "text",
                "settings": {"tag": "span"},
                "classes": "text-sm text-[#4b5563]",
                "variables": {"text": v.make_dynamic_text(page_info_label(meta))},
            },
            _nav_button(layer_id, "next", NEXT_LABEL, current, disabled=current >= total_pages),
        ],
    }


def _nav_button(layer_id: str, action: str, label: str, current: int, *, disabled: bool) -> dict[str, Any]:
    base = "px-4 py-2 rounded bg-[#e5e7eb] hover:bg-[#d1d5db] transition-colors"
    state = " ".join(DISABLED_CLASSES) if disabled else "cursor-pointer"
    attributes: dict[str, Any] = {
        "data-pagination-action": action,
        "data-collection-layer-id": layer_id,
        "data-current-page": str(current),
    }
    if disabled:
        attributes["disabled"] = True
    return {
        "id": f"{layer_id}-pagination-{action}",
        "name": "button",
        "settings": {"tag": "button"},
        "classes": f"{base} {state}",
        "attributes": attributes,
        "children": [
            {
                "id": f"{layer_id}-pagination-{action}-text",
                "name": "text",
                "settings": {"tag": "span"},
                "classes": "",
                "variables": {"text": v.make_dynamic_text(label)},
            }
        ],
    }


def insert_default_controls(layers: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """
    Place the default control tree after every "pages" loop that has none.

    Loops inside collection clones are skipped: one wrapper per clone would
    repeat the same control ids.
    """
    linked = _linked_targets(layers)
    wanted = {
        layer_id: meta
        for layer_id, meta in collect_pagination_meta(layers).items()
        if meta.get("mode") == "pages" and layer_id not in linked
    }
    if not wanted:
        return layers
    return _insert_controls(layers, wanted)


def _linked_targets(layers: list[dict[str, Any]]) -> set[str]:
    found: set[str] = set()
    stack = list(layers)
    while stack:
        layer = stack.pop()
        target = (layer.get("attributes") or {}).get("data-pagination-for")
        if target:
            found.add(target)
        stack.extend(layer.get("children") or [])
    return found


def _insert_controls(layers: list[dict[str, Any]], wanted: Mapping[str, Mapping[str, Any]]) -> list[dict[str, Any]]:
    result = []
    for layer in layers:
        if layer.get("children") and "_collectionItemId" not in layer:
            layer = {**layer, "children": _insert_controls(layer["children"], wanted)}
        result.append(layer)
        meta = layer.get("_paginationMeta")
        if isinstance(meta, Mapping) and meta.get("layerId") in wanted:
            result.append(generate_pagination_wrapper(meta["layerId"], meta))
    return result
