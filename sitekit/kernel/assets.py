"""
SiteKit Kernel — Asset Batch Resolver

One walk collects every asset id the tree references (media slots, asset
links and asset-typed field links), one repository call fetches them, and a
second walk substitutes concrete values:

    image / backgroundImage  → dynamic_text URL (inline SVG → data: URL)
    video / poster / audio   → dynamic_text URL
    icon                     → static_text holding the SVG markup

A referenced asset that does not exist resolves to an empty value and a
reference_missing warning.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any
from urllib.parse import quote

from sitekit.kernel import variables as v
from sitekit.kernel.errors import ReferenceMissing
from sitekit.kernel.fields import ASSET_FIELD_TYPES, lookup, stringify
from sitekit.kernel.repository import CachedRepository
from sitekit.kernel.types import Diagnostics, ItemScope

logger = logging.getLogger(__name__)

DEFAULT_IMAGE_URL = "/_sitekit/placeholder.svg"

# (slot, key) pairs that may hold an asset variable
ASSET_SLOTS = (
    ("image", "src"),
    ("video", "src"),
    ("video", "poster"),
    ("audio", "src"),
    ("icon", "src"),
    ("backgroundImage", "src"),
)


def asset_url(asset: Mapping[str, Any] | None) -> str:
    """Public URL of an asset, or a data: URL for inline SVG content."""
    if not asset:
        return ""
    if asset.get("public_url"):
        return asset["public_url"]
    if asset.get("content"):
        return "data:image/svg+xml," + quote(asset["content"], safe="")
    return ""


# ---------------------------------------------------------------------------
# Collection
# ---------------------------------------------------------------------------


def collect_asset_ids(layers: list[dict[str, Any]], scope: ItemScope | None = None) -> list[str]:
    """Every referenced asset id, in first-seen order."""
    found: dict[str, None] = {}
    for layer in layers:
        _collect(layer, scope or ItemScope(), found)
    return list(found)


def _collect(layer: dict[str, Any], scope: ItemScope, found: dict[str, None]) -> None:
    scope = scope.for_layer(layer)
    for slot, key in ASSET_SLOTS:
        asset_id = v.asset_id(v.get_slot(layer, slot, key))
        if asset_id:
            found[asset_id] = None

    link = v.get_slot(layer, "link")
    if isinstance(link, Mapping):
        link_asset = (link.get("asset") or {}).get("id") if isinstance(link.get("asset"), Mapping) else None
        if link_asset:
            found[link_asset] = None
        field_var = link.get("field")
        if link.get("type") == "field" and v.is_field_variable(field_var):
            if field_var["data"].get("field_type") in ASSET_FIELD_TYPES:
                value = lookup(field_var["data"], scope)
                if value:
                    found[stringify(value)] = None

    for child in layer.get("children") or []:
        _collect(child, scope, found)


# ---------------------------------------------------------------------------
# Substitution
# ---------------------------------------------------------------------------


async def resolve_assets(
    layers: list[dict[str, Any]],
    repo: CachedRepository,
    *,
    scope: ItemScope | None = None,
    diagnostics: Diagnostics | None = None,
) -> tuple[list[dict[str, Any]], dict[str, dict[str, Any]]]:
    """Fetch every referenced asset in one call and substitute values."""
    diagnostics = diagnostics if diagnostics is not None else Diagnostics()
    wanted = collect_asset_ids(layers, scope)
    asset_map: dict[str, dict[str, Any]] = {}
    if wanted:
        try:
            asset_map = await repo.get_assets(wanted)
        except Exception as e:
            diagnostics.record(e, count=len(wanted))
            return layers, {}
        logger.debug("assets: resolved %d of %d ids", len(asset_map), len(wanted))
    return apply_assets(layers, asset_map, diagnostics=diagnostics), asset_map


def apply_assets(
    layers: list[dict[str, Any]],
    asset_map: Mapping[str, Mapping[str, Any]],
    *,
    diagnostics: Diagnostics | None = None,
) -> list[dict[str, Any]]:
    """Pure substitution pass over an already-fetched asset map."""
    diagnostics = diagnostics if diagnostics is not None else Diagnostics()
    return [_apply(layer, asset_map, diagnostics) for layer in layers]


def _apply(layer: dict[str, Any], asset_map: Mapping[str, Mapping[str, Any]], diagnostics: Diagnostics) -> dict[str, Any]:
    result = layer
    for slot, key in ASSET_SLOTS:
        variable = v.get_slot(layer, slot, key)
        if not v.is_asset_variable(variable):
            continue
        asset_id = v.asset_id(variable)
        if asset_id is None:
            if slot == "backgroundImage":
                result = v.with_slot(result, slot, key, v.make_dynamic_text(DEFAULT_IMAGE_URL))
            continue
        asset = asset_map.get(asset_id)
        if asset is None:
            diagnostics.record(ReferenceMissing("asset not found"), asset_id=asset_id, layer_id=layer.get("id"))
        if slot == "icon":
            result = v.with_slot(result, slot, key, v.make_static_text((asset or {}).get("content") or ""))
        else:
            result = v.with_slot(result, slot, key, v.make_dynamic_text(asset_url(asset)))

    children = layer.get("children")
    if isinstance(children, list) and children:
        result = {**result, "children": [_apply(c, asset_map, diagnostics) for c in children]}
    return result
