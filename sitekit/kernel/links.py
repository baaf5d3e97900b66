"""
SiteKit Kernel — Link Resolution

Turns link settings into href/target/rel/download attributes. Shared by both
renderers through rules.py.

Link kinds: url, email (mailto:), phone (tel:), asset, page and field. Page
paths follow the folder chain; dynamic pages end in the item slug. A
non-default locale prefixes "/{code}" and uses translated slugs when present.
An anchor layer id appends "#{anchor}" through the anchor map.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from typing import Any

from sitekit.kernel import variables as v
from sitekit.kernel.assets import asset_url
from sitekit.kernel.fields import ASSET_FIELD_TYPES, lookup, resolve_inline_variables, stringify
from sitekit.kernel.translations import translation_value
from sitekit.kernel.types import ItemScope, RenderContext

BLANK_REL = "noopener noreferrer"


# ---------------------------------------------------------------------------
# Page paths
# ---------------------------------------------------------------------------


def _translated_slug(kind: str, record: Mapping[str, Any], context: RenderContext) -> str:
    slug = record.get("slug") or ""
    if context.locale and not context.locale.get("is_default"):
        translated = translation_value(context.translations.get(f"{kind}:{record['id']}:slug"))
        if translated:
            return translated.strip().strip("/")
    return slug


def folder_segments(folder_id: str | None, context: RenderContext) -> list[str]:
    by_id = {f["id"]: f for f in context.folders}
    segments: list[str] = []
    seen: set[str] = set()
    while folder_id and folder_id in by_id and folder_id not in seen:
        seen.add(folder_id)
        folder = by_id[folder_id]
        slug = _translated_slug("folder", folder, context)
        if slug:
            segments.append(slug)
        folder_id = folder.get("page_folder_id")
    return list(reversed(segments))


def locale_prefix(path: str, context: RenderContext) -> str:
    locale = context.locale
    if not locale or locale.get("is_default") or not locale.get("code"):
        return path
    return f"/{locale['code']}" if path == "/" else f"/{locale['code']}{path}"


def page_path(page: Mapping[str, Any], context: RenderContext, item_slug: str | None = None) -> str:
    """
    Public path of a page.

    Index pages resolve to their folder path. A dynamic page with an item
    slug resolves to the folder path plus the slug.
    """
    segments = folder_segments(page.get("page_folder_id"), context)
    if page.get("is_dynamic") and item_slug:
        segments.append(item_slug)
    elif not page.get("is_index"):
        slug = _translated_slug("page", page, context)
        if slug:
            segments.append(slug)
    path = "/" + "/".join(segments) if segments else "/"
    return locale_prefix(path, context)


def item_slug_for(item_id: str | None, context: RenderContext) -> str | None:
    if not item_id:
        return None
    if context.locale and not context.locale.get("is_default"):
        translated = translation_value(context.translations.get(f"cms:{item_id}:field:key:slug"))
        if translated:
            return translated
    return context.collection_item_slugs.get(item_id)


# ---------------------------------------------------------------------------
# Href
# ---------------------------------------------------------------------------


def _text_content(variable: Any, scope: ItemScope) -> str:
    text = v.text_value(variable)
    if text is None:
        return ""
    return resolve_inline_variables(text, scope).strip()


def _page_href(page_link: Mapping[str, Any], context: RenderContext, scope: ItemScope) -> str:
    page = next((p for p in context.pages if p.get("id") == page_link.get("id")), None)
    if page is None:
        return ""
    item_id = page_link.get("collection_item_id")
    if not page.get("is_dynamic") or not item_id:
        return page_path(page, context)
    if item_id == "current-page":
        slug = item_slug_for(context.page_item_id, context)
    elif item_id == "current-collection":
        slug = scope.item_slug or item_slug_for(scope.item_id, context)
    else:
        slug = item_slug_for(item_id, context)
    return page_path(page, context, slug)


def field_link_value(field_data: Mapping[str, Any], raw: Any, context: RenderContext, scope: ItemScope) -> str:
    """Href for a field-bound link, by the field's declared type."""
    field_type = field_data.get("field_type")
    value = stringify(raw).strip()
    if not value:
        return ""
    if field_type == "email":
        return f"mailto:{value}"
    if field_type == "phone":
        return f"tel:{value}"
    if field_type in ASSET_FIELD_TYPES:
        return asset_url(context.asset_map.get(value))
    if field_type == "link":
        settings = raw
        if isinstance(raw, str):
            try:
                settings = json.loads(raw)
            except json.JSONDecodeError:
                return value
        if isinstance(settings, Mapping) and settings.get("type") != "field":
            return resolve_href(settings, context, scope)
        return ""
    return value


def resolve_href(link: Mapping[str, Any], context: RenderContext, scope: ItemScope) -> str:
    kind = link.get("type")
    href = ""
    if kind == "url":
        href = _text_content(link.get("url"), scope)
    elif kind == "email":
        address = _text_content(link.get("email"), scope)
        href = f"mailto:{address}" if address else ""
    elif kind == "phone":
        number = _text_content(link.get("phone"), scope)
        href = f"tel:{number}" if number else ""
    elif kind == "asset":
        asset = link.get("asset") if isinstance(link.get("asset"), Mapping) else {}
        if asset.get("id"):
            href = asset_url(context.asset_map.get(asset["id"]))
    elif kind == "page" and isinstance(link.get("page"), Mapping):
        href = _page_href(link["page"], context, scope)
    elif kind == "field" and v.is_field_variable(link.get("field")):
        data = link["field"]["data"]
        href = field_link_value(data, lookup(data, scope), context, scope)

    anchor_id = link.get("anchor_layer_id")
    if anchor_id:
        anchor = context.anchor_map.get(anchor_id) or anchor_id
        href = f"{href}#{anchor}"
    return href


def link_attributes(link: Any, context: RenderContext, scope: ItemScope) -> dict[str, Any] | None:
    """href/target/rel/download for link settings, or None without an href."""
    if not isinstance(link, Mapping) or not link.get("type"):
        return None
    href = resolve_href(link, context, scope)
    if not href:
        return None
    attrs: dict[str, Any] = {"href": href}
    target = link.get("target")
    if target:
        attrs["target"] = target
    rel = link.get("rel") or (BLANK_REL if target == "_blank" else "")
    if rel:
        attrs["rel"] = rel
    if link.get("download"):
        attrs["download"] = True
    return attrs


def build_anchor_map(layers: list[dict[str, Any]]) -> dict[str, str]:
    """Layer id → anchor (attributes.id), also keyed by authoring id."""
    anchors: dict[str, str] = {}
    stack = list(reversed(layers))
    while stack:
        layer = stack.pop()
        anchor = (layer.get("attributes") or {}).get("id")
        if anchor:
            anchors.setdefault(layer.get("id") or "", str(anchor))
            if layer.get("_sourceLayerId"):
                anchors.setdefault(layer["_sourceLayerId"], str(anchor))
        stack.extend(reversed(layer.get("children") or []))
    return anchors
