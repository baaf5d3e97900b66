"""
SiteKit Kernel — Translation Overlay

Pure functions that overlay locale translations onto a resolved tree and
onto collection item values.

Layer keys are built from the authoring id (`_sourceLayerId`), so they still
match after component and collection namespacing:

    component:{masterComponentId}:layer:{layerId}:{text|image_src|...}
    page:{pageId}:layer:{layerId}:{text|image_src|...}

CMS keys: cms:{itemId}:field:key:{fieldKey}, or field:id:{fieldId} for a
field without a key.

Only completed translations with a non-blank value apply. Anything else
falls back to the source value.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from typing import Any

from sitekit.kernel import ids, rich_text, variables as v

# content key suffix → (variable slot, slot key)
MEDIA_KEYS: dict[str, tuple[str, str]] = {
    "image_src": ("image", "src"),
    "video_src": ("video", "src"),
    "video_poster": ("video", "poster"),
    "audio_src": ("audio", "src"),
    "icon_src": ("icon", "src"),
}


def translation_value(translation: Mapping[str, Any] | None) -> str | None:
    """The translated value, or None when it must not apply."""
    if not translation or not translation.get("is_completed"):
        return None
    value = translation.get("content_value")
    if not isinstance(value, str) or not value.strip():
        return None
    return value


def layer_translation_key(page_id: str, layer: Mapping[str, Any], content: str) -> str:
    master = layer.get("_masterComponentId")
    scope = f"component:{master}" if master else f"page:{page_id}"
    return f"{scope}:layer:{ids.source_id(layer)}:{content}"


def translated_rich_text(value: str) -> dict[str, Any]:
    """A stored rich-text translation: a serialized document or plain text."""
    if value.lstrip().startswith("{"):
        try:
            parsed = json.loads(value)
        except json.JSONDecodeError:
            parsed = None
        if rich_text.is_doc(parsed):
            return parsed
    return rich_text.text_doc(value)


def apply_translations(
    layers: list[dict[str, Any]],
    page_id: str,
    translations: Mapping[str, Mapping[str, Any]],
) -> list[dict[str, Any]]:
    """Return a new tree with text and media translations applied."""
    if not translations:
        return layers
    return [_translate_layer(layer, page_id, translations) for layer in layers]


def _translate_layer(
    layer: dict[str, Any],
    page_id: str,
    translations: Mapping[str, Mapping[str, Any]],
) -> dict[str, Any]:
    result = layer

    def lookup(content: str) -> str | None:
        return translation_value(translations.get(layer_translation_key(page_id, layer, content)))

    text = lookup("text")
    if text is not None:
        current = v.get_variables(layer).get("text")
        if v.is_rich_text(current):
            updated = v.make_rich_text(translated_rich_text(text))
        else:
            updated = v.make_dynamic_text(text)
        if isinstance(current, Mapping) and current.get("id"):
            updated["id"] = current["id"]
        result = v.with_variables(result, text=updated)

    for content, (slot, key) in MEDIA_KEYS.items():
        value = lookup(content)
        if value is not None:
            result = v.with_slot(result, slot, key, v.make_asset(value))

    alt = lookup("image_alt")
    if alt is not None:
        result = v.with_slot(result, "image", "alt", v.make_dynamic_text(alt))

    children = layer.get("children")
    if isinstance(children, list) and children:
        result = {**result, "children": [_translate_layer(c, page_id, translations) for c in children]}
    return result


def apply_cms_translations(
    item_id: str,
    values: Mapping[str, Any],
    fields: list[dict[str, Any]],
    translations: Mapping[str, Mapping[str, Any]] | None,
) -> dict[str, Any]:
    """Return item values with translated field values substituted."""
    if not translations:
        return dict(values)
    by_id = {f["id"]: f for f in fields}
    result = dict(values)
    for field_id in values:
        field = by_id.get(field_id) or {}
        field_key = field.get("key")
        content = f"field:key:{field_key}" if field_key else f"field:id:{field_id}"
        value = translation_value(translations.get(f"cms:{item_id}:{content}"))
        if value is None:
            continue
        # Rich-text fields stay documents
        result[field_id] = translated_rich_text(value) if field.get("type") == "rich_text" else value
    return result
