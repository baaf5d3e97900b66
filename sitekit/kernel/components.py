"""
SiteKit Kernel — Component Expander

Pure function: (layers, components) → layers with every component instance
expanded. No IO; the pipeline fetches the components first.

An instance is a layer with `componentId`. Expansion takes the component's
content root (its first layer), expands nested instances inside it, applies
the instance's overrides, tags the copies with `_masterComponentId` and
namespaces their ids under the instance id. The content root's own settings
merge into the instance, which keeps its id and componentId.

A component that is missing, or already on the current expansion path,
leaves the instance unexpanded with a warning.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from sitekit.kernel import ids, variables as v
from sitekit.kernel.errors import CycleDetected, ReferenceMissing
from sitekit.kernel.types import Diagnostics

# Override categories and where each one's link id lives on a layer
SLOT_CATEGORIES = ("text", "image", "link", "audio", "video", "icon")

_AUDIO_ATTRIBUTES = ("controls", "loop", "muted", "volume")
_VIDEO_ATTRIBUTES = ("controls", "loop", "muted", "autoplay", "youtubePrivacyMode")


def expand_components(
    layers: list[dict[str, Any]],
    components: Mapping[str, dict[str, Any]] | list[dict[str, Any]],
    *,
    diagnostics: Diagnostics | None = None,
    visited: frozenset[str] = frozenset(),
) -> list[dict[str, Any]]:
    """
    Expand every component instance in `layers`.

    `visited` holds the component ids on the current expansion path; an
    instance of one of them is a cycle and stays unexpanded.
    """
    registry = components if isinstance(components, Mapping) else {c["id"]: c for c in components}
    diagnostics = diagnostics if diagnostics is not None else Diagnostics()
    return [_expand_layer(layer, registry, diagnostics, visited) for layer in layers]


def referenced_component_ids(layers: list[dict[str, Any]]) -> set[str]:
    found: set[str] = set()
    stack = list(layers)
    while stack:
        layer = stack.pop()
        if layer.get("componentId"):
            found.add(layer["componentId"])
        stack.extend(layer.get("children") or [])
    return found


def _expand_layer(
    layer: dict[str, Any],
    registry: Mapping[str, dict[str, Any]],
    diagnostics: Diagnostics,
    visited: frozenset[str],
) -> dict[str, Any]:
    component_id = layer.get("componentId")
    if component_id:
        component = registry.get(component_id)
        if component is None or not component.get("layers"):
            diagnostics.record(ReferenceMissing("component not found"), component_id=component_id, layer_id=layer.get("id"))
        elif component_id in visited:
            diagnostics.record(CycleDetected("component instances itself"), component_id=component_id, layer_id=layer.get("id"))
            return layer
        else:
            return _expand_instance(layer, component, registry, diagnostics, visited | {component_id})

    children = layer.get("children")
    if children:
        return {**layer, "children": [_expand_layer(c, registry, diagnostics, visited) for c in children]}
    return layer


def _expand_instance(
    layer: dict[str, Any],
    component: dict[str, Any],
    registry: Mapping[str, dict[str, Any]],
    diagnostics: Diagnostics,
    visited: frozenset[str],
) -> dict[str, Any]:
    content = component["layers"][0]
    definitions = {d["id"]: d for d in component.get("variables") or [] if d.get("id")}
    overrides = layer.get("componentOverrides") or {}

    nested = [_expand_layer(c, registry, diagnostics, visited) for c in content.get("children") or []]
    children = [_tag(apply_overrides(c, overrides, definitions), component["id"]) for c in nested]

    root = {key: val for key, val in content.items() if key != "children"}
    root = _apply_layer_overrides(root, overrides, definitions)

    merged = {
        **layer,
        **root,
        "id": layer["id"],
        "componentId": layer["componentId"],
        "_masterComponentId": component["id"],
        "children": children,
    }
    aliases = None
    if content.get("id"):
        # The merged root carries the content root's translations
        merged["_sourceLayerId"] = ids.source_id(content)
        aliases = {content["id"]: layer["id"]}
    return ids.remap_subtree(merged, ids.component_namespace(layer["id"]), include_root=False, aliases=aliases)


def _tag(layer: dict[str, Any], component_id: str) -> dict[str, Any]:
    tagged = {**layer, "_masterComponentId": layer.get("_masterComponentId") or component_id}
    if layer.get("children"):
        tagged["children"] = [_tag(c, component_id) for c in layer["children"]]
    return tagged


# ---------------------------------------------------------------------------
# Overrides
# ---------------------------------------------------------------------------


def apply_overrides(
    layer: dict[str, Any],
    overrides: Mapping[str, Any],
    definitions: Mapping[str, dict[str, Any]],
) -> dict[str, Any]:
    """Apply instance overrides (or variable defaults) to a subtree."""
    updated = _apply_layer_overrides(layer, overrides, definitions)
    if updated.get("children"):
        updated = {**updated, "children": [apply_overrides(c, overrides, definitions) for c in updated["children"]]}
    return updated


def _effective(category: str, var_id: str, overrides: Mapping[str, Any], definitions: Mapping[str, dict[str, Any]]) -> tuple[bool, Any]:
    """
    (linked, value) for a slot linked to `var_id`.

    linked is False for a dangling link, which leaves the slot as authored.
    A linked slot with neither override nor default yields value None.
    """
    definition = definitions.get(var_id)
    override = (overrides.get(category) or {}).get(var_id)
    if definition is None and override is None:
        return False, None
    if override is not None:
        return True, override
    return True, (definition or {}).get("default_value")


def _apply_layer_overrides(
    layer: dict[str, Any],
    overrides: Mapping[str, Any],
    definitions: Mapping[str, dict[str, Any]],
) -> dict[str, Any]:
    result = layer
    variables = v.get_variables(layer)

    text = variables.get("text")
    text_id = text.get("id") if isinstance(text, Mapping) else None
    if text_id:
        linked, value = _effective("text", text_id, overrides, definitions)
        if linked:
            if v.variable_type(value) is None:
                value = v.empty_like(text)
            result = v.with_variables(result, text={**value, "id": text_id})

    image = variables.get("image")
    image_id = _src_id(image)
    if image_id:
        linked, value = _effective("image", image_id, overrides, definitions)
        if linked:
            result = _apply_media(result, "image", image_id, value, ("alt",))
            if isinstance(value, Mapping):
                extra = {k: value[k] for k in ("width", "height", "loading") if value.get(k)}
                if extra:
                    result = {**result, "attributes": {**(result.get("attributes") or {}), **extra}}

    link = variables.get("link")
    link_id = link.get("variable_id") if isinstance(link, Mapping) else None
    if link_id:
        linked, value = _effective("link", link_id, overrides, definitions)
        if linked:
            value = value if isinstance(value, Mapping) else {}
            result = v.with_variables(result, link={**value, "variable_id": link_id})

    for category, attr_names in (("audio", _AUDIO_ATTRIBUTES), ("video", _VIDEO_ATTRIBUTES)):
        slot_id = _src_id(variables.get(category))
        if not slot_id:
            continue
        linked, value = _effective(category, slot_id, overrides, definitions)
        if not linked:
            continue
        result = _apply_media(result, category, slot_id, value, ("poster",) if category == "video" else ())
        if isinstance(value, Mapping):
            attrs = {k: value[k] for k in attr_names if value.get(k) is not None}
            if "volume" in attrs:
                attrs["volume"] = str(attrs["volume"])
            if attrs:
                result = {**result, "attributes": {**(result.get("attributes") or {}), **attrs}}

    icon_id = _src_id(variables.get("icon"))
    if icon_id:
        linked, value = _effective("icon", icon_id, overrides, definitions)
        if linked:
            result = _apply_media(result, "icon", icon_id, value, ())

    return result


def _src_id(slot: Any) -> str | None:
    if isinstance(slot, Mapping) and isinstance(slot.get("src"), Mapping):
        return slot["src"].get("id")
    return None


def _apply_media(
    layer: dict[str, Any],
    slot: str,
    var_id: str,
    value: Any,
    carried: tuple[str, ...],
) -> dict[str, Any]:
    current = v.get_variables(layer).get(slot) or {}
    src = value.get("src") if isinstance(value, Mapping) else None
    if v.variable_type(src) is None:
        src = v.empty_like(current.get("src"))
    updated = {**current, "src": {**src, "id": var_id}}
    for key in carried:
        if isinstance(value, Mapping) and value.get(key) is not None:
            updated[key] = value[key]
    return v.with_variables(layer, **{slot: updated})
