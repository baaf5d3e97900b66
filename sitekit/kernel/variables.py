"""
SiteKit Kernel — Variable Model

Every bindable property of a layer (text, image, audio, video, icon,
background image, link, design color) holds a tagged-union variable:

    {"type": "static_text",       "data": {"content": str}}
    {"type": "dynamic_text",      "data": {"content": str}}   # may hold inline variables
    {"type": "dynamic_rich_text", "data": {"content": doc}}   # rich-text document
    {"type": "asset",             "data": {"asset_id": str}}
    {"type": "field",             "data": {"field_id": str, "relationships": [...], ...}}
    {"type": "video",             "data": {"provider": "youtube", "video_id": str}}

A variable that does not match this shape is treated as absent.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

STATIC_TEXT = "static_text"
DYNAMIC_TEXT = "dynamic_text"
DYNAMIC_RICH_TEXT = "dynamic_rich_text"
ASSET = "asset"
FIELD = "field"
VIDEO = "video"

VARIABLE_TYPES = frozenset({STATIC_TEXT, DYNAMIC_TEXT, DYNAMIC_RICH_TEXT, ASSET, FIELD, VIDEO})

# Media slots that hold an asset or field variable under "src"
MEDIA_SLOTS = ("image", "video", "audio", "icon", "backgroundImage")


def variable_type(variable: Any) -> str | None:
    """Return the variable's type tag, or None when the shape is malformed."""
    if not isinstance(variable, Mapping):
        return None
    vtype = variable.get("type")
    if vtype not in VARIABLE_TYPES:
        return None
    data = variable.get("data")
    if not isinstance(data, Mapping):
        return None
    return vtype


def is_field_variable(variable: Any) -> bool:
    return variable_type(variable) == FIELD and bool(variable["data"].get("field_id"))


def is_asset_variable(variable: Any) -> bool:
    return variable_type(variable) == ASSET


def is_rich_text(variable: Any) -> bool:
    return variable_type(variable) == DYNAMIC_RICH_TEXT


def make_static_text(content: str) -> dict[str, Any]:
    return {"type": STATIC_TEXT, "data": {"content": content}}


def make_dynamic_text(content: str) -> dict[str, Any]:
    return {"type": DYNAMIC_TEXT, "data": {"content": content}}


def make_rich_text(doc: dict[str, Any]) -> dict[str, Any]:
    return {"type": DYNAMIC_RICH_TEXT, "data": {"content": doc}}


def make_asset(asset_id: str | None) -> dict[str, Any]:
    return {"type": ASSET, "data": {"asset_id": asset_id}}


def text_value(variable: Any) -> str | None:
    """Plain string content of a static/dynamic text variable."""
    if variable_type(variable) in (STATIC_TEXT, DYNAMIC_TEXT):
        content = variable["data"].get("content")
        return content if isinstance(content, str) else ""
    return None


def rich_text_doc(variable: Any) -> dict[str, Any] | None:
    if variable_type(variable) != DYNAMIC_RICH_TEXT:
        return None
    content = variable["data"].get("content")
    return content if isinstance(content, dict) else None


def asset_id(variable: Any) -> str | None:
    if variable_type(variable) != ASSET:
        return None
    value = variable["data"].get("asset_id")
    return value if isinstance(value, str) and value else None


def empty_like(variable: Any) -> dict[str, Any]:
    """An empty value with the same structural type as `variable`."""
    vtype = variable_type(variable)
    if vtype == DYNAMIC_RICH_TEXT:
        return make_rich_text({"type": "doc", "content": []})
    if vtype == ASSET:
        return make_asset(None)
    if vtype == STATIC_TEXT:
        return make_static_text("")
    return make_dynamic_text("")


# ---------------------------------------------------------------------------
# Layer slot access (copy-on-write)
# ---------------------------------------------------------------------------


def get_variables(layer: Mapping[str, Any]) -> dict[str, Any]:
    variables = layer.get("variables")
    return variables if isinstance(variables, dict) else {}


def get_slot(layer: Mapping[str, Any], *path: str) -> Any:
    """Read a nested variable slot, e.g. get_slot(layer, "image", "src")."""
    node: Any = get_variables(layer)
    for key in path:
        if not isinstance(node, Mapping):
            return None
        node = node.get(key)
    return node


def with_variables(layer: Mapping[str, Any], **updates: Any) -> dict[str, Any]:
    """Return a copy of `layer` with top-level variable slots replaced.

    A value of None removes the slot.
    """
    variables = dict(get_variables(layer))
    for key, value in updates.items():
        if value is None:
            variables.pop(key, None)
        else:
            variables[key] = value
    return {**layer, "variables": variables}


def with_slot(layer: Mapping[str, Any], slot: str, key: str, value: Any) -> dict[str, Any]:
    """Return a copy of `layer` with variables[slot][key] replaced."""
    current = get_variables(layer).get(slot)
    merged = {**current, key: value} if isinstance(current, Mapping) else {key: value}
    return with_variables(layer, **{slot: merged})
