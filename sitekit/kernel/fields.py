"""
SiteKit Kernel — Field / Relationship Resolver

Resolves field variables against item-value maps.

A field variable names a field id, an optional chain of reference hops
(`relationships`) and an optional `collection_layer_id` that targets a
specific ancestor loop. The lookup path is the dotted join of the field id
and the hops; the dotted keys are filled in beforehand by
resolve_reference_fields().

Also here: inline-variable tags in plain text, placeholder nodes in rich
text, timezone date formatting, and field injection into a resolved subtree.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Mapping
from datetime import datetime, timezone as dt_timezone
from typing import TYPE_CHECKING, Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from sitekit.kernel import rich_text, variables as v
from sitekit.kernel.types import Diagnostics, ItemScope

if TYPE_CHECKING:
    from sitekit.kernel.repository import CachedRepository

logger = logging.getLogger(__name__)

INLINE_VARIABLE_TAG = "inline-variable"
INLINE_VARIABLE_RE = re.compile(rf"<{INLINE_VARIABLE_TAG}>([\s\S]*?)</{INLINE_VARIABLE_TAG}>")

VIRTUAL_ASSET_PREFIX = "__asset_"
ASSET_FIELD_TYPES = frozenset({"image", "video", "audio", "document"})

DATE_FORMATS = {
    "date": "%B %d, %Y",
    "date_short": "%m/%d/%Y",
    "datetime": "%B %d, %Y %H:%M",
    "time": "%H:%M",
}


# ---------------------------------------------------------------------------
# Lookup
# ---------------------------------------------------------------------------


def field_path(data: Mapping[str, Any]) -> str | None:
    field_id = data.get("field_id")
    if not field_id:
        return None
    relationships = [r for r in data.get("relationships") or [] if r]
    if relationships:
        return ".".join([field_id, *relationships])
    return field_id


def lookup(data: Mapping[str, Any], scope: ItemScope) -> Any:
    """Look up a field variable's data against the scope."""
    path = field_path(data)
    if path is None:
        return None
    layer_id = data.get("collection_layer_id")
    if layer_id and layer_id in scope.layer_data:
        return scope.layer_data[layer_id].get(path)
    return scope.values.get(path)


def resolve_field_value(
    variable: Any,
    item_values: Mapping[str, Any],
    layer_data_map: Mapping[str, Mapping[str, Any]] | None = None,
) -> Any:
    """
    Resolve a field variable to its raw value, or None.

    With collection_layer_id set and present in layer_data_map, the value
    comes from that ancestor loop's item instead of item_values.
    """
    if not v.is_field_variable(variable):
        return None
    scope = ItemScope(values=item_values, layer_data=layer_data_map or {})
    return lookup(variable["data"], scope)


def stringify(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (list, dict)):
        return json.dumps(value, ensure_ascii=False)
    return str(value)


# ---------------------------------------------------------------------------
# Dates
# ---------------------------------------------------------------------------


def parse_datetime(value: Any) -> datetime | None:
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=dt_timezone.utc)
    return parsed


def get_zone(name: str | None) -> ZoneInfo:
    try:
        return ZoneInfo(name or "UTC")
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("fields: unknown timezone %r, using UTC", name)
        return ZoneInfo("UTC")


def format_date_fields(
    values: Mapping[str, Any],
    fields: list[dict[str, Any]],
    timezone: str | None,
) -> dict[str, Any]:
    """Convert date-typed values to ISO 8601 in the site timezone."""
    zone = get_zone(timezone)
    result = dict(values)
    for f in fields:
        if f.get("type") != "date":
            continue
        parsed = parse_datetime(values.get(f["id"]))
        if parsed is not None:
            result[f["id"]] = parsed.astimezone(zone).isoformat()
    return result


def format_value(value: Any, fmt: str | None) -> str:
    """Apply a field variable's `format` (a preset name or strftime pattern)."""
    if fmt:
        pattern = DATE_FORMATS.get(fmt) or (fmt if "%" in fmt else None)
        parsed = parse_datetime(value) if pattern else None
        if parsed is not None:
            return parsed.strftime(pattern)
    return stringify(value)


# ---------------------------------------------------------------------------
# Reference hops
# ---------------------------------------------------------------------------


async def resolve_reference_fields(
    values: Mapping[str, Any],
    fields: list[dict[str, Any]],
    repo: CachedRepository,
    *,
    prefix: str = "",
    visited: set[str] | None = None,
    diagnostics: Diagnostics | None = None,
) -> dict[str, Any]:
    """
    Copy referenced items' values into dotted-path keys.

    For a reference field `author` pointing at an item whose `name` field is
    "Ada", the result gains {"author.name": "Ada"}. Hops recurse through the
    target's own reference fields; a visited "fieldId:itemId" set stops
    cycles.
    """
    visited = visited if visited is not None else set()
    result = dict(values)
    for f in fields:
        if f.get("type") != "reference" or not f.get("reference_collection_id"):
            continue
        ref_id = values.get(f["id"])
        if not ref_id or not isinstance(ref_id, str):
            continue
        visit_key = f"{f['id']}:{ref_id}"
        if visit_key in visited:
            continue
        visited.add(visit_key)

        try:
            ref_item = await repo.get_item(f["reference_collection_id"], ref_id)
            if ref_item is None:
                continue
            ref_fields = await repo.get_fields(f["reference_collection_id"])
        except Exception as e:
            if diagnostics is not None:
                diagnostics.record(e, field_id=f["id"], item_id=ref_id)
            else:
                logger.warning("fields: reference hop failed field_id=%s item_id=%s: %s", f["id"], ref_id, e)
            continue

        path = f"{prefix}.{f['id']}" if prefix else f["id"]
        ref_values = ref_item.get("values") or {}
        for ref_field in ref_fields:
            if ref_field["id"] in ref_values:
                result[f"{path}.{ref_field['id']}"] = ref_values[ref_field["id"]]

        nested = await resolve_reference_fields(
            ref_values, ref_fields, repo, prefix=path, visited=visited, diagnostics=diagnostics
        )
        result.update({k: val for k, val in nested.items() if "." in k})
    return result


# ---------------------------------------------------------------------------
# Inline variables
# ---------------------------------------------------------------------------


def has_inline_variables(text: str) -> bool:
    return f"<{INLINE_VARIABLE_TAG}>" in text


def resolve_inline_variables(text: str, scope: ItemScope) -> str:
    """Replace <inline-variable>{json}</inline-variable> tags with field values."""
    if not has_inline_variables(text):
        return text

    def replace(match: re.Match[str]) -> str:
        try:
            parsed = json.loads(match.group(1).strip())
        except json.JSONDecodeError:
            return match.group(0)
        if v.variable_type(parsed) != v.FIELD or not parsed["data"].get("field_id"):
            return match.group(0)
        data = parsed["data"]
        return format_value(lookup(data, scope), data.get("format"))

    return INLINE_VARIABLE_RE.sub(replace, text)


def resolve_rich_text(content: Any, scope: ItemScope) -> Any:
    """
    Resolve dynamicVariable placeholder nodes in a rich-text document.

    A placeholder for a rich_text field whose value is a document is replaced
    by that document's nodes (recursively resolved, placeholder marks merged
    on). Any other value becomes a text node carrying the placeholder's marks.
    """
    resolved = _resolve_node(content, scope)
    if isinstance(resolved, dict) and isinstance(resolved.get("content"), list):
        return {**resolved, "content": rich_text.lift_blocks(resolved["content"])}
    return resolved


def _resolve_node(node: Any, scope: ItemScope) -> Any:
    if isinstance(node, list):
        out: list[Any] = []
        for child in node:
            resolved = _resolve_node(child, scope)
            out.extend(resolved if isinstance(resolved, list) else [resolved])
        return out
    if not isinstance(node, dict):
        return node

    if node.get("type") == "dynamicVariable":
        marks = node.get("marks") or []
        variable = (node.get("attrs") or {}).get("variable")
        if v.variable_type(variable) != v.FIELD or not variable["data"].get("field_id"):
            return {"type": "text", "text": "", "marks": marks}
        data = variable["data"]
        value = lookup(data, scope)
        if data.get("field_type") == "rich_text":
            if rich_text.is_doc(value):
                inline = rich_text.extract_inline_nodes(value["content"], marks)
                return _resolve_node(inline, scope)
            if isinstance(value, dict):
                return {"type": "text", "text": json.dumps(value), "marks": marks}
        return {"type": "text", "text": format_value(value, data.get("format")), "marks": marks}

    result: dict[str, Any] = {}
    for key, val in node.items():
        if isinstance(val, (dict, list)) and key != "attrs":
            result[key] = _resolve_node(val, scope)
        else:
            result[key] = val
    return result


# ---------------------------------------------------------------------------
# Injection into a resolved subtree
# ---------------------------------------------------------------------------


def is_virtual_asset_field(field_id: str | None) -> bool:
    return bool(field_id) and field_id.startswith(VIRTUAL_ASSET_PREFIX)


def resolved_asset_variable(variable: dict[str, Any], scope: ItemScope) -> dict[str, Any]:
    """
    Turn a media field binding into an asset variable.

    Virtual multi-asset fields (`__asset_url`) already hold URLs and become
    dynamic text. An empty value keeps the field binding.
    """
    value = lookup(variable["data"], scope)
    if not value:
        return variable
    if is_virtual_asset_field(variable["data"].get("field_id")):
        return v.make_dynamic_text(stringify(value))
    return v.make_asset(stringify(value))


def resolve_text_variable(variable: Any, scope: ItemScope) -> Any:
    vtype = v.variable_type(variable)
    if vtype == v.DYNAMIC_RICH_TEXT:
        content = variable["data"].get("content")
        if isinstance(content, dict):
            return v.make_rich_text(resolve_rich_text(content, scope))
    elif vtype == v.DYNAMIC_TEXT:
        text = v.text_value(variable) or ""
        if has_inline_variables(text):
            return v.make_dynamic_text(resolve_inline_variables(text, scope))
    elif vtype == v.FIELD and variable["data"].get("field_id"):
        data = variable["data"]
        value = lookup(data, scope)
        if data.get("field_type") == "rich_text" and rich_text.is_doc(value):
            return v.make_rich_text(resolve_rich_text(value, scope))
        return v.make_dynamic_text(format_value(value, data.get("format")))
    return variable


def resolve_design_styles(design: Any, scope: ItemScope) -> dict[str, str] | None:
    """Design color bindings → inline style properties (camelCase keys)."""
    if not isinstance(design, Mapping):
        return None
    styles: dict[str, str] = {}
    for prop, binding in design.items():
        if not isinstance(binding, Mapping):
            continue
        mode = binding.get("mode") or "solid"
        if mode == "solid":
            field_var = binding.get("field")
            if v.is_field_variable(field_var):
                value = lookup(field_var["data"], scope)
                if value:
                    styles[prop] = stringify(value)
            continue
        gradient = binding.get(mode)
        if not isinstance(gradient, Mapping):
            continue
        stops = []
        for stop in gradient.get("stops") or []:
            color = stop.get("color") or ""
            if v.is_field_variable(stop.get("field")):
                color = stringify(lookup(stop["field"]["data"], scope)) or color
            if color:
                stops.append(f"{color} {stop.get('position', 0)}%")
        if not stops:
            continue
        if mode == "linear":
            value = f"linear-gradient({gradient.get('angle', 180)}deg, {', '.join(stops)})"
        else:
            value = f"radial-gradient(circle, {', '.join(stops)})"
        key = "backgroundImage" if prop == "backgroundColor" else prop
        styles[key] = value
    return styles or None


def inject_field_data(layer: dict[str, Any], scope: ItemScope) -> dict[str, Any]:
    """
    Resolve every field binding in `layer` and its descendants against scope.

    Descent stops at layers that carry their own item context: collection
    bound layers, fragments and collection clones were (or will be) resolved
    with their own items.
    """
    updated = dict(layer)
    variables = dict(v.get_variables(layer))
    changed = False

    text = variables.get("text")
    if text is not None:
        resolved = resolve_text_variable(text, scope)
        if resolved is not text:
            variables["text"] = resolved
            changed = True

    for slot in ("image", "video", "audio", "backgroundImage"):
        src = v.get_slot(layer, slot, "src")
        if v.is_field_variable(src):
            variables[slot] = {**variables[slot], "src": resolved_asset_variable(src, scope)}
            if slot == "image" and "alt" not in variables[slot]:
                variables[slot]["alt"] = v.make_dynamic_text("")
            changed = True

    styles = resolve_design_styles(variables.get("design"), scope)
    if styles:
        updated["_dynamicStyles"] = {**(layer.get("_dynamicStyles") or {}), **styles}

    if changed:
        updated["variables"] = variables

    children = layer.get("children")
    if isinstance(children, list):
        updated["children"] = [
            child if owns_item_context(child) else inject_field_data(child, scope)
            for child in children
        ]
    return updated


def owns_item_context(layer: Mapping[str, Any]) -> bool:
    collection = v.get_slot(layer, "collection")
    if isinstance(collection, Mapping) and collection.get("id"):
        return True
    return layer.get("name") == "_fragment" or "_collectionItemId" in layer


def parse_id_list(value: Any) -> list[str]:
    """
    Item/asset ids from a multi-reference value: a list or a JSON array string.

    Repeated ids are dropped, keeping first-seen order.
    """
    if isinstance(value, list):
        return _unique_ids(value)
    if isinstance(value, str) and value.strip():
        text = value.strip()
        if text.startswith("["):
            try:
                parsed = json.loads(text)
            except json.JSONDecodeError:
                return []
            return _unique_ids(parsed) if isinstance(parsed, list) else []
        return [text]
    return []


def _unique_ids(values: list[Any]) -> list[str]:
    return list(dict.fromkeys(str(i) for i in values if i))
