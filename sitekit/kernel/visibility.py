"""
SiteKit Kernel — Visibility Filter

Pure function: (layers, item data, page item data) → layers with every node
whose conditional-visibility rule evaluates false removed, subtree included.

A rule is an OR over groups; each group is an AND over its conditions.
Empty groups are ignored and a rule without groups is always visible.

Conditions read either a field of the nearest enclosing item
(`collection_field`) or the number of items a loop rendered
(`page_collection`). Loop counts are taken from materialized fragments,
keyed by the loop's source layer id, and scoped to the nearest enclosing
collection clone.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import datetime
from typing import Any

from sitekit.kernel import ids
from sitekit.kernel.fields import parse_datetime, parse_id_list
from sitekit.kernel.types import is_fragment

logger = logging.getLogger(__name__)

_COMPARE = {
    "eq": lambda a, b: a == b,
    "lt": lambda a, b: a < b,
    "lte": lambda a, b: a <= b,
    "gt": lambda a, b: a > b,
    "gte": lambda a, b: a >= b,
}


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def filter_by_visibility(
    layers: list[dict[str, Any]],
    collection_data: Mapping[str, Any] | None = None,
    page_collection_data: Mapping[str, Any] | None = None,
) -> list[dict[str, Any]]:
    """
    Remove layers hidden by their conditional-visibility rule.

    `collection_data` is the item in scope at the top (usually none);
    `page_collection_data` is the dynamic page's own item.
    """
    counts = collection_counts(layers)
    return _filter_list(layers, collection_data, page_collection_data, counts)


def collection_counts(layers: list[dict[str, Any]]) -> dict[str, int]:
    """
    Rendered item counts per loop, keyed by source layer id.

    Does not descend into collection clones; their own loops are counted
    when the filter enters them.
    """
    counts: dict[str, int] = {}
    stack = list(layers)
    while stack:
        layer = stack.pop()
        if is_fragment(layer):
            counts[ids.source_id(layer)] = len(layer.get("children") or [])
            continue
        if "_collectionItemId" in layer:
            continue
        stack.extend(layer.get("children") or [])
    return counts


def evaluate_visibility(
    rule: Any,
    item_data: Mapping[str, Any] | None,
    page_collection_data: Mapping[str, Any] | None,
    counts: Mapping[str, int],
) -> bool:
    if not isinstance(rule, Mapping):
        return True
    groups = [g for g in rule.get("groups") or [] if isinstance(g, Mapping) and g.get("conditions")]
    if not groups:
        return True
    data = item_data if item_data is not None else page_collection_data
    return any(
        all(evaluate_condition(c, data or {}, counts) for c in group["conditions"])
        for group in groups
    )


def evaluate_condition(condition: Mapping[str, Any], data: Mapping[str, Any], counts: Mapping[str, int]) -> bool:
    operator = condition.get("operator")
    if condition.get("source") == "page_collection":
        return _count_condition(operator, counts.get(condition.get("collectionLayerId") or "", 0), condition)

    value = data.get(condition.get("fieldId") or "")
    field_type = condition.get("fieldType") or "text"
    if field_type == "number":
        return _number_condition(operator, value, condition.get("value"))
    if field_type == "date":
        return _date_condition(operator, value, condition)
    if field_type == "boolean":
        return _truthy(value) == _truthy(condition.get("value"))
    if field_type == "reference":
        return _reference_condition(operator, value, condition)
    if field_type == "multi_reference":
        return _multi_reference_condition(operator, value, condition)
    return _text_condition(operator, value, condition.get("value"))


# ---------------------------------------------------------------------------
# Tree walk
# ---------------------------------------------------------------------------


def _filter_list(
    layers: list[dict[str, Any]],
    item_data: Mapping[str, Any] | None,
    page_data: Mapping[str, Any] | None,
    counts: Mapping[str, int],
) -> list[dict[str, Any]]:
    result = []
    for layer in layers:
        kept = _filter_layer(layer, item_data, page_data, counts)
        if kept is not None:
            result.append(kept)
    return result


def _filter_layer(
    layer: dict[str, Any],
    item_data: Mapping[str, Any] | None,
    page_data: Mapping[str, Any] | None,
    counts: Mapping[str, int],
) -> dict[str, Any] | None:
    if "_collectionItemId" in layer:
        counts = {**counts, **collection_counts(layer.get("children") or [])}
    if layer.get("_collectionItemValues") is not None:
        item_data = layer["_collectionItemValues"]

    rule = (layer.get("variables") or {}).get("conditionalVisibility")
    if rule and not evaluate_visibility(rule, item_data, page_data, counts):
        return None

    children = layer.get("children")
    if isinstance(children, list):
        return {**layer, "children": _filter_list(children, item_data, page_data, counts)}
    return layer


# ---------------------------------------------------------------------------
# Operators
# ---------------------------------------------------------------------------


def _text(value: Any) -> str:
    if value is None:
        return ""
    return value if isinstance(value, str) else str(value)


def _truthy(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1", "yes")
    return bool(value)


def _number(value: Any) -> float | None:
    if isinstance(value, bool) or value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _text_condition(operator: Any, value: Any, expected: Any) -> bool:
    text = _text(value)
    target = _text(expected)
    if operator == "is":
        return text == target
    if operator == "is_not":
        return text != target
    if operator == "contains":
        return target.casefold() in text.casefold()
    if operator == "does_not_contain":
        return target.casefold() not in text.casefold()
    if operator == "is_present":
        return bool(text.strip())
    if operator == "is_empty":
        return not text.strip()
    logger.debug("visibility: unknown text operator %r", operator)
    return True


def _number_condition(operator: Any, value: Any, expected: Any) -> bool:
    left, right = _number(value), _number(expected)
    if operator == "is_not":
        return left != right
    if left is None or right is None:
        return False
    if operator == "is":
        return left == right
    compare = _COMPARE.get(operator)
    if compare is None:
        logger.debug("visibility: unknown number operator %r", operator)
        return True
    return compare(left, right)


def _date_condition(operator: Any, value: Any, condition: Mapping[str, Any]) -> bool:
    current = parse_datetime(value)
    if operator == "is_empty":
        return current is None
    if operator == "is_not_empty":
        return current is not None
    first = parse_datetime(condition.get("value"))
    if current is None or first is None:
        return False
    if operator == "is":
        return _day(current) == _day(first)
    if operator == "is_before":
        return current < first
    if operator == "is_after":
        return current > first
    if operator == "is_between":
        second = parse_datetime(condition.get("value2"))
        if second is None:
            return False
        low, high = sorted((first, second))
        return low <= current <= high
    logger.debug("visibility: unknown date operator %r", operator)
    return True


def _day(value: datetime) -> tuple[int, int, int]:
    return (value.year, value.month, value.day)


def _reference_condition(operator: Any, value: Any, condition: Mapping[str, Any]) -> bool:
    ref = _text(value).strip()
    if operator == "exists":
        return bool(ref)
    if operator == "does_not_exist":
        return not ref
    wanted = parse_id_list(condition.get("value"))
    if operator == "is_one_of":
        return ref in wanted
    if operator == "is_not_one_of":
        return ref not in wanted
    logger.debug("visibility: unknown reference operator %r", operator)
    return True


def _multi_reference_condition(operator: Any, value: Any, condition: Mapping[str, Any]) -> bool:
    current = parse_id_list(value)
    if operator in ("item_count", "has_items", "has_no_items"):
        return _count_condition(operator, len(current), condition)
    wanted = parse_id_list(condition.get("value"))
    if operator == "is_one_of":
        return bool(set(current) & set(wanted))
    if operator == "is_not_one_of":
        return not set(current) & set(wanted)
    if operator == "contains_all_of":
        return set(wanted) <= set(current)
    if operator == "contains_exactly":
        return set(wanted) == set(current)
    logger.debug("visibility: unknown multi-reference operator %r", operator)
    return True


def _count_condition(operator: Any, count: int, condition: Mapping[str, Any]) -> bool:
    if operator == "has_items":
        return count > 0
    if operator == "has_no_items":
        return count == 0
    if operator == "item_count":
        compare = _COMPARE.get(condition.get("compareOperator") or "eq", _COMPARE["eq"])
        expected = _number(condition.get("compareValue"))
        return compare(count, expected if expected is not None else 0)
    logger.debug("visibility: unknown count operator %r", operator)
    return True
