"""
SiteKit Kernel — Identity Namespacing

Every expansion rewrites descendant ids as a deterministic function of the
original id and the expansion context:

    component instance:  f"{instance_id}_{original_id}"
    collection clone:    f"{original_id}-item-{item_id}"

Interaction ids are rewritten the same way. Tween layer_id references that
point inside the expanded subtree follow their target; references outside
it are kept. The authoring id of each node survives in `_sourceLayerId`.

A collection loop is replaced by its fragment (`_loopLayerId` records the
loop id it replaced), so references to the loop follow the fragment.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator
from typing import Any


def collect_ids(layer: dict[str, Any], into: set[str] | None = None) -> set[str]:
    ids = into if into is not None else set()
    if layer.get("id"):
        ids.add(layer["id"])
    for child in layer.get("children") or []:
        collect_ids(child, ids)
    return ids


def remap_subtree(
    layer: dict[str, Any],
    rename: Callable[[str], str],
    *,
    include_root: bool = True,
    aliases: dict[str, str] | None = None,
) -> dict[str, Any]:
    """
    Rename every id in the subtree and keep tween references consistent.

    With include_root=False the root keeps its id. `aliases` maps extra ids
    (such as a component's content root) straight to a final id.
    """
    present = collect_ids(layer)
    id_map = {i: rename(i) for i in present}
    if not include_root:
        id_map.pop(layer.get("id"), None)
    for loop_id, fragment_id in loop_aliases(layer, present).items():
        id_map.setdefault(loop_id, id_map.get(fragment_id, fragment_id))
    id_map.update(aliases or {})
    return _remap(layer, rename, id_map, include_root)


def _remap(layer: dict[str, Any], rename: Callable[[str], str], id_map: dict[str, str], rename_self: bool) -> dict[str, Any]:
    remapped = dict(layer)
    if rename_self and layer.get("id"):
        remapped["id"] = id_map.get(layer["id"], rename(layer["id"]))
        remapped.setdefault("_sourceLayerId", layer["id"])

    interactions = layer.get("interactions")
    if isinstance(interactions, list) and interactions:
        remapped["interactions"] = [_remap_interaction(i, rename, id_map) for i in interactions]

    children = layer.get("children")
    if isinstance(children, list):
        remapped["children"] = [_remap(child, rename, id_map, True) for child in children]
    return remapped


def _remap_interaction(interaction: dict[str, Any], rename: Callable[[str], str], id_map: dict[str, str]) -> dict[str, Any]:
    result = dict(interaction)
    if interaction.get("id"):
        result["id"] = rename(interaction["id"])
    tweens = interaction.get("tweens")
    if isinstance(tweens, list):
        result["tweens"] = [
            {**t, "layer_id": id_map[t["layer_id"]]} if t.get("layer_id") in id_map else t
            for t in tweens
        ]
    return result


def loop_aliases(layer: dict[str, Any], present: set[str]) -> dict[str, str]:
    """Loop id → fragment id for every replaced loop in the subtree."""
    return {loop_id: fragment_id for loop_id, fragment_id in _fragments_by_loop(layer) if loop_id not in present}


def retarget_loop_references(layers: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """
    Point tweens that target a replaced loop at its fragment.

    Covers references outside any clone; a loop id that now names more than
    one fragment is ambiguous and left as is.
    """
    present: set[str] = set()
    for layer in layers:
        collect_ids(layer, present)
    seen: dict[str, list[str]] = {}
    for layer in layers:
        for loop_id, fragment_id in _fragments_by_loop(layer):
            if loop_id not in present:
                seen.setdefault(loop_id, []).append(fragment_id)
    id_map = {loop_id: found[0] for loop_id, found in seen.items() if len(found) == 1}
    if not id_map:
        return layers
    return [_retarget(layer, id_map) for layer in layers]


def _fragments_by_loop(layer: dict[str, Any]) -> Iterator[tuple[str, str]]:
    if layer.get("_loopLayerId"):
        yield layer["_loopLayerId"], layer["id"]
    for child in layer.get("children") or []:
        yield from _fragments_by_loop(child)


def _retarget(layer: dict[str, Any], id_map: dict[str, str]) -> dict[str, Any]:
    updated = dict(layer)
    interactions = layer.get("interactions")
    if isinstance(interactions, list) and interactions:
        updated["interactions"] = [_remap_interaction(i, _same, id_map) for i in interactions]
    children = layer.get("children")
    if isinstance(children, list):
        updated["children"] = [_retarget(child, id_map) for child in children]
    return updated


def _same(value: str) -> str:
    return value


def component_namespace(instance_id: str) -> Callable[[str], str]:
    return lambda original: f"{instance_id}_{original}"


def item_namespace(item_id: str) -> Callable[[str], str]:
    return lambda original: f"{original}-item-{item_id}"


def source_id(layer: dict[str, Any]) -> str:
    """The id the layer had at authoring time."""
    return layer.get("_sourceLayerId") or layer.get("id") or ""
