"""
SiteKit Kernel — Interactive Tree Renderer

Pure function: (concrete layer tree, render context) → UI tree for a
client-side renderer, plus the pagination side-channel.

Consumes the same rules.layout() output as the markup renderer, so tags,
hrefs, srcs and text are identical by construction. Only the representation
differs: JSX-style prop names, a style dict instead of a string, and click
events on pagination buttons.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Union

from sitekit.kernel import rules
from sitekit.kernel.elements import Element, Node, RawHtml
from sitekit.kernel.types import RenderContext

RAW_NODE = "#raw"

HTML_TO_JSX = {
    "class": "className",
    "for": "htmlFor",
    "autofocus": "autoFocus",
    "srcset": "srcSet",
    "frameborder": "frameBorder",
    "allowfullscreen": "allowFullScreen",
    "readonly": "readOnly",
    "maxlength": "maxLength",
    "tabindex": "tabIndex",
    "srcdoc": "srcDoc",
}

PAGINATION_KEYS = (
    "currentPage",
    "totalPages",
    "totalItems",
    "itemsPerPage",
    "mode",
    "collectionId",
    "itemIds",
    "layerTemplate",
    "sortBy",
    "sortOrder",
    "filters",
)


@dataclass
class UINode:
    type: str
    props: dict[str, Any] = field(default_factory=dict)
    children: list[UIChild] = field(default_factory=list)
    events: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "type": self.type,
            "props": self.props,
            "children": [c.to_dict() if isinstance(c, UINode) else c for c in self.children],
        }
        if self.events:
            d["events"] = self.events
        return d


UIChild = Union[UINode, str]


@dataclass
class UITree:
    nodes: list[UIChild]
    pagination: dict[str, dict[str, Any]]

    def to_dict(self) -> dict[str, Any]:
        return {
            "nodes": [n.to_dict() if isinstance(n, UINode) else n for n in self.nodes],
            "pagination": self.pagination,
        }


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def render_tree(layers: list[dict[str, Any]], context: RenderContext | None = None) -> UITree:
    context = context or RenderContext()
    nodes = [to_ui_node(n) for n in rules.layout(layers, context)]
    return UITree(nodes=nodes, pagination=collect_pagination(layers))


def to_ui_node(node: Node) -> UIChild:
    if isinstance(node, str):
        return node
    if isinstance(node, RawHtml):
        return UINode(type=RAW_NODE, props={"html": node.html})
    return _element_node(node)


def collect_pagination(layers: list[dict[str, Any]]) -> dict[str, dict[str, Any]]:
    """Pagination state per loop layer id, for client hydration."""
    found: dict[str, dict[str, Any]] = {}
    stack = list(layers)
    while stack:
        layer = stack.pop()
        meta = layer.get("_paginationMeta")
        if isinstance(meta, dict) and meta.get("layerId"):
            found[meta["layerId"]] = {k: meta[k] for k in PAGINATION_KEYS if k in meta}
        stack.extend(layer.get("children") or [])
    return found


# ---------------------------------------------------------------------------
# Conversion
# ---------------------------------------------------------------------------


def parse_style(style: str) -> dict[str, str]:
    """'background-color:red;--bg-img:url(x)' → {'backgroundColor': 'red', '--bg-img': 'url(x)'}"""
    result: dict[str, str] = {}
    for declaration in style.split(";"):
        prop, sep, value = declaration.partition(":")
        prop = prop.strip()
        if not sep or not prop:
            continue
        if not prop.startswith("--"):
            head, *rest = prop.split("-")
            prop = head + "".join(part.capitalize() for part in rest)
        result[prop] = value.strip()
    return result


def _element_node(element: Element) -> UINode:
    props: dict[str, Any] = {}
    events: dict[str, str] = {}
    for name, value in element.attrs.items():
        if value is None or value is False:
            continue
        if name == "style" and isinstance(value, str):
            props["style"] = parse_style(value)
            continue
        if name == "data-pagination-action":
            events["click"] = f"pagination:{value}"
        props[HTML_TO_JSX.get(name, name)] = value
    children = [to_ui_node(c) for c in element.children]
    return UINode(type=element.tag, props=props, children=children, events=events)
