"""
SiteKit Kernel — Markup Renderer

Pure function: (concrete layer tree, render context) → HTML string.
No IO. Deterministic: same input → same output, always.

All layout decisions live in rules.py; this module only serializes the
resulting elements. Text and attribute values are escaped; icon SVG (RawHtml)
is emitted verbatim.
"""

from __future__ import annotations

from html import escape as _html_escape
from typing import Any

from sitekit.kernel import rules
from sitekit.kernel.elements import Element, Node, RawHtml
from sitekit.kernel.types import ItemScope, RenderContext

# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def render_html(layers: list[dict[str, Any]], context: RenderContext | None = None) -> str:
    """Render a layer tree to an HTML fragment string."""
    context = context or RenderContext()
    return serialize(rules.layout(layers, context))


def render_layer(layer: dict[str, Any], context: RenderContext | None = None, scope: ItemScope | None = None) -> str:
    context = context or RenderContext()
    return serialize(rules.build_element(layer, context, scope))


def serialize(nodes: list[Node]) -> str:
    return "".join(_serialize(node) for node in nodes)


def escape(text: str) -> str:
    """HTML-escape user content."""
    return _html_escape(str(text), quote=True)


# ---------------------------------------------------------------------------
# Serialization
# ---------------------------------------------------------------------------


def _serialize(node: Node) -> str:
    if isinstance(node, str):
        return escape(node)
    if isinstance(node, RawHtml):
        return node.html
    return _element(node)


def _attributes(attrs: dict[str, Any]) -> str:
    parts = []
    for name, value in attrs.items():
        if value is None or value is False:
            continue
        if value is True:
            parts.append(f" {escape(name)}")
        else:
            parts.append(f' {escape(name)}="{escape(value)}"')
    return "".join(parts)


def _element(element: Element) -> str:
    attrs = _attributes(element.attrs)
    if element.void:
        return f"<{element.tag}{attrs}>"
    inner = "".join(_serialize(child) for child in element.children)
    return f"<{element.tag}{attrs}>{inner}</{element.tag}>"
