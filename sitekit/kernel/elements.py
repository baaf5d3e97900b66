"""
SiteKit Kernel — Element Nodes

The renderer-neutral output of the shared rule table. rules.layout() turns a
concrete layer tree into these; html_renderer serializes them to markup and
tree_renderer converts them into UI nodes. Attribute names here are always
markup-legal names ("class", "for").
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Union


@dataclass
class RawHtml:
    """Trusted markup emitted verbatim (icon SVG)."""

    html: str


@dataclass
class Element:
    tag: str
    attrs: dict[str, Any] = field(default_factory=dict)
    children: list[Node] = field(default_factory=list)
    void: bool = False
    layer_id: str | None = None

    def text(self) -> str:
        """Concatenated visible text of this element and its descendants."""
        parts: list[str] = []
        for child in self.children:
            if isinstance(child, str):
                parts.append(child)
            elif isinstance(child, Element):
                parts.append(child.text())
        return "".join(parts)


Node = Union[Element, RawHtml, str]


def iter_elements(nodes: list[Node]):
    """Depth-first walk over every Element in `nodes`."""
    for node in nodes:
        if isinstance(node, Element):
            yield node
            yield from iter_elements(node.children)
