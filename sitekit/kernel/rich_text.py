"""
SiteKit Kernel — Rich Text

Helpers over rich-text documents ({"type": "doc", "content": [...]}) and the
single doc → element conversion used by both renderers.
"""

from __future__ import annotations

from typing import Any

from sitekit.kernel.elements import Element, Node

BLOCK_TYPES = frozenset({"paragraph", "heading", "bulletList", "orderedList", "listItem", "blockquote"})
LIST_TYPES = frozenset({"bulletList", "orderedList"})

# Empty paragraphs keep their line
NBSP = "\u00a0"

DEFAULT_TEXT_STYLES: dict[str, dict[str, str]] = {
    "paragraph": {"classes": "block"},
    "h1": {"classes": "block text-5xl font-bold"},
    "h2": {"classes": "block text-4xl font-bold"},
    "h3": {"classes": "block text-3xl font-bold"},
    "h4": {"classes": "block text-2xl font-bold"},
    "h5": {"classes": "block text-xl font-bold"},
    "h6": {"classes": "block text-lg font-bold"},
    "bulletList": {"classes": "list-disc pl-6"},
    "orderedList": {"classes": "list-decimal pl-6"},
}

_MARK_TAGS = {
    "bold": "strong",
    "italic": "em",
    "underline": "u",
    "strike": "s",
    "subscript": "sub",
    "superscript": "sup",
}


def is_doc(value: Any) -> bool:
    return isinstance(value, dict) and value.get("type") == "doc" and isinstance(value.get("content"), list)


def empty_doc() -> dict[str, Any]:
    return {"type": "doc", "content": []}


def text_doc(text: str) -> dict[str, Any]:
    """Wrap plain text in a one-paragraph document."""
    paragraph: dict[str, Any] = {"type": "paragraph"}
    if text:
        paragraph["content"] = [{"type": "text", "text": text}]
    return {"type": "doc", "content": [paragraph]}


def has_lists(node: Any) -> bool:
    """True if the node or any descendant is a bullet/ordered list."""
    if isinstance(node, list):
        return any(has_lists(n) for n in node)
    if not isinstance(node, dict):
        return False
    if node.get("type") in LIST_TYPES:
        return True
    return has_lists(node.get("content") or [])


def plain_text(node: Any) -> str:
    if isinstance(node, list):
        return "".join(plain_text(n) for n in node)
    if not isinstance(node, dict):
        return ""
    if node.get("type") == "text":
        return node.get("text") or ""
    return plain_text(node.get("content") or [])


def merge_marks(outer: list[dict[str, Any]], inner: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Outer marks first; inner marks of a type already present are dropped."""
    seen = {m.get("type") for m in outer}
    return [*outer, *(m for m in inner if m.get("type") not in seen)]


def apply_marks(node: dict[str, Any], marks: list[dict[str, Any]]) -> dict[str, Any]:
    """Return a copy of `node` with `marks` merged onto every text node."""
    if not marks:
        return node
    if node.get("type") == "text":
        return {**node, "marks": merge_marks(marks, node.get("marks") or [])}
    content = node.get("content")
    if isinstance(content, list):
        return {**node, "content": [apply_marks(c, marks) for c in content]}
    return node


def extract_inline_nodes(nodes: list[dict[str, Any]], marks: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """
    Nodes to splice in place of an inline placeholder.

    A document made only of paragraphs/headings collapses to its inline
    content, with hard breaks between blocks. A document holding lists keeps
    its block structure; the enclosing paragraph is split around it later.
    """
    if has_lists(nodes):
        return [apply_marks(n, marks) for n in nodes]
    result: list[dict[str, Any]] = []
    for index, node in enumerate(nodes):
        if node.get("type") in BLOCK_TYPES:
            if index > 0 and result:
                result.append({"type": "hardBreak"})
            result.extend(apply_marks(c, marks) for c in node.get("content") or [])
        else:
            result.append(apply_marks(node, marks))
    return result


def lift_blocks(nodes: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """
    Split paragraphs that ended up holding block nodes.

    paragraph[text, bulletList, text] becomes paragraph[text], bulletList,
    paragraph[text]. Other nodes pass through with their content lifted.
    """
    result: list[dict[str, Any]] = []
    for node in nodes:
        content = node.get("content")
        if not isinstance(content, list):
            result.append(node)
            continue
        content = lift_blocks(content)
        if node.get("type") not in ("paragraph", "heading") or not any(
            c.get("type") in BLOCK_TYPES for c in content
        ):
            result.append({**node, "content": content})
            continue
        run: list[dict[str, Any]] = []
        for child in content:
            if child.get("type") in BLOCK_TYPES:
                if run:
                    result.append({**node, "content": run})
                    run = []
                result.append(child)
            else:
                run.append(child)
        if run:
            result.append({**node, "content": run})
    return result


# ---------------------------------------------------------------------------
# Doc → elements
# ---------------------------------------------------------------------------


def rich_text_nodes(
    doc: Any,
    text_styles: dict[str, Any] | None = None,
    *,
    inline_paragraphs: bool = False,
) -> list[Node]:
    """
    Convert a rich-text document into element nodes.

    inline_paragraphs renders paragraphs and headings as <span> so the
    result can sit inside p/h1-h6/span/a/button hosts.
    """
    if not isinstance(doc, dict):
        return []
    styles = {**DEFAULT_TEXT_STYLES, **(text_styles or {})}
    return _convert(doc, styles, text_styles or {}, inline_paragraphs)


def _classes(styles: dict[str, Any], key: str) -> str:
    entry = styles.get(key)
    if isinstance(entry, dict):
        return entry.get("classes") or ""
    return ""


def _class_attr(styles: dict[str, Any], key: str) -> dict[str, Any]:
    cls = _classes(styles, key)
    return {"class": cls} if cls else {}


def _convert(node: dict[str, Any], styles: dict[str, Any], own: dict[str, Any], inline: bool) -> list[Node]:
    ntype = node.get("type")
    content = [c for c in node.get("content") or [] if isinstance(c, dict)]

    def children() -> list[Node]:
        out: list[Node] = []
        for child in content:
            out.extend(_convert(child, styles, own, inline))
        return out

    if ntype == "text":
        return [_text_with_marks(node, styles, own)]
    if ntype == "hardBreak":
        return [Element("br", void=True)]
    if ntype == "paragraph":
        inner = children() or [NBSP]
        return [Element("span" if inline else "p", _class_attr(styles, "paragraph"), inner)]
    if ntype == "heading":
        level = (node.get("attrs") or {}).get("level") or 1
        inner = children() or [NBSP]
        tag = "span" if inline else f"h{level}"
        return [Element(tag, _class_attr(styles, f"h{level}"), inner)]
    if ntype in LIST_TYPES:
        tag = "ul" if ntype == "bulletList" else "ol"
        return [Element(tag, _class_attr(styles, ntype), children())]
    if ntype == "listItem":
        return [Element("li", {}, children())]
    return children()


def _text_with_marks(node: dict[str, Any], styles: dict[str, Any], own: dict[str, Any]) -> Node:
    result: Node = node.get("text") or ""
    marks = node.get("marks") or []
    # Innermost mark is the last one.
    for mark in reversed(marks):
        mtype = mark.get("type")
        attrs = mark.get("attrs") or {}
        if mtype in _MARK_TAGS:
            cls = _classes(own, mtype)
            result = Element(_MARK_TAGS[mtype], {"class": cls} if cls else {}, [result])
        elif mtype == "link" and attrs.get("href"):
            link_attrs: dict[str, Any] = {"href": attrs["href"]}
            if attrs.get("target"):
                link_attrs["target"] = attrs["target"]
            rel = attrs.get("rel") or ("noopener noreferrer" if attrs.get("target") == "_blank" else "")
            if rel:
                link_attrs["rel"] = rel
            cls = _classes(own, "link")
            if cls:
                link_attrs["class"] = cls
            result = Element("a", link_attrs, [result])
        elif mtype == "dynamicStyle":
            keys = list(attrs.get("styleKeys") or [])
            if not keys and attrs.get("styleKey"):
                keys.append(attrs["styleKey"])
            cls = " ".join(c for c in (_classes(styles, k) for k in keys) if c)
            if cls:
                result = Element("span", {"class": cls}, [result])
    return result
