"""
SiteKit Kernel — Render Rules

The single rule table both renderers consume. layout() turns a concrete layer
tree into Element nodes; html_renderer serializes those to markup and
tree_renderer converts them to UI nodes. Every decision that affects what a
visitor sees (tag, attributes, href, src, text) is made here, once.

Rule tables are keyed by LayerKind and cover every kind.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Mapping
from typing import Any
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import chevron

from sitekit.kernel import fields, rich_text, variables as v
from sitekit.kernel.elements import Element, Node, RawHtml
from sitekit.kernel.links import link_attributes
from sitekit.kernel.types import ItemScope, LayerKind, RenderContext, layer_kind

RESTRICTIVE_TAGS = frozenset({"p", "h1", "h2", "h3", "h4", "h5", "h6", "span", "a", "button"})
VOID_TAGS = frozenset({"img", "br", "hr", "input", "meta", "link"})
TAG_NAME = re.compile(r"[a-z][a-z0-9-]*")

HTML_TAGS = frozenset({
    "a", "article", "aside", "blockquote", "br", "button", "code", "div", "em", "figcaption",
    "figure", "footer", "form", "h1", "h2", "h3", "h4", "h5", "h6", "header", "hr", "iframe",
    "img", "input", "label", "li", "main", "nav", "ol", "option", "p", "pre", "section",
    "select", "small", "span", "strong", "table", "tbody", "td", "textarea", "th", "thead",
    "tr", "ul", "video", "audio",
})

# JSX-style attribute names accepted in layer.attributes
JSX_TO_HTML = {"htmlFor": "for", "className": "class", "autoFocus": "autofocus"}

# Attributes that configure a layer rather than render onto it
CONSUMED_ATTRIBUTES = frozenset({"id", "youtubePrivacyMode"})

DEFAULT_TAGS: dict[LayerKind, str] = {
    LayerKind.FRAGMENT: "",
    LayerKind.TEXT: "p",
    LayerKind.HEADING: "h1",
    LayerKind.IMAGE: "img",
    LayerKind.VIDEO: "video",
    LayerKind.AUDIO: "audio",
    LayerKind.ICON: "div",
    LayerKind.HTML_EMBED: "iframe",
    LayerKind.LINK: "a",
    LayerKind.BUTTON: "button",
    LayerKind.FORM: "form",
    LayerKind.INPUT: "input",
    LayerKind.ELEMENT: "div",
}

LAYER_TYPES: dict[LayerKind, str | None] = {
    LayerKind.FRAGMENT: None,
    LayerKind.TEXT: "text",
    LayerKind.HEADING: "heading",
    LayerKind.IMAGE: "image",
    LayerKind.VIDEO: "video",
    LayerKind.AUDIO: "audio",
    LayerKind.ICON: "icon",
    LayerKind.HTML_EMBED: "htmlEmbed",
    LayerKind.LINK: "link",
    LayerKind.BUTTON: "button",
    LayerKind.FORM: "form",
    LayerKind.INPUT: "input",
    LayerKind.ELEMENT: None,
}

YOUTUBE_ALLOW = "accelerometer; autoplay; clipboard-write; encrypted-media; gyroscope; picture-in-picture"
EMBED_SANDBOX = "allow-scripts allow-same-origin allow-forms allow-popups allow-modals"
EMBED_PLACEHOLDER = "<div>Add your custom code here</div>"
EMBED_DOCUMENT = """<!DOCTYPE html>
<html>
<head>
  <meta charset="UTF-8">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
  <style>
    body { margin: 0; padding: 0; overflow: hidden; }
  </style>
</head>
<body>
  {{{code}}}
</body>
</html>"""


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def layout(layers: list[dict[str, Any]], context: RenderContext, scope: ItemScope | None = None) -> list[Node]:
    """Element nodes for a concrete layer tree."""
    scope = scope or context.root_scope()
    nodes: list[Node] = []
    for layer in layers:
        nodes.extend(build_element(layer, context, scope))
    return nodes


def build_element(layer: dict[str, Any], context: RenderContext, scope: ItemScope | None = None) -> list[Node]:
    """
    Nodes for one layer.

    A fragment yields its children directly; a hidden layer yields nothing
    outside edit mode; a non-anchor element with link settings is wrapped
    in <a class="contents">.
    """
    scope = (scope or context.root_scope()).for_layer(layer)
    kind = layer_kind(layer)
    if kind is LayerKind.FRAGMENT:
        return layout(layer.get("children") or [], context, scope)
    if (layer.get("settings") or {}).get("hidden") and not context.options.edit_mode:
        return []

    text = _text_variable(layer, scope)
    tag = select_tag(layer, kind, text)
    element = Element(tag=tag, void=tag in VOID_TAGS, layer_id=layer.get("id"))
    element.attrs.update(base_attributes(layer, kind, tag))

    CONTENT_RULES[kind](element, layer, context, scope, text)

    # Embed iframes take their attributes from the rule only
    is_embed = element.tag == "iframe" and kind in (LayerKind.VIDEO, LayerKind.HTML_EMBED)
    if not is_embed:
        element.attrs.update(custom_attributes(layer))
    if context.options.edit_mode and not element.void:
        element.attrs["data-is-empty"] = "false" if element.children else "true"

    link = v.get_slot(layer, "link")
    if tag == "a":
        element.attrs.update(link_attributes(link, context, scope) or {})
    elif element.tag != "iframe":
        wrapper = link_attributes(link, context, scope)
        if wrapper:
            return [Element("a", {**wrapper, "class": "contents"}, [element])]
    return [element]


# ---------------------------------------------------------------------------
# Tag and attributes
# ---------------------------------------------------------------------------


def select_tag(layer: Mapping[str, Any], kind: LayerKind, text: Any = None) -> str:
    """
    settings.tag, else the kind's default tag. Rich text holding lists
    cannot sit in p/h1-h6/span/a/button, so those hosts become div.
    A stored tag that is not a plain tag name is ignored.
    """
    tag = (layer.get("settings") or {}).get("tag") or ""
    if not isinstance(tag, str) or not TAG_NAME.fullmatch(tag):
        tag = ""
    if not tag:
        name = layer.get("name")
        tag = name if kind is LayerKind.ELEMENT and name in HTML_TAGS else DEFAULT_TAGS[kind] or "div"
    doc = v.rich_text_doc(text)
    if doc is not None and tag in RESTRICTIVE_TAGS and rich_text.has_lists(doc):
        return "div"
    return tag


def class_string(classes: Any) -> str:
    if isinstance(classes, list):
        return " ".join(c for c in classes if isinstance(c, str) and c)
    return classes.strip() if isinstance(classes, str) else ""


def base_attributes(layer: Mapping[str, Any], kind: LayerKind, tag: str) -> dict[str, Any]:
    attrs: dict[str, Any] = {}
    if layer.get("id"):
        attrs["data-layer-id"] = layer["id"]
    classes = class_string(layer.get("classes"))
    if classes:
        attrs["class"] = classes
    anchor = (layer.get("attributes") or {}).get("id")
    if anchor:
        attrs["id"] = str(anchor)
    style = inline_style(layer)
    if style:
        attrs["style"] = style
    attrs["data-layer-type"] = LAYER_TYPES[kind] or tag
    return attrs


def custom_attributes(layer: Mapping[str, Any]) -> dict[str, Any]:
    """
    layer.attributes plus settings.customAttributes, with markup names.

    True renders as a bare attribute; False and None are skipped.
    """
    attrs: dict[str, Any] = {}
    pairs = list((layer.get("attributes") or {}).items())
    custom = (layer.get("settings") or {}).get("customAttributes")
    if isinstance(custom, Mapping):
        pairs.extend(custom.items())
    elif isinstance(custom, list):
        pairs.extend((a.get("name"), a.get("value")) for a in custom if isinstance(a, Mapping))

    for key, value in pairs:
        if not key or key in CONSUMED_ATTRIBUTES or value is None or value is False:
            continue
        name = JSX_TO_HTML.get(key, key)
        if name == "class" and attrs.get("class"):
            attrs["class"] = f"{attrs['class']} {value}"
            continue
        attrs[name] = True if value is True else str(value)
    return attrs


def _kebab(prop: str) -> str:
    if prop.startswith("--"):
        return prop
    return "".join(f"-{c.lower()}" if c.isupper() else c for c in prop)


def inline_style(layer: Mapping[str, Any]) -> str:
    """Inline style from field-bound design colors and the background image."""
    styles: dict[str, str] = dict(layer.get("_dynamicStyles") or {})
    background = v.text_value(v.get_slot(layer, "backgroundImage", "src"))
    if background and background.strip():
        url = background.strip()
        styles["--bg-img"] = url if url.startswith("url(") else f"url({url})"
    return ";".join(f"{_kebab(prop)}:{value}" for prop, value in styles.items() if value)


# ---------------------------------------------------------------------------
# Images
# ---------------------------------------------------------------------------


def is_optimizable(url: str) -> bool:
    parts = urlsplit(url)
    return parts.scheme in ("http", "https") and not parts.path.lower().endswith(".svg")


def optimized_image_url(url: str, width: int, quality: int) -> str:
    """Append width/quality resize parameters to a remote raster image URL."""
    if not is_optimizable(url):
        return url
    parts = urlsplit(url)
    query = [(k, val) for k, val in parse_qsl(parts.query, keep_blank_values=True) if k not in ("width", "quality")]
    query.extend([("width", str(width)), ("quality", str(quality))])
    return urlunsplit(parts._replace(query=urlencode(query)))


def image_srcset(url: str, widths: tuple[int, ...], quality: int) -> str:
    if not is_optimizable(url):
        return ""
    return ", ".join(f"{optimized_image_url(url, w, quality)} {w}w" for w in widths)


# ---------------------------------------------------------------------------
# Content rules
# ---------------------------------------------------------------------------


ContentRule = Callable[[Element, dict[str, Any], RenderContext, ItemScope, Any], None]


def _text_variable(layer: Mapping[str, Any], scope: ItemScope) -> Any:
    text = v.get_slot(layer, "text")
    if text is None:
        return None
    return fields.resolve_text_variable(text, scope)


def _text_nodes(layer: Mapping[str, Any], tag: str, text: Any, scope: ItemScope) -> list[Node]:
    doc = v.rich_text_doc(text)
    if doc is not None:
        return rich_text.rich_text_nodes(doc, layer.get("textStyles"), inline_paragraphs=tag in RESTRICTIVE_TAGS)
    content = v.text_value(text)
    if content:
        return [fields.resolve_inline_variables(content, scope)]
    return []


def _children(layer: Mapping[str, Any], context: RenderContext, scope: ItemScope) -> list[Node]:
    return layout(layer.get("children") or [], context, scope)


def _generic(element: Element, layer: dict[str, Any], context: RenderContext, scope: ItemScope, text: Any) -> None:
    if element.void:
        return
    element.children = [*_text_nodes(layer, element.tag, text, scope), *_children(layer, context, scope)]


def _fragment(element: Element, layer: dict[str, Any], context: RenderContext, scope: ItemScope, text: Any) -> None:
    # Fragments are unwrapped before rules run
    element.children = _children(layer, context, scope)


def _image(element: Element, layer: dict[str, Any], context: RenderContext, scope: ItemScope, text: Any) -> None:
    options = context.options
    src = v.text_value(v.get_slot(layer, "image", "src"))
    if src and src.strip():
        src = fields.resolve_inline_variables(src.strip(), scope)
        element.attrs["src"] = optimized_image_url(src, options.image_width, options.image_quality)
        srcset = image_srcset(src, options.srcset_widths, options.image_quality)
        if srcset:
            element.attrs["srcset"] = srcset
            element.attrs["sizes"] = options.image_sizes
    alt = v.text_value(v.get_slot(layer, "image", "alt"))
    element.attrs["alt"] = fields.resolve_inline_variables(alt, scope) if alt else ""
    if not element.void:
        _generic(element, layer, context, scope, text)


def youtube_embed_url(video_id: str, attributes: Mapping[str, Any]) -> str:
    domain = "youtube-nocookie.com" if attributes.get("youtubePrivacyMode") is True else "youtube.com"
    params: list[str] = []
    if attributes.get("autoplay") is True:
        params.append("autoplay=1")
    if attributes.get("muted") is True:
        params.append("mute=1")
    if attributes.get("loop") is True:
        params.append(f"loop=1&playlist={video_id}")
    if attributes.get("controls") is not True:
        params.append("controls=0")
    query = "?" + "&".join(params) if params else ""
    return f"https://www.{domain}/embed/{video_id}{query}"


def _video(element: Element, layer: dict[str, Any], context: RenderContext, scope: ItemScope, text: Any) -> None:
    src = v.get_slot(layer, "video", "src")
    if v.variable_type(src) == v.VIDEO and src["data"].get("provider") == "youtube":
        video_id = fields.resolve_inline_variables(str(src["data"].get("video_id") or ""), scope)
        element.tag = "iframe"
        element.void = False
        element.attrs.update({
            "src": youtube_embed_url(video_id, layer.get("attributes") or {}),
            "frameborder": "0",
            "allow": YOUTUBE_ALLOW,
            "allowfullscreen": True,
        })
        element.children = _children(layer, context, scope)
        return
    url = v.text_value(src)
    if url and url.strip():
        element.attrs["src"] = url.strip()
    poster = v.text_value(v.get_slot(layer, "video", "poster"))
    if poster and poster.strip():
        element.attrs["poster"] = poster.strip()
    element.children = _children(layer, context, scope)


def _audio(element: Element, layer: dict[str, Any], context: RenderContext, scope: ItemScope, text: Any) -> None:
    url = v.text_value(v.get_slot(layer, "audio", "src"))
    if url and url.strip():
        element.attrs["src"] = url.strip()
    element.children = _children(layer, context, scope)


def _icon(element: Element, layer: dict[str, Any], context: RenderContext, scope: ItemScope, text: Any) -> None:
    svg = v.text_value(v.get_slot(layer, "icon", "src"))
    element.attrs["data-icon"] = "true"
    element.children = [RawHtml(svg)] if svg else []
    element.children.extend(_children(layer, context, scope))


def embed_document(code: str) -> str:
    return chevron.render(EMBED_DOCUMENT, {"code": code})


def _html_embed(element: Element, layer: dict[str, Any], context: RenderContext, scope: ItemScope, text: Any) -> None:
    code = ((layer.get("settings") or {}).get("htmlEmbed") or {}).get("code") or EMBED_PLACEHOLDER
    element.tag = "iframe"
    element.void = False
    element.attrs.update({
        "data-html-embed": "true",
        "srcdoc": embed_document(code),
        "sandbox": EMBED_SANDBOX,
        "style": "width: 100%; border: none; display: block;",
        "title": f"Code Embed {layer.get('id', '')}",
    })
    element.children = []


CONTENT_RULES: dict[LayerKind, ContentRule] = {
    LayerKind.FRAGMENT: _fragment,
    LayerKind.TEXT: _generic,
    LayerKind.HEADING: _generic,
    LayerKind.IMAGE: _image,
    LayerKind.VIDEO: _video,
    LayerKind.AUDIO: _audio,
    LayerKind.ICON: _icon,
    LayerKind.HTML_EMBED: _html_embed,
    LayerKind.LINK: _generic,
    LayerKind.BUTTON: _generic,
    LayerKind.FORM: _generic,
    LayerKind.INPUT: _generic,
    LayerKind.ELEMENT: _generic,
}
