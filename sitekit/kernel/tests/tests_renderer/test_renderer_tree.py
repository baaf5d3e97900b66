"""
SiteKit Renderer -- Interactive Tree Tests

render_tree() converts the shared element output into UI nodes: JSX-style
prop names, style dicts, raw SVG nodes, click events on pagination buttons,
and the pagination side-channel keyed by loop layer id.
"""

from __future__ import annotations

from sitekit.kernel.pagination import build_meta, generate_pagination_wrapper
from sitekit.kernel.tree_renderer import RAW_NODE, UINode, collect_pagination, parse_style, render_tree


def text(content: str) -> dict:
    return {"type": "dynamic_text", "data": {"content": content}}


def make_meta(current: int = 1) -> dict:
    return build_meta(
        layer_id="list",
        collection_id="posts",
        mode="pages",
        current_page=current,
        items_per_page=10,
        total_items=25,
        layer_template=[],
    )


class TestNodes:
    def test_props_use_jsx_names(self):
        layer = {"id": "f", "name": "label", "classes": "field", "attributes": {"htmlFor": "email"}, "variables": {"text": text("Email")}}
        [node] = render_tree([layer]).nodes
        assert node.type == "label"
        assert node.props == {"data-layer-id": "f", "className": "field", "data-layer-type": "label", "htmlFor": "email"}
        assert node.children == ["Email"]

    def test_style_becomes_dict(self):
        layer = {"id": "hero", "name": "div", "_dynamicStyles": {"backgroundColor": "#fff"}}
        [node] = render_tree([layer]).nodes
        assert node.props["style"] == {"backgroundColor": "#fff"}

    def test_icon_svg_is_a_raw_node(self):
        layer = {"id": "ic", "name": "icon", "variables": {"icon": {"src": {"type": "static_text", "data": {"content": "<svg/>"}}}}}
        [node] = render_tree([layer]).nodes
        [raw] = node.children
        assert raw.type == RAW_NODE
        assert raw.props == {"html": "<svg/>"}

    def test_to_dict_omits_empty_events(self):
        [node] = render_tree([{"id": "d", "name": "div"}]).nodes
        assert node.to_dict() == {"type": "div", "props": {"data-layer-id": "d", "data-layer-type": "div"}, "children": []}


class TestPagination:
    def test_buttons_emit_click_events(self):
        wrapper = generate_pagination_wrapper("list", make_meta(current=2))
        [node] = render_tree([wrapper]).nodes
        prev, info, nxt = node.children
        assert prev.events == {"click": "pagination:prev"}
        assert nxt.events == {"click": "pagination:next"}
        assert info.events == {}
        assert isinstance(info, UINode) and info.children == ["Page 2 of 3"]

    def test_disabled_is_a_bare_prop(self):
        wrapper = generate_pagination_wrapper("list", make_meta(current=1))
        prev = render_tree([wrapper]).nodes[0].children[0]
        assert prev.props["disabled"] is True

    def test_side_channel_is_keyed_by_loop(self):
        meta = make_meta(current=2)
        loop = {"id": "list-fragment", "name": "_fragment", "_paginationMeta": meta, "children": []}
        tree = render_tree([{"id": "page", "name": "div", "children": [loop]}])
        assert tree.pagination == {"list": {"currentPage": 2, "totalPages": 3, "totalItems": 25, "itemsPerPage": 10, "mode": "pages", "collectionId": "posts"}}
        assert collect_pagination([]) == {}


class TestParseStyle:
    def test_properties_are_camel_cased(self):
        assert parse_style("background-color:red;--bg-img:url(x);;bad") == {"backgroundColor": "red", "--bg-img": "url(x)"}

    def test_empty(self):
        assert parse_style("") == {}
