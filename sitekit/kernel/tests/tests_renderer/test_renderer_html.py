"""
SiteKit Renderer -- Markup Tests

render_html() serializes the shared rule table output:
  - tags from settings.tag or the layer kind
  - data-layer-id / data-layer-type on every element
  - escaping of text and attribute values
  - link wrapping, images, embeds, icons, hidden layers
"""

from __future__ import annotations

from sitekit.kernel.html_renderer import render_html
from sitekit.kernel.types import RenderContext, RenderOptions

# ============================================================================
# Helpers
# ============================================================================


def text(content: str) -> dict:
    return {"type": "dynamic_text", "data": {"content": content}}


def make_layer(layer_id: str, name: str = "div", **extra) -> dict:
    return {"id": layer_id, "name": name, **extra}


def assert_contains(html: str, *fragments: str) -> None:
    for fragment in fragments:
        assert fragment in html, f"Expected {fragment!r} in:\n{html}"


def assert_not_contains(html: str, *fragments: str) -> None:
    for fragment in fragments:
        assert fragment not in html, f"Did not expect {fragment!r} in:\n{html}"


# ============================================================================
# Basic elements
# ============================================================================


class TestBasicElements:
    def test_text_layer(self):
        html = render_html([make_layer("t1", "text", variables={"text": text("Hello")})])
        assert html == '<p data-layer-id="t1" data-layer-type="text">Hello</p>'

    def test_settings_tag_and_classes(self):
        layer = make_layer("h", "heading", settings={"tag": "h2"}, classes=["title", "big"], variables={"text": text("Hi")})
        assert render_html([layer]) == '<h2 data-layer-id="h" class="title big" data-layer-type="heading">Hi</h2>'

    def test_generic_html_name_is_its_own_tag(self):
        html = render_html([make_layer("s", "section", children=[make_layer("d")])])
        assert html == '<section data-layer-id="s" data-layer-type="section"><div data-layer-id="d" data-layer-type="div"></div></section>'

    def test_text_is_escaped(self):
        html = render_html([make_layer("t", "text", variables={"text": text('<b>"x" & y</b>')})])
        assert_contains(html, "&lt;b&gt;&quot;x&quot; &amp; y&lt;/b&gt;")
        assert_not_contains(html, "<b>")

    def test_custom_attributes(self):
        layer = make_layer(
            "f",
            "input",
            attributes={"htmlFor": "x", "required": True, "hidden": False, "id": "anchor"},
            settings={"customAttributes": [{"name": "data-track", "value": "signup"}]},
        )
        html = render_html([layer])
        assert_contains(html, 'for="x"', " required", 'data-track="signup"', 'id="anchor"')
        assert_not_contains(html, "hidden", "</input>")

    def test_hidden_layer_is_skipped(self):
        layer = make_layer("h", settings={"hidden": True})
        assert render_html([layer]) == ""
        edit = RenderContext(options=RenderOptions(edit_mode=True))
        assert_contains(render_html([layer], edit), 'data-layer-id="h"', 'data-is-empty="true"')

    def test_fragment_is_transparent(self):
        fragment = {"id": "l-fragment", "name": "_fragment", "children": [make_layer("a"), make_layer("b")]}
        html = render_html([fragment])
        assert html == '<div data-layer-id="a" data-layer-type="div"></div><div data-layer-id="b" data-layer-type="div"></div>'

    def test_rich_text_with_list_moves_off_restrictive_tag(self):
        doc = {"type": "doc", "content": [{"type": "bulletList", "content": [{"type": "listItem", "content": [{"type": "paragraph", "content": [{"type": "text", "text": "one"}]}]}]}]}
        layer = make_layer("r", "text", variables={"text": {"type": "dynamic_rich_text", "data": {"content": doc}}})
        html = render_html([layer])
        assert html.startswith('<div data-layer-id="r"')
        assert_contains(html, '<ul class="list-disc pl-6"><li>')


# ============================================================================
# Links
# ============================================================================


class TestLinks:
    def test_link_layer_gets_href(self):
        link = {"type": "url", "url": text("https://example.com"), "target": "_blank"}
        html = render_html([make_layer("a", "link", variables={"link": link, "text": text("Go")})])
        assert html == (
            '<a data-layer-id="a" data-layer-type="link" href="https://example.com" '
            'target="_blank" rel="noopener noreferrer">Go</a>'
        )

    def test_non_anchor_is_wrapped(self):
        link = {"type": "email", "email": text("hi@example.com")}
        html = render_html([make_layer("box", variables={"link": link})])
        assert html == '<a href="mailto:hi@example.com" class="contents"><div data-layer-id="box" data-layer-type="div"></div></a>'

    def test_link_without_href_is_not_wrapped(self):
        html = render_html([make_layer("box", variables={"link": {"type": "url", "url": text("  ")}})])
        assert html.startswith("<div")

    def test_page_link_with_anchor(self):
        pages = [{"id": "about", "slug": "about"}]
        context = RenderContext(pages=pages, anchor_map={"sec": "team"})
        link = {"type": "page", "page": {"id": "about"}, "anchor_layer_id": "sec"}
        assert_contains(render_html([make_layer("a", "link", variables={"link": link})], context), 'href="/about#team"')

    def test_dynamic_page_link_uses_item_slug_and_locale(self):
        pages = [{"id": "post", "slug": "", "is_dynamic": True, "page_folder_id": "blog"}]
        folders = [{"id": "blog", "slug": "blog"}]
        context = RenderContext(
            pages=pages,
            folders=folders,
            locale={"id": "l_de", "code": "de", "is_default": False},
            collection_item_slugs={"p1": "first-post"},
        )
        link = {"type": "page", "page": {"id": "post", "collection_item_id": "p1"}}
        assert_contains(render_html([make_layer("a", "link", variables={"link": link})], context), 'href="/de/blog/first-post"')


# ============================================================================
# Media and embeds
# ============================================================================


class TestMedia:
    def test_image_is_void_with_optimized_src(self):
        layer = make_layer("i", "image", variables={"image": {"src": text("https://cdn.example.com/a.jpg"), "alt": text("A cat")}})
        html = render_html([layer])
        assert_contains(
            html,
            '<img data-layer-id="i" data-layer-type="image" src="https://cdn.example.com/a.jpg?width=1200&amp;quality=85"',
            "640w",
            'sizes="100vw"',
            'alt="A cat">',
        )
        assert_not_contains(html, "</img>")

    def test_svg_image_is_not_optimized(self):
        layer = make_layer("i", "image", variables={"image": {"src": text("/logo.svg")}})
        assert_contains(render_html([layer]), 'src="/logo.svg"', 'alt=""')
        assert_not_contains(render_html([layer]), "srcset")

    def test_background_image_becomes_css_variable(self):
        layer = make_layer("hero", variables={"backgroundImage": {"src": text("https://cdn.example.com/bg.jpg")}})
        assert_contains(render_html([layer]), 'style="--bg-img:url(https://cdn.example.com/bg.jpg)"')

    def test_youtube_video(self):
        video = {"type": "video", "data": {"provider": "youtube", "video_id": "abc"}}
        layer = make_layer("v", "video", variables={"video": {"src": video}}, attributes={"youtubePrivacyMode": True, "muted": True})
        html = render_html([layer])
        assert_contains(html, '<iframe data-layer-id="v"', 'src="https://www.youtube-nocookie.com/embed/abc?mute=1&amp;controls=0"', "allowfullscreen")
        assert_not_contains(html, "youtubePrivacyMode", 'muted="')

    def test_icon_svg_is_raw(self):
        layer = make_layer("ic", "icon", variables={"icon": {"src": {"type": "static_text", "data": {"content": "<svg></svg>"}}}})
        assert render_html([layer]) == '<div data-layer-id="ic" data-layer-type="icon" data-icon="true"><svg></svg></div>'

    def test_html_embed_uses_srcdoc(self):
        layer = make_layer("e", "htmlEmbed", settings={"htmlEmbed": {"code": "<script>go()</script>"}})
        html = render_html([layer])
        assert_contains(html, "<iframe", "srcdoc=", "&lt;script&gt;go()&lt;/script&gt;", 'title="Code Embed e"', 'sandbox="allow-scripts')

    def test_rendering_is_deterministic(self):
        layers = [make_layer("t", "text", variables={"text": text("x")}), make_layer("i", "image", variables={"image": {"src": text("https://a/b.png")}})]
        outputs = {render_html(layers) for _ in range(50)}
        assert len(outputs) == 1
