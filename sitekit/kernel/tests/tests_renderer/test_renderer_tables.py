"""Every layer kind has an entry in each rule table."""

from __future__ import annotations

import pytest

from sitekit.kernel import rules
from sitekit.kernel.types import LayerKind, layer_kind


@pytest.mark.parametrize("table", [rules.DEFAULT_TAGS, rules.LAYER_TYPES, rules.CONTENT_RULES])
def test_tables_cover_every_kind(table):
    assert set(table) == set(LayerKind)


def test_unknown_names_are_generic_elements():
    assert layer_kind({"name": "marquee"}) is LayerKind.ELEMENT
    assert layer_kind({}) is LayerKind.ELEMENT
    assert rules.select_tag({"name": "marquee"}, LayerKind.ELEMENT) == "div"
    assert rules.select_tag({"name": "nav"}, LayerKind.ELEMENT) == "nav"


def test_select_tag_rejects_malformed_stored_tag():
    for bad in ("div onclick=alert(1)", "script><img", "H1", "", 3):
        assert rules.select_tag({"name": "text", "settings": {"tag": bad}}, LayerKind.TEXT) == "p"
    assert rules.select_tag({"name": "div", "settings": {"tag": "my-widget"}}, LayerKind.ELEMENT) == "my-widget"


def test_optimized_image_url_replaces_existing_parameters():
    url = rules.optimized_image_url("https://cdn.example.com/a.jpg?width=10&v=2", 640, 70)
    assert url == "https://cdn.example.com/a.jpg?v=2&width=640&quality=70"
    assert rules.optimized_image_url("/local.png", 640, 70) == "/local.png"
