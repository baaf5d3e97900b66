"""
SiteKit Collections -- Expansion Tests

Collection-bound layers become transparent fragments of per-item clones.

This verifies:
  - pagination arithmetic (offset, total pages, page size)
  - clone namespacing ({id}-item-{itemId}) and field injection
  - reference hops (author → name)
  - nested loops reading an ancestor loop through collection_layer_id
  - filters, reference sources and multi-asset loops
  - a failing fetch degrades one loop only
"""

from __future__ import annotations

import pytest

from sitekit.kernel.collections import resolve_collection_layers
from sitekit.kernel.repository import CachedRepository, MemoryRepository
from sitekit.kernel.types import Diagnostics, PaginationContext

# ============================================================================
# Fixtures
# ============================================================================

POST_FIELDS = [
    {"id": "f_title", "key": "title", "type": "text"},
    {"id": "f_slug", "key": "slug", "type": "text"},
    {"id": "f_rank", "key": "rank", "type": "number"},
    {"id": "f_author", "key": "author", "type": "reference", "reference_collection_id": "authors"},
    {"id": "f_tags", "key": "tags", "type": "multi_reference", "reference_collection_id": "tags"},
]


def make_repo(post_count: int = 25) -> MemoryRepository:
    repo = MemoryRepository()
    repo.add_collection("authors", [{"id": "f_name", "key": "name", "type": "text"}], [
        {"id": "a1", "values": {"f_name": "Ada"}},
        {"id": "a2", "values": {"f_name": "Grace"}},
    ])
    repo.add_collection("tags", [{"id": "f_label", "key": "label", "type": "text"}], [
        {"id": "t1", "values": {"f_label": "python"}},
        {"id": "t2", "values": {"f_label": "web"}},
    ])
    repo.add_collection(
        "posts",
        POST_FIELDS,
        [
            {
                "id": f"p{i}",
                "values": {
                    "f_title": f"Post {i}",
                    "f_slug": f"post-{i}",
                    "f_rank": str(i),
                    "f_author": "a1" if i % 2 else "a2",
                    "f_tags": ["t1", "t2"] if i == 1 else [],
                },
            }
            for i in range(1, post_count + 1)
        ],
    )
    return repo


def field_text(field_id: str, **extra) -> dict:
    return {"type": "field", "data": {"field_id": field_id, **extra}}


def make_loop(collection: dict, children: list | None = None, layer_id: str = "list") -> dict:
    return {
        "id": layer_id,
        "name": "div",
        "variables": {"collection": collection},
        "children": children
        if children is not None
        else [{"id": "title", "name": "text", "variables": {"text": field_text("f_title")}}],
    }


def text_of(layer: dict) -> str:
    return layer["variables"]["text"]["data"]["content"]


async def resolve(layers, repo, **kwargs):
    return await resolve_collection_layers(layers, CachedRepository(repo, published=True), **kwargs)


# ============================================================================
# Pagination
# ============================================================================


class TestPagination:
    @pytest.mark.asyncio
    async def test_third_page_of_25_by_10(self):
        repo = make_repo(25)
        loop = make_loop({"id": "posts", "pagination": {"enabled": True, "mode": "pages", "items_per_page": 10}})
        [fragment] = await resolve([loop], repo, pagination_context=PaginationContext(page_numbers={"list": 3}))

        assert fragment["name"] == "_fragment"
        assert len(fragment["children"]) == 5
        meta = fragment["_paginationMeta"]
        assert meta["currentPage"] == 3
        assert meta["totalPages"] == 3
        assert meta["totalItems"] == 25
        assert meta["itemsPerPage"] == 10
        assert ("items", ("posts", (10, 20, None))) in repo.calls

    @pytest.mark.asyncio
    async def test_default_page_applies_to_every_loop(self):
        repo = make_repo(25)
        loop = make_loop({"id": "posts", "pagination": {"enabled": True, "mode": "pages", "items_per_page": 10}})
        [fragment] = await resolve([loop], repo, pagination_context=PaginationContext(default_page=2))
        assert fragment["children"][0]["_collectionItemId"] == "p11"

    @pytest.mark.asyncio
    async def test_load_more_meta_carries_template(self):
        repo = make_repo(5)
        loop = make_loop({"id": "posts", "pagination": {"enabled": True, "mode": "load_more", "items_per_page": 2}})
        [fragment] = await resolve([loop], repo)
        meta = fragment["_paginationMeta"]
        assert meta["mode"] == "load_more"
        assert meta["layerTemplate"] == loop["children"]

    @pytest.mark.asyncio
    async def test_limit_and_offset_without_pagination(self):
        repo = make_repo(10)
        [fragment] = await resolve([make_loop({"id": "posts", "limit": 3, "offset": 2})], repo)
        assert [c["_collectionItemId"] for c in fragment["children"]] == ["p3", "p4", "p5"]
        assert "_paginationMeta" not in fragment


# ============================================================================
# Clones
# ============================================================================


class TestClones:
    @pytest.mark.asyncio
    async def test_clone_ids_and_injected_text(self):
        repo = make_repo(2)
        [fragment] = await resolve([make_loop({"id": "posts"})], repo)
        first = fragment["children"][0]
        assert first["id"] == "list-item-p1"
        assert first["_sourceLayerId"] == "list"
        assert first["attributes"]["data-collection-item-id"] == "p1"
        assert first["_collectionItemSlug"] == "post-1"
        assert first["children"][0]["id"] == "title-item-p1"
        assert text_of(first["children"][0]) == "Post 1"

    @pytest.mark.asyncio
    async def test_fragment_is_transparent_and_unbound(self):
        repo = make_repo(2)
        [fragment] = await resolve([make_loop({"id": "posts"})], repo)
        assert fragment["id"] == "list-fragment"
        assert fragment["_sourceLayerId"] == "list"
        assert "collection" not in fragment["variables"]
        assert "collection" not in fragment["children"][0]["variables"]

    @pytest.mark.asyncio
    async def test_relationship_path_reaches_author_name(self):
        repo = make_repo(1)
        child = {"id": "by", "name": "text", "variables": {"text": field_text("f_author", relationships=["f_name"])}}
        [fragment] = await resolve([make_loop({"id": "posts"}, [child])], repo)
        assert text_of(fragment["children"][0]["children"][0]) == "Ada"

    @pytest.mark.asyncio
    async def test_nested_loop_reads_ancestor_item(self):
        repo = make_repo(1)
        inner = make_loop(
            {"id": "tags", "source_field_id": "f_tags", "source_field_type": "multi_reference"},
            [
                {"id": "label", "name": "text", "variables": {"text": field_text("f_label")}},
                {"id": "post", "name": "text", "variables": {"text": field_text("f_title", collection_layer_id="list")}},
            ],
            layer_id="tag-list",
        )
        [fragment] = await resolve([make_loop({"id": "posts"}, [inner])], repo)
        inner_fragment = fragment["children"][0]["children"][0]
        labels = [text_of(clone["children"][0]) for clone in inner_fragment["children"]]
        posts = [text_of(clone["children"][1]) for clone in inner_fragment["children"]]
        assert labels == ["python", "web"]
        assert posts == ["Post 1", "Post 1"]

    @pytest.mark.asyncio
    async def test_empty_reference_list_renders_no_items(self):
        repo = make_repo(2)
        inner = make_loop(
            {"id": "tags", "source_field_id": "f_tags", "source_field_type": "multi_reference"},
            layer_id="tag-list",
        )
        [fragment] = await resolve([make_loop({"id": "posts"}, [inner])], repo)
        second_post_tags = fragment["children"][1]["children"][0]
        assert second_post_tags["children"] == []

    @pytest.mark.asyncio
    async def test_filters_apply_before_slicing(self):
        repo = make_repo(10)
        filters = {"groups": [{"conditions": [{"fieldId": "f_rank", "fieldType": "number", "operator": "gt", "value": "7"}]}]}
        [fragment] = await resolve([make_loop({"id": "posts", "filters": filters})], repo)
        assert [c["_collectionItemId"] for c in fragment["children"]] == ["p8", "p9", "p10"]

    @pytest.mark.asyncio
    async def test_field_sort_is_numeric(self):
        repo = make_repo(12)
        [fragment] = await resolve([make_loop({"id": "posts", "sort_by": "f_rank", "sort_order": "desc", "limit": 3})], repo)
        assert [c["_collectionItemId"] for c in fragment["children"]] == ["p12", "p11", "p10"]

    @pytest.mark.asyncio
    async def test_multi_asset_loop_builds_virtual_items(self):
        repo = make_repo(1)
        repo.add_asset({"id": "img1", "public_url": "https://cdn.example.com/1.png", "filename": "1.png"})
        repo.add_asset({"id": "img2", "public_url": "https://cdn.example.com/2.png", "filename": "2.png"})
        gallery = make_loop(
            {"id": "gallery", "source_field_id": "f_photos", "source_field_type": "multi_asset"},
            [{"id": "name", "name": "text", "variables": {"text": field_text("__asset_filename")}}],
            layer_id="gallery",
        )
        [fragment] = await resolve([gallery], repo, page_values={"f_photos": '["img1", "img2", "gone"]'})
        assert [c["_collectionItemId"] for c in fragment["children"]] == ["img1", "img2"]
        assert text_of(fragment["children"][1]["children"][0]) == "2.png"


# ============================================================================
# Interactions and identity
# ============================================================================


def with_interaction(layer: dict, interaction_id: str, *targets: str) -> dict:
    tweens = [{"id": f"{interaction_id}-tw{n}", "layer_id": target} for n, target in enumerate(targets)]
    return {**layer, "interactions": [{"id": interaction_id, "tweens": tweens}]}


def tween_targets(layers: list[dict], into: dict | None = None) -> dict[str, list[str]]:
    """Owning layer id → tween targets, for every interaction in the tree."""
    found = into if into is not None else {}
    for layer in layers:
        for interaction in layer.get("interactions") or []:
            found.setdefault(layer["id"], []).extend(t["layer_id"] for t in interaction.get("tweens") or [])
        tween_targets(layer.get("children") or [], found)
    return found


def all_ids(layers: list[dict]) -> list[str]:
    return [i for layer in layers for i in [layer["id"], *all_ids(layer.get("children") or [])]]


class TestInteractionsInClones:
    @pytest.mark.asyncio
    async def test_tween_follows_sibling_in_same_clone(self):
        repo = make_repo(3)
        children = [
            with_interaction({"id": "trigger", "name": "div"}, "ix", "title"),
            {"id": "title", "name": "text", "variables": {"text": field_text("f_title")}},
        ]
        [fragment] = await resolve([make_loop({"id": "posts"}, children)], repo)

        for clone in fragment["children"]:
            item_id = clone["_collectionItemId"]
            trigger = clone["children"][0]
            [interaction] = trigger["interactions"]
            assert interaction["id"] == f"ix-item-{item_id}"
            assert [t["layer_id"] for t in interaction["tweens"]] == [f"title-item-{item_id}"]
            assert clone["children"][1]["id"] == f"title-item-{item_id}"

    @pytest.mark.asyncio
    async def test_nested_loop_tweens_point_at_existing_ids(self):
        repo = make_repo(1)
        inner = make_loop(
            {"id": "tags", "source_field_id": "f_tags", "source_field_type": "multi_reference"},
            [
                with_interaction({"id": "chip", "name": "div"}, "ix-chip", "label", "list"),
                {"id": "label", "name": "text", "variables": {"text": field_text("f_label")}},
            ],
            layer_id="tag-list",
        )
        outer_children = [with_interaction({"id": "head", "name": "div"}, "ix-head", "tag-list"), inner]
        tree = await resolve([make_loop({"id": "posts"}, outer_children)], repo)

        ids = all_ids(tree)
        assert len(ids) == len(set(ids))
        targets = tween_targets(tree)
        assert {t for found in targets.values() for t in found} <= set(ids)
        assert targets["chip-item-t1-item-p1"] == ["label-item-t1-item-p1", "list-item-p1"]
        assert targets["chip-item-t2-item-p1"] == ["label-item-t2-item-p1", "list-item-p1"]
        assert targets["head-item-p1"] == ["tag-list-fragment-item-p1"]

    @pytest.mark.asyncio
    async def test_tween_at_loop_follows_its_fragment(self):
        button = with_interaction({"id": "btn", "name": "button"}, "ix-btn", "list")
        button_out, fragment = await resolve([button, make_loop({"id": "posts"})], make_repo(2))
        assert [t["layer_id"] for t in button_out["interactions"][0]["tweens"]] == ["list-fragment"]
        assert fragment["id"] == "list-fragment"

    @pytest.mark.asyncio
    async def test_repeated_reference_ids_clone_once(self):
        repo = make_repo(0)
        repo.add_collection("posts", POST_FIELDS, [{"id": "p1", "values": {"f_title": "Post 1", "f_tags": ["t1", "t1", "t2"]}}])
        inner = make_loop(
            {"id": "tags", "source_field_id": "f_tags", "source_field_type": "multi_reference"},
            [{"id": "label", "name": "text", "variables": {"text": field_text("f_label")}}],
            layer_id="tag-list",
        )
        [fragment] = await resolve([make_loop({"id": "posts"}, [inner])], repo)
        inner_fragment = fragment["children"][0]["children"][0]
        assert [c["id"] for c in inner_fragment["children"]] == ["tag-list-item-t1-item-p1", "tag-list-item-t2-item-p1"]
        ids = all_ids([fragment])
        assert len(ids) == len(set(ids))


# ============================================================================
# Failure isolation
# ============================================================================


class BrokenItemsRepository(MemoryRepository):
    async def get_items_with_values(self, collection_id, published, filters=None):
        if collection_id == "posts":
            raise RuntimeError("database unavailable")
        return await super().get_items_with_values(collection_id, published, filters)


class TestFailures:
    @pytest.mark.asyncio
    async def test_failed_loop_keeps_layer_and_warns(self):
        repo = BrokenItemsRepository()
        repo.add_collection("posts", POST_FIELDS)
        repo.add_collection("tags", [{"id": "f_label", "key": "label", "type": "text"}], [{"id": "t1", "values": {"f_label": "x"}}])
        diagnostics = Diagnostics()
        sibling = make_loop({"id": "tags"}, [{"id": "l", "name": "text", "variables": {"text": field_text("f_label")}}], layer_id="tags-list")
        broken, fine = await resolve([make_loop({"id": "posts"}), sibling], repo, diagnostics=diagnostics)

        assert broken["id"] == "list"
        assert diagnostics.codes() == ["data_fetch_failed"]
        assert fine["name"] == "_fragment"
        assert len(fine["children"]) == 1

    @pytest.mark.asyncio
    async def test_malformed_binding_is_reported_and_ignored(self):
        diagnostics = Diagnostics()
        layer = {"id": "list", "name": "div", "variables": {"collection": "posts"}, "children": [{"id": "c", "name": "div"}]}
        [out] = await resolve([layer], make_repo(1), diagnostics=diagnostics)
        assert out == layer
        assert diagnostics.codes() == ["malformed_variable"]
