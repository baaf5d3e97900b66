"""
Tests for POST /api/collections/items.

The client posts a load-more loop's layer template and a page number; the
server returns one wrapper div per item.
"""

import pytest
from httpx import AsyncClient

from sitekit.kernel.repository import MemoryRepository
from siteserve.main import app
from siteserve.services.page_service import get_repository

TEMPLATE = [{"id": "title", "name": "text", "variables": {"text": {"type": "field", "data": {"field_id": "f_title"}}}}]


def request_body(**overrides) -> dict:
    body = {"layer_id": "list", "collection_id": "posts", "layer_template": TEMPLATE, "page": 2, "items_per_page": 2}
    body.update(overrides)
    return body


class BrokenRepository(MemoryRepository):
    async def get_items_with_values(self, collection_id, published, filters=None):
        raise RuntimeError("database unavailable")


class TestLoadMore:
    @pytest.mark.asyncio
    async def test_second_page(self, client: AsyncClient):
        response = await client.post("/api/collections/items", json=request_body())
        assert response.status_code == 200
        data = response.json()
        assert data["page"] == 2
        assert data["html"].startswith('<div data-layer-id="list-item-p3" data-collection-item-id="p3">')
        assert '<p data-layer-id="title-item-p4" data-layer-type="text">Post 4</p>' in data["html"]
        assert "Post 5" not in data["html"]

    @pytest.mark.asyncio
    async def test_explicit_item_ids(self, client: AsyncClient):
        response = await client.post("/api/collections/items", json=request_body(page=1, item_ids=["p5", "p1"]))
        html = response.json()["html"]
        assert html.index("list-item-p5") < html.index("list-item-p1")

    @pytest.mark.asyncio
    async def test_sorted_loop_continues_in_sort_order(self, client: AsyncClient):
        response = await client.post("/api/collections/items", json=request_body(sort_by="f_title", sort_order="desc"))
        html = response.json()["html"]
        assert html.index("list-item-p3") < html.index("list-item-p2")
        assert "list-item-p4" not in html and "list-item-p1" not in html

    @pytest.mark.asyncio
    async def test_sort_order_is_validated(self, client: AsyncClient):
        response = await client.post("/api/collections/items", json=request_body(sort_order="sideways"))
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_unknown_fields_are_rejected(self, client: AsyncClient):
        response = await client.post("/api/collections/items", json=request_body(surprise=True))
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_page_must_be_positive(self, client: AsyncClient):
        response = await client.post("/api/collections/items", json=request_body(page=0))
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_repository_failure_is_502(self, client: AsyncClient):
        app.dependency_overrides[get_repository] = BrokenRepository
        response = await client.post("/api/collections/items", json=request_body())
        assert response.status_code == 502
        assert response.json()["detail"] == "Collection fetch failed."
