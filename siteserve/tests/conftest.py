"""
Pytest configuration and fixtures for SiteServe tests.

Routes run against a MemoryRepository built from an in-test site bundle,
swapped in through FastAPI dependency overrides.
"""

from __future__ import annotations

import copy

import httpx
import pytest
import pytest_asyncio

from sitekit.kernel.repository import MemoryRepository
from siteserve.main import app
from siteserve.services.page_service import get_repository


def text(content: str) -> dict:
    return {"type": "dynamic_text", "data": {"content": content}}


def field(field_id: str) -> dict:
    return {"type": "field", "data": {"field_id": field_id}}


SITE_BUNDLE = {
    "settings": {"timezone": "UTC"},
    "published": {
        "folders": [{"id": "blog", "slug": "blog"}],
        "pages": [
            {
                "id": "home",
                "name": "Home",
                "slug": "",
                "is_index": True,
                "layers": [
                    {"id": "welcome", "name": "heading", "variables": {"text": text("Welcome")}},
                    {
                        "id": "list",
                        "name": "div",
                        "variables": {
                            "collection": {"id": "posts", "pagination": {"enabled": True, "mode": "pages", "items_per_page": 2}}
                        },
                        "children": [{"id": "title", "name": "text", "variables": {"text": field("f_title")}}],
                    },
                    {
                        "id": "list-pagination-info",
                        "name": "text",
                        "attributes": {"data-pagination-for": "list"},
                        "variables": {"text": text("")},
                    },
                ],
            },
            {"id": "about", "name": "About", "slug": "about", "layers": [{"id": "a", "name": "text", "variables": {"text": text("About us")}}]},
            {
                "id": "post",
                "name": "Post",
                "slug": "",
                "is_dynamic": True,
                "collection_id": "posts",
                "page_folder_id": "blog",
                "layers": [{"id": "headline", "name": "heading", "variables": {"text": field("f_title")}}],
            },
        ],
        "collections": [
            {
                "id": "posts",
                "fields": [{"id": "f_title", "key": "title", "type": "text"}, {"id": "f_slug", "key": "slug", "type": "text"}],
                "items": [{"id": f"p{i}", "values": {"f_title": f"Post {i}", "f_slug": f"post-{i}"}} for i in range(1, 6)],
            }
        ],
        "locales": [{"id": "l_en", "code": "en", "is_default": True}, {"id": "l_de", "code": "de", "is_default": False}],
        "translations": [
            {
                "locale_id": "l_de",
                "source_type": "page",
                "source_id": "home",
                "content_key": "layer:welcome:text",
                "content_value": "Willkommen",
                "is_completed": True,
            }
        ],
    },
    "draft": {
        "pages": [
            {"id": "home", "name": "Home", "slug": "", "is_index": True, "layers": [{"id": "w", "name": "heading", "variables": {"text": text("Draft")}}]},
        ],
    },
}


@pytest.fixture
def site_bundle() -> dict:
    return copy.deepcopy(SITE_BUNDLE)


@pytest.fixture
def repo(site_bundle: dict) -> MemoryRepository:
    return MemoryRepository.from_bundle(site_bundle)


@pytest_asyncio.fixture
async def client(repo: MemoryRepository):
    """Async HTTP client against the ASGI app, backed by the test bundle."""
    app.dependency_overrides[get_repository] = lambda: repo
    async with httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app),
        base_url="http://test",
    ) as client:
        yield client
    app.dependency_overrides.clear()
