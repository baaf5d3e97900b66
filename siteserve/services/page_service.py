"""
Page service — maps public paths to pages and drives the layer pipeline.

Routes call this; it owns the repository, the resolve deadline and the
outer HTML document. Everything below it is sitekit.kernel.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Any

import chevron

from sitekit.kernel.errors import PageNotFound
from sitekit.kernel.links import page_path
from sitekit.kernel.pipeline import LayerPipeline, PageItem, ResolvedPage
from sitekit.kernel.repository import LayerRepository, MemoryRepository
from sitekit.kernel.translations import translation_value
from sitekit.kernel.tree_renderer import UITree
from sitekit.kernel.types import PaginationContext, RenderContext, RenderOptions
from siteserve.config import settings
from siteserve.utils.tree_hash import hash_html

logger = logging.getLogger(__name__)

DOCUMENT_TEMPLATE = (
    "<!DOCTYPE html>"
    '<html lang="{{lang}}">'
    '<head><meta charset="utf-8">'
    '<meta name="viewport" content="width=device-width, initial-scale=1">'
    "<title>{{title}}</title></head>"
    "<body>{{{body}}}</body></html>"
)


@dataclass
class PageMatch:
    page: dict[str, Any]
    locale_code: str | None = None
    page_item: PageItem | None = None


@dataclass
class RenderedPage:
    html: str
    etag: str
    resolved: ResolvedPage


def pagination_from_query(params: dict[str, str]) -> PaginationContext:
    """?page=N sets the default page; ?p_{layerId}=N targets one loop."""
    context = PaginationContext()
    for key, raw in params.items():
        try:
            number = int(raw)
        except (TypeError, ValueError):
            continue
        if key == "page":
            context.default_page = number
        elif key.startswith("p_") and len(key) > 2:
            context.page_numbers[key[2:]] = number
    return context


def render_document(resolved: ResolvedPage) -> str:
    locale = resolved.context.locale or {}
    return chevron.render(
        DOCUMENT_TEMPLATE,
        {
            "lang": locale.get("code") or "en",
            "title": resolved.page.get("name") or "",
            "body": resolved.render_html(),
        },
    )


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


class PageService:
    def __init__(self, repo: LayerRepository, *, published: bool = True) -> None:
        self.repo = repo
        self.published = published
        self.pipeline = LayerPipeline(
            repo,
            published=published,
            fetch_timeout=settings.FETCH_TIMEOUT_SECONDS,
            options=RenderOptions(
                image_quality=settings.IMAGE_QUALITY,
                srcset_widths=settings.IMAGE_SRCSET_WIDTHS,
                default_pagination_controls=settings.DEFAULT_PAGINATION_CONTROLS,
            ),
            default_timezone=settings.SITE_TIMEZONE,
        )

    # -- path lookup --

    async def _split_locale(self, segments: list[str]) -> tuple[str | None, list[str]]:
        if not segments:
            return None, segments
        locales = await self.repo.get_locales(self.published)
        for locale in locales:
            if locale.get("code") == segments[0] and not locale.get("is_default"):
                return locale["code"], segments[1:]
        return None, segments

    async def find_page(self, path: str) -> PageMatch:
        """
        Resolve a public path to a page.

        A leading non-default locale code selects the locale. Static pages
        match on their full folder path. Dynamic pages match on their folder
        path plus one trailing item slug.
        """
        segments = [s for s in path.strip("/").split("/") if s]
        locale_code, segments = await self._split_locale(segments)
        locale, translations = (None, {})
        if locale_code:
            locale, translations = await self.repo.load_translations_for_locale(locale_code, self.published)

        pages, folders = await asyncio.gather(
            self.repo.get_pages(self.published),
            self.repo.get_page_folders(self.published),
        )
        context = RenderContext(pages=pages, folders=folders, locale=locale, translations=translations)
        target = locale_path(segments, locale_code)

        for page in pages:
            if not page.get("is_dynamic") and page_path(page, context) == target:
                return PageMatch(page=page, locale_code=locale_code)

        if segments:
            parent = locale_path(segments[:-1], locale_code)
            slug = segments[-1]
            for page in pages:
                if not page.get("is_dynamic") or not page.get("collection_id"):
                    continue
                if page_path({**page, "is_index": True}, context) != parent:
                    continue
                item = await self.find_item_by_slug(page["collection_id"], slug, translations)
                if item is not None:
                    return PageMatch(page=page, locale_code=locale_code, page_item=item)
        raise PageNotFound(path)

    async def find_item_by_slug(
        self,
        collection_id: str,
        slug: str,
        translations: dict[str, dict[str, Any]],
    ) -> PageItem | None:
        fields, items = await asyncio.gather(
            self.repo.get_fields_by_collection_id(collection_id, self.published),
            self.repo.get_items_with_values(collection_id, self.published),
        )
        slug_field = next((f["id"] for f in fields if f.get("key") == "slug"), None)
        if slug_field is None:
            return None
        for item in items.items:
            values = item.get("values") or {}
            translated = translation_value(translations.get(f"cms:{item['id']}:field:key:slug"))
            if slug in (values.get(slug_field), translated):
                return PageItem(
                    id=item["id"],
                    collection_id=collection_id,
                    values=dict(values),
                    slug=values.get(slug_field),
                )
        return None

    # -- rendering --

    async def _resolve(self, match: PageMatch, pagination: PaginationContext | None) -> ResolvedPage:
        try:
            return await asyncio.wait_for(
                self.pipeline.resolve_page(
                    match.page["id"],
                    locale_code=match.locale_code,
                    page_item=match.page_item,
                    pagination=pagination,
                ),
                timeout=settings.RESOLVE_DEADLINE_SECONDS,
            )
        except asyncio.TimeoutError:
            logger.warning(
                "pages: resolve deadline of %ss exceeded for page_id=%s",
                settings.RESOLVE_DEADLINE_SECONDS,
                match.page["id"],
            )
            raise PageNotFound(match.page["id"]) from None

    async def render_path(self, path: str, pagination: PaginationContext | None = None) -> RenderedPage:
        match = await self.find_page(path)
        resolved = await self._resolve(match, pagination)
        html = render_document(resolved)
        return RenderedPage(html=html, etag=hash_html(html), resolved=resolved)

    async def page_tree(
        self,
        page_id: str,
        *,
        locale_code: str | None = None,
        pagination: PaginationContext | None = None,
    ) -> tuple[UITree, ResolvedPage]:
        pages = await self.repo.get_pages(self.published)
        page = next((p for p in pages if p.get("id") == page_id), None)
        if page is None:
            raise PageNotFound(page_id)
        resolved = await self._resolve(PageMatch(page=page, locale_code=locale_code), pagination)
        return resolved.render_tree(), resolved

    async def render_collection_items(
        self,
        *,
        layer_id: str,
        collection_id: str,
        layer_template: list[dict[str, Any]],
        page: int,
        items_per_page: int,
        item_ids: list[str] | None = None,
        sort_by: str | None = None,
        sort_order: str | None = None,
        filters: dict[str, Any] | None = None,
        locale_code: str | None = None,
    ) -> str:
        return await asyncio.wait_for(
            self.pipeline.render_collection_page(
                layer_id=layer_id,
                collection_id=collection_id,
                layer_template=layer_template,
                page=page,
                items_per_page=items_per_page,
                item_ids=item_ids,
                sort_by=sort_by,
                sort_order=sort_order,
                filters=filters,
                locale_code=locale_code,
            ),
            timeout=settings.RESOLVE_DEADLINE_SECONDS,
        )


def locale_path(segments: list[str], locale_code: str | None) -> str:
    path = "/" + "/".join(segments) if segments else "/"
    if not locale_code:
        return path
    return f"/{locale_code}" if path == "/" else f"/{locale_code}{path}"


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------


@lru_cache(maxsize=1)
def get_repository() -> LayerRepository:
    """Site repository loaded from SITE_BUNDLE_PATH (empty when unset)."""
    if not settings.SITE_BUNDLE_PATH:
        logger.warning("pages: SITE_BUNDLE_PATH is not set, serving an empty site")
        return MemoryRepository()
    logger.info("pages: loading site bundle from %s", settings.SITE_BUNDLE_PATH)
    return MemoryRepository.from_file(settings.SITE_BUNDLE_PATH)
