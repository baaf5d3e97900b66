"""Page serving — GET /s/{path} (published), GET /preview/{path} (draft), page tree JSON."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import HTMLResponse, Response

from sitekit.kernel.errors import PageNotFound
from sitekit.kernel.repository import LayerRepository
from siteserve.config import settings
from siteserve.models.layer import PageTreeResponse
from siteserve.services.page_service import PageService, get_repository, pagination_from_query
from siteserve.utils.tree_hash import hash_tree

router = APIRouter(tags=["pages"])

_NOT_FOUND_HTML = "<html><body><h1>404 — Page not found</h1></body></html>"


def published_service(repo: LayerRepository = Depends(get_repository)) -> PageService:
    return PageService(repo, published=True)


def draft_service(repo: LayerRepository = Depends(get_repository)) -> PageService:
    return PageService(repo, published=False)


async def _serve(service: PageService, path: str, request: Request, cache_control: str) -> Response:
    pagination = pagination_from_query(dict(request.query_params))
    try:
        rendered = await service.render_path(path, pagination)
    except PageNotFound:
        return HTMLResponse(content=_NOT_FOUND_HTML, status_code=404)

    etag = f'"{rendered.etag}"'
    if request.headers.get("if-none-match") == etag:
        return Response(status_code=304, headers={"ETag": etag, "Cache-Control": cache_control})

    return Response(
        content=rendered.html,
        media_type="text/html; charset=utf-8",
        headers={
            "Cache-Control": cache_control,
            "ETag": etag,
            "X-Content-Type-Options": "nosniff",
        },
    )


@router.get("/s/{path:path}", response_class=HTMLResponse)
async def serve_published_page(
    path: str,
    request: Request,
    service: PageService = Depends(published_service),
) -> Response:
    """
    Serve a published page by public path.

    Query parameters select pagination: ?page=N for every loop, ?p_{layerId}=N
    for one. Returns 404 if the path matches no page or resolution overruns
    its deadline.
    """
    return await _serve(service, path, request, settings.CACHE_CONTROL)


@router.get("/preview/{path:path}", response_class=HTMLResponse)
async def serve_preview_page(
    path: str,
    request: Request,
    service: PageService = Depends(draft_service),
) -> Response:
    """Serve the draft copy of a page. Never cached."""
    return await _serve(service, path, request, "no-store")


@router.get("/api/pages/{page_id}/tree")
async def get_page_tree(
    page_id: str,
    request: Request,
    locale: str | None = None,
    draft: bool = False,
    repo: LayerRepository = Depends(get_repository),
) -> PageTreeResponse:
    """Interactive UI tree for a page, plus pagination state per loop."""
    service = PageService(repo, published=not draft)
    pagination = pagination_from_query(dict(request.query_params))
    try:
        tree, resolved = await service.page_tree(page_id, locale_code=locale, pagination=pagination)
    except PageNotFound:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Page not found.") from None

    body = tree.to_dict()
    return PageTreeResponse(
        page_id=page_id,
        nodes=body["nodes"],
        pagination=body["pagination"],
        warnings=resolved.warnings,
        tree_hash=hash_tree(resolved.layers),
    )
