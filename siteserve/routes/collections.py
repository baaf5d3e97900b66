"""Collection routes — further pages of load-more collection loops."""

from __future__ import annotations

import asyncio
import logging

from fastapi import APIRouter, Depends, HTTPException, status

from sitekit.kernel.repository import LayerRepository
from siteserve.models.layer import CollectionItemsRequest, CollectionItemsResponse
from siteserve.services.page_service import PageService, get_repository

logger = logging.getLogger(__name__)

router = APIRouter(tags=["collections"])


@router.post("/api/collections/items", status_code=200)
async def load_collection_items(
    req: CollectionItemsRequest,
    repo: LayerRepository = Depends(get_repository),
) -> CollectionItemsResponse:
    """
    Render one more page of a collection loop.

    The client sends the loop's layer template (from the pagination
    side-channel) and the page it wants. Each item comes back wrapped in a
    div carrying data-layer-id and data-collection-item-id.
    """
    service = PageService(repo, published=req.published)
    template = [layer.model_dump(exclude_unset=True, by_alias=True) for layer in req.layer_template]
    try:
        html = await service.render_collection_items(
            layer_id=req.layer_id,
            collection_id=req.collection_id,
            layer_template=template,
            page=req.page,
            items_per_page=req.items_per_page,
            item_ids=req.item_ids,
            sort_by=req.sort_by,
            sort_order=req.sort_order,
            filters=req.filters,
            locale_code=req.locale,
        )
    except asyncio.TimeoutError:
        logger.warning("collections: load-more timed out for layer_id=%s", req.layer_id)
        raise HTTPException(status_code=status.HTTP_504_GATEWAY_TIMEOUT, detail="Collection fetch timed out.") from None
    except Exception as e:
        logger.warning("collections: load-more failed for layer_id=%s: %s", req.layer_id, e)
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="Collection fetch failed.") from e
    return CollectionItemsResponse(html=html, page=req.page)
