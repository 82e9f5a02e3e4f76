"""
Item catalogue endpoints with Redis caching on list operations.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from festgate.db.session import get_db
from festgate.models.user import User
from festgate.schemas.item import (
    ItemAdminResponse,
    ItemCreate,
    ItemListResponse,
    ItemResponse,
    ItemUpdate,
)
from festgate.services.item_service import archive_item, create_item, get_item, list_items, update_item
from festgate.services.cache_service import get_cached_items, set_cached_items, invalidate_item_cache
from festgate.infrastructure.blob_store import BlobStore, get_blob_store
from festgate.core.security import require_admin
from festgate.core.logging import get_logger

logger = get_logger(__name__)
router = APIRouter(prefix="/items", tags=["Items"])


@router.post("", response_model=ItemAdminResponse, status_code=status.HTTP_201_CREATED)
async def create_item_endpoint(
    item_data: ItemCreate,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Create a workshop, concert night, competition or festival pass. Admin only."""
    item = await create_item(db, item_data)
    await db.commit()
    await invalidate_item_cache()
    return item


@router.get("", response_model=ItemListResponse)
async def list_items_endpoint(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    kind: Optional[str] = Query(None, pattern="^(workshop|concert|competition|pass)$"),
    db: AsyncSession = Depends(get_db),
):
    """
    List live items with pagination.
    Results are cached in Redis; any capacity movement invalidates the cache.
    """
    cached = await get_cached_items(page, page_size, kind)
    if cached:
        logger.info("items_list_cache_hit", page=page, kind=kind)
        cached["cached"] = True
        return ItemListResponse(**cached)

    items, total = await list_items(db, page, page_size, kind)

    response_data = {
        "items": [ItemResponse.model_validate(i).model_dump() for i in items],
        "total": total,
        "page": page,
        "page_size": page_size,
        "cached": False,
    }
    await set_cached_items(page, page_size, kind, response_data)

    return ItemListResponse(**response_data)


@router.get("/{item_id}", response_model=ItemResponse)
async def get_item_endpoint(
    item_id: int,
    db: AsyncSession = Depends(get_db),
):
    """Get a single item. Not cached (needs real-time availability)."""
    return await get_item(db, item_id)


@router.patch("/{item_id}", response_model=ItemAdminResponse)
async def update_item_endpoint(
    item_id: int,
    changes: ItemUpdate,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    item = await update_item(db, item_id, changes)
    await db.commit()
    await invalidate_item_cache()
    return item


@router.delete("/{item_id}", response_model=ItemAdminResponse)
async def archive_item_endpoint(
    item_id: int,
    admin: User = Depends(require_admin),
    blob_store: BlobStore = Depends(get_blob_store),
    db: AsyncSession = Depends(get_db),
):
    """Archive an item. Rejected while it still has confirmed tickets."""
    item = await archive_item(db, blob_store, item_id)
    await db.commit()
    await invalidate_item_cache()
    return item
