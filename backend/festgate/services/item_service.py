"""
Item catalogue: administrative create/update/archive and public listing.

Capacity is never written here directly; creation sets
available_count = max_capacity, and capacity changes go through
inventory_ledger.adjust_capacity().
"""

from typing import Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from festgate.models.item import Item
from festgate.models.registration import Registration
from festgate.models.ticket import Ticket
from festgate.schemas.item import ItemCreate, ItemUpdate
from festgate.core.errors import ItemInUse, ItemNotFound
from festgate.core.logging import get_logger
from festgate.infrastructure.blob_store import BlobStore
from festgate.services import inventory_ledger

logger = get_logger(__name__)

# Optional descriptive fields an update may reset to null
CLEARABLE_FIELDS = ("description", "venue", "starts_at")


async def create_item(db: AsyncSession, item_data: ItemCreate) -> Item:
    """Create a new item with full availability."""
    item = Item(
        kind=item_data.kind,
        title=item_data.title,
        description=item_data.description,
        venue=item_data.venue,
        starts_at=item_data.starts_at,
        gated=item_data.gated,
        unit_price=item_data.unit_price,
        max_capacity=item_data.max_capacity,
        available_count=item_data.max_capacity,  # Nothing reserved yet
        reviewer_emails=item_data.reviewer_emails,
        scanner_emails=item_data.scanner_emails,
    )
    db.add(item)
    await db.flush()
    await db.refresh(item)

    logger.info(
        "item_created",
        item_id=item.id,
        kind=item.kind,
        gated=item.gated,
        capacity=item.max_capacity,
    )
    return item


async def get_item(db: AsyncSession, item_id: int, include_archived: bool = False) -> Item:
    """Get a single item by ID."""
    query = select(Item).where(Item.id == item_id)
    if not include_archived:
        query = query.where(Item.is_archived.is_(False))
    result = await db.execute(query)
    item = result.scalar_one_or_none()

    if not item:
        raise ItemNotFound(item_id)
    return item


async def list_items(
    db: AsyncSession,
    page: int = 1,
    page_size: int = 20,
    kind: Optional[str] = None,
) -> tuple[list[Item], int]:
    """List live items with pagination, soonest first (undated items last)."""
    query = select(Item).where(Item.is_archived.is_(False))
    if kind:
        query = query.where(Item.kind == kind)

    count_query = select(func.count()).select_from(query.subquery())
    total = (await db.execute(count_query)).scalar()

    items_query = (
        query
        .order_by(Item.starts_at.is_(None), Item.starts_at.asc(), Item.id.asc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    result = await db.execute(items_query)
    return list(result.scalars().all()), total


async def update_item(db: AsyncSession, item_id: int, changes: ItemUpdate) -> Item:
    """Apply descriptive changes; capacity changes are routed through the ledger."""
    item = await get_item(db, item_id)
    data = {
        k: v
        for k, v in changes.model_dump(exclude_unset=True).items()
        if v is not None or k in CLEARABLE_FIELDS
    }
    changed = sorted(data)

    new_max = data.pop("max_capacity", None)
    for field_name, value in data.items():
        setattr(item, field_name, value)
    await db.flush()

    if new_max is not None and new_max != item.max_capacity:
        await inventory_ledger.adjust_capacity(db, item_id, new_max)

    await db.refresh(item)
    logger.info("item_updated", item_id=item_id, fields=changed)
    return item


async def archive_item(db: AsyncSession, blob_store: BlobStore, item_id: int) -> Item:
    """
    Administrative removal.

    Rejected while confirmed tickets exist. Otherwise the item's
    registrations (and their proof blobs) are deleted and the item is
    archived; cancelled tickets keep pointing at it for the sales history.

    The archive flag is flipped first. That UPDATE takes the item row lock,
    so a purchase whose reserve() is still in flight commits before the
    ticket count below is read, and any later reserve() sees the archived
    row and matches nothing. ItemInUse is raised after the flip; the
    request transaction rolls it back.
    """
    flipped = await db.execute(
        update(Item)
        .where(Item.id == item_id, Item.is_archived.is_(False))
        .values(is_archived=True)
        .execution_options(synchronize_session=False)
    )
    if flipped.rowcount == 0:
        raise ItemNotFound(item_id)

    active = await db.execute(
        select(func.coalesce(func.sum(Ticket.quantity), 0)).where(
            Ticket.item_id == item_id, Ticket.status == "confirmed"
        )
    )
    active_tickets = int(active.scalar_one())
    if active_tickets:
        raise ItemInUse(item_id, active_tickets)

    refs = await db.execute(
        select(Registration.payment_proof_ref).where(Registration.item_id == item_id)
    )
    proof_refs = list(refs.scalars().all())
    await db.execute(delete(Registration).where(Registration.item_id == item_id))
    for ref in proof_refs:
        await blob_store.delete(ref)

    item = await get_item(db, item_id, include_archived=True)
    await db.refresh(item)

    logger.info("item_archived", item_id=item_id, registrations_removed=len(proof_refs))
    return item
