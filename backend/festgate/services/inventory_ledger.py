"""
Inventory ledger: the only writer of Item.available_count.

CONCURRENCY STRATEGY: Conditional UPDATE
========================================

Problem:
  Two buyers (or two reviewers approving different registrations) race for
  the last unit. Both read available_count=1, both write 0, both succeed.
  Result: oversell.

Solution:
  The check and the decrement are one statement:

    UPDATE items SET available_count = available_count - :q, version = version + 1
    WHERE id = :item_id AND NOT is_archived AND available_count >= :q

  The database serializes concurrent UPDATEs on the same row; the loser
  re-evaluates the WHERE clause against the committed value and matches zero
  rows. rows_affected == 0 means "does not fit", reported as
  InsufficientCapacity. There is no retry loop: sold out is an answer, not a
  conflict.

  release() is the mirror image, guarded by available_count + q <= max_capacity.
  Zero rows there means more capacity is being returned than was ever
  reserved, which only happens if a caller released twice. That is reported
  as IntegrityViolation and never clamped.

  CHECK constraints on the items table remain the last line of defence.

All functions only flush through the caller's session; committing (together
with the ticket/registration row that motivated the change) is the caller's
job, so a reservation and its record are visible atomically.
"""

import time

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from festgate.models.item import Item
from festgate.core.errors import InsufficientCapacity, IntegrityViolation, ItemNotFound
from festgate.core.logging import get_logger
from festgate.core.metrics import inventory_latency, record_inventory_operation

logger = get_logger(__name__)


async def _item_exists(db: AsyncSession, item_id: int, live_only: bool = False) -> bool:
    query = select(Item.id).where(Item.id == item_id)
    if live_only:
        query = query.where(Item.is_archived.is_(False))
    result = await db.execute(query)
    return result.scalar_one_or_none() is not None


async def reserve(db: AsyncSession, item_id: int, quantity: int) -> None:
    """
    Take `quantity` units of capacity from an item.

    Raises InsufficientCapacity if the item cannot cover the request, and
    ItemNotFound if it does not exist or has been archived.
    """
    if quantity < 1:
        raise IntegrityViolation("reserve called with non-positive quantity", item_id=item_id, quantity=quantity)

    started = time.perf_counter()
    result = await db.execute(
        update(Item)
        .where(
            Item.id == item_id,
            Item.is_archived.is_(False),
            Item.available_count >= quantity,
        )
        .values(
            available_count=Item.available_count - quantity,
            version=Item.version + 1,
        )
        .execution_options(synchronize_session=False)
    )
    inventory_latency.labels(operation="reserve").observe(time.perf_counter() - started)

    if result.rowcount == 1:
        record_inventory_operation("reserve", "ok")
        logger.info("inventory_reserved", item_id=item_id, quantity=quantity)
        return

    if result.rowcount > 1:
        raise IntegrityViolation("reserve matched several items", item_id=item_id)

    if not await _item_exists(db, item_id, live_only=True):
        raise ItemNotFound(item_id)

    record_inventory_operation("reserve", "insufficient")
    logger.info("inventory_insufficient", item_id=item_id, requested=quantity)
    raise InsufficientCapacity(item_id, quantity)


async def release(db: AsyncSession, item_id: int, quantity: int) -> None:
    """
    Return `quantity` units of capacity to an item.

    Callers guarantee this runs once per cancelled reservation (ticket
    cancellation flips status with its own conditional update first).
    """
    if quantity < 1:
        raise IntegrityViolation("release called with non-positive quantity", item_id=item_id, quantity=quantity)

    started = time.perf_counter()
    result = await db.execute(
        update(Item)
        .where(Item.id == item_id, Item.available_count + quantity <= Item.max_capacity)
        .values(
            available_count=Item.available_count + quantity,
            version=Item.version + 1,
        )
        .execution_options(synchronize_session=False)
    )
    inventory_latency.labels(operation="release").observe(time.perf_counter() - started)

    if result.rowcount == 1:
        record_inventory_operation("release", "ok")
        logger.info("inventory_released", item_id=item_id, quantity=quantity)
        return

    record_inventory_operation("release", "integrity")
    logger.error("inventory_release_overflow", item_id=item_id, quantity=quantity)
    raise IntegrityViolation("release would exceed max_capacity", item_id=item_id, quantity=quantity)


async def adjust_capacity(db: AsyncSession, item_id: int, new_max: int) -> None:
    """
    Change an item's max_capacity keeping the number of held reservations
    constant: available moves by the same delta as max.

    Shrinking below what is already reserved raises InsufficientCapacity.
    """
    if new_max < 1:
        raise IntegrityViolation("max_capacity must be positive", item_id=item_id, new_max=new_max)

    # reserved = max_capacity - available_count stays the same
    reserved = Item.max_capacity - Item.available_count
    result = await db.execute(
        update(Item)
        .where(Item.id == item_id, reserved <= new_max)
        .values(
            available_count=new_max - reserved,
            max_capacity=new_max,
            version=Item.version + 1,
        )
        .execution_options(synchronize_session=False)
    )

    if result.rowcount == 1:
        record_inventory_operation("adjust", "ok")
        logger.info("inventory_capacity_adjusted", item_id=item_id, new_max=new_max)
        return

    if not await _item_exists(db, item_id):
        raise ItemNotFound(item_id)

    record_inventory_operation("adjust", "insufficient")
    raise InsufficientCapacity(item_id, new_max)


async def snapshot(db: AsyncSession, item_id: int) -> tuple[int, int]:
    """Return (available_count, max_capacity) as currently committed."""
    result = await db.execute(
        select(Item.available_count, Item.max_capacity).where(Item.id == item_id)
    )
    row = result.one_or_none()
    if row is None:
        raise ItemNotFound(item_id)

    available, maximum = row
    if available < 0 or available > maximum:
        logger.error("inventory_out_of_bounds", item_id=item_id, available=available, max_capacity=maximum)
        raise IntegrityViolation("available_count out of bounds", item_id=item_id)
    return available, maximum
