"""
Ticket service: instant purchase and cancellation for non-gated items.

Purchase:
  1. validate quantity, load the item (missing/archived -> ItemNotFound,
     gated -> RegistrationRequired)
  2. inventory_ledger.reserve(), the atomic check-and-decrement
  3. insert the ticket with the price snapshotted from the item

  Steps 2 and 3 share the request transaction, so a crash between them
  leaves neither.

Cancel:
  The status flip is itself a conditional UPDATE

    UPDATE tickets SET status='cancelled', payment_status='refunded'
    WHERE id = :id AND status = 'confirmed'

  and only the request whose flip matched a row calls release(). Two
  concurrent cancels of the same ticket therefore return capacity once; the
  other sees AlreadyCancelled. Flip and release commit together.
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from festgate.models.item import Item
from festgate.models.ticket import Ticket
from festgate.core.config import get_settings
from festgate.core.errors import (
    AlreadyCancelled,
    Forbidden,
    InsufficientCapacity,
    ItemNotFound,
    RegistrationRequired,
    TicketNotFound,
    ValidationFailed,
)
from festgate.core.logging import get_logger
from festgate.core.metrics import record_purchase_attempt, ticket_cancellations
from festgate.services import inventory_ledger

logger = get_logger(__name__)


async def purchase(
    db: AsyncSession,
    user_id: int,
    item_id: int,
    quantity: int = 1,
) -> Ticket:
    """Buy `quantity` tickets for a non-gated item."""
    if quantity < 1:
        record_purchase_attempt("rejected")
        raise ValidationFailed("Quantity must be at least 1", quantity=quantity)

    cap = get_settings().MAX_TICKETS_PER_PURCHASE
    if cap is not None and quantity > cap:
        record_purchase_attempt("rejected")
        raise ValidationFailed(f"At most {cap} tickets per purchase", quantity=quantity)

    result = await db.execute(
        select(Item).where(Item.id == item_id, Item.is_archived.is_(False))
    )
    item = result.scalar_one_or_none()
    if not item:
        record_purchase_attempt("rejected")
        raise ItemNotFound(item_id)

    if item.gated:
        record_purchase_attempt("rejected")
        raise RegistrationRequired(item_id)

    # Snapshot before the ledger touches the row
    unit_price = item.unit_price

    try:
        await inventory_ledger.reserve(db, item_id, quantity)
    except InsufficientCapacity:
        record_purchase_attempt("sold_out")
        logger.info("ticket_purchase_sold_out", user_id=user_id, item_id=item_id, requested=quantity)
        raise

    total_price = unit_price * quantity
    ticket = Ticket(
        user_id=user_id,
        item_id=item_id,
        quantity=quantity,
        unit_price=unit_price,
        total_price=total_price,
        status="confirmed",
        payment_status="paid" if total_price == 0 else "unpaid",
    )
    db.add(ticket)
    await db.flush()
    await db.refresh(ticket)

    record_purchase_attempt("success")
    logger.info(
        "ticket_purchased",
        ticket_id=ticket.id,
        user_id=user_id,
        item_id=item_id,
        quantity=quantity,
        total_price=total_price,
    )
    return ticket


async def cancel(
    db: AsyncSession,
    ticket_id: int,
    requester_id: int,
    requester_role: str,
) -> Ticket:
    """Cancel a ticket (owner or admin) and return its capacity."""
    result = await db.execute(select(Ticket).where(Ticket.id == ticket_id))
    ticket = result.scalar_one_or_none()
    if not ticket:
        raise TicketNotFound(ticket_id)

    if ticket.user_id != requester_id and requester_role != "admin":
        logger.warning("ticket_cancel_forbidden", ticket_id=ticket_id, requester_id=requester_id)
        raise Forbidden("Not authorized to cancel this ticket", ticket_id=ticket_id)

    if ticket.status == "cancelled":
        raise AlreadyCancelled(ticket_id)

    flipped = await db.execute(
        update(Ticket)
        .where(Ticket.id == ticket_id, Ticket.status == "confirmed")
        .values(
            status="cancelled",
            payment_status="refunded",
            cancelled_at=datetime.now(timezone.utc),
        )
        .execution_options(synchronize_session=False)
    )
    if flipped.rowcount == 0:
        # A concurrent cancel got there first and owns the release
        raise AlreadyCancelled(ticket_id)

    await inventory_ledger.release(db, ticket.item_id, ticket.quantity)
    await db.refresh(ticket)

    ticket_cancellations.inc()
    logger.info(
        "ticket_cancelled",
        ticket_id=ticket.id,
        requester_id=requester_id,
        item_id=ticket.item_id,
        quantity_released=ticket.quantity,
    )
    return ticket


async def get_user_tickets(db: AsyncSession, user_id: int) -> list[Ticket]:
    """Get all tickets for a user, newest first."""
    result = await db.execute(
        select(Ticket)
        .where(Ticket.user_id == user_id)
        .order_by(Ticket.created_at.desc(), Ticket.id.desc())
    )
    return list(result.scalars().all())


async def list_tickets(
    db: AsyncSession,
    item_id: Optional[int] = None,
) -> tuple[list[Ticket], int, int]:
    """
    Admin listing. Returns (tickets, total_quantity, total_revenue); the
    totals only count confirmed tickets.
    """
    query = select(Ticket)
    if item_id is not None:
        query = query.where(Ticket.item_id == item_id)

    result = await db.execute(query.order_by(Ticket.created_at.desc(), Ticket.id.desc()))
    tickets = list(result.scalars().all())

    confirmed = [t for t in tickets if t.status == "confirmed"]
    return tickets, sum(t.quantity for t in confirmed), sum(t.total_price for t in confirmed)


async def item_stats(db: AsyncSession, item_id: int) -> dict:
    """Sales figures for one item."""
    available, max_capacity = await inventory_ledger.snapshot(db, item_id)

    result = await db.execute(
        select(
            func.coalesce(func.sum(Ticket.quantity), 0),
            func.coalesce(func.sum(Ticket.total_price), 0),
        ).where(Ticket.item_id == item_id, Ticket.status == "confirmed")
    )
    total_sold, total_revenue = result.one()

    return {
        "item_id": item_id,
        "total_sold": int(total_sold),
        "total_revenue": int(total_revenue),
        "available_count": available,
        "max_capacity": max_capacity,
        # Counts approved registrations too, not just tickets
        "occupancy_rate": round((max_capacity - available) / max_capacity * 100, 2),
    }
