"""
Ticket endpoints with concurrency-safe capacity reservation.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from festgate.db.session import get_db
from festgate.models.user import User
from festgate.schemas.ticket import (
    ItemTicketStats,
    TicketCancelResponse,
    TicketCreate,
    TicketListResponse,
    TicketResponse,
    TicketTotals,
)
from festgate.services import ticket_service
from festgate.services.cache_service import invalidate_item_cache
from festgate.core.security import get_current_user, require_admin
from festgate.core.logging import get_logger

logger = get_logger(__name__)
router = APIRouter(prefix="/tickets", tags=["Tickets"])


@router.post("", response_model=TicketResponse, status_code=status.HTTP_201_CREATED)
async def purchase_ticket(
    ticket_data: TicketCreate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """
    Buy tickets for a non-gated item.

    The capacity check and decrement is a single conditional UPDATE, so under
    any number of concurrent buyers the item never oversells; losers get 409.
    """
    ticket = await ticket_service.purchase(db, user.id, ticket_data.item_id, ticket_data.quantity)
    await db.commit()
    await invalidate_item_cache()
    return ticket


@router.get("/mine", response_model=list[TicketResponse])
async def list_my_tickets(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Get all tickets for the authenticated user."""
    return await ticket_service.get_user_tickets(db, user.id)


@router.get("", response_model=TicketListResponse)
async def list_all_tickets(
    item_id: Optional[int] = Query(None),
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    tickets, total_tickets, total_revenue = await ticket_service.list_tickets(db, item_id)
    return TicketListResponse(
        tickets=[TicketResponse.model_validate(t) for t in tickets],
        count=len(tickets),
        stats=TicketTotals(total_tickets=total_tickets, total_revenue=total_revenue),
    )


@router.get("/stats/{item_id}", response_model=ItemTicketStats)
async def ticket_stats(
    item_id: int,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await ticket_service.item_stats(db, item_id)


@router.delete("/{ticket_id}", response_model=TicketCancelResponse)
async def cancel_ticket(
    ticket_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Cancel a ticket and return its quantity to the item."""
    ticket = await ticket_service.cancel(db, ticket_id, user.id, user.role)
    await db.commit()
    await invalidate_item_cache()
    return TicketCancelResponse(
        message="Ticket cancelled successfully",
        ticket_id=ticket.id,
        status=ticket.status,
        payment_status=ticket.payment_status,
    )
