"""
Pydantic schemas for ticket purchase/cancellation.
"""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field


class TicketCreate(BaseModel):
    item_id: int
    quantity: int = Field(default=1, gt=0)


class TicketResponse(BaseModel):
    id: int
    user_id: int
    item_id: int
    quantity: int
    unit_price: int
    total_price: int
    status: str
    payment_status: str
    cancelled_at: Optional[datetime]
    created_at: datetime

    model_config = {"from_attributes": True}


class TicketCancelResponse(BaseModel):
    message: str
    ticket_id: int
    status: str
    payment_status: str


class TicketTotals(BaseModel):
    total_tickets: int
    total_revenue: int


class TicketListResponse(BaseModel):
    tickets: list[TicketResponse]
    count: int
    stats: TicketTotals


class ItemTicketStats(BaseModel):
    item_id: int
    total_sold: int
    total_revenue: int
    available_count: int
    max_capacity: int
    occupancy_rate: float
