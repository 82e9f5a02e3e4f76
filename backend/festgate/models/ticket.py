"""
Ticket: a purchase of one or more units of a non-gated item.

Key design decisions:
- unit_price/total_price are snapshotted at purchase time
- cancellation flips status instead of deleting, tickets are kept for stats
- no uniqueness on (user, item): a user may buy again, quantity is the unit
"""

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Index, Integer, String
from sqlalchemy.orm import relationship

from festgate.db.base import Base, TimestampMixin

TICKET_STATUSES = ("confirmed", "cancelled")
PAYMENT_STATUSES = ("unpaid", "paid", "refunded")


class Ticket(Base, TimestampMixin):
    __tablename__ = "tickets"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    item_id = Column(Integer, ForeignKey("items.id"), nullable=False, index=True)
    quantity = Column(Integer, nullable=False, default=1)
    unit_price = Column(Integer, nullable=False)
    total_price = Column(Integer, nullable=False)
    status = Column(String(20), nullable=False, default="confirmed")
    payment_status = Column(String(20), nullable=False, default="unpaid")
    cancelled_at = Column(DateTime(timezone=True), nullable=True)

    user = relationship("User", back_populates="tickets", lazy="raise")
    item = relationship("Item", back_populates="tickets", lazy="raise")

    __table_args__ = (
        CheckConstraint("quantity > 0", name="check_ticket_quantity_positive"),
        CheckConstraint("total_price >= 0", name="check_ticket_total_non_negative"),
        CheckConstraint("status IN ('confirmed', 'cancelled')", name="check_ticket_status"),
        CheckConstraint(
            "payment_status IN ('unpaid', 'paid', 'refunded')", name="check_ticket_payment_status"
        ),
        Index("ix_tickets_item_status", "item_id", "status"),
    )

    def __repr__(self) -> str:
        return f"<Ticket(id={self.id}, user={self.user_id}, item={self.item_id}, status={self.status})>"
