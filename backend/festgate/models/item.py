"""
SellableItem: a capacity-bounded offering (workshop, concert night,
competition entry, festival pass).

Key design decisions:
- `available_count` is denormalized and written only by the inventory ledger
  through conditional UPDATEs; the CHECK constraints are the final safety net
- `gated` items are admitted through the registration workflow (payment proof
  review) instead of instant ticket purchase
- `version` is bumped on every ledger mutation for change tracking
- items are archived rather than deleted so historical tickets keep their FK
"""

from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, Index, Integer, JSON, String, Text
from sqlalchemy.orm import relationship

from festgate.db.base import Base, TimestampMixin

ITEM_KINDS = ("workshop", "concert", "competition", "pass")


class Item(Base, TimestampMixin):
    __tablename__ = "items"

    id = Column(Integer, primary_key=True, index=True)
    kind = Column(String(20), nullable=False)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    venue = Column(String(255), nullable=True)
    starts_at = Column(DateTime(timezone=True), nullable=True)
    gated = Column(Boolean, nullable=False, default=False)

    # Whole currency units
    unit_price = Column(Integer, nullable=False, default=0)
    max_capacity = Column(Integer, nullable=False)
    available_count = Column(Integer, nullable=False)

    # Delegated reviewers (approve/deny) and gate scanners, lowercased emails
    reviewer_emails = Column(JSON, nullable=False, default=list)
    scanner_emails = Column(JSON, nullable=False, default=list)

    is_archived = Column(Boolean, nullable=False, default=False)
    version = Column(Integer, nullable=False, default=1)

    tickets = relationship("Ticket", back_populates="item", lazy="raise")
    registrations = relationship("Registration", back_populates="item", lazy="raise")

    __table_args__ = (
        CheckConstraint("available_count >= 0", name="check_available_count_non_negative"),
        CheckConstraint("max_capacity > 0", name="check_max_capacity_positive"),
        CheckConstraint("available_count <= max_capacity", name="check_available_lte_max"),
        CheckConstraint("unit_price >= 0", name="check_unit_price_non_negative"),
        CheckConstraint(
            "kind IN ('workshop', 'concert', 'competition', 'pass')", name="check_item_kind"
        ),
        Index("ix_items_kind_starts_at", "kind", "starts_at"),
    )

    def __repr__(self) -> str:
        return f"<Item(id={self.id}, title={self.title}, available={self.available_count}/{self.max_capacity})>"
