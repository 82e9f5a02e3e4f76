"""
Registration for a gated item: payment proof in, reviewer decision out.

Key design decisions:
- the partial unique index allows one pending-or-approved registration per
  (user, item); denied rows stay as audit trail and do not block a resubmit
- `credential` is globally unique (sparse: NULL until approval)
- scanned/scanned_at/scanned_by are written once, by a conditional UPDATE
"""

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    text,
)
from sqlalchemy.orm import relationship

from festgate.db.base import Base, TimestampMixin

REGISTRATION_STATUSES = ("pending", "approved", "denied")
ACTIVE_STATUSES = ("pending", "approved")

_ACTIVE_PREDICATE = text("status IN ('pending', 'approved')")


class Registration(Base, TimestampMixin):
    __tablename__ = "registrations"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    item_id = Column(Integer, ForeignKey("items.id"), nullable=False, index=True)
    status = Column(String(20), nullable=False, default="pending")

    payment_proof_ref = Column(String(64), nullable=False)
    transaction_id = Column(String(255), nullable=True)
    denial_reason = Column(Text, nullable=True)
    reviewed_by = Column(String(255), nullable=True)
    reviewed_at = Column(DateTime(timezone=True), nullable=True)

    credential = Column(String(64), nullable=True, unique=True)
    scanned = Column(Boolean, nullable=False, default=False)
    scanned_at = Column(DateTime(timezone=True), nullable=True)
    scanned_by = Column(String(255), nullable=True)

    user = relationship("User", back_populates="registrations", lazy="raise")
    item = relationship("Item", back_populates="registrations", lazy="raise")

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'approved', 'denied')", name="check_registration_status"
        ),
        CheckConstraint(
            "status = 'approved' OR credential IS NULL", name="check_credential_only_when_approved"
        ),
        CheckConstraint(
            "status <> 'denied' OR denial_reason IS NOT NULL", name="check_denial_has_reason"
        ),
        Index(
            "uq_registration_active_user_item",
            "user_id",
            "item_id",
            unique=True,
            postgresql_where=_ACTIVE_PREDICATE,
            sqlite_where=_ACTIVE_PREDICATE,
        ),
        Index("ix_registrations_item_status", "item_id", "status"),
    )

    def __repr__(self) -> str:
        return f"<Registration(id={self.id}, user={self.user_id}, item={self.item_id}, status={self.status})>"
