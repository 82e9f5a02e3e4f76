"""
Blob rows backing the database blob store (payment proof images).
"""

from sqlalchemy import Column, Integer, LargeBinary, String

from festgate.db.base import Base, TimestampMixin


class PaymentProof(Base, TimestampMixin):
    __tablename__ = "payment_proofs"

    id = Column(Integer, primary_key=True)
    ref = Column(String(64), unique=True, index=True, nullable=False)
    content_type = Column(String(100), nullable=False)
    size = Column(Integer, nullable=False)
    data = Column(LargeBinary, nullable=False)

    def __repr__(self) -> str:
        return f"<PaymentProof(ref={self.ref}, type={self.content_type}, size={self.size})>"
