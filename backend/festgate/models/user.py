"""
Local mirror of an identity-provider subject.

Rows are provisioned on the first authenticated request; `role` is managed
locally (admins come from ADMIN_EMAILS or an administrative update).
"""

from sqlalchemy import Column, Integer, String, CheckConstraint
from sqlalchemy.orm import relationship

from festgate.db.base import Base, TimestampMixin


class User(Base, TimestampMixin):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    subject = Column(String(255), unique=True, index=True, nullable=False)
    email = Column(String(255), index=True, nullable=False)
    name = Column(String(255), nullable=False, default="")
    role = Column(String(20), nullable=False, default="user")

    tickets = relationship("Ticket", back_populates="user", lazy="raise")
    registrations = relationship("Registration", back_populates="user", lazy="raise")

    __table_args__ = (
        CheckConstraint("role IN ('user', 'admin')", name="check_user_role"),
    )

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email})>"
