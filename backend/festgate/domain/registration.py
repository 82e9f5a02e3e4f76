"""Registration state as a tagged variant.

The ORM row stores status plus nullable columns; services convert it with
``to_state`` before deciding anything, so an approved registration without a
credential (or a denied one without a reason) is caught at construction
instead of leaking into a decision.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Union

from festgate.core.errors import IntegrityViolation


@dataclass(frozen=True)
class PendingRegistration:
    registration_id: int


@dataclass(frozen=True)
class ApprovedRegistration:
    registration_id: int
    credential: str
    scanned: bool = False
    scanned_at: Optional[datetime] = None
    scanned_by: Optional[str] = None

    def __post_init__(self) -> None:
        if not self.credential:
            raise IntegrityViolation(
                "approved registration without credential",
                registration_id=self.registration_id,
            )


@dataclass(frozen=True)
class DeniedRegistration:
    registration_id: int
    reason: str

    def __post_init__(self) -> None:
        if not self.reason:
            raise IntegrityViolation(
                "denied registration without reason",
                registration_id=self.registration_id,
            )


RegistrationState = Union[PendingRegistration, ApprovedRegistration, DeniedRegistration]


def to_state(registration) -> RegistrationState:
    """Build the variant for a Registration row."""
    if registration.status == "pending":
        return PendingRegistration(registration.id)
    if registration.status == "approved":
        return ApprovedRegistration(
            registration_id=registration.id,
            credential=registration.credential,
            scanned=registration.scanned,
            scanned_at=registration.scanned_at,
            scanned_by=registration.scanned_by,
        )
    if registration.status == "denied":
        return DeniedRegistration(registration.id, registration.denial_reason)
    raise IntegrityViolation(
        "unknown registration status",
        registration_id=registration.id,
        status=registration.status,
    )
