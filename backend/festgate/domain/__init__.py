"""Domain value types for the admission core."""

from festgate.domain.registration import (
    ApprovedRegistration,
    DeniedRegistration,
    PendingRegistration,
    RegistrationState,
    to_state,
)

__all__ = [
    "PendingRegistration",
    "ApprovedRegistration",
    "DeniedRegistration",
    "RegistrationState",
    "to_state",
]
