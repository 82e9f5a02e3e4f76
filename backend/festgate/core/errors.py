"""
Domain errors for the admission core.

Every expected rejection has its own class and ErrorCode so callers (and the
HTTP layer) can tell "sold out" from "already cancelled" without parsing
messages. Messages are user-safe; extra context goes to the logs only.

Three families:
  - expected rejections (sold out, duplicate, wrong state, not found, forbidden)
  - input validation failures
  - collaborator / integrity failures, which are logged as errors and shown
    to end users as a generic "please try again"
"""

from enum import Enum


class ErrorCode(Enum):
    """Domain error codes."""

    INSUFFICIENT_CAPACITY = "INSUFFICIENT_CAPACITY"
    CAPACITY_EXCEEDED = "CAPACITY_EXCEEDED"
    DUPLICATE_ACTIVE = "DUPLICATE_ACTIVE"
    ALREADY_CANCELLED = "ALREADY_CANCELLED"
    NOT_PENDING = "NOT_PENDING"
    ITEM_IN_USE = "ITEM_IN_USE"
    REGISTRATION_REQUIRED = "REGISTRATION_REQUIRED"
    NOT_GATED = "NOT_GATED"
    ITEM_NOT_FOUND = "ITEM_NOT_FOUND"
    TICKET_NOT_FOUND = "TICKET_NOT_FOUND"
    REGISTRATION_NOT_FOUND = "REGISTRATION_NOT_FOUND"
    PROOF_NOT_FOUND = "PROOF_NOT_FOUND"
    FORBIDDEN = "FORBIDDEN"
    VALIDATION_FAILED = "VALIDATION_FAILED"
    STORAGE_UNAVAILABLE = "STORAGE_UNAVAILABLE"
    INTEGRITY_ERROR = "INTEGRITY_ERROR"


class DomainError(Exception):
    """Base domain error with code and user-safe message."""

    code: ErrorCode = ErrorCode.VALIDATION_FAILED
    status_code: int = 400
    # Expected rejections are part of normal traffic; only the others are
    # logged as server errors.
    expected: bool = True

    def __init__(self, message: str, **context) -> None:
        super().__init__(message)
        self.message = message
        self.context = context

    def __str__(self) -> str:
        return f"{self.code.value}: {self.message}"


class InsufficientCapacity(DomainError):
    """Raised by the inventory ledger when a reservation does not fit."""

    code = ErrorCode.INSUFFICIENT_CAPACITY
    status_code = 409

    def __init__(self, item_id: int, requested: int) -> None:
        super().__init__(
            "Not enough tickets left for this item",
            item_id=item_id,
            requested=requested,
        )
        self.item_id = item_id
        self.requested = requested


class CapacityExceeded(DomainError):
    """Raised on submission when a gated item has no capacity left at all."""

    code = ErrorCode.CAPACITY_EXCEEDED
    status_code = 409

    def __init__(self, item_id: int) -> None:
        super().__init__("No tickets available", item_id=item_id)
        self.item_id = item_id


class DuplicateActive(DomainError):
    code = ErrorCode.DUPLICATE_ACTIVE
    status_code = 409

    def __init__(self, user_id: int, item_id: int) -> None:
        super().__init__(
            "You already have a pending or approved registration for this item",
            user_id=user_id,
            item_id=item_id,
        )


class AlreadyCancelled(DomainError):
    code = ErrorCode.ALREADY_CANCELLED
    status_code = 409

    def __init__(self, ticket_id: int) -> None:
        super().__init__("Ticket is already cancelled", ticket_id=ticket_id)


class NotPending(DomainError):
    code = ErrorCode.NOT_PENDING
    status_code = 409

    def __init__(self, registration_id: int, status: str) -> None:
        super().__init__(
            f"Registration is already {status}",
            registration_id=registration_id,
            status=status,
        )
        self.status = status


class ItemInUse(DomainError):
    code = ErrorCode.ITEM_IN_USE
    status_code = 409

    def __init__(self, item_id: int, active_tickets: int) -> None:
        super().__init__(
            "Item still has confirmed tickets",
            item_id=item_id,
            active_tickets=active_tickets,
        )


class RegistrationRequired(DomainError):
    code = ErrorCode.REGISTRATION_REQUIRED
    status_code = 409

    def __init__(self, item_id: int) -> None:
        super().__init__(
            "This item requires a registration with payment proof",
            item_id=item_id,
        )


class NotGated(DomainError):
    code = ErrorCode.NOT_GATED
    status_code = 409

    def __init__(self, item_id: int) -> None:
        super().__init__(
            "This item is sold as a ticket, not by registration",
            item_id=item_id,
        )


class ItemNotFound(DomainError):
    code = ErrorCode.ITEM_NOT_FOUND
    status_code = 404

    def __init__(self, item_id: int) -> None:
        super().__init__("Item not found", item_id=item_id)
        self.item_id = item_id


class TicketNotFound(DomainError):
    code = ErrorCode.TICKET_NOT_FOUND
    status_code = 404

    def __init__(self, ticket_id: int) -> None:
        super().__init__("Ticket not found", ticket_id=ticket_id)


class RegistrationNotFound(DomainError):
    code = ErrorCode.REGISTRATION_NOT_FOUND
    status_code = 404

    def __init__(self, **context) -> None:
        super().__init__("Registration not found", **context)


class ProofNotFound(DomainError):
    code = ErrorCode.PROOF_NOT_FOUND
    status_code = 404

    def __init__(self, ref: str) -> None:
        super().__init__("No payment proof found", ref=ref)


class Forbidden(DomainError):
    code = ErrorCode.FORBIDDEN
    status_code = 403

    def __init__(self, message: str = "Not authorized", **context) -> None:
        super().__init__(message, **context)


class ValidationFailed(DomainError):
    code = ErrorCode.VALIDATION_FAILED
    status_code = 422


class BlobStorageUnavailable(DomainError):
    """Proof storage failed; the whole submission is aborted and may be retried."""

    code = ErrorCode.STORAGE_UNAVAILABLE
    status_code = 503
    expected = False

    def __init__(self, **context) -> None:
        super().__init__("Could not store payment proof, please try again", **context)


class IntegrityViolation(DomainError):
    """
    A storage-level invariant was found broken (negative capacity, release
    past max_capacity, credential collisions exhausted). Never self-corrected.
    """

    code = ErrorCode.INTEGRITY_ERROR
    status_code = 500
    expected = False

    def __init__(self, detail: str, **context) -> None:
        super().__init__("Something went wrong, please try again", detail=detail, **context)
        self.detail = detail


class NotificationError(Exception):
    """Raised by notifier adapters; never aborts a registration decision."""
