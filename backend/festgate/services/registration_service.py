"""
Registration workflow for gated items (manual payment-proof review).

STATE MACHINE
=============

    pending --approve--> approved   (terminal, credential issued)
    pending --deny-----> denied     (user may submit a new registration)
    pending --replace_proof--> pending  (new screenshot, old blob deleted)

CAPACITY POLICY: reserve at approval, not at submission
=======================================================

  Many submissions for a popular concert night are denied (bad screenshots,
  reused transaction ids), so submission only pre-checks that the item is
  not already full. The reservation happens when a reviewer approves: that
  call goes through inventory_ledger.reserve(), so two reviewers approving
  two different registrations for the last seat serialize on the item row
  and exactly one of them gets it. The other approval fails with
  InsufficientCapacity and its registration stays pending.

ATOMICITY
=========

  - one active registration per (user, item): partial unique index on
    registrations(user_id, item_id) WHERE status IN ('pending', 'approved').
    The insert runs in a SAVEPOINT and an IntegrityError is DuplicateActive.
  - approve/deny transitions are conditional UPDATEs on status = 'pending';
    zero rows means someone else decided first (NotPending), and the whole
    request transaction, including any capacity reserved, rolls back.
  - credentials are unique; a collision is logged and retried with a fresh
    token inside a SAVEPOINT, never overwritten.

NOTIFICATIONS
=============

  Decisions are committed before the notifier runs. A notifier failure is a
  warning on the result; the decision stands.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Optional

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from festgate.models.item import Item
from festgate.models.registration import ACTIVE_STATUSES, REGISTRATION_STATUSES, Registration
from festgate.models.user import User
from festgate.core.config import get_settings
from festgate.core.errors import (
    BlobStorageUnavailable,
    CapacityExceeded,
    DuplicateActive,
    Forbidden,
    InsufficientCapacity,
    IntegrityViolation,
    ItemNotFound,
    NotGated,
    NotPending,
    RegistrationNotFound,
    ValidationFailed,
)
from festgate.core.logging import get_logger
from festgate.core.metrics import (
    credential_collisions,
    notification_failures,
    record_registration_decision,
    record_registration_submission,
)
from festgate.domain.registration import ApprovedRegistration, PendingRegistration, to_state
from festgate.infrastructure.blob_store import BlobStore, StoredBlob
from festgate.infrastructure.notifier import NotificationKind, Notifier
from festgate.services import credentials, inventory_ledger

logger = get_logger(__name__)

ALLOWED_PROOF_TYPES = ("image/png", "image/jpeg", "image/webp", "image/heic")


@dataclass
class DecisionResult:
    registration: Registration
    warnings: list[str] = field(default_factory=list)


def can_review(user: User, item: Item) -> bool:
    return user.is_admin or user.email.lower() in (item.reviewer_emails or [])


def can_scan(user: User, item: Item) -> bool:
    return user.is_admin or user.email.lower() in (item.scanner_emails or [])


async def _get_live_item(db: AsyncSession, item_id: int) -> Item:
    result = await db.execute(
        select(Item).where(Item.id == item_id, Item.is_archived.is_(False))
    )
    item = result.scalar_one_or_none()
    if not item:
        raise ItemNotFound(item_id)
    return item


async def _load_for_review(db: AsyncSession, registration_id: int) -> tuple[Registration, Item, User]:
    result = await db.execute(
        select(Registration, Item, User)
        .join(Item, Item.id == Registration.item_id)
        .join(User, User.id == Registration.user_id)
        .where(Registration.id == registration_id)
    )
    row = result.one_or_none()
    if row is None:
        raise RegistrationNotFound(registration_id=registration_id)
    return row


def _validate_proof(proof: bytes, content_type: str) -> None:
    if not proof:
        raise ValidationFailed("Payment proof is required")
    if len(proof) > get_settings().MAX_PROOF_BYTES:
        raise ValidationFailed("Payment proof is too large", size=len(proof))
    if content_type not in ALLOWED_PROOF_TYPES:
        raise ValidationFailed("Payment proof must be an image", content_type=content_type)


async def submit(
    db: AsyncSession,
    blob_store: BlobStore,
    user_id: int,
    item_id: int,
    proof: bytes,
    content_type: str,
    transaction_id: Optional[str] = None,
) -> Registration:
    """Submit a payment proof for a gated item; creates a pending registration."""
    item = await _get_live_item(db, item_id)
    if not item.gated:
        raise NotGated(item_id)
    _validate_proof(proof, content_type)

    # Fast path; the unique index below is what actually enforces this
    existing = await db.execute(
        select(Registration.id).where(
            Registration.user_id == user_id,
            Registration.item_id == item_id,
            Registration.status.in_(ACTIVE_STATUSES),
        )
    )
    if existing.first() is not None:
        record_registration_submission("duplicate")
        raise DuplicateActive(user_id, item_id)

    # Pre-check only; capacity is reserved at approval
    available, _ = await inventory_ledger.snapshot(db, item_id)
    if available <= 0:
        record_registration_submission("full")
        raise CapacityExceeded(item_id)

    try:
        proof_ref = await blob_store.store(proof, content_type)
    except BlobStorageUnavailable:
        record_registration_submission("storage_error")
        raise

    registration = Registration(
        user_id=user_id,
        item_id=item_id,
        status="pending",
        payment_proof_ref=proof_ref,
        transaction_id=(transaction_id or "").strip() or None,
    )
    try:
        async with db.begin_nested():
            db.add(registration)
    except IntegrityError:
        record_registration_submission("duplicate")
        logger.info("registration_duplicate_race", user_id=user_id, item_id=item_id)
        raise DuplicateActive(user_id, item_id)

    await db.refresh(registration)
    record_registration_submission("accepted")
    logger.info(
        "registration_submitted",
        registration_id=registration.id,
        user_id=user_id,
        item_id=item_id,
        proof_ref=proof_ref,
    )
    return registration


async def replace_proof(
    db: AsyncSession,
    blob_store: BlobStore,
    user_id: int,
    item_id: int,
    proof: bytes,
    content_type: str,
    transaction_id: Optional[str] = None,
) -> Registration:
    """
    Swap the payment proof on the user's pending registration (a clearer
    screenshot, a corrected transaction id). The old blob is deleted in the
    same transaction. Approved registrations are final.
    """
    await _get_live_item(db, item_id)
    _validate_proof(proof, content_type)

    result = await db.execute(
        select(Registration).where(
            Registration.user_id == user_id,
            Registration.item_id == item_id,
            Registration.status.in_(ACTIVE_STATUSES),
        )
    )
    registration = result.scalar_one_or_none()
    if registration is None:
        raise RegistrationNotFound(user_id=user_id, item_id=item_id)
    if not isinstance(to_state(registration), PendingRegistration):
        raise NotPending(registration.id, registration.status)

    old_ref = registration.payment_proof_ref
    new_ref = await blob_store.store(proof, content_type)

    values = {"payment_proof_ref": new_ref}
    if transaction_id and transaction_id.strip():
        values["transaction_id"] = transaction_id.strip()

    # A reviewer may approve between the read above and this write
    updated = await db.execute(
        update(Registration)
        .where(Registration.id == registration.id, Registration.status == "pending")
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if updated.rowcount == 0:
        await db.refresh(registration)
        raise NotPending(registration.id, registration.status)

    await blob_store.delete(old_ref)
    await db.refresh(registration)

    logger.info(
        "registration_proof_replaced",
        registration_id=registration.id,
        user_id=user_id,
        item_id=item_id,
        proof_ref=new_ref,
    )
    return registration


async def _issue_credential(
    db: AsyncSession,
    registration_id: int,
    reviewer_email: str,
) -> str:
    """
    Move a pending registration to approved with a fresh credential.
    Returns the credential; raises NotPending if the registration was
    decided concurrently.
    """
    settings = get_settings()
    for attempt in range(1, settings.CREDENTIAL_MAX_ATTEMPTS + 1):
        token = credentials.generate_token()
        try:
            async with db.begin_nested():
                result = await db.execute(
                    update(Registration)
                    .where(Registration.id == registration_id, Registration.status == "pending")
                    .values(
                        status="approved",
                        credential=token,
                        denial_reason=None,
                        reviewed_by=reviewer_email,
                        reviewed_at=datetime.now(timezone.utc),
                    )
                    .execution_options(synchronize_session=False)
                )
        except IntegrityError:
            credential_collisions.inc()
            logger.error("credential_collision", registration_id=registration_id, attempt=attempt)
            continue

        if result.rowcount == 0:
            current = await db.execute(
                select(Registration.status).where(Registration.id == registration_id)
            )
            raise NotPending(registration_id, current.scalar_one())
        return token

    raise IntegrityViolation(
        "could not generate a unique credential",
        registration_id=registration_id,
        attempts=settings.CREDENTIAL_MAX_ATTEMPTS,
    )


async def _dispatch(
    notifier: Notifier,
    user: User,
    kind: NotificationKind,
    build_payload: Callable[[], dict],
    registration_id: int,
) -> list[str]:
    """
    Notify the holder of a committed decision. Runs after commit, so any
    failure here (rendering the payload or sending it) is a warning only.
    """
    try:
        payload = build_payload()
        await notifier.notify(user.id, kind, {"email": user.email, "name": user.name, **payload})
    except Exception as e:
        notification_failures.labels(kind=kind.value).inc()
        logger.warning(
            "notification_failed",
            registration_id=registration_id,
            user_id=user.id,
            kind=kind.value,
            error=str(e),
            error_type=type(e).__name__,
        )
        return [f"Decision saved but the {kind.value} notification could not be sent"]
    return []


async def approve(
    db: AsyncSession,
    notifier: Notifier,
    registration_id: int,
    reviewer: User,
) -> DecisionResult:
    """Approve a pending registration: reserve one unit, issue the credential."""
    registration, item, holder = await _load_for_review(db, registration_id)

    if not can_review(reviewer, item):
        raise Forbidden("Not a reviewer for this item", item_id=item.id)

    state = to_state(registration)
    if not isinstance(state, PendingRegistration):
        raise NotPending(registration_id, registration.status)

    try:
        await inventory_ledger.reserve(db, item.id, 1)
    except InsufficientCapacity:
        record_registration_decision("sold_out")
        logger.info("registration_approval_sold_out", registration_id=registration_id, item_id=item.id)
        raise

    token = await _issue_credential(db, registration_id, reviewer.email)
    await db.commit()
    await db.refresh(registration)

    record_registration_decision("approved")
    logger.info(
        "registration_approved",
        registration_id=registration_id,
        item_id=item.id,
        user_id=holder.id,
        reviewer=reviewer.email,
    )

    def approved_payload() -> dict:
        qr = credentials.qr_payload(token, registration.id, item.id, holder.id)
        return {
            "item_title": item.title,
            "registration_id": registration.id,
            "credential": token,
            "qr_code": credentials.render_qr_data_url(qr),
        }

    warnings = await _dispatch(notifier, holder, NotificationKind.APPROVED, approved_payload, registration_id)
    return DecisionResult(registration=registration, warnings=warnings)


async def deny(
    db: AsyncSession,
    notifier: Notifier,
    registration_id: int,
    reviewer: User,
    reason: str,
) -> DecisionResult:
    """Deny a pending registration with a reason the user will read."""
    reason = (reason or "").strip()
    if not reason:
        raise ValidationFailed("Denial reason is required")

    registration, item, holder = await _load_for_review(db, registration_id)

    if not can_review(reviewer, item):
        raise Forbidden("Not a reviewer for this item", item_id=item.id)

    if not isinstance(to_state(registration), PendingRegistration):
        raise NotPending(registration_id, registration.status)

    result = await db.execute(
        update(Registration)
        .where(Registration.id == registration_id, Registration.status == "pending")
        .values(
            status="denied",
            denial_reason=reason,
            reviewed_by=reviewer.email,
            reviewed_at=datetime.now(timezone.utc),
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        await db.refresh(registration)
        raise NotPending(registration_id, registration.status)

    await db.commit()
    await db.refresh(registration)

    record_registration_decision("denied")
    logger.info(
        "registration_denied",
        registration_id=registration_id,
        item_id=item.id,
        user_id=holder.id,
        reviewer=reviewer.email,
    )

    warnings = await _dispatch(
        notifier,
        holder,
        NotificationKind.DENIED,
        lambda: {"item_title": item.title, "registration_id": registration.id, "reason": reason},
        registration_id,
    )
    return DecisionResult(registration=registration, warnings=warnings)


async def list_for_item(
    db: AsyncSession,
    item_id: int,
    reviewer: User,
    status: Optional[str] = None,
) -> list[Registration]:
    """Reviewer queue for an item, oldest first."""
    item = await _get_live_item(db, item_id)
    if not can_review(reviewer, item):
        raise Forbidden("Not a reviewer for this item", item_id=item_id)

    query = select(Registration).where(Registration.item_id == item_id)
    if status:
        query = query.where(Registration.status == status)
    result = await db.execute(query.order_by(Registration.created_at.asc(), Registration.id.asc()))
    return list(result.scalars().all())


async def get_for_user(db: AsyncSession, user_id: int, item_id: int) -> Optional[Registration]:
    """The user's latest registration for an item, if any."""
    result = await db.execute(
        select(Registration)
        .where(Registration.user_id == user_id, Registration.item_id == item_id)
        .order_by(Registration.created_at.desc(), Registration.id.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def credential_qr(db: AsyncSession, user_id: int, item_id: int) -> tuple[Registration, dict, str]:
    """
    The user's approved registration, the payload its QR code encodes, and
    the QR code itself as a PNG data URL.
    """
    result = await db.execute(
        select(Registration).where(
            Registration.user_id == user_id,
            Registration.item_id == item_id,
            Registration.status == "approved",
        )
    )
    registration = result.scalar_one_or_none()
    if registration is None:
        raise RegistrationNotFound(user_id=user_id, item_id=item_id)

    state = to_state(registration)
    if not isinstance(state, ApprovedRegistration):
        raise RegistrationNotFound(user_id=user_id, item_id=item_id)
    payload = credentials.qr_payload(state.credential, registration.id, item_id, user_id)
    return registration, payload, credentials.render_qr_data_url(payload)


async def fetch_payment_proof(
    db: AsyncSession,
    blob_store: BlobStore,
    registration_id: int,
    requester: User,
) -> StoredBlob:
    """The proof image, for the registration's owner or a reviewer."""
    registration, item, _ = await _load_for_review(db, registration_id)
    if registration.user_id != requester.id and not can_review(requester, item):
        raise Forbidden("Not authorized to view this payment proof", registration_id=registration_id)
    return await blob_store.fetch(registration.payment_proof_ref)


async def registration_stats(db: AsyncSession, item_id: int, reviewer: User) -> dict:
    """Registration counts per status for an item, with the amount each represents."""
    item = await _get_live_item(db, item_id)
    if not can_review(reviewer, item):
        raise Forbidden("Not a reviewer for this item", item_id=item_id)

    result = await db.execute(
        select(Registration.status, func.count(Registration.id))
        .where(Registration.item_id == item_id)
        .group_by(Registration.status)
    )
    counts = dict.fromkeys(REGISTRATION_STATUSES, 0)
    counts.update({status: int(count) for status, count in result.all()})

    available, max_capacity = await inventory_ledger.snapshot(db, item_id)
    return {
        "item_id": item_id,
        "total": sum(counts.values()),
        "approved": counts["approved"],
        "by_status": [
            {"status": status, "count": count, "amount": count * item.unit_price}
            for status, count in counts.items()
        ],
        "available_count": available,
        "max_capacity": max_capacity,
    }


async def reviewer_items(db: AsyncSession, user: User) -> list[Item]:
    return [item for item in await _live_gated_items(db) if can_review(user, item)]


async def scanner_items(db: AsyncSession, user: User) -> list[Item]:
    return [item for item in await _live_gated_items(db) if can_scan(user, item)]


async def _live_gated_items(db: AsyncSession) -> list[Item]:
    result = await db.execute(
        select(Item).where(Item.gated.is_(True), Item.is_archived.is_(False)).order_by(Item.id)
    )
    return list(result.scalars().all())
