"""
Credential verifier: admits an approved registration at the gate, once.

CONCURRENCY STRATEGY: Conditional UPDATE on the scanned flag
============================================================

Two gate devices can read the same QR (a shared screenshot) within
milliseconds. The admission is a single statement:

    UPDATE registrations SET scanned = true, scanned_at = :now, scanned_by = :who
    WHERE credential = :token AND status = 'approved' AND scanned = false

One row affected -> Admitted. Zero rows -> the credential was consumed by
someone else, reported as AlreadyScanned together with the original
scanned_at/scanned_by so the gate operator can flag the duplicate. There is
no un-scan: corrections are an administrative job outside this module.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from festgate.models.item import Item
from festgate.models.registration import Registration
from festgate.models.user import User
from festgate.core.errors import Forbidden
from festgate.core.logging import get_logger
from festgate.core.metrics import record_scan
from festgate.services import credentials
from festgate.services.registration_service import can_scan

logger = get_logger(__name__)


class ScanStatus(str, Enum):
    ADMITTED = "admitted"
    ALREADY_SCANNED = "already_scanned"
    NOT_FOUND = "not_found"


@dataclass(frozen=True)
class ScanOutcome:
    status: ScanStatus
    registration_id: Optional[int] = None
    item_id: Optional[int] = None
    item_title: Optional[str] = None
    holder_id: Optional[int] = None
    holder_name: Optional[str] = None
    holder_email: Optional[str] = None
    scanned_at: Optional[datetime] = None
    scanned_by: Optional[str] = None


async def scan(
    db: AsyncSession,
    token: str,
    scanner: User,
    registration_id: Optional[int] = None,
) -> ScanOutcome:
    """
    Consume a credential at the gate.

    `registration_id`, when the QR payload carried one, must match the
    registration owning the token.
    """
    if not credentials.is_well_formed(token):
        record_scan("not_found")
        logger.warning("credential_scan_rejected", reason="malformed", scanner=scanner.email)
        return ScanOutcome(ScanStatus.NOT_FOUND)

    result = await db.execute(
        select(Registration, Item, User)
        .join(Item, Item.id == Registration.item_id)
        .join(User, User.id == Registration.user_id)
        .where(Registration.credential == token, Registration.status == "approved")
    )
    row = result.one_or_none()
    if row is None or (registration_id is not None and row.Registration.id != registration_id):
        record_scan("not_found")
        logger.warning(
            "credential_scan_rejected",
            reason="unknown_token",
            scanner=scanner.email,
            registration_id=registration_id,
        )
        return ScanOutcome(ScanStatus.NOT_FOUND)

    registration, item, holder = row
    if not can_scan(scanner, item):
        raise Forbidden("Not a scanner for this item", item_id=item.id)

    now = datetime.now(timezone.utc)
    consumed = await db.execute(
        update(Registration)
        .where(
            Registration.id == registration.id,
            Registration.credential == token,
            Registration.status == "approved",
            Registration.scanned.is_(False),
        )
        .values(scanned=True, scanned_at=now, scanned_by=scanner.email)
        .execution_options(synchronize_session=False)
    )

    base = dict(
        registration_id=registration.id,
        item_id=item.id,
        item_title=item.title,
        holder_id=holder.id,
        holder_name=holder.name,
        holder_email=holder.email,
    )

    if consumed.rowcount == 1:
        record_scan("admitted")
        logger.info(
            "credential_admitted",
            registration_id=registration.id,
            item_id=item.id,
            user_id=holder.id,
            scanner=scanner.email,
        )
        return ScanOutcome(ScanStatus.ADMITTED, scanned_at=now, scanned_by=scanner.email, **base)

    # Lost the race or presented again: report the original scan
    await db.refresh(registration)
    record_scan("already_scanned")
    logger.warning(
        "credential_already_scanned",
        registration_id=registration.id,
        item_id=item.id,
        user_id=holder.id,
        scanner=scanner.email,
        first_scanned_at=str(registration.scanned_at),
        first_scanned_by=registration.scanned_by,
    )
    return ScanOutcome(
        ScanStatus.ALREADY_SCANNED,
        scanned_at=registration.scanned_at,
        scanned_by=registration.scanned_by,
        **base,
    )
