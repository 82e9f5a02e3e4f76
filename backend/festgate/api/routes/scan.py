"""
Gate scanning endpoint.

Status codes carry the verdict so gate devices can react without parsing
the body: 200 admitted, 409 already scanned, 404 unknown credential.
"""

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from festgate.db.session import get_db
from festgate.models.user import User
from festgate.schemas.scan import Holder, ScanRequest, ScanResponse
from festgate.services.credential_verifier import ScanOutcome, ScanStatus, scan
from festgate.services.credentials import parse_scan_input
from festgate.core.security import get_current_user

router = APIRouter(prefix="/scan", tags=["Scan"])

_STATUS_CODES = {
    ScanStatus.ADMITTED: 200,
    ScanStatus.ALREADY_SCANNED: 409,
    ScanStatus.NOT_FOUND: 404,
}

_MESSAGES = {
    ScanStatus.ADMITTED: "Admitted",
    ScanStatus.ALREADY_SCANNED: "Credential was already scanned",
    ScanStatus.NOT_FOUND: "Credential not recognised",
}


def _to_response(outcome: ScanOutcome) -> ScanResponse:
    holder = None
    if outcome.holder_id is not None:
        holder = Holder(
            user_id=outcome.holder_id,
            name=outcome.holder_name or "",
            email=outcome.holder_email or "",
        )
    return ScanResponse(
        result=outcome.status.value,
        message=_MESSAGES[outcome.status],
        registration_id=outcome.registration_id,
        item_id=outcome.item_id,
        item_title=outcome.item_title,
        holder=holder,
        scanned_at=outcome.scanned_at,
        scanned_by=outcome.scanned_by,
    )


@router.post("", response_model=ScanResponse, responses={404: {"model": ScanResponse}, 409: {"model": ScanResponse}})
async def scan_credential(
    body: ScanRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Admit the holder of a QR credential, exactly once."""
    token, embedded_registration_id = parse_scan_input(body.code)
    registration_id = body.registration_id or embedded_registration_id

    outcome = await scan(db, token, user, registration_id)
    await db.commit()

    return JSONResponse(
        status_code=_STATUS_CODES[outcome.status],
        content=_to_response(outcome).model_dump(mode="json"),
    )
