"""
Gated registration endpoints: submission with payment proof, reviewer
decisions, and the holder's QR credential.
"""

from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Query, Response, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from festgate.db.session import get_db
from festgate.models.user import User
from festgate.schemas.registration import (
    CredentialResponse,
    DecisionResponse,
    DenyRequest,
    RegistrationResponse,
    RegistrationStats,
)
from festgate.services import registration_service
from festgate.services.cache_service import invalidate_item_cache
from festgate.infrastructure.blob_store import BlobStore, get_blob_store
from festgate.infrastructure.notifier import Notifier, get_notifier
from festgate.core.errors import RegistrationNotFound
from festgate.core.security import get_current_user
from festgate.core.logging import get_logger

logger = get_logger(__name__)
router = APIRouter(tags=["Registrations"])


@router.post(
    "/items/{item_id}/registrations",
    response_model=RegistrationResponse,
    status_code=status.HTTP_201_CREATED,
)
async def submit_registration(
    item_id: int,
    payment_proof: UploadFile = File(...),
    transaction_id: Optional[str] = Form(None),
    user: User = Depends(get_current_user),
    blob_store: BlobStore = Depends(get_blob_store),
    db: AsyncSession = Depends(get_db),
):
    """
    Register for a gated item by uploading a payment screenshot.
    Capacity is not reserved until a reviewer approves.
    """
    proof = await payment_proof.read()
    return await registration_service.submit(
        db,
        blob_store,
        user.id,
        item_id,
        proof,
        payment_proof.content_type or "",
        transaction_id,
    )


@router.get("/items/{item_id}/registrations", response_model=list[RegistrationResponse])
async def list_item_registrations(
    item_id: int,
    status_filter: Optional[str] = Query(None, alias="status", pattern="^(pending|approved|denied)$"),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Reviewer queue for an item."""
    return await registration_service.list_for_item(db, item_id, user, status_filter)


@router.get("/items/{item_id}/registrations/mine", response_model=RegistrationResponse)
async def my_registration(
    item_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    registration = await registration_service.get_for_user(db, user.id, item_id)
    if registration is None:
        raise RegistrationNotFound(user_id=user.id, item_id=item_id)
    return registration


@router.put("/items/{item_id}/registrations/mine", response_model=RegistrationResponse)
async def replace_my_payment_proof(
    item_id: int,
    payment_proof: UploadFile = File(...),
    transaction_id: Optional[str] = Form(None),
    user: User = Depends(get_current_user),
    blob_store: BlobStore = Depends(get_blob_store),
    db: AsyncSession = Depends(get_db),
):
    """Upload a new payment screenshot while the registration is still pending."""
    proof = await payment_proof.read()
    return await registration_service.replace_proof(
        db,
        blob_store,
        user.id,
        item_id,
        proof,
        payment_proof.content_type or "",
        transaction_id,
    )


@router.get("/items/{item_id}/registrations/stats", response_model=RegistrationStats)
async def item_registration_stats(
    item_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Counts per status for reviewers, e.g. festival pass sales."""
    return await registration_service.registration_stats(db, item_id, user)


@router.get("/items/{item_id}/credential", response_model=CredentialResponse)
async def my_credential(
    item_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """QR code for the authenticated user's approved registration."""
    registration, payload, qr_code = await registration_service.credential_qr(db, user.id, item_id)
    return CredentialResponse(
        registration=RegistrationResponse.model_validate(registration),
        payload=payload,
        qr_code=qr_code,
    )


@router.post("/registrations/{registration_id}/approve", response_model=DecisionResponse)
async def approve_registration(
    registration_id: int,
    user: User = Depends(get_current_user),
    notifier: Notifier = Depends(get_notifier),
    db: AsyncSession = Depends(get_db),
):
    """
    Approve a pending registration. Reserves one unit of capacity; when the
    item filled up meanwhile this returns 409 and the registration stays
    pending.
    """
    result = await registration_service.approve(db, notifier, registration_id, user)
    await invalidate_item_cache()
    return DecisionResponse(
        registration=RegistrationResponse.model_validate(result.registration),
        message="Registration approved",
        warnings=result.warnings,
    )


@router.post("/registrations/{registration_id}/deny", response_model=DecisionResponse)
async def deny_registration(
    registration_id: int,
    body: DenyRequest,
    user: User = Depends(get_current_user),
    notifier: Notifier = Depends(get_notifier),
    db: AsyncSession = Depends(get_db),
):
    result = await registration_service.deny(db, notifier, registration_id, user, body.reason)
    return DecisionResponse(
        registration=RegistrationResponse.model_validate(result.registration),
        message="Registration denied",
        warnings=result.warnings,
    )


@router.get("/registrations/{registration_id}/payment-proof")
async def get_payment_proof(
    registration_id: int,
    user: User = Depends(get_current_user),
    blob_store: BlobStore = Depends(get_blob_store),
    db: AsyncSession = Depends(get_db),
):
    """Raw payment proof image, for its owner and the item's reviewers."""
    blob = await registration_service.fetch_payment_proof(db, blob_store, registration_id, user)
    return Response(
        content=blob.data,
        media_type=blob.content_type,
        headers={"Cache-Control": "private, no-store"},
    )
