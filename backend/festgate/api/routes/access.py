"""
Role checks used by the reviewer and gate apps to decide which screens to show.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from festgate.db.session import get_db
from festgate.models.user import User
from festgate.schemas.item import AccessCheckResponse, ItemAccess
from festgate.schemas.user import UserResponse
from festgate.services.registration_service import reviewer_items, scanner_items
from festgate.core.security import get_current_user

router = APIRouter(tags=["Access"])


@router.get("/me", response_model=UserResponse)
async def whoami(user: User = Depends(get_current_user)):
    return user


@router.get("/access/reviewer", response_model=AccessCheckResponse)
async def reviewer_access(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    items = await reviewer_items(db, user)
    return AccessCheckResponse(
        allowed=bool(items),
        items=[ItemAccess.model_validate(i) for i in items],
    )


@router.get("/access/scanner", response_model=AccessCheckResponse)
async def scanner_access(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    items = await scanner_items(db, user)
    return AccessCheckResponse(
        allowed=bool(items),
        items=[ItemAccess.model_validate(i) for i in items],
    )
