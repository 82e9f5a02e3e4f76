"""
Pydantic schemas for the gated registration workflow.
"""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field


class RegistrationResponse(BaseModel):
    id: int
    user_id: int
    item_id: int
    status: str
    transaction_id: Optional[str]
    denial_reason: Optional[str]
    reviewed_by: Optional[str]
    reviewed_at: Optional[datetime]
    scanned: bool
    scanned_at: Optional[datetime]
    created_at: datetime

    model_config = {"from_attributes": True}


class DenyRequest(BaseModel):
    reason: str = Field(..., max_length=1000)


class DecisionResponse(BaseModel):
    registration: RegistrationResponse
    message: str
    warnings: list[str] = []


class CredentialResponse(BaseModel):
    registration: RegistrationResponse
    # What the QR encodes; gate apps that read it send this JSON to /scan
    payload: dict
    qr_code: str


class StatusCount(BaseModel):
    status: str
    count: int
    amount: int


class RegistrationStats(BaseModel):
    item_id: int
    total: int
    approved: int
    by_status: list[StatusCount]
    available_count: int
    max_capacity: int
