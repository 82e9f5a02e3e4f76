"""
Pydantic schemas for the gate-scanning surface.
"""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field


class ScanRequest(BaseModel):
    # Either the bare token or the JSON QR payload as read by the scanner
    code: str = Field(..., min_length=1, max_length=2000)
    registration_id: Optional[int] = None


class Holder(BaseModel):
    user_id: int
    name: str
    email: str


class ScanResponse(BaseModel):
    result: str
    message: str
    registration_id: Optional[int] = None
    item_id: Optional[int] = None
    item_title: Optional[str] = None
    holder: Optional[Holder] = None
    scanned_at: Optional[datetime] = None
    scanned_by: Optional[str] = None
