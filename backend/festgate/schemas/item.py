"""
Pydantic schemas for sellable item request/response validation.
"""

from datetime import datetime
from typing import Literal, Optional
from pydantic import BaseModel, Field, field_validator

ItemKind = Literal["workshop", "concert", "competition", "pass"]


def _normalize_emails(emails: list[str]) -> list[str]:
    return sorted({e.strip().lower() for e in emails if e and e.strip()})


class ItemCreate(BaseModel):
    kind: ItemKind
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=5000)
    venue: Optional[str] = Field(None, max_length=255)
    starts_at: Optional[datetime] = None
    gated: bool = False
    unit_price: int = Field(0, ge=0)
    max_capacity: int = Field(..., gt=0, le=100000)
    reviewer_emails: list[str] = Field(default_factory=list)
    scanner_emails: list[str] = Field(default_factory=list)

    @field_validator("reviewer_emails", "scanner_emails")
    @classmethod
    def normalize_emails(cls, value: list[str]) -> list[str]:
        return _normalize_emails(value)


class ItemUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=5000)
    venue: Optional[str] = Field(None, max_length=255)
    starts_at: Optional[datetime] = None
    unit_price: Optional[int] = Field(None, ge=0)
    max_capacity: Optional[int] = Field(None, gt=0, le=100000)
    reviewer_emails: Optional[list[str]] = None
    scanner_emails: Optional[list[str]] = None

    @field_validator("reviewer_emails", "scanner_emails")
    @classmethod
    def normalize_emails(cls, value: Optional[list[str]]) -> Optional[list[str]]:
        return None if value is None else _normalize_emails(value)


class ItemResponse(BaseModel):
    id: int
    kind: str
    title: str
    description: Optional[str]
    venue: Optional[str]
    starts_at: Optional[datetime]
    gated: bool
    unit_price: int
    max_capacity: int
    available_count: int
    created_at: datetime

    model_config = {"from_attributes": True}


class ItemAdminResponse(ItemResponse):
    reviewer_emails: list[str]
    scanner_emails: list[str]
    is_archived: bool
    version: int


class ItemListResponse(BaseModel):
    items: list[ItemResponse]
    total: int
    page: int
    page_size: int
    cached: bool = False


class ItemAccess(BaseModel):
    id: int
    title: str
    kind: str

    model_config = {"from_attributes": True}


class AccessCheckResponse(BaseModel):
    allowed: bool
    items: list[ItemAccess]
