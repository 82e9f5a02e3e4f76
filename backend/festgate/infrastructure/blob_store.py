"""
Blob storage for payment proof images.

BlobStore is the collaborator interface; DatabaseBlobStore keeps blobs in the
payment_proofs table inside the caller's session. Because the blob is written
in the same transaction as the registration that references it, a submission
that fails later leaves no orphaned proof, and a failed store aborts the
submission before anything else is written.
"""

import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass

from fastapi import Depends
from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from festgate.core.errors import BlobStorageUnavailable, ProofNotFound
from festgate.core.logging import get_logger
from festgate.db.session import get_db
from festgate.models.payment_proof import PaymentProof

logger = get_logger(__name__)


@dataclass(frozen=True)
class StoredBlob:
    data: bytes
    content_type: str


class BlobStore(ABC):
    """
    Interface for proof storage.

    A ref returned by store() must resolve through fetch() until delete()
    is called for it.
    """

    @abstractmethod
    async def store(self, data: bytes, content_type: str) -> str:
        pass

    @abstractmethod
    async def fetch(self, ref: str) -> StoredBlob:
        pass

    @abstractmethod
    async def delete(self, ref: str) -> None:
        pass


class DatabaseBlobStore(BlobStore):
    def __init__(self, db: AsyncSession):
        self.db = db

    async def store(self, data: bytes, content_type: str) -> str:
        ref = uuid.uuid4().hex
        try:
            self.db.add(
                PaymentProof(ref=ref, content_type=content_type, size=len(data), data=data)
            )
            await self.db.flush()
        except SQLAlchemyError as e:
            logger.error("blob_store_failed", content_type=content_type, size=len(data), error=str(e))
            raise BlobStorageUnavailable(content_type=content_type) from e

        logger.info("blob_stored", ref=ref, content_type=content_type, size=len(data))
        return ref

    async def fetch(self, ref: str) -> StoredBlob:
        result = await self.db.execute(
            select(PaymentProof.data, PaymentProof.content_type).where(PaymentProof.ref == ref)
        )
        row = result.one_or_none()
        if row is None:
            raise ProofNotFound(ref)
        return StoredBlob(data=row.data, content_type=row.content_type)

    async def delete(self, ref: str) -> None:
        await self.db.execute(delete(PaymentProof).where(PaymentProof.ref == ref))
        logger.info("blob_deleted", ref=ref)


def get_blob_store(db: AsyncSession = Depends(get_db)) -> BlobStore:
    """Blob store bound to the request's session (FastAPI dependency)."""
    return DatabaseBlobStore(db)
