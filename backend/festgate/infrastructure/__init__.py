"""
Infrastructure layer - external collaborators (blob storage, notifications).
Keeps business logic clean from implementation details.
"""

from .blob_store import BlobStore, DatabaseBlobStore, StoredBlob, get_blob_store
from .notifier import LogNotifier, NotificationKind, Notifier, WebhookNotifier, get_notifier

__all__ = [
    'BlobStore', 'DatabaseBlobStore', 'StoredBlob', 'get_blob_store',
    'Notifier', 'NotificationKind', 'LogNotifier', 'WebhookNotifier', 'get_notifier',
]
