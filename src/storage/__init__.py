"""Storage module - screenshot evidence persisted to R2."""

from .exceptions import EvidenceUploadError, StorageError
from .r2_client import PRESIGN_EXPIRES_SECONDS, R2EvidenceStore

__all__ = [
    "R2EvidenceStore",
    "PRESIGN_EXPIRES_SECONDS",
    "StorageError",
    "EvidenceUploadError",
]
