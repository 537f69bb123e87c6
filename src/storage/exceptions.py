"""
Exceptions for the evidence store.
"""


class StorageError(Exception):
    """Base exception for evidence storage errors."""

    pass


class EvidenceUploadError(StorageError):
    """
    Raised when a screenshot cannot be written, uploaded or presigned.

    On the low-similarity capture path this degrades the outcome (no evidence
    URLs) without failing the comparison.
    """

    pass
