"""Domain models - page identities and comparison records."""

from .comparison import (
    AcquisitionResult,
    ComparisonOutcome,
    ComparisonRequest,
    ComparisonResult,
    EvidenceCapture,
    PageRef,
)
from .exceptions import DomainExtractionError, MalformedRequestError

__all__ = [
    "AcquisitionResult",
    "ComparisonOutcome",
    "ComparisonRequest",
    "ComparisonResult",
    "EvidenceCapture",
    "PageRef",
    "DomainExtractionError",
    "MalformedRequestError",
]
