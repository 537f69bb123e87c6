"""
Comparison domain models.

Describes the two pages to compare, the per-page acquisition result and the
single outcome record returned to the invoking transport.
"""

import json
from dataclasses import dataclass
from typing import Any, Dict, Optional

import jsonschema

from src.domain.exceptions import MalformedRequestError
from src.utils import url as url_utils


PAGE_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "server_ip": {"type": ["string", "null"]},
        "url": {"type": "string", "minLength": 1},
    },
    "required": ["url"],
}

REQUEST_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "old_page": PAGE_SCHEMA,
        "new_page": PAGE_SCHEMA,
    },
    "required": ["old_page", "new_page"],
}


@dataclass(frozen=True)
class PageRef:
    """
    Identity of one page instance to acquire.

    Attributes:
        url: Page URL to navigate to
        server_ip: Address overriding DNS for the URL's domain ("" means standard DNS)
    """

    url: str
    server_ip: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PageRef":
        return cls(url=data["url"], server_ip=data.get("server_ip") or "")

    @property
    def domain(self) -> str:
        """Host name of the URL. Raises DomainExtractionError when there is none."""
        return url_utils.get_domain_from_url(self.url)

    def to_dict(self) -> Dict[str, str]:
        return {"server_ip": self.server_ip, "url": self.url}


@dataclass(frozen=True)
class ComparisonRequest:
    """Unit of work for one invocation: the old and the new deployment of a page."""

    old_page: PageRef
    new_page: PageRef

    @classmethod
    def from_dict(cls, data: Any) -> "ComparisonRequest":
        """
        Validate and build a request from a decoded payload.

        Raises:
            MalformedRequestError: If required fields are missing or mistyped
        """
        try:
            jsonschema.validate(instance=data, schema=REQUEST_SCHEMA)
        except jsonschema.ValidationError as e:
            location = "/".join(str(part) for part in e.absolute_path) or "<root>"
            raise MalformedRequestError(
                f"Invalid comparison request at {location}: {e.message}"
            ) from e

        return cls(
            old_page=PageRef.from_dict(data["old_page"]),
            new_page=PageRef.from_dict(data["new_page"]),
        )

    @classmethod
    def from_message(cls, message: str) -> "ComparisonRequest":
        """
        Parse the JSON message body carried by the SNS notification.

        Raises:
            MalformedRequestError: If the message is not valid JSON or fails validation
        """
        try:
            data = json.loads(message)
        except (TypeError, json.JSONDecodeError) as e:
            raise MalformedRequestError(f"unexpected error parsing SNS message: {e}") from e
        return cls.from_dict(data)

    @classmethod
    def from_sns_event(cls, event: Any) -> "ComparisonRequest":
        """
        Extract the request from an SNS event.

        Every notification carries a single published message, so only the
        first record is read.
        """
        try:
            message = event["Records"][0]["Sns"]["Message"]
        except (KeyError, IndexError, TypeError) as e:
            raise MalformedRequestError(f"Event is not an SNS notification: {e!r}") from e
        return cls.from_message(message)


@dataclass
class AcquisitionResult:
    """
    Outcome of acquiring one page's rendered HTML.

    Attributes:
        html: Rendered document markup (empty on failure)
        message: User-facing explanation when acquisition failed
        error: Underlying exception when acquisition failed
    """

    html: str = ""
    message: str = ""
    error: Optional[Exception] = None

    @property
    def succeeded(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, html: str) -> "AcquisitionResult":
        return cls(html=html)

    @classmethod
    def failure(cls, message: str, error: Exception) -> "AcquisitionResult":
        return cls(message=message, error=error)


@dataclass
class EvidenceCapture:
    """Result of one screenshot + upload attempt."""

    url: Optional[str] = None
    error: Optional[Exception] = None

    @property
    def succeeded(self) -> bool:
        return self.error is None and bool(self.url)


@dataclass
class ComparisonOutcome:
    """
    The sole output record of an invocation.

    Empty ``message`` means the comparison ran to completion; otherwise it
    says where and why things didn't go as planned.
    """

    similarity: float = 0.0
    message: str = ""
    old_screenshot_url: str = ""
    new_screenshot_url: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "Similarity": self.similarity,
            "message": self.message,
            "old_screenshot_url": self.old_screenshot_url,
            "new_screenshot_url": self.new_screenshot_url,
        }


@dataclass
class ComparisonResult:
    """Outcome plus the error of a terminal per-page failure, if any."""

    outcome: ComparisonOutcome
    error: Optional[Exception] = None

    @property
    def failed(self) -> bool:
        return self.error is not None
