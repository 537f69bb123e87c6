"""
Exception hierarchy for browser-driven page acquisition.

Per-page failures carry a user-facing ``message`` that ends up in the
comparison outcome, next to the underlying error.
"""

from typing import Optional


class BrowserError(Exception):
    """Base exception for all page acquisition errors."""

    pass


class PageAcquisitionError(BrowserError):
    """
    Base exception for failures that are terminal for one page.

    Attributes:
        url: Page the failure relates to
        message: Text reported back in the comparison outcome
        cause: Underlying library exception, when there is one
    """

    def __init__(self, message: str, url: str, cause: Optional[BaseException] = None):
        detail = f"{message} ({cause})" if cause else message
        super().__init__(detail)
        self.message = message
        self.url = url
        self.cause = cause


class UnreachableError(PageAcquisitionError):
    """
    Raised when the preflight request errors or does not return HTTP 200.

    The browser is never launched for an unreachable page.
    """

    def __init__(
        self,
        url: str,
        address: str,
        status_code: Optional[int] = None,
        cause: Optional[BaseException] = None,
    ):
        if status_code is None:
            message = "The system couldn't connect to the page."
        else:
            message = f"The system couldn't connect to the page (HTTP Status code: {status_code})."
        super().__init__(message, url, cause)
        self.address = address
        self.status_code = status_code


class NavigationError(PageAcquisitionError):
    """Raised when the browser fails while navigating or waiting for the page to settle."""

    def __init__(self, url: str, cause: Optional[BaseException] = None, stage: str = "navigate"):
        super().__init__(f"Error while trying to navigate to {url}", url, cause)
        self.stage = stage


class NavigationTimeoutError(NavigationError):
    """Raised when one of the load synchronization waits exceeds its budget."""

    pass
