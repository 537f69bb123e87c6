"""Browser module - page acquisition through a real Chromium browser."""

from .exceptions import (
    BrowserError,
    NavigationError,
    NavigationTimeoutError,
    PageAcquisitionError,
    UnreachableError,
)
from .preflight import ReachabilityProber
from .session import BrowserSession, SessionState

__all__ = [
    "BrowserSession",
    "SessionState",
    "ReachabilityProber",
    "BrowserError",
    "PageAcquisitionError",
    "UnreachableError",
    "NavigationError",
    "NavigationTimeoutError",
]
