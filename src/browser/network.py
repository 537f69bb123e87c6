"""
Network activity tracking from the Chrome performance log.

ChromeDriver exposes DevTools ``Network.*`` events through the
``performance`` log type. Reading the log consumes it, so one monitor keeps
the state (first response, in-flight requests) across the successive waits.
The ``response_received`` and ``request_idle`` methods are WebDriverWait
conditions.
"""

import json
import time
from typing import Any, Callable, Dict, Optional, Set


REQUEST_STARTED = "Network.requestWillBeSent"
RESPONSE_RECEIVED = "Network.responseReceived"
REQUEST_FINISHED = {"Network.loadingFinished", "Network.loadingFailed"}

# quiet window with no in-flight requests before the page counts as idle
DEFAULT_IDLE_QUIET_SECONDS = 0.3


class NetworkMonitor:
    """
    Follows network events of the driver's current tab.

    Attributes:
        first_response: DevTools Response object of the first response after reset
        in_flight: Request ids started but not yet finished
    """

    def __init__(
        self,
        driver: Any,
        quiet_seconds: float = DEFAULT_IDLE_QUIET_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.driver = driver
        self.quiet_seconds = quiet_seconds
        self.clock = clock
        self.first_response: Optional[Dict[str, Any]] = None
        self.in_flight: Set[str] = set()
        self.last_activity = clock()

    def reset(self) -> None:
        """Discard buffered events and state left by earlier pages."""
        self.driver.get_log("performance")
        self.first_response = None
        self.in_flight.clear()
        self.last_activity = self.clock()

    def poll(self) -> None:
        for entry in self.driver.get_log("performance"):
            try:
                event = json.loads(entry["message"])["message"]
            except (KeyError, TypeError, ValueError):
                continue
            self._handle(event.get("method"), event.get("params") or {})

    def _handle(self, method: Optional[str], params: Dict[str, Any]) -> None:
        request_id = params.get("requestId")

        if method == REQUEST_STARTED and request_id:
            self.in_flight.add(request_id)
        elif method in REQUEST_FINISHED:
            self.in_flight.discard(request_id)
        elif method == RESPONSE_RECEIVED:
            if self.first_response is None:
                self.first_response = params.get("response") or {}
        else:
            return

        self.last_activity = self.clock()

    @property
    def status_code(self) -> Optional[int]:
        if not self.first_response:
            return None
        return self.first_response.get("status")

    def response_received(self, driver: Any = None) -> bool:
        self.poll()
        return self.first_response is not None

    def request_idle(self, driver: Any = None) -> bool:
        self.poll()
        if self.in_flight:
            return False
        return self.clock() - self.last_activity >= self.quiet_seconds


def document_complete(driver: Any) -> bool:
    """WebDriverWait condition: the navigated document finished its load lifecycle."""
    return bool(
        driver.execute_script(
            "return document.readyState === 'complete' && location.href !== 'about:blank';"
        )
    )
