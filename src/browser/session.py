"""
Browser session for acquiring one page.

A session owns one Chromium instance (through ChromeDriver) and one active
tab, bound to a single page's domain. It runs the preflight check, navigates
with bounded synchronization waits, extracts the rendered HTML and captures
screenshot evidence.
"""

import os
import shutil
import time
from enum import Enum
from typing import Any, Callable, Optional

from selenium.common.exceptions import TimeoutException, WebDriverException
from selenium.webdriver.support.ui import WebDriverWait

from src.config.settings import Settings
from src.domain.comparison import AcquisitionResult, PageRef
from src.domain.exceptions import DomainExtractionError
from src.storage.exceptions import EvidenceUploadError
from src.utils.logger import StructuredLogger, get_logger
from .exceptions import NavigationError, NavigationTimeoutError, PageAcquisitionError
from .launcher import build_chrome_options, create_driver, create_profile_dir
from .network import NetworkMonitor, document_complete
from .preflight import ReachabilityProber


NAVIGATE_TIMEOUT_SECONDS = 5
NAVIGATION_TIMEOUT_SECONDS = 5
REQUEST_IDLE_TIMEOUT_SECONDS = 10
POLL_FREQUENCY_SECONDS = 0.1
SCREENSHOT_EXTENSION = ".png"


class SessionState(Enum):
    IDLE = "idle"
    LAUNCHING = "launching"
    PAGE_OPEN = "page_open"
    NAVIGATING = "navigating"
    LOADED = "loaded"
    FAILED = "failed"


class BrowserSession:
    """
    Drives one browser through the acquisition pipeline for one page.

    Attributes:
        page: Page identity the session is bound to
        domain: Domain of the page URL (DNS override target and evidence key)
        screenshot_path: Local scratch file for screenshots
        object_key: Key of the screenshot object in the evidence store
        state: Current SessionState
    """

    def __init__(
        self,
        page: PageRef,
        settings: Settings,
        evidence_store: Any,
        prober: Optional[ReachabilityProber] = None,
        logger: Optional[StructuredLogger] = None,
        driver_factory: Callable[[Settings, Any], Any] = create_driver,
    ):
        """
        Args:
            page: Page to acquire
            settings: Process configuration
            evidence_store: Object with ``store(key, local_path) -> url``
            prober: Preflight checker (default: ReachabilityProber)
            logger: Structured logger (default: module logger)
            driver_factory: Callable building a WebDriver from settings and options

        Raises:
            DomainExtractionError: If the page URL has no domain
        """
        self.logger = logger or get_logger(__name__)
        self.page = page
        self.settings = settings

        try:
            self.domain = page.domain
        except DomainExtractionError as e:
            self.logger.error(
                "Can't extract domain from page URL",
                operation="new_browser",
                context={"url": page.url},
                error=str(e),
            )
            raise

        self.screenshot_path = os.path.join(
            settings.temporary_storage, self.domain + SCREENSHOT_EXTENSION
        )
        self.object_key = self.domain + SCREENSHOT_EXTENSION
        self.evidence_store = evidence_store
        self.prober = prober or ReachabilityProber(logger=self.logger)
        self.driver_factory = driver_factory
        self.driver = None
        self.profile_dir: Optional[str] = None
        self.network: Optional[NetworkMonitor] = None
        self.state = SessionState.IDLE

        self.logger.info(
            "NewBrowser",
            operation="new_browser",
            context={"server": page.server_ip, "website": page.url},
        )

    def start(self) -> None:
        """
        Launch the browser and open a blank page.

        Raises:
            NavigationError: If the browser can't be launched
        """
        if self.driver is not None:
            return

        self.state = SessionState.LAUNCHING
        try:
            self.profile_dir = create_profile_dir(self.settings, self.domain)
            options = build_chrome_options(
                self.settings,
                self.domain,
                self.page.server_ip,
                profile_dir=self.profile_dir,
                log=self.logger,
            )
            self.driver = self.driver_factory(self.settings, options)
            self.driver.set_page_load_timeout(NAVIGATE_TIMEOUT_SECONDS)
        except (OSError, WebDriverException) as e:
            self.state = SessionState.FAILED
            self._remove_profile_dir()
            self.logger.error(
                "Failed to launch browser",
                operation="launch_browser",
                context={"domain": self.domain},
                error=str(e),
            )
            raise NavigationError(self.page.url, e, stage="launch") from e

        self.network = NetworkMonitor(self.driver)
        self.state = SessionState.PAGE_OPEN

    def _reopen_page(self) -> None:
        # close the tab and open a new one to kill lingering connections,
        # otherwise the network response wait can hang on a stale page
        stale = self.driver.current_window_handle
        self.driver.switch_to.new_window("tab")
        fresh = self.driver.current_window_handle
        self.driver.switch_to.window(stale)
        self.driver.close()
        self.driver.switch_to.window(fresh)

    def _wait(self, timeout: float, condition: Callable[[Any], bool], stage: str) -> None:
        self.logger.debug(f"Waiting for {stage}", operation="navigate", context={"timeout": timeout})
        WebDriverWait(self.driver, timeout, poll_frequency=POLL_FREQUENCY_SECONDS).until(
            condition, message=f"timed out waiting for {stage}"
        )

    def navigate(self, url: str) -> None:
        """
        Navigate to ``url`` and wait for the page to settle.

        Waits, each with its own budget: first network response (shared with
        issuing the navigation), document load lifecycle, request idle.

        Raises:
            NavigationTimeoutError: If any wait exceeds its budget
            NavigationError: On any other browser failure
        """
        self.start()
        self.state = SessionState.NAVIGATING
        stage = "navigate"

        try:
            self._reopen_page()
            self.network.reset()

            self.logger.info(f"Navigating to {url}", operation="navigate")
            started = time.monotonic()
            self.driver.get(url)

            stage = "network response"
            remaining = max(NAVIGATE_TIMEOUT_SECONDS - (time.monotonic() - started), 0)
            self._wait(remaining, self.network.response_received, stage)

            stage = "page lifecycle events"
            self._wait(NAVIGATION_TIMEOUT_SECONDS, document_complete, stage)

            stage = "requests to be idle"
            self._wait(REQUEST_IDLE_TIMEOUT_SECONDS, self.network.request_idle, stage)
        except TimeoutException as e:
            self._fail_navigation(url, stage, e)
            raise NavigationTimeoutError(url, e, stage=stage) from e
        except WebDriverException as e:
            self._fail_navigation(url, stage, e)
            raise NavigationError(url, e, stage=stage) from e

        self.state = SessionState.LOADED
        self.logger.info(
            f"Waiting done. Page {url} loaded with status: {self.network.status_code}",
            operation="navigate",
            context={"url": url, "status_code": self.network.status_code},
        )

    def _fail_navigation(self, url: str, stage: str, error: Exception) -> None:
        self.state = SessionState.FAILED
        self.logger.error(
            "Error in browser navigation",
            operation="navigate",
            context={"url": url, "stage": stage},
            error=str(error),
        )

    def extract_html(self, url: Optional[str] = None) -> AcquisitionResult:
        """
        Acquire the rendered HTML of the page.

        The preflight check runs first; an unreachable page never reaches the
        browser, since a launch would only cost Lambda time to render an error
        page. Such a page therefore has no tab to screenshot. Failures are
        returned, not raised.

        Args:
            url: URL to navigate to (defaults to the session's page URL)
        """
        url = url or self.page.url

        try:
            self.prober.probe(url, self.page.server_ip, self.domain)
            self.navigate(url)
            html = self.driver.page_source
        except PageAcquisitionError as e:
            return AcquisitionResult.failure(e.message, e)
        except WebDriverException as e:
            self.state = SessionState.FAILED
            error = NavigationError(url, e, stage="extract html")
            return AcquisitionResult.failure(error.message, error)

        return AcquisitionResult.success(html)

    def screenshot(self) -> str:
        """
        Capture the current page and store it as evidence.

        Each call recaptures and overwrites the previous object for the domain.

        Returns:
            Presigned URL of the uploaded screenshot

        Raises:
            EvidenceUploadError: If there is no page to capture or storing fails
        """
        self.logger.info("Trying to capture the screenshot", operation="screenshot")
        if self.driver is None:
            raise EvidenceUploadError(f"No browser page open for {self.domain}")

        try:
            os.makedirs(os.path.dirname(self.screenshot_path) or ".", exist_ok=True)
            saved = self.driver.save_screenshot(self.screenshot_path)
        except (OSError, WebDriverException) as e:
            raise EvidenceUploadError(f"Couldn't capture screenshot of {self.domain}: {e}") from e
        if saved is False:
            raise EvidenceUploadError(f"Couldn't write screenshot to {self.screenshot_path}")

        return self.evidence_store.store(self.object_key, self.screenshot_path)

    def _remove_profile_dir(self) -> None:
        if self.profile_dir is None:
            return
        profile_dir, self.profile_dir = self.profile_dir, None
        try:
            shutil.rmtree(profile_dir)
        except OSError as e:
            self.logger.warning(
                "Couldn't remove browser profile directory",
                operation="close_browser",
                context={"path": profile_dir},
                error=str(e),
            )

    def close(self) -> None:
        """Quit the browser and remove its profile directory. Safe to call more than once."""
        if self.driver is not None:
            driver, self.driver = self.driver, None
            try:
                driver.quit()
            except WebDriverException as e:
                self.logger.warning(
                    "Browser did not shut down cleanly",
                    operation="close_browser",
                    context={"domain": self.domain},
                    error=str(e),
                )
        self._remove_profile_dir()

    def __enter__(self) -> "BrowserSession":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
