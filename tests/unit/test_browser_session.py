"""
Unit tests for BrowserSession.

The WebDriver is a MagicMock; performance log entries are fed through
``get_log`` the way ChromeDriver delivers them.
"""

import json
import os
from unittest.mock import MagicMock, Mock, patch

import pytest
from selenium.common.exceptions import WebDriverException

from src.browser.exceptions import (
    NavigationError,
    NavigationTimeoutError,
    UnreachableError,
)
from src.browser.session import BrowserSession, SessionState
from src.config.settings import Settings
from src.domain.comparison import PageRef
from src.domain.exceptions import DomainExtractionError
from src.storage.exceptions import EvidenceUploadError
from src.utils.logger import NullLogger


PAGE = PageRef(url="https://example.com/landing", server_ip="203.0.113.7")


def perf(method, **params):
    return {"message": json.dumps({"message": {"method": method, "params": params}})}


def loaded_page_events(status=200):
    return [
        perf("Network.requestWillBeSent", requestId="1"),
        perf("Network.responseReceived", requestId="1", response={"status": status}),
        perf("Network.loadingFinished", requestId="1"),
    ]


def _build_driver_mock(batches=None):
    driver = MagicMock()
    queue = list(batches or [])

    def get_log(log_type):
        assert log_type == "performance"
        return queue.pop(0) if queue else []

    driver.get_log.side_effect = get_log
    driver.execute_script.return_value = True
    driver.page_source = "<html><body>hello</body></html>"
    driver.save_screenshot.return_value = True
    return driver


def build_session(tmp_path, driver=None, prober=None, store=None, page=PAGE):
    settings = Settings(temporary_storage=str(tmp_path))
    factory = Mock(return_value=driver or _build_driver_mock())
    session = BrowserSession(
        page,
        settings,
        evidence_store=store or Mock(),
        prober=prober or Mock(),
        logger=NullLogger(),
        driver_factory=factory,
    )
    return session, factory


class TestConstruction:
    def test_paths_derive_from_domain(self, tmp_path):
        session, factory = build_session(tmp_path)

        assert session.domain == "example.com"
        assert session.object_key == "example.com.png"
        assert session.screenshot_path == os.path.join(str(tmp_path), "example.com.png")
        assert session.state == SessionState.IDLE
        factory.assert_not_called()

    def test_url_without_domain_is_fatal(self, tmp_path):
        with pytest.raises(DomainExtractionError):
            build_session(tmp_path, page=PageRef(url="https://"))


class TestExtractHtml:
    def test_success_returns_rendered_html(self, tmp_path):
        # first batch is drained by the reset before navigation
        driver = _build_driver_mock([[perf("Network.requestWillBeSent", requestId="stale")], loaded_page_events()])
        prober = Mock()
        session, factory = build_session(tmp_path, driver=driver, prober=prober)

        result = session.extract_html()

        assert result.succeeded
        assert result.html == "<html><body>hello</body></html>"
        assert session.state == SessionState.LOADED
        assert session.network.status_code == 200
        prober.probe.assert_called_once_with(PAGE.url, "203.0.113.7", "example.com")
        factory.assert_called_once()
        driver.get.assert_called_once_with(PAGE.url)
        driver.set_page_load_timeout.assert_called_once_with(5)

    def test_tab_is_reopened_before_navigation(self, tmp_path):
        driver = _build_driver_mock([[], loaded_page_events()])
        session, _ = build_session(tmp_path, driver=driver)

        session.navigate(PAGE.url)

        driver.switch_to.new_window.assert_called_once_with("tab")
        driver.close.assert_called_once()

    def test_unreachable_page_never_launches_browser(self, tmp_path):
        prober = Mock()
        prober.probe.side_effect = UnreachableError(PAGE.url, "203.0.113.7", status_code=503)
        session, factory = build_session(tmp_path, prober=prober)

        result = session.extract_html()

        assert not result.succeeded
        assert "503" in result.message
        assert isinstance(result.error, UnreachableError)
        factory.assert_not_called()
        assert session.driver is None

    @patch("src.browser.session.NAVIGATE_TIMEOUT_SECONDS", 0)
    def test_missing_network_response_times_out(self, tmp_path):
        driver = _build_driver_mock()
        session, _ = build_session(tmp_path, driver=driver)

        result = session.extract_html()

        assert not result.succeeded
        assert isinstance(result.error, NavigationTimeoutError)
        assert result.error.stage == "network response"
        assert result.message == f"Error while trying to navigate to {PAGE.url}"
        assert session.state == SessionState.FAILED

    @patch("src.browser.session.NAVIGATION_TIMEOUT_SECONDS", 0)
    def test_document_never_completes(self, tmp_path):
        driver = _build_driver_mock([[], loaded_page_events()])
        driver.execute_script.return_value = False
        session, _ = build_session(tmp_path, driver=driver)

        result = session.extract_html()

        assert isinstance(result.error, NavigationTimeoutError)
        assert result.error.stage == "page lifecycle events"

    @patch("src.browser.session.REQUEST_IDLE_TIMEOUT_SECONDS", 0.2)
    def test_hanging_request_prevents_idle(self, tmp_path):
        events = loaded_page_events() + [perf("Network.requestWillBeSent", requestId="long-poll")]
        driver = _build_driver_mock([[], events])
        session, _ = build_session(tmp_path, driver=driver)

        result = session.extract_html()

        assert isinstance(result.error, NavigationTimeoutError)
        assert result.error.stage == "requests to be idle"

    def test_browser_error_is_navigation_error(self, tmp_path):
        driver = _build_driver_mock()
        driver.get.side_effect = WebDriverException("net::ERR_CONNECTION_RESET")
        session, _ = build_session(tmp_path, driver=driver)

        result = session.extract_html()

        assert type(result.error) is NavigationError
        assert result.error.stage == "navigate"
        assert result.error.url == PAGE.url
        assert session.state == SessionState.FAILED

    def test_launch_failure_is_navigation_error(self, tmp_path):
        session, factory = build_session(tmp_path)
        factory.side_effect = WebDriverException("chrome not reachable")

        result = session.extract_html()

        assert isinstance(result.error, NavigationError)
        assert result.error.stage == "launch"
        assert session.state == SessionState.FAILED
        assert session.profile_dir is None
        assert not list(tmp_path.glob("chrome-*"))


class TestScreenshot:
    def test_screenshot_uploads_and_returns_url(self, tmp_path):
        driver = _build_driver_mock([[], loaded_page_events()])
        store = Mock()
        store.store.return_value = "https://r2.example/example.com.png?sig"
        session, _ = build_session(tmp_path, driver=driver, store=store)
        session.navigate(PAGE.url)

        url = session.screenshot()

        assert url == "https://r2.example/example.com.png?sig"
        driver.save_screenshot.assert_called_once_with(session.screenshot_path)
        store.store.assert_called_once_with("example.com.png", session.screenshot_path)

    def test_repeated_screenshot_recaptures(self, tmp_path):
        driver = _build_driver_mock()
        store = Mock()
        session, _ = build_session(tmp_path, driver=driver, store=store)
        session.start()

        session.screenshot()
        session.screenshot()

        assert driver.save_screenshot.call_count == 2
        assert store.store.call_count == 2

    def test_screenshot_without_browser(self, tmp_path):
        session, _ = build_session(tmp_path)

        with pytest.raises(EvidenceUploadError):
            session.screenshot()

    def test_capture_failure(self, tmp_path):
        driver = _build_driver_mock()
        driver.save_screenshot.side_effect = WebDriverException("tab crashed")
        store = Mock()
        session, _ = build_session(tmp_path, driver=driver, store=store)
        session.start()

        with pytest.raises(EvidenceUploadError):
            session.screenshot()
        store.store.assert_not_called()

    def test_unwritable_file(self, tmp_path):
        driver = _build_driver_mock()
        driver.save_screenshot.return_value = False
        session, _ = build_session(tmp_path, driver=driver)
        session.start()

        with pytest.raises(EvidenceUploadError):
            session.screenshot()

    def test_upload_failure_propagates(self, tmp_path):
        store = Mock()
        store.store.side_effect = EvidenceUploadError("bucket gone")
        session, _ = build_session(tmp_path, store=store)
        session.start()

        with pytest.raises(EvidenceUploadError, match="bucket gone"):
            session.screenshot()


def user_data_dir(options):
    return next(arg for arg in options.arguments if arg.startswith("--user-data-dir="))


class TestProfileIsolation:
    def test_live_sessions_on_same_domain_get_separate_profiles(self, tmp_path):
        old, old_factory = build_session(tmp_path)
        new, new_factory = build_session(tmp_path)

        old.start()
        new.start()

        old_options = old_factory.call_args[0][1]
        new_options = new_factory.call_args[0][1]
        assert user_data_dir(old_options) != user_data_dir(new_options)
        assert old.profile_dir != new.profile_dir
        assert os.path.isdir(old.profile_dir) and os.path.isdir(new.profile_dir)

    def test_relaunch_after_close_gets_fresh_profile(self, tmp_path):
        session, _ = build_session(tmp_path)
        session.start()
        first = session.profile_dir
        session.close()

        session.start()

        assert session.profile_dir != first
        assert not os.path.exists(first)

    def test_close_removes_profile_dir(self, tmp_path):
        session, _ = build_session(tmp_path)
        session.start()
        profile_dir = session.profile_dir
        assert profile_dir.startswith(str(tmp_path))

        session.close()

        assert not os.path.exists(profile_dir)
        assert session.profile_dir is None


class TestClose:
    def test_close_quits_once(self, tmp_path):
        driver = _build_driver_mock()
        session, _ = build_session(tmp_path, driver=driver)
        session.start()

        session.close()
        session.close()

        driver.quit.assert_called_once()
        assert session.driver is None

    def test_close_tolerates_dead_browser(self, tmp_path):
        driver = _build_driver_mock()
        driver.quit.side_effect = WebDriverException("already gone")
        session, _ = build_session(tmp_path, driver=driver)
        session.start()

        session.close()

        assert session.driver is None

    def test_context_manager_closes(self, tmp_path):
        driver = _build_driver_mock()
        session, _ = build_session(tmp_path, driver=driver)

        with session:
            session.start()

        driver.quit.assert_called_once()
