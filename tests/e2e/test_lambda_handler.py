"""
End-to-end smoke tests for the Lambda handler.

The evidence store and comparator are patched; the handler's parsing,
routing and response shaping run for real.
"""

import json
from unittest.mock import Mock, patch

import pytest

import src.main
from src.browser.exceptions import UnreachableError
from src.config.settings import ConfigurationError, Settings
from src.domain.comparison import ComparisonOutcome, ComparisonResult
from src.domain.exceptions import DomainExtractionError
from src.main import build_response, lambda_handler


class MockContext:
    """Mock Lambda context for testing."""

    def __init__(self):
        self.function_name = "page-matcher-test"
        self.aws_request_id = "test-request-id"
        self.invoked_function_arn = "arn:aws:lambda:test:test"


def sns_event(payload):
    message = payload if isinstance(payload, str) else json.dumps(payload)
    return {"Records": [{"EventSource": "aws:sns", "Sns": {"Message": message}}]}


VALID_EVENT = sns_event(
    {
        "old_page": {"server_ip": "203.0.113.1", "url": "https://shop.example.com/"},
        "new_page": {"server_ip": "203.0.113.2", "url": "https://shop.example.com/"},
    }
)


@pytest.fixture(autouse=True)
def settings(monkeypatch):
    """Pin process settings so the handler never reads the environment."""
    pinned = Settings(
        cf_account_id="acc",
        cf_access_key_id="key",
        cf_access_key_secret="secret",
        cf_bucket_name="evidence",
    )
    monkeypatch.setattr(src.main, "_settings", pinned)
    return pinned


@pytest.fixture
def mock_store():
    with patch("src.main.R2EvidenceStore") as store_class:
        yield store_class


@pytest.fixture
def mock_comparator():
    with patch("src.main.PageComparator") as comparator_class:
        comparator = Mock()
        comparator_class.return_value = comparator
        yield comparator_class, comparator


class TestLambdaHandler:
    def test_completed_comparison(self, mock_store, mock_comparator, settings):
        comparator_class, comparator = mock_comparator
        comparator.compare.return_value = ComparisonResult(
            outcome=ComparisonOutcome(
                similarity=0.42,
                old_screenshot_url="https://r2/old.png?sig",
                new_screenshot_url="https://r2/new.png?sig",
            )
        )

        response = lambda_handler(VALID_EVENT, MockContext())

        assert response == {
            "statusCode": 200,
            "Similarity": 0.42,
            "message": "",
            "old_screenshot_url": "https://r2/old.png?sig",
            "new_screenshot_url": "https://r2/new.png?sig",
        }
        mock_store.from_settings.assert_called_once_with(settings)
        comparator_class.assert_called_once_with(settings, mock_store.from_settings.return_value)
        request = comparator.compare.call_args[0][0]
        assert request.old_page.server_ip == "203.0.113.1"
        assert request.new_page.server_ip == "203.0.113.2"

    def test_page_failure_returns_error(self, mock_store, mock_comparator):
        _, comparator = mock_comparator
        error = UnreachableError("https://shop.example.com/", "203.0.113.1", status_code=503)
        comparator.compare.return_value = ComparisonResult(
            outcome=ComparisonOutcome(message=error.message), error=error
        )

        response = lambda_handler(VALID_EVENT, MockContext())

        assert response["statusCode"] == 502
        assert response["error"].startswith("UnreachableError:")
        assert response["Similarity"] == 0.0
        assert "503" in response["message"]
        assert response["old_screenshot_url"] == ""
        assert response["new_screenshot_url"] == ""

    def test_malformed_message_skips_browser_work(self, mock_store, mock_comparator):
        comparator_class, _ = mock_comparator

        response = lambda_handler(sns_event("{broken"), MockContext())

        assert response["statusCode"] == 400
        assert response["error"].startswith("MalformedRequestError:")
        assert response["message"] == ""
        assert response["Similarity"] == 0.0
        comparator_class.assert_not_called()
        mock_store.from_settings.assert_not_called()

    def test_missing_page_field_is_malformed(self, mock_store, mock_comparator):
        response = lambda_handler(sns_event({"old_page": {"url": "https://a.example"}}), None)

        assert response["statusCode"] == 400

    def test_missing_storage_credentials_abort(self, mock_store, mock_comparator):
        mock_store.from_settings.side_effect = ConfigurationError("Missing CF_BUCKET_NAME env. var.")

        with pytest.raises(ConfigurationError, match="CF_BUCKET_NAME"):
            lambda_handler(VALID_EVENT, MockContext())

    def test_domain_extraction_failure_aborts(self, mock_store, mock_comparator):
        _, comparator = mock_comparator
        comparator.compare.side_effect = DomainExtractionError("https://")

        with pytest.raises(DomainExtractionError):
            lambda_handler(VALID_EVENT, MockContext())


def test_settings_loaded_once(monkeypatch):
    monkeypatch.setattr(src.main, "_settings", None)
    loaded = Settings()

    with patch("src.main.Settings.from_env", return_value=loaded) as from_env, patch(
        "src.main.setup_logging_redaction"
    ) as redaction:
        assert src.main.get_settings() is loaded
        assert src.main.get_settings() is loaded

    from_env.assert_called_once()
    redaction.assert_called_once_with(loaded)


def test_build_response_without_error():
    response = build_response(200, ComparisonOutcome(similarity=1.0))

    assert response == {
        "statusCode": 200,
        "Similarity": 1.0,
        "message": "",
        "old_screenshot_url": "",
        "new_screenshot_url": "",
    }
