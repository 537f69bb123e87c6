"""
Lambda Handler - Main entry point for the page matcher

Receives an SNS notification naming an old and a new deployment of a page,
compares their rendered HTML and returns screenshots when they differ.
"""

import time
from typing import Any, Dict, Optional

from src.comparison.orchestrator import PageComparator
from src.config.settings import ConfigurationError, Settings, setup_logging_redaction
from src.domain.comparison import ComparisonOutcome, ComparisonRequest
from src.domain.exceptions import DomainExtractionError, MalformedRequestError
from src.storage.r2_client import R2EvidenceStore
from src.utils.logger import get_logger

logger = get_logger(__name__)

# Configuration (initialized on cold start)
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Build the process-wide Settings once and reuse it across invocations."""
    global _settings
    if _settings is None:
        _settings = Settings.from_env()
        setup_logging_redaction(_settings)
    return _settings


def build_response(
    status_code: int, outcome: ComparisonOutcome, error: Optional[Exception] = None
) -> Dict[str, Any]:
    """
    Shape the value returned to the invoking transport.

    The outcome record keys (``Similarity``, ``message``,
    ``old_screenshot_url``, ``new_screenshot_url``) sit at the top level next
    to ``statusCode``. ``error`` is present only for malformed requests and
    pages that couldn't be acquired, never for a low-similarity comparison.
    """
    response: Dict[str, Any] = {"statusCode": status_code}
    response.update(outcome.to_dict())
    if error is not None:
        response["error"] = f"{type(error).__name__}: {error}"
    return response


def lambda_handler(event, context):
    """
    Main Lambda handler for page comparison.

    Workflow:
    1. Load configuration (cold start only)
    2. Parse the first SNS record into a ComparisonRequest
    3. Acquire both pages, score, capture evidence when needed
    4. Return the outcome record

    Args:
        event: SNS event whose message is {"old_page": {...}, "new_page": {...}}
        context: Lambda context

    Returns:
        dict: statusCode 200 on a completed comparison, 400 for a malformed
        request, 502 when a page couldn't be acquired

    Raises:
        ConfigurationError: If storage credentials are missing
        DomainExtractionError: If a page URL has no domain
    """
    lambda_start_time = time.time()
    settings = get_settings()

    logger.info(
        "Lambda handler started",
        operation="lambda_start",
        context={
            "aws_request_id": (
                getattr(context, "aws_request_id", "local") if context else "local"
            ),
            "function_name": getattr(context, "function_name", "local") if context else "local",
            "profile": "dev" if settings.is_dev() else "serverless",
        },
    )

    try:
        request = ComparisonRequest.from_sns_event(event)
    except MalformedRequestError as e:
        logger.error("Rejected malformed request", operation="parse_request", error=str(e))
        return build_response(400, ComparisonOutcome(), e)

    logger.info(
        "Message received",
        operation="parse_request",
        context={
            "old_page": request.old_page.to_dict(),
            "new_page": request.new_page.to_dict(),
        },
    )

    try:
        evidence_store = R2EvidenceStore.from_settings(settings)
        comparator = PageComparator(settings, evidence_store)
        result = comparator.compare(request)
    except (ConfigurationError, DomainExtractionError) as e:
        logger.error(
            "Lambda execution aborted",
            operation="lambda_complete",
            context={"status": "fatal", "error_type": type(e).__name__},
            error=str(e),
            duration_ms=(time.time() - lambda_start_time) * 1000,
        )
        raise

    lambda_duration_ms = (time.time() - lambda_start_time) * 1000
    outcome = result.outcome

    if result.failed:
        logger.error(
            "Page comparison failed",
            operation="lambda_complete",
            context={
                "status": "failure",
                "message": outcome.message,
                "error_type": type(result.error).__name__,
            },
            error=str(result.error),
            duration_ms=lambda_duration_ms,
        )
        return build_response(502, outcome, result.error)

    logger.info(
        "Page comparison completed",
        operation="lambda_complete",
        context={
            "status": "success",
            "similarity": outcome.similarity,
            "evidence_captured": bool(outcome.old_screenshot_url),
        },
        duration_ms=lambda_duration_ms,
    )
    return build_response(200, outcome)
