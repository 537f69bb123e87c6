"""
Page comparison orchestration.

Acquires the old page, then the new one, scores their HTML and decides
whether screenshot evidence is needed. Every path ends in exactly one
ComparisonOutcome.
"""

from typing import Any, Callable, Optional

from src.browser.session import BrowserSession
from src.config.settings import Settings
from src.domain.comparison import (
    AcquisitionResult,
    ComparisonOutcome,
    ComparisonRequest,
    ComparisonResult,
    EvidenceCapture,
    PageRef,
)
from src.storage.exceptions import EvidenceUploadError
from src.utils.logger import StructuredLogger, get_logger, mask_presigned_url
from .similarity import jaccard_similarity, sorensen_dice_similarity


OLD_PAGE = "old"
NEW_PAGE = "new"


def build_failure_outcome(
    side: str, acquisition: AcquisitionResult, capture: EvidenceCapture
) -> ComparisonOutcome:
    """Outcome for a page that couldn't be acquired; only that side's evidence is attached."""
    outcome = ComparisonOutcome(message=acquisition.message)
    if capture.succeeded:
        if side == OLD_PAGE:
            outcome.old_screenshot_url = capture.url
        else:
            outcome.new_screenshot_url = capture.url
    return outcome


def build_comparison_outcome(
    similarity: float,
    old_capture: Optional[EvidenceCapture] = None,
    new_capture: Optional[EvidenceCapture] = None,
) -> ComparisonOutcome:
    """Outcome for a completed comparison; evidence is attached as a pair or not at all."""
    outcome = ComparisonOutcome(similarity=similarity)
    if old_capture and new_capture and old_capture.succeeded and new_capture.succeeded:
        outcome.old_screenshot_url = old_capture.url
        outcome.new_screenshot_url = new_capture.url
    return outcome


class PageComparator:
    """
    Runs one comparison request end to end.

    Attributes:
        settings: Process configuration
        evidence_store: Store receiving screenshots
        threshold: Scores strictly below it trigger evidence capture
    """

    def __init__(
        self,
        settings: Settings,
        evidence_store: Any,
        logger: Optional[StructuredLogger] = None,
        session_factory: Optional[Callable[..., BrowserSession]] = None,
    ):
        self.settings = settings
        self.evidence_store = evidence_store
        self.logger = logger or get_logger(__name__)
        self.session_factory = session_factory or BrowserSession
        self.threshold = settings.similarity_threshold

    def _open_session(self, page: PageRef) -> BrowserSession:
        return self.session_factory(
            page, self.settings, self.evidence_store, logger=self.logger
        )

    def should_capture(self, similarity: float) -> bool:
        return similarity < self.threshold

    def score(self, old_html: str, new_html: str) -> float:
        """
        Jaccard similarity of the two documents.

        Sorensen-Dice is computed alongside for the logs only.
        """
        dice = sorensen_dice_similarity(old_html, new_html)
        self.logger.info("Sorensen-Dice", operation="score", context={"similarity": dice})

        jaccard = jaccard_similarity(old_html, new_html)
        self.logger.info("Jaccard", operation="score", context={"similarity": jaccard})
        return jaccard

    def capture(self, session: BrowserSession, side: str) -> EvidenceCapture:
        """Best-effort screenshot; failure is reported in the result, never raised."""
        try:
            url = session.screenshot()
        except EvidenceUploadError as e:
            self.logger.error(
                "Screenshot capture failed",
                operation="capture_evidence",
                context={"page": side, "domain": session.domain},
                error=str(e),
            )
            return EvidenceCapture(error=e)

        self.logger.info(
            "Screenshot captured",
            operation="capture_evidence",
            context={"page": side, "url": mask_presigned_url(url)},
        )
        return EvidenceCapture(url=url)

    def _page_failed(
        self, side: str, session: BrowserSession, acquisition: AcquisitionResult
    ) -> ComparisonResult:
        self.logger.error(
            "Get HTML",
            operation="acquire_page",
            context={"page": side, "url": session.page.url},
            error=str(acquisition.error),
        )
        capture = self.capture(session, side)
        return ComparisonResult(
            outcome=build_failure_outcome(side, acquisition, capture),
            error=acquisition.error,
        )

    def compare(self, request: ComparisonRequest) -> ComparisonResult:
        """
        Compare the old and the new page.

        Returns:
            ComparisonResult whose ``error`` is set only when a page couldn't be
            acquired. A low similarity is a successful comparison.
        """
        sessions = []
        try:
            old_session = self._open_session(request.old_page)
            sessions.append(old_session)
            old = old_session.extract_html(request.old_page.url)
            if not old.succeeded:
                return self._page_failed(OLD_PAGE, old_session, old)

            new_session = self._open_session(request.new_page)
            sessions.append(new_session)
            new = new_session.extract_html(request.new_page.url)
            if not new.succeeded:
                return self._page_failed(NEW_PAGE, new_session, new)

            similarity = self.score(old.html, new.html)
            if not self.should_capture(similarity):
                return ComparisonResult(outcome=build_comparison_outcome(similarity))

            self.logger.info(
                "Similarity below threshold; capturing evidence",
                operation="capture_evidence",
                context={"similarity": similarity, "threshold": self.threshold},
            )
            old_capture = self.capture(old_session, OLD_PAGE)
            new_capture = self.capture(new_session, NEW_PAGE)
            if not (old_capture.succeeded and new_capture.succeeded):
                self.logger.warning(
                    "Dropping partial evidence",
                    operation="capture_evidence",
                    context={
                        "old_error": str(old_capture.error) if old_capture.error else None,
                        "new_error": str(new_capture.error) if new_capture.error else None,
                    },
                )

            return ComparisonResult(
                outcome=build_comparison_outcome(similarity, old_capture, new_capture)
            )
        finally:
            for session in sessions:
                session.close()
