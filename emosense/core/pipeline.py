"""
EmoSense - Risk Pipeline

Two-tier risk classification, producing exactly one Assessment per turn.

Architecture:
    1. SAFETY NET: KeywordRiskDetector on the message text. A hit returns
       the keyword crisis assessment immediately, with no classifier call
       and no history mutation.
    2. CLASSIFIER: otherwise the ClassifierClient assesses the full input
       bundle with the history snapshot, and the resulting label is
       appended to the session history.

The safety net is evaluated before, and independently of, any
network-dependent step, so crisis detection keeps working when the
classifier is unreachable.

Usage:
    pipeline = RiskPipeline(
        detector=KeywordRiskDetector(),
        classifier=DummyClassifierClient(),
    )
    history = SessionHistory()
    assessment = await pipeline.assess(MultimodalInput(text="I feel okay"), history)
"""

from __future__ import annotations

import logging
import time

from emosense.config import Settings
from emosense.core.exceptions import ConfigurationError
from emosense.core.history import SessionHistory
from emosense.core.types import Assessment, MultimodalInput
from emosense.services.classifier import ClassifierClient
from emosense.services.keyword_detector import KeywordRiskDetector

logger = logging.getLogger(__name__)


class RiskPipeline:
    """
    Orchestrates the keyword safety net and the classifier.

    Stateless apart from its collaborators: history is owned by the
    session and passed in on every call.
    """

    def __init__(
        self,
        detector: KeywordRiskDetector,
        classifier: ClassifierClient,
        anonymize_logs: bool = True,
    ):
        self._detector = detector
        self._classifier = classifier
        self._anonymize_logs = anonymize_logs

        logger.info(
            "RiskPipeline initialized: phrases=%d, classifier=%s",
            len(detector.phrases),
            classifier.client_id,
        )

    @property
    def classifier(self) -> ClassifierClient:
        return self._classifier

    @property
    def detector(self) -> KeywordRiskDetector:
        return self._detector

    async def assess(
        self,
        multimodal_input: MultimodalInput,
        history: SessionHistory,
    ) -> Assessment:
        """
        Assess one turn.

        Never raises because of the classifier: its failures arrive here
        as the fallback assessment.
        """
        start_time = time.time()

        matched = self._detector.match(multimodal_input.text)
        if matched is not None:
            if self._anonymize_logs:
                logger.warning("CRISIS keyword detected, bypassing classifier")
            else:
                logger.warning("CRISIS keyword detected ('%s'), bypassing classifier", matched)
            return Assessment.keyword_crisis()

        self._log_input(multimodal_input)

        assessment = await self._classifier.classify(multimodal_input, history.snapshot())
        history.append(assessment.emotional_state)

        logger.info(
            "Assessment: state=%s, intensity=%d, crisis=%s, confidence=%.2f, source=%s, total_ms=%.1f",
            assessment.emotional_state,
            assessment.intensity,
            assessment.is_crisis,
            assessment.confidence,
            assessment.source.value,
            (time.time() - start_time) * 1000,
        )
        if assessment.is_crisis:
            logger.warning("CRISIS flagged by classifier: intensity=%d", assessment.intensity)

        return assessment

    def _log_input(self, multimodal_input: MultimodalInput) -> None:
        """Log pipeline input with privacy considerations."""
        if self._anonymize_logs:
            logger.info(
                "Consulting classifier: chars=%d",
                len(multimodal_input.text),
                extra={"data": multimodal_input.to_dict()},
            )
        else:
            preview = multimodal_input.text[:50]
            if len(multimodal_input.text) > 50:
                preview += "..."
            logger.info("Consulting classifier: preview='%s'", preview)

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def shutdown(self) -> None:
        """Release classifier resources."""
        logger.info("Pipeline shutdown: closing classifier...")
        await self._classifier.aclose()
        logger.info("Pipeline shutdown complete")


# =============================================================================
# Factory Function
# =============================================================================

def create_classifier(settings: Settings) -> ClassifierClient:
    """
    Build the classifier selected by ``classifier_backend``.

    Raises:
        ConfigurationError: unknown backend, or gemini without an API key
    """
    from emosense.services.classifier import DummyClassifierClient, GeminiClassifierClient

    backend = settings.classifier_backend.lower()

    if backend == "gemini":
        if not settings.gemini_api_key:
            raise ConfigurationError(
                "GEMINI_API_KEY is not set. Add it to the environment or .env file, "
                "or set CLASSIFIER_BACKEND=dummy for offline use."
            )
        return GeminiClassifierClient(
            api_key=settings.gemini_api_key,
            model=settings.gemini_model,
            api_base=settings.gemini_api_base,
            timeout_seconds=settings.classifier_timeout_seconds,
            history_size=settings.history_size,
        )

    if backend == "dummy":
        logger.info("Using DummyClassifierClient (heuristic-based)")
        return DummyClassifierClient()

    raise ConfigurationError(
        f"Unknown classifier backend: {settings.classifier_backend!r}",
        details={"allowed": ["gemini", "dummy"]},
    )


def create_pipeline(settings: Settings) -> RiskPipeline:
    """
    Factory function to create a configured RiskPipeline.

    IMPORTANT SAFETY NOTICE:
        This pipeline is for RESEARCH AND SIMULATION ONLY.
        Not a medical device. Not suitable for real crisis intervention.

    Raises:
        ConfigurationError: invalid classifier settings or empty phrase set
    """
    detector = KeywordRiskDetector(settings.high_risk_phrase_set)
    classifier = create_classifier(settings)

    logger.info(
        "Pipeline configured: classifier=%s, phrases=%d",
        type(classifier).__name__,
        len(detector.phrases),
    )

    return RiskPipeline(
        detector=detector,
        classifier=classifier,
        anonymize_logs=settings.anonymize_logs,
    )
