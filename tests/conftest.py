"""
EmoSense - Test Configuration and Fixtures

Shared fixtures for all test modules.
"""

import json
from typing import Generator, List, Optional, Sequence

import pytest
from fastapi.testclient import TestClient

from emosense.config import Settings
from emosense.core.history import SessionHistory
from emosense.core.pipeline import RiskPipeline
from emosense.core.session import ConversationSession
from emosense.core.types import Assessment, AssessmentSource, MultimodalInput
from emosense.services.classifier import DummyClassifierClient
from emosense.services.keyword_detector import KeywordRiskDetector


# =============================================================================
# Pytest Configuration
# =============================================================================

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "integration: marks tests requiring external dependencies")


# =============================================================================
# Stub Classifier
# =============================================================================

class StubClassifierClient:
    """
    Classifier double that returns scripted assessments in order and
    records every call. Repeats the last assessment once the script runs out.
    """

    def __init__(self, assessments: Optional[List[Assessment]] = None):
        self._script = list(assessments or [calm_assessment()])
        self.calls: List[tuple[MultimodalInput, List[str]]] = []
        self.closed = False

    @property
    def client_id(self) -> str:
        return "stub-classifier"

    @property
    def call_count(self) -> int:
        return len(self.calls)

    async def classify(self, multimodal_input: MultimodalInput, history: Sequence[str]) -> Assessment:
        self.calls.append((multimodal_input, list(history)))
        index = min(len(self.calls) - 1, len(self._script) - 1)
        return self._script[index]

    async def aclose(self) -> None:
        self.closed = True


def make_assessment(
    state: str,
    intensity: int = 5,
    is_crisis: bool = False,
    confidence: float = 0.8,
) -> Assessment:
    return Assessment(
        emotional_state=state,
        intensity=intensity,
        is_crisis=is_crisis,
        reason=f"Classifier judged the user {state.lower()}.",
        confidence=confidence,
        source=AssessmentSource.CLASSIFIER,
    )


def calm_assessment() -> Assessment:
    return make_assessment("Calm", intensity=2, confidence=0.8)


def gemini_body(payload) -> dict:
    """Wrap a classifier answer the way generateContent returns it."""
    text = payload if isinstance(payload, str) else json.dumps(payload)
    return {"candidates": [{"content": {"parts": [{"text": text}], "role": "model"}}]}


# =============================================================================
# Settings Fixtures
# =============================================================================

@pytest.fixture
def test_settings() -> Settings:
    """Offline settings: dummy classifier, quiet logs."""
    return Settings(
        app_env="testing",
        app_debug=True,
        app_log_level="WARNING",
        classifier_backend="dummy",
        gemini_api_key=None,
        anonymize_logs=True,
        max_sessions=10,
    )


# =============================================================================
# Service Fixtures
# =============================================================================

@pytest.fixture
def detector() -> KeywordRiskDetector:
    return KeywordRiskDetector()


@pytest.fixture
def stub_classifier() -> StubClassifierClient:
    return StubClassifierClient()


@pytest.fixture
def dummy_classifier() -> DummyClassifierClient:
    return DummyClassifierClient()


@pytest.fixture
def history() -> SessionHistory:
    return SessionHistory()


@pytest.fixture
def pipeline(detector: KeywordRiskDetector, stub_classifier: StubClassifierClient) -> RiskPipeline:
    """Pipeline whose classifier always answers Calm unless re-scripted."""
    return RiskPipeline(detector=detector, classifier=stub_classifier)


@pytest.fixture
def session(pipeline: RiskPipeline) -> ConversationSession:
    return ConversationSession(pipeline=pipeline)


# =============================================================================
# Sample Data Fixtures
# =============================================================================

@pytest.fixture
def high_risk_messages() -> List[str]:
    """Messages containing default high-risk phrases, in mixed case."""
    return [
        "I want to kill myself",
        "Sometimes I think about SUICIDE",
        "i just want to end my life",
        "I've been planning an Overdose",
        "I keep wanting to cut myself",
        "thinking about ending it all tonight",
    ]


@pytest.fixture
def safe_messages() -> List[str]:
    return [
        "I feel okay",
        "Work has been stressful this week",
        "I'm a bit nervous about my exam",
        "Had a nice walk with my dog",
    ]


# =============================================================================
# FastAPI App Fixture
# =============================================================================

@pytest.fixture
def api_stub_classifier() -> StubClassifierClient:
    return StubClassifierClient()


@pytest.fixture
def client(test_settings: Settings, api_stub_classifier: StubClassifierClient) -> Generator[TestClient, None, None]:
    """Test client over an app whose pipeline uses the stub classifier."""
    from emosense.main import create_app

    app_pipeline = RiskPipeline(detector=KeywordRiskDetector(), classifier=api_stub_classifier)
    app = create_app(settings=test_settings, pipeline=app_pipeline)
    with TestClient(app) as c:
        yield c
