"""
EmoSense - Classifier Client

Turns a multimodal input bundle plus recent history into a structured
emotional assessment by asking an external semantic classifier.

Architecture:
    - Protocol defines the interface for classifier clients
    - build_classifier_request(): pure request builder, no network
    - parse_assessment(): validates and clamps the classifier's JSON
    - GeminiClassifierClient: Gemini generateContent over httpx
    - DummyClassifierClient: keyword heuristic for development/testing

Failure Model:
    Clients fail closed. Transport errors, non-2xx responses, unparsable
    bodies and schema violations are all resolved locally into
    Assessment.fallback(). Nothing raised by the remote dependency reaches
    the conversation loop.
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
import time
from abc import abstractmethod
from typing import Any, Dict, List, Optional, Protocol, Sequence, runtime_checkable

import httpx
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StrictBool,
    ValidationError,
    ValidationInfo,
    field_validator,
)

from emosense.core.exceptions import (
    ClassifierError,
    ClassifierResponseError,
    ClassifierTransportError,
)
from emosense.core.history import DEFAULT_HISTORY_SIZE
from emosense.core.types import (
    MAX_INTENSITY,
    MIN_INTENSITY,
    Assessment,
    AssessmentSource,
    MultimodalInput,
)

logger = logging.getLogger(__name__)


# =============================================================================
# Protocol (Interface)
# =============================================================================

@runtime_checkable
class ClassifierClient(Protocol):
    """
    Protocol for emotional-state classifiers.

    Implementations must never raise from classify(); they return
    Assessment.fallback() instead.
    """

    @abstractmethod
    async def classify(
        self,
        multimodal_input: MultimodalInput,
        history: Sequence[str],
    ) -> Assessment:
        """
        Assess one turn.

        Args:
            multimodal_input: Text plus simulated sensor readings
            history: Most recent emotional-state labels, oldest first

        Returns:
            A validated Assessment (possibly the fallback)
        """
        ...

    @property
    @abstractmethod
    def client_id(self) -> str:
        """Return classifier identifier for health checks and logs."""
        ...

    @abstractmethod
    async def aclose(self) -> None:
        """Release any network resources."""
        ...


# =============================================================================
# Request Builder (pure)
# =============================================================================

OUTPUT_SCHEMA_FIELDS = ("emotional_state", "intensity", "is_crisis", "reason", "confidence")

HARM_CATEGORIES = (
    "HARM_CATEGORY_HARASSMENT",
    "HARM_CATEGORY_HATE_SPEECH",
    "HARM_CATEGORY_SEXUALLY_EXPLICIT",
    "HARM_CATEGORY_DANGEROUS_CONTENT",
)

PROMPT_TEMPLATE = """\
You are "EmoSense", a specialized assistant inside a mental health support companion.
Determine the user's emotional state from the combined inputs below. Besides the typed
message you receive readings that simulate what computer vision, audio processing and a
physiological sensor would detect.

Data packet:
- User's typed message: {text}
- Simulated Computer Vision (facial expression): {vision}
- Simulated Audio Processing (voice tone): {audio}
- Simulated Physiological Sensor (heart rate trend): {physio}
- Recent emotional history (last {history_size} states): {history}

Respond with a single valid JSON object and nothing else. Do not wrap it in markdown.
The object must have exactly these five keys:
1. "emotional_state": one descriptive word for the primary emotion (e.g. "Anxious", "Sad", "Stressed", "Calm", "Agitated", "Hopeless", "Neutral").
2. "intensity": an integer from 1 (very low) to 10 (very high).
3. "is_crisis": a boolean, true if the combined state suggests crisis or risk of self-harm.
4. "reason": a brief, neutral, one-sentence explanation synthesizing all inputs.
5. "confidence": a float from 0.0 to 1.0.
"""


def build_prompt(
    multimodal_input: MultimodalInput,
    history: Sequence[str],
    history_size: int = DEFAULT_HISTORY_SIZE,
) -> str:
    """Render the classifier instruction for one turn.

    ``history_size`` is the capacity of the session history, not the
    number of labels recorded so far.
    """
    history_list = list(history)
    return PROMPT_TEMPLATE.format(
        text=json.dumps(multimodal_input.text),
        vision=json.dumps(multimodal_input.vision),
        audio=json.dumps(multimodal_input.audio),
        physio=json.dumps(multimodal_input.physio),
        history_size=history_size,
        history=json.dumps(history_list),
    )


def build_classifier_request(
    multimodal_input: MultimodalInput,
    history: Sequence[str],
    history_size: int = DEFAULT_HISTORY_SIZE,
) -> Dict[str, Any]:
    """
    Build the generateContent request body for one turn.

    Pure function: no I/O, so the payload can be inspected in tests
    without any network access.
    """
    return {
        "contents": [{"parts": [{"text": build_prompt(multimodal_input, history, history_size)}]}],
        # The companion has to see distressing content to assess it
        "safetySettings": [
            {"category": category, "threshold": "BLOCK_NONE"}
            for category in HARM_CATEGORIES
        ],
        "generationConfig": {"responseMimeType": "application/json"},
    }


# =============================================================================
# Response Validation
# =============================================================================

_JSON_OBJECT_RE = re.compile(r"\{[\s\S]*\}")


class ClassifierOutput(BaseModel):
    """The five-field contract the classifier must honour."""

    model_config = ConfigDict(extra="ignore")

    emotional_state: str
    intensity: int = Field(strict=True)
    is_crisis: StrictBool
    reason: str
    confidence: float = Field(strict=True, allow_inf_nan=False)

    @field_validator("emotional_state")
    @classmethod
    def _non_blank_state(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("emotional_state must not be blank")
        return value

    @field_validator("intensity", "confidence", mode="before")
    @classmethod
    def _json_number(cls, value: Any, info: ValidationInfo) -> Any:
        # bool is an int subclass; true/false are never valid numbers here
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValueError("must be a JSON number")
        if info.field_name == "confidence":
            return float(value)
        if isinstance(value, float) and value.is_integer():
            return int(value)
        return value

    def to_assessment(self) -> Assessment:
        """Clamp numeric fields into range and build the domain object."""
        intensity = max(MIN_INTENSITY, min(MAX_INTENSITY, self.intensity))
        confidence = max(0.0, min(1.0, float(self.confidence)))
        if intensity != self.intensity or confidence != self.confidence:
            logger.info(
                "Clamped classifier output: intensity %s->%s, confidence %s->%s",
                self.intensity, intensity, self.confidence, confidence,
            )
        return Assessment(
            emotional_state=self.emotional_state,
            intensity=intensity,
            is_crisis=self.is_crisis,
            reason=self.reason,
            confidence=confidence,
            source=AssessmentSource.CLASSIFIER,
        )


def extract_candidate_text(body: Any) -> str:
    """Pull the model's text out of a generateContent response body."""
    try:
        text = body["candidates"][0]["content"]["parts"][0]["text"]
    except (KeyError, IndexError, TypeError) as e:
        raise ClassifierResponseError(
            "Classifier response has no candidate text",
            details={"error": type(e).__name__},
        ) from e
    if not isinstance(text, str):
        raise ClassifierResponseError("Classifier candidate text is not a string")
    return text


def parse_assessment(text: str) -> Assessment:
    """
    Parse and validate the classifier's JSON answer.

    Tolerates a markdown fence or prose around the object by extracting the
    outermost ``{...}``.

    Raises:
        ClassifierResponseError: body is not JSON or violates the schema
    """
    match = _JSON_OBJECT_RE.search(text)
    if not match:
        raise ClassifierResponseError("Classifier response contains no JSON object")

    try:
        payload = json.loads(match.group(0))
    except json.JSONDecodeError as e:
        raise ClassifierResponseError(f"Classifier response is not valid JSON: {e.msg}") from e

    if not isinstance(payload, dict):
        raise ClassifierResponseError("Classifier response is not a JSON object")

    try:
        output = ClassifierOutput.model_validate(payload)
    except ValidationError as e:
        raise ClassifierResponseError(
            "Classifier response violates the output schema",
            details={"fields": sorted({str(err["loc"][0]) for err in e.errors() if err["loc"]})},
        ) from e

    return output.to_assessment()


# =============================================================================
# Gemini Implementation
# =============================================================================

class GeminiClassifierClient:
    """
    Classifier backed by the Gemini generateContent REST endpoint.

    Usage:
        client = GeminiClassifierClient(api_key="...", model="gemini-1.5-flash-latest")
        assessment = await client.classify(multimodal_input, ["Calm"])
        await client.aclose()
    """

    def __init__(
        self,
        api_key: str,
        model: str = "gemini-1.5-flash-latest",
        api_base: str = "https://generativelanguage.googleapis.com/v1beta",
        timeout_seconds: Optional[float] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        history_size: int = DEFAULT_HISTORY_SIZE,
    ):
        """
        Initialize the Gemini client.

        Args:
            api_key: Gemini API key (sent as the ``key`` query parameter)
            model: Model name
            api_base: Base URL of the Generative Language API
            timeout_seconds: Request timeout; None disables the client timeout
            http_client: Optional pre-built client (tests inject MockTransport)
            history_size: Session history capacity quoted in the prompt
        """
        self._api_key = api_key
        self._model = model
        self._history_size = history_size
        self._url = f"{api_base.rstrip('/')}/models/{model}:generateContent"
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(timeout=httpx.Timeout(timeout_seconds))

        logger.info("GeminiClassifierClient initialized: model=%s", model)

    @property
    def client_id(self) -> str:
        return f"gemini-{self._model}"

    async def classify(
        self,
        multimodal_input: MultimodalInput,
        history: Sequence[str],
    ) -> Assessment:
        start_time = time.time()
        request_body = build_classifier_request(multimodal_input, history, self._history_size)

        try:
            body = await self._post(request_body)
            assessment = parse_assessment(extract_candidate_text(body))
        except ClassifierError as e:
            logger.warning("Classifier unavailable, using fallback: [%s] %s", e.code, e.message)
            return Assessment.fallback()
        except Exception as e:
            logger.error("Unexpected classifier failure, using fallback: %s", e, exc_info=True)
            return Assessment.fallback()

        logger.debug(
            "Gemini classify: state=%s intensity=%d crisis=%s (%.1fms)",
            assessment.emotional_state,
            assessment.intensity,
            assessment.is_crisis,
            (time.time() - start_time) * 1000,
        )
        return assessment

    async def _post(self, request_body: Dict[str, Any]) -> Any:
        """Send the request and decode the JSON body."""
        try:
            response = await self._client.post(
                self._url,
                params={"key": self._api_key},
                json=request_body,
            )
        except httpx.HTTPError as e:
            raise ClassifierTransportError(f"Classifier request failed: {type(e).__name__}") from e

        if response.is_error:
            raise ClassifierTransportError(
                f"Classifier request failed with status {response.status_code}",
                details={"status": response.status_code, "error": _error_message(response)},
            )

        try:
            return response.json()
        except ValueError as e:
            raise ClassifierResponseError("Classifier response body is not JSON") from e

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


def _error_message(response: httpx.Response) -> Optional[str]:
    """Best-effort extraction of the API's error message."""
    try:
        return response.json()["error"]["message"]
    except (ValueError, KeyError, TypeError):
        return None


# =============================================================================
# Dummy Implementation (Development/Testing)
# =============================================================================

class DummyClassifierClient:
    """
    Heuristic classifier for development and testing.

    Uses simple keyword matching on the message and sensor channels to
    produce plausible assessments without any network access. It never
    flags a crisis: the keyword safety net runs before it.

    WARNING: This classifier has NO clinical validity.
    """

    # Checked in order; first hit wins
    STATE_KEYWORDS: List[tuple[str, tuple[str, ...]]] = [
        ("Hopeless", ("hopeless", "pointless", "no way out", "give up")),
        ("Agitated", ("angry", "furious", "agitated", "irritated")),
        ("Anxious", ("anxious", "worried", "nervous", "panic", "scared")),
        ("Sad", ("sad", "lonely", "down", "crying", "tearful")),
        ("Stressed", ("stressed", "overwhelmed", "pressure", "deadline")),
        ("Calm", ("okay", "fine", "good", "calm", "better")),
    ]

    AROUSAL_CUES = ("fast", "rapid", "trembling", "tense", "loud", "frowning", "tearful")

    def __init__(self, simulated_latency_ms: float = 0.0):
        self._simulated_latency_ms = simulated_latency_ms
        self._call_count = 0

    @property
    def client_id(self) -> str:
        return "dummy-classifier-v0.1.0"

    @property
    def call_count(self) -> int:
        return self._call_count

    async def classify(
        self,
        multimodal_input: MultimodalInput,
        history: Sequence[str],
    ) -> Assessment:
        self._call_count += 1
        if self._simulated_latency_ms:
            await asyncio.sleep(self._simulated_latency_ms / 1000.0)

        text_lower = multimodal_input.text.lower()
        state, matched = "Neutral", None
        for label, keywords in self.STATE_KEYWORDS:
            matched = next((kw for kw in keywords if kw in text_lower), None)
            if matched:
                state = label
                break

        sensors = " ".join(
            (multimodal_input.vision, multimodal_input.audio, multimodal_input.physio)
        ).lower()
        arousal = sum(1 for cue in self.AROUSAL_CUES if cue in sensors)

        base = 2 if state in ("Calm", "Neutral") else 5
        intensity = max(MIN_INTENSITY, min(MAX_INTENSITY, base + arousal))
        confidence = min(0.9, 0.4 + (0.3 if matched else 0.0) + 0.05 * arousal)

        reason = (
            f"Message mentions '{matched}'" if matched else "No clear emotional keywords in message"
        )
        if arousal:
            reason += f" and {arousal} sensor cue(s) suggest elevated arousal."
        else:
            reason += "."

        return Assessment(
            emotional_state=state,
            intensity=intensity,
            is_crisis=False,
            reason=reason,
            confidence=confidence,
            source=AssessmentSource.CLASSIFIER,
        )

    async def aclose(self) -> None:
        return None
