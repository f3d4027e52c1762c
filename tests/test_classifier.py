"""
EmoSense - Classifier Client Tests

Tests cover:
- Pure request construction (no network)
- Response extraction, validation and clamping
- GeminiClassifierClient failing closed over httpx.MockTransport
- DummyClassifierClient heuristics

Run with: pytest tests/test_classifier.py -v
"""

import json

import httpx
import pytest

from conftest import gemini_body
from emosense.core.exceptions import ClassifierResponseError
from emosense.core.types import Assessment, AssessmentSource, MultimodalInput
from emosense.services.classifier import (
    DummyClassifierClient,
    GeminiClassifierClient,
    build_classifier_request,
    build_prompt,
    extract_candidate_text,
    parse_assessment,
)


VALID_OUTPUT = {
    "emotional_state": "Anxious",
    "intensity": 7,
    "is_crisis": False,
    "reason": "Rapid speech and a fast heart rate accompany worried wording.",
    "confidence": 0.85,
}

SAMPLE_INPUT = MultimodalInput(
    text="I can't stop worrying about tomorrow",
    vision="tense",
    audio="rapid",
    physio="fast",
)


def make_client(handler) -> GeminiClassifierClient:
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return GeminiClassifierClient(
        api_key="test-key",
        model="gemini-test",
        api_base="https://example.test/v1beta",
        http_client=http_client,
    )


# =============================================================================
# Request Builder
# =============================================================================

class TestRequestBuilder:
    """build_classifier_request() is pure and self-contained."""

    def test_prompt_embeds_all_channels(self):
        prompt = build_prompt(SAMPLE_INPUT, [])

        assert '"I can\'t stop worrying about tomorrow"' in prompt
        assert '"tense"' in prompt
        assert '"rapid"' in prompt
        assert '"fast"' in prompt

    def test_prompt_embeds_history_as_json(self):
        prompt = build_prompt(SAMPLE_INPUT, ["Calm", "Sad", "Anxious"])
        assert '["Calm", "Sad", "Anxious"]' in prompt

    def test_prompt_quotes_history_capacity_on_first_turn(self):
        prompt = build_prompt(SAMPLE_INPUT, [])
        assert "(last 3 states): []" in prompt

    def test_prompt_history_capacity_is_configurable(self):
        prompt = build_prompt(SAMPLE_INPUT, ["Calm"], history_size=5)
        assert '(last 5 states): ["Calm"]' in prompt

    def test_prompt_names_all_schema_fields(self):
        prompt = build_prompt(SAMPLE_INPUT, [])
        for field_name in ("emotional_state", "intensity", "is_crisis", "reason", "confidence"):
            assert f'"{field_name}"' in prompt

    def test_user_quotes_are_escaped(self):
        prompt = build_prompt(MultimodalInput(text='he said "stop"'), [])
        assert '"he said \\"stop\\""' in prompt

    def test_request_body_shape(self):
        body = build_classifier_request(SAMPLE_INPUT, ["Calm"])

        assert body["generationConfig"] == {"responseMimeType": "application/json"}
        assert len(body["safetySettings"]) == 4
        assert all(s["threshold"] == "BLOCK_NONE" for s in body["safetySettings"])
        assert body["contents"][0]["parts"][0]["text"] == build_prompt(SAMPLE_INPUT, ["Calm"])

    def test_request_is_json_serializable(self):
        json.dumps(build_classifier_request(SAMPLE_INPUT, ["Calm"]))


# =============================================================================
# Response Parsing
# =============================================================================

class TestParseAssessment:
    """Validation and clamping of classifier output."""

    def test_valid_output(self):
        assessment = parse_assessment(json.dumps(VALID_OUTPUT))

        assert assessment.to_dict() == VALID_OUTPUT
        assert assessment.source is AssessmentSource.CLASSIFIER

    def test_markdown_fence_tolerated(self):
        text = "```json\n" + json.dumps(VALID_OUTPUT) + "\n```"
        assert parse_assessment(text).emotional_state == "Anxious"

    def test_state_is_stripped(self):
        assessment = parse_assessment(json.dumps({**VALID_OUTPUT, "emotional_state": "  Sad "}))
        assert assessment.emotional_state == "Sad"

    def test_integral_float_intensity_accepted(self):
        assert parse_assessment(json.dumps({**VALID_OUTPUT, "intensity": 4.0})).intensity == 4

    @pytest.mark.parametrize("raw, expected", [(0, 1), (-3, 1), (11, 10), (42, 10)])
    def test_intensity_clamped(self, raw, expected):
        assert parse_assessment(json.dumps({**VALID_OUTPUT, "intensity": raw})).intensity == expected

    @pytest.mark.parametrize("raw, expected", [(-0.2, 0.0), (1.7, 1.0), (85, 1.0)])
    def test_confidence_clamped(self, raw, expected):
        assert parse_assessment(json.dumps({**VALID_OUTPUT, "confidence": raw})).confidence == expected

    @pytest.mark.parametrize("missing", list(VALID_OUTPUT))
    def test_missing_field_rejected(self, missing):
        payload = {k: v for k, v in VALID_OUTPUT.items() if k != missing}
        with pytest.raises(ClassifierResponseError):
            parse_assessment(json.dumps(payload))

    @pytest.mark.parametrize("field_name, value", [
        ("emotional_state", ""),
        ("emotional_state", 3),
        ("intensity", 6.5),
        ("intensity", "high"),
        ("intensity", True),
        ("intensity", "7"),
        ("is_crisis", "yes"),
        ("is_crisis", 1),
        ("reason", None),
        ("confidence", "sure"),
        ("confidence", False),
        ("confidence", "0.8"),
    ])
    def test_invalid_field_rejected(self, field_name, value):
        with pytest.raises(ClassifierResponseError):
            parse_assessment(json.dumps({**VALID_OUTPUT, field_name: value}))

    def test_numeric_strings_rejected(self):
        payload = {**VALID_OUTPUT, "intensity": "7", "confidence": "0.8"}
        with pytest.raises(ClassifierResponseError):
            parse_assessment(json.dumps(payload))

    def test_integer_confidence_accepted(self):
        assert parse_assessment(json.dumps({**VALID_OUTPUT, "confidence": 1})).confidence == 1.0

    def test_nan_confidence_rejected(self):
        text = json.dumps(VALID_OUTPUT).replace("0.85", "NaN")
        with pytest.raises(ClassifierResponseError):
            parse_assessment(text)

    def test_not_json(self):
        with pytest.raises(ClassifierResponseError):
            parse_assessment("I think the user is anxious.")

    def test_broken_json(self):
        with pytest.raises(ClassifierResponseError):
            parse_assessment('{"emotional_state": "Sad", ')

    def test_extra_fields_ignored(self):
        assessment = parse_assessment(json.dumps({**VALID_OUTPUT, "notes": "extra"}))
        assert assessment.emotional_state == "Anxious"


class TestExtractCandidateText:

    def test_extracts_text(self):
        assert extract_candidate_text(gemini_body("hello")) == "hello"

    @pytest.mark.parametrize("body", [
        {},
        {"candidates": []},
        {"candidates": [{"content": {"parts": []}}]},
        {"candidates": [{"content": {"parts": [{"text": 5}]}}]},
        [],
        None,
    ])
    def test_malformed_bodies(self, body):
        with pytest.raises(ClassifierResponseError):
            extract_candidate_text(body)


# =============================================================================
# Gemini Client
# =============================================================================

class TestGeminiClassifierClient:
    """The client never raises; failures become the fallback."""

    @pytest.mark.asyncio
    async def test_successful_classification(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json=gemini_body(VALID_OUTPUT))

        client = make_client(handler)
        assessment = await client.classify(SAMPLE_INPUT, ["Calm"])

        assert assessment.to_dict() == VALID_OUTPUT
        assert seen["url"].startswith("https://example.test/v1beta/models/gemini-test:generateContent")
        assert "key=test-key" in seen["url"]
        assert seen["body"] == build_classifier_request(SAMPLE_INPUT, ["Calm"])
        await client.aclose()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status_code", [400, 403, 429, 500, 503])
    async def test_non_success_status_falls_back(self, status_code):
        def handler(request):
            return httpx.Response(status_code, json={"error": {"message": "nope"}})

        assessment = await make_client(handler).classify(SAMPLE_INPUT, [])
        assert assessment == Assessment.fallback()

    @pytest.mark.asyncio
    async def test_transport_error_falls_back(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        assessment = await make_client(handler).classify(SAMPLE_INPUT, [])
        assert assessment == Assessment.fallback()

    @pytest.mark.asyncio
    async def test_timeout_falls_back(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        assessment = await make_client(handler).classify(SAMPLE_INPUT, [])
        assert assessment == Assessment.fallback()

    @pytest.mark.asyncio
    async def test_non_json_body_falls_back(self):
        def handler(request):
            return httpx.Response(200, text="<html>gateway</html>")

        assessment = await make_client(handler).classify(SAMPLE_INPUT, [])
        assert assessment == Assessment.fallback()

    @pytest.mark.asyncio
    async def test_invalid_candidate_json_falls_back(self):
        def handler(request):
            return httpx.Response(200, json=gemini_body("not json at all"))

        assessment = await make_client(handler).classify(SAMPLE_INPUT, [])
        assert assessment == Assessment.fallback()

    @pytest.mark.asyncio
    async def test_schema_violation_falls_back(self):
        def handler(request):
            return httpx.Response(200, json=gemini_body({**VALID_OUTPUT, "intensity": "very"}))

        assessment = await make_client(handler).classify(SAMPLE_INPUT, [])
        assert assessment == Assessment.fallback()

    @pytest.mark.asyncio
    async def test_fallback_is_exact(self):
        def handler(request):
            return httpx.Response(500)

        assessment = await make_client(handler).classify(SAMPLE_INPUT, [])

        assert assessment.to_dict() == {
            "emotional_state": "Unknown",
            "intensity": 5,
            "is_crisis": False,
            "reason": "Could not perform LLM analysis due to a technical error.",
            "confidence": 0.0,
        }
        assert assessment.source is AssessmentSource.FALLBACK

    @pytest.mark.asyncio
    async def test_classifier_may_flag_crisis(self):
        def handler(request):
            return httpx.Response(200, json=gemini_body({**VALID_OUTPUT, "is_crisis": True}))

        assessment = await make_client(handler).classify(SAMPLE_INPUT, [])
        assert assessment.is_crisis is True

    @pytest.mark.asyncio
    async def test_request_quotes_configured_history_size(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json=gemini_body(VALID_OUTPUT))

        client = GeminiClassifierClient(
            api_key="test-key",
            http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
            history_size=5,
        )
        await client.classify(SAMPLE_INPUT, [])

        assert "(last 5 states): []" in seen["body"]["contents"][0]["parts"][0]["text"]

    def test_client_id(self):
        assert make_client(lambda r: httpx.Response(200)).client_id == "gemini-gemini-test"


# =============================================================================
# Dummy Client
# =============================================================================

class TestDummyClassifierClient:

    @pytest.mark.asyncio
    async def test_calm_message(self, dummy_classifier: DummyClassifierClient):
        assessment = await dummy_classifier.classify(MultimodalInput(text="I feel okay"), [])

        assert assessment.emotional_state == "Calm"
        assert assessment.is_crisis is False

    @pytest.mark.asyncio
    async def test_sensor_cues_raise_intensity(self, dummy_classifier: DummyClassifierClient):
        quiet = await dummy_classifier.classify(MultimodalInput(text="I'm worried"), [])
        loud = await dummy_classifier.classify(
            MultimodalInput(text="I'm worried", vision="tense", audio="trembling", physio="fast"),
            [],
        )

        assert quiet.emotional_state == loud.emotional_state == "Anxious"
        assert loud.intensity > quiet.intensity
        assert 1 <= loud.intensity <= 10

    @pytest.mark.asyncio
    async def test_unknown_wording_is_neutral(self, dummy_classifier: DummyClassifierClient):
        assessment = await dummy_classifier.classify(MultimodalInput(text="the bus was late"), [])
        assert assessment.emotional_state == "Neutral"

    @pytest.mark.asyncio
    async def test_counts_calls(self, dummy_classifier: DummyClassifierClient):
        await dummy_classifier.classify(MultimodalInput(text="hi"), [])
        await dummy_classifier.classify(MultimodalInput(text="hi"), [])
        assert dummy_classifier.call_count == 2
