"""
EmoSense - Keyword Risk Detector Tests

Run with: pytest tests/test_keyword_detector.py -v
"""

import pytest

from emosense.config import DEFAULT_HIGH_RISK_PHRASES
from emosense.core.exceptions import ConfigurationError
from emosense.services.keyword_detector import KeywordRiskDetector


class TestDetect:
    """Tests for detect()."""

    def test_detects_every_default_phrase(self, detector: KeywordRiskDetector):
        for phrase in DEFAULT_HIGH_RISK_PHRASES:
            assert detector.detect(f"lately I {phrase} a lot"), phrase

    def test_case_insensitive(self, detector: KeywordRiskDetector, high_risk_messages: list[str]):
        for message in high_risk_messages:
            assert detector.detect(message), message
            assert detector.detect(message.upper()), message

    def test_substring_match_is_over_sensitive(self, detector: KeywordRiskDetector):
        """No word boundaries: inflected forms still match."""
        assert detector.detect("reading about suicides")
        assert detector.detect("she overdosed last year")

    def test_safe_messages_do_not_match(self, detector: KeywordRiskDetector, safe_messages: list[str]):
        for message in safe_messages:
            assert not detector.detect(message), message

    def test_empty_text(self, detector: KeywordRiskDetector):
        assert not detector.detect("")


class TestMatch:
    """Tests for match()."""

    def test_returns_matching_phrase(self, detector: KeywordRiskDetector):
        assert detector.match("I want to KILL MYSELF") == "kill myself"

    def test_returns_none_without_match(self, detector: KeywordRiskDetector):
        assert detector.match("I had a good day") is None

    def test_deterministic_with_multiple_hits(self, detector: KeywordRiskDetector):
        text = "suicide and overdose"
        assert detector.match(text) == detector.match(text) == "overdose"


class TestInjectedPhrases:
    """The phrase set is injected, so alternate lists can be used."""

    def test_custom_phrases_replace_defaults(self):
        detector = KeywordRiskDetector(["Give Up Forever"])

        assert detector.detect("i will give up forever")
        assert not detector.detect("I want to kill myself")

    def test_phrases_are_immutable(self):
        detector = KeywordRiskDetector(["a phrase"])
        assert isinstance(detector.phrases, frozenset)

    def test_blank_phrases_are_dropped(self):
        detector = KeywordRiskDetector(["  ", "real phrase", ""])
        assert detector.phrases == frozenset({"real phrase"})

    def test_empty_phrase_set_rejected(self):
        with pytest.raises(ConfigurationError):
            KeywordRiskDetector([])
