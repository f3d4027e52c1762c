"""
EmoSense - Keyword Risk Detector

Deterministic safety net that runs before any network-dependent step.

Matching is plain substring search on lowercased text, with no word
boundaries, so "suicides" matches "suicide" and "overdosed" matches
"overdose". Relaxing the matching requires product sign-off.
"""

from __future__ import annotations

import logging
from typing import FrozenSet, Iterable, Optional

from emosense.config import DEFAULT_HIGH_RISK_PHRASES
from emosense.core.exceptions import ConfigurationError

logger = logging.getLogger(__name__)


class KeywordRiskDetector:
    """
    Scans text for fixed high-risk phrases.

    The phrase set is an immutable value injected at construction, so tests
    and deployments can supply alternate lists without touching globals.
    """

    def __init__(self, phrases: Iterable[str] = DEFAULT_HIGH_RISK_PHRASES):
        normalized = frozenset(p.strip().lower() for p in phrases if p and p.strip())
        if not normalized:
            raise ConfigurationError("High-risk phrase set must not be empty")
        self._phrases: FrozenSet[str] = normalized
        # Sorted copy so match() is deterministic across runs
        self._ordered = tuple(sorted(normalized))

        logger.debug("KeywordRiskDetector initialized with %d phrases", len(self._phrases))

    @property
    def phrases(self) -> FrozenSet[str]:
        return self._phrases

    def detect(self, text: str) -> bool:
        """True iff the text contains any high-risk phrase, in any case."""
        return self.match(text) is not None

    def match(self, text: str) -> Optional[str]:
        """Return the first matching phrase, or None."""
        normalized = text.lower()
        for phrase in self._ordered:
            if phrase in normalized:
                return phrase
        return None
