"""
EmoSense - Core Domain Types

Internal type definitions for the triage pipeline. These are domain objects
used within the core and service layers, independent of API serialization.

Design Notes:
- These types are the "lingua franca" between pipeline components.
- API layer converts these to/from Pydantic schemas for external communication.
- Assessment validates its own ranges, so an out-of-range value can never
  reach the intervention or escalation logic.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, NewType, Optional


# =============================================================================
# Type Aliases
# =============================================================================

SessionId = NewType("SessionId", str)
"""Unique identifier for a conversation session. Opaque string (UUID4)."""


# =============================================================================
# Constants
# =============================================================================

CRISIS_STATE = "Crisis"
KEYWORD_CRISIS_REASON = "High-risk keyword detected."

FALLBACK_STATE = "Unknown"
FALLBACK_INTENSITY = 5
FALLBACK_REASON = "Could not perform LLM analysis due to a technical error."

MIN_INTENSITY = 1
MAX_INTENSITY = 10


# =============================================================================
# Enums
# =============================================================================

class AssessmentSource(str, Enum):
    """Which tier of the pipeline produced an assessment."""
    KEYWORD = "keyword"
    CLASSIFIER = "classifier"
    FALLBACK = "fallback"


class EscalationState(str, Enum):
    """States of the crisis escalation flow."""
    AWAITING_CHOICE = "awaiting_choice"
    ROUTED = "routed"
    CONTACTS_SHOWN = "contacts_shown"

    @property
    def is_terminal(self) -> bool:
        return self is not EscalationState.AWAITING_CHOICE


class SessionStatus(str, Enum):
    """Lifecycle of a conversation session."""
    ACTIVE = "active"
    ESCALATING = "escalating"
    ENDED = "ended"


# =============================================================================
# Turn Input
# =============================================================================

@dataclass(frozen=True)
class MultimodalInput:
    """
    Everything the user supplied for one turn.

    The three sensor channels are free-text stand-ins for what computer
    vision, audio processing and a physiological sensor would report.
    """
    text: str
    vision: str = ""
    audio: str = ""
    physio: str = ""

    def to_dict(self) -> Dict[str, str]:
        return {
            "text": self.text,
            "vision": self.vision,
            "audio": self.audio,
            "physio": self.physio,
        }


# =============================================================================
# Assessment (Core Domain Object)
# =============================================================================

@dataclass(frozen=True)
class Assessment:
    """
    Structured emotional assessment for a single turn.

    Produced exactly once per turn, either by the keyword safety net or by
    the classifier path (which includes the fallback).

    Attributes:
        emotional_state: Label for the primary emotion (e.g. "Anxious")
        intensity: Strength of the emotion, integer 1-10
        is_crisis: Whether the turn must be escalated
        reason: One-sentence explanation
        confidence: Confidence in the assessment, 0.0-1.0
        source: Pipeline tier that produced the assessment
    """
    emotional_state: str
    intensity: int
    is_crisis: bool
    reason: str
    confidence: float
    source: AssessmentSource = AssessmentSource.CLASSIFIER

    def __post_init__(self):
        """Validate constraints."""
        if isinstance(self.intensity, bool) or not isinstance(self.intensity, int):
            raise TypeError(f"intensity must be an int, got {type(self.intensity).__name__}")
        if not MIN_INTENSITY <= self.intensity <= MAX_INTENSITY:
            raise ValueError(f"intensity must be 1-10, got {self.intensity}")
        if math.isnan(self.confidence) or not 0.0 <= self.confidence <= 1.0:
            raise ValueError(f"confidence must be 0-1, got {self.confidence}")

    @classmethod
    def keyword_crisis(cls) -> "Assessment":
        """Assessment emitted whenever a high-risk phrase is found."""
        return cls(
            emotional_state=CRISIS_STATE,
            intensity=MAX_INTENSITY,
            is_crisis=True,
            reason=KEYWORD_CRISIS_REASON,
            confidence=1.0,
            source=AssessmentSource.KEYWORD,
        )

    @classmethod
    def fallback(cls) -> "Assessment":
        """Neutral assessment used whenever the classifier cannot be trusted."""
        return cls(
            emotional_state=FALLBACK_STATE,
            intensity=FALLBACK_INTENSITY,
            is_crisis=False,
            reason=FALLBACK_REASON,
            confidence=0.0,
            source=AssessmentSource.FALLBACK,
        )

    def to_dict(self) -> Dict[str, Any]:
        """The five classifier-schema fields."""
        return {
            "emotional_state": self.emotional_state,
            "intensity": self.intensity,
            "is_crisis": self.is_crisis,
            "reason": self.reason,
            "confidence": self.confidence,
        }


# =============================================================================
# Escalation / Turn Results
# =============================================================================

@dataclass(frozen=True)
class EmergencyResource:
    """A single emergency contact shown to the user."""
    name: str
    instructions: str

    def render(self) -> str:
        return f"{self.name}: {self.instructions}"


@dataclass
class EscalationStep:
    """Outcome of feeding one choice to the escalation flow."""
    state: EscalationState
    messages: List[str] = field(default_factory=list)

    @property
    def resolved(self) -> bool:
        return self.state.is_terminal


@dataclass
class TurnResult:
    """
    What a session hands back to the I/O layer for one turn.

    Either ``reply`` is an intervention (ordinary turn), or the assessment
    was a crisis, in which case ``reply`` is the crisis acknowledgement and
    ``escalation_prompt`` holds the question the user must now answer.
    A quit turn carries no assessment.
    """
    session_status: SessionStatus
    assessment: Optional[Assessment] = None
    reply: Optional[str] = None
    escalation_prompt: Optional[str] = None

    @property
    def is_crisis(self) -> bool:
        return self.assessment is not None and self.assessment.is_crisis
