"""
EmoSense - API Schemas

Pydantic models for request/response validation.
These define the contract between clients and the backend.
"""

from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field


# ===========================================
# Enums
# ===========================================

class AssessmentSource(str, Enum):
    """Pipeline tier that produced the assessment."""
    KEYWORD = "keyword"
    CLASSIFIER = "classifier"
    FALLBACK = "fallback"


class SessionStatus(str, Enum):
    """Session lifecycle."""
    ACTIVE = "active"
    ESCALATING = "escalating"
    ENDED = "ended"


class EscalationState(str, Enum):
    """Crisis escalation flow state."""
    AWAITING_CHOICE = "awaiting_choice"
    ROUTED = "routed"
    CONTACTS_SHOWN = "contacts_shown"


# ===========================================
# Session Schemas
# ===========================================

class SessionCreateResponse(BaseModel):
    """Response after creating a session."""

    session_id: str = Field(description="Unique session identifier (UUID)")
    status: SessionStatus = Field(description="Session status")


class AssessmentSchema(BaseModel):
    """Emotional assessment for one turn."""

    emotional_state: str = Field(description="Primary emotion label")
    intensity: int = Field(ge=1, le=10, description="Strength of the emotion, 1-10")
    is_crisis: bool = Field(description="Whether the turn triggered escalation")
    reason: str = Field(description="One-sentence explanation")
    confidence: float = Field(ge=0.0, le=1.0, description="Assessment confidence")
    source: AssessmentSource = Field(description="Pipeline tier that produced it")


class SessionStatusResponse(BaseModel):
    """Current status of a session."""

    session_id: str
    status: SessionStatus
    created_at: datetime
    turn_count: int
    history: List[str] = Field(description="Recent emotional states, oldest first")
    escalation_state: Optional[EscalationState] = None
    latest_assessment: Optional[AssessmentSchema] = None


# ===========================================
# Turn Schemas
# ===========================================

class TurnRequest(BaseModel):
    """One user turn: message plus simulated sensor readings."""

    text: str = Field(max_length=10000, description="User's typed message")
    vision: str = Field(default="", max_length=1000, description="Simulated facial expression")
    audio: str = Field(default="", max_length=1000, description="Simulated voice tone")
    physio: str = Field(default="", max_length=1000, description="Simulated heart rate trend")


class TurnResponse(BaseModel):
    """Reply for one turn."""

    session_status: SessionStatus
    assessment: Optional[AssessmentSchema] = Field(
        default=None,
        description="Absent when the turn was the quit sentinel",
    )
    reply: Optional[str] = Field(default=None, description="Intervention or crisis acknowledgement")
    escalation_prompt: Optional[str] = Field(
        default=None,
        description="Question to answer via the escalation endpoint",
    )


# ===========================================
# Escalation Schemas
# ===========================================

class EscalationChoiceRequest(BaseModel):
    """User's answer to the escalation question."""

    choice: str = Field(max_length=1000, description="e.g. 'Counselor' or 'Contacts'")


class EscalationStepResponse(BaseModel):
    """Outcome of one escalation choice."""

    state: EscalationState
    messages: List[str]
    session_status: SessionStatus


# ===========================================
# Health Schemas
# ===========================================

class HealthResponse(BaseModel):
    """System health status."""

    status: str = Field(description="Overall status: healthy | degraded | unhealthy")
    components: Dict[str, str] = Field(description="Status of individual components")
    version: str = Field(default="0.1.0")
