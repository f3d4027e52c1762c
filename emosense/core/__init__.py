"""
EmoSense - Core Package

Contains the central orchestration logic and domain types:
- types: Internal domain types and type aliases
- history: Bounded per-session emotional history
- pipeline: Two-tier risk classification (import from emosense.core.pipeline)
- session: Session state machine and store (import from emosense.core.session)
"""

from .types import (
    SessionId,
    MultimodalInput,
    Assessment,
    AssessmentSource,
    EscalationState,
    EscalationStep,
    SessionStatus,
    TurnResult,
)
from .history import SessionHistory

__all__ = [
    # Types
    "SessionId",
    "MultimodalInput",
    "Assessment",
    "AssessmentSource",
    "EscalationState",
    "EscalationStep",
    "SessionStatus",
    "TurnResult",
    # History
    "SessionHistory",
]
