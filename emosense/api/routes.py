"""
EmoSense - REST API Routes

Endpoints for session management, conversation turns, crisis escalation
and system health.

Architecture:
    All turns flow through ConversationSession objects held by the
    SessionStore on app.state, which in turn share one RiskPipeline.
    Domain errors carry their own HTTP status codes and are translated
    here.
"""

import logging
from typing import NoReturn, Optional

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status

from emosense import __version__
from emosense.core.exceptions import EmoSenseError
from emosense.core.pipeline import RiskPipeline
from emosense.core.session import ConversationSession, SessionStore
from emosense.core.types import Assessment, MultimodalInput

from .schemas import (
    AssessmentSchema,
    EscalationChoiceRequest,
    EscalationStepResponse,
    HealthResponse,
    SessionCreateResponse,
    SessionStatusResponse,
    TurnRequest,
    TurnResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["api"])


# =============================================================================
# Dependencies
# =============================================================================

def get_pipeline(request: Request) -> RiskPipeline:
    """Dependency to get the risk pipeline from app state."""
    return request.app.state.pipeline


def get_session_store(request: Request) -> SessionStore:
    """Dependency to get the session store from app state."""
    return request.app.state.session_store


# =============================================================================
# Converters (Domain -> API Schema)
# =============================================================================

def assessment_to_schema(assessment: Optional[Assessment]) -> Optional[AssessmentSchema]:
    """Convert a domain Assessment to its API schema."""
    if assessment is None:
        return None
    return AssessmentSchema(
        emotional_state=assessment.emotional_state,
        intensity=assessment.intensity,
        is_crisis=assessment.is_crisis,
        reason=assessment.reason,
        confidence=assessment.confidence,
        source=assessment.source.value,
    )


def session_to_schema(session: ConversationSession) -> SessionStatusResponse:
    escalation_state = session.escalation_state
    return SessionStatusResponse(
        session_id=session.session_id,
        status=session.status.value,
        created_at=session.created_at,
        turn_count=session.turn_count,
        history=session.history.snapshot(),
        escalation_state=escalation_state.value if escalation_state else None,
        latest_assessment=assessment_to_schema(session.last_assessment),
    )


def raise_http(error: EmoSenseError) -> NoReturn:
    """Translate a domain error into an HTTPException."""
    raise HTTPException(
        status_code=error.status_code,
        detail={"code": error.code, "message": error.message, **error.details},
    ) from error


async def load_session(session_id: str, store: SessionStore) -> ConversationSession:
    try:
        return await store.get_session_or_raise(session_id)
    except EmoSenseError as e:
        raise_http(e)


# =============================================================================
# Health & Status
# =============================================================================

@router.get("/health", response_model=HealthResponse)
async def health_check(
    pipeline: RiskPipeline = Depends(get_pipeline),
    store: SessionStore = Depends(get_session_store),
):
    """
    System health check.

    Reports the classifier in use and the number of tracked sessions.
    """
    components = {
        "api": "operational",
        "pipeline": "operational",
        "classifier": pipeline.classifier.client_id,
        "keyword_phrases": str(len(pipeline.detector.phrases)),
        "sessions": str(len(store)),
    }

    return HealthResponse(
        status="healthy",
        components=components,
        version=__version__,
    )


# =============================================================================
# Session Management
# =============================================================================

@router.post("/sessions", response_model=SessionCreateResponse, status_code=status.HTTP_201_CREATED)
async def create_session(store: SessionStore = Depends(get_session_store)):
    """
    Create a new conversation session.

    Privacy note: Session IDs are random UUIDs with no PII.
    """
    try:
        session = await store.create_session()
    except EmoSenseError as e:
        raise_http(e)

    return SessionCreateResponse(
        session_id=session.session_id,
        status=session.status.value,
    )


@router.get("/sessions/{session_id}", response_model=SessionStatusResponse)
async def get_session_status(
    session_id: str,
    store: SessionStore = Depends(get_session_store),
):
    """Current status, history and escalation state of a session."""
    session = await load_session(session_id, store)
    return session_to_schema(session)


@router.delete("/sessions/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
async def end_session(
    session_id: str,
    store: SessionStore = Depends(get_session_store),
):
    """End and forget a session. History is discarded with it."""
    removed = await store.remove_session(session_id)
    if not removed:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"code": "SESSION_NOT_FOUND", "message": "Session not found"},
        )
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# =============================================================================
# Conversation
# =============================================================================

@router.post("/sessions/{session_id}/turns", response_model=TurnResponse)
async def submit_turn(
    session_id: str,
    request: TurnRequest,
    store: SessionStore = Depends(get_session_store),
):
    """
    Process one user turn.

    The pipeline will:
    1. Check the message against the high-risk phrase set
    2. Otherwise consult the classifier with the last three states
    3. Reply with an intervention, or start the escalation flow

    After a crisis turn, answer ``escalation_prompt`` through
    ``POST /sessions/{id}/escalation``; ordinary turns are refused until the
    escalation resolves, and the session ends when it does.
    """
    session = await load_session(session_id, store)

    try:
        result = await session.handle_turn(
            MultimodalInput(
                text=request.text,
                vision=request.vision,
                audio=request.audio,
                physio=request.physio,
            )
        )
    except EmoSenseError as e:
        raise_http(e)

    return TurnResponse(
        session_status=result.session_status.value,
        assessment=assessment_to_schema(result.assessment),
        reply=result.reply,
        escalation_prompt=result.escalation_prompt,
    )


@router.post("/sessions/{session_id}/escalation", response_model=EscalationStepResponse)
async def submit_escalation_choice(
    session_id: str,
    request: EscalationChoiceRequest,
    store: SessionStore = Depends(get_session_store),
):
    """
    Answer the escalation question.

    A choice containing "counselor" routes to a counselor, one containing
    "contact" shows emergency resources; anything else re-prompts.
    """
    session = await load_session(session_id, store)

    try:
        step = await session.submit_escalation_choice(request.choice)
    except EmoSenseError as e:
        raise_http(e)

    return EscalationStepResponse(
        state=step.state.value,
        messages=step.messages,
        session_status=session.status.value,
    )
