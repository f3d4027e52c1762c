"""
EmoSense - Conversation Sessions

Session-scoped state and the in-memory registry used by the HTTP surface.

A session owns its SessionHistory and, during a crisis turn, its
EscalationFlow. Nothing here is shared between sessions; only the phrase
set and the intervention scripts are process-wide, and both are read-only.

Lifecycle:
    ACTIVE --crisis assessment--> ESCALATING --flow resolved--> ENDED
    ACTIVE --quit sentinel-----------------------------------> ENDED

A crisis turn is never resumed into the ordinary loop.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

from emosense.config import Settings
from emosense.core.exceptions import (
    EscalationNotActiveError,
    SessionBusyError,
    SessionEndedError,
    SessionLimitError,
    SessionNotFoundError,
)
from emosense.core.history import SessionHistory
from emosense.core.logging import LogContext
from emosense.core.pipeline import RiskPipeline
from emosense.core.types import (
    Assessment,
    EscalationState,
    EscalationStep,
    MultimodalInput,
    SessionId,
    SessionStatus,
    TurnResult,
)
from emosense.services.escalation import EscalationFlow
from emosense.services.interventions import InterventionSelector

logger = logging.getLogger(__name__)


def is_quit_sentinel(text: str, sentinel: str = "quit", case_sensitive: bool = True) -> bool:
    """
    Whether the message text ends the session.

    Exact comparison, no trimming. Case-sensitive by default, unlike the
    keyword detector; pass case_sensitive=False to accept "QUIT" as well.
    """
    if case_sensitive:
        return text == sentinel
    return text.lower() == sentinel.lower()


def generate_session_id() -> SessionId:
    return SessionId(str(uuid.uuid4()))


def generate_turn_id() -> str:
    """Generate unique turn ID for log correlation."""
    return f"turn_{uuid.uuid4().hex[:12]}"


class ConversationSession:
    """
    One continuous conversation, from start until quit or crisis resolution.

    Turns are serialized with a per-session lock, so at most one
    classifier call is in flight per session.
    """

    def __init__(
        self,
        pipeline: RiskPipeline,
        selector: Optional[InterventionSelector] = None,
        session_id: Optional[SessionId] = None,
        history_size: int = 3,
        escalation_max_attempts: Optional[int] = None,
        quit_sentinel: str = "quit",
        quit_case_sensitive: bool = True,
    ):
        self.session_id: SessionId = session_id or generate_session_id()
        self.created_at = datetime.now(timezone.utc)
        self.last_activity = self.created_at
        self.history = SessionHistory(history_size)

        self._pipeline = pipeline
        self._selector = selector or InterventionSelector()
        self._escalation_max_attempts = escalation_max_attempts
        self._quit_sentinel = quit_sentinel
        self._quit_case_sensitive = quit_case_sensitive

        self._lock = asyncio.Lock()
        self._status = SessionStatus.ACTIVE
        self._escalation: Optional[EscalationFlow] = None
        self._escalation_outcome: Optional[EscalationState] = None
        self._turn_count = 0
        self._last_assessment: Optional[Assessment] = None

    @classmethod
    def from_settings(
        cls,
        pipeline: RiskPipeline,
        settings: Settings,
        session_id: Optional[SessionId] = None,
    ) -> "ConversationSession":
        return cls(
            pipeline=pipeline,
            session_id=session_id,
            history_size=settings.history_size,
            escalation_max_attempts=settings.escalation_max_attempts,
            quit_sentinel=settings.quit_sentinel,
            quit_case_sensitive=settings.quit_case_sensitive,
        )

    # -------------------------------------------------------------------------
    # State
    # -------------------------------------------------------------------------

    @property
    def status(self) -> SessionStatus:
        return self._status

    @property
    def is_ended(self) -> bool:
        return self._status is SessionStatus.ENDED

    @property
    def turn_count(self) -> int:
        return self._turn_count

    def touch(self) -> None:
        """Record client activity for idle expiry."""
        self.last_activity = datetime.now(timezone.utc)

    @property
    def last_assessment(self) -> Optional[Assessment]:
        return self._last_assessment

    @property
    def escalation_state(self) -> Optional[EscalationState]:
        """Live state while escalating, final outcome afterwards, else None."""
        if self._escalation is not None:
            return self._escalation.state
        return self._escalation_outcome

    def is_quit(self, text: str) -> bool:
        return is_quit_sentinel(text, self._quit_sentinel, self._quit_case_sensitive)

    # -------------------------------------------------------------------------
    # Turns
    # -------------------------------------------------------------------------

    async def handle_turn(self, multimodal_input: MultimodalInput) -> TurnResult:
        """
        Run one ordinary turn: assess, then reply or start escalation.

        Raises:
            SessionEndedError: the session already ended
            SessionBusyError: an escalation is awaiting the user's choice
        """
        async with self._lock:
            self._ensure_not_ended()
            if self._status is SessionStatus.ESCALATING:
                raise SessionBusyError(
                    "Session is escalating; submit an escalation choice instead",
                    details={"escalation_state": self.escalation_state.value},
                )

            self.touch()
            if self.is_quit(multimodal_input.text):
                self._end("quit")
                return TurnResult(session_status=self._status)

            self._turn_count += 1
            with LogContext(session_id=self.session_id, turn_id=generate_turn_id()):
                assessment = await self._pipeline.assess(multimodal_input, self.history)
                if self.is_ended:
                    # Ended from outside while the classifier was running
                    logger.info("Session ended during classification, discarding reply")
                    return TurnResult(session_status=self._status, assessment=assessment)
                self._last_assessment = assessment
                reply = self._selector.respond(assessment)

                if not assessment.is_crisis:
                    return TurnResult(
                        session_status=self._status,
                        assessment=assessment,
                        reply=reply,
                    )

                self._escalation = EscalationFlow(max_attempts=self._escalation_max_attempts)
                self._status = SessionStatus.ESCALATING
                logger.warning("Session escalating after crisis assessment (%s)", assessment.source.value)

                return TurnResult(
                    session_status=self._status,
                    assessment=assessment,
                    reply=reply,
                    escalation_prompt=self._escalation.opening_prompt,
                )

    async def submit_escalation_choice(self, choice: str) -> EscalationStep:
        """
        Feed the user's escalation choice; ends the session once resolved.

        Raises:
            SessionEndedError: the session already ended
            EscalationNotActiveError: no escalation is in progress
        """
        async with self._lock:
            self._ensure_not_ended()
            if self._escalation is None:
                raise EscalationNotActiveError("No escalation in progress for this session")

            self.touch()

            with LogContext(session_id=self.session_id):
                step = self._escalation.submit(choice)
                if step.resolved:
                    self._escalation_outcome = step.state
                    self._escalation = None
                    self._end(f"escalation {step.state.value}")
            return step

    def end(self) -> None:
        """End the session from outside (e.g. client disconnect)."""
        if not self.is_ended:
            self._end("closed")

    def _end(self, reason: str) -> None:
        self._status = SessionStatus.ENDED
        with LogContext(session_id=self.session_id):
            logger.info("Session ended: %s (turns=%d)", reason, self._turn_count)

    def _ensure_not_ended(self) -> None:
        if self.is_ended:
            raise SessionEndedError(
                "Session has ended",
                details={"escalation_state": self.escalation_state.value if self.escalation_state else None},
            )


# =============================================================================
# Session Store
# =============================================================================

class SessionStore:
    """
    In-memory registry of conversation sessions.

    Bounded, and guarded by an asyncio lock. Sessions are memory-only and
    do not survive a restart. Sessions idle for longer than the TTL are
    evicted by a background task, and on demand when the store is full.

    Usage:
        store = SessionStore(pipeline, settings)
        await store.start()
        session = await store.create_session()
        result = await session.handle_turn(MultimodalInput(text="hi"))
        await store.stop()
    """

    def __init__(self, pipeline: RiskPipeline, settings: Settings):
        self._pipeline = pipeline
        self._settings = settings
        self._max_sessions = settings.max_sessions
        self._session_ttl = timedelta(minutes=settings.session_ttl_minutes)
        self._cleanup_interval = settings.session_cleanup_interval_seconds
        self._sessions: Dict[str, ConversationSession] = {}
        self._lock = asyncio.Lock()
        self._cleanup_task: Optional[asyncio.Task] = None

    async def start(self) -> None:
        """Start background cleanup task."""
        if self._cleanup_task is not None:
            return
        self._cleanup_task = asyncio.create_task(self._cleanup_loop())
        logger.info(
            "SessionStore started: max=%d, ttl=%s, cleanup_interval=%ds",
            self._max_sessions,
            self._session_ttl,
            self._cleanup_interval,
        )

    async def stop(self) -> None:
        """Stop background tasks and clear sessions."""
        if self._cleanup_task is not None:
            self._cleanup_task.cancel()
            try:
                await self._cleanup_task
            except asyncio.CancelledError:
                pass
            self._cleanup_task = None
        await self.clear()

    async def create_session(self) -> ConversationSession:
        """
        Create and register a new session.

        Raises:
            SessionLimitError: if at capacity with live, unexpired sessions
        """
        async with self._lock:
            if len(self._sessions) >= self._max_sessions:
                self._purge_stale()

            if len(self._sessions) >= self._max_sessions:
                raise SessionLimitError(
                    f"Maximum concurrent sessions ({self._max_sessions}) reached"
                )

            session = ConversationSession.from_settings(self._pipeline, self._settings)
            self._sessions[session.session_id] = session

            logger.info("Session created: %s", session.session_id[:8] + "...")
            return session

    async def get_session(self, session_id: str) -> Optional[ConversationSession]:
        async with self._lock:
            return self._sessions.get(session_id)

    async def get_session_or_raise(self, session_id: str) -> ConversationSession:
        session = await self.get_session(session_id)
        if session is None:
            raise SessionNotFoundError(f"Session not found: {session_id[:8]}")
        return session

    async def remove_session(self, session_id: str) -> bool:
        """End and forget a session. Returns False if it was unknown."""
        async with self._lock:
            session = self._sessions.pop(session_id, None)
        if session is None:
            return False
        session.end()
        return True

    async def purge_stale(self, now: Optional[datetime] = None) -> int:
        """Evict ended and idle-expired sessions. Returns how many were removed."""
        async with self._lock:
            return self._purge_stale(now)

    async def clear(self) -> None:
        async with self._lock:
            count = len(self._sessions)
            for session in self._sessions.values():
                session.end()
            self._sessions.clear()
        logger.info("SessionStore cleared: %d sessions", count)

    def __len__(self) -> int:
        return len(self._sessions)

    def _purge_stale(self, now: Optional[datetime] = None) -> int:
        now = now or datetime.now(timezone.utc)
        stale: List[str] = []
        expired = 0
        for sid, session in self._sessions.items():
            if session.is_ended:
                stale.append(sid)
            elif now - session.last_activity > self._session_ttl:
                session.end()
                stale.append(sid)
                expired += 1
        for sid in stale:
            del self._sessions[sid]
        if stale:
            logger.info("Purged %d sessions (%d idle-expired)", len(stale), expired)
        return len(stale)

    async def _cleanup_loop(self) -> None:
        """Background task to evict stale sessions."""
        while True:
            await asyncio.sleep(self._cleanup_interval)
            try:
                await self.purge_stale()
            except Exception as e:
                logger.error("Error in cleanup loop: %s", str(e))
