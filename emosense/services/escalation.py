"""
EmoSense - Escalation Flow

State machine entered once an assessment is flagged as crisis.

States:
    AWAITING_CHOICE --"counselor"--> ROUTED
    AWAITING_CHOICE --"contact"----> CONTACTS_SHOWN
    AWAITING_CHOICE --other--------> AWAITING_CHOICE (re-prompt)

ROUTED and CONTACTS_SHOWN are terminal. The flow itself does no I/O:
callers feed it choices and print what it returns, which lets the console
loop and the HTTP API drive the same machine.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Tuple

from emosense.core.exceptions import EscalationResolvedError
from emosense.core.types import EmergencyResource, EscalationState, EscalationStep

logger = logging.getLogger(__name__)


OPENING_PROMPT = (
    "I can connect you right now to a trained counselor, "
    "or share emergency contact options. Which would you prefer?"
)
CHOICE_HINT = "Type 'Counselor' or 'Contacts'"
REPROMPT = "I'm sorry, I didn't understand. Please type 'Counselor' or 'Contacts'."

ROUTED_MESSAGES: Tuple[str, ...] = (
    "[SIMULATION] Routing to a licensed counselor...",
    "[SIMULATION] An agent will be with you shortly. Please stay connected.",
)

CONTACTS_INTRO = "It's important to talk to someone who can support you. Here are some options:"

EMERGENCY_RESOURCES: Tuple[EmergencyResource, ...] = (
    EmergencyResource("National Suicide Prevention Lifeline", "988"),
    EmergencyResource("Crisis Text Line", "Text HOME to 741741"),
    EmergencyResource("Immediate emergency", "please call 911"),
)

ATTEMPTS_EXHAUSTED = "Let me share some people who can help you right away."


class EscalationFlow:
    """
    One crisis escalation, from the opening question to a terminal handoff.

    Args:
        max_attempts: Unrecognized choices tolerated before the flow shows
            emergency contacts on its own. None keeps re-prompting forever.
        resources: Emergency contacts shown on the contacts branch
    """

    def __init__(
        self,
        max_attempts: Optional[int] = None,
        resources: Tuple[EmergencyResource, ...] = EMERGENCY_RESOURCES,
    ):
        if max_attempts is not None and max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1 or None, got {max_attempts}")
        self._max_attempts = max_attempts
        self._resources = resources
        self._state = EscalationState.AWAITING_CHOICE
        self._unrecognized = 0

    @property
    def state(self) -> EscalationState:
        return self._state

    @property
    def resolved(self) -> bool:
        return self._state.is_terminal

    @property
    def opening_prompt(self) -> str:
        return OPENING_PROMPT

    def submit(self, choice: str) -> EscalationStep:
        """
        Feed one user choice to the machine.

        Raises:
            EscalationResolvedError: the flow already reached a terminal state
        """
        if self.resolved:
            raise EscalationResolvedError(
                "Escalation already resolved",
                details={"state": self._state.value},
            )

        normalized = choice.strip().lower()

        if "counselor" in normalized:
            return self._transition(EscalationState.ROUTED, list(ROUTED_MESSAGES))

        if "contact" in normalized:
            return self._transition(EscalationState.CONTACTS_SHOWN, self._contact_messages())

        self._unrecognized += 1
        if self._max_attempts is not None and self._unrecognized >= self._max_attempts:
            logger.warning(
                "Escalation choice not recognized %d times, showing contacts",
                self._unrecognized,
            )
            return self._transition(
                EscalationState.CONTACTS_SHOWN,
                [ATTEMPTS_EXHAUSTED] + self._contact_messages(),
            )

        logger.debug("Escalation choice not recognized (attempt %d)", self._unrecognized)
        return EscalationStep(state=self._state, messages=[REPROMPT])

    def _contact_messages(self) -> List[str]:
        return [CONTACTS_INTRO] + [f"- {resource.render()}" for resource in self._resources]

    def _transition(self, state: EscalationState, messages: List[str]) -> EscalationStep:
        logger.info("Escalation resolved: %s", state.value)
        self._state = state
        return EscalationStep(state=state, messages=messages)
