"""
EmoSense - Intervention Selector

Maps a non-crisis emotional-state label to a scripted coping technique.
Dispatch is a static table keyed by lowercase label, with a listening
prompt as the documented default for anything not in the table.
"""

from __future__ import annotations

from enum import Enum
from typing import Dict

from emosense.core.types import Assessment


class Technique(str, Enum):
    """Available coping techniques."""
    BREATHING = "breathing"
    GROUNDING = "grounding"
    MINDFULNESS = "mindfulness"
    LISTENING = "listening"


BREATHING_EXERCISE = """\
I sense you might be feeling anxious. Let's try a simple breathing exercise together. It's called Box Breathing.
1. Find a comfortable position.
2. Slowly exhale all the air from your lungs.
3. Inhale gently through your nose for a count of 4.
4. Hold your breath for a count of 4.
5. Exhale slowly through your mouth for a count of 4.
6. Hold the empty breath for a count of 4.
Repeat this a few times. I'll be here when you're ready."""

GROUNDING_TECHNIQUE = """\
It sounds like things are really tough right now. Let's try a grounding technique called 5-4-3-2-1 to connect with the present moment.
- Name 5 things you can see around you.
- Name 4 things you can feel (like the chair you're on, or your feet on the floor).
- Name 3 things you can hear right now.
- Name 2 things you can smell.
- Name 1 good thing about yourself.
Take your time. This can help when thoughts feel overwhelming."""

MINDFULNESS_PROMPT = """\
It sounds like you're under a lot of stress. Let's take a brief moment for a mindfulness check-in.
Close your eyes for a moment if you feel comfortable.
What is the physical sensation of stress in your body right now? Is it in your shoulders? Your stomach?
Just notice it without judgment. Acknowledge that it's there. Now, take one deep, slow breath and let it go.
Sometimes just noticing is the first step."""

LISTENING_PROMPT = "I'm here to listen. Feel free to share more about what's on your mind."

CRISIS_ACKNOWLEDGEMENT = (
    "Thank you for trusting me. I hear you, and based on what you've shared, "
    "I'm very concerned. Your safety is the most important thing right now."
)


SCRIPTS: Dict[Technique, str] = {
    Technique.BREATHING: BREATHING_EXERCISE,
    Technique.GROUNDING: GROUNDING_TECHNIQUE,
    Technique.MINDFULNESS: MINDFULNESS_PROMPT,
    Technique.LISTENING: LISTENING_PROMPT,
}

STATE_TECHNIQUES: Dict[str, Technique] = {
    "anxious": Technique.BREATHING,
    "agitated": Technique.BREATHING,
    "sad": Technique.GROUNDING,
    "depressed": Technique.GROUNDING,
    "hopeless": Technique.GROUNDING,
    "stressed": Technique.MINDFULNESS,
}


class InterventionSelector:
    """Pure, total mapping from emotional state to a coping script."""

    def technique_for(self, emotional_state: str) -> Technique:
        """Unrecognized or novel labels fall through to listening."""
        # Labels are trimmed as well as lowercased, so "anxious " still maps
        return STATE_TECHNIQUES.get(emotional_state.strip().lower(), Technique.LISTENING)

    def select(self, emotional_state: str) -> str:
        return SCRIPTS[self.technique_for(emotional_state)]

    def respond(self, assessment: Assessment) -> str:
        """Reply for a turn: crisis acknowledgement or the selected script."""
        if assessment.is_crisis:
            return CRISIS_ACKNOWLEDGEMENT
        return self.select(assessment.emotional_state)
