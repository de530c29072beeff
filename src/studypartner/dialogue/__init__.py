"""Dialogue-side advisory layers.

This module holds the two pieces the response layer consults before it asks
the language model for a reply:
- Intent classification (answer-seeking vs learning-seeking)
- Proactive suggestions (should the assistant speak first?)

Usage:
    from studypartner.dialogue import ProactiveSuggestionEngine, classify_intent

    verdict = classify_intent(message)
    directive = guard_directive(verdict)

    engine = ProactiveSuggestionEngine()
    suggestion = engine.evaluate(session, recent_turns, last_ask_index, ai_messages_since_ask)
"""

from studypartner.dialogue.intent import (
    INTENT_RULES,
    Confidence,
    IntentFamily,
    IntentRule,
    IntentVerdict,
    classify_intent,
    guard_directive,
)
from studypartner.dialogue.proactive import (
    Phase,
    ProactiveSuggestionEngine,
    Suggestion,
)
from studypartner.dialogue.signals import TurnSignals, detect_turn_signals

__all__ = [
    # Intent
    "INTENT_RULES",
    "Confidence",
    "IntentFamily",
    "IntentRule",
    "IntentVerdict",
    "classify_intent",
    "guard_directive",
    # Proactive
    "Phase",
    "ProactiveSuggestionEngine",
    "Suggestion",
    # Signals
    "TurnSignals",
    "detect_turn_signals",
]
