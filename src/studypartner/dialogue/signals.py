"""Per-turn learner signals.

Cheap pattern checks on a single user message. The proactive suggestion
engine aggregates them over the recent turn window to decide whether the
learner looks stuck.
"""

import re
from dataclasses import dataclass

SHORT_REPLY_MAX_WORDS = 3


@dataclass(frozen=True)
class TurnSignals:
    """Signals detected in one user message."""

    is_short: bool  # At most SHORT_REPLY_MAX_WORDS words
    is_confused: bool  # Explicit confusion language
    is_completed: bool  # "got it", "makes sense", ...
    is_disengaged: bool  # Minimal replies like "ok", "idk", "..."

    @property
    def is_low_effort(self) -> bool:
        return (self.is_short or self.is_disengaged) and not self.is_completed


SIGNAL_PATTERNS: dict[str, list[str]] = {
    "confusion": [
        r"\bi\s+(don'?t|do not|still don'?t)\s+(understand|get|follow)\b",
        r"\b(confused|lost|stuck)\b",
        r"\bmakes?\s+no\s+sense\b",
        r"^huh\??$",
        r"^what\??$",
        r"\bexplain\b.+\bagain\b",
        r"\bnot\s+(following|getting it)\b",
    ],
    "completion": [
        r"^(got it|i (got|get) it|understood|i (understand|see)|makes sense|that makes sense"
        r"|clear now|ah i see|oh i see|now i (get|understand) it)!?\.?$",
        r"\bthanks?,?\s+(that|this)\s+(helps?|makes sense|is clear)\b",
        r"^(perfect|exactly|right)!?$",
    ],
    "disengagement": [
        r"^(ok|okay|k|kk|cool|sure|fine|whatever|idk|dunno|meh)!?\.?$",
        r"^(yes|no|yeah|yep|nope|nah)!?\.?$",
        r"^\.{1,3}$",
        r"^[a-z]{1,3}$",
    ],
}

_COMPILED: dict[str, list[re.Pattern]] = {
    name: [re.compile(pattern, re.IGNORECASE) for pattern in patterns]
    for name, patterns in SIGNAL_PATTERNS.items()
}


def _matches(name: str, text: str) -> bool:
    return any(pattern.search(text) for pattern in _COMPILED[name])


def detect_turn_signals(content: str) -> TurnSignals:
    """Detect learner signals in a single user message.

    Args:
        content: The user's message

    Returns:
        Detected signals
    """
    normalized = " ".join(content.lower().split())
    word_count = len(normalized.split()) if normalized else 0

    return TurnSignals(
        is_short=word_count <= SHORT_REPLY_MAX_WORDS,
        is_confused=_matches("confusion", normalized),
        is_completed=_matches("completion", normalized),
        is_disengaged=_matches("disengagement", normalized),
    )
