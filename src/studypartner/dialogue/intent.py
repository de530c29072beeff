"""Answer-seeking intent classifier.

Scores a single user message against a declarative rule table with two
families of patterns:

- answer-seeking: direct-answer requests, exam/cheat phrasing, copy/paste
  requests, urgency under a deadline
- learning-seeking: explain/understand requests, step-by-step requests,
  why/how questions, confusion, method/approach requests

Any learning-seeking match suppresses the answer-seeking verdict, no matter
how many answer-seeking rules fired. Ambiguous requests are treated as
learning so a genuine learner is never blocked.

The classifier only produces a verdict and a guard directive for the
response layer; it never calls a language model.
"""

import logging
import re
from dataclasses import dataclass
from enum import Enum
from functools import lru_cache
from typing import Optional, Sequence

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

HIGH_CONFIDENCE_SCORE = 2.0


class IntentFamily(str, Enum):
    """Which kind of intent a rule is evidence for."""

    ANSWER_SEEKING = "answer_seeking"
    LEARNING_SEEKING = "learning_seeking"


class Confidence(str, Enum):
    """How sure the classifier is about an answer-seeking verdict."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


@dataclass(frozen=True)
class IntentRule:
    """One pattern in the rule table."""

    name: str
    pattern: str
    family: IntentFamily
    weight: float = 1.0

    def matches(self, text: str) -> bool:
        return _compile(self.pattern).search(text) is not None


@lru_cache(maxsize=None)
def _compile(pattern: str) -> re.Pattern:
    return re.compile(pattern, re.IGNORECASE)


class IntentVerdict(BaseModel):
    """Result of classifying one message."""

    is_answer_seeking: bool = False
    confidence: Confidence = Confidence.LOW
    matched_patterns: list[str] = Field(default_factory=list)


_ANSWER = IntentFamily.ANSWER_SEEKING
_LEARNING = IntentFamily.LEARNING_SEEKING

INTENT_RULES: tuple[IntentRule, ...] = (
    # =========================================================================
    # Answer-seeking
    # =========================================================================
    IntentRule(
        "direct_answer_request",
        r"\b(give|tell|show|send)\s+me\s+(the\s+|all\s+the\s+)?(final\s+)?(answers?|solutions?)\b",
        _ANSWER,
    ),
    IntentRule("just_tell_me", r"\bjust\s+(tell|give|show)\s+me\b", _ANSWER),
    IntentRule(
        "what_is_the_answer",
        r"\bwhat('?s|\s+is|\s+are)\s+the\s+(final\s+)?(answers?|solutions?|result)\b",
        _ANSWER,
    ),
    IntentRule(
        "need_the_answer",
        r"\bi\s+(need|want)\s+(the\s+)?(answers?|solutions?|result)\b",
        _ANSWER,
    ),
    IntentRule(
        "answer_only",
        r"\b(only|just)\s+(the\s+)?(final\s+)?(answers?|result)\b",
        _ANSWER,
    ),
    IntentRule(
        "solve_it_for_me",
        r"\b(solve|do|answer|finish|complete)\s+(this|it|these|them)\s+for\s+me\b",
        _ANSWER,
    ),
    IntentRule(
        "do_my_homework",
        r"\b(do|write|finish|complete)\s+my\s+(homework|assignment|essay|worksheet|project|lab)\b",
        _ANSWER,
    ),
    IntentRule(
        "exam_question",
        r"\b(exam|test|quiz|midterm)\s+(questions?|answers?)\b",
        _ANSWER,
    ),
    IntentRule(
        "bare_calculation",
        r"\bwhat('?s|\s+is)\s+-?\d+(\.\d+)?\s*[-+*/x^]\s*-?\d",
        _ANSWER,
    ),
    IntentRule("cheating", r"\bcheat(ing)?\b", _ANSWER),
    IntentRule("answer_key", r"\banswer\s+key\b", _ANSWER),
    IntentRule("copy_paste", r"\bcopy[\s-]*(and[\s-]*)?paste\b", _ANSWER),
    IntentRule(
        "ready_to_submit",
        r"\b(something|text|code)\s+i\s+can\s+(copy|submit|hand\s+in|turn\s+in)\b",
        _ANSWER,
    ),
    IntentRule(
        "due_soon",
        r"\b(due|deadline\s+is)\s+(in\s+\d+\s*(minutes?|mins?|hours?|hrs?)|tonight|today|tomorrow|soon|now)\b",
        _ANSWER,
    ),
    IntentRule(
        "no_time_to_learn",
        r"\b(no|don'?t\s+have)\s+time\s+(to|for)\s+(study|studying|learn|learning|explanations?)\b",
        _ANSWER,
    ),
    IntentRule(
        "urgent_answer",
        r"\b(answers?|solutions?)\s+(asap|now|quick(ly)?|fast)\b",
        _ANSWER,
    ),
    # =========================================================================
    # Learning-seeking
    # =========================================================================
    IntentRule(
        "explain_request",
        r"\b(can|could|would)\s+you\s+explain\b"
        r"|\bexplain\s+(to\s+me\s+)?(how|why|what|the|this|that|it)\b"
        r"|\bplease\s+explain\b",
        _LEARNING,
    ),
    IntentRule(
        "understand_request",
        r"\b(help\s+me|want\s+to|trying\s+to|like\s+to|need\s+to)\s+(understand|learn)\b",
        _LEARNING,
    ),
    IntentRule(
        "step_by_step",
        r"\bstep[\s-]+by[\s-]+step\b|\b(walk|talk)\s+me\s+through\b|\bbreak\s+(it|this)\s+down\b",
        _LEARNING,
    ),
    IntentRule(
        "why_how_question",
        r"^\s*(why|how)\b|\b(why|how)\s+(does|do|is|are|did|would|can|should)\b",
        _LEARNING,
    ),
    IntentRule(
        "confusion",
        r"\bi('m|\s+am)\s+(so\s+|really\s+)?(confused|lost|stuck)\b"
        r"|\bi\s+(don'?t|do\s+not)\s+(understand|get|follow)\b"
        r"|\bmakes?\s+no\s+sense\b",
        _LEARNING,
    ),
    IntentRule(
        "method_request",
        r"\b(method|approach|strategy|concept|technique)\b"
        r"|\bwhat\s+am\s+i\s+(doing\s+)?wrong\b"
        r"|\bwhere\s+did\s+i\s+go\s+wrong\b",
        _LEARNING,
    ),
)


def _normalize(message: str) -> str:
    return " ".join(message.replace("’", "'").lower().split())


def classify_intent(
    message: str,
    rules: Sequence[IntentRule] = INTENT_RULES,
) -> IntentVerdict:
    """Classify whether a message asks for a direct answer.

    Never raises: malformed input or a broken rule yields the most
    permissive verdict (not answer-seeking, low confidence).

    Args:
        message: The user's message
        rules: Rule table to score against

    Returns:
        Verdict with confidence and the names of every rule that matched
    """
    try:
        text = _normalize(message)
        answer_hits = [r for r in rules if r.family == _ANSWER and r.matches(text)]
        learning_hits = [r for r in rules if r.family == _LEARNING and r.matches(text)]
    except Exception as e:
        logger.warning(f"Intent classification failed, treating as learning: {e}")
        return IntentVerdict()

    answer_score = sum(rule.weight for rule in answer_hits)
    is_answer_seeking = answer_score > 0 and not learning_hits

    if is_answer_seeking and answer_score >= HIGH_CONFIDENCE_SCORE:
        confidence = Confidence.HIGH
    elif is_answer_seeking:
        confidence = Confidence.MEDIUM
    else:
        confidence = Confidence.LOW

    return IntentVerdict(
        is_answer_seeking=is_answer_seeking,
        confidence=confidence,
        matched_patterns=[rule.name for rule in (*answer_hits, *learning_hits)],
    )


HIGH_CONFIDENCE_DIRECTIVE = """
ANSWER GUARD: This message is almost certainly asking for a direct answer to
homework or an exam question.

Do NOT give the final answer, a complete solution, or text that can be
copied and submitted. Instead:
- Name the concept the problem is testing
- Outline the method as numbered steps without carrying them out
- Work a similar example with different numbers
- Ask the learner to attempt the first step and share their work

Stay warm and encouraging; the goal is that they can solve it themselves."""

MEDIUM_CONFIDENCE_DIRECTIVE = """
ANSWER GUARD: This message may be asking for a direct answer.
Teach the method rather than handing over the solution, and guide the
learner to work the final step out on their own."""


def guard_directive(verdict: IntentVerdict) -> Optional[str]:
    """Directive to prepend to the response instructions for a flagged message.

    Returns:
        Directive text scaled by confidence, or None when the message is not
        answer-seeking
    """
    if not verdict.is_answer_seeking:
        return None
    if verdict.confidence == Confidence.HIGH:
        return HIGH_CONFIDENCE_DIRECTIVE
    return MEDIUM_CONFIDENCE_DIRECTIVE
