"""Intent classification API routes."""

from fastapi import APIRouter

from studypartner.dialogue.intent import classify_intent, guard_directive

from ..deps import User
from ..schemas import IntentRequest, IntentResponse

router = APIRouter(prefix="/api/partner", tags=["intent"])


@router.post("/intent", response_model=IntentResponse)
def classify(data: IntentRequest, user: User) -> IntentResponse:
    """Classify whether a message asks for a direct answer."""
    verdict = classify_intent(data.message)
    return IntentResponse(**verdict.model_dump(), directive=guard_directive(verdict))
