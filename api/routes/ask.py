"""
Ask API endpoint.

POST /api/ask - Ask a question about the people you know.
"""
import time
import logging
from fastapi import APIRouter
from pydantic import BaseModel, Field, field_validator

from api.routes.errors import SERVICE_ERRORS, to_http_exception
from api.services.pipeline import get_pipeline_runner

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api", tags=["ask"])


class AskRequest(BaseModel):
    """Ask request schema."""
    question: str = Field(..., min_length=1, description="Question to answer")

    @field_validator('question')
    @classmethod
    def question_not_empty(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError('Question cannot be empty')
        return v.strip()


class AskResponse(BaseModel):
    """Ask response schema."""
    answer: str
    elapsed_ms: int


@router.post("/ask", response_model=AskResponse)
async def ask(request: AskRequest) -> AskResponse:
    """
    **Ask a question** about the people you've recorded notes on.

    Examples:
    - "Where does Sarah work?"
    - "Who do I know in finance?"
    - "What's the name of Jerry's daughter?"

    Answers come only from stored facts and phone contacts; if the
    information isn't there, the assistant says so.
    """
    start = time.time()
    try:
        answer = await get_pipeline_runner().ask(request.question)
    except SERVICE_ERRORS as e:
        logger.error(f"Ask failed: {e}")
        raise to_http_exception(e)

    return AskResponse(answer=answer, elapsed_ms=int((time.time() - start) * 1000))
