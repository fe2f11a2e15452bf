"""
Recording and review API endpoints.

POST /api/record                                   - Extract people + facts from a transcript
GET  /api/reviews/{id}                             - Current review state
PUT  /api/reviews/{id}/mentions/{i}/selection      - Resolve who a mention is
PATCH /api/reviews/{id}/mentions/{i}/facts/{j}     - Toggle or edit a candidate fact
POST /api/reviews/{id}/commit                      - Save the reviewed batch
DELETE /api/reviews/{id}                           - Discard a review

Reviews live in memory only. Discarding one (or restarting the server)
drops all candidate data without side effects; the Entry is already logged.
"""
import logging
from typing import Literal, Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field, field_validator, model_validator

from api.routes.errors import SERVICE_ERRORS, to_http_exception
from api.services.contact_store import get_contact_store
from api.services.pipeline import get_pipeline_runner
from api.services.reconciliation import ReviewSession, get_review_registry

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api", tags=["record"])


class RecordRequest(BaseModel):
    """Finished transcript to process."""
    transcript: str = Field(..., min_length=1, description="Final text of the recording")

    @field_validator("transcript")
    @classmethod
    def transcript_not_empty(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("Transcript cannot be empty")
        return v.strip()


class SelectionRequest(BaseModel):
    """How the user resolved a mention."""
    kind: Literal["external_contact", "new_person"]
    contact_id: Optional[str] = None

    @model_validator(mode="after")
    def contact_id_matches_kind(self):
        if self.kind == "external_contact" and not self.contact_id:
            raise ValueError("contact_id is required for external_contact")
        if self.kind == "new_person" and self.contact_id:
            raise ValueError("contact_id is not allowed for new_person")
        return self


class FactUpdateRequest(BaseModel):
    """Partial update of a candidate fact."""
    enabled: Optional[bool] = None
    category: Optional[str] = None
    content: Optional[str] = None


def _get_session(review_id: str) -> ReviewSession:
    session = get_review_registry().get(review_id)
    if session is None:
        raise HTTPException(status_code=404, detail="Review not found")
    return session


@router.post("/record")
async def record(request: RecordRequest) -> dict:
    """
    **Process a finished recording.**

    Logs the transcript as an Entry, runs extraction, and opens a review.
    Mentions that could not be matched automatically come back with
    `needs_resolution: true`; `can_commit` stays false until they are resolved.
    """
    try:
        entry, session = await get_pipeline_runner().record_and_extract(request.transcript)
    except SERVICE_ERRORS as e:
        logger.error(f"Extraction failed: {e}")
        raise to_http_exception(e)

    return {"entry_id": entry.id, "review": session.to_dict()}


@router.get("/reviews/{review_id}")
async def get_review(review_id: str) -> dict:
    """Current state of a review."""
    return _get_session(review_id).to_dict()


@router.put("/reviews/{review_id}/mentions/{index}/selection")
async def select_mention(review_id: str, index: int, request: SelectionRequest) -> dict:
    """Bind a mention to an address-book contact or to a new person."""
    session = _get_session(review_id)
    try:
        if request.kind == "external_contact":
            session.select_external_contact(index, request.contact_id)
        else:
            session.select_new_person(index)
    except IndexError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except SERVICE_ERRORS as e:
        raise to_http_exception(e)
    return session.to_dict()


@router.patch("/reviews/{review_id}/mentions/{index}/facts/{fact_index}")
async def update_fact(review_id: str, index: int, fact_index: int, request: FactUpdateRequest) -> dict:
    """Enable/disable or edit one candidate fact."""
    session = _get_session(review_id)
    try:
        session.update_fact(
            index,
            fact_index,
            enabled=request.enabled,
            category=request.category,
            content=request.content,
        )
    except IndexError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except SERVICE_ERRORS as e:
        raise to_http_exception(e)
    return session.to_dict()


@router.post("/reviews/{review_id}/commit")
async def commit_review(review_id: str) -> dict:
    """
    **Save the reviewed batch.**

    Returns 409 while any mention is unresolved.
    """
    session = _get_session(review_id)
    try:
        summary = session.commit(get_contact_store())
    except SERVICE_ERRORS as e:
        raise to_http_exception(e)

    get_review_registry().discard(review_id)
    return {"review_id": review_id, **summary.to_dict()}


@router.delete("/reviews/{review_id}")
async def discard_review(review_id: str) -> dict:
    """Throw away a review without saving anything."""
    if not get_review_registry().discard(review_id):
        raise HTTPException(status_code=404, detail="Review not found")
    return {"discarded": True, "id": review_id}
