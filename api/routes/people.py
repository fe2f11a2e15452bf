"""
People API endpoints for Contact Card.

Browse and hand-edit the roster: people, their facts, and the entry log.
Facts added here are manual (no source transcript).
"""
import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, Query
from pydantic import BaseModel, Field, field_validator

from api.services.address_book import get_address_book
from api.services.contact_store import Fact, Person, get_contact_store
from config.fact_categories import DEFAULT_CATEGORY

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["people"])


class FactResponse(BaseModel):
    """Response model for a fact."""
    id: str
    person_id: str
    category: str
    content: str
    raw_transcript: str = ""
    created_at: Optional[str] = None
    category_icon: str = ""


class PersonResponse(BaseModel):
    """Response model for a person."""
    id: str
    name: str
    aliases: list[str] = []
    contact_identifier: Optional[str] = None
    summary: str = ""
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    facts: list[FactResponse] = []


class EntryResponse(BaseModel):
    """Response model for a transcript entry."""
    id: str
    transcript: str
    created_at: Optional[str] = None


class CreatePersonRequest(BaseModel):
    """Request to add a person by hand."""
    name: str = Field(..., min_length=1)
    aliases: list[str] = []
    summary: str = ""

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("Name cannot be empty")
        return v.strip()


class LinkContactRequest(BaseModel):
    """Request to link a person to an address-book contact."""
    contact_id: str = Field(..., min_length=1)


class CreateFactRequest(BaseModel):
    """Request to add a fact by hand."""
    category: str = DEFAULT_CATEGORY
    content: str = Field(..., min_length=1)

    @field_validator("content")
    @classmethod
    def content_not_blank(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("Fact cannot be empty")
        return v.strip()


def _person_response(person: Person) -> PersonResponse:
    return PersonResponse(**person.to_dict(include_facts=True))


@router.get("/people", response_model=list[PersonResponse])
async def list_people(
    q: Optional[str] = Query(default=None, description="Filter by name or alias (case-insensitive)")
) -> list[PersonResponse]:
    """**List everyone in the roster** with their facts, most recently updated first."""
    people = get_contact_store().get_people(include_facts=True)
    if q:
        needle = q.strip().lower()
        people = [
            p for p in people
            if needle in p.name.lower() or any(needle in a.lower() for a in p.aliases)
        ]
    return [_person_response(p) for p in people]


@router.post("/people", response_model=PersonResponse, status_code=201)
async def create_person(request: CreatePersonRequest) -> PersonResponse:
    """**Add a person by hand.**"""
    person = Person(name=request.name, aliases=request.aliases, summary=request.summary)
    get_contact_store().add_person(person)
    logger.info(f"Created person {person.id} manually")
    return _person_response(person)


@router.get("/people/{person_id}", response_model=PersonResponse)
async def get_person(person_id: str) -> PersonResponse:
    """Get one person with their facts."""
    person = get_contact_store().get_person(person_id)
    if person is None:
        raise HTTPException(status_code=404, detail="Person not found")
    return _person_response(person)


@router.delete("/people/{person_id}")
async def delete_person(person_id: str) -> dict:
    """Delete a person and all of their facts."""
    if not get_contact_store().delete_person(person_id):
        raise HTTPException(status_code=404, detail="Person not found")
    return {"deleted": True, "id": person_id}


@router.put("/people/{person_id}/contact", response_model=PersonResponse)
async def link_contact(person_id: str, request: LinkContactRequest) -> PersonResponse:
    """**Link a person to an address-book contact**, replacing any existing link."""
    store = get_contact_store()
    person = store.get_person(person_id)
    if person is None:
        raise HTTPException(status_code=404, detail="Person not found")
    contact = get_address_book().get(request.contact_id)
    if contact is None:
        raise HTTPException(status_code=400, detail=f"Unknown contact: {request.contact_id}")

    person.contact_identifier = contact.identifier
    store.update_person(person)
    logger.info(f"Linked person {person.id} to contact {contact.identifier}")
    return _person_response(person)


@router.delete("/people/{person_id}/contact", response_model=PersonResponse)
async def unlink_contact(person_id: str) -> PersonResponse:
    """Remove a person's address-book link. Facts and aliases are kept."""
    store = get_contact_store()
    person = store.get_person(person_id)
    if person is None:
        raise HTTPException(status_code=404, detail="Person not found")

    if person.contact_identifier is not None:
        person.contact_identifier = None
        store.update_person(person)
        logger.info(f"Unlinked person {person.id} from its contact")
    return _person_response(person)


@router.post("/people/{person_id}/facts", response_model=FactResponse, status_code=201)
async def add_fact(person_id: str, request: CreateFactRequest) -> FactResponse:
    """**Add a fact by hand.** Manual facts have no source transcript."""
    store = get_contact_store()
    if store.get_person(person_id, include_facts=False) is None:
        raise HTTPException(status_code=404, detail="Person not found")
    fact = store.add_fact(Fact(
        person_id=person_id,
        category=request.category.strip() or DEFAULT_CATEGORY,
        content=request.content,
    ))
    return FactResponse(**fact.to_dict())


@router.delete("/facts/{fact_id}")
async def delete_fact(fact_id: str) -> dict:
    """Delete one fact."""
    if not get_contact_store().delete_fact(fact_id):
        raise HTTPException(status_code=404, detail="Fact not found")
    return {"deleted": True, "id": fact_id}


@router.get("/entries", response_model=list[EntryResponse])
async def list_entries(limit: int = Query(default=50, ge=1, le=500)) -> list[EntryResponse]:
    """Recent transcript entries, newest first."""
    return [EntryResponse(**e.to_dict()) for e in get_contact_store().get_entries(limit=limit)]
