"""
Query Engine for Contact Card.

Answers natural-language questions about the people the user knows,
grounded only in stored facts and the address book. The answer is free
text; correctness is a prompt contract, not something parsed or checked.
"""
import json
import logging
from typing import Optional

from api.services.address_book import ExternalContact
from api.services.contact_store import Person
from api.services.extraction import format_contacts
from api.services.relay_client import (
    MalformedResponse,
    RelayClient,
    get_relay_client,
    response_text,
)

logger = logging.getLogger(__name__)


def format_people_for_query(people: list[Person]) -> str:
    """Roster with summaries and facts, for answering questions."""
    items = []
    for person in people:
        item = {
            "name": person.name,
            "summary": person.summary,
            "facts": [{"category": f.category, "content": f.content} for f in person.facts],
        }
        if person.aliases:
            item["aliases"] = list(person.aliases)
        if person.contact_identifier:
            item["linked_contact"] = person.contact_identifier
        items.append(item)
    return json.dumps(items, sort_keys=True, ensure_ascii=False)


def build_query_prompt(
    question: str,
    people: list[Person],
    contacts: list[ExternalContact],
) -> str:
    """Build the question-answering prompt."""
    return f"""You are a personal contact assistant. The user will ask a question about people they know.
Answer using ONLY the information provided below. Be conversational, concise, and helpful.

If you don't have enough information to fully answer, say so honestly.
If the question is about a specific person, give all relevant facts you have.
If the question is a search (e.g. "who works in finance"), scan ALL people and contacts.
If asked about someone not in the data, say you don't have information about them.

Do not make up or infer facts that aren't explicitly stated in the data below.

STORED PEOPLE AND THEIR FACTS:
{format_people_for_query(people)}

PHONE CONTACTS (basic info from the user's phone):
{format_contacts(contacts)}

QUESTION: {question}"""


class QueryEngine:
    """Answers questions from the roster and address book."""

    def __init__(self, relay: Optional[RelayClient] = None):
        self._relay = relay

    @property
    def relay(self) -> RelayClient:
        """Lazy-load the relay client."""
        if self._relay is None:
            self._relay = get_relay_client()
        return self._relay

    async def query(
        self,
        question: str,
        known_people: list[Person],
        known_contacts: list[ExternalContact],
    ) -> str:
        """
        Answer a question.

        Raises:
            RequestFailure, UpstreamFailure: relay call failed
            MalformedResponse: no answer text in the response
        """
        prompt = build_query_prompt(question, known_people, known_contacts)
        payload = await self.relay.send(messages=[{"role": "user", "content": prompt}])
        answer = response_text(payload).strip()
        if not answer:
            raise MalformedResponse("Empty answer from assistant")
        logger.info(f"Answered question ({len(answer)} chars) from {len(known_people)} people")
        return answer


# Singleton instance
_query_engine: Optional[QueryEngine] = None


def get_query_engine() -> QueryEngine:
    """Get or create the singleton QueryEngine."""
    global _query_engine
    if _query_engine is None:
        _query_engine = QueryEngine()
    return _query_engine


def reset_query_engine() -> None:
    """Reset the singleton (for testing)."""
    global _query_engine
    _query_engine = None
