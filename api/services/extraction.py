"""
Extraction Engine for Contact Card.

Turns a dictated transcript into structured people + facts using Claude
structured outputs (schema-constrained generation via the relay).

Pipeline:
1. Build the prompt with the roster (id, name, aliases), the address book
   (id, name, nickname, organization, jobTitle) and the category list
2. Send with output_config json_schema so the model can only return JSON
3. Parse content[0].text against the schema (pydantic)
4. Normalize: aliases deduped, match candidates validated against the
   address book and ranked

Any transport error or schema violation aborts the whole extraction.
There is no partial-result mode and no automatic retry.
"""
import json
import logging
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from rapidfuzz import fuzz

from api.services.address_book import ExternalContact
from api.services.contact_store import Person, merge_aliases
from api.services.relay_client import (
    MalformedResponse,
    RelayClient,
    get_relay_client,
    response_text,
)
from config.fact_categories import FACT_CATEGORIES

logger = logging.getLogger(__name__)


class ConfidenceTier(str, Enum):
    """How sure the model is that a mention is a given address-book contact."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def rank(self) -> int:
        return _TIER_RANK[self]

    def __lt__(self, other):
        if not isinstance(other, ConfidenceTier):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other):
        if not isinstance(other, ConfidenceTier):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other):
        if not isinstance(other, ConfidenceTier):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other):
        if not isinstance(other, ConfidenceTier):
            return NotImplemented
        return self.rank >= other.rank


_TIER_RANK = {ConfidenceTier.LOW: 0, ConfidenceTier.MEDIUM: 1, ConfidenceTier.HIGH: 2}


# ============================================================================
# Wire models (mirror EXTRACTION_SCHEMA)
# ============================================================================

class ExtractedFact(BaseModel):
    """One atomic fact as returned by the model."""
    model_config = ConfigDict(extra="forbid")

    category: str
    content: str


class MatchCandidate(BaseModel):
    """A possible address-book match for a mention."""
    model_config = ConfigDict(extra="forbid")

    contact_id: str
    name: str = ""
    confidence: ConfidenceTier


class ExtractedContact(BaseModel):
    """A person mentioned in the transcript."""
    model_config = ConfigDict(extra="forbid")

    name: str
    matched_person_id: Optional[str] = None
    matched_contact_id: Optional[str] = None
    aliases: list[str]
    facts: list[ExtractedFact]
    match_candidates: list[MatchCandidate] = Field(default_factory=list)


class ExtractionResult(BaseModel):
    """Top-level structured output."""
    model_config = ConfigDict(extra="forbid")

    contacts: list[ExtractedContact]


# JSON Schema sent as output_config. Hand-written to match the wire models
# above field for field.
EXTRACTION_SCHEMA: dict = {
    "type": "object",
    "properties": {
        "contacts": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "name": {"type": "string"},
                    "matched_person_id": {"type": ["string", "null"]},
                    "matched_contact_id": {"type": ["string", "null"]},
                    "aliases": {"type": "array", "items": {"type": "string"}},
                    "facts": {
                        "type": "array",
                        "items": {
                            "type": "object",
                            "properties": {
                                "category": {"type": "string"},
                                "content": {"type": "string"},
                            },
                            "required": ["category", "content"],
                            "additionalProperties": False,
                        },
                    },
                    "match_candidates": {
                        "type": "array",
                        "items": {
                            "type": "object",
                            "properties": {
                                "contact_id": {"type": "string"},
                                "name": {"type": "string"},
                                "confidence": {
                                    "type": "string",
                                    "enum": [t.value for t in ConfidenceTier],
                                },
                            },
                            "required": ["contact_id", "confidence"],
                            "additionalProperties": False,
                        },
                    },
                },
                "required": ["name", "aliases", "facts"],
                "additionalProperties": False,
            },
        }
    },
    "required": ["contacts"],
    "additionalProperties": False,
}


# ============================================================================
# Prompt formatting
# ============================================================================

def _json(items: list) -> str:
    return json.dumps(items, sort_keys=True, ensure_ascii=False)


def format_people_for_extraction(people: list[Person]) -> str:
    """Roster as grounding context: just enough to match identities."""
    return _json([
        {"id": p.id, "name": p.name, "aliases": list(p.aliases)}
        for p in people
    ])


def format_contacts(contacts: list[ExternalContact]) -> str:
    """Address book as grounding context."""
    return _json([
        {
            "id": c.identifier,
            "name": c.full_name,
            "nickname": c.nickname,
            "organization": c.organization,
            "jobTitle": c.job_title,
        }
        for c in contacts
    ])


def build_extraction_prompt(
    transcript: str,
    people: list[Person],
    contacts: list[ExternalContact],
) -> str:
    """Build the extraction prompt."""
    categories = ", ".join(FACT_CATEGORIES)

    return f"""You are a contact information extractor. The user has spoken about people they know.
Extract structured data about every person mentioned.

EXISTING PEOPLE IN DATABASE (match these before creating new entries):
{format_people_for_extraction(people)}

PHONE CONTACTS (match by name/company if a mentioned person corresponds to one):
{format_contacts(contacts)}

Return JSON matching this shape:
{{
  "contacts": [
    {{
      "name": "Full Name",
      "matched_person_id": "existing-person-id-if-matched-or-null",
      "matched_contact_id": "phone-contact-id-if-confidently-matched-or-null",
      "aliases": ["nickname1", "nickname2"],
      "facts": [
        {{ "category": "work", "content": "VP at Goldman Sachs" }},
        {{ "category": "family", "content": "Has daughter Emma, age 8" }}
      ],
      "match_candidates": [
        {{ "contact_id": "phone-contact-id", "name": "Contact Name", "confidence": "high" }}
      ]
    }}
  ]
}}

CATEGORIES: {categories}

RULES:
- One atomic fact per entry. Never combine multiple facts into one; split sentences that carry several facts
- Match existing people by id when the mention is clearly one of them, and set matched_person_id
- If a person matches an existing person, do not also propose phone contacts for them
- Otherwise list plausible phone contacts in match_candidates, best first, with confidence high, medium or low
- If "Jerry" is mentioned and a contact "Jeremy Smith" at Goldman exists, propose that contact
- Be conservative with matching. Use "high" only when you are confident
- Never invent ids. Only use ids that appear in the lists above
- If a person is mentioned but no facts are given about them, still include them with an empty facts array
- Include context clues like when or where info was learned if mentioned
- Preserve the user's phrasing as much as possible in fact content
- If unsure about a name spelling, use your best guess

TRANSCRIPT:
\"\"\"
{transcript}
\"\"\""""


# ============================================================================
# Parsing and normalization
# ============================================================================

def parse_extraction_response(text: str) -> ExtractionResult:
    """
    Parse the structured output text.

    Raises:
        MalformedResponse: If the text is not JSON or does not match the schema
    """
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        logger.error(f"Extraction output is not JSON: {e}")
        logger.debug(f"Output was: {text[:500]}")
        raise MalformedResponse("Extraction output is not valid JSON") from e

    try:
        return ExtractionResult.model_validate(data)
    except ValidationError as e:
        logger.error(f"Extraction output does not match schema: {e.error_count()} error(s)")
        raise MalformedResponse("Extraction output does not match the expected schema") from e


def _name_similarity(mention: ExtractedContact, contact_name: str) -> float:
    """Best fuzzy score between the mention's name/aliases and a contact name."""
    names = [mention.name, *mention.aliases]
    return max(fuzz.token_set_ratio(n.lower(), contact_name.lower()) for n in names)


def normalize_contact(
    mention: ExtractedContact,
    contacts_by_id: dict[str, ExternalContact],
) -> ExtractedContact:
    """
    Clean up one extracted mention.

    - aliases: order-preserving dedup, never the name itself
    - a bare matched_contact_id becomes a single high-confidence candidate
    - candidates not in the address book are dropped, duplicates collapsed
    - display names are filled from the address book
    - candidates ranked by tier, then by name similarity
    """
    name = mention.name.strip()
    aliases: list[str] = []
    merge_aliases(aliases, mention.aliases, name)

    raw_candidates = list(mention.match_candidates)
    if not raw_candidates and mention.matched_contact_id:
        raw_candidates = [MatchCandidate(
            contact_id=mention.matched_contact_id,
            confidence=ConfidenceTier.HIGH,
        )]

    candidates: dict[str, MatchCandidate] = {}
    for candidate in raw_candidates:
        contact = contacts_by_id.get(candidate.contact_id)
        if contact is None:
            logger.warning(f"Dropping match candidate {candidate.contact_id!r} for {name!r}: not in address book")
            continue
        existing = candidates.get(contact.identifier)
        if existing is None or candidate.confidence > existing.confidence:
            candidates[contact.identifier] = MatchCandidate(
                contact_id=contact.identifier,
                name=contact.full_name,
                confidence=candidate.confidence,
            )

    normalized = mention.model_copy(update={"name": name, "aliases": aliases})
    ranked = sorted(
        candidates.values(),
        key=lambda c: (c.confidence.rank, _name_similarity(normalized, c.name)),
        reverse=True,
    )
    matched_contact_id = mention.matched_contact_id if mention.matched_contact_id in candidates else None

    return normalized.model_copy(update={
        "match_candidates": ranked,
        "matched_contact_id": matched_contact_id,
        "facts": [
            ExtractedFact(category=f.category.strip(), content=f.content.strip())
            for f in mention.facts
        ],
    })


class ExtractionEngine:
    """
    Extracts mentioned people and facts from a transcript.
    """

    def __init__(self, relay: Optional[RelayClient] = None):
        """Initialize engine."""
        self._relay = relay

    @property
    def relay(self) -> RelayClient:
        """Lazy-load the relay client."""
        if self._relay is None:
            self._relay = get_relay_client()
        return self._relay

    async def extract(
        self,
        transcript: str,
        known_people: list[Person],
        known_contacts: list[ExternalContact],
    ) -> ExtractionResult:
        """
        Extract structured people + facts from a transcript.

        Args:
            transcript: Final text from the transcription session
            known_people: Roster snapshot (read-only copy)
            known_contacts: Address book snapshot

        Returns:
            Normalized ExtractionResult

        Raises:
            RequestFailure, UpstreamFailure: relay call failed
            MalformedResponse: response did not match the schema
        """
        prompt = build_extraction_prompt(transcript, known_people, known_contacts)
        payload = await self.relay.send(
            messages=[{"role": "user", "content": prompt}],
            output_schema=EXTRACTION_SCHEMA,
        )
        result = parse_extraction_response(response_text(payload))

        contacts_by_id = {c.identifier: c for c in known_contacts}
        mentions = []
        for mention in result.contacts:
            if not mention.name.strip():
                logger.warning(f"Dropping unnamed mention with {len(mention.facts)} fact(s)")
                continue
            mentions.append(normalize_contact(mention, contacts_by_id))
        result = ExtractionResult(contacts=mentions)

        logger.info(
            f"Extracted {len(result.contacts)} contact(s), "
            f"{sum(len(c.facts) for c in result.contacts)} fact(s)"
        )
        return result


# Singleton instance
_extraction_engine: Optional[ExtractionEngine] = None


def get_extraction_engine() -> ExtractionEngine:
    """Get or create the singleton ExtractionEngine."""
    global _extraction_engine
    if _extraction_engine is None:
        _extraction_engine = ExtractionEngine()
    return _extraction_engine


def reset_extraction_engine() -> None:
    """Reset the singleton (for testing)."""
    global _extraction_engine
    _extraction_engine = None
