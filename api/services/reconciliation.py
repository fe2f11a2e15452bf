"""
Reconciliation Layer for Contact Card.

Decides, per extracted mention, whether it is a new Person or must merge into
an existing one, auto-resolving where unambiguous and deferring to the user
otherwise. It then commits the reviewed batch in one go.

Initial state per mention (evaluated once, when the extraction arrives):

    matched_person_id in roster              -> existing person
    no person match, one candidate, high     -> external contact (that id)
    no person match, zero candidates         -> new person
    no person match, anything else           -> unresolved (needs the user)

A matched_person_id that is not in the roster (stale reference) is ignored
and the candidate rules apply.

The batch can be committed only when no mention is unresolved. Each fact can
be disabled or edited before commit; only enabled facts with content are
written.
"""
import logging
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional

from api.services.address_book import ExternalContact
from api.services.contact_store import ContactStore, Fact, Person, PersonWrite
from api.services.extraction import ConfidenceTier, ExtractedContact, ExtractionResult, MatchCandidate
from api.utils.datetime_utils import utc_now
from config.fact_categories import DEFAULT_CATEGORY
from config.settings import settings

logger = logging.getLogger(__name__)


class ReviewNotResolved(Exception):
    """Commit attempted while a mention is still unresolved."""

    def __init__(self, names: list[str]):
        self.names = names
        super().__init__(f"Choose who these people are before saving: {', '.join(names)}")


class ReviewAlreadyCommitted(Exception):
    """Commit attempted twice on the same review."""


class SelectionKind(str, Enum):
    """Where a mention is bound."""
    EXISTING_PERSON = "existing_person"
    EXTERNAL_CONTACT = "external_contact"
    NEW_PERSON = "new_person"
    UNRESOLVED = "unresolved"


@dataclass(frozen=True)
class MatchSelection:
    """
    Tagged selection for one mention.

    target_id is the Person id for EXISTING_PERSON, the address-book id for
    EXTERNAL_CONTACT, and None otherwise. A mention can therefore never be
    bound to both a Person and a contact at once.
    """
    kind: SelectionKind
    target_id: Optional[str] = None

    def __post_init__(self):
        needs_target = self.kind in (SelectionKind.EXISTING_PERSON, SelectionKind.EXTERNAL_CONTACT)
        if needs_target and not self.target_id:
            raise ValueError(f"{self.kind.value} selection requires a target id")
        if not needs_target and self.target_id is not None:
            raise ValueError(f"{self.kind.value} selection takes no target id")

    @classmethod
    def existing_person(cls, person_id: str) -> "MatchSelection":
        return cls(SelectionKind.EXISTING_PERSON, person_id)

    @classmethod
    def external_contact(cls, contact_id: str) -> "MatchSelection":
        return cls(SelectionKind.EXTERNAL_CONTACT, contact_id)

    @classmethod
    def new_person(cls) -> "MatchSelection":
        return cls(SelectionKind.NEW_PERSON)

    @classmethod
    def unresolved(cls) -> "MatchSelection":
        return cls(SelectionKind.UNRESOLVED)

    def to_dict(self) -> dict:
        return {"kind": self.kind.value, "target_id": self.target_id}


def initial_selection(mention: ExtractedContact, roster_ids: set[str]) -> MatchSelection:
    """Apply the auto-resolution table to one mention."""
    if mention.matched_person_id:
        if mention.matched_person_id in roster_ids:
            return MatchSelection.existing_person(mention.matched_person_id)
        logger.warning(
            f"Mention {mention.name!r} references unknown person "
            f"{mention.matched_person_id!r}, falling back to contact matching"
        )

    candidates = mention.match_candidates
    if not candidates:
        return MatchSelection.new_person()
    if len(candidates) == 1 and candidates[0].confidence == ConfidenceTier.HIGH:
        return MatchSelection.external_contact(candidates[0].contact_id)
    return MatchSelection.unresolved()


@dataclass
class FactReview:
    """Editable, toggleable candidate fact."""
    category: str
    content: str
    enabled: bool = True

    @property
    def committable(self) -> bool:
        return self.enabled and bool(self.content and self.content.strip())

    def to_dict(self) -> dict:
        return {"category": self.category, "content": self.content, "enabled": self.enabled}


@dataclass
class MentionReview:
    """Review state for one mentioned person."""
    mention: ExtractedContact
    selection: MatchSelection
    facts: list[FactReview] = field(default_factory=list)

    @property
    def name(self) -> str:
        return self.mention.name

    @property
    def candidates(self) -> list[MatchCandidate]:
        return self.mention.match_candidates

    @property
    def needs_resolution(self) -> bool:
        return self.selection.kind == SelectionKind.UNRESOLVED

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "aliases": list(self.mention.aliases),
            "selection": self.selection.to_dict(),
            "needs_resolution": self.needs_resolution,
            "match_candidates": [c.model_dump(mode="json") for c in self.candidates],
            "facts": [f.to_dict() for f in self.facts],
        }


@dataclass
class CommitSummary:
    """What a commit wrote."""
    people_created: int = 0
    people_updated: int = 0
    facts_created: int = 0
    person_ids: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "people_created": self.people_created,
            "people_updated": self.people_updated,
            "facts_created": self.facts_created,
            "person_ids": list(self.person_ids),
        }


class ReviewSession:
    """
    Human-in-the-loop review of one extraction result.

    Holds only transient data; nothing touches the store until commit().
    """

    def __init__(
        self,
        result: ExtractionResult,
        known_people: list[Person],
        known_contacts: list[ExternalContact],
        transcript: str = "",
        entry_id: Optional[str] = None,
    ):
        self.id = str(uuid.uuid4())
        self.entry_id = entry_id
        self.transcript = transcript
        self.created_at: datetime = utc_now()
        self.committed = False
        self._contact_ids = {c.identifier for c in known_contacts}

        roster_ids = {p.id for p in known_people}
        self.mentions: list[MentionReview] = [
            MentionReview(
                mention=mention,
                selection=initial_selection(mention, roster_ids),
                facts=[FactReview(category=f.category, content=f.content) for f in mention.facts],
            )
            for mention in result.contacts
        ]

        unresolved = len(self.unresolved_mentions)
        logger.info(f"Opened review {self.id}: {len(self.mentions)} mention(s), {unresolved} unresolved")

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def unresolved_mentions(self) -> list[MentionReview]:
        return [m for m in self.mentions if m.needs_resolution]

    @property
    def can_commit(self) -> bool:
        """Commit is allowed only when no mention is unresolved."""
        return not self.committed and not self.unresolved_mentions

    def mention(self, index: int) -> MentionReview:
        if index < 0 or index >= len(self.mentions):
            raise IndexError(f"No mention at index {index}")
        return self.mentions[index]

    def _ensure_open(self) -> None:
        if self.committed:
            raise ReviewAlreadyCommitted(f"Review {self.id} was already saved")

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def select_external_contact(self, index: int, contact_id: str) -> MentionReview:
        """Bind a mention to an address-book contact."""
        self._ensure_open()
        review = self.mention(index)
        known = contact_id in self._contact_ids or any(c.contact_id == contact_id for c in review.candidates)
        if not known:
            raise ValueError(f"Unknown contact {contact_id!r}")
        review.selection = MatchSelection.external_contact(contact_id)
        return review

    def select_new_person(self, index: int) -> MentionReview:
        """Create a new Person for a mention."""
        self._ensure_open()
        review = self.mention(index)
        review.selection = MatchSelection.new_person()
        return review

    def update_fact(
        self,
        index: int,
        fact_index: int,
        enabled: Optional[bool] = None,
        category: Optional[str] = None,
        content: Optional[str] = None,
    ) -> FactReview:
        """Toggle or edit one candidate fact."""
        self._ensure_open()
        facts = self.mention(index).facts
        if fact_index < 0 or fact_index >= len(facts):
            raise IndexError(f"No fact at index {fact_index}")
        fact = facts[fact_index]
        if enabled is not None:
            fact.enabled = enabled
        if category is not None:
            fact.category = category
        if content is not None:
            fact.content = content
        return fact

    # ------------------------------------------------------------------
    # Commit
    # ------------------------------------------------------------------

    def _new_person(self, review: MentionReview) -> Person:
        return Person(name=review.name, aliases=list(review.mention.aliases))

    def plan_commit(self, store: ContactStore) -> list[PersonWrite]:
        """
        Resolve each mention to a Person write without touching the store.

        Mentions that land on the same Person (same roster id, or the same
        address-book contact) are merged into one write.
        """
        writes: dict[str, PersonWrite] = {}
        by_contact: dict[str, PersonWrite] = {}
        now = utc_now()

        for review in self.mentions:
            selection = review.selection
            write: Optional[PersonWrite] = None

            if selection.kind == SelectionKind.EXISTING_PERSON:
                write = writes.get(selection.target_id)
                if write is None:
                    person = store.get_person(selection.target_id, include_facts=False)
                    if person is None:
                        logger.warning(f"Person {selection.target_id} vanished before commit, creating {review.name!r}")
                        write = PersonWrite(person=self._new_person(review), is_new=True)
                    else:
                        write = PersonWrite(person=person, is_new=False)

            elif selection.kind == SelectionKind.EXTERNAL_CONTACT:
                contact_id = selection.target_id
                write = by_contact.get(contact_id)
                if write is None:
                    linked = store.find_person_by_contact(contact_id)
                    if linked is not None:
                        write = writes.get(linked.id) or PersonWrite(person=linked, is_new=False)
                    else:
                        write = PersonWrite(person=self._new_person(review), is_new=True)
                    by_contact[contact_id] = write
                write.person.contact_identifier = contact_id

            elif selection.kind == SelectionKind.NEW_PERSON:
                write = PersonWrite(person=self._new_person(review), is_new=True)

            else:
                raise ReviewNotResolved([review.name])

            person = write.person
            writes[person.id] = write
            person.add_aliases(review.mention.aliases)
            person.updated_at = now

            for fact in review.facts:
                if not fact.committable:
                    continue
                write.facts.append(Fact(
                    person_id=person.id,
                    category=(fact.category or "").strip() or DEFAULT_CATEGORY,
                    content=fact.content.strip(),
                    raw_transcript=self.transcript,
                    created_at=now,
                ))

        return list(writes.values())

    def commit(self, store: ContactStore) -> CommitSummary:
        """
        Write the reviewed batch.

        Raises:
            ReviewNotResolved: A mention is still unresolved
            ReviewAlreadyCommitted: This review was already saved
        """
        self._ensure_open()
        unresolved = self.unresolved_mentions
        if unresolved:
            raise ReviewNotResolved([m.name for m in unresolved])

        writes = self.plan_commit(store)
        store.commit_batch(writes)
        self.committed = True

        return CommitSummary(
            people_created=sum(1 for w in writes if w.is_new),
            people_updated=sum(1 for w in writes if not w.is_new),
            facts_created=sum(len(w.facts) for w in writes),
            person_ids=[w.person.id for w in writes],
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "entry_id": self.entry_id,
            "created_at": self.created_at.isoformat(),
            "committed": self.committed,
            "can_commit": self.can_commit,
            "mentions": [m.to_dict() for m in self.mentions],
        }


class ReviewRegistry:
    """
    In-memory registry of open reviews (never persisted).

    Reviews older than max_age are dropped on access, and once more than
    max_sessions are open the oldest are dropped first.
    """

    def __init__(self, max_age: Optional[timedelta] = None, max_sessions: Optional[int] = None):
        self.max_age = max_age if max_age is not None else timedelta(minutes=settings.review_max_age_minutes)
        self.max_sessions = max_sessions if max_sessions is not None else settings.max_open_reviews
        self._sessions: dict[str, ReviewSession] = {}
        self._lock = threading.Lock()

    def _evict(self) -> None:
        # Caller holds _lock. Dict order is insertion order, oldest first.
        cutoff = utc_now() - self.max_age
        live = [sid for sid, s in self._sessions.items() if s.created_at >= cutoff]
        expired = [sid for sid, s in self._sessions.items() if s.created_at < cutoff]
        overflow = len(live) - self.max_sessions
        if overflow > 0:
            expired.extend(live[:overflow])
        for sid in expired:
            del self._sessions[sid]
        if expired:
            logger.info(f"Evicted {len(expired)} abandoned review(s)")

    def add(self, session: ReviewSession) -> ReviewSession:
        with self._lock:
            self._sessions[session.id] = session
            self._evict()
        return session

    def get(self, session_id: str) -> Optional[ReviewSession]:
        with self._lock:
            self._evict()
            return self._sessions.get(session_id)

    def discard(self, session_id: str) -> bool:
        with self._lock:
            return self._sessions.pop(session_id, None) is not None

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)


# Singleton instance
_review_registry: Optional[ReviewRegistry] = None


def get_review_registry() -> ReviewRegistry:
    """Get or create the singleton ReviewRegistry."""
    global _review_registry
    if _review_registry is None:
        _review_registry = ReviewRegistry()
    return _review_registry


def reset_review_registry() -> None:
    """Reset the singleton (for testing)."""
    global _review_registry
    _review_registry = None
