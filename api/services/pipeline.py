"""
Pipeline runner for Contact Card.

Glues the pieces together for the two user actions:

- record_and_extract: log the Entry, check credits, snapshot the roster
  and address book, run extraction, charge a credit, open a ReviewSession
- ask: check credits, snapshot, run the query, charge a credit

A credit is spent only once the call succeeds, so a failed call can be
retried without cost.

Only one extraction or query may be in flight per stream. A second call
while one is running is rejected with PipelineBusy, not queued.
"""
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from api.services.address_book import AddressBookReader, get_address_book
from api.services.contact_store import ContactStore, Entry, get_contact_store
from api.services.credits import CreditLedger, InsufficientCredits, get_credit_ledger
from api.services.extraction import ExtractionEngine, get_extraction_engine
from api.services.query import QueryEngine, get_query_engine
from api.services.reconciliation import ReviewRegistry, ReviewSession, get_review_registry
from api.services.relay_client import RelayClient, get_relay_client

logger = logging.getLogger(__name__)

STREAM_RECORD = "record"
STREAM_CHAT = "chat"


class PipelineBusy(Exception):
    """Another request on the same stream is still running."""

    def __init__(self, stream: str):
        self.stream = stream
        super().__init__(f"A {stream} request is already in progress")


class PipelineRunner:
    """Serializes extraction/query calls per stream."""

    def __init__(
        self,
        store: Optional[ContactStore] = None,
        address_book: Optional[AddressBookReader] = None,
        extraction_engine: Optional[ExtractionEngine] = None,
        query_engine: Optional[QueryEngine] = None,
        credits: Optional[CreditLedger] = None,
        registry: Optional[ReviewRegistry] = None,
        relay: Optional[RelayClient] = None,
    ):
        self.store = store if store is not None else get_contact_store()
        self.address_book = address_book if address_book is not None else get_address_book()
        self.extraction_engine = extraction_engine if extraction_engine is not None else get_extraction_engine()
        self.query_engine = query_engine if query_engine is not None else get_query_engine()
        self.credits = credits if credits is not None else get_credit_ledger()
        self.registry = registry if registry is not None else get_review_registry()
        self.relay = relay if relay is not None else get_relay_client()
        self._busy: set[str] = set()

    def is_busy(self, stream: str) -> bool:
        return stream in self._busy

    @asynccontextmanager
    async def _exclusive(self, stream: str) -> AsyncIterator[None]:
        # Single event loop: the check and add run without an await in between
        if stream in self._busy:
            raise PipelineBusy(stream)
        self._busy.add(stream)
        try:
            yield
        finally:
            self._busy.discard(stream)

    def _check_credits(self) -> bool:
        """Raise InsufficientCredits if a charged call cannot run. Returns True if it will be charged."""
        if self.relay.uses_own_key():
            return False
        if not self.credits.has_credits:
            raise InsufficientCredits()
        return True

    def _charge(self, charged: bool) -> None:
        if charged and not self.credits.consume():
            logger.warning("Credit balance ran out before a completed call could be charged")

    async def record_and_extract(self, transcript: str) -> tuple[Entry, ReviewSession]:
        """
        Process a finished recording.

        The Entry is written before extraction so the raw transcript is kept
        even if extraction fails.

        Raises:
            ValueError: Blank transcript
            PipelineBusy: An extraction is already running
            InsufficientCredits: No credits left
            RequestFailure, UpstreamFailure, MalformedResponse: extraction failed
        """
        transcript = (transcript or "").strip()
        if not transcript:
            raise ValueError("Transcript is empty")

        async with self._exclusive(STREAM_RECORD):
            entry = self.store.add_entry(transcript)
            logger.info(f"Logged entry {entry.id} ({len(transcript)} chars)")

            charged = self._check_credits()
            people = self.store.get_people(include_facts=False)
            contacts = self.address_book.snapshot()

            result = await self.extraction_engine.extract(transcript, people, contacts)
            self._charge(charged)
            session = ReviewSession(result, people, contacts, transcript=transcript, entry_id=entry.id)
            self.registry.add(session)
            return entry, session

    async def ask(self, question: str) -> str:
        """
        Answer a question about stored people.

        Raises:
            ValueError: Blank question
            PipelineBusy: A query is already running
            InsufficientCredits: No credits left
            RequestFailure, UpstreamFailure, MalformedResponse: query failed
        """
        question = (question or "").strip()
        if not question:
            raise ValueError("Question is empty")

        async with self._exclusive(STREAM_CHAT):
            charged = self._check_credits()
            people = self.store.get_people(include_facts=True)
            contacts = self.address_book.snapshot()
            answer = await self.query_engine.query(question, people, contacts)
            self._charge(charged)
            return answer


# Singleton instance
_pipeline_runner: Optional[PipelineRunner] = None


def get_pipeline_runner() -> PipelineRunner:
    """Get or create the singleton PipelineRunner."""
    global _pipeline_runner
    if _pipeline_runner is None:
        _pipeline_runner = PipelineRunner()
    return _pipeline_runner


def reset_pipeline_runner() -> None:
    """Reset the singleton (for testing)."""
    global _pipeline_runner
    _pipeline_runner = None
