"""
Contact Card Services Package.

This package contains all business logic and data access services.
Use this module to import commonly-used services.

Example:
    from api.services import (
        get_contact_store,
        get_pipeline_runner,
    )

Key service modules:
- contact_store: Person / Fact / Entry model and SQLite store
- address_book: read-only phone contacts snapshot
- relay_client: transport to the model relay
- extraction: transcript -> structured mentions
- reconciliation: review and commit of extracted mentions
- query: question answering over stored people
- pipeline: per-stream runner that ties the above together
"""

# ============================================================================
# Storage
# ============================================================================

from api.services.contact_store import (
    Entry,
    Fact,
    Person,
    PersonWrite,
    get_contact_store,
)

from api.services.address_book import (
    ExternalContact,
    get_address_book,
)

# ============================================================================
# Model Calls
# ============================================================================

from api.services.relay_client import (
    MalformedResponse,
    RelayError,
    RequestFailure,
    UpstreamFailure,
    get_relay_client,
)

from api.services.extraction import (
    ExtractionResult,
    get_extraction_engine,
)

from api.services.query import get_query_engine

# ============================================================================
# Review & Pipeline
# ============================================================================

from api.services.reconciliation import (
    MatchSelection,
    ReviewNotResolved,
    ReviewSession,
    get_review_registry,
)

from api.services.pipeline import (
    PipelineBusy,
    get_pipeline_runner,
)


__all__ = [
    # Storage
    "Entry",
    "Fact",
    "Person",
    "PersonWrite",
    "get_contact_store",
    "ExternalContact",
    "get_address_book",
    # Model calls
    "MalformedResponse",
    "RelayError",
    "RequestFailure",
    "UpstreamFailure",
    "get_relay_client",
    "ExtractionResult",
    "get_extraction_engine",
    "get_query_engine",
    # Review & pipeline
    "MatchSelection",
    "ReviewNotResolved",
    "ReviewSession",
    "get_review_registry",
    "PipelineBusy",
    "get_pipeline_runner",
]
