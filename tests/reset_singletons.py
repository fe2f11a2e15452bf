"""
Centralized singleton reset utilities for testing.

These functions reset global singleton instances to prevent test pollution.
Singletons that persist across tests can cause:
- Stale data from previous tests (a store bound to another tmp database)
- Mock objects leaking between tests
- Settings changes not taking effect

Usage in conftest.py:
    @pytest.fixture(autouse=True)
    def reset_singletons_after_test():
        yield
        reset_all_singletons()
"""


def reset_storage_singletons() -> None:
    """
    Reset singletons bound to a database or file path.

    Resets:
    - ContactStore
    - CreditLedger
    - AddressBookReader
    - CredentialStore
    """
    from api.services.contact_store import reset_contact_store
    from api.services.credits import reset_credit_ledger
    from api.services.address_book import reset_address_book
    from api.services.credential_store import reset_credential_store

    reset_contact_store()
    reset_credit_ledger()
    reset_address_book()
    reset_credential_store()


def reset_pipeline_singletons() -> None:
    """
    Reset in-memory pipeline singletons.

    Resets:
    - RelayClient
    - ExtractionEngine / QueryEngine
    - ReviewRegistry
    - PipelineRunner
    """
    from api.services.relay_client import reset_relay_client
    from api.services.extraction import reset_extraction_engine
    from api.services.query import reset_query_engine
    from api.services.reconciliation import reset_review_registry
    from api.services.pipeline import reset_pipeline_runner

    reset_relay_client()
    reset_extraction_engine()
    reset_query_engine()
    reset_review_registry()
    reset_pipeline_runner()


def reset_all_singletons() -> None:
    """Reset every module singleton."""
    reset_pipeline_singletons()
    reset_storage_singletons()
