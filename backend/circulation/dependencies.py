"""FastAPI dependency providers for the circulation components."""
from functools import lru_cache

from fastapi import Depends

from circulation.config import Settings, get_settings
from circulation.database import build_session_factory, get_engine
from circulation.services.catalog_ledger import CatalogLedger
from circulation.services.directory import DocumentUserDirectory
from circulation.services.fine_engine import FineEngine
from circulation.services.loan_manager import LoanManager
from circulation.services.reconciliation import ReconciliationSweep
from circulation.store import DocumentStore, MemoryDocumentStore, SQLDocumentStore


@lru_cache
def build_store() -> DocumentStore:
    """Create the process-wide store selected by ``store_backend``."""
    settings = get_settings()
    if settings.store_backend == "memory":
        return MemoryDocumentStore()
    return SQLDocumentStore(build_session_factory(get_engine()))


def get_app_settings() -> Settings:
    return get_settings()


def get_store() -> DocumentStore:
    """
    Dependency provider for the document store.

    Tests override this to inject an isolated store.
    """
    return build_store()


def get_directory(store: DocumentStore = Depends(get_store)) -> DocumentUserDirectory:
    return DocumentUserDirectory(store)


def get_catalog_ledger(
    store: DocumentStore = Depends(get_store),
    settings: Settings = Depends(get_app_settings),
) -> CatalogLedger:
    return CatalogLedger(
        store,
        max_retries=settings.ledger_max_retries,
        timeout=settings.store_timeout_seconds,
    )


def get_fine_engine(
    store: DocumentStore = Depends(get_store),
    settings: Settings = Depends(get_app_settings),
) -> FineEngine:
    return FineEngine(store, timeout=settings.store_timeout_seconds)


def get_loan_manager(
    store: DocumentStore = Depends(get_store),
    ledger: CatalogLedger = Depends(get_catalog_ledger),
    directory: DocumentUserDirectory = Depends(get_directory),
    fine_engine: FineEngine = Depends(get_fine_engine),
    settings: Settings = Depends(get_app_settings),
) -> LoanManager:
    return LoanManager(
        store,
        ledger,
        directory,
        fine_engine,
        fine_rate_per_day=settings.fine_rate_per_day,
        timeout=settings.store_timeout_seconds,
        max_retries=settings.ledger_max_retries,
    )


def get_reconciliation_sweep(
    ledger: CatalogLedger = Depends(get_catalog_ledger),
    loans: LoanManager = Depends(get_loan_manager),
) -> ReconciliationSweep:
    return ReconciliationSweep(ledger, loans)
