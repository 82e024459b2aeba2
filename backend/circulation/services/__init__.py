"""Circulation components."""
from circulation.services.catalog_ledger import CatalogLedger
from circulation.services.directory import DocumentUserDirectory, UserDirectory
from circulation.services.fine_engine import FineEngine, compute_amount, compute_overdue_days
from circulation.services.loan_manager import LoanManager
from circulation.services.reconciliation import DriftReport, ReconciliationSweep

__all__ = [
    "CatalogLedger",
    "LoanManager",
    "FineEngine",
    "compute_overdue_days",
    "compute_amount",
    "UserDirectory",
    "DocumentUserDirectory",
    "ReconciliationSweep",
    "DriftReport",
]
