"""
Domain Services
"""
from tollvault.domain.services.ledger_store import LedgerStore
from tollvault.domain.services.ingestion_service import IngestionService
from tollvault.domain.services.report_service import ReportService

__all__ = [
    "LedgerStore",
    "IngestionService",
    "ReportService",
]
