# crm_intake/services/__init__.py
"""
Ingestion coordinator and storage gateway.
"""

from crm_intake.services.lead_ingest import (
    LeadIngestionError,
    LeadIngestResult,
    ingest_lead,
    project_lead_fields,
)
from crm_intake.services.lead_store import LeadStore, LeadStoreProtocol
from crm_intake.services.storage_errors import (
    StorageError,
    StorageFailure,
    UniqueConstraintViolation,
    classify_storage_error,
    is_idempotency_key_violation,
)

__all__ = [
    # Coordinator
    "LeadIngestionError",
    "LeadIngestResult",
    "ingest_lead",
    "project_lead_fields",
    # Gateway
    "LeadStore",
    "LeadStoreProtocol",
    # Classification
    "StorageError",
    "StorageFailure",
    "UniqueConstraintViolation",
    "classify_storage_error",
    "is_idempotency_key_violation",
]
