# crm_intake/services/lead_ingest.py
"""
Zero-loss lead ingestion.

A submission is written twice, in order:

1. ``leads_raw`` - the payload verbatim. Once this commits the lead cannot be
   lost, whatever happens next.
2. ``leads`` - the normalized projection, sharing the raw row's id.

Duplicate submissions are recognised solely through the unique constraint on
``idempotency_key``. A collision on the raw write is ignored; a collision on
the normalized write resolves to the existing lead's id.
"""
from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

import structlog

from crm_intake.core.logging import get_structlog_logger
from crm_intake.models import LEAD_STATUS_NEW
from crm_intake.schemas.lead import LEAD_PAYLOAD_FIELDS
from crm_intake.services.lead_store import LeadStoreProtocol
from crm_intake.services.storage_errors import (
    StorageError,
    UniqueConstraintViolation,
    is_idempotency_key_violation,
)

logger = get_structlog_logger(__name__)

STEP_RAW = "raw_storage"
STEP_NORMALIZED = "normalized_storage"
STEP_DEDUPE_LOOKUP = "dedupe_lookup"


@dataclass(frozen=True)
class LeadIngestResult:
    lead_id: uuid.UUID
    deduplicated: bool


class LeadIngestionError(Exception):
    """Ingestion failed. For logs only; never serialized to clients."""

    __slots__ = ("step", "lead_id", "cause")

    def __init__(self, step: str, *, lead_id: uuid.UUID, cause: Optional[BaseException] = None) -> None:
        super().__init__(f"lead ingestion failed at {step}")
        self.step = step
        self.lead_id = lead_id
        self.cause = cause


def _p(payload: Mapping[str, Any], key: str) -> Any:
    v = payload.get(key)
    return None if v is None or v == "" else v


def project_lead_fields(payload: Mapping[str, Any]) -> Dict[str, Any]:
    """Known payload keys to ``leads`` columns. Absent or empty becomes None."""
    return {column: _p(payload, key) for key, column in LEAD_PAYLOAD_FIELDS}


def _log_failure(
    error: BaseException,
    *,
    step: str,
    lead_id: uuid.UUID,
    idempotency_key: Optional[str],
    x_request_id: Optional[str],
    payload: Mapping[str, Any],
) -> None:
    # The payload goes into the log so that even a failed raw write leaves a
    # recoverable copy of the submission.
    cause = error.cause if isinstance(error, StorageError) and error.cause is not None else error
    logger.error(
        "lead.ingest_failed",
        step=step,
        lead_id=str(lead_id),
        idempotency_key=idempotency_key,
        x_request_id=x_request_id,
        payload=dict(payload),
        error_type=type(cause).__name__,
        error=str(cause),
        classified_as=type(error).__name__,
        violated_fields=sorted(error.violated_fields) if isinstance(error, UniqueConstraintViolation) else None,
        exc_info=cause,
    )


async def ingest_lead(
    store: LeadStoreProtocol,
    *,
    payload: Mapping[str, Any],
    idempotency_key: Optional[str] = None,
    request_id: Optional[str] = None,
) -> LeadIngestResult:
    idempotency_key = idempotency_key or None
    request_id = request_id or None
    lead_id = uuid.uuid4()

    log = logger.bind(lead_id=str(lead_id), idempotency_key=idempotency_key, x_request_id=request_id)
    log.info("lead.ingest_started")

    # Step 1: raw capture
    try:
        await store.insert_raw(
            lead_id=lead_id,
            payload=payload,
            idempotency_key=idempotency_key,
            x_request_id=request_id,
        )
        log.info("lead.raw_stored")
    except StorageError as e:
        if not is_idempotency_key_violation(e):
            _log_failure(
                e,
                step=STEP_RAW,
                lead_id=lead_id,
                idempotency_key=idempotency_key,
                x_request_id=request_id,
                payload=payload,
            )
            raise LeadIngestionError(STEP_RAW, lead_id=lead_id, cause=e) from e
        log.info("lead.raw_exists", reason="idempotency_key_conflict")

    # Step 2: normalized lead
    try:
        await store.insert_lead(
            lead_id=lead_id,
            fields=project_lead_fields(payload),
            idempotency_key=idempotency_key,
            x_request_id=request_id,
            status=LEAD_STATUS_NEW,
        )
    except StorageError as e:
        if not is_idempotency_key_violation(e):
            _log_failure(
                e,
                step=STEP_NORMALIZED,
                lead_id=lead_id,
                idempotency_key=idempotency_key,
                x_request_id=request_id,
                payload=payload,
            )
            raise LeadIngestionError(STEP_NORMALIZED, lead_id=lead_id, cause=e) from e
        return await _resolve_duplicate(
            store,
            log,
            e,
            lead_id=lead_id,
            idempotency_key=idempotency_key,
            request_id=request_id,
            payload=payload,
        )

    log.info("lead.created")
    return LeadIngestResult(lead_id=lead_id, deduplicated=False)


async def _resolve_duplicate(
    store: LeadStoreProtocol,
    log: structlog.stdlib.BoundLogger,
    conflict: StorageError,
    *,
    lead_id: uuid.UUID,
    idempotency_key: Optional[str],
    payload: Mapping[str, Any],
    request_id: Optional[str],
) -> LeadIngestResult:
    try:
        existing_id = await store.find_lead_id_by_idempotency_key(idempotency_key) if idempotency_key else None
    except StorageError as e:
        _log_failure(
            e,
            step=STEP_DEDUPE_LOOKUP,
            lead_id=lead_id,
            idempotency_key=idempotency_key,
            x_request_id=request_id,
            payload=payload,
        )
        raise LeadIngestionError(STEP_DEDUPE_LOOKUP, lead_id=lead_id, cause=e) from e

    if existing_id is None:
        # The constraint said the key exists but a committed read cannot see
        # it. Operational alarm; do not retry.
        log.critical(
            "lead.dedupe_target_missing",
            payload=dict(payload),
            violated_fields=sorted(getattr(conflict, "violated_fields", ())),
        )
        raise LeadIngestionError(STEP_DEDUPE_LOOKUP, lead_id=lead_id, cause=conflict)

    log.info("lead.deduplicated", existing_lead_id=str(existing_id))
    return LeadIngestResult(lead_id=existing_id, deduplicated=True)
