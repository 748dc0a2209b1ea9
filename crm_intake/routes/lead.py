# crm_intake/routes/lead.py
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse

from crm_intake.core.exceptions import APIError, InvalidPayloadError
from crm_intake.core.logging import get_structlog_logger
from crm_intake.schemas.lead import ErrorResponse, LeadIngestResponse
from crm_intake.services.lead_ingest import LeadIngestionError, ingest_lead
from crm_intake.services.lead_store import LeadStore, LeadStoreProtocol

logger = get_structlog_logger(__name__)

router = APIRouter()

IDEMPOTENCY_KEY_HEADER = "Idempotency-Key"
REQUEST_ID_HEADER = "X-Request-Id"


def get_lead_store(request: Request) -> LeadStoreProtocol:
    """Storage gateway bound to the session factory owned by the app lifespan."""
    return LeadStore(request.app.state.session_factory)


def _header(request: Request, name: str) -> Optional[str]:
    # Starlette header lookup is case-insensitive
    return request.headers.get(name) or None


@router.post(
    "/lead",
    response_model=LeadIngestResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Ingest a lead",
    responses={
        status.HTTP_409_CONFLICT: {"model": LeadIngestResponse, "description": "Already ingested; treat as success"},
        status.HTTP_400_BAD_REQUEST: {"model": ErrorResponse},
        status.HTTP_500_INTERNAL_SERVER_ERROR: {"model": ErrorResponse},
    },
)
async def post_lead(
    request: Request,
    store: LeadStoreProtocol = Depends(get_lead_store),
) -> JSONResponse:
    idempotency_key = _header(request, IDEMPOTENCY_KEY_HEADER)
    x_request_id = _header(request, REQUEST_ID_HEADER)
    log = logger.bind(route="/lead", idempotency_key=idempotency_key, x_request_id=x_request_id)

    log.info("lead.request_received", method=request.method, path=request.url.path)

    try:
        body = await request.json()
    except ValueError:
        log.warning("lead.invalid_payload", reason="malformed_json")
        raise InvalidPayloadError(details={"reason": "malformed_json"})

    # Only the shape is checked; field contents are accepted as-is.
    if not isinstance(body, dict):
        log.warning("lead.invalid_payload", reason="not_an_object", body=body)
        raise InvalidPayloadError(details={"reason": "not_an_object", "type": type(body).__name__})

    try:
        result = await ingest_lead(
            store,
            payload=body,
            idempotency_key=idempotency_key,
            request_id=x_request_id,
        )
    except LeadIngestionError as e:
        raise APIError("Lead ingestion failed", details={"step": e.step}) from e

    response = LeadIngestResponse(lead_id=result.lead_id, deduplicated=result.deduplicated)
    status_code = status.HTTP_409_CONFLICT if result.deduplicated else status.HTTP_201_CREATED

    log.info(
        "lead.request_completed",
        lead_id=str(result.lead_id),
        deduplicated=result.deduplicated,
        status_code=status_code,
    )
    return JSONResponse(status_code=status_code, content=response.model_dump(mode="json"))
