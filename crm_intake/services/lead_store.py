# crm_intake/services/lead_store.py
from __future__ import annotations

import uuid
from typing import Any, Mapping, Optional, Protocol

from sqlalchemy import Table, insert, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from crm_intake.core.logging import get_structlog_logger
from crm_intake.models import Lead, LeadRaw
from crm_intake.services.storage_errors import classify_storage_error

logger = get_structlog_logger(__name__)


class LeadStoreProtocol(Protocol):
    """Storage primitives the ingestion coordinator depends on.

    Implementations raise ``UniqueConstraintViolation`` or ``StorageFailure``
    and nothing else.
    """

    async def insert_raw(
        self,
        *,
        lead_id: uuid.UUID,
        payload: Mapping[str, Any],
        idempotency_key: Optional[str],
        x_request_id: Optional[str],
    ) -> None: ...

    async def insert_lead(
        self,
        *,
        lead_id: uuid.UUID,
        fields: Mapping[str, Any],
        idempotency_key: Optional[str],
        x_request_id: Optional[str],
        status: str,
    ) -> None: ...

    async def find_lead_id_by_idempotency_key(self, idempotency_key: str) -> Optional[uuid.UUID]: ...


class LeadStore:
    """SQLAlchemy-backed storage gateway.

    Every call runs in its own short transaction so that a committed raw
    capture survives whatever happens to the normalization write after it.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def insert_raw(
        self,
        *,
        lead_id: uuid.UUID,
        payload: Mapping[str, Any],
        idempotency_key: Optional[str],
        x_request_id: Optional[str],
    ) -> None:
        await self._insert(
            LeadRaw.__table__,
            {
                "id": lead_id,
                "payload": dict(payload),
                "idempotency_key": idempotency_key,
                "x_request_id": x_request_id,
            },
        )

    async def insert_lead(
        self,
        *,
        lead_id: uuid.UUID,
        fields: Mapping[str, Any],
        idempotency_key: Optional[str],
        x_request_id: Optional[str],
        status: str,
    ) -> None:
        await self._insert(
            Lead.__table__,
            {
                **fields,
                "id": lead_id,
                "idempotency_key": idempotency_key,
                "x_request_id": x_request_id,
                "status": status,
            },
        )

    async def find_lead_id_by_idempotency_key(self, idempotency_key: str) -> Optional[uuid.UUID]:
        # Fresh session: READ COMMITTED sees the row committed by whichever
        # concurrent insert won the constraint.
        stmt = select(Lead.id).where(Lead.idempotency_key == idempotency_key).limit(1)
        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                return result.scalar_one_or_none()
        except Exception as e:
            raise classify_storage_error(e, Lead.__table__) from e

    async def _insert(self, table: Table, values: Mapping[str, Any]) -> None:
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    await session.execute(insert(table).values(**values))
        except Exception as e:
            error = classify_storage_error(e, table)
            logger.debug(
                "storage.insert_failed",
                table=table.name,
                classified_as=type(error).__name__,
            )
            raise error from e
