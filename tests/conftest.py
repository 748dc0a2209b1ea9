# tests/conftest.py
import asyncio
import os
import uuid
from typing import Any, Dict, List, Mapping, Optional

import pytest

# Settings are read once at import time; pin the test environment first.
os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("LOG_LEVEL", "WARNING")

from crm_intake.services.storage_errors import (  # noqa: E402
    StorageFailure,
    UniqueConstraintViolation,
)


class FakeLeadStore:
    """In-memory storage gateway with the same unique-key semantics as the database."""

    def __init__(self) -> None:
        self.raw: Dict[uuid.UUID, Dict[str, Any]] = {}
        self.leads: Dict[uuid.UUID, Dict[str, Any]] = {}
        self.calls: List[str] = []
        self.raw_error: Optional[BaseException] = None
        self.lead_error: Optional[BaseException] = None
        self.lookup_error: Optional[BaseException] = None
        self.hide_existing = False

    async def insert_raw(self, *, lead_id, payload, idempotency_key, x_request_id) -> None:
        self.calls.append("insert_raw")
        await asyncio.sleep(0)
        if self.raw_error is not None:
            raise self.raw_error
        if idempotency_key is not None and any(
            row["idempotency_key"] == idempotency_key for row in self.raw.values()
        ):
            raise UniqueConstraintViolation({"idempotency_key"})
        self.raw[lead_id] = {
            "payload": dict(payload),
            "idempotency_key": idempotency_key,
            "x_request_id": x_request_id,
        }

    async def insert_lead(self, *, lead_id, fields, idempotency_key, x_request_id, status) -> None:
        self.calls.append("insert_lead")
        await asyncio.sleep(0)
        if self.lead_error is not None:
            raise self.lead_error
        if idempotency_key is not None and any(
            row["idempotency_key"] == idempotency_key for row in self.leads.values()
        ):
            raise UniqueConstraintViolation({"idempotency_key"})
        self.leads[lead_id] = {
            **fields,
            "idempotency_key": idempotency_key,
            "x_request_id": x_request_id,
            "status": status,
        }

    async def find_lead_id_by_idempotency_key(self, idempotency_key: str) -> Optional[uuid.UUID]:
        self.calls.append("find_lead_id_by_idempotency_key")
        await asyncio.sleep(0)
        if self.lookup_error is not None:
            raise self.lookup_error
        if self.hide_existing:
            return None
        for lead_id, row in self.leads.items():
            if row["idempotency_key"] == idempotency_key:
                return lead_id
        return None


@pytest.fixture
def fake_store() -> FakeLeadStore:
    return FakeLeadStore()


@pytest.fixture
def storage_failure() -> StorageFailure:
    return StorageFailure(ConnectionResetError("connection reset by peer"))


@pytest.fixture
def lead_payload():
    return _lead_payload


def _lead_payload(**overrides: Any) -> Mapping[str, Any]:
    payload = {
        "click_id": "clk-001",
        "country": "DE",
        "creo": "banner-7",
        "description": "Call after 6pm",
        "domain": "offer.example.com",
        "email": "a@x.com",
        "firstName": "Anna",
        "lastName": "Schmidt",
        "ip": "203.0.113.7",
        "lang": "de",
        "marker": "m-42",
        "offer": "premium",
        "phone": "+4915112345678",
        "sourcetype": "facebook",
    }
    payload.update(overrides)
    return payload
