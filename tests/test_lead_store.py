# tests/test_lead_store.py
import uuid

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from crm_intake.services.lead_store import LeadStore
from crm_intake.services.storage_errors import StorageFailure, UniqueConstraintViolation


class _Result:
    def __init__(self, value):
        self._value = value

    def scalar_one_or_none(self):
        return self._value


class _Transaction:
    def __init__(self, session):
        self._session = session

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        if exc_type is None:
            self._session.committed = True
        else:
            self._session.rolled_back = True
        return False


class _Session:
    def __init__(self, *, error=None, value=None):
        self._error = error
        self._value = value
        self.statements = []
        self.committed = False
        self.rolled_back = False
        self.closed = False

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        self.closed = True
        return False

    def begin(self):
        return _Transaction(self)

    async def execute(self, stmt):
        self.statements.append(stmt)
        if self._error is not None:
            raise self._error
        return _Result(self._value)


class _SessionFactory:
    def __init__(self, **kwargs):
        self._kwargs = kwargs
        self.sessions = []

    def __call__(self):
        session = _Session(**self._kwargs)
        self.sessions.append(session)
        return session


class _UniqueViolation(Exception):
    sqlstate = "23505"

    def __init__(self, detail):
        super().__init__("duplicate key value violates unique constraint")
        self.detail = detail


@pytest.mark.asyncio
async def test_insert_raw_commits_in_own_transaction():
    factory = _SessionFactory()
    store = LeadStore(factory)
    lead_id = uuid.uuid4()

    await store.insert_raw(lead_id=lead_id, payload={"email": "a@x.com"}, idempotency_key="k1", x_request_id=None)

    [session] = factory.sessions
    assert session.committed and session.closed
    [stmt] = session.statements
    assert stmt.table.name == "leads_raw"
    params = stmt.compile().params
    assert params["id"] == lead_id
    assert params["payload"] == {"email": "a@x.com"}
    assert params["idempotency_key"] == "k1"


@pytest.mark.asyncio
async def test_insert_lead_writes_projection_and_status():
    factory = _SessionFactory()
    store = LeadStore(factory)
    lead_id = uuid.uuid4()

    await store.insert_lead(
        lead_id=lead_id,
        fields={"email": "a@x.com", "first_name": "Anna"},
        idempotency_key=None,
        x_request_id="req-9",
        status="new",
    )

    [stmt] = factory.sessions[0].statements
    assert stmt.table.name == "leads"
    params = stmt.compile().params
    assert params["first_name"] == "Anna"
    assert params["status"] == "new"
    assert params["x_request_id"] == "req-9"
    assert params["idempotency_key"] is None


@pytest.mark.asyncio
async def test_unique_violation_is_classified():
    orig = _UniqueViolation("Key (idempotency_key)=(k1) already exists.")
    factory = _SessionFactory(error=IntegrityError("INSERT", {}, orig))
    store = LeadStore(factory)

    with pytest.raises(UniqueConstraintViolation) as exc_info:
        await store.insert_lead(
            lead_id=uuid.uuid4(),
            fields={},
            idempotency_key="k1",
            x_request_id=None,
            status="new",
        )

    assert exc_info.value.violated_fields == frozenset({"idempotency_key"})
    assert factory.sessions[0].rolled_back


@pytest.mark.asyncio
async def test_other_errors_are_storage_failures():
    factory = _SessionFactory(error=OperationalError("INSERT", {}, ConnectionResetError()))
    store = LeadStore(factory)

    with pytest.raises(StorageFailure) as exc_info:
        await store.insert_raw(lead_id=uuid.uuid4(), payload={}, idempotency_key=None, x_request_id=None)

    assert isinstance(exc_info.value.__cause__, OperationalError)


@pytest.mark.asyncio
async def test_find_lead_id_by_idempotency_key():
    existing = uuid.uuid4()
    factory = _SessionFactory(value=existing)
    store = LeadStore(factory)

    assert await store.find_lead_id_by_idempotency_key("k1") == existing
    [stmt] = factory.sessions[0].statements
    assert "leads.idempotency_key" in str(stmt)


@pytest.mark.asyncio
async def test_find_lead_id_missing_returns_none():
    store = LeadStore(_SessionFactory(value=None))

    assert await store.find_lead_id_by_idempotency_key("nope") is None


@pytest.mark.asyncio
async def test_find_lead_id_failure_is_classified():
    store = LeadStore(_SessionFactory(error=OperationalError("SELECT", {}, TimeoutError())))

    with pytest.raises(StorageFailure):
        await store.find_lead_id_by_idempotency_key("k1")
