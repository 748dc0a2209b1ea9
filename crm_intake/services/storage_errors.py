# crm_intake/services/storage_errors.py
"""
Classification of storage failures.

Every exception raised by the database layer is turned into exactly one of
two outcomes:

* ``UniqueConstraintViolation`` - a unique constraint rejected the write. The
  violated column names are attached so callers can tell an idempotency-key
  collision (expected, recoverable) from any other collision.
* ``StorageFailure`` - everything else: connectivity, bad data, other
  constraint kinds, unique violations we cannot attribute.

Driver details differ (asyncpg, psycopg, sqlite), so field extraction tries
each known surface in turn.
"""
from __future__ import annotations

import re
from typing import Any, FrozenSet, Iterable, List, Optional

from sqlalchemy import Table, UniqueConstraint
from sqlalchemy.exc import IntegrityError

# Older schemas spelled the column in camelCase; compare case-insensitively.
IDEMPOTENCY_KEY_FIELDS: FrozenSet[str] = frozenset({"idempotency_key", "idempotencykey"})

PG_UNIQUE_VIOLATION = "23505"

_PG_KEY_DETAIL_RE = re.compile(r"Key \((?P<columns>[^)]*)\)=")
_SQLITE_UNIQUE_RE = re.compile(r"UNIQUE constraint failed: (?P<targets>[^\n]+)", re.IGNORECASE)


class StorageError(Exception):
    """Base for classified storage failures. ``cause`` is the original error."""

    def __init__(self, message: str, *, cause: Optional[BaseException] = None) -> None:
        super().__init__(message)
        self.cause = cause


class UniqueConstraintViolation(StorageError):
    def __init__(
        self,
        violated_fields: Iterable[str],
        *,
        constraint_name: Optional[str] = None,
        cause: Optional[BaseException] = None,
    ) -> None:
        self.violated_fields: FrozenSet[str] = frozenset(violated_fields)
        self.constraint_name = constraint_name
        fields = ", ".join(sorted(self.violated_fields)) or "unknown"
        super().__init__(f"unique constraint violated on ({fields})", cause=cause)


class StorageFailure(StorageError):
    def __init__(self, cause: BaseException) -> None:
        super().__init__(f"{type(cause).__name__}: {cause}", cause=cause)


def is_idempotency_key_violation(error: BaseException) -> bool:
    if not isinstance(error, UniqueConstraintViolation):
        return False
    return any(field.lower() in IDEMPOTENCY_KEY_FIELDS for field in error.violated_fields)


def classify_storage_error(exc: BaseException, table: Optional[Table] = None) -> StorageError:
    """Map a raw database exception onto the two-way taxonomy above."""
    if isinstance(exc, StorageError):
        return exc

    if not isinstance(exc, IntegrityError):
        return StorageFailure(exc)

    candidates = _driver_errors(exc)
    if not _is_unique_violation(exc, candidates):
        return StorageFailure(exc)

    constraint_name = _first_attr(candidates, "constraint_name")
    fields = _fields_from_detail(candidates)
    if not fields and constraint_name:
        fields = _fields_from_constraint(constraint_name, table)
    if not fields:
        fields = _fields_from_sqlite_message(exc)
    if not fields and constraint_name:
        fields = [constraint_name]

    if not fields:
        # A unique violation with no identifiable target cannot be proven
        # benign.
        return StorageFailure(exc)

    return UniqueConstraintViolation(fields, constraint_name=constraint_name, cause=exc)


def _driver_errors(exc: IntegrityError) -> List[Any]:
    # SQLAlchemy's asyncpg adapter chains the native asyncpg error as __cause__.
    orig = getattr(exc, "orig", None)
    if orig is None:
        return []
    chained = orig.__cause__
    return [orig, chained] if chained is not None else [orig]


def _first_attr(candidates: List[Any], name: str) -> Optional[str]:
    for candidate in candidates:
        value = getattr(candidate, name, None)
        if value is None:
            value = getattr(getattr(candidate, "diag", None), name, None)
        if isinstance(value, str) and value:
            return value
    return None


def _is_unique_violation(exc: IntegrityError, candidates: List[Any]) -> bool:
    for candidate in candidates:
        code = getattr(candidate, "sqlstate", None) or getattr(candidate, "pgcode", None)
        if code == PG_UNIQUE_VIOLATION:
            return True
    return bool(_SQLITE_UNIQUE_RE.search(str(exc.orig if exc.orig is not None else exc)))


def _fields_from_detail(candidates: List[Any]) -> List[str]:
    detail = _first_attr(candidates, "detail") or _first_attr(candidates, "message_detail")
    if not detail:
        return []
    match = _PG_KEY_DETAIL_RE.search(detail)
    if not match:
        return []
    return [column.strip().strip('"') for column in match.group("columns").split(",") if column.strip()]


def _fields_from_constraint(constraint_name: str, table: Optional[Table]) -> List[str]:
    if table is not None:
        for constraint in table.constraints:
            if isinstance(constraint, UniqueConstraint) and str(constraint.name) == constraint_name:
                return [column.name for column in constraint.columns]
        for index in table.indexes:
            if index.unique and str(index.name) == constraint_name:
                return [column.name for column in index.columns]

        # uq_<table>_<column>, see the naming convention in crm_intake.db.base
        prefix = f"uq_{table.name}_"
        if constraint_name.startswith(prefix) and constraint_name[len(prefix):] in table.columns:
            return [constraint_name[len(prefix):]]
    return []


def _fields_from_sqlite_message(exc: IntegrityError) -> List[str]:
    match = _SQLITE_UNIQUE_RE.search(str(exc.orig if exc.orig is not None else exc))
    if not match:
        return []
    return [target.strip().rsplit(".", 1)[-1] for target in match.group("targets").split(",") if target.strip()]
