# crm_intake/db/__init__.py
"""
Database package for SQLAlchemy setup, engine lifecycle, and base models.
"""

from crm_intake.db.base import Base, TimestampMixin, UUIDMixin
from crm_intake.db.session import (
    create_database_engine,
    create_session_factory,
    health_check,
    init_models,
)

__all__ = [
    "Base",
    "TimestampMixin",
    "UUIDMixin",
    "create_database_engine",
    "create_session_factory",
    "health_check",
    "init_models",
]
