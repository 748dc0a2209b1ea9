# crm_intake/models/lead_raw.py
from __future__ import annotations

from sqlalchemy import JSON, Column, Text
from sqlalchemy.dialects.postgresql import JSONB

from crm_intake.db.base import Base, TimestampMixin, UUIDMixin


class LeadRaw(UUIDMixin, TimestampMixin, Base):
    """Verbatim capture of a submission, written before anything else.

    Rows are insert-only. The id is shared with the matching ``leads`` row
    when normalization succeeds; otherwise the row stands alone.
    """

    __tablename__ = "leads_raw"

    # Stored exactly as received; never interpreted.
    payload = Column(JSON().with_variant(JSONB(), "postgresql"), nullable=False)

    # NULL keys are not constrained, so keyless submissions never collide.
    idempotency_key = Column(Text, nullable=True, unique=True)
    x_request_id = Column(Text, nullable=True)
