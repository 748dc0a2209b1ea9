# crm_intake/models/lead.py
from __future__ import annotations

from sqlalchemy import Column, DateTime, Index, String, Text, func

from crm_intake.db.base import Base, TimestampMixin, UUIDMixin

LEAD_STATUS_NEW = "new"


class Lead(UUIDMixin, TimestampMixin, Base):
    __tablename__ = "leads"

    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    # Attribution
    click_id = Column(Text)
    domain = Column(Text)
    offer = Column(Text)
    creo = Column(Text)
    marker = Column(Text)
    sourcetype = Column(Text)

    # Contact
    first_name = Column(Text)
    last_name = Column(Text)
    email = Column(Text)
    phone = Column(Text)
    country = Column(Text)
    lang = Column(Text)
    ip = Column(Text)
    description = Column(Text)

    # Correlation
    idempotency_key = Column(Text, nullable=True, unique=True)
    x_request_id = Column(Text, nullable=True)

    # Downstream CRM workflow; ingestion only sets the initial status.
    status = Column(String(32), nullable=False, server_default=LEAD_STATUS_NEW)
    assigned_to = Column(Text, nullable=True)

    __table_args__ = (
        Index("idx_leads_created_at", "created_at"),
        Index("idx_leads_status", "status"),
        Index("idx_leads_email", "email"),
        Index("idx_leads_phone", "phone"),
    )
