# crm_intake/models/__init__.py
"""
SQLAlchemy ORM models for database entities.
"""

from crm_intake.models.lead import LEAD_STATUS_NEW, Lead
from crm_intake.models.lead_raw import LeadRaw

__all__ = [
    "LEAD_STATUS_NEW",
    "Lead",
    "LeadRaw",
]
