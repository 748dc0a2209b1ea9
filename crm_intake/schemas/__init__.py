# crm_intake/schemas/__init__.py
"""
Pydantic schemas for responses and the lead payload field mapping.
"""

from crm_intake.schemas.lead import LEAD_PAYLOAD_FIELDS, ErrorResponse, LeadIngestResponse

__all__ = [
    "LEAD_PAYLOAD_FIELDS",
    "ErrorResponse",
    "LeadIngestResponse",
]
