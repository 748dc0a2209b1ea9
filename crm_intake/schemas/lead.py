# crm_intake/schemas/lead.py
from __future__ import annotations

from typing import Literal, Tuple
from uuid import UUID

from pydantic import BaseModel

# (payload key, leads column). Keys match what the landing-page script posts.
LEAD_PAYLOAD_FIELDS: Tuple[Tuple[str, str], ...] = (
    ("click_id", "click_id"),
    ("country", "country"),
    ("creo", "creo"),
    ("description", "description"),
    ("domain", "domain"),
    ("email", "email"),
    ("firstName", "first_name"),
    ("lastName", "last_name"),
    ("ip", "ip"),
    ("lang", "lang"),
    ("marker", "marker"),
    ("offer", "offer"),
    ("phone", "phone"),
    ("sourcetype", "sourcetype"),
)


class LeadIngestResponse(BaseModel):
    ok: Literal[True] = True
    lead_id: UUID
    deduplicated: bool


class ErrorResponse(BaseModel):
    ok: Literal[False] = False
    error: str
