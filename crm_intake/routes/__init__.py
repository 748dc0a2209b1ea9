# crm_intake/routes/__init__.py
"""
API route handlers.
"""

from crm_intake.routes.health import router as health_router
from crm_intake.routes.lead import router as lead_router

__all__ = [
    "health_router",
    "lead_router",
]
