# crm_intake/middleware/__init__.py
from crm_intake.middleware.logging import LoggingMiddleware
from crm_intake.middleware.request_id import RequestIdMiddleware

__all__ = [
    "LoggingMiddleware",
    "RequestIdMiddleware",
]
