# crm_intake/core/exceptions.py
from __future__ import annotations

from typing import Any, Dict, Optional


class BaseAPIException(Exception):
    """Base exception for all API errors.

    ``code`` is the only part that reaches the client; ``message`` and
    ``details`` are for logs.
    """

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.status_code = status_code
        self.code = code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)

    def to_response(self) -> Dict[str, Any]:
        return {"ok": False, "error": self.code}


class APIError(BaseAPIException):
    """Generic API error."""
    def __init__(self, message: str = "An error occurred", **kwargs):
        kwargs.setdefault("code", "internal_error")
        super().__init__(message, status_code=500, **kwargs)


class InvalidPayloadError(BaseAPIException):
    """Request body is not a JSON object."""
    def __init__(self, message: str = "Request body must be a JSON object", **kwargs):
        kwargs.setdefault("code", "invalid_payload")
        super().__init__(message, status_code=400, **kwargs)
