# crm_intake/core/__init__.py
"""
Core package for configuration, logging, and shared exceptions.
"""

from crm_intake.core.config import Settings, get_settings, settings
from crm_intake.core.logging import configure_structlog, get_structlog_logger

__all__ = [
    "Settings",
    "get_settings",
    "settings",
    "configure_structlog",
    "get_structlog_logger",
]
