"""
CRM lead intake: zero-loss ingestion with idempotent deduplication.
"""

__version__ = "1.0.0"
