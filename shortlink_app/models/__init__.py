"""
Database models for the shortlink service.

Click analytics are not stored here: only the aggregate click_count lives on
the URL row, detailed click events go to the event sink.
"""

from .url import URL, SHORT_CODE_CONSTRAINT, DEDUP_KEY_CONSTRAINT

__all__ = ["URL", "SHORT_CODE_CONSTRAINT", "DEDUP_KEY_CONSTRAINT"]
