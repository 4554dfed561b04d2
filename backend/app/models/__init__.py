"""
Database models package.
"""

from app.models.transaction import Transaction, LinkType
from app.models.import_log import ImportLog, ImportStatus

__all__ = [
    "Transaction",
    "LinkType",
    "ImportLog",
    "ImportStatus",
]
