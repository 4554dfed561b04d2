"""
Import log database model.
"""

import uuid
from datetime import datetime
from sqlalchemy import Column, String, Integer, DateTime, Enum, Text
import enum
from app.database import Base


class ImportStatus(str, enum.Enum):
    """Import status enumeration."""
    processing = "processing"
    completed = "completed"
    failed = "failed"


class ImportLog(Base):
    """Import log model for tracking batches handed over by the parsers."""

    __tablename__ = "import_logs"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), nullable=False, index=True)
    source = Column(String(50), nullable=False)  # chase, amazon, generic, ...
    status = Column(Enum(ImportStatus), nullable=False, default=ImportStatus.processing)
    transactions_imported = Column(Integer, default=0, nullable=False)
    transactions_skipped = Column(Integer, default=0, nullable=False)
    transactions_auto_linked = Column(Integer, default=0, nullable=False)
    error_message = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
