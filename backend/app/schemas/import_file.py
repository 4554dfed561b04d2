"""
Import batch schemas.
"""

from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime

from app.models.import_log import ImportStatus
from app.schemas.linking import AutoLinkResult
from app.schemas.transaction import TransactionCreate


class ImportBatchRequest(BaseModel):
    """Rows already parsed by one of the source-specific importers."""
    user_id: str
    source: str = Field("generic", max_length=50)
    transactions: List[TransactionCreate]
    auto_link: Optional[bool] = None  # Defaults to settings.auto_link_on_import


class ImportStatusResponse(BaseModel):
    import_id: str
    status: ImportStatus
    source: str
    transactions_imported: int = 0
    transactions_skipped: int = 0
    errors: List[str] = []
    auto_link: Optional[AutoLinkResult] = None


class ImportLogResponse(BaseModel):
    id: str
    user_id: str
    source: str
    status: ImportStatus
    transactions_imported: int
    transactions_skipped: int
    transactions_auto_linked: int
    error_message: Optional[str]
    created_at: datetime

    class Config:
        from_attributes = True
