"""
Transaction schemas.
"""

from pydantic import BaseModel, Field
from typing import Optional, Dict, Any
from datetime import datetime
from decimal import Decimal

from app.models.transaction import LinkType


class TransactionBase(BaseModel):
    date: datetime
    amount: Decimal = Field(..., ge=0)
    merchant: str
    description: str = ""
    order_id: Optional[str] = None
    category_id: Optional[str] = None
    account_id: Optional[str] = None
    is_income: bool = False


class TransactionCreate(TransactionBase):
    """A parsed row handed over by an importer."""
    pass


class TransactionResponse(BaseModel):
    id: str
    user_id: str
    date: datetime
    amount: Decimal
    merchant: str
    description: str
    order_id: Optional[str]
    category_id: Optional[str]
    account_id: Optional[str]
    is_income: bool
    parent_transaction_id: Optional[str]
    link_type: Optional[LinkType]
    link_confidence: Optional[int]
    link_metadata: Dict[str, Any] = {}
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class TransactionListResponse(BaseModel):
    items: list[TransactionResponse]
    total: int
    page: int
    pages: int
