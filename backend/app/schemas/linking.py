"""Pydantic schemas for transaction linking."""

from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any
from decimal import Decimal
from enum import Enum

from app.models.transaction import LinkType
from app.schemas.transaction import TransactionResponse


class ConfidenceLevel(str, Enum):
    HIGH = "high"  # At or above the auto-link threshold
    MEDIUM = "medium"  # Worth suggesting for review
    UNMATCHED = "unmatched"


class CreateLinkRequest(BaseModel):
    """Request to attach child transactions to a parent."""
    parent_transaction_id: str
    child_transaction_ids: List[str] = Field(..., min_length=1)
    link_type: LinkType = LinkType.manual
    confidence: Optional[int] = Field(None, ge=0, le=100)
    metadata: Dict[str, Any] = {}


class UpdateLinkRequest(BaseModel):
    """Partial update of an existing link. The parent never changes here."""
    transaction_id: str
    confidence: Optional[int] = Field(None, ge=0, le=100)
    link_type: Optional[LinkType] = None
    metadata: Optional[Dict[str, Any]] = None


class UpdateLinkBody(BaseModel):
    """Body of PATCH /links/{transaction_id}."""
    confidence: Optional[int] = Field(None, ge=0, le=100)
    link_type: Optional[LinkType] = None
    metadata: Optional[Dict[str, Any]] = None


class LinkOperationResponse(BaseModel):
    success: bool
    linked_count: int = 0
    errors: List[str] = []


class LinkValidationResult(BaseModel):
    valid: bool
    errors: List[str] = []
    warnings: List[str] = []


class MatchScores(BaseModel):
    date_score: int
    amount_score: int
    order_group_score: int = 0
    total: int


class LinkSuggestion(BaseModel):
    """A match candidate as shown to the user for review."""
    parent_transaction: TransactionResponse
    child_transactions: List[TransactionResponse]
    confidence: int
    confidence_level: ConfidenceLevel
    match_scores: MatchScores
    reasons: List[str] = []


class TransactionHierarchy(BaseModel):
    parent: TransactionResponse
    children: List[TransactionResponse]
    total_children: int
    total_amount: Decimal
    children_amount: Decimal


class AutoLinkResult(BaseModel):
    success: bool
    total_matches: int = 0
    auto_linked_count: int = 0
    suggested_count: int = 0
    errors: List[str] = []
    auto_linked_transactions: List[LinkSuggestion] = []
    suggested_transactions: List[LinkSuggestion] = []
