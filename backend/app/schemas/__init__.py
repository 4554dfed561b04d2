"""
Pydantic schemas package.
"""

from app.schemas.import_file import (
    ImportBatchRequest,
    ImportStatusResponse,
    ImportLogResponse,
)
from app.schemas.linking import (
    ConfidenceLevel,
    CreateLinkRequest,
    UpdateLinkRequest,
    UpdateLinkBody,
    LinkOperationResponse,
    LinkValidationResult,
    MatchScores,
    LinkSuggestion,
    TransactionHierarchy,
    AutoLinkResult,
)
from app.schemas.transaction import (
    TransactionBase,
    TransactionCreate,
    TransactionResponse,
    TransactionListResponse,
)

__all__ = [
    "ImportBatchRequest",
    "ImportStatusResponse",
    "ImportLogResponse",
    "ConfidenceLevel",
    "CreateLinkRequest",
    "UpdateLinkRequest",
    "UpdateLinkBody",
    "LinkOperationResponse",
    "LinkValidationResult",
    "MatchScores",
    "LinkSuggestion",
    "TransactionHierarchy",
    "AutoLinkResult",
    "TransactionBase",
    "TransactionCreate",
    "TransactionResponse",
    "TransactionListResponse",
]
