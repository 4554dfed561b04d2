"""
Transaction linking API endpoints.
"""

from fastapi import APIRouter, Depends, HTTPException, Query
from typing import List, Optional

from app.dependencies import get_transaction_store
from app.schemas.linking import (
    AutoLinkResult,
    CreateLinkRequest,
    LinkOperationResponse,
    LinkSuggestion,
    LinkValidationResult,
    TransactionHierarchy,
    UpdateLinkBody,
    UpdateLinkRequest,
)
from app.services import auto_linking_service, linking_service
from app.services.linking_service import TransactionNotFoundError
from app.services.transaction_store import TransactionStore

router = APIRouter(prefix="/links", tags=["links"])


@router.get("/suggestions", response_model=List[LinkSuggestion])
def get_suggestions(
    user_id: str,
    min_confidence: Optional[int] = Query(None, ge=0, le=100),
    store: TransactionStore = Depends(get_transaction_store)
):
    """Get link suggestions for a user's unlinked transactions"""
    return linking_service.get_link_suggestions(store, user_id, min_confidence)


@router.post("/validate", response_model=LinkValidationResult)
def validate_link(
    request: CreateLinkRequest,
    store: TransactionStore = Depends(get_transaction_store)
):
    """Dry-run validation of a link request"""
    return linking_service.validate_request(store, request)


@router.post("", response_model=LinkOperationResponse)
def create_link(
    request: CreateLinkRequest,
    store: TransactionStore = Depends(get_transaction_store)
):
    """Link child transactions to a parent after validating the request"""
    validation, result = linking_service.create_validated_link(store, request)
    if not validation.valid:
        raise HTTPException(status_code=400, detail=validation.errors)
    if not result.success:
        raise HTTPException(status_code=500, detail=result.errors)
    return result


@router.post("/auto", response_model=AutoLinkResult)
def auto_link(
    user_id: str,
    store: TransactionStore = Depends(get_transaction_store)
):
    """Auto-link high-confidence matches, return the rest as suggestions"""
    return auto_linking_service.auto_link_transactions(store, user_id)


@router.get("/{parent_id}/hierarchy", response_model=TransactionHierarchy)
def get_hierarchy(
    parent_id: str,
    store: TransactionStore = Depends(get_transaction_store)
):
    """Get a parent transaction with its children"""
    try:
        return linking_service.get_linked_transactions(store, parent_id)
    except TransactionNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.patch("/{transaction_id}", response_model=LinkOperationResponse)
def update_link(
    transaction_id: str,
    update: UpdateLinkBody,
    store: TransactionStore = Depends(get_transaction_store)
):
    """Update confidence, type or metadata of a link"""
    result = linking_service.update_link(
        store, UpdateLinkRequest(transaction_id=transaction_id, **update.model_dump(exclude_unset=True))
    )
    if not result.success:
        raise HTTPException(status_code=404 if store.get_by_id(transaction_id) is None else 400,
                            detail=result.errors)
    return result


@router.delete("/{transaction_id}", response_model=LinkOperationResponse)
def remove_link(
    transaction_id: str,
    store: TransactionStore = Depends(get_transaction_store)
):
    """Unlink a child transaction from its parent"""
    result = linking_service.remove_link(store, transaction_id)
    if not result.success:
        raise HTTPException(status_code=404 if store.get_by_id(transaction_id) is None else 500,
                            detail=result.errors)
    return result
