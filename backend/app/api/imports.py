"""
Import API endpoints.
"""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from typing import Optional

from app.database import get_db
from app.schemas.import_file import (
    ImportBatchRequest,
    ImportStatusResponse,
    ImportLogResponse
)
from app.services import import_service

router = APIRouter(prefix="/imports", tags=["imports"])


@router.post("/transactions", response_model=ImportStatusResponse)
def import_transactions(
    request: ImportBatchRequest,
    db: Session = Depends(get_db)
):
    """Store a parsed batch of transactions and auto-link it"""
    try:
        return import_service.process_import(db, request)
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/history", response_model=list[ImportLogResponse])
def get_import_history(
    user_id: Optional[str] = None,
    limit: int = 20,
    db: Session = Depends(get_db)
):
    """Get import history"""
    logs = import_service.get_import_history(db, user_id, limit)
    return [ImportLogResponse.model_validate(log) for log in logs]


@router.get("/{import_id}/status", response_model=ImportStatusResponse)
def get_import_status(
    import_id: str,
    db: Session = Depends(get_db)
):
    """Get status of an import"""
    try:
        return import_service.get_import_status(db, import_id)
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e))
