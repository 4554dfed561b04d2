"""
FastAPI dependencies.
"""

from fastapi import Depends
from sqlalchemy.orm import Session

from app.database import get_db
from app.services.transaction_store import TransactionStore


def get_transaction_store(db: Session = Depends(get_db)) -> TransactionStore:
    """
    Dependency for the transaction store used by linking endpoints.
    """
    return TransactionStore(db)
