"""
Deduplication service for imported transactions.
"""

import hashlib
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy.orm import Session

from app.models.transaction import Transaction


def generate_transaction_hash(
    user_id: str,
    txn_date: datetime,
    amount: Decimal,
    merchant: str,
    description: str = "",
    order_id: Optional[str] = None,
) -> str:
    """
    Generate SHA256 hash for deduplication.
    Uses user_id|date|amount|merchant|description|order_id

    Line items of one order often share date and merchant, so description and
    order id are part of the key.
    """
    components = [
        str(user_id),
        txn_date.isoformat(),
        str(Decimal(str(amount)).quantize(Decimal("0.01"))),
        merchant.strip().lower(),
        description.strip().lower(),
        (order_id or "").strip(),
    ]
    combined = "|".join(components)
    return hashlib.sha256(combined.encode()).hexdigest()


def is_duplicate(db: Session, txn_hash: str) -> bool:
    """Check if transaction with this hash already exists"""
    return db.query(Transaction).filter(Transaction.hash == txn_hash).first() is not None
