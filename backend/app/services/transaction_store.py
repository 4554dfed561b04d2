"""
Transaction store used by the linking services.

Thin query/update layer over the SQLAlchemy session so the linking code only
depends on a handful of operations.
"""

from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Set

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from app.models.transaction import Transaction


class TransactionStore:
    """Query-by-filter and update-by-id access to transactions."""

    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, transaction_id: str) -> Optional[Transaction]:
        return self.db.query(Transaction).filter(Transaction.id == transaction_id).first()

    def get_many(self, transaction_ids: Iterable[str]) -> List[Transaction]:
        ids = list(transaction_ids)
        if not ids:
            return []
        return self.db.query(Transaction).filter(Transaction.id.in_(ids)).all()

    def query_unlinked_by_user(
        self,
        user_id: str,
        merchant_patterns: Optional[List[str]] = None,
        merchant_equals: Optional[str] = None,
    ) -> List[Transaction]:
        """
        Unlinked transactions of one user, optionally narrowed by merchant.

        ``merchant_patterns`` are SQL LIKE patterns matched case-insensitively
        and OR'ed together; ``merchant_equals`` is a case-insensitive exact match.
        """
        query = self.db.query(Transaction).filter(
            Transaction.user_id == user_id,
            Transaction.parent_transaction_id.is_(None),
        )

        if merchant_patterns:
            query = query.filter(or_(*[Transaction.merchant.ilike(p) for p in merchant_patterns]))
        if merchant_equals is not None:
            query = query.filter(func.lower(Transaction.merchant) == merchant_equals.lower())

        return query.order_by(Transaction.date).all()

    def query_children(self, parent_id: str) -> List[Transaction]:
        return self.db.query(Transaction).filter(
            Transaction.parent_transaction_id == parent_id
        ).order_by(Transaction.date).all()

    def query_unlinked_in_range(
        self,
        user_id: str,
        start: datetime,
        end: datetime,
        exclude_id: Optional[str] = None,
    ) -> List[Transaction]:
        query = self.db.query(Transaction).filter(
            Transaction.user_id == user_id,
            Transaction.parent_transaction_id.is_(None),
            Transaction.date >= start,
            Transaction.date <= end,
        )
        if exclude_id:
            query = query.filter(Transaction.id != exclude_id)
        return query.order_by(Transaction.date).all()

    def update_transaction_fields(
        self,
        transaction_ids: Iterable[str],
        fields: Dict[str, Any],
        require_unlinked: bool = False,
    ) -> List[Transaction]:
        """
        Apply ``fields`` to every listed transaction and commit.

        With ``require_unlinked`` the update is all-or-nothing: if any listed
        row already has a parent (or does not exist) nothing is written, so a
        concurrent run that claimed part of the batch first wins the whole of
        it. Returns the rows that were actually updated.
        """
        ids = list(transaction_ids)
        if not ids:
            return []

        query = self.db.query(Transaction).filter(Transaction.id.in_(ids))
        if require_unlinked:
            # Row locks keep another writer from claiming the rows between select and update
            query = query.filter(Transaction.parent_transaction_id.is_(None)).with_for_update()

        updated_ids = [row.id for row in query.with_entities(Transaction.id).all()]
        if require_unlinked and len(updated_ids) != len(set(ids)):
            self.db.rollback()
            return []

        if updated_ids:
            values = {getattr(Transaction, name): value for name, value in fields.items()}
            values[Transaction.updated_at] = datetime.utcnow()
            self.db.query(Transaction).filter(
                Transaction.id.in_(updated_ids)
            ).update(values, synchronize_session=False)

        self.db.commit()
        self.db.expire_all()
        return self.get_many(updated_ids)

    def query_parent_ids(self, transaction_ids: Iterable[str]) -> Set[str]:
        """Ids among ``transaction_ids`` that have at least one child linked to them."""
        ids = list(transaction_ids)
        if not ids:
            return set()
        rows = self.db.query(Transaction.parent_transaction_id).filter(
            Transaction.parent_transaction_id.in_(ids)
        ).distinct().all()
        return {row[0] for row in rows}

    def rollback(self) -> None:
        self.db.rollback()
