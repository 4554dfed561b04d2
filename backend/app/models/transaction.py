"""
Transaction database model.
"""

import enum
import uuid
from datetime import datetime
from sqlalchemy import (
    Column, String, Boolean, DateTime, Numeric, Text, Integer, JSON, Enum, ForeignKey, Index,
    CheckConstraint,
)
from sqlalchemy import event
from sqlalchemy.orm import Session, relationship
from app.database import Base


class LinkType(str, enum.Enum):
    """How a child transaction got attached to its parent."""
    auto = "auto"
    manual = "manual"


class Transaction(Base):
    """Transaction model.

    A transaction is either a parent (e.g. a credit card charge), a child
    (e.g. one line item of an order export, pointing at its parent through
    ``parent_transaction_id``) or unlinked. Chains are never more than one
    level deep; that rule lives in the linking service, not here.
    """

    __tablename__ = "transactions"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    hash = Column(String(64), unique=True, nullable=False, index=True)  # For deduplication
    user_id = Column(String(36), nullable=False, index=True)
    date = Column(DateTime, nullable=False, index=True)
    amount = Column(Numeric(12, 2), nullable=False)  # Always non-negative, see is_income
    merchant = Column(String(255), nullable=False)
    description = Column(Text, nullable=False, default="")
    order_id = Column(String(64), nullable=True)  # External order id from e-commerce exports
    category_id = Column(String(36), nullable=True)
    account_id = Column(String(36), nullable=True)
    is_income = Column(Boolean, default=False, nullable=False)

    # Linking
    parent_transaction_id = Column(
        String(36), ForeignKey("transactions.id", ondelete="SET NULL"), nullable=True
    )
    link_type = Column(Enum(LinkType), nullable=True)
    link_confidence = Column(Integer, nullable=True)
    link_metadata = Column(JSON, nullable=False, default=dict)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # Relationships
    parent = relationship("Transaction", remote_side=[id], back_populates="children")
    children = relationship("Transaction", back_populates="parent")

    __table_args__ = (
        Index("idx_transaction_date_user", "date", "user_id"),
        Index("idx_transaction_parent", "parent_transaction_id"),
        CheckConstraint(
            "link_confidence IS NULL OR (link_confidence >= 0 AND link_confidence <= 100)",
            name="ck_transaction_link_confidence",
        ),
    )

    def clear_link(self):
        """Detach from the parent and drop every link field with it."""
        self.parent = None
        self.parent_transaction_id = None
        self.link_type = None
        self.link_confidence = None
        self.link_metadata = {}


@event.listens_for(Session, "before_flush")
def _unlink_children_of_deleted_parents(session, flush_context, instances):
    # ON DELETE SET NULL only clears the foreign key; the other link fields go with it
    for obj in list(session.deleted):
        if not isinstance(obj, Transaction):
            continue
        with session.no_autoflush:
            children = session.query(Transaction).filter(
                Transaction.parent_transaction_id == obj.id
            ).all()
        for child in children:
            if child not in session.deleted:
                child.clear_link()
