"""
Import service: persist a parsed batch, then run automatic linking.
"""

import logging
import uuid
from typing import List, Optional, Set

from sqlalchemy.orm import Session

from app.config import settings
from app.models.import_log import ImportLog, ImportStatus
from app.models.transaction import Transaction
from app.schemas.import_file import ImportBatchRequest, ImportStatusResponse
from app.services.auto_linking_service import auto_link_transactions
from app.services.deduplication_service import generate_transaction_hash, is_duplicate
from app.services.transaction_store import TransactionStore

logger = logging.getLogger(__name__)


def process_import(db: Session, request: ImportBatchRequest) -> ImportStatusResponse:
    """
    Store the rows of one import batch and auto-link afterwards.

    Rows already stored (same content hash) are skipped. Auto-linking runs
    once per batch, after the rows are committed.
    """
    import_id = str(uuid.uuid4())
    import_log = ImportLog(
        id=import_id,
        user_id=request.user_id,
        source=request.source,
        status=ImportStatus.processing,
    )
    db.add(import_log)
    db.commit()

    imported = 0
    skipped = 0
    errors: List[str] = []
    seen: Set[str] = set()

    try:
        for txn_data in request.transactions:
            try:
                txn_hash = generate_transaction_hash(
                    request.user_id,
                    txn_data.date,
                    txn_data.amount,
                    txn_data.merchant,
                    txn_data.description,
                    txn_data.order_id,
                )

                if txn_hash in seen or is_duplicate(db, txn_hash):
                    skipped += 1
                    continue
                seen.add(txn_hash)

                transaction = Transaction(
                    id=str(uuid.uuid4()),
                    hash=txn_hash,
                    user_id=request.user_id,
                    date=txn_data.date,
                    amount=txn_data.amount,
                    merchant=txn_data.merchant,
                    description=txn_data.description,
                    order_id=txn_data.order_id,
                    category_id=txn_data.category_id,
                    account_id=txn_data.account_id,
                    is_income=txn_data.is_income,
                    link_metadata={},
                )
                db.add(transaction)
                imported += 1

            except Exception as e:
                errors.append(str(e))

        db.commit()
    except Exception as e:
        db.rollback()
        logger.exception("Import %s failed", import_id)
        import_log.status = ImportStatus.failed
        import_log.error_message = str(e)
        db.commit()
        raise

    auto_link_result = None
    run_auto_link = settings.auto_link_on_import if request.auto_link is None else request.auto_link
    if run_auto_link and imported:
        auto_link_result = auto_link_transactions(TransactionStore(db), request.user_id)
        import_log.transactions_auto_linked = auto_link_result.auto_linked_count
        errors.extend(auto_link_result.errors)

    import_log.status = ImportStatus.completed
    import_log.transactions_imported = imported
    import_log.transactions_skipped = skipped
    if errors:
        import_log.error_message = "; ".join(errors[:10])
    db.commit()

    logger.info("Import %s (%s): %d imported, %d skipped", import_id, request.source, imported, skipped)

    return ImportStatusResponse(
        import_id=import_id,
        status=ImportStatus.completed,
        source=request.source,
        transactions_imported=imported,
        transactions_skipped=skipped,
        errors=errors,
        auto_link=auto_link_result,
    )


def get_import_status(db: Session, import_id: str) -> ImportStatusResponse:
    import_log = db.query(ImportLog).filter(ImportLog.id == import_id).first()
    if not import_log:
        raise ValueError(f"Import {import_id} not found")

    return ImportStatusResponse(
        import_id=import_log.id,
        status=import_log.status,
        source=import_log.source,
        transactions_imported=import_log.transactions_imported,
        transactions_skipped=import_log.transactions_skipped,
        errors=[import_log.error_message] if import_log.error_message else [],
    )


def get_import_history(db: Session, user_id: Optional[str] = None, limit: int = 20) -> List[ImportLog]:
    query = db.query(ImportLog)
    if user_id:
        query = query.filter(ImportLog.user_id == user_id)
    return query.order_by(ImportLog.created_at.desc()).limit(limit).all()
