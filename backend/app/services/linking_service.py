"""Service for creating, removing and suggesting parent/child transaction links."""

import logging
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Collection, List, Optional, Sequence, Tuple

from app.config import settings
from app.models.transaction import LinkType, Transaction
from app.schemas.linking import (
    CreateLinkRequest,
    UpdateLinkRequest,
    LinkOperationResponse,
    LinkValidationResult,
    LinkSuggestion,
    MatchScores,
    TransactionHierarchy,
)
from app.schemas.transaction import TransactionResponse
from app.services.merchant_filter import is_linkable_marketplace_charge
from app.services.transaction_matching import (
    MatchCandidate,
    MatchingConfig,
    find_matching_transactions,
)
from app.services.transaction_store import TransactionStore

logger = logging.getLogger(__name__)

MANUAL_LINK_WARNING_RATIO = Decimal("0.10")
DEFAULT_LINK_CONFIDENCE = 100


class TransactionNotFoundError(LookupError):
    """Raised when a transaction id does not exist."""


def _failure(error: Exception) -> LinkOperationResponse:
    return LinkOperationResponse(success=False, linked_count=0, errors=[str(error) or type(error).__name__])


def validate_link(
    request: CreateLinkRequest,
    parent: Transaction,
    children: Sequence[Transaction],
    children_with_links: Collection[str] = (),
) -> LinkValidationResult:
    """
    Check a link request against the current state of the records.

    ``children_with_links`` holds the ids of listed children that are parents
    themselves; linking them would nest two levels deep.

    Errors block the link; warnings are informational (large amount gaps on
    manual links).
    """
    errors: List[str] = []
    warnings: List[str] = []

    if parent.parent_transaction_id is not None:
        errors.append("Parent transaction is already a child of another transaction")

    for child in children:
        if child.parent_transaction_id is not None:
            errors.append(f"Child transaction {child.id} is already linked")
        if child.id in children_with_links:
            errors.append(f"Child transaction {child.id} already has linked children")

    if request.parent_transaction_id in request.child_transaction_ids:
        errors.append("Transaction cannot link to itself")

    if request.link_type == LinkType.manual:
        parent_amount = Decimal(str(parent.amount))
        children_total = sum((Decimal(str(c.amount)) for c in children), Decimal("0"))
        difference = abs(parent_amount - children_total)

        if parent_amount == 0:
            significant = difference > 0
        else:
            significant = difference / parent_amount > MANUAL_LINK_WARNING_RATIO

        if significant:
            warnings.append(
                f"Child amounts (${children_total:.2f}) differ significantly "
                f"from parent (${parent_amount:.2f})"
            )

    return LinkValidationResult(valid=not errors, errors=errors, warnings=warnings)


def create_link(
    store: TransactionStore,
    request: CreateLinkRequest,
    require_unlinked: bool = False,
) -> LinkOperationResponse:
    """
    Point every listed child at the parent.

    Children are written in one update. With ``require_unlinked`` the batch is
    all-or-nothing: if any child was linked in the meantime nothing is written
    and ``linked_count`` is 0.
    """
    metadata = dict(request.metadata)
    metadata["linked_at"] = datetime.now(timezone.utc).isoformat()
    confidence = request.confidence if request.confidence is not None else DEFAULT_LINK_CONFIDENCE

    try:
        updated = store.update_transaction_fields(
            request.child_transaction_ids,
            {
                "parent_transaction_id": request.parent_transaction_id,
                "link_type": request.link_type,
                "link_confidence": confidence,
                "link_metadata": metadata,
            },
            require_unlinked=require_unlinked,
        )
    except Exception as e:
        store.rollback()
        logger.exception("Failed to link %s to parent %s", request.child_transaction_ids,
                         request.parent_transaction_id)
        return _failure(e)

    logger.info("Linked %d children to parent %s (%s)", len(updated),
                request.parent_transaction_id, request.link_type.value)
    return LinkOperationResponse(success=True, linked_count=len(updated), errors=[])


def remove_link(store: TransactionStore, transaction_id: str) -> LinkOperationResponse:
    """Detach one child from its parent, clearing every link field."""
    try:
        if store.get_by_id(transaction_id) is None:
            return LinkOperationResponse(
                success=False, linked_count=0, errors=[f"Transaction {transaction_id} not found"]
            )

        store.update_transaction_fields(
            [transaction_id],
            {
                "parent_transaction_id": None,
                "link_type": None,
                "link_confidence": None,
                "link_metadata": {},
            },
        )
    except Exception as e:
        store.rollback()
        logger.exception("Failed to unlink transaction %s", transaction_id)
        return _failure(e)

    return LinkOperationResponse(success=True, linked_count=1, errors=[])


def update_link(store: TransactionStore, request: UpdateLinkRequest) -> LinkOperationResponse:
    """Change confidence, type or metadata of an existing link. The parent stays put."""
    fields = {}
    if request.confidence is not None:
        fields["link_confidence"] = request.confidence
    if request.link_type is not None:
        fields["link_type"] = request.link_type
    if request.metadata is not None:
        fields["link_metadata"] = request.metadata

    try:
        transaction = store.get_by_id(request.transaction_id)
        if transaction is None:
            return LinkOperationResponse(
                success=False, linked_count=0, errors=[f"Transaction {request.transaction_id} not found"]
            )
        if transaction.parent_transaction_id is None:
            return LinkOperationResponse(
                success=False, linked_count=0, errors=[f"Transaction {request.transaction_id} is not linked"]
            )

        store.update_transaction_fields([request.transaction_id], fields)
    except Exception as e:
        store.rollback()
        logger.exception("Failed to update link on transaction %s", request.transaction_id)
        return _failure(e)

    return LinkOperationResponse(success=True, linked_count=1, errors=[])


def get_linked_transactions(store: TransactionStore, parent_id: str) -> TransactionHierarchy:
    """Fetch a parent with its direct children."""
    parent = store.get_by_id(parent_id)
    if parent is None:
        raise TransactionNotFoundError(f"Parent transaction {parent_id} not found")

    children = store.query_children(parent_id)
    children_amount = sum((Decimal(str(c.amount)) for c in children), Decimal("0"))

    return TransactionHierarchy(
        parent=TransactionResponse.model_validate(parent),
        children=[TransactionResponse.model_validate(c) for c in children],
        total_children=len(children),
        total_amount=parent.amount,
        children_amount=children_amount,
    )


def candidate_to_suggestion(candidate: MatchCandidate) -> LinkSuggestion:
    return LinkSuggestion(
        parent_transaction=TransactionResponse.model_validate(candidate.parent),
        child_transactions=[TransactionResponse.model_validate(c) for c in candidate.children],
        confidence=candidate.total_score,
        confidence_level=candidate.confidence_level,
        match_scores=MatchScores(**candidate.score_breakdown()),
        reasons=[
            f"Date proximity: {candidate.date_score}/40 points",
            f"Amount match: {candidate.amount_score}/50 points",
        ],
    )


def get_link_suggestions(
    store: TransactionStore,
    user_id: str,
    min_confidence: Optional[int] = None,
    config: Optional[MatchingConfig] = None,
) -> List[LinkSuggestion]:
    """
    Run the matcher over a user's unlinked marketplace charges and order items.

    Only one user's records are ever compared. Store errors are logged and
    produce no suggestions.
    """
    config = config or MatchingConfig.from_settings()
    if min_confidence is None:
        min_confidence = config.suggest_threshold

    try:
        parents = store.query_unlinked_by_user(
            user_id, merchant_patterns=settings.link_parent_merchant_patterns
        )
        children = store.query_unlinked_by_user(user_id, merchant_equals=settings.link_child_merchant)
    except Exception:
        store.rollback()
        logger.exception("Failed to load link candidates for user %s", user_id)
        return []

    parents = [p for p in parents if is_linkable_marketplace_charge(p.merchant)]
    logger.debug("User %s: %d parent charges, %d order items", user_id, len(parents), len(children))

    matches = find_matching_transactions(parents, children, config)
    return [candidate_to_suggestion(m) for m in matches if m.total_score >= min_confidence]


def bulk_create_links(
    store: TransactionStore,
    requests: Sequence[CreateLinkRequest],
) -> List[LinkOperationResponse]:
    """Create links one request at a time, in order."""
    return [create_link(store, request) for request in requests]


def find_candidate_transactions(
    store: TransactionStore,
    parent: Transaction,
    window_days: int = 7,
) -> List[Transaction]:
    """Unlinked transactions of the same user within +/- ``window_days`` of the parent."""
    start = parent.date - timedelta(days=window_days)
    end = parent.date + timedelta(days=window_days)
    try:
        return store.query_unlinked_in_range(parent.user_id, start, end, exclude_id=parent.id)
    except Exception:
        store.rollback()
        logger.exception("Failed to fetch candidate transactions for %s", parent.id)
        return []


def create_validated_link(
    store: TransactionStore,
    request: CreateLinkRequest,
) -> Tuple[LinkValidationResult, Optional[LinkOperationResponse]]:
    """Load the records, validate, and link only if validation passes."""
    validation = validate_request(store, request)
    if not validation.valid:
        return validation, None
    return validation, create_link(store, request, require_unlinked=True)


def validate_request(store: TransactionStore, request: CreateLinkRequest) -> LinkValidationResult:
    """Validate a link request by id, reporting unknown ids as errors."""
    parent = store.get_by_id(request.parent_transaction_id)
    if parent is None:
        return LinkValidationResult(
            valid=False, errors=[f"Parent transaction {request.parent_transaction_id} not found"]
        )

    children = store.get_many(request.child_transaction_ids)
    found = {c.id for c in children}
    missing = [cid for cid in request.child_transaction_ids if cid not in found]

    result = validate_link(request, parent, children, store.query_parent_ids(found))
    if missing:
        result.errors.extend(f"Child transaction {cid} not found" for cid in missing)
        result.valid = False
    return result
