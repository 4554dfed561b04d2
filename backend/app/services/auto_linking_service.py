"""
Automatic linking of order line items to card charges after an import.

1. Collect suggestions at the suggest threshold
2. Link suggestions at or above the auto-link threshold, one at a time
3. Hand the rest back untouched for the user to review
"""

import logging
from datetime import datetime, timezone
from typing import List, Optional, Set

from app.models.transaction import LinkType
from app.schemas.linking import AutoLinkResult, CreateLinkRequest, LinkSuggestion
from app.services import linking_service
from app.services.transaction_matching import MatchingConfig
from app.services.transaction_store import TransactionStore

logger = logging.getLogger(__name__)


def auto_link_transactions(
    store: TransactionStore,
    user_id: str,
    config: Optional[MatchingConfig] = None,
) -> AutoLinkResult:
    """
    Auto-link high-confidence matches for a user and return the rest as suggestions.

    A failed link is recorded and the run moves on to the next match. A match
    with any child already claimed (earlier in this run, or by someone else
    since the suggestions were computed) is skipped as a whole, so an order is
    never split across two parents.
    """
    config = config or MatchingConfig.from_settings()
    errors: List[str] = []
    auto_linked: List[LinkSuggestion] = []

    try:
        suggestions = linking_service.get_link_suggestions(
            store, user_id, min_confidence=config.suggest_threshold, config=config
        )
        if not suggestions:
            return AutoLinkResult(success=True)

        high_confidence = [s for s in suggestions if s.confidence >= config.auto_link_threshold]
        medium_confidence = [
            s for s in suggestions
            if config.suggest_threshold <= s.confidence < config.auto_link_threshold
        ]

        claimed: Set[str] = set()
        for match in high_confidence:
            child_ids = [t.id for t in match.child_transactions]
            if claimed.intersection(child_ids):
                logger.info("Skipping match for %s: children already claimed in this run",
                            match.parent_transaction.id)
                continue

            result = linking_service.create_link(
                store,
                CreateLinkRequest(
                    parent_transaction_id=match.parent_transaction.id,
                    child_transaction_ids=child_ids,
                    link_type=LinkType.auto,
                    confidence=match.confidence,
                    metadata={
                        "match_scores": match.match_scores.model_dump(),
                        "linked_at": datetime.now(timezone.utc).isoformat(),
                    },
                ),
                require_unlinked=True,
            )

            if not result.success:
                errors.append(
                    f"Failed to auto-link {match.parent_transaction.merchant}: {', '.join(result.errors)}"
                )
                continue
            if result.linked_count == 0:
                logger.info("Skipping match for %s: children linked elsewhere",
                            match.parent_transaction.id)
                continue

            claimed.update(child_ids)
            auto_linked.append(match)

        logger.info(
            "Auto-link for user %s: %d matches, %d linked, %d suggested, %d errors",
            user_id, len(suggestions), len(auto_linked), len(medium_confidence), len(errors),
        )

        return AutoLinkResult(
            success=not errors,
            total_matches=len(suggestions),
            auto_linked_count=len(auto_linked),
            suggested_count=len(medium_confidence),
            errors=errors,
            auto_linked_transactions=auto_linked,
            suggested_transactions=medium_confidence,
        )

    except Exception as e:
        logger.exception("Auto-linking failed for user %s", user_id)
        return AutoLinkResult(
            success=False,
            errors=[str(e) or "Unknown error during auto-linking"],
        )


# Name used by the import flow for marketplace orders
auto_link_amazon_transactions = auto_link_transactions


def should_run_auto_link(store: TransactionStore, user_id: str) -> bool:
    """True if the user has at least one suggestion worth looking at."""
    try:
        return len(linking_service.get_link_suggestions(store, user_id)) > 0
    except Exception:
        logger.exception("Could not check auto-link candidates for user %s", user_id)
        return False
