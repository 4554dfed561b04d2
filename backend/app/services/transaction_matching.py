"""
Matching engine for linking order line items to the card charges that paid for them.

Parents are aggregate charges (a credit card statement entry), children are
individual line items from an order export. A match is scored out of 90:

    date proximity    0-40  (earliest child vs. parent, decays across the window)
    amount agreement  0-50  (children total vs. parent, absolute dollar tolerance)
    order grouping    0     (reserved, every export line already has an order id)

Everything here is pure: no database access, no mutation of the inputs.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, Iterable, List, Sequence, Tuple, Union

from app.config import settings
from app.schemas.linking import ConfidenceLevel

logger = logging.getLogger(__name__)

MAX_DATE_SCORE = 40
MAX_AMOUNT_SCORE = 50
SECONDS_PER_DAY = 86400

DateLike = Union[date, datetime]
AmountLike = Union[Decimal, int, float, str]


@dataclass(frozen=True)
class MatchingConfig:
    """Knobs for one matching run."""

    date_window: int = 30
    amount_tolerance: Decimal = Decimal("3.00")
    suggest_threshold: int = 70
    auto_link_threshold: int = 90
    enable_merchant_matching: bool = True
    merchant_keywords: Tuple[str, ...] = ("amazon", "amzn", "amazon.com", "amazon marketplace")

    @classmethod
    def from_settings(cls) -> "MatchingConfig":
        return cls(
            date_window=settings.link_date_window_days,
            amount_tolerance=Decimal(str(settings.link_amount_tolerance)),
            suggest_threshold=settings.link_suggest_threshold,
            auto_link_threshold=settings.link_auto_threshold,
            enable_merchant_matching=settings.link_merchant_matching,
            merchant_keywords=tuple(settings.link_merchant_keywords),
        )


@dataclass
class TransactionGroup:
    """Children that probably belong to the same order."""

    date: datetime
    transactions: List[Any] = field(default_factory=list)
    total_amount: Decimal = Decimal("0")


@dataclass
class MatchCandidate:
    """One parent paired with one group of children, with its score breakdown."""

    parent: Any
    children: List[Any]
    date_score: int
    amount_score: int
    total_score: int
    confidence_level: ConfidenceLevel
    order_group_score: int = 0

    @property
    def child_ids(self) -> List[str]:
        return [child.id for child in self.children]

    def score_breakdown(self) -> Dict[str, int]:
        return {
            "date_score": self.date_score,
            "amount_score": self.amount_score,
            "order_group_score": self.order_group_score,
            "total": self.total_score,
        }


def _to_datetime(value: DateLike) -> datetime:
    """Normalize to a naive UTC datetime; a bare date means midnight."""
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            return value.astimezone(timezone.utc).replace(tzinfo=None)
        return value
    return datetime.combine(value, time.min)


def _to_decimal(value: AmountLike) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def _round_half_up(value: Decimal) -> int:
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _days_between(first: DateLike, second: DateLike) -> Decimal:
    delta = _to_datetime(first) - _to_datetime(second)
    return Decimal(str(abs(delta.total_seconds()))) / Decimal(SECONDS_PER_DAY)


def is_within_date_window(parent_date: DateLike, child_date: DateLike, window_days: int) -> bool:
    """True if the two dates are at most ``window_days`` apart, in either direction."""
    return _days_between(parent_date, child_date) <= Decimal(window_days)


def validate_amount_match(
    parent_amount: AmountLike,
    children_total: AmountLike,
    tolerance: AmountLike,
) -> bool:
    """
    Check that the children add up to the parent within an absolute dollar tolerance.

    A fixed tolerance absorbs tax and shipping rounding without growing with
    the size of the order.
    """
    parent_amount = _to_decimal(parent_amount)
    children_total = _to_decimal(children_total)

    if parent_amount == 0 and children_total == 0:
        return True
    if parent_amount == 0 or children_total == 0:
        return False

    return abs(parent_amount - children_total) <= _to_decimal(tolerance)


def calculate_amount_score(
    parent_amount: AmountLike,
    children_total: AmountLike,
    tolerance: AmountLike,
) -> int:
    """Score 0-50: full marks for an exact total, linear decay to 0 at the tolerance."""
    parent_amount = _to_decimal(parent_amount)
    tolerance = _to_decimal(tolerance)

    if parent_amount == 0:
        return 0

    difference = abs(parent_amount - _to_decimal(children_total))
    if difference > tolerance:
        return 0
    if tolerance == 0:
        return MAX_AMOUNT_SCORE

    return _round_half_up(MAX_AMOUNT_SCORE * (1 - difference / tolerance))


def calculate_date_score(parent_date: DateLike, child_date: DateLike, window_days: int) -> int:
    """
    Score 0-40 for date proximity.

    The 40 points are spread across the whole window so a match near the edge
    still earns something: 30-day window loses ~1.33/day, 5-day window 8/day.
    """
    if not is_within_date_window(parent_date, child_date, window_days):
        return 0

    diff_days = _days_between(parent_date, child_date)
    if window_days == 0:
        return MAX_DATE_SCORE

    decay_rate = Decimal(MAX_DATE_SCORE) / Decimal(window_days)
    score = max(Decimal(0), MAX_DATE_SCORE - diff_days * decay_rate)
    return _round_half_up(score)


def calculate_order_group_score(transactions: Sequence[Any]) -> int:
    # Reserved. Export line items always carry an order id, so a grouping bonus adds nothing.
    return 0


def get_confidence_level(score: int, config: MatchingConfig) -> ConfidenceLevel:
    if score >= config.auto_link_threshold:
        return ConfidenceLevel.HIGH
    if score >= config.suggest_threshold:
        return ConfidenceLevel.MEDIUM
    return ConfidenceLevel.UNMATCHED


def group_transactions_by_order(transactions: Iterable[Any]) -> List[TransactionGroup]:
    """
    Group line items by order id, falling back to the calendar date.

    Items of one order stay together even when they shipped on different days.
    Each group keeps its earliest date; groups come back oldest first.
    """
    groups: Dict[str, TransactionGroup] = {}

    for transaction in transactions:
        txn_date = _to_datetime(transaction.date)
        group_key = transaction.order_id or txn_date.date().isoformat()

        group = groups.get(group_key)
        if group is None:
            group = TransactionGroup(date=txn_date)
            groups[group_key] = group

        group.transactions.append(transaction)
        group.total_amount += _to_decimal(transaction.amount)
        if txn_date < group.date:
            group.date = txn_date

    return sorted(groups.values(), key=lambda g: g.date)


def calculate_match_confidence(
    parent: Any,
    children: Sequence[Any],
    config: MatchingConfig,
) -> MatchCandidate:
    """
    Score one parent against one group of children.

    A date score of 0 makes the whole candidate unmatched with every score 0,
    including children exactly at the window edge or close enough to round to 0.
    """
    children = list(children)
    children_total = sum((_to_decimal(child.amount) for child in children), Decimal("0"))
    earliest_child_date = min(_to_datetime(child.date) for child in children)

    date_score = calculate_date_score(parent.date, earliest_child_date, config.date_window)

    if date_score == 0:
        return MatchCandidate(
            parent=parent,
            children=children,
            date_score=0,
            amount_score=0,
            total_score=0,
            confidence_level=ConfidenceLevel.UNMATCHED,
        )

    amount_score = calculate_amount_score(parent.amount, children_total, config.amount_tolerance)
    order_group_score = calculate_order_group_score(children)
    total_score = date_score + amount_score + order_group_score

    return MatchCandidate(
        parent=parent,
        children=children,
        date_score=date_score,
        amount_score=amount_score,
        order_group_score=order_group_score,
        total_score=total_score,
        confidence_level=get_confidence_level(total_score, config),
    )


def matches_merchant(transaction: Any, keywords: Iterable[str]) -> bool:
    merchant = (transaction.merchant or "").lower()
    return any(keyword.lower() in merchant for keyword in keywords)


def find_matching_transactions(
    parents: Sequence[Any],
    children: Sequence[Any],
    config: MatchingConfig,
) -> List[MatchCandidate]:
    """
    Pair every eligible parent with every order group inside its date window.

    Greedy per parent: the same group may show up under several parents.
    Callers that commit links must deduplicate (see ``select_non_overlapping``).
    Returns candidates at or above the suggest threshold, best first.
    """
    logger.debug(
        "Matching %d parents against %d children (window=%s, tolerance=%s, suggest=%s)",
        len(parents), len(children), config.date_window, config.amount_tolerance,
        config.suggest_threshold,
    )

    matches: List[MatchCandidate] = []
    unlinked_children = [child for child in children if child.parent_transaction_id is None]

    eligible_parents = list(parents)
    if config.enable_merchant_matching:
        eligible_parents = [p for p in eligible_parents if matches_merchant(p, config.merchant_keywords)]

    for parent in eligible_parents:
        if parent.parent_transaction_id is not None:
            logger.debug("Skipping parent %s: already linked as a child", parent.id)
            continue

        candidates = [
            child for child in unlinked_children
            if child.id != parent.id
            and is_within_date_window(parent.date, child.date, config.date_window)
        ]
        if not candidates:
            logger.debug("No children within %s days of parent %s", config.date_window, parent.id)
            continue

        for group in group_transactions_by_order(candidates):
            candidate = calculate_match_confidence(parent, group.transactions, config)
            logger.debug(
                "Parent %s (%s) vs group of %d totalling %s: date=%d amount=%d total=%d",
                parent.id, parent.amount, len(group.transactions), group.total_amount,
                candidate.date_score, candidate.amount_score, candidate.total_score,
            )
            if candidate.total_score >= config.suggest_threshold:
                matches.append(candidate)

    matches.sort(key=lambda m: m.total_score, reverse=True)
    logger.info("Matching produced %d candidates", len(matches))
    return matches


def select_non_overlapping(candidates: Sequence[MatchCandidate]) -> List[MatchCandidate]:
    """Accept candidates best-first, dropping any that reuse an already claimed child."""
    claimed: set = set()
    accepted: List[MatchCandidate] = []

    for candidate in sorted(candidates, key=lambda m: m.total_score, reverse=True):
        child_ids = set(candidate.child_ids)
        if child_ids & claimed:
            continue
        claimed |= child_ids
        accepted.append(candidate)

    return accepted
