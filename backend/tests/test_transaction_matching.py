"""Tests for the matching engine that pairs order items with card charges."""

import pytest
from datetime import date, datetime, timedelta
from decimal import Decimal

from app.models.transaction import Transaction
from app.schemas.linking import ConfidenceLevel
from app.services.transaction_matching import (
    MatchingConfig,
    calculate_amount_score,
    calculate_date_score,
    calculate_match_confidence,
    find_matching_transactions,
    group_transactions_by_order,
    is_within_date_window,
    select_non_overlapping,
    validate_amount_match,
)


CONFIG = MatchingConfig(
    date_window=5,
    amount_tolerance=Decimal("3.00"),
    suggest_threshold=70,
    auto_link_threshold=90,
)


def txn(id, amount, when, merchant="Amazon", order_id=None, parent_transaction_id=None):
    return Transaction(
        id=id,
        user_id="user-123",
        date=when,
        amount=Decimal(str(amount)),
        merchant=merchant,
        description="",
        order_id=order_id,
        parent_transaction_id=parent_transaction_id,
    )


def order_items(when=datetime(2025, 10, 18), order_id="111-0000001"):
    amounts = ["24.99", "8.99", "18.99", "4.24", "5.00"]
    return [txn(f"child-{i}", amount, when, order_id=order_id) for i, amount in enumerate(amounts)]


class TestIsWithinDateWindow:
    """Test the date window predicate."""

    def test_within_window(self):
        """Two days apart fits a five day window."""
        assert is_within_date_window(datetime(2025, 10, 20), datetime(2025, 10, 18), 5) is True

    def test_outside_window(self):
        """Nineteen days apart does not fit a five day window."""
        assert is_within_date_window(datetime(2025, 10, 20), datetime(2025, 10, 1), 5) is False

    @pytest.mark.parametrize("window", [0, 1, 5, 30])
    def test_same_day_always_matches(self, window):
        """Identical timestamps match for any window."""
        when = datetime(2025, 10, 20, 14, 30)
        assert is_within_date_window(when, when, window) is True

    def test_boundary_is_inclusive(self):
        """Exactly window_days apart still matches."""
        assert is_within_date_window(datetime(2025, 10, 20), datetime(2025, 10, 15), 5) is True

    def test_just_past_boundary(self):
        """One second past the window does not match."""
        child = datetime(2025, 10, 15) - timedelta(seconds=1)
        assert is_within_date_window(datetime(2025, 10, 20), child, 5) is False

    def test_symmetric(self):
        """Child after parent works the same as child before parent."""
        parent = datetime(2025, 10, 20)
        assert is_within_date_window(parent, datetime(2025, 10, 23), 3) is True
        assert is_within_date_window(parent, datetime(2025, 10, 17), 3) is True
        assert is_within_date_window(parent, datetime(2025, 10, 24), 3) is False

    def test_accepts_plain_dates(self):
        """A bare date is treated as midnight."""
        assert is_within_date_window(date(2025, 10, 20), datetime(2025, 10, 18), 2) is True


class TestValidateAmountMatch:
    """Test amount reconciliation within an absolute tolerance."""

    def test_exact_match(self):
        assert validate_amount_match(Decimal("52.97"), Decimal("52.97"), Decimal("3.00")) is True

    def test_within_tolerance(self):
        """Tax and shipping rounding stays inside a $3 tolerance."""
        assert validate_amount_match(Decimal("62.97"), Decimal("62.21"), Decimal("3.00")) is True

    def test_outside_tolerance(self):
        """A 7.97 gap exceeds a 3.00 tolerance."""
        assert validate_amount_match(Decimal("82.97"), Decimal("75.00"), Decimal("3.00")) is False

    def test_tolerance_is_not_a_percentage(self):
        """Large orders get the same dollar tolerance as small ones."""
        assert validate_amount_match(Decimal("1000.00"), Decimal("996.00"), Decimal("3.00")) is False

    @pytest.mark.parametrize("tolerance", ["0", "0.50", "3.00"])
    def test_both_zero(self, tolerance):
        assert validate_amount_match(Decimal("0"), Decimal("0"), Decimal(tolerance)) is True

    def test_one_side_zero(self):
        assert validate_amount_match(Decimal("0"), Decimal("1.00"), Decimal("3.00")) is False
        assert validate_amount_match(Decimal("1.00"), Decimal("0"), Decimal("3.00")) is False


class TestCalculateAmountScore:
    """Test the 0-50 amount score."""

    def test_perfect_match_full_score(self):
        assert calculate_amount_score(Decimal("62.21"), Decimal("62.21"), Decimal("3.00")) == 50

    def test_linear_decay(self):
        """0.28 off with a $3 tolerance: 50 * (1 - 0.28/3) = 45.3."""
        assert calculate_amount_score(Decimal("62.49"), Decimal("62.21"), Decimal("3.00")) == 45

    def test_scenario_difference(self):
        """0.76 off with a $3 tolerance: 50 * (1 - 0.76/3) = 37.3."""
        assert calculate_amount_score(Decimal("62.97"), Decimal("62.21"), Decimal("3.00")) == 37

    def test_zero_at_tolerance(self):
        assert calculate_amount_score(Decimal("65.21"), Decimal("62.21"), Decimal("3.00")) == 0

    def test_zero_beyond_tolerance(self):
        assert calculate_amount_score(Decimal("82.97"), Decimal("75.00"), Decimal("3.00")) == 0

    def test_monotonic_in_difference(self):
        """Score never increases as the gap grows."""
        scores = [
            calculate_amount_score(Decimal("100.00") + Decimal(cents) / 100, Decimal("100.00"), Decimal("3.00"))
            for cents in range(0, 400, 10)
        ]
        assert scores == sorted(scores, reverse=True)
        assert scores[0] == 50
        assert scores[-1] == 0

    def test_zero_parent(self):
        assert calculate_amount_score(Decimal("0"), Decimal("0"), Decimal("3.00")) == 0

    def test_zero_tolerance(self):
        assert calculate_amount_score(Decimal("10.00"), Decimal("10.00"), Decimal("0")) == 50
        assert calculate_amount_score(Decimal("10.00"), Decimal("10.01"), Decimal("0")) == 0


class TestCalculateDateScore:
    """Test the 0-40 date score with window-relative decay."""

    def test_same_day(self):
        assert calculate_date_score(datetime(2025, 10, 18), datetime(2025, 10, 18), 5) == 40

    def test_short_window(self):
        """2 days into a 5 day window: 40 - 2 * 8 = 24."""
        assert calculate_date_score(datetime(2025, 10, 20), datetime(2025, 10, 18), 5) == 24

    def test_long_window(self):
        """2 days into a 30 day window: 40 - 2 * 1.33 = 37.3."""
        assert calculate_date_score(datetime(2025, 10, 20), datetime(2025, 10, 18), 30) == 37

    def test_outside_window(self):
        assert calculate_date_score(datetime(2025, 10, 20), datetime(2025, 10, 1), 5) == 0


class TestGroupTransactionsByOrder:
    """Test grouping of line items into orders."""

    def test_single_order_single_group(self):
        """All items of one order become one group with the summed amount."""
        groups = group_transactions_by_order(order_items())
        assert len(groups) == 1
        assert groups[0].total_amount == Decimal("62.21")
        assert len(groups[0].transactions) == 5

    def test_total_independent_of_order(self):
        items = order_items()
        forward = group_transactions_by_order(items)
        backward = group_transactions_by_order(list(reversed(items)))
        assert forward[0].total_amount == backward[0].total_amount

    def test_order_id_beats_date(self):
        """Items of one order that shipped on different days stay together."""
        items = [
            txn("a", "10.00", datetime(2025, 10, 17), order_id="111-X"),
            txn("b", "5.00", datetime(2025, 10, 19), order_id="111-X"),
        ]
        groups = group_transactions_by_order(items)
        assert len(groups) == 1
        assert groups[0].date == datetime(2025, 10, 17)

    def test_falls_back_to_calendar_date(self):
        """Without an order id, items on the same day group together regardless of time."""
        items = [
            txn("a", "10.00", datetime(2025, 10, 17, 9, 0)),
            txn("b", "5.00", datetime(2025, 10, 17, 18, 30)),
            txn("c", "7.00", datetime(2025, 10, 19)),
        ]
        groups = group_transactions_by_order(items)
        assert len(groups) == 2
        assert groups[0].total_amount == Decimal("15.00")
        assert groups[0].date == datetime(2025, 10, 17, 9, 0)

    def test_groups_sorted_by_date(self):
        items = [
            txn("late", "1.00", datetime(2025, 10, 19), order_id="B"),
            txn("early", "1.00", datetime(2025, 10, 17), order_id="A"),
        ]
        groups = group_transactions_by_order(items)
        assert [g.date for g in groups] == [datetime(2025, 10, 17), datetime(2025, 10, 19)]

    def test_singleton_group(self):
        groups = group_transactions_by_order([txn("only", "9.99", datetime(2025, 10, 17))])
        assert len(groups) == 1
        assert groups[0].total_amount == Decimal("9.99")


class TestCalculateMatchConfidence:
    """Test combined scoring of a parent against a group."""

    def test_exact_same_day_is_high(self):
        parent = txn("parent-1", "62.21", datetime(2025, 10, 18), merchant="AMAZON.COM*M12AB34CD")
        result = calculate_match_confidence(parent, order_items(), CONFIG)
        assert result.date_score == 40
        assert result.amount_score == 50
        assert result.order_group_score == 0
        assert result.total_score == 90
        assert result.confidence_level == ConfidenceLevel.HIGH

    def test_closer_date_scores_higher(self):
        one_day = calculate_match_confidence(
            txn("p", "62.21", datetime(2025, 10, 19)), order_items(), CONFIG
        )
        three_days = calculate_match_confidence(
            txn("p", "62.21", datetime(2025, 10, 21)), order_items(), CONFIG
        )
        assert one_day.date_score > three_days.date_score

    def test_earliest_child_date_is_used(self):
        children = [
            txn("a", "10.00", datetime(2025, 10, 15), order_id="X"),
            txn("b", "10.00", datetime(2025, 10, 20), order_id="X"),
        ]
        result = calculate_match_confidence(txn("p", "20.00", datetime(2025, 10, 20)), children, CONFIG)
        assert result.date_score == 0
        assert result.confidence_level == ConfidenceLevel.UNMATCHED

    def test_out_of_window_never_rescued_by_amount(self):
        parent = txn("p", "62.21", datetime(2025, 11, 6))
        result = calculate_match_confidence(parent, order_items(), CONFIG)
        assert result.total_score == 0
        assert result.amount_score == 0
        assert result.confidence_level == ConfidenceLevel.UNMATCHED

    def test_window_edge_is_unmatched(self):
        """Exactly window_days apart scores 0 on date, so a perfect amount counts for nothing."""
        parent = txn("p", "62.21", datetime(2025, 10, 23))
        result = calculate_match_confidence(parent, order_items(), CONFIG)
        assert is_within_date_window(parent.date, datetime(2025, 10, 18), CONFIG.date_window) is True
        assert (result.date_score, result.amount_score, result.total_score) == (0, 0, 0)
        assert result.confidence_level == ConfidenceLevel.UNMATCHED

    def test_medium_tier(self):
        """One day off with an exact amount: 32 + 50 = 82."""
        result = calculate_match_confidence(txn("p", "62.21", datetime(2025, 10, 19)), order_items(), CONFIG)
        assert result.total_score == 82
        assert result.confidence_level == ConfidenceLevel.MEDIUM

    def test_tiers_follow_config(self):
        lenient = MatchingConfig(date_window=5, suggest_threshold=50, auto_link_threshold=80)
        result = calculate_match_confidence(txn("p", "62.21", datetime(2025, 10, 19)), order_items(), lenient)
        assert result.confidence_level == ConfidenceLevel.HIGH


class TestFindMatchingTransactions:
    """Test the per-parent matching run."""

    def test_full_order_matches_charge(self):
        """Three products plus tax and shipping reconcile against one charge."""
        parent = txn("parent-1", "62.21", datetime(2025, 10, 18), merchant="AMAZON.COM*M12AB34CD")
        matches = find_matching_transactions([parent], order_items(), CONFIG)

        assert len(matches) == 1
        assert matches[0].parent.id == "parent-1"
        assert len(matches[0].children) == 5
        assert matches[0].total_score >= 90

    def test_rounded_charge_two_days_later_falls_below_threshold(self):
        """24 date points + 37 amount points = 61, under the suggest threshold."""
        parent = txn("parent-1", "62.97", datetime(2025, 10, 20), merchant="AMAZON.COM*M12AB34CD")
        candidate = calculate_match_confidence(parent, order_items(), CONFIG)
        assert (candidate.date_score, candidate.amount_score, candidate.total_score) == (24, 37, 61)
        assert find_matching_transactions([parent], order_items(), CONFIG) == []

    def test_far_apart_returns_nothing(self):
        parent = txn("parent-1", "62.21", datetime(2025, 11, 6), merchant="AMAZON.COM*M12AB34CD")
        assert find_matching_transactions([parent], order_items(), CONFIG) == []

    def test_filters_parents_by_merchant(self):
        parent = txn("parent-1", "62.21", datetime(2025, 10, 18), merchant="TARGET STORE")
        assert find_matching_transactions([parent], order_items(), CONFIG) == []

    def test_merchant_matching_disabled(self):
        parent = txn("parent-1", "62.21", datetime(2025, 10, 18), merchant="TARGET STORE")
        config = MatchingConfig(date_window=5, enable_merchant_matching=False)
        assert len(find_matching_transactions([parent], order_items(), config)) == 1

    def test_merchant_keywords_case_insensitive(self):
        parent = txn("parent-1", "62.21", datetime(2025, 10, 18), merchant="amzn mktp us*ab12")
        assert len(find_matching_transactions([parent], order_items(), CONFIG)) == 1

    def test_skips_linked_children(self):
        parent = txn("parent-1", "62.21", datetime(2025, 10, 18), merchant="AMAZON.COM*M12AB34CD")
        children = order_items()
        children[0].parent_transaction_id = "other-parent"

        matches = find_matching_transactions([parent], children, CONFIG)
        matched_ids = {c.id for m in matches for c in m.children}
        assert "child-0" not in matched_ids

    def test_skips_parents_that_are_children(self):
        parent = txn(
            "parent-1", "62.21", datetime(2025, 10, 18),
            merchant="AMAZON.COM*M12AB34CD", parent_transaction_id="someone-else",
        )
        assert find_matching_transactions([parent], order_items(), CONFIG) == []

    def test_never_returns_below_threshold(self):
        parents = [
            txn(f"p{day}", "62.21", datetime(2025, 10, 18) + timedelta(days=day), merchant="AMAZON.COM*X1")
            for day in range(6)
        ]
        matches = find_matching_transactions(parents, order_items(), CONFIG)
        assert matches
        assert all(m.total_score >= CONFIG.suggest_threshold for m in matches)

    def test_sorted_best_first(self):
        exact = txn("exact", "62.21", datetime(2025, 10, 18), merchant="AMAZON.COM*A1")
        day_late = txn("late", "62.21", datetime(2025, 10, 19), merchant="AMAZON.COM*B2")
        matches = find_matching_transactions([day_late, exact], order_items(), CONFIG)

        assert [m.parent.id for m in matches] == ["exact", "late"]
        assert [m.total_score for m in matches] == [90, 82]

    def test_empty_inputs(self):
        assert find_matching_transactions([], [], CONFIG) == []


class TestSelectNonOverlapping:
    """Test greedy deduplication of children across parents."""

    def test_keeps_best_claim_per_child(self):
        exact = txn("exact", "62.21", datetime(2025, 10, 18), merchant="AMAZON.COM*A1")
        day_late = txn("late", "62.21", datetime(2025, 10, 19), merchant="AMAZON.COM*B2")
        matches = find_matching_transactions([day_late, exact], order_items(), CONFIG)

        accepted = select_non_overlapping(matches)
        assert [m.parent.id for m in accepted] == ["exact"]

    def test_disjoint_groups_all_kept(self):
        children = order_items(order_id="A") + [
            txn("other", "15.00", datetime(2025, 10, 18), order_id="B"),
        ]
        first = txn("first", "62.21", datetime(2025, 10, 18), merchant="AMAZON.COM*A1")
        second = txn("second", "15.00", datetime(2025, 10, 18), merchant="AMAZON.COM*B2")
        matches = find_matching_transactions([first, second], children, CONFIG)

        assert len(select_non_overlapping(matches)) == 2
