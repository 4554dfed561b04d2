"""Tests for the marketplace charge filter."""

import pytest

from app.services.merchant_filter import is_linkable_marketplace_charge


class TestIsLinkableMarketplaceCharge:
    """Which card charges can be linked to order items."""

    @pytest.mark.parametrize("merchant", [
        "AMAZON MKTPL*ZH3YL9K42",
        "Amazon.com*NU7SY9GM0",
        "AMZN MKTP US*2K4LM9",
        "  amazon.com*abc123  ",
    ])
    def test_marketplace_charges_are_linkable(self, merchant):
        assert is_linkable_marketplace_charge(merchant) is True

    @pytest.mark.parametrize("merchant", [
        "Amazon Prime*1A2B3C",
        "Prime Video*XY12",
        "Amazon Grocery Subscri",
        "Amazon Music*AB12",
        "AMZN Digital*1234",
        "AWS EMEA",
        "Amazon Web Services*AB",
    ])
    def test_subscriptions_and_services_are_not(self, merchant):
        assert is_linkable_marketplace_charge(merchant) is False

    def test_bare_amazon_is_a_line_item(self):
        """The order export writes exactly "Amazon" on every line item."""
        assert is_linkable_marketplace_charge("Amazon") is False
        assert is_linkable_marketplace_charge(" AMAZON ") is False

    def test_requires_code_after_asterisk(self):
        assert is_linkable_marketplace_charge("Amazon.com") is False
        assert is_linkable_marketplace_charge("AMAZON MKTPL*") is False

    def test_other_merchants(self):
        assert is_linkable_marketplace_charge("TARGET.COM*12345") is False

    @pytest.mark.parametrize("merchant", [None, "", "   "])
    def test_empty(self, merchant):
        assert is_linkable_marketplace_charge(merchant) is False
