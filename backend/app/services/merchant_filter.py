"""
Filter for card charges that can be linked to marketplace order items.

Linkable:     AMAZON MKTPL*CODE123, Amazon.com*CODE123, AMZN MKTP US*CODE123
Not linkable: subscriptions and services (Prime, Music, AWS, grocery
subscriptions) and the bare "Amazon" merchant used by order line items.
"""

import re
from typing import Optional

NON_LINKABLE_PATTERNS = (
    "prime",
    "grocery subscri",
    "music",
    "digital",
    "aws",
    "web services",
)

MARKETPLACE_MARKERS = ("mktpl", "mktp", ".com")

_ASTERISK_CODE = re.compile(r"\*[a-z0-9]", re.IGNORECASE)


def is_linkable_marketplace_charge(merchant: Optional[str]) -> bool:
    """Return True if a card charge looks like a marketplace order payment."""
    if not merchant or not merchant.strip():
        return False

    normalized = merchant.strip().lower()

    # Exactly "Amazon" is an order line item, never a charge
    if normalized == "amazon":
        return False

    if any(pattern in normalized for pattern in NON_LINKABLE_PATTERNS):
        return False

    if "amazon" not in normalized and "amzn" not in normalized:
        return False

    has_marketplace_marker = any(marker in normalized for marker in MARKETPLACE_MARKERS)
    return has_marketplace_marker and bool(_ASTERISK_CODE.search(normalized))
