"""
Matching engine configuration constants.

Defines the sort allow-list and ordering options accepted by
candidate discovery.
"""

from p2pswap.config import settings

# Public sort keys -> Listing column name. camelCase keys are accepted
# for clients that send the JSON field names.
SORT_FIELDS: dict[str, str] = {
    "created_at": "created_at",
    "updated_at": "updated_at",
    "amount_from": "amount_from",
    "createdAt": "created_at",
    "updatedAt": "updated_at",
    "amountFrom": "amount_from",
}

SORT_ORDERS = ("asc", "desc")

DEFAULT_SORT_FIELD = "created_at"
DEFAULT_SORT_ORDER = "desc"

DEFAULT_PAGE_SIZE = settings.DEFAULT_PAGE_SIZE
MAX_PAGE_SIZE = 100
# Keeps (page - 1) * limit well inside a 32-bit OFFSET
MAX_PAGE = 10_000
