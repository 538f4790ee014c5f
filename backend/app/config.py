"""
Engine configuration — single source of truth for traversal bounds, rate
limits and rounding.

Import from here in services and routes rather than hardcoding values.
"""
from __future__ import annotations

import os

# ── Traversal guards ──────────────────────────────────────────────────────────
# Maximum recursion depth for BOM expansion, product costing and the hierarchy
# view. Root product sits at depth 0.
MAX_DEPENDENCY_DEPTH: int = int(os.getenv("QUOTE_MAX_DEPTH", "20"))


# ── Financial limits ──────────────────────────────────────────────────────────
# Reverse markup divides by (1 - pct/100); at or above this the price inverts.
RATE_CEILING_PCT: float = 100.0

# Rounding applied only when results are serialised for display
MONEY_DECIMALS: int = 2
QUANTITY_DECIMALS: int = 4


# ── Orders ────────────────────────────────────────────────────────────────────
ORDER_STATUSES: list[str] = ["pending", "in_production", "finished", "cancelled"]
DEFAULT_ORDER_STATUS: str = "pending"

PRODUCT_KINDS: list[str] = ["simple", "computed"]
DEFAULT_PRODUCT_KIND: str = "computed"


# ── Logging ───────────────────────────────────────────────────────────────────
LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
LOG_JSON: bool = os.getenv("LOG_FORMAT", "json").lower() != "text"
