"""
Quote Engine facade — the functions the route layer calls.

Every function takes a GraphStore snapshot, holds no state between calls and
is safe to run concurrently for independent orders.
"""
import logging
from dataclasses import dataclass
from typing import Dict, List

from app.config import MAX_DEPENDENCY_DEPTH
from app.services import finance_engine
from app.services.bom_engine import BOMEngine, ResolutionResult
from app.services.costing_engine import CostBreakdown, CostingEngine, ProductCost
from app.services.dependency_guard import would_create_cycle
from app.services.engine_errors import QuoteEngineError
from app.services.finance_engine import QuoteBreakdown, TaxChainResult, apply_tax_chain
from app.services.graph_store import GraphStore
from app.services.hierarchy_engine import HierarchyEngine, HierarchyResult

logger = logging.getLogger("quoter-api.engine")


def resolve_materials(
    store: GraphStore, product_id: str, quantity: float, max_depth: int = MAX_DEPENDENCY_DEPTH
) -> ResolutionResult:
    return BOMEngine(store, max_depth=max_depth).resolve(product_id, quantity)


def check_cycle(store: GraphStore, parent_id: str, child_id: str) -> bool:
    return would_create_cycle(store, parent_id, child_id)


def aggregate_costs(
    store: GraphStore, order_id: str, max_depth: int = MAX_DEPENDENCY_DEPTH
) -> CostBreakdown:
    return CostingEngine(store, max_depth=max_depth).aggregate_costs(order_id)


def cascade_quote(
    costs: CostBreakdown,
    has_freight: bool = False,
    freight_amount: float = 0.0,
    margin_pct: float = 0.0,
    tax_pct: float = 0.0,
) -> QuoteBreakdown:
    return finance_engine.cascade_quote(
        materials_cost=costs.materials.subtotal,
        processes_cost=costs.processes.subtotal,
        labor_cost=costs.labor.subtotal,
        extras_cost=costs.extras.subtotal,
        has_freight=has_freight,
        freight_amount=freight_amount,
        margin_pct=margin_pct,
        tax_pct=tax_pct,
    )


def build_hierarchy(store: GraphStore, max_depth: int = MAX_DEPENDENCY_DEPTH) -> HierarchyResult:
    return HierarchyEngine(store, max_depth=max_depth).build_forest()


def cost_product(
    store: GraphStore, product_id: str, max_depth: int = MAX_DEPENDENCY_DEPTH
) -> ProductCost:
    return CostingEngine(store, max_depth=max_depth).cost_product(product_id)


@dataclass
class OrderQuote:
    costs: CostBreakdown
    quote: QuoteBreakdown
    tax_chain: TaxChainResult

    @property
    def errors(self) -> List[QuoteEngineError]:
        return self.costs.errors

    @property
    def is_partial(self) -> bool:
        return bool(self.costs.errors)

    def to_dict(self) -> Dict:
        return {
            "order_id": self.costs.order_id,
            "costs": self.costs.to_dict(),
            "quote": self.quote.to_dict(),
            "tax_chain": self.tax_chain.to_dict(),
            "is_partial": self.is_partial,
            "warnings": [e.to_dict() for e in self.errors],
        }


def generate_quote(
    store: GraphStore, order_id: str, max_depth: int = MAX_DEPENDENCY_DEPTH
) -> OrderQuote:
    """
    Full quote for one order: aggregation, then the cascade with the order's
    own freight, margin and tax settings, then the order's named taxes applied
    one after another on the cascaded total.

    Raises:
        RecordNotFoundError: unknown order.
        InvalidRateError: order margin, tax or a named tax at or above 100 %.
    """
    costs = aggregate_costs(store, order_id, max_depth=max_depth)
    order = store.get_order(order_id)
    quote = cascade_quote(
        costs,
        has_freight=order.has_freight,
        freight_amount=order.freight_amount,
        margin_pct=order.margin_pct,
        tax_pct=order.tax_pct,
    )
    tax_chain = apply_tax_chain(
        quote.final_total, [(t.name, t.pct) for t in store.order_taxes(order_id)]
    )
    logger.info(
        f"Quote for order {order_id}: subtotal {quote.subtotal:.2f}, final {tax_chain.final_total:.2f}"
        + (f" ({len(costs.errors)} warning(s))" if costs.errors else ""),
        extra={"order_id": order_id},
    )
    return OrderQuote(costs=costs, quote=quote, tax_chain=tax_chain)
