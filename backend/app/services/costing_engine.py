"""
CostingEngine — cost aggregation for orders and standalone products.

Covers:
  - Order cost aggregation into four subtotals (materials, processes,
    labor, extras), each with an itemised list sorted by name
  - Material pricing from the BOM resolver's aggregated base quantities
  - Standalone product costing (simple vs computed products) with the
    product's own reverse-markup margin

A line item whose joined record is gone (deleted process, labor type or
product) is skipped and reported; it never aborts the whole aggregation.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from app.config import MAX_DEPENDENCY_DEPTH, MONEY_DECIMALS, QUANTITY_DECIMALS
from app.services.bom_engine import BOMEngine
from app.services.engine_errors import (
    DepthExceededError,
    MissingReferenceError,
    QuoteEngineError,
    RecordNotFoundError,
    StructuralError,
)
from app.services.finance_engine import reverse_markup
from app.services.graph_store import (
    ExtraItem,
    GraphStore,
    LaborAssignment,
    OrderHeader,
    ProcessAssignment,
    ProductSummary,
)

logger = logging.getLogger("quoter-costing")


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------

@dataclass
class CostLine:
    ref_id: str
    name: str
    quantity: float          # units, or hours for labor
    unit_price: float
    subtotal: float
    unit: str = "un"         # un | h
    in_stock: Optional[bool] = None             # materials only
    estimated_minutes: Optional[float] = None   # processes only

    def to_dict(self) -> Dict:
        data = {
            "ref_id": self.ref_id,
            "name": self.name,
            "quantity": round(self.quantity, QUANTITY_DECIMALS),
            "unit": self.unit,
            "unit_price": self.unit_price,
            "subtotal": round(self.subtotal, MONEY_DECIMALS),
        }
        if self.in_stock is not None:
            data["in_stock"] = self.in_stock
        if self.estimated_minutes is not None:
            data["estimated_minutes"] = self.estimated_minutes
        return data


@dataclass
class CostSection:
    lines: List[CostLine] = field(default_factory=list)

    @property
    def subtotal(self) -> float:
        return sum(line.subtotal for line in self.lines)

    def to_dict(self) -> Dict:
        return {
            "items": [line.to_dict() for line in self.lines],
            "subtotal": round(self.subtotal, MONEY_DECIMALS),
        }


@dataclass
class CostBreakdown:
    order_id: str
    materials: CostSection
    processes: CostSection
    labor: CostSection
    extras: CostSection
    errors: List[QuoteEngineError] = field(default_factory=list)

    def to_dict(self) -> Dict:
        return {
            "order_id": self.order_id,
            "materials": self.materials.to_dict(),
            "processes": self.processes.to_dict(),
            "labor": self.labor.to_dict(),
            "extras": self.extras.to_dict(),
            "errors": [e.to_dict() for e in self.errors],
        }


@dataclass
class ProductCost:
    product_id: str
    name: str
    kind: str
    materials_cost: float
    processes_cost: float
    labor_cost: float
    margin_pct: float
    margin_value: float
    cost_with_margin: float
    errors: List[QuoteEngineError] = field(default_factory=list)

    @property
    def base_cost(self) -> float:
        return self.materials_cost + self.processes_cost + self.labor_cost

    def to_dict(self) -> Dict:
        return {
            "product_id": self.product_id,
            "name": self.name,
            "kind": self.kind,
            "materials_cost": round(self.materials_cost, MONEY_DECIMALS),
            "processes_cost": round(self.processes_cost, MONEY_DECIMALS),
            "labor_cost": round(self.labor_cost, MONEY_DECIMALS),
            "base_cost": round(self.base_cost, MONEY_DECIMALS),
            "margin_pct": self.margin_pct,
            "margin_value": round(self.margin_value, MONEY_DECIMALS),
            "cost_with_margin": round(self.cost_with_margin, MONEY_DECIMALS),
            "errors": [e.to_dict() for e in self.errors],
        }


def _by_name(lines: List[CostLine]) -> List[CostLine]:
    return sorted(lines, key=lambda line: line.name.casefold())


class CostingEngine:
    """
    Aggregates order and product costs over a graph snapshot.

    All monetary values are in the single implicit currency unit.
    """

    def __init__(self, store: GraphStore, max_depth: int = MAX_DEPENDENCY_DEPTH) -> None:
        self.store = store
        self.max_depth = max_depth
        self.bom = BOMEngine(store, max_depth=max_depth)

    # ------------------------------------------------------------------
    # 1. Order aggregation
    # ------------------------------------------------------------------

    def aggregate_costs(self, order_id: str) -> CostBreakdown:
        """
        Compute the four cost sections for an order.

        Raises:
            RecordNotFoundError: the order itself does not exist.
        """
        order = self.store.get_order(order_id)
        if order is None:
            raise RecordNotFoundError(f"Order {order_id} not found", order_id=order_id)

        errors: List[QuoteEngineError] = []
        breakdown = CostBreakdown(
            order_id=order_id,
            materials=self._materials_section(order, errors),
            processes=self.process_section(self.store.process_assignments(order_id), errors),
            labor=self.labor_section(self.store.labor_assignments(order_id), errors),
            extras=self.extras_section(self.store.extra_items(order_id), errors),
            errors=errors,
        )
        logger.info(
            f"Order {order_id} costs — materials {breakdown.materials.subtotal:.2f}, "
            f"processes {breakdown.processes.subtotal:.2f}, labor {breakdown.labor.subtotal:.2f}, "
            f"extras {breakdown.extras.subtotal:.2f}",
            extra={"order_id": order_id},
        )
        return breakdown

    def _materials_section(self, order: OrderHeader, errors: List[QuoteEngineError]) -> CostSection:
        try:
            resolution = self.bom.resolve(order.product_id, order.quantity)
        except RecordNotFoundError:
            err = MissingReferenceError(
                f"Order {order.id} references missing product {order.product_id}",
                order_id=order.id, product_id=order.product_id,
            )
            logger.warning(err.message, extra={"order_id": order.id})
            errors.append(err)
            return CostSection()

        errors.extend(resolution.errors)
        lines = [
            CostLine(
                ref_id=req.product_id,
                name=req.name,
                quantity=req.quantity,
                unit_price=req.unit_price,
                subtotal=req.subtotal,
                in_stock=req.in_stock,
            )
            for req in self.bom.material_requirements(resolution)
        ]
        return CostSection(lines=lines)

    def process_section(
        self, assignments: List[ProcessAssignment], errors: List[QuoteEngineError]
    ) -> CostSection:
        lines: List[CostLine] = []
        for a in assignments:
            if a.process is None:
                self._skip(errors, MissingReferenceError(
                    f"Process {a.process_id} no longer exists; line skipped", process_id=a.process_id,
                ))
                continue
            lines.append(CostLine(
                ref_id=a.process.id,
                name=a.process.name,
                quantity=a.quantity,
                unit_price=a.process.price_per_unit,
                subtotal=a.process.price_per_unit * a.quantity,
                estimated_minutes=a.process.estimated_minutes,
            ))
        return CostSection(lines=_by_name(lines))

    def labor_section(
        self, assignments: List[LaborAssignment], errors: List[QuoteEngineError]
    ) -> CostSection:
        lines: List[CostLine] = []
        for a in assignments:
            if a.labor is None:
                self._skip(errors, MissingReferenceError(
                    f"Labor type {a.labor_id} no longer exists; line skipped", labor_id=a.labor_id,
                ))
                continue
            lines.append(CostLine(
                ref_id=a.labor.id,
                name=a.labor.name,
                quantity=a.hours,
                unit_price=a.labor.price_per_hour,
                subtotal=a.labor.price_per_hour * a.hours,
                unit="h",
            ))
        return CostSection(lines=_by_name(lines))

    def extras_section(self, items: List[ExtraItem], errors: List[QuoteEngineError]) -> CostSection:
        lines: List[CostLine] = []
        for item in items:
            if item.value is None:
                self._skip(errors, MissingReferenceError(
                    f"Extra item '{item.name}' has no value; line skipped", extra_item_id=item.id,
                ))
                continue
            lines.append(CostLine(
                ref_id=item.id,
                name=item.name,
                quantity=1.0,
                unit_price=item.value,
                subtotal=item.value,
            ))
        return CostSection(lines=_by_name(lines))

    @staticmethod
    def _skip(errors: List[QuoteEngineError], error: QuoteEngineError) -> None:
        logger.warning(error.message)
        errors.append(error)

    # ------------------------------------------------------------------
    # 2. Standalone product cost
    # ------------------------------------------------------------------

    def cost_product(self, product_id: str) -> ProductCost:
        """
        Unit cost of one product, with its own margin applied.

        Simple products and base materials cost unit_price × required_quantity.
        Computed products cost Σ(child unit cost × edge qty) plus the product's
        own process and labor routings. A guarded branch contributes 0.

        Raises:
            RecordNotFoundError: unknown product.
            InvalidRateError: product margin at or above 100 %.
        """
        product = self.store.get_product(product_id)
        if product is None:
            raise RecordNotFoundError(f"Product {product_id} not found", product_id=product_id)

        errors: List[QuoteEngineError] = []
        materials, processes, labor = self._product_parts(product, 0, (), errors)
        base = materials + processes + labor
        cost_with_margin, margin_value = reverse_markup(base, product.margin_pct, "product margin")

        return ProductCost(
            product_id=product.id,
            name=product.name,
            kind=product.kind,
            materials_cost=materials,
            processes_cost=processes,
            labor_cost=labor,
            margin_pct=float(product.margin_pct or 0.0),
            margin_value=margin_value,
            cost_with_margin=cost_with_margin,
            errors=errors,
        )

    def _product_parts(
        self,
        product: ProductSummary,
        depth: int,
        path: Tuple[str, ...],
        errors: List[QuoteEngineError],
    ) -> Tuple[float, float, float]:
        if product.kind == "simple" or product.is_base_material:
            return product.unit_price * product.required_quantity, 0.0, 0.0

        path = path + (product.id,)
        materials = 0.0
        for edge in self.store.edges_from(product.id):
            if edge.child_id in path:
                self._skip(errors, StructuralError(
                    f"Dependency cycle: {' -> '.join(path)} -> {edge.child_id}",
                    product_id=edge.child_id, path=path,
                ))
                continue
            child = self.store.get_product(edge.child_id)
            if child is None:
                self._skip(errors, MissingReferenceError(
                    f"Dependency {product.id} -> {edge.child_id} points at a missing product",
                    parent_id=product.id, product_id=edge.child_id,
                ))
                continue
            if depth + 1 > self.max_depth:
                self._skip(errors, DepthExceededError(
                    f"Recursion limit {self.max_depth} reached at product {child.id}",
                    product_id=child.id, depth=depth + 1, path=path,
                ))
                continue
            materials += sum(self._product_parts(child, depth + 1, path, errors)) * edge.quantity_per_unit

        processes = self.process_section(self.store.product_processes(product.id), errors).subtotal
        labor = self.labor_section(self.store.product_labor(product.id), errors).subtotal
        return materials, processes, labor
