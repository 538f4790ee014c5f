"""
BOM Explosion Engine — expands a product's dependency graph into aggregated
base-material quantities.

Depth-first walk from the root: each edge multiplies the caller's quantity by
its quantity-per-unit. Base materials accumulate into the result (summed when
reached through several assemblies); everything else is expanded further.

Shared subtrees are NOT memoised. The same base material needed via two
intermediate assemblies must be counted twice, once per path.

Guards: a child already on the current path (cycle in stale data) or a depth
beyond MAX_DEPENDENCY_DEPTH aborts only that branch and is recorded on the
result; the rest of the graph still resolves.
"""
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Tuple

from app.config import MAX_DEPENDENCY_DEPTH, MONEY_DECIMALS, QUANTITY_DECIMALS
from app.services.engine_errors import (
    DepthExceededError,
    MissingReferenceError,
    QuoteEngineError,
    RecordNotFoundError,
    StructuralError,
)
from app.services.graph_store import GraphStore

logger = logging.getLogger("quoter-bom")


@dataclass
class ResolutionResult:
    product_id: str
    quantity: float
    quantities: Dict[str, float] = field(default_factory=dict)   # base id → total qty
    errors: List[QuoteEngineError] = field(default_factory=list)

    @property
    def is_partial(self) -> bool:
        return bool(self.errors)

    def to_dict(self) -> Dict:
        return {
            "product_id": self.product_id,
            "quantity": self.quantity,
            "materials": {k: round(v, QUANTITY_DECIMALS) for k, v in self.quantities.items()},
            "errors": [e.to_dict() for e in self.errors],
        }


@dataclass
class MaterialRequirement:
    product_id: str
    name: str
    quantity: float
    unit_price: float
    subtotal: float
    in_stock: bool

    def to_dict(self) -> Dict:
        return {
            "product_id": self.product_id,
            "name": self.name,
            "quantity": round(self.quantity, QUANTITY_DECIMALS),
            "unit_price": self.unit_price,
            "subtotal": round(self.subtotal, MONEY_DECIMALS),
            "in_stock": self.in_stock,
        }


class BOMEngine:

    def __init__(self, store: GraphStore, max_depth: int = MAX_DEPENDENCY_DEPTH) -> None:
        self.store = store
        self.max_depth = max_depth

    def resolve(self, product_id: str, quantity: float) -> ResolutionResult:
        """
        Resolve ``quantity`` units of ``product_id`` into base materials.

        Raises:
            RecordNotFoundError: the root product does not exist.

        Returns:
            ResolutionResult with the aggregated map and any non-fatal errors.
        """
        if self.store.get_product(product_id) is None:
            raise RecordNotFoundError(f"Product {product_id} not found", product_id=product_id)

        result = ResolutionResult(product_id=product_id, quantity=float(quantity))
        self._expand(product_id, float(quantity), 0, (), result)

        if result.errors:
            logger.warning(
                f"Partial BOM for product {product_id}: {len(result.errors)} branch(es) skipped",
                extra={"product_id": product_id},
            )
        return result

    def _expand(
        self,
        product_id: str,
        quantity: float,
        depth: int,
        path: Tuple[str, ...],
        result: ResolutionResult,
    ) -> None:
        if depth > self.max_depth:
            self._record(result, DepthExceededError(
                f"Recursion limit {self.max_depth} reached at product {product_id}",
                product_id=product_id, depth=depth, path=path,
            ))
            return

        path = path + (product_id,)
        for edge in self.store.edges_from(product_id):
            child_id = edge.child_id
            child_qty = quantity * edge.quantity_per_unit

            if child_id in path:
                self._record(result, StructuralError(
                    f"Dependency cycle: {' -> '.join(path)} -> {child_id}",
                    product_id=child_id, path=path,
                ))
                continue

            child = self.store.get_product(child_id)
            if child is None:
                self._record(result, MissingReferenceError(
                    f"Dependency {product_id} -> {child_id} points at a missing product",
                    parent_id=product_id, product_id=child_id,
                ))
                continue

            if child.is_base_material:
                result.quantities[child_id] = result.quantities.get(child_id, 0.0) + child_qty
            else:
                self._expand(child_id, child_qty, depth + 1, path, result)

    @staticmethod
    def _record(result: ResolutionResult, error: QuoteEngineError) -> None:
        logger.warning(error.message)
        result.errors.append(error)

    def material_requirements(self, resolution: ResolutionResult) -> List[MaterialRequirement]:
        """Price the resolved map and flag stock sufficiency, sorted by name."""
        lines: List[MaterialRequirement] = []
        for material_id, qty in resolution.quantities.items():
            product = self.store.get_product(material_id)
            if product is None:
                # Resolver only accumulates products it could read; the snapshot is immutable.
                continue
            lines.append(MaterialRequirement(
                product_id=material_id,
                name=product.name,
                quantity=qty,
                unit_price=product.unit_price,
                subtotal=product.unit_price * qty,
                in_stock=product.stock_quantity >= qty,
            ))
        return sorted(lines, key=lambda line: line.name.casefold())
