"""
Hierarchy Engine — nested product trees for display.

Roots are products that never appear as the child of any dependency edge.
Each edge becomes one nesting level carrying its quantity-per-unit. Unlike
the BOM resolver nothing is aggregated: the same sub-assembly shows up under
every parent that uses it.
"""
import logging
from collections import deque
from dataclasses import dataclass, field, replace
from typing import Dict, List, Optional, Set, Tuple

from app.config import MAX_DEPENDENCY_DEPTH
from app.services.engine_errors import (
    DepthExceededError,
    MissingReferenceError,
    QuoteEngineError,
    StructuralError,
)
from app.services.graph_store import GraphStore, ProductSummary

logger = logging.getLogger("quoter-hierarchy")


@dataclass
class ProductNode:
    id: str
    name: str
    description: Optional[str]
    unit_price: float
    stock_quantity: float
    is_base_material: bool
    quantity_per_unit: Optional[float] = None   # None for roots
    children: List["ProductNode"] = field(default_factory=list)

    def to_dict(self) -> Dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "unit_price": self.unit_price,
            "stock_quantity": self.stock_quantity,
            "is_base_material": self.is_base_material,
            "quantity_per_unit": self.quantity_per_unit,
            "children": [c.to_dict() for c in self.children],
        }


@dataclass
class HierarchyResult:
    roots: List[ProductNode] = field(default_factory=list)
    errors: List[QuoteEngineError] = field(default_factory=list)

    def to_dict(self) -> Dict:
        return {
            "roots": [r.to_dict() for r in self.roots],
            "errors": [e.to_dict() for e in self.errors],
        }


def _sort_key(node: ProductNode) -> str:
    return node.name.casefold()


class HierarchyEngine:

    def __init__(self, store: GraphStore, max_depth: int = MAX_DEPENDENCY_DEPTH) -> None:
        self.store = store
        self.max_depth = max_depth

    def build_forest(self) -> HierarchyResult:
        result = HierarchyResult()
        child_ids = self.store.child_ids()
        roots = [p for p in self.store.all_products() if p.id not in child_ids]

        for product in roots:
            result.roots.append(self._node(product, None, 0, (), result.errors))
        result.roots.sort(key=_sort_key)

        root_ids = [p.id for p in roots]
        dangling = self._dangling(self._unreachable(root_ids))
        for product_id in dangling:
            err = MissingReferenceError(
                f"Product {product_id} is only used by dependencies whose parent product is missing",
                product_id=product_id,
            )
            logger.warning(err.message)
            result.errors.append(err)

        orphaned = self._unreachable(root_ids + dangling)
        if orphaned:
            err = StructuralError(
                f"{len(orphaned)} product(s) are not reachable from any root product",
                product_ids=orphaned,
            )
            logger.warning(err.message)
            result.errors.append(err)

        logger.info(f"Hierarchy built: {len(result.roots)} root products")
        return result

    def _node(
        self,
        product: ProductSummary,
        quantity_per_unit: Optional[float],
        depth: int,
        path: Tuple[str, ...],
        errors: List[QuoteEngineError],
    ) -> ProductNode:
        node = ProductNode(
            id=product.id,
            name=product.name,
            description=product.description,
            unit_price=product.unit_price,
            stock_quantity=product.stock_quantity,
            is_base_material=product.is_base_material,
            quantity_per_unit=quantity_per_unit,
        )
        path = path + (product.id,)
        for edge in self.store.edges_from(product.id):
            if edge.child_id in path:
                err = StructuralError(
                    f"Dependency cycle: {' -> '.join(path)} -> {edge.child_id}",
                    product_id=edge.child_id, path=path,
                )
                logger.warning(err.message)
                errors.append(err)
                continue
            child = self.store.get_product(edge.child_id)
            if child is None:
                err = MissingReferenceError(
                    f"Dependency {product.id} -> {edge.child_id} points at a missing product",
                    parent_id=product.id, product_id=edge.child_id,
                )
                logger.warning(err.message)
                errors.append(err)
                continue
            if depth + 1 > self.max_depth:
                err = DepthExceededError(
                    f"Recursion limit {self.max_depth} reached at product {child.id}",
                    product_id=child.id, depth=depth + 1, path=path,
                )
                logger.warning(err.message)
                errors.append(err)
                continue
            node.children.append(self._node(child, edge.quantity_per_unit, depth + 1, path, errors))

        node.children.sort(key=_sort_key)
        return node

    def _unreachable(self, root_ids: List[str]) -> List[str]:
        """Product ids none of ``root_ids`` can reach, sorted."""
        seen: Set[str] = set(root_ids)
        queue = deque(root_ids)
        while queue:
            for edge in self.store.edges_from(queue.popleft()):
                if edge.child_id not in seen:
                    seen.add(edge.child_id)
                    queue.append(edge.child_id)
        return sorted(p.id for p in self.store.all_products() if p.id not in seen)

    def _dangling(self, unreachable: List[str]) -> List[str]:
        """Unreachable ids that no existing product lists as a child."""
        used = {
            edge.child_id
            for product in self.store.all_products()
            for edge in self.store.edges_from(product.id)
        }
        return [product_id for product_id in unreachable if product_id not in used]


# ---------------------------------------------------------------------------
# Display filters: return new trees, inputs are left untouched
# ---------------------------------------------------------------------------

def filter_by_term(roots: List[ProductNode], term: str) -> List[ProductNode]:
    """Keep nodes whose name or description contains ``term``, plus their ancestors."""
    if not term.strip():
        return roots
    needle = term.casefold()

    def _walk(node: ProductNode) -> Optional[ProductNode]:
        kept = [c for c in (_walk(child) for child in node.children) if c is not None]
        hit = needle in node.name.casefold() or needle in (node.description or "").casefold()
        if hit or kept:
            return replace(node, children=kept)
        return None

    return [n for n in (_walk(r) for r in roots) if n is not None]


def filter_by_kind(roots: List[ProductNode], is_base_material: Optional[bool]) -> List[ProductNode]:
    """Keep base materials (True) or assemblies (False), plus their ancestors. None = all."""
    if is_base_material is None:
        return roots

    def _walk(node: ProductNode) -> Optional[ProductNode]:
        kept = [c for c in (_walk(child) for child in node.children) if c is not None]
        if node.is_base_material == is_base_material or kept:
            return replace(node, children=kept)
        return None

    return [n for n in (_walk(r) for r in roots) if n is not None]


def hide_base_materials(roots: List[ProductNode]) -> List[ProductNode]:
    """Strip base-material children at every level; roots are always kept."""

    def _walk(node: ProductNode) -> ProductNode:
        return replace(node, children=[_walk(c) for c in node.children if not c.is_base_material])

    return [_walk(r) for r in roots]
