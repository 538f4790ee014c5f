"""
Graph Store Adapter — typed read shapes the engine consumes, an in-memory
adjacency snapshot, and the async SQLAlchemy loader that builds it.

The engine never touches the database. Route handlers await
``load_graph_snapshot`` once per request and hand the resulting
``InMemoryGraphStore`` to the synchronous engine functions.
"""
import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import Dict, FrozenSet, Iterable, List, Optional, Protocol, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import DEFAULT_ORDER_STATUS, DEFAULT_PRODUCT_KIND

logger = logging.getLogger("quoter-db")


# ── DTOs ──────────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class ProductSummary:
    id: str
    name: str
    unit_price: float = 0.0
    is_base_material: bool = False
    kind: str = DEFAULT_PRODUCT_KIND  # simple | computed
    stock_quantity: float = 0.0
    required_quantity: float = 1.0    # fixed quantity for simple products
    margin_pct: Optional[float] = None
    description: Optional[str] = None


@dataclass(frozen=True)
class DependencyEdge:
    parent_id: str
    child_id: str
    quantity_per_unit: float
    id: Optional[str] = None


@dataclass(frozen=True)
class ProcessRef:
    id: str
    name: str
    price_per_unit: float
    estimated_minutes: float = 0.0


@dataclass(frozen=True)
class LaborRef:
    id: str
    name: str
    price_per_hour: float


@dataclass(frozen=True)
class ProcessAssignment:
    process_id: str
    quantity: float
    process: Optional[ProcessRef] = None   # None when the process row is gone


@dataclass(frozen=True)
class LaborAssignment:
    labor_id: str
    hours: float
    labor: Optional[LaborRef] = None


@dataclass(frozen=True)
class ExtraItem:
    id: str
    name: str
    value: Optional[float]
    description: Optional[str] = None


@dataclass(frozen=True)
class OrderHeader:
    id: str
    product_id: str
    quantity: float
    has_freight: bool = False
    freight_amount: float = 0.0
    margin_pct: float = 0.0
    tax_pct: float = 0.0
    status: str = DEFAULT_ORDER_STATUS


@dataclass(frozen=True)
class OrderTaxLine:
    name: str
    pct: float
    position: int = 0
    id: Optional[str] = None


# ── Read protocol ─────────────────────────────────────────────────────────────

class GraphStore(Protocol):
    def edges_from(self, product_id: str) -> Tuple[DependencyEdge, ...]: ...
    def get_product(self, product_id: str) -> Optional[ProductSummary]: ...
    def all_products(self) -> List[ProductSummary]: ...
    def child_ids(self) -> FrozenSet[str]: ...
    def get_order(self, order_id: str) -> Optional[OrderHeader]: ...
    def process_assignments(self, order_id: str) -> List[ProcessAssignment]: ...
    def labor_assignments(self, order_id: str) -> List[LaborAssignment]: ...
    def extra_items(self, order_id: str) -> List[ExtraItem]: ...
    def order_taxes(self, order_id: str) -> List[OrderTaxLine]: ...
    def product_processes(self, product_id: str) -> List[ProcessAssignment]: ...
    def product_labor(self, product_id: str) -> List[LaborAssignment]: ...


class InMemoryGraphStore:
    """
    Arena-style snapshot addressed by product id.

    Built once per top-level call and treated as read-only by the engine.
    Edges may reference product ids that are not in ``products``; the engine
    reports those as missing references.
    """

    def __init__(
        self,
        products: Iterable[ProductSummary] = (),
        edges: Iterable[DependencyEdge] = (),
        orders: Iterable[OrderHeader] = (),
    ) -> None:
        self._products: Dict[str, ProductSummary] = {}
        self._edges: Dict[str, List[DependencyEdge]] = defaultdict(list)
        self._orders: Dict[str, OrderHeader] = {}
        self._order_processes: Dict[str, List[ProcessAssignment]] = defaultdict(list)
        self._order_labor: Dict[str, List[LaborAssignment]] = defaultdict(list)
        self._order_extras: Dict[str, List[ExtraItem]] = defaultdict(list)
        self._order_taxes: Dict[str, List[OrderTaxLine]] = defaultdict(list)
        self._product_processes: Dict[str, List[ProcessAssignment]] = defaultdict(list)
        self._product_labor: Dict[str, List[LaborAssignment]] = defaultdict(list)

        for product in products:
            self.add_product(product)
        for edge in edges:
            self.add_edge(edge)
        for order in orders:
            self.add_order(order)

    # -- population ------------------------------------------------------------

    def add_product(self, product: ProductSummary) -> ProductSummary:
        self._products[product.id] = product
        return product

    def add_edge(self, edge: DependencyEdge) -> DependencyEdge:
        self._edges[edge.parent_id].append(edge)
        return edge

    def add_order(self, order: OrderHeader) -> OrderHeader:
        self._orders[order.id] = order
        return order

    def add_order_process(self, order_id: str, assignment: ProcessAssignment) -> None:
        self._order_processes[order_id].append(assignment)

    def add_order_labor(self, order_id: str, assignment: LaborAssignment) -> None:
        self._order_labor[order_id].append(assignment)

    def add_extra_item(self, order_id: str, item: ExtraItem) -> None:
        self._order_extras[order_id].append(item)

    def add_order_tax(self, order_id: str, tax: OrderTaxLine) -> None:
        self._order_taxes[order_id].append(tax)

    def add_product_process(self, product_id: str, assignment: ProcessAssignment) -> None:
        self._product_processes[product_id].append(assignment)

    def add_product_labor(self, product_id: str, assignment: LaborAssignment) -> None:
        self._product_labor[product_id].append(assignment)

    # -- GraphStore ------------------------------------------------------------

    def edges_from(self, product_id: str) -> Tuple[DependencyEdge, ...]:
        return tuple(self._edges.get(product_id, ()))

    def get_product(self, product_id: str) -> Optional[ProductSummary]:
        return self._products.get(product_id)

    def all_products(self) -> List[ProductSummary]:
        return list(self._products.values())

    def child_ids(self) -> FrozenSet[str]:
        return frozenset(e.child_id for edges in self._edges.values() for e in edges)

    def get_order(self, order_id: str) -> Optional[OrderHeader]:
        return self._orders.get(order_id)

    def process_assignments(self, order_id: str) -> List[ProcessAssignment]:
        return list(self._order_processes.get(order_id, ()))

    def labor_assignments(self, order_id: str) -> List[LaborAssignment]:
        return list(self._order_labor.get(order_id, ()))

    def extra_items(self, order_id: str) -> List[ExtraItem]:
        return list(self._order_extras.get(order_id, ()))

    def order_taxes(self, order_id: str) -> List[OrderTaxLine]:
        return sorted(self._order_taxes.get(order_id, ()), key=lambda t: t.position)

    def product_processes(self, product_id: str) -> List[ProcessAssignment]:
        return list(self._product_processes.get(product_id, ()))

    def product_labor(self, product_id: str) -> List[LaborAssignment]:
        return list(self._product_labor.get(product_id, ()))


# ── SQL loader ────────────────────────────────────────────────────────────────

def _num(value, default: float = 0.0) -> float:
    """Numeric columns come back as Decimal (or None); the engine works in float."""
    return float(value) if value is not None else default


async def load_graph_snapshot(
    session: AsyncSession,
    order_id: Optional[str] = None,
) -> InMemoryGraphStore:
    """
    Read every product and dependency edge (plus one order's line items when
    ``order_id`` is given) and return a fresh in-memory snapshot.

    Nothing is cached between calls, so edits are visible to the next quote.
    """
    from app.models.orm_models import (
        Product, Dependency, ProcessType, LaborType,
        Order, OrderProcess, OrderLabor, OrderExtraItem, OrderTax,
        ProductProcess, ProductLabor,
    )

    store = InMemoryGraphStore()

    for p in (await session.execute(select(Product))).scalars():
        store.add_product(ProductSummary(
            id=p.id,
            name=p.name,
            unit_price=_num(p.unit_price),
            is_base_material=bool(p.is_base_material),
            kind=p.kind or DEFAULT_PRODUCT_KIND,
            stock_quantity=_num(p.stock_quantity),
            required_quantity=_num(p.required_quantity, 1.0),
            margin_pct=_num(p.margin_pct) if p.margin_pct is not None else None,
            description=p.description,
        ))

    for d in (await session.execute(select(Dependency))).scalars():
        store.add_edge(DependencyEdge(
            parent_id=d.parent_id,
            child_id=d.child_id,
            quantity_per_unit=_num(d.quantity_per_unit),
            id=d.id,
        ))

    processes = {
        pt.id: ProcessRef(pt.id, pt.name, _num(pt.price_per_unit), _num(pt.estimated_minutes))
        for pt in (await session.execute(select(ProcessType))).scalars()
    }
    labor_types = {
        lt.id: LaborRef(lt.id, lt.name, _num(lt.price_per_hour))
        for lt in (await session.execute(select(LaborType))).scalars()
    }

    for pp in (await session.execute(select(ProductProcess))).scalars():
        store.add_product_process(pp.product_id, ProcessAssignment(
            pp.process_id, _num(pp.quantity), processes.get(pp.process_id)
        ))
    for pl in (await session.execute(select(ProductLabor))).scalars():
        store.add_product_labor(pl.product_id, LaborAssignment(
            pl.labor_id, _num(pl.hours), labor_types.get(pl.labor_id)
        ))

    if order_id is not None:
        order = (await session.execute(select(Order).where(Order.id == order_id))).scalar_one_or_none()
        if order is not None:
            store.add_order(OrderHeader(
                id=order.id,
                product_id=order.product_id,
                quantity=_num(order.quantity),
                has_freight=bool(order.has_freight),
                freight_amount=_num(order.freight_amount),
                margin_pct=_num(order.margin_pct),
                tax_pct=_num(order.tax_pct),
                status=order.status or DEFAULT_ORDER_STATUS,
            ))
            rows = await session.execute(select(OrderProcess).where(OrderProcess.order_id == order_id))
            for op in rows.scalars():
                store.add_order_process(order_id, ProcessAssignment(
                    op.process_id, _num(op.quantity), processes.get(op.process_id)
                ))
            rows = await session.execute(select(OrderLabor).where(OrderLabor.order_id == order_id))
            for ol in rows.scalars():
                store.add_order_labor(order_id, LaborAssignment(
                    ol.labor_id, _num(ol.hours), labor_types.get(ol.labor_id)
                ))
            rows = await session.execute(
                select(OrderExtraItem).where(OrderExtraItem.order_id == order_id)
            )
            for ei in rows.scalars():
                store.add_extra_item(order_id, ExtraItem(
                    id=ei.id,
                    name=ei.name,
                    value=_num(ei.value) if ei.value is not None else None,
                    description=ei.description,
                ))
            rows = await session.execute(
                select(OrderTax)
                .where(OrderTax.order_id == order_id)
                .order_by(OrderTax.position, OrderTax.created_at)
            )
            for tx in rows.scalars():
                store.add_order_tax(order_id, OrderTaxLine(
                    name=tx.name, pct=_num(tx.pct), position=tx.position or 0, id=tx.id,
                ))
        else:
            logger.warning(f"Order {order_id} not found while loading graph snapshot")

    logger.debug(
        f"Graph snapshot loaded: {len(store.all_products())} products, "
        f"{len(store.child_ids())} distinct children"
    )
    return store
