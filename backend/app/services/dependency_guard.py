"""
Dependency Guard — keeps the BOM graph a DAG.

Storage does not enforce acyclicity, so every create/update of a dependency
edge has to pass through ``validate_edge`` (or at least ``would_create_cycle``)
before it is persisted. Skipping it is a silent correctness bug, not a
rejected write.
"""
import logging
import math
from typing import List, Optional, Set, Tuple

from app.services.engine_errors import EdgeValidationError, StructuralError
from app.services.graph_store import GraphStore

logger = logging.getLogger("quoter-bom.guard")

EdgeKey = Tuple[str, str]   # (parent_id, child_id)


def would_create_cycle(
    store: GraphStore,
    parent_id: str,
    child_id: str,
    ignore_edge: Optional[EdgeKey] = None,
) -> bool:
    """
    True when adding parent → child would close a cycle.

    Searches forward from ``child_id`` for a path back to ``parent_id``. One
    visited set per call. The walk uses an explicit stack, so chains of any
    length are safe. ``ignore_edge`` skips a single existing edge, for updates
    that replace it.
    """
    if parent_id == child_id:
        return True

    visited: Set[str] = set()
    stack: List[str] = [child_id]
    found = False
    while stack:
        node_id = stack.pop()
        if node_id == parent_id:
            found = True
            break
        if node_id in visited:
            continue
        visited.add(node_id)
        for edge in store.edges_from(node_id):
            if ignore_edge is not None and (edge.parent_id, edge.child_id) == ignore_edge:
                continue
            if edge.child_id not in visited:
                stack.append(edge.child_id)

    logger.info(f"Cycle check {parent_id} -> {child_id}: {'CYCLE' if found else 'OK'}")
    return found


def validate_edge(
    store: GraphStore,
    parent_id: str,
    child_id: str,
    quantity_per_unit: float,
    replacing: Optional[EdgeKey] = None,
) -> None:
    """
    Reject a proposed dependency edge before it is written.

    ``replacing`` is the (parent, child) of the edge an update overwrites; it is
    excluded from the duplicate and cycle checks.

    Raises:
        EdgeValidationError: bad quantity, unknown products, self-loop,
            base-material parent or duplicate pair.
        StructuralError: the edge would create a cycle.
    """
    if (
        quantity_per_unit is None
        or not math.isfinite(quantity_per_unit)
        or quantity_per_unit <= 0
    ):
        raise EdgeValidationError(
            "Required quantity must be a finite number greater than zero",
            parent_id=parent_id, child_id=child_id, quantity_per_unit=quantity_per_unit,
        )

    parent = store.get_product(parent_id)
    if parent is None:
        raise EdgeValidationError(f"Parent product {parent_id} not found", parent_id=parent_id)
    if store.get_product(child_id) is None:
        raise EdgeValidationError(f"Child product {child_id} not found", child_id=child_id)

    if parent_id == child_id:
        raise EdgeValidationError("A product cannot depend on itself", parent_id=parent_id)

    if parent.is_base_material:
        raise EdgeValidationError(
            f"Base material {parent.name} cannot have dependencies", parent_id=parent_id
        )

    if (parent_id, child_id) != replacing:
        for edge in store.edges_from(parent_id):
            if edge.child_id == child_id:
                raise EdgeValidationError(
                    "This dependency already exists for this product",
                    parent_id=parent_id, child_id=child_id,
                )

    if would_create_cycle(store, parent_id, child_id, ignore_edge=replacing):
        raise StructuralError(
            f"Adding {parent_id} -> {child_id} would create a dependency cycle",
            parent_id=parent_id, child_id=child_id,
        )
