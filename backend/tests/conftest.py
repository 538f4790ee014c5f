"""
conftest.py — Shared pytest fixtures for the Quoter backend test suite.

Engine tests run against ``InMemoryGraphStore`` snapshots built here; only
test_graph_store.py touches a (SQLite in-memory) database.

Import-path bootstrapping:
    The ``backend/`` directory is inserted into sys.path so that all
    ``app.*`` imports resolve correctly regardless of where pytest is invoked.
"""

import sys
import os
import pytest

# ---------------------------------------------------------------------------
# Ensure ``backend/`` is on the import path before any app imports occur.
# ---------------------------------------------------------------------------
_BACKEND_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if _BACKEND_DIR not in sys.path:
    sys.path.insert(0, _BACKEND_DIR)


# ---------------------------------------------------------------------------
# Graph fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def diamond_store():
    """
    Two paths to the same base material:

        A ──2──> B ──3──> C (base, 10.00/un, 5 in stock)
        A ──1──────────> C

    One unit of A needs 2×3 + 1 = 7 units of C.
    """
    from app.services.graph_store import DependencyEdge, InMemoryGraphStore, ProductSummary
    return InMemoryGraphStore(
        products=[
            ProductSummary("A", "Cabinet"),
            ProductSummary("B", "Door Panel"),
            ProductSummary("C", "Hinge", unit_price=10.0, is_base_material=True, stock_quantity=5.0),
        ],
        edges=[
            DependencyEdge("A", "B", 2.0),
            DependencyEdge("B", "C", 3.0),
            DependencyEdge("A", "C", 1.0),
        ],
    )


@pytest.fixture
def order_store(diamond_store):
    """
    ``diamond_store`` plus order O1 for 2 × Cabinet.

    Expected subtotals:
      materials  14 × 10.00                      = 140.00
      processes  Welding 2 × 25 + Cutting 3 × 10  =  80.00
      labor      Fabrication 1.5 h × 40           =  60.00
      extras     Packaging 20                     =  20.00
                                                  ────────
                                                    300.00
    """
    from app.services.graph_store import (
        ExtraItem, LaborAssignment, LaborRef, OrderHeader, ProcessAssignment, ProcessRef,
    )
    store = diamond_store
    store.add_order(OrderHeader("O1", "A", 2.0, margin_pct=25.0, tax_pct=20.0))
    store.add_order_process("O1", ProcessAssignment("P-WELD", 2.0, ProcessRef("P-WELD", "Welding", 25.0, 30.0)))
    store.add_order_process("O1", ProcessAssignment("P-CUT", 3.0, ProcessRef("P-CUT", "Cutting", 10.0, 5.0)))
    store.add_order_labor("O1", LaborAssignment("L-FAB", 1.5, LaborRef("L-FAB", "Fabrication", 40.0)))
    store.add_extra_item("O1", ExtraItem("X1", "Packaging", 20.0))
    return store


def build_chain(length: int, base_price: float = 1.0):
    """
    Linear chain P0 → P1 → … → P<length>, every edge quantity 1, the last
    node a base material. ``length`` is the number of edges.
    """
    from app.services.graph_store import DependencyEdge, InMemoryGraphStore, ProductSummary
    store = InMemoryGraphStore()
    for i in range(length):
        store.add_product(ProductSummary(f"P{i}", f"Level {i:02d}"))
        store.add_edge(DependencyEdge(f"P{i}", f"P{i + 1}", 1.0))
    store.add_product(ProductSummary(
        f"P{length}", "Raw Stock", unit_price=base_price, is_base_material=True
    ))
    return store


@pytest.fixture
def chain_factory():
    """Factory fixture around ``build_chain``."""
    return build_chain
