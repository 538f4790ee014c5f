"""
Quote Engine API Routes

GET  /api/v1/engine/products/hierarchy                      — nested product forest
GET  /api/v1/engine/products/{id}/materials?quantity=        — flat base-material requirements
GET  /api/v1/engine/products/{id}/cost                       — standalone product cost with margin
POST /api/v1/engine/products/{id}/dependencies/cycle-check   — would parent → child close a cycle?
POST /api/v1/engine/products/{id}/dependencies/validate      — full pre-write edge validation
GET  /api/v1/engine/orders/{id}/costs                        — four itemised cost sections
GET  /api/v1/engine/orders/{id}/quote                        — costs + margin/tax cascade
POST /api/v1/engine/quotes/cascade                           — cascade ad hoc subtotals
POST /api/v1/engine/quotes/tax-chain                         — sequential named taxes
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.db import get_db
from app.models.quote_schema import (
    CascadeRequest,
    CycleCheckRequest,
    CycleCheckResponse,
    EdgeValidationRequest,
    TaxChainRequest,
)
from app.services import quote_engine
from app.services.bom_engine import BOMEngine
from app.services.dependency_guard import validate_edge
from app.services.engine_errors import (
    EdgeValidationError,
    InvalidRateError,
    QuoteEngineError,
    RecordNotFoundError,
    StructuralError,
)
from app.services.finance_engine import apply_tax_chain, cascade_quote
from app.services.graph_store import InMemoryGraphStore, load_graph_snapshot
from app.services.hierarchy_engine import filter_by_kind, filter_by_term, hide_base_materials

router = APIRouter(prefix="/api/v1/engine", tags=["Quote Engine"])
logger = logging.getLogger("quoter-api")


# ── Snapshot dependencies ────────────────────────────────────────────────────

async def get_graph_store(db: AsyncSession = Depends(get_db)) -> InMemoryGraphStore:
    return await load_graph_snapshot(db)


async def get_order_store(order_id: str, db: AsyncSession = Depends(get_db)) -> InMemoryGraphStore:
    return await load_graph_snapshot(db, order_id=order_id)


def _http_error(exc: QuoteEngineError) -> HTTPException:
    if isinstance(exc, RecordNotFoundError):
        status = 404
    elif isinstance(exc, InvalidRateError):
        status = 422
    elif isinstance(exc, StructuralError):
        status = 409
    elif isinstance(exc, EdgeValidationError):
        status = 400
    else:
        status = 500
    logger.info(
        f"{exc.code} -> HTTP {status}: {exc.message}",
        extra={"error_code": exc.code, "http_status": status},
    )
    return HTTPException(status_code=status, detail=exc.to_dict())


# ── Products ─────────────────────────────────────────────────────────────────

@router.get("/products/hierarchy")
async def product_hierarchy(
    term: str = "",
    base_material: Optional[bool] = None,
    show_base_materials: bool = True,
    store: InMemoryGraphStore = Depends(get_graph_store),
):
    result = quote_engine.build_hierarchy(store)
    roots = filter_by_kind(filter_by_term(result.roots, term), base_material)
    if not show_base_materials:
        roots = hide_base_materials(roots)
    return {
        "roots": [r.to_dict() for r in roots],
        "errors": [e.to_dict() for e in result.errors],
    }


@router.get("/products/{product_id}/materials")
async def product_materials(
    product_id: str,
    quantity: float = Query(1.0, gt=0),
    store: InMemoryGraphStore = Depends(get_graph_store),
):
    try:
        resolution = quote_engine.resolve_materials(store, product_id, quantity)
    except RecordNotFoundError as e:
        raise _http_error(e)
    requirements = BOMEngine(store).material_requirements(resolution)
    return {
        **resolution.to_dict(),
        "requirements": [r.to_dict() for r in requirements],
    }


@router.get("/products/{product_id}/cost")
async def product_cost(product_id: str, store: InMemoryGraphStore = Depends(get_graph_store)):
    try:
        return quote_engine.cost_product(store, product_id).to_dict()
    except (RecordNotFoundError, InvalidRateError) as e:
        raise _http_error(e)


@router.post("/products/{product_id}/dependencies/cycle-check", response_model=CycleCheckResponse)
async def dependency_cycle_check(
    product_id: str,
    req: CycleCheckRequest,
    store: InMemoryGraphStore = Depends(get_graph_store),
):
    cycle = quote_engine.check_cycle(store, product_id, req.child_id)
    return CycleCheckResponse(
        would_create_cycle=cycle,
        message=(
            "This dependency would create a circular reference"
            if cycle else "Dependency can be added without creating cycles"
        ),
    )


@router.post("/products/{product_id}/dependencies/validate")
async def dependency_validate(
    product_id: str,
    req: EdgeValidationRequest,
    store: InMemoryGraphStore = Depends(get_graph_store),
):
    replacing = (product_id, req.replacing_child_id) if req.replacing_child_id else None
    try:
        validate_edge(store, product_id, req.child_id, req.quantity_per_unit, replacing=replacing)
    except (EdgeValidationError, StructuralError) as e:
        raise _http_error(e)
    return {"valid": True}


# ── Orders ───────────────────────────────────────────────────────────────────

@router.get("/orders/{order_id}/costs")
async def order_costs(order_id: str, store: InMemoryGraphStore = Depends(get_order_store)):
    try:
        return quote_engine.aggregate_costs(store, order_id).to_dict()
    except RecordNotFoundError as e:
        raise _http_error(e)


@router.get("/orders/{order_id}/quote")
async def order_quote(order_id: str, store: InMemoryGraphStore = Depends(get_order_store)):
    try:
        return quote_engine.generate_quote(store, order_id).to_dict()
    except (RecordNotFoundError, InvalidRateError) as e:
        raise _http_error(e)


# ── Ad hoc quotes ────────────────────────────────────────────────────────────

@router.post("/quotes/cascade")
async def quote_cascade(req: CascadeRequest):
    try:
        breakdown = cascade_quote(
            materials_cost=req.materials_cost,
            processes_cost=req.processes_cost,
            labor_cost=req.labor_cost,
            extras_cost=req.extras_cost,
            has_freight=req.has_freight,
            freight_amount=req.freight_amount,
            margin_pct=req.margin_pct,
            tax_pct=req.tax_pct,
        )
    except InvalidRateError as e:
        raise _http_error(e)
    return breakdown.to_dict()


@router.post("/quotes/tax-chain")
async def quote_tax_chain(req: TaxChainRequest):
    try:
        result = apply_tax_chain(req.amount, [(t.name, t.pct) for t in req.taxes])
    except InvalidRateError as e:
        raise _http_error(e)
    return result.to_dict()
