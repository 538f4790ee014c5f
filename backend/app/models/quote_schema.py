from pydantic import BaseModel, Field
from typing import List, Optional


class CycleCheckRequest(BaseModel):
    child_id: str = Field(..., description="Product that would become a dependency of the path product")


class CycleCheckResponse(BaseModel):
    would_create_cycle: bool
    message: str


class EdgeValidationRequest(BaseModel):
    child_id: str
    quantity_per_unit: float = Field(
        ..., gt=0, allow_inf_nan=False, description="Units of child required per unit of parent"
    )
    replacing_child_id: Optional[str] = Field(
        None, description="Child of the existing edge an update overwrites"
    )


class CascadeRequest(BaseModel):
    """Cost subtotals plus fiscal parameters for an ad hoc quote cascade."""
    materials_cost: float = 0.0
    processes_cost: float = 0.0
    labor_cost: float = 0.0
    extras_cost: float = 0.0
    has_freight: bool = False
    freight_amount: float = 0.0
    margin_pct: float = Field(0.0, description="Share of the price taken by margin, in %")
    tax_pct: float = Field(0.0, description="Share of the price taken by tax, in %")


class TaxEntry(BaseModel):
    name: str
    pct: float


class TaxChainRequest(BaseModel):
    amount: float
    taxes: List[TaxEntry] = Field(default_factory=list)
