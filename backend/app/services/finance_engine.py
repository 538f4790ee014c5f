"""
Finance Engine — turns cost subtotals into a selling price.

Margin and tax are applied as REVERSE markups: the percentage is the share of
the resulting price, not a multiplier on the cost.

    price = cost / (1 - pct / 100)

    58 000 at 42 % margin  → 58 000 / 0.58 = 100 000.00
    100 000 at 18 % tax    → 100 000 / 0.82 = 121 951.22

Do not replace this with cost × (1 + pct). A percentage at or above 100 has no
finite price and is rejected with InvalidRateError before any arithmetic.
"""
import logging
import math
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple

from app.config import MONEY_DECIMALS, RATE_CEILING_PCT
from app.services.engine_errors import InvalidRateError

logger = logging.getLogger("quoter-finance")


def validate_rate(pct: Optional[float], label: str = "rate") -> float:
    """Return ``pct`` as float (None → 0) or raise InvalidRateError."""
    value = float(pct or 0.0)
    if math.isnan(value) or math.isinf(value):
        raise InvalidRateError(f"{label} percentage must be a finite number", label=label, pct=pct)
    if value >= RATE_CEILING_PCT:
        raise InvalidRateError(
            f"{label} percentage must be below {RATE_CEILING_PCT:g}% (got {value:g}%)",
            label=label, pct=value,
        )
    if value < 0:
        logger.warning(f"Negative {label} percentage {value:g}% ignored (treated as 0)")
    return value


def reverse_markup(amount: float, pct: Optional[float], label: str = "rate") -> Tuple[float, float]:
    """
    Apply one reverse-markup step.

    Returns:
        (total, added_value). For pct <= 0 the amount passes through unchanged.
    """
    return _markup(amount, validate_rate(pct, label))


def _markup(amount: float, rate: float) -> Tuple[float, float]:
    # rate already validated
    if rate > 0:
        total = amount / (1 - rate / 100)
        return total, total - amount
    return amount, 0.0


@dataclass
class QuoteBreakdown:
    materials_cost: float
    processes_cost: float
    labor_cost: float
    extras_cost: float
    freight: float
    subtotal: float
    margin_pct: float
    margin_value: float
    total_with_margin: float
    tax_pct: float
    tax_value: float
    final_total: float

    def to_dict(self) -> Dict[str, float]:
        return {
            "materials_cost": round(self.materials_cost, MONEY_DECIMALS),
            "processes_cost": round(self.processes_cost, MONEY_DECIMALS),
            "labor_cost": round(self.labor_cost, MONEY_DECIMALS),
            "extras_cost": round(self.extras_cost, MONEY_DECIMALS),
            "freight": round(self.freight, MONEY_DECIMALS),
            "subtotal": round(self.subtotal, MONEY_DECIMALS),
            "margin_pct": self.margin_pct,
            "margin_value": round(self.margin_value, MONEY_DECIMALS),
            "total_with_margin": round(self.total_with_margin, MONEY_DECIMALS),
            "tax_pct": self.tax_pct,
            "tax_value": round(self.tax_value, MONEY_DECIMALS),
            "final_total": round(self.final_total, MONEY_DECIMALS),
        }


def cascade_quote(
    materials_cost: float,
    processes_cost: float,
    labor_cost: float,
    extras_cost: float,
    has_freight: bool = False,
    freight_amount: float = 0.0,
    margin_pct: float = 0.0,
    tax_pct: float = 0.0,
) -> QuoteBreakdown:
    """
    subtotal → margin → tax, keeping every intermediate value.

    Both rates are validated up front so a bad tax rate never yields a
    half-computed breakdown.
    """
    margin_rate = validate_rate(margin_pct, "margin")
    tax_rate = validate_rate(tax_pct, "tax")

    freight = float(freight_amount or 0.0) if has_freight else 0.0
    subtotal = materials_cost + processes_cost + labor_cost + extras_cost + freight

    total_with_margin, margin_value = _markup(subtotal, margin_rate)
    final_total, tax_value = _markup(total_with_margin, tax_rate)

    return QuoteBreakdown(
        materials_cost=materials_cost,
        processes_cost=processes_cost,
        labor_cost=labor_cost,
        extras_cost=extras_cost,
        freight=freight,
        subtotal=subtotal,
        margin_pct=margin_rate,
        margin_value=margin_value,
        total_with_margin=total_with_margin,
        tax_pct=tax_rate,
        tax_value=tax_value,
        final_total=final_total,
    )


# ---------------------------------------------------------------------------
# Sequential named taxes
# ---------------------------------------------------------------------------

@dataclass
class TaxStep:
    name: str
    pct: float
    base: float
    value: float
    total: float


@dataclass
class TaxChainResult:
    amount: float
    steps: List[TaxStep] = field(default_factory=list)

    @property
    def total_tax(self) -> float:
        return sum(s.value for s in self.steps)

    @property
    def final_total(self) -> float:
        return self.steps[-1].total if self.steps else self.amount

    def to_dict(self) -> Dict:
        return {
            "amount": round(self.amount, MONEY_DECIMALS),
            "steps": [
                {
                    "name": s.name,
                    "pct": s.pct,
                    "base": round(s.base, MONEY_DECIMALS),
                    "value": round(s.value, MONEY_DECIMALS),
                    "total": round(s.total, MONEY_DECIMALS),
                }
                for s in self.steps
            ],
            "total_tax": round(self.total_tax, MONEY_DECIMALS),
            "final_total": round(self.final_total, MONEY_DECIMALS),
        }


def apply_tax_chain(amount: float, taxes: Iterable[Tuple[str, float]]) -> TaxChainResult:
    """
    Apply named taxes one after another, each as a reverse markup on the
    running total. Order matters; every rate is validated before the first step.
    """
    taxes = [(name, validate_rate(pct, name)) for name, pct in taxes]
    result = TaxChainResult(amount=amount)
    running = amount
    for name, pct in taxes:
        total, value = _markup(running, pct)
        result.steps.append(TaxStep(name=name, pct=pct, base=running, value=value, total=total))
        running = total
    return result
