"""Proforma job order (PJO) calculations and approval rules."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Iterable, List, Mapping, Optional, Sequence, Tuple

from .domain import CostItem, CostItemStatus, PJOStatus, ProformaJobOrder, RevenueItem
from .formatting import format_idr

DEFAULT_WARNING_RATIO = 0.9

COST_CATEGORY_LABELS: Mapping[str, str] = {
    "trucking": "Trucking",
    "port_charges": "Port Charges",
    "documentation": "Documentation",
    "handling": "Handling",
    "customs": "Customs",
    "insurance": "Insurance",
    "storage": "Storage",
    "labor": "Labor",
    "fuel": "Fuel",
    "tolls": "Tolls",
    "other": "Other",
}

VALID_STATUS_TRANSITIONS: Mapping[PJOStatus, Tuple[PJOStatus, ...]] = {
    PJOStatus.DRAFT: (PJOStatus.PENDING_APPROVAL,),
    PJOStatus.PENDING_APPROVAL: (PJOStatus.APPROVED, PJOStatus.REJECTED),
    PJOStatus.APPROVED: (),
    PJOStatus.REJECTED: (),
}

COST_EDITOR_ROLES = frozenset({"ops", "admin"})


@dataclass(slots=True)
class Variance:
    variance: float
    variance_pct: float


@dataclass(slots=True)
class CostStatusResult:
    status: CostItemStatus
    variance: float
    variance_pct: float


@dataclass(slots=True)
class BudgetAnalysis:
    total_estimated: float
    total_actual: float
    total_variance: float
    variance_pct: float
    items_confirmed: int
    items_pending: int
    items_over_budget: int
    items_under_budget: int
    all_confirmed: bool
    has_overruns: bool


def can_transition_status(current: PJOStatus, target: PJOStatus) -> bool:
    return target in VALID_STATUS_TRANSITIONS[current]


def calculate_profit(revenue: float, expenses: float) -> float:
    return revenue - expenses


def calculate_margin(revenue: float, expenses: float) -> float:
    """Profit as a percentage of revenue; 0 when there is no revenue."""

    if revenue == 0:
        return 0.0
    return calculate_profit(revenue, expenses) / revenue * 100


def calculate_revenue_total(items: Iterable[RevenueItem]) -> float:
    return sum(item.subtotal or item.quantity * item.unit_price for item in items)


def calculate_cost_total(items: Iterable[CostItem], kind: str = "estimated") -> float:
    if kind == "estimated":
        return sum(item.estimated_amount for item in items)
    if kind == "actual":
        return sum(item.actual_amount or 0 for item in items)
    raise ValueError(f"Unknown cost total kind {kind!r}")


def determine_cost_status(estimated: float, actual: float) -> CostItemStatus:
    """Legacy three-way status kept for older cost sheets."""

    if actual > estimated:
        return CostItemStatus.EXCEEDED
    if actual < estimated:
        return CostItemStatus.UNDER_BUDGET
    return CostItemStatus.CONFIRMED


def calculate_variance(estimated: float, actual: float) -> Variance:
    variance = actual - estimated
    pct = variance / estimated * 100 if estimated > 0 else 0.0
    return Variance(variance=variance, variance_pct=pct)


def calculate_cost_status(
    estimated: float, actual: float, warning_ratio: float = DEFAULT_WARNING_RATIO
) -> CostStatusResult:
    """Classify an actual cost against its estimate.

    confirmed: actual <= warning_ratio * estimate
    at_risk: above that but not over the estimate
    exceeded: actual > estimate
    """

    variance = calculate_variance(estimated, actual)
    if actual <= estimated * warning_ratio:
        status = CostItemStatus.CONFIRMED
    elif actual <= estimated:
        status = CostItemStatus.AT_RISK
    else:
        status = CostItemStatus.EXCEEDED
    return CostStatusResult(
        status=status, variance=variance.variance, variance_pct=variance.variance_pct
    )


def analyze_budget(cost_items: Sequence[CostItem]) -> BudgetAnalysis:
    total_estimated = calculate_cost_total(cost_items, "estimated")
    confirmed = [item for item in cost_items if item.actual_amount is not None]
    total_actual = sum(item.actual_amount or 0 for item in confirmed)
    total_variance = total_actual - total_estimated
    variance_pct = total_variance / total_estimated * 100 if total_estimated > 0 else 0.0
    pending = len(cost_items) - len(confirmed)
    over = sum(1 for item in cost_items if item.status == CostItemStatus.EXCEEDED)
    under = sum(1 for item in cost_items if item.status == CostItemStatus.UNDER_BUDGET)
    return BudgetAnalysis(
        total_estimated=total_estimated,
        total_actual=total_actual,
        total_variance=total_variance,
        variance_pct=variance_pct,
        items_confirmed=len(confirmed),
        items_pending=pending,
        items_over_budget=over,
        items_under_budget=under,
        all_confirmed=pending == 0 and len(cost_items) > 0,
        has_overruns=over > 0,
    )


def validate_positive_margin(total_revenue: float, total_cost: float) -> Optional[str]:
    """Return an error message when estimated cost does not leave a profit."""

    if total_cost < total_revenue:
        return None
    margin = (
        (total_revenue - total_cost) / total_revenue * 100 if total_revenue > 0 else 0.0
    )
    return (
        f"Cannot submit: Estimated cost ({format_idr(total_cost)}) exceeds or equals "
        f"revenue ({format_idr(total_revenue)}). Current margin: {margin:.2f}%"
    )


def budget_warning_level(
    estimated: float, actual: float, warning_ratio: float = DEFAULT_WARNING_RATIO
) -> str:
    if actual > estimated:
        return "exceeded"
    if actual >= estimated * warning_ratio:
        return "warning"
    return "safe"


def budget_usage_percent(estimated: float, actual: float) -> float:
    if estimated == 0:
        return 0.0
    return actual / estimated * 100


def validate_date_order(etd: Optional[date], eta: Optional[date]) -> Optional[str]:
    if etd is not None and eta is not None and eta < etd:
        return "ETA must be on or after ETD"
    return None


def can_edit_cost_items(role: str, status: PJOStatus, converted_to_jo: Optional[bool]) -> bool:
    return (
        role in COST_EDITOR_ROLES
        and status == PJOStatus.APPROVED
        and not converted_to_jo
    )


def filter_pjos(
    pjos: Iterable[ProformaJobOrder],
    status: Optional[str] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
) -> List[ProformaJobOrder]:
    """Filter by status (``None``/``"all"`` keeps everything) and JO date.

    Both date bounds are inclusive.
    """

    result = []
    for pjo in pjos:
        if status and status != "all" and pjo.status.value != status:
            continue
        if date_from is not None and pjo.jo_date < date_from:
            continue
        if date_to is not None and pjo.jo_date > date_to:
            continue
        result.append(pjo)
    return result


__all__ = [
    "COST_CATEGORY_LABELS",
    "VALID_STATUS_TRANSITIONS",
    "Variance",
    "CostStatusResult",
    "BudgetAnalysis",
    "can_transition_status",
    "calculate_profit",
    "calculate_margin",
    "calculate_revenue_total",
    "calculate_cost_total",
    "determine_cost_status",
    "calculate_variance",
    "calculate_cost_status",
    "analyze_budget",
    "validate_positive_margin",
    "budget_warning_level",
    "budget_usage_percent",
    "validate_date_order",
    "can_edit_cost_items",
    "filter_pjos",
]
