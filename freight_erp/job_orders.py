"""Job order conversion, status progression and final financials."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Mapping, Optional

from .domain import CostItem, JOStatus, PJOStatus, ProformaJobOrder, RevenueItem
from .pjo import calculate_margin

# Each status may only move to the next one; nothing goes backwards.
NEXT_STATUS: Mapping[JOStatus, Optional[JOStatus]] = {
    JOStatus.ACTIVE: JOStatus.COMPLETED,
    JOStatus.COMPLETED: JOStatus.SUBMITTED_TO_FINANCE,
    JOStatus.SUBMITTED_TO_FINANCE: JOStatus.INVOICED,
    JOStatus.INVOICED: JOStatus.CLOSED,
    JOStatus.CLOSED: None,
}

ACTIONS: Mapping[JOStatus, List[str]] = {
    JOStatus.ACTIVE: ["mark_completed"],
    JOStatus.COMPLETED: ["submit_to_finance"],
    JOStatus.SUBMITTED_TO_FINANCE: ["create_invoice"],
    JOStatus.INVOICED: [],
    JOStatus.CLOSED: [],
}

COMPLETED_STATUSES = frozenset(
    {
        JOStatus.COMPLETED,
        JOStatus.SUBMITTED_TO_FINANCE,
        JOStatus.INVOICED,
        JOStatus.CLOSED,
    }
)

JO_EDITOR_ROLES = frozenset({"admin", "manager"})


@dataclass(slots=True)
class JOFinancials:
    final_revenue: float
    final_cost: float
    final_profit: float
    final_margin: float


def can_create_job_order(pjo: ProformaJobOrder) -> bool:
    return (
        pjo.status == PJOStatus.APPROVED
        and pjo.all_costs_confirmed
        and not pjo.converted_to_jo
    )


def calculate_jo_financials(
    revenue_items: Iterable[RevenueItem], cost_items: Iterable[CostItem]
) -> JOFinancials:
    """Revenue from line subtotals, cost from confirmed actuals."""

    revenue = sum(item.subtotal or 0 for item in revenue_items)
    cost = sum(item.actual_amount or 0 for item in cost_items)
    return JOFinancials(
        final_revenue=revenue,
        final_cost=cost,
        final_profit=revenue - cost,
        final_margin=calculate_margin(revenue, cost),
    )


def can_transition_status(current: JOStatus, target: JOStatus) -> bool:
    return NEXT_STATUS[current] == target


def available_actions(status: JOStatus) -> List[str]:
    return list(ACTIONS[status])


def can_edit_job_order(role: str) -> bool:
    return role in JO_EDITOR_ROLES


def can_be_invoiced(status: JOStatus) -> bool:
    return status == JOStatus.SUBMITTED_TO_FINANCE


__all__ = [
    "NEXT_STATUS",
    "COMPLETED_STATUSES",
    "JOFinancials",
    "can_create_job_order",
    "calculate_jo_financials",
    "can_transition_status",
    "available_actions",
    "can_edit_job_order",
    "can_be_invoiced",
]
