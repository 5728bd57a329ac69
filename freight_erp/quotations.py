"""Quotation status rules and financial calculations."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Dict, FrozenSet, Iterable, List, Mapping, Optional, Sequence, Tuple
from uuid import uuid4

from .domain import (
    CostItem,
    EngineeringStatus,
    MarketClassification,
    PursuitCost,
    Quotation,
    QuotationStatus,
    RevenueItem,
)
from .formatting import round_half_up

VALID_STATUS_TRANSITIONS: Mapping[QuotationStatus, Tuple[QuotationStatus, ...]] = {
    QuotationStatus.DRAFT: (
        QuotationStatus.ENGINEERING_REVIEW,
        QuotationStatus.READY,
        QuotationStatus.CANCELLED,
    ),
    QuotationStatus.ENGINEERING_REVIEW: (
        QuotationStatus.READY,
        QuotationStatus.CANCELLED,
    ),
    QuotationStatus.READY: (QuotationStatus.SUBMITTED, QuotationStatus.CANCELLED),
    QuotationStatus.SUBMITTED: (
        QuotationStatus.WON,
        QuotationStatus.LOST,
        QuotationStatus.CANCELLED,
    ),
    QuotationStatus.WON: (),
    QuotationStatus.LOST: (),
    QuotationStatus.CANCELLED: (),
}

PIPELINE_STATUSES: FrozenSet[QuotationStatus] = frozenset(
    {
        QuotationStatus.DRAFT,
        QuotationStatus.ENGINEERING_REVIEW,
        QuotationStatus.READY,
        QuotationStatus.SUBMITTED,
    }
)

ENGINEERING_DONE = frozenset({EngineeringStatus.COMPLETED, EngineeringStatus.WAIVED})


@dataclass(slots=True)
class QuotationFinancials:
    total_revenue: float
    total_cost: float
    total_pursuit_cost: float
    gross_profit: float
    profit_margin: float
    pursuit_cost_per_shipment: float


@dataclass(slots=True)
class ShipmentSplit:
    """Inputs for one PJO created from a won quotation."""

    pjo_fields: Dict[str, object]
    revenue_items: List[RevenueItem] = field(default_factory=list)
    cost_items: List[CostItem] = field(default_factory=list)
    pursuit_cost_allocation: float = 0.0


def can_transition_status(current: QuotationStatus, target: QuotationStatus) -> bool:
    return target in VALID_STATUS_TRANSITIONS[current]


def valid_next_statuses(
    current: QuotationStatus,
    requires_engineering: bool,
    engineering_status: Optional[EngineeringStatus],
) -> List[QuotationStatus]:
    targets = list(VALID_STATUS_TRANSITIONS[current])
    if current == QuotationStatus.DRAFT:
        if requires_engineering:
            return [
                status
                for status in targets
                if status in {QuotationStatus.ENGINEERING_REVIEW, QuotationStatus.CANCELLED}
            ]
        return [status for status in targets if status != QuotationStatus.ENGINEERING_REVIEW]
    if current == QuotationStatus.ENGINEERING_REVIEW and engineering_status not in ENGINEERING_DONE:
        return [status for status in targets if status == QuotationStatus.CANCELLED]
    return targets


def can_submit_quotation(quotation: Quotation) -> Tuple[bool, str]:
    """Return ``(allowed, reason)``; ``reason`` is empty when allowed."""

    if quotation.status != QuotationStatus.READY:
        return (
            False,
            "Quotation must be in 'ready' status to submit. "
            f"Current status: {quotation.status.value}",
        )
    if quotation.requires_engineering and quotation.engineering_status not in ENGINEERING_DONE:
        return (
            False,
            "Engineering review must be completed or waived before submission. "
            f"Current status: {quotation.engineering_status.value}",
        )
    return True, ""


def calculate_quotation_totals(
    revenue_items: Iterable[RevenueItem],
    cost_items: Iterable[CostItem],
    pursuit_costs: Iterable[PursuitCost],
    estimated_shipments: int = 1,
) -> QuotationFinancials:
    total_revenue = sum((item.subtotal or 0) for item in revenue_items)
    total_cost = sum((item.estimated_amount or 0) for item in cost_items)
    total_pursuit = sum((item.amount or 0) for item in pursuit_costs)
    gross_profit = total_revenue - total_cost
    margin = gross_profit / total_revenue * 100 if total_revenue > 0 else 0.0
    per_shipment = (
        total_pursuit / estimated_shipments if estimated_shipments > 0 else total_pursuit
    )
    return QuotationFinancials(
        total_revenue=total_revenue,
        total_cost=total_cost,
        total_pursuit_cost=total_pursuit,
        gross_profit=gross_profit,
        profit_margin=round_half_up(margin, 2),
        pursuit_cost_per_shipment=round_half_up(per_shipment, 2),
    )


def calculate_pursuit_cost_per_shipment(total_pursuit_cost: float, shipments: int) -> float:
    if shipments <= 0:
        return total_pursuit_cost
    return round_half_up(total_pursuit_cost / shipments, 2)


def prepare_quotation_for_pjo(quotation: Quotation) -> Dict[str, object]:
    """Fields copied onto a PJO created from ``quotation``.

    Engineering was already handled on the quotation, so the PJO does not
    require it again.
    """

    return {
        "customer_id": quotation.customer_id,
        "commodity": quotation.commodity,
        "pol": quotation.origin,
        "pod": quotation.destination,
        "cargo": quotation.cargo,
        "market_type": quotation.market_type,
        "complexity_score": quotation.complexity_score,
        "requires_engineering": False,
        "engineering_status": EngineeringStatus.NOT_REQUIRED,
        "quotation_id": quotation.id,
    }


def split_quotation_by_shipments(
    quotation: Quotation,
    revenue_items: Sequence[RevenueItem],
    cost_items: Sequence[CostItem],
    pursuit_cost_per_shipment: float,
    shipment_count: int,
) -> List[ShipmentSplit]:
    """Divide quantities and estimated costs evenly across shipments."""

    if shipment_count <= 0:
        raise ValueError("Shipment count must be positive")
    base = prepare_quotation_for_pjo(quotation)
    splits: List[ShipmentSplit] = []
    for _ in range(shipment_count):
        splits.append(
            ShipmentSplit(
                pjo_fields=dict(base),
                revenue_items=[
                    RevenueItem(
                        description=item.description,
                        quantity=(item.quantity or 1) / shipment_count,
                        unit=item.unit or "unit",
                        unit_price=item.unit_price,
                    )
                    for item in revenue_items
                ],
                cost_items=[
                    CostItem(
                        id=str(uuid4()),
                        category=item.category,
                        description=item.description,
                        estimated_amount=item.estimated_amount / shipment_count,
                        vendor_id=item.vendor_id,
                        vendor_name=item.vendor_name,
                    )
                    for item in cost_items
                ],
                pursuit_cost_allocation=pursuit_cost_per_shipment,
            )
        )
    return splits


def determine_initial_status(classification: MarketClassification) -> QuotationStatus:
    if classification.requires_engineering:
        return QuotationStatus.ENGINEERING_REVIEW
    return QuotationStatus.DRAFT


def calculate_win_rate(won_count: int, lost_count: int) -> float:
    total = won_count + lost_count
    if total == 0:
        return 0.0
    return round_half_up(won_count / total * 100, 2)


def calculate_pipeline_value(
    quotations: Iterable[Quotation],
    statuses: Iterable[QuotationStatus] = PIPELINE_STATUSES,
) -> float:
    wanted = set(statuses)
    return sum(q.total_revenue or 0 for q in quotations if q.status in wanted)


def days_until_deadline(rfq_deadline: Optional[date], today: date) -> Optional[int]:
    if rfq_deadline is None:
        return None
    return (rfq_deadline - today).days


def is_deadline_approaching(
    rfq_deadline: Optional[date], today: date, days_threshold: int = 3
) -> bool:
    remaining = days_until_deadline(rfq_deadline, today)
    return remaining is not None and 0 < remaining <= days_threshold


def is_quotation_overdue(rfq_deadline: Optional[date], today: date) -> bool:
    return rfq_deadline is not None and today > rfq_deadline


__all__ = [
    "VALID_STATUS_TRANSITIONS",
    "PIPELINE_STATUSES",
    "QuotationFinancials",
    "ShipmentSplit",
    "can_transition_status",
    "valid_next_statuses",
    "can_submit_quotation",
    "calculate_quotation_totals",
    "calculate_pursuit_cost_per_shipment",
    "prepare_quotation_for_pjo",
    "split_quotation_by_shipments",
    "determine_initial_status",
    "calculate_win_rate",
    "calculate_pipeline_value",
    "days_until_deadline",
    "is_deadline_approaching",
    "is_quotation_overdue",
]
