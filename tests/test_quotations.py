"""Quotation workflow rules, totals and shipment splitting."""

from datetime import date

import pytest

from freight_erp.domain import (
    CostItem,
    EngineeringStatus,
    PursuitCost,
    Quotation,
    QuotationStatus,
    RevenueItem,
)
from freight_erp.quotations import (
    calculate_pipeline_value,
    calculate_pursuit_cost_per_shipment,
    calculate_quotation_totals,
    calculate_win_rate,
    can_submit_quotation,
    can_transition_status,
    days_until_deadline,
    is_deadline_approaching,
    is_quotation_overdue,
    split_quotation_by_shipments,
    valid_next_statuses,
)


def make_quotation(**overrides) -> Quotation:
    fields = dict(
        id="q-1",
        quotation_number="QUO-2025-0001",
        customer_id="c-1",
        title="Transformer move",
        origin="Cilegon",
        destination="Kupang",
    )
    fields.update(overrides)
    return Quotation(**fields)


def test_transitions():
    assert can_transition_status(QuotationStatus.DRAFT, QuotationStatus.READY)
    assert can_transition_status(QuotationStatus.SUBMITTED, QuotationStatus.WON)
    assert not can_transition_status(QuotationStatus.DRAFT, QuotationStatus.SUBMITTED)
    assert not can_transition_status(QuotationStatus.WON, QuotationStatus.CANCELLED)


def test_next_statuses_depend_on_engineering():
    assert valid_next_statuses(
        QuotationStatus.DRAFT, True, EngineeringStatus.PENDING
    ) == [QuotationStatus.ENGINEERING_REVIEW, QuotationStatus.CANCELLED]
    assert valid_next_statuses(
        QuotationStatus.DRAFT, False, EngineeringStatus.NOT_REQUIRED
    ) == [QuotationStatus.READY, QuotationStatus.CANCELLED]
    assert valid_next_statuses(
        QuotationStatus.ENGINEERING_REVIEW, True, EngineeringStatus.PENDING
    ) == [QuotationStatus.CANCELLED]
    assert valid_next_statuses(
        QuotationStatus.ENGINEERING_REVIEW, True, EngineeringStatus.WAIVED
    ) == [QuotationStatus.READY, QuotationStatus.CANCELLED]


def test_can_submit_requires_ready_and_engineering():
    ok, reason = can_submit_quotation(make_quotation(status=QuotationStatus.DRAFT))
    assert not ok
    assert "ready" in reason

    blocked = make_quotation(
        status=QuotationStatus.READY,
        requires_engineering=True,
        engineering_status=EngineeringStatus.PENDING,
    )
    ok, reason = can_submit_quotation(blocked)
    assert not ok
    assert reason.startswith("Engineering review")

    assert can_submit_quotation(make_quotation(status=QuotationStatus.READY)) == (True, "")


def test_totals():
    totals = calculate_quotation_totals(
        [RevenueItem("Freight", 2, "trip", 50_000_000)],
        [CostItem("a", "trucking", "Trailer", 70_000_000)],
        [PursuitCost("Survey", 3_000_000)],
        estimated_shipments=2,
    )

    assert totals.total_revenue == 100_000_000
    assert totals.total_cost == 70_000_000
    assert totals.gross_profit == 30_000_000
    assert totals.profit_margin == 30.0
    assert totals.pursuit_cost_per_shipment == 1_500_000


def test_totals_without_revenue_have_zero_margin():
    totals = calculate_quotation_totals([], [CostItem("a", "other", "x", 10)], [])
    assert totals.profit_margin == 0.0


def test_pursuit_cost_per_shipment():
    assert calculate_pursuit_cost_per_shipment(10_000_000, 3) == 3_333_333.33
    assert calculate_pursuit_cost_per_shipment(10_000_000, 0) == 10_000_000


def test_split_by_shipments_divides_quantities_and_costs():
    quotation = make_quotation(commodity="Transformer")
    revenue = [RevenueItem("Freight", 2, "trip", 50_000_000)]
    costs = [CostItem("a", "trucking", "Trailer", 70_000_000, vendor_id="v-1")]

    splits = split_quotation_by_shipments(quotation, revenue, costs, 1_500_000, 2)

    assert len(splits) == 2
    first, second = splits
    assert first.pjo_fields["pol"] == "Cilegon"
    assert first.pjo_fields["quotation_id"] == "q-1"
    assert first.revenue_items[0].quantity == 1
    assert first.revenue_items[0].subtotal == 50_000_000
    assert first.cost_items[0].estimated_amount == 35_000_000
    assert first.cost_items[0].vendor_id == "v-1"
    assert first.cost_items[0].id != second.cost_items[0].id
    assert first.pursuit_cost_allocation == 1_500_000


def test_split_rejects_non_positive_count():
    with pytest.raises(ValueError):
        split_quotation_by_shipments(make_quotation(), [], [], 0, 0)


def test_win_rate():
    assert calculate_win_rate(3, 1) == 75.0
    assert calculate_win_rate(1, 2) == 33.33
    assert calculate_win_rate(0, 0) == 0.0


def test_pipeline_value_counts_open_quotations():
    quotations = [
        make_quotation(status=QuotationStatus.DRAFT, total_revenue=10),
        make_quotation(status=QuotationStatus.SUBMITTED, total_revenue=20),
        make_quotation(status=QuotationStatus.WON, total_revenue=40),
    ]
    assert calculate_pipeline_value(quotations) == 30


def test_deadlines():
    today = date(2025, 1, 8)

    assert days_until_deadline(None, today) is None
    assert days_until_deadline(date(2025, 1, 10), today) == 2
    assert is_deadline_approaching(date(2025, 1, 10), today)
    assert not is_deadline_approaching(today, today)
    assert not is_deadline_approaching(date(2025, 1, 20), today)
    assert is_quotation_overdue(date(2025, 1, 7), today)
    assert not is_quotation_overdue(today, today)
