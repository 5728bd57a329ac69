"""PJO margins, cost confirmation status and budget checks."""

from datetime import date

import pytest

from freight_erp.domain import (
    CostItem,
    CostItemStatus,
    PJOStatus,
    ProformaJobOrder,
    RevenueItem,
)
from freight_erp.pjo import (
    analyze_budget,
    budget_usage_percent,
    budget_warning_level,
    calculate_cost_status,
    calculate_cost_total,
    calculate_margin,
    calculate_revenue_total,
    can_edit_cost_items,
    can_transition_status,
    determine_cost_status,
    filter_pjos,
    validate_date_order,
    validate_positive_margin,
)


def test_transitions():
    assert can_transition_status(PJOStatus.DRAFT, PJOStatus.PENDING_APPROVAL)
    assert can_transition_status(PJOStatus.PENDING_APPROVAL, PJOStatus.REJECTED)
    assert not can_transition_status(PJOStatus.DRAFT, PJOStatus.APPROVED)
    assert not can_transition_status(PJOStatus.APPROVED, PJOStatus.DRAFT)


def test_margin():
    assert calculate_margin(100, 70) == 30.0
    assert calculate_margin(0, 50) == 0.0
    assert calculate_margin(100, 120) == -20.0


def test_totals():
    revenue = [RevenueItem("a", 2, "trip", 10), RevenueItem("b", 1, "lot", 5)]
    costs = [CostItem("1", "other", "x", 10, actual_amount=12), CostItem("2", "other", "y", 5)]

    assert calculate_revenue_total(revenue) == 25
    assert calculate_cost_total(costs) == 15
    assert calculate_cost_total(costs, "actual") == 12
    with pytest.raises(ValueError):
        calculate_cost_total(costs, "budget")


def test_cost_status_bands():
    assert calculate_cost_status(1_000, 850).status == CostItemStatus.CONFIRMED
    assert calculate_cost_status(1_000, 900).status == CostItemStatus.CONFIRMED
    assert calculate_cost_status(1_000, 950).status == CostItemStatus.AT_RISK
    assert calculate_cost_status(1_000, 1_000).status == CostItemStatus.AT_RISK

    exceeded = calculate_cost_status(1_000, 1_100)
    assert exceeded.status == CostItemStatus.EXCEEDED
    assert exceeded.variance == 100
    assert exceeded.variance_pct == pytest.approx(10.0)


def test_determine_cost_status():
    assert determine_cost_status(100, 120) == CostItemStatus.EXCEEDED
    assert determine_cost_status(100, 80) == CostItemStatus.UNDER_BUDGET
    assert determine_cost_status(100, 100) == CostItemStatus.CONFIRMED


def test_budget_warning_level():
    assert budget_warning_level(1_000, 899) == "safe"
    assert budget_warning_level(1_000, 900) == "warning"
    assert budget_warning_level(1_000, 1_001) == "exceeded"
    assert budget_usage_percent(0, 10) == 0.0
    assert budget_usage_percent(200, 50) == 25.0


def test_analyze_budget():
    items = [
        CostItem("1", "other", "a", 100, actual_amount=120, status=CostItemStatus.EXCEEDED),
        CostItem("2", "other", "b", 100, actual_amount=80, status=CostItemStatus.UNDER_BUDGET),
        CostItem("3", "other", "c", 100),
    ]
    analysis = analyze_budget(items)

    assert analysis.total_estimated == 300
    assert analysis.total_actual == 200
    assert analysis.items_confirmed == 2
    assert analysis.items_pending == 1
    assert analysis.items_over_budget == 1
    assert analysis.items_under_budget == 1
    assert analysis.all_confirmed is False
    assert analysis.has_overruns is True


def test_positive_margin_required():
    assert validate_positive_margin(100, 90) is None
    message = validate_positive_margin(100, 100)
    assert message is not None
    assert "Rp 100" in message
    assert message.endswith("Current margin: 0.00%")


def test_date_order():
    assert validate_date_order(date(2025, 1, 2), date(2025, 1, 1)) is not None
    assert validate_date_order(date(2025, 1, 1), date(2025, 1, 1)) is None
    assert validate_date_order(None, date(2025, 1, 1)) is None


def test_cost_editing_roles():
    assert can_edit_cost_items("ops", PJOStatus.APPROVED, False)
    assert can_edit_cost_items("admin", PJOStatus.APPROVED, None)
    assert not can_edit_cost_items("finance", PJOStatus.APPROVED, False)
    assert not can_edit_cost_items("ops", PJOStatus.DRAFT, False)
    assert not can_edit_cost_items("ops", PJOStatus.APPROVED, True)


def test_filter_pjos_date_bounds_are_inclusive():
    def pjo(number, jo_date, status=PJOStatus.DRAFT):
        return ProformaJobOrder(
            id=number,
            pjo_number=number,
            customer_id="c",
            commodity="x",
            pol="a",
            pod="b",
            jo_date=jo_date,
            status=status,
        )

    items = [
        pjo("1", date(2025, 1, 1)),
        pjo("2", date(2025, 1, 15), PJOStatus.APPROVED),
        pjo("3", date(2025, 2, 1)),
    ]

    in_january = filter_pjos(items, date_from=date(2025, 1, 1), date_to=date(2025, 1, 15))
    assert [p.id for p in in_january] == ["1", "2"]
    assert [p.id for p in filter_pjos(items, status="approved")] == ["2"]
    assert len(filter_pjos(items, status="all")) == 3
