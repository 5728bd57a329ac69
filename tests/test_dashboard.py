"""Finance dashboard rollups."""

from datetime import date, datetime

from freight_erp.dashboard import (
    aging_bucket,
    calculate_finance_kpis,
    calculate_monthly_revenue,
    days_overdue,
    filter_overdue_invoices,
    filter_recent_payments,
    group_invoices_by_aging,
    group_pjos_by_status,
    monthly_payments_total,
    overdue_severity,
    partial_payments_stats,
)
from freight_erp.domain import (
    Invoice,
    InvoiceStatus,
    JobOrder,
    JOStatus,
    Payment,
    PJOStatus,
    ProformaJobOrder,
    RevenueItem,
)

TODAY = date(2025, 6, 30)


def invoice(number, due_date, status=InvoiceStatus.SENT, total=1_000_000, **kwargs):
    return Invoice(
        id=number,
        invoice_number=number,
        jo_id="jo",
        customer_id="c-1",
        invoice_date=date(2025, 1, 1),
        due_date=due_date,
        total_amount=total,
        status=status,
        **kwargs,
    )


def job_order(number, completed_at, revenue, status=JOStatus.COMPLETED):
    return JobOrder(
        id=number,
        jo_number=number,
        pjo_id="p",
        customer_id="c-1",
        status=status,
        final_revenue=revenue,
        completed_at=completed_at,
    )


def test_days_overdue_and_buckets():
    assert days_overdue(date(2025, 7, 10), TODAY) == 0
    assert days_overdue(date(2025, 6, 20), TODAY) == 10
    assert aging_bucket(date(2025, 5, 31), TODAY) == "current"
    assert aging_bucket(date(2025, 5, 30), TODAY) == "days31to60"
    assert aging_bucket(date(2025, 4, 1), TODAY) == "days61to90"
    assert aging_bucket(date(2025, 3, 1), TODAY) == "over90"


def test_severity():
    assert overdue_severity(30) == "warning"
    assert overdue_severity(31) == "orange"
    assert overdue_severity(61) == "critical"


def test_aging_groups_only_outstanding_invoices():
    invoices = [
        invoice("A", date(2025, 7, 15)),
        invoice("B", date(2025, 5, 1), InvoiceStatus.PARTIAL, total=2_000_000),
        invoice("C", date(2025, 1, 1), InvoiceStatus.OVERDUE),
        invoice("D", date(2025, 1, 1), InvoiceStatus.PAID),
        invoice("E", date(2025, 1, 1), InvoiceStatus.DRAFT),
    ]
    aging = group_invoices_by_aging(invoices, TODAY)

    assert list(aging) == ["current", "days31to60", "days61to90", "over90"]
    assert aging["current"].invoice_ids == ["A"]
    assert aging["days31to60"].amount == 2_000_000
    assert aging["days61to90"].count == 0
    assert aging["over90"].invoice_ids == ["C"]


def test_pjo_pipeline_skips_deleted():
    def pjo(number, status, price, is_active=True):
        return ProformaJobOrder(
            id=number,
            pjo_number=number,
            customer_id="c",
            commodity="x",
            pol="a",
            pod="b",
            jo_date=TODAY,
            status=status,
            revenue_items=[RevenueItem("Freight", 1, "trip", price)],
            is_active=is_active,
        )

    entries = group_pjos_by_status(
        [
            pjo("1", PJOStatus.DRAFT, 10),
            pjo("2", PJOStatus.DRAFT, 20),
            pjo("3", PJOStatus.APPROVED, 40),
            pjo("4", PJOStatus.APPROVED, 80, is_active=False),
        ]
    )
    by_status = {entry.status: entry for entry in entries}

    assert [entry.status for entry in entries][0] == PJOStatus.DRAFT
    assert by_status[PJOStatus.DRAFT].count == 2
    assert by_status[PJOStatus.DRAFT].total_value == 30
    assert by_status[PJOStatus.APPROVED].total_value == 40
    assert by_status[PJOStatus.REJECTED].count == 0


def test_overdue_list_is_sorted_by_age():
    invoices = [
        invoice("A", date(2025, 6, 20)),
        invoice("B", date(2025, 3, 1)),
        invoice("C", TODAY),
    ]
    overdue = filter_overdue_invoices(invoices, TODAY, {"c-1": "PT Maju"})

    assert [item.invoice_number for item in overdue] == ["B", "A"]
    assert overdue[0].severity == "critical"
    assert overdue[0].customer_name == "PT Maju"


def test_recent_payments():
    invoices = [
        invoice("A", TODAY, InvoiceStatus.PAID, paid_at=datetime(2025, 6, 1, 9)),
        invoice("B", TODAY, InvoiceStatus.PAID, paid_at=datetime(2025, 6, 25, 9)),
        invoice("C", TODAY, InvoiceStatus.PAID, paid_at=datetime(2025, 5, 1, 9)),
        invoice("D", TODAY, InvoiceStatus.SENT),
    ]
    recent = filter_recent_payments(invoices, TODAY)
    assert [item.invoice_number for item in recent] == ["B", "A"]


def test_monthly_revenue_trend_across_year_boundary():
    today = date(2025, 1, 15)
    jos = [
        job_order("1", datetime(2025, 1, 3), 50),
        job_order("2", datetime(2024, 12, 20), 80),
        job_order("3", datetime(2025, 1, 10), 10, status=JOStatus.ACTIVE),
    ]
    revenue = calculate_monthly_revenue(jos, today)

    assert revenue.current == 50
    assert revenue.previous == 80
    assert revenue.current_count == 1
    assert revenue.trend == "down"
    assert calculate_monthly_revenue([], today).trend == "stable"


def test_finance_kpis():
    invoices = [
        invoice("A", date(2025, 7, 15), total=1_000),
        invoice("B", date(2025, 6, 1), total=2_000),
        invoice("C", date(2025, 3, 1), InvoiceStatus.OVERDUE, total=4_000),
        invoice("D", date(2025, 3, 1), InvoiceStatus.PAID, total=8_000),
    ]
    jos = [job_order("1", datetime(2025, 6, 2), 500)]
    kpis = calculate_finance_kpis(invoices, jos, TODAY)

    assert kpis.outstanding_ar == 7_000
    assert kpis.outstanding_ar_count == 3
    assert kpis.overdue_amount == 6_000
    assert kpis.overdue_count == 2
    assert kpis.critical_overdue_count == 1
    assert kpis.monthly_revenue == 500
    assert kpis.revenue_trend == "up"


def test_partial_payments_and_monthly_total():
    invoices = [
        invoice("A", TODAY, InvoiceStatus.PARTIAL, total=1_000, amount_paid=400),
        invoice("B", TODAY, InvoiceStatus.SENT, total=1_000),
    ]
    stats = partial_payments_stats(invoices)
    assert stats.count == 1
    assert stats.total_remaining == 600

    payments = [
        Payment("1", "A", 400, date(2025, 6, 3)),
        Payment("2", "A", 100, date(2025, 5, 31)),
    ]
    assert monthly_payments_total(payments, TODAY) == 400
