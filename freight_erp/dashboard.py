"""Finance dashboard rollups: receivable aging, overdue lists and KPIs."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from .domain import Invoice, InvoiceStatus, JobOrder, PJOStatus, Payment, ProformaJobOrder
from .invoices import OUTSTANDING_STATUSES
from .job_orders import COMPLETED_STATUSES
from .pjo import calculate_revenue_total

AGING_BUCKETS = ("current", "days31to60", "days61to90", "over90")

PIPELINE_ORDER = (
    PJOStatus.DRAFT,
    PJOStatus.PENDING_APPROVAL,
    PJOStatus.APPROVED,
    PJOStatus.REJECTED,
)

RECENT_PAYMENT_DAYS = 30
CRITICAL_OVERDUE_DAYS = 60


@dataclass(slots=True)
class AgingBucket:
    count: int = 0
    amount: float = 0.0
    invoice_ids: List[str] = field(default_factory=list)


@dataclass(slots=True)
class PipelineEntry:
    status: PJOStatus
    count: int
    total_value: float


@dataclass(slots=True)
class OverdueInvoice:
    id: str
    invoice_number: str
    customer_name: str
    total_amount: float
    due_date: date
    days_overdue: int
    severity: str


@dataclass(slots=True)
class RecentPayment:
    id: str
    invoice_number: str
    customer_name: str
    total_amount: float
    paid_at: datetime


@dataclass(slots=True)
class MonthlyRevenue:
    current: float
    previous: float
    current_count: int
    trend: str


@dataclass(slots=True)
class FinanceKPIs:
    outstanding_ar: float
    outstanding_ar_count: int
    overdue_amount: float
    overdue_count: int
    critical_overdue_count: int
    monthly_revenue: float
    monthly_jo_count: int
    previous_month_revenue: float
    revenue_trend: str


@dataclass(slots=True)
class PartialPaymentsStats:
    count: int
    total_remaining: float


def days_overdue(due_date: date, today: date) -> int:
    """Whole days past ``due_date``; 0 when not yet due."""

    return max(0, (today - due_date).days)


def aging_bucket(due_date: date, today: date) -> str:
    overdue = days_overdue(due_date, today)
    if overdue <= 30:
        return "current"
    if overdue <= 60:
        return "days31to60"
    if overdue <= 90:
        return "days61to90"
    return "over90"


def overdue_severity(days: int) -> str:
    if days <= 30:
        return "warning"
    if days <= 60:
        return "orange"
    return "critical"


def _outstanding(invoices: Iterable[Invoice]) -> List[Invoice]:
    return [invoice for invoice in invoices if invoice.status in OUTSTANDING_STATUSES]


def group_invoices_by_aging(
    invoices: Iterable[Invoice], today: date
) -> Dict[str, AgingBucket]:
    result = {name: AgingBucket() for name in AGING_BUCKETS}
    for invoice in _outstanding(invoices):
        bucket = result[aging_bucket(invoice.due_date, today)]
        bucket.count += 1
        bucket.amount += invoice.total_amount
        bucket.invoice_ids.append(invoice.id)
    return result


def group_pjos_by_status(pjos: Iterable[ProformaJobOrder]) -> List[PipelineEntry]:
    """Count and revenue per status, in pipeline order, active PJOs only."""

    counts = {status: 0 for status in PIPELINE_ORDER}
    values = {status: 0.0 for status in PIPELINE_ORDER}
    for pjo in pjos:
        if not pjo.is_active or pjo.status not in counts:
            continue
        counts[pjo.status] += 1
        values[pjo.status] += calculate_revenue_total(pjo.revenue_items)
    return [
        PipelineEntry(status=status, count=counts[status], total_value=values[status])
        for status in PIPELINE_ORDER
    ]


def filter_overdue_invoices(
    invoices: Iterable[Invoice],
    today: date,
    customer_names: Optional[Mapping[str, str]] = None,
) -> List[OverdueInvoice]:
    names = customer_names or {}
    overdue = []
    for invoice in _outstanding(invoices):
        if invoice.due_date >= today:
            continue
        days = days_overdue(invoice.due_date, today)
        overdue.append(
            OverdueInvoice(
                id=invoice.id,
                invoice_number=invoice.invoice_number,
                customer_name=names.get(invoice.customer_id, ""),
                total_amount=invoice.total_amount,
                due_date=invoice.due_date,
                days_overdue=days,
                severity=overdue_severity(days),
            )
        )
    overdue.sort(key=lambda item: item.days_overdue, reverse=True)
    return overdue


def filter_recent_payments(
    invoices: Iterable[Invoice],
    today: date,
    customer_names: Optional[Mapping[str, str]] = None,
) -> List[RecentPayment]:
    """Invoices paid in the last 30 days, most recent first."""

    names = customer_names or {}
    cutoff = today - timedelta(days=RECENT_PAYMENT_DAYS)
    recent = [
        RecentPayment(
            id=invoice.id,
            invoice_number=invoice.invoice_number,
            customer_name=names.get(invoice.customer_id, ""),
            total_amount=invoice.total_amount,
            paid_at=invoice.paid_at,
        )
        for invoice in invoices
        if invoice.status == InvoiceStatus.PAID
        and invoice.paid_at is not None
        and invoice.paid_at.date() >= cutoff
    ]
    recent.sort(key=lambda item: item.paid_at, reverse=True)
    return recent


def _previous_month(today: date) -> Tuple[int, int]:
    if today.month == 1:
        return today.year - 1, 12
    return today.year, today.month - 1


def calculate_monthly_revenue(job_orders: Iterable[JobOrder], today: date) -> MonthlyRevenue:
    """Final revenue of JOs completed this month against last month."""

    previous_key = _previous_month(today)
    current_total = previous_total = 0.0
    current_count = 0
    for jo in job_orders:
        if jo.status not in COMPLETED_STATUSES or jo.completed_at is None:
            continue
        key = (jo.completed_at.year, jo.completed_at.month)
        if key == (today.year, today.month):
            current_total += jo.final_revenue or 0
            current_count += 1
        elif key == previous_key:
            previous_total += jo.final_revenue or 0
    if current_total > previous_total:
        trend = "up"
    elif current_total < previous_total:
        trend = "down"
    else:
        trend = "stable"
    return MonthlyRevenue(
        current=current_total,
        previous=previous_total,
        current_count=current_count,
        trend=trend,
    )


def calculate_finance_kpis(
    invoices: Sequence[Invoice], job_orders: Iterable[JobOrder], today: date
) -> FinanceKPIs:
    outstanding = _outstanding(invoices)
    overdue = [invoice for invoice in outstanding if invoice.due_date < today]
    critical = [
        invoice
        for invoice in overdue
        if days_overdue(invoice.due_date, today) > CRITICAL_OVERDUE_DAYS
    ]
    monthly = calculate_monthly_revenue(job_orders, today)
    return FinanceKPIs(
        outstanding_ar=sum(invoice.total_amount for invoice in outstanding),
        outstanding_ar_count=len(outstanding),
        overdue_amount=sum(invoice.total_amount for invoice in overdue),
        overdue_count=len(overdue),
        critical_overdue_count=len(critical),
        monthly_revenue=monthly.current,
        monthly_jo_count=monthly.current_count,
        previous_month_revenue=monthly.previous,
        revenue_trend=monthly.trend,
    )


def partial_payments_stats(invoices: Iterable[Invoice]) -> PartialPaymentsStats:
    partial = [invoice for invoice in invoices if invoice.status == InvoiceStatus.PARTIAL]
    return PartialPaymentsStats(
        count=len(partial),
        total_remaining=sum(invoice.balance_due for invoice in partial),
    )


def monthly_payments_total(payments: Iterable[Payment], today: date) -> float:
    return sum(
        payment.amount
        for payment in payments
        if payment.payment_date.year == today.year
        and payment.payment_date.month == today.month
    )


__all__ = [
    "AGING_BUCKETS",
    "PIPELINE_ORDER",
    "AgingBucket",
    "PipelineEntry",
    "OverdueInvoice",
    "RecentPayment",
    "MonthlyRevenue",
    "FinanceKPIs",
    "PartialPaymentsStats",
    "days_overdue",
    "aging_bucket",
    "overdue_severity",
    "group_invoices_by_aging",
    "group_pjos_by_status",
    "filter_overdue_invoices",
    "filter_recent_payments",
    "calculate_monthly_revenue",
    "calculate_finance_kpis",
    "partial_payments_stats",
    "monthly_payments_total",
]
