"""Invoice totals, status rules and split-billing terms."""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import date, timedelta
from typing import Iterable, List, Mapping, Sequence, Tuple

from .domain import (
    InvoiceLineItem,
    InvoiceStatus,
    InvoiceTerm,
    JOStatus,
    RevenueItem,
    TermStatus,
    TermTrigger,
)
from .job_orders import COMPLETED_STATUSES

VAT_RATE = 0.11
TERMS_TOLERANCE = 0.01

VALID_STATUS_TRANSITIONS: Mapping[InvoiceStatus, Tuple[InvoiceStatus, ...]] = {
    InvoiceStatus.DRAFT: (InvoiceStatus.SENT, InvoiceStatus.CANCELLED),
    InvoiceStatus.SENT: (
        InvoiceStatus.PAID,
        InvoiceStatus.PARTIAL,
        InvoiceStatus.OVERDUE,
        InvoiceStatus.CANCELLED,
    ),
    InvoiceStatus.PARTIAL: (
        InvoiceStatus.PAID,
        InvoiceStatus.OVERDUE,
        InvoiceStatus.CANCELLED,
    ),
    InvoiceStatus.OVERDUE: (
        InvoiceStatus.PAID,
        InvoiceStatus.PARTIAL,
        InvoiceStatus.CANCELLED,
    ),
    InvoiceStatus.PAID: (),
    InvoiceStatus.CANCELLED: (),
}

OUTSTANDING_STATUSES = frozenset(
    {InvoiceStatus.SENT, InvoiceStatus.PARTIAL, InvoiceStatus.OVERDUE}
)

PRESET_LABELS: Mapping[str, str] = {
    "single": "Single Invoice (100%)",
    "dp_final": "DP + Final (30/70)",
    "dp_delivery_final": "DP + Delivery + Final (30/50/20)",
    "custom": "Custom",
}

INVOICE_TERM_PRESETS: Mapping[str, Tuple[InvoiceTerm, ...]] = {
    "single": (
        InvoiceTerm("full", 100, "Full Payment", TermTrigger.JO_CREATED),
    ),
    "dp_final": (
        InvoiceTerm("down_payment", 30, "Down Payment", TermTrigger.JO_CREATED),
        InvoiceTerm("final", 70, "Final Payment", TermTrigger.DELIVERY),
    ),
    "dp_delivery_final": (
        InvoiceTerm("down_payment", 30, "Down Payment", TermTrigger.JO_CREATED),
        InvoiceTerm("delivery", 50, "Upon Delivery", TermTrigger.SURAT_JALAN),
        InvoiceTerm("final", 20, "After Handover", TermTrigger.BERITA_ACARA),
    ),
}


@dataclass(slots=True)
class InvoiceTotals:
    subtotal: float
    vat_amount: float
    total_amount: float


@dataclass(slots=True)
class RevenueDiscrepancy:
    has_discrepancy: bool
    pjo_revenue_total: float
    jo_final_revenue: float
    difference: float
    difference_percent: float


# ----------------------------------------------------------------------
# Line items and totals
# ----------------------------------------------------------------------
def calculate_line_item_subtotal(quantity: float, unit_price: float) -> float:
    return quantity * unit_price


def calculate_vat(amount: float, vat_rate: float = VAT_RATE) -> float:
    return amount * vat_rate


def calculate_invoice_totals(
    line_items: Iterable[InvoiceLineItem], vat_rate: float = VAT_RATE
) -> InvoiceTotals:
    subtotal = sum(
        calculate_line_item_subtotal(item.quantity, item.unit_price) for item in line_items
    )
    vat = calculate_vat(subtotal, vat_rate)
    return InvoiceTotals(subtotal=subtotal, vat_amount=vat, total_amount=subtotal + vat)


def copy_line_items_from_revenue(items: Sequence[RevenueItem]) -> List[InvoiceLineItem]:
    """Turn PJO revenue lines into invoice lines numbered from 1."""

    return [
        InvoiceLineItem(
            line_number=index,
            description=item.description,
            quantity=item.quantity,
            unit=item.unit,
            unit_price=item.unit_price,
        )
        for index, item in enumerate(items, start=1)
    ]


def default_due_date(invoice_date: date, payment_terms_days: int) -> date:
    return invoice_date + timedelta(days=payment_terms_days)


# ----------------------------------------------------------------------
# Status rules
# ----------------------------------------------------------------------
def is_valid_status_transition(current: InvoiceStatus, target: InvoiceStatus) -> bool:
    return target in VALID_STATUS_TRANSITIONS[current]


def is_invoice_overdue(due_date: date, status: InvoiceStatus, today: date) -> bool:
    """Only invoices sent to the customer and still unpaid can be overdue."""

    if status not in {InvoiceStatus.SENT, InvoiceStatus.PARTIAL}:
        return False
    return due_date < today


# ----------------------------------------------------------------------
# Split billing terms
# ----------------------------------------------------------------------
def preset_terms(preset: str) -> List[InvoiceTerm]:
    """Fresh copies of a preset's terms; ``custom`` has none."""

    if preset == "custom":
        return []
    try:
        terms = INVOICE_TERM_PRESETS[preset]
    except KeyError as exc:
        raise ValueError(f"Unknown invoice term preset {preset!r}") from exc
    return [replace(term) for term in terms]


def terms_percentage_total(terms: Iterable[InvoiceTerm]) -> float:
    return sum(term.percentage for term in terms)


def validate_terms_total(terms: Sequence[InvoiceTerm]) -> bool:
    if not terms:
        return False
    return abs(terms_percentage_total(terms) - 100) < TERMS_TOLERANCE


def calculate_term_amount(revenue: float, percentage: float) -> float:
    return revenue * percentage / 100


def term_invoice_totals(
    revenue: float, percentage: float, vat_rate: float = VAT_RATE
) -> InvoiceTotals:
    subtotal = calculate_term_amount(revenue, percentage)
    vat = calculate_vat(subtotal, vat_rate)
    return InvoiceTotals(subtotal=subtotal, vat_amount=vat, total_amount=subtotal + vat)


def term_status(
    term: InvoiceTerm,
    jo_status: JOStatus,
    has_surat_jalan: bool = False,
    has_berita_acara: bool = False,
) -> TermStatus:
    if term.invoiced:
        return TermStatus.INVOICED
    if term.trigger == TermTrigger.JO_CREATED:
        return TermStatus.READY
    if term.trigger == TermTrigger.DELIVERY:
        return TermStatus.READY if jo_status in COMPLETED_STATUSES else TermStatus.LOCKED
    if term.trigger == TermTrigger.SURAT_JALAN:
        return TermStatus.READY if has_surat_jalan else TermStatus.LOCKED
    if term.trigger == TermTrigger.BERITA_ACARA:
        return TermStatus.READY if has_berita_acara else TermStatus.LOCKED
    return TermStatus.PENDING


def term_status_label(status: TermStatus) -> str:
    return {
        TermStatus.INVOICED: "Invoiced",
        TermStatus.READY: "Ready",
        TermStatus.LOCKED: "Locked",
        TermStatus.PENDING: "Pending",
    }.get(status, "Unknown")


def locked_trigger_description(trigger: TermTrigger) -> str:
    return {
        TermTrigger.SURAT_JALAN: "Requires Surat Jalan document",
        TermTrigger.BERITA_ACARA: "Requires Berita Acara document",
        TermTrigger.DELIVERY: "Requires JO completion",
    }.get(trigger, "")


def has_any_invoiced_term(terms: Iterable[InvoiceTerm]) -> bool:
    return any(term.invoiced for term in terms)


def total_invoiced_from_terms(
    terms: Iterable[InvoiceTerm], revenue: float, vat_rate: float = VAT_RATE
) -> float:
    return sum(
        term_invoice_totals(revenue, term.percentage, vat_rate).total_amount
        for term in terms
        if term.invoiced
    )


def total_invoiceable_amount(revenue: float, vat_rate: float = VAT_RATE) -> float:
    return revenue + calculate_vat(revenue, vat_rate)


def empty_term() -> InvoiceTerm:
    return InvoiceTerm(term="", percentage=0, description="")


def detect_preset_from_terms(terms: Sequence[InvoiceTerm]) -> str:
    for name, preset in INVOICE_TERM_PRESETS.items():
        if len(terms) != len(preset):
            continue
        if all(
            term.term == expected.term and term.percentage == expected.percentage
            for term, expected in zip(terms, preset)
        ):
            return name
    return "custom"


def check_revenue_discrepancy(
    pjo_revenue_total: float, jo_final_revenue: float, tolerance: float = 0.01
) -> RevenueDiscrepancy:
    """Compare the PJO revenue lines against the JO's final revenue.

    ``tolerance`` is a fraction; 0.01 flags differences above 1%.
    """

    difference = pjo_revenue_total - jo_final_revenue
    if jo_final_revenue > 0:
        difference_percent = difference / jo_final_revenue * 100
    else:
        difference_percent = 100.0 if pjo_revenue_total > 0 else 0.0
    return RevenueDiscrepancy(
        has_discrepancy=abs(difference_percent) > tolerance * 100,
        pjo_revenue_total=pjo_revenue_total,
        jo_final_revenue=jo_final_revenue,
        difference=difference,
        difference_percent=difference_percent,
    )


def uninvoiced_revenue(terms: Iterable[InvoiceTerm], revenue: float) -> Tuple[float, float]:
    """Return ``(amount, percent)`` of revenue not yet covered by an invoice."""

    invoiced_percent = sum(term.percentage for term in terms if term.invoiced)
    remaining = 100 - invoiced_percent
    return calculate_term_amount(revenue, remaining), remaining


__all__ = [
    "VAT_RATE",
    "VALID_STATUS_TRANSITIONS",
    "OUTSTANDING_STATUSES",
    "PRESET_LABELS",
    "INVOICE_TERM_PRESETS",
    "InvoiceTotals",
    "RevenueDiscrepancy",
    "calculate_line_item_subtotal",
    "calculate_vat",
    "calculate_invoice_totals",
    "copy_line_items_from_revenue",
    "default_due_date",
    "is_valid_status_transition",
    "is_invoice_overdue",
    "preset_terms",
    "terms_percentage_total",
    "validate_terms_total",
    "calculate_term_amount",
    "term_invoice_totals",
    "term_status",
    "term_status_label",
    "locked_trigger_description",
    "has_any_invoiced_term",
    "total_invoiced_from_terms",
    "total_invoiceable_amount",
    "empty_term",
    "detect_preset_from_terms",
    "check_revenue_discrepancy",
    "uninvoiced_revenue",
]
