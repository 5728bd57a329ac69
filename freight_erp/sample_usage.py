"""Demonstration script for the freight forwarding ERP."""

from __future__ import annotations

from datetime import date, timedelta
from pprint import pprint

from . import CargoSpecification, FreightERPService, QuotationStatus
from .domain import InvoiceStatus
from .formatting import format_idr, format_margin
from .invoices import term_status_label


def main() -> None:
    erp = FreightERPService()
    today = date.today()

    # Master data
    customer = erp.create_customer(
        name="PT Baja Konstruksi Indonesia",
        address="Kawasan Industri Cikarang Blok C-7",
        contact_person="Dewi Lestari",
        contact_email="dewi.lestari@bajakonstruksi.co.id",
    )
    trucker = erp.register_vendor(
        "PT Armada Berat Nusantara", "trucking", is_preferred=True
    )

    # Quotation for a two-shipment project cargo move
    quotation = erp.create_quotation(
        customer.id,
        "Steel girders Cikarang - Balikpapan",
        "Cikarang",
        "Balikpapan",
        commodity="Steel girders",
        cargo=CargoSpecification(
            cargo_weight_kg=38_000,
            cargo_length_m=18,
            is_new_route=True,
        ),
        estimated_shipments=2,
        rfq_deadline=today + timedelta(days=5),
    )
    erp.add_quotation_revenue_item(quotation.id, "Door to door project cargo", 2, "trip", 140_000_000)
    erp.add_quotation_cost_item(
        quotation.id, "trucking", "Extendable trailer", 120_000_000, vendor_id=trucker.id
    )
    erp.add_quotation_cost_item(quotation.id, "port_charges", "Stevedoring", 40_000_000)
    erp.add_quotation_pursuit_cost(quotation.id, "Site survey Balikpapan", 8_000_000)
    quotation = erp.classify_quotation(quotation.id)

    print(f"Quotation {quotation.quotation_number}")
    print(f" market type: {quotation.market_type.value} (score {quotation.complexity_score:g})")
    for factor in quotation.complexity_factors:
        print(f"   + {factor.criteria_name}: {factor.triggered_value}")
    financials = erp.quotation_financials(quotation.id)
    print(
        f" revenue {format_idr(financials.total_revenue)}, "
        f"margin {format_margin(financials.profit_margin)}"
    )

    erp.complete_engineering(quotation.id)
    erp.transition_quotation(quotation.id, QuotationStatus.READY)
    erp.transition_quotation(quotation.id, QuotationStatus.SUBMITTED)
    pjos = erp.mark_quotation_won(quotation.id, jo_date=today)
    print(f"\nWon; created {', '.join(p.pjo_number for p in pjos)}")

    # First shipment through operations and finance
    pjo = pjos[0]
    erp.submit_pjo(pjo.id)
    erp.approve_pjo(pjo.id)
    for item in erp.pjos.get(pjo.id).cost_items:
        confirmed = erp.confirm_cost_item(pjo.id, item.id, item.estimated_amount * 1.05, role="ops")
        print(f" cost {confirmed.description}: {confirmed.status.value}")
    job_order = erp.convert_pjo_to_jo(pjo.id, today=today)
    erp.apply_invoice_term_preset(job_order.id, "dp_final")

    dp_invoice = erp.create_term_invoice(job_order.id, 0, invoice_date=today)
    erp.transition_invoice(dp_invoice.id, InvoiceStatus.SENT)
    erp.record_payment(dp_invoice.id, dp_invoice.total_amount / 2, reference="TRF-001")

    erp.complete_job_order(job_order.id)
    erp.submit_job_order_to_finance(job_order.id)
    statuses = erp.invoice_term_statuses(job_order.id)
    print("\nInvoice terms")
    for term, status in zip(erp.job_orders.get(job_order.id).invoice_terms, statuses):
        print(f" - {term.description} {term.percentage:g}%: {term_status_label(status)}")

    # Payroll
    erp.install_standard_components()
    erp.register_employee("EMP-101", "Rina Kusuma", 9_000_000, position="Dispatcher")
    erp.register_employee("EMP-102", "Joko Widodo", 15_000_000, position="Ops Manager")
    year, month = (today.year, today.month)
    period = erp.create_payroll_period(year, month, date(year, month, 28) + timedelta(days=4))
    period = erp.run_payroll(period.id)
    print(f"\nPayroll {period.period_name}: net {format_idr(period.total_net)}")

    print("\nDashboard")
    pprint(erp.dashboard_snapshot(today).kpis)


if __name__ == "__main__":  # pragma: no cover - manual execution
    main()
