from __future__ import annotations

from datetime import date

import pytest

from freight_erp.domain import CargoSpecification, QuotationStatus
from freight_erp.services import FreightERPService

TODAY = date(2025, 3, 14)


@pytest.fixture
def erp() -> FreightERPService:
    return FreightERPService()


@pytest.fixture
def customer(erp):
    return erp.create_customer("PT Samudera Kargo", address="Jakarta")


@pytest.fixture
def submitted_quotation(erp, customer):
    """A simple two-shipment quotation ready to be won."""

    quotation = erp.create_quotation(
        customer.id,
        "Generator set Surabaya - Makassar",
        "Surabaya",
        "Makassar",
        commodity="Generator set",
        cargo=CargoSpecification(cargo_weight_kg=8_000),
        estimated_shipments=2,
        today=TODAY,
    )
    erp.add_quotation_revenue_item(quotation.id, "Sea freight + trucking", 2, "trip", 50_000_000)
    erp.add_quotation_cost_item(quotation.id, "trucking", "Trailer hire", 40_000_000)
    erp.add_quotation_cost_item(quotation.id, "port_charges", "THC", 20_000_000)
    erp.add_quotation_pursuit_cost(quotation.id, "Site survey", 4_000_000)
    erp.classify_quotation(quotation.id)
    erp.transition_quotation(quotation.id, QuotationStatus.READY)
    return erp.transition_quotation(quotation.id, QuotationStatus.SUBMITTED)


@pytest.fixture
def draft_pjo(erp, customer):
    pjo = erp.create_pjo(customer.id, "Excavator", "Tanjung Priok", "Balikpapan", TODAY)
    erp.add_pjo_revenue_item(pjo.id, "Lowbed trip", 1, "trip", 100_000_000)
    erp.add_pjo_cost_item(pjo.id, "trucking", "Lowbed hire", 60_000_000)
    return erp.add_pjo_cost_item(pjo.id, "documentation", "Permits", 10_000_000)


@pytest.fixture
def approved_pjo(erp, draft_pjo):
    erp.submit_pjo(draft_pjo.id)
    return erp.approve_pjo(draft_pjo.id)


@pytest.fixture
def finance_jo(erp, approved_pjo):
    """Job order completed and handed to finance."""

    for item in approved_pjo.cost_items:
        erp.confirm_cost_item(approved_pjo.id, item.id, item.estimated_amount, role="ops")
    job_order = erp.convert_pjo_to_jo(approved_pjo.id, today=TODAY)
    erp.complete_job_order(job_order.id)
    return erp.submit_job_order_to_finance(job_order.id)
