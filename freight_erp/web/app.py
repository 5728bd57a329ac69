"""FastAPI-based web interface for the freight ERP."""

from __future__ import annotations

import logging
from datetime import date, timedelta
from pathlib import Path
from typing import Dict, List, Optional

from fastapi import FastAPI, Form, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse, RedirectResponse
from fastapi.templating import Jinja2Templates
from pydantic import BaseModel, Field

from ..classification import format_complexity_score
from ..config import Settings, configure_logging, load_settings
from ..domain import (
    CargoSpecification,
    InvoiceStatus,
    InvoiceTerm,
    QuotationStatus,
    TermTrigger,
)
from ..errors import FreightERPError, PermissionDeniedError, ValidationError, WorkflowError
from ..formatting import format_date, format_idr, format_idr_compact, format_margin
from ..repository import DuplicateRecordError, RecordNotFoundError
from ..services import FreightERPService
from ..storage import FreightDatabase

logger = logging.getLogger(__name__)

TEMPLATES_DIR = Path(__file__).resolve().parent / "templates"
templates = Jinja2Templates(directory=str(TEMPLATES_DIR))
templates.env.filters["idr"] = format_idr
templates.env.filters["idr_compact"] = format_idr_compact
templates.env.filters["ddmmyyyy"] = format_date
templates.env.filters["margin"] = format_margin
templates.env.filters["complexity"] = format_complexity_score


# ----------------------------------------------------------------------
# Request bodies
# ----------------------------------------------------------------------
class CustomerIn(BaseModel):
    name: str = Field(min_length=1)
    address: str = ""
    contact_person: str = ""
    contact_email: str = ""
    contact_phone: str = ""


class CargoIn(BaseModel):
    cargo_weight_kg: Optional[float] = None
    cargo_length_m: Optional[float] = None
    cargo_width_m: Optional[float] = None
    cargo_height_m: Optional[float] = None
    cargo_value: Optional[float] = None
    duration_days: Optional[int] = None
    is_new_route: Optional[bool] = None
    terrain_type: Optional[str] = None
    requires_special_permit: Optional[bool] = None
    is_hazardous: Optional[bool] = None


class QuotationIn(BaseModel):
    customer_id: str
    title: str = Field(min_length=1)
    origin: str
    destination: str
    commodity: str = ""
    cargo: CargoIn = Field(default_factory=CargoIn)
    estimated_shipments: int = Field(default=1, ge=1)
    rfq_deadline: Optional[date] = None


class RevenueItemIn(BaseModel):
    description: str = Field(min_length=1)
    quantity: float = Field(gt=0)
    unit: str = "unit"
    unit_price: float = Field(ge=0)


class CostItemIn(BaseModel):
    category: str
    description: str = Field(min_length=1)
    estimated_amount: float = Field(ge=0)
    vendor_id: Optional[str] = None


class PursuitCostIn(BaseModel):
    description: str = Field(min_length=1)
    amount: float = Field(ge=0)
    category: str = "other"


class QuotationItemsIn(BaseModel):
    revenue_items: List[RevenueItemIn] = Field(default_factory=list)
    cost_items: List[CostItemIn] = Field(default_factory=list)
    pursuit_costs: List[PursuitCostIn] = Field(default_factory=list)


class QuotationTransitionIn(BaseModel):
    status: QuotationStatus
    reason: str = ""


class EngineeringIn(BaseModel):
    waive: bool = False


class WonIn(BaseModel):
    jo_date: Optional[date] = None


class PJOIn(BaseModel):
    customer_id: str
    commodity: str
    pol: str
    pod: str
    jo_date: date
    etd: Optional[date] = None
    eta: Optional[date] = None
    revenue_items: List[RevenueItemIn] = Field(default_factory=list)
    cost_items: List[CostItemIn] = Field(default_factory=list)


class RejectIn(BaseModel):
    reason: str = Field(min_length=1)


class CostConfirmationIn(BaseModel):
    cost_item_id: str
    actual_amount: float = Field(ge=0)
    role: str


class ConvertIn(BaseModel):
    pjo_id: str


class InvoiceTermIn(BaseModel):
    term: str
    percentage: float = Field(ge=0, le=100)
    description: str
    trigger: TermTrigger = TermTrigger.JO_CREATED


class TermsIn(BaseModel):
    preset: Optional[str] = None
    terms: List[InvoiceTermIn] = Field(default_factory=list)


class DocumentsIn(BaseModel):
    surat_jalan: Optional[bool] = None
    berita_acara: Optional[bool] = None


class InvoiceRequestIn(BaseModel):
    invoice_date: Optional[date] = None
    term_index: Optional[int] = None


class InvoiceTransitionIn(BaseModel):
    status: InvoiceStatus


class PaymentIn(BaseModel):
    amount: float = Field(gt=0)
    payment_date: Optional[date] = None
    reference: str = ""


class PayrollPeriodIn(BaseModel):
    year: int
    month: int
    pay_date: date


class PayrollRunIn(BaseModel):
    overtime_hours: Dict[str, float] = Field(default_factory=dict)


class PayrollPreviewIn(BaseModel):
    employee_id: str
    overtime_hours: float = Field(default=0, ge=0)


def _json(value) -> JSONResponse:
    return JSONResponse(jsonable_encoder(value))


def _error(status_code: int, exc: Exception) -> JSONResponse:
    detail = exc.errors if isinstance(exc, ValidationError) else str(exc)
    return JSONResponse({"detail": detail}, status_code=status_code)


def _check_vendors(service: FreightERPService, items: List[CostItemIn]) -> None:
    """Resolve every referenced vendor before anything is written."""

    for item in items:
        if item.vendor_id:
            service.vendors.get(item.vendor_id)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or load_settings()
    configure_logging(settings.log_level)
    database = FreightDatabase(settings.database_path)
    service = FreightERPService(database, settings)
    if settings.load_demo_data:
        ensure_demo_data(service)

    app = FastAPI(title="Freight Forwarding ERP")
    app.state.erp_service = service
    app.state.database = database
    app.state.settings = settings

    @app.on_event("shutdown")
    async def shutdown_event() -> None:  # pragma: no cover - framework hook
        database.close()

    # ------------------------------------------------------------------
    # Error mapping
    # ------------------------------------------------------------------
    @app.exception_handler(RecordNotFoundError)
    async def not_found(request: Request, exc: RecordNotFoundError):
        return _error(404, exc)

    @app.exception_handler(DuplicateRecordError)
    async def duplicate(request: Request, exc: DuplicateRecordError):
        return _error(409, exc)

    @app.exception_handler(ValidationError)
    async def invalid(request: Request, exc: ValidationError):
        return _error(422, exc)

    @app.exception_handler(WorkflowError)
    async def workflow(request: Request, exc: WorkflowError):
        return _error(409, exc)

    @app.exception_handler(PermissionDeniedError)
    async def forbidden(request: Request, exc: PermissionDeniedError):
        return _error(403, exc)

    @app.exception_handler(FreightERPError)
    async def business_rule(request: Request, exc: FreightERPError):
        return _error(400, exc)

    @app.exception_handler(ValueError)
    async def bad_value(request: Request, exc: ValueError):
        return _error(422, exc)

    # ------------------------------------------------------------------
    # Dashboard
    # ------------------------------------------------------------------
    @app.get("/")
    async def dashboard(request: Request):
        service: FreightERPService = request.app.state.erp_service
        snapshot = service.dashboard_snapshot()
        customers = sorted(service.customers.list(), key=lambda c: c.name)
        names = {c.id: c.name for c in customers}
        outstanding = sorted(
            (
                invoice
                for invoice in service.invoices.list()
                if invoice.status
                in {InvoiceStatus.SENT, InvoiceStatus.PARTIAL, InvoiceStatus.OVERDUE}
            ),
            key=lambda invoice: invoice.due_date,
        )
        quotations = sorted(
            service.quotations.list(), key=lambda q: q.created_at, reverse=True
        )
        periods = sorted(
            service.payroll_periods.list(),
            key=lambda p: (p.period_year, p.period_month),
            reverse=True,
        )
        return templates.TemplateResponse(
            request,
            "dashboard.html",
            {
                "snapshot": snapshot,
                "customers": customers,
                "customer_names": names,
                "outstanding": outstanding,
                "quotations": quotations[:10],
                "periods": periods,
            },
        )

    @app.post("/customers")
    async def create_customer_form(
        request: Request,
        name: str = Form(...),
        address: str = Form(""),
        contact_person: str = Form(""),
    ):
        service: FreightERPService = request.app.state.erp_service
        try:
            service.create_customer(name, address=address, contact_person=contact_person)
        except ValidationError as exc:
            logger.warning("Customer form rejected: %s", exc)
        return RedirectResponse("/", status_code=303)

    @app.post("/invoices/{invoice_id}/payments")
    async def record_payment_form(
        invoice_id: str,
        request: Request,
        amount: float = Form(...),
        reference: str = Form(""),
    ):
        service: FreightERPService = request.app.state.erp_service
        try:
            service.record_payment(invoice_id, amount, reference=reference)
        except (RecordNotFoundError, FreightERPError) as exc:
            logger.warning("Payment form rejected: %s", exc)
        return RedirectResponse("/", status_code=303)

    @app.get("/api/dashboard")
    async def dashboard_api(request: Request, as_of: Optional[date] = None):
        service: FreightERPService = request.app.state.erp_service
        return _json(service.dashboard_snapshot(as_of))

    # ------------------------------------------------------------------
    # Customers
    # ------------------------------------------------------------------
    @app.get("/api/customers")
    async def list_customers(request: Request):
        service: FreightERPService = request.app.state.erp_service
        return _json(sorted(service.customers.list(), key=lambda c: c.name))

    @app.post("/api/customers", status_code=201)
    async def create_customer(request: Request, body: CustomerIn):
        service: FreightERPService = request.app.state.erp_service
        customer = service.create_customer(
            body.name,
            address=body.address,
            contact_person=body.contact_person,
            contact_email=body.contact_email,
            contact_phone=body.contact_phone,
        )
        return JSONResponse(jsonable_encoder(customer), status_code=201)

    # ------------------------------------------------------------------
    # Quotations
    # ------------------------------------------------------------------
    @app.get("/api/quotations")
    async def list_quotations(request: Request, status: Optional[QuotationStatus] = None):
        service: FreightERPService = request.app.state.erp_service
        quotations = service.quotations.list()
        if status is not None:
            quotations = [q for q in quotations if q.status == status]
        return _json(sorted(quotations, key=lambda q: q.quotation_number))

    @app.post("/api/quotations", status_code=201)
    async def create_quotation(request: Request, body: QuotationIn):
        service: FreightERPService = request.app.state.erp_service
        quotation = service.create_quotation(
            body.customer_id,
            body.title,
            body.origin,
            body.destination,
            commodity=body.commodity,
            cargo=CargoSpecification(**body.cargo.model_dump()),
            estimated_shipments=body.estimated_shipments,
            rfq_deadline=body.rfq_deadline,
        )
        return JSONResponse(jsonable_encoder(quotation), status_code=201)

    @app.get("/api/quotations/{quotation_id}")
    async def get_quotation(quotation_id: str, request: Request):
        service: FreightERPService = request.app.state.erp_service
        quotation = service.quotations.get(quotation_id)
        return _json(
            {
                "quotation": quotation,
                "financials": service.quotation_financials(quotation_id),
            }
        )

    @app.post("/api/quotations/{quotation_id}/items")
    async def add_quotation_items(quotation_id: str, request: Request, body: QuotationItemsIn):
        service: FreightERPService = request.app.state.erp_service
        quotation = service.quotations.get(quotation_id)
        _check_vendors(service, body.cost_items)
        for item in body.revenue_items:
            quotation = service.add_quotation_revenue_item(
                quotation_id, item.description, item.quantity, item.unit, item.unit_price
            )
        for item in body.cost_items:
            quotation = service.add_quotation_cost_item(
                quotation_id,
                item.category,
                item.description,
                item.estimated_amount,
                vendor_id=item.vendor_id,
            )
        for item in body.pursuit_costs:
            quotation = service.add_quotation_pursuit_cost(
                quotation_id, item.description, item.amount, item.category
            )
        return _json(quotation)

    @app.post("/api/quotations/{quotation_id}/classify")
    async def classify_quotation(quotation_id: str, request: Request):
        service: FreightERPService = request.app.state.erp_service
        return _json(service.classify_quotation(quotation_id))

    @app.post("/api/quotations/{quotation_id}/engineering")
    async def complete_engineering(quotation_id: str, request: Request, body: EngineeringIn):
        service: FreightERPService = request.app.state.erp_service
        return _json(service.complete_engineering(quotation_id, waive=body.waive))

    @app.post("/api/quotations/{quotation_id}/transition")
    async def transition_quotation(
        quotation_id: str, request: Request, body: QuotationTransitionIn
    ):
        service: FreightERPService = request.app.state.erp_service
        return _json(service.transition_quotation(quotation_id, body.status, reason=body.reason))

    @app.post("/api/quotations/{quotation_id}/won", status_code=201)
    async def mark_won(quotation_id: str, request: Request, body: WonIn):
        service: FreightERPService = request.app.state.erp_service
        pjos = service.mark_quotation_won(quotation_id, jo_date=body.jo_date)
        return JSONResponse(jsonable_encoder(pjos), status_code=201)

    # ------------------------------------------------------------------
    # Proforma job orders
    # ------------------------------------------------------------------
    @app.get("/api/pjos")
    async def list_pjos(request: Request, status: Optional[str] = None):
        service: FreightERPService = request.app.state.erp_service
        return _json(sorted(service.active_pjos(status), key=lambda p: p.pjo_number))

    @app.post("/api/pjos", status_code=201)
    async def create_pjo(request: Request, body: PJOIn):
        service: FreightERPService = request.app.state.erp_service
        _check_vendors(service, body.cost_items)
        pjo = service.create_pjo(
            body.customer_id,
            body.commodity,
            body.pol,
            body.pod,
            body.jo_date,
            etd=body.etd,
            eta=body.eta,
        )
        for item in body.revenue_items:
            pjo = service.add_pjo_revenue_item(
                pjo.id, item.description, item.quantity, item.unit, item.unit_price
            )
        for item in body.cost_items:
            pjo = service.add_pjo_cost_item(
                pjo.id,
                item.category,
                item.description,
                item.estimated_amount,
                vendor_id=item.vendor_id,
            )
        return JSONResponse(jsonable_encoder(pjo), status_code=201)

    @app.get("/api/pjos/{pjo_id}")
    async def get_pjo(pjo_id: str, request: Request):
        service: FreightERPService = request.app.state.erp_service
        return _json(service.pjos.get(pjo_id))

    @app.delete("/api/pjos/{pjo_id}")
    async def delete_pjo(pjo_id: str, request: Request):
        service: FreightERPService = request.app.state.erp_service
        return _json(service.delete_pjo(pjo_id))

    @app.post("/api/pjos/{pjo_id}/submit")
    async def submit_pjo(pjo_id: str, request: Request):
        service: FreightERPService = request.app.state.erp_service
        return _json(service.submit_pjo(pjo_id))

    @app.post("/api/pjos/{pjo_id}/approve")
    async def approve_pjo(pjo_id: str, request: Request):
        service: FreightERPService = request.app.state.erp_service
        return _json(service.approve_pjo(pjo_id))

    @app.post("/api/pjos/{pjo_id}/reject")
    async def reject_pjo(pjo_id: str, request: Request, body: RejectIn):
        service: FreightERPService = request.app.state.erp_service
        return _json(service.reject_pjo(pjo_id, body.reason))

    @app.post("/api/pjos/{pjo_id}/costs")
    async def confirm_cost(pjo_id: str, request: Request, body: CostConfirmationIn):
        service: FreightERPService = request.app.state.erp_service
        item = service.confirm_cost_item(
            pjo_id, body.cost_item_id, body.actual_amount, role=body.role
        )
        return _json(item)

    # ------------------------------------------------------------------
    # Job orders
    # ------------------------------------------------------------------
    @app.get("/api/job-orders")
    async def list_job_orders(request: Request):
        service: FreightERPService = request.app.state.erp_service
        return _json(sorted(service.job_orders.list(), key=lambda jo: jo.jo_number))

    @app.post("/api/job-orders", status_code=201)
    async def convert_pjo(request: Request, body: ConvertIn):
        service: FreightERPService = request.app.state.erp_service
        job_order = service.convert_pjo_to_jo(body.pjo_id)
        return JSONResponse(jsonable_encoder(job_order), status_code=201)

    @app.get("/api/job-orders/{jo_id}")
    async def get_job_order(jo_id: str, request: Request):
        service: FreightERPService = request.app.state.erp_service
        return _json(
            {
                "job_order": service.job_orders.get(jo_id),
                "term_statuses": service.invoice_term_statuses(jo_id),
            }
        )

    @app.post("/api/job-orders/{jo_id}/complete")
    async def complete_job_order(jo_id: str, request: Request):
        service: FreightERPService = request.app.state.erp_service
        return _json(service.complete_job_order(jo_id))

    @app.post("/api/job-orders/{jo_id}/submit")
    async def submit_job_order(jo_id: str, request: Request):
        service: FreightERPService = request.app.state.erp_service
        return _json(service.submit_job_order_to_finance(jo_id))

    @app.post("/api/job-orders/{jo_id}/documents")
    async def record_documents(jo_id: str, request: Request, body: DocumentsIn):
        service: FreightERPService = request.app.state.erp_service
        return _json(
            service.record_jo_documents(
                jo_id, surat_jalan=body.surat_jalan, berita_acara=body.berita_acara
            )
        )

    @app.put("/api/job-orders/{jo_id}/terms")
    async def set_terms(jo_id: str, request: Request, body: TermsIn):
        service: FreightERPService = request.app.state.erp_service
        if body.preset:
            return _json(service.apply_invoice_term_preset(jo_id, body.preset))
        terms = [
            InvoiceTerm(t.term, t.percentage, t.description, t.trigger) for t in body.terms
        ]
        return _json(service.set_invoice_terms(jo_id, terms))

    @app.post("/api/job-orders/{jo_id}/invoice", status_code=201)
    async def invoice_job_order(jo_id: str, request: Request, body: InvoiceRequestIn):
        service: FreightERPService = request.app.state.erp_service
        if body.term_index is None:
            invoice = service.create_invoice_from_jo(jo_id, invoice_date=body.invoice_date)
        else:
            invoice = service.create_term_invoice(
                jo_id, body.term_index, invoice_date=body.invoice_date
            )
        return JSONResponse(jsonable_encoder(invoice), status_code=201)

    # ------------------------------------------------------------------
    # Invoices
    # ------------------------------------------------------------------
    @app.get("/api/invoices")
    async def list_invoices(request: Request, status: Optional[InvoiceStatus] = None):
        service: FreightERPService = request.app.state.erp_service
        invoices = service.invoices.list()
        if status is not None:
            invoices = [inv for inv in invoices if inv.status == status]
        return _json(sorted(invoices, key=lambda inv: inv.invoice_number))

    @app.get("/api/invoices/{invoice_id}")
    async def get_invoice(invoice_id: str, request: Request):
        service: FreightERPService = request.app.state.erp_service
        invoice = service.invoices.get(invoice_id)
        return _json(
            {
                "invoice": invoice,
                "balance_due": invoice.balance_due,
                "payments": service.invoice_payments(invoice_id),
            }
        )

    @app.post("/api/invoices/{invoice_id}/transition")
    async def transition_invoice(invoice_id: str, request: Request, body: InvoiceTransitionIn):
        service: FreightERPService = request.app.state.erp_service
        return _json(service.transition_invoice(invoice_id, body.status))

    @app.post("/api/invoices/{invoice_id}/payments", status_code=201)
    async def record_payment(invoice_id: str, request: Request, body: PaymentIn):
        service: FreightERPService = request.app.state.erp_service
        payment = service.record_payment(
            invoice_id, body.amount, payment_date=body.payment_date, reference=body.reference
        )
        return JSONResponse(
            jsonable_encoder(
                {"payment": payment, "invoice": service.invoices.get(invoice_id)}
            ),
            status_code=201,
        )

    # ------------------------------------------------------------------
    # Payroll
    # ------------------------------------------------------------------
    @app.get("/api/payroll/periods")
    async def list_periods(request: Request):
        service: FreightERPService = request.app.state.erp_service
        periods = sorted(
            service.payroll_periods.list(), key=lambda p: (p.period_year, p.period_month)
        )
        return _json(periods)

    @app.post("/api/payroll/periods", status_code=201)
    async def create_period(request: Request, body: PayrollPeriodIn):
        service: FreightERPService = request.app.state.erp_service
        period = service.create_payroll_period(body.year, body.month, body.pay_date)
        return JSONResponse(jsonable_encoder(period), status_code=201)

    @app.get("/api/payroll/periods/{period_id}")
    async def get_period(period_id: str, request: Request):
        service: FreightERPService = request.app.state.erp_service
        return _json(
            {
                "period": service.payroll_periods.get(period_id),
                "records": service.period_records(period_id),
            }
        )

    @app.post("/api/payroll/periods/{period_id}/run")
    async def run_period(period_id: str, request: Request, body: PayrollRunIn):
        service: FreightERPService = request.app.state.erp_service
        return _json(service.run_payroll(period_id, body.overtime_hours))

    @app.post("/api/payroll/periods/{period_id}/approve")
    async def approve_period(period_id: str, request: Request):
        service: FreightERPService = request.app.state.erp_service
        return _json(service.approve_payroll(period_id))

    @app.post("/api/payroll/periods/{period_id}/pay")
    async def pay_period(period_id: str, request: Request):
        service: FreightERPService = request.app.state.erp_service
        return _json(service.pay_payroll(period_id))

    @app.post("/api/payroll/periods/{period_id}/close")
    async def close_period(period_id: str, request: Request):
        service: FreightERPService = request.app.state.erp_service
        return _json(service.close_payroll(period_id))

    @app.post("/api/payroll/preview")
    async def preview_payroll(request: Request, body: PayrollPreviewIn):
        service: FreightERPService = request.app.state.erp_service
        return _json(service.preview_payroll(body.employee_id, body.overtime_hours))

    return app


def ensure_demo_data(service: FreightERPService) -> None:
    """Seed one shipment through the whole workflow on an empty database."""

    if len(service.customers) > 0:
        return

    today = date.today()
    customer = service.create_customer(
        "PT Sinar Energi Nusantara",
        address="Jl. Gatot Subroto 12, Jakarta",
        contact_person="Budi Santoso",
    )
    service.create_customer("CV Maju Bersama Logistik", address="Surabaya")
    trucker = service.register_vendor(
        "PT Trans Lintas Jawa", "trucking", contact_person="Andi", is_preferred=True
    )
    service.register_vendor("PT Pelabuhan Mitra", "port_agent")

    quotation = service.create_quotation(
        customer.id,
        "Transformer move Tanjung Priok - Cilegon",
        "Tanjung Priok",
        "Cilegon",
        commodity="Power transformer",
        cargo=CargoSpecification(
            cargo_weight_kg=45_000,
            cargo_length_m=9.5,
            cargo_width_m=3.2,
            cargo_height_m=3.8,
            requires_special_permit=True,
        ),
        rfq_deadline=today + timedelta(days=7),
    )
    service.add_quotation_revenue_item(
        quotation.id, "Heavy haulage trailer", 1, "trip", 85_000_000
    )
    service.add_quotation_cost_item(
        quotation.id, "trucking", "Lowbed trailer hire", 52_000_000, vendor_id=trucker.id
    )
    service.add_quotation_cost_item(quotation.id, "documentation", "Road permit", 6_500_000)
    service.add_quotation_pursuit_cost(quotation.id, "Route survey", 3_000_000)
    service.classify_quotation(quotation.id)
    service.complete_engineering(quotation.id)
    service.transition_quotation(quotation.id, QuotationStatus.READY)
    service.transition_quotation(quotation.id, QuotationStatus.SUBMITTED)
    (pjo,) = service.mark_quotation_won(quotation.id, jo_date=today)

    service.submit_pjo(pjo.id)
    service.approve_pjo(pjo.id)
    for item in service.pjos.get(pjo.id).cost_items:
        service.confirm_cost_item(pjo.id, item.id, item.estimated_amount * 0.95, role="ops")
    job_order = service.convert_pjo_to_jo(pjo.id, today=today)
    service.complete_job_order(job_order.id)
    service.submit_job_order_to_finance(job_order.id)
    invoice = service.create_invoice_from_jo(job_order.id, invoice_date=today)
    service.transition_invoice(invoice.id, InvoiceStatus.SENT)

    service.install_standard_components()
    service.register_employee("EMP-001", "Siti Rahmawati", 12_000_000, position="Finance")
    service.register_employee("EMP-002", "Agus Pratama", 7_500_000, position="Operations")
    logger.info("Loaded demo data")


__all__ = ["create_app", "ensure_demo_data"]
