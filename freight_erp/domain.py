"""Core data structures for the freight forwarding ERP system."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, List, Optional


class QuotationStatus(str, Enum):
    """Lifecycle stages for a customer quotation."""

    DRAFT = "draft"
    ENGINEERING_REVIEW = "engineering_review"
    READY = "ready"
    SUBMITTED = "submitted"
    WON = "won"
    LOST = "lost"
    CANCELLED = "cancelled"


class EngineeringStatus(str, Enum):
    NOT_REQUIRED = "not_required"
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    WAIVED = "waived"


class PJOStatus(str, Enum):
    """Approval stages for a proforma job order."""

    DRAFT = "draft"
    PENDING_APPROVAL = "pending_approval"
    APPROVED = "approved"
    REJECTED = "rejected"


class CostItemStatus(str, Enum):
    ESTIMATED = "estimated"
    CONFIRMED = "confirmed"
    AT_RISK = "at_risk"
    EXCEEDED = "exceeded"
    UNDER_BUDGET = "under_budget"


class JOStatus(str, Enum):
    """Execution stages for a job order; strictly forward."""

    ACTIVE = "active"
    COMPLETED = "completed"
    SUBMITTED_TO_FINANCE = "submitted_to_finance"
    INVOICED = "invoiced"
    CLOSED = "closed"


class InvoiceStatus(str, Enum):
    DRAFT = "draft"
    SENT = "sent"
    PARTIAL = "partial"
    OVERDUE = "overdue"
    PAID = "paid"
    CANCELLED = "cancelled"


class MarketType(str, Enum):
    SIMPLE = "simple"
    COMPLEX = "complex"


class TermTrigger(str, Enum):
    """Event that unlocks an invoice term."""

    JO_CREATED = "jo_created"
    SURAT_JALAN = "surat_jalan"
    BERITA_ACARA = "berita_acara"
    DELIVERY = "delivery"

    @property
    def label(self) -> str:
        return {
            TermTrigger.JO_CREATED: "JO Created",
            TermTrigger.SURAT_JALAN: "Surat Jalan",
            TermTrigger.BERITA_ACARA: "Berita Acara",
            TermTrigger.DELIVERY: "Delivery",
        }[self]


class TermStatus(str, Enum):
    PENDING = "pending"
    READY = "ready"
    LOCKED = "locked"
    INVOICED = "invoiced"


class BPJSType(str, Enum):
    """Indonesian social security programmes."""

    KESEHATAN = "kesehatan"
    JHT = "jht"
    JP = "jp"
    JKK = "jkk"
    JKM = "jkm"


class ComponentType(str, Enum):
    EARNING = "earning"
    DEDUCTION = "deduction"
    BENEFIT = "benefit"


class CalculationType(str, Enum):
    FIXED = "fixed"
    PERCENTAGE = "percentage"


class PayrollPeriodStatus(str, Enum):
    DRAFT = "draft"
    PROCESSING = "processing"
    APPROVED = "approved"
    PAID = "paid"
    CLOSED = "closed"


class PayrollRecordStatus(str, Enum):
    CALCULATED = "calculated"
    APPROVED = "approved"
    PAID = "paid"


# ----------------------------------------------------------------------
# Master data
# ----------------------------------------------------------------------
@dataclass(slots=True)
class Customer:
    """Customer master data."""

    id: str
    name: str
    address: str = ""
    contact_person: str = ""
    contact_email: str = ""
    contact_phone: str = ""
    is_active: bool = True


@dataclass(slots=True)
class Vendor:
    """Trucking companies, shipping lines, port agents and other providers."""

    id: str
    name: str
    vendor_type: str
    address: str = ""
    contact_person: str = ""
    contact_phone: str = ""
    is_active: bool = True
    is_preferred: bool = False


@dataclass(slots=True)
class Employee:
    id: str
    employee_code: str
    full_name: str
    base_salary: float
    position: str = ""
    is_active: bool = True
    join_date: Optional[date] = None


# ----------------------------------------------------------------------
# Market classification
# ----------------------------------------------------------------------
@dataclass(slots=True)
class CargoSpecification:
    """Cargo and route attributes used for complexity scoring."""

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


@dataclass(slots=True)
class DetectionRule:
    field: str
    operator: str
    value: Any


@dataclass(slots=True)
class ComplexityCriterion:
    code: str
    name: str
    weight: float
    rule: Optional[DetectionRule] = None
    is_active: bool = True


@dataclass(slots=True)
class ComplexityFactor:
    criteria_code: str
    criteria_name: str
    weight: float
    triggered_value: str


@dataclass(slots=True)
class MarketClassification:
    market_type: MarketType
    complexity_score: float
    complexity_factors: List[ComplexityFactor] = field(default_factory=list)
    requires_engineering: bool = False


# ----------------------------------------------------------------------
# Quotations
# ----------------------------------------------------------------------
@dataclass(slots=True)
class RevenueItem:
    """Billable line shared by quotations and PJOs."""

    description: str
    quantity: float
    unit: str
    unit_price: float
    subtotal: Optional[float] = None

    def __post_init__(self) -> None:
        if self.subtotal is None:
            self.subtotal = self.quantity * self.unit_price


@dataclass(slots=True)
class CostItem:
    """Estimated cost line; ``actual_amount`` is filled on confirmation."""

    id: str
    category: str
    description: str
    estimated_amount: float
    actual_amount: Optional[float] = None
    status: CostItemStatus = CostItemStatus.ESTIMATED
    vendor_id: Optional[str] = None
    vendor_name: str = ""


@dataclass(slots=True)
class PursuitCost:
    description: str
    amount: float
    category: str = "other"


@dataclass(slots=True)
class Quotation:
    id: str
    quotation_number: str
    customer_id: str
    title: str
    origin: str
    destination: str
    commodity: str = ""
    cargo: CargoSpecification = field(default_factory=CargoSpecification)
    status: QuotationStatus = QuotationStatus.DRAFT
    market_type: MarketType = MarketType.SIMPLE
    complexity_score: float = 0.0
    complexity_factors: List[ComplexityFactor] = field(default_factory=list)
    requires_engineering: bool = False
    engineering_status: EngineeringStatus = EngineeringStatus.NOT_REQUIRED
    estimated_shipments: int = 1
    rfq_deadline: Optional[date] = None
    revenue_items: List[RevenueItem] = field(default_factory=list)
    cost_items: List[CostItem] = field(default_factory=list)
    pursuit_costs: List[PursuitCost] = field(default_factory=list)
    total_revenue: float = 0.0
    total_cost: float = 0.0
    created_at: datetime = field(default_factory=datetime.utcnow)
    outcome_reason: str = ""


# ----------------------------------------------------------------------
# Proforma job orders and job orders
# ----------------------------------------------------------------------
@dataclass(slots=True)
class ProformaJobOrder:
    id: str
    pjo_number: str
    customer_id: str
    commodity: str
    pol: str
    pod: str
    jo_date: date
    etd: Optional[date] = None
    eta: Optional[date] = None
    status: PJOStatus = PJOStatus.DRAFT
    quotation_id: Optional[str] = None
    cargo: CargoSpecification = field(default_factory=CargoSpecification)
    market_type: MarketType = MarketType.SIMPLE
    complexity_score: float = 0.0
    revenue_items: List[RevenueItem] = field(default_factory=list)
    cost_items: List[CostItem] = field(default_factory=list)
    pursuit_cost_allocation: float = 0.0
    converted_to_jo: bool = False
    job_order_id: Optional[str] = None
    rejection_reason: str = ""
    is_active: bool = True
    created_at: datetime = field(default_factory=datetime.utcnow)
    approved_at: Optional[datetime] = None

    @property
    def all_costs_confirmed(self) -> bool:
        return bool(self.cost_items) and all(
            item.actual_amount is not None for item in self.cost_items
        )


@dataclass(slots=True)
class InvoiceTerm:
    term: str
    percentage: float
    description: str
    trigger: TermTrigger = TermTrigger.JO_CREATED
    invoiced: bool = False
    invoice_id: Optional[str] = None


@dataclass(slots=True)
class JobOrder:
    id: str
    jo_number: str
    pjo_id: str
    customer_id: str
    description: str = ""
    status: JOStatus = JOStatus.ACTIVE
    final_revenue: float = 0.0
    final_cost: float = 0.0
    invoice_terms: List[InvoiceTerm] = field(default_factory=list)
    has_surat_jalan: bool = False
    has_berita_acara: bool = False
    created_at: datetime = field(default_factory=datetime.utcnow)
    completed_at: Optional[datetime] = None
    submitted_to_finance_at: Optional[datetime] = None


# ----------------------------------------------------------------------
# Invoicing
# ----------------------------------------------------------------------
@dataclass(slots=True)
class InvoiceLineItem:
    line_number: int
    description: str
    quantity: float
    unit: str
    unit_price: float

    @property
    def subtotal(self) -> float:
        return self.quantity * self.unit_price


@dataclass(slots=True)
class Payment:
    id: str
    invoice_id: str
    amount: float
    payment_date: date
    reference: str = ""


@dataclass(slots=True)
class Invoice:
    id: str
    invoice_number: str
    jo_id: str
    customer_id: str
    invoice_date: date
    due_date: date
    line_items: List[InvoiceLineItem] = field(default_factory=list)
    subtotal: float = 0.0
    vat_amount: float = 0.0
    total_amount: float = 0.0
    amount_paid: float = 0.0
    status: InvoiceStatus = InvoiceStatus.DRAFT
    term: Optional[str] = None
    created_at: datetime = field(default_factory=datetime.utcnow)
    sent_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None

    @property
    def balance_due(self) -> float:
        return max(0.0, self.total_amount - self.amount_paid)


# ----------------------------------------------------------------------
# Payroll
# ----------------------------------------------------------------------
@dataclass(slots=True)
class PayrollComponent:
    id: str
    component_code: str
    component_name: str
    component_type: ComponentType
    calculation_type: CalculationType = CalculationType.FIXED
    default_amount: Optional[float] = None
    percentage_rate: Optional[float] = None
    percentage_of: str = "base_salary"
    is_active: bool = True


@dataclass(slots=True)
class EmployeePayrollSetup:
    """Per-employee override of a component's amount or rate."""

    employee_id: str
    component_id: str
    custom_amount: Optional[float] = None
    custom_rate: Optional[float] = None
    is_active: bool = True


@dataclass(slots=True)
class PayrollComponentItem:
    component_id: str
    component_code: str
    component_name: str
    amount: int


@dataclass(slots=True)
class PayrollCalculation:
    earnings: List[PayrollComponentItem]
    deductions: List[PayrollComponentItem]
    company_contributions: List[PayrollComponentItem]
    gross_salary: int
    total_deductions: int
    net_salary: int
    total_company_cost: int


@dataclass(slots=True)
class AttendanceSummary:
    work_days: int
    present_days: int
    absent_days: int = 0
    leave_days: int = 0
    overtime_hours: float = 0.0


@dataclass(slots=True)
class PayrollPeriod:
    id: str
    period_name: str
    period_year: int
    period_month: int
    start_date: date
    end_date: date
    pay_date: date
    status: PayrollPeriodStatus = PayrollPeriodStatus.DRAFT
    total_gross: int = 0
    total_deductions: int = 0
    total_net: int = 0
    total_company_cost: int = 0
    employee_count: int = 0


@dataclass(slots=True)
class PayrollRecord:
    id: str
    period_id: str
    employee_id: str
    calculation: PayrollCalculation
    attendance: AttendanceSummary
    status: PayrollRecordStatus = PayrollRecordStatus.CALCULATED


__all__ = [
    "QuotationStatus",
    "EngineeringStatus",
    "PJOStatus",
    "CostItemStatus",
    "JOStatus",
    "InvoiceStatus",
    "MarketType",
    "TermTrigger",
    "TermStatus",
    "BPJSType",
    "ComponentType",
    "CalculationType",
    "PayrollPeriodStatus",
    "PayrollRecordStatus",
    "Customer",
    "Vendor",
    "Employee",
    "CargoSpecification",
    "DetectionRule",
    "ComplexityCriterion",
    "ComplexityFactor",
    "MarketClassification",
    "RevenueItem",
    "CostItem",
    "PursuitCost",
    "Quotation",
    "ProformaJobOrder",
    "InvoiceTerm",
    "JobOrder",
    "InvoiceLineItem",
    "Payment",
    "Invoice",
    "PayrollComponent",
    "EmployeePayrollSetup",
    "PayrollComponentItem",
    "PayrollCalculation",
    "AttendanceSummary",
    "PayrollPeriod",
    "PayrollRecord",
]
