"""Service layer that runs the freight forwarding document workflow."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Dict, Iterable, List, Mapping, Optional, Sequence
from uuid import uuid4

from . import invoices as invoice_rules
from . import job_orders as jo_rules
from . import pjo as pjo_rules
from . import quotations as quotation_rules
from .classification import (
    calculate_market_classification,
    count_by_market_type,
    default_criteria,
    validate_cargo_specifications,
)
from .config import Settings
from .dashboard import (
    AgingBucket,
    FinanceKPIs,
    OverdueInvoice,
    PartialPaymentsStats,
    PipelineEntry,
    RecentPayment,
    calculate_finance_kpis,
    filter_overdue_invoices,
    filter_recent_payments,
    group_invoices_by_aging,
    group_pjos_by_status,
    monthly_payments_total,
    partial_payments_stats,
)
from .domain import (
    CalculationType,
    CargoSpecification,
    ComplexityCriterion,
    ComponentType,
    CostItem,
    CostItemStatus,
    Customer,
    Employee,
    EmployeePayrollSetup,
    EngineeringStatus,
    Invoice,
    InvoiceLineItem,
    InvoiceStatus,
    InvoiceTerm,
    JobOrder,
    JOStatus,
    MarketType,
    Payment,
    PayrollCalculation,
    PayrollComponent,
    PayrollPeriod,
    PayrollPeriodStatus,
    PayrollRecord,
    PayrollRecordStatus,
    PJOStatus,
    ProformaJobOrder,
    PursuitCost,
    Quotation,
    QuotationStatus,
    RevenueItem,
    TermStatus,
    Vendor,
)
from .errors import PermissionDeniedError, ValidationError, WorkflowError
from .formatting import (
    format_invoice_number,
    generate_jo_number,
    generate_pjo_number,
    generate_quotation_number,
    invoice_sequence_pattern,
    jo_sequence_pattern,
    next_sequence,
    pjo_sequence_pattern,
)
from .payroll import (
    calculate_full_payroll,
    can_transition_period,
    default_attendance_summary,
    generate_period_name,
    period_dates,
    standard_components,
    validate_payroll_period,
)
from .repository import InMemoryRepository
from .storage import FreightDatabase

logger = logging.getLogger(__name__)

# Rupiah amounts below this are treated as settled.
PAYMENT_TOLERANCE = 0.5


@dataclass(slots=True)
class DashboardSnapshot:
    """Everything the finance dashboard shows, computed for one day."""

    as_of: date
    kpis: FinanceKPIs
    aging: Dict[str, AgingBucket]
    overdue_invoices: List[OverdueInvoice]
    recent_payments: List[RecentPayment]
    pjo_pipeline: List[PipelineEntry]
    partial_payments: PartialPaymentsStats
    monthly_payments: float
    quotation_pipeline_value: float
    win_rate: float
    market_mix: Dict[str, int] = field(default_factory=dict)


class FreightERPService:
    """Facade that exposes the ERP use-cases to clients.

    Without a ``database`` every aggregate lives in an in-memory repository;
    with one, the SQLite repositories of :class:`FreightDatabase` are used.
    """

    def __init__(
        self,
        database: Optional[FreightDatabase] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self.settings = settings or Settings()
        if database is not None:
            self.customers = database.customers
            self.vendors = database.vendors
            self.employees = database.employees
            self.criteria = database.criteria
            self.quotations = database.quotations
            self.pjos = database.pjos
            self.job_orders = database.job_orders
            self.invoices = database.invoices
            self.payments = database.payments
            self.payroll_components = database.payroll_components
            self.payroll_setups = database.payroll_setups
            self.payroll_periods = database.payroll_periods
            self.payroll_records = database.payroll_records
        else:
            self.customers = InMemoryRepository[Customer]("Customer")
            self.vendors = InMemoryRepository[Vendor]("Vendor")
            self.employees = InMemoryRepository[Employee]("Employee")
            self.criteria = InMemoryRepository[ComplexityCriterion]("Complexity criterion")
            self.quotations = InMemoryRepository[Quotation]("Quotation")
            self.pjos = InMemoryRepository[ProformaJobOrder]("PJO")
            self.job_orders = InMemoryRepository[JobOrder]("Job order")
            self.invoices = InMemoryRepository[Invoice]("Invoice")
            self.payments = InMemoryRepository[Payment]("Payment")
            self.payroll_components = InMemoryRepository[PayrollComponent]("Payroll component")
            self.payroll_setups = InMemoryRepository[EmployeePayrollSetup]("Payroll setup")
            self.payroll_periods = InMemoryRepository[PayrollPeriod]("Payroll period")
            self.payroll_records = InMemoryRepository[PayrollRecord]("Payroll record")
        if len(self.criteria) == 0:
            for criterion in default_criteria():
                self.criteria.add(criterion.code, criterion)

    @staticmethod
    def _refuse(message: str) -> WorkflowError:
        logger.warning("Workflow rejected: %s", message)
        return WorkflowError(message)

    # ------------------------------------------------------------------
    # Master data
    # ------------------------------------------------------------------
    def create_customer(
        self,
        name: str,
        *,
        address: str = "",
        contact_person: str = "",
        contact_email: str = "",
        contact_phone: str = "",
    ) -> Customer:
        if not name.strip():
            raise ValidationError("Customer name is required")
        customer = Customer(
            id=str(uuid4()),
            name=name.strip(),
            address=address,
            contact_person=contact_person,
            contact_email=contact_email,
            contact_phone=contact_phone,
        )
        self.customers.add(customer.id, customer)
        logger.info("Created customer %s (%s)", customer.name, customer.id)
        return customer

    def register_vendor(
        self,
        name: str,
        vendor_type: str,
        *,
        address: str = "",
        contact_person: str = "",
        contact_phone: str = "",
        is_preferred: bool = False,
    ) -> Vendor:
        if not name.strip():
            raise ValidationError("Vendor name is required")
        vendor = Vendor(
            id=str(uuid4()),
            name=name.strip(),
            vendor_type=vendor_type,
            address=address,
            contact_person=contact_person,
            contact_phone=contact_phone,
            is_preferred=is_preferred,
        )
        self.vendors.add(vendor.id, vendor)
        logger.info("Registered %s vendor %s", vendor_type, vendor.name)
        return vendor

    def set_vendor_active(self, vendor_id: str, active: bool) -> Vendor:
        vendor = self.vendors.get(vendor_id)
        vendor.is_active = active
        self.vendors.upsert(vendor.id, vendor)
        return vendor

    def active_vendors(self, vendor_type: Optional[str] = None) -> List[Vendor]:
        vendors = self.vendors.find(
            lambda v: v.is_active and (vendor_type is None or v.vendor_type == vendor_type)
        )
        return sorted(vendors, key=lambda v: (not v.is_preferred, v.name))

    def register_employee(
        self,
        employee_code: str,
        full_name: str,
        base_salary: float,
        *,
        position: str = "",
        join_date: Optional[date] = None,
    ) -> Employee:
        if base_salary < 0:
            raise ValidationError("Base salary must be non-negative")
        if self.employees.find(lambda e: e.employee_code == employee_code):
            raise ValidationError(f"Employee code {employee_code!r} is already in use")
        employee = Employee(
            id=str(uuid4()),
            employee_code=employee_code,
            full_name=full_name,
            base_salary=base_salary,
            position=position,
            join_date=join_date,
        )
        self.employees.add(employee.id, employee)
        logger.info("Registered employee %s", employee_code)
        return employee

    def set_employee_active(self, employee_id: str, active: bool) -> Employee:
        employee = self.employees.get(employee_id)
        employee.is_active = active
        self.employees.upsert(employee.id, employee)
        return employee

    # ------------------------------------------------------------------
    # Quotations
    # ------------------------------------------------------------------
    def create_quotation(
        self,
        customer_id: str,
        title: str,
        origin: str,
        destination: str,
        *,
        commodity: str = "",
        cargo: Optional[CargoSpecification] = None,
        estimated_shipments: int = 1,
        rfq_deadline: Optional[date] = None,
        today: Optional[date] = None,
    ) -> Quotation:
        self.customers.get(customer_id)
        cargo = cargo or CargoSpecification()
        errors = list(validate_cargo_specifications(cargo).values())
        if estimated_shipments < 1:
            errors.append("Estimated shipments must be at least 1")
        if errors:
            raise ValidationError(errors)
        today = today or date.today()
        same_year = self.quotations.find(lambda q: q.created_at.year == today.year)
        quotation = Quotation(
            id=str(uuid4()),
            quotation_number=generate_quotation_number(len(same_year), today),
            customer_id=customer_id,
            title=title,
            origin=origin,
            destination=destination,
            commodity=commodity,
            cargo=cargo,
            estimated_shipments=estimated_shipments,
            rfq_deadline=rfq_deadline,
            created_at=datetime.combine(today, datetime.utcnow().time()),
        )
        self.quotations.add(quotation.id, quotation)
        logger.info("Created quotation %s", quotation.quotation_number)
        return quotation

    def _editable_quotation(self, quotation_id: str) -> Quotation:
        quotation = self.quotations.get(quotation_id)
        if quotation.status not in {QuotationStatus.DRAFT, QuotationStatus.ENGINEERING_REVIEW}:
            raise self._refuse(
                f"Quotation {quotation.quotation_number} can no longer be edited "
                f"(status {quotation.status.value})"
            )
        return quotation

    def _save_quotation_totals(self, quotation: Quotation) -> Quotation:
        totals = quotation_rules.calculate_quotation_totals(
            quotation.revenue_items,
            quotation.cost_items,
            quotation.pursuit_costs,
            quotation.estimated_shipments,
        )
        quotation.total_revenue = totals.total_revenue
        quotation.total_cost = totals.total_cost
        self.quotations.upsert(quotation.id, quotation)
        return quotation

    def add_quotation_revenue_item(
        self,
        quotation_id: str,
        description: str,
        quantity: float,
        unit: str,
        unit_price: float,
    ) -> Quotation:
        if quantity <= 0 or unit_price < 0:
            raise ValidationError("Quantity must be positive and unit price non-negative")
        quotation = self._editable_quotation(quotation_id)
        quotation.revenue_items.append(RevenueItem(description, quantity, unit, unit_price))
        return self._save_quotation_totals(quotation)

    def add_quotation_cost_item(
        self,
        quotation_id: str,
        category: str,
        description: str,
        estimated_amount: float,
        *,
        vendor_id: Optional[str] = None,
    ) -> Quotation:
        if estimated_amount < 0:
            raise ValidationError("Estimated amount must be non-negative")
        quotation = self._editable_quotation(quotation_id)
        vendor_name = self.vendors.get(vendor_id).name if vendor_id else ""
        quotation.cost_items.append(
            CostItem(
                id=str(uuid4()),
                category=category,
                description=description,
                estimated_amount=estimated_amount,
                vendor_id=vendor_id,
                vendor_name=vendor_name,
            )
        )
        return self._save_quotation_totals(quotation)

    def add_quotation_pursuit_cost(
        self, quotation_id: str, description: str, amount: float, category: str = "other"
    ) -> Quotation:
        if amount < 0:
            raise ValidationError("Pursuit cost must be non-negative")
        quotation = self._editable_quotation(quotation_id)
        quotation.pursuit_costs.append(PursuitCost(description, amount, category))
        return self._save_quotation_totals(quotation)

    def quotation_financials(self, quotation_id: str) -> quotation_rules.QuotationFinancials:
        quotation = self.quotations.get(quotation_id)
        return quotation_rules.calculate_quotation_totals(
            quotation.revenue_items,
            quotation.cost_items,
            quotation.pursuit_costs,
            quotation.estimated_shipments,
        )

    def add_complexity_criterion(self, criterion: ComplexityCriterion) -> ComplexityCriterion:
        self.criteria.add(criterion.code, criterion)
        return criterion

    def classify_quotation(self, quotation_id: str) -> Quotation:
        """Score the quotation's cargo and route it to engineering if needed."""

        quotation = self._editable_quotation(quotation_id)
        classification = calculate_market_classification(quotation.cargo, self.criteria.list())
        quotation.market_type = classification.market_type
        quotation.complexity_score = classification.complexity_score
        quotation.complexity_factors = classification.complexity_factors
        quotation.requires_engineering = classification.requires_engineering
        if classification.requires_engineering:
            if quotation.engineering_status == EngineeringStatus.NOT_REQUIRED:
                quotation.engineering_status = EngineeringStatus.PENDING
        else:
            quotation.engineering_status = EngineeringStatus.NOT_REQUIRED
        if quotation.status == QuotationStatus.DRAFT:
            quotation.status = quotation_rules.determine_initial_status(classification)
        self.quotations.upsert(quotation.id, quotation)
        logger.info(
            "Classified quotation %s as %s (score %s)",
            quotation.quotation_number,
            quotation.market_type.value,
            quotation.complexity_score,
        )
        return quotation

    def complete_engineering(self, quotation_id: str, *, waive: bool = False) -> Quotation:
        quotation = self.quotations.get(quotation_id)
        if quotation.status != QuotationStatus.ENGINEERING_REVIEW:
            raise self._refuse(
                f"Quotation {quotation.quotation_number} is not in engineering review"
            )
        quotation.engineering_status = (
            EngineeringStatus.WAIVED if waive else EngineeringStatus.COMPLETED
        )
        self.quotations.upsert(quotation.id, quotation)
        logger.info(
            "Engineering %s for quotation %s",
            quotation.engineering_status.value,
            quotation.quotation_number,
        )
        return quotation

    def transition_quotation(
        self, quotation_id: str, target: QuotationStatus, *, reason: str = ""
    ) -> Quotation:
        if target == QuotationStatus.WON:
            self.mark_quotation_won(quotation_id)
            return self.quotations.get(quotation_id)
        quotation = self.quotations.get(quotation_id)
        allowed = quotation_rules.valid_next_statuses(
            quotation.status, quotation.requires_engineering, quotation.engineering_status
        )
        if target not in allowed:
            raise self._refuse(
                f"Quotation {quotation.quotation_number} cannot move from "
                f"{quotation.status.value} to {target.value}"
            )
        if target == QuotationStatus.SUBMITTED:
            ok, message = quotation_rules.can_submit_quotation(quotation)
            if not ok:
                raise self._refuse(message)
            if not quotation.revenue_items:
                raise ValidationError("Quotation needs at least one revenue item")
        if target in {QuotationStatus.LOST, QuotationStatus.CANCELLED}:
            quotation.outcome_reason = reason
        previous = quotation.status
        quotation.status = target
        self.quotations.upsert(quotation.id, quotation)
        logger.info(
            "Quotation %s: %s -> %s",
            quotation.quotation_number,
            previous.value,
            target.value,
        )
        return quotation

    def mark_quotation_won(
        self, quotation_id: str, *, jo_date: Optional[date] = None
    ) -> List[ProformaJobOrder]:
        """Close the quotation as won and create one PJO per shipment."""

        quotation = self.quotations.get(quotation_id)
        if not quotation_rules.can_transition_status(quotation.status, QuotationStatus.WON):
            raise self._refuse(
                f"Only submitted quotations can be won; "
                f"{quotation.quotation_number} is {quotation.status.value}"
            )
        totals = self.quotation_financials(quotation_id)
        splits = quotation_rules.split_quotation_by_shipments(
            quotation,
            quotation.revenue_items,
            quotation.cost_items,
            totals.pursuit_cost_per_shipment,
            quotation.estimated_shipments,
        )
        jo_date = jo_date or date.today()
        created = []
        for split in splits:
            fields = split.pjo_fields
            created.append(
                self.create_pjo(
                    customer_id=str(fields["customer_id"]),
                    commodity=str(fields["commodity"]),
                    pol=str(fields["pol"]),
                    pod=str(fields["pod"]),
                    jo_date=jo_date,
                    quotation_id=quotation.id,
                    cargo=quotation.cargo,
                    market_type=quotation.market_type,
                    complexity_score=quotation.complexity_score,
                    revenue_items=split.revenue_items,
                    cost_items=split.cost_items,
                    pursuit_cost_allocation=split.pursuit_cost_allocation,
                )
            )
        quotation.status = QuotationStatus.WON
        self.quotations.upsert(quotation.id, quotation)
        logger.info(
            "Quotation %s won; created %d PJO(s)", quotation.quotation_number, len(created)
        )
        return created

    # ------------------------------------------------------------------
    # Proforma job orders
    # ------------------------------------------------------------------
    def create_pjo(
        self,
        customer_id: str,
        commodity: str,
        pol: str,
        pod: str,
        jo_date: date,
        *,
        etd: Optional[date] = None,
        eta: Optional[date] = None,
        quotation_id: Optional[str] = None,
        cargo: Optional[CargoSpecification] = None,
        market_type: MarketType = MarketType.SIMPLE,
        complexity_score: float = 0.0,
        revenue_items: Sequence[RevenueItem] = (),
        cost_items: Sequence[CostItem] = (),
        pursuit_cost_allocation: float = 0.0,
    ) -> ProformaJobOrder:
        self.customers.get(customer_id)
        problem = pjo_rules.validate_date_order(etd, eta)
        if problem:
            raise ValidationError(problem)
        sequence = next_sequence(
            (p.pjo_number for p in self.pjos), pjo_sequence_pattern(jo_date)
        )
        pjo = ProformaJobOrder(
            id=str(uuid4()),
            pjo_number=generate_pjo_number(sequence, jo_date),
            customer_id=customer_id,
            commodity=commodity,
            pol=pol,
            pod=pod,
            jo_date=jo_date,
            etd=etd,
            eta=eta,
            quotation_id=quotation_id,
            cargo=cargo or CargoSpecification(),
            market_type=market_type,
            complexity_score=complexity_score,
            revenue_items=list(revenue_items),
            cost_items=list(cost_items),
            pursuit_cost_allocation=pursuit_cost_allocation,
        )
        self.pjos.add(pjo.id, pjo)
        logger.info("Created PJO %s", pjo.pjo_number)
        return pjo

    def _draft_pjo(self, pjo_id: str) -> ProformaJobOrder:
        pjo = self.pjos.get(pjo_id)
        if pjo.status != PJOStatus.DRAFT or not pjo.is_active:
            raise self._refuse(f"PJO {pjo.pjo_number} is not an editable draft")
        return pjo

    def add_pjo_revenue_item(
        self, pjo_id: str, description: str, quantity: float, unit: str, unit_price: float
    ) -> ProformaJobOrder:
        if quantity <= 0 or unit_price < 0:
            raise ValidationError("Quantity must be positive and unit price non-negative")
        pjo = self._draft_pjo(pjo_id)
        pjo.revenue_items.append(RevenueItem(description, quantity, unit, unit_price))
        self.pjos.upsert(pjo.id, pjo)
        return pjo

    def add_pjo_cost_item(
        self,
        pjo_id: str,
        category: str,
        description: str,
        estimated_amount: float,
        *,
        vendor_id: Optional[str] = None,
    ) -> ProformaJobOrder:
        if estimated_amount < 0:
            raise ValidationError("Estimated amount must be non-negative")
        pjo = self._draft_pjo(pjo_id)
        vendor_name = self.vendors.get(vendor_id).name if vendor_id else ""
        pjo.cost_items.append(
            CostItem(
                id=str(uuid4()),
                category=category,
                description=description,
                estimated_amount=estimated_amount,
                vendor_id=vendor_id,
                vendor_name=vendor_name,
            )
        )
        self.pjos.upsert(pjo.id, pjo)
        return pjo

    def _move_pjo(self, pjo: ProformaJobOrder, target: PJOStatus) -> None:
        if not pjo_rules.can_transition_status(pjo.status, target):
            raise self._refuse(
                f"PJO {pjo.pjo_number} cannot move from {pjo.status.value} to {target.value}"
            )
        previous = pjo.status
        pjo.status = target
        logger.info("PJO %s: %s -> %s", pjo.pjo_number, previous.value, target.value)

    def submit_pjo(self, pjo_id: str) -> ProformaJobOrder:
        pjo = self._draft_pjo(pjo_id)
        if not pjo.revenue_items:
            raise ValidationError("PJO needs at least one revenue item")
        revenue = pjo_rules.calculate_revenue_total(pjo.revenue_items)
        cost = pjo_rules.calculate_cost_total(pjo.cost_items, "estimated")
        problem = pjo_rules.validate_positive_margin(revenue, cost)
        if problem:
            logger.warning("PJO %s rejected on submit: %s", pjo.pjo_number, problem)
            raise ValidationError(problem)
        self._move_pjo(pjo, PJOStatus.PENDING_APPROVAL)
        self.pjos.upsert(pjo.id, pjo)
        return pjo

    def approve_pjo(self, pjo_id: str) -> ProformaJobOrder:
        pjo = self.pjos.get(pjo_id)
        self._move_pjo(pjo, PJOStatus.APPROVED)
        pjo.approved_at = datetime.utcnow()
        self.pjos.upsert(pjo.id, pjo)
        return pjo

    def reject_pjo(self, pjo_id: str, reason: str) -> ProformaJobOrder:
        if not reason.strip():
            raise ValidationError("A rejection reason is required")
        pjo = self.pjos.get(pjo_id)
        self._move_pjo(pjo, PJOStatus.REJECTED)
        pjo.rejection_reason = reason.strip()
        self.pjos.upsert(pjo.id, pjo)
        return pjo

    def confirm_cost_item(
        self, pjo_id: str, cost_item_id: str, actual_amount: float, *, role: str
    ) -> CostItem:
        """Record the actual amount of a cost line on an approved PJO."""

        if role not in pjo_rules.COST_EDITOR_ROLES:
            logger.warning("Role %r may not confirm costs", role)
            raise PermissionDeniedError(f"Role {role!r} cannot confirm PJO costs")
        if actual_amount < 0:
            raise ValidationError("Actual amount must be non-negative")
        pjo = self.pjos.get(pjo_id)
        if not pjo_rules.can_edit_cost_items(role, pjo.status, pjo.converted_to_jo):
            raise self._refuse(
                f"Costs of PJO {pjo.pjo_number} can only be confirmed while approved "
                "and not yet converted"
            )
        for item in pjo.cost_items:
            if item.id == cost_item_id:
                break
        else:
            raise ValidationError(f"Cost item {cost_item_id!r} is not on PJO {pjo.pjo_number}")
        result = pjo_rules.calculate_cost_status(
            item.estimated_amount, actual_amount, self.settings.budget_warning_ratio
        )
        item.actual_amount = actual_amount
        item.status = result.status
        self.pjos.upsert(pjo.id, pjo)
        if result.status == CostItemStatus.EXCEEDED:
            logger.warning(
                "Cost %r on PJO %s exceeds estimate by %.1f%%",
                item.description,
                pjo.pjo_number,
                result.variance_pct,
            )
        return item

    def delete_pjo(self, pjo_id: str) -> ProformaJobOrder:
        """Soft-delete a draft; inactive PJOs drop out of every listing."""

        pjo = self._draft_pjo(pjo_id)
        pjo.is_active = False
        self.pjos.upsert(pjo.id, pjo)
        logger.info("Deleted draft PJO %s", pjo.pjo_number)
        return pjo

    def active_pjos(self, status: Optional[str] = None) -> List[ProformaJobOrder]:
        return pjo_rules.filter_pjos(self.pjos.find(lambda p: p.is_active), status)

    # ------------------------------------------------------------------
    # Job orders
    # ------------------------------------------------------------------
    def convert_pjo_to_jo(self, pjo_id: str, *, today: Optional[date] = None) -> JobOrder:
        pjo = self.pjos.get(pjo_id)
        if not jo_rules.can_create_job_order(pjo):
            raise self._refuse(
                f"PJO {pjo.pjo_number} must be approved, unconverted and have every "
                "cost confirmed before it becomes a job order"
            )
        today = today or date.today()
        financials = jo_rules.calculate_jo_financials(pjo.revenue_items, pjo.cost_items)
        sequence = next_sequence(
            (jo.jo_number for jo in self.job_orders), jo_sequence_pattern(today)
        )
        job_order = JobOrder(
            id=str(uuid4()),
            jo_number=generate_jo_number(sequence, today),
            pjo_id=pjo.id,
            customer_id=pjo.customer_id,
            description=f"{pjo.commodity} {pjo.pol} - {pjo.pod}".strip(),
            final_revenue=financials.final_revenue,
            final_cost=financials.final_cost,
        )
        self.job_orders.add(job_order.id, job_order)
        pjo.converted_to_jo = True
        pjo.job_order_id = job_order.id
        self.pjos.upsert(pjo.id, pjo)
        logger.info("Converted PJO %s into %s", pjo.pjo_number, job_order.jo_number)
        return job_order

    def _move_job_order(self, job_order: JobOrder, target: JOStatus) -> None:
        if not jo_rules.can_transition_status(job_order.status, target):
            raise self._refuse(
                f"Job order {job_order.jo_number} cannot move from "
                f"{job_order.status.value} to {target.value}"
            )
        previous = job_order.status
        job_order.status = target
        logger.info(
            "Job order %s: %s -> %s", job_order.jo_number, previous.value, target.value
        )

    def complete_job_order(self, jo_id: str) -> JobOrder:
        job_order = self.job_orders.get(jo_id)
        self._move_job_order(job_order, JOStatus.COMPLETED)
        job_order.completed_at = datetime.utcnow()
        self.job_orders.upsert(job_order.id, job_order)
        return job_order

    def submit_job_order_to_finance(self, jo_id: str) -> JobOrder:
        job_order = self.job_orders.get(jo_id)
        self._move_job_order(job_order, JOStatus.SUBMITTED_TO_FINANCE)
        job_order.submitted_to_finance_at = datetime.utcnow()
        # Term invoices raised while the job was running count as billing.
        if self._live_invoices(job_order.id):
            self._move_job_order(job_order, JOStatus.INVOICED)
        self.job_orders.upsert(job_order.id, job_order)
        self._close_if_settled(job_order)
        return job_order

    def record_jo_documents(
        self,
        jo_id: str,
        *,
        surat_jalan: Optional[bool] = None,
        berita_acara: Optional[bool] = None,
    ) -> JobOrder:
        """Flag delivery documents that unlock document-triggered terms."""

        job_order = self.job_orders.get(jo_id)
        if surat_jalan is not None:
            job_order.has_surat_jalan = surat_jalan
        if berita_acara is not None:
            job_order.has_berita_acara = berita_acara
        self.job_orders.upsert(job_order.id, job_order)
        return job_order

    def set_invoice_terms(self, jo_id: str, terms: Sequence[InvoiceTerm]) -> JobOrder:
        job_order = self.job_orders.get(jo_id)
        if invoice_rules.has_any_invoiced_term(job_order.invoice_terms):
            raise self._refuse(
                f"Invoice terms of {job_order.jo_number} are locked once a term is invoiced"
            )
        if not invoice_rules.validate_terms_total(terms):
            total = invoice_rules.terms_percentage_total(terms)
            raise ValidationError(f"Invoice terms must total 100% (got {total:g}%)")
        job_order.invoice_terms = [
            InvoiceTerm(t.term, t.percentage, t.description, t.trigger) for t in terms
        ]
        self.job_orders.upsert(job_order.id, job_order)
        logger.info(
            "Set %d invoice term(s) on %s", len(job_order.invoice_terms), job_order.jo_number
        )
        return job_order

    def apply_invoice_term_preset(self, jo_id: str, preset: str) -> JobOrder:
        return self.set_invoice_terms(jo_id, invoice_rules.preset_terms(preset))

    def invoice_term_statuses(self, jo_id: str) -> List[TermStatus]:
        job_order = self.job_orders.get(jo_id)
        return [
            invoice_rules.term_status(
                term, job_order.status, job_order.has_surat_jalan, job_order.has_berita_acara
            )
            for term in job_order.invoice_terms
        ]

    # ------------------------------------------------------------------
    # Invoices
    # ------------------------------------------------------------------
    def _new_invoice(
        self,
        job_order: JobOrder,
        line_items: List[InvoiceLineItem],
        invoice_date: date,
        term: Optional[str] = None,
    ) -> Invoice:
        totals = invoice_rules.calculate_invoice_totals(line_items, self.settings.vat_rate)
        sequence = next_sequence(
            (inv.invoice_number for inv in self.invoices),
            invoice_sequence_pattern(invoice_date.year),
        )
        invoice = Invoice(
            id=str(uuid4()),
            invoice_number=format_invoice_number(invoice_date.year, sequence),
            jo_id=job_order.id,
            customer_id=job_order.customer_id,
            invoice_date=invoice_date,
            due_date=invoice_rules.default_due_date(
                invoice_date, self.settings.default_payment_terms_days
            ),
            line_items=line_items,
            subtotal=totals.subtotal,
            vat_amount=totals.vat_amount,
            total_amount=totals.total_amount,
            term=term,
        )
        self.invoices.add(invoice.id, invoice)
        if job_order.status == JOStatus.SUBMITTED_TO_FINANCE:
            self._move_job_order(job_order, JOStatus.INVOICED)
        self.job_orders.upsert(job_order.id, job_order)
        logger.info(
            "Created invoice %s for %s (%.2f)",
            invoice.invoice_number,
            job_order.jo_number,
            invoice.total_amount,
        )
        return invoice

    def create_invoice_from_jo(
        self, jo_id: str, *, invoice_date: Optional[date] = None
    ) -> Invoice:
        """Bill the whole job order in one invoice."""

        job_order = self.job_orders.get(jo_id)
        if not jo_rules.can_be_invoiced(job_order.status):
            raise self._refuse(
                f"Job order {job_order.jo_number} must be submitted to finance before invoicing"
            )
        if job_order.invoice_terms:
            raise self._refuse(
                f"Job order {job_order.jo_number} is billed by terms; invoice each term instead"
            )
        pjo = self.pjos.get(job_order.pjo_id)
        line_items = invoice_rules.copy_line_items_from_revenue(pjo.revenue_items)
        if not line_items:
            line_items = [
                InvoiceLineItem(
                    line_number=1,
                    description=job_order.description or job_order.jo_number,
                    quantity=1,
                    unit="LOT",
                    unit_price=job_order.final_revenue,
                )
            ]
        return self._new_invoice(job_order, line_items, invoice_date or date.today())

    def create_term_invoice(
        self, jo_id: str, term_index: int, *, invoice_date: Optional[date] = None
    ) -> Invoice:
        job_order = self.job_orders.get(jo_id)
        if job_order.status == JOStatus.CLOSED:
            raise self._refuse(f"Job order {job_order.jo_number} is closed")
        try:
            term = job_order.invoice_terms[term_index]
        except IndexError as exc:
            raise ValidationError(f"Job order has no invoice term #{term_index}") from exc
        status = invoice_rules.term_status(
            term, job_order.status, job_order.has_surat_jalan, job_order.has_berita_acara
        )
        if status != TermStatus.READY:
            detail = invoice_rules.locked_trigger_description(term.trigger)
            raise self._refuse(
                f"Term {term.description!r} is {invoice_rules.term_status_label(status).lower()}"
                + (f": {detail}" if detail and status == TermStatus.LOCKED else "")
            )
        amount = invoice_rules.calculate_term_amount(job_order.final_revenue, term.percentage)
        line = InvoiceLineItem(
            line_number=1,
            description=f"{term.description} ({term.percentage:g}%) - {job_order.jo_number}",
            quantity=1,
            unit="LOT",
            unit_price=amount,
        )
        invoice = self._new_invoice(
            job_order, [line], invoice_date or date.today(), term=term.term
        )
        term.invoiced = True
        term.invoice_id = invoice.id
        self.job_orders.upsert(job_order.id, job_order)
        return invoice

    def transition_invoice(
        self, invoice_id: str, target: InvoiceStatus, *, today: Optional[date] = None
    ) -> Invoice:
        invoice = self.invoices.get(invoice_id)
        today = today or date.today()
        if not invoice_rules.is_valid_status_transition(invoice.status, target):
            raise self._refuse(
                f"Invoice {invoice.invoice_number} cannot move from "
                f"{invoice.status.value} to {target.value}"
            )
        if target == InvoiceStatus.OVERDUE and invoice.due_date >= today:
            raise self._refuse(
                f"Invoice {invoice.invoice_number} is not past its due date"
            )
        if target == InvoiceStatus.PARTIAL:
            raise self._refuse(
                f"Invoice {invoice.invoice_number} becomes partial by recording a payment"
            )
        if target == InvoiceStatus.PAID and invoice.balance_due > 0:
            # Settle the balance so the payment ledger matches amount_paid.
            self.record_payment(
                invoice.id,
                invoice.balance_due,
                payment_date=today,
                reference="Marked paid",
            )
            return self.invoices.get(invoice.id)
        previous = invoice.status
        invoice.status = target
        if target == InvoiceStatus.SENT:
            invoice.sent_at = datetime.utcnow()
        elif target == InvoiceStatus.PAID:
            invoice.amount_paid = invoice.total_amount
            invoice.paid_at = datetime.utcnow()
        elif target == InvoiceStatus.CANCELLED:
            invoice.cancelled_at = datetime.utcnow()
        self.invoices.upsert(invoice.id, invoice)
        logger.info(
            "Invoice %s: %s -> %s", invoice.invoice_number, previous.value, target.value
        )
        if target == InvoiceStatus.PAID:
            self._after_invoice_paid(invoice)
        elif target == InvoiceStatus.CANCELLED:
            self._after_invoice_cancelled(invoice)
        return invoice

    def record_payment(
        self,
        invoice_id: str,
        amount: float,
        *,
        payment_date: Optional[date] = None,
        reference: str = "",
    ) -> Payment:
        invoice = self.invoices.get(invoice_id)
        if amount <= 0:
            raise ValidationError("Payment amount must be positive")
        if invoice.status not in invoice_rules.OUTSTANDING_STATUSES:
            raise self._refuse(
                f"Invoice {invoice.invoice_number} is {invoice.status.value} "
                "and cannot take payments"
            )
        if amount > invoice.balance_due + PAYMENT_TOLERANCE:
            raise ValidationError(
                f"Payment exceeds the outstanding balance of {invoice.balance_due:.2f}"
            )
        payment = Payment(
            id=str(uuid4()),
            invoice_id=invoice.id,
            amount=amount,
            payment_date=payment_date or date.today(),
            reference=reference,
        )
        self.payments.add(payment.id, payment)
        invoice.amount_paid += amount
        if invoice.balance_due <= PAYMENT_TOLERANCE:
            invoice.status = InvoiceStatus.PAID
            invoice.paid_at = datetime.utcnow()
        else:
            invoice.status = InvoiceStatus.PARTIAL
        self.invoices.upsert(invoice.id, invoice)
        logger.info(
            "Payment of %.2f on %s; status %s",
            amount,
            invoice.invoice_number,
            invoice.status.value,
        )
        if invoice.status == InvoiceStatus.PAID:
            self._after_invoice_paid(invoice)
        return payment

    def invoice_payments(self, invoice_id: str) -> List[Payment]:
        self.invoices.get(invoice_id)
        payments = self.payments.find(lambda p: p.invoice_id == invoice_id)
        return sorted(payments, key=lambda p: p.payment_date)

    def _live_invoices(self, jo_id: str) -> List[Invoice]:
        return self.invoices.find(
            lambda inv: inv.jo_id == jo_id and inv.status != InvoiceStatus.CANCELLED
        )

    def _after_invoice_paid(self, invoice: Invoice) -> None:
        self._close_if_settled(self.job_orders.get(invoice.jo_id))

    def _close_if_settled(self, job_order: JobOrder) -> None:
        """Close the job order once everything billed on it is paid."""

        if job_order.status != JOStatus.INVOICED:
            return
        if job_order.invoice_terms and not all(t.invoiced for t in job_order.invoice_terms):
            return
        live = self._live_invoices(job_order.id)
        if all(inv.status == InvoiceStatus.PAID for inv in live):
            self._move_job_order(job_order, JOStatus.CLOSED)
            self.job_orders.upsert(job_order.id, job_order)

    def _after_invoice_cancelled(self, invoice: Invoice) -> None:
        job_order = self.job_orders.get(invoice.jo_id)
        for term in job_order.invoice_terms:
            if term.invoice_id == invoice.id:
                term.invoiced = False
                term.invoice_id = None
        live = self.invoices.find(
            lambda inv: inv.jo_id == job_order.id and inv.status != InvoiceStatus.CANCELLED
        )
        if job_order.status == JOStatus.INVOICED and not live:
            # Reverting is the one backwards move a job order allows.
            job_order.status = JOStatus.SUBMITTED_TO_FINANCE
            logger.info(
                "Job order %s returned to submitted_to_finance after cancellation",
                job_order.jo_number,
            )
        self.job_orders.upsert(job_order.id, job_order)

    def refresh_overdue_invoices(self, today: Optional[date] = None) -> List[Invoice]:
        """Flag sent and partially paid invoices whose due date has passed."""

        today = today or date.today()
        flagged = []
        for invoice in self.invoices.list():
            if invoice_rules.is_invoice_overdue(invoice.due_date, invoice.status, today):
                flagged.append(
                    self.transition_invoice(invoice.id, InvoiceStatus.OVERDUE, today=today)
                )
        return flagged

    # ------------------------------------------------------------------
    # Payroll
    # ------------------------------------------------------------------
    def create_payroll_component(
        self,
        component_code: str,
        component_name: str,
        component_type: ComponentType,
        *,
        calculation_type: CalculationType = CalculationType.FIXED,
        default_amount: Optional[float] = None,
        percentage_rate: Optional[float] = None,
        percentage_of: str = "base_salary",
    ) -> PayrollComponent:
        if self.payroll_components.find(lambda c: c.component_code == component_code):
            raise ValidationError(f"Component code {component_code!r} already exists")
        component = PayrollComponent(
            id=str(uuid4()),
            component_code=component_code,
            component_name=component_name,
            component_type=component_type,
            calculation_type=calculation_type,
            default_amount=default_amount,
            percentage_rate=percentage_rate,
            percentage_of=percentage_of,
        )
        self.payroll_components.add(component.id, component)
        return component

    def install_standard_components(self) -> List[PayrollComponent]:
        existing = {c.component_code for c in self.payroll_components}
        added = []
        for component in standard_components():
            if component.component_code not in existing:
                self.payroll_components.add(component.id, component)
                added.append(component)
        return added

    def set_employee_component(
        self,
        employee_id: str,
        component_id: str,
        *,
        custom_amount: Optional[float] = None,
        custom_rate: Optional[float] = None,
        is_active: bool = True,
    ) -> EmployeePayrollSetup:
        self.employees.get(employee_id)
        self.payroll_components.get(component_id)
        setup = EmployeePayrollSetup(
            employee_id=employee_id,
            component_id=component_id,
            custom_amount=custom_amount,
            custom_rate=custom_rate,
            is_active=is_active,
        )
        self.payroll_setups.upsert(f"{employee_id}:{component_id}", setup)
        return setup

    def _employee_setups(self, employee_id: str) -> List[EmployeePayrollSetup]:
        return self.payroll_setups.find(lambda s: s.employee_id == employee_id)

    def preview_payroll(self, employee_id: str, overtime_hours: float = 0) -> PayrollCalculation:
        employee = self.employees.get(employee_id)
        return calculate_full_payroll(
            employee.base_salary,
            self.payroll_components.list(),
            self._employee_setups(employee_id),
            overtime_hours,
        )

    def create_payroll_period(
        self, year: int, month: int, pay_date: Optional[date]
    ) -> PayrollPeriod:
        errors = validate_payroll_period(year, month, pay_date)
        if errors:
            raise ValidationError(errors)
        if self.payroll_periods.find(
            lambda p: p.period_year == year and p.period_month == month
        ):
            raise ValidationError(f"A payroll period for {month:02d}/{year} already exists")
        start, end = period_dates(year, month)
        period = PayrollPeriod(
            id=str(uuid4()),
            period_name=generate_period_name(year, month),
            period_year=year,
            period_month=month,
            start_date=start,
            end_date=end,
            pay_date=pay_date,
        )
        self.payroll_periods.add(period.id, period)
        logger.info("Created payroll period %s", period.period_name)
        return period

    def period_records(self, period_id: str) -> List[PayrollRecord]:
        return self.payroll_records.find(lambda r: r.period_id == period_id)

    def run_payroll(
        self, period_id: str, overtime_hours: Optional[Mapping[str, float]] = None
    ) -> PayrollPeriod:
        """Calculate one record per active employee; reruns replace records."""

        period = self.payroll_periods.get(period_id)
        if period.status not in {PayrollPeriodStatus.DRAFT, PayrollPeriodStatus.PROCESSING}:
            raise self._refuse(
                f"Payroll {period.period_name} is {period.status.value} and cannot be recalculated"
            )
        overtime_hours = overtime_hours or {}
        for record in self.period_records(period.id):
            self.payroll_records.remove(record.id)
        components = self.payroll_components.list()
        records = []
        for employee in self.employees.find(lambda e: e.is_active):
            attendance = default_attendance_summary(period.period_year, period.period_month)
            attendance.overtime_hours = overtime_hours.get(employee.id, 0)
            calculation = calculate_full_payroll(
                employee.base_salary,
                components,
                self._employee_setups(employee.id),
                attendance.overtime_hours,
            )
            record = PayrollRecord(
                id=str(uuid4()),
                period_id=period.id,
                employee_id=employee.id,
                calculation=calculation,
                attendance=attendance,
            )
            self.payroll_records.add(record.id, record)
            records.append(record)
        period.total_gross = sum(r.calculation.gross_salary for r in records)
        period.total_deductions = sum(r.calculation.total_deductions for r in records)
        period.total_net = sum(r.calculation.net_salary for r in records)
        period.total_company_cost = sum(r.calculation.total_company_cost for r in records)
        period.employee_count = len(records)
        period.status = PayrollPeriodStatus.PROCESSING
        self.payroll_periods.upsert(period.id, period)
        logger.info(
            "Ran payroll %s for %d employee(s)", period.period_name, period.employee_count
        )
        return period

    def _move_period(
        self,
        period_id: str,
        target: PayrollPeriodStatus,
        record_status: Optional[PayrollRecordStatus] = None,
    ) -> PayrollPeriod:
        period = self.payroll_periods.get(period_id)
        if not can_transition_period(period.status, target):
            raise self._refuse(
                f"Payroll {period.period_name} cannot move from "
                f"{period.status.value} to {target.value}"
            )
        if record_status is not None:
            for record in self.period_records(period.id):
                record.status = record_status
                self.payroll_records.upsert(record.id, record)
        previous = period.status
        period.status = target
        self.payroll_periods.upsert(period.id, period)
        logger.info("Payroll %s: %s -> %s", period.period_name, previous.value, target.value)
        return period

    def approve_payroll(self, period_id: str) -> PayrollPeriod:
        if not self.period_records(period_id):
            raise self._refuse("Run the payroll before approving it")
        return self._move_period(
            period_id, PayrollPeriodStatus.APPROVED, PayrollRecordStatus.APPROVED
        )

    def pay_payroll(self, period_id: str) -> PayrollPeriod:
        return self._move_period(period_id, PayrollPeriodStatus.PAID, PayrollRecordStatus.PAID)

    def close_payroll(self, period_id: str) -> PayrollPeriod:
        return self._move_period(period_id, PayrollPeriodStatus.CLOSED)

    # ------------------------------------------------------------------
    # Dashboard
    # ------------------------------------------------------------------
    def dashboard_snapshot(self, today: Optional[date] = None) -> DashboardSnapshot:
        today = today or date.today()
        invoices = self.invoices.list()
        job_orders = self.job_orders.list()
        quotations = self.quotations.list()
        names = customer_names(self.customers)
        won = sum(1 for q in quotations if q.status == QuotationStatus.WON)
        lost = sum(1 for q in quotations if q.status == QuotationStatus.LOST)
        return DashboardSnapshot(
            as_of=today,
            kpis=calculate_finance_kpis(invoices, job_orders, today),
            aging=group_invoices_by_aging(invoices, today),
            overdue_invoices=filter_overdue_invoices(invoices, today, names),
            recent_payments=filter_recent_payments(invoices, today, names),
            pjo_pipeline=group_pjos_by_status(self.pjos.list()),
            partial_payments=partial_payments_stats(invoices),
            monthly_payments=monthly_payments_total(self.payments.list(), today),
            quotation_pipeline_value=quotation_rules.calculate_pipeline_value(quotations),
            win_rate=quotation_rules.calculate_win_rate(won, lost),
            market_mix=count_by_market_type(self.pjos.find(lambda p: p.is_active)),
        )


def customer_names(customers: Iterable[Customer]) -> Dict[str, str]:
    return {customer.id: customer.name for customer in customers}


__all__ = ["FreightERPService", "DashboardSnapshot", "PAYMENT_TOLERANCE"]
