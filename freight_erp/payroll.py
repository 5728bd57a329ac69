"""Monthly payroll engine: earnings, BPJS, simplified PPh 21 and periods.

All amounts are whole Rupiah. Percentages in :data:`BPJS_RATES` and on
components are expressed in percent, not fractions.
"""

from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Iterable, List, Mapping, Optional, Sequence, Tuple

from .domain import (
    AttendanceSummary,
    BPJSType,
    CalculationType,
    ComponentType,
    EmployeePayrollSetup,
    PayrollCalculation,
    PayrollComponent,
    PayrollComponentItem,
    PayrollPeriodStatus,
)
from .formatting import round_rupiah


@dataclass(frozen=True, slots=True)
class BPJSRate:
    employee: float
    company: float
    max_base: Optional[float] = None


BPJS_RATES: Mapping[BPJSType, BPJSRate] = {
    BPJSType.KESEHATAN: BPJSRate(employee=1, company=4, max_base=12_000_000),
    BPJSType.JHT: BPJSRate(employee=2, company=3.7),
    BPJSType.JP: BPJSRate(employee=1, company=2, max_base=10_042_300),
    BPJSType.JKK: BPJSRate(employee=0, company=0.24),
    BPJSType.JKM: BPJSRate(employee=0, company=0.3),
}

MONTH_NAMES_ID = (
    "Januari",
    "Februari",
    "Maret",
    "April",
    "Mei",
    "Juni",
    "Juli",
    "Agustus",
    "September",
    "Oktober",
    "November",
    "Desember",
)

# Average working hours per month used for the hourly overtime rate.
MONTHLY_WORK_HOURS = 173
OVERTIME_MULTIPLIER = 1.5

MONTHLY_PTKP = 4_500_000
PPH21_BRACKETS: Tuple[Tuple[Optional[float], float], ...] = (
    (5_000_000, 0.05),
    (15_000_000, 0.15),
    (20_000_000, 0.25),
    (None, 0.30),
)

MIN_PERIOD_YEAR = 2020
MAX_PERIOD_YEAR = 2100

EMPLOYEE_BPJS_CODES: Mapping[str, BPJSType] = {
    "bpjs_kes_emp": BPJSType.KESEHATAN,
    "bpjs_jht_emp": BPJSType.JHT,
    "bpjs_jp_emp": BPJSType.JP,
}

COMPANY_BPJS_CODES: Mapping[str, BPJSType] = {
    "bpjs_kes_com": BPJSType.KESEHATAN,
    "bpjs_jht_com": BPJSType.JHT,
    "bpjs_jp_com": BPJSType.JP,
    "bpjs_jkk": BPJSType.JKK,
    "bpjs_jkm": BPJSType.JKM,
}

PERIOD_TRANSITIONS: Mapping[PayrollPeriodStatus, Tuple[PayrollPeriodStatus, ...]] = {
    PayrollPeriodStatus.DRAFT: (PayrollPeriodStatus.PROCESSING,),
    PayrollPeriodStatus.PROCESSING: (PayrollPeriodStatus.APPROVED,),
    PayrollPeriodStatus.APPROVED: (PayrollPeriodStatus.PAID,),
    PayrollPeriodStatus.PAID: (PayrollPeriodStatus.CLOSED,),
    PayrollPeriodStatus.CLOSED: (),
}


# ----------------------------------------------------------------------
# Periods
# ----------------------------------------------------------------------
def _check_month(month: int) -> None:
    if not 1 <= month <= 12:
        raise ValueError("Month must be between 1 and 12")


def generate_period_name(year: int, month: int) -> str:
    """``generate_period_name(2025, 12)`` gives ``"Desember 2025"``."""

    _check_month(month)
    return f"{MONTH_NAMES_ID[month - 1]} {year}"


def period_dates(year: int, month: int) -> Tuple[date, date]:
    """First and last calendar day of the month."""

    _check_month(month)
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, 1), date(year, month, last_day)


def validate_payroll_period(year: int, month: int, pay_date: Optional[date]) -> List[str]:
    errors: List[str] = []
    year_ok = MIN_PERIOD_YEAR <= year <= MAX_PERIOD_YEAR
    month_ok = 1 <= month <= 12
    if not year_ok:
        errors.append("Invalid year")
    if not month_ok:
        errors.append("Invalid month")
    if pay_date is None:
        errors.append("Pay date is required")
    elif month_ok:
        _, end = period_dates(year, month)
        if pay_date < end:
            errors.append("Pay date must be on or after the period end date")
    return errors


def default_attendance_summary(year: int, month: int) -> AttendanceSummary:
    """Full attendance on every weekday of the month, no overtime."""

    start, end = period_dates(year, month)
    work_days = 0
    current = start
    while current <= end:
        if current.weekday() < 5:
            work_days += 1
        current += timedelta(days=1)
    return AttendanceSummary(work_days=work_days, present_days=work_days)


def can_transition_period(current: PayrollPeriodStatus, target: PayrollPeriodStatus) -> bool:
    return target in PERIOD_TRANSITIONS[current]


# ----------------------------------------------------------------------
# Calculations
# ----------------------------------------------------------------------
def calculate_bpjs(base_salary: float, bpjs_type: BPJSType, is_employee: bool) -> int:
    if base_salary <= 0:
        return 0
    rate = BPJS_RATES[bpjs_type]
    base = base_salary
    if rate.max_base is not None:
        base = min(base_salary, rate.max_base)
    percent = rate.employee if is_employee else rate.company
    return round_rupiah(base * percent / 100)


def calculate_overtime(base_salary: float, overtime_hours: float) -> int:
    if overtime_hours <= 0 or base_salary <= 0:
        return 0
    hourly_rate = base_salary / MONTHLY_WORK_HOURS
    return round_rupiah(hourly_rate * OVERTIME_MULTIPLIER * overtime_hours)


def calculate_simplified_pph21(gross_salary: float) -> int:
    """Monthly income tax estimate after the single-person PTKP.

    This is not the annualised TER method; it applies the progressive
    bands to one month of taxable income.
    """

    remaining = gross_salary - MONTHLY_PTKP
    if remaining <= 0:
        return 0
    tax = 0.0
    for width, rate in PPH21_BRACKETS:
        portion = remaining if width is None else min(remaining, width)
        tax += portion * rate
        remaining -= portion
        if remaining <= 0:
            break
    return round_rupiah(tax)


def _active_setup(
    component: PayrollComponent, setups: Sequence[EmployeePayrollSetup]
) -> Optional[EmployeePayrollSetup]:
    for setup in setups:
        if setup.component_id == component.id and setup.is_active:
            return setup
    return None


def _configured_amount(
    component: PayrollComponent,
    setup: Optional[EmployeePayrollSetup],
    base_salary: float,
    percentage_base: float,
) -> float:
    """Fixed or percentage amount, preferring the employee override."""

    if component.calculation_type == CalculationType.FIXED:
        if setup is not None and setup.custom_amount is not None:
            return setup.custom_amount
        return component.default_amount or 0
    rate = None
    if setup is not None:
        rate = setup.custom_rate
    if rate is None:
        rate = component.percentage_rate or 0
    base = base_salary if component.percentage_of == "base_salary" else percentage_base
    return round_rupiah(base * rate / 100)


def _item(component: PayrollComponent, amount: float) -> PayrollComponentItem:
    return PayrollComponentItem(
        component_id=component.id,
        component_code=component.component_code,
        component_name=component.component_name,
        amount=round_rupiah(amount),
    )


def _active_of_type(
    components: Iterable[PayrollComponent], component_type: ComponentType
) -> List[PayrollComponent]:
    return [c for c in components if c.component_type == component_type and c.is_active]


def calculate_earnings(
    base_salary: float,
    components: Iterable[PayrollComponent],
    setups: Sequence[EmployeePayrollSetup] = (),
    overtime_hours: float = 0,
) -> List[PayrollComponentItem]:
    earnings: List[PayrollComponentItem] = []
    for component in _active_of_type(components, ComponentType.EARNING):
        if component.component_code == "base_salary":
            amount = base_salary
        elif component.component_code == "overtime":
            amount = calculate_overtime(base_salary, overtime_hours)
        else:
            # Percentage earnings only apply to base salary; gross is not known yet.
            amount = _configured_amount(
                component, _active_setup(component, setups), base_salary, 0
            )
        if amount > 0:
            earnings.append(_item(component, amount))
    return earnings


def calculate_deductions(
    gross_salary: float,
    base_salary: float,
    components: Iterable[PayrollComponent],
    setups: Sequence[EmployeePayrollSetup] = (),
) -> List[PayrollComponentItem]:
    deductions: List[PayrollComponentItem] = []
    for component in _active_of_type(components, ComponentType.DEDUCTION):
        code = component.component_code
        if code in EMPLOYEE_BPJS_CODES:
            amount = calculate_bpjs(base_salary, EMPLOYEE_BPJS_CODES[code], True)
        elif code == "pph21":
            amount = calculate_simplified_pph21(gross_salary)
        else:
            amount = _configured_amount(
                component, _active_setup(component, setups), base_salary, gross_salary
            )
        if amount > 0:
            deductions.append(_item(component, amount))
    return deductions


def calculate_company_contributions(
    gross_salary: float,
    base_salary: float,
    components: Iterable[PayrollComponent],
    setups: Sequence[EmployeePayrollSetup] = (),
) -> List[PayrollComponentItem]:
    contributions: List[PayrollComponentItem] = []
    for component in _active_of_type(components, ComponentType.BENEFIT):
        code = component.component_code
        if code in COMPANY_BPJS_CODES:
            amount = calculate_bpjs(base_salary, COMPANY_BPJS_CODES[code], False)
        else:
            amount = _configured_amount(
                component, _active_setup(component, setups), base_salary, gross_salary
            )
        if amount > 0:
            contributions.append(_item(component, amount))
    return contributions


def sum_component_amounts(items: Iterable[PayrollComponentItem]) -> int:
    return sum(item.amount for item in items)


def calculate_full_payroll(
    base_salary: float,
    components: Sequence[PayrollComponent],
    setups: Sequence[EmployeePayrollSetup] = (),
    overtime_hours: float = 0,
) -> PayrollCalculation:
    earnings = calculate_earnings(base_salary, components, setups, overtime_hours)
    gross = sum_component_amounts(earnings)
    deductions = calculate_deductions(gross, base_salary, components, setups)
    total_deductions = sum_component_amounts(deductions)
    contributions = calculate_company_contributions(gross, base_salary, components, setups)
    return PayrollCalculation(
        earnings=earnings,
        deductions=deductions,
        company_contributions=contributions,
        gross_salary=gross,
        total_deductions=total_deductions,
        net_salary=gross - total_deductions,
        total_company_cost=gross + sum_component_amounts(contributions),
    )


def standard_components() -> List[PayrollComponent]:
    """Component catalogue most Indonesian payrolls start from."""

    def component(code, name, component_type, **kwargs):
        return PayrollComponent(
            id=code,
            component_code=code,
            component_name=name,
            component_type=component_type,
            **kwargs,
        )

    earning, deduction, benefit = (
        ComponentType.EARNING,
        ComponentType.DEDUCTION,
        ComponentType.BENEFIT,
    )
    return [
        component("base_salary", "Gaji Pokok", earning),
        component("transport", "Tunjangan Transport", earning, default_amount=0),
        component("meal", "Tunjangan Makan", earning, default_amount=0),
        component("overtime", "Lembur", earning),
        component("bpjs_kes_emp", "BPJS Kesehatan (Karyawan)", deduction),
        component("bpjs_jht_emp", "BPJS JHT (Karyawan)", deduction),
        component("bpjs_jp_emp", "BPJS JP (Karyawan)", deduction),
        component("pph21", "PPh 21", deduction),
        component("bpjs_kes_com", "BPJS Kesehatan (Perusahaan)", benefit),
        component("bpjs_jht_com", "BPJS JHT (Perusahaan)", benefit),
        component("bpjs_jp_com", "BPJS JP (Perusahaan)", benefit),
        component("bpjs_jkk", "BPJS JKK", benefit),
        component("bpjs_jkm", "BPJS JKM", benefit),
    ]


__all__ = [
    "BPJSRate",
    "BPJS_RATES",
    "MONTH_NAMES_ID",
    "MONTHLY_PTKP",
    "PERIOD_TRANSITIONS",
    "generate_period_name",
    "period_dates",
    "validate_payroll_period",
    "default_attendance_summary",
    "can_transition_period",
    "calculate_bpjs",
    "calculate_overtime",
    "calculate_simplified_pph21",
    "calculate_earnings",
    "calculate_deductions",
    "calculate_company_contributions",
    "sum_component_amounts",
    "calculate_full_payroll",
    "standard_components",
]
