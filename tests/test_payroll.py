"""Payroll engine: BPJS, overtime, PPh 21 and period handling.

Reference figures use a base salary of Rp 10.000.000 unless stated.
"""

from datetime import date

import pytest

from freight_erp.domain import (
    BPJSType,
    CalculationType,
    ComponentType,
    EmployeePayrollSetup,
    PayrollComponent,
    PayrollPeriodStatus,
)
from freight_erp.payroll import (
    calculate_bpjs,
    calculate_deductions,
    calculate_earnings,
    calculate_full_payroll,
    calculate_overtime,
    calculate_simplified_pph21,
    can_transition_period,
    default_attendance_summary,
    generate_period_name,
    period_dates,
    standard_components,
    validate_payroll_period,
)

BASE = 10_000_000


def earning(code, **kwargs):
    return PayrollComponent(
        id=code,
        component_code=code,
        component_name=code.title(),
        component_type=ComponentType.EARNING,
        **kwargs,
    )


class TestBPJS:
    def test_kesehatan_is_capped_at_12_million(self):
        assert calculate_bpjs(BASE, BPJSType.KESEHATAN, True) == 100_000
        assert calculate_bpjs(BASE, BPJSType.KESEHATAN, False) == 400_000
        assert calculate_bpjs(20_000_000, BPJSType.KESEHATAN, True) == 120_000

    def test_jht_has_no_cap(self):
        assert calculate_bpjs(BASE, BPJSType.JHT, True) == 200_000
        assert calculate_bpjs(BASE, BPJSType.JHT, False) == 370_000
        assert calculate_bpjs(20_000_000, BPJSType.JHT, True) == 400_000

    def test_jp_cap(self):
        assert calculate_bpjs(BASE, BPJSType.JP, True) == 100_000
        assert calculate_bpjs(20_000_000, BPJSType.JP, True) == 100_423
        assert calculate_bpjs(20_000_000, BPJSType.JP, False) == 200_846

    def test_company_only_programmes(self):
        assert calculate_bpjs(BASE, BPJSType.JKK, False) == 24_000
        assert calculate_bpjs(BASE, BPJSType.JKM, False) == 30_000
        assert calculate_bpjs(BASE, BPJSType.JKK, True) == 0

    def test_zero_salary(self):
        assert calculate_bpjs(0, BPJSType.JHT, True) == 0


def test_overtime_uses_173_hours_and_1_5_multiplier():
    assert calculate_overtime(17_300_000, 10) == 1_500_000
    assert calculate_overtime(17_300_000, 0) == 0
    assert calculate_overtime(0, 10) == 0


def test_simplified_pph21_bands():
    assert calculate_simplified_pph21(4_500_000) == 0
    assert calculate_simplified_pph21(9_500_000) == 250_000
    assert calculate_simplified_pph21(BASE) == 325_000
    assert calculate_simplified_pph21(20_000_000) == 1_825_000


def test_earnings_use_setup_overrides():
    components = [
        earning("base_salary"),
        earning("transport", default_amount=500_000),
        earning("meal", default_amount=0),
        earning(
            "skill",
            calculation_type=CalculationType.PERCENTAGE,
            percentage_rate=5,
        ),
    ]
    setups = [
        EmployeePayrollSetup("emp", "transport", custom_amount=750_000),
        EmployeePayrollSetup("emp", "skill", custom_rate=10, is_active=False),
    ]

    items = {item.component_code: item.amount for item in calculate_earnings(BASE, components, setups)}

    assert items == {"base_salary": BASE, "transport": 750_000, "skill": 500_000}


def test_fractional_amounts_round_to_whole_rupiah():
    components = [earning("base_salary"), earning("transport", default_amount=250_000.5)]

    items = {
        item.component_code: item.amount
        for item in calculate_earnings(9_500_000.6, components)
    }

    assert items == {"base_salary": 9_500_001, "transport": 250_001}


def test_inactive_components_are_ignored():
    components = [earning("base_salary"), earning("transport", default_amount=500_000, is_active=False)]
    result = calculate_full_payroll(BASE, components)
    assert result.gross_salary == BASE


def test_custom_percentage_deduction_uses_gross():
    loan = PayrollComponent(
        id="loan",
        component_code="loan",
        component_name="Koperasi",
        component_type=ComponentType.DEDUCTION,
        calculation_type=CalculationType.PERCENTAGE,
        percentage_rate=1,
        percentage_of="gross_salary",
    )
    items = calculate_deductions(12_000_000, BASE, [loan])
    assert [item.amount for item in items] == [120_000]


def test_full_payroll_with_fixed_allowance():
    components = [earning("base_salary"), earning("transport", default_amount=500_000)]
    result = calculate_full_payroll(BASE, components)

    assert result.gross_salary == 10_500_000
    assert result.total_deductions == 0
    assert result.net_salary == 10_500_000
    assert result.total_company_cost == 10_500_000


def test_full_payroll_with_standard_components():
    result = calculate_full_payroll(BASE, standard_components())

    assert [item.component_code for item in result.earnings] == ["base_salary"]
    assert {item.component_code: item.amount for item in result.deductions} == {
        "bpjs_kes_emp": 100_000,
        "bpjs_jht_emp": 200_000,
        "bpjs_jp_emp": 100_000,
        "pph21": 325_000,
    }
    assert result.total_deductions == 725_000
    assert result.net_salary == 9_275_000
    assert result.total_company_cost == BASE + 1_024_000


def test_overtime_in_full_payroll():
    result = calculate_full_payroll(17_300_000, standard_components(), overtime_hours=10)
    overtime = [item for item in result.earnings if item.component_code == "overtime"]
    assert overtime[0].amount == 1_500_000
    assert result.gross_salary == 18_800_000


class TestPeriods:
    def test_period_name_in_indonesian(self):
        assert generate_period_name(2025, 12) == "Desember 2025"
        assert generate_period_name(2025, 1) == "Januari 2025"
        with pytest.raises(ValueError):
            generate_period_name(2025, 13)

    def test_period_dates_handle_leap_years(self):
        assert period_dates(2024, 2) == (date(2024, 2, 1), date(2024, 2, 29))

    def test_validation(self):
        assert validate_payroll_period(2025, 1, date(2025, 1, 31)) == []
        assert validate_payroll_period(2019, 1, date(2019, 2, 1)) == ["Invalid year"]
        assert validate_payroll_period(2025, 13, None) == [
            "Invalid month",
            "Pay date is required",
        ]
        assert validate_payroll_period(2025, 1, date(2025, 1, 30)) == [
            "Pay date must be on or after the period end date"
        ]

    def test_default_attendance_counts_weekdays(self):
        assert default_attendance_summary(2025, 1).work_days == 23
        june = default_attendance_summary(2025, 6)
        assert june.work_days == june.present_days == 21

    def test_transitions(self):
        assert can_transition_period(PayrollPeriodStatus.DRAFT, PayrollPeriodStatus.PROCESSING)
        assert can_transition_period(PayrollPeriodStatus.PAID, PayrollPeriodStatus.CLOSED)
        assert not can_transition_period(PayrollPeriodStatus.DRAFT, PayrollPeriodStatus.PAID)
        assert not can_transition_period(PayrollPeriodStatus.CLOSED, PayrollPeriodStatus.DRAFT)
