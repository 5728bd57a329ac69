"""Rupiah formatting and document numbering."""

from datetime import date, datetime

from freight_erp.formatting import (
    format_date,
    format_datetime,
    format_idr,
    format_idr_compact,
    format_margin,
    format_number,
    generate_jo_number,
    generate_pjo_number,
    generate_quotation_number,
    jo_sequence_pattern,
    next_sequence,
    parse_idr,
    parse_invoice_number,
    pjo_sequence_pattern,
    round_half_up,
    round_rupiah,
    to_roman_month,
)


def test_format_idr_groups_thousands_with_dots():
    assert format_idr(30_000_000) == "Rp 30.000.000"
    assert format_idr(0) == "Rp 0"
    assert format_idr(100) == "Rp 100"


def test_format_idr_negative_and_fractional():
    assert format_idr(-1_500) == "-Rp 1.500"
    assert format_idr(1_500.5) == "Rp 1.500,5"


def test_format_number():
    assert format_number(45_000) == "45.000"
    assert format_number(-2_500) == "-2.500"


def test_parse_idr():
    assert parse_idr("Rp 30.000.000") == 30_000_000
    assert parse_idr("1.500,50") == 1500.5
    assert parse_idr("abc") == 0.0


def test_format_idr_compact():
    assert format_idr_compact(2_500_000_000) == "Rp 2.5B"
    assert format_idr_compact(1_500_000) == "Rp 1.5M"
    assert format_idr_compact(25_000) == "Rp 25.0K"
    assert format_idr_compact(999) == "Rp 999"


def test_dates_and_margin():
    assert format_date(date(2025, 1, 5)) == "05/01/2025"
    assert format_datetime(datetime(2025, 1, 5, 9, 30)) == "05/01/2025 09:30"
    assert format_margin(15.56) == "15.6%"


def test_rounding_is_half_up():
    assert round_half_up(2.5) == 3.0
    assert round_half_up(-2.5) == -2.0
    assert round_rupiah(100_422.5) == 100_423
    assert round_rupiah(0.4) == 0


def test_roman_months():
    assert to_roman_month(1) == "I"
    assert to_roman_month(12) == "XII"
    assert to_roman_month(13) == ""


def test_document_numbers():
    assert generate_pjo_number(1, date(2025, 12, 3)) == "0001/CARGO/XII/2025"
    assert generate_jo_number(12, date(2025, 1, 5)) == "JO-0012/CARGO/I/2025"
    assert generate_quotation_number(4, date(2025, 6, 1)) == "QUO-2025-0005"


def test_parse_invoice_number():
    assert parse_invoice_number("INV-2025-0042") == (2025, 42)
    assert parse_invoice_number("bad") is None


def test_next_sequence_only_counts_matching_month():
    existing = ["0001/CARGO/XII/2025", "0003/CARGO/XII/2025", "0009/CARGO/XI/2025"]
    assert next_sequence(existing, pjo_sequence_pattern(date(2025, 12, 1))) == 4
    assert next_sequence([], jo_sequence_pattern(date(2025, 12, 1))) == 1
