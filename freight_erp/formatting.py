"""Display formatting and document numbering helpers.

Amounts are Indonesian Rupiah. Rupiah formatting follows the ``id-ID``
locale: dots group thousands and a comma separates decimals.
"""

from __future__ import annotations

import math
import re
from datetime import date, datetime
from typing import Iterable, Optional, Pattern, Tuple, Union

ROMAN_MONTHS = (
    "I",
    "II",
    "III",
    "IV",
    "V",
    "VI",
    "VII",
    "VIII",
    "IX",
    "X",
    "XI",
    "XII",
)

INVOICE_NUMBER_PATTERN = re.compile(r"^INV-(\d{4})-(\d{4,})$")
_LEADING_NUMBER = re.compile(r"^\s*[-+]?(\d+(\.\d*)?|\.\d+)")

Number = Union[int, float]


def round_half_up(value: float, digits: int = 0) -> float:
    """Round like JavaScript's ``Math.round`` (halves go towards +inf)."""

    factor = 10**digits
    return math.floor(value * factor + 0.5) / factor


def round_rupiah(value: float) -> int:
    return int(math.floor(value + 0.5))


def plain_number(value: Number) -> str:
    if float(value).is_integer():
        return str(int(value))
    return repr(float(value))


def _group_thousands(value: float) -> str:
    text = f"{value:,.3f}".rstrip("0").rstrip(".")
    return text.replace(",", "_").replace(".", ",").replace("_", ".")


def format_number(value: Number) -> str:
    """Format a number with ``id-ID`` separators, e.g. ``30.000.000``."""

    if value < 0:
        return "-" + _group_thousands(abs(value))
    return _group_thousands(value)


def format_idr(amount: Number) -> str:
    """Return ``Rp 30.000.000`` (``-Rp 1.500`` for negative amounts)."""

    if amount < 0:
        return f"-Rp {_group_thousands(abs(amount))}"
    return f"Rp {_group_thousands(amount)}"


def parse_idr(text: str) -> float:
    """Parse ``Rp 30.000.000`` or ``30.000,50`` back into a number.

    Anything that does not start with a number parses as ``0``.
    """

    cleaned = re.sub(r"Rp\s?", "", text).replace(".", "").replace(",", ".")
    match = _LEADING_NUMBER.match(cleaned)
    if match is None:
        return 0.0
    return float(match.group(0))


def format_idr_compact(amount: Number) -> str:
    if amount >= 1_000_000_000:
        return f"Rp {amount / 1_000_000_000:.1f}B"
    if amount >= 1_000_000:
        return f"Rp {amount / 1_000_000:.1f}M"
    if amount >= 1_000:
        return f"Rp {amount / 1_000:.1f}K"
    return f"Rp {plain_number(amount)}"


def format_date(value: Union[date, datetime]) -> str:
    return value.strftime("%d/%m/%Y")


def format_datetime(value: datetime) -> str:
    return value.strftime("%d/%m/%Y %H:%M")


def format_margin(margin: float) -> str:
    """One decimal place and a percent sign: ``15.6%``."""

    return f"{margin:.1f}%"


def to_roman_month(month: int) -> str:
    if 1 <= month <= 12:
        return ROMAN_MONTHS[month - 1]
    return ""


# ----------------------------------------------------------------------
# Document numbers
# ----------------------------------------------------------------------
def generate_pjo_number(sequence: int, on: date) -> str:
    """``0001/CARGO/XII/2025``"""

    return f"{sequence:04d}/CARGO/{to_roman_month(on.month)}/{on.year}"


def generate_jo_number(sequence: int, on: date) -> str:
    """``JO-0001/CARGO/XII/2025``"""

    return f"JO-{sequence:04d}/CARGO/{to_roman_month(on.month)}/{on.year}"


def generate_quotation_number(existing_count: int, on: date) -> str:
    """``QUO-2025-0001`` where the sequence is ``existing_count + 1``."""

    return f"QUO-{on.year}-{existing_count + 1:04d}"


def format_invoice_number(year: int, sequence: int) -> str:
    return f"INV-{year}-{sequence:04d}"


def parse_invoice_number(text: str) -> Optional[Tuple[int, int]]:
    match = INVOICE_NUMBER_PATTERN.match(text)
    if match is None:
        return None
    return int(match.group(1)), int(match.group(2))


def next_sequence(existing: Iterable[str], pattern: Pattern[str]) -> int:
    """Return one past the highest sequence captured by ``pattern``.

    ``pattern`` must capture the numeric sequence in a group named ``seq``.
    """

    highest = 0
    for number in existing:
        match = pattern.match(number)
        if match is not None:
            highest = max(highest, int(match.group("seq")))
    return highest + 1


def pjo_sequence_pattern(on: date) -> Pattern[str]:
    return re.compile(
        rf"^(?P<seq>\d{{4,}})/CARGO/{to_roman_month(on.month)}/{on.year}$"
    )


def jo_sequence_pattern(on: date) -> Pattern[str]:
    return re.compile(
        rf"^JO-(?P<seq>\d{{4,}})/CARGO/{to_roman_month(on.month)}/{on.year}$"
    )


def invoice_sequence_pattern(year: int) -> Pattern[str]:
    return re.compile(rf"^INV-{year}-(?P<seq>\d{{4,}})$")


__all__ = [
    "round_half_up",
    "round_rupiah",
    "format_number",
    "format_idr",
    "parse_idr",
    "plain_number",
    "format_idr_compact",
    "format_date",
    "format_datetime",
    "format_margin",
    "to_roman_month",
    "generate_pjo_number",
    "generate_jo_number",
    "generate_quotation_number",
    "format_invoice_number",
    "parse_invoice_number",
    "next_sequence",
    "pjo_sequence_pattern",
    "jo_sequence_pattern",
    "invoice_sequence_pattern",
]
