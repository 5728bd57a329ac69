"""Market classification of shipments by cargo complexity."""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Sequence, TypeVar

from .domain import (
    CargoSpecification,
    ComplexityCriterion,
    ComplexityFactor,
    DetectionRule,
    MarketClassification,
    MarketType,
)
from .formatting import format_idr, format_number, plain_number, round_half_up

COMPLEX_MIN_SCORE = 20
ENGINEERING_MIN_SCORE = 20

SUPPORTED_FIELDS = (
    "cargo_weight_kg",
    "cargo_length_m",
    "cargo_width_m",
    "cargo_height_m",
    "cargo_value",
    "duration_days",
    "is_new_route",
    "terrain_type",
    "requires_special_permit",
    "is_hazardous",
)

_NON_NEGATIVE_FIELDS = {
    "cargo_weight_kg": "Weight must be non-negative",
    "cargo_length_m": "Length must be non-negative",
    "cargo_width_m": "Width must be non-negative",
    "cargo_height_m": "Height must be non-negative",
    "cargo_value": "Value must be non-negative",
    "duration_days": "Duration must be non-negative",
}

T = TypeVar("T")


def classify_market_type(score: float) -> MarketType:
    return MarketType.COMPLEX if score >= COMPLEX_MIN_SCORE else MarketType.SIMPLE


def requires_engineering(score: float) -> bool:
    return score >= ENGINEERING_MIN_SCORE


def _field_value(cargo: CargoSpecification, field_name: str) -> Any:
    if field_name not in SUPPORTED_FIELDS:
        return None
    return getattr(cargo, field_name)


def _apply_operator(field_value: Any, operator: str, rule_value: Any) -> bool:
    try:
        if operator == ">":
            return float(field_value) > float(rule_value)
        if operator == "<":
            return float(field_value) < float(rule_value)
        if operator == ">=":
            return float(field_value) >= float(rule_value)
        if operator == "<=":
            return float(field_value) <= float(rule_value)
    except (TypeError, ValueError):
        return False
    if operator == "=":
        return field_value == rule_value
    if operator == "in":
        if isinstance(rule_value, (list, tuple, set)):
            return field_value in rule_value
        return False
    return False


def evaluate_criterion(criterion: ComplexityCriterion, cargo: CargoSpecification) -> bool:
    """Return whether ``criterion`` fires for ``cargo``.

    Criteria without a rule and cargo with the field unset never fire.
    """

    rule = criterion.rule
    if rule is None:
        return False
    value = _field_value(cargo, rule.field)
    if value is None:
        return False
    return _apply_operator(value, rule.operator, rule.value)


def triggered_display_value(criterion: ComplexityCriterion, cargo: CargoSpecification) -> str:
    rule = criterion.rule
    if rule is None:
        return ""
    value = _field_value(cargo, rule.field)
    if value is None:
        return ""
    if rule.field == "cargo_weight_kg":
        return f"{format_number(value)} kg"
    if rule.field in {"cargo_length_m", "cargo_width_m", "cargo_height_m"}:
        return f"{plain_number(value)} m"
    if rule.field == "cargo_value":
        return format_idr(value)
    if rule.field == "duration_days":
        return f"{value} days"
    if rule.field in {"is_new_route", "requires_special_permit", "is_hazardous"}:
        return "Yes" if value else "No"
    if rule.field == "terrain_type":
        text = str(value)
        return text[:1].upper() + text[1:]
    return str(value)


def calculate_market_classification(
    cargo: CargoSpecification, criteria: Iterable[ComplexityCriterion]
) -> MarketClassification:
    """Score ``cargo`` against the active criteria.

    The score is the sum of the weights of every triggered criterion.
    """

    factors: List[ComplexityFactor] = []
    score = 0.0
    for criterion in criteria:
        if not criterion.is_active:
            continue
        if not evaluate_criterion(criterion, cargo):
            continue
        weight = criterion.weight or 0
        score += weight
        factors.append(
            ComplexityFactor(
                criteria_code=criterion.code,
                criteria_name=criterion.name,
                weight=weight,
                triggered_value=triggered_display_value(criterion, cargo),
            )
        )
    return MarketClassification(
        market_type=classify_market_type(score),
        complexity_score=score,
        complexity_factors=factors,
        requires_engineering=requires_engineering(score),
    )


def format_complexity_score(score: float, max_score: float = 100) -> str:
    percentage = min(score / max_score * 100, 100)
    return f"{round_half_up(percentage):.0f}%"


def validate_cargo_specifications(cargo: CargoSpecification) -> Dict[str, str]:
    """Return field name to message for every negative measurement."""

    errors: Dict[str, str] = {}
    for field_name, message in _NON_NEGATIVE_FIELDS.items():
        value = getattr(cargo, field_name)
        if value is not None and value < 0:
            errors[field_name] = message
    return errors


def filter_by_market_type(items: Sequence[T], market_type: str) -> List[T]:
    if market_type == "all":
        return list(items)
    return [item for item in items if _market_value(item) == market_type]


def count_by_market_type(items: Iterable[Any]) -> Dict[str, int]:
    counts = {MarketType.SIMPLE.value: 0, MarketType.COMPLEX.value: 0}
    for item in items:
        if _market_value(item) == MarketType.COMPLEX.value:
            counts[MarketType.COMPLEX.value] += 1
        else:
            counts[MarketType.SIMPLE.value] += 1
    return counts


def _market_value(item: Any) -> Any:
    value = getattr(item, "market_type", None)
    return value.value if isinstance(value, MarketType) else value


def default_criteria() -> List[ComplexityCriterion]:
    """Baseline heavy-lift complexity criteria."""

    return [
        ComplexityCriterion(
            code="heavy_cargo",
            name="Heavy cargo (> 30 t)",
            weight=20,
            rule=DetectionRule("cargo_weight_kg", ">", 30_000),
        ),
        ComplexityCriterion(
            code="over_length",
            name="Over length (> 12 m)",
            weight=15,
            rule=DetectionRule("cargo_length_m", ">", 12),
        ),
        ComplexityCriterion(
            code="over_width",
            name="Over width (> 2.5 m)",
            weight=15,
            rule=DetectionRule("cargo_width_m", ">", 2.5),
        ),
        ComplexityCriterion(
            code="over_height",
            name="Over height (> 4.2 m)",
            weight=15,
            rule=DetectionRule("cargo_height_m", ">", 4.2),
        ),
        ComplexityCriterion(
            code="high_value",
            name="High value cargo (> Rp 5 B)",
            weight=10,
            rule=DetectionRule("cargo_value", ">", 5_000_000_000),
        ),
        ComplexityCriterion(
            code="long_duration",
            name="Long duration (> 30 days)",
            weight=10,
            rule=DetectionRule("duration_days", ">", 30),
        ),
        ComplexityCriterion(
            code="new_route",
            name="New route",
            weight=10,
            rule=DetectionRule("is_new_route", "=", True),
        ),
        ComplexityCriterion(
            code="difficult_terrain",
            name="Difficult terrain",
            weight=10,
            rule=DetectionRule("terrain_type", "in", ["mountain", "unpaved", "swamp"]),
        ),
        ComplexityCriterion(
            code="special_permit",
            name="Special permit required",
            weight=10,
            rule=DetectionRule("requires_special_permit", "=", True),
        ),
        ComplexityCriterion(
            code="hazardous",
            name="Hazardous material",
            weight=15,
            rule=DetectionRule("is_hazardous", "=", True),
        ),
    ]


__all__ = [
    "COMPLEX_MIN_SCORE",
    "ENGINEERING_MIN_SCORE",
    "classify_market_type",
    "requires_engineering",
    "evaluate_criterion",
    "triggered_display_value",
    "calculate_market_classification",
    "format_complexity_score",
    "validate_cargo_specifications",
    "filter_by_market_type",
    "count_by_market_type",
    "default_criteria",
]
