"""Market classification of cargo by complexity criteria."""

from types import SimpleNamespace

from freight_erp.classification import (
    calculate_market_classification,
    count_by_market_type,
    default_criteria,
    evaluate_criterion,
    filter_by_market_type,
    format_complexity_score,
    triggered_display_value,
    validate_cargo_specifications,
)
from freight_erp.domain import (
    CargoSpecification,
    ComplexityCriterion,
    DetectionRule,
    MarketType,
)


def test_heavy_wide_cargo_is_complex():
    cargo = CargoSpecification(cargo_weight_kg=45_000, cargo_width_m=3.2)
    result = calculate_market_classification(cargo, default_criteria())

    assert result.complexity_score == 35
    assert result.market_type == MarketType.COMPLEX
    assert result.requires_engineering is True
    codes = [factor.criteria_code for factor in result.complexity_factors]
    assert codes == ["heavy_cargo", "over_width"]
    values = [factor.triggered_value for factor in result.complexity_factors]
    assert values == ["45.000 kg", "3.2 m"]


def test_empty_cargo_is_simple():
    result = calculate_market_classification(CargoSpecification(), default_criteria())

    assert result.complexity_score == 0
    assert result.market_type == MarketType.SIMPLE
    assert result.requires_engineering is False
    assert result.complexity_factors == []


def test_threshold_is_inclusive():
    hazardous = calculate_market_classification(
        CargoSpecification(is_hazardous=True), default_criteria()
    )
    heavy = calculate_market_classification(
        CargoSpecification(cargo_weight_kg=31_000), default_criteria()
    )

    assert hazardous.market_type == MarketType.SIMPLE
    assert heavy.complexity_score == 20
    assert heavy.market_type == MarketType.COMPLEX


def test_inactive_criteria_are_skipped():
    criteria = default_criteria()
    for criterion in criteria:
        criterion.is_active = criterion.code != "heavy_cargo"

    result = calculate_market_classification(
        CargoSpecification(cargo_weight_kg=45_000), criteria
    )
    assert result.complexity_score == 0


def test_rules_without_rule_or_value_never_fire():
    no_rule = ComplexityCriterion(code="x", name="X", weight=50)
    terrain = ComplexityCriterion(
        code="t",
        name="Terrain",
        weight=10,
        rule=DetectionRule("terrain_type", "in", ["mountain"]),
    )

    assert evaluate_criterion(no_rule, CargoSpecification(cargo_weight_kg=1)) is False
    assert evaluate_criterion(terrain, CargoSpecification()) is False
    assert evaluate_criterion(terrain, CargoSpecification(terrain_type="mountain")) is True


def test_unknown_field_or_operator_does_not_fire():
    unknown_field = ComplexityCriterion(
        code="u", name="U", weight=5, rule=DetectionRule("colour", "=", "red")
    )
    bad_operator = ComplexityCriterion(
        code="b", name="B", weight=5, rule=DetectionRule("cargo_weight_kg", "!=", 1)
    )
    cargo = CargoSpecification(cargo_weight_kg=10)

    assert evaluate_criterion(unknown_field, cargo) is False
    assert evaluate_criterion(bad_operator, cargo) is False


def test_triggered_display_values():
    by_code = {criterion.code: criterion for criterion in default_criteria()}
    cargo = CargoSpecification(
        cargo_length_m=12.5,
        cargo_value=6_000_000_000,
        duration_days=45,
        is_new_route=True,
        terrain_type="mountain",
    )

    assert triggered_display_value(by_code["over_length"], cargo) == "12.5 m"
    assert triggered_display_value(by_code["high_value"], cargo) == "Rp 6.000.000.000"
    assert triggered_display_value(by_code["long_duration"], cargo) == "45 days"
    assert triggered_display_value(by_code["new_route"], cargo) == "Yes"
    assert triggered_display_value(by_code["difficult_terrain"], cargo) == "Mountain"


def test_large_dimensions_display_as_plain_numbers():
    by_code = {criterion.code: criterion for criterion in default_criteria()}
    cargo = CargoSpecification(cargo_length_m=1_234_567, cargo_width_m=2_500_000.5)

    assert triggered_display_value(by_code["over_length"], cargo) == "1234567 m"
    assert triggered_display_value(by_code["over_width"], cargo) == "2500000.5 m"


def test_format_complexity_score_caps_at_100():
    assert format_complexity_score(45) == "45%"
    assert format_complexity_score(150) == "100%"


def test_validate_cargo_specifications():
    errors = validate_cargo_specifications(
        CargoSpecification(cargo_weight_kg=-1, cargo_height_m=4)
    )
    assert errors == {"cargo_weight_kg": "Weight must be non-negative"}
    assert validate_cargo_specifications(CargoSpecification()) == {}


def test_filter_and_count_by_market_type():
    items = [
        SimpleNamespace(market_type=MarketType.COMPLEX),
        SimpleNamespace(market_type="simple"),
        SimpleNamespace(market_type=None),
    ]

    assert count_by_market_type(items) == {"simple": 2, "complex": 1}
    assert filter_by_market_type(items, "complex") == [items[0]]
    assert len(filter_by_market_type(items, "all")) == 3
