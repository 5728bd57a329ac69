"""Settings loading from ``FREIGHT_ERP_*`` variables."""

import logging

import pytest

from freight_erp.config import Settings, configure_logging, load_settings
from freight_erp.errors import ConfigurationError


def test_defaults():
    settings = load_settings({}, dotenv=False)
    assert settings == Settings()
    assert settings.vat_rate == 0.11
    assert settings.default_payment_terms_days == 30


def test_environment_overrides():
    settings = load_settings(
        {
            "FREIGHT_ERP_DATABASE_PATH": "/tmp/erp.db",
            "FREIGHT_ERP_VAT_RATE": "0.12",
            "FREIGHT_ERP_PAYMENT_TERMS_DAYS": "45",
            "FREIGHT_ERP_BUDGET_WARNING_RATIO": "0.8",
            "FREIGHT_ERP_LOG_LEVEL": "debug",
            "FREIGHT_ERP_LOAD_DEMO_DATA": "no",
            "UNRELATED": "ignored",
        },
        dotenv=False,
    )

    assert settings.database_path == "/tmp/erp.db"
    assert settings.vat_rate == 0.12
    assert settings.default_payment_terms_days == 45
    assert settings.budget_warning_ratio == 0.8
    assert settings.log_level == "DEBUG"
    assert settings.load_demo_data is False


def test_empty_values_fall_back_to_defaults():
    settings = load_settings({"FREIGHT_ERP_VAT_RATE": ""}, dotenv=False)
    assert settings.vat_rate == 0.11


def test_unparseable_value():
    with pytest.raises(ConfigurationError, match="FREIGHT_ERP_PAYMENT_TERMS_DAYS"):
        load_settings({"FREIGHT_ERP_PAYMENT_TERMS_DAYS": "thirty"}, dotenv=False)


@pytest.mark.parametrize(
    "overrides",
    [
        {"vat_rate": 1.5},
        {"default_payment_terms_days": 0},
        {"budget_warning_ratio": 0},
    ],
)
def test_out_of_range_settings(overrides):
    with pytest.raises(ConfigurationError):
        Settings(**overrides)


def test_configure_logging_sets_root_level():
    root = logging.getLogger()
    previous = root.level
    try:
        configure_logging("WARNING")
        assert root.level == logging.WARNING
    finally:
        root.setLevel(previous)
