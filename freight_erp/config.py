"""Runtime settings loaded from the environment."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Mapping, Optional

from dotenv import load_dotenv

from .errors import ConfigurationError

ENV_PREFIX = "FREIGHT_ERP_"
LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


@dataclass(slots=True)
class Settings:
    """Tunable values shared by the service layer and the web app."""

    database_path: str = "freight_erp.sqlite3"
    vat_rate: float = 0.11
    default_payment_terms_days: int = 30
    budget_warning_ratio: float = 0.9
    log_level: str = "INFO"
    load_demo_data: bool = True

    def __post_init__(self) -> None:
        if not 0 <= self.vat_rate <= 1:
            raise ConfigurationError("VAT rate must be between 0 and 1")
        if self.default_payment_terms_days <= 0:
            raise ConfigurationError("Payment terms must be a positive number of days")
        if not 0 < self.budget_warning_ratio <= 1:
            raise ConfigurationError("Budget warning ratio must be in (0, 1]")


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in {"1", "true", "yes", "on"}


def load_settings(
    environ: Optional[Mapping[str, str]] = None, *, dotenv: bool = True
) -> Settings:
    """Build :class:`Settings` from ``FREIGHT_ERP_*`` variables.

    A ``.env`` file in the working directory is read first unless
    ``dotenv`` is false; explicit environment variables win.
    """

    if dotenv:
        load_dotenv()
    env = os.environ if environ is None else environ
    defaults = Settings()

    def read(name: str, default: object, cast):
        raw = env.get(ENV_PREFIX + name)
        if raw is None or raw == "":
            return default
        try:
            return cast(raw)
        except ValueError as exc:
            raise ConfigurationError(
                f"Invalid value for {ENV_PREFIX + name}: {raw!r}"
            ) from exc

    return Settings(
        database_path=read("DATABASE_PATH", defaults.database_path, str),
        vat_rate=read("VAT_RATE", defaults.vat_rate, float),
        default_payment_terms_days=read(
            "PAYMENT_TERMS_DAYS", defaults.default_payment_terms_days, int
        ),
        budget_warning_ratio=read(
            "BUDGET_WARNING_RATIO", defaults.budget_warning_ratio, float
        ),
        log_level=read("LOG_LEVEL", defaults.log_level, str).upper(),
        load_demo_data=read("LOAD_DEMO_DATA", defaults.load_demo_data, _parse_bool),
    )


def configure_logging(level: str = "INFO") -> None:
    """Install a root handler once; later calls only adjust the level."""

    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(format=LOG_FORMAT)
    root.setLevel(level)


__all__ = ["Settings", "load_settings", "configure_logging", "ENV_PREFIX"]
