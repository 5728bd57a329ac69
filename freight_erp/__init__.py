"""Freight forwarding ERP core.

This package provides the data models, pricing and classification rules,
document workflow (quotation, proforma job order, job order, invoice),
Indonesian payroll calculations and finance dashboard rollups of a
logistics company, with in-memory or SQLite persistence.
"""

from .config import Settings, load_settings
from .domain import (
    CargoSpecification,
    Customer,
    Invoice,
    InvoiceStatus,
    JobOrder,
    JOStatus,
    PJOStatus,
    ProformaJobOrder,
    Quotation,
    QuotationStatus,
)
from .errors import (
    FreightERPError,
    PermissionDeniedError,
    ValidationError,
    WorkflowError,
)
from .services import DashboardSnapshot, FreightERPService

__all__ = [
    "Settings",
    "load_settings",
    "CargoSpecification",
    "Customer",
    "Invoice",
    "InvoiceStatus",
    "JobOrder",
    "JOStatus",
    "PJOStatus",
    "ProformaJobOrder",
    "Quotation",
    "QuotationStatus",
    "FreightERPError",
    "PermissionDeniedError",
    "ValidationError",
    "WorkflowError",
    "DashboardSnapshot",
    "FreightERPService",
]
