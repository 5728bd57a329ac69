"""SQLite-backed persistence for the freight ERP aggregates."""

from __future__ import annotations

import logging
import pickle
import sqlite3
from typing import Callable, Generic, Iterator, List, Optional, TypeVar

from .domain import (
    ComplexityCriterion,
    Customer,
    Employee,
    EmployeePayrollSetup,
    Invoice,
    JobOrder,
    Payment,
    PayrollComponent,
    PayrollPeriod,
    PayrollRecord,
    ProformaJobOrder,
    Quotation,
    Vendor,
)
from .repository import DuplicateRecordError, RecordNotFoundError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SQLiteRepository(Generic[T]):
    """Repository that stores each record as a pickled payload row."""

    def __init__(self, connection: sqlite3.Connection, table: str, name: str = "Record") -> None:
        self._connection = connection
        self._table = table
        self.name = name
        self._connection.execute(
            f"CREATE TABLE IF NOT EXISTS {table} ("  # nosec - static table names
            "id TEXT PRIMARY KEY, payload BLOB NOT NULL)"
        )
        self._connection.commit()

    def __contains__(self, item_id: object) -> bool:
        if not isinstance(item_id, str):
            return False
        cursor = self._connection.execute(
            f"SELECT 1 FROM {self._table} WHERE id = ? LIMIT 1", (item_id,)
        )
        return cursor.fetchone() is not None

    def __iter__(self) -> Iterator[T]:
        return iter(self.list())

    def __len__(self) -> int:
        cursor = self._connection.execute(f"SELECT COUNT(1) FROM {self._table}")
        value = cursor.fetchone()
        return int(value[0]) if value else 0

    # ------------------------------------------------------------------
    # CRUD operations
    # ------------------------------------------------------------------
    def add(self, item_id: str, item: T) -> None:
        if item_id in self:
            raise DuplicateRecordError(f"{self.name} {item_id!r} already exists")
        self._connection.execute(
            f"INSERT INTO {self._table} (id, payload) VALUES (?, ?)",
            (item_id, pickle.dumps(item)),
        )
        self._connection.commit()

    def upsert(self, item_id: str, item: T) -> None:
        self._connection.execute(
            f"INSERT INTO {self._table} (id, payload) VALUES (?, ?) "
            "ON CONFLICT(id) DO UPDATE SET payload = excluded.payload",
            (item_id, pickle.dumps(item)),
        )
        self._connection.commit()

    def get(self, item_id: str) -> T:
        cursor = self._connection.execute(
            f"SELECT payload FROM {self._table} WHERE id = ?", (item_id,)
        )
        row = cursor.fetchone()
        if row is None:
            raise RecordNotFoundError(f"{self.name} {item_id!r} not found")
        return pickle.loads(row[0])

    def remove(self, item_id: str) -> None:
        cursor = self._connection.execute(
            f"DELETE FROM {self._table} WHERE id = ?", (item_id,)
        )
        if cursor.rowcount == 0:
            raise RecordNotFoundError(f"{self.name} {item_id!r} not found")
        self._connection.commit()

    def list(self) -> List[T]:
        cursor = self._connection.execute(
            f"SELECT payload FROM {self._table} ORDER BY id"
        )
        return [pickle.loads(row[0]) for row in cursor.fetchall()]

    def find(self, predicate: Callable[[T], bool]) -> List[T]:
        return [item for item in self.list() if predicate(item)]


class FreightDatabase:
    """Bundles one SQLite repository per aggregate over a shared connection."""

    def __init__(self, path: str) -> None:
        connection = sqlite3.connect(path, check_same_thread=False)
        connection.row_factory = sqlite3.Row
        self._connection = connection
        self.customers = SQLiteRepository[Customer](connection, "customers", "Customer")
        self.vendors = SQLiteRepository[Vendor](connection, "vendors", "Vendor")
        self.employees = SQLiteRepository[Employee](connection, "employees", "Employee")
        self.criteria = SQLiteRepository[ComplexityCriterion](
            connection, "criteria", "Complexity criterion"
        )
        self.quotations = SQLiteRepository[Quotation](connection, "quotations", "Quotation")
        self.pjos = SQLiteRepository[ProformaJobOrder](connection, "pjos", "PJO")
        self.job_orders = SQLiteRepository[JobOrder](connection, "job_orders", "Job order")
        self.invoices = SQLiteRepository[Invoice](connection, "invoices", "Invoice")
        self.payments = SQLiteRepository[Payment](connection, "payments", "Payment")
        self.payroll_components = SQLiteRepository[PayrollComponent](
            connection, "payroll_components", "Payroll component"
        )
        self.payroll_setups = SQLiteRepository[EmployeePayrollSetup](
            connection, "payroll_setups", "Payroll setup"
        )
        self.payroll_periods = SQLiteRepository[PayrollPeriod](
            connection, "payroll_periods", "Payroll period"
        )
        self.payroll_records = SQLiteRepository[PayrollRecord](
            connection, "payroll_records", "Payroll record"
        )
        logger.info("Opened freight database at %s", path)

    @property
    def connection(self) -> sqlite3.Connection:
        return self._connection

    def close(self) -> None:
        self._connection.close()

    def __enter__(self) -> "FreightDatabase":
        return self

    def __exit__(
        self,
        exc_type: Optional[type[BaseException]],
        exc: Optional[BaseException],
        traceback: Optional[BaseException],
    ) -> None:
        self.close()


__all__ = ["SQLiteRepository", "FreightDatabase"]
