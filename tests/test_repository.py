"""In-memory and SQLite repositories share one contract."""

import pytest

from freight_erp.domain import Customer
from freight_erp.repository import (
    DuplicateRecordError,
    InMemoryRepository,
    RecordNotFoundError,
)
from freight_erp.storage import FreightDatabase, SQLiteRepository


@pytest.fixture(params=["memory", "sqlite"])
def repo(request, tmp_path):
    if request.param == "memory":
        return InMemoryRepository[Customer]("Customer")
    database = FreightDatabase(str(tmp_path / "repo.sqlite3"))
    request.addfinalizer(database.close)
    return SQLiteRepository[Customer](database.connection, "scratch_customers", "Customer")


def test_add_get_and_contains(repo):
    repo.add("c-1", Customer(id="c-1", name="PT Satu"))

    assert "c-1" in repo
    assert "c-2" not in repo
    assert len(repo) == 1
    assert repo.get("c-1").name == "PT Satu"


def test_duplicate_add_is_rejected(repo):
    repo.add("c-1", Customer(id="c-1", name="PT Satu"))
    with pytest.raises(DuplicateRecordError, match="Customer 'c-1' already exists"):
        repo.add("c-1", Customer(id="c-1", name="PT Dua"))


def test_missing_records(repo):
    with pytest.raises(RecordNotFoundError, match="Customer 'nope' not found"):
        repo.get("nope")
    with pytest.raises(RecordNotFoundError):
        repo.remove("nope")


def test_upsert_replaces(repo):
    repo.add("c-1", Customer(id="c-1", name="PT Satu"))
    repo.upsert("c-1", Customer(id="c-1", name="PT Satu Baru"))

    assert repo.get("c-1").name == "PT Satu Baru"
    assert len(repo) == 1


def test_find_and_remove(repo):
    repo.add("c-1", Customer(id="c-1", name="PT Satu"))
    repo.add("c-2", Customer(id="c-2", name="PT Dua", is_active=False))

    assert [c.id for c in repo.find(lambda c: c.is_active)] == ["c-1"]
    repo.remove("c-1")
    assert [c.id for c in repo.list()] == ["c-2"]
    assert [c.id for c in repo] == ["c-2"]


def test_in_memory_as_dicts():
    repo = InMemoryRepository[Customer]()
    repo.add("c-1", Customer(id="c-1", name="PT Satu"))
    assert list(repo.as_dicts())[0]["name"] == "PT Satu"


def test_database_persists_between_connections(tmp_path):
    path = str(tmp_path / "erp.sqlite3")
    with FreightDatabase(path) as database:
        database.customers.add("c-1", Customer(id="c-1", name="PT Tetap"))

    with FreightDatabase(path) as database:
        assert database.customers.get("c-1").name == "PT Tetap"
        assert len(database.invoices) == 0
