"""
Shared pytest fixtures.

Settings are read from the environment at import time, so the temporary
database, inbox and backup folders are configured here before any test
module imports the pharmadist package.
"""
import os
import sys
import tempfile

import pytest

# Ensure the package is importable when running pytest from the project root
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

_tmp_root = tempfile.mkdtemp(prefix="pharmadist-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_tmp_root, 'test.db')}"
os.environ["STATEMENT_INBOX"] = os.path.join(_tmp_root, "inbox")
os.environ["RAW_BACKUP_DIR"] = os.path.join(_tmp_root, "raw_backup")
os.environ["WATCHER_ENABLED"] = "false"
os.environ["AUTH_ENABLED"] = "false"
os.environ["LOG_FILE"] = ""
os.environ["AUDIT_LOG_FILE"] = ""

from sqlmodel import Session, SQLModel  # noqa: E402

from pharmadist.core.database import create_db_and_tables, engine  # noqa: E402
from pharmadist.models.party import Customer, Salesman, Supplier  # noqa: E402


@pytest.fixture
def session():
    """A freshly created and seeded database for each test."""
    SQLModel.metadata.drop_all(engine)
    create_db_and_tables()
    with Session(engine) as s:
        yield s


@pytest.fixture
def make_customer(session):
    counter = {"n": 0}

    def _make(**kwargs) -> Customer:
        counter["n"] += 1
        values = {"code": f"C{counter['n']:03d}", "name": f"Pharmacy {counter['n']}", "town": "Lahore"}
        values.update(kwargs)
        customer = Customer(**values)
        session.add(customer)
        session.commit()
        session.refresh(customer)
        return customer

    return _make


@pytest.fixture
def make_supplier(session):
    counter = {"n": 0}

    def _make(**kwargs) -> Supplier:
        counter["n"] += 1
        values = {"code": f"S{counter['n']:03d}", "name": f"Laboratories {counter['n']}"}
        values.update(kwargs)
        supplier = Supplier(**values)
        session.add(supplier)
        session.commit()
        session.refresh(supplier)
        return supplier

    return _make


@pytest.fixture
def make_salesman(session):
    counter = {"n": 0}

    def _make(**kwargs) -> Salesman:
        counter["n"] += 1
        values = {"code": f"SM{counter['n']:02d}", "name": f"Salesman {counter['n']}", "commission_rate": 5.0}
        values.update(kwargs)
        salesman = Salesman(**values)
        session.add(salesman)
        session.commit()
        session.refresh(salesman)
        return salesman

    return _make
