"""
Shared pytest fixtures.

Environment variables are set here, before anything imports ``ricemill``,
so every test module shares one temporary SQLite database with auth off.
Auth tests switch the gate on per test.
"""
import itertools
import os
import sys
import tempfile

import pytest

# Ensure ricemill package is importable when running pytest from project root
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

_tmp_dir = tempfile.mkdtemp()
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_tmp_dir, 'test.db')}"
os.environ["AUTH_ENABLED"] = "false"
os.environ["LOG_FILE"] = os.path.join(_tmp_dir, "test.log")

from fastapi.testclient import TestClient  # noqa: E402
from sqlmodel import Session  # noqa: E402

from ricemill.core.database import create_db_and_tables, engine, unit_of_work  # noqa: E402
from ricemill.main import app  # noqa: E402
from ricemill.services import reference  # noqa: E402

_names = itertools.count(1)


def unique(prefix: str) -> str:
    return f"{prefix} {next(_names)}"


@pytest.fixture(scope="session", autouse=True)
def setup_db():
    create_db_and_tables()
    yield


@pytest.fixture(scope="module")
def client():
    with TestClient(app, raise_server_exceptions=False) as c:
        yield c


@pytest.fixture
def session():
    with Session(engine) as s:
        yield s


@pytest.fixture
def refs(session):
    """A fresh category, two products, a godown, a silo, a party and an employee."""
    with unit_of_work(session):
        category = reference.create_entity(session, "category", {"name": unique("Paddy")})
        product = reference.create_entity(
            session, "product", {"name": unique("BR-28"), "category_id": category.id}
        )
        product2 = reference.create_entity(
            session, "product", {"name": unique("Miniket"), "category_id": category.id}
        )
        godown = reference.create_entity(session, "godown", {"name": unique("Godown")})
        silo = reference.create_entity(session, "silo", {"name": unique("Silo")})
        party = reference.create_entity(session, "party", {"name": unique("Supplier")})
        employee = reference.create_entity(session, "employee", {"name": unique("Worker"), "salary": 12000})
    return {
        "category": category.id,
        "product": product.id,
        "product2": product2.id,
        "godown": godown.id,
        "silo": silo.id,
        "party": party.id,
        "employee": employee.id,
    }
