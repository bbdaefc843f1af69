"""Shared fixtures: an in-memory SQLite store with two bootstrapped owners."""

import logging

import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from slipbox.category_bootstrap import bootstrap_account
from slipbox.db_connection import DBConnection, enable_sqlite_foreign_keys
from slipbox.item_service import ItemService

logging.basicConfig(
    level=logging.DEBUG,
    format="%(asctime)s | %(levelname)s | %(name)s\n%(message)s\n",
)

ALICE = "alice"
BOB = "bob"


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        future=True,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    enable_sqlite_foreign_keys(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db(engine):
    connection = DBConnection(engine=engine)
    connection.create_schema()
    return connection


@pytest.fixture
def session_factory(db):
    return db.build_db_session_factory()


@pytest.fixture
def service(session_factory):
    return ItemService(session_factory)


@pytest.fixture
def categories(service, session_factory):
    """Bootstraps ALICE and BOB; returns {owner: {category name: id}}."""
    result = {}
    for owner in (ALICE, BOB):
        bootstrap_account(session_factory, owner)
        result[owner] = {c["name"]: c["id"] for c in service.list_categories(owner)}
    return result


def orders_of(rows):
    return [(row["id"], row["order"]) for row in rows]


def assert_dense(rows):
    values = sorted(row["order"] for row in rows)
    assert values == list(range(len(rows)))
