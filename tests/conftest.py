"""Shared pytest fixtures for mortar unit and integration tests."""
from __future__ import annotations

import random

import pytest

from mortar.connection import Connection
from mortar.query import Query
from mortar.schema.config import DatabaseConfig, DeployMode
from tests.fixtures import HOSTS, FakeDriver, users_fields


@pytest.fixture()
def driver() -> FakeDriver:
    fake = FakeDriver()
    fake.tables["users"] = users_fields()
    return fake


@pytest.fixture()
def single_config() -> DatabaseConfig:
    return DatabaseConfig(type="mysql", hostname="127.0.0.1", database="app", username="root", password="secret")


@pytest.fixture()
def distributed_config() -> DatabaseConfig:
    """Four hosts, one master, reads split to the three slaves."""
    return DatabaseConfig(
        type="mysql",
        hostname=HOSTS,
        database="app",
        username="root",
        password="secret",
        deploy=DeployMode.DISTRIBUTED,
        rw_separate=True,
        master_num=1,
    )


@pytest.fixture()
def conn(single_config: DatabaseConfig, driver: FakeDriver) -> Connection:
    connection = Connection(single_config, driver=driver)
    yield connection
    connection.close()


@pytest.fixture()
def dist_conn(distributed_config: DatabaseConfig, driver: FakeDriver) -> Connection:
    connection = Connection(distributed_config, driver=driver, rng=random.Random(7))
    yield connection
    connection.close()


@pytest.fixture()
def query(conn: Connection) -> Query:
    return Query(conn)
