"""Public entry point: configuration loading and the ``Database`` facade."""
from __future__ import annotations

import logging
import random
from collections.abc import Callable, Iterable, Mapping
from typing import Any, TypeVar

from pydantic import ValidationError

from mortar.connection.manager import Binds, Connection
from mortar.drivers.base import Driver
from mortar.errors import ConfigurationError
from mortar.query import Query
from mortar.schema.config import DatabaseConfig, parse_dsn

logger = logging.getLogger(__name__)

T = TypeVar("T")


def load_config(config: Mapping[str, Any] | str | DatabaseConfig) -> DatabaseConfig:
    """Validate ``config`` into a :class:`DatabaseConfig`.

    Args:
        config: A mapping of options, a DSN string, or a ready config.

    Raises:
        ConfigurationError: If the DSN cannot be parsed or an option is
            missing or invalid.
    """
    if isinstance(config, DatabaseConfig):
        return config
    if isinstance(config, str):
        parsed = parse_dsn(config)
        if not parsed:
            raise ConfigurationError(f"Invalid DSN: '{config}'.", option="dsn")
        config = parsed
    try:
        return DatabaseConfig.model_validate(dict(config))
    except ValidationError as exc:
        first = exc.errors()[0]
        option = ".".join(str(part) for part in first.get("loc", ()))
        raise ConfigurationError(f"Invalid database config: {exc}", option=option or None) from exc


class Database:
    """Facade over one :class:`Connection`.

    Each call to :meth:`table`, :meth:`name` or :meth:`new_query` returns a
    fresh :class:`Query` on the shared connection.

    Args:
        config: Validated configuration.
        driver: Backend driver override.
        rng: Random source for master/slave routing.
    """

    def __init__(
        self,
        config: DatabaseConfig,
        driver: Driver | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self.config = config
        self.connection = Connection(config, driver=driver, rng=rng)
        logger.debug(
            "New %s database over %d node(s), deploy=%s",
            config.type,
            config.host_count,
            config.deploy.name,
        )

    def new_query(self) -> Query:
        return Query(self.connection)

    def table(self, table: Any) -> Query:
        return self.new_query().table(table)

    def name(self, name: str) -> Query:
        return self.new_query().name(name)

    def query(self, sql: str, binds: Binds | None = None, master: bool = False, raw: bool = False) -> Any:
        return self.connection.query(sql, binds, master, raw)

    def execute(self, sql: str, binds: Binds | None = None) -> int:
        return self.connection.execute(sql, binds)

    def transaction(self, callback: Callable[[Connection], T]) -> T:
        return self.connection.transaction(callback)

    def start_trans(self) -> None:
        self.connection.start_trans()

    def commit(self) -> None:
        self.connection.commit()

    def rollback(self) -> None:
        self.connection.rollback()

    def batch_query(self, sqls: Iterable[str]) -> bool:
        return self.connection.batch_query(sqls)

    def get_last_sql(self) -> str:
        return self.connection.get_last_sql()

    def get_last_ins_id(self, sequence: str | None = None) -> Any:
        return self.connection.get_last_ins_id(sequence)

    def get_real_sql(self, sql: str, binds: Binds | None = None) -> str:
        return self.connection.get_real_sql(sql, binds)

    def get_explain(self, sql: str, binds: Binds | None = None) -> list[Any]:
        return self.connection.get_explain(sql, binds)

    def close(self) -> None:
        self.connection.close()

    def __enter__(self) -> Database:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()


def connect(
    config: Mapping[str, Any] | str | DatabaseConfig,
    driver: Driver | None = None,
    rng: random.Random | None = None,
) -> Database:
    """Create a :class:`Database` for ``config``.

    Every call returns a new, independent instance::

        db = mortar.connect("sqlite:///app.db")
        db.table("users").where("id", 1).find()

    Raises:
        ConfigurationError: If the config is invalid or names an unknown
            backend type.
    """
    return Database(load_config(config), driver=driver, rng=rng)
