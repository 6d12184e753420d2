"""MySQL driver."""

from __future__ import annotations

from mortar.drivers.base import Driver


class MySQLDriver(Driver):
    """MySQL backend over PyMySQL.

    * Random order is ``RAND()``.
    * LIMIT uses the ``LIMIT offset,count`` form.
    * Index hints render as ``FORCE INDEX ( a,b )``.
    * String literals escape backslashes as well as quotes, since MySQL
      treats ``\\`` as an escape character by default.
    """

    drivername = "mysql+pymysql"

    @property
    def name(self) -> str:
        return "mysql"

    def quote(self, value: str) -> str:
        escaped = value.replace("\\", "\\\\").replace("'", "\\'")
        return f"'{escaped}'"

    def random_order(self) -> str:
        return "RAND()"

    def limit_clause(self, offset: int, count: int) -> str:
        if offset:
            return f"LIMIT {offset},{count}"
        return f"LIMIT {count}"

    def force_index_clause(self, indexes: list[str]) -> str:
        if not indexes:
            return ""
        return f"FORCE INDEX ( {','.join(indexes)} )"
