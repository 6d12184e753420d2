"""Placeholder translation from mortar's canonical form to DB-API paramstyles.

Compiled statements always use ``:name`` placeholders (or ``?`` when the
caller supplies positional binds).  DB-API drivers each accept one
paramstyle (PEP 249); :func:`translate` rewrites the SQL text and reshapes
the parameters accordingly::

    translate("SELECT * FROM t WHERE id = :id", {"id": 1}, "pyformat")
    # ('SELECT * FROM t WHERE id = %(id)s', {'id': 1})

Only names present in the parameter mapping are rewritten, so ``::`` casts
survive untouched.  Placeholders inside single-quoted string literals
(``'12:30'``, ``'why?'``) are never rewritten.
"""
from __future__ import annotations

import re
from typing import Any

# A quoted literal matches first so placeholder-looking text inside it is skipped.
_LITERAL = r"'(?:[^'\\]|\\.|'')*'"

#: ``:name`` placeholders (group 1) or a whole string literal (no group).
NAMED_TOKEN = re.compile(rf"{_LITERAL}|(?<![:\w]):([A-Za-z_]\w*)")

#: ``?`` placeholders or a whole string literal.
POSITIONAL_TOKEN = re.compile(rf"{_LITERAL}|\?")

Params = dict[str, Any] | list[Any]


def translate(sql: str, params: Params, paramstyle: str) -> tuple[str, Any]:
    """Rewrite ``sql`` placeholders for ``paramstyle``.

    Args:
        sql: SQL text with ``:name`` or ``?`` placeholders.
        params: Mapping for named placeholders, list for positional ones.
        paramstyle: The DB-API ``paramstyle`` of the target driver.

    Returns:
        ``(native_sql, native_params)``; ``native_params`` is ``None`` when
        there is nothing to bind, so drivers skip placeholder processing.
    """
    if not params:
        return sql, None
    if isinstance(params, list):
        return _translate_positional(sql, params, paramstyle)
    return _translate_named(sql, params, paramstyle)


def _translate_named(sql: str, params: dict[str, Any], paramstyle: str) -> tuple[str, Any]:
    if paramstyle in ("format", "pyformat"):
        sql = sql.replace("%", "%%")
    order: list[str] = []

    def _replace(match: re.Match[str]) -> str:
        name = match.group(1)
        if name is None or name not in params:
            return match.group(0)
        order.append(name)
        if paramstyle == "named":
            return f":{name}"
        if paramstyle == "pyformat":
            return f"%({name})s"
        if paramstyle == "numeric":
            return f":{len(order)}"
        if paramstyle == "format":
            return "%s"
        return "?"

    native = NAMED_TOKEN.sub(_replace, sql)
    if paramstyle in ("named", "pyformat"):
        return native, {name: params[name] for name in order}
    return native, tuple(params[name] for name in order)


def _translate_positional(sql: str, params: list[Any], paramstyle: str) -> tuple[str, Any]:
    if paramstyle == "qmark":
        return sql, tuple(params)
    if paramstyle in ("format", "pyformat"):
        sql = sql.replace("%", "%%")
    count = 0

    def _replace(match: re.Match[str]) -> str:
        nonlocal count
        if match.group(0) != "?":
            return match.group(0)
        count += 1
        if paramstyle in ("format", "pyformat"):
            return "%s"
        if paramstyle == "numeric":
            return f":{count}"
        return f":p{count - 1}"

    native = POSITIONAL_TOKEN.sub(_replace, sql)
    if paramstyle == "named":
        return native, {
            f"p{index}": params[index] if index < len(params) else None
            for index in range(count)
        }
    return native, tuple(params)
