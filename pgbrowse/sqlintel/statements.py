"""Statement classification used to guard shared sessions and refresh metadata."""

from __future__ import annotations

import re
from typing import Iterable

import sqlglot
from sqlglot import exp
from sqlglot.errors import ParseError, TokenError

from .models import StatementInfo, StatementKind

_DDL_TYPES: tuple[type[exp.Expression], ...] = (exp.Create, exp.Drop, exp.Alter, exp.TruncateTable, exp.Comment)
_TRANSACTION_TYPES: tuple[type[exp.Expression], ...] = (exp.Transaction, exp.Commit, exp.Rollback)
_QUERY_TYPES: tuple[type[exp.Expression], ...] = (exp.Query, exp.Values)
_DML_TYPES: tuple[type[exp.Expression], ...] = (exp.Insert, exp.Update, exp.Delete, exp.Merge)

_KEYWORD_KINDS: dict[str, StatementKind] = {
    "select": StatementKind.QUERY,
    "with": StatementKind.QUERY,
    "show": StatementKind.QUERY,
    "values": StatementKind.QUERY,
    "table": StatementKind.QUERY,
    "explain": StatementKind.QUERY,
    "insert": StatementKind.DML,
    "update": StatementKind.DML,
    "delete": StatementKind.DML,
    "merge": StatementKind.DML,
    "copy": StatementKind.DML,
    "create": StatementKind.DDL,
    "alter": StatementKind.DDL,
    "drop": StatementKind.DDL,
    "truncate": StatementKind.DDL,
    "comment": StatementKind.DDL,
    "begin": StatementKind.TRANSACTION,
    "start": StatementKind.TRANSACTION,
    "commit": StatementKind.TRANSACTION,
    "rollback": StatementKind.TRANSACTION,
    "abort": StatementKind.TRANSACTION,
    "end": StatementKind.TRANSACTION,
    "savepoint": StatementKind.TRANSACTION,
    "release": StatementKind.TRANSACTION,
    "set": StatementKind.SESSION,
    "reset": StatementKind.SESSION,
}

_RETURNING = re.compile(r"\breturning\b", re.IGNORECASE)
_LEADING_COMMENTS = re.compile(r"^\s*(?:(?:--[^\n]*\n)|(?:/\*.*?\*/)|\s)*", re.DOTALL)


def classify(sql: str, *, dialect: str = "postgres") -> tuple[StatementInfo, ...]:
    """Classify each statement in ``sql``; unparseable input falls back to keywords."""

    try:
        expressions = [expression for expression in sqlglot.parse(sql, read=dialect) if expression is not None]
    except (ParseError, TokenError):
        return tuple(_classify_text(chunk) for chunk in _split(sql))
    return tuple(_classify_expression(expression) for expression in expressions)


def is_schema_changing(statements: Iterable[StatementInfo]) -> bool:
    return any(info.kind is StatementKind.DDL for info in statements)


def has_transaction_control(statements: Iterable[StatementInfo]) -> bool:
    return any(info.kind is StatementKind.TRANSACTION for info in statements)


def _classify_expression(expression: exp.Expression) -> StatementInfo:
    if isinstance(expression, _TRANSACTION_TYPES):
        return StatementInfo(StatementKind.TRANSACTION)
    if isinstance(expression, _DML_TYPES):
        return StatementInfo(StatementKind.DML, returns_rows=bool(expression.args.get("returning")))
    if isinstance(expression, _DDL_TYPES):
        return StatementInfo(StatementKind.DDL)
    if isinstance(expression, _QUERY_TYPES):
        return StatementInfo(StatementKind.QUERY, returns_rows=True)
    if isinstance(expression, exp.Set):
        return StatementInfo(StatementKind.SESSION)
    if isinstance(expression, exp.Command):
        # sqlglot keeps statements it does not model (SHOW, SAVEPOINT, ...) as raw commands.
        return _classify_text(f"{expression.this} {expression.expression or ''}")
    return StatementInfo(StatementKind.OTHER)


def _classify_text(statement: str) -> StatementInfo:
    body = _LEADING_COMMENTS.sub("", statement, count=1)
    head = body.split(None, 1)[0].lower() if body.strip() else ""
    kind = _KEYWORD_KINDS.get(head, StatementKind.OTHER)
    if kind is StatementKind.QUERY:
        return StatementInfo(kind, returns_rows=True)
    if kind is StatementKind.DML:
        return StatementInfo(kind, returns_rows=bool(_RETURNING.search(body)))
    return StatementInfo(kind)


def _split(sql: str) -> list[str]:
    return [chunk for chunk in sql.split(";") if chunk.strip()]


__all__ = ["classify", "has_transaction_control", "is_schema_changing"]
