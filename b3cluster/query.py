"""Composable SQL statements with numbered placeholders, and the transaction interface."""

from __future__ import annotations

import itertools
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from typing import Any

_SQL_UNSAFE = re.compile(r"[^a-zA-Z0-9_-]")
_PLACEHOLDER = re.compile(r"\?\??")

_SQL_TRUE = "(1=1)"
_SQL_FALSE = "(1=0)"


def sql_safe_param(p: str) -> str:
    """Strip everything except letters, digits, '_' and '-'."""
    return _SQL_UNSAFE.sub("", p)


class NoRowsError(LookupError):
    """Raised when a single row was expected but none was returned."""


class Transaction(ABC):
    """A database transaction the stores run their statements in."""

    @abstractmethod
    def query(self, sql: str, *args: Any) -> list[tuple]:
        """Run a statement and return all resulting rows."""

    def query_row(self, sql: str, *args: Any) -> tuple:
        """Run a statement and return its first row."""
        rows = self.query(sql, *args)
        if not rows:
            raise NoRowsError("no rows in result set")
        return rows[0]

    @abstractmethod
    def execute(self, sql: str, *args: Any) -> int:
        """Run a statement and return the number of affected rows."""


def _predicate_sql(pred: Any, args: tuple) -> tuple[str, list]:
    if isinstance(pred, str):
        return pred, list(args)
    to_sql = getattr(pred, "to_sql", None)
    if to_sql is None:
        raise TypeError(f"unsupported predicate: {pred!r}")
    return to_sql()


class Eq(dict):
    """Equality on columns: ``Eq({"id": 1})``. None means IS NULL, a list means IN."""

    def to_sql(self) -> tuple[str, list]:
        if not self:
            return _SQL_TRUE, []
        parts: list[str] = []
        args: list = []
        for key in sorted(self):
            value = self[key]
            if value is None:
                parts.append(f"{key} IS NULL")
            elif isinstance(value, (list, tuple)):
                if not value:
                    parts.append(_SQL_FALSE)
                else:
                    marks = ",".join("?" for _ in value)
                    parts.append(f"{key} IN ({marks})")
                    args.extend(value)
            else:
                parts.append(f"{key} = ?")
                args.append(value)
        return " AND ".join(parts), args


class Like(dict):
    """Pattern match on columns: ``Like({"name": "abc%"})``."""

    def to_sql(self) -> tuple[str, list]:
        parts: list[str] = []
        args: list = []
        for key in sorted(self):
            value = self[key]
            if value is None:
                raise ValueError("cannot use null with like operators")
            parts.append(f"{key} LIKE ?")
            args.append(value)
        return " AND ".join(parts), args


class _Conjunction(list):
    _separator = ""
    _empty = ""

    def to_sql(self) -> tuple[str, list]:
        if not self:
            return self._empty, []
        parts: list[str] = []
        args: list = []
        for pred in self:
            sql, pred_args = _predicate_sql(pred, ())
            if sql:
                parts.append(sql)
                args.extend(pred_args)
        if not parts:
            return "", []
        return "(" + self._separator.join(parts) + ")", args


class Or(_Conjunction):
    """Disjunction of predicates; empty means false."""

    _separator = " OR "
    _empty = _SQL_FALSE


class And(_Conjunction):
    """Conjunction of predicates; empty means true."""

    _separator = " AND "
    _empty = _SQL_TRUE


def _to_dollar(sql: str) -> str:
    counter = itertools.count(1)
    return _PLACEHOLDER.sub(
        lambda m: "?" if m.group() == "??" else f"${next(counter)}", sql
    )


def _where_clause(wheres: tuple) -> tuple[str, list]:
    parts = [sql for sql, _ in wheres if sql]
    args = [arg for sql, pred_args in wheres if sql for arg in pred_args]
    if not parts:
        return "", []
    return " WHERE " + " AND ".join(parts), args


@dataclass(frozen=True)
class SelectBuilder:
    """An immutable SELECT statement; every method returns a new builder."""

    _columns: tuple = ()
    _table: str | None = None
    _joins: tuple = ()
    _wheres: tuple = ()

    def columns(self, *args: str) -> SelectBuilder:
        return replace(self, _columns=self._columns + tuple(args))

    def from_(self, table: str) -> SelectBuilder:
        return replace(self, _table=table)

    def join(self, clause: str, *args: Any) -> SelectBuilder:
        return replace(self, _joins=self._joins + ((clause, list(args)),))

    def where(self, pred: Any, *args: Any) -> SelectBuilder:
        return replace(self, _wheres=self._wheres + (_predicate_sql(pred, args),))

    def to_sql(self) -> tuple[str, list]:
        if not self._columns:
            raise ValueError("select statements must have at least one result column")
        sql = "SELECT " + ", ".join(self._columns)
        args: list = []
        if self._table:
            sql += f" FROM {self._table}"
        for clause, join_args in self._joins:
            sql += f" JOIN {clause}"
            args.extend(join_args)
        where_sql, where_args = _where_clause(self._wheres)
        sql += where_sql
        args.extend(where_args)
        return _to_dollar(sql), args


@dataclass(frozen=True)
class DeleteBuilder:
    """An immutable DELETE statement; every method returns a new builder."""

    _table: str | None = None
    _wheres: tuple = ()

    def from_(self, table: str) -> DeleteBuilder:
        return replace(self, _table=table)

    def where(self, pred: Any, *args: Any) -> DeleteBuilder:
        return replace(self, _wheres=self._wheres + (_predicate_sql(pred, args),))

    def to_sql(self) -> tuple[str, list]:
        if not self._table:
            raise ValueError("delete statements must specify a From table")
        where_sql, args = _where_clause(self._wheres)
        return _to_dollar(f"DELETE FROM {self._table}{where_sql}"), args


def new_query() -> SelectBuilder:
    """Start a new SELECT statement."""
    return SelectBuilder()


def new_delete() -> DeleteBuilder:
    """Start a new DELETE statement."""
    return DeleteBuilder()


def q() -> SelectBuilder:
    """Shorthand for new_query()."""
    return new_query()