"""Fluent table query builder and its Postgres compiler.

Services describe reads and writes as ``Query`` objects; ``DatabaseSession``
compiles them to parameterised SQL, and the test fake interprets them directly.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Iterable

IDENTIFIER_RE = re.compile(r"^[a-z_][a-z0-9_]*$")
FILTER_OPS = {"eq", "neq", "in", "contains", "ilike", "gte", "lte", "is_null", "not_null"}


class QueryBuildError(ValueError):
    """Raised when a query references an invalid identifier or operator."""


@dataclass(slots=True, frozen=True)
class Filter:
    column: str
    op: str
    value: Any = None


@dataclass(slots=True, frozen=True)
class AnyOf:
    filters: tuple[Filter, ...]


@dataclass(slots=True, frozen=True)
class Order:
    column: str
    descending: bool = False
    nulls_last: bool = False


@dataclass(slots=True)
class Query:
    source: str
    action: str = "select"
    columns: tuple[str, ...] = ("*",)
    count: bool = False
    filters: list[Filter | AnyOf] = field(default_factory=list)
    orders: list[Order] = field(default_factory=list)
    offset: int | None = None
    limit_value: int | None = None
    lock: bool = False
    values: dict[str, Any] = field(default_factory=dict)
    rows: list[dict[str, Any]] = field(default_factory=list)
    on_conflict: tuple[str, ...] = ()
    ignore_duplicates: bool = False
    returning_columns: tuple[str, ...] = ()

    def select(self, columns: str | Iterable[str] = "*", *, count: bool = False) -> Query:
        self.action = "select"
        self.columns = _split_columns(columns)
        self.count = count
        return self

    def insert(self, rows: dict[str, Any] | list[dict[str, Any]]) -> Query:
        self.action = "insert"
        self.rows = [rows] if isinstance(rows, dict) else list(rows)
        return self

    def upsert(
        self,
        rows: dict[str, Any] | list[dict[str, Any]],
        *,
        on_conflict: str | Iterable[str],
        ignore_duplicates: bool = False,
    ) -> Query:
        self.action = "upsert"
        self.rows = [rows] if isinstance(rows, dict) else list(rows)
        self.on_conflict = _split_columns(on_conflict)
        self.ignore_duplicates = ignore_duplicates
        return self

    def update(self, values: dict[str, Any]) -> Query:
        self.action = "update"
        self.values = dict(values)
        return self

    def delete(self) -> Query:
        self.action = "delete"
        return self

    def returning(self, columns: str | Iterable[str] = "*") -> Query:
        self.returning_columns = _split_columns(columns)
        return self

    def eq(self, column: str, value: Any) -> Query:
        return self._where(Filter(column, "eq", value))

    def neq(self, column: str, value: Any) -> Query:
        return self._where(Filter(column, "neq", value))

    def in_(self, column: str, values: Iterable[Any]) -> Query:
        return self._where(Filter(column, "in", list(values)))

    def contains(self, column: str, values: Iterable[Any]) -> Query:
        return self._where(Filter(column, "contains", list(values)))

    def ilike(self, column: str, pattern: str) -> Query:
        return self._where(Filter(column, "ilike", pattern))

    def gte(self, column: str, value: Any) -> Query:
        return self._where(Filter(column, "gte", value))

    def lte(self, column: str, value: Any) -> Query:
        return self._where(Filter(column, "lte", value))

    def is_null(self, column: str) -> Query:
        return self._where(Filter(column, "is_null"))

    def not_null(self, column: str) -> Query:
        return self._where(Filter(column, "not_null"))

    def any_of(self, *filters: Filter) -> Query:
        for item in filters:
            _validate_filter(item)
        if not filters:
            return self
        self.filters.append(AnyOf(tuple(filters)))
        return self

    def order(self, column: str, *, descending: bool = False, nulls_last: bool = False) -> Query:
        _validate_identifier(column)
        self.orders.append(Order(column, descending, nulls_last))
        return self

    def range(self, offset: int, size: int) -> Query:
        self.offset = max(0, offset)
        self.limit_value = max(0, size)
        return self

    def limit(self, size: int) -> Query:
        self.limit_value = max(0, size)
        return self

    def for_update(self) -> Query:
        self.lock = True
        return self

    def _where(self, item: Filter) -> Query:
        _validate_filter(item)
        self.filters.append(item)
        return self


def table(name: str) -> Query:
    _validate_identifier(name)
    return Query(source=name)


def escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def compile_query(query: Query) -> tuple[str, list[Any]]:
    params: list[Any] = []

    def bind(value: Any) -> str:
        params.append(value)
        return f"${len(params)}"

    source = _quote(query.source)
    if query.action == "select":
        sql = f"select {_column_list(query.columns)} from {source}"
        sql += _where_sql(query.filters, bind)
        if query.orders:
            sql += " order by " + ", ".join(_order_sql(order) for order in query.orders)
        if query.limit_value is not None:
            sql += f" limit {bind(query.limit_value)}"
        if query.offset:
            sql += f" offset {bind(query.offset)}"
        if query.lock:
            sql += " for update"
        return sql, params

    if query.action in {"insert", "upsert"}:
        if not query.rows:
            raise QueryBuildError("insert requires at least one row")
        columns: list[str] = []
        for row in query.rows:
            for column in row:
                if column not in columns:
                    _validate_identifier(column)
                    columns.append(column)
        tuples = []
        for row in query.rows:
            tokens = [bind(row[column]) if column in row else "default" for column in columns]
            tuples.append(f"({', '.join(tokens)})")
        sql = f"insert into {source} ({_column_list(columns)}) values {', '.join(tuples)}"
        if query.action == "upsert":
            conflict = _column_list(query.on_conflict)
            if query.ignore_duplicates:
                sql += f" on conflict ({conflict}) do nothing"
            else:
                updates = [column for column in columns if column not in query.on_conflict]
                if updates:
                    assignments = ", ".join(f"{_quote(column)} = excluded.{_quote(column)}" for column in updates)
                    sql += f" on conflict ({conflict}) do update set {assignments}"
                else:
                    sql += f" on conflict ({conflict}) do nothing"
        return sql + _returning_sql(query), params

    if query.action == "update":
        if not query.values:
            raise QueryBuildError("update requires at least one value")
        assignments = []
        for column, value in query.values.items():
            _validate_identifier(column)
            assignments.append(f"{_quote(column)} = {bind(value)}")
        sql = f"update {source} set {', '.join(assignments)}"
        sql += _where_sql(query.filters, bind)
        return sql + _returning_sql(query), params

    if query.action == "delete":
        sql = f"delete from {source}" + _where_sql(query.filters, bind)
        return sql + _returning_sql(query), params

    raise QueryBuildError(f"unsupported query action: {query.action}")


def compile_count(query: Query) -> tuple[str, list[Any]]:
    params: list[Any] = []

    def bind(value: Any) -> str:
        params.append(value)
        return f"${len(params)}"

    sql = f"select count(*) as count from {_quote(query.source)}" + _where_sql(query.filters, bind)
    return sql, params


def _where_sql(filters: list[Filter | AnyOf], bind) -> str:
    if not filters:
        return ""
    clauses = []
    for item in filters:
        if isinstance(item, AnyOf):
            clauses.append("(" + " or ".join(_filter_sql(inner, bind) for inner in item.filters) + ")")
        else:
            clauses.append(_filter_sql(item, bind))
    return " where " + " and ".join(clauses)


def _filter_sql(item: Filter, bind) -> str:
    column = _quote(item.column)
    if item.op == "eq":
        return f"{column} = {bind(item.value)}"
    if item.op == "neq":
        return f"{column} is distinct from {bind(item.value)}"
    if item.op == "in":
        return f"{column} = any({bind(list(item.value))})"
    if item.op == "contains":
        return f"{column} @> {bind(list(item.value))}"
    if item.op == "ilike":
        return f"{column} ilike {bind(item.value)}"
    if item.op == "gte":
        return f"{column} >= {bind(item.value)}"
    if item.op == "lte":
        return f"{column} <= {bind(item.value)}"
    if item.op == "is_null":
        return f"{column} is null"
    if item.op == "not_null":
        return f"{column} is not null"
    raise QueryBuildError(f"unsupported filter operator: {item.op}")


def _order_sql(order: Order) -> str:
    sql = f"{_quote(order.column)} {'desc' if order.descending else 'asc'}"
    if order.nulls_last:
        sql += " nulls last"
    return sql


def _returning_sql(query: Query) -> str:
    if not query.returning_columns:
        return ""
    return f" returning {_column_list(query.returning_columns)}"


def _column_list(columns: Iterable[str]) -> str:
    rendered = []
    for column in columns:
        if column == "*":
            rendered.append("*")
        else:
            rendered.append(_quote(column))
    return ", ".join(rendered)


def _split_columns(columns: str | Iterable[str]) -> tuple[str, ...]:
    if isinstance(columns, str):
        items = tuple(chunk.strip() for chunk in columns.split(",") if chunk.strip())
    else:
        items = tuple(columns)
    for column in items:
        if column != "*":
            _validate_identifier(column)
    return items or ("*",)


def _validate_filter(item: Filter) -> None:
    _validate_identifier(item.column)
    if item.op not in FILTER_OPS:
        raise QueryBuildError(f"unsupported filter operator: {item.op}")


def _validate_identifier(name: str) -> None:
    if not IDENTIFIER_RE.match(name):
        raise QueryBuildError(f"invalid identifier: {name!r}")


def _quote(name: str) -> str:
    _validate_identifier(name)
    return f'"{name}"'
