# Copyright 2021-present Kensho Technologies, LLC.
from abc import ABCMeta, abstractmethod
from dataclasses import dataclass
import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

import sqlalchemy
from sqlalchemy import func, select
from sqlalchemy.engine import Engine
from sqlalchemy.sql.selectable import FromClause, Select

from .expressions import Expression


logger = logging.getLogger(__name__)

# (column of the left table, column of the right table) pairs that must be equal for two rows
# to match in a join or semi-join.
JoinColumns = Sequence[Tuple[str, str]]

# Join kinds that produce a table with columns of both sides.
COLUMN_ADDING_JOINS = frozenset({"inner", "left", "right", "full"})


@dataclass(frozen=True, eq=False)
class TableHandle:
    """An opaque, lazy reference to a table living in the backend of a QueryExecutor.

    Nothing is executed when a TableHandle is created or derived from another one;
    rows are only produced by the terminal operations of its executor (collect, count, ...).
    """

    executor: "QueryExecutor"
    query: Select

    @property
    def columns(self) -> List[str]:
        """Return the names of the columns of this table, in order."""
        return self.executor.columns(self)

    def collect(self, order_by: Optional[Sequence[str]] = None) -> List[Dict[str, Any]]:
        """Return all rows of this table as dicts."""
        return self.executor.collect(self, order_by=order_by)

    def count(self) -> int:
        """Return the number of rows of this table."""
        return self.executor.count(self)


class QueryExecutor(metaclass=ABCMeta):
    """Base class defining the API through which tables are scanned, filtered and joined.

    The relation graph algorithms never look at rows themselves: every row-level operation
    is delegated to an instance of this class. All operations that return a TableHandle are
    expected to be lazy; only collect(), count() and the set-valued operations used for key
    validation actually run queries.
    """

    @abstractmethod
    def columns(self, table: TableHandle) -> List[str]:
        """Return the column names of the table, in order."""

    @abstractmethod
    def collect(
        self, table: TableHandle, order_by: Optional[Sequence[str]] = None
    ) -> List[Dict[str, Any]]:
        """Scan the table and return its rows as dicts, optionally ordered by some columns."""

    @abstractmethod
    def count(self, table: TableHandle) -> int:
        """Return the number of rows of the table."""

    @abstractmethod
    def filter(self, table: TableHandle, predicate: Expression) -> TableHandle:
        """Return the rows of the table for which the predicate holds."""

    @abstractmethod
    def semi_join(self, table: TableHandle, other: TableHandle, on: JoinColumns) -> TableHandle:
        """Return the rows of the table that have at least one match in the other table."""

    @abstractmethod
    def anti_join(self, table: TableHandle, other: TableHandle, on: JoinColumns) -> TableHandle:
        """Return the rows of the table that have no match in the other table."""

    @abstractmethod
    def join(
        self, how: str, left: TableHandle, right: TableHandle, on: JoinColumns
    ) -> TableHandle:
        """Join two tables, with "how" being one of "inner", "left", "right" or "full".

        The result holds all columns of the left table followed by all columns of the right
        table except its join columns. For right and full joins, the left join columns hold
        the key value of whichever side of the join is present.
        """

    @abstractmethod
    def rename(self, table: TableHandle, renames: Mapping[str, str]) -> TableHandle:
        """Rename columns of the table according to the old name -> new name mapping."""

    @abstractmethod
    def count_distinct(self, table: TableHandle, columns: Sequence[str]) -> int:
        """Return the number of distinct value combinations of the given columns."""

    @abstractmethod
    def duplicate_values(
        self, table: TableHandle, column: str, limit: Optional[int] = None
    ) -> List[Any]:
        """Return the sorted values that occur more than once in the given column."""

    @abstractmethod
    def set_difference(
        self,
        table: TableHandle,
        column: str,
        other: TableHandle,
        other_column: str,
        limit: Optional[int] = None,
    ) -> List[Any]:
        """Return the sorted non-null values of the column that do not occur in other_column."""

    @abstractmethod
    def same_backend(self, table: TableHandle, other: TableHandle) -> bool:
        """Return True if the two tables can be combined in a single query."""


def _get_join_condition(left: FromClause, right: FromClause, on: JoinColumns) -> Any:
    """Return the SQLAlchemy clause matching rows of the left and right selectables."""
    if not on:
        raise AssertionError(f"Expected at least one pair of join columns, got: {on}")
    return sqlalchemy.and_(
        *(left.c[left_column] == right.c[right_column] for left_column, right_column in on)
    )


class SQLAlchemyExecutor(QueryExecutor):
    """QueryExecutor running lazily-built SELECT statements through a SQLAlchemy engine."""

    def __init__(self, engine: Engine) -> None:
        """Create a new executor that runs all its queries using the given engine."""
        self._engine = engine

    @property
    def engine(self) -> Engine:
        """Return the engine this executor runs its queries with."""
        return self._engine

    def table(self, table_name: str, schema: Optional[str] = None) -> TableHandle:
        """Return a handle to the database table with the given name, reflecting its columns."""
        table = sqlalchemy.Table(
            table_name, sqlalchemy.MetaData(), autoload_with=self._engine, schema=schema
        )
        return TableHandle(self, select(table))

    def table_from_selectable(self, selectable: Any) -> TableHandle:
        """Return a handle to a SQLAlchemy Table, subquery or SELECT statement."""
        if isinstance(selectable, Select):
            return TableHandle(self, selectable)
        if isinstance(selectable, FromClause):
            return TableHandle(self, select(selectable))
        raise TypeError(
            "Expected a SQLAlchemy Select or FromClause, got: {} {}".format(
                type(selectable).__name__, selectable
            )
        )

    def _alias(self, table: TableHandle) -> FromClause:
        """Return an anonymous subquery for the table, verifying that it belongs to us."""
        executor = table.executor
        if not isinstance(executor, SQLAlchemyExecutor) or executor.engine is not self._engine:
            raise AssertionError(
                f"Table {table} belongs to executor {executor}, which does not share "
                f"the engine of {self}."
            )
        return table.query.subquery()

    def _new_table(self, query: Select) -> TableHandle:
        return TableHandle(self, query)

    def _fetch_all(self, query: Select) -> List[Any]:
        logger.debug("Executing query: %s", query)
        with self._engine.connect() as connection:
            return list(connection.execute(query))

    def _fetch_scalar(self, query: Select) -> Any:
        logger.debug("Executing query: %s", query)
        with self._engine.connect() as connection:
            return connection.execute(query).scalar()

    def columns(self, table: TableHandle) -> List[str]:
        """Return the column names of the table, in order."""
        return list(table.query.selected_columns.keys())

    def collect(
        self, table: TableHandle, order_by: Optional[Sequence[str]] = None
    ) -> List[Dict[str, Any]]:
        """Scan the table and return its rows as dicts, optionally ordered by some columns."""
        query = table.query
        if order_by:
            alias = self._alias(table)
            query = select(*alias.c).order_by(*(alias.c[column] for column in order_by))
        return [dict(row._mapping) for row in self._fetch_all(query)]

    def count(self, table: TableHandle) -> int:
        """Return the number of rows of the table."""
        alias = self._alias(table)
        return int(self._fetch_scalar(select(func.count()).select_from(alias)))

    def filter(self, table: TableHandle, predicate: Expression) -> TableHandle:
        """Return the rows of the table for which the predicate holds."""
        alias = self._alias(table)
        return self._new_table(select(*alias.c).where(predicate.to_sql(alias)))

    def semi_join(self, table: TableHandle, other: TableHandle, on: JoinColumns) -> TableHandle:
        """Return the rows of the table that have at least one match in the other table."""
        left, right = self._alias(table), self._alias(other)
        condition = _get_join_condition(left, right, on)
        return self._new_table(select(*left.c).where(sqlalchemy.exists().where(condition)))

    def anti_join(self, table: TableHandle, other: TableHandle, on: JoinColumns) -> TableHandle:
        """Return the rows of the table that have no match in the other table."""
        left, right = self._alias(table), self._alias(other)
        condition = _get_join_condition(left, right, on)
        return self._new_table(select(*left.c).where(~sqlalchemy.exists().where(condition)))

    def join(
        self, how: str, left: TableHandle, right: TableHandle, on: JoinColumns
    ) -> TableHandle:
        """Join two tables, with "how" being one of "inner", "left", "right" or "full"."""
        if how not in COLUMN_ADDING_JOINS:
            raise AssertionError(
                f"Unsupported join kind {how}, expected one of {sorted(COLUMN_ADDING_JOINS)}."
            )

        left_alias, right_alias = self._alias(left), self._alias(right)
        condition = _get_join_condition(left_alias, right_alias, on)
        left_to_right_key = dict(on)
        right_keys = set(left_to_right_key.values())
        right_columns = [column for column in right_alias.c if column.name not in right_keys]

        if how in ("inner", "left"):
            from_clause = left_alias.join(right_alias, condition, isouter=(how == "left"))
            left_columns = list(left_alias.c)
        elif how == "right":
            # Every right row survives, so its key column is never null.
            from_clause = right_alias.join(left_alias, condition, isouter=True)
            left_columns = [
                right_alias.c[left_to_right_key[column.name]].label(column.name)
                if column.name in left_to_right_key
                else column
                for column in left_alias.c
            ]
        else:
            from_clause = left_alias.join(right_alias, condition, full=True)
            left_columns = [
                func.coalesce(column, right_alias.c[left_to_right_key[column.name]]).label(
                    column.name
                )
                if column.name in left_to_right_key
                else column
                for column in left_alias.c
            ]

        return self._new_table(select(*left_columns, *right_columns).select_from(from_clause))

    def rename(self, table: TableHandle, renames: Mapping[str, str]) -> TableHandle:
        """Rename columns of the table according to the old name -> new name mapping."""
        if not renames:
            return table
        alias = self._alias(table)
        return self._new_table(
            select(*(column.label(renames.get(column.name, column.name)) for column in alias.c))
        )

    def count_distinct(self, table: TableHandle, columns: Sequence[str]) -> int:
        """Return the number of distinct value combinations of the given columns."""
        alias = self._alias(table)
        distinct_values = select(*(alias.c[column] for column in columns)).distinct().subquery()
        return int(self._fetch_scalar(select(func.count()).select_from(distinct_values)))

    def duplicate_values(
        self, table: TableHandle, column: str, limit: Optional[int] = None
    ) -> List[Any]:
        """Return the sorted values that occur more than once in the given column."""
        alias = self._alias(table)
        query = (
            select(alias.c[column])
            .group_by(alias.c[column])
            .having(func.count() > 1)
            .order_by(alias.c[column])
        )
        if limit is not None:
            query = query.limit(limit)
        return [row[0] for row in self._fetch_all(query)]

    def set_difference(
        self,
        table: TableHandle,
        column: str,
        other: TableHandle,
        other_column: str,
        limit: Optional[int] = None,
    ) -> List[Any]:
        """Return the sorted non-null values of the column that do not occur in other_column."""
        alias, other_alias = self._alias(table), self._alias(other)
        query = (
            select(alias.c[column])
            .distinct()
            .where(alias.c[column].isnot(None))
            .where(~sqlalchemy.exists().where(alias.c[column] == other_alias.c[other_column]))
            .order_by(alias.c[column])
        )
        if limit is not None:
            query = query.limit(limit)
        return [row[0] for row in self._fetch_all(query)]

    def same_backend(self, table: TableHandle, other: TableHandle) -> bool:
        """Return True if both tables are queried through executors sharing one engine."""
        executors = (table.executor, other.executor)
        return all(isinstance(executor, SQLAlchemyExecutor) for executor in executors) and (
            table.executor.engine is other.executor.engine
        )
