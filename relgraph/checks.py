# Copyright 2021-present Kensho Technologies, LLC.
"""Checks of key constraints and relationship cardinalities against the data of tables.

All checks delegate the row-level work to the executor of the tables. Error messages and
explanations quote at most a handful of offending values.
"""
import logging
from typing import List, Mapping, NamedTuple

from .backend import TableHandle
from .exceptions import (
    CardinalityNotInjectiveError,
    CardinalityNotSurjectiveError,
    ColumnNotFoundError,
    KeyNotUniqueError,
    ValueSetNotSubsetError,
    ValueSetsNotEqualError,
)
from .expressions import LocalField, UnaryTransformation
from .helpers import MAX_COMMAS, commas, tick
from .keys import KeyRegistry


logger = logging.getLogger(__name__)

# Placeholder used in messages when a table is checked on its own, outside of a DataModel.
DEFAULT_TABLE_NAME = "table"


class KeyCandidate(NamedTuple):
    """Whether a column could serve as a primary or foreign key of its table, and why not."""

    column: str
    candidate: bool
    why: str  # Empty for candidates.


class ConstraintCheckResult(NamedTuple):
    """The outcome of checking one primary key or foreign key of a DataModel."""

    table: str
    kind: str  # "PK" or "FK".
    column: str
    ref_table: str  # Referenced table for foreign keys, empty for primary keys.
    is_key: bool  # True if the data satisfies the constraint.
    problem: str  # Empty if the data satisfies the constraint.


def check_column_exists(table: TableHandle, column: str, table_name: str) -> None:
    """Raise ColumnNotFoundError if the table has no column with the given name."""
    if column not in table.columns:
        raise ColumnNotFoundError(
            f"Column {tick(column)} not found in table {tick(table_name)}, "
            f"available columns: {table.columns}"
        )


def _get_duplicates_problem(table: TableHandle, column: str) -> str:
    """Return a description of the duplicate values of the column, or "" if there are none."""
    duplicates = table.executor.duplicate_values(table, column, limit=MAX_COMMAS + 1)
    if not duplicates:
        return ""
    return f"has duplicate values: {commas(duplicates)}"


def _get_missing_values_problem(
    table: TableHandle, column: str, other: TableHandle, other_column: str
) -> str:
    """Return a description of the values of column missing in other_column, or ""."""
    missing = table.executor.set_difference(
        table, column, other, other_column, limit=MAX_COMMAS + 1
    )
    if not missing:
        return ""
    return f"values of {tick(column)} not in {tick(other_column)}: {commas(missing)}"


def check_key(table: TableHandle, column: str, table_name: str = DEFAULT_TABLE_NAME) -> None:
    """Raise KeyNotUniqueError unless the column holds no duplicate values.

    Args:
        table: TableHandle of the table to check
        column: name of the column that should be a unique key
        table_name: name of the table, used in error messages
    """
    check_column_exists(table, column, table_name)
    problem = _get_duplicates_problem(table, column)
    if problem:
        raise KeyNotUniqueError(
            f"({tick(column)}) is not a unique key of {tick(table_name)}: it {problem}."
        )


def is_unique_key(table: TableHandle, column: str) -> bool:
    """Return True if the column holds no duplicate values."""
    return not table.executor.duplicate_values(table, column, limit=1)


def check_if_subset(
    table_1: TableHandle,
    column_1: str,
    table_2: TableHandle,
    column_2: str,
    table_1_name: str = "table_1",
    table_2_name: str = "table_2",
) -> None:
    """Raise ValueSetNotSubsetError unless every value of column_1 occurs in column_2.

    Null values of column_1 are not taken into account: a null foreign key references nothing.

    Args:
        table_1: TableHandle of the table whose values must all be found
        column_1: name of the column of table_1
        table_2: TableHandle of the table in which the values are looked up
        column_2: name of the column of table_2
        table_1_name: name of table_1, used in error messages
        table_2_name: name of table_2, used in error messages
    """
    check_column_exists(table_1, column_1, table_1_name)
    check_column_exists(table_2, column_2, table_2_name)
    missing = table_1.executor.set_difference(
        table_1, column_1, table_2, column_2, limit=MAX_COMMAS + 1
    )
    if missing:
        raise ValueSetNotSubsetError(
            f"Column ({tick(column_1)}) of table {tick(table_1_name)} contains values "
            f"({commas(missing)}) that are not present in column ({tick(column_2)}) "
            f"of table {tick(table_2_name)}."
        )


def is_subset(table_1: TableHandle, column_1: str, table_2: TableHandle, column_2: str) -> bool:
    """Return True if every non-null value of column_1 occurs in column_2."""
    return not table_1.executor.set_difference(table_1, column_1, table_2, column_2, limit=1)


def check_set_equality(
    table_1: TableHandle,
    column_1: str,
    table_2: TableHandle,
    column_2: str,
    table_1_name: str = "table_1",
    table_2_name: str = "table_2",
) -> None:
    """Raise ValueSetsNotEqualError unless both columns hold the same set of non-null values."""
    check_column_exists(table_1, column_1, table_1_name)
    check_column_exists(table_2, column_2, table_2_name)
    problems = []
    for (table, column, name), (other, other_column, other_name) in (
        ((table_1, column_1, table_1_name), (table_2, column_2, table_2_name)),
        ((table_2, column_2, table_2_name), (table_1, column_1, table_1_name)),
    ):
        missing = table.executor.set_difference(
            table, column, other, other_column, limit=MAX_COMMAS + 1
        )
        if missing:
            problems.append(
                f"Column ({tick(column)}) of table {tick(name)} contains values "
                f"({commas(missing)}) that are not present in column ({tick(other_column)}) "
                f"of table {tick(other_name)}."
            )
    if problems:
        raise ValueSetsNotEqualError("\n".join(problems))


def _check_surjective(
    parent_table: TableHandle, primary_key: str, child_table: TableHandle, foreign_key: str
) -> None:
    """Raise CardinalityNotSurjectiveError unless every parent key is referenced."""
    missing = parent_table.executor.set_difference(
        parent_table, primary_key, child_table, foreign_key, limit=MAX_COMMAS + 1
    )
    if missing:
        raise CardinalityNotSurjectiveError(
            f"Primary key values ({commas(missing)}) of column ({tick(primary_key)}) are not "
            f"referenced by any row of the child table."
        )


def _check_injective(child_table: TableHandle, foreign_key: str) -> None:
    """Raise CardinalityNotInjectiveError if some parent key is referenced more than once."""
    duplicates = [
        value
        for value in child_table.executor.duplicate_values(child_table, foreign_key)
        if value is not None
    ]
    if duplicates:
        raise CardinalityNotInjectiveError(
            f"Foreign key column ({tick(foreign_key)}) references the values "
            f"({commas(duplicates)}) more than once."
        )


def check_cardinality_0_n(
    parent_table: TableHandle, primary_key: str, child_table: TableHandle, foreign_key: str
) -> None:
    """Check that each parent row is referenced by any number of child rows.

    The primary key must be unique and every foreign key value must be a primary key value.
    """
    check_key(parent_table, primary_key, table_name="parent_table")
    check_if_subset(
        child_table,
        foreign_key,
        parent_table,
        primary_key,
        table_1_name="child_table",
        table_2_name="parent_table",
    )


def check_cardinality_1_n(
    parent_table: TableHandle, primary_key: str, child_table: TableHandle, foreign_key: str
) -> None:
    """Check that each parent row is referenced by at least one child row."""
    check_cardinality_0_n(parent_table, primary_key, child_table, foreign_key)
    _check_surjective(parent_table, primary_key, child_table, foreign_key)


def check_cardinality_0_1(
    parent_table: TableHandle, primary_key: str, child_table: TableHandle, foreign_key: str
) -> None:
    """Check that each parent row is referenced by at most one child row."""
    check_cardinality_0_n(parent_table, primary_key, child_table, foreign_key)
    _check_injective(child_table, foreign_key)


def check_cardinality_1_1(
    parent_table: TableHandle, primary_key: str, child_table: TableHandle, foreign_key: str
) -> None:
    """Check that each parent row is referenced by exactly one child row."""
    check_cardinality_0_n(parent_table, primary_key, child_table, foreign_key)
    _check_injective(child_table, foreign_key)
    _check_surjective(parent_table, primary_key, child_table, foreign_key)


def enum_pk_candidates(table: TableHandle) -> List[KeyCandidate]:
    """Return, for every column of the table, whether it could serve as its primary key.

    A column is a candidate if it has neither null nor duplicate values.
    """
    executor = table.executor
    candidates = []
    for column in table.columns:
        has_nulls = executor.count(
            executor.filter(table, UnaryTransformation("is_null", LocalField(column)))
        )
        if has_nulls:
            why = "has missing values"
        else:
            why = _get_duplicates_problem(table, column)
        candidates.append(KeyCandidate(column=column, candidate=not why, why=why))
    return candidates


def enum_fk_candidates(
    child_table: TableHandle, parent_table: TableHandle, primary_key: str
) -> List[KeyCandidate]:
    """Return, for every column of the child table, whether it could reference the primary key.

    A column is a candidate if all its non-null values are values of the primary key.
    Candidates come first; otherwise the columns keep their table order.
    """
    candidates = []
    for column in child_table.columns:
        why = _get_missing_values_problem(child_table, column, parent_table, primary_key)
        candidates.append(KeyCandidate(column=column, candidate=not why, why=why))
    return sorted(candidates, key=lambda candidate: not candidate.candidate)


def examine_constraints(
    tables: Mapping[str, TableHandle], key_registry: KeyRegistry
) -> List[ConstraintCheckResult]:
    """Check every primary key and foreign key of the tables against the data.

    Args:
        tables: table name -> TableHandle, for all tables the keys refer to
        key_registry: KeyRegistry with the keys to check

    Returns:
        list of ConstraintCheckResult, violated constraints first, then primary keys before
        foreign keys, then by table and column name
    """
    results = []
    for table_name, column in key_registry.primary_keys.items():
        problem = _get_duplicates_problem(tables[table_name], column)
        results.append(
            ConstraintCheckResult(
                table=table_name,
                kind="PK",
                column=column,
                ref_table="",
                is_key=not problem,
                problem=problem,
            )
        )

    for foreign_key in key_registry.foreign_keys:
        parent_column = key_registry.get_pk(foreign_key.parent_table)
        if parent_column is None:
            problem = f"table {tick(foreign_key.parent_table)} has no primary key"
        else:
            problem = _get_missing_values_problem(
                tables[foreign_key.child_table],
                foreign_key.child_column,
                tables[foreign_key.parent_table],
                parent_column,
            )
        results.append(
            ConstraintCheckResult(
                table=foreign_key.child_table,
                kind="FK",
                column=foreign_key.child_column,
                ref_table=foreign_key.parent_table,
                is_key=not problem,
                problem=problem,
            )
        )

    logger.debug("Examined %s constraints.", len(results))
    # Violations first, then primary keys before foreign keys.
    return sorted(
        results,
        key=lambda result: (result.is_key, result.kind != "PK", result.table, result.column),
    )
