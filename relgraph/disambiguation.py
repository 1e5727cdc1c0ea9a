# Copyright 2021-present Kensho Technologies, LLC.
from collections import Counter
import logging
from typing import AbstractSet, Dict, Mapping, Sequence


logger = logging.getLogger(__name__)

# Placed between the table name and the column name of a disambiguated column.
DISAMBIGUATION_SEPARATOR = "."

# Table name -> dict of old column name -> new column name, for the columns to rename.
ColumnRenames = Dict[str, Dict[str, str]]


def compute_disambiguation_renames(
    table_columns: Mapping[str, Sequence[str]], separator: str = DISAMBIGUATION_SEPARATOR
) -> ColumnRenames:
    """Compute the renames that make column names unique across a set of tables.

    Every column name that occurs in more than one of the tables is qualified with the name of
    its table in every table that has it, e.g. "id" becomes "customers.id" and "orders.id".
    If a qualified name is already taken by a column that keeps its name, a numeric suffix is
    appended to it, e.g. "customers.id_1".

    Args:
        table_columns: table name -> column names of the table. Table order determines the
                       order of the result.
        separator: string placed between table name and column name

    Returns:
        ColumnRenames dict, only containing tables with at least one renamed column
    """
    occurrences = Counter(
        column for columns in table_columns.values() for column in frozenset(columns)
    )

    taken_names = {column for column, count in occurrences.items() if count == 1}

    renames: ColumnRenames = {}
    for table_name, columns in table_columns.items():
        table_renames = {}
        for column in columns:
            if occurrences[column] > 1:
                new_name = _get_free_name(table_name + separator + column, taken_names)
                taken_names.add(new_name)
                table_renames[column] = new_name
        if table_renames:
            renames[table_name] = table_renames
    return renames


def _get_free_name(name: str, taken_names: AbstractSet[str]) -> str:
    """Return the name, with the smallest numeric suffix needed to avoid the taken names."""
    candidate = name
    suffix = 0
    while candidate in taken_names:
        suffix += 1
        candidate = f"{name}_{suffix}"
    return candidate


def explain_column_renames(renames: ColumnRenames) -> None:
    """Log the renamed columns, so that users can find them in the result."""
    if not renames:
        return
    lines = [
        f"* {old_name} -> {new_name}"
        for table_renames in renames.values()
        for old_name, new_name in table_renames.items()
    ]
    logger.info("Renamed columns:\n%s", "\n".join(lines))
