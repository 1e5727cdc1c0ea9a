# Copyright 2021-present Kensho Technologies, LLC.
"""The DataModel: an immutable collection of related tables, their keys and pending filters."""
from dataclasses import dataclass, field, replace
import logging
from typing import Dict, List, Mapping, Optional, Tuple, Union

import funcy

from . import checks
from .backend import QueryExecutor, TableHandle
from .cascade import check_no_filters, get_filtered_table
from .exceptions import (
    BackendMismatchError,
    ColumnNotFoundError,
    DuplicateTableNameError,
    ForeignKeyColumnMissingError,
    NotAForeignKeyColumnError,
    PrimaryKeyAlreadySetError,
    PrimaryKeyRemovalBlockedByForeignKeysError,
    ReferencedTableHasNoPrimaryKeyError,
    UnknownTableError,
)
from .expressions import Expression
from .filters import FilterStore
from .flatten import JoinKind, flatten_to_tbl, join_to_tbl, squash_to_tbl
from .helpers import tick
from .keys import ForeignKey, KeyRegistry


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DataModel:
    """An immutable snapshot of related tables, their primary and foreign keys, and filters.

    Every operation that changes the DataModel returns a new DataModel and leaves the original
    one untouched. Filters are only declared by filter(): they take effect when a table is
    read through tbl(), or when apply_filters() materializes all tables at once.

    The following always holds:
    - table names are unique, and the tables are ordered by the time they were added;
    - all keys and filters refer to tables of the DataModel;
    - each table has at most one primary key column;
    - all tables are queried through executors sharing the same backend.
    """

    # Table name -> stored table, without any of the pending filters applied.
    tables: Dict[str, TableHandle] = field(default_factory=dict)
    key_registry: KeyRegistry = field(default_factory=KeyRegistry)
    filters: FilterStore = field(default_factory=FilterStore)

    def __post_init__(self) -> None:
        """Ensure that all keys and filters refer to tables of the DataModel."""
        referenced_tables = set(self.key_registry.primary_keys) | set(
            self.filters.filtered_tables
        )
        for foreign_key in self.key_registry.foreign_keys:
            referenced_tables.update((foreign_key.child_table, foreign_key.parent_table))

        unknown_tables = referenced_tables - set(self.tables)
        if unknown_tables:
            raise AssertionError(
                f"Keys or filters refer to tables {sorted(unknown_tables)} that are not part of "
                f"the data model: {self}"
            )

    @property
    def table_names(self) -> List[str]:
        """Return the names of all tables, in the order they were added."""
        return list(self.tables)

    @property
    def executor(self) -> Optional[QueryExecutor]:
        """Return the executor used to query the tables, or None if there are no tables."""
        return funcy.first(table.executor for table in self.tables.values())

    def __contains__(self, table_name: object) -> bool:
        """Return True if the DataModel has a table with the given name."""
        return table_name in self.tables

    def __len__(self) -> int:
        return len(self.tables)

    def __getitem__(self, table_name: str) -> TableHandle:
        """Return the table with the given name, narrowed by the pending filters."""
        return self.tbl(table_name)

    def _check_tables_exist(self, *table_names: str) -> None:
        unknown_tables = [name for name in table_names if name not in self.tables]
        if unknown_tables:
            raise UnknownTableError(
                f"Tables {unknown_tables} not in data model: {self.table_names}"
            )

    def tbl(self, table_name: str) -> TableHandle:
        """Return the table with the given name, narrowed by the pending filters."""
        return get_filtered_table(self, table_name)

    def nrow(self) -> Dict[str, int]:
        """Return the number of rows of every table, taking the pending filters into account."""
        return {table_name: self.tbl(table_name).count() for table_name in self.tables}

    # Tables

    def add_tables(self, new_tables: Mapping[str, TableHandle]) -> "DataModel":
        """Return a DataModel with the given tables added after the existing ones.

        Args:
            new_tables: table name -> TableHandle for every table to add. The names must not
                        be used by existing tables, and all tables must live in the same
                        backend as the existing ones.

        Returns:
            new DataModel object
        """
        duplicate_names = [name for name in new_tables if name in self.tables]
        if duplicate_names:
            raise DuplicateTableNameError(
                f"Tables {duplicate_names} already exist in data model: {self.table_names}"
            )

        all_tables = dict(self.tables)
        all_tables.update(new_tables)
        if not all_tables:
            return self

        reference_name, reference_table = funcy.first(all_tables.items())
        for table_name, table in all_tables.items():
            if not reference_table.executor.same_backend(reference_table, table):
                raise BackendMismatchError(
                    f"Table {tick(table_name)} does not live in the same backend as "
                    f"table {tick(reference_name)}."
                )

        return replace(self, tables=all_tables)

    def _select(self, selected: Mapping[str, str]) -> "DataModel":
        """Keep only the selected tables, renaming them and their keys and filters.

        Args:
            selected: dict, old table name -> new table name, for every table to keep,
                      in the order the tables should have

        Returns:
            new DataModel object
        """
        return DataModel(
            tables={new_name: self.tables[old_name] for old_name, new_name in selected.items()},
            key_registry=self.key_registry.select_tables(selected),
            filters=self.filters.select_tables(selected),
        )

    def remove_tables(self, *table_names: str) -> "DataModel":
        """Return a DataModel without the given tables, and without their keys and filters."""
        self._check_tables_exist(*table_names)
        return self._select({name: name for name in self.tables if name not in table_names})

    def select_tables(self, *table_names: str) -> "DataModel":
        """Return a DataModel with only the given tables, in the given order."""
        self._check_tables_exist(*table_names)
        return self._select({name: name for name in table_names})

    def rename_tables(self, renames: Mapping[str, str]) -> "DataModel":
        """Return a DataModel with tables renamed according to the old name -> new name dict."""
        self._check_tables_exist(*renames)
        selected = {name: renames.get(name, name) for name in self.tables}
        new_names = list(selected.values())
        duplicate_names = sorted({name for name in new_names if new_names.count(name) > 1})
        if duplicate_names:
            raise DuplicateTableNameError(
                f"Renaming tables with {renames} would produce duplicate names: {duplicate_names}"
            )
        return self._select(selected)

    # Primary keys

    def add_pk(
        self, table_name: str, column: str, check: bool = False, force: bool = False
    ) -> "DataModel":
        """Return a DataModel where the given column is the primary key of the table.

        Args:
            table_name: name of the table
            column: name of the primary key column
            check: if True, verify that the column holds no duplicate values
            force: if True, replace an existing primary key instead of raising an error

        Returns:
            new DataModel object
        """
        self._check_tables_exist(table_name)
        table = self.tables[table_name]
        checks.check_column_exists(table, column, table_name)

        existing_column = self.key_registry.get_pk(table_name)
        if existing_column is not None and not force:
            raise PrimaryKeyAlreadySetError(
                f"Table {tick(table_name)} already has the primary key {tick(existing_column)}. "
                f"Use force=True to replace it."
            )
        if check:
            checks.check_key(table, column, table_name=table_name)

        return replace(self, key_registry=self.key_registry.with_pk(table_name, column))

    def has_pk(self, table_name: str) -> bool:
        """Return True if the table has a primary key."""
        self._check_tables_exist(table_name)
        return self.key_registry.has_pk(table_name)

    def get_pk(self, table_name: str) -> Optional[str]:
        """Return the primary key column of the table, or None if it has none."""
        self._check_tables_exist(table_name)
        return self.key_registry.get_pk(table_name)

    def get_all_pks(self) -> List[Tuple[str, str]]:
        """Return (table name, primary key column) pairs, in table order."""
        return [
            (table_name, self.key_registry.primary_keys[table_name])
            for table_name in self.tables
            if self.key_registry.has_pk(table_name)
        ]

    def rm_pk(self, table_name: str, rm_referencing_fks: bool = False) -> "DataModel":
        """Return a DataModel where the table has no primary key.

        Args:
            table_name: name of the table
            rm_referencing_fks: if True, also remove the foreign keys referencing the table.
                                Otherwise, such foreign keys block the removal.

        Returns:
            new DataModel object
        """
        self._check_tables_exist(table_name)
        if not self.key_registry.has_pk(table_name):
            logger.debug("Table %s has no primary key to remove.", table_name)
            return self

        referencing_fks = self.key_registry.get_referencing_fks(table_name)
        if referencing_fks and not rm_referencing_fks:
            raise PrimaryKeyRemovalBlockedByForeignKeysError(
                f"Primary key of table {tick(table_name)} is referenced by foreign keys in "
                f"tables {funcy.ldistinct(fk.child_table for fk in referencing_fks)}. "
                f"Use rm_referencing_fks=True to remove them as well."
            )

        key_registry = self.key_registry.without_fks(referencing_fks).without_pk(table_name)
        return replace(self, key_registry=key_registry)

    def enum_pk_candidates(self, table_name: str) -> List[checks.KeyCandidate]:
        """Return, for every column of the table, whether it could be its primary key."""
        self._check_tables_exist(table_name)
        check_no_filters(self, "enum_pk_candidates")
        return checks.enum_pk_candidates(self.tables[table_name])

    # Foreign keys

    def add_fk(
        self, table_name: str, column: str, ref_table_name: str, check: bool = False
    ) -> "DataModel":
        """Return a DataModel where the column of the table references the primary key of another.

        Args:
            table_name: name of the child table, holding the foreign key column
            column: name of the foreign key column
            ref_table_name: name of the parent table, which must have a primary key
            check: if True, verify that all values of the column are primary key values

        Returns:
            new DataModel object
        """
        self._check_tables_exist(table_name, ref_table_name)
        ref_column = self.key_registry.get_pk(ref_table_name)
        if ref_column is None:
            raise ReferencedTableHasNoPrimaryKeyError(
                f"Table {tick(ref_table_name)} has no primary key, so it cannot be referenced "
                f"by a foreign key. Use add_pk() first."
            )
        table = self.tables[table_name]
        if column not in table.columns:
            raise ForeignKeyColumnMissingError(
                f"Column {tick(column)} not found in table {tick(table_name)}, "
                f"available columns: {table.columns}"
            )

        foreign_key = ForeignKey(
            child_table=table_name, child_column=column, parent_table=ref_table_name
        )
        if foreign_key in self.key_registry.foreign_keys:
            logger.debug("Foreign key %s already exists.", foreign_key)
            return self

        if check:
            checks.check_if_subset(
                table,
                column,
                self.tables[ref_table_name],
                ref_column,
                table_1_name=table_name,
                table_2_name=ref_table_name,
            )

        return replace(self, key_registry=self.key_registry.with_fk(foreign_key))

    def has_fk(self, table_name: str, ref_table_name: str) -> bool:
        """Return True if the table has a foreign key referencing the other table."""
        return bool(self.get_fk(table_name, ref_table_name))

    def get_fk(self, table_name: str, ref_table_name: str) -> List[str]:
        """Return the columns of the table referencing the other table."""
        self._check_tables_exist(table_name, ref_table_name)
        return [
            foreign_key.child_column
            for foreign_key in self.key_registry.get_fks(table_name, ref_table_name)
        ]

    def get_all_fks(self) -> List[ForeignKey]:
        """Return all foreign keys, in the order they were added."""
        return list(self.key_registry.foreign_keys)

    def rm_fk(
        self, table_name: str, column: Optional[str], ref_table_name: str
    ) -> "DataModel":
        """Return a DataModel without the foreign key(s) from the table to the other table.

        Args:
            table_name: name of the child table
            column: name of the foreign key column to remove, or None to remove all foreign
                    keys from the child table to the parent table
            ref_table_name: name of the parent table

        Returns:
            new DataModel object
        """
        self._check_tables_exist(table_name, ref_table_name)
        foreign_keys = self.key_registry.get_fks(table_name, ref_table_name)
        if column is not None:
            foreign_keys = [fk for fk in foreign_keys if fk.child_column == column]
        if not foreign_keys:
            raise NotAForeignKeyColumnError(
                f"No foreign key {'' if column is None else tick(column) + ' '}of table "
                f"{tick(table_name)} references table {tick(ref_table_name)}."
            )
        return replace(self, key_registry=self.key_registry.without_fks(foreign_keys))

    def enum_fk_candidates(
        self, table_name: str, ref_table_name: str
    ) -> List[checks.KeyCandidate]:
        """Return, for every column of the table, whether it could reference the other table."""
        self._check_tables_exist(table_name, ref_table_name)
        ref_column = self.key_registry.get_pk(ref_table_name)
        if ref_column is None:
            raise ReferencedTableHasNoPrimaryKeyError(
                f"Table {tick(ref_table_name)} has no primary key."
            )
        check_no_filters(self, "enum_fk_candidates")
        return checks.enum_fk_candidates(
            self.tables[table_name], self.tables[ref_table_name], ref_column
        )

    def is_referenced(self, table_name: str) -> bool:
        """Return True if any foreign key references the table."""
        return bool(self.get_referencing_tables(table_name))

    def get_referencing_tables(self, table_name: str) -> List[str]:
        """Return the distinct names of the tables with foreign keys referencing the table."""
        self._check_tables_exist(table_name)
        return funcy.ldistinct(
            foreign_key.child_table
            for foreign_key in self.key_registry.get_referencing_fks(table_name)
        )

    def check_constraints(self) -> List[checks.ConstraintCheckResult]:
        """Check all primary and foreign keys against the data, violated constraints first."""
        check_no_filters(self, "check_constraints")
        return checks.examine_constraints(self.tables, self.key_registry)

    # Filters

    def filter(self, table_name: str, *predicates: Expression) -> "DataModel":
        """Return a DataModel with the predicates declared as pending filters on the table.

        Nothing is evaluated here: the filters narrow the table and all tables related to it
        when they are read through tbl() or materialized through apply_filters().
        """
        self._check_tables_exist(table_name)
        columns = self.tables[table_name].columns
        for predicate in predicates:
            if not isinstance(predicate, Expression):
                raise TypeError(
                    "Expected Expression predicate, got: {} {}".format(
                        type(predicate).__name__, predicate
                    )
                )
            missing_columns = sorted(predicate.get_column_names() - set(columns))
            if missing_columns:
                raise ColumnNotFoundError(
                    f"Predicate {predicate} refers to columns {missing_columns} not found in "
                    f"table {tick(table_name)}, available columns: {columns}"
                )

        return replace(self, filters=self.filters.with_predicates(table_name, predicates))

    def apply_filters(self) -> "DataModel":
        """Return a DataModel with every table narrowed by the pending filters, and no filters."""
        if not self.filters:
            return self
        tables = {table_name: self.tbl(table_name) for table_name in self.tables}
        return replace(self, tables=tables, filters=self.filters.reset())

    def reset_filters(self) -> "DataModel":
        """Return a DataModel without any pending filters."""
        return replace(self, filters=self.filters.reset())

    # Flattening

    def flatten_to_tbl(
        self, start: str, *tables: str, join: Union[JoinKind, str] = JoinKind.LEFT
    ) -> TableHandle:
        """Join the start table with the tables it directly references into a single table."""
        return flatten_to_tbl(self, start, *tables, join=join)

    def squash_to_tbl(
        self, start: str, *tables: str, join: Union[JoinKind, str] = JoinKind.LEFT
    ) -> TableHandle:
        """Join the start table with all tables it references, across several levels."""
        return squash_to_tbl(self, start, *tables, join=join)

    def join_to_tbl(
        self, table_1: str, table_2: str, join: Union[JoinKind, str] = JoinKind.LEFT
    ) -> TableHandle:
        """Join two tables related by a foreign key, with the child table on the left."""
        return join_to_tbl(self, table_1, table_2, join=join)


def new_data_model(tables: Optional[Mapping[str, TableHandle]] = None) -> DataModel:
    """Return a DataModel holding the given tables, without keys or filters."""
    data_model = DataModel()
    if tables:
        data_model = data_model.add_tables(tables)
    return data_model
