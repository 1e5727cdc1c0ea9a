# Copyright 2021-present Kensho Technologies, LLC.
from dataclasses import dataclass, field, replace
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from .exceptions import (
    AmbiguousRelationshipError,
    ReferencedTableHasNoPrimaryKeyError,
    TablesNotDirectlyRelatedError,
)
from .helpers import get_only_element_from_collection, tick


@dataclass(frozen=True)
class ForeignKey:
    """A foreign key: a column of the child table referencing the parent's primary key.

    The referenced column is not stored: it is always the current primary key of the
    parent table, as recorded in the KeyRegistry holding this edge.
    """

    child_table: str  # Name of the table holding the foreign key column.
    child_column: str  # Name of the foreign key column in the child table.
    parent_table: str  # Name of the referenced table.

    def connects(self, table_a: str, table_b: str) -> bool:
        """Return True if this foreign key joins the two tables, in either direction."""
        return {self.child_table, self.parent_table} == {table_a, table_b}


@dataclass(frozen=True)
class KeyRegistry:
    """The primary keys and foreign keys of a set of tables.

    A KeyRegistry is pure metadata. Its mutators return new registries and perform no
    validation at all: checking that keys refer to existing tables and columns, and that
    referenced tables have primary keys, is the job of the DataModel.
    """

    # Table name -> name of its primary key column. Tables without a primary key are absent.
    primary_keys: Dict[str, str] = field(default_factory=dict)

    # All foreign keys, in the order they were added.
    foreign_keys: Tuple[ForeignKey, ...] = ()

    def get_pk(self, table: str) -> Optional[str]:
        """Return the primary key column of the table, or None if it has none."""
        return self.primary_keys.get(table)

    def has_pk(self, table: str) -> bool:
        """Return True if the table has a primary key."""
        return table in self.primary_keys

    def get_fks(self, child_table: str, parent_table: str) -> List[ForeignKey]:
        """Return the foreign keys from the child table to the parent table."""
        return [
            foreign_key
            for foreign_key in self.foreign_keys
            if foreign_key.child_table == child_table and foreign_key.parent_table == parent_table
        ]

    def get_fks_between(self, table_a: str, table_b: str) -> List[ForeignKey]:
        """Return all foreign keys joining the two tables, whichever one is the child."""
        return [
            foreign_key
            for foreign_key in self.foreign_keys
            if foreign_key.connects(table_a, table_b)
        ]

    def get_referencing_fks(self, parent_table: str) -> List[ForeignKey]:
        """Return the foreign keys pointing to the given table."""
        return [
            foreign_key
            for foreign_key in self.foreign_keys
            if foreign_key.parent_table == parent_table
        ]

    def with_pk(self, table: str, column: str) -> "KeyRegistry":
        """Return a registry where the table's primary key is the given column."""
        primary_keys = dict(self.primary_keys)
        primary_keys[table] = column
        return replace(self, primary_keys=primary_keys)

    def without_pk(self, table: str) -> "KeyRegistry":
        """Return a registry where the table has no primary key."""
        primary_keys = {
            table_name: column
            for table_name, column in self.primary_keys.items()
            if table_name != table
        }
        return replace(self, primary_keys=primary_keys)

    def with_fk(self, foreign_key: ForeignKey) -> "KeyRegistry":
        """Return a registry with the foreign key added after all existing ones."""
        return replace(self, foreign_keys=self.foreign_keys + (foreign_key,))

    def without_fks(self, foreign_keys: Iterable[ForeignKey]) -> "KeyRegistry":
        """Return a registry without the given foreign keys."""
        removed = set(foreign_keys)
        return replace(
            self,
            foreign_keys=tuple(
                foreign_key for foreign_key in self.foreign_keys if foreign_key not in removed
            ),
        )

    def select_tables(self, selected: Mapping[str, str]) -> "KeyRegistry":
        """Keep only the keys of the selected tables, renaming them along the way.

        Args:
            selected: dict, old table name -> new table name, for every table to keep.
                      Keys touching tables not in this dict are dropped.

        Returns:
            new KeyRegistry object
        """
        primary_keys = {
            selected[table]: column
            for table, column in self.primary_keys.items()
            if table in selected
        }
        foreign_keys = tuple(
            ForeignKey(
                child_table=selected[foreign_key.child_table],
                child_column=foreign_key.child_column,
                parent_table=selected[foreign_key.parent_table],
            )
            for foreign_key in self.foreign_keys
            if foreign_key.child_table in selected and foreign_key.parent_table in selected
        )
        return KeyRegistry(primary_keys=primary_keys, foreign_keys=foreign_keys)


def get_join_columns(
    key_registry: KeyRegistry, lhs_table: str, rhs_table: str
) -> List[Tuple[str, str]]:
    """Return the (lhs column, rhs column) pairs joining two tables along their foreign key.

    Exactly one foreign key must connect the two tables, in either direction.

    Args:
        key_registry: KeyRegistry holding the keys of both tables
        lhs_table: name of the table on the left side of the join
        rhs_table: name of the table on the right side of the join

    Returns:
        list with a single (lhs column, rhs column) pair
    """
    foreign_keys = key_registry.get_fks_between(lhs_table, rhs_table)
    if not foreign_keys:
        raise TablesNotDirectlyRelatedError(
            f"Tables {tick(lhs_table)} and {tick(rhs_table)} are not directly linked "
            f"by a foreign key relation."
        )
    if len(foreign_keys) > 1:
        raise AmbiguousRelationshipError(
            f"Tables {tick(lhs_table)} and {tick(rhs_table)} are linked by {len(foreign_keys)} "
            f"foreign keys ({foreign_keys}); cycles in the relationship graph are not supported "
            f"for this operation. Remove all but one of them first."
        )

    foreign_key = get_only_element_from_collection(foreign_keys)
    parent_column = key_registry.get_pk(foreign_key.parent_table)
    if parent_column is None:
        raise ReferencedTableHasNoPrimaryKeyError(
            f"Foreign key {foreign_key} references table {tick(foreign_key.parent_table)}, "
            f"which has no primary key."
        )

    if foreign_key.child_table == lhs_table:
        return [(foreign_key.child_column, parent_column)]
    else:
        return [(parent_column, foreign_key.child_column)]
