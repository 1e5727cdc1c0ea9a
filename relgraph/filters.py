# Copyright 2021-present Kensho Technologies, LLC.
from dataclasses import dataclass
from typing import Iterable, List, Mapping, Tuple

import funcy

from .expressions import Expression


@dataclass(frozen=True)
class FilterEntry:
    """A pending predicate declared on one table."""

    table: str
    predicate: Expression


@dataclass(frozen=True)
class FilterStore:
    """All pending filter predicates of a DataModel, in the order they were declared.

    Predicates are never evaluated here: they are applied by the filter cascade engine
    when a table is materialized. Several predicates on the same table are conjoined.
    """

    entries: Tuple[FilterEntry, ...] = ()

    def __bool__(self) -> bool:
        """Return True if there is at least one pending predicate."""
        return bool(self.entries)

    def __len__(self) -> int:
        return len(self.entries)

    @property
    def filtered_tables(self) -> List[str]:
        """Return the distinct names of the tables with pending predicates, in declaration order."""
        return funcy.ldistinct(entry.table for entry in self.entries)

    def get_predicates(self, table: str) -> List[Expression]:
        """Return the pending predicates of the table, in declaration order."""
        return [entry.predicate for entry in self.entries if entry.table == table]

    def with_predicates(self, table: str, predicates: Iterable[Expression]) -> "FilterStore":
        """Return a store with the predicates appended for the given table."""
        new_entries = tuple(FilterEntry(table, predicate) for predicate in predicates)
        return FilterStore(self.entries + new_entries)

    def select_tables(self, selected: Mapping[str, str]) -> "FilterStore":
        """Keep only the predicates of the selected tables, renaming them along the way.

        Args:
            selected: dict, old table name -> new table name, for every table to keep

        Returns:
            new FilterStore object
        """
        return FilterStore(
            tuple(
                FilterEntry(selected[entry.table], entry.predicate)
                for entry in self.entries
                if entry.table in selected
            )
        )

    def reset(self) -> "FilterStore":
        """Return an empty store."""
        return FilterStore()
