# Copyright 2021-present Kensho Technologies, LLC.
"""Materialization of tables under the pending filters of a DataModel.

A filter declared on one table narrows every table connected to it through foreign keys.
To compute the narrowed version of a target table, we take, for every filtered table in the
target's connected component, a shortest path to the target in the undirected relation graph.
The union of these paths is processed from the farthest table inward: each table is first
semi-joined with the already narrowed tables one step farther out on the paths, then its own
predicates are applied. The last table processed is the target itself.
"""
import logging
from typing import TYPE_CHECKING, Dict, List, NamedTuple, Sequence, Tuple

import funcy

from .backend import TableHandle
from .exceptions import OnlyPossibleWithoutFiltersError, UnknownTableError
from .expressions import conjunction
from .filters import FilterStore
from .graph import build_graph
from .helpers import tick
from .keys import KeyRegistry, get_join_columns


if TYPE_CHECKING:
    from .data_model import DataModel


logger = logging.getLogger(__name__)


class CascadeStep(NamedTuple):
    """One table to narrow, along with the next table on its shortest path to the target."""

    table: str
    predecessor: str  # Equal to table for the target itself.
    distance: int  # Number of foreign key hops between table and the target.


def get_cascade_recipe(
    table_names: Sequence[str], key_registry: KeyRegistry, filters: FilterStore, target: str
) -> List[CascadeStep]:
    """Return the steps needed to narrow the target table, farthest tables first.

    Args:
        table_names: names of all tables of the DataModel, in table order
        key_registry: KeyRegistry with the foreign keys between the tables
        filters: FilterStore with the pending predicates
        target: name of the table to narrow

    Returns:
        list of CascadeStep tuples: one for the target (its own predecessor, at distance 0),
        one for every filtered table connected to the target, and one for every table on
        the shortest paths between them. Sorted stably by decreasing distance: ties keep the
        order in which steps were added, first the target and filtered tables in table order,
        then the connecting tables in the order the closure added them.
    """
    graph = build_graph(key_registry, table_names, directed=False)
    shortest_paths = graph.shortest_paths(target)

    # Tables in other connected components have no finite distance and are left out.
    all_steps = [
        CascadeStep(
            table=table_name,
            predecessor=shortest_paths.predecessors[table_name],
            distance=shortest_paths.distances[table_name],
        )
        for table_name in graph.node_names
        if table_name in shortest_paths.distances
    ]

    wanted_tables = set(filters.filtered_tables) | {target}
    steps = [step for step in all_steps if step.table in wanted_tables]

    # Grow the steps until every predecessor is itself part of the recipe.
    while True:
        included_tables = {step.table for step in steps}
        missing_tables = {step.predecessor for step in steps} - included_tables
        if not missing_tables:
            break
        steps.extend(step for step in all_steps if step.table in missing_tables)

    return sorted(steps, key=lambda step: -step.distance)


def get_filtered_table(data_model: "DataModel", target: str) -> TableHandle:
    """Return the target table, narrowed by all pending filters of the DataModel.

    Args:
        data_model: DataModel whose pending filters should be taken into account
        target: name of the table to materialize

    Returns:
        TableHandle with exactly the rows of the target table that are compatible with every
        pending filter in its connected component. If no filters are pending, this is the
        stored table itself.
    """
    tables = data_model.tables
    if target not in tables:
        raise UnknownTableError(f"Table {tick(target)} not in data model: {list(tables)}")

    filters = data_model.filters
    if not filters:
        return tables[target]

    key_registry = data_model.key_registry
    recipe = get_cascade_recipe(list(tables), key_registry, filters, target)
    logger.debug("Filter cascade recipe for table %s: %s", target, recipe)

    # Resolve all join columns before issuing any query, so that errors surface early.
    children_by_table = funcy.group_by(
        lambda step: step.predecessor, [step for step in recipe if step.table != step.predecessor]
    )
    join_columns: Dict[Tuple[str, str], List[Tuple[str, str]]] = {
        (step.table, child.table): get_join_columns(key_registry, step.table, child.table)
        for step in recipe
        for child in children_by_table.get(step.table, [])
    }

    narrowed_tables: Dict[str, TableHandle] = {}
    for step in recipe:
        table = tables[step.table]
        executor = table.executor

        for child in children_by_table.get(step.table, []):
            table = executor.semi_join(
                table, narrowed_tables[child.table], join_columns[(step.table, child.table)]
            )

        predicates = filters.get_predicates(step.table)
        if predicates:
            table = executor.filter(table, conjunction(predicates))

        narrowed_tables[step.table] = table

    return narrowed_tables[target]


def check_no_filters(data_model: "DataModel", operation_name: str) -> None:
    """Raise an error if the DataModel has pending filters, since the operation needs raw tables."""
    if data_model.filters:
        raise OnlyPossibleWithoutFiltersError(
            f"{operation_name}() can only be called on a data model without pending filters. "
            f"Filters are set on tables: {data_model.filters.filtered_tables}. "
            f"Call apply_filters() or reset_filters() first."
        )
