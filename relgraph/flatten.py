# Copyright 2021-present Kensho Technologies, LLC.
"""Flattening of related tables of a DataModel into a single wide table.

Starting from one table, the tables it references (directly, or through several levels of
foreign keys when squashing) are joined to it one after the other. The join order is the
depth-first visitation order of the directed relation graph, unless the caller lists the
tables explicitly. Planning (validation, ordering, column disambiguation and resolution of the
join columns) is separated from execution, so that every error is raised before any query runs.
"""
from dataclasses import dataclass
from enum import Enum, unique
import logging
from typing import TYPE_CHECKING, Dict, Sequence, Tuple, Union
import warnings

import funcy

from .backend import JoinColumns, QueryExecutor, TableHandle
from .cascade import get_filtered_table
from .disambiguation import ColumnRenames, compute_disambiguation_renames, explain_column_renames
from .exceptions import (
    AmbiguousRelationshipError,
    FiltersMustBeAppliedFirstError,
    OnlyDirectNeighborsAllowedError,
    RelationshipCycleUnsupportedError,
    TablesNotDirectlyRelatedError,
    TablesNotReachableFromStartError,
    UnknownTableError,
    UnsupportedJoinKindError,
)
from .graph import build_graph
from .helpers import get_only_element_from_collection, tick
from .keys import get_join_columns


if TYPE_CHECKING:
    from .data_model import DataModel


logger = logging.getLogger(__name__)


@unique
class JoinKind(Enum):
    """The kinds of joins that can be used to combine two related tables."""

    INNER = "inner"
    LEFT = "left"
    RIGHT = "right"
    FULL = "full"
    SEMI = "semi"
    ANTI = "anti"
    # Nest-style joins produce a column of nested tables. They are never useful when joining a
    # child table to its parent, where each nested table would have at most one row.
    NEST = "nest"

    @property
    def adds_columns(self) -> bool:
        """Return True if the join adds the columns of the right table to the result."""
        return self in _COLUMN_ADDING_JOIN_KINDS

    @property
    def requires_applied_filters(self) -> bool:
        """Return True if the join keeps unmatched rows of the right table."""
        return self in (JoinKind.RIGHT, JoinKind.FULL)

    def apply(
        self, executor: QueryExecutor, left: TableHandle, right: TableHandle, on: JoinColumns
    ) -> TableHandle:
        """Join the two tables with this kind of join, using the given executor."""
        if self is JoinKind.SEMI:
            return executor.semi_join(left, right, on)
        elif self is JoinKind.ANTI:
            return executor.anti_join(left, right, on)
        elif self is JoinKind.NEST:
            raise UnsupportedJoinKindError("Nest joins cannot be evaluated by a query executor.")
        else:
            return executor.join(self.value, left, right, on)


_COLUMN_ADDING_JOIN_KINDS = frozenset(
    {JoinKind.INNER, JoinKind.LEFT, JoinKind.RIGHT, JoinKind.FULL}
)

# Join kinds that give a well-defined result when joining more than one level of tables.
SQUASHABLE_JOIN_KINDS = frozenset({JoinKind.LEFT, JoinKind.INNER, JoinKind.FULL})


@dataclass(frozen=True)
class JoinStep:
    """Join one more table to the result of all previous steps."""

    table: str  # Name of the table joined in this step.
    predecessor: str  # Name of the already joined table that the table is related to.
    on: Tuple[Tuple[str, str], ...]  # (result column, column of table) pairs, after renaming.


@dataclass(frozen=True)
class FlattenPlan:
    """A fully validated description of a flatten operation."""

    start: str
    join: JoinKind
    steps: Tuple[JoinStep, ...]
    renames: ColumnRenames  # Column renames applied to every table before joining.

    @property
    def table_names(self) -> Tuple[str, ...]:
        """Return the names of all joined tables, in join order, starting with the start table."""
        return (self.start,) + tuple(step.table for step in self.steps)


def get_join_kind(join: Union[JoinKind, str]) -> JoinKind:
    """Return the JoinKind for the given JoinKind or join name."""
    try:
        return JoinKind(join)
    except ValueError:
        raise UnsupportedJoinKindError(
            "Unknown join kind {}, expected one of {}.".format(
                join, [join_kind.value for join_kind in JoinKind]
            )
        )


def _check_tables_exist(data_model: "DataModel", table_names: Sequence[str]) -> None:
    """Raise UnknownTableError unless all tables are part of the DataModel."""
    unknown_tables = [name for name in table_names if name not in data_model.tables]
    if unknown_tables:
        raise UnknownTableError(
            f"Tables {unknown_tables} not in data model: {list(data_model.tables)}"
        )


def plan_flatten(
    data_model: "DataModel",
    start: str,
    tables: Sequence[str] = (),
    join: Union[JoinKind, str] = JoinKind.LEFT,
    squash: bool = False,
) -> FlattenPlan:
    """Validate a flatten operation and compute the order and columns of its joins.

    Args:
        data_model: DataModel holding the tables
        start: name of the table to start from; its rows are the left side of the first join
        tables: names of the tables to join to start, in join order. If empty, all tables that
                can be reached from start by following foreign keys from child to parent.
        join: kind of join to use for every step
        squash: if False, only tables directly referenced by start may be joined

    Returns:
        FlattenPlan object
    """
    join_kind = get_join_kind(join)
    _check_tables_exist(data_model, [start, *tables])
    if join_kind is JoinKind.NEST:
        raise UnsupportedJoinKindError("Nest joins are not supported for flattening.")
    if squash and join_kind not in SQUASHABLE_JOIN_KINDS:
        raise UnsupportedJoinKindError(
            "Squashing tables is only supported with joins {}, got: {}.".format(
                sorted(join_kind.value for join_kind in SQUASHABLE_JOIN_KINDS), join_kind.value
            )
        )

    # Only follow foreign keys in the direction they point to, from child to parent.
    graph = build_graph(data_model.key_registry, data_model.table_names, directed=True)

    auto_detect = not tables
    if auto_detect:
        target_tables = graph.reachable_from(start)
    else:
        target_tables = [table for table in funcy.distinct(tables) if table != start]

    subgraph = graph.induced_subgraph([start, *target_tables])
    search_result = subgraph.depth_first_search(start)

    unreachable_tables = [
        table for table in target_tables if table not in search_result.predecessors
    ]
    if unreachable_tables:
        raise TablesNotReachableFromStartError(
            f"Tables {unreachable_tables} cannot be reached from table {tick(start)} by "
            f"following foreign keys through the tables {list(subgraph.node_names)}."
        )
    if not subgraph.is_tree():
        raise RelationshipCycleUnsupportedError(
            f"The relationships between the tables {list(subgraph.node_names)} contain a cycle, "
            f"which is not supported for flattening."
        )

    # Any filter connected to start narrows the joined tables through the cascade.
    connected_tables = build_graph(
        data_model.key_registry, data_model.table_names, directed=False
    ).shortest_paths(start).distances
    filtered_tables = [
        table for table in data_model.filters.filtered_tables if table in connected_tables
    ]
    if join_kind.requires_applied_filters and filtered_tables:
        raise FiltersMustBeAppliedFirstError(
            f"Filters are set on tables {filtered_tables}, which would not be taken into account "
            f"by a {join_kind.value} join. Call apply_filters() first."
        )

    if not squash and any(depth > 1 for depth in search_result.depths.values()):
        raise OnlyDirectNeighborsAllowedError(
            f"Only tables directly referenced by {tick(start)} can be joined to it, "
            f"got: {target_tables}. Use squash_to_tbl() for multiple levels of tables."
        )

    if join_kind is JoinKind.RIGHT and auto_detect and len(target_tables) > 1:
        warnings.warn(
            "The result of a right join of more than two tables depends on the order of the "
            "tables in the data model, when no explicit order is given."
        )

    if auto_detect:
        ordered_tables = search_result.order[1:]
    else:
        ordered_tables = target_tables
        joined_tables = {start}
        for table in ordered_tables:
            predecessor = search_result.predecessors[table]
            if predecessor not in joined_tables:
                raise TablesNotReachableFromStartError(
                    f"Table {tick(table)} is listed before table {tick(predecessor)}, through "
                    f"which it is reached from {tick(start)}."
                )
            joined_tables.add(table)

    renames: ColumnRenames = {}
    if join_kind.adds_columns:
        renames = compute_disambiguation_renames(
            {table: data_model.tables[table].columns for table in [start, *ordered_tables]}
        )

    # Join columns of the right table are dropped from the result: later joins through them
    # have to use the left join column they were matched with.
    dropped_column_replacements: Dict[str, str] = {}
    steps = []
    for table in ordered_tables:
        predecessor = search_result.predecessors[table]
        predecessor_column, table_column = get_only_element_from_collection(
            get_join_columns(data_model.key_registry, predecessor, table)
        )
        predecessor_column = renames.get(predecessor, {}).get(
            predecessor_column, predecessor_column
        )
        predecessor_column = dropped_column_replacements.get(
            predecessor_column, predecessor_column
        )
        table_column = renames.get(table, {}).get(table_column, table_column)
        if join_kind.adds_columns:
            dropped_column_replacements[table_column] = predecessor_column

        steps.append(
            JoinStep(table=table, predecessor=predecessor, on=((predecessor_column, table_column),))
        )

    plan = FlattenPlan(start=start, join=join_kind, steps=tuple(steps), renames=renames)
    logger.debug("Flatten plan: %s", plan)
    return plan


def execute_flatten_plan(data_model: "DataModel", plan: FlattenPlan) -> TableHandle:
    """Run the joins of the plan, starting from the filtered version of the start table."""
    explain_column_renames(plan.renames)

    start_table = get_filtered_table(data_model, plan.start)
    executor = start_table.executor
    result = executor.rename(start_table, plan.renames.get(plan.start, {}))
    for step in plan.steps:
        right_table = executor.rename(
            data_model.tables[step.table], plan.renames.get(step.table, {})
        )
        result = plan.join.apply(executor, result, right_table, step.on)
    return result


def flatten_to_tbl(
    data_model: "DataModel",
    start: str,
    *tables: str,
    join: Union[JoinKind, str] = JoinKind.LEFT,
) -> TableHandle:
    """Join start and the tables it directly references into one wide table.

    If referential integrity holds among the tables, the result has as many rows as start,
    except for anti joins (no rows) and right joins (at least as many rows).
    Pending filters are taken into account through the filtered version of start.

    Args:
        data_model: DataModel holding the tables
        start: name of the table to start from
        tables: names of the tables to join, in join order. If none are given, all tables
                reachable from start are joined, in depth-first order.
        join: JoinKind or join name; nest joins are not supported

    Returns:
        TableHandle of the joined table, with unique column names
    """
    plan = plan_flatten(data_model, start, tables, join=join, squash=False)
    return execute_flatten_plan(data_model, plan)


def squash_to_tbl(
    data_model: "DataModel",
    start: str,
    *tables: str,
    join: Union[JoinKind, str] = JoinKind.LEFT,
) -> TableHandle:
    """Join start and the tables reachable from it across several levels into one table.

    Only left, inner and full joins are supported. See flatten_to_tbl() for the arguments.
    """
    plan = plan_flatten(data_model, start, tables, join=join, squash=True)
    return execute_flatten_plan(data_model, plan)


def join_to_tbl(
    data_model: "DataModel",
    table_1: str,
    table_2: str,
    join: Union[JoinKind, str] = JoinKind.LEFT,
) -> TableHandle:
    """Join two tables that are directly related by a foreign key.

    Whichever order the tables are given in, the child table (the one holding the foreign key)
    is the left side of the join.

    Args:
        data_model: DataModel holding the tables
        table_1: name of one of the two tables
        table_2: name of the other table
        join: JoinKind or join name; nest joins are not supported

    Returns:
        TableHandle of the joined table
    """
    _check_tables_exist(data_model, [table_1, table_2])
    foreign_keys = data_model.key_registry.get_fks_between(table_1, table_2)
    if not foreign_keys:
        raise TablesNotDirectlyRelatedError(
            f"Tables {tick(table_1)} and {tick(table_2)} are not directly linked "
            f"by a foreign key relation."
        )
    if len(foreign_keys) > 1:
        raise AmbiguousRelationshipError(
            f"Tables {tick(table_1)} and {tick(table_2)} are linked by more than one foreign key: "
            f"{foreign_keys}. Cycles are not supported for joining."
        )

    foreign_key = get_only_element_from_collection(foreign_keys)
    plan = plan_flatten(
        data_model, foreign_key.child_table, [foreign_key.parent_table], join=join, squash=False
    )
    return execute_flatten_plan(data_model, plan)
