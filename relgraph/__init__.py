# Copyright 2021-present Kensho Technologies, LLC.
"""Commonly-used functions and data types from this package."""
from .backend import QueryExecutor, SQLAlchemyExecutor, TableHandle  # noqa
from .checks import (  # noqa
    ConstraintCheckResult,
    KeyCandidate,
    check_cardinality_0_1,
    check_cardinality_0_n,
    check_cardinality_1_1,
    check_cardinality_1_n,
    check_if_subset,
    check_key,
    check_set_equality,
    is_subset,
    is_unique_key,
)
from .data_model import DataModel, new_data_model  # noqa
from .exceptions import DataModelError  # noqa
from .expressions import (  # noqa
    BinaryComposition,
    Literal,
    LocalField,
    UnaryTransformation,
    column_equals,
    column_in,
)
from .flatten import FlattenPlan, JoinKind, execute_flatten_plan, plan_flatten  # noqa


__package_name__ = "relgraph"
__version__ = "0.1.0"
