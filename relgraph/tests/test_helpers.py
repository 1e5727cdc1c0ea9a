# Copyright 2021-present Kensho Technologies, LLC.
"""Common test data and helper functions."""
from typing import Any, List, Mapping, Sequence

import sqlalchemy
from sqlalchemy import Integer, String
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool

from ..backend import SQLAlchemyExecutor, TableHandle
from ..data_model import DataModel, new_data_model


CUSTOMER_IDS = [1, 2, 3, 4, 5]
ORDER_CUSTOMER_IDS = [1, 1, 2, 2, 3, 3, 3, 4, 4, 5]


def get_test_engine() -> Engine:
    """Return an engine for a new, empty in-memory SQLite database."""
    # All connections must share the same in-memory database.
    return sqlalchemy.create_engine(
        "sqlite://", poolclass=StaticPool, connect_args={"check_same_thread": False}
    )


def create_table(
    executor: SQLAlchemyExecutor,
    table_name: str,
    columns: Mapping[str, Any],
    rows: Sequence[Sequence[Any]],
) -> TableHandle:
    """Create a database table with the given column types and rows, and return a handle to it."""
    metadata = sqlalchemy.MetaData()
    table = sqlalchemy.Table(
        table_name,
        metadata,
        *(sqlalchemy.Column(name, column_type) for name, column_type in columns.items()),
    )
    metadata.create_all(executor.engine)
    if rows:
        with executor.engine.begin() as connection:
            connection.execute(table.insert(), [dict(zip(columns, row)) for row in rows])
    return executor.table(table_name)


def get_column_values(table: TableHandle, column: str) -> List[Any]:
    """Return the sorted values of the column."""
    return sorted(row[column] for row in table.collect())


def get_customers_and_orders_data_model(executor: SQLAlchemyExecutor) -> DataModel:
    """Return a DataModel with five customers and ten orders referencing them."""
    customers = create_table(
        executor,
        "customers",
        {"id": Integer, "name": String},
        [(customer_id, f"customer_{customer_id}") for customer_id in CUSTOMER_IDS],
    )
    orders = create_table(
        executor,
        "orders",
        {"id": Integer, "customer_id": Integer, "amount": Integer},
        [
            (order_id, customer_id, 10 * order_id)
            for order_id, customer_id in enumerate(ORDER_CUSTOMER_IDS, start=1)
        ],
    )
    return (
        new_data_model({"customers": customers, "orders": orders})
        .add_pk("customers", "id")
        .add_pk("orders", "id")
        .add_fk("orders", "customer_id", "customers")
    )


def get_shop_data_model(executor: SQLAlchemyExecutor) -> DataModel:
    """Return a DataModel whose relation graph is a tree with orders at its root.

    orders -> customers -> regions
    orders -> products
    Every foreign key value matches exactly one primary key value.
    """
    regions = create_table(
        executor, "regions", {"id": Integer, "region_name": String}, [(1, "north"), (2, "south")]
    )
    customers = create_table(
        executor,
        "customers",
        {"id": Integer, "name": String, "region_id": Integer},
        [(1, "alice", 1), (2, "bob", 1), (3, "carol", 2)],
    )
    products = create_table(
        executor,
        "products",
        {"id": Integer, "title": String},
        [(1, "apple"), (2, "banana"), (3, "cherry")],
    )
    orders = create_table(
        executor,
        "orders",
        {"id": Integer, "customer_id": Integer, "product_id": Integer},
        [(1, 1, 1), (2, 1, 2), (3, 2, 2), (4, 3, 3), (5, 3, 1), (6, 2, 3)],
    )
    return (
        new_data_model(
            {"orders": orders, "customers": customers, "products": products, "regions": regions}
        )
        .add_pk("regions", "id")
        .add_pk("customers", "id")
        .add_pk("products", "id")
        .add_pk("orders", "id")
        .add_fk("orders", "customer_id", "customers")
        .add_fk("orders", "product_id", "products")
        .add_fk("customers", "region_id", "regions")
    )


def get_cyclic_data_model(executor: SQLAlchemyExecutor) -> DataModel:
    """Return a DataModel with the foreign keys a -> b, b -> c and c -> a."""
    a = create_table(
        executor, "a", {"a_id": Integer, "b_ref": Integer}, [(1, 1), (2, 2), (3, 3)]
    )
    b = create_table(
        executor, "b", {"b_id": Integer, "c_ref": Integer}, [(1, 1), (2, 2), (3, 3)]
    )
    c = create_table(
        executor, "c", {"c_id": Integer, "a_ref": Integer}, [(1, 1), (2, 2), (3, 3)]
    )
    return (
        new_data_model({"a": a, "b": b, "c": c})
        .add_pk("a", "a_id")
        .add_pk("b", "b_id")
        .add_pk("c", "c_id")
        .add_fk("a", "b_ref", "b")
        .add_fk("b", "c_ref", "c")
        .add_fk("c", "a_ref", "a")
    )
