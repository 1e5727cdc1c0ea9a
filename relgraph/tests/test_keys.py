# Copyright 2021-present Kensho Technologies, LLC.
import unittest

from ..exceptions import (
    AmbiguousRelationshipError,
    ReferencedTableHasNoPrimaryKeyError,
    TablesNotDirectlyRelatedError,
)
from ..keys import ForeignKey, KeyRegistry, get_join_columns


ORDERS_TO_CUSTOMERS = ForeignKey("orders", "customer_id", "customers")
ORDERS_TO_PRODUCTS = ForeignKey("orders", "product_id", "products")


class KeyRegistryTests(unittest.TestCase):
    def setUp(self) -> None:
        self.registry = (
            KeyRegistry()
            .with_pk("customers", "id")
            .with_pk("products", "id")
            .with_fk(ORDERS_TO_CUSTOMERS)
            .with_fk(ORDERS_TO_PRODUCTS)
        )

    def test_primary_keys(self) -> None:
        self.assertEqual("id", self.registry.get_pk("customers"))
        self.assertIsNone(self.registry.get_pk("orders"))
        self.assertTrue(self.registry.has_pk("products"))
        self.assertFalse(self.registry.has_pk("orders"))

    def test_mutators_return_new_registries(self) -> None:
        registry = self.registry.without_pk("products").without_fks([ORDERS_TO_PRODUCTS])
        self.assertEqual({"customers": "id"}, registry.primary_keys)
        self.assertEqual((ORDERS_TO_CUSTOMERS,), registry.foreign_keys)

        # The original registry is untouched.
        self.assertEqual({"customers": "id", "products": "id"}, self.registry.primary_keys)
        self.assertEqual((ORDERS_TO_CUSTOMERS, ORDERS_TO_PRODUCTS), self.registry.foreign_keys)

    def test_foreign_key_lookups(self) -> None:
        self.assertEqual([ORDERS_TO_CUSTOMERS], self.registry.get_fks("orders", "customers"))
        self.assertEqual([], self.registry.get_fks("customers", "orders"))
        self.assertEqual(
            [ORDERS_TO_CUSTOMERS], self.registry.get_fks_between("customers", "orders")
        )
        self.assertEqual([ORDERS_TO_PRODUCTS], self.registry.get_referencing_fks("products"))

    def test_select_tables_renames_and_drops_keys(self) -> None:
        registry = self.registry.select_tables({"orders": "sales", "customers": "clients"})
        self.assertEqual({"clients": "id"}, registry.primary_keys)
        self.assertEqual((ForeignKey("sales", "customer_id", "clients"),), registry.foreign_keys)


class JoinColumnsTests(unittest.TestCase):
    def test_join_columns_in_both_directions(self) -> None:
        registry = KeyRegistry().with_pk("customers", "id").with_fk(ORDERS_TO_CUSTOMERS)
        self.assertEqual(
            [("customer_id", "id")], get_join_columns(registry, "orders", "customers")
        )
        self.assertEqual(
            [("id", "customer_id")], get_join_columns(registry, "customers", "orders")
        )

    def test_tables_not_related(self) -> None:
        registry = KeyRegistry().with_pk("customers", "id").with_fk(ORDERS_TO_CUSTOMERS)
        with self.assertRaises(TablesNotDirectlyRelatedError):
            get_join_columns(registry, "customers", "products")

    def test_two_edges_between_a_pair_are_ambiguous(self) -> None:
        registry = (
            KeyRegistry()
            .with_pk("customers", "id")
            .with_fk(ORDERS_TO_CUSTOMERS)
            .with_fk(ForeignKey("orders", "billing_customer_id", "customers"))
        )
        with self.assertRaises(AmbiguousRelationshipError):
            get_join_columns(registry, "orders", "customers")

    def test_referenced_table_without_primary_key(self) -> None:
        registry = KeyRegistry().with_fk(ORDERS_TO_CUSTOMERS)
        with self.assertRaises(ReferencedTableHasNoPrimaryKeyError):
            get_join_columns(registry, "orders", "customers")
