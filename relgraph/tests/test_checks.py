# Copyright 2021-present Kensho Technologies, LLC.
import unittest

from sqlalchemy import Integer

from ..backend import SQLAlchemyExecutor
from ..checks import (
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
from ..exceptions import (
    CardinalityNotInjectiveError,
    CardinalityNotSurjectiveError,
    ColumnNotFoundError,
    KeyNotUniqueError,
    ValueSetNotSubsetError,
    ValueSetsNotEqualError,
)
from .test_helpers import create_table, get_test_engine


class KeyChecksTests(unittest.TestCase):
    def setUp(self) -> None:
        """Create parents 1 to 4, and children referencing some of them."""
        self.executor = SQLAlchemyExecutor(get_test_engine())
        self.parents = create_table(
            self.executor, "parents", {"id": Integer}, [(1,), (2,), (3,), (4,)]
        )
        # Every parent is referenced exactly once; null references are ignored.
        self.one_to_one = create_table(
            self.executor,
            "one_to_one",
            {"id": Integer, "parent_id": Integer},
            [(1, 1), (2, 2), (3, 3), (4, 4), (5, None), (6, None)],
        )
        # Parent 1 is referenced twice and parent 4 never.
        self.many = create_table(
            self.executor,
            "many",
            {"id": Integer, "parent_id": Integer},
            [(1, 1), (2, 1), (3, 2), (4, 3)],
        )
        # Parent 9 does not exist.
        self.orphans = create_table(
            self.executor,
            "orphans",
            {"id": Integer, "parent_id": Integer},
            [(1, 1), (2, 9)],
        )

    def test_check_key(self) -> None:
        check_key(self.parents, "id")
        self.assertTrue(is_unique_key(self.parents, "id"))
        self.assertFalse(is_unique_key(self.many, "parent_id"))

        with self.assertRaisesRegex(KeyNotUniqueError, "has duplicate values: 1"):
            check_key(self.many, "parent_id", table_name="many")
        with self.assertRaises(ColumnNotFoundError):
            check_key(self.many, "missing")

    def test_check_key_elides_long_value_lists(self) -> None:
        duplicates = create_table(
            self.executor,
            "duplicates",
            {"value": Integer},
            [(value,) for value in range(10) for _ in range(2)],
        )
        with self.assertRaisesRegex(KeyNotUniqueError, r"0, 1, 2, 3, 4, \.\.\."):
            check_key(duplicates, "value")

    def test_check_if_subset(self) -> None:
        check_if_subset(self.many, "parent_id", self.parents, "id")
        check_if_subset(self.one_to_one, "parent_id", self.parents, "id")
        self.assertTrue(is_subset(self.many, "parent_id", self.parents, "id"))
        self.assertFalse(is_subset(self.orphans, "parent_id", self.parents, "id"))

        with self.assertRaisesRegex(ValueSetNotSubsetError, r"contains values \(9\)"):
            check_if_subset(self.orphans, "parent_id", self.parents, "id")

    def test_check_set_equality(self) -> None:
        check_set_equality(self.one_to_one, "parent_id", self.parents, "id")
        with self.assertRaises(ValueSetsNotEqualError):
            check_set_equality(self.many, "parent_id", self.parents, "id")
        with self.assertRaises(ValueSetsNotEqualError):
            check_set_equality(self.parents, "id", self.orphans, "parent_id")

    def test_cardinalities(self) -> None:
        for check in (
            check_cardinality_0_n,
            check_cardinality_1_n,
            check_cardinality_0_1,
            check_cardinality_1_1,
        ):
            check(self.parents, "id", self.one_to_one, "parent_id")

        check_cardinality_0_n(self.parents, "id", self.many, "parent_id")
        with self.assertRaises(CardinalityNotSurjectiveError):
            check_cardinality_1_n(self.parents, "id", self.many, "parent_id")
        with self.assertRaises(CardinalityNotInjectiveError):
            check_cardinality_0_1(self.parents, "id", self.many, "parent_id")
        with self.assertRaises(CardinalityNotInjectiveError):
            check_cardinality_1_1(self.parents, "id", self.many, "parent_id")

        with self.assertRaises(ValueSetNotSubsetError):
            check_cardinality_0_n(self.parents, "id", self.orphans, "parent_id")
        with self.assertRaises(KeyNotUniqueError):
            check_cardinality_0_n(self.many, "parent_id", self.parents, "id")
