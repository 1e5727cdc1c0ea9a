# Copyright 2021-present Kensho Technologies, LLC.
import unittest

from sqlalchemy import Integer, String

from ..backend import SQLAlchemyExecutor
from ..expressions import (
    BinaryComposition,
    Literal,
    LocalField,
    TrueLiteral,
    UnaryTransformation,
    column_equals,
    column_in,
    conjunction,
)
from .test_helpers import create_table, get_column_values, get_test_engine


class ExpressionTests(unittest.TestCase):
    def test_equality(self) -> None:
        self.assertEqual(column_equals("id", 1), column_equals("id", 1))
        self.assertNotEqual(column_equals("id", 1), column_equals("id", 2))
        self.assertNotEqual(column_equals("id", 1), column_in("id", [1]))

    def test_get_column_names(self) -> None:
        expression = BinaryComposition(
            "||",
            column_equals("name", "apple"),
            UnaryTransformation("is_null", LocalField("price")),
        )
        self.assertEqual(frozenset({"name", "price"}), expression.get_column_names())
        self.assertEqual(frozenset(), TrueLiteral.get_column_names())

    def test_conjunction(self) -> None:
        first = column_equals("id", 1)
        second = column_equals("name", "apple")
        self.assertEqual(first, conjunction([first]))
        self.assertEqual(BinaryComposition("&&", first, second), conjunction([first, second]))
        self.assertEqual(BinaryComposition("=", TrueLiteral, TrueLiteral), conjunction([]))

    def test_visit_and_update(self) -> None:
        def rename_visitor(expression):
            if isinstance(expression, LocalField) and expression.field_name == "id":
                return LocalField("product_id")
            return expression

        expression = conjunction([column_equals("id", 1), column_equals("name", "apple")])
        updated = expression.visit_and_update(rename_visitor)
        self.assertEqual(
            conjunction([column_equals("product_id", 1), column_equals("name", "apple")]),
            updated,
        )
        self.assertEqual(frozenset({"id", "name"}), expression.get_column_names())

    def test_invalid_expressions(self) -> None:
        with self.assertRaises(ValueError):
            BinaryComposition("like", LocalField("name"), Literal("a%"))
        with self.assertRaises(TypeError):
            BinaryComposition("in_collection", LocalField("name"), Literal("apple"))
        with self.assertRaises(TypeError):
            BinaryComposition("=", LocalField("name"), "apple")
        with self.assertRaises(TypeError):
            UnaryTransformation("!", "name")
        with self.assertRaises(TypeError):
            LocalField("")
        with self.assertRaises(TypeError):
            Literal(object())
        with self.assertRaises(TypeError):
            Literal([1, None])

    def test_expressions_are_not_hashable(self) -> None:
        with self.assertRaises(TypeError):
            hash(column_equals("id", 1))


class ExpressionToSqlTests(unittest.TestCase):
    def setUp(self) -> None:
        """Create a table of products in a new in-memory database."""
        self.executor = SQLAlchemyExecutor(get_test_engine())
        self.products = create_table(
            self.executor,
            "products",
            {"id": Integer, "name": String, "price": Integer},
            [(1, "apple", 3), (2, "banana", 1), (3, "cherry", None), (4, "apricot", 5)],
        )

    def _get_ids(self, predicate) -> list:
        return get_column_values(self.executor.filter(self.products, predicate), "id")

    def test_comparisons(self) -> None:
        self.assertEqual([1], self._get_ids(column_equals("name", "apple")))
        self.assertEqual(
            [2, 3, 4], self._get_ids(BinaryComposition("!=", LocalField("id"), Literal(1)))
        )
        self.assertEqual(
            [1, 4], self._get_ids(BinaryComposition(">=", LocalField("price"), Literal(3)))
        )
        self.assertEqual(
            [2], self._get_ids(BinaryComposition("<", LocalField("price"), Literal(3)))
        )

    def test_collections(self) -> None:
        self.assertEqual([2, 4], self._get_ids(column_in("name", ["banana", "apricot"])))
        self.assertEqual(
            [1, 3],
            self._get_ids(
                BinaryComposition(
                    "not_in_collection", LocalField("name"), Literal(("banana", "apricot"))
                )
            ),
        )

    def test_string_operators(self) -> None:
        starts_with = BinaryComposition("starts_with", LocalField("name"), Literal("ap"))
        has_substring = BinaryComposition("has_substring", LocalField("name"), Literal("nan"))
        ends_with = BinaryComposition("ends_with", LocalField("name"), Literal("rry"))
        self.assertEqual([1, 4], self._get_ids(starts_with))
        self.assertEqual([2], self._get_ids(has_substring))
        self.assertEqual([3], self._get_ids(ends_with))

    def test_null_and_boolean_operators(self) -> None:
        self.assertEqual([3], self._get_ids(UnaryTransformation("is_null", LocalField("price"))))
        self.assertEqual(
            [1, 2, 4], self._get_ids(UnaryTransformation("is_not_null", LocalField("price")))
        )
        self.assertEqual(
            [2, 3, 4],
            self._get_ids(UnaryTransformation("!", column_equals("name", "apple"))),
        )
        self.assertEqual(
            [1, 2],
            self._get_ids(
                BinaryComposition("||", column_equals("id", 1), column_equals("name", "banana"))
            ),
        )
        self.assertEqual(
            [4],
            self._get_ids(
                conjunction(
                    [
                        BinaryComposition("starts_with", LocalField("name"), Literal("ap")),
                        BinaryComposition(">", LocalField("price"), Literal(4)),
                    ]
                )
            ),
        )
