# Copyright 2021-present Kensho Technologies, LLC.
"""Declarative boolean expressions used as filter predicates on tables.

Predicates are plain trees of Expression objects rather than Python callables, so that they
can be inspected (e.g. to find the columns they reference), compared for equality, and
translated into any query language. The only translation currently implemented is to
SQLAlchemy clauses, via to_sql().
"""
from abc import ABCMeta, abstractmethod
from datetime import date, datetime
from decimal import Decimal
from functools import reduce
import operator as python_operator
from typing import Any, Callable, FrozenSet, Generic, Iterable, TypeVar

import sqlalchemy
from sqlalchemy import sql
from sqlalchemy.sql.selectable import FromClause


SCALAR_LITERAL_TYPES = (type(None), bool, int, float, str, Decimal, date, datetime)


class Expression(metaclass=ABCMeta):
    """An abstract boolean or value expression over the columns of a single table."""

    __slots__ = ("_print_args", "_print_kwargs")

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        """Construct a new Expression, remembering its arguments for printing and equality."""
        self._print_args = args
        self._print_kwargs = kwargs

    @abstractmethod
    def validate(self) -> None:
        """Ensure that the Expression is valid."""
        raise NotImplementedError()

    @abstractmethod
    def to_sql(self, current_alias: FromClause) -> Any:
        """Return the SQLAlchemy clause for this expression, with columns taken from the alias."""
        raise NotImplementedError()

    def get_column_names(self) -> FrozenSet[str]:
        """Return the names of all columns referenced anywhere in this expression."""
        column_names = set()

        def visitor_fn(expression: "Expression") -> "Expression":
            """Record the column name of every LocalField."""
            if isinstance(expression, LocalField):
                column_names.add(expression.field_name)
            return expression

        self.visit_and_update(visitor_fn)
        return frozenset(column_names)

    def visit_and_update(self, visitor_fn: Callable[["Expression"], "Expression"]) -> "Expression":
        """Create an updated version (if needed) of the Expression via the visitor pattern.

        Args:
            visitor_fn: function that takes an Expression argument, and returns an Expression.
                        This function is recursively called on all child Expressions that may
                        exist within this expression. If the visitor_fn does not return the
                        exact same object that was passed in, this is interpreted as an update
                        request, and the visit_and_update() method will return a new Expression
                        with the given update applied. No Expressions are mutated in-place.

        Returns:
            - If the visitor_fn does not request any updates (by always returning the exact same
              object it was called with), this method returns 'self'.
            - Otherwise, this method returns a new Expression object that reflects the updates
              requested by the visitor_fn.
        """
        # Most Expressions simply visit themselves.
        # Any Expressions that contain Expressions will override this method.
        return visitor_fn(self)

    def __str__(self) -> str:
        """Return a human-readable representation of this Expression."""
        printed_args = []
        if self._print_args:
            printed_args.append("{args}")
        if self._print_kwargs:
            printed_args.append("{kwargs}")

        template = "{cls_name}(" + ", ".join(printed_args) + ")"
        return template.format(
            cls_name=type(self).__name__, args=self._print_args, kwargs=self._print_kwargs
        )

    def __repr__(self) -> str:
        """Return a human-readable str representation of the Expression object."""
        return self.__str__()

    # pylint: disable=protected-access
    def __eq__(self, other: Any) -> bool:
        """Return True if the Expression objects are equal, and False otherwise."""
        if type(self) != type(other):
            return False
        return (
            self._print_args == other._print_args and self._print_kwargs == other._print_kwargs
        )

    # pylint: enable=protected-access

    def __ne__(self, other: Any) -> bool:
        """Check another object for non-equality against this one."""
        return not self.__eq__(other)

    __hash__ = None  # type: ignore[assignment]


ValueT = TypeVar("ValueT")


class Literal(Generic[ValueT], Expression):
    """A literal, such as a boolean value, null, a number, a string, or a list of those."""

    __slots__ = ("value",)

    def __init__(self, value: ValueT) -> None:
        """Construct a new Literal object with the given value."""
        super(Literal, self).__init__(value)
        self.value = value
        self.validate()

    def validate(self) -> None:
        """Validate that the value is representable as a literal in every backend."""
        if isinstance(self.value, SCALAR_LITERAL_TYPES):
            return
        if isinstance(self.value, (list, tuple, frozenset)):
            for element in self.value:
                if element is None or not isinstance(element, SCALAR_LITERAL_TYPES):
                    raise TypeError(
                        "Collection literals may only contain non-null scalar values, "
                        "got: {} {}".format(type(element).__name__, element)
                    )
            return
        raise TypeError(
            "Cannot represent literal value: {} {}".format(type(self.value).__name__, self.value)
        )

    @property
    def is_collection(self) -> bool:
        """Return True if the literal holds a collection of values."""
        return isinstance(self.value, (list, tuple, frozenset))

    def to_sql(self, current_alias: FromClause) -> Any:
        """Return the value, wrapped as a SQLAlchemy literal if it is a scalar."""
        self.validate()
        if self.value is None:
            return sql.expression.null()
        if self.is_collection:
            return list(self.value)
        return sqlalchemy.literal(self.value)


TrueLiteral = Literal(True)


class LocalField(Expression):
    """A column of the table the predicate is attached to."""

    __slots__ = ("field_name",)

    def __init__(self, field_name: str) -> None:
        """Construct a new LocalField object that references a column of the current table."""
        super(LocalField, self).__init__(field_name)
        self.field_name = field_name
        self.validate()

    def validate(self) -> None:
        """Validate that the LocalField is correctly representable."""
        if not isinstance(self.field_name, str) or not self.field_name:
            raise TypeError(
                "Expected a non-empty string field_name, got: {} {}".format(
                    type(self.field_name).__name__, self.field_name
                )
            )

    def to_sql(self, current_alias: FromClause) -> Any:
        """Return a SQLAlchemy Column picked from the current_alias."""
        self.validate()
        return current_alias.c[self.field_name]


class UnaryTransformation(Expression):
    """An expression that applies an operator to a single inner expression."""

    SUPPORTED_OPERATORS = frozenset({"!", "is_null", "is_not_null"})

    __slots__ = ("operator", "inner_expression")

    def __init__(self, operator: str, inner_expression: Expression) -> None:
        """Construct a UnaryTransformation that transforms the given inner expression."""
        super(UnaryTransformation, self).__init__(operator, inner_expression)
        self.operator = operator
        self.inner_expression = inner_expression
        self.validate()

    def validate(self) -> None:
        """Validate that the UnaryTransformation is correctly representable."""
        _validate_operator_name(self.operator, UnaryTransformation.SUPPORTED_OPERATORS)

        if not isinstance(self.inner_expression, Expression):
            raise TypeError(
                "Expected Expression inner_expression, got {} {}".format(
                    type(self.inner_expression).__name__, self.inner_expression
                )
            )

    def visit_and_update(self, visitor_fn: Callable[[Expression], Expression]) -> Expression:
        """Create an updated version (if needed) of UnaryTransformation via the visitor pattern."""
        new_inner = self.inner_expression.visit_and_update(visitor_fn)

        if new_inner is not self.inner_expression:
            return visitor_fn(UnaryTransformation(self.operator, new_inner))
        else:
            return visitor_fn(self)

    def to_sql(self, current_alias: FromClause) -> Any:
        """Return a SQLAlchemy clause representing this UnaryTransformation."""
        self.validate()
        sql_inner = self.inner_expression.to_sql(current_alias)
        translation_table = {
            "!": sql.expression.not_,
            "is_null": lambda inner: inner.is_(None),
            "is_not_null": lambda inner: inner.isnot(None),
        }
        return translation_table[self.operator](sql_inner)


class BinaryComposition(Expression):
    """An expression created by composing two expressions together."""

    SUPPORTED_OPERATORS = frozenset(
        {
            "=",
            "!=",
            ">=",
            "<=",
            ">",
            "<",
            "&&",
            "||",
            "in_collection",
            "not_in_collection",
            "has_substring",
            "starts_with",
            "ends_with",
        }
    )

    COLLECTION_OPERATORS = frozenset({"in_collection", "not_in_collection"})

    __slots__ = ("operator", "left", "right")

    def __init__(self, operator: str, left: Expression, right: Expression) -> None:
        """Construct an expression that connects two expressions with an operator.

        Args:
            operator: str, one of SUPPORTED_OPERATORS
            left: Expression on the left side of the binary operator
            right: Expression on the right side of the binary operator.
                   For the collection operators, it must be a collection Literal.

        Returns:
            new BinaryComposition object
        """
        super(BinaryComposition, self).__init__(operator, left, right)
        self.operator = operator
        self.left = left
        self.right = right
        self.validate()

    def validate(self) -> None:
        """Validate that the BinaryComposition is correctly representable."""
        _validate_operator_name(self.operator, BinaryComposition.SUPPORTED_OPERATORS)

        if not isinstance(self.left, Expression):
            raise TypeError(
                "Expected Expression left, got: {} {} {}".format(
                    type(self.left).__name__, self.left, self
                )
            )

        if not isinstance(self.right, Expression):
            raise TypeError(
                "Expected Expression right, got: {} {}".format(
                    type(self.right).__name__, self.right
                )
            )

        if self.operator in BinaryComposition.COLLECTION_OPERATORS:
            if not (isinstance(self.right, Literal) and self.right.is_collection):
                raise TypeError(
                    "Operator {} requires a collection Literal on the right, got: {}".format(
                        self.operator, self.right
                    )
                )

    def visit_and_update(self, visitor_fn: Callable[[Expression], Expression]) -> Expression:
        """Create an updated version (if needed) of BinaryComposition via the visitor pattern."""
        new_left = self.left.visit_and_update(visitor_fn)
        new_right = self.right.visit_and_update(visitor_fn)

        if new_left is not self.left or new_right is not self.right:
            return visitor_fn(BinaryComposition(self.operator, new_left, new_right))
        else:
            return visitor_fn(self)

    def to_sql(self, current_alias: FromClause) -> Any:
        """Return a SQLAlchemy BinaryExpression representing this BinaryComposition."""
        self.validate()

        translation_table = {
            "=": python_operator.__eq__,
            "!=": python_operator.__ne__,
            "<": python_operator.__lt__,
            ">": python_operator.__gt__,
            "<=": python_operator.__le__,
            ">=": python_operator.__ge__,
            "&&": sql.expression.and_,
            "||": sql.expression.or_,
            "in_collection": sql.operators.ColumnOperators.in_,
            "not_in_collection": sql.operators.ColumnOperators.not_in,
            "has_substring": sql.operators.ColumnOperators.contains,
            "starts_with": sql.operators.ColumnOperators.startswith,
            "ends_with": sql.operators.ColumnOperators.endswith,
        }
        return translation_table[self.operator](
            self.left.to_sql(current_alias), self.right.to_sql(current_alias)
        )


def _validate_operator_name(operator: str, supported_operators: FrozenSet[str]) -> None:
    """Ensure the named operator is valid and supported."""
    if not isinstance(operator, str):
        raise TypeError(
            "Expected operator as str, got: {} {}".format(type(operator).__name__, operator)
        )

    if operator not in supported_operators:
        raise ValueError("Unrecognized operator: {}".format(operator))


def conjunction(expressions: Iterable[Expression]) -> Expression:
    """Return an Expression that holds exactly when all the given expressions hold."""
    expressions = list(expressions)
    if not expressions:
        return BinaryComposition("=", TrueLiteral, TrueLiteral)
    return reduce(
        lambda left, right: BinaryComposition("&&", left, right), expressions[1:], expressions[0]
    )


def column_equals(column_name: str, value: Any) -> BinaryComposition:
    """Return a predicate testing a column for equality with a value."""
    return BinaryComposition("=", LocalField(column_name), Literal(value))


def column_in(column_name: str, values: Iterable[Any]) -> BinaryComposition:
    """Return a predicate testing whether a column's value is one of the given values."""
    return BinaryComposition("in_collection", LocalField(column_name), Literal(tuple(values)))
