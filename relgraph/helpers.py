# Copyright 2021-present Kensho Technologies, LLC.
from typing import Any, Collection, Iterable, TypeVar

import funcy


# Maximum number of values quoted in error messages and candidate explanations.
MAX_COMMAS = 6

T = TypeVar("T")


def get_only_element_from_collection(one_element_collection: Collection[T]) -> T:
    """Assert that the collection has exactly one element, then return that element."""
    if len(one_element_collection) != 1:
        raise AssertionError(
            "Expected a collection with exactly one element, but got: {}".format(
                one_element_collection
            )
        )
    return funcy.first(one_element_collection)


def commas(values: Iterable[Any]) -> str:
    """Join values with commas, eliding everything past the first few values."""
    values = [str(value) for value in values]
    if len(values) > MAX_COMMAS:
        values = values[: MAX_COMMAS - 1] + ["..."]
    return ", ".join(values)


def tick(name: str) -> str:
    """Quote a table or column name for use in messages."""
    return f"`{name}`"
