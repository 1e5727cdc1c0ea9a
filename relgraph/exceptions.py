# Copyright 2021-present Kensho Technologies, LLC.
class DataModelError(Exception):
    """Generic error when working with a DataModel."""


class UnknownTableError(DataModelError):
    """Raised when a table name does not name a table of the DataModel."""


class DuplicateTableNameError(DataModelError):
    """Raised when adding or renaming tables would produce two tables with the same name."""


class ColumnNotFoundError(DataModelError):
    """Raised when a column referenced by a key or a predicate does not exist in its table."""


class BackendMismatchError(DataModelError):
    """Raised when tables that live on different query executors are combined.

    All tables of a DataModel have to be queryable through the same executor, since
    semi-joins and joins between them are issued as single queries.
    """


class KeyDefinitionError(DataModelError):
    """Base class for all errors raised while adding or removing primary or foreign keys."""


class PrimaryKeyAlreadySetError(KeyDefinitionError):
    """Raised when setting a primary key on a table that already has one, without force."""


class PrimaryKeyRemovalBlockedByForeignKeysError(KeyDefinitionError):
    """Raised when removing a primary key that is still referenced by foreign keys.

    Pass rm_referencing_fks=True to remove the referencing foreign keys as well.
    """


class ReferencedTableHasNoPrimaryKeyError(KeyDefinitionError):
    """Raised when adding a foreign key pointing to a table without a primary key."""


class ForeignKeyColumnMissingError(KeyDefinitionError):
    """Raised when a foreign key is declared on a column that its table does not have."""


class NotAForeignKeyColumnError(KeyDefinitionError):
    """Raised when removing a foreign key that is not defined between the given tables."""


class RelationshipError(DataModelError):
    """Base class for errors about how tables relate to each other in the relation graph."""


class RelationshipCycleUnsupportedError(RelationshipError):
    """Raised when flattening a set of tables whose relation graph is not a tree."""


class TablesNotDirectlyRelatedError(RelationshipError):
    """Raised when two tables are expected to share a foreign key, but do not."""


class TablesNotReachableFromStartError(RelationshipError):
    """Raised when a table cannot be reached from the start table of a flatten operation.

    Tables are reachable only by following foreign keys from child to parent,
    and only through tables that are part of the flatten operation.
    """


class AmbiguousRelationshipError(RelationshipError):
    """Raised when more than one foreign key connects two tables that need to be joined."""


class FlattenError(DataModelError):
    """Base class for errors raised by the join/flatten policy checks."""


class UnsupportedJoinKindError(FlattenError):
    """Raised when the requested join kind cannot be used for the requested operation.

    Nest-style joins are never supported for flattening, and squashing multiple
    levels of tables is only supported for left, inner and full joins.
    """


class FiltersMustBeAppliedFirstError(FlattenError):
    """Raised when pending filters would make the result of an operation incorrect.

    Right and full joins surface rows of the right-hand table that the pending
    filters would have removed. Call apply_filters() first.
    """


class OnlyPossibleWithoutFiltersError(FiltersMustBeAppliedFirstError):
    """Raised when an operation that needs an unfiltered view is called with pending filters."""


class OnlyDirectNeighborsAllowedError(FlattenError):
    """Raised when flattening reaches tables more than one hop away from the start table.

    Use squash_to_tbl() to join tables across multiple levels of foreign keys.
    """


class ConstraintViolationError(DataModelError):
    """Base class for errors raised when the data does not satisfy a key constraint."""


class KeyNotUniqueError(ConstraintViolationError):
    """Raised when a column is not a unique key of its table."""


class ValueSetNotSubsetError(ConstraintViolationError):
    """Raised when the values of one column are not a subset of the values of another."""


class ValueSetsNotEqualError(ConstraintViolationError):
    """Raised when two columns were expected to hold the same set of values."""


class CardinalityNotInjectiveError(ConstraintViolationError):
    """Raised when a parent key value is referenced by more than one child row."""


class CardinalityNotSurjectiveError(ConstraintViolationError):
    """Raised when some parent key value is not referenced by any child row."""
