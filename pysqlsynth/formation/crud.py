"""
pysqlsynth: Synthesize parameterized SQL statements from data-class metadata.

This module generates INSERT, UPDATE and DELETE statements for entity types and entity instances.

Statements reference values with named placeholders such as `@ProductName`, where the parameter name is the name of
the data-class field (which is always a valid identifier, unlike some column names).
"""

import abc
import enum
import logging
from dataclasses import dataclass
from typing import (
    Any,
    Iterable,
    Mapping,
    Optional,
    Protocol,
    Sequence,
    runtime_checkable,
)

from strong_typing.inspection import DataclassInstance

from ..errors import BatchTooLargeError, EmptyBatchError, NoMappableColumnsError
from ..model.metadata import ColumnInfo, EntityMetadata, MetadataCache
from .identifiers import SupportsIdentifiers
from .template import QuerySelector

LOGGER = logging.getLogger("pysqlsynth")

# number of rows permitted in a single batch operation by default
DEFAULT_MAX_BATCH_SIZE = 1000


@enum.unique
class IdentityType(enum.Enum):
    "Data type of a value the database assigns to an identity column."

    INTEGER = "int"
    UNIQUE_IDENTIFIER = "uniqueidentifier"


@runtime_checkable
class SupportsCrudDialect(SupportsIdentifiers, Protocol):
    "Renders the dialect-specific parts of data manipulation statements."

    @abc.abstractmethod
    def get_insert_identity_stmt(
        self,
        metadata: EntityMetadata,
        columns: Sequence[ColumnInfo],
        identity_type: IdentityType,
    ) -> str:
        "Returns an INSERT statement that produces the value assigned to the identity column as a scalar."
        ...

    @abc.abstractmethod
    def get_insert_output_stmt(
        self,
        metadata: EntityMetadata,
        columns: Sequence[ColumnInfo],
        output_columns: Sequence[ColumnInfo],
    ) -> str:
        "Returns an INSERT statement that produces a result-set of the values assigned to the output columns."
        ...

    @abc.abstractmethod
    def get_rowcount_stmt(self, statement: str) -> str:
        "Wraps a data manipulation statement such that it produces the number of affected rows as a scalar."
        ...

    @abc.abstractmethod
    def get_parameter_value(self, value: Any) -> Any:
        "Transforms a field value into a value the database driver accepts."
        ...


def parameter_marker(name: str) -> str:
    return f"@{name}"


@dataclass(frozen=True)
class InsertStatement:
    """
    A statement that inserts an entity instance.

    :param sql: SQL text with a named placeholder for each inserted column.
    :param columns: Columns whose values are bound to the placeholders.
    :param key_column: The single key column that receives the generated value, if any.
    """

    sql: str
    columns: tuple[ColumnInfo, ...]
    key_column: Optional[ColumnInfo]


def check_batch_size(count: int, limit: int) -> None:
    "Verifies that a batch operation has at least one and at most `limit` rows."

    if count < 1:
        raise EmptyBatchError("batch has no rows")
    if count > limit:
        raise BatchTooLargeError(count, limit)


class CrudStatementGenerator:
    """
    Generates data manipulation statements for entity types.

    :param dialect: Renders dialect-specific parts of statements.
    :param cache: Source of entity metadata.
    :param max_batch_size: Maximum number of rows in a single batch operation.
    """

    dialect: SupportsCrudDialect
    cache: MetadataCache
    max_batch_size: int

    def __init__(
        self,
        dialect: SupportsCrudDialect,
        cache: MetadataCache,
        max_batch_size: int = DEFAULT_MAX_BATCH_SIZE,
    ) -> None:
        if max_batch_size < 1:
            raise ValueError("batch size must be positive")

        self.dialect = dialect
        self.cache = cache
        self.max_batch_size = max_batch_size

    def _insert_columns(self, metadata: EntityMetadata) -> tuple[ColumnInfo, ...]:
        columns = metadata.insert_columns
        if not columns:
            raise NoMappableColumnsError(
                f"entity `{metadata.entity_type.__name__}` has no columns to insert"
            )
        if not metadata.key_columns:
            raise NoMappableColumnsError(
                f"entity `{metadata.entity_type.__name__}` has no key columns"
            )
        return columns

    def get_insert_stmt(
        self,
        entity_type: type[DataclassInstance],
        identity_type: IdentityType = IdentityType.INTEGER,
    ) -> InsertStatement:
        """
        Returns a statement that inserts a single entity instance and produces the generated key value as a scalar.

        Database-generated columns are omitted from the list of inserted columns.
        """

        metadata = self.cache.get(entity_type)
        columns = self._insert_columns(metadata)
        key_columns = metadata.key_columns
        key_column = key_columns[0] if len(key_columns) == 1 else None

        sql = self.dialect.get_insert_identity_stmt(metadata, columns, identity_type)
        return InsertStatement(sql, columns, key_column)

    def get_insert_many_stmt(
        self, entity_type: type[DataclassInstance]
    ) -> InsertStatement:
        """
        Returns a statement that inserts an entity instance and produces the generated key values as a result-set.

        The statement is executed once for each instance in a batch. Only the first key column receives a value.
        """

        metadata = self.cache.get(entity_type)
        columns = self._insert_columns(metadata)
        output_columns = metadata.generated_key_columns
        key_column = output_columns[0] if output_columns else None

        sql = self.dialect.get_insert_output_stmt(metadata, columns, output_columns)
        return InsertStatement(sql, columns, key_column)

    def get_parameters(
        self, item: DataclassInstance, columns: Iterable[ColumnInfo]
    ) -> dict[str, Any]:
        "Reads the current value of each column field of an entity instance."

        return {
            column.field_name: self.dialect.get_parameter_value(
                getattr(item, column.field_name)
            )
            for column in columns
        }

    def _set_list(self, columns: Iterable[ColumnInfo]) -> str:
        return ", ".join(
            f"{self.dialect.get_column_name(column.column_name)} = {parameter_marker(column.field_name)}"
            for column in columns
        )

    def _key_condition(
        self, columns: Sequence[ColumnInfo], suffix: str = ""
    ) -> str:
        return " AND ".join(
            f"{self.dialect.get_column_name(column.column_name)} = {parameter_marker(column.field_name + suffix)}"
            for column in columns
        )

    def _key_columns_with_value(
        self, metadata: EntityMetadata, item: DataclassInstance, excluded: Iterable[ColumnInfo] = ()
    ) -> list[ColumnInfo]:
        excluded_names = set(column.column_name for column in excluded)
        key_columns = [
            column
            for column in metadata.key_columns
            if column.column_name not in excluded_names
        ]
        if not key_columns:
            raise NoMappableColumnsError(
                f"entity `{metadata.entity_type.__name__}` has no key columns"
            )

        columns = [
            column
            for column in key_columns
            if getattr(item, column.field_name) is not None
        ]
        if not columns:
            raise NoMappableColumnsError(
                f"entity `{metadata.entity_type.__name__}` instance has no key value set"
            )
        if len(columns) < len(key_columns):
            LOGGER.warning(
                "key column(s) %s of entity `%s` have no value and are omitted from the match condition",
                ", ".join(
                    column.column_name for column in key_columns if column not in columns
                ),
                metadata.entity_type.__name__,
            )
        return columns

    def get_update_stmt(self, item: DataclassInstance) -> QuerySelector:
        """
        Returns a statement that updates all non-key columns of the row an entity instance identifies.

        The match condition uses the current value of each key field; key fields set to `None` are omitted.
        """

        metadata = self.cache.get(type(item))
        set_columns = metadata.value_columns
        if not set_columns:
            raise NoMappableColumnsError(
                f"entity `{metadata.entity_type.__name__}` has no columns to update"
            )
        key_columns = self._key_columns_with_value(metadata, item, set_columns)

        statement = (
            f"UPDATE {self.dialect.get_table_name(metadata)}\n"
            f"SET {self._set_list(set_columns)}\n"
            f"WHERE {self._key_condition(key_columns)}"
        )
        return QuerySelector(
            self.dialect.get_rowcount_stmt(statement),
            self.get_parameters(item, [*set_columns, *key_columns]),
        )

    def get_update_many_stmt(
        self,
        entity_type: type[DataclassInstance],
        items: Sequence[DataclassInstance],
        properties_to_set: Mapping[str, Any],
    ) -> QuerySelector:
        """
        Returns a statement that assigns the same values to the rows a list of entity instances identify.

        :param entity_type: The entity type of the instances.
        :param items: Entity instances whose key values identify the rows to update.
        :param properties_to_set: Values to assign, keyed by column name (or field name).
        """

        check_batch_size(len(items), self.max_batch_size)

        metadata = self.cache.get(entity_type)
        if not properties_to_set:
            raise NoMappableColumnsError(
                f"no columns to update in entity `{metadata.entity_type.__name__}`"
            )
        key_columns = metadata.key_columns
        if not key_columns:
            raise NoMappableColumnsError(
                f"entity `{metadata.entity_type.__name__}` has no key columns"
            )

        parameters: dict[str, Any] = {}
        set_columns: list[ColumnInfo] = []
        for name, value in properties_to_set.items():
            column = metadata.get_column(name)
            if column.is_key or column.is_generated:
                raise ValueError(
                    f"column {column.column_name} of entity `{metadata.entity_type.__name__}` cannot be updated"
                )
            if column in set_columns:
                raise ValueError(
                    f"column {column.column_name} of entity `{metadata.entity_type.__name__}` is assigned more than once"
                )
            set_columns.append(column)
            parameters[column.field_name] = self.dialect.get_parameter_value(value)

        conditions: list[str] = []
        for index, item in enumerate(items):
            if not isinstance(item, entity_type):
                raise TypeError(
                    f"expected: instance of `{entity_type.__name__}`; got: {type(item).__name__}"
                )
            suffix = f"__{index}"
            for column in key_columns:
                value = getattr(item, column.field_name)
                if value is None:
                    raise NoMappableColumnsError(
                        f"row {index} of entity `{metadata.entity_type.__name__}` has no value for key column "
                        f"{column.column_name}"
                    )
                parameters[column.field_name + suffix] = self.dialect.get_parameter_value(value)
            condition = self._key_condition(key_columns, suffix)
            conditions.append(f"({condition})" if len(key_columns) > 1 else condition)

        statement = (
            f"UPDATE {self.dialect.get_table_name(metadata)}\n"
            f"SET {self._set_list(set_columns)}\n"
            f"WHERE {' OR '.join(conditions)}"
        )
        return QuerySelector(self.dialect.get_rowcount_stmt(statement), parameters)

    def get_delete_stmt(self, item: DataclassInstance) -> QuerySelector:
        "Returns a statement that deletes the row an entity instance identifies by its key values."

        metadata = self.cache.get(type(item))
        key_columns = self._key_columns_with_value(metadata, item)
        statement = (
            f"DELETE FROM {self.dialect.get_table_name(metadata)}\n"
            f"WHERE {self._key_condition(key_columns)}"
        )
        return QuerySelector(
            self.dialect.get_rowcount_stmt(statement),
            self.get_parameters(item, key_columns),
        )
