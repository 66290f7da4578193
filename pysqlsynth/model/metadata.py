"""
pysqlsynth: Synthesize parameterized SQL statements from data-class metadata.

This module derives table and column identity from data-class entity types.

:see: `pysqlsynth.model.key_types` for field markers, and `pysqlsynth.model.entity_types` for the table decorator.
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional

from strong_typing.inspection import (
    DataclassInstance,
    TypeLike,
    dataclass_fields,
    is_dataclass_type,
)

from .entity_types import get_table_tag
from .id_types import QualifiedId
from .properties import get_field_properties

LOGGER = logging.getLogger("pysqlsynth")


@dataclass(frozen=True)
class ColumnInfo:
    """
    Maps a data-class field to a table column.

    :param field_name: Name of the data-class field.
    :param column_name: Name of the column in the database table.
    :param field_type: Type of the field without markers, and without `Optional`.
    :param nullable: True if the field admits `None`.
    :param is_key: True if the column is (part of) the primary key.
    :param is_generated: True if the database assigns the column value (identity or computed column).
    :param is_excluded: True if the field is never persisted.
    """

    field_name: str
    column_name: str
    field_type: TypeLike
    nullable: bool
    is_key: bool
    is_generated: bool
    is_excluded: bool


@dataclass(frozen=True)
class EntityMetadata:
    """
    Table and column identity of an entity type.

    :param entity_type: The data-class type the metadata is derived from.
    :param table_id: Table the entity is stored in.
    :param columns: Columns in field declaration order.
    """

    entity_type: type
    table_id: QualifiedId
    columns: tuple[ColumnInfo, ...]

    @property
    def table_name(self) -> str:
        "Table name to embed in a SQL statement."

        return str(self.table_id)

    @property
    def key_columns(self) -> tuple[ColumnInfo, ...]:
        return tuple(column for column in self.columns if column.is_key)

    @property
    def value_columns(self) -> tuple[ColumnInfo, ...]:
        "Columns whose values are supplied by the application, i.e. neither keys nor database-generated."

        return tuple(
            column
            for column in self.columns
            if not column.is_key and not column.is_generated
        )

    @property
    def insert_columns(self) -> tuple[ColumnInfo, ...]:
        "Columns included in an INSERT statement."

        return tuple(column for column in self.columns if not column.is_generated)

    @property
    def generated_key_columns(self) -> tuple[ColumnInfo, ...]:
        return tuple(
            column for column in self.columns if column.is_key and column.is_generated
        )

    def get_column(self, name: str) -> ColumnInfo:
        "Looks up a column by column name or field name."

        for column in self.columns:
            if column.column_name == name:
                return column
        for column in self.columns:
            if column.field_name == name:
                return column
        raise ValueError(
            f"column {name} not found in table {self.table_name} (entity {self.entity_type.__name__})"
        )

    def find_field(self, field_name: str) -> Optional[ColumnInfo]:
        for column in self.columns:
            if column.field_name == field_name:
                return column
        return None


def resolve_entity(
    entity_type: type[DataclassInstance], *, include_excluded: bool = False
) -> EntityMetadata:
    """
    Derives table and column identity from a data-class type.

    The table name comes from the `@table` decorator (qualified with its schema, if any), or the class name. Column
    names come from `ColumnName` annotations, or the field name. The result may have no columns; operations that
    need columns check this on their own.

    :param entity_type: A data-class type.
    :param include_excluded: Whether to keep fields marked as `NotMapped`.
    """

    if not is_dataclass_type(entity_type):
        raise TypeError(f"expected: data-class type as entity; got: {entity_type}")

    tag = get_table_tag(entity_type)
    if tag is not None:
        table_id = QualifiedId(tag.schema, tag.name)
    else:
        table_id = QualifiedId(None, entity_type.__name__)

    columns: list[ColumnInfo] = []
    for field in dataclass_fields(entity_type):
        props = get_field_properties(field.type)
        if props.is_excluded and not include_excluded:
            continue

        columns.append(
            ColumnInfo(
                field_name=field.name,
                column_name=props.column_name or field.name,
                field_type=props.plain_type,
                nullable=props.nullable,
                is_key=props.is_primary,
                is_generated=props.is_generated,
                is_excluded=props.is_excluded,
            )
        )

    return EntityMetadata(entity_type, table_id, tuple(columns))


class MetadataCache:
    """
    Read-through cache of entity metadata, keyed by entity type.

    Entries are never modified once stored. Two threads racing to populate the same entry both compute identical
    metadata, and either result is kept.
    """

    _entries: dict[type, EntityMetadata]

    def __init__(self) -> None:
        self._entries = {}

    def get(self, entity_type: type[DataclassInstance]) -> EntityMetadata:
        "Returns metadata for the entity type, resolving it on first access."

        metadata = self._entries.get(entity_type)
        if metadata is None:
            metadata = resolve_entity(entity_type)
            LOGGER.debug(
                "resolved entity `%s` into table %s with %d column(s)",
                entity_type.__name__,
                metadata.table_name,
                len(metadata.columns),
            )
            metadata = self._entries.setdefault(entity_type, metadata)
        return metadata

    def __contains__(self, entity_type: Any) -> bool:
        return entity_type in self._entries

    def __len__(self) -> int:
        return len(self._entries)
