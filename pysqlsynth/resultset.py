"""
pysqlsynth: Synthesize parameterized SQL statements from data-class metadata.

This module converts result-set rows into dictionaries with unique keys, or into data-class instances.
"""

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any, Callable, Generic, Hashable, Iterable, Optional, TypeVar, Union

from strong_typing.inspection import is_dataclass_type

from .model.metadata import EntityMetadata

T = TypeVar("T")

# a single row as returned by the database: (column name, value) pairs in column order
RowRecord = Sequence[tuple[str, Any]]

# a single row with unique keys, in column order
MaterializedRow = dict[str, Any]


def _unique_key(row: MaterializedRow, name: str, suffix: str) -> str:
    key = f"{name}_{suffix}"
    counter = 2
    while key in row:
        key = f"{name}_{suffix}_{counter}"
        counter += 1
    return key


def materialize(
    record: RowRecord, column_origins: Sequence[str] = ()
) -> MaterializedRow:
    """
    Converts a row into a dictionary, keeping values of columns that share a name.

    The first column with a given name is stored under its own name. Each later column with the same name is stored
    under the name suffixed with the alias of the table the column originates from (e.g. `CategoryName_t2`), or with
    its 1-based position in the row if the origin is not known.

    :param record: (column name, value) pairs in column order.
    :param column_origins: Table alias of each column, as produced by the statement that returned the row.
    """

    row: MaterializedRow = {}
    for index, (name, value) in enumerate(record):
        if name not in row:
            row[name] = value
            continue

        if index < len(column_origins):
            key = _unique_key(row, name, column_origins[index])
        else:
            key = _unique_key(row, name, str(index + 1))
        row[key] = value
    return row


def materialize_all(
    records: Iterable[RowRecord], column_origins: Sequence[str] = ()
) -> list[MaterializedRow]:
    "Converts a result-set into a list of dictionaries with unique keys."

    return [materialize(record, column_origins) for record in records]


def resultset_unwrap_entity(
    metadata: EntityMetadata, records: Iterable[RowRecord]
) -> list[Any]:
    """
    Converts a result-set into a list of entity instances.

    Columns are matched to fields by column name. Columns that map to no field are ignored; fields that have no
    column take their default value.

    :param metadata: Metadata of the entity type to instantiate.
    :param records: The result-set whose rows to convert.
    """

    entity_type = metadata.entity_type
    if not is_dataclass_type(entity_type):
        raise TypeError(
            f"expected: data-class type as result-set signature; got: {entity_type}"
        )

    field_names = {column.column_name: column.field_name for column in metadata.columns}
    results: list[Any] = []
    for record in records:
        kwargs: dict[str, Any] = {}
        for name, value in record:
            field_name = field_names.get(name)
            if field_name is not None and field_name not in kwargs:
                kwargs[field_name] = value
        results.append(entity_type(**kwargs))
    return results


@dataclass
class GroupingInfo(Generic[T]):
    """
    Rows that share the same key.

    :param key: The value rows are grouped by.
    :param total_count: Number of rows in the group.
    :param rows: Rows in the group, in their original order.
    """

    key: Any
    total_count: int
    rows: list[T]


def _get_item_or_attribute(name: str) -> Callable[[Any], Hashable]:
    def get(row: Any) -> Hashable:
        if isinstance(row, dict):
            return row[name]
        else:
            return getattr(row, name)

    return get


def group_rows(
    rows: Iterable[T], key: Union[str, Callable[[T], Hashable]]
) -> list[GroupingInfo[T]]:
    """
    Groups rows by a key, keeping groups in order of first occurrence.

    :param rows: Materialized rows (dictionaries) or entity instances.
    :param key: A dictionary key or field name, or a function that computes the group key of a row.
    """

    fn = _get_item_or_attribute(key) if isinstance(key, str) else key

    groups: dict[Hashable, list[T]] = {}
    for row in rows:
        groups.setdefault(fn(row), []).append(row)
    return [GroupingInfo(group_key, len(items), items) for group_key, items in groups.items()]


def scalar_value(records: Sequence[RowRecord]) -> Optional[Any]:
    "Returns the value in the first column of the first row, or `None` for an empty result-set."

    if not records:
        return None
    first = records[0]
    if not first:
        return None
    return first[0][1]
