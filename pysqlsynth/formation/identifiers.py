import abc
from typing import Protocol, runtime_checkable

from ..model.metadata import EntityMetadata


@runtime_checkable
class SupportsIdentifiers(Protocol):
    "Renders table and column identifiers in the syntax of a SQL dialect."

    @abc.abstractmethod
    def get_table_name(self, metadata: EntityMetadata) -> str:
        "Table name to embed in a SQL statement."
        ...

    @abc.abstractmethod
    def get_column_name(self, name: str) -> str:
        "Column name to embed in a SQL statement."
        ...
