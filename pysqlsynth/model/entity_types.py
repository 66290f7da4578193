from typing import Callable, Optional, TypeVar

from strong_typing.inspection import DataclassInstance, is_dataclass_type

D = TypeVar("D", bound=type[DataclassInstance])


class TableTag:
    """
    Binds a data-class type to a database table.

    :param name: Name of the table.
    :param schema: Database schema (namespace) the table belongs to, if any.
    """

    name: str
    schema: Optional[str]

    def __init__(self, name: str, schema: Optional[str] = None) -> None:
        if not name:
            raise ValueError("table name cannot be empty")
        self.name = name
        self.schema = schema

    def __repr__(self) -> str:
        if self.schema is not None:
            return f"Table({self.name!r}, schema={self.schema!r})"
        else:
            return f"Table({self.name!r})"


def table(name: str, *, schema: Optional[str] = None) -> Callable[[D], D]:
    """
    Marks a data-class type as an entity stored in the named table.

    Entity types without this decorator map to a table that has the same name as the class.

    :param name: Name of the table.
    :param schema: Database schema (namespace) the table belongs to, if any.
    """

    tag = TableTag(name, schema)

    def wrap(cls: D) -> D:
        if not is_dataclass_type(cls):
            raise TypeError(f"expected: data-class type; got: {cls}")

        # looked up in the class dictionary such that derived classes do not inherit it
        setattr(cls, "__table__", tag)
        return cls

    return wrap


def get_table_tag(cls: type) -> Optional[TableTag]:
    "Returns the table binding of a data-class type, if any."

    tag = cls.__dict__.get("__table__")
    if isinstance(tag, TableTag):
        return tag
    else:
        return None
