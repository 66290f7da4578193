import enum
from typing import Annotated, TypeVar

T = TypeVar("T")


class PrimaryKeyTag:
    "Marks a field as the primary key (or part of a compound key) of a table."

    def __repr__(self) -> str:
        return "PrimaryKey"


@enum.unique
class GenerationOption(enum.Enum):
    "Specifies how the database generates values for a column."

    # column value is supplied by the application
    NONE = "none"

    # column value is assigned by the database when a row is inserted
    IDENTITY = "identity"

    # column value is computed by the database when a row is inserted or updated
    COMPUTED = "computed"


class DatabaseGenerated:
    "Marks a field whose value may be assigned by the database."

    option: GenerationOption

    def __init__(self, option: GenerationOption) -> None:
        self.option = option

    @property
    def is_generated(self) -> bool:
        return self.option is not GenerationOption.NONE

    def __repr__(self) -> str:
        return f"DatabaseGenerated({self.option.name})"


class NotMappedTag:
    "Marks a field that is never persisted, and is omitted from all generated SQL."

    def __repr__(self) -> str:
        return "NotMapped"


class ColumnName:
    "Overrides the name of the column a field maps to."

    name: str

    def __init__(self, name: str) -> None:
        if not name:
            raise ValueError("column name cannot be empty")
        self.name = name

    def __repr__(self) -> str:
        return f"ColumnName({self.name!r})"


PrimaryKey = Annotated[T, PrimaryKeyTag()]
Identity = Annotated[T, DatabaseGenerated(GenerationOption.IDENTITY)]
Computed = Annotated[T, DatabaseGenerated(GenerationOption.COMPUTED)]
NotMapped = Annotated[T, NotMappedTag()]
