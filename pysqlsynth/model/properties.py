from dataclasses import dataclass
from typing import Any, Optional

from strong_typing.inspection import (
    TypeLike,
    is_type_optional,
    unwrap_annotated_type,
    unwrap_optional_type,
)

from .key_types import (
    ColumnName,
    DatabaseGenerated,
    GenerationOption,
    NotMappedTag,
    PrimaryKeyTag,
)


def is_constraint(item: Any) -> bool:
    return isinstance(item, (PrimaryKeyTag, DatabaseGenerated, NotMappedTag, ColumnName))


@dataclass
class FieldProperties:
    """
    Captures type information associated with a field type.

    :param plain_type: Unadorned type without any metadata.
    :param nullable: True if the field is optional.
    :param metadata: Any metadata that is not a marker such as primary key, generation option or column name.
    :param column_name: Column name override, if any.
    :param is_primary: True if the field is a primary key.
    :param generation: How the database generates the value of this field.
    :param is_excluded: True if the field is never persisted.
    """

    plain_type: TypeLike
    nullable: bool
    metadata: tuple[Any, ...]
    column_name: Optional[str]
    is_primary: bool
    generation: GenerationOption
    is_excluded: bool

    @property
    def is_generated(self) -> bool:
        return self.generation is not GenerationOption.NONE


def _get_field_metadata(field_type: TypeLike) -> list[Any]:
    # field has a type of Annotated[T, ...]
    return list(getattr(field_type, "__metadata__", ()))


def get_field_properties(field_type: TypeLike) -> FieldProperties:
    "Extracts column properties such as primary key, generation option, exclusion or column name."

    metadata = _get_field_metadata(field_type)
    plain_type = unwrap_annotated_type(field_type)

    # check if field is nullable
    if is_type_optional(plain_type):
        nullable = True
        plain_type = unwrap_optional_type(plain_type)
    else:
        nullable = False

    # Optional[Annotated[T, ...]] keeps markers on the inner type
    metadata.extend(_get_field_metadata(plain_type))
    plain_type = unwrap_annotated_type(plain_type)

    is_primary = any(isinstance(m, PrimaryKeyTag) for m in metadata)
    is_excluded = any(isinstance(m, NotMappedTag) for m in metadata)

    generation = GenerationOption.NONE
    column_name: Optional[str] = None
    for item in metadata:
        if isinstance(item, DatabaseGenerated):
            generation = item.option
        elif isinstance(item, ColumnName):
            column_name = item.name

    # filter annotations that represent markers
    metadata = [item for item in metadata if not is_constraint(item)]

    return FieldProperties(
        plain_type=plain_type,
        nullable=nullable,
        metadata=tuple(metadata),
        column_name=column_name,
        is_primary=is_primary,
        generation=generation,
        is_excluded=is_excluded,
    )
