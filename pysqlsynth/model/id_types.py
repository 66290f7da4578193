import re
from dataclasses import dataclass
from typing import Optional

_SIMPLE_ID = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def is_simple_id(name: str) -> bool:
    "True if the identifier can be embedded in a SQL statement without quoting."

    return _SIMPLE_ID.match(name) is not None


def bracket_id(name: str) -> str:
    "Quotes an identifier with square brackets, escaping embedded closing brackets."

    return "[" + name.replace("]", "]]") + "]"


def double_quote_id(name: str) -> str:
    "Quotes an identifier with double quotes, escaping embedded double quotes."

    return '"' + name.replace('"', '""') + '"'


@dataclass(frozen=True)
class LocalId:
    "An identifier used in a local context, e.g. a column of a table."

    id: str

    @property
    def local_id(self) -> str:
        "Unquoted identifier."

        return self.id

    @property
    def quoted_id(self) -> str:
        "Identifier to embed in a SQL statement, quoted only if necessary."

        if is_simple_id(self.id):
            return self.id
        else:
            return bracket_id(self.id)

    def __str__(self) -> str:
        return self.quoted_id


@dataclass(frozen=True)
class QualifiedId:
    """
    A table identifier, optionally qualified by a schema (namespace).

    A qualified identifier is written as `[schema].[name]`. Without a schema, the name is used as-is, which lets
    a name such as `[Order Details]` carry its own quoting.
    """

    namespace: Optional[str]
    id: str

    @property
    def scope_id(self) -> Optional[str]:
        return self.namespace

    @property
    def local_id(self) -> str:
        return self.id

    @property
    def compact_id(self) -> str:
        if self.namespace is not None:
            return f"{self.namespace}.{self.id}"
        else:
            return self.id

    @property
    def quoted_id(self) -> str:
        if self.namespace is not None:
            return bracket_id(self.namespace) + "." + bracket_id(self.id)
        else:
            return self.id

    def __str__(self) -> str:
        "Quotes a qualified identifier to be embedded in a SQL statement."

        return self.quoted_id
