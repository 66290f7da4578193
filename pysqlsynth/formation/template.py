"""
pysqlsynth: Synthesize parameterized SQL statements from data-class metadata.

This module assembles SQL text from a base template and accumulated clause fragments, and collects the parameters
the fragments reference.

A base template has named insertion points written as SQL comments:
```
SELECT * FROM Products /**innerjoin**/ /**where**/
```
"""

import re
from dataclasses import dataclass, field
from typing import Any, Callable, Iterator, Mapping, Optional

from ..errors import MissingParameterError

INNER_JOIN_PLACEHOLDER = "/**innerjoin**/"
WHERE_PLACEHOLDER = "/**where**/"

# string literals, quoted identifiers and comments are skipped when looking for named parameters;
# `@@` introduces a system function such as `@@ROWCOUNT`, not a parameter
_PARAMETER_SCANNER = re.compile(
    r"'(?:[^']|'')*'"
    r'|"(?:[^"]|"")*"'
    r"|\[[^\]]*\]"
    r"|--[^\n]*"
    r"|/\*.*?\*/"
    r"|@@\w+"
    r"|@(?P<name>[A-Za-z_][A-Za-z0-9_]*)",
    re.DOTALL,
)


def _substitute(sql: str, placeholder: str, replacement: str) -> str:
    """
    Replaces an insertion point with a clause.

    An insertion point that renders empty is removed together with the spaces and the single line break that
    precede it. Other text of the base statement is left as written.
    """

    pattern = re.compile(r"[ \t]*(?:\n[ \t]*)?" + re.escape(placeholder))
    return pattern.sub(
        lambda m: m.group(0)[: -len(placeholder)] + replacement if replacement else "",
        sql,
    )


def iter_parameter_names(sql: str) -> Iterator[tuple[str, int, int]]:
    """
    Finds named parameters such as `@ProductID` in SQL text.

    :returns: An iterator of (name, start, end) triplets, in order of occurrence.
    """

    for match in _PARAMETER_SCANNER.finditer(sql):
        name = match.group("name")
        if name is not None:
            yield name, match.start(), match.end()


def get_parameter_names(sql: str) -> list[str]:
    "Distinct named parameters referenced in SQL text, in order of first occurrence."

    names: dict[str, None] = {}
    for name, _, _ in iter_parameter_names(sql):
        names.setdefault(name)
    return list(names)


def _normalize_name(name: str) -> str:
    return name[1:] if name.startswith("@") else name


def normalize_parameters(parameters: Optional[Mapping[str, Any]]) -> dict[str, Any]:
    "Strips the optional `@` prefix from parameter names."

    if parameters is None:
        return {}
    return {_normalize_name(name): value for name, value in parameters.items()}


def check_parameters(
    sql: str, parameters: Mapping[str, Any], *, allow_unused: bool = False
) -> None:
    """
    Verifies that every named placeholder in the SQL text has a value, and every value has a placeholder.

    :param sql: SQL text with named placeholders.
    :param parameters: Parameter values, keyed by name with or without `@` prefix.
    :param allow_unused: Whether to permit values that no placeholder references.
    :raises MissingParameterError: A placeholder has no value, or a value has no placeholder.
    """

    referenced = get_parameter_names(sql)
    supplied = set(_normalize_name(name) for name in parameters.keys())

    missing = tuple(name for name in referenced if name not in supplied)
    if missing:
        raise MissingParameterError(
            "missing value for parameter(s): "
            + ", ".join(f"@{name}" for name in missing),
            missing,
        )

    if not allow_unused:
        unused = tuple(
            sorted(name for name in supplied if name not in set(referenced))
        )
        if unused:
            raise MissingParameterError(
                "missing placeholder for parameter(s): "
                + ", ".join(f"@{name}" for name in unused),
                unused,
            )


def bind_parameters(
    sql: str,
    parameters: Mapping[str, Any],
    placeholder: Callable[[int], str],
    *,
    numbered: bool = False,
) -> tuple[str, tuple[Any, ...]]:
    """
    Rewrites named placeholders to positional placeholders, as expected by most database drivers.

    :param sql: SQL text with named placeholders such as `@ProductID`.
    :param parameters: Parameter values, keyed by name.
    :param placeholder: Returns the positional placeholder for a 1-based position, e.g. `?` or `$1`.
    :param numbered: Whether placeholders carry their position, which lets repeated names share a position.
    :returns: Rewritten SQL text and the tuple of values in positional order.
    """

    values = normalize_parameters(parameters)
    positions: dict[str, int] = {}
    ordered: list[Any] = []
    parts: list[str] = []
    last = 0
    for name, start, end in iter_parameter_names(sql):
        if name not in values:
            raise MissingParameterError(f"missing value for parameter: @{name}", (name,))

        index = positions.get(name) if numbered else None
        if index is None:
            ordered.append(values[name])
            index = len(ordered)
            positions[name] = index

        parts.append(sql[last:start])
        parts.append(placeholder(index))
        last = end
    parts.append(sql[last:])
    return "".join(parts), tuple(ordered)


def escape_like(search_term: Optional[str]) -> Optional[str]:
    """
    Builds a `LIKE` pattern that matches the search term anywhere in a string.

    Characters with special meaning in a T-SQL `LIKE` pattern are enclosed in brackets. The opening bracket is
    escaped first such that brackets introduced by escaping are left intact.

    :param search_term: Text to search for.
    :returns: A pattern such as `%term%`, or `None` if the search term is empty.
    """

    if not search_term:
        return None

    escaped = (
        search_term.replace("[", "[[]").replace("%", "[%]").replace("_", "[_]")
    )
    return f"%{escaped}%"


@dataclass(frozen=True)
class QuerySelector:
    """
    A rendered SQL statement with its parameters.

    :param raw_sql: SQL text with named placeholders.
    :param parameters: Values for the named placeholders, keyed by name without `@` prefix.
    :param column_origins: Table alias that produces each column of the result-set, if known.
    """

    raw_sql: str
    parameters: Mapping[str, Any] = field(default_factory=dict)
    column_origins: tuple[str, ...] = ()

    def __str__(self) -> str:
        return self.raw_sql


class SqlTemplate:
    "A base SQL statement with insertion points for join and filter clauses."

    sql: str
    builder: "SqlBuilder"

    def __init__(self, builder: "SqlBuilder", sql: str) -> None:
        self.builder = builder
        self.sql = sql

    @property
    def raw_sql(self) -> str:
        return self.builder.render(self.sql)

    @property
    def parameters(self) -> dict[str, Any]:
        return dict(self.builder.parameters)

    def select(self, column_origins: tuple[str, ...] = ()) -> QuerySelector:
        "Renders the template into a statement with parameters."

        return QuerySelector(self.raw_sql, self.parameters, column_origins)


class SqlBuilder:
    """
    Accumulates join and filter clauses, and renders them into SQL templates.

    Example:
    ```
    builder = SqlBuilder()
    template = builder.add_template("SELECT * FROM Products /**where**/")
    builder.where("UnitPrice > @UnitPrice", UnitPrice=50).where("CategoryID = @CategoryID", CategoryID=6)
    selector = template.select()
    ```
    """

    joins: list[str]
    conditions: list[str]
    parameters: dict[str, Any]

    def __init__(self) -> None:
        self.joins = []
        self.conditions = []
        self.parameters = {}

    def add_template(self, sql: str) -> SqlTemplate:
        "Registers a base SQL statement to render clauses into."

        if not sql or not sql.strip():
            raise ValueError("empty template")
        return SqlTemplate(self, sql)

    def _add_parameters(self, parameters: Mapping[str, Any]) -> None:
        for name, value in normalize_parameters(parameters).items():
            if name in self.parameters and self.parameters[name] != value:
                raise ValueError(f"conflicting values for parameter: @{name}")
            self.parameters[name] = value

    def inner_join(
        self, clause: str, parameters: Optional[Mapping[str, Any]] = None, **kwargs: Any
    ) -> "SqlBuilder":
        "Adds a join clause such as `Categories t2 ON t1.CategoryID = t2.CategoryID`."

        self.joins.append(clause)
        self._add_parameters({**(parameters or {}), **kwargs})
        return self

    def where(
        self, condition: str, parameters: Optional[Mapping[str, Any]] = None, **kwargs: Any
    ) -> "SqlBuilder":
        "Adds a filter condition, combined with other conditions by `AND`."

        self.conditions.append(condition)
        self._add_parameters({**(parameters or {}), **kwargs})
        return self

    def render(self, sql: str) -> str:
        "Substitutes accumulated clauses at the insertion points of a base SQL statement."

        if self.joins and INNER_JOIN_PLACEHOLDER not in sql:
            raise ValueError(f"template has no join insertion point `{INNER_JOIN_PLACEHOLDER}`")
        if self.conditions and WHERE_PLACEHOLDER not in sql:
            raise ValueError(f"template has no filter insertion point `{WHERE_PLACEHOLDER}`")

        join_text = "\n".join(f"INNER JOIN {clause}" for clause in self.joins)
        if self.conditions:
            where_text = "WHERE " + " AND ".join(
                f"({condition})" if len(self.conditions) > 1 else condition
                for condition in self.conditions
            )
        else:
            where_text = ""

        text = _substitute(sql, INNER_JOIN_PLACEHOLDER, join_text)
        return _substitute(text, WHERE_PLACEHOLDER, where_text)
