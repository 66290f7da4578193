"""
pysqlsynth: Synthesize parameterized SQL statements from data-class metadata.

This module builds paged queries with `OFFSET` and `FETCH`, and aggregate queries with optional grouping.
"""

import enum
import re
from typing import Optional, Protocol, Sequence, runtime_checkable

from .identifiers import SupportsIdentifiers
from .template import QuerySelector

# string literals, quoted identifiers and comments are skipped; parentheses open a nested scope
_ORDER_BY_SCANNER = re.compile(
    r"'(?:[^']|'')*'"
    r'|"(?:[^"]|"")*"'
    r"|\[[^\]]*\]"
    r"|--[^\n]*"
    r"|/\*.*?\*/"
    r"|(?P<open>\()"
    r"|(?P<close>\))"
    r"|(?P<order>\border\s+by\b)",
    re.IGNORECASE | re.DOTALL,
)

SKIP_PARAMETER = "Skip"
NEXT_PARAMETER = "Next"


@enum.unique
class AggregateFunction(enum.Enum):
    "Aggregate functions, with their T-SQL names."

    COUNT = "count"
    COUNT_BIG = "count_big"
    SUM = "sum"
    MIN = "min"
    MAX = "max"
    AVG = "avg"
    VAR = "var"
    VARP = "varp"
    STDEV = "stdev"
    STDEVP = "stdevp"


@runtime_checkable
class SupportsAggregateDialect(SupportsIdentifiers, Protocol):
    def get_aggregate_function_name(self, function: AggregateFunction) -> str:
        "Name of the aggregate function in the SQL dialect."
        ...


def has_order_by(sql: str) -> bool:
    """
    True if the statement already has a statement-level `ORDER BY` clause.

    Sort clauses of window functions and subqueries do not count.
    """

    depth = 0
    for match in _ORDER_BY_SCANNER.finditer(sql):
        if match.group("open"):
            depth += 1
        elif match.group("close"):
            depth -= 1
        elif match.group("order") and depth == 0:
            return True
    return False


def get_page_stmt(
    dialect: SupportsIdentifiers,
    sql: str,
    order_by: str,
    page_number: int,
    page_size: int,
    ascending: bool = True,
) -> Optional[QuerySelector]:
    """
    Extends a SELECT statement to fetch a single page of results.

    If the statement has no `ORDER BY` clause, one is added that sorts by the given column. Otherwise, the existing
    sort order applies and the column is ignored.

    The last page may have fewer items than the page size. When sorting in descending order, the first page has the
    last items.

    :param dialect: Renders column names in the syntax of a SQL dialect.
    :param sql: A SELECT statement such as `SELECT * FROM Products`.
    :param order_by: Name of the column to sort by.
    :param page_number: Index of the page to fetch, starting at 0.
    :param page_size: Number of items in a page, a positive number.
    :param ascending: Whether to sort in ascending order.
    :returns: The paged statement, or `None` if the statement is empty or the page arguments are invalid.
    """

    if not sql or not sql.strip() or page_number < 0 or page_size <= 0:
        return None

    skip = page_number * page_size
    statement = sql.rstrip().rstrip(";")
    if not has_order_by(statement):
        direction = "ASC" if ascending else "DESC"
        statement += f" ORDER BY {dialect.get_column_name(order_by)} {direction}"
    statement += f" OFFSET @{SKIP_PARAMETER} ROWS FETCH NEXT @{NEXT_PARAMETER} ROWS ONLY"
    return QuerySelector(statement, {SKIP_PARAMETER: skip, NEXT_PARAMETER: page_size})


def get_aggregate_expression(
    dialect: SupportsAggregateDialect,
    function: AggregateFunction,
    column: Optional[str],
    group_by: Sequence[str] = (),
    alias: str = "Value",
) -> str:
    """
    Renders an aggregate function call for a select list, followed by the grouping columns (if any).

    :param function: The aggregate function to apply.
    :param column: Column to aggregate, or `None` for all rows (`*`).
    :param group_by: Columns to group by.
    :param alias: Name of the result column that holds the aggregate value.
    """

    argument = dialect.get_column_name(column) if column is not None else "*"
    function_name = dialect.get_aggregate_function_name(function)
    expression = f"{function_name}({argument}) as {dialect.get_column_name(alias)}"
    if group_by:
        expression += "," + ",".join(dialect.get_column_name(name) for name in group_by)
    return expression


def get_aggregate_stmt(
    dialect: SupportsAggregateDialect,
    table_name: str,
    function: AggregateFunction,
    column: Optional[str],
    group_by: Sequence[str] = (),
    alias: str = "Value",
) -> str:
    """
    Returns a statement that computes an aggregate over a table, with optional grouping.

    Example: `select count(*) as Value,CategoryID from Products` followed by `group by CategoryID`.
    """

    expression = get_aggregate_expression(dialect, function, column, group_by, alias)
    statement = f"select {expression} from {table_name}"
    if group_by:
        statement += "\ngroup by " + ",".join(
            dialect.get_column_name(name) for name in group_by
        )
    return statement
