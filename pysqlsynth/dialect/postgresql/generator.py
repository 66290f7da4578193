from typing import Optional, Sequence

from pysqlsynth.base import BaseGenerator
from pysqlsynth.formation.crud import IdentityType
from pysqlsynth.formation.paging import AggregateFunction
from pysqlsynth.model.id_types import double_quote_id
from pysqlsynth.model.metadata import ColumnInfo, EntityMetadata
from pysqlsynth.util.typing import override

_AGGREGATE_FUNCTIONS: dict[AggregateFunction, str] = {
    AggregateFunction.COUNT_BIG: "count",
    AggregateFunction.VAR: "var_samp",
    AggregateFunction.VARP: "var_pop",
    AggregateFunction.STDEV: "stddev_samp",
    AggregateFunction.STDEVP: "stddev_pop",
}


class PostgreSQLGenerator(BaseGenerator):
    """
    Generator for PostgreSQL.

    Identifiers are always double-quoted to preserve letter case. Generated key values are obtained with a
    `RETURNING` clause.
    """

    @override
    def placeholder(self, index: int) -> str:
        return f"${index}"

    @property
    @override
    def numbered_placeholders(self) -> bool:
        return True

    @override
    def get_table_name(self, metadata: EntityMetadata) -> str:
        table_id = metadata.table_id
        if table_id.namespace:
            return f"{double_quote_id(table_id.namespace)}.{double_quote_id(table_id.id)}"
        else:
            return double_quote_id(table_id.id)

    @override
    def get_column_name(self, name: str) -> str:
        return double_quote_id(name)

    @override
    def get_aggregate_function_name(self, function: AggregateFunction) -> str:
        return _AGGREGATE_FUNCTIONS.get(function, function.value)

    @override
    def like_pattern(self, search_term: Optional[str]) -> Optional[str]:
        if not search_term:
            return None

        # backslash is the default escape character in a `LIKE` pattern
        escaped = (
            search_term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        )
        return f"%{escaped}%"

    def _returning_clause(self, columns: Sequence[ColumnInfo]) -> str:
        return "RETURNING " + ", ".join(
            self.get_column_name(column.column_name) for column in columns
        )

    @override
    def get_insert_identity_stmt(
        self,
        metadata: EntityMetadata,
        columns: Sequence[ColumnInfo],
        identity_type: IdentityType,
    ) -> str:
        insert, values = self._get_insert_clauses(metadata, columns)
        return f"{insert} {values}\n{self._returning_clause(metadata.key_columns[:1])}"

    @override
    def get_insert_output_stmt(
        self,
        metadata: EntityMetadata,
        columns: Sequence[ColumnInfo],
        output_columns: Sequence[ColumnInfo],
    ) -> str:
        insert, values = self._get_insert_clauses(metadata, columns)
        if output_columns:
            return f"{insert} {values}\n{self._returning_clause(output_columns)}"
        else:
            return f"{insert} {values}"

    @override
    def get_rowcount_stmt(self, statement: str) -> str:
        return (
            f"WITH affected AS (\n{statement}\nRETURNING 1\n)\n"
            "SELECT count(*) FROM affected"
        )
