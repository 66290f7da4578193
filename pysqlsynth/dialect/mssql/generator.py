from typing import Sequence

from pysqlsynth.base import BaseGenerator
from pysqlsynth.formation.crud import IdentityType
from pysqlsynth.model.metadata import ColumnInfo, EntityMetadata
from pysqlsynth.util.typing import override


class MSSQLGenerator(BaseGenerator):
    """
    Generator for Microsoft SQL Server (T-SQL).

    Generated key values are obtained with `SCOPE_IDENTITY()` for integer identity columns, and with an `OUTPUT`
    clause otherwise. Affected row counts are read from `@@ROWCOUNT`.
    """

    @override
    def placeholder(self, index: int) -> str:
        return "?"

    def _output_clause(self, columns: Sequence[ColumnInfo]) -> str:
        return "OUTPUT " + ", ".join(
            f"INSERTED.{self.get_column_name(column.column_name)}" for column in columns
        )

    @override
    def get_insert_identity_stmt(
        self,
        metadata: EntityMetadata,
        columns: Sequence[ColumnInfo],
        identity_type: IdentityType,
    ) -> str:
        insert, values = self._get_insert_clauses(metadata, columns)
        if identity_type is IdentityType.UNIQUE_IDENTIFIER:
            # `SCOPE_IDENTITY()` only applies to numeric identity columns
            return f"{insert} {self._output_clause(metadata.key_columns[:1])} {values}"
        else:
            return f"{insert} {values};\nSELECT CAST(SCOPE_IDENTITY() AS {identity_type.value})"

    @override
    def get_insert_output_stmt(
        self,
        metadata: EntityMetadata,
        columns: Sequence[ColumnInfo],
        output_columns: Sequence[ColumnInfo],
    ) -> str:
        insert, values = self._get_insert_clauses(metadata, columns)
        if output_columns:
            return f"{insert} {self._output_clause(output_columns)} {values}"
        else:
            return f"{insert} {values}"

    @override
    def get_rowcount_stmt(self, statement: str) -> str:
        return f"{statement};\nSELECT @@ROWCOUNT"
