"""
pysqlsynth: Synthesize parameterized SQL statements from data-class metadata.

This module assembles a chain of join steps into a multi-table SELECT statement.

Each table in the statement gets an alias `t1`, `t2`, ... in the order the table enters the join. A join step may
only reference a table on its left side that an earlier step (or the start of the chain) has already introduced.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Iterator, Mapping, Optional, Sequence

from strong_typing.inspection import DataclassInstance

from ..errors import (
    JoinLimitExceededError,
    MalformedJoinPredicateError,
    NoMappableColumnsError,
    UnresolvedFilterAliasError,
    UnresolvedJoinAliasError,
)
from ..model.metadata import ColumnInfo, EntityMetadata, MetadataCache
from .identifiers import SupportsIdentifiers
from .predicates import JoinSpec
from .template import (
    INNER_JOIN_PLACEHOLDER,
    WHERE_PLACEHOLDER,
    QuerySelector,
    SqlBuilder,
)

LOGGER = logging.getLogger("pysqlsynth")

# number of join steps permitted by default, i.e. up to seven tables in a single statement
DEFAULT_MAX_JOIN_COUNT = 6


@dataclass(frozen=True)
class Filter:
    """
    A filter condition applied to a table taking part in a join.

    :param sql_fragment: A condition such as `UnitPrice > @UnitPrice`, written without table alias.
    :param owner_type: The entity type whose table the condition applies to.
    :param parameters: Values for named placeholders in the condition.
    """

    sql_fragment: str
    owner_type: type
    parameters: Mapping[str, Any] = field(default_factory=dict)


class AliasTable:
    "Assigns aliases `t1`, `t2`, ... to entity types in order of registration."

    _aliases: dict[str, type]

    def __init__(self) -> None:
        self._aliases = {}

    def register(self, entity_type: type) -> str:
        "Assigns the next unused alias to an entity type."

        alias = f"t{len(self._aliases) + 1}"
        self._aliases[alias] = entity_type
        return alias

    def alias_of(self, entity_type: type) -> Optional[str]:
        "Returns the first alias assigned to an entity type, if any."

        for alias, aliased_type in self._aliases.items():
            if aliased_type is entity_type:
                return alias
        return None

    def items(self) -> Iterator[tuple[str, type]]:
        return iter(self._aliases.items())

    def __len__(self) -> int:
        return len(self._aliases)

    def __contains__(self, entity_type: Any) -> bool:
        return self.alias_of(entity_type) is not None


def _require_columns(metadata: EntityMetadata) -> None:
    if not metadata.columns:
        raise NoMappableColumnsError(
            f"entity `{metadata.entity_type.__name__}` has no mappable columns"
        )


def _key_column(metadata: EntityMetadata, field_name: str, spec: JoinSpec, side: str) -> ColumnInfo:
    column = metadata.find_field(field_name)
    if column is None:
        raise MalformedJoinPredicateError(
            f"field `{field_name}` of type `{metadata.entity_type.__name__}` is not mapped to a column",
            str(spec),
            side,
        )
    return column


class JoinGraphAssembler:
    """
    Produces a multi-table SELECT statement from an ordered sequence of join steps.

    :param identifiers: Renders table and column names in the syntax of a SQL dialect.
    :param cache: Source of entity metadata.
    :param max_join_count: Maximum number of join steps in a single statement.
    """

    identifiers: SupportsIdentifiers
    cache: MetadataCache
    max_join_count: int

    def __init__(
        self,
        identifiers: SupportsIdentifiers,
        cache: MetadataCache,
        max_join_count: int = DEFAULT_MAX_JOIN_COUNT,
    ) -> None:
        if max_join_count < 1:
            raise ValueError("at least one join step must be permitted")

        self.identifiers = identifiers
        self.cache = cache
        self.max_join_count = max_join_count

    def _select_list(self, aliases: AliasTable) -> tuple[str, tuple[str, ...]]:
        columns: list[str] = []
        origins: list[str] = []
        for alias, entity_type in aliases.items():
            metadata = self.cache.get(entity_type)
            for column in metadata.columns:
                columns.append(
                    f"{alias}.{self.identifiers.get_column_name(column.column_name)}"
                )
                origins.append(alias)
        return ", ".join(columns), tuple(origins)

    def _apply_filters(
        self, builder: SqlBuilder, aliases: AliasTable, filters: Sequence[Filter]
    ) -> None:
        for item in filters:
            alias = aliases.alias_of(item.owner_type)
            if alias is None:
                raise UnresolvedFilterAliasError(
                    f"filter `{item.sql_fragment}` applies to `{item.owner_type.__name__}`, "
                    "which takes no part in the statement"
                )
            builder.where(f"{alias}.{item.sql_fragment}", item.parameters)

    def assemble(
        self,
        joins: Sequence[Optional[JoinSpec]],
        filters: Sequence[Filter] = (),
    ) -> QuerySelector:
        """
        Builds a SELECT statement that joins tables in the order the join steps are given.

        Unset (`None`) steps are skipped.

        :param joins: Join steps, in order. The left type of the first step becomes alias `t1`.
        :param filters: Filter conditions, combined by `AND`.
        """

        steps = [step for step in joins if step is not None]
        if not steps:
            raise ValueError("expected: at least one join step")
        if len(steps) > self.max_join_count:
            raise JoinLimitExceededError(
                f"join chain has {len(steps)} steps but at most {self.max_join_count} are permitted"
            )

        aliases = AliasTable()
        builder = SqlBuilder()

        first_type = steps[0].left_type
        first_metadata = self.cache.get(first_type)
        _require_columns(first_metadata)
        aliases.register(first_type)

        for index, step in enumerate(steps, start=1):
            left_alias = aliases.alias_of(step.left_type)
            if left_alias is None:
                raise UnresolvedJoinAliasError(
                    f"join step {index} ({step}) references `{step.left_type.__name__}`, which no earlier step "
                    "introduces; reorder the join steps such that each left type is already joined, "
                    "or reduce the number of joins"
                )

            left_metadata = self.cache.get(step.left_type)
            right_metadata = self.cache.get(step.right_type)
            _require_columns(right_metadata)
            left_column = _key_column(left_metadata, step.left_key_field, step, "left")
            right_column = _key_column(right_metadata, step.right_key_field, step, "right")

            right_alias = aliases.register(step.right_type)
            builder.inner_join(
                f"{self.identifiers.get_table_name(right_metadata)} {right_alias} ON "
                f"{left_alias}.{self.identifiers.get_column_name(left_column.column_name)} = "
                f"{right_alias}.{self.identifiers.get_column_name(right_column.column_name)}"
            )

        self._apply_filters(builder, aliases, filters)

        select_list, origins = self._select_list(aliases)
        template = builder.add_template(
            f"SELECT {select_list}\n"
            f"FROM {self.identifiers.get_table_name(first_metadata)} t1\n"
            f"{INNER_JOIN_PLACEHOLDER}\n"
            f"{WHERE_PLACEHOLDER}"
        )
        selector = template.select(origins)
        LOGGER.debug(
            "assembled join of %d table(s):\n%s", len(aliases), selector.raw_sql
        )
        return selector

    def assemble_filtered(
        self,
        entity_type: type[DataclassInstance],
        filters: Sequence[Filter] = (),
    ) -> QuerySelector:
        """
        Builds a single-table SELECT statement with filter conditions.

        :param entity_type: The entity type whose table to query, aliased as `t1`.
        :param filters: Filter conditions, combined by `AND`.
        """

        metadata = self.cache.get(entity_type)
        _require_columns(metadata)

        aliases = AliasTable()
        aliases.register(entity_type)
        builder = SqlBuilder()
        self._apply_filters(builder, aliases, filters)

        select_list, origins = self._select_list(aliases)
        template = builder.add_template(
            f"SELECT {select_list}\n"
            f"FROM {self.identifiers.get_table_name(metadata)} t1\n"
            f"{WHERE_PLACEHOLDER}"
        )
        return template.select(origins)
