"""
pysqlsynth: Synthesize parameterized SQL statements from data-class metadata.

This module defines base classes to generate SQL in the syntax of a database dialect, to create a connection, and
to run synthesized statements.
"""

import abc
import contextlib
import dataclasses
import enum
import logging
import types
import uuid
from dataclasses import dataclass
from typing import (
    Any,
    AsyncIterator,
    Mapping,
    Optional,
    Sequence,
    TypeVar,
    Union,
)

from strong_typing.inspection import DataclassInstance

from .connection import ConnectionParameters
from .errors import NoMappableColumnsError
from .formation.crud import (
    DEFAULT_MAX_BATCH_SIZE,
    CrudStatementGenerator,
    IdentityType,
    InsertStatement,
    check_batch_size,
)
from .formation.expressions import AccessorLike
from .formation.joins import DEFAULT_MAX_JOIN_COUNT, Filter, JoinGraphAssembler
from .formation.paging import AggregateFunction
from .formation.paging import get_aggregate_stmt as _get_aggregate_stmt
from .formation.paging import get_page_stmt as _get_page_stmt
from .formation.predicates import JoinSpec, get_member_name
from .formation.template import (
    QuerySelector,
    bind_parameters,
    check_parameters,
    escape_like,
    normalize_parameters,
)
from .model.id_types import LocalId
from .model.metadata import ColumnInfo, EntityMetadata, MetadataCache
from .resultset import (
    MaterializedRow,
    RowRecord,
    materialize_all,
    resultset_unwrap_entity,
    scalar_value,
)

D = TypeVar("D", bound=DataclassInstance)

LOGGER = logging.getLogger("pysqlsynth")


@dataclass
class GeneratorOptions:
    """
    Database-agnostic generator options.

    :param max_join_count: Maximum number of join steps in a single statement.
    :param max_batch_size: Maximum number of rows in a single batch operation.
    :param identity_type: Data type of values the database assigns to identity columns.
    :param metadata_cache: Entity metadata shared between generators. A new cache is created if not set.
    """

    max_join_count: int = DEFAULT_MAX_JOIN_COUNT
    max_batch_size: int = DEFAULT_MAX_BATCH_SIZE
    identity_type: IdentityType = IdentityType.INTEGER
    metadata_cache: Optional[MetadataCache] = dataclasses.field(
        default=None, compare=False
    )


class BaseGenerator(abc.ABC):
    """
    Generates SQL statements for querying joined tables, fetching pages and aggregates, and inserting, updating or
    deleting entity instances.

    :param options: Database-agnostic generator options.
    :param cache: Source of entity metadata.
    :param joins: Assembles multi-table SELECT statements.
    :param crud: Generates data manipulation statements.
    """

    options: GeneratorOptions
    cache: MetadataCache
    joins: JoinGraphAssembler
    crud: CrudStatementGenerator

    def __init__(self, options: GeneratorOptions) -> None:
        self.options = options
        self.cache = (
            options.metadata_cache
            if options.metadata_cache is not None
            else MetadataCache()
        )
        self.joins = JoinGraphAssembler(self, self.cache, options.max_join_count)
        self.crud = CrudStatementGenerator(self, self.cache, options.max_batch_size)

    def get_metadata(self, entity_type: type[DataclassInstance]) -> EntityMetadata:
        return self.cache.get(entity_type)

    @abc.abstractmethod
    def placeholder(self, index: int) -> str:
        """
        Returns a placeholder for a positional argument in a prepared statement.

        :param index: An index starting at 1 for the first position.
        """
        ...

    @property
    def numbered_placeholders(self) -> bool:
        "True if positional placeholders carry their index, and may be referenced more than once."

        return False

    def bind(
        self, sql: str, parameters: Mapping[str, Any]
    ) -> tuple[str, tuple[Any, ...]]:
        "Rewrites named placeholders to the positional placeholders the database driver expects."

        return bind_parameters(
            sql, parameters, self.placeholder, numbered=self.numbered_placeholders
        )

    # dialect-specific syntax

    def get_table_name(self, metadata: EntityMetadata) -> str:
        return metadata.table_id.quoted_id

    def get_column_name(self, name: str) -> str:
        return LocalId(name).quoted_id

    def get_parameter_value(self, value: Any) -> Any:
        if isinstance(value, enum.Enum):
            return value.value
        else:
            return value

    def get_aggregate_function_name(self, function: AggregateFunction) -> str:
        return function.value

    def like_pattern(self, search_term: Optional[str]) -> Optional[str]:
        "Builds a `LIKE` pattern that matches the search term anywhere in a string."

        return escape_like(search_term)

    def _get_insert_clauses(
        self, metadata: EntityMetadata, columns: Sequence[ColumnInfo]
    ) -> tuple[str, str]:
        column_list = ", ".join(
            self.get_column_name(column.column_name) for column in columns
        )
        value_list = ", ".join(f"@{column.field_name}" for column in columns)
        return (
            f"INSERT INTO {self.get_table_name(metadata)} ({column_list})",
            f"VALUES ({value_list})",
        )

    @abc.abstractmethod
    def get_insert_identity_stmt(
        self,
        metadata: EntityMetadata,
        columns: Sequence[ColumnInfo],
        identity_type: IdentityType,
    ) -> str:
        "Returns an INSERT statement that produces the value assigned to the identity column as a scalar."
        ...

    @abc.abstractmethod
    def get_insert_output_stmt(
        self,
        metadata: EntityMetadata,
        columns: Sequence[ColumnInfo],
        output_columns: Sequence[ColumnInfo],
    ) -> str:
        "Returns an INSERT statement that produces a result-set of the values assigned to the output columns."
        ...

    @abc.abstractmethod
    def get_rowcount_stmt(self, statement: str) -> str:
        "Wraps a data manipulation statement such that it produces the number of affected rows as a scalar."
        ...

    # statements

    def _get_column_name(
        self, entity_type: Optional[type], accessor: AccessorLike
    ) -> str:
        if entity_type is None:
            if not isinstance(accessor, str):
                raise TypeError(
                    "expected: column name when no entity type is given; got: callable"
                )
            return accessor

        field_name = get_member_name(accessor, entity_type)
        return self.cache.get(entity_type).get_column(field_name).column_name

    def get_join_stmt(
        self, joins: Sequence[Optional[JoinSpec]], filters: Sequence[Filter] = ()
    ) -> QuerySelector:
        "Returns a SELECT statement that joins tables in the order the join steps are given."

        return self.joins.assemble(joins, filters)

    def get_filter_stmt(
        self, entity_type: type[DataclassInstance], filters: Sequence[Filter] = ()
    ) -> QuerySelector:
        "Returns a single-table SELECT statement with filter conditions."

        return self.joins.assemble_filtered(entity_type, filters)

    def get_page_stmt(
        self,
        entity_type: Optional[type[DataclassInstance]],
        order_by: AccessorLike,
        sql: str,
        page_number: int,
        page_size: int,
        ascending: bool = True,
    ) -> Optional[QuerySelector]:
        """
        Extends a SELECT statement to fetch a single page of results.

        :param entity_type: Entity type that resolves the sort accessor, or `None` if `order_by` is a column name.
        :param order_by: Field accessor (or column name) to sort by if the statement has no `ORDER BY` clause.
        :returns: The paged statement, or `None` if the statement is empty or the page arguments are invalid.
        """

        column_name = self._get_column_name(entity_type, order_by)
        return _get_page_stmt(
            self, sql, column_name, page_number, page_size, ascending
        )

    def get_aggregate_stmt(
        self,
        entity_type: type[DataclassInstance],
        function: AggregateFunction,
        column: Optional[AccessorLike] = None,
        group_by: Sequence[AccessorLike] = (),
        *,
        table_name: Optional[str] = None,
        alias: str = "Value",
    ) -> str:
        """
        Returns a statement that computes an aggregate over the table of an entity type, with optional grouping.

        :param entity_type: The entity type whose table to aggregate.
        :param function: The aggregate function to apply.
        :param column: Field accessor of the column to aggregate, or `None` for all rows.
        :param group_by: Field accessors of the columns to group by.
        :param table_name: Table to aggregate instead of the table of the entity type.
        :param alias: Name of the result column that holds the aggregate value.
        """

        column_name = (
            self._get_column_name(entity_type, column) if column is not None else None
        )
        group_names = [self._get_column_name(entity_type, item) for item in group_by]
        if table_name is None:
            table_name = self.get_table_name(self.cache.get(entity_type))
        return _get_aggregate_stmt(
            self, table_name, function, column_name, group_names, alias
        )

    def get_insert_stmt(
        self,
        entity_type: type[DataclassInstance],
        identity_type: Optional[IdentityType] = None,
    ) -> InsertStatement:
        return self.crud.get_insert_stmt(
            entity_type,
            identity_type if identity_type is not None else self.options.identity_type,
        )

    def get_insert_many_stmt(
        self, entity_type: type[DataclassInstance]
    ) -> InsertStatement:
        return self.crud.get_insert_many_stmt(entity_type)

    def get_update_stmt(self, item: DataclassInstance) -> QuerySelector:
        return self.crud.get_update_stmt(item)

    def get_update_many_stmt(
        self,
        entity_type: type[DataclassInstance],
        items: Sequence[DataclassInstance],
        properties_to_set: Mapping[str, Any],
    ) -> QuerySelector:
        return self.crud.get_update_many_stmt(entity_type, items, properties_to_set)

    def get_delete_stmt(self, item: DataclassInstance) -> QuerySelector:
        return self.crud.get_delete_stmt(item)

    def get_key_value(self, column: ColumnInfo, value: Any) -> Any:
        "Converts a value the database assigned to a key column into the type of the key field."

        field_type = column.field_type
        if value is None or not isinstance(field_type, type):
            return value
        if isinstance(value, field_type):
            return value
        if column.field_type is int:
            return int(value)
        if column.field_type is uuid.UUID:
            return uuid.UUID(str(value))
        if column.field_type is str:
            return str(value)
        return value


class BaseConnection(abc.ABC):
    "An active connection to a database."

    generator: BaseGenerator
    params: ConnectionParameters

    def __init__(
        self,
        generator: BaseGenerator,
        params: ConnectionParameters,
    ) -> None:
        self.generator = generator
        self.params = params

    async def __aenter__(self) -> "BaseContext":
        return await self.open()

    async def __aexit__(
        self,
        exc_type: Optional[type[BaseException]],
        exc_val: Optional[BaseException],
        exc_tb: Optional[types.TracebackType],
    ) -> None:
        await self.close()

    @abc.abstractmethod
    async def open(self) -> "BaseContext": ...

    @abc.abstractmethod
    async def close(self) -> None: ...


def _check_statement(statement: str) -> None:
    if not statement:
        raise ValueError("empty statement")
    if not statement.strip():
        raise ValueError("blank statement")


class BaseContext(abc.ABC):
    "Context object returned by a connection object."

    connection: BaseConnection
    _transaction_depth: int

    def __init__(self, connection: BaseConnection) -> None:
        self.connection = connection
        self._transaction_depth = 0

    @property
    def generator(self) -> BaseGenerator:
        return self.connection.generator

    async def query(
        self, statement: str, parameters: Optional[Mapping[str, Any]] = None
    ) -> list[RowRecord]:
        "Runs a statement with named placeholders to produce a result-set."

        _check_statement(statement)
        params = normalize_parameters(parameters)
        check_parameters(statement, params, allow_unused=True)
        LOGGER.debug(
            "query SQL with %d parameter(s):\n%s", len(params), statement
        )
        return await self._query(statement, params)

    @abc.abstractmethod
    async def _query(
        self, statement: str, parameters: dict[str, Any]
    ) -> list[RowRecord]:
        """
        Runs a statement to produce a result-set.

        :param statement: SQL text with named placeholders.
        :param parameters: Values for the named placeholders, keyed by name without `@` prefix.
        :returns: Rows as sequences of (column name, value) pairs.
        """
        ...

    async def execute_scalar(
        self, statement: str, parameters: Optional[Mapping[str, Any]] = None
    ) -> Any:
        "Runs a statement with named placeholders to produce a single value."

        _check_statement(statement)
        params = normalize_parameters(parameters)
        check_parameters(statement, params, allow_unused=True)
        LOGGER.debug(
            "execute scalar SQL with %d parameter(s):\n%s", len(params), statement
        )
        return await self._execute_scalar(statement, params)

    async def _execute_scalar(
        self, statement: str, parameters: dict[str, Any]
    ) -> Any:
        "Runs a statement to produce the value in the first column of the first row, or `None`."

        return scalar_value(await self._query(statement, parameters))

    @contextlib.asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        """
        Runs the statements issued in its scope as a single atomic unit.

        Scopes nest. An inner scope joins the outermost one, which alone commits or rolls back.
        """

        if self._transaction_depth > 0:
            self._transaction_depth += 1
            try:
                yield
            finally:
                self._transaction_depth -= 1
            return

        await self._begin()
        self._transaction_depth = 1
        try:
            yield
        except BaseException:
            await self._rollback()
            raise
        else:
            await self._commit()
        finally:
            self._transaction_depth = 0

    @property
    def in_transaction(self) -> bool:
        "True if statements run inside a transaction scope."

        return self._transaction_depth > 0

    @abc.abstractmethod
    async def _begin(self) -> None: ...

    @abc.abstractmethod
    async def _commit(self) -> None: ...

    @abc.abstractmethod
    async def _rollback(self) -> None: ...

    async def parameterized_query(
        self, statement: str, parameters: Optional[Mapping[str, Any]] = None
    ) -> list[MaterializedRow]:
        """
        Runs caller-supplied SQL with named parameters.

        Each placeholder must have a value, and each value must have a placeholder.
        """

        _check_statement(statement)
        params = normalize_parameters(parameters)
        check_parameters(statement, params)
        return materialize_all(await self.query(statement, params))

    async def parameterized_query_as(
        self,
        entity_type: type[D],
        statement: str,
        parameters: Optional[Mapping[str, Any]] = None,
    ) -> list[D]:
        "Runs caller-supplied SQL with named parameters, and converts rows into entity instances."

        _check_statement(statement)
        params = normalize_parameters(parameters)
        check_parameters(statement, params)
        records = await self.query(statement, params)
        return resultset_unwrap_entity(self.generator.get_metadata(entity_type), records)

    async def parameterized_like(
        self,
        statement: str,
        search_term: Optional[str],
        parameter_name: str = "SearchTerm",
    ) -> list[MaterializedRow]:
        """
        Runs a statement whose `LIKE` condition matches the search term anywhere in a string.

        Characters with special meaning in a `LIKE` pattern are escaped in the search term.

        :param statement: SQL text such as `SELECT * FROM Products WHERE ProductName LIKE @SearchTerm`.
        :param search_term: Text to search for.
        :param parameter_name: Name of the placeholder that receives the pattern.
        """

        pattern = self.generator.like_pattern(search_term)
        if pattern is None:
            LOGGER.warning("empty search term; no rows match")
            return []
        return await self.parameterized_query(statement, {parameter_name: pattern})

    async def get_page(
        self,
        entity_type: Optional[type[D]],
        order_by: AccessorLike,
        statement: str,
        page_number: int,
        page_size: int,
        ascending: bool = True,
    ) -> Union[list[D], list[MaterializedRow], None]:
        """
        Fetches a single page of results of a SELECT statement.

        :param entity_type: Entity type to convert rows into, or `None` to return dictionaries.
        :returns: Rows on the page, or `None` if the statement is empty or the page arguments are invalid.
        """

        selector = self.generator.get_page_stmt(
            entity_type, order_by, statement, page_number, page_size, ascending
        )
        if selector is None:
            return None

        records = await self.query(selector.raw_sql, selector.parameters)
        if entity_type is not None:
            return resultset_unwrap_entity(
                self.generator.get_metadata(entity_type), records
            )
        else:
            return materialize_all(records)

    async def get_aggregate(
        self,
        entity_type: type[DataclassInstance],
        function: AggregateFunction,
        column: Optional[AccessorLike] = None,
        group_by: Sequence[AccessorLike] = (),
        *,
        table_name: Optional[str] = None,
        alias: str = "Value",
    ) -> list[MaterializedRow]:
        "Computes an aggregate over the table of an entity type, with optional grouping."

        statement = self.generator.get_aggregate_stmt(
            entity_type,
            function,
            column,
            group_by,
            table_name=table_name,
            alias=alias,
        )
        return materialize_all(await self.query(statement))

    async def query_join(
        self, joins: Sequence[Optional[JoinSpec]], filters: Sequence[Filter] = ()
    ) -> list[MaterializedRow]:
        "Fetches rows of joined tables, with columns of the same name kept apart by table alias."

        selector = self.generator.get_join_stmt(joins, filters)
        records = await self.query(selector.raw_sql, selector.parameters)
        return materialize_all(records, selector.column_origins)

    async def query_filtered(
        self, entity_type: type[D], filters: Sequence[Filter] = ()
    ) -> list[D]:
        "Fetches entity instances that satisfy all filter conditions."

        selector = self.generator.get_filter_stmt(entity_type, filters)
        records = await self.query(selector.raw_sql, selector.parameters)
        return resultset_unwrap_entity(self.generator.get_metadata(entity_type), records)

    def _assign_key(
        self, item: DataclassInstance, column: ColumnInfo, value: Any
    ) -> None:
        try:
            setattr(
                item, column.field_name, self.generator.get_key_value(column, value)
            )
        except (AttributeError, TypeError, ValueError) as e:
            LOGGER.warning(
                "cannot assign generated key value %r to field `%s` of `%s`: %s",
                value,
                column.field_name,
                type(item).__name__,
                e,
            )

    async def insert(
        self,
        item: DataclassInstance,
        identity_type: Optional[IdentityType] = None,
    ) -> Any:
        """
        Inserts an entity instance.

        If the entity has a single key column, the value the database assigns is written back to the key field.

        :returns: The generated key value, or `None` if the database produced none.
        """

        generator = self.generator
        statement = generator.get_insert_stmt(type(item), identity_type)
        parameters = generator.crud.get_parameters(item, statement.columns)
        value = await self.execute_scalar(statement.sql, parameters)
        if statement.key_column is not None and value is not None:
            self._assign_key(item, statement.key_column, value)
        return value

    async def insert_many(
        self, entity_type: type[D], items: Sequence[D]
    ) -> list[Any]:
        """
        Inserts a batch of entity instances in a single transaction.

        Values the database assigns to the first generated key column are written back to each instance.

        :returns: Generated key values, in the order of the rows that produced one.
        """

        generator = self.generator
        check_batch_size(len(items), generator.options.max_batch_size)
        for item in items:
            if not isinstance(item, entity_type):
                raise TypeError(
                    f"expected: instance of `{entity_type.__name__}`; got: {type(item).__name__}"
                )

        statement = generator.get_insert_many_stmt(entity_type)
        keys: list[Any] = []
        async with self.transaction():
            for item in items:
                parameters = generator.crud.get_parameters(item, statement.columns)
                records = await self.query(statement.sql, parameters)
                value = scalar_value(records)
                if value is None:
                    continue
                keys.append(value)
                if statement.key_column is not None:
                    self._assign_key(item, statement.key_column, value)

        LOGGER.info(
            "%d rows have been inserted into %s",
            len(items),
            generator.get_metadata(entity_type).table_name,
        )
        return keys

    async def _execute_rowcount(self, selector: QuerySelector) -> Optional[int]:
        value = await self.execute_scalar(selector.raw_sql, selector.parameters)
        count = int(value) if value is not None else None
        LOGGER.debug("%s row(s) affected", count)
        return count

    async def update(self, item: DataclassInstance) -> Optional[int]:
        """
        Updates all non-key columns of the row an entity instance identifies.

        :returns: Number of affected rows.
        """

        return await self._execute_rowcount(self.generator.get_update_stmt(item))

    async def update_many(
        self,
        entity_type: type[D],
        items: Sequence[D],
        properties_to_set: Mapping[str, Any],
    ) -> Optional[int]:
        """
        Assigns the same values to the rows a batch of entity instances identify, in a single transaction.

        :param properties_to_set: Values to assign, keyed by column name (or field name).
        :returns: Number of affected rows.
        """

        selector = self.generator.get_update_many_stmt(
            entity_type, items, properties_to_set
        )
        async with self.transaction():
            count = await self._execute_rowcount(selector)

        LOGGER.info(
            "%d rows have been updated in %s",
            count or 0,
            self.generator.get_metadata(entity_type).table_name,
        )
        return count

    async def delete(self, item: DataclassInstance) -> Optional[int]:
        """
        Deletes the row an entity instance identifies by its key values.

        :returns: Number of affected rows.
        """

        return await self._execute_rowcount(self.generator.get_delete_stmt(item))


class BaseEngine(abc.ABC):
    "Represents a specific database server type."

    @property
    @abc.abstractmethod
    def name(self) -> str: ...

    @abc.abstractmethod
    def get_generator_type(self) -> type[BaseGenerator]: ...

    @abc.abstractmethod
    def get_connection_type(self) -> type[BaseConnection]: ...

    def create_connection(
        self, params: ConnectionParameters, options: Optional[GeneratorOptions] = None
    ) -> BaseConnection:
        "Opens a connection to a database server."

        generator_options = options if options is not None else GeneratorOptions()
        connection_type = self.get_connection_type()
        return connection_type(self.create_generator(generator_options), params)

    def create_generator(
        self, options: Optional[GeneratorOptions] = None
    ) -> BaseGenerator:
        "Instantiates a generator that can emit SQL statements."

        generator_options = options if options is not None else GeneratorOptions()
        generator_type = self.get_generator_type()
        return generator_type(generator_options)
