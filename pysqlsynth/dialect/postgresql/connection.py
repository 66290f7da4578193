import logging
import ssl
import typing
from typing import Any, Optional

import asyncpg
from asyncpg.transaction import Transaction

from pysqlsynth.base import BaseConnection, BaseContext
from pysqlsynth.connection import ConnectionSSLMode, create_context
from pysqlsynth.resultset import RowRecord
from pysqlsynth.util.typing import override

LOGGER = logging.getLogger("pysqlsynth.postgresql")


class PostgreSQLConnection(BaseConnection):
    native: asyncpg.Connection

    @override
    async def open(self) -> BaseContext:
        LOGGER.info("connecting to %s", self.params)

        ssl_mode = self.params.ssl
        if ssl_mode is None or ssl_mode is ConnectionSSLMode.disable:
            return await self._open()
        elif ssl_mode is ConnectionSSLMode.prefer:
            try:
                return await self._open(create_context(ssl_mode))
            except ConnectionError:
                return await self._open()
        elif ssl_mode is ConnectionSSLMode.allow:
            try:
                return await self._open()
            except ConnectionError:
                return await self._open(create_context(ssl_mode))
        elif ssl_mode in (
            ConnectionSSLMode.require,
            ConnectionSSLMode.verify_ca,
            ConnectionSSLMode.verify_full,
        ):
            return await self._open(create_context(ssl_mode))
        else:
            raise ValueError(f"unsupported SSL mode: {ssl_mode}")

    async def _open(self, ctx: Optional[ssl.SSLContext] = None) -> BaseContext:
        conn = await asyncpg.connect(
            host=self.params.host,
            port=self.params.port,
            user=self.params.username,
            password=self.params.password,
            database=self.params.database,
            ssl=ctx,
        )

        ver = conn.get_server_version()
        LOGGER.info(
            "PostgreSQL version %d.%d.%d %s",
            ver.major,
            ver.minor,
            ver.micro,
            ver.releaselevel,
        )

        self.native = conn
        return PostgreSQLContext(self)

    @override
    async def close(self) -> None:
        await self.native.close()


class PostgreSQLContext(BaseContext):
    _transaction: Optional[Transaction]

    def __init__(self, connection: PostgreSQLConnection) -> None:
        super().__init__(connection)
        self._transaction = None

    @property
    def native_connection(self) -> asyncpg.Connection:
        return typing.cast(PostgreSQLConnection, self.connection).native

    @override
    async def _query(
        self, statement: str, parameters: dict[str, Any]
    ) -> list[RowRecord]:
        sql, args = self.generator.bind(statement, parameters)
        records = await self.native_connection.fetch(sql, *args)
        return [tuple(zip(record.keys(), record.values())) for record in records]

    @override
    async def _begin(self) -> None:
        if self._transaction is not None:
            raise RuntimeError("transaction already in progress")
        transaction = self.native_connection.transaction()
        await transaction.start()
        self._transaction = transaction

    def _end(self) -> Transaction:
        transaction = self._transaction
        if transaction is None:
            raise RuntimeError("no transaction in progress")
        self._transaction = None
        return transaction

    @override
    async def _commit(self) -> None:
        await self._end().commit()

    @override
    async def _rollback(self) -> None:
        await self._end().rollback()
