import logging
import typing
from typing import Any, Sequence

import pyodbc

from pysqlsynth.base import BaseConnection, BaseContext
from pysqlsynth.resultset import RowRecord
from pysqlsynth.util.dispatch import thread_dispatch
from pysqlsynth.util.typing import override

LOGGER = logging.getLogger("pysqlsynth.mssql")


class MSSQLConnection(BaseConnection):
    """
    Represents a connection to a Microsoft SQL Server.
    """

    native: pyodbc.Connection

    @override
    @thread_dispatch
    def open(self) -> BaseContext:
        LOGGER.info("connecting to %s", self.params)
        params = {
            "DRIVER": "{ODBC Driver 18 for SQL Server}",
            "SERVER": (
                f"{self.params.host},{self.params.port}"
                if self.params.port is not None
                else self.params.host
            ),
            "UID": self.params.username,
            "PWD": self.params.password,
            "TrustServerCertificate": "yes",
        }
        if self.params.database is not None:
            params["DATABASE"] = self.params.database
        conn_string = ";".join(
            f"{key}={value}" for key, value in params.items() if value is not None
        )
        conn = pyodbc.connect(conn_string, autocommit=True)
        cur = conn.cursor()
        try:
            for row in cur.execute("SELECT @@VERSION").fetchall():
                LOGGER.info(row[0])
        finally:
            cur.close()

        self.native = conn
        return MSSQLContext(self)

    @override
    @thread_dispatch
    def close(self) -> None:
        self.native.close()


class MSSQLContext(BaseContext):
    def __init__(self, connection: MSSQLConnection) -> None:
        super().__init__(connection)

    @property
    def native_connection(self) -> pyodbc.Connection:
        return typing.cast(MSSQLConnection, self.connection).native

    @override
    async def _query(
        self, statement: str, parameters: dict[str, Any]
    ) -> list[RowRecord]:
        sql, args = self.generator.bind(statement, parameters)
        return await self._internal_query(sql, args)

    @thread_dispatch
    def _internal_query(self, statement: str, args: Sequence[Any]) -> list[RowRecord]:
        # cursors are closed explicitly; leaving a `with` block would commit an open transaction
        cur = self.native_connection.cursor()
        try:
            cur.execute(statement, *args)

            # skip row counts of statements that precede the one producing a result-set
            while cur.description is None:
                if not cur.nextset():
                    return []

            names = [column[0] for column in cur.description]
            return [tuple(zip(names, row)) for row in cur.fetchall()]
        finally:
            cur.close()

    @override
    @thread_dispatch
    def _begin(self) -> None:
        self.native_connection.autocommit = False

    @override
    @thread_dispatch
    def _commit(self) -> None:
        conn = self.native_connection
        try:
            conn.commit()
        finally:
            conn.autocommit = True

    @override
    @thread_dispatch
    def _rollback(self) -> None:
        conn = self.native_connection
        try:
            conn.rollback()
        finally:
            conn.autocommit = True
