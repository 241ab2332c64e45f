"""Administrative PostgreSQL connections.

The provisioner issues all of its DDL through one long-lived AdminConnection
opened at startup. The handle is passed explicitly to every lifecycle operation.
Dropping a binding may need a second, short-lived connection scoped to the tenant
database, because REASSIGN OWNED only affects objects in the current database;
AdminConnection.open_scoped_to() provides it.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from types import TracebackType
from typing import Any
from urllib.parse import quote, unquote, urlsplit, urlunsplit

import asyncpg

from src.provisioner.exceptions import ConnectivityError, EngineError, InvalidSourceError
from src.provisioner.identifiers import DEFAULT_PREFIX, role_name, tenant_name
from src.utils.config import DEFAULT_COMMAND_TIMEOUT
from src.utils.logging import get_logger

logger = get_logger(__name__)

SCHEME = "postgresql"
DEFAULT_PORT = 5432
DEFAULT_CONNECT_TIMEOUT = 30.0

# Errors asyncpg raises while establishing or using a connection
_CONNECT_ERRORS = (OSError, asyncpg.PostgresError, asyncpg.InterfaceError)


def _timed_out(command_timeout: float) -> str:
    return f"statement timed out after {command_timeout:g}s"


@dataclass(frozen=True)
class SourceURL:
    """A validated postgresql:// URL with its port normalized."""

    host: str
    port: int = DEFAULT_PORT
    username: str | None = None
    password: str | None = None
    database: str = ""
    query: str = ""

    @property
    def netloc(self) -> str:
        userinfo = ""
        if self.username is not None:
            userinfo = quote(self.username, safe="")
            if self.password is not None:
                userinfo += ":" + quote(self.password, safe="")
            userinfo += "@"
        host = f"[{self.host}]" if ":" in self.host else self.host
        return f"{userinfo}{host}:{self.port}"

    @property
    def dsn(self) -> str:
        path = "/" + quote(self.database, safe="") if self.database else ""
        return urlunsplit((SCHEME, self.netloc, path, self.query, ""))

    @property
    def redacted(self) -> str:
        """The DSN with the password masked, for logs and error messages."""
        if self.password is None:
            return self.dsn
        return replace(self, password="***").dsn

    def with_database(self, database: str) -> SourceURL:
        return replace(self, database=database)

    def with_credentials(self, username: str, password: str) -> SourceURL:
        return replace(self, username=username, password=password)

    def __repr__(self) -> str:
        return f"SourceURL({self.redacted!r})"


def parse_source(source: str) -> SourceURL:
    """Parse and validate an admin source URL.

    Accepts postgresql://[user[:password]@]host[:port]/[database][?query].
    A missing port defaults to 5432.

    Raises:
        InvalidSourceError: If the URL is malformed, has another scheme, or lacks a host
    """
    try:
        parts = urlsplit(source)
        port = parts.port
    except ValueError as e:
        raise InvalidSourceError(f"malformed url ({e})") from e

    if parts.scheme != SCHEME:
        raise InvalidSourceError(f"scheme must be {SCHEME!r}, got {parts.scheme!r}")
    if not parts.hostname:
        raise InvalidSourceError("host is missing")

    return SourceURL(
        host=parts.hostname,
        port=port or DEFAULT_PORT,
        username=unquote(parts.username) if parts.username is not None else None,
        password=unquote(parts.password) if parts.password is not None else None,
        database=unquote(parts.path.lstrip("/")),
        query=parts.query,
    )


class AdminConnection:
    """Handle over an administrative asyncpg connection.

    Statement failures raised by asyncpg are translated into EngineError so
    callers only deal with the provisioner's own exceptions.
    """

    def __init__(
        self,
        conn: asyncpg.Connection,
        source: SourceURL,
        *,
        current_user: str,
        current_database: str,
        prefix: str = DEFAULT_PREFIX,
        command_timeout: float = DEFAULT_COMMAND_TIMEOUT,
    ) -> None:
        self._conn = conn
        self.source = source
        self.current_user = current_user
        self.current_database = current_database
        self.prefix = prefix
        self.command_timeout = command_timeout
        self._closed = False

    def tenant_name(self, tenant_id: str) -> str:
        return tenant_name(tenant_id, self.prefix)

    def role_name(self, binding_id: str) -> str:
        return role_name(binding_id, self.prefix)

    def is_scoped_to(self, database: str) -> bool:
        return self.current_database == database

    @property
    def closed(self) -> bool:
        return self._closed

    async def execute(self, sql: str, *args: Any, display: str | None = None) -> str:
        """Execute a statement.

        Args:
            sql: Statement text, identifiers already quoted
            *args: Bound parameters ($1, $2, ...)
            display: Statement text to report on failure instead of ``sql``, used
                when ``sql`` embeds a secret

        Raises:
            EngineError: If the engine rejects the statement or it exceeds command_timeout
        """
        try:
            return await self._conn.execute(sql, *args)
        except asyncpg.PostgresError as e:
            raise EngineError(display or sql, str(e), sqlstate=e.sqlstate) from e
        except TimeoutError as e:
            raise EngineError(display or sql, _timed_out(self.command_timeout)) from e
        except asyncpg.InterfaceError as e:
            raise ConnectivityError(f"Connection to {self.source.redacted} failed: {e}") from e

    async def fetchrow(self, sql: str, *args: Any) -> asyncpg.Record | None:
        try:
            return await self._conn.fetchrow(sql, *args)
        except asyncpg.PostgresError as e:
            raise EngineError(sql, str(e), sqlstate=e.sqlstate) from e
        except TimeoutError as e:
            raise EngineError(sql, _timed_out(self.command_timeout)) from e
        except asyncpg.InterfaceError as e:
            raise ConnectivityError(f"Connection to {self.source.redacted} failed: {e}") from e

    async def open_scoped_to(self, database: str) -> AdminConnection:
        """Open another admin connection whose current database is ``database``."""
        logger.info("Opening scoped admin connection", database=database)
        return await open_admin_connection(
            self.source.with_database(database),
            prefix=self.prefix,
            command_timeout=self.command_timeout,
        )

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self._conn.close()

    async def __aenter__(self) -> AdminConnection:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()


async def open_admin_connection(
    source: str | SourceURL,
    *,
    prefix: str = DEFAULT_PREFIX,
    command_timeout: float = DEFAULT_COMMAND_TIMEOUT,
    connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
) -> AdminConnection:
    """Connect to PostgreSQL and verify the connection is alive.

    The liveness probe also records the session's current user and database,
    which drop_binding needs for REASSIGN OWNED and for scoping.

    Raises:
        InvalidSourceError: If ``source`` is not a valid postgresql:// URL
        ConnectivityError: If the engine cannot be reached, authenticated to, or pinged
    """
    url = source if isinstance(source, SourceURL) else parse_source(source)
    logger.info(
        "Opening admin connection",
        host=url.host,
        port=url.port,
        database=url.database,
        user=url.username,
    )

    try:
        conn = await asyncpg.connect(
            url.dsn, timeout=connect_timeout, command_timeout=command_timeout
        )
    except _CONNECT_ERRORS as e:
        raise ConnectivityError(f"Cannot connect to {url.redacted}: {e}") from e

    try:
        row = await conn.fetchrow("SELECT current_user, current_database()")
    except _CONNECT_ERRORS as e:
        await conn.close()
        raise ConnectivityError(f"Liveness check against {url.redacted} failed: {e}") from e

    return AdminConnection(
        conn,
        url,
        current_user=row["current_user"],
        current_database=row["current_database"],
        prefix=prefix,
        command_timeout=command_timeout,
    )
