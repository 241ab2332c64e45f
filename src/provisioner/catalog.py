"""Existence checks against the PostgreSQL system catalogs.

Nothing here is cached: every call reflects the engine state at the time of the
query.
"""

from src.provisioner.connection import AdminConnection
from src.provisioner.identifiers import quote_ident


async def _exists(admin: AdminConnection, catalog: str, column: str, value: str) -> bool:
    row = await admin.fetchrow(
        f"SELECT 1 FROM {quote_ident(catalog)} WHERE {quote_ident(column)} = $1 LIMIT 1",
        value,
    )
    return row is not None


async def database_exists(admin: AdminConnection, db_name: str) -> bool:
    """Check whether a database with exactly this name exists."""
    return await _exists(admin, "pg_database", "datname", db_name)


async def role_exists(admin: AdminConnection, username: str) -> bool:
    """Check whether a login role with exactly this name exists."""
    return await _exists(admin, "pg_user", "usename", username)
