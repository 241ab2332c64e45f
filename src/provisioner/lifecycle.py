"""Tenant and binding lifecycle operations.

Each operation is a short, fixed sequence of statements issued over an explicit
AdminConnection:

- create_tenant: CREATE DATABASE
- drop_tenant: disable connections, terminate backends, DROP DATABASE
- create_binding: CREATE USER (unless it exists), GRANT ALL ON DATABASE
- drop_binding: REASSIGN OWNED, REVOKE ALL ON DATABASE, DROP USER

None of these sequences is transactional (CREATE/DROP DATABASE cannot run inside a
transaction block), so a failure part-way leaves the earlier statements applied.
Nothing is retried here; retry policy belongs to the caller, and callers must
serialize operations on the same tenant or binding id.
"""

from __future__ import annotations

import newrelic.agent

from src.provisioner.catalog import database_exists, role_exists
from src.provisioner.connection import AdminConnection
from src.provisioner.exceptions import EngineError, TenantNotFoundError
from src.provisioner.identifiers import quote_ident, quote_literal
from src.provisioner.models import Credentials
from src.provisioner.passwords import DEFAULT_PASSWORD_BYTES, generate_password
from src.utils.logging import LogContext, get_logger

logger = get_logger(__name__)


@newrelic.agent.background_task(name="Provisioner/create_tenant")
async def create_tenant(admin: AdminConnection, tenant_id: str) -> str:
    """Create the tenant's database and return its name.

    Raises:
        EngineError: If CREATE DATABASE fails, e.g. because the database already exists
    """
    newrelic.agent.add_custom_attribute("tenant_id", tenant_id)
    db_name = admin.tenant_name(tenant_id)

    with LogContext(tenant_id=tenant_id, db_name=db_name):
        logger.info("Creating tenant database")
        try:
            # Note: CREATE DATABASE cannot be executed within a transaction block
            await admin.execute(f"CREATE DATABASE {quote_ident(db_name)}")
        except EngineError as e:
            logger.error("Failed to create tenant database", error=str(e), sqlstate=e.sqlstate)
            raise

        logger.info("Created tenant database")
        return db_name


@newrelic.agent.background_task(name="Provisioner/drop_tenant")
async def drop_tenant(admin: AdminConnection, tenant_id: str) -> None:
    """Drop the tenant's database, terminating any sessions still connected to it.

    Disabling new connections and terminating backends are best-effort: if either
    fails the failure is logged and DROP DATABASE is still attempted, and only its
    error is raised. Binding roles are not dropped; use drop_binding for those.

    Raises:
        EngineError: If DROP DATABASE fails
    """
    newrelic.agent.add_custom_attribute("tenant_id", tenant_id)
    db_name = admin.tenant_name(tenant_id)

    with LogContext(tenant_id=tenant_id, db_name=db_name):
        logger.info("Disabling new connections to tenant database")
        try:
            await admin.execute(
                f"ALTER DATABASE {quote_ident(db_name)} WITH ALLOW_CONNECTIONS false"
            )
        except EngineError as e:
            logger.warning(
                "Could not disable connections, dropping anyway",
                error=str(e),
                sqlstate=e.sqlstate,
            )

        logger.info("Terminating backends connected to tenant database")
        try:
            await admin.execute(
                """
                SELECT pg_terminate_backend(pg_stat_activity.pid)
                FROM pg_stat_activity
                WHERE pg_stat_activity.datname = $1
                  AND pid <> pg_backend_pid()
                """,
                db_name,
            )
        except EngineError as e:
            logger.warning(
                "Could not terminate backends, dropping anyway",
                error=str(e),
                sqlstate=e.sqlstate,
            )

        logger.info("Dropping tenant database")
        try:
            # Note: DROP DATABASE cannot run inside a transaction block
            await admin.execute(f"DROP DATABASE {quote_ident(db_name)}")
        except EngineError as e:
            logger.error("Failed to drop tenant database", error=str(e), sqlstate=e.sqlstate)
            raise

        logger.info("Dropped tenant database")


@newrelic.agent.background_task(name="Provisioner/create_binding")
async def create_binding(
    admin: AdminConnection,
    tenant_id: str,
    binding_id: str,
    *,
    password_bytes: int = DEFAULT_PASSWORD_BYTES,
) -> Credentials:
    """Create a login role with full privileges on the tenant database.

    If the role already exists it is left as it is (its password is NOT changed)
    and only the GRANT is re-applied. The returned password is then one the role
    does not have; callers re-binding an existing id must drop the binding first
    to obtain working credentials.

    Raises:
        TenantNotFoundError: If the tenant database does not exist. No statement
            has been issued in that case.
        EngineError: If CREATE USER or GRANT fails
    """
    newrelic.agent.add_custom_attribute("tenant_id", tenant_id)
    newrelic.agent.add_custom_attribute("binding_id", binding_id)
    db_name = admin.tenant_name(tenant_id)
    username = admin.role_name(binding_id)

    with LogContext(tenant_id=tenant_id, binding_id=binding_id, db_name=db_name):
        if not await database_exists(admin, db_name):
            logger.info("Tenant database doesn't exist, refusing to bind")
            raise TenantNotFoundError(db_name)

        password = generate_password(password_bytes)

        try:
            if await role_exists(admin, username):
                logger.info("Role already exists, skipping creation", username=username)
            else:
                logger.info("Creating role", username=username)
                # CREATE USER does not accept bound parameters for the password
                await admin.execute(
                    f"CREATE USER {quote_ident(username)} WITH PASSWORD {quote_literal(password)}",
                    display=f"CREATE USER {quote_ident(username)} WITH PASSWORD '***'",
                )

            logger.info("Granting privileges on tenant database", username=username)
            await admin.execute(
                f"GRANT ALL PRIVILEGES ON DATABASE {quote_ident(db_name)} TO {quote_ident(username)}"
            )
        except EngineError as e:
            logger.error(
                "Failed to create binding", username=username, error=str(e), sqlstate=e.sqlstate
            )
            raise

        url = admin.source.with_credentials(username, password).with_database(db_name)
        logger.info("Created binding", username=username)
        return Credentials(
            dbname=db_name,
            username=username,
            password=password,
            host=url.host,
            port=str(url.port),
            url=url.dsn,
        )


@newrelic.agent.background_task(name="Provisioner/drop_binding")
async def drop_binding(admin: AdminConnection, tenant_id: str, binding_id: str) -> None:
    """Drop a binding's login role.

    Objects the role created are first reassigned to the admin role, since a role
    that owns objects cannot be dropped. REASSIGN OWNED only sees the current
    database, so unless the admin connection is already on the tenant database a
    connection scoped to it is opened for the duration of the call.

    If the tenant database has already been dropped there is nothing left to
    reassign or revoke in it, and the role is dropped over the admin connection.

    Raises:
        EngineError: If any statement fails. Earlier statements stay applied.
        ConnectivityError: If the scoped connection cannot be opened
    """
    newrelic.agent.add_custom_attribute("tenant_id", tenant_id)
    newrelic.agent.add_custom_attribute("binding_id", binding_id)
    db_name = admin.tenant_name(tenant_id)
    username = admin.role_name(binding_id)

    with LogContext(tenant_id=tenant_id, binding_id=binding_id, db_name=db_name):
        if admin.is_scoped_to(db_name):
            await _drop_role(admin, db_name, username, revoke=True)
            return

        if not await database_exists(admin, db_name):
            logger.warning("Tenant database is gone, dropping role without reassignment")
            await _drop_role(admin, db_name, username, revoke=False)
            return

        scoped = await admin.open_scoped_to(db_name)
        try:
            await _drop_role(scoped, db_name, username, revoke=True)
        finally:
            await scoped.close()


async def _drop_role(conn: AdminConnection, db_name: str, username: str, *, revoke: bool) -> None:
    role = quote_ident(username)
    try:
        logger.info("Reassigning objects owned by role", username=username, to=conn.current_user)
        await conn.execute(f"REASSIGN OWNED BY {role} TO {quote_ident(conn.current_user)}")

        if revoke:
            logger.info("Revoking privileges on tenant database", username=username)
            await conn.execute(f"REVOKE ALL PRIVILEGES ON DATABASE {quote_ident(db_name)} FROM {role}")

        logger.info("Dropping role", username=username)
        await conn.execute(f"DROP USER {role}")
    except EngineError as e:
        logger.error("Failed to drop binding", username=username, error=str(e), sqlstate=e.sqlstate)
        raise

    logger.info("Dropped binding", username=username)
