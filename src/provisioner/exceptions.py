"""
Exceptions raised by the tenant provisioner.

Callers distinguish a missing tenant (NotFoundError) from an engine failure
(EngineError) by type, so the service layer can map them to different responses.
"""


class ProvisionerError(Exception):
    """Base class for all provisioner errors."""


class ConfigurationError(ProvisionerError):
    """The provisioner was given configuration it cannot use."""


class InvalidSourceError(ConfigurationError):
    """The admin source URL is malformed or does not use the postgresql scheme."""

    def __init__(self, reason: str):
        self.reason = reason
        # the raw source is never echoed back, it usually carries the admin password
        super().__init__(f"Invalid PostgreSQL source URL: {reason}")


class InvalidIdentifierError(ConfigurationError):
    """A tenant or binding id cannot be turned into a PostgreSQL identifier."""

    def __init__(self, identifier: str, reason: str):
        self.identifier = identifier
        self.reason = reason
        super().__init__(f"Invalid identifier {identifier!r}: {reason}")


class ConnectivityError(ProvisionerError):
    """The PostgreSQL engine could not be reached, authenticated to, or pinged."""


class NotFoundError(ProvisionerError):
    """A resource required by the operation does not exist."""


class TenantNotFoundError(NotFoundError):
    """The tenant database targeted by a binding does not exist."""

    def __init__(self, db_name: str):
        self.db_name = db_name
        super().__init__(f"Database {db_name!r} doesn't exist")


class EngineError(ProvisionerError):
    """A DDL/DML statement failed on the engine.

    The original asyncpg exception is chained as ``__cause__``.
    """

    def __init__(self, statement: str, message: str, sqlstate: str | None = None):
        self.statement = statement
        self.sqlstate = sqlstate
        super().__init__(message)
