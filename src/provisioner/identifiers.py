"""Naming and quoting of tenant database and role identifiers.

Every name the provisioner sends to PostgreSQL is built here. Database and role
names cannot be passed as bound parameters, so they are always rendered through
quote_ident(). Values that must appear as string literals (role passwords) go
through quote_literal().
"""

from src.provisioner.exceptions import InvalidIdentifierError

# Namespace prefix carried by every tenant database and role name
DEFAULT_PREFIX = "sb_"

# PostgreSQL silently truncates identifiers longer than NAMEDATALEN - 1 bytes
MAX_IDENTIFIER_BYTES = 63


def _prefixed(prefix: str, id_: str) -> str:
    # Without a prefix any database or role on the cluster could be targeted
    if not prefix:
        raise InvalidIdentifierError(id_, "namespace prefix must not be empty")
    if not id_:
        raise InvalidIdentifierError(id_, "id must not be empty")
    if "\x00" in id_ or "\x00" in prefix:
        raise InvalidIdentifierError(id_, "id must not contain NUL characters")

    name = prefix + id_
    if len(name.encode("utf-8")) > MAX_IDENTIFIER_BYTES:
        raise InvalidIdentifierError(
            id_, f"{name!r} is longer than {MAX_IDENTIFIER_BYTES} bytes"
        )
    return name


def tenant_name(tenant_id: str, prefix: str = DEFAULT_PREFIX) -> str:
    """Database name for a tenant id."""
    return _prefixed(prefix, tenant_id)


def role_name(binding_id: str, prefix: str = DEFAULT_PREFIX) -> str:
    """Login role name for a binding id."""
    return _prefixed(prefix, binding_id)


def quote_ident(name: str) -> str:
    """Double-quote an identifier, doubling any embedded double quotes.

    Example:
        >>> quote_ident('sb_a"; DROP DATABASE x; --')
        '"sb_a""; DROP DATABASE x; --"'
    """
    if "\x00" in name:
        raise InvalidIdentifierError(name, "identifier must not contain NUL characters")
    return '"' + name.replace('"', '""') + '"'


def quote_literal(value: str) -> str:
    """Single-quote a string literal the same way PostgreSQL's quote_literal() does.

    Embedded single quotes are doubled. When the value contains a backslash the
    escape-string form E'...' is used with backslashes doubled, which reads the
    same whether or not standard_conforming_strings is on.
    """
    if "\x00" in value:
        raise ValueError("String literals must not contain NUL characters")

    escaped = value.replace("'", "''")
    if "\\" in value:
        return "E'" + escaped.replace("\\", "\\\\") + "'"
    return "'" + escaped + "'"
