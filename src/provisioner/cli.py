#!/usr/bin/env python3
"""
Tenant Provisioner CLI

Operator tool exposing the four lifecycle operations against the admin source in
PG_SOURCE (or --source).

Usage:
    uv run python -m src.provisioner.cli create-tenant <tenant_id>
    uv run python -m src.provisioner.cli drop-tenant <tenant_id>
    uv run python -m src.provisioner.cli create-binding <tenant_id> <binding_id>
    uv run python -m src.provisioner.cli drop-binding <tenant_id> <binding_id>
    uv run python -m src.provisioner.cli status <tenant_id> [--binding <binding_id>]

Exit codes: 0 success, 1 engine error, 2 tenant not found, 3 configuration error,
4 connectivity error.
"""

import asyncio
from collections.abc import Awaitable, Callable
from typing import TypeVar

import typer
from dotenv import load_dotenv
from rich import box
from rich.console import Console
from rich.table import Table

from src.provisioner import lifecycle
from src.provisioner.catalog import database_exists, role_exists
from src.provisioner.connection import AdminConnection, open_admin_connection
from src.provisioner.exceptions import (
    ConfigurationError,
    ConnectivityError,
    NotFoundError,
    ProvisionerError,
)
from src.utils.config import (
    get_application_name,
    get_command_timeout,
    get_name_prefix,
    get_password_bytes,
    get_source_url,
)
from src.utils.logging import add_log_context

# Load environment variables
load_dotenv()

T = TypeVar("T")

EXIT_ENGINE_ERROR = 1
EXIT_NOT_FOUND = 2
EXIT_CONFIGURATION_ERROR = 3
EXIT_CONNECTIVITY_ERROR = 4

app = typer.Typer(
    name="pg-provisioner",
    help="Provision and tear down PostgreSQL tenant databases and bindings",
    add_completion=False,
)
console = Console()

SOURCE_OPTION = typer.Option(
    None, "--source", "-s", help="Admin source URL, defaults to PG_SOURCE", show_default=False
)


def log_success(message: str) -> None:
    console.print(f"✅ {message}", style="green")


def log_error(message: str) -> None:
    console.print(f"❌ {message}", style="red")


def exit_code_for(error: ProvisionerError) -> int:
    if isinstance(error, NotFoundError):
        return EXIT_NOT_FOUND
    if isinstance(error, ConfigurationError):
        return EXIT_CONFIGURATION_ERROR
    if isinstance(error, ConnectivityError):
        return EXIT_CONNECTIVITY_ERROR
    return EXIT_ENGINE_ERROR


def run_with_admin(source: str | None, operation: Callable[[AdminConnection], Awaitable[T]]) -> T:
    """Open one admin connection, run ``operation`` on it, and close it."""
    try:
        source_url = source or get_source_url()
        prefix = get_name_prefix()
        command_timeout = get_command_timeout()
    except ValueError as e:
        log_error(str(e))
        raise typer.Exit(EXIT_CONFIGURATION_ERROR)

    async def _run() -> T:
        admin = await open_admin_connection(
            source_url, prefix=prefix, command_timeout=command_timeout
        )
        async with admin:
            return await operation(admin)

    try:
        return asyncio.run(_run())
    except ProvisionerError as e:
        log_error(str(e))
        raise typer.Exit(exit_code_for(e))


@app.callback()
def main() -> None:
    try:
        add_log_context(application=get_application_name())
    except ValueError as e:
        log_error(str(e))
        raise typer.Exit(EXIT_CONFIGURATION_ERROR)


@app.command("create-tenant")
def create_tenant(
    tenant_id: str = typer.Argument(..., help="Tenant ID"),
    source: str | None = SOURCE_OPTION,
) -> None:
    """Create the tenant's database."""
    db_name = run_with_admin(source, lambda admin: lifecycle.create_tenant(admin, tenant_id))
    log_success(f"Created database {db_name}")


@app.command("drop-tenant")
def drop_tenant(
    tenant_id: str = typer.Argument(..., help="Tenant ID"),
    source: str | None = SOURCE_OPTION,
) -> None:
    """
    Drop the tenant's database, terminating open sessions.

    Binding roles are not dropped; run drop-binding for each of them.
    """
    run_with_admin(source, lambda admin: lifecycle.drop_tenant(admin, tenant_id))
    log_success(f"Dropped tenant {tenant_id}")


@app.command("create-binding")
def create_binding(
    tenant_id: str = typer.Argument(..., help="Tenant ID"),
    binding_id: str = typer.Argument(..., help="Binding ID"),
    source: str | None = SOURCE_OPTION,
) -> None:
    """
    Create a login role for the tenant's database and print its credentials as JSON.

    The password is shown only once.
    """
    try:
        password_bytes = get_password_bytes()
    except ValueError as e:
        log_error(str(e))
        raise typer.Exit(EXIT_CONFIGURATION_ERROR)

    creds = run_with_admin(
        source,
        lambda admin: lifecycle.create_binding(
            admin, tenant_id, binding_id, password_bytes=password_bytes
        ),
    )
    console.print_json(creds.model_dump_json())


@app.command("drop-binding")
def drop_binding(
    tenant_id: str = typer.Argument(..., help="Tenant ID"),
    binding_id: str = typer.Argument(..., help="Binding ID"),
    source: str | None = SOURCE_OPTION,
) -> None:
    """Reassign the role's objects to the admin role and drop the role."""
    run_with_admin(source, lambda admin: lifecycle.drop_binding(admin, tenant_id, binding_id))
    log_success(f"Dropped binding {binding_id}")


@app.command()
def status(
    tenant_id: str = typer.Argument(..., help="Tenant ID"),
    binding_id: str | None = typer.Option(None, "--binding", "-b", help="Binding ID"),
    source: str | None = SOURCE_OPTION,
) -> None:
    """Show whether the tenant database (and optionally a binding role) exist."""

    async def _probe(admin: AdminConnection) -> list[tuple[str, str, bool]]:
        db_name = admin.tenant_name(tenant_id)
        rows = [("database", db_name, await database_exists(admin, db_name))]
        if binding_id is not None:
            username = admin.role_name(binding_id)
            rows.append(("role", username, await role_exists(admin, username)))
        return rows

    rows = run_with_admin(source, _probe)

    table = Table(box=box.ROUNDED, show_header=True, header_style="bold cyan")
    table.add_column("Kind", style="dim")
    table.add_column("Name")
    table.add_column("Exists", justify="center")
    for kind, name, exists in rows:
        table.add_row(kind, name, "[green]✓[/green]" if exists else "[red]✗[/red]")
    console.print(table)


if __name__ == "__main__":
    app()
