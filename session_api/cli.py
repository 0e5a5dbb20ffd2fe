"""
Numa Sessions CLI.

Command-line interface for operating the session service: seed demo data,
run the abandoned-session sweep by hand, repair table pointers and inspect
open sessions.
"""

import asyncio
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from shared.config.logging import setup_logging
from shared.config.settings import settings
from shared.infrastructure.db import SessionLocal, engine
from session_api.models import Base
from session_api.seed import DEMO_PASSWORD, seed as seed_demo_data
from session_api.services.domain import SessionQueryService, TableRegistry
from session_api.services.session_sweeper import SessionSweeper, sweep_once
from session_api.services.session_view import build_session

app = typer.Typer(
    name="numa-sessions",
    help="Numa dining session service CLI",
    add_completion=False,
)
console = Console()


@app.callback()
def main():
    setup_logging()


# =============================================================================
# Database Commands
# =============================================================================


@app.command()
def init_db():
    """Create database tables."""
    Base.metadata.create_all(bind=engine)
    console.print("[green]✓ Database tables created/verified[/green]")


@app.command()
def seed(
    force: bool = typer.Option(False, "--force", "-f", help="Allow seeding in production"),
):
    """Seed the demo restaurant, menu, tables and staff users."""
    if settings.environment == "production" and not force:
        console.print("[red]Cannot seed production without --force[/red]")
        raise typer.Exit(1)

    Base.metadata.create_all(bind=engine)
    with SessionLocal() as db:
        seeded = seed_demo_data(db)

    if seeded is None:
        console.print("[yellow]Demo data already present, nothing to do[/yellow]")
        return

    table = Table(title="Demo staff users")
    table.add_column("Role", style="cyan")
    table.add_column("Email", style="green")
    for role, email in seeded.staff_emails.items():
        table.add_row(role, email)
    console.print(table)
    console.print(f"[green]✓ Seeded restaurant {seeded.restaurant_id}[/green] (password: {DEMO_PASSWORD})")


# =============================================================================
# Session Maintenance Commands
# =============================================================================


@app.command()
def sweep(
    timeout_minutes: Optional[int] = typer.Option(
        None,
        help="Inactivity timeout in minutes (defaults to SESSION_INACTIVITY_TIMEOUT_MINUTES)",
    ),
):
    """Expire idle sessions and repair table pointers once."""
    if timeout_minutes is None:
        # Full sweep, events included
        result = asyncio.run(SessionSweeper().run_once())
    else:
        result = sweep_once(timeout_minutes=timeout_minutes)

    console.print(f"[green]✓ Expired {len(result.expired_session_ids)} session(s)[/green]")
    for session_id in result.expired_session_ids:
        console.print(f"  - {session_id}")
    console.print(f"[green]✓ Fixed {result.tables_fixed} table pointer(s)[/green]")


@app.command()
def reconcile_tables():
    """Clear table pointers that reference closed or missing sessions."""
    with SessionLocal() as db:
        fixed = TableRegistry(db).reconcile_pointers()
    if fixed:
        console.print(f"[yellow]Fixed {fixed} table pointer(s)[/yellow]")
    else:
        console.print("[green]✓ All table pointers consistent[/green]")


@app.command()
def list_active(
    restaurant_id: str = typer.Argument(..., help="Restaurant id"),
):
    """Show the open sessions of a restaurant."""
    with SessionLocal() as db:
        sessions = SessionQueryService(db).active_sessions(restaurant_id)
        rows = [build_session(session) for session in sessions]

    if not rows:
        console.print("[yellow]No open sessions[/yellow]")
        return

    table = Table(title="Open sessions")
    table.add_column("Code", style="cyan")
    table.add_column("Table")
    table.add_column("Status", style="green")
    table.add_column("Guests", justify="right")
    table.add_column("Total", justify="right", style="yellow")
    table.add_column("Waiter", justify="center")
    for row in rows:
        table.add_row(
            row.session_code,
            row.table_number or "-",
            row.status,
            str(row.guest_count),
            str(row.total_amount),
            "🔔" if row.waiter_called else "",
        )
    console.print(table)


if __name__ == "__main__":
    app()
